#!/usr/bin/env python
#
"""
Various global constants: default connection settings, the TLS modes we
support, and the table of transport error codes along with how each code is
classified when we report the result of an authentication attempt.

The transport error codes keep the numeric values that libcurl uses for the
same conditions. Some runtimes only expose the numbers (not the symbolic
names) so everything that classifies a code goes through `ERROR_CATEGORIES`
and accepts either a `TransportError` or a bare integer.
"""
# system imports
#
from enum import Enum, IntEnum
from typing import Dict, Optional, Union

# The tag attached to every log record the authenticator emits.
#
APP_NAME = "imapauth"

DEFAULT_PORT = 143

# Seconds. Bounds the connect as well as every command round trip.
#
DEFAULT_TIMEOUT = 10.0


##################################################################
##################################################################
#
class TLSMode(str, Enum):
    """
    How the connection to the IMAP server is secured.

    `IMPLICIT` is TLS from the first byte (imaps://, usually port 993.)
    `EXPLICIT` is a plain connection upgraded via STARTTLS before we log in.
    """

    NONE = "none"
    IMPLICIT = "ssl"
    EXPLICIT = "tls"

    ####################################################################
    #
    @classmethod
    def from_str(cls, value: Optional[str]) -> "TLSMode":
        """
        Map a configuration value to a TLSMode. `None` and the empty string
        mean no TLS. Raises ValueError for anything else we do not know.
        """
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        value = value.strip().lower()
        if not value:
            return cls.NONE
        return cls(value)

    ####################################################################
    #
    @property
    def scheme(self) -> str:
        return "imaps" if self is TLSMode.IMPLICIT else "imap"


##################################################################
##################################################################
#
class TransportError(IntEnum):
    """
    Error codes reported by the transport after a probe. `OK` means the
    login and CAPABILITY exchange succeeded.
    """

    OK = 0
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    WEIRD_SERVER_REPLY = 8
    REMOTE_ACCESS_DENIED = 9
    QUOTE_ERROR = 21
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    RECV_ERROR = 56
    USE_SSL_FAILED = 64
    LOGIN_DENIED = 67
    AUTH_ERROR = 94

    ####################################################################
    #
    @property
    def description(self) -> str:
        return ERROR_DESCRIPTIONS[self]


ERROR_DESCRIPTIONS: Dict[TransportError, str] = {
    TransportError.OK: "No error",
    TransportError.COULDNT_RESOLVE_HOST: "Couldn't resolve host name",
    TransportError.COULDNT_CONNECT: "Couldn't connect to server",
    TransportError.WEIRD_SERVER_REPLY: "Weird server reply",
    TransportError.REMOTE_ACCESS_DENIED: "Access denied to remote resource",
    TransportError.QUOTE_ERROR: "Quote command returned error",
    TransportError.OPERATION_TIMEDOUT: "Timeout was reached",
    TransportError.SSL_CONNECT_ERROR: "SSL connect error",
    TransportError.RECV_ERROR: "Failure when receiving data from the peer",
    TransportError.USE_SSL_FAILED: "Requested SSL level failed",
    TransportError.LOGIN_DENIED: "Login denied",
    TransportError.AUTH_ERROR: "An authentication function returned an error",
}


##################################################################
##################################################################
#
class ErrorCategory(str, Enum):
    """
    What kind of failure a transport error code represents.
    """

    SUCCESS = "success"
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    PROTOCOL = "protocol"


# The one place that decides what a code means. Codes not listed here are
# protocol errors. Keyed by the plain integer value so that codes handed to
# us as bare numbers classify the same as the enum members.
#
ERROR_CATEGORIES: Dict[int, ErrorCategory] = {
    int(TransportError.OK): ErrorCategory.SUCCESS,
    int(TransportError.COULDNT_CONNECT): ErrorCategory.CONNECTION,
    int(TransportError.SSL_CONNECT_ERROR): ErrorCategory.CONNECTION,
    int(TransportError.OPERATION_TIMEDOUT): ErrorCategory.CONNECTION,
    int(TransportError.REMOTE_ACCESS_DENIED): ErrorCategory.AUTHENTICATION,
    int(TransportError.LOGIN_DENIED): ErrorCategory.AUTHENTICATION,
    int(TransportError.AUTH_ERROR): ErrorCategory.AUTHENTICATION,
}


####################################################################
#
def error_category(code: Union[TransportError, int]) -> ErrorCategory:
    """
    Classify a transport error code. Unknown codes are protocol errors.
    """
    return ERROR_CATEGORIES.get(int(code), ErrorCategory.PROTOCOL)


####################################################################
#
def describe_error(code: Union[TransportError, int]) -> str:
    """
    Human readable text for a transport error code, even for codes we do
    not have a symbol for.
    """
    try:
        return TransportError(code).description
    except ValueError:
        return f"Unknown error ({int(code)})"
