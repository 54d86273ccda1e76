"""
The network side of authentication: open one connection to the IMAP server,
log in, issue a single CAPABILITY command, and report how that went as a
`TransportError` code.

We do not implement any of IMAP here. The stdlib `imaplib` client does the
talking, we only watch whether it succeeds and, if it does not, at what
point and with which exception it failed.

A transport is single use. `probe()` is called once and `close()` must be
called exactly once afterwards no matter what `probe()` returned or raised.
"""

# system imports
#
import imaplib
import logging
import re
import socket
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple, Union

# imapauth imports
#
from imapauth.constants import (
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    TLSMode,
    TransportError,
    describe_error,
)
from imapauth.exceptions import ConfigurationError

logger = logging.getLogger("imapauth.transport")

# Pulls the response code out of a tagged NO/BAD response, ie:
#   "[AUTHENTICATIONFAILED] Invalid credentials"
#
RESP_CODE_RE = re.compile(r"\[([A-Z0-9-]+)")


##################################################################
##################################################################
#
@dataclass(frozen=True)
class ConnectionConfig:
    """
    Where the IMAP server is and how to talk to it.

    - `host`: IMAP server name or IP address
    - `port`: IMAP server port, defaults to 143
    - `tls_mode`: TLSMode (or one of "ssl", "tls", "none")
    - `timeout`: seconds, bounds the connect and every command round trip
    """

    host: str
    port: int = DEFAULT_PORT
    tls_mode: TLSMode = TLSMode.NONE
    timeout: float = DEFAULT_TIMEOUT

    ####################################################################
    #
    def __post_init__(self):
        if not self.host or not self.host.strip():
            raise ConfigurationError("IMAP host can not be empty")
        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid port: {self.port!r}")
        if not 1 <= port <= 65535:
            raise ConfigurationError(
                f"Invalid port number: {port}. Must be between 1 and 65535"
            )
        try:
            tls_mode = TLSMode.from_str(self.tls_mode)
        except ValueError:
            raise ConfigurationError(f"Unknown TLS mode: {self.tls_mode!r}")
        try:
            timeout = float(self.timeout)
        except (TypeError, ValueError):
            timeout = 0.0
        if timeout <= 0:
            raise ConfigurationError(
                f"Timeout must be a positive number of seconds, not {self.timeout!r}"
            )
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "tls_mode", tls_mode)
        object.__setattr__(self, "timeout", timeout)

    ####################################################################
    #
    @property
    def url(self) -> str:
        return f"{self.tls_mode.scheme}://{self.host}:{self.port}"


##################################################################
##################################################################
#
@dataclass(frozen=True)
class ProbeResult:
    code: Union[TransportError, int]
    message: str = ""

    @property
    def ok(self) -> bool:
        return int(self.code) == TransportError.OK


##################################################################
##################################################################
#
class Phase(str, Enum):
    """
    Where in the exchange with the server we were when something failed.
    """

    CONNECT = "connect"
    STARTTLS = "starttls"
    LOGIN = "login"
    CAPABILITY = "capability"


# The code reported when the server answers a command with NO or BAD (or
# sends something imaplib does not like) during each phase.
#
IMAP_ERROR_CODES = {
    Phase.CONNECT: TransportError.WEIRD_SERVER_REPLY,
    Phase.STARTTLS: TransportError.USE_SSL_FAILED,
    Phase.LOGIN: TransportError.LOGIN_DENIED,
    Phase.CAPABILITY: TransportError.QUOTE_ERROR,
}

# Response codes (RFC 5530) on a failed LOGIN that mean something more
# specific than "bad username or password".
#
LOGIN_RESP_CODES = {
    "AUTHORIZATIONFAILED": TransportError.REMOTE_ACCESS_DENIED,
    "PRIVACYREQUIRED": TransportError.AUTH_ERROR,
}


##################################################################
##################################################################
#
class Transport(Protocol):
    def probe(self, username: str, password: str) -> ProbeResult: ...

    def close(self) -> None: ...


TransportFactory = Callable[[ConnectionConfig], Transport]


####################################################################
#
def error_code_for(exc: BaseException, phase: Phase) -> TransportError:
    """
    Map an exception raised while talking to the server to a transport
    error code.

    Arguments:
    - `exc`: The exception that was raised
    - `phase`: What we were doing when it was raised
    """
    # NOTE: The order matters. TimeoutError, SSLError, and gaierror are all
    #       OSError's.
    #
    if isinstance(exc, TimeoutError):
        return TransportError.OPERATION_TIMEDOUT
    if isinstance(exc, ssl.SSLError):
        if phase in (Phase.CONNECT, Phase.STARTTLS):
            return TransportError.SSL_CONNECT_ERROR
        return TransportError.RECV_ERROR
    if isinstance(exc, socket.gaierror):
        return TransportError.COULDNT_RESOLVE_HOST
    if isinstance(exc, imaplib.IMAP4.abort):
        return TransportError.RECV_ERROR
    if isinstance(exc, imaplib.IMAP4.error):
        if phase is Phase.LOGIN:
            m = RESP_CODE_RE.search(str(exc))
            if m and m.group(1) in LOGIN_RESP_CODES:
                return LOGIN_RESP_CODES[m.group(1)]
        return IMAP_ERROR_CODES[phase]
    if isinstance(exc, UnicodeError):
        # Credentials that can not be put on the wire are credentials the
        # server never accepted.
        #
        return TransportError.LOGIN_DENIED
    if isinstance(exc, OSError):
        if phase is Phase.CONNECT:
            return TransportError.COULDNT_CONNECT
        return TransportError.RECV_ERROR
    raise ValueError(f"Not a transport exception: {exc!r}")


##################################################################
##################################################################
#
class IMAPTransport:
    """
    One connection to an IMAP server used for exactly one login and
    CAPABILITY exchange.
    """

    ##################################################################
    #
    def __init__(
        self,
        config: ConnectionConfig,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """
        Arguments:
        - `config`: ConnectionConfig for the server
        - `ssl_context`: used for implicit and explicit TLS. If not given a
          default context (which verifies the server certificate) is created.
        """
        self.config = config
        self._ssl_context = ssl_context
        self.imap: Optional[imaplib.IMAP4] = None
        self.capabilities: Tuple[str, ...] = ()

    ##################################################################
    #
    def __str__(self):
        return self.config.url

    ####################################################################
    #
    @property
    def ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = ssl.create_default_context()
        return self._ssl_context

    ####################################################################
    #
    def _open(self) -> imaplib.IMAP4:
        """
        Connect and read the server's greeting.
        """
        cfg = self.config
        if cfg.tls_mode is TLSMode.IMPLICIT:
            return imaplib.IMAP4_SSL(
                host=cfg.host,
                port=cfg.port,
                ssl_context=self.ssl_context,
                timeout=cfg.timeout,
            )
        return imaplib.IMAP4(host=cfg.host, port=cfg.port, timeout=cfg.timeout)

    ####################################################################
    #
    def _login(self, username: str, password: str) -> None:
        """
        LOGIN if the credentials are plain ASCII. imaplib can only send
        ASCII command arguments so anything else goes as UTF-8 via
        AUTHENTICATE PLAIN.
        """
        if username.isascii() and password.isascii():
            self.imap.login(username, password)
            return
        self.imap.authenticate(
            "PLAIN",
            lambda _: f"{username}\x00{username}\x00{password}".encode("utf-8"),
        )

    ####################################################################
    #
    def probe(self, username: str, password: str) -> ProbeResult:
        """
        Connect, upgrade to TLS if asked to, log in with the given
        credentials and issue CAPABILITY. Returns a ProbeResult whose code is
        `TransportError.OK` only if all of that worked.
        """
        phase = Phase.CONNECT
        try:
            logger.debug("Connecting to %s", self)
            self.imap = self._open()

            if self.config.tls_mode is TLSMode.EXPLICIT:
                phase = Phase.STARTTLS
                if "STARTTLS" not in self.imap.capabilities:
                    code = TransportError.USE_SSL_FAILED
                    return ProbeResult(
                        code,
                        f"{describe_error(code)}: server does not support STARTTLS",
                    )
                self.imap.starttls(ssl_context=self.ssl_context)

            phase = Phase.LOGIN
            self._login(username, password)

            phase = Phase.CAPABILITY
            typ, data = self.imap.capability()
        except (OSError, imaplib.IMAP4.error, UnicodeError) as exc:
            code = error_code_for(exc, phase)
            logger.debug(
                "%s: %s failed: %s: %s", self, phase.value, code.name, exc
            )
            return ProbeResult(code, f"{describe_error(code)}: {exc}")

        if typ != "OK":
            code = TransportError.QUOTE_ERROR
            return ProbeResult(
                code, f"{describe_error(code)}: CAPABILITY returned {typ}"
            )

        if data and data[0]:
            self.capabilities = tuple(data[0].decode("ascii", "replace").split())
        logger.debug("%s: capabilities: %s", self, " ".join(self.capabilities))
        return ProbeResult(TransportError.OK)

    ####################################################################
    #
    def close(self) -> None:
        """
        Log out and release the connection. Safe to call if `probe()` never
        managed to connect.
        """
        imap, self.imap = self.imap, None
        if imap is None:
            return
        try:
            imap.logout()
        except (OSError, imaplib.IMAP4.error) as exc:
            # The server may have already dropped us. All that matters is
            # that the socket is closed.
            #
            logger.debug("%s: logout failed: %s", self, exc)
            try:
                imap.shutdown()
            except OSError:
                pass
