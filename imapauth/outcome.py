"""
The possible results of an authentication attempt.

Only `Success` is truthy so a host that just wants a yes or no can treat the
outcome as a boolean. The failure outcomes carry enough detail (host, error
code, cause) to log what went wrong. That detail is for the log. It is not
meant to be shown to the person trying to log in.
"""

# system imports
#
from dataclasses import dataclass, field
from typing import ClassVar, FrozenSet, Union

# imapauth imports
#
from imapauth.constants import TransportError, describe_error


##################################################################
##################################################################
#
@dataclass(frozen=True)
class AuthOutcome:
    ok: ClassVar[bool] = False

    def __bool__(self) -> bool:
        return self.ok


##################################################################
##################################################################
#
@dataclass(frozen=True)
class Success(AuthOutcome):
    ok: ClassVar[bool] = True

    uid: str
    groups: FrozenSet[str] = field(default_factory=frozenset)


##################################################################
##################################################################
#
@dataclass(frozen=True)
class Rejected(AuthOutcome):
    """
    Refused by local policy. The IMAP server was never contacted.
    """

    reason: str = "domain mismatch"


##################################################################
##################################################################
#
@dataclass(frozen=True)
class TransportFailure(AuthOutcome):
    """
    Base for the outcomes where we did talk to (or tried to talk to) the
    IMAP server and it did not work out.
    """

    host: str
    code: Union[TransportError, int]
    cause: str = ""

    ####################################################################
    #
    def __post_init__(self):
        # Fill in the standard description if the transport gave us nothing
        # better.
        #
        if not self.cause:
            object.__setattr__(self, "cause", describe_error(self.code))

    ####################################################################
    #
    def __str__(self):
        return f"{self.host}: {int(self.code)} / {self.cause}"


##################################################################
##################################################################
#
class ConnectionFailed(TransportFailure):
    """
    Could not reach the server, the TLS session could not be set up, or it
    timed out.
    """


##################################################################
##################################################################
#
class AuthFailed(TransportFailure):
    """
    The server was reachable and rejected the credentials.
    """


##################################################################
##################################################################
#
class ProtocolError(TransportFailure):
    """
    The server returned some error that is not one of the known
    authentication failures.
    """
