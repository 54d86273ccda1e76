"""
This module defines the authenticator that hosts use to check a username
and password against an IMAP server.

An attempt goes: resolve the username against the domain policy, probe the
IMAP server with the resolved login address, classify the transport result,
and on success record the user with the user store. Every attempt is
independent, nothing is cached or shared between them, so one authenticator
may be used from many threads (or tasks, via `aauthenticate()`) at once.
"""

# system imports
#
import asyncio
import logging
import ssl
from functools import partial
from typing import TYPE_CHECKING, Optional

# imapauth imports
#
from imapauth.constants import (
    APP_NAME,
    ErrorCategory,
    TransportError,
    error_category,
)
from imapauth.exceptions import DomainMismatch
from imapauth.outcome import (
    AuthFailed,
    AuthOutcome,
    ConnectionFailed,
    ProtocolError,
    Rejected,
    Success,
    TransportFailure,
)
from imapauth.resolver import DomainPolicy, resolve
from imapauth.transport import (
    ConnectionConfig,
    IMAPTransport,
    ProbeResult,
    TransportFactory,
)

if TYPE_CHECKING:
    from imapauth.config import Settings
    from imapauth.user_store import UserStore

logger = logging.getLogger("imapauth.auth")

# Which outcome a failed probe turns in to.
#
FAILURE_OUTCOMES = {
    ErrorCategory.CONNECTION: ConnectionFailed,
    ErrorCategory.AUTHENTICATION: AuthFailed,
    ErrorCategory.PROTOCOL: ProtocolError,
}

LOG_MESSAGES = {
    ConnectionFailed: "Could not connect to IMAP server %s: %s / %s",
    AuthFailed: "IMAP login failed on %s: %s / %s",
    ProtocolError: "IMAP server %s returned an error: %s / %s",
}


####################################################################
#
def classify(host: str, result: ProbeResult) -> AuthOutcome:
    """
    Turn a transport result in to a failure outcome. Only meant for results
    that are not OK, `IMAPAuthenticator` builds the `Success` itself since
    only it knows the user id and groups.
    """
    category = error_category(result.code)
    if category is ErrorCategory.SUCCESS:
        raise ValueError("classify() called with a successful probe result")
    try:
        code = TransportError(result.code)
    except ValueError:
        code = int(result.code)
    return FAILURE_OUTCOMES[category](host, code, result.message)


##################################################################
##################################################################
#
class IMAPAuthenticator:
    """
    Authenticate users by logging in to an IMAP server as them.
    """

    ##################################################################
    #
    def __init__(
        self,
        connection: ConnectionConfig,
        policy: Optional[DomainPolicy] = None,
        user_store: Optional["UserStore"] = None,
        log: Optional[logging.Logger] = None,
        app: str = APP_NAME,
        transport_factory: Optional[TransportFactory] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """
        Arguments:
        - `connection`: ConnectionConfig for the IMAP server
        - `policy`: DomainPolicy. Defaults to no domain restriction.
        - `user_store`: Told about every user that authenticates successfully
        - `log`: Logger to write failures to. Defaults to `imapauth.auth`
        - `app`: Tag attached (as `app`) to every log record we emit
        - `transport_factory`: Called with `connection` to get a new transport
          for each attempt. Defaults to IMAPTransport.
        - `ssl_context`: Passed to the default IMAPTransport
        """
        self.connection = connection
        self.policy = policy if policy is not None else DomainPolicy()
        self.user_store = user_store
        self.log = log if log is not None else logger
        self.app = app
        self.transport_factory: TransportFactory = (
            transport_factory
            if transport_factory is not None
            else partial(IMAPTransport, ssl_context=ssl_context)
        )

    ####################################################################
    #
    @classmethod
    def from_settings(
        cls, settings: "Settings", **kwargs
    ) -> "IMAPAuthenticator":
        return cls(settings.connection_config(), settings.domain_policy(), **kwargs)

    ##################################################################
    #
    def __str__(self):
        return f"IMAPAuthenticator({self.connection.url})"

    ####################################################################
    #
    def _error(self, msg: str, *args) -> None:
        self.log.error(msg, *args, extra={"app": self.app})

    ####################################################################
    #
    def probe(self, login_address: str, password: str) -> AuthOutcome:
        """
        Log in to the IMAP server as `login_address` and issue CAPABILITY.

        Returns `Success` (with `login_address` as the uid and no groups) or
        one of the transport failure outcomes. The transport is always closed
        before we return.
        """
        transport = self.transport_factory(self.connection)
        try:
            result = transport.probe(login_address, password)
        finally:
            transport.close()

        if result.ok:
            return Success(login_address)
        return classify(self.connection.host, result)

    ####################################################################
    #
    def authenticate(self, raw_uid: str, password: str) -> AuthOutcome:
        """
        Check the given username and password.

        Returns `Success` with the user id the rest of the system should know
        this user by and the groups they belong to, or one of the failure
        outcomes. Failures are logged here. They are not raised.

        Arguments:
        - `raw_uid`: The username exactly as the client submitted it
        - `password`: The password
        """
        try:
            identity = resolve(raw_uid, self.policy)
        except DomainMismatch:
            self._error(
                "User has a wrong domain! Expecting: %s",
                self.policy.required_domain,
            )
            return Rejected("domain mismatch")

        outcome = self.probe(identity.login_address, password)
        if isinstance(outcome, TransportFailure):
            self._error(
                LOG_MESSAGES[type(outcome)],
                outcome.host,
                int(outcome.code),
                outcome.cause,
            )
            return outcome

        self.log.debug(
            "Authenticated '%s' as '%s' via %s",
            identity.login_address,
            identity.stored_uid,
            self.connection.url,
            extra={"app": self.app},
        )
        self._store_user(identity.stored_uid, identity.groups)
        return Success(identity.stored_uid, identity.groups)

    ####################################################################
    #
    async def aauthenticate(self, raw_uid: str, password: str) -> AuthOutcome:
        """
        `authenticate()` for asyncio callers. The blocking IMAP exchange runs
        in a worker thread so the event loop is not held up.
        """
        return await asyncio.to_thread(self.authenticate, raw_uid, password)

    ####################################################################
    #
    def _store_user(self, uid: str, groups) -> None:
        """
        Record a successfully authenticated user. The user did authenticate,
        so a store that fails is logged but does not change that.
        """
        if self.user_store is None:
            return
        try:
            self.user_store.store_user(uid, groups)
        except Exception:
            self.log.exception(
                "Unable to store user '%s'", uid, extra={"app": self.app}
            )
