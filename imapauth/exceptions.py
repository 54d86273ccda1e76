#!/usr/bin/env python
#
"""
Exceptions that need to be generally available to many modules are kept in
this module to avoid circular dependencies.

NOTE: Failures talking to the IMAP server are never raised out of the
      authenticator. They are returned as `imapauth.outcome` values. Only the
      resolver's policy rejection and configuration problems are exceptions.
"""


############################################################################
#
# Our authentication system has its own set of exceptions.
#
class AuthenticationException(Exception):
    def __init__(self, value="authentication exception"):
        self.value = value

    def __str__(self):
        return str(self.value)


############################################################################
#
class DomainMismatch(AuthenticationException):
    """
    The username does not belong to the domain we are restricted to. No
    attempt was made to contact the IMAP server.
    """

    ####################################################################
    #
    def __init__(self, value="domain mismatch", uid=None, domain=None):
        self.value = value
        self.uid = uid
        self.domain = domain


############################################################################
#
class ConfigurationError(AuthenticationException):
    """
    Raised when the authenticator is constructed with settings that can not
    possibly work (no host, a port out of range, an unknown TLS mode.) This
    is fatal: there is nothing a caller can do at authentication time.
    """

    pass
