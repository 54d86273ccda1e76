"""
Turn the username a client submitted into the address we log in to the IMAP
server with, the user id we hand back to our caller, and any groups the user
belongs to by virtue of their mail domain.

There is no I/O here. A username that does not satisfy the domain policy
raises `DomainMismatch` before anyone goes near the network.
"""

# system imports
#
from dataclasses import dataclass, field
from typing import FrozenSet

# imapauth imports
#
from imapauth.exceptions import DomainMismatch

# Some transports hand us the address with the '@' url encoded.
#
ESCAPED_AT = "%40"


##################################################################
##################################################################
#
@dataclass(frozen=True)
class DomainPolicy:
    """
    Restricts logins to a single mail domain.

    - `required_domain`: If not empty only usernames in this domain (or with
      no domain at all, in which case this domain is appended) are accepted.
    - `strip_domain`: Remove the domain from the user id we return when the
      username matched `required_domain`.
    - `group_domain`: Put the user in a group named after the domain part of
      the username.
    """

    required_domain: str = ""
    strip_domain: bool = True
    group_domain: bool = False


##################################################################
##################################################################
#
@dataclass(frozen=True)
class ResolvedIdentity:
    """
    `login_address` is what is sent to the IMAP server. `stored_uid` is what
    the rest of the system knows this user as. They differ when the domain
    was appended or stripped.
    """

    login_address: str
    stored_uid: str
    groups: FrozenSet[str] = field(default_factory=frozenset)


####################################################################
#
def unescape_uid(uid: str) -> str:
    """
    Replace url encoded '@'s with real ones, but only if there is no '@' in
    the uid already. An address that already has an '@' may legitimately
    contain '%40' in it and we must not decode it a second time.
    """
    if "@" not in uid and ESCAPED_AT in uid:
        return uid.replace(ESCAPED_AT, "@")
    return uid


####################################################################
#
def resolve(raw_uid: str, policy: DomainPolicy) -> ResolvedIdentity:
    """
    Apply the domain policy to the submitted username.

    Arguments:
    - `raw_uid`: The username as the client sent it.
    - `policy`: The DomainPolicy to apply.

    Raises DomainMismatch if a required domain is set and the username is in
    some other domain (or has more than one '@' in it.)
    """
    uid = unescape_uid(raw_uid)
    pieces = uid.split("@")

    if policy.required_domain:
        if len(pieces) == 1:
            login_address = f"{uid}@{policy.required_domain}"
            stored_uid = uid
        elif len(pieces) == 2 and pieces[1] == policy.required_domain:
            login_address = uid
            stored_uid = pieces[0] if policy.strip_domain else uid
        else:
            raise DomainMismatch(
                f"wrong domain, expecting: {policy.required_domain}",
                uid=uid,
                domain=policy.required_domain,
            )
    else:
        # NOTE: With no required domain we pass the uid along as-is, even if
        #       it has more than one '@' in it.
        #
        login_address = uid
        stored_uid = uid

    # The group is whatever is between the first '@' and the next one (if
    # any) whether or not it matched the required domain.
    #
    groups: FrozenSet[str] = frozenset()
    if len(pieces) > 1 and policy.group_domain and pieces[1]:
        groups = frozenset([pieces[1]])

    return ResolvedIdentity(
        login_address=login_address,
        stored_uid=stored_uid.lower(),
        groups=groups,
    )
