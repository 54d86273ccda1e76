"""
Where users that have successfully authenticated are recorded, along with
the groups they were put in.

The authenticator only needs something with a `store_user(uid, groups)`
method. Two are provided here: one that keeps everything in memory and one
that keeps a user file on disk.
"""

# system imports
#
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Protocol, Set

# 3rd party imports
#
import aiofiles

if TYPE_CHECKING:
    from _typeshed import StrPath

logger = logging.getLogger("imapauth.user_store")

# This is the default location for the user file. It can be changed with the
# `--userfile` command line option or the USER_FILE env. var.
#
# This file is a text file of the format:
#    <uid>:<group>,<group>,...
#
# Lines beginning with "#" are comments. Whitespace is stripped from each
# element. A user in no groups has nothing after the ':'.
#
USER_FILE_LOCATION = "/var/db/imapauth_users.txt"


##################################################################
##################################################################
#
class UserStore(Protocol):
    def store_user(self, uid: str, groups: Iterable[str]) -> None: ...


##################################################################
##################################################################
#
class MemoryUserStore:
    """
    Keeps users and their groups in a dict. Groups accumulate: storing a user
    again adds to the groups they are already in.
    """

    ##################################################################
    #
    def __init__(self):
        self.users: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    ####################################################################
    #
    def store_user(self, uid: str, groups: Iterable[str]) -> None:
        with self._lock:
            self.users.setdefault(uid, set()).update(groups)


####################################################################
#
def parse_user_line(line: str):
    """
    Returns (uid, set of groups) for a line from the user file, or None if
    the line is blank or a comment. Raises ValueError for a malformed line.
    """
    line = line.strip()
    if not line or line[0] == "#":
        return None
    # Groups never contain a ':' but a uid may.
    #
    uid, groups = [x.strip() for x in line.rsplit(":", 1)]
    if not uid:
        raise ValueError("empty uid")
    return uid, {g.strip() for g in groups.split(",") if g.strip()}


####################################################################
#
def check_uid(uid: str) -> None:
    """
    Raises ValueError if `uid` can not be written to the user file and read
    back as the same uid.
    """
    if not uid:
        raise ValueError("empty uid")
    if uid != uid.strip() or uid[0] == "#" or "\n" in uid or "\r" in uid:
        raise ValueError(f"uid {uid!r} can not be stored in the user file")


####################################################################
#
def check_group(group: str) -> None:
    """
    Raises ValueError if `group` can not be written to the user file and
    read back as the same group.
    """
    if not group or group != group.strip() or any(c in group for c in ":,\r\n"):
        raise ValueError(f"group {group!r} can not be stored in the user file")


####################################################################
#
def read_users(user_file: "StrPath") -> Dict[str, Set[str]]:
    """
    Read the user file in to a dict of uid to groups. A file that does not
    exist has no users in it.
    """
    user_file = Path(user_file)
    users: Dict[str, Set[str]] = {}
    if not user_file.exists():
        return users
    with user_file.open("r") as f:
        for line in f:
            _add_user_record(users, line)
    return users


####################################################################
#
async def read_users_from_file(user_file: "StrPath") -> Dict[str, Set[str]]:
    """
    `read_users()` for asyncio callers.
    """
    user_file = Path(user_file)
    users: Dict[str, Set[str]] = {}
    if not user_file.exists():
        return users
    async with aiofiles.open(str(user_file), "r") as f:
        async for line in f:
            _add_user_record(users, line)
    return users


####################################################################
#
def _add_user_record(users: Dict[str, Set[str]], line: str) -> None:
    try:
        record = parse_user_line(line)
    except ValueError as exc:
        logger.error("Unable to unpack user record %r: %s", line.strip(), exc)
        return
    if record is None:
        return
    uid, groups = record
    users.setdefault(uid, set()).update(groups)


####################################################################
#
def write_user_file(user_file: "StrPath", users: Dict[str, Set[str]]) -> None:
    """
    Write all of the users in `users` to the user file. We write to a new
    file and rename it over the old one so readers never see a partially
    written file.
    """
    user_file = Path(user_file)
    new_user_file = user_file.with_suffix(".new")
    with new_user_file.open("w") as f:
        f.write(f"# File generated by imapauth at {datetime.now()}\n")
        for uid in sorted(users.keys()):
            groups = ",".join(sorted(users[uid]))
            f.write(f"{uid}:{groups}\n")
    new_user_file.rename(user_file)


##################################################################
##################################################################
#
class FileUserStore:
    """
    Records users in a user file. The groups a user is stored with are added
    to whatever groups the file already has for them.
    """

    ##################################################################
    #
    def __init__(self, user_file: "StrPath" = USER_FILE_LOCATION):
        self.user_file = Path(user_file)

        # Serializes the read-modify-write of the file between threads in
        # this process.
        #
        self._lock = threading.Lock()

    ##################################################################
    #
    def __str__(self):
        return str(self.user_file)

    ####################################################################
    #
    def store_user(self, uid: str, groups: Iterable[str]) -> None:
        """
        Raises ValueError for a uid or group that the user file can not
        hold. Nothing is written in that case.
        """
        check_uid(uid)
        groups = set(groups)
        for group in groups:
            check_group(group)
        with self._lock:
            users = read_users(self.user_file)
            existing = users.get(uid)
            if existing is not None and groups <= existing:
                return
            users.setdefault(uid, set()).update(groups)
            logger.info("Storing user '%s' in %s", uid, self.user_file)
            write_user_file(self.user_file, users)
