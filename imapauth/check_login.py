#!/usr/bin/env python
#
"""
Check a username and password against an IMAP server, the same way a host
using the imapauth authenticator would.

If the `password` is not supplied it is prompted for.

Only "OK" or "Authentication denied" is printed. Why an attempt failed is
written to the log. Use `--debug` to see every step.

NOTE: For all command line options that can also be specified via an env. var:
      the command line option will override the env. var if set. Env. vars
      may also be set in a `.env` file.

Usage:
  imapauth check [--host=<host>] [--port=<port>] [--ssl-mode=<mode>]
                 [--domain=<domain>] [--keep-domain] [--group-domain]
                 [--timeout=<timeout>] [--userfile=<userfile>] [--store]
                 [--debug] [--json-logs] [--log-config=<lc>]
                 <username> [<password>]
  imapauth users [--userfile=<userfile>]
  imapauth -h | --help
  imapauth --version

Options:
  --version
  -h, --help             Show this text and exit
  --host=<host>          The IMAP server. The env. var is `IMAP_HOST`
  --port=<port>          The IMAP server port. Defaults to 143.
                         The env. var is `IMAP_PORT`
  --ssl-mode=<mode>      One of `none`, `ssl` (TLS from the start, imaps://)
                         or `tls` (STARTTLS). Defaults to `none`.
                         The env. var is `IMAP_SSL_MODE`
  --domain=<domain>      Only accept usernames in this domain. A username
                         without a domain has this domain appended.
                         The env. var is `IMAP_DOMAIN`
  --keep-domain          Do not strip the domain from the user id when it
                         matched `--domain`. The env. var is `IMAP_STRIP_DOMAIN`
  --group-domain         Put users in a group named after their domain.
                         The env. var is `IMAP_GROUP_DOMAIN`
  --timeout=<timeout>    Seconds to wait for the server. Defaults to 10.
                         The env. var is `IMAP_TIMEOUT`
  --userfile=<userfile>  The file that successfully authenticated users are
                         recorded in (with `--store`.) The env. var is
                         `USER_FILE`. Defaults to `/var/db/imapauth_users.txt`
  --store                Record the user in the user file if they authenticate
  --debug                Set the logging level to `DEBUG`. The env. var is
                         `DEBUG`
  --json-logs            Write log records as JSON objects
  --log-config=<lc>      The log config file. This file may be either a JSON
                         file that follows the python logging configuration
                         dictionary schema or a file that conforms to the
                         python logging configuration file format. The env.
                         var is `LOG_CONFIG`
"""

# system imports
#
import asyncio
import getpass
import logging
import os
import sys
from typing import Optional

# 3rd party imports
#
import sentry_sdk
from docopt import docopt
from sentry_sdk.integrations.asyncio import AsyncioIntegration

# imapauth imports
#
from imapauth import __version__ as VERSION
from imapauth.auth import IMAPAuthenticator
from imapauth.config import Settings
from imapauth.exceptions import ConfigurationError
from imapauth.user_store import FileUserStore, read_users_from_file
from imapauth.utils import setup_logging

logger = logging.getLogger("imapauth.check_login")

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_CONFIG = 2


####################################################################
#
async def list_users(user_file) -> None:
    users = await read_users_from_file(user_file)
    for uid in sorted(users.keys()):
        print(f"{uid}: {', '.join(sorted(users[uid]))}")


####################################################################
#
def init_sentry(debug: bool) -> None:
    """
    Report errors to sentry if SENTRY_DSN is set in the environment.
    """
    if "SENTRY_DSN" not in os.environ:
        logger.debug("Not initializing sentry_sdk: SENTRY_DSN not in environment")
        return

    traces_sample_rate = float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", 0.1))
    logger.debug("Initializing sentry_sdk")
    sentry_sdk.init(
        dsn=os.environ["SENTRY_DSN"],
        traces_sample_rate=traces_sample_rate,
        integrations=[
            AsyncioIntegration(),
        ],
        environment="devel" if debug else "production",
    )


####################################################################
#
def check(settings: Settings, username: str, password: str, store: bool) -> int:
    """
    Authenticate the user and print the result. Returns the exit status.
    """
    user_store = FileUserStore(settings.user_file) if store else None
    authenticator = IMAPAuthenticator.from_settings(
        settings, user_store=user_store
    )
    outcome = authenticator.authenticate(username, password)
    if not outcome:
        print("Authentication denied")
        return EXIT_DENIED

    print(f"OK {outcome.uid}")
    if outcome.groups:
        print(f"groups: {', '.join(sorted(outcome.groups))}")
    return EXIT_OK


#############################################################################
#
def main(argv: Optional[list] = None) -> int:
    """ """
    args = docopt(__doc__, argv=argv, version=VERSION)

    try:
        settings = Settings.from_args(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if args["users"]:
        asyncio.run(list_users(settings.user_file))
        return EXIT_OK

    setup_logging(settings.log_config, settings.debug, args["--json-logs"])
    init_sentry(settings.debug)

    password: Optional[str] = args["<password>"]
    if password is None:
        password = getpass.getpass("Password: ")

    try:
        return check(settings, args["<username>"], password, args["--store"])
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


############################################################################
############################################################################
#
# Here is where it all starts
#
if __name__ == "__main__":
    sys.exit(main())
#
############################################################################
############################################################################
