"""
Logging setup shared by the command line tool and by hosts that want our
default logging configuration.
"""

# system imports
#
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

# imapauth imports
#
from imapauth.constants import APP_NAME

if TYPE_CHECKING:
    from _typeshed import StrPath

DEFAULT_LOG_CONFIG_FILES = [
    Path("/etc/imapauth_log.json"),
    Path("/etc/imapauth_log.cfg"),
    Path("/usr/local/etc/imapauth_log.json"),
    Path("/usr/local/etc/imapauth_log.cfg"),
    Path("/opt/local/etc/imapauth_log.json"),
    Path("/opt/local/etc/imapauth_log.cfg"),
]


##################################################################
##################################################################
#
class AppTagFilter(logging.Filter):
    """
    The authenticator tags its records with an `app` attribute. Records
    from anywhere else get the default tag so that a format string that
    uses `{app}` works for every record.
    """

    ##################################################################
    #
    def __init__(self, name: str = "", app: str = APP_NAME):
        super().__init__(name)
        self.app = app

    ##################################################################
    #
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "app"):
            record.app = self.app
        return True


####################################################################
#
def _load_log_config(log_config: Path) -> None:
    if log_config.suffix == ".json":
        cfg = json.loads(log_config.read_text())
        logging.config.dictConfig(cfg)
    else:
        logging.config.fileConfig(str(log_config))


####################################################################
#
def default_logging_config(debug: bool, json_logs: bool = False) -> Dict[str, Any]:
    """
    The logging config dict used when no logging config file is found.
    Logs go to stderr. With `json_logs` every record is written as one JSON
    object.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "app_tag": {"()": "imapauth.utils.AppTagFilter"},
        },
        "formatters": {
            "basic": {
                "format": "[{asctime}] {app} {levelname}:{module}.{funcName}: {message}",
                "style": "{",
            },
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(app)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_logs else "basic",
                "filters": ["app_tag"],
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "imapauth": {
                "handlers": ["console"],
                "level": "DEBUG" if debug else "INFO",
                "propagate": True,
            },
        },
    }


####################################################################
#
def setup_logging(
    log_config: Optional["StrPath"],
    debug: bool,
    json_logs: bool = False,
) -> None:
    """
    Set up logging. Use the logging config file passed in if we can load it.
    Otherwise check a bunch of common locations for one. If none of those
    exist use a default config that logs to stderr.

    A logging config file may be either a JSON file following the logging
    config dictionary schema or a file in the logging config file format.
    """
    root_logger = logging.getLogger()
    if debug:
        root_logger.setLevel(logging.DEBUG)

    if log_config is not None:
        log_config = Path(log_config)
        if log_config.exists():
            _load_log_config(log_config)
            return
        print(
            f"WARNING: Logging config '{log_config}' does not exist",
            file=sys.stderr,
        )

    for cfg_file in DEFAULT_LOG_CONFIG_FILES:
        if cfg_file.exists():
            _load_log_config(cfg_file)
            return

    logging.config.dictConfig(default_logging_config(debug, json_logs))
    logger = logging.getLogger("imapauth.utils")
    logger.debug("Logging initialized, debug enabled")
