"""
Configuration for the authenticator.

Settings come from, in order of precedence: command line options, the
process environment, a `.env` file, and finally our defaults. The settings
object knows how to build the ConnectionConfig and DomainPolicy that the
authenticator is constructed with.
"""

# system imports
#
import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, Optional

# 3rd party imports
#
from dotenv import dotenv_values, find_dotenv

# imapauth imports
#
from imapauth.constants import DEFAULT_PORT, DEFAULT_TIMEOUT
from imapauth.exceptions import ConfigurationError
from imapauth.resolver import DomainPolicy
from imapauth.transport import ConnectionConfig
from imapauth.user_store import USER_FILE_LOCATION

# The env. var each setting is read from.
#
ENV_VARS = {
    "host": "IMAP_HOST",
    "port": "IMAP_PORT",
    "ssl_mode": "IMAP_SSL_MODE",
    "domain": "IMAP_DOMAIN",
    "strip_domain": "IMAP_STRIP_DOMAIN",
    "group_domain": "IMAP_GROUP_DOMAIN",
    "timeout": "IMAP_TIMEOUT",
    "user_file": "USER_FILE",
    "log_config": "LOG_CONFIG",
    "debug": "DEBUG",
}

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off", "")


####################################################################
#
def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in TRUE_VALUES:
        return True
    if v in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Not a boolean value: {value!r}")


####################################################################
#
def _convert(name: str, value: Any, conv: Callable[[Any], Any]) -> Any:
    try:
        return conv(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}")


##################################################################
##################################################################
#
@dataclass
class Settings:
    host: str = ""
    port: int = DEFAULT_PORT
    ssl_mode: str = "none"
    domain: str = ""
    strip_domain: bool = True
    group_domain: bool = False
    timeout: float = DEFAULT_TIMEOUT
    user_file: str = USER_FILE_LOCATION
    log_config: Optional[str] = None
    debug: bool = False

    ####################################################################
    #
    def __post_init__(self):
        self.port = _convert("port", self.port, int)
        self.timeout = _convert("timeout", self.timeout, float)
        self.strip_domain = parse_bool(self.strip_domain)
        self.group_domain = parse_bool(self.group_domain)
        self.debug = parse_bool(self.debug)
        self.domain = (self.domain or "").strip()

    ####################################################################
    #
    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            host=self.host,
            port=self.port,
            tls_mode=self.ssl_mode,
            timeout=self.timeout,
        )

    ####################################################################
    #
    def domain_policy(self) -> DomainPolicy:
        return DomainPolicy(
            required_domain=self.domain,
            strip_domain=self.strip_domain,
            group_domain=self.group_domain,
        )

    ####################################################################
    #
    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, Optional[str]]] = None,
        dotenv_path: Optional[str] = None,
        **overrides,
    ) -> "Settings":
        """
        Build settings from the environment.

        Arguments:
        - `env`: Mapping to read the env. vars from. If not given the `.env`
          file (`dotenv_path`, or the first one found looking up from the
          current directory) is read and then overlaid with
          `os.environ`.
        - `overrides`: Setting values that take precedence over the env.
          Ones that are None are ignored.
        """
        if env is None:
            dotenv_path = dotenv_path or find_dotenv(usecwd=True)
            env = {**dotenv_values(dotenv_path), **os.environ}

        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            env_var = ENV_VARS[f.name]
            if env.get(env_var) is not None:
                kwargs[f.name] = env[env_var]
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    ####################################################################
    #
    @classmethod
    def from_args(
        cls,
        args: Mapping[str, Any],
        env: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "Settings":
        """
        Build settings from the parsed docopt command line, falling back to
        the environment for anything not given on the command line.
        """
        overrides = {
            "host": args.get("--host"),
            "port": args.get("--port"),
            "ssl_mode": args.get("--ssl-mode"),
            "domain": args.get("--domain"),
            "timeout": args.get("--timeout"),
            "user_file": args.get("--userfile"),
            "log_config": args.get("--log-config"),
        }

        # Flags are False when not given which means "use the env."
        #
        if args.get("--keep-domain"):
            overrides["strip_domain"] = False
        if args.get("--group-domain"):
            overrides["group_domain"] = True
        if args.get("--debug"):
            overrides["debug"] = True

        return cls.from_env(env=env, **overrides)
