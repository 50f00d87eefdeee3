import logging
import os
import ssl
import sys
from dataclasses import dataclass
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONNECT_TIMEOUT = 4.0
DEFAULT_CHUNK_SIZE = 4096

_TRUTHY = ('1', 'true', 'yes')


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class ClientConfig:
    """
    Runtime settings for one client invocation.

    tls_server_name is the identity certificates are verified against on both
    channels. When unset, the control connection's host is used.
    """

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    tls_server_name: Optional[str] = None
    ca_file: Optional[str] = None
    strict_auth: bool = False
    eager_data_connect: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            connect_timeout=_env_float('FTPS_CONNECT_TIMEOUT', DEFAULT_CONNECT_TIMEOUT),
            tls_server_name=os.getenv('FTPS_TLS_SERVER_NAME') or None,
            ca_file=os.getenv('FTPS_CA_FILE') or None,
            strict_auth=_env_flag('FTPS_STRICT_AUTH'),
            eager_data_connect=_env_flag('FTPS_EAGER_CONNECT'),
            log_level=os.getenv('FTPS_LOG_LEVEL', 'WARNING').upper(),
        )

    def server_name_for(self, host: str) -> str:
        return self.tls_server_name or host

    def ssl_context(self) -> ssl.SSLContext:
        return ssl.create_default_context(cafile=self.ca_file)


def configure_logging(level: str = "WARNING"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
