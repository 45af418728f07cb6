"""Server configuration: CLI flags, environment, .env file and defaults."""

import argparse
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from dotenv import dotenv_values

from bench_server.bootstrap.errors import ConfigError

VERSION = "1.0.0"

DEFAULT_IP = "0.0.0.0"
DEFAULT_HTTP_PORT = 3000
DEFAULT_HTTPS_PORT = 0
DEFAULT_KEY_FILE = "key.pem"
DEFAULT_CERT_FILE = "cert.pem"
DEFAULT_WORKERS = 0
DEFAULT_MAX_CONNECTIONS = 25 * 1024
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_DESTINATION = "stdout"
DEFAULT_LOG_JSON = True
DEFAULT_SOCKET_TIMEOUT = 60
DEFAULT_SHUTDOWN_GRACE_SECONDS = 30
DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024
DEFAULT_ENV_FILE = ".env"
DEFAULT_BACKLOG = 2048

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

HEADER_DELIMITER = b"\r\n\r\n"

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
    "X-Content-Type-Options": "nosniff",
}


def _port(raw: str) -> int:
    value = int(raw)
    if not 0 <= value <= 65535:
        raise ValueError("port must be between 0 and 65535")
    return value


def _non_negative(raw: str) -> int:
    value = int(raw)
    if value < 0:
        raise ValueError("must not be negative")
    return value


def _boolean(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError("expected a boolean such as true or false")


def _log_level(raw: str) -> str:
    level = raw.strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"expected one of {', '.join(LOG_LEVELS)}")
    return level


@dataclass(frozen=True)
class Setting:
    """A configurable field with its environment key, default and parser."""

    name: str
    env: Optional[str]
    default: Any
    parse: Callable[[str], Any] = str


SETTINGS: tuple[Setting, ...] = (
    Setting("key_file", "KEY_FILE", DEFAULT_KEY_FILE),
    Setting("cert_file", "CERT_FILE", DEFAULT_CERT_FILE),
    Setting("ip", "SERVER_IP", DEFAULT_IP),
    Setting("http_port", "HTTP_PORT", DEFAULT_HTTP_PORT, _port),
    Setting("https_port", "HTTPS_PORT", DEFAULT_HTTPS_PORT, _port),
    Setting("workers", "WORKERS", DEFAULT_WORKERS, _non_negative),
    Setting("max_connections", "CONNECTIONS", DEFAULT_MAX_CONNECTIONS, _non_negative),
    Setting("log_level", "BENCH_SERVER_LOG_LEVEL", DEFAULT_LOG_LEVEL, _log_level),
    Setting("log_destination", "BENCH_SERVER_LOG_DESTINATION", DEFAULT_LOG_DESTINATION),
    Setting("log_json", "BENCH_SERVER_LOG_JSON", DEFAULT_LOG_JSON, _boolean),
    Setting(
        "socket_timeout",
        "BENCH_SERVER_SOCKET_TIMEOUT",
        DEFAULT_SOCKET_TIMEOUT,
        _non_negative,
    ),
    Setting(
        "shutdown_grace_seconds",
        "BENCH_SERVER_SHUTDOWN_GRACE_SECONDS",
        DEFAULT_SHUTDOWN_GRACE_SECONDS,
        _non_negative,
    ),
    Setting(
        "max_body_bytes",
        "BENCH_SERVER_MAX_BODY_BYTES",
        DEFAULT_MAX_BODY_BYTES,
        _non_negative,
    ),
)


@dataclass(frozen=True)
class Provider:
    """One configuration source consulted by ``resolve`` in priority order."""

    label: str
    lookup: Callable[[Setting], Any]


def cli_provider(args: argparse.Namespace) -> Provider:
    """Values given explicitly on the command line."""
    return Provider("command line", lambda setting: getattr(args, setting.name, None))


def environment_provider(environ: Mapping[str, str]) -> Provider:
    """Values exported in the process environment."""
    return Provider(
        "environment",
        lambda setting: environ.get(setting.env) if setting.env else None,
    )


def env_file_provider(path: str) -> Provider:
    """Values from a dotenv file; a missing file contributes nothing."""
    values = dotenv_values(path)
    return Provider(
        f"env file {path}",
        lambda setting: values.get(setting.env) if setting.env else None,
    )


def resolve(setting: Setting, providers: Sequence[Provider]) -> Any:
    """Return the first value any provider supplies, falling back to the default.

    Raises:
        ConfigError: The winning raw value does not parse as the setting's type.
    """
    for provider in providers:
        raw = provider.lookup(setting)
        if raw is None or raw == "":
            continue
        if not isinstance(raw, str):
            return raw
        try:
            return setting.parse(raw)
        except ValueError as exc:
            raise ConfigError(
                f"Invalid value {raw!r} for {setting.name} from {provider.label}: {exc}"
            ) from exc
    return setting.default


@dataclass(frozen=True)
class ServerConfig:
    """Fully resolved runtime configuration, immutable once built."""

    ip: str = DEFAULT_IP
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = DEFAULT_HTTPS_PORT
    workers: int = DEFAULT_WORKERS
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    key_file: str = DEFAULT_KEY_FILE
    cert_file: str = DEFAULT_CERT_FILE
    log_level: str = DEFAULT_LOG_LEVEL
    log_destination: str = DEFAULT_LOG_DESTINATION
    log_json: bool = DEFAULT_LOG_JSON
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: int = DEFAULT_SHUTDOWN_GRACE_SECONDS
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    @property
    def tls_enabled(self) -> bool:
        return self.https_port != 0

    @property
    def effective_workers(self) -> int:
        """Worker threads to start; 0 means one per available core."""
        return self.workers or os.cpu_count() or 1

    @property
    def effective_max_connections(self) -> int:
        """Connection cap to enforce; 0 means the built-in default."""
        return self.max_connections or DEFAULT_MAX_CONNECTIONS

    @property
    def http_address(self) -> str:
        return f"{self.ip}:{self.http_port}"

    @property
    def https_address(self) -> Optional[str]:
        return f"{self.ip}:{self.https_port}" if self.tls_enabled else None

    def log_fields(self) -> dict[str, Any]:
        """Return the settings worth reporting in the startup log line."""
        return {
            "host": self.ip,
            "port": self.http_port,
            "https_port": self.https_port,
            "http_address": self.http_address,
            "https_address": self.https_address,
            "tls": self.tls_enabled,
            "workers": self.effective_workers,
            "max_connections": self.effective_max_connections,
            "log_level": self.log_level,
            "log_destination": self.log_destination,
            "socket_timeout": self.socket_timeout,
            "shutdown_grace_seconds": self.shutdown_grace_seconds,
        }


def parse_cli_args(argv: Sequence[str]) -> argparse.Namespace:
    """Return parsed CLI arguments; unset flags stay ``None``."""
    parser = argparse.ArgumentParser(
        prog="bench_server",
        description="A simple HTTP(S) server for benchmarking",
    )
    parser.add_argument(
        "-k",
        "--key",
        dest="key_file",
        help=f"Private key file, default {DEFAULT_KEY_FILE}, env key: KEY_FILE",
    )
    parser.add_argument(
        "-c",
        "--cert",
        dest="cert_file",
        help=f"Certificate chain file, default {DEFAULT_CERT_FILE}, env key: CERT_FILE",
    )
    parser.add_argument(
        "-i",
        "--ip",
        dest="ip",
        help=f"Server bind ip, default {DEFAULT_IP}, env key: SERVER_IP",
    )
    parser.add_argument(
        "-p",
        "--port",
        dest="http_port",
        metavar="HTTP_PORT",
        help=f"Http server port, default {DEFAULT_HTTP_PORT}, env key: HTTP_PORT",
    )
    parser.add_argument(
        "-s",
        "--https-port",
        dest="https_port",
        metavar="HTTPS_PORT",
        help="Enable and specify the https server port, env key: HTTPS_PORT",
    )
    parser.add_argument(
        "-w",
        "--workers",
        dest="workers",
        help="Workers, default cpu core number, env key: WORKERS",
    )
    parser.add_argument(
        "-m",
        "--max-connections",
        dest="max_connections",
        help=f"Max connections, default {DEFAULT_MAX_CONNECTIONS}, env key: CONNECTIONS",
    )
    parser.add_argument(
        "--log-level",
        help=f"One of {', '.join(LOG_LEVELS)}, env key: BENCH_SERVER_LOG_LEVEL",
    )
    parser.add_argument(
        "--log-destination",
        help="stdout or a file path, env key: BENCH_SERVER_LOG_DESTINATION",
    )
    parser.add_argument(
        "--log-json",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit JSON log lines, env key: BENCH_SERVER_LOG_JSON",
    )
    parser.add_argument(
        "--socket-timeout",
        help="Idle client socket timeout in seconds, "
        "env key: BENCH_SERVER_SOCKET_TIMEOUT",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        help="Seconds to wait for open connections on shutdown, "
        "env key: BENCH_SERVER_SHUTDOWN_GRACE_SECONDS",
    )
    parser.add_argument(
        "--max-body-bytes",
        help="Largest accepted request body, env key: BENCH_SERVER_MAX_BODY_BYTES",
    )
    parser.add_argument(
        "--env-file",
        default=DEFAULT_ENV_FILE,
        help=f"Environment file consulted after the process environment "
        f"(default: {DEFAULT_ENV_FILE})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


def load_config(
    argv: Sequence[str], environ: Optional[Mapping[str, str]] = None
) -> ServerConfig:
    """Resolve every setting from flags, environment, env file and defaults."""
    args = parse_cli_args(argv)
    providers = (
        cli_provider(args),
        environment_provider(os.environ if environ is None else environ),
        env_file_provider(args.env_file),
    )
    values = {setting.name: resolve(setting, providers) for setting in SETTINGS}
    return ServerConfig(**values)
