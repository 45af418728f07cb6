"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator, TypedDict

import pytest

from tests.utils.certs import CertPair, write_cert_pair
from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"
HOST = "127.0.0.1"

CONFIG_ENV_KEYS = {
    "KEY_FILE",
    "CERT_FILE",
    "SERVER_IP",
    "HTTP_PORT",
    "HTTPS_PORT",
    "WORKERS",
    "CONNECTIONS",
    "BENCH_SERVER_LOG_LEVEL",
    "BENCH_SERVER_LOG_DESTINATION",
    "BENCH_SERVER_LOG_JSON",
    "BENCH_SERVER_SOCKET_TIMEOUT",
    "BENCH_SERVER_SHUTDOWN_GRACE_SECONDS",
    "BENCH_SERVER_MAX_BODY_BYTES",
}


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    https_port: int
    process: subprocess.Popen[str]
    log_file: Path


def server_environment(**overrides: str) -> dict[str, str]:
    """The current environment without any server settings, plus ``overrides``."""
    env = {
        key: value for key, value in os.environ.items() if key not in CONFIG_ENV_KEYS
    }
    env.update(overrides)
    return env


def server_command(
    port: int, log_file: Path, extra_args: list[str] | None = None
) -> list[str]:
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "-i",
        HOST,
        "-p",
        str(port),
        "--log-destination",
        str(log_file),
        "--env-file",
        str(log_file.with_suffix(".env")),
    ]
    if extra_args:
        args.extend(extra_args)
    return args


def _launch_server(
    port: int,
    log_file: Path,
    extra_args: list[str] | None = None,
    https_port: int = 0,
) -> Generator[ServerProcessInfo, None, None]:
    args = server_command(port, log_file, extra_args)
    if https_port:
        args.extend(["-s", str(https_port)])

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        env=server_environment(),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(HOST, port)
            if https_port:
                wait_for_port(HOST, https_port)
        except Exception:
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            if log_file.exists():
                print(f"\nServer log:\n{log_file.read_text()}")
            raise

        yield {
            "base_url": f"http://{HOST}:{port}",
            "host": HOST,
            "port": port,
            "https_port": https_port,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(scope="session", name="cert_pair")
def _cert_pair(tmp_path_factory: "TempPathFactory") -> CertPair:
    """A self-signed certificate and PKCS#8 key shared by the whole session."""

    return write_cert_pair(tmp_path_factory.mktemp("tls"))


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the plaintext server in a background process for integration tests."""

    directory = tmp_path_factory.mktemp("server")
    yield from _launch_server(
        reserve_port(HOST),
        directory / "server.log",
        ["--shutdown-grace-seconds", "2"],
    )


@pytest.fixture(name="limited_server_process")
def _limited_server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch a server with one connection slot and a 64 byte body cap."""

    directory = tmp_path_factory.mktemp("server-limited")
    yield from _launch_server(
        reserve_port(HOST),
        directory / "server.log",
        ["-m", "1", "--max-body-bytes", "64", "--socket-timeout", "5"],
    )


@pytest.fixture(name="https_server_process")
def _https_server_process(
    tmp_path_factory: "TempPathFactory", cert_pair: CertPair
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the server with both plaintext and TLS listeners."""

    directory = tmp_path_factory.mktemp("server-tls")
    tls_args = ["-c", str(cert_pair.cert_file), "-k", str(cert_pair.key_file)]
    yield from _launch_server(
        reserve_port(HOST),
        directory / "server.log",
        tls_args,
        https_port=reserve_port(HOST),
    )


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
