"""Unit tests for configuration resolution from flags, environment and defaults."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from bench_server.bootstrap.config import (
    DEFAULT_MAX_CONNECTIONS,
    SETTINGS,
    Provider,
    ServerConfig,
    load_config,
    parse_cli_args,
    resolve,
)
from bench_server.bootstrap.errors import ConfigError

if TYPE_CHECKING:
    from _pytest.capture import CaptureFixture


@pytest.fixture(name="missing_env_file")
def missing_env_file_fixture(tmp_path: Path) -> list[str]:
    """CLI args pointing the env file somewhere that does not exist."""
    return ["--env-file", str(tmp_path / "absent.env")]


def _setting(name: str):
    return next(setting for setting in SETTINGS if setting.name == name)


def test_parse_cli_args_leaves_unset_flags_empty() -> None:
    """Unset flags must stay None so lower-priority sources can apply."""
    args = parse_cli_args([])

    assert args.key_file is None
    assert args.cert_file is None
    assert args.ip is None
    assert args.http_port is None
    assert args.https_port is None
    assert args.workers is None
    assert args.max_connections is None
    assert args.log_json is None
    assert args.env_file == ".env"


def test_load_config_uses_defaults(missing_env_file: list[str]) -> None:
    """With no flags or environment every documented default applies."""
    config = load_config(missing_env_file, environ={})

    assert config == ServerConfig()
    assert config.ip == "0.0.0.0"
    assert config.http_port == 3000
    assert config.https_port == 0
    assert config.key_file == "key.pem"
    assert config.cert_file == "cert.pem"
    assert config.workers == 0
    assert config.max_connections == 25600
    assert config.tls_enabled is False
    assert config.https_address is None


def test_short_flags_override_defaults(missing_env_file: list[str]) -> None:
    """Every short flag documented for operators maps to its field."""
    argv = [
        "-k", "my-key.pem",
        "-c", "my-cert.pem",
        "-i", "127.0.0.1",
        "-p", "8080",
        "-s", "8443",
        "-w", "4",
        "-m", "100",
        *missing_env_file,
    ]  # fmt: skip
    config = load_config(argv, environ={})

    assert config.key_file == "my-key.pem"
    assert config.cert_file == "my-cert.pem"
    assert config.ip == "127.0.0.1"
    assert config.http_port == 8080
    assert config.https_port == 8443
    assert config.workers == 4
    assert config.max_connections == 100
    assert config.tls_enabled is True
    assert config.http_address == "127.0.0.1:8080"
    assert config.https_address == "127.0.0.1:8443"
    assert config.log_fields()["https_address"] == "127.0.0.1:8443"


def test_environment_overrides_defaults(missing_env_file: list[str]) -> None:
    """Environment variables apply when no flag is given."""
    environ = {
        "KEY_FILE": "env-key.pem",
        "CERT_FILE": "env-cert.pem",
        "SERVER_IP": "10.0.0.1",
        "HTTP_PORT": "8000",
        "HTTPS_PORT": "8001",
        "WORKERS": "3",
        "CONNECTIONS": "50",
        "BENCH_SERVER_LOG_LEVEL": "debug",
        "BENCH_SERVER_LOG_JSON": "false",
    }
    config = load_config(missing_env_file, environ=environ)

    assert config.key_file == "env-key.pem"
    assert config.cert_file == "env-cert.pem"
    assert config.ip == "10.0.0.1"
    assert config.http_port == 8000
    assert config.https_port == 8001
    assert config.workers == 3
    assert config.max_connections == 50
    assert config.log_level == "DEBUG"
    assert config.log_json is False


def test_flags_beat_environment_per_field(missing_env_file: list[str]) -> None:
    """A flag wins for its own field while other fields still read the environment."""
    environ = {"HTTP_PORT": "8000", "SERVER_IP": "10.0.0.1"}
    config = load_config(["-p", "9000", *missing_env_file], environ=environ)

    assert config.http_port == 9000
    assert config.ip == "10.0.0.1"


def test_env_file_is_consulted_after_environment(tmp_path: Path) -> None:
    """Values from the env file apply only where the process environment is silent."""
    env_file = tmp_path / "bench.env"
    env_file.write_text("HTTP_PORT=7000\nWORKERS=6\nSERVER_IP=192.168.1.5\n")

    config = load_config(
        ["-i", "127.0.0.1", "--env-file", str(env_file)],
        environ={"WORKERS": "2"},
    )

    assert config.http_port == 7000
    assert config.workers == 2
    assert config.ip == "127.0.0.1"


def test_empty_environment_value_is_treated_as_unset(
    missing_env_file: list[str],
) -> None:
    """An exported but empty variable falls through to the default."""
    config = load_config(missing_env_file, environ={"HTTPS_PORT": ""})

    assert config.https_port == 0
    assert config.tls_enabled is False


@pytest.mark.parametrize(
    ("argv", "environ", "fragment"),
    [
        (["-p", "http"], {}, "http_port from command line"),
        (["-s", "70000"], {}, "https_port from command line"),
        (["-w", "-1"], {}, "workers from command line"),
        ([], {"CONNECTIONS": "lots"}, "max_connections from environment"),
        ([], {"HTTP_PORT": "3.5"}, "http_port from environment"),
        ([], {"BENCH_SERVER_LOG_LEVEL": "chatty"}, "log_level from environment"),
    ],
)
def test_invalid_numbers_raise_config_error(
    argv: list[str],
    environ: dict[str, str],
    fragment: str,
    missing_env_file: list[str],
) -> None:
    """Parse failures are fatal and name both the field and its source."""
    with pytest.raises(ConfigError) as excinfo:
        load_config([*argv, *missing_env_file], environ=environ)

    assert fragment in str(excinfo.value)


def test_invalid_env_file_value_names_the_file(tmp_path: Path) -> None:
    """Errors from the env file point at the file that supplied the value."""
    env_file = tmp_path / "broken.env"
    env_file.write_text("WORKERS=many\n")

    with pytest.raises(ConfigError, match="broken.env"):
        load_config(["--env-file", str(env_file)], environ={})


def test_resolve_tries_providers_in_order() -> None:
    """The first provider returning a value wins; later ones are not parsed."""
    calls: list[str] = []

    def recording(label: str, value):
        def lookup(_setting):
            calls.append(label)
            return value

        return Provider(label, lookup)

    port = _setting("http_port")
    providers = [
        recording("first", None),
        recording("second", "81"),
        recording("third", "bad"),
    ]

    assert resolve(port, providers) == 81
    assert calls == ["first", "second"]


def test_resolve_falls_back_to_default() -> None:
    """No provider value means the setting default."""
    assert resolve(_setting("max_connections"), []) == DEFAULT_MAX_CONNECTIONS


def test_log_json_flag_is_boolean(missing_env_file: list[str]) -> None:
    """The --no-log-json flag beats a truthy environment value."""
    config = load_config(
        ["--no-log-json", *missing_env_file], environ={"BENCH_SERVER_LOG_JSON": "1"}
    )

    assert config.log_json is False


def test_zero_capacity_settings_map_to_platform_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Zero workers or connections never reach the runtime as zero capacity."""
    monkeypatch.setattr("bench_server.bootstrap.config.os.cpu_count", lambda: 12)
    config = ServerConfig(workers=0, max_connections=0)

    assert config.effective_workers == 12
    assert config.effective_max_connections == DEFAULT_MAX_CONNECTIONS


def test_explicit_capacity_settings_are_used() -> None:
    config = ServerConfig(workers=3, max_connections=7)

    assert config.effective_workers == 3
    assert config.effective_max_connections == 7


def test_unknown_cpu_count_still_gives_one_worker(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("bench_server.bootstrap.config.os.cpu_count", lambda: None)

    assert ServerConfig().effective_workers == 1


def test_version_flag_prints_version(capsys: "CaptureFixture[str]") -> None:
    with pytest.raises(SystemExit) as excinfo:
        parse_cli_args(["--version"])

    assert excinfo.value.code == 0
    assert "1.0.0" in capsys.readouterr().out


def test_config_is_immutable() -> None:
    config = ServerConfig()

    with pytest.raises(AttributeError):
        config.http_port = 1  # type: ignore[misc]
