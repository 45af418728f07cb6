"""Unit tests for listener descriptors and binding."""

import logging
import socket
import ssl
from unittest.mock import patch

import pytest

from bench_server.bootstrap.config import ServerConfig
from bench_server.bootstrap.errors import BindError, TlsMaterialError
from bench_server.bootstrap.socket_factory import (
    ListenerSpec,
    bind_listeners,
    build_listener_specs,
    create_listener_socket,
    prepare_tls_context,
)
from bench_server.transport.server import BenchServer
from tests.utils.certs import write_cert_pair

HOST = "127.0.0.1"


def test_plaintext_only_config_builds_one_spec():
    specs = build_listener_specs(ServerConfig(ip=HOST, http_port=8080))

    assert specs == [ListenerSpec("http", HOST, 8080)]
    assert not specs[0].tls


def test_tls_config_builds_http_then_https():
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    config = ServerConfig(ip=HOST, http_port=8080, https_port=8443)

    specs = build_listener_specs(config, context)

    assert [spec.name for spec in specs] == ["http", "https"]
    assert specs[1].port == 8443
    assert specs[1].tls_context is context


def test_tls_spec_requires_a_context():
    with pytest.raises(ValueError):
        build_listener_specs(ServerConfig(https_port=8443))


def test_disabled_tls_reads_no_files():
    """With no HTTPS port the certificate and key are never opened."""
    config = ServerConfig(https_port=0, cert_file="/missing/cert.pem")

    with patch("bench_server.bootstrap.socket_factory.load_tls_material") as loader:
        assert prepare_tls_context(config) is None

    loader.assert_not_called()


def test_enabled_tls_builds_context(tmp_path):
    pair = write_cert_pair(tmp_path)
    config = ServerConfig(
        https_port=8443, cert_file=str(pair.cert_file), key_file=str(pair.key_file)
    )

    context = prepare_tls_context(config)

    assert isinstance(context, ssl.SSLContext)


def test_create_listener_socket_binds_ephemeral_port():
    sock = create_listener_socket(ListenerSpec("http", HOST, 0))
    try:
        host, port = sock.getsockname()
        assert host == HOST
        assert port > 0
        assert sock.gettimeout() is not None
    finally:
        sock.close()


def test_bind_conflict_raises_bind_error():
    with socket.create_server((HOST, 0)) as occupied:
        port = occupied.getsockname()[1]
        with pytest.raises(BindError, match=f"http listener on {HOST}:{port}"):
            create_listener_socket(ListenerSpec("http", HOST, port))


def test_bind_failure_closes_earlier_listeners(caplog):
    """A failing second bind must not leave the first socket open."""
    caplog.set_level(logging.INFO, logger="bench_server")
    with socket.create_server((HOST, 0)) as occupied:
        taken = occupied.getsockname()[1]
        created = []

        real_create = create_listener_socket

        def tracking_create(spec, backlog):
            sock = real_create(spec, backlog)
            created.append(sock)
            return sock

        with patch(
            "bench_server.bootstrap.socket_factory.create_listener_socket",
            side_effect=tracking_create,
        ):
            with pytest.raises(BindError):
                bind_listeners(
                    [ListenerSpec("http", HOST, 0), ListenerSpec("https", HOST, taken)]
                )

    assert len(created) == 1
    assert created[0].fileno() == -1
    bound = [r for r in caplog.records if getattr(r, "event", None) == "listener_bound"]
    assert [r.listener for r in bound] == ["http"]


def test_server_bind_fails_on_tls_before_any_socket(tmp_path):
    """Bad TLS material aborts startup before the plaintext port is bound."""
    config = ServerConfig(
        ip=HOST,
        http_port=0,
        https_port=1,
        cert_file=str(tmp_path / "missing-cert.pem"),
        key_file=str(tmp_path / "missing-key.pem"),
    )
    server = BenchServer(config)

    with patch("bench_server.bootstrap.socket_factory.socket.create_server") as create:
        with pytest.raises(TlsMaterialError):
            server.bind()

    create.assert_not_called()
    assert server.listeners == []
