"""HTTP(S) benchmark server serving fixed responses on one or two listeners."""

import logging
import signal
import sys
from typing import Optional, Sequence

from bench_server.bootstrap.config import ServerConfig, load_config
from bench_server.bootstrap.errors import StartupError
from bench_server.bootstrap.logging_setup import configure_logging
from bench_server.domain.correlation_id import CorrelationLoggerAdapter
from bench_server.transport.server import BenchServer

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bench_server.main"), {})


def _install_signal_handlers(server: BenchServer) -> None:
    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal", "signal": signal.Signals(signum).name},
        )
        server.shutdown()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)


def _report_startup_failure(error: StartupError) -> None:
    SERVER_LOGGER.critical(
        "Server failed to start",
        extra={
            "event": error.event,
            "error_type": type(error).__name__,
            "error": str(error),
        },
    )


def run(config: ServerConfig) -> int:
    """Bind, serve until a termination signal arrives, and return the exit code."""
    SERVER_LOGGER.info(
        "Starting benchmark server",
        extra={"event": "server_starting", **config.log_fields()},
    )
    server = BenchServer(config)
    try:
        server.bind()
    except StartupError as error:
        _report_startup_failure(error)
        return 1

    _install_signal_handlers(server)
    server.serve_forever()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Resolve configuration, configure logging and run the server."""
    try:
        config = load_config(sys.argv[1:] if argv is None else argv)
    except StartupError as error:
        configure_logging()
        _report_startup_failure(error)
        return 1
    configure_logging(config.log_level, config.log_destination, config.log_json)
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
