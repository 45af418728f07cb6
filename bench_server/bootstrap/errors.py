"""Fatal startup errors raised before the server begins accepting traffic."""


class StartupError(Exception):
    """Base class for errors that abort server startup."""

    event = "startup_failed"


class ConfigError(StartupError):
    """Raised when a configuration value cannot be parsed."""

    event = "config_invalid"


class TlsMaterialError(StartupError):
    """Raised when the certificate chain or private key cannot be used."""

    event = "tls_material_invalid"


class BindError(StartupError):
    """Raised when a listening socket cannot be bound."""

    event = "bind_failed"
