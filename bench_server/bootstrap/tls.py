"""TLS material loading and server context construction."""

import logging
import re
import ssl
from dataclasses import dataclass
from pathlib import Path

from bench_server.bootstrap.errors import TlsMaterialError
from bench_server.domain.correlation_id import CorrelationLoggerAdapter

TLS_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bench_server.tls"), {})

PEM_BLOCK = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\s+.*?-----END (?P=label)-----",
    re.DOTALL,
)
CERTIFICATE_LABEL = "CERTIFICATE"
# Encrypted keys are skipped: the server has no way to prompt for a passphrase.
PRIVATE_KEY_LABELS = {"PRIVATE KEY", "RSA PRIVATE KEY", "EC PRIVATE KEY"}


@dataclass(frozen=True)
class TlsMaterial:
    """Validated PEM file paths plus what was found in them.

    The context is built from the paths; the counts are for logging.
    """

    cert_file: str
    key_file: str
    chain_length: int
    key_count: int


def _read_pem(path: str, kind: str) -> str:
    try:
        return Path(path).read_text(encoding="ascii")
    except FileNotFoundError as exc:
        raise TlsMaterialError(f"{kind} file not found: {path}") from exc
    except UnicodeDecodeError as exc:
        raise TlsMaterialError(f"{kind} file is not PEM encoded: {path}") from exc
    except OSError as exc:
        raise TlsMaterialError(f"Could not read {kind} file {path}: {exc}") from exc


def load_certificate_chain(cert_file: str) -> tuple[bytes, ...]:
    """Return every certificate in ``cert_file`` as DER, in file order."""
    chain = []
    for block in PEM_BLOCK.finditer(_read_pem(cert_file, "certificate")):
        if block.group("label") != CERTIFICATE_LABEL:
            continue
        try:
            chain.append(ssl.PEM_cert_to_DER_cert(block.group(0)))
        except ValueError as exc:
            raise TlsMaterialError(
                f"Malformed certificate in {cert_file}: {exc}"
            ) from exc
    if not chain:
        raise TlsMaterialError(f"No certificates found in {cert_file}")
    return tuple(chain)


def load_private_keys(key_file: str) -> list[str]:
    """Return the unencrypted private key blocks of ``key_file`` in file order."""
    return [
        block.group(0)
        for block in PEM_BLOCK.finditer(_read_pem(key_file, "private key"))
        if block.group("label") in PRIVATE_KEY_LABELS
    ]


def load_tls_material(cert_file: str, key_file: str) -> TlsMaterial:
    """Check that both PEM files hold usable material before anything binds.

    Only the first key block is used. Any further keys in the file are
    ignored, which is logged so an operator can spot a mixed-up key file.

    Raises:
        TlsMaterialError: A file is missing or malformed, or holds no key.
    """
    chain = load_certificate_chain(cert_file)
    keys = load_private_keys(key_file)
    if not keys:
        raise TlsMaterialError(f"Could not locate private key in {key_file}")
    if len(keys) > 1:
        TLS_LOGGER.warning(
            "Ignoring extra private keys",
            extra={
                "event": "tls_extra_keys_ignored",
                "key_file": key_file,
                "key_count": len(keys),
            },
        )
    TLS_LOGGER.info(
        "TLS material loaded",
        extra={
            "event": "tls_material_loaded",
            "cert_file": cert_file,
            "key_file": key_file,
            "chain_length": len(chain),
        },
    )
    return TlsMaterial(cert_file, key_file, len(chain), len(keys))


def build_tls_context(material: TlsMaterial) -> ssl.SSLContext:
    """Create a server context that does not ask clients for certificates."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.verify_mode = ssl.CERT_NONE
    context.set_alpn_protocols(["http/1.1"])
    try:
        # OpenSSL reads the whole chain and the first key block of the key file.
        context.load_cert_chain(material.cert_file, material.key_file)
    except (ssl.SSLError, OSError) as exc:
        raise TlsMaterialError(f"Failed to load TLS certificates: {exc}") from exc
    return context
