"""Request framing checks applied while reading from the socket."""

MAX_HEADER_BYTES = 64 * 1024
SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}


class MalformedRequest(ValueError):
    """Raised when the request line, headers or framing cannot be parsed."""


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def validate_request_line(method: str, target: str, version: str) -> None:
    """Reject request lines that cannot be routed."""
    if not method.isalpha() or not method.isupper():
        raise MalformedRequest(f"Invalid method {method!r}")
    if not target.startswith("/"):
        raise MalformedRequest("Request target must be an absolute path")
    if version not in SUPPORTED_VERSIONS:
        raise MalformedRequest(f"Unsupported protocol version {version!r}")


def determine_content_length(headers: dict[str, str], max_body_bytes: int) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise MalformedRequest("Transfer-Encoding request bodies are not supported")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    # Bare ASCII digits only: no sign, inner whitespace or underscores.
    if not (header_value.isascii() and header_value.isdigit()):
        raise MalformedRequest(f"Invalid Content-Length {header_value!r}")
    content_length = int(header_value)
    if content_length > max_body_bytes:
        raise RequestEntityTooLarge
    return content_length
