"""Error hierarchy for simple-http-client.

Request failures are recorded on the Client (and the returned Result) rather
than raised; decode helpers raise DecodeError directly.
"""


class ClientError(Exception):
    """Base class for client errors."""


class BuildError(ClientError):
    """Raised when a request cannot be built (bad URL, unencodable input)."""


class TransportError(ClientError):
    """Raised when sending fails (DNS, connection refused, timeout, etc.)."""


class ReadError(ClientError):
    """Raised when the response body cannot be read."""


class DecodeError(ClientError):
    """Raised when the response body is not valid JSON for the requested shape."""
