"""Client - Builds requests, sends them and captures the responses.

Each call runs build -> send -> read as one blocking sequence. Results are
written to the Client's fields (status_code, body, error, response_headers,
debug info) and also returned as an immutable Result.

Request failures are never raised from the verb methods. They are recorded on
Client.error and Result.error; call raise_for_error() to turn them into
exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

import httpx

from simple_http_client import debug_trace
from simple_http_client.builder import (
    HeaderInput,
    QueryInput,
    build_request,
    coerce_headers,
    make_descriptor,
)
from simple_http_client.decoding import decode_map, decode_model
from simple_http_client.errors import ClientError, ReadError, TransportError
from simple_http_client.models import (
    ClientConfig,
    ClientSettings,
    Result,
    TransportConfig,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def canonical_header_name(name: str) -> str:
    """Canonical form of a header name, e.g. "content-type" -> "Content-Type"."""
    return "-".join(part.capitalize() for part in name.split("-"))


def join_response_headers(headers: httpx.Headers) -> dict[str, str]:
    """Flatten headers to name -> values joined by a single space.

    Repeated headers keep the order they arrived in.
    """
    grouped: dict[str, list[str]] = {}
    for key, value in headers.multi_items():
        grouped.setdefault(canonical_header_name(key), []).append(value)
    return {key: " ".join(values) for key, values in grouped.items()}


class Client:
    """Reusable HTTP client holding configuration and the last call's results.

    Not safe for concurrent use: every call overwrites the result fields.

    Usage:
        with Client(ClientConfig(timeout=5.0, debug=True)) as client:
            client.get("https://httpbin.org/get", [("name", "John Doe")])
            if client.error is None:
                print(client.status_code, client.response_to_map())
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport_config: TransportConfig | None = None,
        default_headers: Iterable[HeaderInput] | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Timeout and debug settings. Can be changed between calls.
            transport_config: Connection pool settings.
            default_headers: Headers sent before the per-call headers on every request.
            base_url: Base URL that relative request URLs are resolved against.
            transport: Replacement httpx transport (e.g. httpx.MockTransport in tests).
                       Pool settings do not apply to a custom transport.
        """
        self.config = config or ClientConfig()
        self.transport_config = transport_config or TransportConfig()
        self.default_headers = coerce_headers(default_headers)

        self.status_code: int = 0
        self.body: str = ""
        self.error: ClientError | None = None
        self.response_headers: dict[str, str] = {}
        self._debug_info: list[str] = []

        self._http = httpx.Client(**self._build_client_kwargs(base_url, transport))

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> Client:
        """Create a client from a loaded configuration file."""
        return cls(
            config=settings.client.model_copy(),
            transport_config=settings.transport,
            default_headers=list(settings.headers.items()),
            base_url=settings.base_url,
            transport=transport,
        )

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close pooled connections."""
        self._http.close()

    def _build_client_kwargs(
        self,
        base_url: str | None,
        transport: httpx.BaseTransport | None,
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client from the pool settings."""
        pool = self.transport_config
        if pool.keep_alive:
            keepalive = min(pool.max_idle_connections, pool.max_idle_connections_per_host)
        else:
            keepalive = 0

        kwargs: dict[str, Any] = {
            "timeout": self.config.timeout,
            "follow_redirects": True,
            "limits": httpx.Limits(
                max_connections=None,
                max_keepalive_connections=keepalive,
                keepalive_expiry=pool.idle_timeout,
            ),
        }
        if base_url:
            kwargs["base_url"] = base_url
        if transport is not None:
            kwargs["transport"] = transport
        return kwargs

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def do(
        self,
        method: str,
        url: str,
        query: Sequence[QueryInput] | None = None,
        body: Any = None,
        headers: Iterable[HeaderInput] | None = None,
    ) -> Result:
        """Perform a request with the given HTTP method.

        Args:
            method: HTTP method, case-insensitive.
            url: Target URL. Query parameters are appended to it.
            query: Query parameters as QueryParameter models or (key, value) tuples.
            body: str, bytes, file-like object, iterable of bytes, or None.
            headers: Headers as Header models or (key, value) tuples.

        Returns:
            Result for this call. The same values are on the Client's fields,
            except that a failed call leaves status_code, body and
            response_headers at their previous values on the Client.
        """
        self.error = None
        self._debug_info = []

        try:
            descriptor = make_descriptor(method, url, query, headers, body)
            # Pick up config changes made since the last call
            self._http.timeout = httpx.Timeout(self.config.timeout)
            request = build_request(
                self._http, descriptor, self.config.timeout, self.default_headers
            )
            response = self._send(request)
            return self._read_response(request, response)
        except ClientError as e:
            logger.warning("%s %s failed: %s", method.upper(), url, e)
            self.error = e
            return Result(error=e, debug_info=self.debug_info)

    def get(
        self,
        url: str,
        query: Sequence[QueryInput] | None = None,
        headers: Iterable[HeaderInput] | None = None,
    ) -> Result:
        """Perform a GET request."""
        return self.do("GET", url, query, None, headers)

    def post(
        self,
        url: str,
        query: Sequence[QueryInput] | None = None,
        body: Any = None,
        headers: Iterable[HeaderInput] | None = None,
    ) -> Result:
        """Perform a POST request."""
        return self.do("POST", url, query, body, headers)

    def put(
        self,
        url: str,
        query: Sequence[QueryInput] | None = None,
        body: Any = None,
        headers: Iterable[HeaderInput] | None = None,
    ) -> Result:
        """Perform a PUT request."""
        return self.do("PUT", url, query, body, headers)

    def delete(
        self,
        url: str,
        query: Sequence[QueryInput] | None = None,
        body: Any = None,
        headers: Iterable[HeaderInput] | None = None,
    ) -> Result:
        """Perform a DELETE request."""
        return self.do("DELETE", url, query, body, headers)

    # -------------------------------------------------------------------------
    # Exchange
    # -------------------------------------------------------------------------

    def _send(self, request: httpx.Request) -> httpx.Response:
        """Send a request without reading the body.

        Raises:
            TransportError: If the request fails before a response arrives.
        """
        try:
            return self._http.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timeout after {self.config.timeout}s: {e}"
            ) from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {e}") from e

    def _read_response(self, request: httpx.Request, response: httpx.Response) -> Result:
        """Read the response body and record the results.

        The response is closed on every path.

        Raises:
            ReadError: If the body cannot be read. Client fields are not updated.
        """
        if self.config.debug:
            self._debug_info.append(debug_trace.format_client_side(request))

        try:
            response.read()
        except (httpx.RequestError, httpx.StreamError) as e:
            raise ReadError(f"Error reading response body: {e}") from e
        finally:
            response.close()

        self.status_code = response.status_code
        self.body = response.text
        self.response_headers = join_response_headers(response.headers)

        if self.config.debug:
            self._debug_info.append(debug_trace.format_server_side(response))
            logger.debug("Debug trace:\n%s", self.debug_info)

        logger.debug("%s %s -> %d", request.method, request.url, response.status_code)

        return Result(
            status_code=self.status_code,
            body=self.body,
            headers=dict(self.response_headers),
            debug_info=self.debug_info,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def debug_info(self) -> str:
        """Debug trace of the last call. Empty unless debug is enabled."""
        return "".join(self._debug_info)

    def get_debug_info(self) -> str:
        """Return the debug trace of the last call. Same as debug_info."""
        return self.debug_info

    def raise_for_error(self) -> None:
        """Raise the last call's error, if any."""
        if self.error is not None:
            raise self.error

    def response_to_map(self) -> dict[str, Any]:
        """Decode the last response body as a JSON object.

        Raises:
            DecodeError: If the body is not a valid JSON object.
        """
        return decode_map(self.body)

    def response_to_model(self, model_type: type[T]) -> T:
        """Decode the last response body into model_type.

        Raises:
            DecodeError: If the body is not valid JSON for model_type.
        """
        return decode_model(self.body, model_type)
