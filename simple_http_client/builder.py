"""Request Builder - Turns call arguments into an httpx.Request.

Query strings are encoded here rather than handed to httpx as params so that
the pair order and repeated keys are exactly what the caller passed.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Union
from urllib.parse import quote_plus

import httpx
from pydantic import ValidationError

from simple_http_client.errors import BuildError
from simple_http_client.models import Header, QueryParameter, RequestDescriptor

USER_AGENT = "simple-http-client/0.1.0"

_ALLOWED_SCHEMES = ("http", "https")

# RFC 7230 token characters
_HEADER_NAME_PATTERN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

HeaderInput = Union[Header, tuple[str, str]]
QueryInput = Union[QueryParameter, tuple[str, Any]]


def build_query_string(query: Sequence[QueryInput] | None, has_query: bool = False) -> str:
    """Encode query parameters as ``?k1=v1&k2=v2`` in input order.

    Args:
        query: Parameters to encode. Empty or None yields "".
        has_query: True if the base URL already has a query string, in which
                   case the pairs are joined on with "&" instead of "?".

    Returns:
        The encoded query string, with no trailing "&".
    """
    if not query:
        return ""

    pairs = [
        f"{quote_plus(param.key)}={quote_plus(param.value)}"
        for param in coerce_query(query)
    ]
    prefix = "&" if has_query else "?"
    return prefix + "&".join(pairs)


def _split_pair(item: Any, kind: str) -> tuple[Any, Any]:
    """Unpack a (key, value) tuple, rejecting anything else."""
    if not isinstance(item, tuple) or len(item) != 2:
        raise BuildError(f"Invalid {kind} {item!r}: expected a (key, value) tuple")
    return item


def coerce_headers(headers: Iterable[HeaderInput] | None) -> list[Header]:
    """Accept Header models or (key, value) tuples.

    Raises:
        BuildError: If headers is a mapping or an item is neither form.
    """
    if isinstance(headers, Mapping):
        raise BuildError("Headers must be a sequence of (key, value) pairs, not a mapping")
    result: list[Header] = []
    for item in headers or []:
        if isinstance(item, Header):
            result.append(item)
        else:
            key, value = _split_pair(item, "header")
            result.append(Header(key=key, value=value))
    return result


def coerce_query(query: Iterable[QueryInput] | None) -> list[QueryParameter]:
    """Accept QueryParameter models or (key, value) tuples.

    Raises:
        BuildError: If query is a mapping or an item is neither form.
    """
    if isinstance(query, Mapping):
        raise BuildError("Query must be a sequence of (key, value) pairs, not a mapping")
    result: list[QueryParameter] = []
    for item in query or []:
        if isinstance(item, QueryParameter):
            result.append(item)
        else:
            key, value = _split_pair(item, "query parameter")
            result.append(QueryParameter(key=key, value=value))
    return result


def append_query(url: str, query: Sequence[QueryInput] | None) -> str:
    """Append encoded query parameters to url.

    Pairs go before any fragment. An existing query string is extended with
    "&" and a bare trailing "?" is reused.
    """
    if not query:
        return url
    base, hash_mark, fragment = url.partition("#")
    if base.endswith("?"):
        base = base[:-1]
    return base + build_query_string(query, has_query="?" in base) + hash_mark + fragment


def validate_header(key: str, value: str) -> None:
    """Check that a header can be written to the wire as given.

    Raises:
        BuildError: If the name is not an RFC 7230 token or the value
            contains CR, LF or NUL.
    """
    if not _HEADER_NAME_PATTERN.fullmatch(key):
        raise BuildError(f"Invalid header name {key!r}")
    if any(c in value for c in "\r\n\0"):
        raise BuildError(f"Invalid value for header {key!r}: contains CR, LF or NUL")


def read_body(body: Any) -> bytes | None:
    """Read a request body into memory.

    Accepts str, bytes, bytearray, file-like objects (binary or text) and
    iterables of bytes chunks.
    """
    if body is None:
        return None
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, Mapping):
        raise TypeError("Mapping bodies must be serialized first, e.g. with json.dumps")
    if hasattr(body, "read"):
        return read_body(body.read())
    if isinstance(body, Iterable):
        return b"".join(read_body(chunk) or b"" for chunk in body)
    raise TypeError(f"Unsupported body type: {type(body).__name__}")


def make_descriptor(
    method: str,
    url: str,
    query: Sequence[QueryInput] | None = None,
    headers: Iterable[HeaderInput] | None = None,
    body: Any = None,
) -> RequestDescriptor:
    """Bundle call arguments into a RequestDescriptor.

    Raises:
        BuildError: If the method, query or headers are invalid.
    """
    try:
        return RequestDescriptor(
            method=method,
            url=url,
            query=coerce_query(query),
            headers=coerce_headers(headers),
            body=read_body(body),
        )
    except ValidationError as e:
        raise BuildError(f"Invalid request arguments: {e}") from e


def build_request(
    transport: httpx.Client,
    descriptor: RequestDescriptor,
    timeout: float,
    default_headers: Sequence[Header] = (),
) -> httpx.Request:
    """Build a ready-to-send request.

    Header order on the wire: default_headers, then the caller's headers,
    then User-Agent. Nothing is deduplicated, so a caller User-Agent is sent
    alongside the default one.

    Args:
        transport: Client the request will be sent through.
        descriptor: What to send.
        timeout: Timeout in seconds for this request.
        default_headers: Headers configured on the Client itself.

    Returns:
        httpx.Request with the full URL, headers and body.

    Raises:
        BuildError: If the URL is malformed, has a scheme other than
            http/https, or lacks a host, or if a header name is not a token
            or a header cannot be encoded.
    """
    url = append_query(descriptor.url, descriptor.query)

    header_list: list[tuple[str, str]] = [(h.key, h.value) for h in default_headers]
    header_list.extend((h.key, h.value) for h in descriptor.headers)
    for key, value in header_list:
        validate_header(key, value)
    header_list.append(("User-Agent", USER_AGENT))

    try:
        request = transport.build_request(
            method=descriptor.method,
            url=url,
            headers=header_list,
            content=descriptor.body,
            timeout=timeout,
        )
    except httpx.InvalidURL as e:
        raise BuildError(f"Invalid URL '{url}': {e}") from e
    except UnicodeEncodeError as e:
        # httpx encodes header names and values as ASCII
        raise BuildError(
            f"Cannot encode request header: {e.object[e.start:e.end]!r} is not ASCII"
        ) from e

    if request.url.scheme not in _ALLOWED_SCHEMES:
        raise BuildError(
            f"Invalid URL '{url}': scheme must be http or https, got '{request.url.scheme}'"
        )
    if not request.url.host:
        raise BuildError(f"Invalid URL '{url}': missing host")

    return request
