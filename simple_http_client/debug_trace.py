"""Debug trace formatting for one request/response exchange.

Output mirrors what goes over the wire for HTTP/1.1: a request or status
line, one header per line, a blank line, then the body. Lines end with CRLF.
"""

from __future__ import annotations

import httpx

TRACE_BANNER = "API Debug Info\n===============\n\n"
CLIENT_SIDE_BANNER = "Client Side\n============\n"
SERVER_SIDE_BANNER = "Server Side\n============\n"


def _format_headers(raw_headers: list[tuple[bytes, bytes]], encoding: str) -> str:
    return "".join(
        f"{key.decode(encoding)}: {value.decode(encoding)}\r\n"
        for key, value in raw_headers
    )


def format_request(request: httpx.Request) -> str:
    """Dump a request with its body. The body must already be read."""
    target = request.url.raw_path.decode("ascii")
    head = f"{request.method} {target} HTTP/1.1\r\n"
    headers = _format_headers(request.headers.raw, request.headers.encoding)
    body = request.content.decode("utf-8", errors="replace")
    return f"{head}{headers}\r\n{body}"


def format_response(response: httpx.Response) -> str:
    """Dump a response with its body. The body must already be read."""
    reason = f" {response.reason_phrase}" if response.reason_phrase else ""
    head = f"{response.http_version} {response.status_code}{reason}\r\n"
    headers = _format_headers(response.headers.raw, response.headers.encoding)
    return f"{head}{headers}\r\n{response.text}"


def _end_line(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def format_client_side(request: httpx.Request) -> str:
    return TRACE_BANNER + CLIENT_SIDE_BANNER + _end_line(format_request(request))


def format_server_side(response: httpx.Response) -> str:
    return SERVER_SIDE_BANNER + _end_line(format_response(response))
