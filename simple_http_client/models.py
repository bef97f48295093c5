"""Data models for simple-http-client.

All models use Pydantic v2, except Result which is a frozen dataclass because
it carries exception instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from simple_http_client.decoding import decode_map, decode_model
from simple_http_client.errors import ClientError

DEFAULT_TIMEOUT = 0.5

T = TypeVar("T")


# =============================================================================
# Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Per-client settings. Re-read before every request."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        description="Request timeout in seconds (None or 0 means the 0.5s default)",
    )
    debug: bool = Field(default=False, description="Record request/response debug trace")

    @field_validator("timeout", mode="before")
    @classmethod
    def default_timeout(cls, value: Any) -> Any:
        if value is None or value == 0:
            return DEFAULT_TIMEOUT
        return value

    @field_validator("timeout")
    @classmethod
    def check_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"timeout must not be negative, got {value}")
        return value


class TransportConfig(BaseModel):
    """Connection pool settings for the underlying httpx transport.

    httpx caps idle connections for the whole pool rather than per host, so
    the keep-alive cap handed to httpx is the smaller of the two idle limits.
    """

    model_config = ConfigDict(extra="forbid")

    max_idle_connections: int = Field(default=100, ge=0, description="Idle connections kept open")
    max_idle_connections_per_host: int = Field(
        default=10, ge=1, description="Idle connections kept per host"
    )
    idle_timeout: float = Field(default=90.0, gt=0, description="Seconds before idle connections close")
    keep_alive: bool = Field(default=True, description="Reuse connections between requests")


# =============================================================================
# Request Models
# =============================================================================


class Header(BaseModel):
    """One request header. Repeated keys are sent as repeated headers."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    value: str


class QueryParameter(BaseModel):
    """One query parameter. Repeated keys are sent as repeated pairs."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if not isinstance(value, str):
            return str(value)
        return value


class RequestDescriptor(BaseModel):
    """Everything needed to build one request. Discarded after the call."""

    model_config = ConfigDict(extra="forbid")

    method: str = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Target URL without the query string built from `query`")
    query: list[QueryParameter] = Field(default_factory=list)
    headers: list[Header] = Field(default_factory=list)
    body: bytes | None = Field(default=None, description="Request body, already read into memory")

    @field_validator("method")
    @classmethod
    def upper_method(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("method must not be empty")
        return value.strip().upper()


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class Result:
    """Immutable outcome of a single call.

    Unlike the mutable fields on Client, a Result never carries values from a
    previous call: on failure status_code is 0 and body/headers are empty.
    """

    status_code: int = 0
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    error: ClientError | None = None
    debug_info: str = ""

    @property
    def ok(self) -> bool:
        """True if the exchange completed, regardless of status code."""
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def response_to_map(self) -> dict[str, Any]:
        return decode_map(self.body)

    def response_to_model(self, model_type: type[T]) -> T:
        return decode_model(self.body, model_type)


# =============================================================================
# Config File Models
# =============================================================================


class ClientSettings(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    client: ClientConfig = Field(default_factory=ClientConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    base_url: str | None = Field(default=None, description="Base URL for relative request URLs")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
