"""JSON decode helpers for captured response bodies."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from simple_http_client.errors import DecodeError

T = TypeVar("T")


def decode_map(body: str) -> dict[str, Any]:
    """Decode a JSON object body into a dict.

    Raises:
        DecodeError: If the body is not valid JSON or not a JSON object.
            An empty body is not valid JSON.
    """
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Response body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def decode_model(body: str, model_type: type[T]) -> T:
    """Decode a JSON body into any type pydantic can validate.

    Works with BaseModel subclasses, dataclasses, TypedDicts and builtin
    containers such as ``list[int]``.

    Raises:
        DecodeError: If the body is not valid JSON or does not match model_type.
    """
    try:
        return TypeAdapter(model_type).validate_json(body)
    except ValidationError as e:
        raise DecodeError(
            f"Response body does not decode to {getattr(model_type, '__name__', model_type)}: {e}"
        ) from e
