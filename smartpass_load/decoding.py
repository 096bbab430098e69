"""
Typed JSON decoding for API responses.

Load-test responses may carry non-JSON bodies (gateway error pages,
empty 5xx bodies, truncated payloads).  Instead of letting ``ValueError``
escape into a virtual user, or swallowing it and returning ``None``,
:func:`decode_json` returns a :class:`JsonResult` holding either the
decoded value or a short error description, and callers branch on
:attr:`JsonResult.ok` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class JsonResult:
    """Outcome of decoding a response body: a value or an error, never both."""

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def get(self, key: str, default: Any = None) -> Any:
        """Return ``value[key]`` for decoded objects, *default* otherwise."""
        if self.ok and isinstance(self.value, dict):
            return self.value.get(key, default)
        return default

    def has(self, key: str) -> bool:
        """Whether the decoded object carries *key* with a non-null value."""
        return self.get(key) is not None


def decode_json(response: Any) -> JsonResult:
    """
    Decode a response body as JSON.

    Args:
        response: A Locust/requests response object.

    Returns:
        A :class:`JsonResult` with the decoded value, or with ``error``
        set when the body is empty or not valid JSON.
    """
    if not response.content:
        return JsonResult(error="empty body")
    try:
        return JsonResult(value=response.json())
    except ValueError as exc:
        return JsonResult(error=f"invalid JSON: {exc}")


def decode_object(response: Any) -> JsonResult:
    """Decode a response body that must be a JSON object."""
    result = decode_json(response)
    if result.ok and not isinstance(result.value, dict):
        return JsonResult(error=f"expected JSON object, got {type(result.value).__name__}")
    return result
