"""Header builders for requests against the SmartPass API."""

from __future__ import annotations

import base64


def create_basic_auth_headers(username: str, password: str) -> dict[str, str]:
    """
    Build Basic-Auth headers for external API requests.

    Args:
        username: Basic-auth username.
        password: Basic-auth password.

    Returns:
        A header dict with ``Authorization`` and ``Content-Type``.
    """
    credentials = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(credentials).decode("ascii")
    return {
        "Authorization": f"Basic {encoded}",
        "Content-Type": "application/json",
    }


def create_external_headers(username: str, password: str) -> dict[str, str]:
    """Build the header set every scenario sends: Basic-Auth plus JSON."""
    return {
        **create_basic_auth_headers(username, password),
        "Content-Type": "application/json",
    }


def create_json_headers() -> dict[str, str]:
    """Build headers for unauthenticated JSON requests."""
    return {"Content-Type": "application/json"}
