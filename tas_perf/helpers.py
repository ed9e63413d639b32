"""
Header builders, tolerant JSON parsing and URL joining for the workflows
and the identity client.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

JSON_HEADERS = {"Content-Type": "application/json"}
BINARY_HEADERS = {"Content-Type": "application/octet-stream"}


def safe_json(response: Any) -> dict[str, Any]:
    """
    Parse a JSON object body, yielding ``{}`` for anything else.

    Proxy error pages and truncated bodies therefore surface as missing
    fields rather than as a ``ValueError`` inside the iteration.
    """
    try:
        data = response.json()
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data
    return {}


def bearer_headers(token: str) -> dict[str, str]:
    """Build JSON request headers carrying a bearer token."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def service_url(base_url: str, path: str) -> str:
    """Join a service base URL and an absolute API path, keeping any base path prefix."""
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))
