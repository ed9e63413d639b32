"""
Error taxonomy for the load harness.

Setup-time errors (``ConfigurationError``, ``AuthenticationError``) abort
a run before any virtual user starts iterating.  Iteration-time errors
(``DependencyError``, ``ValidationError``) are raised by individual
workflow stages and caught at the stage boundary, so they short-circuit
only the rest of that iteration.
"""

from __future__ import annotations

# Bodies are echoed into log lines and Locust failure messages; keep them short.
MAX_BODY_PREVIEW = 512


def body_preview(body: str | bytes | None) -> str:
    """Return a printable, truncated rendition of a response body."""
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if len(body) > MAX_BODY_PREVIEW:
        return body[:MAX_BODY_PREVIEW] + "..."
    return body


class TasPerfError(Exception):
    """Base class for every error raised by the harness."""


class ConfigurationError(TasPerfError):
    """A required setting is missing or malformed."""


class AuthenticationError(TasPerfError):
    """The identity provider refused the token exchange."""

    def __init__(self, message: str, *, status: int | None = None, body: str | bytes | None = None):
        self.status = status
        self.body = body_preview(body)
        if status is not None:
            message = f"{message}: {status} {self.body}".rstrip()
        super().__init__(message)


class DependencyError(TasPerfError):
    """A downstream service answered with an unexpected status."""

    def __init__(self, stage: str, *, status: int | None, body: str | bytes | None = None):
        self.stage = stage
        self.status = status
        self.body = body_preview(body)
        super().__init__(f"{stage} failed: Status={status}, Body={self.body}")


class ValidationError(TasPerfError):
    """A response had the right status but the wrong shape."""

    def __init__(self, check: str):
        self.check = check
        super().__init__(check)
