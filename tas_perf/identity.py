"""
Identity-provider client and the shared token barrier.

A sustained signing run exchanges credentials for a bearer token exactly
once, during setup, and hands the same token to every signing virtual
user.  Re-fetching per iteration would turn the identity provider into
the bottleneck and misrepresent the pipeline under test, so the
per-iteration variant exists only for small smoke runs.

Key Concepts Demonstrated:
- Fail-fast credential validation before any network call
- One-time publish barrier (``TokenHandle``) instead of a mutable global
- Unverified JWT inspection for run-planning diagnostics only
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt
import requests

from tas_perf.config import Config
from tas_perf.errors import AuthenticationError, ConfigurationError
from tas_perf.helpers import safe_json

logger = logging.getLogger(__name__)

TOKEN_PATH = "/protocol/openid-connect/token"


@dataclass(frozen=True)
class OidcCredentials:
    """Password-grant credentials for the identity provider."""

    issuer_url: str
    user: str
    password: str
    client_id: str

    def __post_init__(self) -> None:
        empty = [name for name in ("issuer_url", "user", "password", "client_id") if not getattr(self, name)]
        if empty:
            raise ConfigurationError(f"Empty OIDC credential fields: {', '.join(empty)}")

    @classmethod
    def from_config(cls, cfg: type[Config]) -> OidcCredentials:
        """
        Read credentials from configuration.

        Raises:
            ConfigurationError: Naming every missing setting.
        """
        values = {
            "OIDC_ISSUER_URL": cfg.OIDC_ISSUER_URL,
            "OIDC_USER": cfg.OIDC_USER,
            "OIDC_PASSWORD": cfg.OIDC_PASSWORD,
            "OIDC_CLIENT_ID": cfg.OIDC_CLIENT_ID,
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigurationError(f"Missing OIDC settings: {', '.join(missing)}")
        return cls(
            issuer_url=cfg.OIDC_ISSUER_URL,
            user=cfg.OIDC_USER,
            password=cfg.OIDC_PASSWORD,
            client_id=cfg.OIDC_CLIENT_ID,
        )

    @property
    def token_url(self) -> str:
        return self.issuer_url.rstrip("/") + TOKEN_PATH

    def form(self) -> dict[str, str]:
        return {
            "username": self.user,
            "password": self.password,
            "scope": "openid",
            "client_id": self.client_id,
            "grant_type": "password",
        }


def fetch_token(
    credentials: OidcCredentials,
    *,
    session: Any = None,
    timeout: float | None = None,
    **request_kwargs: Any,
) -> str:
    """
    Exchange credentials for an access token.

    Args:
        credentials: Validated OIDC credentials.
        session: Object exposing ``post`` with the ``requests`` signature.
            Defaults to the ``requests`` module, so the setup-phase fetch
            stays out of Locust statistics; pass a Locust ``HttpSession``
            (plus ``name=...``) to measure per-iteration fetches.
        timeout: Seconds to wait for the identity provider.
        **request_kwargs: Forwarded to ``session.post``.

    Returns:
        The ``access_token`` value from the JSON response.

    Raises:
        AuthenticationError: On transport failure, a non-200 status, or a
            response without a usable ``access_token``.
    """
    http = session if session is not None else requests
    try:
        response = http.post(
            credentials.token_url,
            data=credentials.form(),
            timeout=timeout,
            **request_kwargs,
        )
    except requests.RequestException as exc:
        raise AuthenticationError(f"OIDC token request failed: {exc}") from exc

    if response.status_code != 200:
        raise AuthenticationError(
            "OIDC token request failed",
            status=response.status_code,
            body=response.text,
        )

    token = safe_json(response).get("access_token")
    if not isinstance(token, str) or not token:
        raise AuthenticationError("OIDC token response missing access_token")
    return token


def token_expiry(token: str) -> datetime | None:
    """
    Return the ``exp`` claim of a JWT without verifying its signature.

    Opaque (non-JWT) tokens and tokens without ``exp`` yield ``None``.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def warn_if_token_expires_early(token: str, run_seconds: float, *, now: datetime | None = None) -> bool:
    """
    Log a warning when *token* expires before the run ends.

    The harness never refreshes tokens, so a short-lived token turns the
    tail of a long run into a stream of 401s.  Returns ``True`` when the
    warning was emitted.
    """
    expiry = token_expiry(token)
    if expiry is None:
        return False
    now = now or datetime.now(timezone.utc)
    remaining = (expiry - now).total_seconds()
    if remaining < run_seconds:
        logger.warning(
            "OIDC token expires in %.0fs but the run lasts %.0fs; late iterations will be rejected",
            remaining,
            run_seconds,
        )
        return True
    return False


class TokenHandle:
    """
    One-time publish barrier for the run's bearer token.

    The setup phase calls :meth:`publish` (or :meth:`fail`) exactly once;
    signing virtual users call :meth:`wait` in ``on_start`` and block
    until the token is available.  After publication the token is
    read-only, so readers need no further synchronisation.
    """

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._token: str | None = None
        self._error: BaseException | None = None

    @property
    def is_set(self) -> bool:
        return self._ready.is_set()

    def publish(self, token: str) -> None:
        """Publish the token to every waiting and future reader."""
        if not token:
            raise ValueError("Cannot publish an empty token")
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError("Token already published")
            self._token = token
            self._ready.set()

    def fail(self, error: BaseException) -> None:
        """Release waiters with the setup failure instead of a token."""
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError("Token already published")
            self._error = error
            self._ready.set()

    def wait(self, timeout: float | None = None) -> str:
        """
        Block until the token is published.

        Raises:
            ConfigurationError: If nothing is published within *timeout*.
            TasPerfError: The error passed to :meth:`fail`, re-raised.
        """
        if not self._ready.wait(timeout):
            raise ConfigurationError(f"Shared OIDC token not published within {timeout}s")
        if self._error is not None:
            raise self._error
        if self._token is None:
            raise RuntimeError("Token barrier released without a token")
        return self._token
