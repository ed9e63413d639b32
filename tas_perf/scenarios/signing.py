"""
Signing workload.

Defines :class:`SigningUser`.  Every iteration fetches fresh crypto
material, obtains a certificate, appends a ``hashedrekord`` entry and,
independently, a ``rfc3161`` timestamp entry.  Each UUID the log hands
back is published through the run context so verifiers can pick it up.

Token handling follows ``TOKEN_MODE``:

- ``once``: wait in ``on_start`` for the token the scheduler publishes
  during setup, then reuse it for every iteration.
- ``per-iteration``: exchange credentials at the start of every
  iteration; only suitable for small smoke runs.
"""

from __future__ import annotations

import logging

from locust import task
from locust.exception import StopUser

from tas_perf.config import TOKEN_MODE_ONCE
from tas_perf.errors import TasPerfError
from tas_perf.identity import fetch_token
from tas_perf.scenarios.base import PipelineUser
from tas_perf.workflows import run_signing_workflow

logger = logging.getLogger(__name__)

TOKEN_REQUEST_NAME = "OIDC: Token"


class SigningUser(PipelineUser):
    """Produce signed log entries in a tight loop."""

    token: str | None = None

    def on_start(self) -> None:
        """Wait for the shared token when the run uses a single token."""
        super().on_start()
        cfg = self.run_context.config
        if cfg.TOKEN_MODE != TOKEN_MODE_ONCE:
            return
        try:
            self.token = self.run_context.token.wait(cfg.TOKEN_WAIT_TIMEOUT)
        except TasPerfError as exc:
            logger.error("Signing user cannot start: %s", exc)
            raise StopUser(str(exc)) from exc

    def _iteration_token(self) -> str | None:
        """Fetch a token for this iteration only, measured in Locust stats."""
        if self.run_context.credentials is None:
            return None
        try:
            return fetch_token(
                self.run_context.credentials,
                session=self.client,
                timeout=self.run_context.config.REQUEST_TIMEOUT,
                name=TOKEN_REQUEST_NAME,
            )
        except TasPerfError as exc:
            logger.error("Failed to retrieve OIDC token for iteration: %s", exc)
            return None

    @task
    def sign(self) -> None:
        """Run one signing iteration and publish the resulting entry UUID."""
        self.check_deadline()

        token = self.token or self._iteration_token()
        if token is None:
            return

        cfg = self.run_context.config
        outcome = run_signing_workflow(
            self.client,
            cfg,
            token,
            include_timestamp=cfg.INCLUDE_TIMESTAMP_ENTRIES,
        )
        if outcome.entry_uuid is not None:
            self.run_context.publish_entry(outcome.entry_uuid)
