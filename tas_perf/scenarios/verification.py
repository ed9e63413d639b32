"""
Verification workload.

Defines :class:`VerificationUser`, which repeatedly draws a random entry
UUID from the run's identifier source and checks it against the log
(and, when ``TSA_URL`` is configured, fetches the TSA certificate
chain).  The source is the live shared pool in a combined run and a
static file in a standalone verification run.

While the pool is still empty (signers have not produced an entry yet)
an iteration issues no requests at all.
"""

from __future__ import annotations

import gevent
from locust import task

from tas_perf.scenarios.base import PipelineUser
from tas_perf.workflows import run_verification_workflow

# Idle time after an iteration that found no entries, so warm-up does not spin.
EMPTY_SOURCE_BACKOFF = 0.1


class VerificationUser(PipelineUser):
    """Read back and structurally check log entries."""

    @task
    def verify(self) -> None:
        """Verify one randomly drawn entry."""
        self.check_deadline()
        outcome = run_verification_workflow(self.client, self.run_context.config, self.run_context.entries)
        if outcome is None:
            gevent.sleep(EMPTY_SOURCE_BACKOFF)
