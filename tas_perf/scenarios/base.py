"""
Shared abstract Locust user class for both workloads.

:class:`PipelineUser` resolves the run's :class:`RunContext` once at
startup and stops the user when its pool's duration has elapsed.  The
duration is checked only at the start of an iteration, so an iteration
that is already running always finishes its current stage sequence.

Key Concepts Demonstrated:
- Abstract Locust base classes for DRY scenario authoring
- Per-pool run durations on top of Locust's single global run time
- ``StopUser`` as the only cancellation signal
"""

from __future__ import annotations

import time

from locust import HttpUser, constant
from locust.exception import StopUser

from tas_perf.context import RunContext


class PipelineUser(HttpUser):
    """
    Base user bound to the run context.

    ``abstract = True`` tells Locust not to spawn this class directly.
    The scheduler sets ``fixed_count``, ``duration``, ``host`` and
    ``wait_time`` on the concrete subclasses before the run starts.

    Attributes:
        duration: Seconds this pool keeps iterating, or ``None`` to run
            until Locust stops the test.
        run_context: Shared run state, resolved in ``on_start``.  Must not
            be named ``context``: Locust calls ``User.context()`` on every
            request.
    """

    abstract = True
    duration: float | None = None
    # Tight loop by default: iterations within a user run back to back.
    wait_time = constant(0)

    run_context: RunContext

    def on_start(self) -> None:
        """Resolve the run context and start this user's duration clock."""
        self.run_context = RunContext.of(self.environment)
        self._deadline = time.monotonic() + self.duration if self.duration else None

    def check_deadline(self) -> None:
        """Stop the user once its pool's duration has elapsed."""
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise StopUser()
