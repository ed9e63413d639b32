"""
Per-run shared state handed to every virtual user.

A :class:`RunContext` is built once by the scheduler before any user
spawns and attached to the Locust ``Environment``.  Users look it up in
``on_start``; after that they only read the configuration and token and
go through :meth:`RunContext.publish_entry` to share identifiers.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from typing import Any

from tas_perf.config import Config
from tas_perf.entry_pool import EntryRecorder, EntrySource, SharedEntryPool
from tas_perf.identity import OidcCredentials, TokenHandle

logger = logging.getLogger(__name__)

_contexts: weakref.WeakKeyDictionary[Any, RunContext] = weakref.WeakKeyDictionary()


@dataclass
class RunContext:
    """
    Everything the two workloads share during one run.

    Attributes:
        config: Configuration class the run was planned from.
        mode: One of the ``RUN_MODE_*`` constants.
        entries: Identifier source sampled by verifying users; a
            :class:`SharedEntryPool` unless the run verifies a static file.
        token: One-time barrier carrying the shared bearer token.
        credentials: OIDC credentials, present whenever the run signs.
        recorder: Optional file sink for published identifiers.
    """

    config: type[Config]
    mode: str
    entries: EntrySource
    token: TokenHandle = field(default_factory=TokenHandle)
    credentials: OidcCredentials | None = None
    recorder: EntryRecorder | None = None

    def publish_entry(self, entry_uuid: str) -> None:
        """Make a freshly created entry visible to verifiers and the recorder."""
        if isinstance(self.entries, SharedEntryPool):
            self.entries.append(entry_uuid)
        if self.recorder is not None:
            self.recorder.record(entry_uuid)

    def close(self) -> None:
        if self.recorder is not None:
            self.recorder.close()
            logger.info("Recorded %d entry UUIDs to %s", self.recorder.count, self.recorder.path)

    def attach(self, environment: Any) -> None:
        """Bind this context to a Locust ``Environment``."""
        _contexts[environment] = self

    @staticmethod
    def is_attached(environment: Any) -> bool:
        return environment in _contexts

    @staticmethod
    def of(environment: Any) -> RunContext:
        """
        Return the context bound to *environment*.

        Raises:
            LookupError: If the scheduler never attached one.
        """
        try:
            return _contexts[environment]
        except KeyError:
            raise LookupError("No RunContext attached to this Locust environment") from None
