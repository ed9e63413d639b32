"""
Identifier sources bridging the signing and verification workloads.

- :class:`SharedEntryPool`: append-only pool written by signing users
  and sampled by verifying users during a combined run.
- :class:`StaticEntrySource`: immutable list loaded from a file for the
  standalone verifier.
- :class:`EntryRecorder`: appends every published identifier to a file
  in the format :func:`load_entry_file` reads back.

Both sources expose ``sample_random()`` returning ``None`` when empty, so
a verifying user that starts before any entry exists simply idles.
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, TextIO

from tas_perf.errors import ConfigurationError

logger = logging.getLogger(__name__)


class EntrySource(Protocol):
    """Anything a verifying user can draw entry UUIDs from."""

    def sample_random(self, rng: random.Random | None = None) -> str | None: ...

    def __len__(self) -> int: ...


def _check_entry(entry_id: object) -> str:
    if not isinstance(entry_id, str) or not entry_id:
        raise ValueError(f"Entry identifier must be a non-empty string, got {entry_id!r}")
    return entry_id


class SharedEntryPool:
    """
    Lock-guarded, append-only pool of log entry UUIDs.

    Appends and random reads may interleave freely.  A reader only ever
    sees whole identifiers: the list slot is filled under the same lock
    the reader holds while picking an index, and nothing is ever removed.
    """

    def __init__(self, entries: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._entries: list[str] = [_check_entry(entry) for entry in entries]

    def append(self, entry_id: str) -> None:
        """Add one identifier; raises ``ValueError`` for empty or non-string values."""
        entry_id = _check_entry(entry_id)
        with self._lock:
            self._entries.append(entry_id)

    def sample_random(self, rng: random.Random | None = None) -> str | None:
        """Return a uniformly chosen identifier, or ``None`` if the pool is empty."""
        chooser = rng or random
        with self._lock:
            if not self._entries:
                return None
            return self._entries[chooser.randrange(len(self._entries))]

    def snapshot(self) -> list[str]:
        """Copy of the current contents, in append order."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StaticEntrySource:
    """Read-only identifier list shared by every standalone verifying user."""

    def __init__(self, entries: Iterable[str]) -> None:
        self._entries: tuple[str, ...] = tuple(_check_entry(entry) for entry in entries)

    def sample_random(self, rng: random.Random | None = None) -> str | None:
        if not self._entries:
            return None
        return self._entries[(rng or random).randrange(len(self._entries))]

    def __len__(self) -> int:
        return len(self._entries)


def load_entry_file(path: str | Path) -> StaticEntrySource:
    """
    Load identifiers from a newline-delimited file.

    Surrounding whitespace is stripped and blank lines are ignored.  An
    empty file is allowed (verifying users then idle) but logged, since it
    usually means the signing run that should have produced it failed.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"UUID file '{file_path}' could not be read. Run a signing test first"
        ) from exc

    source = StaticEntrySource(line.strip() for line in text.splitlines() if line.strip())
    if not len(source):
        logger.error("UUID file '%s' is empty. Run a signing test first", file_path)
    else:
        logger.info("Loaded %d entry UUIDs from %s", len(source), file_path)
    return source


class EntryRecorder:
    """
    Append published identifiers to a file, one per line.

    Lines are written whole under a lock and flushed immediately, so the
    file stays readable by :func:`load_entry_file` even if the run is
    killed.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._handle: TextIO | None = None
        self.count = 0

    def record(self, entry_id: str) -> None:
        entry_id = _check_entry(entry_id)
        with self._lock:
            if self._handle is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = self.path.open("a", encoding="utf-8")
            self._handle.write(entry_id + "\n")
            self._handle.flush()
            self.count += 1

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None
