"""
=============================================================================
USER-AGENT LOG
=============================================================================

A side-channel record of every User-Agent that reached the User-Agent
check. The whole log is ONE JSON array, rewritten on every append:

    agents.json
    ───────────
    ["Mozilla/5.0 ...", "curl/7.68.0", null]

or, with extended=True:

    [{"agent": "Mozilla/5.0 ...", "timestamp": "2026-01-15T12:30:45+00:00"}]

=============================================================================
READ-MODIFY-WRITE
=============================================================================

    ┌────────────┐      ┌────────────┐      ┌────────────┐
    │ load()     │ ───► │ append     │ ───► │ save()     │
    │ [] if none │      │ at the end │      │ full list  │
    └────────────┘      └────────────┘      └────────────┘

Two requests doing this at once can lose an update: both read [a], one
writes [a, b], the other writes [a, c]. Inside one process, appends are
serialized with a lock. Saves go through a temp file + os.replace() so a
crash mid-write never leaves half a JSON array behind. Several PROCESSES
writing the same file can still race.

=============================================================================
FAILURE POLICY
=============================================================================

Logging is a side effect, never a reason to fail a request. If the store
can't be read or written, append() logs a WARNING and returns False.
Nothing is retried.

=============================================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Union
import json
import logging
import os
import tempfile
import threading

from .errors import LoggingSideEffectError


logger = logging.getLogger(__name__)


class LogStore(ABC):
    """Where the log array lives."""

    @abstractmethod
    def load(self) -> List[Any]:
        """
        Return the current entries, [] if nothing has been written yet.

        Raises:
            LoggingSideEffectError: The target exists but can't be read.
        """

    @abstractmethod
    def save(self, entries: List[Any]) -> None:
        """
        Replace the stored entries.

        Raises:
            LoggingSideEffectError: The target can't be written.
        """


class JsonFileStore(LogStore):
    """A JSON array in a file on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise LoggingSideEffectError(f"Cannot read {self.path}: {e}") from e

        if not raw.strip():
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LoggingSideEffectError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(entries, list):
            raise LoggingSideEffectError(f"{self.path} does not hold a JSON array")
        return entries

    def save(self, entries: List[Any]) -> None:
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory,
                prefix=f".{self.path.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                json.dump(entries, tmp, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise LoggingSideEffectError(f"Cannot write {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"JsonFileStore({str(self.path)!r})"


class MemoryStore(LogStore):
    """In-process list. For tests and embedding."""

    def __init__(self, entries: Optional[List[Any]] = None):
        self._entries = list(entries or [])

    def load(self) -> List[Any]:
        return list(self._entries)

    def save(self, entries: List[Any]) -> None:
        self._entries = list(entries)


class UserAgentLog:
    """
    Append-only log of User-Agent values.

    Args:
        store: Persistence target (JsonFileStore or MemoryStore).
        extended: Write {"agent", "timestamp"} objects instead of bare strings.
        clock: Returns the current time for extended entries.
    """

    def __init__(
        self,
        store: LogStore,
        extended: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.store = store
        self.extended = extended
        self._clock = clock
        self._lock = threading.Lock()

    def append(self, record: Any) -> bool:
        """
        Add one record to the end of the log.

        Returns:
            True if persisted, False if the store failed (already logged).
        """
        with self._lock:
            try:
                entries = self.store.load()
                entries.append(record)
                self.store.save(entries)
            except LoggingSideEffectError as e:
                logger.warning("Agent log append failed: %s", e)
                return False
        return True

    def record_agent(self, agent: Optional[str]) -> bool:
        """Append one User-Agent in this log's format (None when absent)."""
        if self.extended:
            return self.append({"agent": agent, "timestamp": self._clock().isoformat()})
        return self.append(agent)

    def entries(self) -> List[Any]:
        with self._lock:
            return self.store.load()

    def __len__(self) -> int:
        return len(self.entries())
