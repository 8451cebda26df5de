"""Process-local provider state — cooldown timers and the upload cache.

Both structures are shared by every request handled by a worker, so each
is guarded by one coarse lock.  Critical sections are a few dict
operations, never I/O, which keeps a ``threading`` lock safe to take from
the event loop as well as from worker threads.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from models.gateway import ProviderName, RemoteFile

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CooldownTracker:
    """Per-provider AVAILABLE / COOLING_DOWN state machine.

    An entry present and in the future means "do not call this provider".
    Expired entries are removed lazily on the next check; there is no
    background timer.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._until: dict[ProviderName, float] = {}
        self._lock = threading.Lock()

    def is_available(self, provider: ProviderName) -> bool:
        with self._lock:
            until = self._until.get(provider)
            if until is None:
                return True
            if self._clock() >= until:
                del self._until[provider]
                logger.info("%s cooldown expired, provider available again", provider.value)
                return True
            return False

    def cool_down(self, provider: ProviderName, seconds: float) -> float:
        """Mark *provider* unavailable for *seconds*; returns the wake time."""
        with self._lock:
            until = self._clock() + seconds
            self._until[provider] = until
        logger.warning("%s cooldown set for %ss", provider.value, seconds)
        return until

    def wake_time(self, provider: ProviderName) -> float | None:
        """Raw wake time for *provider*, without lazy expiry."""
        with self._lock:
            return self._until.get(provider)

    def remaining(self, provider: ProviderName) -> float:
        """Seconds until *provider* is available again (0 when available)."""
        with self._lock:
            until = self._until.get(provider)
            if until is None:
                return 0.0
            return max(0.0, until - self._clock())

    def snapshot(self) -> dict[str, float]:
        """Copy of the current entries, keyed by provider name."""
        with self._lock:
            return {p.value: until for p, until in self._until.items()}


@dataclass
class _CacheEntry:
    remote: RemoteFile
    stored_at: float


class UploadCache:
    """document id → remote file handle, with an optional TTL.

    ``ttl_seconds=None`` keeps entries for the life of the process.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Clock = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, document_id: str) -> RemoteFile | None:
        with self._lock:
            entry = self._entries.get(document_id)
            if entry is None:
                return None
            if self._ttl is not None and self._clock() - entry.stored_at >= self._ttl:
                del self._entries[document_id]
                logger.debug("Upload cache entry expired: %s", document_id)
                return None
            return entry.remote

    def put(self, document_id: str, remote: RemoteFile) -> None:
        with self._lock:
            self._entries[document_id] = _CacheEntry(remote=remote, stored_at=self._clock())

    def invalidate(self, document_id: str) -> None:
        with self._lock:
            self._entries.pop(document_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class GatewayState:
    """All mutable state owned by one gateway instance."""

    cooldowns: CooldownTracker = field(default_factory=CooldownTracker)
    uploads: UploadCache = field(default_factory=UploadCache)
