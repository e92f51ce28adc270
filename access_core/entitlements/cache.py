"""
Session-scoped subscription cache.

Each AccessGuard owns one SessionSubscriptionCache keyed by
(actor_id, tenant_id). There is no module-level cache: cached subscription
state never leaks across sessions in a multi-tenant process.

A cached None is a valid entry (tenant without a subscription) and is
distinct from a cache miss. Lookup failures are never cached.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional, Tuple

from access_core.entitlements.models import SubscriptionRecord

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


@dataclass(frozen=True)
class CachedSubscription:
    """Cached lookup result for one session key."""

    record: Optional[SubscriptionRecord]
    cached_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, ttl_seconds: Optional[int]) -> bool:
        if ttl_seconds is None:
            return False
        return (datetime.now(timezone.utc) - self.cached_at).total_seconds() > ttl_seconds


class SessionSubscriptionCache:
    """
    In-memory cache of subscription lookups for one guarded session.

    Thread-safe with optional TTL (None = lives as long as the session).
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._entries: Dict[SessionKey, CachedSubscription] = {}
        self._lock = Lock()
        self._ttl_seconds = ttl_seconds

    def get(self, key: SessionKey) -> Optional[CachedSubscription]:
        """Return the entry for key, or None on miss/expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._ttl_seconds):
                del self._entries[key]
                return None
            return entry

    def set(self, key: SessionKey, record: Optional[SubscriptionRecord]) -> None:
        with self._lock:
            self._entries[key] = CachedSubscription(record=record)

    def invalidate(self, key: SessionKey) -> bool:
        """Drop one session key."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_tenant(self, tenant_id: str) -> int:
        """Drop every entry for a tenant (e.g. after a billing change)."""
        with self._lock:
            keys = [k for k in self._entries if k[1] == tenant_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(
                "Invalidated cached subscription state",
                extra={"tenant_id": tenant_id, "entries": len(keys)},
            )
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
