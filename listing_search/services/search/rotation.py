"""Promoted-slot rotation per visitor/session.

Every second request from the same visitor (or any request after the rotation interval) hides
the previously shown promotion so the pinned slot cycles through live promotions. State is
in-process, bounded by an LRU size limit and an idle TTL.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from listing_search.core import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RotationState:
    action_count: int = 0
    last_promoted_id: int | None = None
    last_rotated_at: float | None = None
    touched_at: float = 0.0


@dataclass(frozen=True)
class RotationDecision:
    rotate: bool
    exclude_id: int | None


class PromotionRotationCache:
    def __init__(
        self,
        max_entries: int | None = None,
        ttl_seconds: float | None = None,
        interval_seconds: float | None = None,
        clock=time.monotonic,
    ):
        s = get_settings()
        self.max_entries = max_entries if max_entries is not None else s.rotation_cache_max_entries
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else s.rotation_cache_ttl_seconds
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else s.promotion_rotation_interval_seconds
        )
        self._clock = clock
        self._entries: OrderedDict[str, RotationState] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _get(self, key: str, now: float) -> RotationState:
        state = self._entries.get(key)
        if state is not None and now - state.touched_at > self.ttl_seconds:
            del self._entries[key]
            state = None
        if state is None:
            state = RotationState()
            self._entries[key] = state
        self._entries.move_to_end(key)
        state.touched_at = now
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._drop_lock(evicted)
        return state

    def _drop_lock(self, key: str) -> None:
        # Locks held or awaited stay registered so later requests for the key still queue on them
        if not self._lock_users.get(key):
            self._locks.pop(key, None)

    def get(self, key: str) -> RotationState | None:
        state = self._entries.get(key)
        if state is None or self._clock() - state.touched_at > self.ttl_seconds:
            return None
        return state

    def _decide(self, state: RotationState, now: float) -> RotationDecision:
        state.action_count += 1
        rotate = (
            state.last_rotated_at is None
            or state.action_count % 2 == 0
            or now - state.last_rotated_at > self.interval_seconds
        )
        return RotationDecision(rotate=rotate, exclude_id=state.last_promoted_id if rotate else None)

    @asynccontextmanager
    async def rotation(self, key: str | None) -> AsyncIterator["_RotationHandle"]:
        """Hold the visitor's lock while the caller resolves the promotion, then record it.

        Usage:
            async with cache.rotation(visitor_id) as handle:
                promoted = await resolve(exclude=handle.exclude_ids)
                handle.record(promoted.id if promoted else None)
        """
        if not key:
            yield _RotationHandle(None, None, 0.0)
            return
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                now = self._clock()
                state = self._get(key, now)
                handle = _RotationHandle(state, self._decide(state, now), now)
                yield handle
                handle.commit()
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                if key not in self._entries:
                    self._locks.pop(key, None)


class _RotationHandle:
    def __init__(self, state: RotationState | None, decision: RotationDecision | None, now: float):
        self._state = state
        self.decision = decision
        self._now = now
        self._promoted_id: int | None = None

    @property
    def exclude_ids(self) -> list[int]:
        if self.decision and self.decision.exclude_id is not None:
            return [self.decision.exclude_id]
        return []

    def record(self, promoted_id: int | None) -> None:
        self._promoted_id = promoted_id

    def commit(self) -> None:
        if self._state is None or self.decision is None or not self.decision.rotate:
            return
        # Nothing shown: keep the previous pick so the next rotation still skips it
        if self._promoted_id is None:
            return
        self._state.last_promoted_id = self._promoted_id
        self._state.last_rotated_at = self._now
        logger.debug("rotation: promoted slot rotated | promoted_id=%s", self._promoted_id)


rotation_cache = PromotionRotationCache()
