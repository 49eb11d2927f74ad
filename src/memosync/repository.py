"""Memo repository: coordinates the primary store, cache and search index.

Responsibilities:
1. Reads: cache first, primary on miss/error, best-effort read-through fill
2. Writes: primary (CAS) → cache invalidation → index upsert, in that order
3. Failure policy: primary faults are fatal; cache/index faults degrade
4. Observability: degraded writes are logged, counted and published to listeners

The repository is the only writer of all three stores. It holds no locks:
concurrent saves of the same memo are serialized by the primary store's CAS,
and exactly one writer per version wins. It never retries or merges.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from memosync.cache.base import DEFAULT_KEY_PREFIX, cache_key
from memosync.errors import (
    AlreadyExists,
    Conflict,
    DegradedWrite,
    IndexUnavailable,
    InvalidMemo,
    NotFound,
    StorageUnavailable,
)
from memosync.memo import Memo, advance_timestamp, utcnow
from memosync.primary.base import CasStatus

if TYPE_CHECKING:
    from memosync.cache.base import Cache
    from memosync.index.base import SearchIndex
    from memosync.primary.base import PrimaryStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_TTL = 3600.0  # seconds

DegradationListener = Callable[[DegradedWrite], None]


@dataclass
class SaveResult:
    """Successful save. `degraded` lists secondary stores that missed the write."""

    memo: Memo
    created: bool
    degraded: list[DegradedWrite] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)


@dataclass
class DeleteResult:
    memo_id: str
    degraded: list[DegradedWrite] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)


@dataclass
class RepositoryStats:
    cache_hits: int = 0
    cache_misses: int = 0
    cache_errors: int = 0
    conflicts: int = 0
    degraded_writes: int = 0


class MemoRepository:
    """find / list_by_owner / save / delete / search / exists over three stores."""

    def __init__(
        self,
        primary: PrimaryStore,
        cache: Cache,
        index: SearchIndex,
        *,
        cache_ttl: float | None = DEFAULT_CACHE_TTL,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        primary_timeout: float = 2.0,
        cache_timeout: float = 0.5,
        index_timeout: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.primary = primary
        self.cache = cache
        self.index = index
        self.cache_ttl = cache_ttl
        self.key_prefix = key_prefix
        self.primary_timeout = primary_timeout
        self.cache_timeout = cache_timeout
        self.index_timeout = index_timeout
        self.stats = RepositoryStats()
        self._clock = clock
        self._listeners: list[DegradationListener] = []

    # ── Observability ─────────────────────────────────────────

    def add_degradation_listener(self, listener: DegradationListener) -> None:
        self._listeners.append(listener)

    def _report(self, degraded: DegradedWrite) -> None:
        self.stats.degraded_writes += 1
        logger.warning(
            "Degraded %s of memo %s: %s update failed (%s)",
            degraded.operation,
            degraded.memo_id,
            degraded.store,
            degraded.error,
        )
        for listener in self._listeners:
            try:
                listener(degraded)
            except Exception:
                logger.exception("Degradation listener %r failed", listener)

    # ── Per-store call wrappers ───────────────────────────────

    def _key(self, memo_id: str) -> str:
        return cache_key(memo_id, self.key_prefix)

    async def _primary(self, op: str, call: Awaitable[T]) -> T:
        """Bounded primary call. A timeout leaves the outcome unknown: fatal."""
        try:
            return await asyncio.wait_for(call, timeout=self.primary_timeout)
        except asyncio.TimeoutError as e:
            raise StorageUnavailable(
                f"Primary store {op} timed out after {self.primary_timeout}s"
            ) from e

    async def _cache(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.cache_timeout)

    async def _invalidate(self, memo_id: str, operation: str) -> DegradedWrite | None:
        try:
            await self._cache(self.cache.delete(self._key(memo_id)))
        except Exception as e:
            self.stats.cache_errors += 1
            return DegradedWrite("cache", operation, memo_id, repr(e))
        return None

    async def _index_write(
        self, memo_id: str, operation: str, call: Awaitable[None]
    ) -> DegradedWrite | None:
        try:
            await asyncio.wait_for(call, timeout=self.index_timeout)
        except Exception as e:
            return DegradedWrite("index", operation, memo_id, repr(e))
        return None

    # ── Reads ─────────────────────────────────────────────────

    async def find(self, memo_id: str, *, consistent: bool = False) -> Memo | None:
        """Cache-first point lookup. Returns None if the memo does not exist.

        consistent=True skips the cache lookup and reads the primary directly
        (the cache is still refilled).
        """
        key = self._key(memo_id)
        payload: str | None = None
        if not consistent:
            try:
                payload = await self._cache(self.cache.get(key))
            except Exception as e:
                self.stats.cache_errors += 1
                logger.warning("Cache read failed for %s, falling back to primary: %r", memo_id, e)

        if payload is not None:
            try:
                memo = Memo.from_json(payload)
            except InvalidMemo as e:
                logger.warning("Evicting undecodable cache entry %s: %s", key, e)
                await self._invalidate(memo_id, "find")
            else:
                if memo.id == memo_id:
                    self.stats.cache_hits += 1
                    logger.debug("Cache hit: %s (v%d)", memo_id, memo.version)
                    return memo
                logger.warning("Cache entry %s holds memo %s, ignoring", key, memo.id)

        self.stats.cache_misses += 1
        memo = await self._primary("get", self.primary.get(memo_id))
        if memo is None:
            return None

        try:
            await self._cache(self.cache.set(key, memo.to_json(), self.cache_ttl))
        except Exception as e:
            self.stats.cache_errors += 1
            logger.warning("Cache fill failed for %s: %r", memo_id, e)
        return memo

    async def get(self, memo_id: str) -> Memo:
        """Like find(), but raises NotFound."""
        memo = await self.find(memo_id)
        if memo is None:
            raise NotFound(memo_id)
        return memo

    async def list_by_owner(self, owner_id: str) -> list[Memo]:
        return await self._primary("list_by_owner", self.primary.list_by_owner(owner_id))

    async def exists(self, memo_id: str) -> bool:
        try:
            if await self._cache(self.cache.exists(self._key(memo_id))):
                return True
        except Exception as e:
            self.stats.cache_errors += 1
            logger.warning("Cache exists check failed for %s: %r", memo_id, e)
        return await self._primary("exists", self.primary.exists(memo_id))

    async def search(
        self,
        query_text: str,
        tag_filter: str | None,
        owner_id: str,
    ) -> list[Memo]:
        """Delegate to the index. No fallback: an unreachable index fails the search."""
        try:
            return await asyncio.wait_for(
                self.index.search(query_text, tag_filter, owner_id),
                timeout=self.index_timeout,
            )
        except asyncio.TimeoutError as e:
            raise IndexUnavailable(f"Search timed out after {self.index_timeout}s") from e

    # ── Writes ────────────────────────────────────────────────

    async def save(self, memo: Memo, expected_version: int | None = None) -> SaveResult:
        """Insert (version 1, no expected version) or CAS-update a memo.

        For updates, expected_version defaults to memo.version - 1, which is
        what Memo.edit() produces. Raises Conflict on a stale version or
        duplicate id, NotFound if the memo to update is gone, and
        StorageUnavailable if the primary store fails.
        """
        if expected_version is None and memo.version == 1:
            stored = await self._insert(memo)
            created = True
        else:
            expected = memo.version - 1 if expected_version is None else expected_version
            stored = await self._update(memo, expected)
            created = False

        cache_failure = await self._invalidate(stored.id, "save")
        index_failure = await self._index_write(stored.id, "save", self.index.index(stored))
        degraded = [d for d in (cache_failure, index_failure) if d is not None]
        for d in degraded:
            self._report(d)

        logger.info(
            "%s memo %s (v%d)%s",
            "Created" if created else "Updated",
            stored.id,
            stored.version,
            " [degraded]" if degraded else "",
        )
        return SaveResult(memo=stored, created=created, degraded=degraded)

    async def _insert(self, memo: Memo) -> Memo:
        stored = replace(memo, updated_at=memo.created_at)
        try:
            await self._primary("insert", self.primary.insert(stored))
        except AlreadyExists:
            self.stats.conflicts += 1
            logger.info("Insert conflict: memo %s already exists", memo.id)
            raise
        return stored

    async def _update(self, memo: Memo, expected_version: int) -> Memo:
        if expected_version < 1:
            raise InvalidMemo(f"expected_version must be >= 1, got {expected_version}")
        stamped = replace(
            memo,
            updated_at=advance_timestamp(memo.created_at, memo.updated_at, self._clock()),
        )
        result = await self._primary(
            "update_if_version", self.primary.update_if_version(stamped, expected_version)
        )
        if result.status is CasStatus.MISSING:
            raise NotFound(memo.id)
        if result.status is CasStatus.VERSION_MISMATCH:
            self.stats.conflicts += 1
            logger.info(
                "Version conflict on memo %s: expected v%d, stored v%s",
                memo.id,
                expected_version,
                result.current_version,
            )
            raise Conflict(
                memo.id,
                f"stale version {expected_version} (current: {result.current_version})",
            )
        return result.memo

    async def delete(self, memo_id: str) -> DeleteResult:
        """Unconditional, idempotent delete. Succeeds once the primary delete does."""
        await self._primary("delete", self.primary.delete(memo_id))

        cache_failure = await self._invalidate(memo_id, "delete")
        index_failure = await self._index_write(memo_id, "delete", self.index.delete(memo_id))
        degraded = [d for d in (cache_failure, index_failure) if d is not None]
        for d in degraded:
            self._report(d)

        logger.info("Deleted memo %s%s", memo_id, " [degraded]" if degraded else "")
        return DeleteResult(memo_id=memo_id, degraded=degraded)

    async def resync(self, memo_id: str) -> bool:
        """Re-derive cache and index state for one memo from the primary.

        Returns False if a secondary store is still failing. Primary failures
        raise StorageUnavailable as for any other operation.
        """
        memo = await self._primary("get", self.primary.get(memo_id))
        cache_failure = await self._invalidate(memo_id, "resync")
        index_failure = await self._index_write(
            memo_id,
            "resync",
            self.index.delete(memo_id) if memo is None else self.index.index(memo),
        )
        for failure in (cache_failure, index_failure):
            if failure is not None:
                logger.warning(
                    "Memo %s still out of sync: %s (%s)", memo_id, failure.store, failure.error
                )
        return cache_failure is None and index_failure is None

    # ── Lifecycle ─────────────────────────────────────────────

    async def health(self) -> dict[str, bool]:
        """Ping every store. Never raises."""
        stores = {
            "primary": (self.primary, self.primary_timeout),
            "cache": (self.cache, self.cache_timeout),
            "index": (self.index, self.index_timeout),
        }
        results: dict[str, bool] = {}
        for role, (store, timeout) in stores.items():
            try:
                results[role] = bool(await asyncio.wait_for(store.ping(), timeout=timeout))
            except Exception as e:
                logger.warning("%s health check error: %r", role, e)
                results[role] = False
        return results

    async def close(self) -> None:
        for store in (self.index, self.cache, self.primary):
            try:
                await store.close()
            except Exception as e:
                logger.warning("Failed to close %s: %r", store.name, e)
