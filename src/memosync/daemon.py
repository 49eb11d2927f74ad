"""Runtime wiring and the reconcile worker daemon.

Usage: python -m memosync worker

Manages:
- Building the three store adapters from config
- Reconciler loop (drains the degraded-write queue every process writes to)
- PID file (prevent duplicate instances)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from memosync.config import MemoSyncConfig, load_config
from memosync.outbox import DegradedQueue
from memosync.reconcile import Reconciler
from memosync.repository import MemoRepository

logger = logging.getLogger(__name__)


# ── Build components ─────────────────────────────────────────


def build_primary(config: MemoSyncConfig):
    name = config.primary.backend
    if name == "sqlite":
        from memosync.primary.sqlite import SqlitePrimaryStore

        return SqlitePrimaryStore(config.primary.path)
    if name == "memory":
        from memosync.primary.memory import InMemoryPrimaryStore

        return InMemoryPrimaryStore()
    raise ValueError(f"Unknown primary backend: {name}")


def build_cache(config: MemoSyncConfig):
    name = config.cache.backend
    if name == "redis":
        from memosync.cache.redis_cache import RedisCache

        return RedisCache(config.cache.url, timeout=config.cache.timeout)
    if name == "memory":
        from memosync.cache.memory import InMemoryCache

        return InMemoryCache()
    raise ValueError(f"Unknown cache backend: {name}")


def build_index(config: MemoSyncConfig):
    name = config.index.backend
    if name == "opensearch":
        from memosync.index.opensearch import OpenSearchIndex

        return OpenSearchIndex(
            config.index.url,
            index_name=config.index.index_name,
            max_results=config.index.max_results,
            timeout=config.index.timeout,
        )
    if name == "memory":
        from memosync.index.memory import InMemorySearchIndex

        return InMemorySearchIndex(max_results=config.index.max_results)
    raise ValueError(f"Unknown index backend: {name}")


def build_queue(config: MemoSyncConfig) -> DegradedQueue:
    return DegradedQueue(config.reconcile.queue_dir)


def build_repository(
    config: MemoSyncConfig, queue: DegradedQueue | None = None
) -> MemoRepository:
    """Wire the three stores. Degraded writes are published to the shared queue."""
    repo = MemoRepository(
        build_primary(config),
        build_cache(config),
        build_index(config),
        cache_ttl=config.cache.ttl,
        key_prefix=config.cache.key_prefix,
        primary_timeout=config.primary.timeout,
        cache_timeout=config.cache.timeout,
        index_timeout=config.index.timeout,
    )
    if queue is None:
        queue = build_queue(config)
    repo.add_degradation_listener(queue.enqueue)
    return repo


async def open_repository(
    config: MemoSyncConfig, queue: DegradedQueue | None = None
) -> MemoRepository:
    """Build the repository and make sure the search index exists.

    An unreachable index is logged, not fatal: CRUD does not depend on it.
    """
    repo = build_repository(config, queue)
    try:
        await asyncio.wait_for(repo.index.ensure_index(), timeout=config.index.timeout)
    except Exception as e:
        logger.warning("Search index not ready (%s): %r", repo.index.name, e)
    return repo


class MemoSyncDaemon:
    """Always-on reconcile worker."""

    def __init__(self, config: MemoSyncConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"memosync worker already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Main run loop ────────────────────────────────────────

    async def run(self, owners: list[str] | None = None) -> None:
        """Rebuild the given owners' index entries, then repair degraded ids until stopped."""
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        queue = build_queue(self.config)
        repo = await open_repository(self.config, queue)
        reconciler = Reconciler(repo, queue, poll_interval=self.config.reconcile.poll_interval)

        logger.info(
            "memosync worker starting (primary=%s, cache=%s, index=%s)",
            repo.primary.name,
            repo.cache.name,
            repo.index.name,
        )
        try:
            for owner_id in owners or []:
                await reconciler.rebuild_owner(owner_id)
            await reconciler.run(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await repo.close()
            self._remove_pid()
            logger.info("memosync worker stopped.")
