"""Entry point: python -m memosync [health|reindex OWNER|worker [OWNER ...]]

- "health":  Ping the primary store, cache and search index
- "reindex": Rebuild one owner's search index entries from the primary store
- "worker":  Reconcile daemon (optionally rebuilding the given owners first)
"""

from __future__ import annotations

import asyncio
import logging
import sys

from memosync.config import MemoSyncConfig, load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _health(config: MemoSyncConfig) -> int:
    from memosync.daemon import build_repository

    repo = build_repository(config)
    try:
        status = await repo.health()
    finally:
        await repo.close()
    for role, ok in status.items():
        print(f"{role:<8} {'ok' if ok else 'UNAVAILABLE'}")
    return 0 if all(status.values()) else 1


async def _reindex(config: MemoSyncConfig, owner_id: str) -> int:
    from memosync.daemon import open_repository
    from memosync.reconcile import Reconciler

    repo = await open_repository(config)
    try:
        reconciler = Reconciler(repo)
        indexed = await reconciler.rebuild_owner(owner_id)
    finally:
        await repo.close()
    print(f"Reindexed {indexed} memo(s) for {owner_id}, {len(reconciler.pending)} failed")
    return 0 if not reconciler.pending else 1


def _run_worker(config: MemoSyncConfig, owners: list[str]) -> None:
    from memosync.daemon import MemoSyncDaemon

    daemon = MemoSyncDaemon(config)
    asyncio.run(daemon.run(owners))


def main() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    cmd = sys.argv[1] if len(sys.argv) > 1 else "health"
    args = sys.argv[2:]

    if cmd == "health":
        sys.exit(asyncio.run(_health(config)))
    elif cmd == "reindex" and len(args) == 1:
        sys.exit(asyncio.run(_reindex(config, args[0])))
    elif cmd == "worker":
        _run_worker(config, args)
    else:
        print("Usage: python -m memosync [health|reindex OWNER|worker [OWNER ...]]")
        print("  health   Ping primary store, cache and search index (default)")
        print("  reindex  Rebuild an owner's search index entries")
        print("  worker   Reconcile daemon")
        sys.exit(1)


if __name__ == "__main__":
    main()
