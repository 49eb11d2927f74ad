"""Configuration loading from environment variables and memosync.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_HOME_DIR = Path.home() / ".memosync"
_CONFIG_FILENAME = "memosync.toml"


@dataclass
class PrimaryConfig:
    """Primary (authoritative) store configuration."""

    backend: str = "sqlite"
    path: Path = _HOME_DIR / "memos.db"
    timeout: float = 2.0


@dataclass
class CacheConfig:
    """Cache configuration."""

    backend: str = "redis"
    url: str = "redis://localhost:6379/0"
    ttl: float | None = 3600.0
    key_prefix: str = "memo:"
    timeout: float = 0.5


@dataclass
class IndexConfig:
    """Search index configuration."""

    backend: str = "opensearch"
    url: str = "http://localhost:9200"
    index_name: str = "memos"
    max_results: int = 100
    timeout: float = 2.0


@dataclass
class ReconcileConfig:
    """Reconcile worker and the degraded-write queue it drains."""

    poll_interval: float = 30.0
    queue_dir: Path = _HOME_DIR / "queue"


@dataclass
class MemoSyncConfig:
    """Top-level memosync configuration."""

    primary: PrimaryConfig = field(default_factory=PrimaryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    pid_file: Path = _HOME_DIR / "memosync.pid"
    log_level: str = "INFO"


def _ttl(value) -> float | None:
    """TTL of 0 (or empty) disables expiry."""
    if value is None or value == "":
        return None
    ttl = float(value)
    return ttl if ttl > 0 else None


def load_config(config_path: Path | None = None) -> MemoSyncConfig:
    """Load configuration from environment variables and optional memosync.toml.

    Priority: environment variables > memosync.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.memosync/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _HOME_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    primary_data = file_data.get("primary", {})
    cache_data = file_data.get("cache", {})
    index_data = file_data.get("index", {})
    reconcile_data = file_data.get("reconcile", {})

    config = MemoSyncConfig(
        primary=PrimaryConfig(
            backend=os.getenv("MEMOSYNC_PRIMARY", primary_data.get("backend", "sqlite")),
            path=Path(
                os.getenv("MEMOSYNC_DB_PATH", primary_data.get("path", str(_HOME_DIR / "memos.db")))
            ),
            timeout=float(os.getenv("MEMOSYNC_PRIMARY_TIMEOUT", primary_data.get("timeout", 2.0))),
        ),
        cache=CacheConfig(
            backend=os.getenv("MEMOSYNC_CACHE", cache_data.get("backend", "redis")),
            url=os.getenv("REDIS_URL", cache_data.get("url", "redis://localhost:6379/0")),
            ttl=_ttl(os.getenv("MEMOSYNC_CACHE_TTL", cache_data.get("ttl", 3600))),
            key_prefix=cache_data.get("key_prefix", "memo:"),
            timeout=float(os.getenv("MEMOSYNC_CACHE_TIMEOUT", cache_data.get("timeout", 0.5))),
        ),
        index=IndexConfig(
            backend=os.getenv("MEMOSYNC_INDEX", index_data.get("backend", "opensearch")),
            url=os.getenv("OPENSEARCH_URL", index_data.get("url", "http://localhost:9200")),
            index_name=index_data.get("index_name", "memos"),
            max_results=int(index_data.get("max_results", 100)),
            timeout=float(os.getenv("MEMOSYNC_INDEX_TIMEOUT", index_data.get("timeout", 2.0))),
        ),
        reconcile=ReconcileConfig(
            poll_interval=float(
                os.getenv("MEMOSYNC_RECONCILE_INTERVAL", reconcile_data.get("poll_interval", 30.0))
            ),
            queue_dir=Path(
                os.getenv("MEMOSYNC_QUEUE_DIR", reconcile_data.get("queue_dir", str(_HOME_DIR / "queue")))
            ),
        ),
        pid_file=Path(os.getenv("MEMOSYNC_PID_FILE", str(_HOME_DIR / "memosync.pid"))),
        log_level=os.getenv("MEMOSYNC_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
