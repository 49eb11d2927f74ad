"""SQLite primary store (aiosqlite).

One long-lived connection in autocommit mode: every statement is its own
transaction, and the version check lives in the UPDATE's WHERE clause, so a
CAS is a single atomic statement rather than a read followed by a write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from memosync.errors import AlreadyExists, StorageUnavailable
from memosync.memo import Memo
from memosync.primary.base import CasResult, CasStatus

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memos (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL,
    tags        TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    version     INTEGER NOT NULL CHECK (version >= 1)
);
CREATE INDEX IF NOT EXISTS memos_owner_idx ON memos (owner_id);
"""

_COLUMNS = "id, owner_id, title, content, tags, created_at, updated_at, version"

# MAX() over fixed-width UTC ISO strings keeps updated_at from moving backwards.
_CAS_UPDATE = f"""
UPDATE memos
   SET title = ?, content = ?, tags = ?, updated_at = MAX(updated_at, ?), version = ?
 WHERE id = ? AND version = ?
RETURNING {_COLUMNS}
"""


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO-8601, so lexical order equals chronological order."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_memo(row: aiosqlite.Row) -> Memo:
    return Memo.from_dict(
        {
            "id": row["id"],
            "owner_id": row["owner_id"],
            "title": row["title"],
            "content": row["content"],
            "tags": json.loads(row["tags"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "version": row["version"],
        }
    )


class SqlitePrimaryStore:
    """Durable primary store on a single SQLite database file."""

    def __init__(self, path: Path | str, *, busy_timeout_ms: int = 5000) -> None:
        self.path = str(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "sqlite"

    # ── Connection lifecycle ──────────────────────────────────

    async def connect(self) -> None:
        """Open the connection and create the schema. Idempotent."""
        async with self._connect_lock:
            if self._conn is not None:
                return
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = await aiosqlite.connect(self.path, isolation_level=None)
                conn.row_factory = aiosqlite.Row
                if self.path != ":memory:":
                    await conn.execute("PRAGMA journal_mode=WAL")
                # A write is only acknowledged once it is on disk.
                await conn.execute("PRAGMA synchronous=FULL")
                await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
                await conn.executescript(_SCHEMA)
            except aiosqlite.Error as e:
                raise StorageUnavailable(f"Failed to open SQLite store {self.path}: {e}") from e
            self._conn = conn
            logger.info("SQLite primary store ready: %s", self.path)

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        return self._conn

    async def _fetch(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        conn = await self._connection()
        try:
            return list(await conn.execute_fetchall(sql, params))
        except aiosqlite.IntegrityError:
            raise
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"SQLite error: {e}") from e

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # ── PrimaryStore protocol ─────────────────────────────────

    async def get(self, memo_id: str) -> Memo | None:
        rows = await self._fetch(f"SELECT {_COLUMNS} FROM memos WHERE id = ?", (memo_id,))
        return _row_to_memo(rows[0]) if rows else None

    async def list_by_owner(self, owner_id: str) -> list[Memo]:
        rows = await self._fetch(f"SELECT {_COLUMNS} FROM memos WHERE owner_id = ?", (owner_id,))
        return [_row_to_memo(row) for row in rows]

    async def insert(self, memo: Memo) -> None:
        try:
            await self._fetch(
                f"INSERT INTO memos ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    memo.id,
                    memo.owner_id,
                    memo.title,
                    memo.content,
                    json.dumps(list(memo.tags), ensure_ascii=False),
                    _ts(memo.created_at),
                    _ts(memo.updated_at),
                    memo.version,
                ),
            )
        except aiosqlite.IntegrityError as e:
            raise AlreadyExists(memo.id) from e

    async def update_if_version(self, memo: Memo, expected_version: int) -> CasResult:
        rows = await self._fetch(
            _CAS_UPDATE,
            (
                memo.title,
                memo.content,
                json.dumps(list(memo.tags), ensure_ascii=False),
                _ts(memo.updated_at),
                expected_version + 1,
                memo.id,
                expected_version,
            ),
        )
        if rows:
            updated = _row_to_memo(rows[0])
            return CasResult(CasStatus.APPLIED, memo=updated, current_version=updated.version)

        # The CAS did not apply; this lookup only labels the outcome.
        current = await self._fetch("SELECT version FROM memos WHERE id = ?", (memo.id,))
        if not current:
            return CasResult(CasStatus.MISSING)
        logger.debug(
            "CAS rejected for %s: expected v%d, stored v%d",
            memo.id,
            expected_version,
            current[0]["version"],
        )
        return CasResult(CasStatus.VERSION_MISMATCH, current_version=current[0]["version"])

    async def delete(self, memo_id: str) -> None:
        await self._fetch("DELETE FROM memos WHERE id = ?", (memo_id,))

    async def exists(self, memo_id: str) -> bool:
        rows = await self._fetch("SELECT 1 FROM memos WHERE id = ? LIMIT 1", (memo_id,))
        return bool(rows)

    async def ping(self) -> bool:
        try:
            rows = await self._fetch("SELECT 1")
        except StorageUnavailable as e:
            logger.warning("SQLite health check failed: %s", e)
            return False
        return bool(rows)
