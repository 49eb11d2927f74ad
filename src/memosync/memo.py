"""Memo entity: the versioned record replicated across all three stores."""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from memosync.errors import InvalidMemo

MAX_TAGS = 10

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Trim, drop duplicates (first occurrence wins) and enforce the tag bounds."""
    if isinstance(tags, str):
        raise InvalidMemo("tags must be a collection of strings, not a single string")
    seen: dict[str, None] = {}
    for raw in tags:
        tag = str(raw).strip()
        if not tag:
            raise InvalidMemo("tags must be non-empty after trimming")
        seen.setdefault(tag, None)
    if len(seen) > MAX_TAGS:
        raise InvalidMemo(f"at most {MAX_TAGS} tags allowed, got {len(seen)}")
    return tuple(seen)


def advance_timestamp(created_at: datetime, previous: datetime, proposed: datetime) -> datetime:
    """Next updated_at: never before `previous`, and strictly after `created_at`."""
    stamp = max(proposed, previous)
    if stamp <= created_at:
        stamp = created_at + _TICK
    return stamp


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class Memo:
    """A versioned memo.

    Immutable: `edit()` returns a new Memo with `version + 1`. The version is the
    only optimistic-concurrency token; a memo at version 1 has never been mutated.
    """

    id: str
    title: str
    content: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    tags: tuple[str, ...] = field(default_factory=tuple)
    version: int = 1

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidMemo("id must not be empty")
        if not self.owner_id:
            raise InvalidMemo("owner_id must not be empty")
        if not isinstance(self.version, int) or isinstance(self.version, bool) or self.version < 1:
            raise InvalidMemo(f"version must be a positive integer, got {self.version!r}")
        if self.created_at.tzinfo is None or self.updated_at.tzinfo is None:
            raise InvalidMemo("timestamps must be timezone-aware")
        if self.updated_at < self.created_at:
            raise InvalidMemo("updated_at must not precede created_at")
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def create(
        cls,
        title: str,
        content: str,
        tags: Iterable[str],
        owner_id: str,
        *,
        id: str | None = None,
        now: datetime | None = None,
    ) -> Memo:
        """New memo at version 1 with created_at == updated_at."""
        ts = now or utcnow()
        return cls(
            id=id or uuid.uuid4().hex,
            title=title,
            content=content,
            tags=tuple(tags),
            owner_id=owner_id,
            created_at=ts,
            updated_at=ts,
            version=1,
        )

    def edit(
        self,
        title: str | None = None,
        content: str | None = None,
        tags: Iterable[str] | None = None,
        *,
        now: datetime | None = None,
    ) -> Memo:
        """Return the next version with the given fields replaced."""
        return replace(
            self,
            title=self.title if title is None else title,
            content=self.content if content is None else content,
            tags=self.tags if tags is None else tuple(tags),
            updated_at=advance_timestamp(self.created_at, self.updated_at, now or utcnow()),
            version=self.version + 1,
        )

    # ── Serialization ─────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Memo:
        try:
            return cls(
                id=str(data["id"]),
                title=data["title"],
                content=data["content"],
                tags=tuple(data.get("tags") or ()),
                owner_id=str(data["owner_id"]),
                created_at=_parse_ts(data["created_at"]),
                updated_at=_parse_ts(data["updated_at"]),
                version=int(data["version"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            if isinstance(e, InvalidMemo):
                raise
            raise InvalidMemo(f"malformed memo payload: {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, payload: str) -> Memo:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise InvalidMemo(f"malformed memo payload: {e}") from e
        if not isinstance(data, dict):
            raise InvalidMemo("malformed memo payload: expected an object")
        return cls.from_dict(data)
