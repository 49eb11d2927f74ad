"""Cache protocol and key derivation."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

DEFAULT_KEY_PREFIX = "memo:"


def cache_key(memo_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    return f"{prefix}{memo_id}"


@runtime_checkable
class Cache(Protocol):
    """String-keyed cache over serialized payloads.

    Implementations raise CacheUnavailable on any backend failure; callers
    decide whether that matters (the repository never lets it).
    """

    @property
    def name(self) -> str: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store value. ttl in seconds; None means live until deleted."""
        ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
