"""
Per-query deduplication store.

Each normalized query moves through ``pending -> success | failed``. Terminal
entries expire after a fixed TTL; pending entries only leave through
:meth:`QueryStore.commit` or :meth:`QueryStore.release`.
"""

from __future__ import annotations

import enum
import logging
import re
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Protocol, Union

from .errors import CacheOwnershipError

__all__ = [
    "CacheEntry",
    "CacheStatus",
    "Claim",
    "Hit",
    "InMemoryQueryStore",
    "Miss",
    "Pending",
    "QueryStore",
    "normalize_query",
]

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Case- and whitespace-insensitive dedup key."""
    return _WHITESPACE.sub(" ", query).strip().lower()


class CacheStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class CacheEntry:
    status: CacheStatus
    timestamp: float
    payload: Any = None
    published_reference: Optional[str] = None
    owner: Optional[str] = None


@dataclass(frozen=True)
class Claim:
    key: str
    token: str


@dataclass(frozen=True)
class Pending:
    key: str


@dataclass(frozen=True)
class Hit:
    key: str
    entry: CacheEntry


@dataclass(frozen=True)
class Miss:
    claim: Claim


ClaimResult = Union[Pending, Hit, Miss]


class QueryStore(Protocol):
    """
    Capability the orchestrator needs from a dedup store.

    ``claim_or_get`` must be atomic: a store shared between processes has to
    implement it with compare-and-set.
    """

    def claim_or_get(self, key: str) -> ClaimResult: ...

    def commit(self, claim: Claim, status: CacheStatus, payload: Any = None) -> CacheEntry: ...

    def release(self, claim: Claim) -> None: ...

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def attach_reference(self, key: str, reference: str) -> str: ...


class InMemoryQueryStore:
    """
    Single-process :class:`QueryStore`.

    Methods never await, so under asyncio the check-and-claim in
    :meth:`claim_or_get` cannot interleave with another task.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        if entry.status is CacheStatus.PENDING:
            return False
        return now - entry.timestamp >= self.ttl_seconds

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            logging.debug("Cache entry for %r expired", key)
            del self._entries[key]
            return None
        return entry

    def claim_or_get(self, key: str) -> ClaimResult:
        entry = self.get(key)
        if entry is not None:
            if entry.status is CacheStatus.PENDING:
                return Pending(key)
            return Hit(key, entry)

        claim = Claim(key=key, token=uuid.uuid4().hex)
        self._entries[key] = CacheEntry(
            status=CacheStatus.PENDING, timestamp=self._clock(), owner=claim.token
        )
        return Miss(claim)

    def _check_owner(self, claim: Claim) -> None:
        current = self._entries.get(claim.key)
        if (
            current is None
            or current.status is not CacheStatus.PENDING
            or current.owner != claim.token
        ):
            raise CacheOwnershipError(f"No pending claim held for {claim.key!r}")

    def commit(self, claim: Claim, status: CacheStatus, payload: Any = None) -> CacheEntry:
        if status is CacheStatus.PENDING:
            raise ValueError("commit requires a terminal status")
        self._check_owner(claim)
        entry = CacheEntry(status=status, timestamp=self._clock(), payload=payload)
        self._entries[claim.key] = entry
        return entry

    def release(self, claim: Claim) -> None:
        self._check_owner(claim)
        del self._entries[claim.key]

    def attach_reference(self, key: str, reference: str) -> str:
        entry = self.get(key)
        if entry is None or entry.status is not CacheStatus.SUCCESS:
            raise CacheOwnershipError(f"No successful entry for {key!r} to attach a reference to")
        if entry.published_reference is not None:
            return entry.published_reference
        self._entries[key] = replace(entry, published_reference=reference)
        return reference
