"""
User API Backend — Rate Limit Counter Store
============================================

What:  Persistence for rate-limit counter records, keyed by an opaque string.
How:   `CounterStore` defines point read and full-overwrite write. Two
       implementations:
       - InMemoryCounterStore: dict-backed, single process (development, tests)
       - SqlCounterStore: one row per key in `rate_limits`, shared by every
         worker that talks to the same database

Consistency:
    Reads and writes are independent calls; the limiter's read-compute-write
    sequence is not atomic. Concurrent requests sharing a key can each read
    the same record and overshoot the limit by the number in flight.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import session_scope
from app.models.rate_limit import RateLimitCounter


@dataclass
class CounterRecord:
    """
    Persisted rate-limit state for one identifier+route key.

    Attributes:
        key:            prefix:identifier[:route]
        requests:       Epoch seconds of requests observed in the window
        blocked:        Whether the key is in its cool-down period
        blocked_until:  Epoch second the cool-down ends (None when not blocked)
        expires_at:     After this second the record is treated as absent
    """

    key: str
    requests: List[int] = field(default_factory=list)
    blocked: bool = False
    blocked_until: Optional[int] = None
    expires_at: int = 0
    created_at: int = 0
    updated_at: int = 0


class CounterStore(ABC):
    """Point read / point overwrite storage for counter records."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CounterRecord]:
        ...

    @abstractmethod
    async def put(self, record: CounterRecord) -> None:
        ...


class InMemoryCounterStore(CounterStore):
    """Process-local store. Copies on the way in and out so callers never share state."""

    def __init__(self):
        self._records: Dict[str, CounterRecord] = {}

    async def get(self, key: str) -> Optional[CounterRecord]:
        record = self._records.get(key)
        return replace(record, requests=list(record.requests)) if record else None

    async def put(self, record: CounterRecord) -> None:
        self._records[record.key] = replace(record, requests=list(record.requests))

    def clear(self) -> None:
        self._records.clear()


class SqlCounterStore(CounterStore):
    """
    Counter records in the `rate_limits` table.

    Args:
        session_factory: Optional async_sessionmaker; defaults to the
                         application's engine from settings
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[CounterRecord]:
        async with session_scope(self._session_factory) as session:
            row = await session.get(RateLimitCounter, key)
            if row is None:
                return None
            return CounterRecord(
                key=row.key,
                requests=list(row.requests or []),
                blocked=row.blocked,
                blocked_until=row.blocked_until,
                expires_at=row.expires_at,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    async def put(self, record: CounterRecord) -> None:
        async with session_scope(self._session_factory) as session:
            await session.merge(
                RateLimitCounter(
                    key=record.key,
                    requests=list(record.requests),
                    blocked=record.blocked,
                    blocked_until=record.blocked_until,
                    expires_at=record.expires_at,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )

    async def purge_expired(self, now: int) -> int:
        """Delete rows whose expires_at has passed. Returns the number removed."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(RateLimitCounter).where(RateLimitCounter.expires_at < now)
            )
            return result.rowcount or 0

    async def keys(self) -> List[str]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(RateLimitCounter.key))
            return list(result.scalars().all())
