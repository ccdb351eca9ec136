"""Redis-backed assignment ledger: append-only list of recent assignments for display."""

import json
import uuid
from datetime import date, datetime
from typing import List, Optional

from redis.asyncio import Redis

from config import LEDGER_KEY, REDIS_URL
from models import AssignmentResult, LedgerEntry

_async_client: Optional[Redis] = None


def get_async_redis() -> Redis:
    global _async_client
    if _async_client is None:
        _async_client = Redis.from_url(REDIS_URL, decode_responses=True)
    return _async_client


def generate_entry_id() -> str:
    return f"assignment-{uuid.uuid4().hex[:16]}"


class AssignmentLedger:
    """
    One Redis list, one JSON entry per item, in insertion order. Appends are a
    single RPUSH, so concurrent writers never overwrite each other.

    Not a dedup authority: the same record may appear twice.
    """

    def __init__(self, redis_client: Optional[Redis] = None, key: str = LEDGER_KEY):
        self._redis = redis_client
        self.key = key

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_async_redis()
        return self._redis

    async def _load(self, start: int = 0, end: int = -1) -> List[dict]:
        return [json.loads(raw) for raw in await self.redis.lrange(self.key, start, end)]

    async def record(self, result: AssignmentResult, record_title: str = "") -> LedgerEntry:
        """Append a successful assignment."""
        if not result.succeeded or result.agent_id is None:
            raise ValueError(f"Only successful assignments are recorded (got {result.outcome.value})")
        entry = LedgerEntry(
            id=generate_entry_id(),
            record_id=result.record_id,
            record_title=record_title,
            agent_id=result.agent_id,
            agent_name=result.agent_name or result.agent_id,
            assigned_at=result.timestamp.isoformat(),
        )
        await self.redis.rpush(self.key, json.dumps(entry.model_dump()))
        return entry

    async def recent(self, limit: int = 10) -> List[LedgerEntry]:
        """Most recent ``limit`` entries, newest first."""
        if limit <= 0:
            return []
        entries = await self._load(-limit, -1)
        return [LedgerEntry(**e) for e in reversed(entries)]

    async def count_assigned_on(self, day: date) -> int:
        entries = await self._load()
        return sum(1 for e in entries if datetime.fromisoformat(e["assigned_at"]).date() == day)
