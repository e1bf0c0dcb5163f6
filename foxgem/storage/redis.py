"""Redis client creation and the key layout shared by all services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from redis.asyncio import Redis


def create_redis_client(redis_url: str) -> Redis:
    return Redis.from_url(redis_url, decode_responses=True)


@dataclass(frozen=True, slots=True)
class Keyspace:
    prefix: str = "fg"

    def profile(self, user_id: int | str) -> str:
        return f"{self.prefix}:profile:{user_id}"

    def ledger(self, user_id: int | str) -> str:
        return f"{self.prefix}:ledger:{user_id}"

    @property
    def profiles(self) -> str:
        return f"{self.prefix}:profiles"

    @property
    def referral_codes(self) -> str:
        return f"{self.prefix}:referral_codes"

    @property
    def best_rank(self) -> str:
        return f"{self.prefix}:rank:best"

    @property
    def total_rank(self) -> str:
        return f"{self.prefix}:rank:total"

    @property
    def sequence(self) -> str:
        return f"{self.prefix}:seq"

    @property
    def last_sweep(self) -> str:
        return f"{self.prefix}:sweep:last"


# Timestamps are stored as UTC epoch seconds so Lua scripts can compare them.
def to_epoch(moment: datetime) -> str:
    return repr(moment.timestamp())


def from_epoch(raw: str | None) -> datetime | None:
    if raw is None or raw == "":
        return None
    return datetime.fromtimestamp(float(raw), tz=timezone.utc)
