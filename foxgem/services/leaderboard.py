"""Top-N leaderboard read from the Redis rank indexes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from redis.asyncio import Redis

from foxgem.services.referrals import bonus_window_expired
from foxgem.storage.redis import Keyspace, from_epoch

PROFILE_MODE = "profile"
LEDGER_MODE = "ledger"


@dataclass(slots=True)
class RankedEntry:
    rank: int
    user_id: int
    display_name: str | None
    score: int


def _display_name(display_name: str | None, first_name: str | None, last_name: str | None) -> str | None:
    if display_name:
        return display_name
    full_name = " ".join(part for part in (first_name, last_name) if part)
    return full_name or None


class LeaderboardService:
    """Ranks users by best score, or by best score plus referral bonus.

    In ``ledger`` mode each user contributes their single best ledger entry
    and ties go to whoever reached the score first. In ``profile`` mode the
    ranking score is ``best_score + referral_bonus`` and ties go to the
    profile created first. A bonus whose weekly window has elapsed counts as
    zero even before the sweep or the next referral writes the reset.
    """

    def __init__(
        self,
        redis_client: Redis,
        keys: Keyspace,
        clock: Callable[[], datetime],
        mode: str = PROFILE_MODE,
        size: int = 10,
        bonus_window: timedelta = timedelta(days=7),
    ):
        self.redis = redis_client
        self.keys = keys
        self.clock = clock
        self.mode = mode
        self.size = size
        self.bonus_window = bonus_window

    @property
    def _index(self) -> tuple[str, str]:
        if self.mode == LEDGER_MODE:
            return self.keys.best_rank, "best_seq"
        return self.keys.total_rank, "seq"

    async def _details(self, rows, order_field: str) -> list[list[str | None]]:
        async with self.redis.pipeline(transaction=False) as pipe:
            for user_id, _ in rows:
                pipe.hmget(
                    self.keys.profile(user_id),
                    "display_name",
                    "first_name",
                    "last_name",
                    order_field,
                    "referral_bonus",
                    "last_bonus_reset",
                )
            return await pipe.execute()

    def _ranking_score(self, indexed: float, bonus: str | None, last_reset: str | None, now: datetime) -> int:
        score = int(indexed)
        if self.mode == PROFILE_MODE and bonus and int(bonus) > 0:
            if bonus_window_expired(from_epoch(last_reset), now, self.bonus_window):
                score -= int(bonus)
        return score

    async def top(self) -> list[RankedEntry]:
        key, order_field = self._index
        now = self.clock()
        batch = self.size * 2

        # Indexed scores never understate the ranking score, so reading can stop
        # once an indexed score falls below the current cut.
        candidates = []
        start = 0
        while True:
            rows = await self.redis.zrevrange(key, start, start + batch - 1, withscores=True)
            if not rows:
                break
            details = await self._details(rows, order_field)
            for (user_id, indexed), (display_name, first_name, last_name, arrival, bonus, last_reset) in zip(
                rows, details
            ):
                candidates.append(
                    (
                        -self._ranking_score(indexed, bonus, last_reset, now),
                        int(arrival) if arrival is not None else 0,
                        int(user_id),
                        _display_name(display_name, first_name, last_name),
                    )
                )
            start += len(rows)
            if len(rows) < batch:
                break
            if len(candidates) >= self.size:
                cut = -sorted(candidate[0] for candidate in candidates)[self.size - 1]
                if rows[-1][1] < cut:
                    break

        candidates.sort(key=lambda item: (item[0], item[1]))
        return [
            RankedEntry(rank=index, user_id=user_id, display_name=name, score=-negated)
            for index, (negated, _, user_id, name) in enumerate(candidates[: self.size], start=1)
        ]
