"""Append-only score ledger and the submission that feeds it."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from redis.asyncio import Redis

from foxgem.logger import get_logger
from foxgem.services.errors import ValidationError
from foxgem.services.profiles import display_args, require_user_id
from foxgem.storage.redis import Keyspace, from_epoch, to_epoch
from foxgem.storage.scripts import Scripts

log = get_logger("scores")

MAX_SCORE = 2_000_000_000


@dataclass(slots=True)
class ScoreEntry:
    user_id: int
    score: int
    timestamp: datetime
    seq: int


@dataclass(slots=True)
class SubmissionResult:
    entry: ScoreEntry
    best_score: int
    games_played: int
    created: bool


class ScoreService:
    def __init__(
        self,
        redis_client: Redis,
        keys: Keyspace,
        scripts: Scripts,
        clock: Callable[[], datetime],
    ):
        self.redis = redis_client
        self.keys = keys
        self.scripts = scripts
        self.clock = clock

    async def submit(
        self,
        user_id: int,
        score: int,
        display_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> SubmissionResult:
        """Append a ledger entry and upsert the submitter's profile in one step.

        Display fields that are passed replace the stored ones. The join date,
        referral code and referral counters are only ever written on creation.
        """
        user_id = require_user_id(user_id)
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= MAX_SCORE:
            raise ValidationError(f"score must be an integer between 0 and {MAX_SCORE}")

        stamp = to_epoch(self.clock())
        seq, created, best, games = await self.scripts.submit_score(
            keys=[
                self.keys.profile(user_id),
                self.keys.profiles,
                self.keys.total_rank,
                self.keys.sequence,
                self.keys.ledger(user_id),
                self.keys.best_rank,
            ],
            args=[
                user_id,
                stamp,
                score,
                *display_args(
                    display_name=display_name,
                    first_name=first_name,
                    last_name=last_name,
                ),
            ],
        )
        if created:
            log.info("Created profile for user %s on first submission", user_id)
        log.debug("User %s scored %s (best %s)", user_id, score, best)

        return SubmissionResult(
            entry=ScoreEntry(
                user_id=user_id,
                score=score,
                timestamp=from_epoch(stamp),
                seq=int(seq),
            ),
            best_score=int(best),
            games_played=int(games),
            created=bool(created),
        )

    async def history(self, user_id: int, limit: int = 5) -> list[ScoreEntry]:
        if limit <= 0:
            return []
        rows = await self.redis.lrange(self.keys.ledger(user_id), -limit, -1)
        entries = []
        for raw in reversed(rows):
            row = json.loads(raw)
            entries.append(
                ScoreEntry(
                    user_id=int(row["user_id"]),
                    score=int(row["score"]),
                    timestamp=from_epoch(str(row["timestamp"])),
                    seq=int(row["seq"]),
                )
            )
        return entries
