"""User profiles stored as Redis hashes, one per chat identity."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime

from redis.asyncio import Redis

from foxgem.logger import get_logger
from foxgem.services.errors import NotFound, ValidationError
from foxgem.storage.redis import Keyspace, from_epoch, to_epoch
from foxgem.storage.scripts import Scripts

log = get_logger("profiles")

DISPLAY_FIELDS = ("display_name", "first_name", "last_name")


@dataclass(slots=True)
class UserProfile:
    user_id: int
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    join_date: datetime | None = None
    referral_code: str | None = None
    invited_by: int | None = None
    referral_count: int = 0
    referral_bonus: int = 0
    last_bonus_reset: datetime | None = None
    best_score: int = 0
    games_played: int = 0
    last_played: datetime | None = None

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> "UserProfile":
        invited_by = data.get("invited_by")
        return cls(
            user_id=int(data["user_id"]),
            display_name=data.get("display_name"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            join_date=from_epoch(data.get("join_date")),
            referral_code=data.get("referral_code"),
            invited_by=int(invited_by) if invited_by else None,
            referral_count=int(data.get("referral_count", 0)),
            referral_bonus=int(data.get("referral_bonus", 0)),
            last_bonus_reset=from_epoch(data.get("last_bonus_reset")),
            best_score=int(data.get("best_score", 0)),
            games_played=int(data.get("games_played", 0)),
            last_played=from_epoch(data.get("last_played")),
        )


def require_user_id(user_id: object) -> int:
    # bool is an int subclass but never a valid identity
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id < 0:
        raise ValidationError(f"userId must be a non-negative integer, got {user_id!r}")
    return user_id


def display_args(**fields: str | None) -> list[str]:
    """Flatten the supplied display fields into field/value script arguments."""

    args: list[str] = []
    for name in DISPLAY_FIELDS:
        value = fields.get(name)
        if value is not None:
            args.extend((name, value))
    return args


class ProfileStore:
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

    async def get(self, user_id: int) -> UserProfile | None:
        data = await self.redis.hgetall(self.keys.profile(user_id))
        if not data:
            return None
        return UserProfile.from_hash(data)

    async def require(self, user_id: int) -> UserProfile:
        profile = await self.get(user_id)
        if profile is None:
            raise NotFound(f"User {user_id} has no profile")
        return profile

    async def upsert(
        self,
        user_id: int,
        display_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[UserProfile, bool]:
        user_id = require_user_id(user_id)
        created = await self.scripts.upsert_profile(
            keys=[
                self.keys.profile(user_id),
                self.keys.profiles,
                self.keys.total_rank,
                self.keys.sequence,
            ],
            args=[
                user_id,
                to_epoch(self.clock()),
                *display_args(
                    display_name=display_name,
                    first_name=first_name,
                    last_name=last_name,
                ),
            ],
        )
        if created:
            log.info("Created profile for user %s", user_id)
        return await self.require(user_id), bool(created)

    async def find_by_referral_code(self, code: str) -> int | None:
        owner = await self.redis.hget(self.keys.referral_codes, code.upper())
        return int(owner) if owner is not None else None

    async def user_ids(self) -> AsyncIterator[int]:
        async for member in self.redis.sscan_iter(self.keys.profiles):
            yield int(member)
