"""Referral codes, referral attribution and the weekly bonus window."""

from __future__ import annotations

import asyncio
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from redis.asyncio import Redis

from foxgem.logger import get_logger
from foxgem.services.errors import AlreadyAttributed, InvalidCode, NotFound, StoreUnavailable
from foxgem.services.profiles import ProfileStore, UserProfile, require_user_id
from foxgem.storage.redis import Keyspace, to_epoch
from foxgem.storage.scripts import Scripts

log = get_logger("referrals")

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_referral_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def bonus_window_expired(last_reset: datetime | None, now: datetime, window: timedelta) -> bool:
    if last_reset is None:
        return True
    return now - last_reset >= window


@dataclass(slots=True)
class ReferralResult:
    referrer_id: int
    new_user_id: int
    referral_count: int
    referral_bonus: int
    window_reset: bool


class ReferralService:
    def __init__(
        self,
        redis_client: Redis,
        keys: Keyspace,
        scripts: Scripts,
        profiles: ProfileStore,
        clock: Callable[[], datetime],
        reward: int = 5,
        window: timedelta = timedelta(days=7),
        max_attempts: int = 5,
        code_factory: Callable[[], str] = generate_referral_code,
    ):
        self.redis = redis_client
        self.keys = keys
        self.scripts = scripts
        self.profiles = profiles
        self.clock = clock
        self.reward = reward
        self.window = window
        self.max_attempts = max_attempts
        self.code_factory = code_factory

    async def issue_referral_code(self, user_id: int) -> str:
        """Return the user's referral code, generating one on first request.

        Codes are claimed through ``HSETNX`` on the code index in the same
        script that stores them on the profile, so a colliding draw is
        detected and retried instead of silently shared.
        """
        user_id = require_user_id(user_id)
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.code_factory().upper()
            status, *payload = await self.scripts.issue_referral_code(
                keys=[self.keys.profile(user_id), self.keys.referral_codes],
                args=[user_id, candidate],
            )
            if status == -1:
                raise NotFound(f"User {user_id} has no profile")
            if status == 1:
                code = payload[0]
                if code == candidate:
                    log.info("Issued referral code %s to user %s", code, user_id)
                return code
            log.warning(
                "Referral code collision for user %s (attempt %s/%s)",
                user_id,
                attempt,
                self.max_attempts,
            )
        raise StoreUnavailable(
            f"Could not allocate a unique referral code after {self.max_attempts} attempts"
        )

    async def attribute_referral(self, referrer_code: str, new_user_id: int) -> ReferralResult:
        new_user_id = require_user_id(new_user_id)
        referrer_id = await self.profiles.find_by_referral_code(referrer_code)
        if referrer_id is None:
            raise InvalidCode(f"Referral code {referrer_code!r} is not valid")
        if referrer_id == new_user_id:
            raise InvalidCode("Users cannot redeem their own referral code")

        status, *payload = await self.scripts.attribute_referral(
            keys=[
                self.keys.profile(referrer_id),
                self.keys.profile(new_user_id),
                self.keys.total_rank,
            ],
            args=[
                referrer_id,
                new_user_id,
                to_epoch(self.clock()),
                int(self.window.total_seconds()),
                self.reward,
            ],
        )
        if status == -1:
            # The code index outlived its profile.
            raise InvalidCode(f"Referral code {referrer_code!r} is not valid")
        if status == -2:
            raise NotFound(f"User {new_user_id} has no profile")
        if status == -3:
            raise AlreadyAttributed(f"User {new_user_id} was already invited by user {payload[0]}")

        referral_count, referral_bonus, window_reset = payload
        if window_reset:
            log.info("Referral bonus window for user %s expired and was reset", referrer_id)
        log.info("User %s joined through user %s's referral code", new_user_id, referrer_id)
        return ReferralResult(
            referrer_id=referrer_id,
            new_user_id=new_user_id,
            referral_count=int(referral_count),
            referral_bonus=int(referral_bonus),
            window_reset=bool(window_reset),
        )

    def window_expired(self, profile: UserProfile) -> bool:
        return bonus_window_expired(profile.last_bonus_reset, self.clock(), self.window)

    def effective_bonus(self, profile: UserProfile) -> int:
        """Bonus as seen right now, counting an elapsed window as already reset."""
        if self.window_expired(profile):
            return 0
        return profile.referral_bonus

    async def sweep_bonuses(self) -> int:
        """Zero every positive bonus balance. Returns the number of profiles reset."""
        stamp = to_epoch(self.clock())
        reset = 0
        async for user_id in self.profiles.user_ids():
            reset += await self.scripts.reset_bonus(
                keys=[self.keys.profile(user_id), self.keys.total_rank],
                args=[user_id, stamp],
            )
        log.info("Weekly referral sweep reset %s bonus balances", reset)
        return reset

    async def sweep_if_due(self, interval_seconds: float) -> bool:
        """Run the sweep when ``interval_seconds`` have passed since the last one.

        The last sweep time lives in Redis, so restarts keep the schedule. The
        first call on an empty store only starts the clock.
        """
        now = self.clock()
        last = await self.redis.get(self.keys.last_sweep)
        if last is None:
            await self.redis.set(self.keys.last_sweep, to_epoch(now), nx=True)
            return False
        if now.timestamp() - float(last) < interval_seconds:
            return False
        await self.sweep_bonuses()
        await self.redis.set(self.keys.last_sweep, to_epoch(now))
        return True


async def run_weekly_sweep(
    service: ReferralService,
    interval_seconds: float,
    poll_seconds: float = 3600,
) -> None:
    """Background loop that checks every ``poll_seconds`` whether a sweep is due."""
    poll_seconds = min(poll_seconds, interval_seconds)
    while True:
        try:
            await service.sweep_if_due(interval_seconds)
        except Exception:
            log.exception("Referral bonus sweep failed")
        await asyncio.sleep(poll_seconds)
