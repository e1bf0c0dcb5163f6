"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta

from dotenv import load_dotenv

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
LEADERBOARD_MODES = ("profile", "ledger")
WEEK_SECONDS = 7 * 24 * 60 * 60


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _split_csv(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str = DEFAULT_REDIS_URL
    key_prefix: str = "fg"
    leaderboard_mode: str = "profile"
    leaderboard_size: int = 10
    referral_reward: int = 5
    referral_window_days: int = 7
    referral_code_attempts: int = 5
    referral_link_base: str = "https://t.me/FoxGemBot?startapp="
    telegram_bot_token: str | None = field(default=None, repr=False)
    telegram_api_base: str = "https://api.telegram.org"
    notify_timeout: float = 5.0
    sweep_interval_seconds: int = WEEK_SECONDS
    log_level: str = "INFO"
    # The browser game is served from another origin.
    cors_origins: tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        if self.leaderboard_mode not in LEADERBOARD_MODES:
            raise RuntimeError(
                f"leaderboard mode must be one of {', '.join(LEADERBOARD_MODES)}, "
                f"got {self.leaderboard_mode!r}"
            )

    @property
    def referral_window(self) -> timedelta:
        return timedelta(days=self.referral_window_days)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(override=False)
        return cls(
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
            key_prefix=os.getenv("FOXGEM_KEY_PREFIX", "fg"),
            leaderboard_mode=os.getenv("FOXGEM_LEADERBOARD_MODE", "profile").strip().lower(),
            leaderboard_size=_env_int("FOXGEM_LEADERBOARD_SIZE", 10, minimum=1),
            referral_reward=_env_int("FOXGEM_REFERRAL_REWARD", 5),
            referral_window_days=_env_int("FOXGEM_REFERRAL_WINDOW_DAYS", 7, minimum=1),
            referral_code_attempts=_env_int("FOXGEM_REFERRAL_CODE_ATTEMPTS", 5, minimum=1),
            referral_link_base=os.getenv(
                "FOXGEM_REFERRAL_LINK_BASE", "https://t.me/FoxGemBot?startapp="
            ),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            telegram_api_base=os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org"),
            notify_timeout=_env_float("FOXGEM_NOTIFY_TIMEOUT", 5.0),
            sweep_interval_seconds=_env_int("FOXGEM_SWEEP_INTERVAL_SECONDS", WEEK_SECONDS),
            log_level=os.getenv("FOXGEM_LOG_LEVEL", "INFO").upper(),
            cors_origins=_split_csv(os.getenv("FOXGEM_CORS_ORIGINS", "*")),
        )
