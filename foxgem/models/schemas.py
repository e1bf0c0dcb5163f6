"""Pydantic request/response schemas for the public game API.

Bodies are camelCase on the wire, matching the web client. Input models also
accept snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

REFERRAL_CODE_PATTERN = r"^[A-Za-z0-9]{4,16}$"
ReferralCode = Annotated[str, StringConstraints(pattern=REFERRAL_CODE_PATTERN)]
UserId = Annotated[int, Field(ge=0)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, max_length=64)]


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfileSubmission(CamelModel):
    user_id: UserId
    display_name: Name | None = None
    first_name: Name | None = None
    last_name: Name | None = None


class ScoreSubmission(ProfileSubmission):
    score: int = Field(ge=0, le=2_000_000_000)
    referrer_code: ReferralCode | None = None


class ScoreEntryOut(CamelModel):
    user_id: int
    score: int
    timestamp: datetime


class ProfileOut(CamelModel):
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
    last_played: datetime | None = None


class SaveResponse(CamelModel):
    success: bool
    entry: ScoreEntryOut
    best_score: int
    games_played: int
    referral_applied: bool | None = None


class SaveUserResponse(CamelModel):
    success: bool
    created: bool
    user: ProfileOut


class LeaderboardRow(CamelModel):
    rank: int
    user_id: int
    display_name: str | None = None
    score: int


class LeaderboardResponse(CamelModel):
    mode: Literal["profile", "ledger"]
    results: list[LeaderboardRow]


class UserResponse(CamelModel):
    user: ProfileOut | None = None
    best_score: int = 0
    games_played: int = 0
    referral_bonus: int = 0
    recent_scores: list[ScoreEntryOut] = []


class ReferralCodeResponse(CamelModel):
    user_id: int
    code: str
    link: str


class ReferralRequest(CamelModel):
    referrer_code: ReferralCode
    new_user_id: UserId


class ReferralResponse(CamelModel):
    success: bool
    referrer_id: int
    referral_count: int
    referral_bonus: int
    window_reset: bool


class HealthResponse(CamelModel):
    status: Literal["ok"]
    store: Literal["connected"]
    uptime_seconds: float
