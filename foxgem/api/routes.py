"""HTTP route handlers for scores, profiles, the leaderboard, referrals and health."""

from __future__ import annotations

import time
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Request
from fastapi.responses import PlainTextResponse
from redis.exceptions import RedisError

from foxgem.api.errors import APIError
from foxgem.logger import get_logger
from foxgem.models.schemas import (
    HealthResponse,
    LeaderboardResponse,
    LeaderboardRow,
    ProfileOut,
    ProfileSubmission,
    ReferralCodeResponse,
    ReferralRequest,
    ReferralResponse,
    SaveResponse,
    SaveUserResponse,
    ScoreEntryOut,
    ScoreSubmission,
    UserResponse,
)
from foxgem.services.errors import AlreadyAttributed, InvalidCode, NotFound, StoreUnavailable
from foxgem.services.leaderboard import LeaderboardService
from foxgem.services.notifications import NotificationDispatcher
from foxgem.services.profiles import ProfileStore, UserProfile
from foxgem.services.referrals import ReferralService
from foxgem.services.scores import ScoreEntry, ScoreService

log = get_logger("api")

router = APIRouter(prefix="/api")
root_router = APIRouter()


def get_profiles(request: Request) -> ProfileStore:
    return request.app.state.profiles


def get_scores(request: Request) -> ScoreService:
    return request.app.state.scores


def get_leaderboard_service(request: Request) -> LeaderboardService:
    return request.app.state.leaderboard_service


def get_referrals(request: Request) -> ReferralService:
    return request.app.state.referrals


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def _entry_out(entry: ScoreEntry) -> ScoreEntryOut:
    return ScoreEntryOut(user_id=entry.user_id, score=entry.score, timestamp=entry.timestamp)


def _profile_out(profile: UserProfile, referral_bonus: int) -> ProfileOut:
    return ProfileOut(**{**asdict(profile), "referral_bonus": referral_bonus})


@root_router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def banner() -> str:
    return "FoxGem Backend is LIVE!"


@router.post("/save", response_model=SaveResponse)
async def save_score(
    payload: ScoreSubmission,
    background_tasks: BackgroundTasks,
    scores: ScoreService = Depends(get_scores),
    referrals: ReferralService = Depends(get_referrals),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SaveResponse:
    result = await scores.submit(
        user_id=payload.user_id,
        score=payload.score,
        display_name=payload.display_name,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )

    # The score is already stored; neither a bad referral code nor a store
    # failure during attribution fails the save.
    referral_applied = None
    if payload.referrer_code:
        try:
            referral = await referrals.attribute_referral(payload.referrer_code, payload.user_id)
        except (InvalidCode, AlreadyAttributed) as exc:
            log.info("Referral code ignored for user %s: %s", payload.user_id, exc)
            referral_applied = False
        except (RedisError, StoreUnavailable) as exc:
            log.error("Referral attribution failed for user %s: %s", payload.user_id, exc, exc_info=True)
            referral_applied = False
        else:
            referral_applied = True
            background_tasks.add_task(
                dispatcher.referral_joined,
                referral.referrer_id,
                referral.referral_count,
                referral.referral_bonus,
            )

    background_tasks.add_task(
        dispatcher.score_saved, payload.user_id, payload.score, result.best_score
    )
    return SaveResponse(
        success=True,
        entry=_entry_out(result.entry),
        best_score=result.best_score,
        games_played=result.games_played,
        referral_applied=referral_applied,
    )


@router.post("/save-user", response_model=SaveUserResponse)
async def save_user(
    payload: ProfileSubmission,
    profiles: ProfileStore = Depends(get_profiles),
    referrals: ReferralService = Depends(get_referrals),
) -> SaveUserResponse:
    profile, created = await profiles.upsert(
        payload.user_id,
        display_name=payload.display_name,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return SaveUserResponse(
        success=True,
        created=created,
        user=_profile_out(profile, referrals.effective_bonus(profile)),
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> LeaderboardResponse:
    rows = await service.top()
    return LeaderboardResponse(
        mode=service.mode,
        results=[
            LeaderboardRow(rank=r.rank, user_id=r.user_id, display_name=r.display_name, score=r.score)
            for r in rows
        ],
    )


@router.get("/user/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int = Path(ge=0),
    profiles: ProfileStore = Depends(get_profiles),
    scores: ScoreService = Depends(get_scores),
    referrals: ReferralService = Depends(get_referrals),
) -> UserResponse:
    profile = await profiles.get(user_id)
    if profile is None:
        return UserResponse()

    bonus = referrals.effective_bonus(profile)
    recent = await scores.history(user_id)
    return UserResponse(
        user=_profile_out(profile, bonus),
        best_score=profile.best_score,
        games_played=profile.games_played,
        referral_bonus=bonus,
        recent_scores=[_entry_out(entry) for entry in recent],
    )


@router.get("/referral/{user_id}", response_model=ReferralCodeResponse)
async def get_referral_code(
    request: Request,
    user_id: int = Path(ge=0),
    referrals: ReferralService = Depends(get_referrals),
) -> ReferralCodeResponse:
    try:
        code = await referrals.issue_referral_code(user_id)
    except NotFound as exc:
        raise APIError(
            code="NOT_FOUND",
            message="User has no profile yet; submit a score first",
            status_code=404,
        ) from exc

    link_base = request.app.state.settings.referral_link_base
    return ReferralCodeResponse(user_id=user_id, code=code, link=f"{link_base}{code}")


@router.post("/referral", response_model=ReferralResponse)
async def post_referral(
    payload: ReferralRequest,
    background_tasks: BackgroundTasks,
    referrals: ReferralService = Depends(get_referrals),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ReferralResponse:
    result = await referrals.attribute_referral(payload.referrer_code, payload.new_user_id)
    background_tasks.add_task(
        dispatcher.referral_joined,
        result.referrer_id,
        result.referral_count,
        result.referral_bonus,
    )
    return ReferralResponse(
        success=True,
        referrer_id=result.referrer_id,
        referral_count=result.referral_count,
        referral_bonus=result.referral_bonus,
        window_reset=result.window_reset,
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    try:
        # Health reports backing Redis connectivity, not just process liveness.
        is_ready = await request.app.state.redis.ping()
    except Exception as exc:
        raise APIError(
            code="STORE_UNAVAILABLE",
            message="Redis health check failed",
            status_code=503,
        ) from exc

    if not is_ready:
        raise APIError(
            code="STORE_UNAVAILABLE",
            message="Redis health check failed",
            status_code=503,
        )
    return HealthResponse(
        status="ok",
        store="connected",
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
    )
