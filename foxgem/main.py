"""FastAPI application wiring for routes, error handlers, services and lifespan."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from foxgem.api.errors import APIError
from foxgem.api.routes import root_router, router
from foxgem.config import Settings
from foxgem.logger import configure_logging, get_logger
from foxgem.services.errors import ServiceError, StoreUnavailable, ValidationError
from foxgem.services.leaderboard import LeaderboardService
from foxgem.services.notifications import (
    NotificationDispatcher,
    Notifier,
    NullNotifier,
    TelegramNotifier,
)
from foxgem.services.profiles import ProfileStore
from foxgem.services.referrals import ReferralService, generate_referral_code, run_weekly_sweep
from foxgem.services.scores import ScoreService
from foxgem.storage.redis import Keyspace, create_redis_client
from foxgem.storage.scripts import register_scripts

log = get_logger("main")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_notifier(settings: Settings) -> Notifier:
    if not settings.telegram_bot_token:
        log.warning("TELEGRAM_BOT_TOKEN is not set; chat notifications are disabled")
        return NullNotifier()
    return TelegramNotifier(settings.telegram_bot_token, api_base=settings.telegram_api_base)


def create_app(
    settings: Settings | None = None,
    *,
    redis_client: Redis | None = None,
    notifier: Notifier | None = None,
    clock: Callable[[], datetime] = utcnow,
    code_factory: Callable[[], str] = generate_referral_code,
) -> FastAPI:
    """Build the app. Collaborators passed in are used as-is and left open on shutdown."""

    config = settings or Settings.from_env()

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        configure_logging(config.log_level)

        client = redis_client if redis_client is not None else create_redis_client(config.redis_url)
        keys = Keyspace(config.key_prefix)
        scripts = register_scripts(client)

        profiles = ProfileStore(client, keys, scripts, clock)
        referrals = ReferralService(
            client,
            keys,
            scripts,
            profiles,
            clock,
            reward=config.referral_reward,
            window=config.referral_window,
            max_attempts=config.referral_code_attempts,
            code_factory=code_factory,
        )

        app.state.settings = config
        app.state.redis = client
        app.state.started_at = time.monotonic()
        app.state.profiles = profiles
        app.state.scores = ScoreService(client, keys, scripts, clock)
        app.state.leaderboard_service = LeaderboardService(
            client,
            keys,
            clock,
            mode=config.leaderboard_mode,
            size=config.leaderboard_size,
            bonus_window=config.referral_window,
        )
        app.state.referrals = referrals
        app.state.dispatcher = NotificationDispatcher(
            notifier if notifier is not None else build_notifier(config),
            timeout=config.notify_timeout,
        )

        sweep_task = None
        if config.sweep_interval_seconds > 0:
            sweep_task = asyncio.create_task(run_weekly_sweep(referrals, config.sweep_interval_seconds))
        log.info("FoxGem backend started in %s leaderboard mode", config.leaderboard_mode)
        try:
            yield
        finally:
            if sweep_task is not None:
                sweep_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweep_task
            if redis_client is None:
                await client.aclose()

    app = FastAPI(title="FoxGem API", version="1.0.0", lifespan=app_lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(APIError)
    async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
        return exc.to_response()

    @app.exception_handler(ServiceError)
    async def service_error_handler(_: Request, exc: ServiceError) -> JSONResponse:
        error = APIError.from_service_error(exc)
        if error.status_code >= 500:
            log.error("Request failed: %s", exc)
        return error.to_response()

    @app.exception_handler(RedisError)
    async def store_error_handler(_: Request, exc: RedisError) -> JSONResponse:
        log.error("Redis call failed: %s", exc, exc_info=exc)
        return APIError(
            code=StoreUnavailable.code,
            message="Backing store is unavailable",
            status_code=500,
        ).to_response()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return APIError(
            code=ValidationError.code,
            message="Request validation failed",
            status_code=400,
            details={"errors": jsonable_encoder(exc.errors())},
        ).to_response()

    app.include_router(root_router)
    app.include_router(router)
    return app


app = create_app()
