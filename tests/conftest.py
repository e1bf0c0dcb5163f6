from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient

from foxgem.config import Settings
from foxgem.main import create_app
from foxgem.services.referrals import generate_referral_code

START = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class CodeSequence:
    """Hands out the queued referral codes, then random ones."""

    def __init__(self, *codes: str):
        self.codes = list(codes)

    def queue(self, *codes: str) -> None:
        self.codes.extend(codes)

    def __call__(self) -> str:
        if self.codes:
            return self.codes.pop(0)
        return generate_referral_code()


class RecordingNotifier:
    def __init__(self):
        self.messages: list[tuple[int, str]] = []

    async def send_message(self, user_id: int, text: str) -> None:
        self.messages.append((user_id, text))


def new_fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def codes() -> CodeSequence:
    return CodeSequence()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_client(clock, codes, notifier):
    @contextmanager
    def factory(redis_client=None, notifier_override=None, **settings_overrides):
        settings = Settings(**{"key_prefix": "test", "sweep_interval_seconds": 0, **settings_overrides})
        app = create_app(
            settings,
            redis_client=redis_client if redis_client is not None else new_fake_redis(),
            notifier=notifier_override if notifier_override is not None else notifier,
            clock=clock,
            code_factory=codes,
        )
        with TestClient(app) as test_client:
            yield test_client

    return factory


@pytest.fixture()
def client(make_client):
    with make_client() as api:
        yield api


@pytest.fixture()
def ledger_client(make_client):
    with make_client(leaderboard_mode="ledger") as api:
        yield api
