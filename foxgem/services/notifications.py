"""Best-effort chat notifications sent through the Telegram Bot API."""

from __future__ import annotations

import asyncio
from typing import Protocol

import httpx

from foxgem.logger import get_logger
from foxgem.services.errors import NotificationFailure

log = get_logger("notifications")


class Notifier(Protocol):
    async def send_message(self, user_id: int, text: str) -> None: ...


class NullNotifier:
    """Used when no bot token is configured."""

    async def send_message(self, user_id: int, text: str) -> None:
        log.debug("Notifications disabled, dropping message for user %s", user_id)


class TelegramNotifier:
    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = f"{api_base.rstrip('/')}/bot{token}/sendMessage"
        self.timeout = timeout
        self.transport = transport

    async def send_message(self, user_id: int, text: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.post(self.url, json={"chat_id": user_id, "text": text})
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                raise NotificationFailure(f"sendMessage to {user_id} failed: {exc}") from exc


class NotificationDispatcher:
    """Runs notifier calls under a timeout and keeps their failures out of requests."""

    def __init__(self, notifier: Notifier, timeout: float = 5.0):
        self.notifier = notifier
        self.timeout = timeout

    async def dispatch(self, user_id: int, text: str) -> bool:
        try:
            await asyncio.wait_for(self.notifier.send_message(user_id, text), timeout=self.timeout)
        except asyncio.TimeoutError:
            log.warning("Notification to user %s timed out after %ss", user_id, self.timeout)
            return False
        except NotificationFailure as exc:
            log.warning("Notification to user %s failed: %s", user_id, exc)
            return False
        return True

    async def score_saved(self, user_id: int, score: int, best_score: int) -> bool:
        if score >= best_score:
            text = f"New best score: {score}!"
        else:
            text = f"You scored {score}. Your best is still {best_score}."
        return await self.dispatch(user_id, text)

    async def referral_joined(self, referrer_id: int, referral_count: int, referral_bonus: int) -> bool:
        text = (
            f"A friend joined with your referral code! "
            f"Referrals: {referral_count}, bonus this week: {referral_bonus}."
        )
        return await self.dispatch(referrer_id, text)
