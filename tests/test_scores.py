from __future__ import annotations

from datetime import datetime

import pytest


def post_score(client, user_id: int, score: int, **extra):
    return client.post("/api/save", json={"userId": user_id, "score": score, **extra})


def parse_time(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def test_save_creates_profile_and_ledger_entry(client, clock):
    response = post_score(client, 1, 100, displayName="Alice")
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["entry"]["userId"] == 1
    assert body["entry"]["score"] == 100
    assert parse_time(body["entry"]["timestamp"]) == clock.now
    assert body["bestScore"] == 100
    assert body["gamesPlayed"] == 1
    assert body["referralApplied"] is None

    user = client.get("/api/user/1").json()
    assert user["user"]["displayName"] == "Alice"
    assert parse_time(user["user"]["joinDate"]) == clock.now
    assert user["user"]["referralCount"] == 0
    assert user["user"]["referralBonus"] == 0


def test_best_score_keeps_the_maximum(client):
    post_score(client, 1, 100)
    lower = post_score(client, 1, 90)
    assert lower.json()["bestScore"] == 100
    assert lower.json()["gamesPlayed"] == 2

    higher = post_score(client, 1, 120)
    assert higher.json()["bestScore"] == 120
    assert higher.json()["gamesPlayed"] == 3


def test_resubmission_refreshes_names_but_not_join_date(client, clock):
    joined_at = clock.now
    post_score(client, 7, 10, displayName="fox", firstName="Ann")

    clock.advance(days=3)
    post_score(client, 7, 20, displayName="foxy")

    user = client.get("/api/user/7").json()["user"]
    assert user["displayName"] == "foxy"
    assert user["firstName"] == "Ann"
    assert parse_time(user["joinDate"]) == joined_at
    assert parse_time(user["lastPlayed"]) == clock.now


def test_resubmission_keeps_referral_state(client, codes):
    codes.queue("KEEP01")
    post_score(client, 1, 10)
    post_score(client, 2, 10)
    client.get("/api/referral/1")
    client.post("/api/referral", json={"referrerCode": "KEEP01", "newUserId": 2})

    post_score(client, 1, 50, displayName="again")

    user = client.get("/api/user/1").json()["user"]
    assert user["referralCode"] == "KEEP01"
    assert user["referralCount"] == 1
    assert user["referralBonus"] == 5


def test_user_without_submissions_reports_zeroes(client):
    response = client.get("/api/user/424242")
    assert response.status_code == 200
    body = response.json()
    assert body["user"] is None
    assert body["bestScore"] == 0
    assert body["gamesPlayed"] == 0
    assert body["recentScores"] == []


def test_user_reports_recent_scores_newest_first(client, clock):
    for score in (10, 30, 20):
        post_score(client, 5, score)
        clock.advance(minutes=1)

    body = client.get("/api/user/5").json()
    assert body["bestScore"] == 30
    assert body["gamesPlayed"] == 3
    assert [entry["score"] for entry in body["recentScores"]] == [20, 30, 10]


def test_save_user_upserts_without_a_score(client):
    first = client.post("/api/save-user", json={"userId": 9, "firstName": "Zoe", "lastName": "Fox"})
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["user"]["firstName"] == "Zoe"

    second = client.post("/api/save-user", json={"user_id": 9, "display_name": "zoe_f"})
    assert second.json()["created"] is False
    assert second.json()["user"]["displayName"] == "zoe_f"
    assert second.json()["user"]["lastName"] == "Fox"

    body = client.get("/api/user/9").json()
    assert body["gamesPlayed"] == 0
    assert body["bestScore"] == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"userId": 1, "score": -5},
        {"userId": -1, "score": 5},
        {"userId": "abc", "score": 5},
        {"userId": 1, "score": 10.5},
        {"userId": 1},
        {"userId": 1, "score": 5, "referrerCode": "no spaces"},
    ],
)
def test_malformed_submissions_are_rejected(client, payload):
    response = client.post("/api/save", json=payload)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get("/api/leaderboard").json()["results"] == []
