from __future__ import annotations

import pytest


def post_score(client, user_id: int, score: int, **extra):
    resp = client.post("/api/save", json={"userId": user_id, "score": score, **extra})
    assert resp.status_code == 200
    return resp


def seed_scores(client):
    players = [(1, "alice", 100), (2, "bob", 150), (3, "cara", 120)]
    for user_id, name, score in players:
        post_score(client, user_id, score, displayName=name)


@pytest.fixture(params=["profile", "ledger"])
def any_mode_client(request, make_client):
    with make_client(leaderboard_mode=request.param) as api:
        yield api


def test_empty_leaderboard_is_not_an_error(any_mode_client):
    response = any_mode_client.get("/api/leaderboard")
    assert response.status_code == 200
    assert response.json()["results"] == []


def test_leaderboard_sorted_with_one_based_ranks(any_mode_client):
    seed_scores(any_mode_client)

    payload = any_mode_client.get("/api/leaderboard").json()
    assert [row["displayName"] for row in payload["results"]] == ["bob", "cara", "alice"]
    assert [row["score"] for row in payload["results"]] == [150, 120, 100]
    assert [row["rank"] for row in payload["results"]] == [1, 2, 3]


def test_one_row_per_user_at_best_score(any_mode_client):
    post_score(any_mode_client, 1, 100, displayName="A")
    post_score(any_mode_client, 1, 200, displayName="A")
    post_score(any_mode_client, 1, 150, displayName="A")

    results = any_mode_client.get("/api/leaderboard").json()["results"]
    assert results == [{"rank": 1, "userId": 1, "displayName": "A", "score": 200}]


def test_leaderboard_limited_to_top_ten(any_mode_client):
    for user_id in range(1, 13):
        post_score(any_mode_client, user_id, user_id * 10)

    results = any_mode_client.get("/api/leaderboard").json()["results"]
    assert len(results) == 10
    assert [row["userId"] for row in results] == list(range(12, 2, -1))


def test_ties_at_the_cut_go_to_earlier_arrivals(any_mode_client):
    for user_id in (40, 30, 20, 10, 11, 12, 13, 14, 15, 16, 17, 18):
        post_score(any_mode_client, user_id, 50)

    results = any_mode_client.get("/api/leaderboard").json()["results"]
    assert [row["userId"] for row in results] == [40, 30, 20, 10, 11, 12, 13, 14, 15, 16]


def test_profile_mode_breaks_ties_by_profile_age(client):
    post_score(client, 1, 50)
    post_score(client, 2, 100)
    post_score(client, 1, 100)

    results = client.get("/api/leaderboard").json()["results"]
    assert [row["userId"] for row in results] == [1, 2]


def test_ledger_mode_breaks_ties_by_first_entry_to_reach_score(ledger_client):
    post_score(ledger_client, 1, 50)
    post_score(ledger_client, 2, 100)
    post_score(ledger_client, 1, 100)

    payload = ledger_client.get("/api/leaderboard").json()
    assert payload["mode"] == "ledger"
    assert [row["userId"] for row in payload["results"]] == [2, 1]


def test_profile_mode_adds_referral_bonus(client, codes):
    codes.queue("BONUS1")
    post_score(client, 1, 100)
    post_score(client, 2, 103)
    client.get("/api/referral/1")
    post_score(client, 3, 1, referrerCode="BONUS1")

    results = client.get("/api/leaderboard").json()["results"]
    assert [(row["userId"], row["score"]) for row in results] == [(1, 105), (2, 103), (3, 1)]


def test_expired_bonus_drops_out_of_profile_ranking(client, clock, codes):
    codes.queue("STALE1")
    post_score(client, 1, 100)
    post_score(client, 2, 103)
    client.get("/api/referral/1")
    post_score(client, 3, 1, referrerCode="STALE1")

    clock.advance(days=8)
    results = client.get("/api/leaderboard").json()["results"]
    assert [(row["userId"], row["score"]) for row in results] == [(2, 103), (1, 100), (3, 1)]
    assert client.get("/api/user/1").json()["referralBonus"] == 0


def test_expired_bonus_does_not_hold_a_place_at_the_cut(make_client, clock, codes):
    codes.queue("STALE2")
    with make_client(leaderboard_size=1) as api:
        post_score(api, 1, 100)
        post_score(api, 2, 103)
        api.get("/api/referral/1")
        post_score(api, 3, 1, referrerCode="STALE2")
        assert api.get("/api/leaderboard").json()["results"][0]["userId"] == 1

        clock.advance(days=7)
        results = api.get("/api/leaderboard").json()["results"]
        assert [(row["userId"], row["score"]) for row in results] == [(2, 103)]


def test_ledger_mode_ignores_referral_bonus(ledger_client, codes):
    codes.queue("BONUS2")
    post_score(ledger_client, 1, 100)
    post_score(ledger_client, 2, 103)
    ledger_client.get("/api/referral/1")
    post_score(ledger_client, 3, 1, referrerCode="BONUS2")

    results = ledger_client.get("/api/leaderboard").json()["results"]
    assert [(row["userId"], row["score"]) for row in results] == [(2, 103), (1, 100), (3, 1)]


def test_profiles_without_scores_only_rank_in_profile_mode(client, ledger_client):
    for api in (client, ledger_client):
        api.post("/api/save-user", json={"userId": 8, "firstName": "Nia", "lastName": "Lee"})

    assert client.get("/api/leaderboard").json()["results"] == [
        {"rank": 1, "userId": 8, "displayName": "Nia Lee", "score": 0}
    ]
    assert ledger_client.get("/api/leaderboard").json()["results"] == []


def test_zero_score_entries_rank_in_ledger_mode(ledger_client):
    post_score(ledger_client, 4, 0, displayName="zero")

    results = ledger_client.get("/api/leaderboard").json()["results"]
    assert results == [{"rank": 1, "userId": 4, "displayName": "zero", "score": 0}]
