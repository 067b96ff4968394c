import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from courtrounds.dependencies import get_controller, get_player_store
from courtrounds.exceptions import ConcurrentModification
from courtrounds.main import app, unhandled_exception_handler
from courtrounds.services import RoundProgressionController
from courtrounds.stores import InMemoryPlayerStore, InMemoryTournamentStore

from conftest import RecordingChannel, make_players

BASE = "/api/v0"


class ConflictingTournamentStore(InMemoryTournamentStore):
    async def save(self, doc, expected_version):
        raise ConcurrentModification(doc.id, expected_version)


@pytest.fixture
def api():
    controller = RoundProgressionController(
        tournaments=InMemoryTournamentStore(),
        players=InMemoryPlayerStore(make_players(*([1000] * 8))),
        events=RecordingChannel(),
    )
    app.dependency_overrides[get_controller] = lambda: controller
    app.dependency_overrides[get_player_store] = lambda: controller.players
    with TestClient(app) as client:
        client.controller = controller
        yield client
    app.dependency_overrides.clear()


def _create(client, **overrides):
    body = {
        "name": "Thursday ladder",
        "creatorId": "p1",
        "courtNumbers": ["1"],
        "maxPlayers": 4,
        "numberOfRounds": 2,
    }
    body.update(overrides)
    return client.post(f"{BASE}/tournaments", json=body)


def _start(client):
    tid = _create(client).json()["id"]
    for pid in ("p2", "p3", "p4"):
        resp = client.post(
            f"{BASE}/tournaments/{tid}/registrations", json={"playerId": pid}
        )
        assert resp.status_code == 200
    return tid, resp.json()


def _assert_problem(resp, status, code):
    assert resp.status_code == status
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["code"] == code


def test_healthz(api):
    assert api.get("/healthz").json() == {"status": "ok"}
    assert api.get(f"{BASE[:-3]}/healthz").json() == {"status": "ok"}


def test_create_and_fetch_player(api):
    resp = api.post(f"{BASE}/players", json={"id": "ana", "name": "  Ana  "})
    assert resp.status_code == 200
    assert resp.json() == {
        "id": "ana",
        "name": "Ana",
        "rating": 1000,
        "wins": 0,
        "losses": 0,
        "tournamentHistory": [],
    }

    assert api.get(f"{BASE}/players/ana").json()["name"] == "Ana"
    _assert_problem(api.post(f"{BASE}/players", json={"id": "ana", "name": "Ana"}), 400, "player_exists")
    _assert_problem(api.get(f"{BASE}/players/ghost"), 404, "player_not_found")
    _assert_problem(api.post(f"{BASE}/players", json={"name": "   "}), 422, "invalid_player_name")


def test_create_tournament(api):
    resp = _create(api, scheduledAt="2026-11-05T18:00:00+01:00", location="Club courts")

    assert resp.status_code == 200
    data = resp.json()
    assert data["registeredPlayerIds"] == ["p1"]
    assert data["courtNumbers"] == ["1"]
    assert data["gamesPerSet"] == 6
    assert data["scheduledAt"].startswith("2026-11-05T17:00:00")
    assert data["version"] == 0


def test_create_tournament_rejects_bad_settings(api):
    _assert_problem(_create(api, maxPlayers=8), 422, "invalid_configuration")
    _assert_problem(_create(api, visibility="private"), 422, "invalid_configuration")
    assert _create(api, scheduledAt="2026-11-05T18:00:00").status_code == 422
    assert _create(api, unknownField=True).status_code == 422


def test_full_roster_starts_round_one(api):
    tid, doc = _start(api)

    assert doc["registrationClosed"] is True
    assert len(doc["rounds"]) == 1
    state = api.get(f"{BASE}/tournaments/{tid}").json()
    assert state["state"] == "round_in_progress"
    assert state["currentRound"] == 1


def test_score_submission_and_standings(api):
    tid, doc = _start(api)
    set_id = doc["rounds"][0]["sets"][0]["id"]

    resp = api.post(
        f"{BASE}/tournaments/{tid}/sets/{set_id}/score",
        json={"team1Games": 6, "team2Games": 4},
    )

    assert resp.status_code == 200
    outcome = resp.json()
    assert outcome["set"]["isCompleted"] is True
    assert outcome["state"] == "round_in_progress"
    assert outcome["advanceError"] is None
    assert [p["rating"] for p in outcome["ratings"]] == [1003, 1003, 997, 997]
    assert len(outcome["tournament"]["rounds"]) == 2

    standings = api.get(f"{BASE}/tournaments/{tid}/standings").json()
    assert standings["isFinal"] is False
    assert standings["winners"] == ["p1", "p4"]
    assert standings["standings"][0] == {
        "playerId": "p1",
        "wins": 1,
        "points": 6,
        "setsPlayed": 1,
        "byes": 0,
    }

    _assert_problem(
        api.post(
            f"{BASE}/tournaments/{tid}/sets/{set_id}/score",
            json={"team1Games": 6, "team2Games": 1},
        ),
        409,
        "set_already_completed",
    )


def test_score_errors(api):
    tid, doc = _start(api)
    set_id = doc["rounds"][0]["sets"][0]["id"]
    url = f"{BASE}/tournaments/{tid}/sets/{set_id}/score"

    _assert_problem(
        api.post(f"{BASE}/tournaments/{tid}/sets/nope/score", json={"team1Games": 6, "team2Games": 1}),
        404,
        "unknown_set",
    )
    _assert_problem(api.post(url, json={"team1Games": 9, "team2Games": 1}), 422, "invalid_score")
    _assert_problem(api.post(url, json={"team1Games": 4, "team2Games": 4}), 422, "invalid_score")
    _assert_problem(api.post(url, json={"team1Games": True, "team2Games": 1}), 422, "invalid_score")
    _assert_problem(api.post(url, json={"team1Games": 6}), 422, "validation_error")


def test_advance_needs_completed_round(api):
    tid, _ = _start(api)

    _assert_problem(api.post(f"{BASE}/tournaments/{tid}/advance"), 409, "invalid_transition")


def test_close_registration_needs_players(api):
    tid = _create(api, maxPlayers=8, courtNumbers=["1", "2"]).json()["id"]

    _assert_problem(
        api.post(f"{BASE}/tournaments/{tid}/close-registration"), 409, "insufficient_players"
    )


def test_registration_errors(api):
    tid = _create(api, visibility="private", inviteCode="club").json()["id"]
    url = f"{BASE}/tournaments/{tid}/registrations"

    _assert_problem(api.post(url, json={"playerId": "p2"}), 403, "invalid_invite_code")
    _assert_problem(
        api.post(url, json={"playerId": "p1", "inviteCode": "club"}),
        409,
        "player_already_registered",
    )
    _assert_problem(
        api.post(url, json={"playerId": "ghost", "inviteCode": "club"}),
        404,
        "player_not_found",
    )


def test_tournament_plays_to_completion(api):
    tid, doc = _start(api)

    for _ in range(2):
        state = api.get(f"{BASE}/tournaments/{tid}").json()
        current = state["tournament"]["rounds"][state["currentRound"] - 1]
        for s in current["sets"]:
            resp = api.post(
                f"{BASE}/tournaments/{tid}/sets/{s['id']}/score",
                json={"team1Games": 7, "team2Games": 5},
            )
            assert resp.status_code == 200

    final = resp.json()
    assert final["state"] == "completed"
    assert final["tournament"]["isCompleted"] is True
    assert len(final["tournament"]["topPerformers"]) == 3
    assert api.get(f"{BASE}/tournaments/{tid}/standings").json()["isFinal"] is True
    kinds = api.controller.events.kinds()
    assert kinds[-2:] == ["score_submission", "match_completion"]

    _assert_problem(
        api.post(f"{BASE}/tournaments/{tid}/advance"), 409, "tournament_already_complete"
    )


def test_player_tournament_listing(api):
    tid, _ = _start(api)
    later = _create(api, creatorId="p5", scheduledAt="2099-06-01T18:00:00+00:00").json()["id"]

    resp = api.get(f"{BASE}/tournaments", params={"playerId": "p1"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["playerId"] == "p1"
    assert [t["id"] for t in data["upcoming"]] == [later]
    assert [t["id"] for t in data["ongoing"]] == [tid]
    assert data["past"] == []
    assert api.get(f"{BASE}/players/p2").json()["tournamentHistory"] == [tid]

    _assert_problem(
        api.get(f"{BASE}/tournaments", params={"playerId": "ghost"}), 404, "player_not_found"
    )
    _assert_problem(api.get(f"{BASE}/tournaments"), 422, "validation_error")


def test_unknown_tournament(api):
    _assert_problem(api.get(f"{BASE}/tournaments/missing"), 404, "tournament_not_found")


def test_concurrent_modification_is_retryable(api):
    controller = RoundProgressionController(
        tournaments=ConflictingTournamentStore(),
        players=api.controller.players,
        events=RecordingChannel(),
    )
    app.dependency_overrides[get_controller] = lambda: controller
    tid = _create(api).json()["id"]

    resp = api.post(f"{BASE}/tournaments/{tid}/registrations", json={"playerId": "p2"})

    _assert_problem(resp, 409, "concurrent_modification")
    assert resp.headers["retry-after"] == "0"


def test_unhandled_exception_logs_traceback(caplog):
    boom_app = FastAPI()
    boom_app.add_exception_handler(Exception, unhandled_exception_handler)

    @boom_app.get("/boom")
    def boom():
        raise ValueError("boom")

    client = TestClient(boom_app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR):
        resp = client.get("/boom")

    _assert_problem(resp, 500, "internal_server_error")
    record = next(r for r in caplog.records if r.message == "Unhandled exception")
    assert record.exc_info[0] is ValueError
