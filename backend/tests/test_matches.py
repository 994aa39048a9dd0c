from sqlalchemy import select

from app.models import UserPermission

API = "/api/v0"


def test_create_match_with_slots(client, world, auth_as):
    resp = client.post(
        f"{API}/matches",
        json={
            "tournamentId": world.tournament,
            "roundName": "Quarter Final",
            "roundIndex": 2,
            "matchNumber": 3,
            "courtNumber": 4,
            "slots": [
                {"slotNumber": 1, "sourceType": "entry", "entryId": world.entry_a},
                {"slotNumber": 2, "sourceType": "winner", "sourceMatchId": world.second_match},
            ],
        },
        headers=auth_as("director"),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["version"] == 1
    assert body["isConfirmed"] is False
    assert body["allowedActions"] == ["start"]
    assert body["score"] is None
    assert [(s["slotNumber"], s["sourceType"]) for s in body["slots"]] == [
        (1, "entry"),
        (2, "winner"),
    ]

    detail = client.get(f"{API}/matches/{body['id']}")
    assert detail.status_code == 200
    assert detail.json()["slots"] == body["slots"]


def test_create_match_fills_missing_slots(client, world, auth_as):
    resp = client.post(
        f"{API}/matches",
        json={"tournamentId": world.tournament, "roundName": "Plate"},
        headers=auth_as("admin"),
    )
    assert resp.status_code == 201
    slots = resp.json()["slots"]
    assert [s["slotNumber"] for s in slots] == [1, 2]
    assert all(s["entryId"] is None for s in slots)


def test_create_match_checks_scope(client, world, auth_as):
    payload = {"tournamentId": world.tournament, "roundName": "Plate"}
    assert client.post(f"{API}/matches", json=payload, headers=auth_as("umpire")).status_code == 403

    payload["tournamentId"] = "missing"
    resp = client.post(f"{API}/matches", json=payload, headers=auth_as("admin"))
    assert resp.status_code == 404

    payload = {
        "tournamentId": world.tournament,
        "roundName": "Plate",
        "slots": [{"slotNumber": 1, "entryId": world.foreign_entry}],
    }
    resp = client.post(f"{API}/matches", json=payload, headers=auth_as("admin"))
    assert resp.status_code == 422


def test_get_unknown_match(client, world):
    resp = client.get(f"{API}/matches/missing")
    assert resp.status_code == 404
    assert resp.json()["code"] == "match_not_found"
    assert resp.headers["content-type"].startswith("application/problem+json")


def _umpire_rows(fetch, user_id):
    async def _rows(session):
        return (
            await session.execute(
                select(UserPermission).where(
                    UserPermission.user_id == user_id, UserPermission.role_type == "umpire"
                )
            )
        ).scalars().all()

    return fetch(_rows)


def test_assign_umpire_grants_match_scope(client, world, auth_as, fetch):
    director = auth_as("director")
    assert client.post(
        f"{API}/scoring/matches/{world.second_match}/start", headers=auth_as("fan")
    ).status_code == 403

    resp = client.put(
        f"{API}/matches/{world.second_match}/umpire",
        json={"umpireId": "fan"},
        headers=director,
    )
    assert resp.status_code == 200
    assert resp.json()["umpireId"] == "fan"
    rows = _umpire_rows(fetch, "fan")
    assert [(r.tournament_id, r.match_id) for r in rows] == [
        (world.tournament, world.second_match)
    ]

    assert client.post(
        f"{API}/scoring/matches/{world.second_match}/start", headers=auth_as("fan")
    ).status_code == 200


def test_reassigning_umpire_releases_previous(client, world, auth_as, fetch):
    director = auth_as("director")
    client.put(f"{API}/matches/{world.second_match}/umpire", json={"umpireId": "fan"}, headers=director)
    resp = client.put(
        f"{API}/matches/{world.second_match}/umpire",
        json={"umpireId": "roaming"},
        headers=director,
    )
    assert resp.json()["umpireId"] == "roaming"
    assert _umpire_rows(fetch, "fan") == []

    resp = client.delete(f"{API}/matches/{world.second_match}/umpire", headers=director)
    assert resp.status_code == 200
    assert resp.json()["umpireId"] is None
    # The tournament-wide assignment of the roaming umpire survives.
    rows = _umpire_rows(fetch, "roaming")
    assert [(r.tournament_id, r.match_id) for r in rows] == [(world.tournament, None)]


def test_umpire_assignment_errors(client, world, auth_as):
    resp = client.put(
        f"{API}/matches/{world.match}/umpire", json={"umpireId": "fan"}, headers=auth_as("umpire")
    )
    assert resp.status_code == 403

    resp = client.put(
        f"{API}/matches/{world.match}/umpire", json={"umpireId": "ghost"}, headers=auth_as("director")
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "user_not_found"

    client.post(f"{API}/scoring/matches/{world.match}/start", headers=auth_as("umpire"))
    client.post(f"{API}/scoring/matches/{world.match}/finish", headers=auth_as("director"))
    resp = client.put(
        f"{API}/matches/{world.match}/umpire", json={"umpireId": "fan"}, headers=auth_as("director")
    )
    assert resp.status_code == 409
