API = "/api/v0"


def test_assign_and_revoke_role(client, world, auth_as):
    admin = auth_as("admin")
    resp = client.post(
        f"{API}/roles",
        json={"userId": "fan", "roleType": "umpire", "matchId": world.second_match},
        headers=admin,
    )
    assert resp.status_code == 201
    role = resp.json()
    # A match scope implies its tournament.
    assert role["tournamentId"] == world.tournament
    assert role["matchId"] == world.second_match

    again = client.post(
        f"{API}/roles",
        json={"userId": "fan", "roleType": "umpire", "matchId": world.second_match},
        headers=admin,
    )
    assert again.json()["id"] == role["id"]

    resp = client.get(f"{API}/roles/users/fan", headers=auth_as("fan"))
    assert [r["id"] for r in resp.json()] == [role["id"]]

    resp = client.delete(f"{API}/roles/{role['id']}", headers=admin)
    assert resp.status_code == 204
    assert client.get(f"{API}/roles/users/fan", headers=admin).json() == []

    resp = client.delete(f"{API}/roles/{role['id']}", headers=admin)
    assert resp.status_code == 404
    assert resp.json()["code"] == "role_not_found"


def test_role_management_is_admin_only(client, world, auth_as):
    director = auth_as("director")
    resp = client.post(
        f"{API}/roles",
        json={"userId": "fan", "roleType": "umpire", "tournamentId": world.tournament},
        headers=director,
    )
    assert resp.status_code == 403
    assert client.delete(f"{API}/roles/p-umpire", headers=director).status_code == 403
    assert client.get(f"{API}/roles/users/umpire", headers=director).status_code == 403


def test_role_scope_validation(client, world, auth_as):
    admin = auth_as("admin")
    cases = [
        ({"userId": "fan", "roleType": "admin", "tournamentId": world.tournament}, 422),
        ({"userId": "fan", "roleType": "tournament_admin", "matchId": world.match}, 422),
        (
            {"userId": "fan", "roleType": "umpire", "tournamentId": world.other_tournament,
             "matchId": world.match},
            422,
        ),
        ({"userId": "ghost", "roleType": "umpire"}, 404),
        ({"userId": "fan", "roleType": "umpire", "matchId": "missing"}, 404),
        ({"userId": "fan", "roleType": "owner"}, 422),
    ]
    for payload, status in cases:
        assert client.post(f"{API}/roles", json=payload, headers=admin).status_code == status


def test_list_tournament_roles(client, world, auth_as):
    resp = client.get(f"{API}/roles/tournaments/{world.tournament}", headers=auth_as("director"))
    assert resp.status_code == 200
    assert sorted(r["id"] for r in resp.json()) == ["p-director", "p-other", "p-roaming", "p-umpire"]

    resp = client.get(f"{API}/roles/tournaments/{world.tournament}", headers=auth_as("umpire"))
    assert resp.status_code == 403


def test_check_role(client, world, auth_as):
    resp = client.get(
        f"{API}/roles/check", params={"match_id": world.match}, headers=auth_as("umpire")
    )
    assert resp.json() == {"allowed": True, "role": "umpire"}

    resp = client.get(
        f"{API}/roles/check",
        params={"match_id": world.match, "role": ["tournament_admin", "admin"]},
        headers=auth_as("umpire"),
    )
    assert resp.json() == {"allowed": False, "role": None}

    resp = client.get(
        f"{API}/roles/check", params={"tournament_id": world.tournament}, headers=auth_as("director")
    )
    assert resp.json() == {"allowed": True, "role": "tournament_admin"}
