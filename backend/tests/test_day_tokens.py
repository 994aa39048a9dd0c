from types import SimpleNamespace

import pytest

from app.services.day_tokens import TOKEN_DIGITS, generate_token, token_matches

API = "/api/v0"


def test_generated_tokens_are_numeric():
    for _ in range(20):
        token = generate_token()
        assert len(token) == TOKEN_DIGITS
        assert token.isdigit()


@pytest.mark.parametrize(
    "checked_in, stored, presented, expected",
    [
        (True, "123456", "123456", True),
        (True, "123456", "123457", False),
        (False, "123456", "123456", False),
        (True, None, "", False),
    ],
)
def test_token_matches(checked_in, stored, presented, expected):
    entry = SimpleNamespace(is_checked_in=checked_in, day_token=stored)
    assert token_matches(entry, presented) is expected


def _check_in(client, headers, world, entry_id):
    return client.post(
        f"{API}/tournaments/{world.tournament}/entries/{entry_id}/check-in",
        headers=headers,
    )


def _verify(client, mid, token):
    return client.post(f"{API}/scoring/matches/{mid}/verify-token", json={"dayToken": token})


def test_check_in_issues_stable_token(client, world, auth_as):
    director = auth_as("director")
    first = _check_in(client, director, world, world.entry_a)
    assert first.status_code == 200
    body = first.json()
    assert body["isCheckedIn"] is True
    assert body["lastCheckedInAt"] is not None
    assert len(body["dayToken"]) == TOKEN_DIGITS

    again = _check_in(client, director, world, world.entry_a)
    assert again.json()["dayToken"] == body["dayToken"]

    other = _check_in(client, director, world, world.entry_b)
    assert other.json()["dayToken"] != body["dayToken"]


def test_check_in_requires_tournament_manager(client, world, auth_as):
    resp = _check_in(client, auth_as("umpire"), world, world.entry_a)
    assert resp.status_code == 403

    resp = _check_in(client, auth_as("director"), world, world.foreign_entry)
    assert resp.status_code == 404
    assert resp.json()["code"] == "entry_not_found"


def test_verify_token(client, world, auth_as):
    token = _check_in(client, auth_as("director"), world, world.entry_a).json()["dayToken"]

    resp = _verify(client, world.match, token)
    assert resp.status_code == 200
    assert resp.json()["valid"] is True

    wrong = "0" * TOKEN_DIGITS if token != "0" * TOKEN_DIGITS else "1" * TOKEN_DIGITS
    resp = _verify(client, world.match, wrong)
    assert resp.status_code == 403
    assert resp.json()["code"] == "invalid_token"
    assert resp.json()["detail"] == "invalid token"


def test_token_is_bound_to_its_tournament(client, world, auth_as):
    token = _check_in(client, auth_as("director"), world, world.entry_a).json()["dayToken"]
    resp = _verify(client, world.foreign_match, token)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "invalid token"


def test_token_of_entry_not_checked_in_is_invalid(client, world, seed):
    from app.models import TournamentEntry

    seed(
        TournamentEntry(
            id="e9",
            tournament_id=world.tournament,
            team_name="Late",
            day_token="424242",
            is_checked_in=False,
        )
    )
    resp = _verify(client, world.match, "424242")
    assert resp.status_code == 403
    assert resp.json()["code"] == "invalid_token"


def test_verify_unknown_match(client, world):
    resp = _verify(client, "missing", "123456")
    assert resp.status_code == 404
    assert resp.json()["code"] == "match_not_found"


@pytest.mark.parametrize("padding", [("  ", ""), ("", "\n"), (" ", " ")])
def test_padded_token_is_not_accepted(client, world, auth_as, padding):
    token = _check_in(client, auth_as("director"), world, world.entry_a).json()["dayToken"]
    before, after = padding

    resp = _verify(client, world.match, f"{before}{token}{after}")
    assert resp.status_code == 403
    assert resp.json()["code"] == "invalid_token"
