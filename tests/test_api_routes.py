"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface through the FastAPI TestClient (see the ``client``
fixture in conftest): login hand-off, auth guards, mystery redaction,
submissions, upvotes, winners and the error body shape.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from itinerary.constants import DEFAULT_AVATAR_URL

JAM = "/api/jams/winter-jam"


def _error(resp) -> dict:
    return resp.json()["error"]


# ===========================================================================
# Health & meta
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_root_reports_version(self, client):
        meta = client.get("/").json()["meta"]
        assert meta["version"]
        assert meta["time"]


class TestFrameworkErrors:
    def test_unknown_path(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        error = _error(resp)
        assert error["status"] == 404
        assert error["code"] == "notFound"
        assert error["detail"] == "Cannot GET /api/does-not-exist"

    def test_wrong_method(self, client):
        resp = client.delete("/api/health")
        assert resp.status_code == 405
        error = _error(resp)
        assert error["status"] == 405
        assert error["code"] == "methodNotAllowed"
        assert "GET" in resp.headers["allow"]


# ===========================================================================
# Login hand-off
# ===========================================================================
class TestAuthFlow:
    def test_begin_redirects_to_provider(self, client):
        resp = client.get("/auth/begin")
        assert resp.status_code in (302, 307)
        assert resp.headers["location"].startswith("https://auth.test/auth/?")

    def test_handle_then_info_exchanges_once(self, client, upstream):
        upstream.private_codes["code"] = "ALICE"
        upstream.profiles["alice"] = "Alice"

        resp = client.get("/auth/handle", params={"privateCode": "code"})
        location = resp.headers["location"]
        assert location.startswith("https://itinerary.test/confirm-login?token=")
        one_time = parse_qs(urlsplit(location).query)["token"][0]

        info = client.get("/auth/info", params={"token": one_time})
        assert info.status_code == 200
        body = info.json()
        assert body["name"] == "Alice"
        assert body["token"] != one_time

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["name"] == "Alice"

        replay = client.get("/auth/info", params={"token": one_time})
        assert replay.status_code == 404
        error = _error(replay)
        assert error["status"] == 404
        assert error["code"] == "sessionNotFound"
        assert error["detail"]

    @pytest.mark.parametrize(
        "setup, code",
        [("invalid", "0"), ("down", "1"), ("banned", "2"), ("no_profile", "3")],
    )
    def test_handle_failures_redirect_with_code(self, client, upstream, make_user, setup, code):
        upstream.private_codes["c"] = "alice"
        upstream.profiles["alice"] = "alice"
        if setup == "invalid":
            upstream.private_codes.clear()
        elif setup == "down":
            upstream.down = True
        elif setup == "banned":
            make_user("alice", banned=True)
        else:
            upstream.profiles.clear()

        resp = client.get("/auth/handle", params={"privateCode": "c"})
        location = resp.headers["location"]
        assert location.startswith("https://itinerary.test/login?")
        assert parse_qs(urlsplit(location).query)["error"] == [code]

    def test_handle_without_code(self, client):
        resp = client.get("/auth/handle")
        assert resp.headers["location"].endswith("/login?error=0")

    def test_remove_is_idempotent(self, client, store, make_user):
        make_user("alice")
        token = store.issue("alice").token
        for _ in range(2):
            resp = client.post("/auth/remove", params={"token": token})
            assert resp.status_code == 200
            assert "ok" in resp.json()
        assert client.get("/auth/me", headers={"Authorization": token}).status_code == 401

    def test_remove_requires_token(self, client):
        resp = client.post("/auth/remove")
        assert resp.status_code == 400
        assert _error(resp)["code"] == "missingParameters"


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    def test_missing_token(self, client):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert _error(resp)["code"] == "missingAuth"

    def test_unknown_token(self, client):
        resp = client.get("/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert _error(resp)["code"] == "invalidAuth"

    def test_unknown_token_is_anonymous_on_public_reads(self, client, make_jam):
        make_jam()
        resp = client.get("/api/jams", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    def test_banned_caller_refused(self, client, store, make_user):
        make_user("mallory", banned=True)
        token = store.issue("mallory").token
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403
        error = _error(resp)
        assert error["code"] == "banned"
        assert error["name"] == "mallory"

    def test_ban_invalidates_existing_tokens(self, client, login):
        admin = login("root", admin=True)
        alice = login("alice")
        assert client.get("/auth/me", headers=alice).status_code == 200

        resp = client.put("/api/users/alice", json={"banned": True}, headers=admin)
        assert resp.status_code == 200
        assert resp.json()["user"]["banned"] is True
        assert client.get("/auth/me", headers=alice).status_code == 401

    def test_list_users_admin_only(self, client, login):
        assert client.get("/api/users", headers=login("alice")).status_code == 403
        resp = client.get("/api/users", headers=login("root", admin=True))
        assert resp.status_code == 200
        assert {u["name"] for u in resp.json()} == {"alice", "root"}


# ===========================================================================
# Users
# ===========================================================================
class TestUserRoutes:
    def test_admin_provisions_unknown_user(self, client, login, upstream):
        upstream.profiles["griff"] = "Griff"
        resp = client.put("/api/users/GRIFF", json={}, headers=login("root", admin=True))
        assert resp.status_code == 200
        assert resp.json()["ok"] == "User added!"
        assert resp.json()["user"]["name"] == "Griff"

    def test_provision_unknown_profile(self, client, login):
        resp = client.put("/api/users/ghost", json={}, headers=login("root", admin=True))
        assert resp.status_code == 404
        assert _error(resp)["code"] == "userNotFound"

    def test_non_admin_cannot_provision(self, client, login):
        resp = client.put("/api/users/ghost", json={}, headers=login("alice"))
        assert resp.status_code == 403

    def test_self_delete(self, client, login):
        alice = login("alice")
        assert client.delete("/api/users/alice", headers=alice).status_code == 200
        assert client.get("/auth/me", headers=alice).status_code == 401

    def test_picture_redirects(self, client, upstream):
        upstream.profiles["alice"] = "alice"
        resp = client.get("/api/users/alice/picture")
        assert resp.headers["location"] == "https://cdn.test/alice_90x90.png"

    def test_picture_falls_back_when_upstream_down(self, client, upstream):
        upstream.down = True
        resp = client.get("/api/users/alice/picture")
        assert resp.headers["location"] == DEFAULT_AVATAR_URL


# ===========================================================================
# Jams & mystery redaction
# ===========================================================================
class TestJamRoutes:
    def test_admin_creates_jam(self, client, login):
        resp = client.put("/api/jams", headers=login("root", admin=True), json={
            "name": "Winter Jam",
            "dates": {"start": "2030-01-01T00:00:00Z", "end": "2030-01-08T00:00:00Z"},
            "content": {"body": "Snow!", "colors": [{"color": "#fff"}]},
        })
        assert resp.status_code == 200
        jam = resp.json()["jam"]
        assert jam["slug"] == "winter-jam"
        assert jam["dates"]["start"].startswith("2030-01-01T00:00:00")
        assert jam["content"]["colors"] == [{"color": "#fff"}]
        assert jam["meta"]["updatedBy"] == "root"

    def test_non_admin_cannot_create(self, client, login):
        resp = client.put("/api/jams", headers=login("alice"), json={
            "name": "J", "content": {"body": "b"},
        })
        assert resp.status_code == 403

    def test_unknown_payload_field_rejected(self, client, login):
        resp = client.put("/api/jams", headers=login("root", admin=True), json={
            "name": "J", "content": {"body": "b"}, "featured": True,
        })
        assert resp.status_code == 400
        assert _error(resp)["code"] == "missingParameters"

    def test_manager_updates_jam(self, client, login, make_jam, make_manager):
        make_jam()
        make_manager("winter-jam", "alice")
        resp = client.put(JAM, headers=login("alice"), json={"content": {"description": "brr"}})
        assert resp.status_code == 200
        assert resp.json()["jam"]["content"]["description"] == "brr"

    def test_missing_jam(self, client):
        resp = client.get("/api/jams/nope")
        assert resp.status_code == 404
        assert _error(resp)["code"] == "jamNotFound"

    def test_feature_and_filter(self, client, login, make_jam):
        make_jam()
        make_jam("summer-jam")
        admin = login("root", admin=True)
        assert client.put(f"{JAM}/feature", headers=admin).status_code == 200
        resp = client.get("/api/jams", params={"featured": "true"})
        assert [j["slug"] for j in resp.json()["jams"]] == ["winter-jam"]

    def test_mystery_redacted_for_anonymous(self, client, make_jam):
        make_jam(phase="upcoming", enable_mystery=True)
        jam = client.get(JAM).json()
        assert jam["mystery"] is True
        assert "body" not in jam["content"]
        assert "colors" not in jam["content"]
        assert jam["content"]["headerImage"]

        listed = client.get("/api/jams").json()["jams"][0]
        assert "body" not in listed["content"]

    def test_mystery_visible_to_manager(self, client, login, make_jam, make_manager):
        make_jam(phase="upcoming", enable_mystery=True)
        make_manager("winter-jam", "alice")
        alice = login("alice")
        assert client.get(JAM, headers=alice).json()["content"]["body"]
        assert client.get("/api/jams", headers=alice).json()["jams"][0]["content"]["body"]

    def test_started_jam_not_redacted(self, client, make_jam):
        make_jam(phase="open", enable_mystery=True)
        jam = client.get(JAM).json()
        assert jam["mystery"] is False
        assert jam["content"]["body"] == "Make a game about snow."

    def test_bypass_mystery_guards(self, client, login, make_jam, make_manager):
        make_jam(phase="upcoming", enable_mystery=True)
        make_manager("winter-jam", "alice")

        resp = client.get(JAM, params={"bypassMystery": "true"})
        assert resp.status_code == 401
        resp = client.get(JAM, params={"bypassMystery": "true"}, headers=login("bob"))
        assert resp.status_code == 403

        alice = login("alice")
        resp = client.get(JAM, params={"bypassMystery": "true"}, headers=alice)
        assert resp.json()["content"]["body"]
        # Listing with bypass needs admin, not just a manager of one jam
        resp = client.get("/api/jams", params={"bypassMystery": "true"}, headers=alice)
        assert resp.status_code == 403

        resp = client.get(
            "/api/jams", params={"bypassMystery": "true"}, headers=login("root", admin=True)
        )
        assert resp.json()["jams"][0]["content"]["body"]

    def test_managers_endpoints(self, client, login, make_jam, make_user):
        make_jam()
        make_user("bob")
        admin = login("root", admin=True)
        resp = client.put(f"{JAM}/managers", json={"name": "BOB"}, headers=admin)
        assert resp.status_code == 200
        assert client.get(f"{JAM}/managers").json() == {
            "managers": [{"jam": "winter-jam", "name": "bob"}],
        }
        resp = client.put(f"{JAM}/managers", json={"name": "bob"}, headers=admin)
        assert resp.status_code == 409
        assert client.delete(f"{JAM}/managers/bob", headers=admin).status_code == 200

    def test_user_data(self, client, login, make_jam, make_project):
        make_jam()
        make_project("winter-jam", 1, by="alice")
        resp = client.get(f"{JAM}/user-data", headers=login("alice"))
        assert resp.json() == {"hasParticipated": True, "manager": False}


# ===========================================================================
# Submissions
# ===========================================================================
class TestSubmissionRoutes:
    def test_submit_own_project(self, client, login, make_jam, upstream):
        make_jam()
        upstream.projects[42] = "Alice"
        alice = login("alice")

        resp = client.put(f"{JAM}/projects", json={"project": 42}, headers=alice)
        assert resp.status_code == 200
        project = resp.json()["project"]
        assert project["project"] == 42
        assert project["meta"]["submittedBy"] == "alice"
        assert [p["project"] for p in client.get(f"{JAM}/projects").json()] == [42]

        again = client.put(f"{JAM}/projects", json={"project": 42}, headers=alice)
        assert again.status_code == 409
        assert _error(again)["code"] == "alreadySubmitted"

    def test_submit_someone_elses_project(self, client, login, make_jam, upstream):
        make_jam()
        upstream.projects[43] = "bob"
        resp = client.put(f"{JAM}/projects", json={"project": 43}, headers=login("alice"))
        assert resp.status_code == 403
        assert _error(resp)["code"] == "illegalRequest"

    def test_submit_unknown_project(self, client, login, make_jam):
        make_jam()
        resp = client.put(f"{JAM}/projects", json={"project": 44}, headers=login("alice"))
        assert resp.status_code == 400
        assert _error(resp)["code"] == "projectNotFound"

    def test_closed_jam_checked_before_upstream(self, client, login, make_jam, upstream):
        make_jam(phase="ended")
        upstream.projects[42] = "alice"
        resp = client.put(f"{JAM}/projects", json={"project": 42}, headers=login("alice"))
        assert resp.status_code == 412
        assert _error(resp)["code"] == "jamNotOpen"
        assert upstream.calls == []

    def test_missing_body_field(self, client, login, make_jam):
        make_jam()
        resp = client.put(f"{JAM}/projects", json={}, headers=login("alice"))
        assert resp.status_code == 400
        error = _error(resp)
        assert error["code"] == "missingParameters"
        assert "project" in error["detail"]

    def test_withdraw(self, client, login, make_jam, make_project):
        make_jam()
        make_project("winter-jam", 1, by="alice")
        assert client.delete(f"{JAM}/projects/1", headers=login("bob")).status_code == 403
        assert client.delete(f"{JAM}/projects/1", headers=login("alice")).status_code == 200
        assert client.get(f"{JAM}/projects/1").status_code == 404


# ===========================================================================
# Upvotes & winners
# ===========================================================================
class TestUpvoteRoutes:
    def test_cap_enforced_over_http(self, client, login, make_jam, make_project):
        make_jam()
        for pid in (1, 2, 3, 4):
            make_project("winter-jam", pid, by="carol")
        alice = login("alice")

        for pid, remaining in ((1, 2), (2, 1), (3, 0)):
            resp = client.put(f"{JAM}/upvotes/{pid}", headers=alice)
            assert resp.status_code == 200
            assert resp.json()["remainingUpvotes"] == remaining

        resp = client.put(f"{JAM}/upvotes/4", headers=alice)
        assert resp.status_code == 412
        assert _error(resp)["code"] == "tooManyUpvotes"

        mine = client.get(f"{JAM}/upvotes", headers=alice).json()
        assert [u["project"] for u in mine["upvotes"]] == [1, 2, 3]
        assert mine["remainingUpvotes"] == 0

    def test_counts(self, client, login, make_jam, make_project):
        make_jam()
        make_project("winter-jam", 1, by="carol")
        alice = login("alice")
        client.put(f"{JAM}/upvotes/1", headers=alice)

        assert client.get(f"{JAM}/upvotes/1").json() == {"count": 1}
        assert client.get(f"{JAM}/upvotes/1", headers=alice).json() == {
            "count": 1, "upvoted": True,
        }
        assert client.delete(f"{JAM}/upvotes/1", headers=alice).status_code == 200
        resp = client.delete(f"{JAM}/upvotes/1", headers=alice)
        assert resp.status_code == 404
        assert _error(resp)["code"] == "upvoteNeverCast"

    def test_winners(self, client, login, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1)
        make_project("winter-jam", 2)
        add_upvotes("winter-jam", 2, "u1")

        winners = client.get(f"{JAM}/winners").json()["winners"]
        assert [(w["project"], w["selectedByTheCommunity"]) for w in winners] == [(2, True)]

        assert client.put(
            f"{JAM}/winners", json={"project": 1}, headers=login("alice")
        ).status_code == 403

        admin = login("root", admin=True)
        assert client.put(f"{JAM}/winners", json={"project": 1}, headers=admin).status_code == 200
        winners = client.get(f"{JAM}/winners").json()["winners"]
        assert {(w["project"], w["selected"]) for w in winners} == {(1, True), (2, False)}

        assert client.delete(f"{JAM}/winners/1", headers=admin).status_code == 200
        winners = client.get(f"{JAM}/winners").json()["winners"]
        assert [w["project"] for w in winners] == [2]
