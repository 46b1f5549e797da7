import csv
import io

import pytest
from flask_jwt_extended import create_access_token

from stageready_admin.errors import StoreError
from stageready_admin.repository import AdminRepository


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_missing_token_is_unauthorized(client):
    resp = client.get("/api/dashboard/stats")
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Admin sign-in required"


def test_non_admin_is_forbidden(client, add_user):
    add_user("plain")
    token = create_access_token(identity="plain")
    resp = client.get("/api/users", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


def test_unknown_identity_is_forbidden(client):
    token = create_access_token(identity="nobody")
    resp = client.get("/api/users", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


# ------------------------------
# Admin setup
# ------------------------------
def test_setup_flow(client):
    assert client.get("/api/auth/setup").get_json() == {"needs_setup": True}

    payload = {"uid": "boss", "email": " Boss@Example.com ", "first_name": "Big", "last_name": "Boss"}
    resp = client.post("/api/auth/setup", json=payload)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["role"] == "admin"
    assert body["user"]["email"] == "boss@example.com"

    assert client.get("/api/auth/setup").get_json() == {"needs_setup": False}

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()["user"]["display_name"] == "Big Boss"

    again = client.post("/api/auth/setup", json={**payload, "uid": "boss2"})
    assert again.status_code == 409


def test_setup_requires_all_fields(client):
    resp = client.post("/api/auth/setup", json={"uid": "x", "email": "x@y.z"})
    assert resp.status_code == 400


@pytest.mark.parametrize("uid", ["x/speechHistory/y", "a/b", 42, "   "])
def test_setup_rejects_uids_that_are_not_one_segment(client, documents, uid):
    payload = {"uid": uid, "email": "boss@example.com", "first_name": "Big", "last_name": "Boss"}
    resp = client.post("/api/auth/setup", json=payload)

    assert resp.status_code == 400
    assert documents.list("users") == []
    assert documents.list("users/x/speechHistory") == []
    assert client.get("/api/auth/setup").get_json() == {"needs_setup": True}


def test_malformed_token_is_rejected(client):
    resp = client.get("/api/users", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Admin session token is malformed"


def test_token_identity_with_slash_is_forbidden(client, add_user):
    add_user("x", role="admin")
    token = create_access_token(identity="x/../x")
    resp = client.get("/api/users", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


# ------------------------------
# Dashboard
# ------------------------------
def test_dashboard_stats(client, corpus, admin_headers):
    resp = client.get("/api/dashboard/stats", headers=admin_headers)
    assert resp.status_code == 200
    stats = resp.get_json()["stats"]
    # admin-1 is the third user and the second admin
    assert stats["total_users"] == 3
    assert stats["total_admins"] == 2
    assert stats["total_speeches"] == 3
    assert stats["average_overall_score"] == pytest.approx(3.0)
    assert stats["total_practice_minutes"] == 6


def test_store_failure_maps_to_500(client, corpus, admin_headers, monkeypatch):
    def broken(self):
        raise StoreError("database unavailable")

    monkeypatch.setattr(AdminRepository, "get_all_users", broken)

    resp = client.get("/api/dashboard/stats", headers=admin_headers)
    assert resp.status_code == 500
    assert resp.get_json() == {"message": "Failed to load dashboard data"}

    assert client.get("/api/speeches", headers=admin_headers).status_code == 500


# ------------------------------
# Users
# ------------------------------
def test_list_users_with_filters(client, corpus, admin_headers):
    resp = client.get("/api/users", headers=admin_headers)
    assert [u["uid"] for u in resp.get_json()["users"]] == ["alice", "bob", "admin-1"]

    resp = client.get("/api/users?role=admin&sort=name", headers=admin_headers)
    assert [u["uid"] for u in resp.get_json()["users"]] == ["bob", "admin-1"]

    resp = client.get("/api/users?search=smith", headers=admin_headers)
    assert [u["display_name"] for u in resp.get_json()["users"]] == ["Alice Smith"]

    assert client.get("/api/users?sort=age", headers=admin_headers).status_code == 400


def test_export_users(client, corpus, admin_headers):
    resp = client.get("/api/users/export?role=user", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    disposition = resp.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="stageready-users-')

    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == "Name"
    assert [r[0] for r in rows[1:]] == ["Alice Smith"]


def test_user_detail(client, corpus, admin_headers, documents):
    documents.set("userGamification/alice", {"userId": "alice", "level": 2, "totalXP": 300})

    resp = client.get("/api/users/alice", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["user"]["uid"] == "alice"
    assert [s["id"] for s in body["speeches"]] == ["s3", "s2", "s1"]
    assert body["gamification"]["level"] == 2
    assert body["badges"] is None

    assert client.get("/api/users/ghost", headers=admin_headers).status_code == 404


def test_patch_user(client, corpus, admin_headers):
    resp = client.patch("/api/users/alice", headers=admin_headers,
                        json={"bio": "Speaker", "age": "29", "interests": ["debate"], "email": "x@y.z"})
    assert resp.status_code == 200
    user = resp.get_json()["user"]
    assert user["bio"] == "Speaker"
    assert user["age"] == 29
    assert user["interests"] == ["debate"]

    bad = client.patch("/api/users/alice", headers=admin_headers, json={"age": "old"})
    assert bad.status_code == 400

    missing = client.patch("/api/users/ghost", headers=admin_headers, json={"bio": "x"})
    assert missing.status_code == 404


def test_set_role(client, corpus, admin_headers):
    resp = client.put("/api/users/alice/role", headers=admin_headers, json={"role": "admin"})
    assert resp.status_code == 200
    assert AdminRepository().is_admin("alice")

    assert client.put("/api/users/alice/role", headers=admin_headers,
                      json={"role": "owner"}).status_code == 400
    assert client.put("/api/users/ghost/role", headers=admin_headers,
                      json={"role": "user"}).status_code == 404


@pytest.mark.parametrize("role", [5, None, ["admin"], {"name": "admin"}])
def test_set_role_rejects_non_string_roles(client, corpus, admin_headers, role):
    resp = client.put("/api/users/alice/role", headers=admin_headers, json={"role": role})
    assert resp.status_code == 400
    assert not AdminRepository().is_admin("alice")


def test_delete_user_cascades(client, corpus, admin_headers, documents, blobs):
    blobs.put("users/alice/speechHistory/s1.m4a", b"audio")

    resp = client.delete("/api/users/alice", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["deleted"] is True
    assert body["result"]["deleted_documents"]["speechHistory"] == 3
    assert body["result"]["blobs_deleted"] == 1

    assert not documents.get("users/alice").exists
    assert client.get("/api/users/alice", headers=admin_headers).status_code == 404


def test_delete_user_reports_failed_step(client, corpus, admin_headers, documents, monkeypatch):
    def broken(self, uid):
        raise StoreError("write failed")

    monkeypatch.setattr(AdminRepository, "delete_user_badges", broken)

    resp = client.delete("/api/users/alice", headers=admin_headers)
    assert resp.status_code == 500
    assert resp.get_json()["step"] == "badges"
    assert documents.get("users/alice").exists


# ------------------------------
# Gamification and badges
# ------------------------------
def test_update_gamification(client, corpus, admin_headers):
    resp = client.put("/api/users/alice/gamification", headers=admin_headers,
                      json={"level": 4, "total_xp": "900", "ignored": 1})
    assert resp.status_code == 200
    gam = resp.get_json()["gamification"]
    assert gam["level"] == 4
    assert gam["total_xp"] == 900

    assert client.put("/api/users/alice/gamification", headers=admin_headers,
                      json={"level": 0}).status_code == 400
    assert client.put("/api/users/alice/gamification", headers=admin_headers,
                      json={"current_streak": "many"}).status_code == 400


def test_badges_and_toggle(client, corpus, admin_headers):
    badges = [{"id": "first", "name": "First", "isUnlocked": True}, {"id": "tenth", "name": "Tenth"}]
    resp = client.put("/api/users/alice/badges", headers=admin_headers, json={"badges": badges})
    assert resp.status_code == 200
    progress = resp.get_json()["badges"]
    assert progress["total_badges"] == 2
    assert progress["unlocked_badges"] == 1

    resp = client.post("/api/users/alice/badges/tenth/toggle", headers=admin_headers)
    assert resp.get_json()["badges"]["unlocked_badges"] == 2

    resp = client.post("/api/users/alice/badges/first/toggle", headers=admin_headers,
                       json={"unlocked": False})
    assert resp.get_json()["badges"]["unlocked_badges"] == 1

    assert client.post("/api/users/alice/badges/nope/toggle",
                       headers=admin_headers).status_code == 404
    assert client.post("/api/users/bob/badges/first/toggle",
                       headers=admin_headers).status_code == 404
    assert client.put("/api/users/alice/badges", headers=admin_headers,
                      json={"badges": "all"}).status_code == 400


# ------------------------------
# Speeches of one user
# ------------------------------
def test_patch_and_delete_speech(client, corpus, admin_headers):
    resp = client.patch("/api/users/alice/speeches/s2", headers=admin_headers,
                        json={"transcript": "edited", "scores": {"overall": "3.5"}})
    assert resp.status_code == 200
    speech = resp.get_json()["speech"]
    assert speech["transcript"] == "edited"
    assert speech["scores"]["overall"] == 3.5
    assert speech["scores"]["speech_pace"] == 2.0

    assert client.patch("/api/users/alice/speeches/ghost", headers=admin_headers,
                        json={"transcript": "x"}).status_code == 404
    assert client.patch("/api/users/alice/speeches/s2", headers=admin_headers,
                        json={"duration": "long"}).status_code == 400

    assert client.delete("/api/users/alice/speeches/s2", headers=admin_headers).status_code == 200
    detail = client.get("/api/users/alice", headers=admin_headers).get_json()
    assert [s["id"] for s in detail["speeches"]] == ["s3", "s1"]


@pytest.mark.parametrize("payload", [
    {"duration": "nan"},
    {"average_pace": "inf"},
    {"duration": float("inf")},
    {"scores": {"overall": "NaN"}},
    {"scores": {"filler_words": "-Infinity"}},
])
def test_patch_speech_rejects_non_finite_numbers(client, corpus, admin_headers, documents, payload):
    before = documents.get("users/alice/speechHistory/s1").to_dict()

    resp = client.patch("/api/users/alice/speeches/s1", headers=admin_headers, json=payload)

    assert resp.status_code == 400
    assert documents.get("users/alice/speechHistory/s1").to_dict() == before


def test_gamification_rejects_infinite_counters(client, corpus, admin_headers, documents):
    resp = client.put("/api/users/alice/gamification", headers=admin_headers,
                      json={"total_xp": float("inf")})
    assert resp.status_code == 400
    assert not documents.get("userGamification/alice").exists


def test_export_user_speeches(client, corpus, admin_headers):
    resp = client.get("/api/users/alice/speeches/export", headers=admin_headers)
    assert resp.status_code == 200
    assert 'filename="speeches-alice-smith-' in resp.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == "Type"
    assert len(rows) == 4

    assert client.get("/api/users/ghost/speeches/export", headers=admin_headers).status_code == 404


# ------------------------------
# Speech analytics
# ------------------------------
def test_speech_listing_with_min_score(client, corpus, admin_headers):
    resp = client.get("/api/speeches?min_score=2.5", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert [s["id"] for s in body["speeches"]] == ["s3"]
    assert body["speeches"][0]["user_name"] == "Alice Smith"
    assert body["aggregates"]["total_speeches"] == 1
    assert body["aggregates"]["avg_overall"] == pytest.approx(4.0)
    assert body["speech_types"] == ["general"]
    assert body["has_active_filters"] is True


def test_speech_listing_defaults(client, corpus, admin_headers):
    body = client.get("/api/speeches", headers=admin_headers).get_json()
    assert [s["id"] for s in body["speeches"]] == ["s3", "s2", "s1"]
    assert body["has_active_filters"] is False
    assert body["aggregates"]["total_duration"] == 360


def test_speech_listing_rejects_bad_arguments(client, corpus, admin_headers):
    assert client.get("/api/speeches?sort=length", headers=admin_headers).status_code == 400
    assert client.get("/api/speeches?from=yesterday", headers=admin_headers).status_code == 400


def test_export_speeches(client, corpus, admin_headers):
    resp = client.get("/api/speeches/export?sort=score", headers=admin_headers)
    assert resp.status_code == 200
    assert 'filename="stageready-speeches-' in resp.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == "User"
    assert [r[2] for r in rows[1:]] == ["4.00", "2.00", "0.00"]
