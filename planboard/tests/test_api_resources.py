"""API tests: auth errors, users, projects, members, tasks, comments, calendar, dashboard."""

from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from planboard.core.api.server import create_app
from planboard.core.schemas import UserCreate
from planboard.core.store.storage import JsonFileStorage, MemoryStorage, StorageError


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


# ── Auth ─────────────────────────────────────────────────────────


class TestRegisterLogin:
    def test_register_returns_token_and_user(self, client):
        resp = client.post(
            "/auth/register",
            json={"name": "Alice", "email": "A@X.com", "password": "secret123"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["token"].startswith("pbt_")
        assert body["user"]["email"] == "a@x.com"
        assert "password_hash" not in body["user"]
        assert "password" not in body["user"]

    def test_duplicate_email(self, client, register):
        register("Alice", "a@x.com")
        resp = client.post(
            "/auth/register", json={"name": "Other", "email": "a@x.com", "password": "secret123"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["type"] == "CONFLICT"
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_validation_details(self, client):
        resp = client.post("/auth/register", json={"name": "A", "email": "nope", "password": "1"})
        assert resp.status_code == 400
        err = resp.json()["error"]
        assert err["type"] == "VALIDATION_ERROR"
        fields = {d["field"] for d in err["details"]}
        assert {"name", "email", "password"} <= fields

    def test_login_with_identifier_or_username(self, client, register):
        register("Alice", "a@x.com", username="alice")
        for payload in (
            {"identifier": "a@x.com", "password": "secret123"},
            {"username": "alice", "password": "secret123"},
        ):
            resp = client.post("/auth/login", json=payload)
            assert resp.status_code == 200, payload

    def test_bad_login_is_uniform(self, client, register):
        register("Alice", "a@x.com")
        wrong = client.post("/auth/login", json={"email": "a@x.com", "password": "bad-pass"})
        ghost = client.post("/auth/login", json={"email": "z@x.com", "password": "bad-pass"})
        assert wrong.status_code == ghost.status_code == 400
        for key in ("type", "code", "message"):
            assert wrong.json()["error"][key] == ghost.json()["error"][key]


class TestBearerAuth:
    @pytest.mark.parametrize("path", ["/users", "/projects", "/tasks", "/calendar-events", "/me"])
    def test_missing_token(self, client, path):
        resp = client.get(path)
        assert resp.status_code == 401
        assert resp.json()["error"]["type"] == "AUTH_ERROR"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        resp = client.get("/me", headers=_auth("pbt_garbage.deadbeef"))
        assert resp.status_code == 401
        assert "pbt_garbage" not in resp.text

    def test_non_ascii_signature_is_401(self, client, register):
        headers, _ = register("Alice", "a@x.com")
        payload = headers["Authorization"].split(".", 1)[0]
        raw = payload.encode("ascii") + b".\xe9\xe9"
        resp = client.get("/me", headers={"Authorization": raw})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_signature"

    def test_token_from_other_secret(self, client, settings, storage, register):
        headers, _ = register("Alice", "a@x.com")
        other = TestClient(create_app(dataclasses.replace(settings, token_secret="x" * 32), storage))
        assert other.get("/me", headers=headers).status_code == 401

    def test_public_paths(self, client):
        assert client.get("/health").status_code == 200
        assert client.get("/metrics").status_code == 200


# ── Users ────────────────────────────────────────────────────────


class TestUsers:
    def test_me_and_directory(self, client, register):
        a, alice = register("Alice", "a@x.com")
        register("Bob", "b@x.com")
        assert client.get("/me", headers=a).json()["id"] == alice["id"]
        users = client.get("/users", headers=a).json()
        assert [u["email"] for u in users] == ["a@x.com", "b@x.com"]
        assert all("password_hash" not in u for u in users)

    def test_get_unknown_user(self, client, register):
        a, _ = register("Alice", "a@x.com")
        resp = client.get("/users/999", headers=a)
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "NOT_FOUND"

    def test_update_self(self, client, register):
        a, alice = register("Alice", "a@x.com", position="Engineer")
        resp = client.put(f"/users/{alice['id']}", json={"bio": "Hello"}, headers=a)
        assert resp.status_code == 200
        assert resp.json()["bio"] == "Hello"
        assert resp.json()["position"] == "Engineer"

    def test_update_other_forbidden(self, client, register):
        a, _ = register("Alice", "a@x.com")
        _, bob = register("Bob", "b@x.com")
        resp = client.put(f"/users/{bob['id']}", json={"bio": "hacked"}, headers=a)
        assert resp.status_code == 403

    def test_admin_can_update_others(self, client, app, register):
        _, bob = register("Bob", "b@x.com")
        auth = app.state.auth_service
        admin = auth.register(
            UserCreate(name="Root", email="root@x.com", password="secret123"), is_admin=True
        )
        token = auth.issue_token(admin).token
        resp = client.put(f"/users/{bob['id']}", json={"department": "Ops"}, headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["department"] == "Ops"

    def test_unknown_field_rejected(self, client, register):
        a, alice = register("Alice", "a@x.com")
        resp = client.put(f"/users/{alice['id']}", json={"is_admin": True}, headers=a)
        assert resp.status_code == 400


# ── Projects & members ───────────────────────────────────────────


@pytest.fixture
def team(client, register):
    """Alice owns P1 with Bob as member; Carol is an outsider."""
    a, alice = register("Alice", "a@x.com")
    b, bob = register("Bob", "b@x.com")
    c, carol = register("Carol", "c@x.com")
    project = client.post("/projects", json={"name": "P1"}, headers=a).json()
    resp = client.post(f"/projects/{project['id']}/members", json={"user_id": bob["id"]}, headers=a)
    assert resp.status_code == 201
    return {
        "a": a, "b": b, "c": c,
        "alice": alice, "bob": bob, "carol": carol,
        "project": project,
    }


class TestProjects:
    def test_get_requires_membership(self, client, team):
        pid = team["project"]["id"]
        assert client.get(f"/projects/{pid}", headers=team["b"]).status_code == 200
        assert client.get(f"/projects/{pid}", headers=team["c"]).status_code == 403
        assert client.get("/projects/999", headers=team["a"]).status_code == 404

    def test_creator_only_update_by_default(self, client, team):
        pid = team["project"]["id"]
        denied = client.put(f"/projects/{pid}", json={"status": "in_progress"}, headers=team["b"])
        assert denied.status_code == 403
        ok = client.put(f"/projects/{pid}", json={"status": "in_progress"}, headers=team["a"])
        assert ok.status_code == 200
        assert ok.json()["status"] == "in_progress"
        assert ok.json()["name"] == "P1"

    def test_member_policy_lets_members_update(self, settings, storage):
        app = create_app(dataclasses.replace(settings, project_write_policy="member"), storage)
        client = TestClient(app)
        a_resp = client.post(
            "/auth/register", json={"name": "Alice", "email": "a@x.com", "password": "secret123"}
        ).json()
        b_resp = client.post(
            "/auth/register", json={"name": "Bob", "email": "b@x.com", "password": "secret123"}
        ).json()
        a, b = _auth(a_resp["token"]), _auth(b_resp["token"])
        pid = client.post("/projects", json={"name": "P1"}, headers=a).json()["id"]
        client.post(f"/projects/{pid}/members", json={"user_id": b_resp["user"]["id"]}, headers=a)

        assert client.put(f"/projects/{pid}", json={"name": "P1b"}, headers=b).status_code == 200
        # Member management stays creator-only under either policy.
        resp = client.delete(f"/projects/{pid}/members/{a_resp['user']['id']}", headers=b)
        assert resp.status_code == 403

    def test_inverted_dates_rejected(self, client, team):
        resp = client.post(
            "/projects",
            json={"name": "Bad", "start_date": "2026-05-01", "end_date": "2026-04-01"},
            headers=team["a"],
        )
        assert resp.status_code == 400

    def test_list_members_includes_profiles(self, client, team):
        pid = team["project"]["id"]
        members = client.get(f"/projects/{pid}/members", headers=team["b"]).json()
        assert [m["role"] for m in members] == ["owner", "member"]
        assert members[1]["user"]["email"] == "b@x.com"


class TestMembers:
    def test_only_creator_adds(self, client, team):
        pid = team["project"]["id"]
        resp = client.post(
            f"/projects/{pid}/members", json={"user_id": team["carol"]["id"]}, headers=team["b"]
        )
        assert resp.status_code == 403

    def test_duplicate_member(self, client, team):
        pid = team["project"]["id"]
        resp = client.post(
            f"/projects/{pid}/members", json={"user_id": team["bob"]["id"]}, headers=team["a"]
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_member"
        members = client.get(f"/projects/{pid}", headers=team["a"]).json()["members"]
        assert len(members) == 2

    def test_owner_role_reserved(self, client, team):
        pid = team["project"]["id"]
        resp = client.post(
            f"/projects/{pid}/members",
            json={"user_id": team["carol"]["id"], "role": "owner"},
            headers=team["a"],
        )
        assert resp.status_code == 400

    def test_unknown_user(self, client, team):
        pid = team["project"]["id"]
        resp = client.post(f"/projects/{pid}/members", json={"user_id": 999}, headers=team["a"])
        assert resp.status_code == 404

    def test_remove_member(self, client, team):
        pid = team["project"]["id"]
        resp = client.delete(f"/projects/{pid}/members/{team['bob']['id']}", headers=team["a"])
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get(f"/projects/{pid}", headers=team["b"]).status_code == 403

    def test_remove_non_member(self, client, team):
        pid = team["project"]["id"]
        resp = client.delete(f"/projects/{pid}/members/{team['carol']['id']}", headers=team["a"])
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_a_member"

    def test_creator_removal_rejected(self, client, team):
        pid = team["project"]["id"]
        resp = client.delete(f"/projects/{pid}/members/{team['alice']['id']}", headers=team["a"])
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "creator_removal"


# ── Tasks & comments ─────────────────────────────────────────────


class TestTasks:
    def test_bound_create_requires_membership(self, client, team):
        pid = team["project"]["id"]
        denied = client.post("/tasks", json={"title": "X1", "project_id": pid}, headers=team["c"])
        assert denied.status_code == 403
        ok = client.post("/tasks", json={"title": "X1", "project_id": pid}, headers=team["b"])
        assert ok.status_code == 201

    def test_unknown_project(self, client, team):
        resp = client.post("/tasks", json={"title": "X1", "project_id": 999}, headers=team["a"])
        assert resp.status_code == 404

    def test_unknown_assignee(self, client, team):
        resp = client.post("/tasks", json={"title": "X1", "assignee_id": 999}, headers=team["a"])
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "assignee_id"

    def test_invalid_status(self, client, team):
        resp = client.post("/tasks", json={"title": "X1", "status": "blocked"}, headers=team["a"])
        assert resp.status_code == 400

    def test_assignee_can_read_and_update_unbound_task(self, client, team):
        task = client.post(
            "/tasks", json={"title": "Solo", "assignee_id": team["carol"]["id"]}, headers=team["a"]
        ).json()
        assert client.get(f"/tasks/{task['id']}", headers=team["c"]).status_code == 200
        resp = client.put(f"/tasks/{task['id']}", json={"status": "done"}, headers=team["c"])
        assert resp.status_code == 200
        assert resp.json()["status"] == "done"
        assert client.get(f"/tasks/{task['id']}", headers=team["b"]).status_code == 403

    def test_list_filters(self, client, team):
        pid = team["project"]["id"]
        client.post("/tasks", json={"title": "Bound", "project_id": pid}, headers=team["a"])
        client.post("/tasks", json={"title": "Mine"}, headers=team["a"])
        client.post(
            "/tasks", json={"title": "ForAlice", "assignee_id": team["alice"]["id"]},
            headers=team["c"],
        )

        mine = client.get("/tasks", headers=team["a"]).json()
        assert [t["title"] for t in mine] == ["Bound", "Mine", "ForAlice"]

        bound = client.get(f"/tasks?projectId={pid}", headers=team["b"]).json()
        assert [t["title"] for t in bound] == ["Bound"]
        assert client.get(f"/projects/{pid}/tasks", headers=team["b"]).json() == bound

        assert client.get(f"/tasks?projectId={pid}", headers=team["c"]).status_code == 403
        assert client.get("/tasks?projectId=abc", headers=team["a"]).status_code == 400

    def test_move_task_requires_target_membership(self, client, team):
        other = client.post("/projects", json={"name": "Carol's"}, headers=team["c"]).json()
        task = client.post("/tasks", json={"title": "Loose"}, headers=team["a"]).json()
        resp = client.put(
            f"/tasks/{task['id']}", json={"project_id": other["id"]}, headers=team["a"]
        )
        assert resp.status_code == 403

    def test_missing_task(self, client, team):
        assert client.get("/tasks/999", headers=team["a"]).status_code == 404


class TestComments:
    def test_members_comment_outsiders_cannot(self, client, team):
        pid = team["project"]["id"]
        task = client.post("/tasks", json={"title": "T1", "project_id": pid}, headers=team["a"]).json()
        url = f"/tasks/{task['id']}/comments"

        assert client.post(url, json={"content": "hi"}, headers=team["c"]).status_code == 403
        assert client.get(url, headers=team["c"]).status_code == 403

        resp = client.post(url, json={"content": "looks good"}, headers=team["b"])
        assert resp.status_code == 201
        assert resp.json()["author_id"] == team["bob"]["id"]

        comments = client.get(url, headers=team["a"]).json()
        assert [c["content"] for c in comments] == ["looks good"]

    def test_empty_comment_rejected(self, client, team):
        task = client.post("/tasks", json={"title": "T1"}, headers=team["a"]).json()
        resp = client.post(f"/tasks/{task['id']}/comments", json={"content": ""}, headers=team["a"])
        assert resp.status_code == 400


# ── Optimistic concurrency ───────────────────────────────────────


class TestIfMatch:
    def test_version_check(self, client, team):
        task = client.post("/tasks", json={"title": "T1"}, headers=team["a"]).json()
        url = f"/tasks/{task['id']}"
        headers = {**team["a"], "If-Match": "1"}

        first = client.put(url, json={"title": "T1 v2"}, headers=headers)
        assert first.status_code == 200
        assert first.json()["version"] == 2

        stale = client.put(url, json={"title": "T1 v3"}, headers=headers)
        assert stale.status_code == 412
        assert stale.json()["error"]["type"] == "PRECONDITION_FAILED"
        assert client.get(url, headers=team["a"]).json()["title"] == "T1 v2"

    def test_quoted_etag_accepted(self, client, team):
        pid = team["project"]["id"]
        resp = client.put(
            f"/projects/{pid}", json={"name": "P1b"}, headers={**team["a"], "If-Match": '"1"'}
        )
        assert resp.status_code == 200

    def test_non_numeric_if_match(self, client, team):
        task = client.post("/tasks", json={"title": "T1"}, headers=team["a"]).json()
        resp = client.put(
            f"/tasks/{task['id']}", json={"title": "T2"}, headers={**team["a"], "If-Match": "abc"}
        )
        assert resp.status_code == 400

    def test_without_header_last_writer_wins(self, client, team):
        task = client.post("/tasks", json={"title": "T1"}, headers=team["a"]).json()
        url = f"/tasks/{task['id']}"
        client.put(url, json={"title": "First"}, headers=team["a"])
        client.put(url, json={"title": "Second"}, headers=team["a"])
        assert client.get(url, headers=team["a"]).json()["title"] == "Second"


# ── Calendar ─────────────────────────────────────────────────────


class TestCalendar:
    def _seed(self, client, headers):
        for title, start, end in [
            ("Standup", "2026-01-05", None),
            ("Offsite", "2026-01-10", "2026-01-12"),
            ("Review", "2026-02-01", None),
        ]:
            payload = {"title": title, "start_date": start}
            if end:
                payload["end_date"] = end
            assert client.post("/calendar-events", json=payload, headers=headers).status_code == 201

    def test_list_is_private(self, client, team):
        self._seed(client, team["a"])
        assert len(client.get("/calendar-events", headers=team["a"]).json()) == 3
        assert client.get("/calendar-events", headers=team["b"]).json() == []

    def test_range(self, client, team):
        self._seed(client, team["a"])
        resp = client.get(
            "/calendar-events?start=2026-01-06&end=2026-01-31", headers=team["a"]
        )
        assert [e["title"] for e in resp.json()] == ["Offsite"]

    def test_inverted_range(self, client, team):
        resp = client.get("/calendar-events?start=2026-02-01&end=2026-01-01", headers=team["a"])
        assert resp.status_code == 400

    def test_delete(self, client, team):
        self._seed(client, team["a"])
        assert client.delete("/calendar-events/1", headers=team["b"]).status_code == 403
        resp = client.delete("/calendar-events/1", headers=team["a"])
        assert resp.status_code == 200
        assert client.get("/calendar-events/1", headers=team["a"]).status_code == 404

    def test_non_owner_cannot_update(self, client, team):
        self._seed(client, team["a"])
        resp = client.put("/calendar-events/1", json={"title": "Hijacked"}, headers=team["b"])
        assert resp.status_code == 403
        assert resp.json()["error"]["type"] == "FORBIDDEN"
        assert client.get("/calendar-events/1", headers=team["a"]).json()["title"] == "Standup"

    def test_admin_has_no_override(self, client, app, team):
        self._seed(client, team["a"])
        auth = app.state.auth_service
        admin = auth.register(
            UserCreate(name="Root", email="root@x.com", password="secret123"), is_admin=True
        )
        headers = _auth(auth.issue_token(admin).token)
        assert client.get("/calendar-events/1", headers=headers).status_code == 403
        assert client.put(
            "/calendar-events/1", json={"title": "Admin edit"}, headers=headers
        ).status_code == 403
        assert client.delete("/calendar-events/1", headers=headers).status_code == 403
        assert client.get("/calendar-events/1", headers=team["a"]).json()["version"] == 1

    def test_missing_event_is_not_found(self, client, team):
        assert client.get("/calendar-events/42", headers=team["a"]).status_code == 404

    def test_end_before_start_rejected(self, client, team):
        resp = client.post(
            "/calendar-events",
            json={"title": "Bad", "start_date": "2026-01-05", "end_date": "2026-01-04"},
            headers=team["a"],
        )
        assert resp.status_code == 400


# ── Dashboard, health, metrics, failures ─────────────────────────


class TestDashboardEndpoint:
    def test_shape(self, client, team):
        client.post(
            "/tasks", json={"title": "Mine", "assignee_id": team["alice"]["id"]}, headers=team["a"]
        )
        body = client.get("/dashboard", headers=team["a"]).json()
        assert body["total_projects"] == 1
        assert body["total_tasks"] == 1
        assert body["window_days"] == 7
        assert set(body["tasks_by_status"]) == {"todo", "in_progress", "review", "done"}


class TestOperational:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["storage"] == "memory"

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["x-request-id"] == "req-123"

    def test_error_carries_request_id(self, client):
        resp = client.get("/me", headers={"X-Request-ID": "req-456"})
        assert resp.json()["error"]["request_id"] == "req-456"

    def test_metrics_use_route_templates(self, client, team):
        task = client.post("/tasks", json={"title": "T1"}, headers=team["a"]).json()
        client.get(f"/tasks/{task['id']}", headers=team["a"])
        text = client.get("/metrics").text
        assert 'route="/tasks/{task_id}"' in text
        assert f'route="/tasks/{task["id"]}"' not in text
        assert "planboard_requests_total" in text

    def test_unhandled_error_is_sanitized(self, app, register, monkeypatch):
        headers, _ = register("Alice", "a@x.com")

        def boom(principal):
            raise RuntimeError("secret internal detail")

        monkeypatch.setattr(app.state.planner, "me", boom)
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/me", headers=headers)
        assert resp.status_code == 500
        assert resp.json()["error"]["message"] == "Internal server error."
        assert "secret internal detail" not in resp.text

    def test_storage_failure_is_500(self, client, storage, register, monkeypatch):
        headers, _ = register("Alice", "a@x.com")

        def broken(kind):
            raise StorageError("disk on fire")

        monkeypatch.setattr(storage, "scan", broken)
        resp = client.get("/users", headers=headers)
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "storage_unavailable"
        assert "disk" not in resp.text


class TestJsonBackedApp:
    def test_data_survives_restart(self, settings, tmp_path):
        path = str(tmp_path / "planboard.json")
        json_settings = dataclasses.replace(settings, storage="json", store_path=path)

        first = TestClient(create_app(json_settings))
        token = first.post(
            "/auth/register", json={"name": "Alice", "email": "a@x.com", "password": "secret123"}
        ).json()["token"]
        first.post("/projects", json={"name": "Durable"}, headers=_auth(token))

        second = TestClient(create_app(json_settings))
        projects = second.get("/projects", headers=_auth(token)).json()
        assert [p["name"] for p in projects] == ["Durable"]

    def test_failed_write_leaves_no_partial_project(self, settings, tmp_path, monkeypatch):
        path = str(tmp_path / "planboard.json")
        app = create_app(dataclasses.replace(settings, storage="json", store_path=path))
        client = TestClient(app)
        token = client.post(
            "/auth/register", json={"name": "Alice", "email": "a@x.com", "password": "secret123"}
        ).json()["token"]
        store = app.state.storage

        def disk_full():
            raise StorageError("disk full")

        monkeypatch.setattr(store, "_save", disk_full)
        resp = client.post("/projects", json={"name": "P1"}, headers=_auth(token))
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "storage_unavailable"

        monkeypatch.undo()
        assert store.get("projects", 1) is None
        assert store.scan("memberships") == []
        assert client.get("/projects", headers=_auth(token)).json() == []
        assert JsonFileStorage(path).scan("projects") == []

        retry = client.post("/projects", json={"name": "P1"}, headers=_auth(token))
        assert retry.status_code == 201
        assert retry.json()["id"] == 1
        assert retry.json()["members"] == [retry.json()["created_by"]]

    def test_memory_storage_fixture_is_isolated(self, storage):
        assert isinstance(storage, MemoryStorage)
        assert storage.scan("users") == []
