"""Tests for the challenge control server."""

import socket

import httpx
import pytest
from fastapi.testclient import TestClient

from gesture_lock.config import LockConfig, ServerConfig, SessionConfig
from gesture_lock.gestures import GestureKind
from gesture_lock.server import (
    ChallengePlan, ChallengeServer, ServerBindError, StagePlan, create_app,
    find_asset, render_page,
)
from gesture_lock.session import SessionRegistry


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture
def config(tmp_path):
    config = LockConfig()
    config.server.asset_dirs = [str(tmp_path)]
    return config


@pytest.fixture
def client(sessions, config):
    with TestClient(create_app(sessions, config)) as c:
        yield c


class TestChallengePage:
    def test_index_serves_page(self, client, sessions):
        session = sessions.open("notes.txt")
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert 'id="challenge-plan"' in resp.text
        assert len(session.plan) == 3

    def test_each_load_reshuffles(self, client, sessions):
        session = sessions.open("notes.txt")
        client.get("/")
        first = list(session.plan)
        plans = set()
        for _ in range(20):
            client.get("/")
            plans.add(tuple(session.plan))
        assert len(first) == 3
        assert len(plans) > 1

    def test_plan_json(self, client, sessions):
        sessions.open("a")
        sessions.open("b")
        data = client.get("/challenge", params={"resource": "a"}).json()
        assert data["resource"] == "a"
        assert data["threshold"] == 5
        assert data["cooldown_ms"] == 2000
        kinds = [s["kind"] for s in data["stages"]]
        assert len(set(kinds)) == 3
        assert all(GestureKind(k) for k in kinds)
        assert all(s["image"].startswith("/assets/") for s in data["stages"])
        assert sessions.get("a").plan == kinds

    def test_plan_without_session(self, client):
        data = client.get("/challenge").json()
        assert data["resource"] is None
        assert len(data["stages"]) == 3

    def test_plan_json_is_escaped_in_page(self):
        plan = ChallengePlan(
            threshold=5,
            cooldown_ms=2000,
            stages=[StagePlan(kind="finger_to_lip", instruction="</script>", image="/assets/x.jpg")],
        )
        html = render_page(plan)
        assert "<\\/script>" in html
        assert "&lt;/script&gt;" in html
        assert html.count("</script>") == 2


class TestAssets:
    def test_serves_image(self, client, tmp_path):
        (tmp_path / "finger_to_lip.jpg").write_bytes(b"\xff\xd8\xff")
        resp = client.get("/assets/finger_to_lip.jpg")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert resp.content == b"\xff\xd8\xff"

    def test_missing_image(self, client):
        resp = client.get("/assets/nothing.png")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}

    def test_traversal_is_refused(self, tmp_path):
        (tmp_path / "secret.txt").write_text("secret")
        assets = tmp_path / "assets"
        assets.mkdir()
        assert find_asset("../secret.txt", [assets]) is None

    def test_first_search_path_wins(self, tmp_path):
        first, second = tmp_path / "a", tmp_path / "b"
        first.mkdir()
        second.mkdir()
        (second / "x.png").write_bytes(b"2")
        assert find_asset("x.png", [first, second]) == (second / "x.png").resolve()
        (first / "x.png").write_bytes(b"1")
        assert find_asset("x.png", [first, second]) == (first / "x.png").resolve()


class TestComplete:
    def test_resolves_session(self, client, sessions):
        results = []
        sessions.open("notes.txt", on_complete=results.append)
        resp = client.post("/complete", json={"completed": True, "timestamp": 1700000000000})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Challenge completed!"}
        assert results == [True]

    def test_second_completion_is_noop(self, client, sessions):
        results = []
        sessions.open("notes.txt", on_complete=results.append)
        client.post("/complete", json={"completed": True})
        resp = client.post("/complete", json={"completed": True})
        assert resp.status_code == 200
        assert results == [True]

    def test_malformed_body(self, client, sessions):
        results = []
        session = sessions.open("notes.txt", on_complete=results.append)
        resp = client.post(
            "/complete", content="not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request"}
        assert session.active
        assert results == []

        assert client.post("/complete", json={}).status_code == 200
        assert results == [True]

    def test_targets_resource(self, client, sessions):
        results = []
        sessions.open("a", on_complete=lambda ok: results.append("a"))
        sessions.open("b", on_complete=lambda ok: results.append("b"))
        client.post("/complete", json={"completed": True, "resource": "a"})
        assert results == ["a"]
        assert sessions.latest().resource_id == "b"

    def test_non_string_resource_resolves_latest(self, client, sessions):
        results = []
        sessions.open("notes.txt", on_complete=results.append)
        for resource in (["notes.txt"], {"id": "notes.txt"}, 7):
            resp = client.post("/complete", json={"completed": True, "resource": resource})
            assert resp.status_code == 200
            assert resp.json()["success"] is True
        assert results == [True]

    def test_completion_without_session(self, client):
        resp = client.post("/complete", json={"completed": True})
        assert resp.status_code == 200


class TestControlPlane:
    def test_health(self, client, sessions):
        sessions.open("a")
        assert client.get("/health").json() == {"status": "ok", "sessions": 1}

    def test_options_preflight(self, client):
        for path in ("/complete", "/anything"):
            resp = client.options(path)
            assert resp.status_code == 200
            assert resp.content == b""
            assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_on_every_response(self, client):
        for resp in (client.get("/health"), client.get("/nope")):
            assert resp.headers["access-control-allow-origin"] == "*"
            assert "POST" in resp.headers["access-control-allow-methods"]

    def test_unknown_path(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}

    def test_wrong_method(self, client):
        resp = client.get("/complete")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}

    def test_expired_sessions_are_failed(self, config):
        now = [0.0]
        sessions = SessionRegistry(SessionConfig(ttl=10), clock=lambda: now[0])
        calls = []
        sessions.open("a", on_complete=calls.append, on_error=calls.append)
        with TestClient(create_app(sessions, config)) as client:
            now[0] = 11.0
            assert client.get("/health").json()["sessions"] == 0
        assert calls == ["Challenge expired", False]


class TestChallengeServer:
    def test_start_and_stop(self, sessions, config):
        server = ChallengeServer(create_app(sessions, config), ServerConfig(port=0))
        with server:
            assert server.running
            resp = httpx.get(f"http://127.0.0.1:{server.port}/health")
            assert resp.json()["status"] == "ok"
        assert not server.running

    def test_port_in_use(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            port = blocker.getsockname()[1]
            server = ChallengeServer(create_app(SessionRegistry(), LockConfig()), ServerConfig(port=port))
            with pytest.raises(ServerBindError):
                server.start()
            assert not server.running
        finally:
            blocker.close()
