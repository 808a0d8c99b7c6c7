"""Tests for the FastAPI server: chat streaming, issue state and auth."""

import json

import pytest
from fastapi.testclient import TestClient

from dialdesk.app import DialDesk
from dialdesk.db import MemoryIssueStore
from dialdesk.errors import PersistenceError
from dialdesk.llm.base import StreamChunk
from dialdesk.protocols import IssueStatus
from dialdesk.server.app import api, set_app
from dialdesk.server.app import settings as server_settings


class ReplyLLMClient:
    async def stream_completion(self, messages, tools=None, **kwargs):
        yield StreamChunk(content="I can ")
        yield StreamChunk(content="help with that.")


class UnavailableStore(MemoryIssueStore):
    async def set_current_agent(self, issue_id, agent):
        raise PersistenceError("db down")


def parse_frames(body):
    frames = [f for f in body.split("\n\n") if f]
    assert all(f.startswith("data: ") for f in frames)
    return [f[len("data: "):] for f in frames]


@pytest.fixture
def dialdesk(monkeypatch):
    monkeypatch.setattr(server_settings, "api_key", None)
    app = DialDesk(
        {"orchestrator": {"llm_retry_base_delay": 0}},
        llm_client=ReplyLLMClient(),
        store=MemoryIssueStore(),
    )
    set_app(app)
    yield app
    set_app(None)


@pytest.fixture
def client(dialdesk):
    with TestClient(api) as c:
        yield c


class TestChatStream:

    def test_streams_events_then_sentinel(self, client, dialdesk):
        resp = client.post("/api/chat/stream", json={
            "messages": [{"role": "user", "content": "My claim was denied"}],
            "issueId": "issue-1",
        })
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")

        frames = parse_frames(resp.text)
        assert frames[-1] == "[DONE]"
        assert frames.count("[DONE]") == 1

        events = [json.loads(f) for f in frames[:-1]]
        assert events[0] == {
            "type": "agent-switch",
            "from": "router",
            "to": "insurance",
            "name": "Insurance Claims Specialist",
        }
        text = "".join(e["value"] for e in events if e["type"] == "text-delta")
        assert text == "I can help with that."
        assert events[-1]["type"] == "done"
        assert dialdesk.store.agents["issue-1"] == "insurance"

    def test_invalid_messages_rejected(self, client):
        resp = client.post("/api/chat/stream", json={"messages": []})
        assert resp.status_code == 400

    def test_messages_must_be_a_list(self, client):
        resp = client.post("/api/chat/stream", json={"messages": "hello"})
        assert resp.status_code == 400

    def test_auth_token_never_streamed(self, client):
        resp = client.post("/api/chat/stream", json={
            "messages": [{"role": "user", "content": "hello"}],
            "sharedSecrets": {"authToken": "tok-secret"},
        })
        assert "tok-secret" not in resp.text

    def test_not_configured_returns_503(self, dialdesk, monkeypatch, tmp_path):
        set_app(None)
        monkeypatch.setattr(server_settings, "config_path", str(tmp_path / "missing.yaml"))
        with TestClient(api) as c:
            resp = c.post("/api/chat/stream", json={"messages": [{"role": "user", "content": "hi"}]})
        assert resp.status_code == 503


class TestMetadataRoutes:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_agents(self, client):
        agents = client.get("/api/agents").json()["agents"]
        assert [a["id"] for a in agents][0] == "router"
        assert len(agents) == 6


class TestApiKey:

    def test_missing_key_rejected(self, client, monkeypatch):
        monkeypatch.setattr(server_settings, "api_key", "secret-key")
        assert client.get("/api/agents").status_code == 401

    def test_header_key_accepted(self, client, monkeypatch):
        monkeypatch.setattr(server_settings, "api_key", "secret-key")
        resp = client.get("/api/agents", headers={"X-API-Key": "secret-key"})
        assert resp.status_code == 200

    def test_bearer_key_accepted(self, client, monkeypatch):
        monkeypatch.setattr(server_settings, "api_key", "secret-key")
        resp = client.get("/api/agents", headers={"Authorization": "Bearer secret-key"})
        assert resp.status_code == 200

    def test_health_is_public(self, client, monkeypatch):
        monkeypatch.setattr(server_settings, "api_key", "secret-key")
        assert client.get("/health").status_code == 200


class TestIssueState:

    @pytest.fixture(autouse=True)
    def service_key(self, monkeypatch):
        monkeypatch.setattr(server_settings, "service_key", "svc-key")

    def test_applies_update(self, client, dialdesk):
        resp = client.post(
            "/api/issues/issue-1/state",
            headers={"X-Service-Key": "svc-key"},
            json={
                "agent": "booking",
                "status": "resolved",
                "transcript": [{"role": "call", "content": "Appointment confirmed"}],
            },
        )
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "issue_id": "issue-1"}
        assert dialdesk.store.agents["issue-1"] == "booking"
        assert dialdesk.store.statuses["issue-1"] == IssueStatus.RESOLVED
        assert dialdesk.store.transcripts["issue-1"][0].content == "Appointment confirmed"

    def test_wrong_service_key(self, client):
        resp = client.post("/api/issues/issue-1/state", headers={"X-Service-Key": "nope"}, json={})
        assert resp.status_code == 403

    def test_unset_service_key(self, client, monkeypatch):
        monkeypatch.setattr(server_settings, "service_key", None)
        resp = client.post("/api/issues/issue-1/state", json={})
        assert resp.status_code == 500

    def test_unknown_agent(self, client):
        resp = client.post(
            "/api/issues/issue-1/state",
            headers={"X-Service-Key": "svc-key"},
            json={"agent": "wizard"},
        )
        assert resp.status_code == 422

    def test_invalid_status(self, client):
        resp = client.post(
            "/api/issues/issue-1/state",
            headers={"X-Service-Key": "svc-key"},
            json={"status": "closed"},
        )
        assert resp.status_code == 422

    def test_store_unavailable(self, dialdesk):
        set_app(DialDesk({}, llm_client=ReplyLLMClient(), store=UnavailableStore()))
        with TestClient(api) as c:
            resp = c.post(
                "/api/issues/issue-1/state",
                headers={"X-Service-Key": "svc-key"},
                json={"agent": "router"},
            )
        assert resp.status_code == 503
