from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from bq_agent.api import create_app
from bq_agent.config import AppConfig
from bq_agent.session import AgentSession
from bq_agent.store import EncryptedFileStore

from fakes import FakeBigQueryClient, FakeGenaiClient


@pytest.fixture()
def client(agent_session: AgentSession) -> TestClient:
    return TestClient(create_app(agent_session))


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_load_and_save_config(client: TestClient, agent_session: AgentSession) -> None:
    resp = client.post("/config", json={"projectId": "new-project", "authMethod": "serviceAccount"})
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    data = client.get("/config").json()
    assert data["projectId"] == "new-project"
    assert data["authMethod"] == "serviceAccount"
    assert data["hasJsonKey"] is False


def test_save_config_rejects_unknown_method(client: TestClient) -> None:
    resp = client.post("/config", json={"authMethod": "password"})
    assert resp.status_code == 422


def test_service_account_upload(client: TestClient, tmp_path: Path) -> None:
    key_file = tmp_path / "key.json"
    key_file.write_text(json.dumps({"type": "service_account", "client_email": "a@b.c"}), encoding="utf-8")
    resp = client.post("/auth/service_account", json={"path": str(key_file)})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "email": "a@b.c", "error": None}


def test_browser_login_without_client(client: TestClient) -> None:
    resp = client.post("/auth/browser_login")
    assert resp.status_code == 200
    assert resp.json()["ok"] is False


def test_oauth_code_without_sign_in(client: TestClient) -> None:
    resp = client.post("/auth/oauth_code", json={"code": "4/abc"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is False
    assert "Token exchange failed" in body["error"]


def test_test_connection(client: TestClient) -> None:
    resp = client.post("/agent/test_connection")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "tables": ["calls"], "error": None}


def test_query(client: TestClient, bq_client: FakeBigQueryClient) -> None:
    resp = client.post("/agent/query", json={"question": "How many inbound calls did we get this week?"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["columns"] == ["inbound_calls"]
    assert data["rows"] == [{"inbound_calls": 42}]
    assert data["sql"] == bq_client.queries[0]


def test_query_unanswerable(client: TestClient, genai_client: FakeGenaiClient) -> None:
    genai_client.models.reply = "CANNOT_ANSWER"
    data = client.post("/agent/query", json={"question": "Who won the match?"}).json()
    assert data["ok"] is True
    assert data["sql"] is None
    assert data["message"]


@pytest.mark.parametrize("question", ["", "   "])
def test_blank_question_is_rejected_before_the_agent(
    client: TestClient, genai_client: FakeGenaiClient, question: str
) -> None:
    resp = client.post("/agent/query", json={"question": question})
    assert resp.status_code == 422
    assert genai_client.models.prompts == []


def test_open_external(client: TestClient, opened_urls: list[str]) -> None:
    assert client.post("/shell/open_external", json={"url": "http://example.com"}).json() is None
    client.post("/shell/open_external", json={"url": "https://example.com/docs"})
    assert opened_urls == ["https://example.com/docs"]


def test_load_config_with_unreadable_store(tmp_path: Path, app_config: AppConfig) -> None:
    path = tmp_path / "settings.json"
    path.write_text("not json", encoding="utf-8")
    session = AgentSession(EncryptedFileStore(path, os.urandom(32)), app_config)
    resp = TestClient(create_app(session), raise_server_exceptions=False).get("/config")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is False
    assert "Invalid settings envelope" in data["error"]


def test_question_reaches_the_model_verbatim(client: TestClient, genai_client: FakeGenaiClient) -> None:
    client.post("/agent/query", json={"question": "  How many calls?  "})
    assert genai_client.models.prompts[0].endswith("USER QUESTION:   How many calls?  ")
