from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from bq_agent import session as session_module
from bq_agent.config import AppConfig
from bq_agent.session import AgentSession
from bq_agent.store import MemoryStore

from fakes import CALLS_SCHEMA, BASE_SETTINGS, FakeBigQueryClient, FakeGenaiClient


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path,
        settings_file="settings.json",
        credential_key=None,
        gemini_model="gemini-test",
        bq_location=None,
        subject_area="call center analytics",
        api_host="127.0.0.1",
        api_port=8000,
    )


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore(BASE_SETTINGS)


@pytest.fixture()
def bq_client() -> FakeBigQueryClient:
    return FakeBigQueryClient(tables=dict(CALLS_SCHEMA), rows=[{"inbound_calls": 42}])


@pytest.fixture()
def genai_client() -> FakeGenaiClient:
    return FakeGenaiClient(
        "SELECT COUNT(*) AS inbound_calls FROM `acme-analytics.telephony.calls` "
        "WHERE direction = 'inbound' AND timestamp >= TIMESTAMP_TRUNC(CURRENT_TIMESTAMP(), WEEK)"
    )


@pytest.fixture()
def opened_urls() -> list[str]:
    return []


@pytest.fixture()
def agent_session(
    monkeypatch: pytest.MonkeyPatch,
    store: MemoryStore,
    app_config: AppConfig,
    bq_client: FakeBigQueryClient,
    genai_client: FakeGenaiClient,
    opened_urls: list[str],
) -> AgentSession:
    built: list[Any] = []
    model_keys: list[str] = []

    def fake_build_client(settings, location=None):
        built.append(settings)
        return bq_client

    monkeypatch.setattr(session_module, "build_client", fake_build_client)
    def fake_genai_client(api_key):
        model_keys.append(api_key)
        return genai_client

    monkeypatch.setattr(session_module.genai, "Client", fake_genai_client)
    session = AgentSession(store, app_config, opener=opened_urls.append)
    session.built_clients = built  # type: ignore[attr-defined]
    session.model_keys = model_keys  # type: ignore[attr-defined]
    return session
