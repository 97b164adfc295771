from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from pydantic import BaseModel, Field, field_validator

from .agent import QueryResult
from .config import load_config
from .session import AgentSession
from .settings import ConfigUpdate
from .store import EncryptedFileStore


class ConfigResponse(BaseModel):
    ok: bool = True
    projectId: str = ""
    datasetId: str = ""
    geminiKey: str = ""
    authMethod: str = ""
    hasJsonKey: bool = False
    error: str | None = None


class OkResponse(BaseModel):
    ok: bool
    error: str | None = None


class ServiceAccountRequest(BaseModel):
    path: str = Field(..., min_length=1)


class ServiceAccountResponse(BaseModel):
    ok: bool
    email: str | None = None
    error: str | None = None


class BrowserLoginResponse(BaseModel):
    ok: bool
    authUrl: str | None = None
    error: str | None = None


class OauthCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)


class ConnectionResponse(BaseModel):
    ok: bool
    tables: list[str] = []
    error: str | None = None


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1)

    @field_validator("question")
    @classmethod
    def reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be blank")
        return value


class OpenExternalRequest(BaseModel):
    url: str


def create_app(session: AgentSession) -> FastAPI:
    app = FastAPI(title="BigQuery Agent API", version="1.0")
    app.state.session = session

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/config")
    def load_configuration() -> ConfigResponse:
        return ConfigResponse(**session.load_config())

    @app.post("/config")
    def save_configuration(request: ConfigUpdate) -> OkResponse:
        return OkResponse(**session.save_config(request))

    @app.post("/auth/service_account")
    def pick_json_file(request: ServiceAccountRequest) -> ServiceAccountResponse:
        return ServiceAccountResponse(**session.pick_json_file(lambda: request.path))

    @app.post("/auth/browser_login")
    def browser_login() -> BrowserLoginResponse:
        return BrowserLoginResponse(**session.browser_login())

    @app.post("/auth/oauth_code")
    def submit_oauth_code(request: OauthCodeRequest) -> OkResponse:
        return OkResponse(**session.submit_oauth_code(request.code))

    @app.post("/agent/test_connection")
    def test_connection() -> ConnectionResponse:
        return ConnectionResponse(**session.test_connection())

    @app.post("/agent/query")
    def query(request: QueryRequest) -> QueryResult:
        return session.query(request.question)

    @app.post("/shell/open_external")
    def open_external(request: OpenExternalRequest) -> Any:
        session.open_external(request.url)
        return None

    return app


def build_default_app() -> FastAPI:
    config = load_config()
    return create_app(AgentSession(EncryptedFileStore.from_config(config), config))
