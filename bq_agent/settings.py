from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel

from .store import SettingsStore


AUTH_SERVICE_ACCOUNT = "serviceAccount"
AUTH_BROWSER = "browser"
AUTH_API_KEY = "apiKey"
AUTH_METHODS = (AUTH_SERVICE_ACCOUNT, AUTH_BROWSER, AUTH_API_KEY)

AuthMethod = Literal["serviceAccount", "browser", "apiKey"]

# flat store keys
PROJECT_ID = "projectId"
DATASET_ID = "datasetId"
GEMINI_KEY = "geminiKey"
AUTH_METHOD = "authMethod"
SERVICE_ACCOUNT_JSON = "serviceAccountJson"
OAUTH_CLIENT_ID = "oauthClientId"
OAUTH_CLIENT_SECRET = "oauthClientSecret"
OAUTH_TOKENS = "oauthTokens"
PENDING_OAUTH_CLIENT = "pendingOauthClient"


@dataclass(frozen=True)
class ServiceAccountAuth:
    credentials_json: str | None


@dataclass(frozen=True)
class BrowserAuth:
    client_id: str | None
    client_secret: str | None
    tokens: dict[str, Any] | None = field(default=None, hash=False)


@dataclass(frozen=True)
class AmbientAuth:
    pass


AuthStrategy = Union[ServiceAccountAuth, BrowserAuth, AmbientAuth]


@dataclass(frozen=True)
class AgentSettings:
    project_id: str | None
    dataset_id: str | None
    gemini_key: str | None
    auth: AuthStrategy

    @property
    def auth_method(self) -> str:
        if isinstance(self.auth, ServiceAccountAuth):
            return AUTH_SERVICE_ACCOUNT
        if isinstance(self.auth, BrowserAuth):
            return AUTH_BROWSER
        return AUTH_API_KEY


class ConfigUpdate(BaseModel):
    """Partial settings form; absent or blank fields are left untouched."""

    projectId: str | None = None
    datasetId: str | None = None
    geminiKey: str | None = None
    authMethod: AuthMethod | None = None
    oauthClientId: str | None = None
    oauthClientSecret: str | None = None

    def changes(self) -> dict[str, str]:
        values: dict[str, str] = {}
        for key, value in self.model_dump().items():
            if value is None:
                continue
            text = str(value).strip()
            if text:
                values[key] = text
        return values


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _json_object(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def read_auth_method(store: SettingsStore) -> str:
    method = store.get(AUTH_METHOD) or AUTH_SERVICE_ACCOUNT
    return method if method in AUTH_METHODS else AUTH_SERVICE_ACCOUNT


def read_pending_client(store: SettingsStore) -> dict[str, str] | None:
    pending = _json_object(store.get(PENDING_OAUTH_CLIENT))
    if not pending:
        return None
    client_id = _text(pending.get("clientId"))
    client_secret = _text(pending.get("clientSecret"))
    if not client_id or not client_secret:
        return None
    return {"clientId": client_id, "clientSecret": client_secret}


def read_settings(store: SettingsStore) -> AgentSettings:
    method = read_auth_method(store)
    auth: AuthStrategy
    if method == AUTH_SERVICE_ACCOUNT:
        auth = ServiceAccountAuth(credentials_json=_text(store.get(SERVICE_ACCOUNT_JSON)))
    elif method == AUTH_BROWSER:
        # tokens were issued to the client that started the sign-in
        pending = read_pending_client(store) or {}
        auth = BrowserAuth(
            client_id=pending.get("clientId") or _text(store.get(OAUTH_CLIENT_ID)),
            client_secret=pending.get("clientSecret") or _text(store.get(OAUTH_CLIENT_SECRET)),
            tokens=_json_object(store.get(OAUTH_TOKENS)),
        )
    else:
        auth = AmbientAuth()
    return AgentSettings(
        project_id=_text(store.get(PROJECT_ID)),
        dataset_id=_text(store.get(DATASET_ID)),
        gemini_key=_text(store.get(GEMINI_KEY)),
        auth=auth,
    )


def config_summary(store: SettingsStore) -> dict[str, Any]:
    return {
        "projectId": store.get(PROJECT_ID, "") or "",
        "datasetId": store.get(DATASET_ID, "") or "",
        "geminiKey": store.get(GEMINI_KEY, "") or "",
        "authMethod": read_auth_method(store),
        "hasJsonKey": bool(store.get(SERVICE_ACCOUNT_JSON)),
    }
