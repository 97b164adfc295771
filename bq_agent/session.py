"""Session object owning the shared client handles and schema cache.

Every public method is an operation exposed to the presentation layer. Each
one converts failures into ``{"ok": False, "error": message}`` at its own
boundary, so nothing raw escapes to the caller.
"""

from __future__ import annotations

import json
import threading
import webbrowser
from pathlib import Path
from typing import Any, Callable

from google import genai
from google.cloud import bigquery

from .agent import QueryAgent, QueryResult
from .auth import build_client, exchange_code, load_service_account, start_browser_login
from .config import AppConfig
from .errors import AgentError, ConfigError, InvalidCredentialError, RemoteError, UnsupportedUrlError, remote_message
from .schema_cache import SchemaCache
from .settings import (
    AUTH_BROWSER,
    AUTH_METHOD,
    AUTH_SERVICE_ACCOUNT,
    OAUTH_CLIENT_ID,
    OAUTH_CLIENT_SECRET,
    OAUTH_TOKENS,
    PENDING_OAUTH_CLIENT,
    SERVICE_ACCOUNT_JSON,
    AgentSettings,
    ConfigUpdate,
    config_summary,
    read_pending_client,
    read_settings,
)
from .store import SettingsStore
from .utils import json_dumps, log_event


FilePicker = Callable[[], "str | Path | None"]
UrlOpener = Callable[[str], Any]


def _failure(operation: str, exc: Exception) -> dict[str, Any]:
    message = exc.message if isinstance(exc, AgentError) else remote_message(exc)
    log_event("operation_failed", operation=operation, error_type=type(exc).__name__, error=message)
    return {"ok": False, "error": message}


class AgentSession:
    def __init__(
        self,
        store: SettingsStore,
        config: AppConfig,
        opener: UrlOpener = webbrowser.open,
    ) -> None:
        self.store = store
        self.config = config
        self.schema_cache = SchemaCache()
        self._opener = opener
        self._client: bigquery.Client | None = None
        self._model_client: genai.Client | None = None
        # serialises resolve client -> ensure schema -> execute across threads
        self._lock = threading.RLock()
        self._agent = QueryAgent(self)

    @property
    def has_client(self) -> bool:
        return self._client is not None

    # context used by the query agent; callers hold the session lock

    def settings(self) -> AgentSettings:
        return read_settings(self.store)

    def get_client(self) -> bigquery.Client:
        if self._client is None:
            settings = self.settings()
            try:
                self._client = build_client(settings, location=self.config.bq_location)
            except AgentError:
                raise
            except Exception as exc:
                raise RemoteError(remote_message(exc)) from exc
        return self._client

    def get_model_client(self) -> genai.Client:
        if self._model_client is None:
            key = self.settings().gemini_key
            if not key:
                raise ConfigError("No Gemini API key configured. Go to Settings and add your key.")
            self._model_client = genai.Client(api_key=key)
        return self._model_client

    def invalidate(self) -> None:
        with self._lock:
            self._client = None
            self._model_client = None
            self.schema_cache.clear()
        log_event("clients_invalidated")

    # operations

    def load_config(self) -> dict[str, Any]:
        try:
            return config_summary(self.store)
        except Exception as exc:
            return _failure("load_config", exc)

    def save_config(self, update: ConfigUpdate | dict[str, Any]) -> dict[str, Any]:
        try:
            if not isinstance(update, ConfigUpdate):
                update = ConfigUpdate.model_validate(update)
            changes = update.changes()
            with self._lock:
                if changes:
                    self.store.set_many(changes)
                self.invalidate()
        except Exception as exc:
            return _failure("save_config", exc)
        log_event("config_saved", fields=sorted(changes))
        return {"ok": True}

    def pick_json_file(self, picker: FilePicker) -> dict[str, Any]:
        try:
            path = picker()
            if not path:
                return {"ok": False}
            try:
                raw = Path(path).read_text(encoding="utf-8")
            except OSError as exc:
                raise InvalidCredentialError(f"Could not read file: {exc}") from exc
            info = load_service_account(raw)
            with self._lock:
                self.store.set_many({SERVICE_ACCOUNT_JSON: raw, AUTH_METHOD: AUTH_SERVICE_ACCOUNT})
                self.invalidate()
        except Exception as exc:
            return _failure("pick_json_file", exc)
        log_event("service_account_loaded", email=info.get("client_email"))
        return {"ok": True, "email": info.get("client_email")}

    def browser_login(self) -> dict[str, Any]:
        try:
            client_id = self.store.get(OAUTH_CLIENT_ID)
            client_secret = self.store.get(OAUTH_CLIENT_SECRET)
            auth_url = start_browser_login(client_id, client_secret)
            self._opener(auth_url)
            with self._lock:
                self.store.set_many(
                    {
                        AUTH_METHOD: AUTH_BROWSER,
                        PENDING_OAUTH_CLIENT: json.dumps(
                            {"clientId": client_id, "clientSecret": client_secret}
                        ),
                    }
                )
                self.invalidate()
        except Exception as exc:
            return _failure("browser_login", exc)
        log_event("oauth_login_started")
        return {"ok": True, "authUrl": auth_url}

    def submit_oauth_code(self, code: str) -> dict[str, Any]:
        try:
            tokens = exchange_code(read_pending_client(self.store), code)
            with self._lock:
                self.store.set_many({OAUTH_TOKENS: json_dumps(tokens), AUTH_METHOD: AUTH_BROWSER})
                self.invalidate()
        except Exception as exc:
            return _failure("submit_oauth_code", exc)
        log_event("oauth_tokens_stored", has_refresh_token=bool(tokens.get("refresh_token")))
        return {"ok": True}

    def test_connection(self) -> dict[str, Any]:
        try:
            with self._lock:
                client = self.get_client()
                settings = self.settings()
                tables = self.schema_cache.refresh(client, settings.project_id, settings.dataset_id)
        except Exception as exc:
            return _failure("test_connection", exc)
        return {"ok": True, "tables": list(tables)}

    def query(self, question: str) -> QueryResult:
        try:
            with self._lock:
                return self._agent.answer(question)
        except Exception as exc:
            failure = _failure("query", exc)
            return QueryResult.failure(failure["error"])

    def open_external(self, url: str) -> None:
        try:
            if not isinstance(url, str) or not url.startswith("https://"):
                raise UnsupportedUrlError(f"Refusing to open non-https URL: {url!r}")
            self._opener(url)
        except UnsupportedUrlError as exc:
            log_event("external_open_refused", error=exc.message)
        except Exception as exc:
            _failure("open_external", exc)
        return None
