"""Warehouse client construction for the three supported auth strategies.

* service account: an uploaded JSON key document
* browser: out-of-band OAuth sign-in, tokens refreshed by google-auth
* apiKey: application-default credentials of the machine
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from google.cloud import bigquery
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account
from google_auth_oauthlib.flow import Flow

from .errors import ConfigError, InvalidCredentialError, NotConfiguredError, TokenExchangeError
from .settings import AgentSettings, AmbientAuth, BrowserAuth, ServiceAccountAuth
from .utils import log_event


OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/bigquery.readonly",
    "https://www.googleapis.com/auth/cloud-platform.read-only",
]
SERVICE_ACCOUNT_TYPE = "service_account"


def load_service_account(raw: str) -> dict[str, Any]:
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidCredentialError(f"Could not read file: {exc}") from exc
    if not isinstance(info, dict) or info.get("type") != SERVICE_ACCOUNT_TYPE:
        raise InvalidCredentialError(
            "Not a valid service account JSON file. Make sure you downloaded the right key."
        )
    return info


def _client_config(client_id: str, client_secret: str) -> dict[str, Any]:
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": [OOB_REDIRECT_URI],
        }
    }


def _oob_flow(client_id: str, client_secret: str) -> Flow:
    # no PKCE verifier: the flow object does not survive between the two phases
    return Flow.from_client_config(
        _client_config(client_id, client_secret),
        scopes=OAUTH_SCOPES,
        redirect_uri=OOB_REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def start_browser_login(client_id: str | None, client_secret: str | None) -> str:
    if not client_id or not client_secret:
        raise NotConfiguredError(
            "OAuth client credentials not configured. Add your OAuth2 Client ID and Secret "
            "in settings, or use a service account JSON instead."
        )
    flow = _oob_flow(client_id, client_secret)
    auth_url, _state = flow.authorization_url(access_type="offline", prompt="consent")
    return auth_url


def exchange_code(pending: dict[str, str] | None, code: str) -> dict[str, Any]:
    if not pending:
        raise TokenExchangeError(
            "Token exchange failed: no pending sign-in. Start the browser sign-in first."
        )
    flow = _oob_flow(pending["clientId"], pending["clientSecret"])
    try:
        flow.fetch_token(code=code.strip())
    except Exception as exc:
        raise TokenExchangeError(f"Token exchange failed: {exc}") from exc
    return _tokens_from_credentials(flow.credentials)


def _tokens_from_credentials(creds: Any) -> dict[str, Any]:
    expiry = getattr(creds, "expiry", None)
    return {
        "token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": getattr(creds, "token_uri", None) or GOOGLE_TOKEN_URI,
        "scopes": list(creds.scopes or OAUTH_SCOPES),
        "expiry": expiry.isoformat() if expiry else None,
    }


def _token_expiry(raw: Any) -> datetime | None:
    # google-auth compares expiry against a naive UTC clock
    if not raw:
        return None
    try:
        expiry = datetime.fromisoformat(str(raw))
    except ValueError:
        return None
    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    return expiry


def _browser_credentials(auth: BrowserAuth) -> user_credentials.Credentials:
    tokens = auth.tokens or {}
    return user_credentials.Credentials(
        token=tokens.get("token") or tokens.get("access_token"),
        refresh_token=tokens.get("refresh_token"),
        token_uri=tokens.get("token_uri") or GOOGLE_TOKEN_URI,
        client_id=auth.client_id,
        client_secret=auth.client_secret,
        scopes=tokens.get("scopes") or OAUTH_SCOPES,
        expiry=_token_expiry(tokens.get("expiry")),
    )


def build_client(settings: AgentSettings, location: str | None = None) -> bigquery.Client:
    project_id = settings.project_id
    if not project_id:
        raise ConfigError("No Google Cloud Project ID configured. Go to Settings.")

    auth = settings.auth
    if isinstance(auth, ServiceAccountAuth):
        if not auth.credentials_json:
            raise NotConfiguredError(
                "No service account JSON uploaded. Go to Settings and upload your key file."
            )
        info = load_service_account(auth.credentials_json)
        creds = service_account.Credentials.from_service_account_info(info)
        client = bigquery.Client(project=project_id, credentials=creds, location=location)
    elif isinstance(auth, BrowserAuth):
        if not auth.tokens:
            raise NotConfiguredError("Browser auth not completed. Go to Settings and sign in.")
        client = bigquery.Client(
            project=project_id, credentials=_browser_credentials(auth), location=location
        )
    elif isinstance(auth, AmbientAuth):
        # application-default credentials; failures surface at the first remote call
        client = bigquery.Client(project=project_id, location=location)
    else:
        raise ConfigError(f"Unsupported auth strategy: {type(auth).__name__}")

    log_event("client_created", project_id=project_id, auth_method=settings.auth_method)
    return client
