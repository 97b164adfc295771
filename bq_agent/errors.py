"""Error taxonomy for the query agent.

Every error carries a human-readable ``message`` that the session layer
returns verbatim in ``{"ok": False, "error": message}`` results.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all agent failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(AgentError):
    """A required setting (project id, dataset id, model key) is missing."""


class DatasetNotConfiguredError(ConfigError):
    """No dataset id is configured for schema discovery."""


class NotConfiguredError(AgentError):
    """Credential material for the active auth method is missing."""


class InvalidCredentialError(AgentError):
    """An uploaded credential document failed structural validation."""


class TokenExchangeError(AgentError):
    """The authorization code was rejected, expired, or had no pending sign-in."""


class RemoteError(AgentError):
    """The model or warehouse service returned a failure.

    ``sql`` holds the attempted query text when the failure happened while
    executing a generated query.
    """

    def __init__(self, message: str, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class UnsupportedUrlError(AgentError):
    """An external link used a scheme other than https."""


class StoreError(AgentError):
    """The persisted settings document could not be read or written."""


def remote_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    text = str(exc)
    return text if text.strip() else exc.__class__.__name__
