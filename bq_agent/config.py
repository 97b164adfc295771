from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir


APP_NAME = "bq-agent"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_SUBJECT_AREA = "3CX phone system analytics"


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path
    settings_file: str
    credential_key: str | None
    gemini_model: str
    bq_location: str | None
    subject_area: str
    api_host: str
    api_port: int

    @property
    def settings_path(self) -> Path:
        return self.data_dir / self.settings_file


def _env_optional(key: str) -> str | None:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def load_config() -> AppConfig:
    data_dir_raw = _env_optional("BQ_AGENT_DATA_DIR")
    data_dir = Path(data_dir_raw) if data_dir_raw else Path(user_data_dir(APP_NAME, appauthor=False))

    return AppConfig(
        data_dir=data_dir,
        settings_file=os.getenv("BQ_AGENT_SETTINGS_FILE", "settings.json"),
        credential_key=_env_optional("BQ_AGENT_CREDENTIAL_KEY"),
        gemini_model=_env_optional("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        bq_location=_env_optional("BQ_LOCATION"),
        subject_area=_env_optional("SUBJECT_AREA") or DEFAULT_SUBJECT_AREA,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=int(os.getenv("API_PORT", "8000")),
    )
