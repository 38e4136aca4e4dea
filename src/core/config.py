"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Cube API ─────────────────────────────────────────
    cube_api_url: str = "http://localhost:4000/cubejs-api/v1"
    cube_api_token: str = ""
    cube_request_timeout: float = 30.0

    # ── Query builder ────────────────────────────────────
    validation_debounce_ms: int = 200
    default_display_limit: int = 10
    default_granularity: str = "month"
    query_state_path: str = ""  # empty -> persistence disabled

    # ── App ──────────────────────────────────────────────
    log_level: str = "INFO"

    @property
    def validation_debounce_seconds(self) -> float:
        return max(self.validation_debounce_ms, 0) / 1000

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.query_state_path.strip())

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
