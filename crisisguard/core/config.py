# crisisguard/core/config.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — Configuration
------------------------------------------
Central configuration for the session server, including:

- app metadata
- API host/port
- filesystem paths (system-instruction prompts)
- advisory backend tiers:
    * online  (OpenRouter-style chat completions)
    * local   (Ollama HTTP)
    * fallback (fixed safety messages, always on)
- location acquisition limits
- protocol / resource defaults
- session registry housekeeping

"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

# This file is: <root>/crisisguard/core/config.py
APP_DIR: Path = Path(__file__).resolve().parents[1]   # .../crisisguard
ROOT_DIR: Path = APP_DIR.parent                       # project root

PROMPTS_DIR: Path = APP_DIR / "prompts"


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """
    Global configuration for the session server.

    This class is instantiated once at import time as `settings`
    and used everywhere in the codebase.
    """

    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App / server basics -----------------------------------------------
    app_name: str = "CrisisGuard Session Server"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # --- Filesystem paths ---------------------------------------------------
    prompts_dir: Path = PROMPTS_DIR

    # --- Advisory backend: online tier -------------------------------------
    advisory_online_enabled: bool = True
    advisory_base_url: str = "https://openrouter.ai/api/v1/chat/completions"

    # ENV: ADVISORY_API_KEY=sk-or-v1-...
    advisory_api_key: str | None = Field(
        default=None,
        description="API key for the online advisory provider (env: ADVISORY_API_KEY).",
    )

    # Priority-ordered model list (first → last).
    advisory_model_candidates: list[str] = [
        "google/gemini-2.5-flash",
        "meta-llama/llama-3.3-70b-instruct:free",
        "deepseek/deepseek-chat-v3-0324:free",
    ]

    # Per HTTP call. A timeout counts as a backend failure.
    advisory_timeout_s: float = 30.0

    # Ask the provider to ground protocol/resource answers with web search.
    advisory_web_search: bool = True

    # --- Advisory backend: local tier (Ollama HTTP) ------------------------
    advisory_local_enabled: bool = True
    advisory_ollama_url: str | None = Field(
        default=None,
        description=(
            "Ollama chat endpoint, e.g. http://localhost:11434/api/chat "
            "(env: ADVISORY_OLLAMA_URL)."
        ),
    )
    advisory_ollama_model: str | None = Field(
        default=None,
        description="Ollama model name (env: ADVISORY_OLLAMA_MODEL), e.g. llama3.2:latest.",
    )
    advisory_local_timeout_s: float = 60.0

    # --- Location -----------------------------------------------------------
    location_timeout_s: float = 10.0
    unknown_location_label: str = "Unknown Location"

    # --- Protocol / resources ----------------------------------------------
    default_severity: str = "Situation Unknown. Need General Protocol."
    max_verified_sources: int = 3
    max_resources: int = 5
    default_emergency_phone: str = "911"

    # --- Sessions -----------------------------------------------------------
    session_idle_ttl_s: int = 6 * 60 * 60

    # --- Safety / limits ----------------------------------------------------
    max_user_chars: int = 2000


# Single global settings instance used by the rest of the app.
settings = Settings()


if __name__ == "__main__":
    # Minimal self-test so you can quickly verify config loading.
    print("CrisisGuard — Settings self-test")
    print(f"ROOT_DIR         : {ROOT_DIR}")
    print(f"APP_DIR          : {APP_DIR}")
    print(f"PROMPTS_DIR      : {settings.prompts_dir}")
    print(f"Environment      : {settings.environment}")
    print(f"Online enabled   : {settings.advisory_online_enabled}, API key set: {bool(settings.advisory_api_key)}")
    print(f"Online models    : {settings.advisory_model_candidates}")
    print(f"Local enabled    : {settings.advisory_local_enabled}")
    print(f"Local Ollama     : url={settings.advisory_ollama_url!r}, model={settings.advisory_ollama_model!r}")
    print(f"Location timeout : {settings.location_timeout_s}s")
