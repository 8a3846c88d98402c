"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("booking_assistant.config")

# Values copied from the sample .env that were never replaced
PLACEHOLDER_VALUES = {"sk-ant-...", "sk-...", "path/to/service-account.json"}


class Settings(BaseSettings):
    # LLM
    llm_provider: str = "claude"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_model: str = ""
    llm_temperature: float = 0.2

    # Firebase (identity + Firestore)
    firebase_api_key: str = ""
    firebase_project_id: str = ""
    google_service_account_json: str = ""

    # Storage
    store_backend: str = "firestore"
    bookings_collection: str = "bookings"
    flow_tracking_collection: str = "flowTracking"

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    # Chat sessions idle longer than this (seconds) are dropped from the registry
    session_idle_ttl: float = 3600.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if self.llm_provider not in ("claude", "openai"):
            raise ValueError(
                f"LLM_PROVIDER must be 'claude' or 'openai', got {self.llm_provider!r}."
            )

        # LLM key: required
        if self.llm_provider == "claude":
            if not self.anthropic_api_key or self.anthropic_api_key in PLACEHOLDER_VALUES:
                raise ValueError(
                    "ANTHROPIC_API_KEY is missing or still a placeholder. "
                    "Set it in .env to use Claude."
                )
        elif not self.openai_api_key or self.openai_api_key in PLACEHOLDER_VALUES:
            raise ValueError(
                "OPENAI_API_KEY is missing or still a placeholder. "
                "Set it in .env to use OpenAI."
            )

        if self.store_backend not in ("firestore", "memory"):
            raise ValueError(
                f"STORE_BACKEND must be 'firestore' or 'memory', got {self.store_backend!r}."
            )

        if self.store_backend == "memory":
            warnings.append(
                "STORE_BACKEND=memory: bookings are kept in process memory and lost on restart."
            )
        elif self.google_service_account_json in PLACEHOLDER_VALUES:
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON is a placeholder: falling back to "
                "application default credentials for Firestore."
            )

        if not self.firebase_api_key:
            if self.debug:
                warnings.append(
                    "FIREBASE_API_KEY not set. Dashboard is open to an anonymous user (DEBUG=true)."
                )
            else:
                warnings.append(
                    "FIREBASE_API_KEY not set. Sign-in and the dashboard are disabled."
                )

        return warnings


settings = Settings()
