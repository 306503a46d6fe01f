"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Orda"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    LLM_PROVIDER: Literal["gemini", "azure_openai"] = "gemini"
    GEMINI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None
    MULTIMODAL_MODEL: str = "gemini-2.5-flash"
    MODEL_MAX_TOKENS: int = 8192

    # Menu intake limits
    MAX_PAGES: int = 6
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    # Per-file ceiling accepted by the vision model; larger images are recompressed
    MODEL_MAX_FILE_BYTES: int = 5 * 1024 * 1024
    COMPRESSION_MIN_QUALITY: int = 40
    COMPRESSION_MIN_DIMENSION: int = 1024

    # Streaming extraction: run one repair/extract pass every N tokens
    PASS_TOKEN_INTERVAL: int = 50

    # Remote source fetch
    FETCH_TIMEOUT_SECONDS: float = 30.0
    FETCH_MAX_BYTES: int = 10 * 1024 * 1024

    # Original menu files, served back for "view original"
    STORAGE_DIR: str = "./var/menu-uploads"
    STORAGE_URL_PATH: str = "/uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Carts
    DEFAULT_TIP_PERCENTAGE: int = 18

    # Database; POSTGRES_* variables are used when unset
    DATABASE_URL: str | None = None
    # Create missing tables at startup
    AUTO_CREATE_SCHEMA: bool = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):
        env_file = ""

    # pydantic-settings accepts the runtime-only `_env_file` kwarg.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
