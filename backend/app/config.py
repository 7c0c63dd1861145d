from __future__ import annotations

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    domain: str = "localhost"
    jwt_secret: str = ""  # Shared with the identity provider that mints access tokens
    allow_insecure_jwt: bool = False

    @model_validator(mode="after")
    def _check_jwt_secret(self) -> Settings:
        self.jwt_secret = self.jwt_secret.strip()
        if not self.jwt_secret:
            if self.allow_insecure_jwt:
                warnings.warn(
                    "JWT_SECRET is empty but ALLOW_INSECURE_JWT is set — "
                    "this is INSECURE and should only be used for development.",
                    stacklevel=2,
                )
            else:
                raise ValueError(
                    "JWT_SECRET is not set. An empty JWT secret allows attackers to "
                    "forge access tokens. Set JWT_SECRET in .env or set "
                    "ALLOW_INSECURE_JWT=1 for development."
                )
        return self

    @model_validator(mode="after")
    def _check_qr_ttl_bounds(self) -> Settings:
        if not (
            0 < self.qr_min_ttl_seconds
            <= self.qr_default_ttl_seconds
            <= self.qr_max_ttl_seconds
        ):
            raise ValueError(
                "QR token TTL bounds must satisfy "
                "0 < QR_MIN_TTL_SECONDS <= QR_DEFAULT_TTL_SECONDS <= QR_MAX_TTL_SECONDS"
            )
        return self

    # QR share tokens. Empty key => random per-process key: tokens issued
    # before a restart can no longer be validated.
    qr_secret_key: str = ""
    qr_default_ttl_seconds: int = 3600
    qr_min_ttl_seconds: int = 60
    qr_max_ttl_seconds: int = 86400

    # Download grants for shared report files
    download_grant_ttl_seconds: int = 3600
    download_signing_key: str = ""  # if empty, derived from qr_secret_key
    public_base_url: str = "http://localhost:8000"

    data_dir: Path = Path("/app/data")
    db_url: str = "sqlite:////app/data/medshare.db"

    # AI summary of shared reports
    summary_enabled: bool = True
    summary_batch_size: int = 5
    summary_allow_cloud_fallback: bool = False  # redacted report text may leave the host
    summary_llm_retries: int = 2  # extra attempts per model call
    summary_retry_base_delay_seconds: float = 0.5  # doubles on each retry
    ollama_url: str = "http://ollama:11434"
    llm_model: str = "llama3.2"
    # Optional cloud LLM fallback (OpenAI-compatible endpoint)
    fallback_llm_url: str = ""        # e.g. "https://api.openai.com/v1"
    fallback_llm_api_key: str = ""
    fallback_llm_model: str = ""      # if empty, uses llm_model value


@lru_cache
def get_settings() -> Settings:
    return Settings()
