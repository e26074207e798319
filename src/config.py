"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "studio-publish-service"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Redis (session snapshots)
    redis_url: str = "redis://localhost:6379/0"
    persistence_backend: Literal["redis", "memory"] = "redis"
    persistence_key_prefix: str = "studio"
    persistence_ttl_seconds: Optional[int] = 60 * 60 * 24 * 30

    # Content-addressed storage
    storage_provider: Literal["s3", "pinata"] = "s3"
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minio"
    minio_secret_key: str = "minio123"
    minio_bucket: str = "studio-recordings"
    minio_use_ssl: bool = False
    pinata_jwt: str = ""
    pinata_api_url: str = "https://api.pinata.cloud"
    ipfs_gateway_url: str = "https://gateway.pinata.cloud/ipfs/"

    # On-chain recording
    relay_url: str = "http://localhost:3000/api/base/save-recording"
    wallet_rpc_url: str = "http://localhost:8545"
    voice_records_contract: str = "0x0000000000000000000000000000000000000000"
    chain_id: int = 8453

    # AI transforms (ElevenLabs)
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_sts_model_id: str = "eleven_multilingual_sts_v2"
    elevenlabs_output_format: str = "mp3_44100_128"
    dubbing_poll_interval_seconds: float = 5.0
    dubbing_max_polls: int = 120

    # Missions
    missions_api_url: str = "http://localhost:3000/api/missions"

    # Weekly quota ceilings (free tier)
    weekly_save_limit: int = 5
    weekly_ai_voice_limit: int = 3
    weekly_dubbing_limit: int = 3

    # Rate Limiting
    rate_limit_storage_uri: str = "memory://"
    rate_limit_per_minute: int = 60

    # Outbound HTTP
    http_timeout_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"

    @property
    def dubbing_languages(self) -> dict[str, str]:
        """Target languages offered for dubbing."""
        return {
            "en": "English",
            "es": "Spanish",
            "fr": "French",
            "de": "German",
            "pt": "Portuguese",
            "it": "Italian",
            "ja": "Japanese",
            "ko": "Korean",
            "zh": "Chinese",
            "hi": "Hindi",
            "ar": "Arabic",
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
