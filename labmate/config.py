"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for required variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Number of numbered credential slots (GENAI_TOKEN_1 .. GENAI_TOKEN_20)
MAX_TOKEN_SLOTS = 20


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # ==========================================================================
    # API Keys
    # ==========================================================================
    genai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("genai_api_key", "api_key"),
        description="Primary Google GenAI API key",
    )
    genai_token_1: SecretStr | None = None
    genai_token_2: SecretStr | None = None
    genai_token_3: SecretStr | None = None
    genai_token_4: SecretStr | None = None
    genai_token_5: SecretStr | None = None
    genai_token_6: SecretStr | None = None
    genai_token_7: SecretStr | None = None
    genai_token_8: SecretStr | None = None
    genai_token_9: SecretStr | None = None
    genai_token_10: SecretStr | None = None
    genai_token_11: SecretStr | None = None
    genai_token_12: SecretStr | None = None
    genai_token_13: SecretStr | None = None
    genai_token_14: SecretStr | None = None
    genai_token_15: SecretStr | None = None
    genai_token_16: SecretStr | None = None
    genai_token_17: SecretStr | None = None
    genai_token_18: SecretStr | None = None
    genai_token_19: SecretStr | None = None
    genai_token_20: SecretStr | None = None

    # ==========================================================================
    # Models
    # ==========================================================================
    genai_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for one-shot structured generation",
    )
    live_model: str = Field(
        default="gemini-2.5-flash-native-audio-preview-09-2025",
        description="Model used for realtime audio sessions",
    )

    # ==========================================================================
    # Credential Pool / Retry
    # ==========================================================================
    credential_suspension_seconds: float = Field(
        default=60.0,
        description="How long a credential is excluded after a quota/permission error",
    )
    min_request_attempts: int = Field(
        default=3,
        description="Minimum attempts for one-shot requests (actual is max(this, available keys))",
    )

    # ==========================================================================
    # Audio Configuration
    # ==========================================================================
    audio_input_sample_rate: int = Field(
        default=16000,
        description="Sample rate of PCM sent to the live session",
    )
    audio_output_sample_rate: int = Field(
        default=24000,
        description="Sample rate of PCM received from the live session",
    )
    capture_frame_size: int = Field(
        default=4096,
        description="Samples per microphone capture buffer",
    )
    capture_device: int | None = Field(
        default=None,
        description="sounddevice input device id (None = system default)",
    )
    playback_device: int | None = Field(
        default=None,
        description="sounddevice output device id (None = system default)",
    )
    level_sample_stride: int = Field(
        default=50,
        description="Every Nth sample is used for the input level estimate",
    )
    level_gain: float = Field(
        default=500.0,
        description="Scale applied to mean magnitude before clamping to 0-100",
    )
    outbound_queue_size: int = Field(
        default=64,
        description="Max capture frames buffered for sending (oldest dropped)",
    )

    # ==========================================================================
    # Transcript
    # ==========================================================================
    transcript_merge_window_seconds: float = Field(
        default=5.0,
        description="Same-role fragments within this window merge into one message",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def credential_slots(self) -> dict[str, str]:
        """Ordered mapping of credential slot name to secret value.

        Unset slots map to an empty string; filtering and de-duplication
        is left to the credential pool.
        """
        names = ["genai_api_key"] + [f"genai_token_{i}" for i in range(1, MAX_TOKEN_SLOTS + 1)]
        slots: dict[str, str] = {}
        for name in names:
            value: SecretStr | None = getattr(self, name)
            slots[name] = value.get_secret_value() if value is not None else ""
        return slots


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
