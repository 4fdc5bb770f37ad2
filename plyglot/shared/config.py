"""Application configuration using Pydantic Settings."""

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from plyglot.chat.languages import BASE_LANGUAGES, KNOWN_LANGUAGES

VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "Plyglot"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_COLOR: bool = True

    # Session history
    MAX_HISTORY_LENGTH: int = 10

    # LLM settings
    OPENAI_API_KEY: str = Field(
        default="", validation_alias=AliasChoices("OPENAI_API_KEY", "OPENAIKEY")
    )
    ANTHROPIC_API_KEY: str = ""
    GOOGLE_API_KEY: str = ""
    DEFAULT_LLM_PROVIDER: str = "openai"
    TRANSLATION_MODEL: str = "gpt-4"
    CONVERSATION_MODEL: str = "gpt-4"
    NORMAL_TEMPERATURE: float = 0.3
    POETIC_TEMPERATURE: float = 0.7
    MAX_COMPLETION_TOKENS: int = 500
    PROVIDER_TIMEOUT_SECONDS: float | None = None

    SUPPORTED_LANGUAGES: list[str] = list(BASE_LANGUAGES)

    # WebSocket
    WS_MAX_MESSAGE_SIZE: int = 65_536  # 64KB

    @field_validator("MAX_HISTORY_LENGTH")
    @classmethod
    def validate_history_length(cls, value: int) -> int:
        """A history must hold at least one full exchange."""
        if value < 2:
            raise ValueError("MAX_HISTORY_LENGTH must be at least 2")
        return value

    @field_validator("SUPPORTED_LANGUAGES")
    @classmethod
    def validate_languages(cls, value: list[str]) -> list[str]:
        """Only known language codes can be enabled."""
        unknown = [code for code in value if code not in KNOWN_LANGUAGES]
        if unknown:
            raise ValueError(f"Unknown language codes: {', '.join(unknown)}")
        if not value:
            raise ValueError("SUPPORTED_LANGUAGES must not be empty")
        return value

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


settings = Settings()
