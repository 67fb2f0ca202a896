from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, Dict, Optional
from pydantic import PostgresDsn, field_validator, model_validator


class Settings(BaseSettings):
    PROJECT_NAME: str = "Voice Shopping Assistant"
    LOG_LEVEL: str = "DEBUG"

    OPENAI_MODEL: str = "gpt-4o-mini"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_TRANSCRIBE_MODEL: str = "gemini-2.5-flash"
    GEMINI_TTS_MODEL: str = "gemini-2.5-flash-preview-tts"

    # Database
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    DATABASE_URL: str
    AUTO_CREATE_TABLES: bool = True

    # Turn pipeline
    TURN_TIMEOUT_SECONDS: float = 30.0
    STORE_WRITE_ATTEMPTS: int = 3
    STORE_RETRY_MAX_WAIT_SECONDS: float = 2.0
    DEFAULT_VOICE_PROFILE: str = "PROFESSIONAL_FEMALE"

    # Collaborators
    COMMERCE_API_URL: Optional[str] = None
    COMMERCE_TIMEOUT_SECONDS: float = 5.0
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    N8N_WEBHOOK_VOICE_SESSION_STARTED: Optional[str] = None
    N8N_WEBHOOK_VOICE_INTERACTION: Optional[str] = None
    N8N_WEBHOOK_VOICE_SESSION_ENDED: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def assemble_db_connection(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if "DATABASE_URL" not in values:
            db_url = PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=values.get("POSTGRES_USER"),
                password=values.get("POSTGRES_PASSWORD"),
                host=values.get("POSTGRES_HOST") or "localhost",
                port=int(values.get("POSTGRES_PORT") or 5432),
                path=f"{values.get('POSTGRES_DB') or ''}",
            )
            values["DATABASE_URL"] = str(db_url)
        return values

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def strip_quotes_from_db_url(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip('"')
        return v

    @property
    def webhook_urls(self) -> Dict[str, Optional[str]]:
        return {
            "voice_session_started": self.N8N_WEBHOOK_VOICE_SESSION_STARTED,
            "voice_interaction": self.N8N_WEBHOOK_VOICE_INTERACTION,
            "voice_session_ended": self.N8N_WEBHOOK_VOICE_SESSION_ENDED,
        }

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
