"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Crystallize configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    default_chat_model: str = Field(default="sonnet")
    default_extraction_model: str = Field(default="haiku")
    max_tokens: int = Field(default=4096)

    # Grounding
    web_search_max_uses: int = Field(default=5)
    max_search_continuations: int = Field(default=3)

    # Database
    database_path: Path = Field(default=Path("data/crystallize.db"))

    # Conversation
    conversation_window_size: int = Field(default=50)

    # Crystallization
    default_context_label: str = Field(default="General Knowledge")

    # Prompt clock
    timezone: str = Field(default="UTC")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
