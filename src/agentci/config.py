from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key")
    )
    anthropic_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("ANTHROPIC_API_KEY", "anthropic_api_key")
    )
    judge_provider: str | None = None
    judge_model: str | None = None
    timeout_seconds: float | None = None

    model_config = {
        "env_prefix": "AGENTCI_",
        "env_file": ".env",
        "extra": "ignore",
    }
