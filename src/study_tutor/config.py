"""Configuration models for the study tutor."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from study_tutor.errors import MissingCredentialsError
from study_tutor.types import DetailLevel


class ModelConfig(BaseModel):
    """Model names per capability tier."""

    router_model: str = "gpt-4o-mini"
    standard_model: str = "gpt-4o-mini"
    strong_model: str = "gpt-4o"
    light_model: str = "gpt-4o-mini"
    evaluator_model: str = "gpt-4o-mini"


class RetrievalConfig(BaseModel):
    """Configures the snippet → page escalation."""

    snippets_count: int = Field(default=3, ge=1, le=20)
    pages_count: int = Field(default=5, ge=1, le=20)
    pages_count_by_detail: dict[str, int] = Field(
        default_factory=lambda: {"basic": 3, "moderate": 5, "comprehensive": 8}
    )
    default_detail_level: DetailLevel = "moderate"

    def pages_for(self, detail_level: str | None) -> int:
        level = detail_level or self.default_detail_level
        return self.pages_count_by_detail.get(level, self.pages_count)


class AgentConfig(BaseModel):
    """Configures turn ceilings and fallback texts."""

    answering_turn_ceiling: int = Field(default=5, ge=1)
    explanation_turn_ceiling: int = Field(default=3, ge=1)
    fallback_text: str = "Sorry, the request could not be completed in time."
    empty_response_text: str = "Sorry, there was an error processing the response."


class TutorSettings(BaseSettings):
    """Process settings loaded from the environment / .env file.

    `index_backend="memory"` is a smoke-test mode: the in-memory index starts
    empty, so every search reports that the caller has no collection. Use it
    to exercise routing and answering without ZeroEntropy credentials.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openai_api_key: str = ""
    openai_base_url: str | None = None
    zeroentropy_api_key: str = ""
    zeroentropy_base_url: str = "https://api.zeroentropy.dev/v1"
    index_backend: Literal["zeroentropy", "memory"] = "zeroentropy"
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    log_level: str = "INFO"
    collection_overrides: dict[str, str] = Field(default_factory=dict)

    def require_credentials(self) -> None:
        """Fail fast when a credential needed by the configured backends is absent."""
        missing: list[str] = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if self.index_backend == "zeroentropy" and not self.zeroentropy_api_key:
            missing.append("ZEROENTROPY_API_KEY")
        if missing:
            raise MissingCredentialsError(missing)
