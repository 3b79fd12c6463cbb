from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_PROVIDERS = ("openai", "claude", "mock")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )

    database_url: str = ""
    log_level: str = "INFO"
    expose_error_details: bool = False
    docs_enabled: bool = True

    openai_api_key: str = ""
    anthropic_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    )

    ai_provider: str = "openai"
    ai_identify_model: str = ""
    ai_match_model: str = ""
    ai_temperature: float = 0.2
    ai_timeout_seconds: float = 60.0
    ai_identify_max_tokens: int = 8000
    ai_match_max_tokens: int = 3000

    component_limit_min: int = 8
    component_limit_max: int = 20

    image_max_dimension: int = Field(default=1024, ge=16)
    image_quality: int = Field(default=80, ge=1, le=95)
    fingerprint_length: int = Field(default=16, ge=8, le=64)

    scan_cache_enabled: bool = True
    scan_cache_ttl_seconds: int = 7 * 24 * 60 * 60
    scan_cache_max_entries: int = 5_000

    detection_min_interval_ms: int = 333
    detection_confidence_threshold: float = 0.3
    detection_max_results: int = 8

    cors_allow_origins: list[str] = Field(default_factory=list)

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        name = str(value or "").strip().lower()
        if name not in ALLOWED_PROVIDERS:
            msg = f"Unknown AI provider {name!r}; valid: {list(ALLOWED_PROVIDERS)}"
            raise ValueError(msg)
        return name

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def api_key_for(self, provider: str) -> str:
        if provider == "openai":
            return self.openai_api_key
        if provider == "claude":
            return self.anthropic_api_key
        return ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
