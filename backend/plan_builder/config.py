from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MODE_VALUES = ("deterministic", "llm")
OVERRIDE_VALUES = ("deterministic", "llm", "inherit")
PROVIDER_VALUES = ("gemini", "openai", "mock")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AI_PLAN_BUILDER_",
        extra="ignore",
        populate_by_name=True,
    )

    # Global capability mode: "deterministic" (default) or "llm"
    ai_mode: str = "deterministic"
    # Per-capability overrides: "deterministic" | "llm" | "inherit"
    ai_cap_summarize_intake: str = "inherit"
    ai_cap_suggest_draft_plan: str = "inherit"
    ai_cap_suggest_proposal_diffs: str = "inherit"
    ai_cap_generate_session_detail: str = "inherit"

    llm_provider: str = "gemini"  # "gemini" | "openai" | "mock"
    llm_model: str = "gemini-2.0-flash"
    llm_model_summarize_intake: str = ""
    llm_model_suggest_draft_plan: str = ""
    llm_model_suggest_proposal_diffs: str = ""
    llm_model_generate_session_detail: str = ""

    llm_max_output_tokens: int = 1200
    llm_max_output_tokens_summarize_intake: int | None = None
    llm_max_output_tokens_suggest_draft_plan: int | None = None
    llm_max_output_tokens_suggest_proposal_diffs: int | None = None
    llm_max_output_tokens_generate_session_detail: int | None = None

    # Calls per hour per capability; 0 disables the limiter for that capability
    llm_rate_limit_per_hour: int = 20
    llm_rate_limit_per_hour_summarize_intake: int | None = None
    llm_rate_limit_per_hour_suggest_draft_plan: int | None = None
    llm_rate_limit_per_hour_suggest_proposal_diffs: int | None = None
    llm_rate_limit_per_hour_generate_session_detail: int | None = None

    llm_retry_count: int = 1  # clamped to 0..2
    llm_timeout_ms: int = 20000  # min 1000

    detail_concurrency: int = 4
    draft_update_timeout_seconds: float = 15.0

    google_gemini_api_key: str = Field("", validation_alias=AliasChoices("GOOGLE_GEMINI_API_KEY", "google_gemini_api_key"))
    openai_api_key: str = Field("", validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"))
    openai_base_url: str = "https://api.openai.com/v1"
    redis_url: str = Field("redis://localhost:6379/0", validation_alias=AliasChoices("REDIS_URL", "redis_url"))
    app_env: str = Field("development", validation_alias=AliasChoices("APP_ENV", "app_env"))  # "test" forces the mock transport

    @field_validator("ai_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value):
        text = str(value or "").strip().lower()
        return text if text in MODE_VALUES else "deterministic"

    @field_validator(
        "ai_cap_summarize_intake",
        "ai_cap_suggest_draft_plan",
        "ai_cap_suggest_proposal_diffs",
        "ai_cap_generate_session_detail",
        mode="before",
    )
    @classmethod
    def _normalize_override(cls, value):
        text = str(value or "").strip().lower()
        return text if text in OVERRIDE_VALUES else "inherit"

    @field_validator("llm_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        return str(value or "").strip().lower()

    @field_validator("llm_retry_count")
    @classmethod
    def _clamp_retry_count(cls, value: int) -> int:
        return max(0, min(2, value))

    @field_validator("llm_timeout_ms")
    @classmethod
    def _clamp_timeout(cls, value: int) -> int:
        return max(1000, value)

    @field_validator("detail_concurrency")
    @classmethod
    def _clamp_concurrency(cls, value: int) -> int:
        return max(1, min(16, value))

    @property
    def llm_timeout_seconds(self) -> float:
        return self.llm_timeout_ms / 1000.0

    @property
    def force_mock_transport(self) -> bool:
        """True in test environments, where no real provider may be called."""
        return self.app_env.strip().lower() == "test"

    def capability_value(self, prefix: str, suffix: str):
        """Per-capability field lookup, e.g. capability_value("llm_model", "suggest_draft_plan")."""
        return getattr(self, f"{prefix}_{suffix}", None)


settings = Settings()
