"""
GenBI Configuration Module.

Handles all application settings, feature flags, and environment configuration.
Uses pydantic-settings for validation and type safety.

The Settings object is built once at process start and handed to each
component constructor. Only the application factory calls get_settings().
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    """Feature flags for enabling/disabling modules."""

    model_config = SettingsConfigDict(env_prefix="FEATURE_")

    asking: bool = True
    deploy: bool = True
    telemetry: bool = True

    def to_dict(self) -> dict[str, bool]:
        """Return feature flags as dictionary for health endpoint."""
        return {
            "asking": self.asking,
            "deploy": self.deploy,
            "telemetry": self.telemetry,
        }


class AIServiceSettings(BaseSettings):
    """External AI service (SQL generation, charts, answers)."""

    model_config = SettingsConfigDict(env_prefix="AI_SERVICE_")

    base_url: str = Field(default="http://localhost:5555", description="AI service base endpoint")
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout when calling the AI service")
    deploy_max_attempts: int = Field(
        default=7,
        description="Status polls while waiting for a semantics deployment (sleep grows by 1s per attempt)",
    )


class EngineSettings(BaseSettings):
    """Query engine used to preview SQL results."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    base_url: str = Field(default="http://localhost:8080", description="Query engine base endpoint")
    timeout_seconds: float = Field(default=30.0)
    preview_limit: int = Field(default=500, description="Default row limit for previews")
    answer_preview_limit: int = Field(
        default=500,
        description="Rows fetched and handed to the AI service when generating a text answer",
    )


class TrackerSettings(BaseSettings):
    """Background tracker scheduling."""

    model_config = SettingsConfigDict(env_prefix="TRACKER_")

    interval_seconds: float = Field(default=1.0, gt=0, description="Poll interval for every tracker")
    max_tracked_tasks: int = Field(default=1000, ge=1, description="Upper bound of entities per tracker")


class ProjectSettings(BaseSettings):
    """The single project served by this process."""

    model_config = SettingsConfigDict(env_prefix="PROJECT_")

    id: int = Field(default=1)
    display_name: str = Field(default="default")
    language: str = Field(default="EN", description="Language code sent to the AI service")
    manifest_path: str | None = Field(default=None, description="Path to the JSON manifest (MDL)")


class RecommendationSettings(BaseSettings):
    """Thread recommendation question generation."""

    model_config = SettingsConfigDict(env_prefix="RECOMMENDATION_")

    max_categories: int = 3
    max_questions: int = 3
    previous_questions_limit: int = Field(
        default=5, description="Latest thread questions sent as context"
    )


class AskingSettings(BaseSettings):
    """Asking task behaviour."""

    model_config = SettingsConfigDict(env_prefix="ASKING_")

    history_limit: int = Field(
        default=10, description="Prior thread responses sent as history with a follow-up question"
    )


class StorageSettings(BaseSettings):
    """Persistence backend selection."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: Literal["memory", "supabase"] = "memory"


class SupabaseSettings(BaseSettings):
    """Supabase configuration for persistence."""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")

    url: str = Field(default="https://demo.supabase.co", description="Supabase project URL")
    service_role_key: str = Field(default="demo-service-role-key", description="Supabase service role key")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Nested settings
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    ai_service: AIServiceSettings = Field(default_factory=AIServiceSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    tracker: TrackerSettings = Field(default_factory=TrackerSettings)
    project: ProjectSettings = Field(default_factory=ProjectSettings)
    recommendation: RecommendationSettings = Field(default_factory=RecommendationSettings)
    asking: AskingSettings = Field(default_factory=AskingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
