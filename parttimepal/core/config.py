"""
Configuration management for Part-time Pal.

Loads settings from environment variables (and a local .env file) with
sensible defaults. Uses pydantic-settings for validation.
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field


class LLMSettings(BaseSettings):
    """LLM API settings - Claude (Anthropic) as the analysis provider."""

    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LLM_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
        description="Anthropic API key for Claude"
    )
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model for extraction, verification and drafting calls"
    )
    reasoning_model: str = Field(
        default="claude-opus-4-20250514",
        description="Model for the deep scam-risk analysis"
    )
    temperature: float = Field(
        default=0.3,
        description="LLM temperature for deterministic outputs"
    )
    max_tokens: int = Field(
        default=4096,
        description="Maximum tokens in LLM response"
    )
    request_timeout: float = Field(
        default=60.0,
        description="Seconds before a single provider call is abandoned"
    )
    web_search_max_uses: int = Field(
        default=5,
        description="Maximum web searches the model may run per call"
    )
    use_mock: bool = Field(
        default=False,
        description="Answer with the offline mock provider (no API calls)"
    )

    class Config:
        env_prefix = "LLM_"
        env_file = ".env"
        extra = "ignore"


class AnalysisSettings(BaseSettings):
    """Input normalization and analysis thresholds."""

    min_content_length: int = Field(
        default=10,
        description="Shortest normalized text accepted into the pipeline"
    )
    min_url_content_length: int = Field(
        default=50,
        description="URL extractions shorter than this are treated as unreadable"
    )
    target_job_count: int = Field(
        default=12,
        description="How many distinct listings the search prompt asks for"
    )
    description_preview_length: int = Field(
        default=150,
        description="Characters of normalized text shown on the placeholder job"
    )
    max_prompt_chars: int = Field(
        default=12000,
        description="Posting text is truncated to this length inside prompts"
    )

    class Config:
        env_prefix = "ANALYSIS_"
        env_file = ".env"
        extra = "ignore"


class SearchSettings(BaseSettings):
    """Job search result shaping."""

    logo_url_template: str = Field(
        default="https://logo.clearbit.com/{domain}",
        description="Domain to logo lookup convention"
    )
    logo_excluded_domains: List[str] = Field(
        default=["facebook.com", "google.com"],
        description="Domains that never get a synthesized logo"
    )
    min_logo_domain_length: int = Field(
        default=4,
        description="Shortest domain considered for a logo"
    )
    default_country_label: str = Field(default="Việt Nam")

    class Config:
        env_prefix = "SEARCH_"
        env_file = ".env"
        extra = "ignore"


class UploadSettings(BaseSettings):
    """Which uploads are attached as binary files and which are read as text."""

    binary_mime_types: List[str] = Field(
        default=[
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "image/",
        ],
        description="Exact mime types, or prefixes ending in '/', sent as attachments"
    )
    binary_extensions: List[str] = Field(
        default=[".pdf", ".doc", ".docx", ".png", ".jpg", ".jpeg", ".webp", ".gif"],
        description="Fallback when the browser sends no useful mime type"
    )
    text_encoding: str = Field(default="utf-8")
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Uploads above this size are rejected"
    )

    class Config:
        env_prefix = "UPLOAD_"
        env_file = ".env"
        extra = "ignore"


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    # Application
    app_name: str = "Part-time Pal"
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    session_idle_seconds: int = Field(
        default=3600, gt=0,
        description="Sessions untouched for longer than this are dropped"
    )

    # Sub-settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)

    class Config:
        env_prefix = "PARTTIMEPAL_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings. Useful for dependency injection."""
    return settings
