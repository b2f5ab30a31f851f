"""
Settings Configuration
Pydantic-validated configuration for storage, workflow, providers and LLMs.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from utils.exceptions import ConfigurationError


MODES = ("strict", "development")
DEVELOPMENT_NODE_ENVS = ("development", "test")


class StorageSettings(BaseSettings):
    """Artifact store configuration"""
    root_dir: str = Field(default="./data/artifacts", description="Local artifact root")
    output_bucket: Optional[str] = Field(default=None, description="S3 bucket; selects the object-store backend when set")
    output_prefix: str = Field(default="articles", description="Key prefix inside the bucket")
    aws_region: Optional[str] = Field(default=None, description="AWS region for the bucket")

    class Config:
        env_prefix = ""
        extra = "ignore"

    @field_validator("output_bucket", "aws_region", mode="before")
    @classmethod
    def _optional_text(cls, value):
        text = str(value or "").strip()
        return text or None

    @field_validator("root_dir", mode="before")
    @classmethod
    def _root_required(cls, value):
        text = str(value or "").strip()
        if not text:
            raise ValueError("ROOT_DIR must not be empty")
        return text

    @property
    def backend(self) -> str:
        return "s3" if self.output_bucket else "local"


class WorkflowSettings(BaseSettings):
    """Workflow engine configuration"""
    mode: Optional[str] = Field(default=None, description="strict or development")
    node_env: Optional[str] = Field(default=None, description="development/test selects mock fallback when MODE is unset")
    batch_size: int = Field(default=20, description="Maximum concurrent terms per batch")
    stop_on_failure: bool = Field(default=False, description="Skip every remaining stage after a failure")

    stage_timeout_research: float = Field(default=300.0)
    stage_timeout_analysis: float = Field(default=180.0)
    stage_timeout_valuation: float = Field(default=60.0)
    stage_timeout_enhancement: float = Field(default=600.0)
    stage_timeout_optimization: float = Field(default=300.0)
    stage_timeout_render: float = Field(default=30.0)
    stage_timeout_export: float = Field(default=60.0)
    valuation_wait_timeout: float = Field(default=60.0, description="Bound on how long enhancement waits for valuation")

    research_ttl: int = Field(default=0, description="Research cache TTL in seconds, 0 = unlimited")
    section_min_words: int = Field(default=120)
    section_max_words: int = Field(default=400)

    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_multiplier: float = Field(default=2.0)
    retry_max_delay: float = Field(default=30.0)

    export_dir: Optional[str] = Field(default=None, description="Export destination used by the export stage")

    class Config:
        env_prefix = ""
        extra = "ignore"

    @field_validator("mode", "node_env", "export_dir", mode="before")
    @classmethod
    def _optional_text(cls, value):
        text = str(value or "").strip()
        return text or None

    @field_validator("mode")
    @classmethod
    def _known_mode(cls, value):
        if value is None:
            return None
        lowered = value.lower()
        if lowered not in MODES:
            raise ValueError(f"MODE must be one of {', '.join(MODES)}")
        return lowered

    @field_validator("batch_size", "retry_max_attempts", "section_min_words", "section_max_words")
    @classmethod
    def _positive_int(cls, value):
        if int(value) <= 0:
            raise ValueError("must be a positive integer")
        return int(value)

    @field_validator(
        "stage_timeout_research",
        "stage_timeout_analysis",
        "stage_timeout_valuation",
        "stage_timeout_enhancement",
        "stage_timeout_optimization",
        "stage_timeout_render",
        "stage_timeout_export",
        "valuation_wait_timeout",
        "retry_multiplier",
    )
    @classmethod
    def _positive_float(cls, value):
        if float(value) <= 0:
            raise ValueError("must be positive")
        return float(value)

    @field_validator("retry_base_delay", "retry_max_delay", "research_ttl")
    @classmethod
    def _non_negative(cls, value):
        if float(value) < 0:
            raise ValueError("must not be negative")
        return value

    @model_validator(mode="after")
    def _section_bounds(self):
        if self.section_min_words > self.section_max_words:
            raise ValueError("SECTION_MIN_WORDS must not exceed SECTION_MAX_WORDS")
        return self

    @property
    def effective_mode(self) -> str:
        if self.mode:
            return self.mode
        if (self.node_env or "").lower() in DEVELOPMENT_NODE_ENVS:
            return "development"
        return "strict"

    @property
    def development(self) -> bool:
        return self.effective_mode == "development"

    def stage_timeout(self, stage: str) -> float:
        return float(getattr(self, f"stage_timeout_{stage}"))


class ProviderSettings(BaseSettings):
    """External REST provider credentials"""
    kwrds_api_key: Optional[str] = Field(default=None, description="Keyword research / SERP / PAA key")
    perplexity_api_key: Optional[str] = Field(default=None, description="Topic expansion key")
    valuer_api_url: Optional[str] = Field(default=None, description="Valuation service base URL")
    image_service_url: Optional[str] = Field(default=None, description="Image generation endpoint")
    image_service_api_key: Optional[str] = Field(default=None)
    wordpress_api_url: Optional[str] = Field(default=None, description="WordPress REST base URL")
    wordpress_username: Optional[str] = Field(default=None)
    wordpress_app_password: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=30.0, description="Per-request timeout (seconds)")

    class Config:
        env_prefix = ""
        extra = "ignore"

    @field_validator(
        "kwrds_api_key",
        "perplexity_api_key",
        "valuer_api_url",
        "image_service_url",
        "image_service_api_key",
        "wordpress_api_url",
        "wordpress_username",
        "wordpress_app_password",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, value):
        text = str(value or "").strip()
        return text or None


class LLMSettings(BaseSettings):
    """LLM configuration"""
    analysis_provider: str = Field(default="openai", description="Provider for plan_article")
    generation_provider: str = Field(default="anthropic", description="Provider for write_sections / seo_pass")
    analysis_model: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    generation_model: Optional[str] = Field(default=None)
    expansion_model: str = Field(default="sonar", description="Perplexity model for topic expansion")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Maximum generated tokens")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")

    class Config:
        env_prefix = "LLM_"
        extra = "ignore"

    @field_validator("analysis_provider", "generation_provider", mode="before")
    @classmethod
    def _provider_name(cls, value):
        return str(value or "").strip().lower()


class Settings(BaseSettings):
    """Root configuration aggregating all sub-settings"""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load configuration, honouring ``config/.env`` when present."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        try:
            return cls(
                storage=StorageSettings(),
                workflow=WorkflowSettings(),
                providers=ProviderSettings(),
                llm=LLMSettings(),
            )
        except ValidationError as exc:
            raise ConfigurationError("Invalid configuration", {"errors": exc.errors()}) from exc

    def with_mode(self, mode: Optional[str]) -> "Settings":
        """Return a copy whose workflow mode is forced to ``mode``."""
        if not mode:
            return self
        lowered = mode.strip().lower()
        if lowered not in MODES:
            raise ConfigurationError(f"Unknown mode: {mode}", {"allowed": list(MODES)})
        return self.model_copy(update={"workflow": self.workflow.model_copy(update={"mode": lowered})})


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_workflow_settings() -> WorkflowSettings:
    return get_settings().workflow


def get_provider_settings() -> ProviderSettings:
    return get_settings().providers


def get_llm_settings() -> LLMSettings:
    return get_settings().llm
