"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults. Secrets (LMS token,
embedding and search API keys) are read from the environment only.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

# Load .env file early
load_dotenv()


# Find project root (where pyproject.toml is located)
def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    # Fallback to current working directory
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class LMSConfig(BaseModel):
    """Canvas LMS API settings."""

    base_url: str = ""
    timeout: int = 15
    per_page: int = 100
    user_agent: str = "StudySync/0.1.0"


class CrawlerConfig(BaseModel):
    """Recursive link crawler settings."""

    max_pages: int = 25
    max_depth: int = 2
    max_links_per_page: int = 20
    max_seed_urls: int = 20
    timeout: int = 10
    rate_limit: float = 0.2
    documents_only: bool = False
    user_agent: str = "StudySync/0.1.0"


class ExtractionConfig(BaseModel):
    """Document extraction limits."""

    min_html_chars: int = 50
    max_html_chars: int = 100_000
    min_pptx_chars: int = 20
    max_output_chars: int = 150_000
    max_pdf_bytes: int = 50 * 1024 * 1024
    max_pptx_bytes: int = 30 * 1024 * 1024
    fetch_timeout: int = 15


class ChunkingConfig(BaseModel):
    """Text chunking settings."""

    chunk_size: int = 1000
    chunk_overlap: int = 100


class SBERTConfig(BaseModel):
    """SBERT embeddings settings."""

    model_name: str = "all-MiniLM-L6-v2"
    dimensions: int = 384
    device: str = "auto"


class GeminiEmbeddingConfig(BaseModel):
    """Gemini embeddings settings."""

    model_name: str = "text-embedding-004"
    dimensions: int = 768


class OpenAIEmbeddingConfig(BaseModel):
    """OpenAI-compatible (LiteLLM proxy) embeddings settings."""

    base_url: str = "http://localhost:4000/v1"
    model_name: str = "text-embedding-3-small"
    dimensions: int = 1536
    timeout: int = 15
    purpose_field: Optional[str] = None


class EmbeddingsConfig(BaseModel):
    """Embeddings provider settings."""

    provider: str = "sbert"
    fallback_provider: Optional[str] = None
    batch_size: int = 32
    max_text_chars: int = 8000
    max_retries: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 30.0
    sbert: SBERTConfig = Field(default_factory=SBERTConfig)
    gemini: GeminiEmbeddingConfig = Field(default_factory=GeminiEmbeddingConfig)
    openai: OpenAIEmbeddingConfig = Field(default_factory=OpenAIEmbeddingConfig)


class RetrievalConfig(BaseModel):
    """Retrieval and fallback tier settings."""

    top_k: int = 10
    default_limit: int = 8
    max_limit: int = 20
    max_topic_chars: int = 500
    strong_threshold: float = 0.70
    partial_threshold: float = 0.40
    max_context_chars: int = 24_000
    max_web_context_chars: int = 8000


class WebSearchConfig(BaseModel):
    """Secondary web search settings."""

    provider: str = "serpapi"
    endpoint: str = "https://serpapi.com/search.json"
    timeout: int = 10
    max_results: int = 5
    relevance: float = 0.8


class SyncConfig(BaseModel):
    """Sync runner settings."""

    staleness_minutes: int = 30
    queue_size: int = 16
    default_tenant: str = "default"


class PathsConfig(BaseModel):
    """Data paths configuration."""

    data_dir: str = "data"
    index_dir: str = "data/index"
    hashes_dir: str = "data/hashes"
    progress_dir: str = "data/sync"
    blobs_dir: str = "data/blobs"
    collection_name: str = "course_materials"

    def resolve(self, base_path: Path) -> "ResolvedPaths":
        """Resolve paths relative to a base path."""
        return ResolvedPaths(
            data_dir=base_path / self.data_dir,
            index_dir=base_path / self.index_dir,
            hashes_dir=base_path / self.hashes_dir,
            progress_dir=base_path / self.progress_dir,
            blobs_dir=base_path / self.blobs_dir,
        )


class ResolvedPaths(BaseModel):
    """Resolved absolute paths."""

    data_dir: Path
    index_dir: Path
    hashes_dir: Path
    progress_dir: Path
    blobs_dir: Path

    model_config = {"arbitrary_types_allowed": True}


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; the environment wins over them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # Secrets (from environment only)
    canvas_base_url: str = Field(default="", validation_alias="CANVAS_BASE_URL")
    canvas_api_token: str = Field(default="", validation_alias="CANVAS_API_TOKEN")
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_secondary_api_key: str = Field(
        default="", validation_alias="GEMINI_SECONDARY_API_KEY"
    )
    embedding_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("EMBEDDING_API_KEY", "LITELLM_API_KEY"),
    )
    embedding_secondary_api_key: str = Field(
        default="", validation_alias="EMBEDDING_SECONDARY_API_KEY"
    )
    embedding_api_base: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBEDDING_API_BASE", "LITELLM_BASE_URL"),
    )
    search_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("SEARCH_API_KEY", "SERPAPI_API_KEY"),
    )

    # Top-level environment overrides
    embedding_provider: Optional[str] = Field(default=None, validation_alias="EMBEDDING_PROVIDER")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    lms: LMSConfig = Field(default_factory=LMSConfig)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    web_search: WebSearchConfig = Field(default_factory=WebSearchConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Computed properties
    _project_root: Path = PROJECT_ROOT
    _resolved_paths: Optional[ResolvedPaths] = None

    @field_validator(
        "canvas_api_token",
        "gemini_api_key",
        "gemini_secondary_api_key",
        "embedding_api_key",
        "embedding_secondary_api_key",
        "search_api_key",
        mode="before",
    )
    @classmethod
    def validate_secret(cls, v: Any) -> str:
        """Allow empty secrets; features that need them check at use time."""
        if v is None:
            return ""
        return str(v).strip()

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    @property
    def resolved_paths(self) -> ResolvedPaths:
        """Get resolved absolute paths."""
        if self._resolved_paths is None:
            self._resolved_paths = self.paths.resolve(self._project_root)
        return self._resolved_paths

    def get_effective_embedding_provider(self) -> str:
        """Get the effective embedding provider (env override or config)."""
        if self.embedding_provider:
            return self.embedding_provider.lower()
        return self.embeddings.provider.lower()

    def get_effective_lms_base_url(self) -> str:
        """Get the LMS base URL (env override or config), without trailing slash."""
        return (self.canvas_base_url or self.lms.base_url).rstrip("/")

    def get_effective_embedding_base_url(self) -> str:
        """Get the OpenAI-compatible endpoint base (env override or config)."""
        return (self.embedding_api_base or self.embeddings.openai.base_url).rstrip("/")

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    # Load YAML defaults
    yaml_config = _load_yaml_config(config_path)

    # Create settings with YAML as defaults, env vars will override
    return Settings(**yaml_config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Returns:
        Settings instance with merged configuration

    Example:
        >>> settings = get_settings()
        >>> print(settings.crawler.max_pages)
        25
    """
    return _create_settings()


def reload_settings() -> Settings:
    """
    Force reload of settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
