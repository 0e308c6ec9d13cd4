"""
ciprag Configuration Module
===========================

Centralized configuration management using environment variables.
Supports both .env files and system environment variables.

Environment Variables:
    OLLAMA_URL: Embedding service base URL (default: http://localhost:11434)
    EMBED_MODEL: Embedding model name (default: nomic-embed-text)
    RAG_EMBED_TIMEOUT: Per-request timeout in seconds (default: 60)
    RAG_EMBED_BATCH_SIZE: Texts per concurrent batch (default: 32)
    RAG_EMBED_MAX_CONCURRENCY: Max outstanding requests (default: 8)

    RAG_DATA_DIR: Base data directory (default: ./data)
    RAG_CACHE_PATH: Embedding cache file (default: <data>/cache/rag-embed-cache.json)
    RAG_SEED_DIR: Seeded PDF directory (default: <data>/public)
    RAG_UPLOAD_DIR: Upload directory (default: <data>/uploads)
    RAG_MAX_UPLOAD_MB: Upload size limit in MB (default: 25)

    RAG_CHUNK_SIZE: Target passage length in characters (default: 1000)
    RAG_CHUNK_OVERLAP: Overlap between passages in characters (default: 300)

    RAG_TOP_K: Default number of retrieved passages (default: 6)
    RAG_COSINE_WEIGHT: Weight of cosine similarity (default: 0.7)
    RAG_KEYWORD_WEIGHT: Weight of keyword score (default: 0.3)
    RAG_KEYWORD_CAP: Maximum keyword score (default: 6)
    RAG_HEADER_BONUS: Keyword bonus for section headers (default: 3)
    RAG_SOURCE_BONUS: Keyword bonus when the query names the file (default: 2)

    LOG_LEVEL, LOG_FILE, LOG_JSON: Logging options
    LOG_MAX_MB, LOG_BACKUPS: Log file rotation (default: 10 MB, 5 files)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file if present
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """
    Get environment variable with optional default and required validation.

    Args:
        key: Environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        Environment variable value or default

    Raises:
        ValueError: If required=True and variable is not set
    """
    value = os.getenv(key, default)
    if required and value is None:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be an integer, got: {value}")


def get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be a float, got: {value}")


def get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _data_dir() -> Path:
    return Path(get_env("RAG_DATA_DIR", "data"))


@dataclass
class EmbeddingConfig:
    """Embedding service configuration."""

    base_url: str = field(default_factory=lambda: get_env("OLLAMA_URL", "http://localhost:11434"))
    model: str = field(default_factory=lambda: get_env("EMBED_MODEL", "nomic-embed-text"))

    # Request timeout in seconds
    request_timeout: float = field(default_factory=lambda: get_env_float("RAG_EMBED_TIMEOUT", 60.0))

    batch_size: int = field(default_factory=lambda: get_env_int("RAG_EMBED_BATCH_SIZE", 32))
    max_concurrency: int = field(default_factory=lambda: get_env_int("RAG_EMBED_MAX_CONCURRENCY", 8))

    def __post_init__(self):
        """Validate configuration."""
        self.base_url = self.base_url.rstrip("/")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


@dataclass
class StorageConfig:
    """On-disk locations for the cache, seeded PDFs and uploads."""

    cache_path: Path = field(default_factory=lambda: Path(
        get_env("RAG_CACHE_PATH") or _data_dir() / "cache" / "rag-embed-cache.json"
    ))
    seed_dir: Path = field(default_factory=lambda: Path(get_env("RAG_SEED_DIR") or _data_dir() / "public"))
    upload_dir: Path = field(default_factory=lambda: Path(get_env("RAG_UPLOAD_DIR") or _data_dir() / "uploads"))
    max_upload_mb: int = field(default_factory=lambda: get_env_int("RAG_MAX_UPLOAD_MB", 25))

    def __post_init__(self):
        self.cache_path = Path(self.cache_path)
        self.seed_dir = Path(self.seed_dir)
        self.upload_dir = Path(self.upload_dir)
        if self.max_upload_mb <= 0:
            raise ValueError("max_upload_mb must be positive")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass
class ChunkingConfig:
    """Passage splitting configuration."""

    chunk_size: int = field(default_factory=lambda: get_env_int("RAG_CHUNK_SIZE", 1000))
    chunk_overlap: int = field(default_factory=lambda: get_env_int("RAG_CHUNK_OVERLAP", 300))

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")


@dataclass
class RetrievalConfig:
    """
    Hybrid ranking configuration.

    The weights and cap were tuned on one standards vocabulary and
    should be re-tuned for other corpora.
    """

    top_k: int = field(default_factory=lambda: get_env_int("RAG_TOP_K", 6))
    cosine_weight: float = field(default_factory=lambda: get_env_float("RAG_COSINE_WEIGHT", 0.7))
    keyword_weight: float = field(default_factory=lambda: get_env_float("RAG_KEYWORD_WEIGHT", 0.3))
    keyword_cap: float = field(default_factory=lambda: get_env_float("RAG_KEYWORD_CAP", 6.0))
    header_bonus: float = field(default_factory=lambda: get_env_float("RAG_HEADER_BONUS", 3.0))
    source_bonus: float = field(default_factory=lambda: get_env_float("RAG_SOURCE_BONUS", 2.0))

    def __post_init__(self):
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        for name in ("cosine_weight", "keyword_weight", "keyword_cap", "header_bonus", "source_bonus"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE"))

    # Structured logging
    json_logs: bool = field(default_factory=lambda: get_env_bool("LOG_JSON", False))

    # Rotation of log_file
    max_mb: int = field(default_factory=lambda: get_env_int("LOG_MAX_MB", 10))
    backup_count: int = field(default_factory=lambda: get_env_int("LOG_BACKUPS", 5))


@dataclass
class Settings:
    """Main application settings container."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_name: str = "ciprag"
    app_version: str = "0.1.0"


def load_settings() -> Settings:
    """
    Load and validate all application settings.

    Raises:
        ValueError: If configuration is invalid
    """
    return Settings()


# Global settings instance (lazy-loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton pattern).

    Returns:
        Global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
