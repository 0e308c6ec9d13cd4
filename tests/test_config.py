"""
Tests for environment-driven configuration.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from ciprag.config import (
    ChunkingConfig,
    EmbeddingConfig,
    RetrievalConfig,
    StorageConfig,
    get_env_bool,
    get_env_int,
    get_settings,
    reset_settings,
)


class TestDefaults:
    """Defaults with an empty environment."""

    def test_embedding_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = EmbeddingConfig()
        assert config.base_url == "http://localhost:11434"
        assert config.model == "nomic-embed-text"
        assert config.batch_size == 32
        assert config.max_concurrency == 8

    def test_retrieval_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = RetrievalConfig()
        assert config.top_k == 6
        assert config.cosine_weight == 0.7
        assert config.keyword_weight == 0.3
        assert config.keyword_cap == 6
        assert config.header_bonus == 3
        assert config.source_bonus == 2

    def test_storage_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = StorageConfig()
        assert config.cache_path == Path("data/cache/rag-embed-cache.json")
        assert config.seed_dir == Path("data/public")
        assert config.upload_dir == Path("data/uploads")
        assert config.max_upload_bytes == 25 * 1024 * 1024

    def test_chunking_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ChunkingConfig()
        assert (config.chunk_size, config.chunk_overlap) == (1000, 300)


class TestOverrides:
    """Environment variables override defaults."""

    def test_embedding_env(self):
        env = {"OLLAMA_URL": "http://gpu-box:11434/", "EMBED_MODEL": "mxbai-embed-large", "RAG_EMBED_BATCH_SIZE": "4"}
        with patch.dict(os.environ, env, clear=True):
            config = EmbeddingConfig()
        assert config.base_url == "http://gpu-box:11434"
        assert config.model == "mxbai-embed-large"
        assert config.batch_size == 4

    def test_data_dir_moves_all_paths(self, tmp_path):
        with patch.dict(os.environ, {"RAG_DATA_DIR": str(tmp_path)}, clear=True):
            config = StorageConfig()
        assert config.cache_path == tmp_path / "cache" / "rag-embed-cache.json"
        assert config.seed_dir == tmp_path / "public"

    def test_explicit_path_wins(self, tmp_path):
        env = {"RAG_DATA_DIR": str(tmp_path), "RAG_UPLOAD_DIR": "/srv/uploads"}
        with patch.dict(os.environ, env, clear=True):
            config = StorageConfig()
        assert config.upload_dir == Path("/srv/uploads")

    def test_retrieval_env(self):
        with patch.dict(os.environ, {"RAG_TOP_K": "3", "RAG_KEYWORD_WEIGHT": "0.5"}, clear=True):
            config = RetrievalConfig()
        assert config.top_k == 3
        assert config.keyword_weight == 0.5


class TestValidation:
    """Invalid values fail at load time."""

    def test_non_integer(self):
        with patch.dict(os.environ, {"RAG_TOP_K": "many"}, clear=True):
            with pytest.raises(ValueError, match="RAG_TOP_K"):
                RetrievalConfig()

    def test_overlap_not_smaller_than_size(self):
        with pytest.raises(ValueError):
            ChunkingConfig(chunk_size=100, chunk_overlap=100)

    def test_negative_weight(self):
        with pytest.raises(ValueError):
            RetrievalConfig(keyword_weight=-0.1)

    def test_non_positive_concurrency(self):
        with pytest.raises(ValueError):
            EmbeddingConfig(max_concurrency=0)

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("ON", True), ("no", False), ("", False)])
    def test_bool_parsing(self, raw, expected):
        with patch.dict(os.environ, {"LOG_JSON": raw}):
            assert get_env_bool("LOG_JSON", False) is expected

    def test_int_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_env_int("RAG_TOP_K", 9) == 9


class TestSettingsSingleton:
    """Tests for get_settings()/reset_settings()."""

    def test_cached_until_reset(self):
        reset_settings()
        try:
            with patch.dict(os.environ, {"RAG_TOP_K": "2"}):
                first = get_settings()
                assert get_settings() is first
                assert first.retrieval.top_k == 2

            reset_settings()
            assert get_settings() is not first
        finally:
            reset_settings()
