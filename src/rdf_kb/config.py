"""
Knowledge-base configuration.

Provides:
- Storage, embedding, chunking and search settings as dataclasses
- Dict round-tripping for persistence
- YAML/JSON file loading
- Environment variable overrides (RDFKB_* prefix)
- Validation
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from rdf_kb.errors import ConfigValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RDFKB_"

# Universal Sentence Encoder compatible output size
DEFAULT_EMBEDDING_DIMENSION = 512


@dataclass
class StorageConfig:
    """Where the DuckDB database lives."""
    database: str = ":memory:"
    read_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database": self.database,
            "read_only": self.read_only,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StorageConfig":
        return cls(
            database=data.get("database", ":memory:"),
            read_only=data.get("read_only", False),
        )


@dataclass
class EmbeddingConfig:
    """Embedding model selection."""
    backend: str = "hashing"  # "hashing", "sentence-transformers", "none"
    model_name: str = "distiluse-base-multilingual-cased-v2"
    dimension: int = DEFAULT_EMBEDDING_DIMENSION
    cache_size: int = 4096

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "model_name": self.model_name,
            "dimension": self.dimension,
            "cache_size": self.cache_size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmbeddingConfig":
        return cls(
            backend=data.get("backend", "hashing"),
            model_name=data.get("model_name", "distiluse-base-multilingual-cased-v2"),
            dimension=data.get("dimension", DEFAULT_EMBEDDING_DIMENSION),
            cache_size=data.get("cache_size", 4096),
        )


@dataclass
class ChunkingConfig:
    """How statements are split into chunks."""
    max_chunk_words: int = 128
    include_statement_sentence: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_chunk_words": self.max_chunk_words,
            "include_statement_sentence": self.include_statement_sentence,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkingConfig":
        return cls(
            max_chunk_words=data.get("max_chunk_words", 128),
            include_statement_sentence=data.get("include_statement_sentence", True),
        )


@dataclass
class SearchConfig:
    """Hybrid search tuning."""
    rrf_k: int = 60
    oversample_factor: int = 2
    default_limit: int = 10
    timeout_seconds: Optional[float] = None
    bm25_k1: float = 1.2
    bm25_b: float = 0.75
    max_workers: int = 4

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rrf_k": self.rrf_k,
            "oversample_factor": self.oversample_factor,
            "default_limit": self.default_limit,
            "timeout_seconds": self.timeout_seconds,
            "bm25_k1": self.bm25_k1,
            "bm25_b": self.bm25_b,
            "max_workers": self.max_workers,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchConfig":
        return cls(
            rrf_k=data.get("rrf_k", 60),
            oversample_factor=data.get("oversample_factor", 2),
            default_limit=data.get("default_limit", 10),
            timeout_seconds=data.get("timeout_seconds"),
            bm25_k1=data.get("bm25_k1", 1.2),
            bm25_b=data.get("bm25_b", 0.75),
            max_workers=data.get("max_workers", 4),
        )


@dataclass
class KBConfig:
    """
    Complete configuration for a knowledge base.

    Example:
        config = load_config("kb.yaml")
        with KnowledgeBase.open(config) as kb:
            ...
    """
    storage: StorageConfig = field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "storage": self.storage.to_dict(),
            "embedding": self.embedding.to_dict(),
            "chunking": self.chunking.to_dict(),
            "search": self.search.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KBConfig":
        return cls(
            storage=StorageConfig.from_dict(data.get("storage", {})),
            embedding=EmbeddingConfig.from_dict(data.get("embedding", {})),
            chunking=ChunkingConfig.from_dict(data.get("chunking", {})),
            search=SearchConfig.from_dict(data.get("search", {})),
        )

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigValidationError: On the first invalid setting
        """
        if self.embedding.backend not in ("hashing", "sentence-transformers", "none"):
            raise ConfigValidationError(
                f"Unknown embedding backend: {self.embedding.backend}"
            )
        if self.embedding.dimension <= 0:
            raise ConfigValidationError("embedding.dimension must be positive")
        if self.chunking.max_chunk_words <= 0:
            raise ConfigValidationError("chunking.max_chunk_words must be positive")
        if self.search.rrf_k <= 0:
            raise ConfigValidationError("search.rrf_k must be positive")
        if self.search.oversample_factor < 2:
            raise ConfigValidationError("search.oversample_factor must be at least 2")
        if self.search.default_limit <= 0:
            raise ConfigValidationError("search.default_limit must be positive")
        if self.search.timeout_seconds is not None and self.search.timeout_seconds <= 0:
            raise ConfigValidationError("search.timeout_seconds must be positive")
        if not 0.0 <= self.search.bm25_b <= 1.0:
            raise ConfigValidationError("search.bm25_b must be between 0 and 1")
        if self.search.max_workers < 2:
            raise ConfigValidationError("search.max_workers must be at least 2")


# Environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "DATABASE": ("storage", "database", str),
    "EMBEDDING_BACKEND": ("embedding", "backend", str),
    "EMBEDDING_MODEL": ("embedding", "model_name", str),
    "EMBEDDING_DIMENSION": ("embedding", "dimension", int),
    "RRF_K": ("search", "rrf_k", int),
    "OVERSAMPLE_FACTOR": ("search", "oversample_factor", int),
    "SEARCH_TIMEOUT": ("search", "timeout_seconds", float),
}


def apply_env_overrides(
    config: KBConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> KBConfig:
    """
    Override settings from RDFKB_* environment variables.

    Args:
        config: Configuration to update in place
        environ: Environment mapping (defaults to os.environ)

    Returns:
        The same config object
    """
    environ = os.environ if environ is None else environ
    for suffix, (section, key, convert) in _ENV_OVERRIDES.items():
        raw = environ.get(f"{ENV_PREFIX}{suffix}")
        if raw is None:
            continue
        try:
            value = convert(raw)
        except ValueError as e:
            raise ConfigValidationError(
                f"Invalid value for {ENV_PREFIX}{suffix}: {raw!r}"
            ) from e
        setattr(getattr(config, section), key, value)
        logger.debug(f"Config override from environment: {section}.{key}={value!r}")
    return config


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> KBConfig:
    """
    Load configuration from a YAML or JSON file plus environment overrides.

    Args:
        path: Config file (.yaml/.yml/.json); defaults only when None
        environ: Environment mapping for overrides

    Returns:
        Validated KBConfig
    """
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Config file {path} must contain a mapping")
        logger.info(f"Loaded configuration from {path}")

    config = apply_env_overrides(KBConfig.from_dict(data), environ)
    config.validate()
    return config


def save_config(config: KBConfig, path: Union[str, Path]) -> None:
    """Write configuration as YAML (or JSON for a .json path)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".json":
        path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    else:
        path.write_text(
            yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
