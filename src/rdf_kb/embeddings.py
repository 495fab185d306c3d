"""
Embedding providers for chunk and query vectors.

The knowledge base only depends on the Embedder protocol. Providers are
constructed once by the owning process and passed in explicitly.

Usage:
    embedder = create_embedder(config.embedding)
    vector = embedder.embed("Artificial Intelligence")
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from threading import Lock
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from rdf_kb.config import EmbeddingConfig
from rdf_kb.errors import DimensionMismatchError, EmbeddingUnavailable

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Capability interface: text in, fixed-dimension float vector out."""

    @property
    def dimension(self) -> int:
        ...

    def embed(self, text: str) -> np.ndarray:
        ...

    def embed_many(self, texts: Sequence[str]) -> np.ndarray:
        ...


class HashingEmbedder:
    """
    Deterministic character n-gram embedder.

    Each lowercase n-gram is hashed into one of ``dimension`` buckets with a
    hash-derived sign, then the vector is L2-normalized. Texts sharing many
    n-grams land close together in cosine space. Needs no model download,
    which makes it the default for tests and offline deployments.
    """

    def __init__(self, dimension: int = 512, ngram_size: int = 3):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        self.ngram_size = ngram_size

    @property
    def dimension(self) -> int:
        return self._dimension

    def _ngrams(self, text: str) -> list[str]:
        normalized = " ".join(text.lower().replace("_", " ").replace("-", " ").split())
        if not normalized:
            return []
        padded = f" {normalized} "
        if len(padded) <= self.ngram_size:
            return [padded]
        return [padded[i:i + self.ngram_size] for i in range(len(padded) - self.ngram_size + 1)]

    def embed(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimension, dtype=np.float32)
        for gram in self._ngrams(text):
            digest = hashlib.md5(gram.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign

        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec

    def embed_many(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self._dimension), dtype=np.float32)
        return np.stack([self.embed(t) for t in texts])


class SentenceTransformerEmbedder:
    """
    Embedder backed by a sentence-transformers model.

    The model is loaded on first use (or explicitly with ``load()``) and kept
    for the lifetime of this instance. Recently embedded texts are served
    from an in-memory LRU cache.
    """

    def __init__(
        self,
        model_name: str = "distiluse-base-multilingual-cased-v2",
        dimension: int = 512,
        cache_size: int = 4096,
    ):
        self.model_name = model_name
        self._dimension = dimension
        self.cache_size = cache_size
        self._model = None
        self._lock = Lock()
        self._cache: OrderedDict[str, np.ndarray] = OrderedDict()

    @property
    def dimension(self) -> int:
        return self._dimension

    def load(self) -> "SentenceTransformerEmbedder":
        """
        Load the model.

        Raises:
            EmbeddingUnavailable: If sentence-transformers is missing or the model fails to load
            DimensionMismatchError: If the model's output size differs from ``dimension``
        """
        with self._lock:
            if self._model is not None:
                return self
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise EmbeddingUnavailable(
                    "sentence-transformers not installed. "
                    "Install with: pip install 'rdf-kb[embeddings]'"
                ) from e

            logger.info(f"Loading embedding model: {self.model_name}")
            try:
                model = SentenceTransformer(self.model_name)
            except Exception as e:
                raise EmbeddingUnavailable(
                    f"Failed to load embedding model {self.model_name}: {e}"
                ) from e

            model_dim = model.get_sentence_embedding_dimension()
            if model_dim != self._dimension:
                raise DimensionMismatchError(self._dimension, model_dim)
            self._model = model
            logger.info(f"Model loaded. Embedding dimension: {model_dim}")
        return self

    def _get_cache_key(self, text: str) -> str:
        return hashlib.md5(f"{self.model_name}:{text}".encode()).hexdigest()

    def _remember(self, key: str, vector: np.ndarray) -> None:
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def embed(self, text: str) -> np.ndarray:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed a batch of texts.

        Returns:
            float32 array of shape (len(texts), dimension)

        Raises:
            EmbeddingUnavailable: If the model cannot be loaded or inference fails
        """
        if not texts:
            return np.zeros((0, self._dimension), dtype=np.float32)
        self.load()

        results: list[Optional[np.ndarray]] = [None] * len(texts)
        pending: list[int] = []
        with self._lock:
            for i, text in enumerate(texts):
                cached = self._cache.get(self._get_cache_key(text))
                if cached is not None:
                    results[i] = cached
                else:
                    pending.append(i)

        if pending:
            try:
                encoded = self._model.encode(
                    [texts[i] for i in pending],
                    show_progress_bar=False,
                    convert_to_numpy=True,
                )
            except Exception as e:
                raise EmbeddingUnavailable(f"Embedding inference failed: {e}") from e
            with self._lock:
                for i, vector in zip(pending, encoded):
                    vector = np.asarray(vector, dtype=np.float32)
                    self._remember(self._get_cache_key(texts[i]), vector)
                    results[i] = vector

        return np.stack(results)


def create_embedder(config: EmbeddingConfig) -> Optional[Embedder]:
    """
    Build the embedder selected by configuration.

    Returns None for the "none" backend (lexical-only deployments).
    """
    if config.backend == "none":
        logger.info("Embedding backend disabled; vector search will be empty")
        return None
    if config.backend == "hashing":
        return HashingEmbedder(dimension=config.dimension)
    if config.backend == "sentence-transformers":
        return SentenceTransformerEmbedder(
            model_name=config.model_name,
            dimension=config.dimension,
            cache_size=config.cache_size,
        )
    raise ValueError(f"Unknown embedding backend: {config.backend}")
