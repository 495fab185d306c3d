"""
rdf-kb: a statement knowledge base with hybrid search, powered by DuckDB.

Subject/predicate/object/context statements are chunked, embedded and
searched with BM25 and cosine similarity fused by Reciprocal Rank Fusion.
"""

__version__ = "0.1.0"

from rdf_kb.config import (
    KBConfig,
    StorageConfig,
    EmbeddingConfig,
    ChunkingConfig,
    SearchConfig,
    load_config,
    save_config,
)
from rdf_kb.errors import (
    KnowledgeBaseError,
    ReferentialError,
    DimensionMismatchError,
    EmbeddingUnavailable,
    CascadeDeleteError,
    SchemaDriftError,
    InvalidQueryError,
    HybridSearchError,
    SearchTimeoutError,
    ConfigValidationError,
)
from rdf_kb.models import (
    RDF_TYPE,
    TermType,
    Statement,
    Chunk,
    SearchResult,
    Document,
    DocumentChunk,
    DocumentSearchResult,
)
from rdf_kb.embeddings import (
    Embedder,
    HashingEmbedder,
    SentenceTransformerEmbedder,
    create_embedder,
)
from rdf_kb.search import reciprocal_rank_fusion, HybridSearcher, SearchStats
from rdf_kb.kb import KnowledgeBase, DocumentSearcher

__all__ = [
    "KnowledgeBase",
    "DocumentSearcher",
    # Configuration
    "KBConfig",
    "StorageConfig",
    "EmbeddingConfig",
    "ChunkingConfig",
    "SearchConfig",
    "load_config",
    "save_config",
    # Records
    "RDF_TYPE",
    "TermType",
    "Statement",
    "Chunk",
    "SearchResult",
    "Document",
    "DocumentChunk",
    "DocumentSearchResult",
    # Embeddings
    "Embedder",
    "HashingEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
    # Search
    "reciprocal_rank_fusion",
    "HybridSearcher",
    "SearchStats",
    # Errors
    "KnowledgeBaseError",
    "ReferentialError",
    "DimensionMismatchError",
    "EmbeddingUnavailable",
    "CascadeDeleteError",
    "SchemaDriftError",
    "InvalidQueryError",
    "HybridSearchError",
    "SearchTimeoutError",
    "ConfigValidationError",
]
