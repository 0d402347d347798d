"""
RAG package — read path over stored chunks.
"""

from compliance_ingest.rag.similarity import SearchResult, SimilaritySearch, cosine_similarity

__all__ = [
    "SearchResult",
    "SimilaritySearch",
    "cosine_similarity",
]
