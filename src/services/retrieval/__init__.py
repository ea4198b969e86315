"""Vector retrieval over persisted chunk embeddings."""

from src.services.retrieval.vector_retriever import VectorRetriever, cosine_similarity

__all__ = ["VectorRetriever", "cosine_similarity"]
