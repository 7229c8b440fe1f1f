"""Vector store module."""

from cinesearch.vectorstore.chroma import ChromaVectorStore
from cinesearch.vectorstore.factory import create_vector_store
from cinesearch.vectorstore.memory import InMemoryVectorStore
from cinesearch.vectorstore.models import (
    VectorMatch,
    VectorPoint,
    normalize_score,
    point_id,
)
from cinesearch.vectorstore.pinecone import PineconeVectorStore
from cinesearch.vectorstore.service import QdrantVectorStore, VectorStore

__all__ = [
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "PineconeVectorStore",
    "QdrantVectorStore",
    "VectorMatch",
    "VectorPoint",
    "VectorStore",
    "create_vector_store",
    "normalize_score",
    "point_id",
]
