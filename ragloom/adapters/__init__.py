"""Collaborator interfaces and concrete adapters.

Weaviate, Neo4j and cross-encoder adapters pull in their client libraries,
so import them from their modules:

    from ragloom.adapters.weaviate_store import WeaviateVectorStore, get_client
    from ragloom.adapters.neo4j_store import Neo4jGraphStore, get_driver
    from ragloom.adapters.cross_encoder import CrossEncoderScorer
"""

from ragloom.adapters.base import (
    AdapterSet,
    Completion,
    Embedder,
    Embedding,
    GraphStore,
    LLM,
    Scorer,
    VectorStore,
)
from ragloom.adapters.memory import InMemoryVectorStore
from ragloom.adapters.openrouter import OpenRouterEmbedder, OpenRouterLLM
from ragloom.adapters.llm_scorer import LLMScorer
