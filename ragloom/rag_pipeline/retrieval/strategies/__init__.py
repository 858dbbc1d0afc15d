"""Retrieval strategy implementations.

Use ragloom.rag_pipeline.retrieval.strategy_registry.get_strategy() to
obtain instances by id.
"""

from ragloom.rag_pipeline.retrieval.strategies.hybrid import HybridRetrieval
from ragloom.rag_pipeline.retrieval.strategies.self_critiquing import SelfCritiquingRetrieval
from ragloom.rag_pipeline.retrieval.strategies.graph_aware import GraphAwareRetrieval

__all__ = ["HybridRetrieval", "SelfCritiquingRetrieval", "GraphAwareRetrieval"]
