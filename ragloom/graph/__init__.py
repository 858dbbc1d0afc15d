"""Knowledge graph utilities: community detection and hierarchy helpers."""

from ragloom.graph.hierarchy import Community, build_community_key, parse_community_key
from ragloom.graph.community import detect, detect_hierarchical, build_hierarchy

__all__ = [
    "Community",
    "build_community_key",
    "parse_community_key",
    "detect",
    "detect_hierarchical",
    "build_hierarchy",
]
