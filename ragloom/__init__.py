"""RAGloom: retrieval-augmented generation orchestration engine.

Fuses ranked lists (RRF), reranks, runs grounding-driven answer correction,
detects graph communities, and dispatches retrieval strategies over
pluggable collaborators (embedder, vector store, graph store, LLM, scorer).
"""

__version__ = "0.1.0"
