"""Retrieval stages: query preprocessing, rank fusion, reranking, corrective search, strategies."""
