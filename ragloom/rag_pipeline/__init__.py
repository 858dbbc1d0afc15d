"""Query-time pipeline: request context, retrieval stages and generation."""
