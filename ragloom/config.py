"""Central configuration for the ragloom orchestration engine.

Contains:
- Project paths and environment loading (.env via python-dotenv)
- OpenRouter settings for LLM and embedding calls
- Vector store (Weaviate) and graph store (Neo4j) connection settings
- Algorithm defaults: rank fusion, reranking, grounding, community detection
- Strategy defaults (top-k, traversal depth, graph modes)
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ragloom.shared.errors import NotConfiguredError

# ============================================================================
# PROJECT PATHS
# ============================================================================

PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(PROJECT_ROOT / ".env")


# ============================================================================
# OPENROUTER (LLM + EMBEDDINGS)
# ============================================================================

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
EMBEDDING_MODEL_ID = os.getenv("EMBEDDING_MODEL_ID", "openai/text-embedding-3-large")

# Model used for rewrite / expand / decompose / entity extraction
PREPROCESSING_MODEL = os.getenv("PREPROCESSING_MODEL", "deepseek/deepseek-v3.2")

# Model used for answer generation, grounding evaluation and correction
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "openai/gpt-5-mini")

# HTTP retry policy for the OpenRouter client (collaborator-level backoff)
MAX_RETRIES = 3
BACKOFF_BASE = 1.5


def validate_api_key() -> None:
    """Validate that the OpenRouter API key is configured.

    Raises:
        NotConfiguredError: If OPENROUTER_API_KEY is not set.
    """
    if not OPENROUTER_API_KEY:
        raise NotConfiguredError("OPENROUTER_API_KEY")


# ============================================================================
# VECTOR STORE (WEAVIATE)
# ============================================================================

WEAVIATE_HOST = os.getenv("WEAVIATE_HOST", "localhost")
WEAVIATE_HTTP_PORT = int(os.getenv("WEAVIATE_HTTP_PORT", "8080"))
WEAVIATE_GRPC_PORT = int(os.getenv("WEAVIATE_GRPC_PORT", "50051"))

# Property holding the passage text in each Weaviate object
WEAVIATE_TEXT_PROPERTY = "text"
WEAVIATE_ID_PROPERTY = "chunk_id"


# ============================================================================
# GRAPH STORE (NEO4J)
# ============================================================================

NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "ragloom")

DEFAULT_GRAPH_ID = "default"


# ============================================================================
# COLLABORATOR DEADLINES
# ============================================================================

# Seconds a single embed / search / complete / graph call may take
COLLABORATOR_TIMEOUT_S = 30.0


# ============================================================================
# RANK FUSION + RERANKING
# ============================================================================

# Standard k value from RRF literature (Cormack et al., 2009)
RRF_K = 60

# Scores below this are dropped after reranking (<= 0 disables filtering)
RERANK_THRESHOLD = 0.0

# Cross-encoder used by CrossEncoderScorer (optional `rerank` extra)
RERANK_MODEL = "mixedbread-ai/mxbai-rerank-xsmall-v1"

# LLM reranker asks for 1-10 scores, normalised into [0, 1]
LLM_RERANK_MAX_SCORE = 10.0


# ============================================================================
# GROUNDING LOOP
# ============================================================================

MAX_CORRECTIONS = 2

# Evaluator scores at or above this are treated as grounded
GROUNDING_THRESHOLD = 0.7

GENERATION_MAX_TOKENS = 1024


# ============================================================================
# COMMUNITY DETECTION (LABEL PROPAGATION)
# ============================================================================

LPA_MAX_ITERATIONS = 10

# Fraction of changed labels below which a round counts as converged.
# None disables the early stop: only a round with zero changes ends the run.
LPA_CONVERGENCE_THRESHOLD: Optional[float] = None

COMMUNITY_LEVELS = 3
MIN_COMMUNITY_SIZE = 1


# ============================================================================
# STRATEGY DEFAULTS
# ============================================================================

DEFAULT_TOP_K = 5
MAX_TOP_K = 50

# Local mode follows direct relationships only; raise for multi-hop context
GRAPH_TRAVERSE_DEPTH = 1
GRAPH_TOP_COMMUNITIES = 3
GRAPH_MODES = ["local", "global", "hybrid"]
DEFAULT_GRAPH_MODE = "local"

# Corrective (search-sufficiency) loop
CORRECTIVE_MAX_ITERATIONS = 3
CORRECTIVE_MIN_RESULTS = 1
