"""Graph-aware retrieval over the knowledge graph and its communities.

Research: "From Local to Global: A Graph RAG Approach to Query-Focused Summarization"
          arXiv:2404.16130 (Microsoft)

Vector search answers "what does X say about Y?" well, but misses
relationships between entities and corpus-wide themes. This strategy
adds two graph views and fuses them with vector results using RRF.

Modes:
    local:  LLM extracts query entities -> match graph nodes -> neighbours
            up to `depth` hops. Each node becomes a ranked item.
    global: Label-propagation communities over the whole graph. Communities
            containing the matched entities (or the largest ones, when no
            entity matched) are summarised by the LLM. Summaries become
            ranked items and the grounding loop writes the answer.
    hybrid: Both lists fused together with the vector results.

Entity extraction failures degrade to "no entities"; graph store and
vector store failures fail the strategy.
"""

from typing import Any, Optional

from ragloom.adapters.base import complete_text
from ragloom.config import (
    DEFAULT_GRAPH_MODE,
    GRAPH_MODES,
    GRAPH_TOP_COMMUNITIES,
    GRAPH_TRAVERSE_DEPTH,
    MIN_COMMUNITY_SIZE,
    PREPROCESSING_MODEL,
)
from ragloom.graph.community import (
    build_hierarchy,
    community_members_summary,
    fetch_graph,
    find_relevant_communities,
)
from ragloom.graph.hierarchy import Community, filter_communities_by_size
from ragloom.prompts import COMMUNITY_SUMMARY_PROMPT, ENTITY_EXTRACTION_PROMPT
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.rag_pipeline.generation.answer_generator import LLMAnswerer
from ragloom.rag_pipeline.retrieval.query_schemas import EntityExtractionResult
from ragloom.rag_pipeline.retrieval.rrf import reciprocal_rank_fusion
from ragloom.rag_pipeline.retrieval.strategies.self_critiquing import run_grounding
from ragloom.rag_pipeline.retrieval.strategy_registry import (
    BaseStrategy,
    RetrievalContext,
    RetrievalResult,
)
from ragloom.rag_pipeline.retrieval.reranking import deduplicate
from ragloom.shared.errors import RAGError
from ragloom.shared.files import setup_logging
from ragloom.shared.openrouter_client import parse_structured
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)


FIND_NODE_QUERY = """
MATCH (n {_graph_id: $graph_id})
WHERE toLower(coalesce(n.name, '')) CONTAINS toLower($entity)
   OR toLower(coalesce(n.label, '')) CONTAINS toLower($entity)
RETURN n.id AS id, n.name AS name, n.description AS description, labels(n) AS labels
LIMIT 1
"""

_NEIGHBOURS_QUERY_TEMPLATE = """
MATCH (start {_graph_id: $graph_id, id: $node_id})-[*1..%d]-(n {_graph_id: $graph_id})
WHERE n.id <> $node_id
RETURN DISTINCT n.id AS id, n.name AS name, n.description AS description, labels(n) AS labels
LIMIT $limit
"""


def neighbours_query(depth: int) -> str:
    """Cypher for nodes within `depth` hops (path length cannot be a parameter)."""
    if depth < 1:
        raise ValueError(f"Traversal depth must be >= 1, got {depth}")
    return _NEIGHBOURS_QUERY_TEMPLATE % int(depth)


def _node_item(record: dict[str, Any], score: float, seed: Optional[str] = None) -> ScoredItem:
    name = record.get("name") or str(record["id"])
    description = record.get("description") or ""
    metadata: dict[str, Any] = {
        "source": "graph",
        "entity_id": str(record["id"]),
        "name": name,
        "labels": list(record.get("labels") or []),
    }
    if seed is not None:
        metadata["seed_entity"] = seed
    return ScoredItem(
        id=f"entity:{record['id']}",
        content=f"{name}: {description}" if description else name,
        score=score,
        metadata=metadata,
    )


class GraphAwareRetrieval(BaseStrategy):
    """Graph-aware strategy with local, global and hybrid modes.

    Options (opts):
        mode: "local", "global" or "hybrid" (default from config).
        depth: Traversal hops for local mode.
        top_communities: Communities summarised in global mode.
        min_community_size: Smallest community considered in global mode.
        community_level: Hierarchy level used in global mode (0 = finest).
        generate_answer: Run the grounding loop (default True only for global).
        max_corrections: Correction budget when generating an answer.
        k: Number of results.

    Attributes:
        strategy_id: "graph_aware"
    """

    strategy_id = "graph_aware"
    required = frozenset({"embedder", "vector_store", "graph_store", "llm"})

    def __init__(self, answerer: Optional[LLMAnswerer] = None, model: str = PREPROCESSING_MODEL):
        self.answerer = answerer
        self.model = model

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def extract_entities(self, query: str, context: RetrievalContext) -> list[str]:
        llm = context.adapters.require("llm")
        try:
            content = call_with_timeout(
                complete_text, llm, ENTITY_EXTRACTION_PROMPT.format(query=query),
                {"model": self.model, "temperature": 0.0},
                timeout=context.timeout, operation="entity_extraction",
            )
            result = parse_structured(content, EntityExtractionResult)
        except RAGError as e:
            logger.warning(f"[graph_aware] Entity extraction failed: {e}")
            return []

        entities = list(dict.fromkeys(e.strip() for e in result.entities if e and e.strip()))
        logger.info(f"[graph_aware] Extracted {len(entities)} entities: {entities}")
        return entities

    def match_nodes(self, entities: list[str], context: RetrievalContext) -> list[tuple[str, dict[str, Any]]]:
        """Return (entity, node record) for every entity that matches a node."""
        graph = context.adapters.require("graph_store")
        matches = []
        for entity in entities:
            records = call_with_timeout(
                graph.query, context.graph_id, FIND_NODE_QUERY,
                {"graph_id": context.graph_id, "entity": entity},
                timeout=context.timeout, operation="graph.find_node",
            )
            if records and records[0].get("id") is not None:
                matches.append((entity, records[0]))
        return matches

    # -------------------------------------------------------------------------
    # Local: traversal
    # -------------------------------------------------------------------------

    def local_items(
        self,
        matches: list[tuple[str, dict[str, Any]]],
        context: RetrievalContext,
        depth: int,
        limit: int,
    ) -> list[ScoredItem]:
        graph = context.adapters.require("graph_store")
        seeds = [_node_item(record, 1.0, seed=entity) for entity, record in matches]
        neighbours = []
        for entity, record in matches:
            records = call_with_timeout(
                graph.query, context.graph_id, neighbours_query(depth),
                {"graph_id": context.graph_id, "node_id": record["id"], "limit": limit},
                timeout=context.timeout, operation="graph.neighbours",
            )
            neighbours.extend(_node_item(r, 0.5, seed=entity) for r in records if r.get("id") is not None)

        # Seeds first so a node that is both a seed and a neighbour keeps seed rank
        return deduplicate(seeds + neighbours)

    # -------------------------------------------------------------------------
    # Global: communities
    # -------------------------------------------------------------------------

    def summarize_community(
        self,
        community: Community,
        edges: list[tuple[str, str]],
        context: RetrievalContext,
    ) -> str:
        members = sorted(community.member_ids)
        relationships = [
            f"{source} -- {target}"
            for source, target in edges
            if source in community.member_ids and target in community.member_ids
        ]
        prompt = COMMUNITY_SUMMARY_PROMPT.format(
            members="\n".join(f"- {m}" for m in members),
            relationships="\n".join(relationships) or "None recorded",
        )
        try:
            return call_with_timeout(
                complete_text, context.adapters.require("llm"), prompt, {"model": self.model},
                timeout=context.timeout, operation="community_summary",
            )
        except RAGError as e:
            logger.warning(f"[graph_aware] Summary for {community.id} failed: {e}, using member list")
            return f"Community of {len(members)} related entities: {', '.join(members[:20])}"

    def community_items(
        self,
        matches: list[tuple[str, dict[str, Any]]],
        context: RetrievalContext,
        level: int,
        top_n: int,
        min_size: int = MIN_COMMUNITY_SIZE,
    ) -> tuple[list[ScoredItem], list[str]]:
        nodes, edges = fetch_graph(context.adapters.require("graph_store"), context.graph_id, context.timeout)
        hierarchy = build_hierarchy(nodes, edges, levels=level + 1)
        communities = filter_communities_by_size(hierarchy[level], min_size)

        entity_ids = [str(record["id"]) for _, record in matches]
        relevant = find_relevant_communities(communities, entity_ids, top_n)
        if not relevant:
            relevant = sorted(communities, key=lambda c: -len(c))[:top_n]
            logger.info(f"[graph_aware] No community contains a query entity, using {len(relevant)} largest")

        items = []
        for rank, community in enumerate(relevant, start=1):
            summary = self.summarize_community(community, edges, context)
            items.append(ScoredItem(
                id=f"community:{community.id}",
                content=summary,
                score=1.0 / rank,
                metadata={"source": "community", **community_members_summary(community)},
            ))
        return items, [c.id for c in relevant]

    # -------------------------------------------------------------------------
    # Vector side
    # -------------------------------------------------------------------------

    def vector_items(self, query: str, context: RetrievalContext, k: int) -> list[ScoredItem]:
        embedder = context.adapters.require("embedder")
        store = context.adapters.require("vector_store")
        embedding = call_with_timeout(embedder.embed, query, {}, timeout=context.timeout, operation="embed")
        return call_with_timeout(
            store.search, context.index_id, embedding.vector, k, {},
            timeout=context.timeout, operation="vector_search",
        )

    def _retrieve(self, query: str, context: RetrievalContext, opts: dict[str, Any]) -> RetrievalResult:
        mode = opts.get("mode", DEFAULT_GRAPH_MODE)
        if mode not in GRAPH_MODES:
            raise ValueError(f"Unknown graph mode '{mode}'. Available: {GRAPH_MODES}")
        k = self.result_count(context, opts)

        entities = self.extract_entities(query, context)
        matches = self.match_nodes(entities, context)

        sources: list[tuple[str, list[ScoredItem]]] = []
        metadata: dict[str, Any] = {"mode": mode, "entities": entities, "matched_entities": len(matches)}

        if mode in ("local", "hybrid"):
            graph_items = self.local_items(matches, context, int(opts.get("depth", GRAPH_TRAVERSE_DEPTH)), k * 2)
            sources.append(("graph", graph_items))
            metadata["graph_count"] = len(graph_items)

        if mode in ("global", "hybrid"):
            summary_items, community_ids = self.community_items(
                matches,
                context,
                level=int(opts.get("community_level", 0)),
                top_n=int(opts.get("top_communities", GRAPH_TOP_COMMUNITIES)),
                min_size=int(opts.get("min_community_size", MIN_COMMUNITY_SIZE)),
            )
            sources.append(("community", summary_items))
            metadata["communities"] = community_ids

        vector_items = self.vector_items(query, context, k)
        sources.append(("vector", vector_items))
        metadata["vector_count"] = len(vector_items)

        fused = reciprocal_rank_fusion(sources, k=context.rrf_k, top_k=k)
        metadata["source_contributions"] = fused.source_contributions
        result = RetrievalResult(items=fused.results, metadata=metadata)

        if opts.get("generate_answer", mode == "global"):
            ctx = run_grounding(query, fused.results, context, opts, self.answerer)
            result.answer = ctx.answer
            result.critique = ctx.grounding
            metadata["correction_count"] = ctx.correction_count

        return result
