"""Community detection by deterministic label propagation.

## RAG Theory: Communities for Global Questions

Entities that are densely connected in the knowledge graph usually talk
about the same theme. Grouping them into communities lets graph-aware
retrieval answer corpus-level questions from community summaries instead
of individual passages.

## Algorithm

1. Fetch all node ids and edges of a graph from the graph store.
   Edges are undirected: a-b makes a and b neighbours.
2. Every node starts with its own id as label.
3. Up to `max_iterations` rounds: visit nodes in ascending id order and
   set each node's label to the most frequent label among its neighbours.
   Ties go to the smallest label. Nodes without neighbours keep their label.
   Updates apply immediately within the round (Gauss-Seidel), so later
   nodes in the same round already see them.
4. Stop when a round changes nothing, or when the fraction of changed
   nodes drops below `convergence_threshold` (disabled by default).
5. Group node ids by final label.

Two runs on the same graph always produce the same partition.

## Hierarchical Variant

Level n runs the same propagation on a meta-graph whose nodes are the
level n-1 communities, linked when any of their entities are linked in
the original graph. Each meta-node ends up with exactly one label, so
the community count can only stay the same or shrink going up.

## Library Usage

Pure Python (collections.Counter) for propagation. Graph data comes
through the GraphStore collaborator (Neo4jGraphStore in production).
"""

import time
from collections import Counter, defaultdict
from typing import Any, Iterable, Optional

from ragloom.adapters.base import GraphStore
from ragloom.config import COMMUNITY_LEVELS, LPA_CONVERGENCE_THRESHOLD, LPA_MAX_ITERATIONS
from ragloom.graph.hierarchy import Community, build_community_key
from ragloom.shared.errors import InvalidResponseError
from ragloom.shared.files import setup_logging
from ragloom.shared.timeouts import call_with_timeout

logger = setup_logging(__name__)


NODE_IDS_QUERY = """
MATCH (n {_graph_id: $graph_id})
WHERE NOT n:_Graph
RETURN n.id AS id
"""

EDGES_QUERY = """
MATCH (a {_graph_id: $graph_id})-[r]->(b {_graph_id: $graph_id})
WHERE NOT a:_Graph AND NOT b:_Graph
RETURN a.id AS source, b.id AS target
"""

Edge = tuple[str, str]


# =============================================================================
# GRAPH LOADING
# =============================================================================


def fetch_graph(
    graph: GraphStore,
    graph_id: str,
    timeout: Optional[float] = None,
) -> tuple[list[str], list[Edge]]:
    """Load node ids and edges for one graph.

    Returns:
        (node_ids, edges) with ids converted to strings.

    Raises:
        InvalidResponseError: If records are missing the expected keys.
        RAGError: Whatever the graph store raises.
    """
    params = {"graph_id": graph_id}
    node_records = call_with_timeout(
        graph.query, graph_id, NODE_IDS_QUERY, params, timeout=timeout, operation="graph.nodes"
    )
    edge_records = call_with_timeout(
        graph.query, graph_id, EDGES_QUERY, params, timeout=timeout, operation="graph.edges"
    )

    try:
        nodes = [str(record["id"]) for record in node_records if record.get("id") is not None]
        edges = [(str(record["source"]), str(record["target"])) for record in edge_records]
    except KeyError as e:
        raise InvalidResponseError(f"graph record missing key {e}") from e

    return nodes, edges


def build_adjacency(nodes: Iterable[str], edges: Iterable[Edge]) -> dict[str, set[str]]:
    """Undirected adjacency sets. Self-loops and edges to unknown nodes are dropped."""
    adjacency: dict[str, set[str]] = {node: set() for node in nodes}
    for source, target in edges:
        if source == target or source not in adjacency or target not in adjacency:
            continue
        adjacency[source].add(target)
        adjacency[target].add(source)
    return adjacency


# =============================================================================
# LABEL PROPAGATION
# =============================================================================


def propagate_labels(
    adjacency: dict[str, set[str]],
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
) -> dict[str, str]:
    """Run label propagation and return node -> final label.

    Args:
        adjacency: Undirected adjacency sets (see build_adjacency).
        max_iterations: Maximum number of full rounds.
        convergence_threshold: Stop once the changed fraction of nodes in a
            round is below this value. None only stops on a round with no changes.

    Returns:
        Mapping from every node id to its community label.
    """
    labels = {node: node for node in adjacency}
    order = sorted(adjacency)
    total = len(order)

    for iteration in range(1, max_iterations + 1):
        changed = 0
        for node in order:
            neighbours = adjacency[node]
            if not neighbours:
                continue
            counts = Counter(labels[n] for n in neighbours)
            best = max(counts.values())
            new_label = min(label for label, count in counts.items() if count == best)
            if new_label != labels[node]:
                labels[node] = new_label
                changed += 1

        logger.debug(f"[communities] Iteration {iteration}: {changed}/{total} labels changed")
        if changed == 0:
            break
        if convergence_threshold is not None and changed / total < convergence_threshold:
            break

    return labels


def group_by_label(labels: dict[str, str]) -> dict[str, list[str]]:
    """label -> sorted member ids, with labels in ascending order."""
    groups: dict[str, list[str]] = defaultdict(list)
    for node, label in labels.items():
        groups[label].append(node)
    return {label: sorted(groups[label]) for label in sorted(groups)}


def detect_in_graph(
    nodes: Iterable[str],
    edges: Iterable[Edge],
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
) -> dict[str, list[str]]:
    """Label propagation over in-memory nodes and edges."""
    adjacency = build_adjacency(nodes, edges)
    if not adjacency:
        return {}
    labels = propagate_labels(adjacency, max_iterations, convergence_threshold)
    return group_by_label(labels)


def detect(
    graph: GraphStore,
    graph_id: str,
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
    timeout: Optional[float] = None,
) -> dict[str, list[str]]:
    """Detect communities in a stored graph.

    Args:
        graph: Graph store collaborator.
        graph_id: Graph to cluster.
        max_iterations: Maximum propagation rounds.
        convergence_threshold: Optional early-stop fraction.
        timeout: Deadline for each graph query.

    Returns:
        Mapping community label -> sorted entity ids. An empty graph gives {}.
        Nodes without edges form singleton communities.

    Example:
        >>> detect(store, "default")
        {"b": ["a", "b"], "d": ["c", "d"]}
    """
    start_time = time.time()
    nodes, edges = fetch_graph(graph, graph_id, timeout)
    communities = detect_in_graph(nodes, edges, max_iterations, convergence_threshold)

    logger.info(
        f"[communities] graph={graph_id} nodes={len(nodes)} edges={len(edges)} "
        f"-> {len(communities)} communities in {(time.time() - start_time) * 1000:.0f}ms"
    )
    return communities


def _to_communities(groups: dict[str, list[str]], level: int) -> list[Community]:
    return [
        Community(
            id=build_community_key(level, idx),
            member_ids=frozenset(members),
            level=level,
            label=label,
        )
        for idx, (label, members) in enumerate(groups.items())
    ]


def merge_level(
    previous: list[Community],
    edges: Iterable[Edge],
    level: int,
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
) -> list[Community]:
    """Build level `level` by propagating labels over the level-1 meta-graph."""
    owner = {member: community.id for community in previous for member in community.member_ids}
    meta_edges = {
        (owner[source], owner[target])
        for source, target in edges
        if source in owner and target in owner and owner[source] != owner[target]
    }

    by_id = {community.id: community for community in previous}
    adjacency = build_adjacency(by_id, meta_edges)
    groups = group_by_label(propagate_labels(adjacency, max_iterations, convergence_threshold))

    merged = []
    for idx, (label, child_ids) in enumerate(groups.items()):
        members = frozenset().union(*(by_id[child].member_ids for child in child_ids))
        merged.append(Community(
            id=build_community_key(level, idx),
            member_ids=members,
            level=level,
            child_ids=tuple(child_ids),
            label=label,
        ))
    return merged


def detect_hierarchical(
    graph: GraphStore,
    graph_id: str,
    levels: int = COMMUNITY_LEVELS,
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
    timeout: Optional[float] = None,
) -> dict[int, list[Community]]:
    """Detect communities at `levels` granularities (0 = finest).

    The graph is fetched once; each level n >= 1 merges level n-1.

    Returns:
        Mapping level -> communities. len(result[n]) <= len(result[n - 1]).

    Raises:
        ValueError: If levels < 1.
    """
    if levels < 1:
        raise ValueError(f"levels must be >= 1, got {levels}")

    nodes, edges = fetch_graph(graph, graph_id, timeout)
    hierarchy = build_hierarchy(nodes, edges, levels, max_iterations, convergence_threshold)

    logger.info(
        f"[communities] graph={graph_id} hierarchy: "
        + ", ".join(f"L{level}={len(items)}" for level, items in hierarchy.items())
    )
    return hierarchy


def build_hierarchy(
    nodes: Iterable[str],
    edges: Iterable[Edge],
    levels: int = COMMUNITY_LEVELS,
    max_iterations: int = LPA_MAX_ITERATIONS,
    convergence_threshold: Optional[float] = LPA_CONVERGENCE_THRESHOLD,
) -> dict[int, list[Community]]:
    """In-memory counterpart of detect_hierarchical for already-loaded graphs."""
    if levels < 1:
        raise ValueError(f"levels must be >= 1, got {levels}")

    edges = list(edges)
    hierarchy = {0: _to_communities(detect_in_graph(nodes, edges, max_iterations, convergence_threshold), 0)}
    for level in range(1, levels):
        hierarchy[level] = merge_level(hierarchy[level - 1], edges, level, max_iterations, convergence_threshold)
    return hierarchy


def get_entity_communities(communities: dict[str, list[str]]) -> dict[str, str]:
    """Invert a detect() result into entity id -> community label."""
    return {
        entity_id: community_id
        for community_id, entity_ids in communities.items()
        for entity_id in entity_ids
    }


def find_relevant_communities(
    communities: Iterable[Community],
    entity_ids: Iterable[str],
    top_n: int,
) -> list[Community]:
    """Rank communities by how many of `entity_ids` they contain.

    Ties keep the input order. Communities with no overlap are dropped.
    """
    wanted = set(entity_ids)
    scored = [(len(c.member_ids & wanted), c) for c in communities]
    ranked = sorted((item for item in scored if item[0] > 0), key=lambda item: -item[0])
    return [community for _, community in ranked[:top_n]]


def community_members_summary(community: Community, limit: int = 20) -> dict[str, Any]:
    """Compact description of a community for prompts and result metadata."""
    members = sorted(community.member_ids)
    return {
        "community_id": community.id,
        "level": community.level,
        "size": len(members),
        "members": members[:limit],
    }
