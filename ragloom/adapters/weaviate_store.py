"""Weaviate vector store adapter.

Provides the VectorStore protocol over a Weaviate v4 collection:
- Vector similarity search (near_vector) when the query is a vector
- BM25 keyword search when the query is text

Each index_id is a Weaviate collection name. Objects are expected to carry
a chunk id property and a text property (see WEAVIATE_ID_PROPERTY and
WEAVIATE_TEXT_PROPERTY); every other property ends up in item metadata.
"""

from typing import Any, Optional, Union

import weaviate
from weaviate.classes.query import MetadataQuery
from weaviate.exceptions import WeaviateBaseError, WeaviateConnectionError

from ragloom.config import (
    WEAVIATE_GRPC_PORT,
    WEAVIATE_HOST,
    WEAVIATE_HTTP_PORT,
    WEAVIATE_ID_PROPERTY,
    WEAVIATE_TEXT_PROPERTY,
)
from ragloom.rag_pipeline.context import ScoredItem
from ragloom.shared.errors import AdapterUnavailableError, InvalidResponseError
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)


def get_client() -> weaviate.WeaviateClient:
    """Connect to the local Weaviate instance configured in ragloom.config.

    The caller owns the client and should close it when done.
    """
    client = weaviate.connect_to_local(
        host=WEAVIATE_HOST,
        port=WEAVIATE_HTTP_PORT,
        grpc_port=WEAVIATE_GRPC_PORT,
    )
    return client


def _parse_objects(objects: list, use_distance: bool) -> list[ScoredItem]:
    """Convert Weaviate response objects to ScoredItems.

    Distance (cosine, lower is better) becomes similarity 1 - distance.
    BM25 score is used as-is.
    """
    items = []
    for obj in objects:
        props = dict(obj.properties)
        if use_distance and getattr(obj.metadata, "distance", None) is not None:
            score = 1.0 - obj.metadata.distance
        elif getattr(obj.metadata, "score", None) is not None:
            score = obj.metadata.score
        else:
            score = 0.0

        item_id = props.pop(WEAVIATE_ID_PROPERTY, None) or str(obj.uuid)
        content = props.pop(WEAVIATE_TEXT_PROPERTY, "") or ""
        items.append(ScoredItem(id=str(item_id), content=content, score=float(score), metadata=props))
    return items


class WeaviateVectorStore:
    """VectorStore protocol implementation backed by a Weaviate client."""

    def __init__(self, client: weaviate.WeaviateClient):
        self.client = client

    def search(
        self,
        index_id: str,
        query: Union[list[float], str],
        k: int,
        opts: Optional[dict[str, Any]] = None,
    ) -> list[ScoredItem]:
        collection = self.client.collections.get(index_id)
        try:
            if isinstance(query, str):
                response = collection.query.bm25(
                    query=query,
                    limit=k,
                    return_metadata=MetadataQuery(score=True),
                )
                items = _parse_objects(response.objects, use_distance=False)
            else:
                response = collection.query.near_vector(
                    near_vector=list(query),
                    limit=k,
                    return_metadata=MetadataQuery(distance=True),
                )
                items = _parse_objects(response.objects, use_distance=True)
        except WeaviateConnectionError as exc:
            raise AdapterUnavailableError("vector_store") from exc
        except WeaviateBaseError as exc:
            raise InvalidResponseError(f"weaviate query on {index_id} failed: {exc}") from exc

        mode = "keyword" if isinstance(query, str) else "vector"
        logger.info(f"[weaviate] {mode} search on {index_id}: {len(items)} results")
        return items
