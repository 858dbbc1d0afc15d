"""Neo4j graph store adapter.

## Library Usage

Uses the official neo4j Python driver:
- GraphDatabase.driver() for connection pooling
- driver.execute_query() for single-statement queries

Queries issued by the engine filter nodes by a `_graph_id` property, so
several logical graphs can share one database. The graph id is always
passed as the `graph_id` query parameter.
"""

from typing import Any, Optional

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import Neo4jError, ServiceUnavailable

from ragloom.config import NEO4J_PASSWORD, NEO4J_URI, NEO4J_USER
from ragloom.shared.errors import AdapterUnavailableError, InvalidResponseError
from ragloom.shared.files import setup_logging

logger = setup_logging(__name__)


def get_driver() -> Driver:
    """Create a Neo4j driver from config. Close it when done.

    Example:
        >>> driver = get_driver()
        >>> store = Neo4jGraphStore(driver)
    """
    return GraphDatabase.driver(NEO4J_URI, auth=(NEO4J_USER, NEO4J_PASSWORD))


class Neo4jGraphStore:
    """GraphStore protocol implementation over a Neo4j driver."""

    def __init__(self, driver: Driver, database: Optional[str] = None):
        self.driver = driver
        self.database = database

    def query(
        self,
        graph_id: str,
        query_expr: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        parameters = {"graph_id": graph_id, **(params or {})}
        try:
            result = self.driver.execute_query(
                query_expr,
                parameters_=parameters,
                database_=self.database,
            )
        except ServiceUnavailable as exc:
            raise AdapterUnavailableError("graph_store") from exc
        except Neo4jError as exc:
            raise InvalidResponseError(f"cypher query failed: {exc}") from exc

        records = [record.data() for record in result.records]
        logger.debug(f"[neo4j] graph={graph_id} -> {len(records)} records")
        return records
