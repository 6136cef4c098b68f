"""
Schema Graph

NetworkX graph of one data source's tables and foreign keys.

Nodes are tables (carrying their ``TableInfo``); each foreign key is a
directed edge ``referencing table -> referenced table``. Join paths treat
the graph as undirected: a path may walk an edge against its direction.
Neighbour enumeration follows edge insertion order (out-edges first, then
in-edges), which follows introspection order, so equal-length paths are
broken the same way on every build.

Usage:
    graph = build_schema_graph(data_source_id=1, tables=tables)
    graph.find_join_path("orders", "regions")
    # ['JOIN customers ON orders.customer_id = customers.id',
    #  'JOIN regions ON customers.region_id = regions.id']
"""

import difflib
import logging
from collections import deque
from collections.abc import Iterator
from datetime import datetime, timezone

import networkx as nx
from pydantic import BaseModel

from querypilot.connectors.base import TableInfo
from querypilot.discovery.errors import NoPathFoundError, UnknownTableError

logger = logging.getLogger(__name__)


class ForeignKey(BaseModel):
    """A foreign-key edge ``(from_table, from_column) -> (to_table, to_column)``."""

    from_table: str
    from_column: str
    to_table: str
    to_column: str

    def join_fragment(self, joined_table: str) -> str:
        return (
            f"JOIN {joined_table} ON {self.from_table}.{self.from_column} = "
            f"{self.to_table}.{self.to_column}"
        )


class SchemaGraph:
    """Immutable-once-built foreign-key graph for a single data source."""

    def __init__(self, data_source_id: int, version: int = 1):
        self.data_source_id = data_source_id
        self.version = version
        self.built_at = datetime.now(timezone.utc)
        self.graph = nx.MultiDiGraph()
        self._casefold: dict[str, str] = {}

    # -- building ---------------------------------------------------------

    def add_table(self, table: TableInfo) -> None:
        self.graph.add_node(table.table_name, table=table)
        self._casefold.setdefault(table.table_name.lower(), table.table_name)

    def add_foreign_key(self, fk: ForeignKey) -> None:
        self.graph.add_edge(fk.from_table, fk.to_table, fk=fk)

    # -- lookups ----------------------------------------------------------

    @property
    def table_names(self) -> list[str]:
        return list(self.graph.nodes)

    @property
    def tables(self) -> list[TableInfo]:
        return [data["table"] for _, data in self.graph.nodes(data=True)]

    def has_table(self, name: str) -> bool:
        return name in self.graph or name.lower() in self._casefold

    def resolve_table(self, name: str) -> str:
        """Exact match first, then case-insensitive; raises UnknownTableError."""
        if name in self.graph:
            return name
        resolved = self._casefold.get(name.lower())
        if resolved is not None:
            return resolved
        suggestions = difflib.get_close_matches(name, self.table_names, n=3, cutoff=0.6)
        raise UnknownTableError(name, suggestions)

    def table(self, name: str) -> TableInfo:
        return self.graph.nodes[self.resolve_table(name)]["table"]

    def edges(self) -> list[ForeignKey]:
        return [data["fk"] for _, _, data in self.graph.edges(data=True)]

    def neighbors(self, table: str) -> Iterator[tuple[str, ForeignKey]]:
        """Undirected neighbours of ``table`` with the edge used to reach them."""
        for _, target, data in self.graph.out_edges(table, data=True):
            yield target, data["fk"]
        for source, _, data in self.graph.in_edges(table, data=True):
            yield source, data["fk"]

    # -- join paths -------------------------------------------------------

    def find_join_path(self, start: str, end: str) -> list[str]:
        """
        Shortest foreign-key path from ``start`` to ``end`` as JOIN fragments.

        ``start`` is the implicit base table, so a table joined to itself
        yields an empty list.

        Raises:
            UnknownTableError: If either endpoint is not in the graph
            NoPathFoundError: If the tables are not connected
        """
        start = self.resolve_table(start)
        end = self.resolve_table(end)
        if start == end:
            return []

        predecessor: dict[str, tuple[str, ForeignKey] | None] = {start: None}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == end:
                return self._fragments(predecessor, end)
            for neighbor, fk in self.neighbors(current):
                if neighbor not in predecessor:
                    predecessor[neighbor] = (current, fk)
                    queue.append(neighbor)

        raise NoPathFoundError(start, end)

    @staticmethod
    def _fragments(
        predecessor: dict[str, tuple[str, ForeignKey] | None],
        end: str,
    ) -> list[str]:
        steps: list[tuple[str, ForeignKey]] = []
        node = end
        while predecessor[node] is not None:
            previous, fk = predecessor[node]
            steps.append((node, fk))
            node = previous
        steps.reverse()
        return [fk.join_fragment(joined) for joined, fk in steps]

    def __repr__(self) -> str:
        return (
            f"<SchemaGraph ds={self.data_source_id} v{self.version} "
            f"tables={self.graph.number_of_nodes()} fks={self.graph.number_of_edges()}>"
        )


def build_schema_graph(
    data_source_id: int,
    tables: list[TableInfo],
    version: int = 1,
) -> SchemaGraph:
    """Build the graph from introspected tables; FKs to unknown tables are skipped."""
    schema_graph = SchemaGraph(data_source_id, version=version)
    for table in tables:
        schema_graph.add_table(table)

    skipped = 0
    for table in tables:
        for column in table.columns:
            if not (column.is_foreign_key and column.foreign_table and column.foreign_column):
                continue
            if column.foreign_table not in schema_graph.graph:
                skipped += 1
                continue
            schema_graph.add_foreign_key(
                ForeignKey(
                    from_table=table.table_name,
                    from_column=column.name,
                    to_table=column.foreign_table,
                    to_column=column.foreign_column,
                )
            )

    logger.info(
        f"Built schema graph for data source {data_source_id}: "
        f"{schema_graph.graph.number_of_nodes()} tables, "
        f"{schema_graph.graph.number_of_edges()} foreign keys",
        extra={"data_source_id": data_source_id, "version": version, "skipped_fks": skipped},
    )
    return schema_graph
