"""Join tree: tables as nodes, resolved equi-joins as edges. Uses networkx for traversal."""

from __future__ import annotations

from dataclasses import dataclass

import networkx as nx

from factlens.ast.nodes import BinaryOp, ColumnRef, Expr
from factlens.compiler.resolution import JoinEdge


@dataclass
class JoinStep:
    """Join ``table`` onto the already-joined ``parent``."""

    table: str
    column: str
    parent: str
    parent_column: str


class JoinTree:
    """Spanning tree over the tables a query touches, rooted at the base table.

    The first edge seen between two tables wins; later edges between the same
    pair are ignored, so every table is joined exactly once.
    """

    def __init__(self, edges: list[JoinEdge]) -> None:
        self._graph: nx.Graph[str] = nx.Graph()
        for edge in edges:
            if edge.table == edge.fact_table:
                continue
            if self._graph.has_edge(edge.table, edge.fact_table):
                continue
            self._graph.add_edge(
                edge.table,
                edge.fact_table,
                columns={edge.table: edge.dimension_column, edge.fact_table: edge.fact_column},
            )

    def reachable(self, base_table: str) -> set[str]:
        """Tables connected to ``base_table``, including itself."""
        if base_table not in self._graph:
            return {base_table}
        return set(nx.node_connected_component(self._graph, base_table))

    def steps_from(self, base_table: str) -> list[JoinStep]:
        """Breadth-first join order from ``base_table``."""
        if base_table not in self._graph:
            return []
        steps: list[JoinStep] = []
        for parent, child in nx.bfs_edges(self._graph, base_table):
            columns = self._graph.edges[parent, child]["columns"]
            steps.append(
                JoinStep(
                    table=child,
                    column=columns[child],
                    parent=parent,
                    parent_column=columns[parent],
                )
            )
        return steps

    @staticmethod
    def build_join_condition(step: JoinStep) -> Expr:
        """Build the ON clause expression for a join step."""
        return BinaryOp(
            left=ColumnRef(name=step.column, table=step.table),
            op="=",
            right=ColumnRef(name=step.parent_column, table=step.parent),
        )
