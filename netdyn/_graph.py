"""Graph collaborator adapters.

The core only needs a vertex count and an ordered list of
``(source, destination)`` vertex-index pairs. Undirected graphs still
report an (artificial) source and destination for every edge, and those
roles are kept as given.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0. See LICENSE for details.
"""

from __future__ import annotations

from collections.abc import Iterable

from equinox import Module, field


class EdgeListGraph(Module):
    """Minimal graph: a vertex count plus an ordered edge list.

    Attributes:
        n_vertices: Number of vertices; vertices are ``0 .. n_vertices - 1``.
        edges: ``(source, destination)`` pairs, in enumeration order.
    """
    n_vertices: int = field(static=True)
    edges: tuple[tuple[int, int], ...] = field(static=True)

    def __init__(self, n_vertices: int, edges: Iterable[tuple[int, int]] = ()):
        self.n_vertices = int(n_vertices)
        self.edges = tuple((int(s), int(d)) for s, d in edges)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    @classmethod
    def path(cls, n_vertices: int) -> "EdgeListGraph":
        """Directed path ``0 -> 1 -> ... -> n_vertices - 1``."""
        return cls(n_vertices, [(i, i + 1) for i in range(n_vertices - 1)])

    @classmethod
    def cycle(cls, n_vertices: int) -> "EdgeListGraph":
        """Directed cycle ``0 -> 1 -> ... -> n_vertices - 1 -> 0``."""
        return cls(n_vertices, [(i, (i + 1) % n_vertices) for i in range(n_vertices)])


def as_graph(graph) -> EdgeListGraph:
    """Coerce a graph collaborator into an ``EdgeListGraph``.

    Accepts an ``EdgeListGraph``, an ``(n_vertices, edges)`` tuple, any
    object with ``n_vertices`` and ``edges`` attributes, or a
    networkx-style graph exposing ``number_of_nodes()``, ``nodes`` and
    ``edges``. For the latter, node labels are mapped to indices in the
    order ``nodes`` enumerates them.
    """
    if isinstance(graph, EdgeListGraph):
        return graph

    if isinstance(graph, tuple) and len(graph) == 2:
        n_vertices, edges = graph
        return EdgeListGraph(n_vertices, edges)

    if hasattr(graph, "n_vertices") and hasattr(graph, "edges"):
        edges = graph.edges() if callable(graph.edges) else graph.edges
        return EdgeListGraph(graph.n_vertices, edges)

    if hasattr(graph, "number_of_nodes") and hasattr(graph, "edges"):
        index = {node: i for i, node in enumerate(graph.nodes)}
        edges = []
        for edge in graph.edges:
            src, dst = edge[0], edge[1]
            edges.append((index[src], index[dst]))
        return EdgeListGraph(graph.number_of_nodes(), edges)

    raise TypeError(
        f"Cannot interpret {type(graph).__name__} as a graph; expected an "
        "EdgeListGraph, an (n_vertices, edges) tuple, or a networkx-style graph"
    )
