"""Topology index: per-vertex incident edges, split by role.

Built once from the graph at assembly time and never mutated afterwards.
Within each incident-edge list, edges keep the relative order of the input
edge enumeration, so two assemblies of the same graph route edge values
identically.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

import logging

from equinox import Module, field

from netdyn._graph import EdgeListGraph, as_graph
from netdyn.errors import IndexOutOfRange


logger = logging.getLogger(__name__)


class Topology(Module):
    """Read-only incidence structure of a directed multigraph.

    Attributes:
        n_vertices: Number of vertices.
        sources: Source vertex of each edge.
        destinations: Destination vertex of each edge.
        out_edges: For each vertex, the edges whose source it is.
        in_edges: For each vertex, the edges whose destination it is.
    """
    n_vertices: int = field(static=True)
    sources: tuple[int, ...] = field(static=True)
    destinations: tuple[int, ...] = field(static=True)
    out_edges: tuple[tuple[int, ...], ...] = field(static=True)
    in_edges: tuple[tuple[int, ...], ...] = field(static=True)

    @property
    def n_edges(self) -> int:
        return len(self.sources)

    def source(self, j: int) -> int:
        return self.sources[j]

    def dest(self, j: int) -> int:
        return self.destinations[j]

    def degree(self, i: int) -> int:
        """Number of incident edges; self-loops count twice."""
        return len(self.in_edges[i]) + len(self.out_edges[i])

    def incident_edges(self, i: int) -> tuple[int, ...]:
        """All edges touching vertex ``i``: outgoing first, then incoming."""
        return self.out_edges[i] + self.in_edges[i]


def build_topology(graph: EdgeListGraph | object) -> Topology:
    """Index the edges of ``graph`` by source and destination vertex.

    Self-loops appear in both lists of their vertex and parallel edges are
    kept as distinct edge indices.

    Raises:
        IndexOutOfRange: If an edge references a vertex outside
            ``[0, n_vertices)``.
    """
    graph = as_graph(graph)
    n = graph.n_vertices

    out_edges: list[list[int]] = [[] for _ in range(n)]
    in_edges: list[list[int]] = [[] for _ in range(n)]
    sources: list[int] = []
    destinations: list[int] = []

    for j, (s, d) in enumerate(graph.edges):
        for role, v in (("source", s), ("destination", d)):
            if not 0 <= v < n:
                raise IndexOutOfRange(
                    f"Edge {j} has {role} vertex {v}, but the graph has "
                    f"{n} vertices"
                )
        out_edges[s].append(j)
        in_edges[d].append(j)
        sources.append(s)
        destinations.append(d)

    logger.debug(f"Indexed {len(sources)} edges over {n} vertices")

    return Topology(
        n_vertices=n,
        sources=tuple(sources),
        destinations=tuple(destinations),
        out_edges=tuple(tuple(e) for e in out_edges),
        in_edges=tuple(tuple(e) for e in in_edges),
    )
