"""Layout planner: where each vertex and edge lives in the flat buffers.

Two independent layouts are produced by a running sum over the declared
dimensions, in declaration order:

- the **vertex layout**, covering the vertex block of the state vector;
- the **edge layout**, covering the edge-value vector (one segment per
  edge, whatever its kind).

The state vector handed to an integrator is the vertex block followed by
the states of the differential edges, in edge order. This concatenation is
part of the public contract: initial-condition vectors must follow it.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import NamedTuple, Optional

from equinox import Module, field

from netdyn.base import EdgeSpec, VertexSpec


logger = logging.getLogger(__name__)


class Segment(NamedTuple):
    """A contiguous ``[offset, offset + length)`` range of a flat buffer."""
    offset: int
    length: int

    @property
    def stop(self) -> int:
        return self.offset + self.length

    @property
    def slice(self) -> slice:
        return slice(self.offset, self.offset + self.length)


def _prefix_segments(dims: Sequence[int], start: int = 0) -> tuple[Segment, ...]:
    segments: list[Segment] = []
    offset = start
    for dim in dims:
        segments.append(Segment(offset, dim))
        offset += dim
    return tuple(segments)


class StateLayout(Module):
    """Offsets of every vertex and edge segment.

    Attributes:
        vertex_segments: Segment of each vertex in the state vector.
        edge_segments: Segment of each edge in the edge-value vector.
        state_edge_segments: Segment of each differential edge in the
            state vector; ``None`` for static edges.
        vertex_size: Length of the vertex block.
        edge_size: Length of the edge-value vector.
        state_size: Length of the state vector.
    """
    vertex_segments: tuple[Segment, ...] = field(static=True)
    edge_segments: tuple[Segment, ...] = field(static=True)
    state_edge_segments: tuple[Optional[Segment], ...] = field(static=True)
    vertex_size: int = field(static=True)
    edge_size: int = field(static=True)
    state_size: int = field(static=True)

    @property
    def n_vertices(self) -> int:
        return len(self.vertex_segments)

    @property
    def n_edges(self) -> int:
        return len(self.edge_segments)

    def vertex_slice(self, i: int) -> slice:
        return self.vertex_segments[i].slice

    def edge_slice(self, j: int) -> slice:
        return self.edge_segments[j].slice

    def state_edge_slice(self, j: int) -> Optional[slice]:
        seg = self.state_edge_segments[j]
        return None if seg is None else seg.slice


def plan_layout(
    vertex_specs: Sequence[VertexSpec],
    edge_specs: Sequence[EdgeSpec],
) -> StateLayout:
    """Compute vertex, edge and integrated-state offsets."""
    vertex_segments = _prefix_segments([spec.dim for spec in vertex_specs])
    edge_segments = _prefix_segments([spec.dim for spec in edge_specs])
    vertex_size = sum(seg.length for seg in vertex_segments)
    edge_size = sum(seg.length for seg in edge_segments)

    state_edge_segments: list[Optional[Segment]] = []
    offset = vertex_size
    for spec in edge_specs:
        if spec.is_differential:
            state_edge_segments.append(Segment(offset, spec.dim))
            offset += spec.dim
        else:
            state_edge_segments.append(None)

    layout = StateLayout(
        vertex_segments=vertex_segments,
        edge_segments=edge_segments,
        state_edge_segments=tuple(state_edge_segments),
        vertex_size=vertex_size,
        edge_size=edge_size,
        state_size=offset,
    )
    logger.debug(
        f"Planned layout: vertex block {vertex_size}, edge values {edge_size}, "
        f"state vector {layout.state_size}"
    )
    return layout
