"""Tests for the layout planner and the global mass matrix builder.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

import numpy as np
import pytest

from netdyn import (
    EdgeListGraph,
    Segment,
    assemble,
    build_mass_matrix,
    ode_edge,
    ode_vertex,
    plan_layout,
    static_edge,
    static_vertex,
)


def _noop(*args):
    pass


def _check_contiguous(segments, dims, start=0):
    offset = start
    for seg, dim in zip(segments, dims):
        assert seg == Segment(offset, dim)
        offset += dim
    return offset


class TestLayout:
    """Running-sum offsets in declaration order."""

    def test_segment_slice(self):
        seg = Segment(3, 2)
        assert seg.slice == slice(3, 5)
        assert seg.stop == 5

    def test_vertex_and_edge_segments(self):
        vertices = [ode_vertex(_noop, 2), static_vertex(_noop, 1), ode_vertex(_noop, 3)]
        edges = [static_edge(_noop, 1), static_edge(_noop, 2)]
        layout = plan_layout(vertices, edges)
        assert layout.vertex_segments == (Segment(0, 2), Segment(2, 1), Segment(3, 3))
        assert layout.edge_segments == (Segment(0, 1), Segment(1, 2))
        assert layout.vertex_size == 6
        assert layout.edge_size == 3
        assert layout.state_size == 6
        assert layout.state_edge_segments == (None, None)

    def test_differential_edges_follow_vertex_block(self):
        vertices = [ode_vertex(_noop, 2)] * 2
        edges = [ode_edge(_noop, 2), static_edge(_noop, 1), ode_edge(_noop, 1)]
        layout = plan_layout(vertices, edges)
        assert layout.state_edge_segments == (Segment(4, 2), None, Segment(6, 1))
        assert layout.state_size == 7
        assert layout.state_edge_slice(1) is None
        assert layout.state_edge_slice(2) == slice(6, 7)

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_no_gaps_no_overlaps(self, seed):
        rng = np.random.default_rng(seed)
        v_dims = rng.integers(1, 5, size=7).tolist()
        e_dims = rng.integers(1, 4, size=11).tolist()
        layout = plan_layout(
            [ode_vertex(_noop, d) for d in v_dims],
            [static_edge(_noop, d) for d in e_dims],
        )
        assert layout.n_vertices == 7
        assert layout.n_edges == 11
        assert _check_contiguous(layout.vertex_segments, v_dims) == sum(v_dims)
        assert _check_contiguous(layout.edge_segments, e_dims) == sum(e_dims)
        assert layout.vertex_size == sum(v_dims)
        assert layout.edge_size == sum(e_dims)

    def test_empty(self):
        layout = plan_layout([], [])
        assert layout.state_size == 0
        assert layout.edge_size == 0


class TestMassMatrix:
    """Identity fast path and block placement."""

    def test_identity_marker(self):
        vertices = [ode_vertex(_noop, 2), static_vertex(_noop, 1)]
        edges = [ode_edge(_noop, 1), static_edge(_noop, 1)]
        layout = plan_layout(vertices, edges)
        mm = build_mass_matrix(vertices, edges, layout)
        assert mm.is_identity()
        assert mm.matrix is None
        assert mm.size == 4
        assert np.array_equal(mm.to_array(), np.eye(4))
        assert mm.algebraic_indices() == ()

    def test_single_block_forces_materialization(self):
        vertices = [
            ode_vertex(_noop, 1),
            ode_vertex(_noop, 2, mass_matrix=[[2.0, 1.0], [0.0, 0.0]]),
            static_vertex(_noop, 1),
        ]
        edges = [static_edge(_noop, 1)]
        layout = plan_layout(vertices, edges)
        mm = build_mass_matrix(vertices, edges, layout)

        assert not mm.is_identity()
        expected = np.eye(4)
        expected[1:3, 1:3] = [[2.0, 1.0], [0.0, 0.0]]
        assert np.array_equal(mm.matrix, expected)
        assert mm.algebraic_indices() == (2,)

    def test_edge_block_at_state_offset(self):
        vertices = [ode_vertex(_noop, 1)] * 2
        edges = [static_edge(_noop, 3), ode_edge(_noop, 2, mass_matrix=[3.0, 0.0])]
        layout = plan_layout(vertices, edges)
        mm = build_mass_matrix(vertices, edges, layout)
        assert mm.size == 4
        assert np.array_equal(np.diag(mm.matrix), [1.0, 1.0, 3.0, 0.0])
        assert np.count_nonzero(mm.matrix - np.diag(np.diag(mm.matrix))) == 0

    def test_assembled_system_exposes_mass_matrix(self):
        system = assemble(
            ode_vertex(_noop, 1, mass_matrix=0.5),
            static_edge(_noop),
            EdgeListGraph.path(3),
        )
        assert not system.mass_matrix.is_identity()
        assert np.array_equal(system.mass_matrix.matrix, 0.5 * np.eye(3))
