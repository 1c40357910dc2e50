"""Tests for state and edge labels.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

import pytest

from netdyn import EdgeListGraph, assemble, ode_edge, ode_vertex, static_edge
from netdyn.symbols import (
    edge_labels,
    indices_containing,
    label_index,
    labels_containing,
    state_labels,
)


def _noop(*args):
    pass


@pytest.fixture
def oscillators():
    """Two 2-d oscillators joined by one differential and one static edge."""
    return assemble(
        ode_vertex(_noop, 2, labels=["theta", "omega"]),
        [ode_edge(_noop, labels="flow"), static_edge(_noop)],
        EdgeListGraph(2, [(0, 1), (1, 0)]),
    )


class TestLabels:

    def test_state_labels_follow_layout(self, oscillators):
        assert state_labels(oscillators) == [
            "theta_0", "omega_0", "theta_1", "omega_1", "flow_0",
        ]
        assert len(state_labels(oscillators)) == oscillators.state_size

    def test_edge_labels(self, oscillators):
        assert edge_labels(oscillators) == ["flow_0", "e_1"]

    def test_default_labels(self):
        system = assemble(ode_vertex(_noop), static_edge(_noop), EdgeListGraph.path(3))
        assert state_labels(system) == ["v_0", "v_1", "v_2"]

    def test_lookup_by_substring(self, oscillators):
        assert labels_containing(oscillators, "omega") == ["omega_0", "omega_1"]
        assert indices_containing(oscillators, "omega") == [1, 3]
        assert indices_containing(oscillators, "_1") == [2, 3]

    def test_label_index(self, oscillators):
        index = label_index(oscillators)
        assert index["flow_0"] == 4
        assert index["theta_1"] == 2

    def test_duplicate_labels(self):
        system = assemble(
            ode_vertex(_noop, labels="x"),
            ode_edge(_noop, labels="x"),
            EdgeListGraph(1, [(0, 0)]),
        )
        with pytest.raises(ValueError, match="x_0"):
            label_index(system)
