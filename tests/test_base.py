"""Tests for vertex and edge descriptors.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

import numpy as np
import pytest

from netdyn import (
    DimensionMismatch,
    EdgeSpec,
    InvalidDimension,
    InvalidMassMatrixForStaticKind,
    Kind,
    VertexSpec,
    ode_edge,
    ode_vertex,
    static_edge,
    static_vertex,
)
from netdyn.base import normalize_mass_matrix


def _noop(*args):
    pass


class TestConstruction:
    """Descriptors validate their arguments at construction."""

    @pytest.mark.parametrize("dim", [0, -1, 1.5, True])
    def test_invalid_dimension(self, dim):
        with pytest.raises(InvalidDimension):
            VertexSpec(_noop, Kind.DIFFERENTIAL, dim)

    def test_invalid_edge_dimension(self):
        with pytest.raises(InvalidDimension):
            static_edge(_noop, dim=0)

    def test_kind_from_string(self):
        spec = VertexSpec(_noop, "Static", 2)
        assert spec.kind is Kind.STATIC
        assert not spec.is_differential

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown kind"):
            EdgeSpec(_noop, "algebraic")

    def test_rule_must_be_callable(self):
        with pytest.raises(TypeError):
            VertexSpec(42, Kind.STATIC)

    def test_constructors_set_kind(self):
        assert ode_vertex(_noop).kind is Kind.DIFFERENTIAL
        assert static_vertex(_noop).kind is Kind.STATIC
        assert ode_edge(_noop).kind is Kind.DIFFERENTIAL
        assert static_edge(_noop).kind is Kind.STATIC

    def test_specs_are_immutable(self):
        spec = ode_vertex(_noop, dim=2)
        with pytest.raises(AttributeError):
            spec.dim = 3


class TestLabels:
    """Default and explicit component labels."""

    def test_default_scalar_labels(self):
        assert ode_vertex(_noop).labels == ("v",)
        assert static_edge(_noop).labels == ("e",)

    def test_default_vector_labels(self):
        assert ode_vertex(_noop, dim=3).labels == ("v0", "v1", "v2")
        assert ode_edge(_noop, dim=2).labels == ("e0", "e1")

    def test_explicit_labels(self):
        spec = ode_vertex(_noop, dim=2, labels=["theta", "omega"])
        assert spec.labels == ("theta", "omega")

    def test_single_string_label(self):
        assert static_vertex(_noop, labels="x").labels == ("x",)

    def test_wrong_label_count(self):
        with pytest.raises(DimensionMismatch):
            ode_vertex(_noop, dim=2, labels=["theta"])


class TestMassMatrix:
    """Per-spec mass matrix descriptors."""

    def test_default_is_identity(self):
        assert ode_vertex(_noop, dim=2).mass_matrix is None

    @pytest.mark.parametrize("m", [1.0, [1.0, 1.0], np.eye(2)])
    def test_identity_descriptors_normalize_to_none(self, m):
        assert ode_vertex(_noop, dim=2, mass_matrix=m).mass_matrix is None

    def test_scalar(self):
        spec = ode_vertex(_noop, dim=2, mass_matrix=0.0)
        assert np.array_equal(spec.mass_matrix, np.zeros((2, 2)))

    def test_diagonal(self):
        spec = ode_vertex(_noop, dim=3, mass_matrix=[1.0, 0.0, 2.0])
        assert np.array_equal(spec.mass_matrix, np.diag([1.0, 0.0, 2.0]))

    def test_full_matrix_is_copied_and_read_only(self):
        m = np.array([[1.0, 0.5], [0.0, 1.0]])
        spec = ode_edge(_noop, dim=2, mass_matrix=m)
        m[0, 1] = 9.0
        assert spec.mass_matrix[0, 1] == 0.5
        assert not spec.mass_matrix.flags.writeable

    @pytest.mark.parametrize("m", [[1.0, 2.0, 3.0], np.ones((2, 3)), np.ones((3, 3))])
    def test_wrong_shape(self, m):
        with pytest.raises(DimensionMismatch):
            normalize_mass_matrix(m, 2)

    def test_static_rejects_mass_matrix(self):
        with pytest.raises(InvalidMassMatrixForStaticKind):
            VertexSpec(_noop, Kind.STATIC, 2, mass_matrix=0.0)
        with pytest.raises(InvalidMassMatrixForStaticKind):
            EdgeSpec(_noop, Kind.STATIC, 1, mass_matrix=[2.0])

    def test_static_accepts_identity(self):
        spec = VertexSpec(_noop, Kind.STATIC, 2, mass_matrix=np.eye(2))
        assert spec.mass_matrix is None
