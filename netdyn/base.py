"""Local function descriptors for vertices and edges.

A descriptor records *what* one vertex or edge does: its kind, the local
rule that implements it, the size of its state and (for differential
kinds) its mass matrix. Descriptors are immutable ``equinox`` modules that
are validated at construction, long before any evaluation happens.

Kinds
-----
Each descriptor is one of exactly two cases, and the local rule's calling
convention depends on the case:

- **Static** vertex ``f(v, in_edges, out_edges, p, t)``; static edge
  ``f(e, v_src, v_dst, p, t)``. The rule writes its algebraic result into
  its own view.
- **Differential** vertex ``f(dv, v, in_edges, out_edges, p, t)``;
  differential edge ``f(de, e, v_src, v_dst, p, t)``. The rule writes the
  time derivative into ``dv``/``de`` and treats the state as read-only.

All views are only valid for the duration of one call and must not be
retained by the rule.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Callable, Optional

from equinox import Module, field
import numpy as np
from jaxtyping import ArrayLike, Float

from netdyn import config
from netdyn.errors import (
    DimensionMismatch,
    InvalidDimension,
    InvalidMassMatrixForStaticKind,
)


# ---------------------------------------------------------------------------
# Kind
# ---------------------------------------------------------------------------

class Kind(Enum):
    """Mathematical nature of a local rule."""
    STATIC = "static"
    DIFFERENTIAL = "differential"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _as_kind(kind: Kind | str) -> Kind:
    if isinstance(kind, Kind):
        return kind
    try:
        return Kind(str(kind).lower())
    except ValueError:
        raise ValueError(
            f"Unknown kind {kind!r}; expected one of "
            f"{[k.value for k in Kind]}"
        ) from None


def _check_dim(dim: int) -> int:
    if isinstance(dim, bool) or int(dim) != dim or dim < 1:
        raise InvalidDimension(f"Dimension must be a positive integer, got {dim!r}")
    return int(dim)


def _default_labels(stem: str, dim: int) -> tuple[str, ...]:
    if dim == 1:
        return (stem,)
    return tuple(f"{stem}{i}" for i in range(dim))


def _check_labels(
    labels: Optional[Sequence[str]], stem: str, dim: int,
) -> tuple[str, ...]:
    if labels is None:
        return _default_labels(stem, dim)
    if isinstance(labels, str):
        labels = (labels,)
    labels = tuple(str(label) for label in labels)
    if len(labels) != dim:
        raise DimensionMismatch(
            f"Expected {dim} labels, got {len(labels)}: {labels}"
        )
    return labels


def normalize_mass_matrix(
    mass_matrix: Optional[ArrayLike],
    dim: int,
) -> Optional[Float[np.ndarray, "dim dim"]]:
    """Convert a mass-matrix descriptor into a dense ``(dim, dim)`` array.

    Accepted descriptors are ``None`` (identity), a scalar (a multiple of
    the identity), a vector of length ``dim`` (diagonal), or a square
    ``(dim, dim)`` matrix.

    Returns:
        ``None`` when the descriptor is equal to the identity, otherwise a
        read-only float array.
    """
    if mass_matrix is None:
        return None
    m = np.asarray(mass_matrix, dtype=np.float64)
    if m.ndim == 0:
        m = float(m) * np.eye(dim)
    elif m.ndim == 1:
        if m.shape[0] != dim:
            raise DimensionMismatch(
                f"Diagonal mass matrix has length {m.shape[0]}, expected {dim}"
            )
        m = np.diag(m)
    elif m.shape != (dim, dim):
        raise DimensionMismatch(
            f"Mass matrix has shape {m.shape}, expected {(dim, dim)}"
        )
    else:
        m = m.copy()

    if np.array_equal(m, np.eye(dim)):
        return None
    m.setflags(write=False)
    return m


def _check_mass_matrix(
    mass_matrix: Optional[ArrayLike], kind: Kind, dim: int,
) -> Optional[np.ndarray]:
    m = normalize_mass_matrix(mass_matrix, dim)
    if kind is Kind.STATIC and m is not None:
        raise InvalidMassMatrixForStaticKind(
            "Mass matrices only apply to differential specs"
        )
    return m


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

class VertexSpec(Module):
    """Local dynamics of one graph vertex.

    Attributes:
        f: The local rule; its signature depends on ``kind`` (see the
            module docstring).
        kind: Whether the rule is static or differential.
        dim: Number of state components of the vertex.
        mass_matrix: Dense ``(dim, dim)`` mass matrix, or ``None`` for the
            identity.
        labels: One human-readable name per state component.
    """
    f: Callable = field(static=True)
    kind: Kind = field(static=True)
    dim: int = field(static=True)
    mass_matrix: Optional[Float[np.ndarray, "dim dim"]]
    labels: tuple[str, ...] = field(static=True)

    def __init__(
        self,
        f: Callable,
        kind: Kind | str,
        dim: int = 1,
        mass_matrix: Optional[ArrayLike] = None,
        labels: Optional[Sequence[str]] = None,
    ):
        if not callable(f):
            raise TypeError(f"Local rule must be callable, got {type(f).__name__}")
        self.f = f
        self.kind = _as_kind(kind)
        self.dim = _check_dim(dim)
        self.mass_matrix = _check_mass_matrix(mass_matrix, self.kind, self.dim)
        self.labels = _check_labels(labels, config.DEFAULT_VERTEX_LABEL, self.dim)

    @property
    def is_differential(self) -> bool:
        return self.kind is Kind.DIFFERENTIAL


class EdgeSpec(Module):
    """Local dynamics of one graph edge.

    The edge's identity is its position in the edge-spec sequence, which is
    matched one-to-one against the graph's edge enumeration.

    Attributes:
        f: The local rule; its signature depends on ``kind``.
        kind: Whether the rule is static or differential.
        dim: Number of components of the edge value.
        mass_matrix: Dense ``(dim, dim)`` mass matrix, or ``None`` for the
            identity.
        labels: One human-readable name per component.
    """
    f: Callable = field(static=True)
    kind: Kind = field(static=True)
    dim: int = field(static=True)
    mass_matrix: Optional[Float[np.ndarray, "dim dim"]]
    labels: tuple[str, ...] = field(static=True)

    def __init__(
        self,
        f: Callable,
        kind: Kind | str,
        dim: int = 1,
        mass_matrix: Optional[ArrayLike] = None,
        labels: Optional[Sequence[str]] = None,
    ):
        if not callable(f):
            raise TypeError(f"Local rule must be callable, got {type(f).__name__}")
        self.f = f
        self.kind = _as_kind(kind)
        self.dim = _check_dim(dim)
        self.mass_matrix = _check_mass_matrix(mass_matrix, self.kind, self.dim)
        self.labels = _check_labels(labels, config.DEFAULT_EDGE_LABEL, self.dim)

    @property
    def is_differential(self) -> bool:
        return self.kind is Kind.DIFFERENTIAL


# ---------------------------------------------------------------------------
# Convenience constructors
# ---------------------------------------------------------------------------

def ode_vertex(
    f: Callable,
    dim: int = 1,
    mass_matrix: Optional[ArrayLike] = None,
    labels: Optional[Sequence[str]] = None,
) -> VertexSpec:
    """Vertex with rule ``f(dv, v, in_edges, out_edges, p, t)``."""
    return VertexSpec(f, Kind.DIFFERENTIAL, dim, mass_matrix, labels)


def static_vertex(
    f: Callable,
    dim: int = 1,
    labels: Optional[Sequence[str]] = None,
) -> VertexSpec:
    """Vertex with rule ``f(v, in_edges, out_edges, p, t)``."""
    return VertexSpec(f, Kind.STATIC, dim, None, labels)


def ode_edge(
    f: Callable,
    dim: int = 1,
    mass_matrix: Optional[ArrayLike] = None,
    labels: Optional[Sequence[str]] = None,
) -> EdgeSpec:
    """Edge with rule ``f(de, e, v_src, v_dst, p, t)``."""
    return EdgeSpec(f, Kind.DIFFERENTIAL, dim, mass_matrix, labels)


def static_edge(
    f: Callable,
    dim: int = 1,
    labels: Optional[Sequence[str]] = None,
) -> EdgeSpec:
    """Edge with rule ``f(e, v_src, v_dst, p, t)``."""
    return EdgeSpec(f, Kind.STATIC, dim, None, labels)
