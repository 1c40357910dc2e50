"""Global mass matrix for the assembled state vector.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Optional

from equinox import Module, field
import numpy as np
from jaxtyping import Float

from netdyn.base import EdgeSpec, VertexSpec
from netdyn.layout import StateLayout


logger = logging.getLogger(__name__)


class GlobalMassMatrix(Module):
    """Block-diagonal mass matrix of the state vector, or an identity marker.

    Attributes:
        size: Side length, equal to the layout's ``state_size``.
        matrix: The materialized matrix, or ``None`` for the identity.
    """
    size: int = field(static=True)
    matrix: Optional[Float[np.ndarray, "n n"]]

    def is_identity(self) -> bool:
        return self.matrix is None

    def to_array(self) -> Float[np.ndarray, "n n"]:
        """Dense matrix; materializes the identity if necessary."""
        if self.matrix is None:
            return np.eye(self.size)
        return self.matrix

    def algebraic_indices(self) -> tuple[int, ...]:
        """State indices whose mass-matrix row is entirely zero."""
        if self.matrix is None:
            return ()
        return tuple(int(i) for i in np.flatnonzero(~self.matrix.any(axis=1)))


def build_mass_matrix(
    vertex_specs: Sequence[VertexSpec],
    edge_specs: Sequence[EdgeSpec],
    layout: StateLayout,
) -> GlobalMassMatrix:
    """Assemble per-spec mass matrices into one block-diagonal matrix.

    Only differential specs contribute blocks; static vertices get identity
    blocks and static edges are not part of the state vector. When every
    contributing block is the identity, no matrix is allocated.
    """
    blocks: list[tuple[int, np.ndarray]] = []
    for spec, seg in zip(vertex_specs, layout.vertex_segments):
        if spec.is_differential and spec.mass_matrix is not None:
            blocks.append((seg.offset, spec.mass_matrix))
    for spec, seg in zip(edge_specs, layout.state_edge_segments):
        if spec.is_differential and spec.mass_matrix is not None:
            blocks.append((seg.offset, spec.mass_matrix))

    if not blocks:
        logger.debug("All mass matrices are the identity")
        return GlobalMassMatrix(size=layout.state_size, matrix=None)

    matrix = np.eye(layout.state_size)
    for offset, block in blocks:
        n = block.shape[0]
        matrix[offset:offset + n, offset:offset + n] = block
    matrix.setflags(write=False)

    logger.debug(
        f"Materialized {layout.state_size}x{layout.state_size} mass matrix "
        f"with {len(blocks)} non-identity blocks"
    )
    return GlobalMassMatrix(size=layout.state_size, matrix=matrix)
