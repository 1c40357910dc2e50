"""Human-readable labels for the flat state and edge-value vectors.

Global labels are ``"{label}_{index}"``, where ``label`` is the spec's
component label and ``index`` the vertex or edge index, e.g. ``"v_3"`` or
``"theta_0"``. Labels are for display and lookup only; evaluation never
depends on them.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

from netdyn.assembly import AssembledSystem


def _global_labels(labels: tuple[str, ...], index: int) -> list[str]:
    return [f"{label}_{index}" for label in labels]


def state_labels(system: AssembledSystem) -> list[str]:
    """One label per component of the state vector, in layout order."""
    labels: list[str] = []
    for i, spec in enumerate(system.vertex_specs):
        labels.extend(_global_labels(spec.labels, i))
    for j, spec in enumerate(system.edge_specs):
        if spec.is_differential:
            labels.extend(_global_labels(spec.labels, j))
    return labels


def edge_labels(system: AssembledSystem) -> list[str]:
    """One label per component of the edge-value vector."""
    labels: list[str] = []
    for j, spec in enumerate(system.edge_specs):
        labels.extend(_global_labels(spec.labels, j))
    return labels


def labels_containing(system: AssembledSystem, pattern: str) -> list[str]:
    """State labels that contain ``pattern`` as a substring."""
    return [label for label in state_labels(system) if pattern in label]


def indices_containing(system: AssembledSystem, pattern: str) -> list[int]:
    """State-vector indices whose label contains ``pattern``."""
    return [
        k for k, label in enumerate(state_labels(system)) if pattern in label
    ]


def label_index(system: AssembledSystem) -> dict[str, int]:
    """Map each state label to its index.

    Raises:
        ValueError: If two components share a label.
    """
    index: dict[str, int] = {}
    for k, label in enumerate(state_labels(system)):
        if label in index:
            raise ValueError(
                f"Label '{label}' is used by state components "
                f"{index[label]} and {k}"
            )
        index[label] = k
    return index
