"""
:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0, see LICENSE for details.
"""

import importlib.metadata
import logging
import os

from netdyn._graph import EdgeListGraph, as_graph
from netdyn.assembly import AssembledSystem, assemble
from netdyn.base import (
    EdgeSpec,
    Kind,
    VertexSpec,
    ode_edge,
    ode_vertex,
    static_edge,
    static_vertex,
)
from netdyn.errors import (
    BufferSizeMismatch,
    DimensionMismatch,
    IndexOutOfRange,
    InvalidDimension,
    InvalidMassMatrixForStaticKind,
    NetworkDynamicsError,
    SingularMassMatrix,
)
from netdyn.layout import Segment, StateLayout, plan_layout
from netdyn.mass_matrix import GlobalMassMatrix, build_mass_matrix
from netdyn.topology import Topology, build_topology


try:
    __version__ = importlib.metadata.version("netdyn")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"


if os.environ.get("NETDYN_DEBUG", False) == "True":
    DEFAULT_LOG_LEVEL = "DEBUG"
else:
    DEFAULT_LOG_LEVEL = "INFO"

LOG_LEVEL = os.environ.get("NETDYN_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()


logger = logging.getLogger(__package__)
logger.addHandler(logging.NullHandler())
logger.setLevel(LOG_LEVEL)
