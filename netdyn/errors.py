"""Exceptions raised while assembling and evaluating network systems.

Construction-time errors indicate a programming error in the specs or
graph passed to ``assemble``. ``BufferSizeMismatch`` is raised at call
time, before any buffer is written. Errors raised by local rules are never
wrapped; they propagate as-is.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""


class NetworkDynamicsError(ValueError):
    """Base class for all errors raised by netdyn itself."""


class InvalidDimension(NetworkDynamicsError):
    """A vertex or edge spec declares a dimension smaller than one."""


class InvalidMassMatrixForStaticKind(NetworkDynamicsError):
    """A non-identity mass matrix was given to a static spec."""


class DimensionMismatch(NetworkDynamicsError):
    """Counts or shapes do not agree with what the graph or spec declares."""


class IndexOutOfRange(NetworkDynamicsError):
    """An edge references a vertex that does not exist in the graph."""


class BufferSizeMismatch(NetworkDynamicsError):
    """A state or derivative buffer does not match the layout length."""


class SingularMassMatrix(NetworkDynamicsError):
    """The global mass matrix cannot be inverted for an explicit ODE solver."""
