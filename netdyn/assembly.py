"""Assembly of a network of local rules into one evaluation function.

``assemble`` takes one spec per vertex, one spec per edge and a graph, and
produces an ``AssembledSystem``: a callable ``system(du, u, p, t)`` that
mutates ``du`` in place, following the calling convention expected by
in-place ODE integrators.

Algorithm outline
-----------------
1. Index the graph's incident edges per vertex (``build_topology``).
2. Plan the flat-buffer offsets of every vertex and edge (``plan_layout``).
3. Build the global mass matrix, or the identity marker.
4. Build the evaluator via closures over pre-computed slices and tasks,
   so that each call only creates views and dispatches local rules.
   Static edge values go to a scratch buffer allocated once per calling
   thread.

Each call then runs, strictly in this order: a buffer-size check, the
slicing of the caller's buffers into per-entity views, the edge phase
(every edge, in declaration order) and the vertex phase (every vertex, in
declaration order). All edge values are final before any vertex rule runs.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0.  See LICENSE for details.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Executor, ThreadPoolExecutor, wait
import logging
import threading
from typing import Any, Callable, Optional

from equinox import Module, field
import numpy as np
from jaxtyping import Float

from netdyn import config
from netdyn.base import EdgeSpec, Kind, VertexSpec
from netdyn.errors import BufferSizeMismatch, DimensionMismatch
from netdyn.layout import StateLayout, plan_layout
from netdyn.mass_matrix import GlobalMassMatrix, build_mass_matrix
from netdyn.topology import Topology, build_topology


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def assemble(
    vertex_specs: Sequence[VertexSpec] | VertexSpec,
    edge_specs: Sequence[EdgeSpec] | EdgeSpec,
    graph,
    *,
    n_workers: Optional[int] = None,
) -> "AssembledSystem":
    """Assemble local vertex and edge rules over ``graph``.

    Args:
        vertex_specs: One spec per vertex, in vertex order. A single spec
            is shared by every vertex.
        edge_specs: One spec per edge, in the graph's edge enumeration
            order. A single spec is shared by every edge.
        graph: Graph collaborator; see ``netdyn._graph.as_graph``.
        n_workers: Threads used within each evaluation phase. Defaults to
            ``netdyn.config.NUM_WORKERS``. With more than one worker the
            system owns a thread pool, which stays alive until ``close()``
            is called (or the ``with`` block exits) or the interpreter
            shuts down.

    Raises:
        DimensionMismatch: If the number of specs differs from the number
            of vertices or edges.
        IndexOutOfRange: If an edge references a non-existent vertex.
    """
    return AssembledSystem(vertex_specs, edge_specs, graph, n_workers=n_workers)


def _broadcast_specs(specs, spec_type: type, n: int, what: str) -> tuple:
    if isinstance(specs, spec_type):
        return (specs,) * n
    specs = tuple(specs)
    for k, spec in enumerate(specs):
        if not isinstance(spec, spec_type):
            raise TypeError(
                f"{what.capitalize()} spec {k} is a {type(spec).__name__}, "
                f"expected {spec_type.__name__}"
            )
    if len(specs) != n:
        raise DimensionMismatch(
            f"Got {len(specs)} {what} specs for a graph with {n} {what}s"
        )
    return specs


def _check_buffer(name: str, buffer, size: int) -> None:
    if not isinstance(buffer, np.ndarray):
        raise TypeError(
            f"{name} must be a numpy array to be evaluated in place, "
            f"got {type(buffer).__name__}"
        )
    if buffer.shape != (size,):
        raise BufferSizeMismatch(
            f"{name} has shape {buffer.shape}, expected ({size},)"
        )


# ---------------------------------------------------------------------------
# Assembled system
# ---------------------------------------------------------------------------

class AssembledSystem(Module):
    """A network of local rules compiled into one in-place evaluator.

    The system is created once per (graph, vertex specs, edge specs) and
    then called many times by an integrator. The state vector is the
    vertex block followed by the differential edge states; see
    ``netdyn.layout``.

    Apart from the caller's buffers, a call writes only to a static-edge
    scratch buffer owned by the calling thread, so one instance can be
    called from several threads at once.

    Attributes:
        vertex_specs: One spec per vertex.
        edge_specs: One spec per edge.
        topology: Incident-edge index of the graph.
        layout: Offsets of every segment.
        mass_matrix: Global mass matrix, or the identity marker.
        n_workers: Threads used within each phase; 1 means serial.
    """
    vertex_specs: tuple[VertexSpec, ...]
    edge_specs: tuple[EdgeSpec, ...]
    topology: Topology
    layout: StateLayout
    mass_matrix: GlobalMassMatrix
    n_workers: int = field(static=True)
    _executor: Optional[Executor] = field(static=True)
    _evaluate: Callable = field(static=True)

    def __init__(
        self,
        vertex_specs: Sequence[VertexSpec] | VertexSpec,
        edge_specs: Sequence[EdgeSpec] | EdgeSpec,
        graph,
        *,
        n_workers: Optional[int] = None,
    ):
        # ---- Topology and spec matching ---------------------------------
        topology = build_topology(graph)
        self.topology = topology
        self.vertex_specs = _broadcast_specs(
            vertex_specs, VertexSpec, topology.n_vertices, "vertex",
        )
        self.edge_specs = _broadcast_specs(
            edge_specs, EdgeSpec, topology.n_edges, "edge",
        )

        # ---- Layout and mass matrix -------------------------------------
        self.layout = plan_layout(self.vertex_specs, self.edge_specs)
        self.mass_matrix = build_mass_matrix(
            self.vertex_specs, self.edge_specs, self.layout,
        )

        # ---- Evaluator ---------------------------------------------------
        self.n_workers = max(1, int(config.NUM_WORKERS if n_workers is None else n_workers))
        self._executor = (
            ThreadPoolExecutor(max_workers=self.n_workers, thread_name_prefix="netdyn")
            if self.n_workers > 1 else None
        )
        self._evaluate = _make_evaluator(
            vertex_specs=self.vertex_specs,
            edge_specs=self.edge_specs,
            topology=topology,
            layout=self.layout,
            executor=self._executor,
            annotate_errors=config.ANNOTATE_ERRORS,
        )

        logger.info(
            f"Assembled system with {topology.n_vertices} vertices and "
            f"{topology.n_edges} edges; state size {self.layout.state_size}, "
            f"identity mass matrix: {self.mass_matrix.is_identity()}"
        )

    # -- Evaluation ---------------------------------------------------------

    def __call__(
        self,
        du: Float[np.ndarray, " n"],
        u: Float[np.ndarray, " n"],
        p: Any = None,
        t: float = 0.0,
    ) -> None:
        """Evaluate the network in place.

        Differential vertices and edges write their derivatives into
        ``du``. Static vertices write their value into their own segment
        of ``u``, and their segment of ``du`` is set to zero.

        Args:
            du: Output buffer of length ``state_size``.
            u: Current state, of length ``state_size``.
            p: Parameters, passed unchanged to every local rule.
            t: Current time.

        Raises:
            BufferSizeMismatch: If either buffer has the wrong length. Nothing
                is written in that case.
        """
        _check_buffer("Derivative buffer", du, self.layout.state_size)
        _check_buffer("State buffer", u, self.layout.state_size)
        self._evaluate(du, u, p, t)

    @property
    def state_size(self) -> int:
        """Length of the state vector passed to the integrator."""
        return self.layout.state_size

    @property
    def n_vertices(self) -> int:
        return self.topology.n_vertices

    @property
    def n_edges(self) -> int:
        return self.topology.n_edges

    @property
    def has_static_vertices(self) -> bool:
        return any(spec.kind is Kind.STATIC for spec in self.vertex_specs)

    # -- State access -------------------------------------------------------

    def initial_state(self, fill: float = 0.0) -> Float[np.ndarray, " n"]:
        """A new state vector with every component set to ``fill``."""
        return np.full(self.layout.state_size, fill, dtype=np.float64)

    def vertex_state(self, u: Float[np.ndarray, " n"], i: int) -> np.ndarray:
        """View of vertex ``i``'s segment of ``u``."""
        return u[..., self.layout.vertex_slice(i)]

    def edge_state(self, u: Float[np.ndarray, " n"], j: int) -> np.ndarray:
        """View of differential edge ``j``'s segment of ``u``."""
        sl = self.layout.state_edge_slice(j)
        if sl is None:
            raise ValueError(
                f"Edge {j} is static and has no state; use `edge_values`"
            )
        return u[..., sl]

    def edge_values(
        self,
        u: Float[np.ndarray, " n"],
        p: Any = None,
        t: float = 0.0,
    ) -> Float[np.ndarray, " n_edge_values"]:
        """Value of every edge at state ``u``, laid out by the edge layout.

        Static edges are evaluated on a copy of ``u``; differential edges
        report their state. ``u`` is not modified.
        """
        u = np.array(u, dtype=np.float64)
        _check_buffer("State buffer", u, self.layout.state_size)
        du = np.zeros_like(u)
        values = self._evaluate(du, u, p, t, edges_only=True).copy()

        for j, seg in enumerate(self.layout.state_edge_segments):
            if seg is not None:
                values[self.layout.edge_slice(j)] = u[seg.slice]
        return values

    def refresh_static(
        self,
        u: Float[np.ndarray, " n"],
        p: Any = None,
        t: float = 0.0,
    ) -> Float[np.ndarray, " n"]:
        """Copy of ``u`` whose static vertex segments are consistent with it.

        Edges read vertex states before static vertices are evaluated, so
        the network is re-evaluated until the static values stop changing.
        A chain of ``k`` static vertices settles within ``k + 1`` passes.
        Differential segments are returned unchanged.
        """
        u = np.array(u, dtype=np.float64)
        _check_buffer("State buffer", u, self.layout.state_size)
        static_slices = [
            self.layout.vertex_slice(i)
            for i, spec in enumerate(self.vertex_specs)
            if spec.kind is Kind.STATIC
        ]
        if not static_slices:
            return u

        du = np.zeros_like(u)
        max_passes = len(static_slices) + 1
        previous = np.concatenate([u[sl] for sl in static_slices])
        for _ in range(max_passes):
            self._evaluate(du, u, p, t)
            current = np.concatenate([u[sl] for sl in static_slices])
            if np.array_equal(current, previous, equal_nan=True):
                break
            previous = current
        else:
            logger.warning(
                f"Static vertex values did not settle within {max_passes} "
                f"passes at t={t}; static vertices may form a cycle"
            )
        return u

    # -- Resources ----------------------------------------------------------

    def close(self) -> None:
        """Shut down the phase worker threads, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "AssembledSystem":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Evaluator builder
# ---------------------------------------------------------------------------

def _make_evaluator(
    vertex_specs: tuple[VertexSpec, ...],
    edge_specs: tuple[EdgeSpec, ...],
    topology: Topology,
    layout: StateLayout,
    executor: Optional[Executor],
    annotate_errors: bool,
) -> Callable:
    """Build ``evaluate(du, u, p, t, edges_only=False)``.

    All indexing and every per-entity task is resolved here, so that a call
    only slices buffers and dispatches on each entity's kind. The call
    returns the calling thread's edge-value scratch buffer.
    """

    n_edges = topology.n_edges

    # ---- Pre-compute per-entity dispatch tables ----------------------------
    vertex_slices = tuple(seg.slice for seg in layout.vertex_segments)
    static_edges = tuple(
        (j, seg.slice)
        for j, (spec, seg) in enumerate(zip(edge_specs, layout.edge_segments))
        if not spec.is_differential
    )
    differential_edges = tuple(
        (j, seg.slice)
        for j, seg in enumerate(layout.state_edge_segments)
        if seg is not None
    )

    edge_table = tuple(
        (spec.kind is Kind.STATIC, spec.f, topology.sources[j], topology.destinations[j])
        for j, spec in enumerate(edge_specs)
    )
    vertex_table = tuple(
        (
            spec.kind is Kind.STATIC,
            spec.f,
            topology.in_edges[i],
            topology.out_edges[i],
        )
        for i, spec in enumerate(vertex_specs)
    )

    edge_indices = tuple(range(n_edges))
    vertex_indices = tuple(range(topology.n_vertices))

    # ---- Per-thread scratch ------------------------------------------------
    # Static edge values of a call live in a buffer owned by the calling
    # thread, allocated on its first call.
    scratch = threading.local()

    def _scratch() -> tuple[np.ndarray, tuple[Optional[np.ndarray], ...]]:
        try:
            return scratch.buffer, scratch.views
        except AttributeError:
            buffer = np.zeros(layout.edge_size)
            views: list[Optional[np.ndarray]] = [None] * n_edges
            for j, sl in static_edges:
                views[j] = buffer[sl]
            scratch.buffer, scratch.views = buffer, tuple(views)
            return scratch.buffer, scratch.views

    # ---- Tasks -------------------------------------------------------------
    # A frame holds the views of one call:
    # (vertex_states, vertex_outputs, edge_values, edge_derivatives, p, t)

    def run_edge(j: int, frame: tuple) -> None:
        vertex_states, _, edge_values, edge_derivatives, p, t = frame
        is_static, f, src, dst = edge_table[j]
        if is_static:
            f(edge_values[j], vertex_states[src], vertex_states[dst], p, t)
        else:
            f(
                edge_derivatives[j],
                edge_values[j],
                vertex_states[src],
                vertex_states[dst],
                p,
                t,
            )

    def run_vertex(i: int, frame: tuple) -> None:
        vertex_states, vertex_outputs, edge_values, _, p, t = frame
        is_static, f, in_edges, out_edges = vertex_table[i]
        in_values = tuple(edge_values[j] for j in in_edges)
        out_values = tuple(edge_values[j] for j in out_edges)
        if is_static:
            f(vertex_states[i], in_values, out_values, p, t)
            vertex_outputs[i].fill(0.0)
        else:
            f(vertex_outputs[i], vertex_states[i], in_values, out_values, p, t)

    def _annotated(task: Callable[[int, tuple], None], what: str) -> Callable[[int, tuple], None]:
        if not annotate_errors:
            return task

        def annotated_task(k: int, frame: tuple) -> None:
            try:
                task(k, frame)
            except Exception as e:
                e.add_note(f"raised while evaluating {what} {k}")
                raise

        return annotated_task

    edge_task = _annotated(run_edge, "edge")
    vertex_task = _annotated(run_vertex, "vertex")

    def _run_phase(
        task: Callable[[int, tuple], None],
        indices: tuple[int, ...],
        frame: tuple,
    ) -> None:
        if executor is None or len(indices) < 2:
            for k in indices:
                task(k, frame)
            return
        # Every task finishes before returning, so nothing writes to the
        # caller's buffers after a failure has been raised.
        futures = [executor.submit(task, k, frame) for k in indices]
        wait(futures)
        for future in futures:
            future.result()

    # ---- The actual evaluator ----------------------------------------------

    def evaluate(du, u, p, t, edges_only: bool = False) -> np.ndarray:
        edge_buffer, static_views = _scratch()

        # Slice
        vertex_states = [u[sl] for sl in vertex_slices]
        vertex_outputs = [du[sl] for sl in vertex_slices]
        edge_values = list(static_views)
        edge_derivatives: list[Optional[np.ndarray]] = [None] * n_edges
        for j, sl in differential_edges:
            edge_values[j] = u[sl]
            edge_derivatives[j] = du[sl]
        frame = (vertex_states, vertex_outputs, edge_values, edge_derivatives, p, t)

        # Edge phase
        _run_phase(edge_task, edge_indices, frame)
        # Vertex phase
        if not edges_only:
            _run_phase(vertex_task, vertex_indices, frame)
        return edge_buffer

    return evaluate
