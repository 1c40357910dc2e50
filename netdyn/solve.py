"""Integration of assembled systems with ``diffrax``.

The assembled evaluator mutates host ``numpy`` buffers, so it is exposed to
``diffrax`` through ``jax.pure_callback``. The resulting vector field works
with explicit solvers (``Tsit5``, ``Dopri5``, ``Euler``, ...). Implicit
solvers need Jacobians of the vector field, which a host callback cannot
provide.

Static vertices have no derivative. Each evaluation settles their values from
the differential part of the state, and the static segments of saved states
are settled the same way after the solve.

:copyright: Copyright 2024-2025 by MLL <mll@mll.bio>.
:license: Apache 2.0. See LICENSE for details.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import diffrax as dfx
from equinox import Module, field
import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, ArrayLike, Float, PyTree, Scalar

from netdyn.assembly import AssembledSystem
from netdyn.errors import BufferSizeMismatch, SingularMassMatrix


logger = logging.getLogger(__name__)


def _inverse_mass_matrix(system: AssembledSystem) -> Optional[np.ndarray]:
    if system.mass_matrix.is_identity():
        return None
    m = system.mass_matrix.to_array()
    if np.linalg.matrix_rank(m) < m.shape[0]:
        raise SingularMassMatrix(
            f"Mass matrix is singular (algebraic rows at "
            f"{list(system.mass_matrix.algebraic_indices())}); the system is "
            "a DAE and cannot be integrated as an explicit ODE"
        )
    return np.linalg.inv(m)


def make_vector_field(
    system: AssembledSystem,
    p: Any = None,
) -> Callable[[Scalar, Float[Array, " n"], PyTree], Float[Array, " n"]]:
    """Wrap ``system`` as a ``diffrax`` vector field ``(t, y, args) -> dy``.

    Static vertex segments of ``y`` are ignored: on every call they are
    settled from the differential part of ``y`` before the derivative is
    evaluated, so ``dy`` depends on ``(t, y)`` only. Non-identity mass
    matrices are applied as ``M^-1 f``.

    Args:
        system: The assembled system.
        p: Parameters, passed to every local rule. ``args`` is ignored.

    Raises:
        SingularMassMatrix: If the mass matrix is not invertible.
    """
    m_inv = _inverse_mass_matrix(system)

    def host_rhs(t, y):
        t = float(t)
        u = system.refresh_static(y, p, t)
        du = np.empty_like(u)
        system(du, u, p, t)
        if m_inv is not None:
            du = m_inv @ du
        return np.asarray(du, dtype=y.dtype)

    def vector_field(t, y, args):
        return jax.pure_callback(
            host_rhs,
            jax.ShapeDtypeStruct(y.shape, y.dtype),
            t,
            y,
            vmap_method="sequential",
        )

    return vector_field


class Trajectory(Module):
    """Saved states of a simulation.

    Attributes:
        ts: Save times.
        ys: States, one row per save time.
        stats: Solver statistics reported by ``diffrax``.
    """
    ts: Float[np.ndarray, " n_t"]
    ys: Float[np.ndarray, "n_t n"]
    stats: dict = field(static=True)

    def vertex(self, system: AssembledSystem, i: int) -> Float[np.ndarray, "n_t dim"]:
        """History of vertex ``i``'s state."""
        return self.ys[:, system.layout.vertex_slice(i)]

    def edge(self, system: AssembledSystem, j: int) -> Float[np.ndarray, "n_t dim"]:
        """History of differential edge ``j``'s state."""
        return system.edge_state(self.ys, j)


def simulate(
    system: AssembledSystem,
    u0: ArrayLike,
    t0: float,
    t1: float,
    p: Any = None,
    *,
    ts: Optional[ArrayLike] = None,
    solver: Optional[dfx.AbstractSolver] = None,
    dt0: Optional[float] = None,
    adaptive: bool = True,
    rtol: float = 1e-6,
    atol: float = 1e-8,
    max_steps: int = 100_000,
) -> Trajectory:
    """Integrate ``system`` from ``t0`` to ``t1`` starting at ``u0``.

    Args:
        system: The assembled system.
        u0: Initial state, following the system's layout.
        t0: Start time.
        t1: End time.
        p: Parameters passed to every local rule.
        ts: Save times; defaults to ``t1`` only.
        solver: An explicit ``diffrax`` solver; defaults to ``Tsit5``.
        dt0: Initial (or, when not adaptive, fixed) step size.
        adaptive: Use a PID step-size controller with ``rtol``/``atol``.
        rtol: Relative tolerance of the adaptive controller.
        atol: Absolute tolerance of the adaptive controller.
        max_steps: Maximum number of solver steps.
    """
    if solver is None:
        solver = dfx.Tsit5()
    if isinstance(solver, dfx.AbstractImplicitSolver):
        raise ValueError(
            f"{type(solver).__name__} is implicit; the host-side vector field "
            "cannot be differentiated, so use an explicit solver"
        )
    if adaptive:
        stepsize_controller = dfx.PIDController(rtol=rtol, atol=atol)
    else:
        if dt0 is None:
            raise ValueError("dt0 is required when adaptive=False")
        stepsize_controller = dfx.ConstantStepSize()

    u0 = np.array(u0, dtype=np.float64)
    if u0.shape != (system.state_size,):
        raise BufferSizeMismatch(
            f"Initial state has shape {u0.shape}, expected ({system.state_size},)"
        )

    saveat = dfx.SaveAt(t1=True) if ts is None else dfx.SaveAt(ts=jnp.asarray(ts))
    term = dfx.ODETerm(make_vector_field(system, p))

    logger.debug(
        f"Integrating {system.state_size} states from t={t0} to t={t1} "
        f"with {type(solver).__name__}"
    )
    sol = dfx.diffeqsolve(
        term,
        solver,
        t0=t0,
        t1=t1,
        dt0=dt0,
        y0=jnp.asarray(u0),
        saveat=saveat,
        stepsize_controller=stepsize_controller,
        max_steps=max_steps,
    )

    ts_out = np.asarray(sol.ts, dtype=np.float64)
    ys_out = np.array(sol.ys, dtype=np.float64)
    if system.has_static_vertices:
        for k in range(ys_out.shape[0]):
            ys_out[k] = system.refresh_static(ys_out[k], p, float(ts_out[k]))

    stats = {k: int(np.asarray(v)) for k, v in sol.stats.items() if np.ndim(v) == 0}
    return Trajectory(ts=ts_out, ys=ys_out, stats=stats)
