# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Time evolution of tree tensor network states with the time-dependent variational principle.

Every sweep advances the state by one time step using the symmetric projector-splitting integrator: the
forward half sweep propagates every region by half a step, the backward half sweep by the other half. The
Hamiltonian may be a single TTNO or a weighted sum sum_k f_k(t) H_k of static TTNOs with scalar coefficient
functions. A complex total time evolves in imaginary time (t = -1j * tau gives expm(-tau * H)).
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

import numpy as np

from ..core.data_structures.networks import TTNO
from ..core.methods.solvers import ExponentialSolver
from ..core.methods.sweeps import SweepEngine

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from ..core.data_structures.networks import TTNS
    from ..core.data_structures.simulation_parameters import Observer, SweepParams
    from ..core.methods.sweeps import SweepResult


def time_grid(t: complex, params: SweepParams) -> tuple[complex, int]:
    """Time step and number of sweeps for evolving by ``t``.

    Without ``params.time_step`` the total time is split evenly into ``params.nsweeps`` steps. Otherwise
    ``t / time_step`` must be a positive integer and becomes the number of sweeps.

    Raises:
        ValueError: If ``t`` is zero or not an integer multiple of the time step.
    """
    if t == 0:
        msg = "The total evolution time must be non-zero."
        raise ValueError(msg)
    if params.time_step is None:
        return t / params.nsweeps, params.nsweeps
    ratio = complex(t / params.time_step)
    nsweeps = round(ratio.real)
    if nsweeps < 1 or abs(ratio - nsweeps) > 1e-9 * max(1.0, abs(ratio)):
        msg = f"The total time {t} is not a positive integer multiple of the time step {params.time_step}."
        raise ValueError(msg)
    return params.time_step, nsweeps


def tdvp(
    operator: TTNO | Sequence[TTNO],
    t: complex,
    state: TTNS,
    params: SweepParams,
    coefficients: Sequence[Callable[[float], complex]] | None = None,
    solver: Callable | None = None,
    observers: Sequence[Observer] = (),
    root: Hashable | None = None,
    t_start: float = 0.0,
) -> SweepResult:
    """Evolve ``state`` by ``expm(-1j * t * H)`` with TDVP.

    Args:
        operator: The Hamiltonian, or the static operators H_k of a time-dependent sum.
        t: Total time; complex values give imaginary-time evolution.
        state: Initial state; it is copied, not modified.
        params: Sweep parameters. ``reverse_step`` defaults to on.
        coefficients: Scalar functions f_k(t), one per operator. They are called with the real simulated time.
        solver: Local solver, by default a Krylov :class:`ExponentialSolver`.
        observers: Observers recorded during the evolution.
        root: Root of the sweep traversal.
        t_start: Simulated time at the start, passed to the coefficient functions.

    Returns:
        SweepResult: Final state and diagnostics; ``current_time`` holds ``t_start + Re(t)``.

    Raises:
        ValueError: If the time grid is inconsistent or a list of operators comes without coefficients
            of matching length.
    """
    if not isinstance(operator, TTNO) and coefficients is not None and len(coefficients) != len(operator):
        msg = f"Got {len(coefficients)} coefficient functions for {len(operator)} operators."
        raise ValueError(msg)
    time_step, nsweeps = time_grid(t, params)
    params = copy.copy(params)
    params.nsweeps = nsweeps
    params.time_step = time_step
    if params.reverse_step is None:
        params.reverse_step = True
    engine = SweepEngine(
        operator,
        copy.deepcopy(state),
        solver if solver is not None else ExponentialSolver(),
        params,
        observers,
        coefficients=coefficients,
        root=root,
        time_step=complex(time_step) if np.iscomplexobj(time_step) else float(time_step),
        t_start=t_start,
    )
    return engine.run()
