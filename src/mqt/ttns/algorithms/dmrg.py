# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Ground-state and excited-state search on tree tensor networks.

dmrg minimizes the energy region by region with the lowest eigenpair of the effective Hamiltonian.
dmrg_x instead follows the eigenvector with the largest overlap with the current state, which targets a
highly excited eigenstate close to the initial (typically product) state. Both run on the shared sweep
engine and leave the input state untouched.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from ..core.methods.solvers import EigenSolver, OverlapEigenSolver
from ..core.methods.sweeps import SweepEngine

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from ..core.data_structures.networks import TTNO, TTNS
    from ..core.data_structures.simulation_parameters import Observer, SweepParams
    from ..core.methods.sweeps import SweepResult


def _eigensolver_params(params: SweepParams) -> SweepParams:
    params = copy.copy(params)
    if params.reverse_step is None:
        params.reverse_step = False
    return params


def dmrg(
    operator: TTNO,
    state: TTNS,
    params: SweepParams,
    solver: Callable | None = None,
    observers: Sequence[Observer] = (),
    root: Hashable | None = None,
) -> SweepResult:
    """Variational ground-state search.

    Args:
        operator: The Hamiltonian.
        state: Initial guess; it is copied, not modified.
        params: Sweep parameters. ``reverse_step`` defaults to off.
        solver: Local solver, by default :class:`EigenSolver`.
        observers: Observers recorded during the sweeps.
        root: Root of the sweep traversal.

    Returns:
        SweepResult: Final state, energy per sweep and diagnostics.
    """
    engine = SweepEngine(
        operator,
        copy.deepcopy(state),
        solver if solver is not None else EigenSolver(),
        _eigensolver_params(params),
        observers,
        root=root,
    )
    return engine.run()


def dmrg_x(
    operator: TTNO,
    state: TTNS,
    params: SweepParams,
    solver: Callable | None = None,
    observers: Sequence[Observer] = (),
    root: Hashable | None = None,
) -> SweepResult:
    """Excited-state search by maximal overlap (DMRG-X).

    The result is an approximate eigenstate; its energy variance tells how close. Unlike :func:`dmrg` the
    energy is not monotonic across sweeps.

    Args:
        operator: The Hamiltonian.
        state: Initial state, usually a product state; it is copied, not modified.
        params: Sweep parameters. ``reverse_step`` defaults to off.
        solver: Local solver, by default :class:`OverlapEigenSolver`.
        observers: Observers recorded during the sweeps.
        root: Root of the sweep traversal.

    Returns:
        SweepResult: Final state, energy per sweep and diagnostics.
    """
    engine = SweepEngine(
        operator,
        copy.deepcopy(state),
        solver if solver is not None else OverlapEigenSolver(),
        _eigensolver_params(params),
        observers,
        root=root,
    )
    return engine.run()
