# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the local solvers.

The solvers act on the effective operator of a two-site region of a four-site chain. The state carries the
full bond dimension, so the effective operator is unitarily equivalent to the full Hamiltonian and its
spectrum can be compared against exact diagonalization.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.linalg import eigh, expm

from mqt.ttns.core.data_structures.networks import TTNS
from mqt.ttns.core.data_structures.simulation_parameters import ExponentiationBackend
from mqt.ttns.core.data_structures.tree import path_tree
from mqt.ttns.core.libraries.model_library import heisenberg
from mqt.ttns.core.methods.environments import ProjectedOperator, ProjectedOperatorSum
from mqt.ttns.core.methods.fsm import build_ttno
from mqt.ttns.core.methods.solvers import EigenSolver, ExponentialSolver, OverlapEigenSolver, SolverInfo

REGION = [1, 2]


def setup_region(
    *, time_dependent: bool = False
) -> tuple[ProjectedOperator | ProjectedOperatorSum, np.ndarray, np.ndarray]:
    """Effective operator, region tensor and dense Hamiltonian of a random four-site Heisenberg problem."""
    tree = path_tree(4)
    opsum = heisenberg(tree, h={0: 0.3, 1: -0.2, 2: 0.5, 3: 0.1})
    hamiltonian = build_ttno(opsum, tree)
    psi = TTNS.random(tree, 4, seed=17)
    psi.orthogonalize_region(REGION)
    if time_dependent:
        op: ProjectedOperator | ProjectedOperatorSum = ProjectedOperatorSum([hamiltonian], psi, [lambda t: t])
    else:
        op = ProjectedOperator(hamiltonian, psi)
    op.set_region(REGION)
    return op, psi.region_tensor(REGION), opsum.to_matrix(tree)


@pytest.mark.parametrize("dense_threshold", [64, 0])
def test_eigensolver_ground_state(dense_threshold: int) -> None:
    """Test that the dense and the Lanczos path find the exact ground energy."""
    op, theta, full = setup_region()
    exact = eigh(full, eigvals_only=True)[0]
    tensor, info = EigenSolver(tol=1e-12, dense_threshold=dense_threshold)(op, theta)
    assert tensor.shape == theta.shape
    assert info.converged
    assert info.eigenvalue == pytest.approx(exact, abs=1e-9)
    assert np.linalg.norm(tensor) == pytest.approx(1.0)
    assert op.expectation(tensor).real == pytest.approx(exact, abs=1e-9)
    if dense_threshold == 0:
        assert info.iterations > 0
        assert info.error < 1e-6


def test_eigensolver_invalid_tolerance() -> None:
    """Test that a negative tolerance is rejected."""
    with pytest.raises(ValueError, match="tol"):
        EigenSolver(tol=-1.0)


def test_overlap_eigensolver_selects_closest_eigenvector() -> None:
    """Test that DMRG-X picks the eigenvector with maximal overlap and fixes its phase."""
    op, theta, _ = setup_region()
    w, v = eigh(op.to_matrix())
    guess = (0.3 * v[:, 0] + 0.9j * v[:, 5] + 0.1 * v[:, 9]).reshape(theta.shape)
    tensor, info = OverlapEigenSolver()(op, guess)
    assert info.eigenvalue == pytest.approx(w[5])
    overlap = np.vdot(tensor.reshape(-1), guess.reshape(-1))
    assert overlap.real > 0
    assert abs(overlap.imag) < 1e-12
    assert info.error == pytest.approx(1 - 0.9 / np.linalg.norm(guess.reshape(-1)))
    with pytest.raises(ValueError, match="dense limit"):
        OverlapEigenSolver(max_size=4)(op, guess)


@pytest.mark.parametrize("backend", [ExponentiationBackend.KRYLOV, ExponentiationBackend.ODE])
@pytest.mark.parametrize("time_step", [0.2, -0.35, -0.3j])
def test_exponential_solver_matches_expm(backend: ExponentiationBackend, time_step: complex) -> None:
    """Test real, negative and imaginary time steps against the dense exponential."""
    op, theta, _ = setup_region()
    mat = op.to_matrix()
    expected = expm(-1j * time_step * mat) @ theta.reshape(-1)
    tensor, info = ExponentialSolver(backend, krylovdim=16)(op, theta, time_step=time_step)
    np.testing.assert_allclose(tensor.reshape(-1), expected, atol=1e-7)
    assert info.converged
    energy = np.vdot(expected, mat @ expected).real / np.vdot(expected, expected).real
    assert info.eigenvalue == pytest.approx(energy, abs=1e-7)


@pytest.mark.parametrize("backend", ["krylov", "ode"])
def test_exponential_solver_time_dependent(backend: str) -> None:
    """Test a linearly ramped operator, for which the midpoint rule is exact."""
    op, theta, _ = setup_region(time_dependent=True)
    mat = op.at_time(1.0).to_matrix()
    t0, dt = 0.4, 0.25
    phase = ((t0 + dt) ** 2 - t0**2) / 2
    expected = expm(-1j * phase * mat) @ theta.reshape(-1)
    tensor, info = ExponentialSolver(backend, krylovdim=16)(op, theta, time_step=dt, current_time=t0)
    np.testing.assert_allclose(tensor.reshape(-1), expected, atol=1e-7)
    energy = (t0 + dt) * np.vdot(expected, mat @ expected).real / np.vdot(expected, expected).real
    assert info.eigenvalue == pytest.approx(energy, abs=1e-7)


def test_exponential_solver_flags_small_krylov_space() -> None:
    """Test that a too small Krylov space is reported as not converged instead of raising."""
    op, theta, _ = setup_region()
    _, info = ExponentialSolver(krylovdim=2, tol=1e-10)(op, theta, time_step=1.0)
    assert not info.converged
    assert info.error > 1e-10
    assert info.iterations == 2


def test_exponential_solver_checks() -> None:
    """Test the configuration checks of the exponential solver."""
    op, theta, _ = setup_region()
    with pytest.raises(ValueError, match="time step"):
        ExponentialSolver()(op, theta)
    with pytest.raises(ValueError, match="krylovdim"):
        ExponentialSolver(krylovdim=0)
    with pytest.raises(ValueError):
        ExponentialSolver("chebyshev")
    assert ExponentialSolver("ode").backend is ExponentiationBackend.ODE
    assert "ODE" in repr(ExponentialSolver("ode"))


def test_solver_info_repr() -> None:
    """Test the defaults and the representation of SolverInfo."""
    info = SolverInfo()
    assert info.converged
    assert info.eigenvalue is None
    assert "converged=True" in repr(info)
