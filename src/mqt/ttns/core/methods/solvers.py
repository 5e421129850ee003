# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Local solvers for a single sweep region.

Every solver is a callable

    solver(operator, tensor, *, time_step=None, current_time=0.0) -> (new_tensor, SolverInfo)

where ``operator`` is a projected operator positioned on the region (see
:mod:`mqt.ttns.core.methods.environments`) and ``tensor`` is the current region tensor. Any callable with this
signature can be passed to the sweep engine in place of the built-in solvers.

Numerical non-convergence never raises: the best available estimate is returned and flagged in the
:class:`SolverInfo`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy.linalg import eigh
from scipy.sparse.linalg import ArpackNoConvergence, LinearOperator, eigsh

from ..data_structures.simulation_parameters import ExponentiationBackend
from .matrix_exponential import krylov_propagate, ode_propagate

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from .environments import ProjectedOperator, ProjectedOperatorSum


class SolverInfo:
    """Diagnostics of one local update.

    Attributes:
        converged: Whether the local solve met its tolerance.
        eigenvalue: Eigenvalue (DMRG, DMRG-X) or energy of the propagated tensor (TDVP); None if unknown.
        iterations: Iterations or operator applications spent.
        error: Residual or error estimate of the solve.
    """

    def __init__(
        self,
        *,
        converged: bool = True,
        eigenvalue: float | None = None,
        iterations: int = 0,
        error: float = 0.0,
    ) -> None:
        self.converged = converged
        self.eigenvalue = eigenvalue
        self.iterations = iterations
        self.error = error

    def __repr__(self) -> str:
        return (
            f"SolverInfo(converged={self.converged}, eigenvalue={self.eigenvalue}, "
            f"iterations={self.iterations}, error={self.error:.3e})"
        )


def _flat_matvec(
    operator: ProjectedOperator | ProjectedOperatorSum, shape: tuple[int, ...]
) -> Callable[[NDArray[np.complex128]], NDArray[np.complex128]]:
    def matvec(x: NDArray[np.complex128]) -> NDArray[np.complex128]:
        return np.reshape(operator.matvec(np.reshape(x, shape)), -1)

    return matvec


def _hermitian_part(matrix: NDArray[np.complex128]) -> NDArray[np.complex128]:
    return 0.5 * (matrix + matrix.conj().T)


class LocalSolver:
    """Base class of the built-in local solvers."""

    def __call__(
        self,
        operator: ProjectedOperator | ProjectedOperatorSum,
        tensor: NDArray[np.complex128],
        *,
        time_step: complex | None = None,
        current_time: float = 0.0,
    ) -> tuple[NDArray[np.complex128], SolverInfo]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EigenSolver(LocalSolver):
    """Lowest eigenpair of the effective operator (DMRG).

    The current region tensor is used as the starting vector of the Lanczos (ARPACK) iteration. Regions
    with at most ``dense_threshold`` entries are diagonalized densely.
    """

    def __init__(
        self, tol: float = 1e-10, maxiter: int | None = None, ncv: int | None = None, dense_threshold: int = 64
    ) -> None:
        if tol < 0:
            msg = f"tol must be non-negative, got {tol}."
            raise ValueError(msg)
        self.tol = tol
        self.maxiter = maxiter
        self.ncv = ncv
        self.dense_threshold = dense_threshold

    def __call__(
        self,
        operator: ProjectedOperator | ProjectedOperatorSum,
        tensor: NDArray[np.complex128],
        *,
        time_step: complex | None = None,  # noqa: ARG002
        current_time: float = 0.0,
    ) -> tuple[NDArray[np.complex128], SolverInfo]:
        operator = operator.at_time(current_time)
        shape = tensor.shape
        size = tensor.size
        if size <= max(self.dense_threshold, 2):
            w, v = eigh(_hermitian_part(operator.to_matrix()))
            return v[:, 0].reshape(shape), SolverInfo(converged=True, eigenvalue=float(w[0]), iterations=1)

        matvec = _flat_matvec(operator, shape)
        counter = {"n": 0}

        def counted(x: NDArray[np.complex128]) -> NDArray[np.complex128]:
            counter["n"] += 1
            return matvec(x)

        linear_operator = LinearOperator((size, size), matvec=counted, dtype=np.complex128)
        v0 = np.reshape(tensor, -1).astype(np.complex128)
        if not np.any(v0):
            v0 = None
        try:
            w, v = eigsh(linear_operator, k=1, which="SA", v0=v0, tol=self.tol, maxiter=self.maxiter, ncv=self.ncv)
            converged = True
        except ArpackNoConvergence as err:
            if len(err.eigenvalues) == 0:
                guess = np.reshape(tensor, -1) / np.linalg.norm(tensor)
                energy = float(np.vdot(guess, matvec(guess)).real)
                return tensor, SolverInfo(converged=False, eigenvalue=energy, iterations=counter["n"], error=np.inf)
            w, v = err.eigenvalues, err.eigenvectors
            converged = False
        k = int(np.argmin(w.real))
        vec = v[:, k]
        eigenvalue = float(w[k].real)
        residual = float(np.linalg.norm(matvec(vec) - eigenvalue * vec))
        return vec.reshape(shape), SolverInfo(
            converged=converged, eigenvalue=eigenvalue, iterations=counter["n"], error=residual
        )

    def __repr__(self) -> str:
        return f"EigenSolver(tol={self.tol}, maxiter={self.maxiter})"


class OverlapEigenSolver(LocalSolver):
    """Eigenvector of the effective operator with maximal overlap with the current tensor (DMRG-X).

    The effective operator is diagonalized densely. The returned vector is rotated so that its overlap with
    the input tensor is real and positive.
    """

    def __init__(self, max_size: int = 8192) -> None:
        self.max_size = max_size

    def __call__(
        self,
        operator: ProjectedOperator | ProjectedOperatorSum,
        tensor: NDArray[np.complex128],
        *,
        time_step: complex | None = None,  # noqa: ARG002
        current_time: float = 0.0,
    ) -> tuple[NDArray[np.complex128], SolverInfo]:
        if tensor.size > self.max_size:
            msg = f"Region of size {tensor.size} exceeds the dense limit {self.max_size} of the DMRG-X solver."
            raise ValueError(msg)
        operator = operator.at_time(current_time)
        w, v = eigh(_hermitian_part(operator.to_matrix()))
        psi = np.reshape(tensor, -1)
        overlaps = v.conj().T @ psi
        k = int(np.argmax(np.abs(overlaps)))
        vec = v[:, k]
        if abs(overlaps[k]) > 0:
            vec = vec * (overlaps[k] / abs(overlaps[k]))
        norm = np.linalg.norm(psi)
        error = float(1 - abs(overlaps[k]) / norm) if norm > 0 else 1.0
        return vec.reshape(tensor.shape), SolverInfo(converged=True, eigenvalue=float(w[k]), iterations=1, error=error)


class ExponentialSolver(LocalSolver):
    """Propagate the region tensor by ``expm(-1j * time_step * H_eff)`` (TDVP).

    Attributes:
        backend: Krylov projection or ODE integration.
        krylovdim: Maximal Krylov subspace dimension.
        tol: Error estimate below which a Krylov step counts as converged.
        ishermitian: Use Lanczos (True) or Arnoldi (False) for the Krylov backend.
        method: ``solve_ivp`` method of the ODE backend.
        rtol: Relative tolerance of the ODE backend.
        atol: Absolute tolerance of the ODE backend.
    """

    def __init__(
        self,
        backend: ExponentiationBackend = ExponentiationBackend.KRYLOV,
        krylovdim: int = 30,
        tol: float = 1e-10,
        *,
        ishermitian: bool = True,
        method: str = "RK45",
        rtol: float = 1e-10,
        atol: float = 1e-12,
    ) -> None:
        if not isinstance(backend, ExponentiationBackend):
            backend = ExponentiationBackend(backend)
        if krylovdim < 1:
            msg = f"krylovdim must be positive, got {krylovdim}."
            raise ValueError(msg)
        self.backend = backend
        self.krylovdim = krylovdim
        self.tol = tol
        self.ishermitian = ishermitian
        self.method = method
        self.rtol = rtol
        self.atol = atol

    def __call__(
        self,
        operator: ProjectedOperator | ProjectedOperatorSum,
        tensor: NDArray[np.complex128],
        *,
        time_step: complex | None = None,
        current_time: float = 0.0,
    ) -> tuple[NDArray[np.complex128], SolverInfo]:
        """Propagate ``tensor`` by ``time_step`` starting at ``current_time``.

        Raises:
            ValueError: If no time step is given.
        """
        if time_step is None:
            msg = "The exponential solver needs a time step."
            raise ValueError(msg)
        shape = tensor.shape
        vec = np.reshape(tensor, -1).astype(np.complex128)
        end_time = current_time + float(np.real(time_step))

        if self.backend is ExponentiationBackend.KRYLOV:
            midpoint = operator.at_time(current_time + 0.5 * float(np.real(time_step)))
            result, error = krylov_propagate(
                _flat_matvec(midpoint, shape), vec, time_step, self.krylovdim, hermitian=self.ishermitian
            )
            converged = error <= self.tol
            iterations = min(self.krylovdim, vec.size)
        else:

            def afunc_t(t: float, y: NDArray[np.complex128]) -> NDArray[np.complex128]:
                return np.reshape(operator.at_time(t).matvec(np.reshape(y, shape)), -1)

            result, converged, iterations = ode_propagate(
                afunc_t, vec, time_step, current_time, method=self.method, rtol=self.rtol, atol=self.atol
            )
            error = 0.0 if converged else np.inf

        norm = np.linalg.norm(result)
        energy = None
        if norm > 0:
            hv = _flat_matvec(operator.at_time(end_time), shape)(result)
            energy = float(np.vdot(result, hv).real / norm**2)
        return result.reshape(shape), SolverInfo(
            converged=bool(converged), eigenvalue=energy, iterations=int(iterations), error=float(error)
        )

    def __repr__(self) -> str:
        return f"ExponentialSolver(backend={self.backend.name}, krylovdim={self.krylovdim})"
