# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Matrix exponentials of implicitly given operators.

This module computes expm(-1j * dt * A) @ v for an operator A that is only available as a "matrix free"
function ``Afunc(v) -> A @ v``. Two backends are provided:

  - Krylov subspace projection (Lanczos for Hermitian A, Arnoldi otherwise) with an a-posteriori error
    estimate, following M. Hochbruck and C. Lubich, SIAM J. Numer. Anal. 34, 1911 (1997).
  - Direct integration of the Schroedinger equation y' = -1j * dt * A(s) y for s in [0, 1] with
    scipy's ``solve_ivp``, which also handles time-dependent generators.

The time step ``dt`` may be complex; dt = -1j * tau yields imaginary-time propagation expm(-tau * A) @ v.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy.integrate import solve_ivp
from scipy.linalg import eigh_tridiagonal, expm

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray


def _lanczos_iteration(
    Afunc: Callable[[NDArray[np.complex128]], NDArray[np.complex128]],  # noqa: N803
    vstart: NDArray[np.complex128],
    numiter: int,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.complex128]]:
    """Perform a "matrix free" Lanczos iteration.

    Args:
        Afunc: "matrix free" linear transformation of a given vector
        vstart: starting vector for iteration
        numiter: number of iterations (should be much smaller than dimension of vstart)

    Returns:
        alpha: diagonal real entries of the tridiagonal matrix
        beta: off-diagonal real entries of the tridiagonal matrix
        V: ``len(vstart) x numiter`` matrix containing the orthonormal Lanczos vectors
    """
    nrmv = np.linalg.norm(vstart)
    assert nrmv > 0
    vstart = vstart / nrmv

    alpha = np.zeros(numiter)
    beta = np.zeros(numiter - 1)

    V = np.zeros((numiter, len(vstart)), dtype=np.complex128)  # noqa: N806
    V[0] = vstart

    for j in range(numiter - 1):
        w = Afunc(V[j])
        alpha[j] = np.vdot(w, V[j]).real
        w -= alpha[j] * V[j] + (beta[j - 1] * V[j - 1] if j > 0 else 0)
        beta[j] = np.linalg.norm(w)
        if beta[j] < 100 * len(vstart) * np.finfo(float).eps:
            # invariant subspace found, premature end of iteration
            numiter = j + 1
            return alpha[:numiter], beta[: numiter - 1], V[:numiter, :].T
        V[j + 1] = w / beta[j]

    # complete final iteration
    j = numiter - 1
    w = Afunc(V[j])
    alpha[j] = np.vdot(w, V[j]).real
    return alpha, beta, V.T


def _arnoldi_iteration(
    Afunc: Callable[[NDArray[np.complex128]], NDArray[np.complex128]],  # noqa: N803
    vstart: NDArray[np.complex128],
    numiter: int,
) -> tuple[NDArray[np.complex128], NDArray[np.complex128], float]:
    """Perform a "matrix free" Arnoldi iteration.

    Args:
        Afunc: "matrix free" linear transformation of a given vector
        vstart: starting vector for iteration
        numiter: maximal number of iterations

    Returns:
        H: upper Hessenberg matrix (square, possibly smaller than ``numiter`` on early termination)
        V: ``len(vstart) x m`` matrix containing the orthonormal Arnoldi vectors
        h_next: norm of the residual after the last step, zero on early termination
    """
    nrmv = np.linalg.norm(vstart)
    assert nrmv > 0
    vstart = vstart / nrmv

    H = np.zeros((numiter, numiter), dtype=np.complex128)  # noqa: N806
    V = np.zeros((numiter, len(vstart)), dtype=np.complex128)  # noqa: N806
    V[0] = vstart

    for j in range(numiter):
        w = Afunc(V[j])
        # subtract the projections on previous vectors
        for k in range(j + 1):
            H[k, j] = np.vdot(V[k], w)
            w -= H[k, j] * V[k]
        h_next = float(np.linalg.norm(w))
        if h_next < 100 * len(vstart) * np.finfo(float).eps:
            m = j + 1
            return H[:m, :m], V[:m, :].T, 0.0
        if j + 1 < numiter:
            H[j + 1, j] = h_next
            V[j + 1] = w / h_next
    return H, V.T, h_next


def expm_krylov(
    Afunc: Callable[[NDArray[np.complex128]], NDArray[np.complex128]],  # noqa: N803
    v: NDArray[np.complex128],
    dt: complex,
    numiter: int,
) -> NDArray[np.complex128]:
    """Compute the Krylov subspace approximation of ``expm(-1j * dt * A) @ v`` for Hermitian A.

    Public convenience entry point for plain vectors. It drops the error estimate of
    :func:`krylov_propagate`, which the local solvers call directly.

    Args:
        Afunc: "matrix free" application of the Hermitian operator A
        v: input vector
        dt: time step, may be complex
        numiter: dimension of the Krylov subspace

    Returns:
        NDArray[np.complex128]: The propagated vector.
    """
    result, _ = krylov_propagate(Afunc, v, dt, numiter)
    return result


def krylov_propagate(
    Afunc: Callable[[NDArray[np.complex128]], NDArray[np.complex128]],  # noqa: N803
    v: NDArray[np.complex128],
    dt: complex,
    numiter: int,
    *,
    hermitian: bool = True,
) -> tuple[NDArray[np.complex128], float]:
    """Krylov approximation of ``expm(-1j * dt * A) @ v`` together with an error estimate.

    The estimate is the size of the first neglected term, ``h_{m+1,m} |e_m^T expm(-1j dt H_m) e_1| ||v||``,
    which vanishes when the Krylov space becomes invariant.

    Args:
        Afunc: "matrix free" application of A
        v: input vector
        dt: time step, may be complex
        numiter: maximal dimension of the Krylov subspace
        hermitian: use the Lanczos recursion (True) or the Arnoldi recursion (False)

    Returns:
        result: The propagated vector.
        error: The a-posteriori error estimate.
    """
    nrmv = float(np.linalg.norm(v))
    if nrmv == 0:
        return np.zeros_like(v, dtype=np.complex128), 0.0
    numiter = max(1, min(numiter, len(v)))
    vstart = np.array(v, dtype=np.complex128)

    if hermitian:
        alpha, beta, V = _lanczos_iteration(Afunc, vstart, numiter)  # noqa: N806
        m = len(alpha)
        if m == 1:
            w_hess = alpha
            u_hess = np.ones((1, 1))
        else:
            w_hess, u_hess = eigh_tridiagonal(alpha, beta)
        coeffs = u_hess @ (np.exp(-1j * dt * w_hess) * u_hess[0])
        if m < numiter or m == len(v):
            error = 0.0
        else:
            # residual of the last Lanczos vector
            w = Afunc(V[:, -1]) - alpha[-1] * V[:, -1]
            if m > 1:
                w -= beta[-1] * V[:, -2]
            error = float(np.linalg.norm(w) * abs(coeffs[-1]) * nrmv)
    else:
        H, V, h_next = _arnoldi_iteration(Afunc, vstart, numiter)  # noqa: N806
        coeffs = expm(-1j * dt * H)[:, 0]
        error = float(h_next * abs(coeffs[-1]) * nrmv)

    return V @ (nrmv * coeffs), error


def ode_propagate(
    Afunc_t: Callable[[float, NDArray[np.complex128]], NDArray[np.complex128]],  # noqa: N803
    v: NDArray[np.complex128],
    dt: complex,
    t0: float = 0.0,
    *,
    method: str = "RK45",
    rtol: float = 1e-10,
    atol: float = 1e-12,
) -> tuple[NDArray[np.complex128], bool, int]:
    """Integrate ``y' = -1j * dt * A(t) y`` over the normalized interval s in [0, 1].

    The physical time passed to ``Afunc_t`` is ``t0 + s * Re(dt)``, so a purely imaginary step keeps the
    generator frozen at ``t0``.

    Args:
        Afunc_t: "matrix free" application of A(t), called as ``Afunc_t(t, y)``.
        v: initial vector.
        dt: time step, may be complex.
        t0: physical time at the start of the step.
        method: integration method understood by ``solve_ivp`` (must support complex states).
        rtol: relative tolerance of the integrator.
        atol: absolute tolerance of the integrator.

    Returns:
        result: The propagated vector.
        success: Whether the integrator reached s = 1.
        nfev: Number of operator applications.
    """
    y0 = np.array(v, dtype=np.complex128)

    def rhs(s: float, y: NDArray[np.complex128]) -> NDArray[np.complex128]:
        return -1j * dt * Afunc_t(t0 + s * float(np.real(dt)), y)

    sol = solve_ivp(rhs, (0.0, 1.0), y0, method=method, rtol=rtol, atol=atol)
    return sol.y[:, -1], bool(sol.success), int(sol.nfev)
