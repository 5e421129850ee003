# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tensor Network Decompositions.

This module implements the QR and truncated SVD decompositions used to gauge and split tree tensors.
A tree tensor has one physical leg followed by one virtual leg per neighbor, so instead of left and right
moving versions every decomposition is taken with respect to a single leg ("toward" a neighbor).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def qr_toward(
    tensor: NDArray[np.complex128], axis: int
) -> tuple[NDArray[np.complex128], NDArray[np.complex128]]:
    """QR decomposition isolating one leg.

    All legs except ``axis`` are grouped into the rows of a matrix, ``axis`` forms the columns.

    Args:
        tensor: The tensor to be decomposed.
        axis: The leg pointing toward the new orthogonality center.

    Returns:
        q_tensor: The isometry, with the same leg order as ``tensor`` and a new dimension on ``axis``.
        r_mat: The remainder (new, old) to be absorbed by the neighbor along ``axis``.
    """
    moved = np.moveaxis(tensor, axis, -1)
    shape = moved.shape
    q_mat, r_mat = np.linalg.qr(moved.reshape(-1, shape[-1]))
    q_tensor = q_mat.reshape((*shape[:-1], q_mat.shape[1]))
    return np.moveaxis(q_tensor, -1, axis), r_mat


def absorb(tensor: NDArray[np.complex128], mat: NDArray[np.complex128], axis: int) -> NDArray[np.complex128]:
    """Multiply ``mat`` (new, old) into leg ``axis`` of ``tensor``, which must have dimension ``old``."""
    assert tensor.shape[axis] == mat.shape[1]
    return np.moveaxis(np.tensordot(mat, tensor, axes=(1, axis)), 0, axis)


def truncated_svd(
    matrix: NDArray[np.complex128],
    cutoff: float,
    max_bond_dim: int | None,
    min_bond_dim: int = 1,
) -> tuple[NDArray[np.complex128], NDArray[np.float64], NDArray[np.complex128], float]:
    """Truncated singular value decomposition.

    Singular values are discarded from the smallest upward as long as the discarded weight
    sum(s_discarded**2) / sum(s**2) stays below ``cutoff``. Afterwards at most ``max_bond_dim`` values are kept
    and never fewer than ``min_bond_dim`` (as far as available).

    Args:
        matrix: The matrix to be decomposed.
        cutoff: Relative truncation threshold on the discarded weight.
        max_bond_dim: Maximum number of singular values to keep, None for no limit.
        min_bond_dim: Minimum number of singular values to keep.

    Returns:
        u_mat: Left singular vectors (rows, keep).
        s_vec: Kept singular values.
        v_mat: Right singular vectors (keep, cols).
        truncation_error: The relative discarded weight.
    """
    u_mat, s_vec, v_mat = np.linalg.svd(matrix, full_matrices=False)
    total = float(np.sum(s_vec**2))
    keep = len(s_vec)
    if total > 0:
        discard = 0.0
        for idx, s_val in enumerate(reversed(s_vec)):
            discard += s_val**2
            if discard / total > cutoff:
                keep = len(s_vec) - idx
                break
        else:
            keep = 1
    if max_bond_dim is not None:
        keep = min(keep, max_bond_dim)
    keep = max(keep, min(min_bond_dim, len(s_vec)), 1)
    truncation_error = float(np.sum(s_vec[keep:] ** 2) / total) if total > 0 else 0.0
    return u_mat[:, :keep], s_vec[:keep], v_mat[:keep, :], truncation_error


def split_two_site(
    theta: NDArray[np.complex128],
    num_left_legs: int,
    cutoff: float,
    max_bond_dim: int | None,
    min_bond_dim: int = 1,
    absorb_into: str = "right",
) -> tuple[NDArray[np.complex128], NDArray[np.complex128], NDArray[np.float64], float]:
    """Split a merged two-site tensor into two tensors joined by a new bond.

    The first ``num_left_legs`` legs of ``theta`` belong to the left tensor, the remaining ones to the
    right tensor. The new bond is appended as last leg of the left tensor and first leg of the right tensor.

    Args:
        theta: The merged tensor.
        num_left_legs: Number of leading legs belonging to the left tensor.
        cutoff: Relative truncation threshold.
        max_bond_dim: Maximum bond dimension.
        min_bond_dim: Minimum bond dimension.
        absorb_into: Which side receives the singular values, "left" or "right".

    Returns:
        left_tensor, right_tensor, s_vec, truncation_error

    Raises:
        ValueError: If ``absorb_into`` is neither "left" nor "right".
    """
    left_shape = theta.shape[:num_left_legs]
    right_shape = theta.shape[num_left_legs:]
    theta_mat = theta.reshape(int(np.prod(left_shape)), int(np.prod(right_shape)))
    u_mat, s_vec, v_mat, truncation_error = truncated_svd(theta_mat, cutoff, max_bond_dim, min_bond_dim)
    if absorb_into == "left":
        u_mat = u_mat * s_vec
    elif absorb_into == "right":
        v_mat = s_vec[:, None] * v_mat
    else:
        msg = "absorb_into must be left or right."
        raise ValueError(msg)
    keep = len(s_vec)
    return u_mat.reshape((*left_shape, keep)), v_mat.reshape((keep, *right_shape)), s_vec, truncation_error
