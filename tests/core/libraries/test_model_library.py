# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the Hamiltonian builders."""

from __future__ import annotations

import numpy as np
import pytest

from mqt.ttns.core.data_structures.tree import path_tree, star_tree
from mqt.ttns.core.libraries.model_library import heisenberg, ising, magnetization
from mqt.ttns.core.libraries.operator_library import OperatorLibrary


def test_heisenberg_two_sites() -> None:
    """Test that the two-site Heisenberg model has the singlet-triplet spectrum."""
    tree = path_tree(2)
    mat = heisenberg(tree, J1=1.0).to_matrix(tree)
    np.testing.assert_allclose(mat, mat.conj().T)
    energies = np.linalg.eigvalsh(mat)
    np.testing.assert_allclose(energies, [-0.75, 0.25, 0.25, 0.25], atol=1e-12)


def test_heisenberg_field_mapping() -> None:
    """Test per-vertex fields and the check for missing values."""
    tree = path_tree(2)
    mat = heisenberg(tree, J1=0.0, h={0: 1.0, 1: -2.0}).to_matrix(tree)
    sz = OperatorLibrary.matrix("Sz")
    np.testing.assert_allclose(mat, np.kron(sz, np.eye(2)) - 2 * np.kron(np.eye(2), sz))
    with pytest.raises(ValueError, match="missing"):
        heisenberg(tree, h={0: 1.0})


def test_heisenberg_next_nearest() -> None:
    """Test that J2 adds one exchange per pair at distance two."""
    tree = star_tree(3)
    assert len(heisenberg(tree, J1=1.0)) == 9
    assert len(heisenberg(tree, J1=1.0, J2=0.5)) == 18


def test_ising() -> None:
    """Test the transverse-field Ising model on two sites."""
    tree = path_tree(2)
    mat = ising(tree, J=1.0, g=0.5).to_matrix(tree)
    x = OperatorLibrary.matrix("X")
    z = OperatorLibrary.matrix("Z")
    expected = -np.kron(z, z) - 0.5 * (np.kron(x, np.eye(2)) + np.kron(np.eye(2), x))
    np.testing.assert_allclose(mat, expected)


def test_magnetization() -> None:
    """Test the total magnetization operator."""
    tree = path_tree(3)
    mat = magnetization(tree).to_matrix(tree)
    np.testing.assert_allclose(np.diag(mat).real.max(), 1.5)
