# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for network operations.

This module verifies the labelled contraction primitive and the full-network contractions: dense states and
operators, overlaps and operator sandwiches, compared against explicit Kronecker products.
"""

from __future__ import annotations

from functools import reduce

import numpy as np
import pytest

from mqt.ttns.core.data_structures.networks import TTNS
from mqt.ttns.core.data_structures.opsum import OpSum
from mqt.ttns.core.data_structures.tree import Tree, binary_tree, comb_tree, path_tree, star_tree
from mqt.ttns.core.libraries.model_library import heisenberg
from mqt.ttns.core.methods.fsm import build_ttno
from mqt.ttns.core.methods.operations import (
    bond_label,
    contract_labeled,
    dense_operator,
    dense_state,
    phys_label,
    sandwich,
    scalar_product,
)


def test_contract_labeled_matches_einsum() -> None:
    """Test that arbitrary hashable labels contract like the equivalent einsum."""
    rng = np.random.default_rng(0)
    a = rng.standard_normal((2, 3, 4))
    b = rng.standard_normal((4, 3, 5))
    result = contract_labeled(
        a, [("x", 0), "shared", 7], b, [7, "shared", frozenset({1})], output=[frozenset({1}), ("x", 0)]
    )
    np.testing.assert_allclose(result, np.einsum("ijk,kjl->li", a, b))


def test_contract_labeled_rank_mismatch() -> None:
    """Test that labels must match the tensor rank."""
    with pytest.raises(AssertionError):
        contract_labeled(np.zeros((2, 2)), ["a"], output=["a"])


def test_labels() -> None:
    """Test that bond labels do not depend on the edge orientation."""
    assert bond_label("ket", 0, 1) == bond_label("ket", 1, 0)
    assert bond_label("ket", 0, 1) != bond_label("bra", 0, 1)
    assert phys_label(0, 3) != phys_label(1, 3)


def test_dense_state_of_product_state() -> None:
    """Test the vertex ordering of the dense state against a Kronecker product."""
    tree = Tree(["a", "b", "c"], [("b", "a"), ("b", "c")], {"a": 2, "b": 3, "c": 2})
    rng = np.random.default_rng(1)
    local = {v: rng.standard_normal(tree.physical_dimension(v)) for v in tree.vertices}
    tensors = {v: local[v].reshape((-1,) + (1,) * tree.degree(v)) for v in tree.vertices}
    state = TTNS(tree, tensors)
    expected = reduce(np.kron, [local[v] for v in tree.vertices])
    for root in tree.vertices:
        np.testing.assert_allclose(dense_state(state, root).reshape(-1), expected, atol=1e-12)


@pytest.mark.parametrize("tree", [path_tree(4), star_tree(3), binary_tree(2), comb_tree((2, 2))])
def test_sandwich_matches_dense(tree: Tree) -> None:
    """Test overlaps and expectation values against dense linear algebra."""
    psi = TTNS.random(tree, 3, seed=2)
    phi = TTNS.random(tree, 2, seed=3)
    hamiltonian = build_ttno(heisenberg(tree, h=0.3), tree)
    mat = dense_operator(hamiltonian)
    vec_psi = psi.to_vec()
    vec_phi = phi.to_vec()

    assert scalar_product(phi, psi) == pytest.approx(np.vdot(vec_phi, vec_psi))
    assert sandwich(phi, [hamiltonian], psi) == pytest.approx(np.vdot(vec_phi, mat @ vec_psi))
    assert sandwich(psi, [hamiltonian, hamiltonian], psi) == pytest.approx(np.vdot(vec_psi, mat @ mat @ vec_psi))
    root = tree.vertices[0]
    assert sandwich(phi, [hamiltonian], psi, root=root) == pytest.approx(np.vdot(vec_phi, mat @ vec_psi))


def test_dense_operator_order() -> None:
    """Test that a single-site operator lands on the right tensor factor."""
    tree = path_tree(3)
    opsum = OpSum()
    opsum += (2.0, "X", 0, "Z", 2)
    x = np.array([[0, 1], [1, 0]])
    z = np.diag([1, -1])
    expected = 2.0 * reduce(np.kron, [x, np.eye(2), z])
    np.testing.assert_allclose(dense_operator(build_ttno(opsum, tree)), expected, atol=1e-12)
