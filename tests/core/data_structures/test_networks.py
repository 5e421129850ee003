# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for network classes.

This module provides unit tests for the tree tensor network state (TTNS) and operator (TTNO) classes.
It verifies initialization of product and random states, structural validation, orthogonalization and the
canonical form, region merging and splitting, bond exposure, normalization and measurement.
"""

# ignore non-lowercase variable names for physics notation
# ruff: noqa: N806

from __future__ import annotations

from functools import reduce
from typing import TYPE_CHECKING

import numpy as np
import pytest

from mqt.ttns.core.data_structures.networks import TTNO, TTNS, region_legs
from mqt.ttns.core.data_structures.opsum import OpSum
from mqt.ttns.core.data_structures.tree import Tree, binary_tree, comb_tree, path_tree, star_tree
from mqt.ttns.core.methods.fsm import build_ttno

if TYPE_CHECKING:
    from numpy.typing import NDArray


def crandn(
    size: int | tuple[int, ...], *args: int, seed: np.random.Generator | int | None = None
) -> NDArray[np.complex128]:
    """Draw random samples from the standard complex normal distribution.

    Args:
        size (int |Tuple[int,...]): The size/shape of the output array.
        *args (int): Additional dimensions for the output array.
        seed (Generator | int): The seed for the random number generator.

    Returns:
        NDArray[np.complex128]: The array of random complex numbers.
    """
    if isinstance(size, int) and len(args) > 0:
        size = (size, *list(args))
    elif isinstance(size, int):
        size = (size,)
    rng = np.random.default_rng(seed)
    # 1 / sqrt(2) is a normalization factor
    return np.asarray((rng.standard_normal(size) + 1j * rng.standard_normal(size)) / np.sqrt(2), dtype=np.complex128)


@pytest.mark.parametrize(
    ("state", "local"),
    [
        ("zeros", [1, 0]),
        ("ones", [0, 1]),
        ("x+", [1 / np.sqrt(2), 1 / np.sqrt(2)]),
        ("x-", [1 / np.sqrt(2), -1 / np.sqrt(2)]),
        ("y+", [1 / np.sqrt(2), 1j / np.sqrt(2)]),
        ("y-", [1 / np.sqrt(2), -1j / np.sqrt(2)]),
    ],
)
def test_ttns_initialization(state: str, local: list[complex]) -> None:
    """Test that product states have bond dimension one and the expected dense vector."""
    tree = star_tree(3)
    ttns = TTNS(tree, state=state)
    assert ttns.max_bond_dimension() == 1
    for v in tree.vertices:
        assert ttns.tensors[v].shape == (2,) + (1,) * tree.degree(v)
    expected = reduce(np.kron, [np.array(local)] * len(tree))
    np.testing.assert_allclose(ttns.to_vec(), expected, atol=1e-12)


def test_ttns_neel() -> None:
    """Test that the Neel state alternates between neighboring vertices."""
    tree = path_tree(4)
    ttns = TTNS(tree, state="Neel")
    index = int(np.argmax(np.abs(ttns.to_vec())))
    bits = [int(b) for b in np.binary_repr(index, width=4)]
    assert all(bits[i] != bits[i + 1] for i in range(3))


def test_ttns_basis_and_random() -> None:
    """Test basis states and normalized random product states."""
    tree = path_tree(3)
    ttns = TTNS(tree, state="basis", basis=[1, 0, 1])
    assert abs(ttns.to_vec()[0b101]) == pytest.approx(1.0)
    random_state = TTNS(tree, state="random", seed=3)
    assert random_state.norm() == pytest.approx(1.0)
    with pytest.raises(ValueError, match="basis must be provided"):
        TTNS(tree, state="basis")
    with pytest.raises(ValueError, match="Invalid state string"):
        TTNS(tree, state="foo")


def test_ttns_custom_tensors() -> None:
    """Test custom tensors and the consistency checks."""
    tree = path_tree(2)
    ttns = TTNS(tree, {0: crandn(2, 3, seed=1), 1: crandn(2, 3, seed=2)})
    assert ttns.bond_dimension(0, 1) == 3
    with pytest.raises(ValueError, match="Bond dimension mismatch"):
        TTNS(tree, {0: crandn(2, 3), 1: crandn(2, 2)})
    with pytest.raises(ValueError, match="rank"):
        TTNS(tree, {0: crandn(2, 3, 1), 1: crandn(2, 3)})
    with pytest.raises(ValueError, match="Missing tensor"):
        TTNS(tree, {0: crandn(2, 3)})


def test_random_ttns_bond_dimensions() -> None:
    """Test that random states respect the Hilbert space bound on every edge."""
    tree = star_tree(3)
    ttns = TTNS.random(tree, 8, seed=0)
    assert ttns.norm() == pytest.approx(1.0)
    # every edge of a star separates a single qubit
    assert set(ttns.bond_dimensions().values()) == {2}


@pytest.mark.parametrize("tree", [path_tree(5), star_tree(4), binary_tree(2), comb_tree((2, 3))])
def test_orthogonalize_canonical_and_idempotent(tree: Tree) -> None:
    """Test the canonical-form invariant and idempotence of orthogonalize."""
    ttns = TTNS.random(tree, 4, seed=11)
    before = ttns.to_vec()
    target = tree.vertices[len(tree) // 2]
    ttns.orthogonalize(target)
    assert ttns.orthogonality_center == (target,)
    assert ttns.check_canonical_form() == []
    np.testing.assert_allclose(ttns.to_vec(), before, atol=1e-12)
    # the norm is carried by the center tensor alone
    assert np.linalg.norm(ttns.tensors[target]) == pytest.approx(np.linalg.norm(before))

    tensors = {v: t.copy() for v, t in ttns.tensors.items()}
    assert ttns.orthogonalize(target) == []
    for v in tree.vertices:
        np.testing.assert_array_equal(ttns.tensors[v], tensors[v])


def test_orthogonalize_moves_center() -> None:
    """Test that moving the center only touches the path between old and new center."""
    tree = star_tree(3)
    ttns = TTNS.random(tree, 2, seed=5)
    ttns.orthogonalize(1)
    changed = ttns.orthogonalize(2)
    assert set(changed) == {0, 1, 2}
    assert ttns.check_canonical_form() == []
    with pytest.raises(ValueError):
        ttns.orthogonalize(17)


def test_orthogonalize_region() -> None:
    """Test that the center moves to the closest vertex of a region."""
    tree = path_tree(5)
    ttns = TTNS.random(tree, 2, seed=2)
    ttns.orthogonalize(0)
    ttns.orthogonalize_region([3, 2])
    assert ttns.orthogonality_center == (2,)
    assert ttns.orthogonalize_region([2, 3]) == []


def test_region_legs() -> None:
    """Test the leg layout of merged regions and the rejection of invalid regions."""
    tree = star_tree(3)
    physical, external = region_legs(tree, [1, 0])
    assert physical == [1, 0]
    assert external == [(0, 2), (0, 3)]
    with pytest.raises(ValueError):
        region_legs(tree, [1, 2])
    with pytest.raises(ValueError):
        region_legs(tree, [1, 1])


def test_region_tensor_and_replace_region() -> None:
    """Test that merging and splitting a two-site region without truncation keeps the state."""
    tree = star_tree(3)
    ttns = TTNS.random(tree, 2, seed=7)
    before = ttns.to_vec()
    ttns.orthogonalize(0)
    theta = ttns.region_tensor([0, 3])
    assert theta.shape == (2, 2, 2, 2)
    error, s_vec = ttns.replace_region([0, 3], theta, center=3, cutoff=0.0)
    assert error == pytest.approx(0.0)
    assert s_vec is not None
    assert ttns.orthogonality_center == (3,)
    assert ttns.check_canonical_form() == []
    np.testing.assert_allclose(ttns.to_vec(), before, atol=1e-12)


def test_replace_region_truncates() -> None:
    """Test that maxdim limits the new bond and the error is reported."""
    tree = path_tree(4)
    ttns = TTNS.random(tree, 4, seed=9)
    ttns.orthogonalize(1)
    theta = ttns.region_tensor([1, 2])
    error, s_vec = ttns.replace_region([1, 2], theta, maxdim=1)
    assert ttns.bond_dimension(1, 2) == 1
    assert len(s_vec) == 1
    assert error > 0
    with pytest.raises(ValueError):
        ttns.replace_region([1, 2], ttns.region_tensor([1, 2]), center=0)


def test_replace_region_keeps_center_only_when_centered() -> None:
    """Test that writing a region back records a center only if the state was centered inside it."""
    tree = path_tree(4)
    ttns = TTNS.random(tree, 2, seed=12)
    ttns.orthogonalize(0)
    ttns.replace_region([3], ttns.region_tensor([3]))
    assert ttns.orthogonality_center is None

    ttns.orthogonalize(3)
    ttns.replace_region([3], 2.0 * ttns.region_tensor([3]))
    assert ttns.orthogonality_center == (3,)
    assert ttns.check_canonical_form() == []

    ttns.orthogonalize(0)
    ttns.replace_region([2, 3], ttns.region_tensor([2, 3]), center=2)
    assert ttns.orthogonality_center is None

    ttns.orthogonalize(3)
    ttns.replace_region([2, 3], ttns.region_tensor([2, 3]), center=2)
    assert ttns.orthogonality_center == (2,)
    assert ttns.check_canonical_form() == []


def test_split_and_absorb_bond() -> None:
    """Test that exposing and re-absorbing a bond matrix keeps the state and moves the center."""
    tree = path_tree(3)
    ttns = TTNS.random(tree, 2, seed=1)
    before = ttns.to_vec()
    ttns.orthogonalize(1)
    bond = ttns.split_bond(1, 2)
    assert ttns.orthogonality_center == (1, 2)
    assert np.linalg.norm(bond) == pytest.approx(np.linalg.norm(before))
    ttns.absorb_bond(bond, 1, 2)
    assert ttns.orthogonality_center == (2,)
    assert ttns.check_canonical_form() == []
    np.testing.assert_allclose(ttns.to_vec(), before, atol=1e-12)


def test_pad_bond_dimension() -> None:
    """Test that padding enlarges bonds without changing the state."""
    tree = path_tree(4)
    ttns = TTNS(tree, state="x+")
    before = ttns.to_vec()
    ttns.pad_bond_dimension(4)
    assert ttns.bond_dimension(1, 2) == 4
    assert ttns.bond_dimension(0, 1) == 2
    np.testing.assert_allclose(ttns.to_vec(), before, atol=1e-12)
    with pytest.raises(ValueError):
        ttns.pad_bond_dimension(2)


def test_normalize_and_scalar_product() -> None:
    """Test normalization and overlaps."""
    tree = binary_tree(1)
    ttns = TTNS.random(tree, 2, seed=4)
    ttns.tensors[()] *= 3
    ttns.normalize()
    assert ttns.norm() == pytest.approx(1.0)
    zeros = TTNS(tree, state="zeros")
    ones = TTNS(tree, state="ones")
    assert abs(zeros.scalar_product(ones)) == pytest.approx(0.0)
    assert zeros.scalar_product(zeros) == pytest.approx(1.0)


def test_expectation_values() -> None:
    """Test expect, variance and local_expect on product states."""
    tree = path_tree(3)
    opsum = OpSum()
    for v in tree.vertices:
        opsum += ("Z", v)
    H = build_ttno(opsum, tree)
    zeros = TTNS(tree, state="zeros")
    assert zeros.expect(H) == pytest.approx(3.0)
    assert zeros.variance(H) == pytest.approx(0.0, abs=1e-12)
    plus = TTNS(tree, state="x+")
    assert plus.expect(H) == pytest.approx(0.0, abs=1e-12)
    assert plus.variance(H) == pytest.approx(3.0)
    assert plus.local_expect("X", 1) == pytest.approx(1.0)
    assert zeros.local_expect("Z", 2) == pytest.approx(1.0)


def test_entanglement() -> None:
    """Test the Schmidt spectrum of a product state and of a Bell pair."""
    tree = path_tree(2)
    assert TTNS(tree, state="x+").entanglement_entropy(0, 1) == pytest.approx(0.0, abs=1e-12)
    bell = TTNS(tree, {0: np.eye(2) / np.sqrt(2), 1: np.eye(2)})
    np.testing.assert_allclose(bell.schmidt_spectrum(0, 1), [1 / np.sqrt(2), 1 / np.sqrt(2)])
    assert bell.entanglement_entropy(0, 1) == pytest.approx(np.log(2))


def test_ttno_identity() -> None:
    """Test the identity operator and the TTNO checks."""
    tree = comb_tree((2, 2))
    identity = TTNO.identity(tree)
    np.testing.assert_allclose(identity.to_matrix(), np.eye(2 ** len(tree)))
    assert identity.is_hermitian()
    assert identity.max_bond_dimension() == 1
    with pytest.raises(ValueError):
        TTNO(path_tree(2), {0: np.zeros((2, 2, 1)), 1: np.zeros((2, 3, 1))})
