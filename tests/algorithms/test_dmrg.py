# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for DMRG and DMRG-X.

Ground and excited state searches on small trees are compared against exact diagonalization of the dense
Hamiltonian, and tree DMRG is cross-validated against DMRG on the snake-ordered chain.
"""

from __future__ import annotations

import numpy as np
import pytest

from mqt.ttns.algorithms.dmrg import dmrg, dmrg_x
from mqt.ttns.core.data_structures.networks import TTNS
from mqt.ttns.core.data_structures.simulation_parameters import Observer, SweepParams
from mqt.ttns.core.data_structures.tree import Tree, binary_tree, comb_tree, path_tree, snake_tree, star_tree
from mqt.ttns.core.libraries.model_library import heisenberg, ising
from mqt.ttns.core.methods.fsm import build_ttno
from mqt.ttns.core.methods.solvers import EigenSolver


def exact_ground_energy(opsum: object, tree: Tree) -> float:
    """Lowest eigenvalue of the dense Hamiltonian."""
    return float(np.linalg.eigvalsh(opsum.to_matrix(tree))[0])


@pytest.mark.parametrize("tree", [path_tree(6), star_tree(4), binary_tree(2), comb_tree((2, 3))])
def test_dmrg_ground_state(tree: Tree) -> None:
    """Test that two-site DMRG reaches the exact ground energy with vanishing variance."""
    opsum = ising(tree, J=1.0, g=1.2)
    hamiltonian = build_ttno(opsum, tree)
    state = TTNS(tree, state="x+")
    params = SweepParams(nsweeps=6, maxdim=32, cutoff=1e-12)
    result = dmrg(hamiltonian, state, params)
    assert result.energy == pytest.approx(exact_ground_energy(opsum, tree), abs=1e-8)
    assert result.state.expect(hamiltonian) == pytest.approx(result.energy, abs=1e-8)
    assert result.state.variance(hamiltonian) < 1e-8
    assert result.converged
    assert result.state.check_canonical_form() == []
    # the input state is left untouched
    assert state.max_bond_dimension() == 1


def test_dmrg_energy_non_increasing() -> None:
    """Test that the energy does not increase from sweep to sweep."""
    tree = comb_tree((2, 3))
    hamiltonian = build_ttno(heisenberg(tree, J2=0.3, h=0.1), tree)
    observers = [Observer("energy", lambda ctx: ctx.state.expect(hamiltonian))]
    result = dmrg(hamiltonian, TTNS(tree, state="Neel"), SweepParams(nsweeps=5, maxdim=16), observers=observers)
    energies = result.observations["energy"]
    assert len(energies) == 5
    assert all(b <= a + 1e-10 for a, b in zip(energies[:-1], energies[1:]))
    assert len(result.energies) == 5


def test_one_site_dmrg_at_full_bond_dimension() -> None:
    """Test one-site DMRG starting from a state with saturated bonds."""
    tree = path_tree(5)
    opsum = heisenberg(tree, h={v: 0.1 * v for v in tree.vertices})
    hamiltonian = build_ttno(opsum, tree)
    state = TTNS.random(tree, 8, seed=4)
    result = dmrg(hamiltonian, state, SweepParams(nsweeps=10, nsite=1))
    assert result.energy == pytest.approx(exact_ground_energy(opsum, tree), abs=1e-6)
    assert result.truncation_error == 0.0


def test_snake_chain_cross_validation() -> None:
    """Test that DMRG on a tree and on its snake-ordered chain agree for the same operator sum."""
    tree = comb_tree((2, 3))
    rng = np.random.default_rng(5)
    opsum = heisenberg(tree, h={v: rng.uniform(-1, 1) for v in tree.vertices})
    chain = snake_tree(tree)
    params = SweepParams(nsweeps=8, maxdim=16)
    on_tree = dmrg(build_ttno(opsum, tree), TTNS(tree, state="random", seed=1), params)
    on_chain = dmrg(build_ttno(opsum, chain), TTNS(chain, state="random", seed=1), params)
    assert on_tree.energy == pytest.approx(on_chain.energy, abs=1e-6)
    assert on_tree.energy == pytest.approx(exact_ground_energy(opsum, tree), abs=1e-6)


def test_dmrg_custom_root_and_solver() -> None:
    """Test an explicit root and an eigensolver forced onto the Lanczos path."""
    tree = binary_tree(2)
    opsum = ising(tree, g=0.8)
    result = dmrg(
        build_ttno(opsum, tree), TTNS(tree), SweepParams(nsweeps=5), solver=EigenSolver(dense_threshold=0), root=()
    )
    assert result.energy == pytest.approx(exact_ground_energy(opsum, tree), abs=1e-7)


def test_dmrg_x_random_field_heisenberg() -> None:
    """Test that DMRG-X on the random-field comb converges to an exact eigenstate."""
    tree = comb_tree((2, 3))
    rng = np.random.default_rng(2025)
    opsum = heisenberg(tree, J1=1.0, h={v: rng.uniform(-12, 12) for v in tree.vertices})
    hamiltonian = build_ttno(opsum, tree)
    spectrum = np.linalg.eigvalsh(opsum.to_matrix(tree))
    initial = TTNS(tree, state="random", seed=7)
    result = dmrg_x(hamiltonian, initial, SweepParams(nsweeps=20, maxdim=64, cutoff=1e-14))
    energy = result.state.expect(hamiltonian)
    assert np.min(np.abs(spectrum - energy)) < 1e-6
    assert result.energy == pytest.approx(energy, abs=1e-6)
    assert result.state.variance(hamiltonian) < 1e-6
    assert result.state.variance(hamiltonian) < initial.variance(hamiltonian)


def test_dmrg_x_keeps_exact_eigenstate() -> None:
    """Test that an eigenstate representable at bond dimension one stays an eigenstate."""
    tree = star_tree(3)
    opsum = ising(tree, J=1.0, g=0.0)
    opsum += (0.3, "Z", 2)
    hamiltonian = build_ttno(opsum, tree)
    initial = TTNS(tree, state="basis", basis=[0, 1, 0, 1])
    result = dmrg_x(hamiltonian, initial, SweepParams(nsweeps=2))
    assert result.state.variance(hamiltonian) == pytest.approx(0.0, abs=1e-12)
    assert result.energy == pytest.approx(initial.expect(hamiltonian))
