# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Library of spin Hamiltonians on trees.

The builders return an OpSum, which can be compiled into a TTNO with
:func:`mqt.ttns.core.methods.fsm.build_ttno` or expanded into a dense matrix with ``OpSum.to_matrix``.
Fields may be given as one number for all vertices or as a mapping vertex -> value, which allows disordered
models such as the random-field Heisenberg model.
"""

from __future__ import annotations

import numbers
from typing import TYPE_CHECKING

from ..data_structures.opsum import OpSum
from ..data_structures.tree import nearest_neighbors, next_nearest_neighbors

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping

    from ..data_structures.tree import Tree

    Vertex = Hashable


def _field(h: float | Mapping[Vertex, float], tree: Tree) -> dict[Vertex, float]:
    if isinstance(h, numbers.Number):
        return dict.fromkeys(tree.vertices, h)
    missing = [v for v in tree.vertices if v not in h]
    if missing:
        msg = f"Field values missing for vertices {missing}."
        raise ValueError(msg)
    return {v: h[v] for v in tree.vertices}


def _add_exchange(opsum: OpSum, coupling: float, u: Vertex, v: Vertex) -> None:
    opsum += (coupling / 2, "S+", u, "S-", v)
    opsum += (coupling / 2, "S-", u, "S+", v)
    opsum += (coupling, "Sz", u, "Sz", v)


def heisenberg(
    tree: Tree,
    J1: float = 1.0,  # noqa: N803
    J2: float = 0.0,  # noqa: N803
    h: float | Mapping[Vertex, float] = 0.0,
) -> OpSum:
    """Heisenberg model.

    H = J1 sum_<ij> S_i . S_j + J2 sum_<<ij>> S_i . S_j + sum_i h_i S^z_i

    The exchange is written as S^z S^z + (S^+ S^- + S^- S^+) / 2, so the operator is real and works for any
    spin (physical dimension) of the tree.

    Args:
        tree: The lattice.
        J1: Nearest-neighbor coupling.
        J2: Next-nearest-neighbor coupling.
        h: Field along z, uniform or per vertex.

    Returns:
        OpSum: The Hamiltonian.
    """
    opsum = OpSum()
    if J1 != 0:
        for u, v in nearest_neighbors(tree):
            _add_exchange(opsum, J1, u, v)
    if J2 != 0:
        for u, v in next_nearest_neighbors(tree):
            _add_exchange(opsum, J2, u, v)
    for v, hv in _field(h, tree).items():
        if hv != 0:
            opsum += (hv, "Sz", v)
    return opsum


def ising(tree: Tree, J: float = 1.0, g: float | Mapping[Vertex, float] = 0.5) -> OpSum:  # noqa: N803
    """Transverse-field Ising model.

    H = -J sum_<ij> Z_i Z_j - sum_i g_i X_i

    Args:
        tree: The lattice; every vertex must be a qubit.
        J: Coupling constant for the interaction.
        g: Transverse field, uniform or per vertex.

    Returns:
        OpSum: The Hamiltonian.
    """
    opsum = OpSum()
    if J != 0:
        for u, v in nearest_neighbors(tree):
            opsum += (-J, "Z", u, "Z", v)
    for v, gv in _field(g, tree).items():
        if gv != 0:
            opsum += (-gv, "X", v)
    return opsum


def magnetization(tree: Tree, name: str = "Sz") -> OpSum:
    """Total magnetization sum_i O_i for a local operator name."""
    opsum = OpSum()
    for v in tree.vertices:
        opsum += (name, v)
    return opsum
