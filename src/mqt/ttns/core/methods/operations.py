# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Operations on tree tensor networks.

This module provides the labelled contraction primitive used throughout the package and the
full-network contractions built on it: scalar products, operator sandwiches such as <psi|H|psi> or
<psi|H H|psi>, and dense conversion of states and operators. All of them eliminate the tree from the
leaves toward a root, so every intermediate carries only the legs of a single edge.

Tensor layouts:
    state tensor at v:      (d_v, bond to n_1, bond to n_2, ...)
    operator tensor at v:   (d_v out, d_v in, bond to n_1, bond to n_2, ...)
with n_1, n_2, ... the neighbors of v in leg order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import opt_einsum as oe

from ..data_structures.tree import edge_key

if TYPE_CHECKING:
    from collections.abc import Hashable, Sequence

    from numpy.typing import NDArray

    from ..data_structures.networks import TTNO, TTNS
    from ..data_structures.tree import Tree


def contract_labeled(*operands_and_labels: object, output: Sequence[Hashable]) -> NDArray[np.complex128]:
    """Contract tensors whose legs carry arbitrary hashable labels.

    Operands are given interleaved with their label lists, ``tensor, labels, tensor, labels, ...``. Labels
    shared by two operands are summed over; the result carries the legs listed in ``output``. Labels are
    mapped to integers before calling opt_einsum so that labels of mixed, non-comparable types can be used.

    Args:
        *operands_and_labels: Alternating tensors and label sequences.
        output: Labels of the result in the desired leg order.

    Returns:
        NDArray[np.complex128]: The contracted tensor.
    """
    assert len(operands_and_labels) % 2 == 0
    symbols: dict[Hashable, int] = {}
    args: list[object] = []
    for tensor, labels in zip(operands_and_labels[::2], operands_and_labels[1::2]):
        assert np.ndim(tensor) == len(labels), f"Tensor of rank {np.ndim(tensor)} with labels {labels}"
        args.extend((tensor, [symbols.setdefault(label, len(symbols)) for label in labels]))
    args.append([symbols[label] for label in output])
    return oe.contract(*args, optimize="auto")


def bond_label(layer: Hashable, u: Hashable, v: Hashable) -> tuple:
    """Label of the virtual leg of ``layer`` on the edge u - v."""
    return (layer, "bond", edge_key(u, v))


def phys_label(layer: Hashable, v: Hashable) -> tuple:
    return (layer, "phys", v)


def _sandwich_operands(
    tree: Tree,
    v: Hashable,
    ket: TTNS,
    bra: TTNS,
    operators: Sequence[TTNO],
) -> list[object]:
    """Operands and labels of all layers at one vertex of <bra| O_1 ... O_n |ket>."""
    neighbors = tree.neighbors(v)
    layers = len(operators)
    operands: list[object] = [
        ket.tensors[v],
        [phys_label(0, v)] + [bond_label("ket", v, n) for n in neighbors],
    ]
    # layer k maps the physical leg k to k + 1, counted from the ket
    for k, op in enumerate(reversed(operators)):
        operands.extend((
            op.tensors[v],
            [phys_label(k + 1, v), phys_label(k, v)] + [bond_label(("op", k), v, n) for n in neighbors],
        ))
    operands.extend((
        np.conj(bra.tensors[v]),
        [phys_label(layers, v)] + [bond_label("bra", v, n) for n in neighbors],
    ))
    return operands


def sandwich(
    bra: TTNS,
    operators: Sequence[TTNO],
    ket: TTNS,
    root: Hashable | None = None,
) -> complex:
    """Compute <bra| O_1 O_2 ... O_n |ket> by leaf-to-root elimination.

    Args:
        bra: The state on the left (conjugated).
        operators: Operators applied right to left to ``ket``; may be empty for a plain overlap.
        ket: The state on the right.
        root: Root of the elimination order; defaults to ``tree.default_root()``.

    Returns:
        complex: The contracted value.
    """
    tree = ket.tree
    if root is None:
        root = tree.default_root()
    parents = tree.parents(root)
    layers = ["ket"] + [("op", k) for k in range(len(operators))] + ["bra"]
    partial: dict[Hashable, NDArray[np.complex128]] = {}
    for v in tree.post_order_vertices(root):
        operands = _sandwich_operands(tree, v, ket, bra, operators)
        for child in tree.neighbors(v):
            if child == parents[v]:
                continue
            operands.extend((partial.pop(child), [bond_label(layer, child, v) for layer in layers]))
        parent = parents[v]
        output = [] if parent is None else [bond_label(layer, v, parent) for layer in layers]
        partial[v] = contract_labeled(*operands, output=output)
    return complex(partial[root])


def scalar_product(bra: TTNS, ket: TTNS) -> complex:
    """Overlap <bra|ket>."""
    return sandwich(bra, [], ket)


def dense_state(state: TTNS, root: Hashable | None = None) -> NDArray[np.complex128]:
    """Contract a state into a tensor with one leg per vertex in ``tree.vertices`` order.

    The elimination runs from the leaves toward ``root``; the result does not depend on the root.
    """
    tree = state.tree
    if root is None:
        root = tree.default_root()
    parents = tree.parents(root)
    partial: dict[Hashable, tuple[NDArray[np.complex128], list[Hashable]]] = {}
    for v in tree.post_order_vertices(root):
        operands: list[object] = [
            state.tensors[v],
            [phys_label(0, v)] + [bond_label("ket", v, n) for n in tree.neighbors(v)],
        ]
        phys = [v]
        for child in tree.neighbors(v):
            if child == parents[v]:
                continue
            tensor, child_phys = partial.pop(child)
            operands.extend((tensor, [phys_label(0, w) for w in child_phys] + [bond_label("ket", child, v)]))
            phys.extend(child_phys)
        parent = parents[v]
        output = [phys_label(0, w) for w in phys]
        if parent is not None:
            output.append(bond_label("ket", v, parent))
        partial[v] = (contract_labeled(*operands, output=output), phys)
    tensor, phys = partial[root]
    order = [phys.index(w) for w in tree.vertices]
    return np.transpose(tensor, order)


def dense_operator(operator: TTNO, root: Hashable | None = None) -> NDArray[np.complex128]:
    """Contract an operator into a matrix acting on the ``tree.vertices``-ordered tensor product."""
    tree = operator.tree
    if root is None:
        root = tree.default_root()
    parents = tree.parents(root)
    partial: dict[Hashable, tuple[NDArray[np.complex128], list[Hashable]]] = {}
    for v in tree.post_order_vertices(root):
        operands: list[object] = [
            operator.tensors[v],
            [phys_label("out", v), phys_label("in", v)] + [bond_label("op", v, n) for n in tree.neighbors(v)],
        ]
        phys = [v]
        for child in tree.neighbors(v):
            if child == parents[v]:
                continue
            tensor, child_phys = partial.pop(child)
            labels = [phys_label("out", w) for w in child_phys] + [phys_label("in", w) for w in child_phys]
            operands.extend((tensor, [*labels, bond_label("op", child, v)]))
            phys.extend(child_phys)
        parent = parents[v]
        output = [phys_label("out", w) for w in phys] + [phys_label("in", w) for w in phys]
        if parent is not None:
            output.append(bond_label("op", v, parent))
        partial[v] = (contract_labeled(*operands, output=output), phys)
    tensor, phys = partial[root]
    n = len(phys)
    order = [phys.index(w) for w in tree.vertices]
    tensor = np.transpose(tensor, order + [n + i for i in order])
    dim = int(np.prod(tensor.shape[:n]))
    return tensor.reshape(dim, dim)
