# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Finite-state-machine compilation of operator sums into tree tensor network operators.

The tree is rooted at a chosen vertex and every term of the OpSum is followed from the leaves toward the root.
On each edge (v -> parent) a term is in one of three channel kinds:

  - ``IDENTITY``: the term has no factor below the edge; the subtree only passes the identity through.
  - an open channel: some but not all factors lie below the edge. The channel is labelled by the operator
    string accumulated below, without coefficient, so every term sharing that "tail" shares the channel.
  - ``COMPLETE``: all factors lie below the edge; the coefficient has been applied and the subtree carries
    a finished contribution to the sum.

At every vertex the symbolic tensor is an explicit sparse map from channel-index tuples (children in leg
order, then the parent channel) to a dictionary ``{operator string: coefficient}``. Identity and open entries
are deterministic functions of their channels and are set once; completion entries at the lowest vertex
containing a term's support are accumulated, which combines identical terms additively.

The number of distinct channels on an edge is the bond dimension of the compiled TTNO on that edge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from ..data_structures.networks import TTNO
from ..libraries.operator_library import OperatorLibrary

if TYPE_CHECKING:
    from collections.abc import Hashable

    from numpy.typing import NDArray

    from ..data_structures.opsum import OpSum
    from ..data_structures.tree import Tree

    Vertex = Hashable

IDENTITY = "identity"
COMPLETE = "complete"


def _normalized_terms(opsum: OpSum, tree: Tree) -> dict[tuple, complex]:
    """Validate the terms and merge identical operator strings.

    Returns:
        dict: Mapping from the canonical operator string ``((vertex, (names...)), ...)`` (vertices ordered by
            tree index) to the summed coefficient. Zero coefficients are dropped.
    """
    combined: dict[tuple, complex] = {}
    for term in opsum:
        term.validate(tree)
        support = sorted(term.support, key=tree.index)
        key = tuple((v, term.operators_at(v)) for v in support)
        combined[key] = combined.get(key, 0) + term.coefficient
    return {key: coeff for key, coeff in combined.items() if coeff != 0}


class FiniteStateMachine:
    """Symbolic channel tensors of a Hamiltonian rooted at a vertex.

    Attributes:
        tree: The tree.
        root: The root vertex; it has no parent channel.
        parents: Parent of every vertex (``None`` for the root).
        children: Children of every vertex in leg order.
        channels: For every non-root vertex, the ordered list of channel labels on the edge to its parent.
        entries: For every vertex, map from channel-index tuple to ``{operator names: coefficient}``.
    """

    def __init__(self, tree: Tree, root: Vertex) -> None:
        self.tree = tree
        self.root = root
        self.parents = tree.parents(root)
        self.children = tree.children(root)
        self.channels: dict[Vertex, list[object]] = {}
        self.entries: dict[Vertex, dict[tuple[int, ...], dict[tuple[str, ...], complex]]] = {
            v: {} for v in tree.vertices
        }

    @classmethod
    def from_opsum(cls, opsum: OpSum, tree: Tree, root: Vertex | None = None) -> FiniteStateMachine:
        """Build the finite state machine of an operator sum.

        Args:
            opsum: The operator sum.
            tree: The tree whose vertices the operators act on.
            root: Root vertex; defaults to ``tree.default_root()``.

        Returns:
            FiniteStateMachine: The symbolic representation.

        Raises:
            ValueError: If a term references an unknown vertex or operator, or all terms vanish.
        """
        if root is None:
            root = tree.default_root()
        tree.check_vertex(root)
        terms = _normalized_terms(opsum, tree)
        if not terms:
            msg = "The operator sum has no non-vanishing terms."
            raise ValueError(msg)

        fsm = cls(tree, root)
        descendants = tree.descendants(root)

        # channel of every term on every edge (v -> parent)
        term_channels: list[dict[Vertex, object]] = []
        used: dict[Vertex, set] = {v: set() for v in tree.vertices if v != root}
        for key in terms:
            support = {v for v, _ in key}
            channels: dict[Vertex, object] = {}
            for v in used:
                below = tuple(item for item in key if item[0] in descendants[v])
                if not below:
                    channel: object = IDENTITY
                elif support <= descendants[v]:
                    channel = COMPLETE
                else:
                    channel = below
                channels[v] = channel
                used[v].add(channel)
            term_channels.append(channels)

        for v, labels in used.items():
            open_labels = sorted(
                (label for label in labels if label not in {IDENTITY, COMPLETE}),
                key=lambda label: [(tree.index(u), names) for u, names in label],
            )
            ordered = [IDENTITY] if IDENTITY in labels else []
            ordered += open_labels
            if COMPLETE in labels:
                ordered.append(COMPLETE)
            fsm.channels[v] = ordered
        index = {v: {label: i for i, label in enumerate(labels)} for v, labels in fsm.channels.items()}

        for (key, coeff), channels in zip(terms.items(), term_channels):
            ops = dict(key)
            for v in tree.vertices:
                out = channels.get(v, COMPLETE)
                child_channels = [channels[c] for c in fsm.children[v]]
                if out == IDENTITY:
                    continue
                idx = tuple(index[c][ch] for c, ch in zip(fsm.children[v], child_channels))
                if v != root:
                    idx += (index[v][out],)
                local = ops.get(v, ())
                if out != COMPLETE:
                    # open channel: product of the factors in this subtree, coefficient applied later
                    fsm.entries[v][idx] = {local: 1.0}
                elif COMPLETE in child_channels:
                    # finished contribution passing through toward the root
                    fsm.entries[v][idx] = {(): 1.0}
                else:
                    entry = fsm.entries[v].setdefault(idx, {})
                    entry[local] = entry.get(local, 0) + coeff

        # identity pass-through; an edge carrying the identity channel implies it on all child edges
        for v in index:
            if IDENTITY in index[v]:
                idx = tuple(index[c][IDENTITY] for c in fsm.children[v]) + (index[v][IDENTITY],)
                fsm.entries[v][idx] = {(): 1.0}
        return fsm

    def bond_dimensions(self) -> dict[frozenset[Vertex], int]:
        """Number of channels on every edge, keyed by ``frozenset({u, v})``."""
        return {frozenset((v, self.parents[v])): len(labels) for v, labels in self.channels.items()}

    def to_ttno(self) -> TTNO:
        """Expand the symbolic entries into dense operator tensors."""
        tree = self.tree
        tensors: dict[Vertex, NDArray[np.complex128]] = {}
        for v in tree.vertices:
            d = tree.physical_dimension(v)
            legs = list(self.children[v])
            shape = [len(self.channels[c]) for c in legs]
            if v != self.root:
                legs.append(self.parents[v])
                shape.append(len(self.channels[v]))
            tensor = np.zeros((d, d, *shape), dtype=np.complex128)
            for idx, terms in self.entries[v].items():
                block = np.zeros((d, d), dtype=np.complex128)
                for names, coeff in terms.items():
                    block += coeff * OperatorLibrary.product(names, d)
                tensor[(slice(None), slice(None), *idx)] += block
            perm = [0, 1] + [2 + legs.index(n) for n in tree.neighbors(v)]
            tensors[v] = np.transpose(tensor, perm)
        return TTNO(tree, tensors)

    def __str__(self) -> str:
        lines = [f"FiniteStateMachine(root={self.root!r})"]
        for v in self.tree.post_order_vertices(self.root):
            legs = [*(f"{c!r}" for c in self.children[v])]
            if v != self.root:
                legs.append(f"parent {self.parents[v]!r}")
            lines.append(f"  vertex {v!r}  legs: ({', '.join(legs)})")
            for idx, terms in sorted(self.entries[v].items()):
                text = " + ".join(
                    f"{coeff:g} {'*'.join(names) if names else 'Id'}" for names, coeff in terms.items()
                )
                lines.append(f"    {idx}: {text}")
        return "\n".join(lines)


def build_ttno(opsum: OpSum, tree: Tree, root: Vertex | None = None) -> TTNO:
    """Compile an operator sum exactly into a tree tensor network operator.

    Args:
        opsum: The operator sum.
        tree: The tree.
        root: Root of the finite state machine; the result does not depend on it, the bond dimensions may.

    Returns:
        TTNO: The compiled operator.
    """
    return FiniteStateMachine.from_opsum(opsum, tree, root).to_ttno()
