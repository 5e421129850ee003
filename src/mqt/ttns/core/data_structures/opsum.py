# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Operator sums.

An OpSum is the algebraic front end for Hamiltonians: a list of terms, each a scalar coefficient times a
product of named local operators at specific vertices. Terms are added in the familiar form

    opsum += (0.5, "S+", u, "S-", v)

and compiled into a tree tensor network operator by :func:`mqt.ttns.core.methods.fsm.build_ttno`.
``OpSum.to_matrix`` expands the sum exhaustively into a dense matrix and is meant for verification on small
trees only.
"""

from __future__ import annotations

import numbers
from functools import reduce
from typing import TYPE_CHECKING

import numpy as np

from ..libraries.operator_library import OperatorLibrary

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator

    from numpy.typing import NDArray

    from .tree import Tree

    Vertex = Hashable


class Term:
    """A single operator string.

    Attributes:
        coefficient: The scalar prefactor.
        factors: Tuple of (operator name, vertex) pairs. Factors on the same vertex multiply in order.
    """

    def __init__(self, coefficient: complex, factors: tuple[tuple[str, Vertex], ...]) -> None:
        self.coefficient = coefficient
        self.factors = tuple(factors)

    def __repr__(self) -> str:
        ops = " ".join(f"{name}({v!r})" for name, v in self.factors)
        return f"{self.coefficient} {ops}".rstrip()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return self.coefficient == other.coefficient and self.factors == other.factors

    def __hash__(self) -> int:
        return hash((self.coefficient, self.factors))

    @property
    def support(self) -> list[Vertex]:
        """Vertices the term acts on, in order of first appearance."""
        support: list[Vertex] = []
        for _, v in self.factors:
            if v not in support:
                support.append(v)
        return support

    def operators_at(self, vertex: Vertex) -> tuple[str, ...]:
        """Names of the factors on ``vertex`` in multiplication order."""
        return tuple(name for name, v in self.factors if v == vertex)

    def validate(self, tree: Tree) -> None:
        """Checks that every factor refers to a vertex of the tree and a known operator.

        Raises:
            ValueError: If a vertex or operator name is unknown.
        """
        for name, v in self.factors:
            if v not in tree:
                msg = f"Term {self!r} references unknown vertex {v!r}."
                raise ValueError(msg)
            OperatorLibrary.get(name, tree.physical_dimension(v))


def _parse_term(args: tuple) -> Term:
    """Turn ``(coef, name, v, name, v, ...)`` (coefficient optional) into a Term."""
    args = tuple(args)
    coefficient: complex = 1.0
    if args and isinstance(args[0], numbers.Number):
        coefficient = args[0]
        args = args[1:]
    if len(args) % 2 != 0:
        msg = f"Operator factors must come in (name, vertex) pairs, got {args!r}."
        raise ValueError(msg)
    factors = []
    for name, v in zip(args[::2], args[1::2]):
        if not isinstance(name, str):
            msg = f"Operator names must be strings, got {name!r}."
            raise ValueError(msg)
        factors.append((name, v))
    return Term(coefficient, tuple(factors))


class OpSum:
    """Sum of weighted operator strings."""

    def __init__(self, terms: list[Term] | None = None) -> None:
        self.terms: list[Term] = list(terms) if terms is not None else []

    def add(self, *args: object) -> OpSum:
        """Append a term given as ``coefficient, name, vertex, name, vertex, ...``.

        Returns:
            OpSum: ``self`` for chaining.
        """
        if len(args) == 1 and isinstance(args[0], Term):
            self.terms.append(args[0])
        else:
            self.terms.append(_parse_term(args))
        return self

    def __iadd__(self, other: tuple | Term | OpSum) -> OpSum:
        if isinstance(other, OpSum):
            self.terms.extend(other.terms)
        elif isinstance(other, Term):
            self.terms.append(other)
        else:
            self.terms.append(_parse_term(other))
        return self

    def __add__(self, other: OpSum) -> OpSum:
        if not isinstance(other, OpSum):
            return NotImplemented
        return OpSum(self.terms + other.terms)

    def __mul__(self, scalar: complex) -> OpSum:
        if not isinstance(scalar, numbers.Number):
            return NotImplemented
        return OpSum([Term(scalar * t.coefficient, t.factors) for t in self.terms])

    __rmul__ = __mul__

    def __len__(self) -> int:
        return len(self.terms)

    def __iter__(self) -> Iterator[Term]:
        return iter(self.terms)

    def __repr__(self) -> str:
        return "OpSum(\n  " + "\n  ".join(repr(t) for t in self.terms) + "\n)"

    def validate(self, tree: Tree) -> None:
        for term in self.terms:
            term.validate(tree)

    def to_matrix(self, tree: Tree) -> NDArray[np.complex128]:
        """Exhaustive dense expansion of the sum.

        The tensor product follows ``tree.vertices`` order, with the first vertex as most significant
        factor. Memory grows exponentially; use only for small trees.

        Args:
            tree: The tree the operator names are resolved on.

        Returns:
            NDArray[np.complex128]: The dense operator.
        """
        self.validate(tree)
        dims = [tree.physical_dimension(v) for v in tree.vertices]
        total = int(np.prod(dims))
        mat = np.zeros((total, total), dtype=np.complex128)
        for term in self.terms:
            local = [OperatorLibrary.product(term.operators_at(v), d) for v, d in zip(tree.vertices, dims)]
            mat += term.coefficient * reduce(np.kron, local)
        return mat
