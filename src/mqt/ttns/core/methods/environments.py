# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Environments and effective (projected) operators.

The environment of a directed edge (u, v) is the contraction of <psi| H |psi> over every vertex on u's side of
the edge. It is a three-leg tensor (ket, op, bra) living on the edge and is built recursively from the
environments pointing into u from its other neighbors:

             ____
      ket --|    |--- env(n1, u)
            | u  |
       op --|    |--- env(n2, u)      ==>   env(u, v)
            |    |
      bra --|____|--- ...

Environments are cached per directed edge and recomputed lazily. Whenever the tensor at a vertex is replaced
the caller must invalidate that vertex, which drops every cached environment containing its tensor, i.e. all
environments directed away from it anywhere in the tree. Environments pointing toward the vertex stay valid.

ProjectedOperator combines the cached environments with the operator tensors of a sweep region into the
effective Hamiltonian of that region, applied as a linear map. ProjectedOperatorSum is a weighted sum of
projected operators with time-dependent scalar coefficients.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

import numpy as np

from ..data_structures.networks import region_legs
from .operations import bond_label, contract_labeled, phys_label

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from numpy.typing import NDArray

    from ..data_structures.networks import TTNO, TTNS

    Vertex = Hashable


class EnvironmentCache:
    """Lazily computed environment tensors keyed by directed edge.

    Attributes:
        operator: The operator sandwiched between the state and its conjugate.
        state: The state. Its tensors may be replaced in place; the caller invalidates accordingly.
    """

    def __init__(self, operator: TTNO, state: TTNS) -> None:
        if operator.tree is not state.tree and operator.tree.edges != state.tree.edges:
            msg = "Operator and state live on different trees."
            raise ValueError(msg)
        self.operator = operator
        self.state = state
        self._cache: dict[tuple[Vertex, Vertex], NDArray[np.complex128]] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, edge: tuple[Vertex, Vertex]) -> bool:
        return edge in self._cache

    @property
    def cached_edges(self) -> list[tuple[Vertex, Vertex]]:
        return list(self._cache)

    def environment(self, u: Vertex, v: Vertex) -> NDArray[np.complex128]:
        """Environment of everything on u's side of the edge (u, v), legs (ket, op, bra).

        Missing environments on u's side are computed first, deepest first, reusing every cached one.

        Raises:
            ValueError: If u and v are not adjacent.
        """
        tree = self.state.tree
        if not tree.has_edge(u, v):
            msg = f"({u!r}, {v!r}) is not an edge of the tree."
            raise ValueError(msg)
        if (u, v) in self._cache:
            return self._cache[(u, v)]
        missing = []
        stack = [(u, v)]
        while stack:
            a, b = stack.pop()
            missing.append((a, b))
            stack.extend((n, a) for n in tree.neighbors(a) if n != b and (n, a) not in self._cache)
        for a, b in reversed(missing):
            self._cache[(a, b)] = self._compute(a, b)
        return self._cache[(u, v)]

    def _compute(self, u: Vertex, v: Vertex) -> NDArray[np.complex128]:
        tree = self.state.tree
        neighbors = tree.neighbors(u)
        ket = self.state.tensors[u]
        operands: list[object] = [
            ket,
            [phys_label("ket", u)] + [bond_label("ket", u, n) for n in neighbors],
            self.operator.tensors[u],
            [phys_label("bra", u), phys_label("ket", u)] + [bond_label("op", u, n) for n in neighbors],
            np.conj(ket),
            [phys_label("bra", u)] + [bond_label("bra", u, n) for n in neighbors],
        ]
        for n in neighbors:
            if n != v:
                operands.extend((
                    self._cache[(n, u)],
                    [bond_label("ket", n, u), bond_label("op", n, u), bond_label("bra", n, u)],
                ))
        output = [bond_label("ket", u, v), bond_label("op", u, v), bond_label("bra", u, v)]
        return contract_labeled(*operands, output=output)

    def invalidate(self, vertex: Vertex) -> None:
        """Drop every environment containing the tensor at ``vertex``.

        These are the environments directed away from ``vertex``: env(p, c) for every edge where c lies
        farther from ``vertex`` than p. Must be called whenever the tensor at ``vertex`` is replaced.
        """
        for c, p in self.state.tree.parents(vertex).items():
            if p is not None:
                self._cache.pop((p, c), None)

    def invalidate_edge(self, u: Vertex, v: Vertex) -> None:
        """Drop the single environment env(u, v); the caller is responsible for those built on top of it."""
        self._cache.pop((u, v), None)

    def clear(self) -> None:
        """Drop every cached environment, e.g. after the state was replaced wholesale."""
        self._cache.clear()


class ProjectedOperator:
    """Effective Hamiltonian of a region, acting on the merged region tensor.

    A region is either a connected tuple of vertices, acting on the tensor returned by
    ``TTNS.region_tensor`` (see :func:`region_legs` for the leg layout), or a bond ``(u, v)``, acting on the
    bond matrix returned by ``TTNS.split_bond(u, v)``.
    """

    def __init__(self, operator: TTNO, state: TTNS, environments: EnvironmentCache | None = None) -> None:
        self.operator = operator
        self.state = state
        self.environments = environments if environments is not None else EnvironmentCache(operator, state)
        self.region: tuple[Vertex, ...] | None = None
        self.bond = False

    def set_region(self, region: Sequence[Vertex], *, bond: bool = False) -> None:
        """Position the operator on a region.

        Args:
            region: The region vertices, or the two endpoints of a bond.
            bond: Whether the region is the bond between ``region[0]`` and ``region[1]``.

        Raises:
            ValueError: If the region is not connected or the bond is not an edge.
        """
        region = tuple(region)
        if bond:
            if len(region) != 2 or not self.state.tree.has_edge(*region):
                msg = f"Bond region {region!r} is not an edge of the tree."
                raise ValueError(msg)
        else:
            region_legs(self.state.tree, region)
        self.region = region
        self.bond = bond

    def invalidate(self, vertex: Vertex) -> None:
        self.environments.invalidate(vertex)

    def at_time(self, time: float) -> ProjectedOperator:  # noqa: ARG002
        """Static operators do not depend on time."""
        return self

    def _check_region(self) -> tuple[Vertex, ...]:
        if self.region is None:
            msg = "The projected operator has no region; call set_region first."
            raise RuntimeError(msg)
        return self.region

    @property
    def shape(self) -> tuple[int, ...]:
        """Shape of the tensors the operator acts on."""
        region = self._check_region()
        state = self.state
        if self.bond:
            u, v = region
            return (state.tensors[u].shape[state.leg(u, v)], state.tensors[v].shape[state.leg(v, u)])
        physical, external = region_legs(state.tree, region)
        return tuple(state.tree.physical_dimension(r) for r in physical) + tuple(
            state.tensors[r].shape[state.leg(r, n)] for r, n in external
        )

    @property
    def size(self) -> int:
        return int(np.prod(self.shape))

    def _operands(self) -> tuple[list[object], list[Hashable], list[Hashable]]:
        """Operands of H_eff together with the labels of the ket (input) and bra (output) legs."""
        region = self._check_region()
        envs = self.environments
        if self.bond:
            u, v = region
            operands: list[object] = [
                envs.environment(u, v),
                [("ket", u), "op", ("bra", u)],
                envs.environment(v, u),
                [("ket", v), "op", ("bra", v)],
            ]
            return operands, [("ket", u), ("ket", v)], [("bra", u), ("bra", v)]

        tree = self.state.tree
        physical, external = region_legs(tree, region)
        operands = []
        for r in physical:
            operands.extend((
                self.operator.tensors[r],
                [phys_label("bra", r), phys_label("ket", r)] + [bond_label("op", r, n) for n in tree.neighbors(r)],
            ))
        for r, n in external:
            operands.extend((
                envs.environment(n, r),
                [bond_label("ket", n, r), bond_label("op", n, r), bond_label("bra", n, r)],
            ))
        ket = [phys_label("ket", r) for r in physical] + [bond_label("ket", r, n) for r, n in external]
        bra = [phys_label("bra", r) for r in physical] + [bond_label("bra", r, n) for r, n in external]
        return operands, ket, bra

    def matvec(self, tensor: NDArray[np.complex128]) -> NDArray[np.complex128]:
        """Apply the effective Hamiltonian to a region tensor (or its flattened version)."""
        shape = self.shape
        flat = tensor.ndim == 1 and len(shape) != 1
        operands, ket, bra = self._operands()
        result = contract_labeled(*operands, np.reshape(tensor, shape), ket, output=bra)
        return result.reshape(-1) if flat else result

    __call__ = matvec

    def to_matrix(self) -> NDArray[np.complex128]:
        """Dense matrix of the effective Hamiltonian; rows index the output, columns the input."""
        operands, ket, bra = self._operands()
        n = self.size
        return contract_labeled(*operands, output=bra + ket).reshape(n, n)

    def expectation(self, tensor: NDArray[np.complex128]) -> complex:
        """<tensor|H_eff|tensor> / <tensor|tensor>."""
        vec = np.reshape(tensor, -1)
        return complex(np.vdot(vec, self.matvec(np.reshape(tensor, self.shape)).reshape(-1)) / np.vdot(vec, vec))


class ProjectedOperatorSum:
    """Weighted sum sum_k f_k(t) H_k of projected operators.

    Every term keeps its own environment cache. ``time`` selects the coefficients used by :meth:`matvec`;
    :meth:`at_time` returns a view with a different time that shares the caches.
    """

    def __init__(
        self,
        operators: Sequence[TTNO],
        state: TTNS,
        coefficients: Sequence[Callable[[float], complex]] | None = None,
    ) -> None:
        """Initializes the sum.

        Args:
            operators: The static operators H_k.
            state: The state shared by all terms.
            coefficients: One scalar function of time per operator; constant one if omitted.

        Raises:
            ValueError: If there are no operators or the number of coefficients does not match.
        """
        if not operators:
            msg = "At least one operator is required."
            raise ValueError(msg)
        if coefficients is None:
            coefficients = [lambda _t: 1.0] * len(operators)
        if len(coefficients) != len(operators):
            msg = f"Got {len(coefficients)} coefficient functions for {len(operators)} operators."
            raise ValueError(msg)
        self.terms = [ProjectedOperator(op, state) for op in operators]
        self.coefficients = list(coefficients)
        self.state = state
        self.time = 0.0

    @property
    def region(self) -> tuple[Vertex, ...] | None:
        return self.terms[0].region

    @property
    def bond(self) -> bool:
        return self.terms[0].bond

    def set_region(self, region: Sequence[Vertex], *, bond: bool = False) -> None:
        for term in self.terms:
            term.set_region(region, bond=bond)

    def invalidate(self, vertex: Vertex) -> None:
        for term in self.terms:
            term.invalidate(vertex)

    def at_time(self, time: float) -> ProjectedOperatorSum:
        view = copy.copy(self)
        view.time = time
        return view

    def weights(self) -> list[complex]:
        return [f(self.time) for f in self.coefficients]

    @property
    def shape(self) -> tuple[int, ...]:
        return self.terms[0].shape

    @property
    def size(self) -> int:
        return self.terms[0].size

    def matvec(self, tensor: NDArray[np.complex128]) -> NDArray[np.complex128]:
        result = None
        for weight, term in zip(self.weights(), self.terms):
            if weight == 0:
                continue
            contribution = weight * term.matvec(tensor)
            result = contribution if result is None else result + contribution
        if result is None:
            return np.zeros_like(tensor, dtype=np.complex128)
        return result

    __call__ = matvec

    def to_matrix(self) -> NDArray[np.complex128]:
        return sum(weight * term.to_matrix() for weight, term in zip(self.weights(), self.terms))

    def expectation(self, tensor: NDArray[np.complex128]) -> complex:
        vec = np.reshape(tensor, -1)
        return complex(np.vdot(vec, self.matvec(np.reshape(tensor, self.shape)).reshape(-1)) / np.vdot(vec, vec))
