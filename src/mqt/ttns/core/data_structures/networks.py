# Copyright (c) 2023 - 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tree Tensor Networks.

This module implements the TTNS (tree tensor network state) and TTNO (tree tensor network operator)
classes. Both hold exactly one tensor per vertex of a Tree:

    TTNS tensor at v:  (d_v, chi_1, ..., chi_k)
    TTNO tensor at v:  (d_v out, d_v in, w_1, ..., w_k)

where the virtual legs follow the neighbor order ``tree.neighbors(v)``. A TTNS additionally records its
orthogonality center: a tuple of vertices relative to which all other tensors are isometries pointing toward
the center, or ``None`` if no gauge is known (e.g. right after random initialization).
"""

from __future__ import annotations

import copy
import math
from typing import TYPE_CHECKING

import numpy as np

from ..libraries.operator_library import OperatorLibrary
from ..methods.decompositions import absorb, qr_toward, split_two_site
from ..methods.operations import bond_label, contract_labeled, dense_operator, dense_state, phys_label, sandwich

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping, Sequence

    from numpy.typing import NDArray

    from .tree import Tree

    Vertex = Hashable


def region_legs(tree: Tree, region: Sequence[Vertex]) -> tuple[list[Vertex], list[tuple[Vertex, Vertex]]]:
    """Leg layout of the merged tensor of a region.

    The merged tensor carries first the physical legs of the region vertices (in region order), then one
    virtual leg per edge leaving the region, ordered by region vertex and then by neighbor order.

    Args:
        tree: The tree.
        region: Connected, duplicate-free sequence of vertices.

    Returns:
        physical: The region vertices.
        external: The (region vertex, outside neighbor) pairs.

    Raises:
        ValueError: If the region is empty, contains unknown or repeated vertices, or is not connected.
    """
    region = list(region)
    for v in region:
        tree.check_vertex(v)
    if not region or len(set(region)) != len(region) or not tree.is_connected_region(region):
        msg = f"Region {region!r} is not a connected set of distinct vertices."
        raise ValueError(msg)
    members = set(region)
    external = [(r, n) for r in region for n in tree.neighbors(r) if n not in members]
    return region, external


class TTNS:
    """Tree Tensor Network State.

    Attributes:
        tree: The underlying tree.
        tensors: Mapping vertex -> tensor of shape (d_v, chi_1, ..., chi_k).
        orthogonality_center: Tuple of vertices forming the center, or None.
    """

    def __init__(
        self,
        tree: Tree,
        tensors: Mapping[Vertex, NDArray[np.complex128]] | None = None,
        state: str = "zeros",
        basis: Mapping[Vertex, int] | Sequence[int] | None = None,
        seed: int | np.random.Generator | None = None,
    ) -> None:
        """Initializes a tree tensor network state.

        Args:
            tree: The tree the state lives on.
            tensors: Predefined tensors, one per vertex. If None, a product state is built from ``state``.
            state: Initial product state. Valid options include:
                - "zeros": every site in |0>.
                - "ones": every site in |1>.
                - "x+": every site in (|0> + |1>)/sqrt(2).
                - "x-": every site in (|0> - |1>)/sqrt(2).
                - "y+": every site in (|0> + i|1>)/sqrt(2).
                - "y-": every site in (|0> - i|1>)/sqrt(2).
                - "Neel": |0> and |1> alternating between the two sublattices of the tree.
                - "random": every site in a random normalized state.
                - "basis": every site in the basis state given by ``basis``.
                Default is "zeros".
            basis: Local basis index per vertex (mapping, or sequence in ``tree.vertices`` order).
            seed: Seed or generator used by the "random" state.

        Raises:
            ValueError: If the state string is unknown or the tensors do not fit the tree.
        """
        self.tree = tree
        self.orthogonality_center: tuple[Vertex, ...] | None = None
        if tensors is not None:
            _check_complete(tree, tensors)
            self.tensors = {v: np.asarray(tensors[v], dtype=np.complex128) for v in tree.vertices}
            self.check_if_valid_ttns()
            return

        rng = np.random.default_rng(seed)
        if state == "basis":
            if basis is None:
                msg = "basis must be provided for 'basis' state initialization."
                raise ValueError(msg)
            if not isinstance(basis, dict):
                basis = dict(zip(tree.vertices, basis))
        parents = tree.parents(tree.vertices[0])
        sublattice = {v: _depth(v, parents) % 2 for v in tree.vertices}

        self.tensors = {}
        for v in tree.vertices:
            d = tree.physical_dimension(v)
            vector = np.zeros(d, dtype=np.complex128)
            if state == "zeros":
                vector[0] = 1
            elif state in {"ones", "x+", "x-", "y+", "y-"} and d < 2:
                msg = f"State {state} needs a local dimension of at least 2."
                raise ValueError(msg)
            elif state == "ones":
                vector[1] = 1
            elif state == "x+":
                vector[0] = vector[1] = 1 / np.sqrt(2)
            elif state == "x-":
                vector[0] = 1 / np.sqrt(2)
                vector[1] = -1 / np.sqrt(2)
            elif state == "y+":
                vector[0] = 1 / np.sqrt(2)
                vector[1] = 1j / np.sqrt(2)
            elif state == "y-":
                vector[0] = 1 / np.sqrt(2)
                vector[1] = -1j / np.sqrt(2)
            elif state == "Neel":
                vector[min(sublattice[v], d - 1)] = 1
            elif state == "random":
                vector = rng.standard_normal(d) + 1j * rng.standard_normal(d)
                vector /= np.linalg.norm(vector)
            elif state == "basis":
                index = int(basis[v])
                if not 0 <= index < d:
                    msg = f"Basis index {index} out of range for vertex {v!r} with dimension {d}."
                    raise ValueError(msg)
                vector[index] = 1
            else:
                msg = "Invalid state string"
                raise ValueError(msg)
            self.tensors[v] = vector.reshape((d,) + (1,) * tree.degree(v))

    @classmethod
    def random(
        cls,
        tree: Tree,
        bond_dim: int,
        seed: int | np.random.Generator | None = None,
    ) -> TTNS:
        """Random state with the given bond dimension on every edge (as far as the Hilbert space allows).

        The state is normalized but carries no orthogonality center.

        Args:
            tree: The tree.
            bond_dim: Target bond dimension.
            seed: Seed or generator for the random entries.

        Returns:
            TTNS: The random state.
        """
        rng = np.random.default_rng(seed)
        dims = {frozenset(e): min(bond_dim, _max_bond_dimension(tree, *e)) for e in tree.edges}
        tensors = {}
        for v in tree.vertices:
            shape = (tree.physical_dimension(v), *(dims[frozenset((v, n))] for n in tree.neighbors(v)))
            tensors[v] = (rng.standard_normal(shape) + 1j * rng.standard_normal(shape)) / np.sqrt(2)
        state = cls(tree, tensors)
        state.normalize()
        return state

    def copy(self) -> TTNS:
        return copy.deepcopy(self)

    def leg(self, v: Vertex, neighbor: Vertex) -> int:
        """Axis of the tensor at ``v`` that connects to ``neighbor``."""
        return 1 + self.tree.neighbors(v).index(neighbor)

    def check_if_valid_ttns(self) -> None:
        """TTNS validity check.

        Verifies that every vertex carries a tensor whose rank and physical dimension fit the tree and that
        the bond dimensions on both ends of every edge agree.

        Raises:
            ValueError: If the tensors are inconsistent with the tree.
        """
        _check_network(self.tree, self.tensors, num_physical=1)

    def bond_dimensions(self) -> dict[frozenset[Vertex], int]:
        """Bond dimension of every edge, keyed by ``frozenset({u, v})``."""
        return {frozenset((u, v)): self.tensors[u].shape[self.leg(u, v)] for u, v in self.tree.edges}

    def bond_dimension(self, u: Vertex, v: Vertex) -> int:
        if not self.tree.has_edge(u, v):
            msg = f"({u!r}, {v!r}) is not an edge of the tree."
            raise ValueError(msg)
        return self.tensors[u].shape[self.leg(u, v)]

    def max_bond_dimension(self) -> int:
        return max(self.bond_dimensions().values(), default=1)

    def pad_bond_dimension(self, target_dim: int) -> None:
        """Pad every bond with zeros up to ``target_dim``.

        Bonds never grow beyond the dimension of the smaller side of the cut. The state itself is unchanged;
        afterwards it is brought into canonical form around its previous center (or the default root).

        Raises:
            ValueError: If a bond is already larger than ``target_dim``.
        """
        targets = {}
        for u, v in self.tree.edges:
            current = self.bond_dimension(u, v)
            if current > target_dim:
                msg = "Target bond dim must be at least current bond dim."
                raise ValueError(msg)
            targets[frozenset((u, v))] = max(current, min(target_dim, _max_bond_dimension(self.tree, u, v)))
        for v in self.tree.vertices:
            tensor = self.tensors[v]
            shape = (tensor.shape[0], *(targets[frozenset((v, n))] for n in self.tree.neighbors(v)))
            padded = np.zeros(shape, dtype=np.complex128)
            padded[tuple(slice(0, s) for s in tensor.shape)] = tensor
            self.tensors[v] = padded
        center = self.orthogonality_center
        self.orthogonality_center = None
        self.orthogonalize(center[0] if center else self.tree.default_root())

    def _gauge_toward(self, v: Vertex, neighbor: Vertex) -> None:
        q_tensor, r_mat = qr_toward(self.tensors[v], self.leg(v, neighbor))
        self.tensors[v] = q_tensor
        self.tensors[neighbor] = absorb(self.tensors[neighbor], r_mat, self.leg(neighbor, v))

    def orthogonalize(self, target: Vertex) -> list[Vertex]:
        """Move the orthogonality center to ``target``.

        Every vertex of the smallest subtree spanning the current center and ``target`` (all vertices if no
        center is known) is QR decomposed toward ``target`` from the leaves inward; the R factors are absorbed
        by the neighbor toward ``target``. Calling it again with the same target is a no-op.

        Args:
            target: The new orthogonality center.

        Returns:
            list: The vertices whose tensors were replaced.

        Raises:
            ValueError: If ``target`` is not a vertex of the tree.
        """
        self.tree.check_vertex(target)
        if self.orthogonality_center == (target,):
            return []
        parents = self.tree.parents(target)
        if self.orthogonality_center is None:
            order = [v for v in self.tree.post_order_vertices(target) if v != target]
        else:
            subtree = self.tree.steiner_vertices([target, *self.orthogonality_center])
            depth = {v: _depth(v, parents) for v in subtree}
            order = sorted((v for v in subtree if v != target), key=depth.__getitem__, reverse=True)
        for v in order:
            self._gauge_toward(v, parents[v])
        self.orthogonality_center = (target,)
        return [*order, target] if order else []

    def orthogonalize_region(self, region: Sequence[Vertex]) -> list[Vertex]:
        """Move the orthogonality center into ``region``.

        If the center already lies in the region nothing happens; otherwise the center is moved to the region
        vertex closest to it.

        Returns:
            list: The vertices whose tensors were replaced.
        """
        region = list(region)
        center = self.orthogonality_center
        if center is not None and len(center) == 1 and center[0] in region:
            return []
        if center is None:
            return self.orthogonalize(region[0])
        source = center[0]
        nearest = min(region, key=lambda v: self.tree.distance(source, v))
        return self.orthogonalize(nearest)

    def check_canonical_form(self, atol: float = 1e-10) -> list[Vertex]:
        """Vertices that are not isometries toward the recorded orthogonality center.

        Returns:
            list: Offending vertices; empty if the state is in canonical form around its center.

        Raises:
            ValueError: If the state has no orthogonality center.
        """
        if self.orthogonality_center is None:
            msg = "The state has no orthogonality center."
            raise ValueError(msg)
        target = self.orthogonality_center[0]
        parents = self.tree.parents(target)
        center = set(self.orthogonality_center)
        bad = []
        for v in self.tree.vertices:
            if v in center:
                continue
            tensor = np.moveaxis(self.tensors[v], self.leg(v, parents[v]), -1)
            mat = tensor.reshape(-1, tensor.shape[-1])
            if not np.allclose(mat.conj().T @ mat, np.eye(mat.shape[1]), atol=atol):
                bad.append(v)
        return bad

    def contract(self, root: Vertex | None = None) -> NDArray[np.complex128]:
        """Contract the whole network into a tensor with one leg per vertex in ``tree.vertices`` order."""
        return dense_state(self, root)

    def to_vec(self) -> NDArray[np.complex128]:
        """Dense state vector; the first vertex is the most significant factor."""
        return self.contract().reshape(-1)

    def scalar_product(self, other: TTNS) -> complex:
        """Overlap <self|other>."""
        return sandwich(self, [], other)

    def norm(self) -> float:
        if self.orthogonality_center is not None and len(self.orthogonality_center) == 1:
            return float(np.linalg.norm(self.tensors[self.orthogonality_center[0]]))
        return float(np.sqrt(abs(self.scalar_product(self))))

    def normalize(self) -> None:
        """Scale the state to unit norm.

        With a single-vertex center only the center tensor changes, otherwise all tensors are rescaled equally.
        """
        nrm = self.norm()
        if nrm == 0:
            msg = "Cannot normalize the zero state."
            raise ValueError(msg)
        if self.orthogonality_center is not None and len(self.orthogonality_center) == 1:
            self.tensors[self.orthogonality_center[0]] /= nrm
        else:
            factor = nrm ** (1 / len(self.tree))
            for v in self.tree.vertices:
                self.tensors[v] /= factor

    def expect(self, operator: TTNO) -> float:
        """Normalized expectation value <psi|H|psi> / <psi|psi> (real part)."""
        return float(np.real(sandwich(self, [operator], self) / self.scalar_product(self)))

    def variance(self, operator: TTNO) -> float:
        """Energy variance <H^2> - <H>^2 of the normalized state."""
        nrm2 = self.scalar_product(self)
        h1 = np.real(sandwich(self, [operator], self) / nrm2)
        h2 = np.real(sandwich(self, [operator, operator], self) / nrm2)
        return float(h2 - h1**2)

    def local_expect(self, name: str, vertex: Vertex) -> complex:
        """Expectation value of a named local operator at ``vertex``."""
        op = OperatorLibrary.matrix(name, self.tree.physical_dimension(vertex))
        state = self.copy()
        state.orthogonalize(vertex)
        tensor = state.tensors[vertex]
        rest = list(range(1, tensor.ndim))
        value = contract_labeled(
            np.conj(tensor), [0, *rest], op, [0, "in"], tensor, ["in", *rest], output=[]
        )
        return complex(value) / float(np.vdot(tensor, tensor).real)

    def schmidt_spectrum(self, u: Vertex, v: Vertex) -> NDArray[np.float64]:
        """Normalized Schmidt coefficients across the edge (u, v)."""
        state = self.copy()
        state.orthogonalize(u)
        tensor = np.moveaxis(state.tensors[u], state.leg(u, v), -1)
        s_vec = np.linalg.svd(tensor.reshape(-1, tensor.shape[-1]), compute_uv=False)
        return s_vec / np.linalg.norm(s_vec)

    def entanglement_entropy(self, u: Vertex, v: Vertex) -> float:
        """Von Neumann entropy of the bipartition defined by cutting the edge (u, v)."""
        p = self.schmidt_spectrum(u, v) ** 2
        p = p[p > np.finfo(np.float64).tiny]
        return float(-np.sum(p * np.log(p)))

    def region_tensor(self, region: Sequence[Vertex]) -> NDArray[np.complex128]:
        """Merged tensor of a connected region, with the leg layout of :func:`region_legs`."""
        physical, external = region_legs(self.tree, region)
        if len(physical) == 1:
            return self.tensors[physical[0]]
        operands: list[object] = []
        for r in physical:
            labels = [phys_label(0, r)] + [bond_label(0, r, n) for n in self.tree.neighbors(r)]
            operands.extend((self.tensors[r], labels))
        output = [phys_label(0, r) for r in physical] + [bond_label(0, r, n) for r, n in external]
        return contract_labeled(*operands, output=output)

    def replace_region(
        self,
        region: Sequence[Vertex],
        tensor: NDArray[np.complex128],
        *,
        center: Vertex | None = None,
        cutoff: float = 0.0,
        maxdim: int | None = None,
        mindim: int = 1,
    ) -> tuple[float, NDArray[np.float64] | None]:
        """Write a merged region tensor back into the network.

        One-site regions are stored as they are. Two-site regions are split by a truncated SVD; the singular
        values are absorbed into ``center`` (default: the second region vertex). The state keeps a recorded
        orthogonality center only if it was centered on a region vertex before the call (see
        :meth:`orthogonalize_region`); the new center is then the written vertex or ``center``. Otherwise the
        center is reset to None.

        Args:
            region: One or two adjacent vertices.
            tensor: Merged tensor in :func:`region_legs` layout.
            center: Region vertex receiving the singular values.
            cutoff: Relative truncation threshold.
            maxdim: Maximum bond dimension of the new bond.
            mindim: Minimum bond dimension of the new bond.

        Returns:
            truncation_error: The discarded relative weight (0 for one-site regions).
            s_vec: The kept singular values, or None for one-site regions.

        Raises:
            ValueError: For regions of more than two vertices or a center outside the region.
        """
        physical, external = region_legs(self.tree, region)
        if center is None:
            center = physical[-1]
        if center not in physical:
            msg = f"Center {center!r} is not part of region {physical!r}."
            raise ValueError(msg)
        old_center = self.orthogonality_center
        centered = old_center is not None and len(old_center) == 1 and old_center[0] in physical
        if len(physical) == 1:
            v = physical[0]
            expected = self.tensors[v].shape
            if tensor.shape != expected:
                msg = f"Tensor of shape {tensor.shape} does not fit vertex {v!r} with shape {expected}."
                raise ValueError(msg)
            self.tensors[v] = tensor
            self.orthogonality_center = (v,) if centered else None
            return 0.0, None
        if len(physical) != 2:
            msg = "Only one- and two-site regions can be written back."
            raise ValueError(msg)

        a, b = physical
        ext_a = [n for r, n in external if r == a]
        ext_b = [n for r, n in external if r == b]
        # (pa, pb, ext_a..., ext_b...) -> (pa, ext_a..., pb, ext_b...)
        na = len(ext_a)
        perm = [0, *range(2, 2 + na), 1, *range(2 + na, tensor.ndim)]
        left, right, s_vec, truncation_error = split_two_site(
            np.transpose(tensor, perm),
            1 + na,
            cutoff,
            maxdim,
            mindim,
            absorb_into="left" if center == a else "right",
        )
        # left legs: (pa, ext_a..., b); right legs: (a, pb, ext_b...)
        left_order = [None, *ext_a, b]
        self.tensors[a] = np.transpose(left, [left_order.index(n) for n in [None, *self.tree.neighbors(a)]])
        right_order = [a, None, *ext_b]
        self.tensors[b] = np.transpose(right, [right_order.index(n) for n in [None, *self.tree.neighbors(b)]])
        self.orthogonality_center = (center,) if centered else None
        return truncation_error, s_vec

    def split_bond(self, u: Vertex, v: Vertex) -> NDArray[np.complex128]:
        """Expose the bond matrix on the edge (u, v).

        The center tensor at ``u`` is replaced by an isometry toward ``v`` and the remainder is returned as a
        matrix (bond at u, bond at v). Until :meth:`absorb_bond` is called the state has no vertex center.
        """
        if self.orthogonality_center != (u,):
            self.orthogonalize(u)
        q_tensor, r_mat = qr_toward(self.tensors[u], self.leg(u, v))
        self.tensors[u] = q_tensor
        self.orthogonality_center = (u, v)
        return r_mat

    def absorb_bond(self, bond: NDArray[np.complex128], u: Vertex, v: Vertex) -> None:
        """Multiply a bond matrix from :meth:`split_bond` into ``v``, which becomes the center."""
        self.tensors[v] = absorb(self.tensors[v], bond, self.leg(v, u))
        self.orthogonality_center = (v,)


class TTNO:
    """Tree Tensor Network Operator.

    Attributes:
        tree: The underlying tree.
        tensors: Mapping vertex -> tensor of shape (d_v out, d_v in, w_1, ..., w_k).
    """

    def __init__(self, tree: Tree, tensors: Mapping[Vertex, NDArray[np.complex128]]) -> None:
        """Initializes a TTNO from explicit tensors.

        Raises:
            ValueError: If the tensors do not fit the tree.
        """
        self.tree = tree
        _check_complete(tree, tensors)
        self.tensors = {v: np.asarray(tensors[v], dtype=np.complex128) for v in tree.vertices}
        self.check_if_valid_ttno()

    @classmethod
    def identity(cls, tree: Tree) -> TTNO:
        """The identity operator with bond dimension one."""
        tensors = {}
        for v in tree.vertices:
            d = tree.physical_dimension(v)
            tensors[v] = np.eye(d, dtype=np.complex128).reshape((d, d) + (1,) * tree.degree(v))
        return cls(tree, tensors)

    def check_if_valid_ttno(self) -> None:
        """Raises a ValueError if ranks, physical dimensions or bond dimensions are inconsistent."""
        _check_network(self.tree, self.tensors, num_physical=2)

    def bond_dimensions(self) -> dict[frozenset[Vertex], int]:
        tree = self.tree
        return {frozenset((u, v)): self.tensors[u].shape[2 + tree.neighbors(u).index(v)] for u, v in tree.edges}

    def max_bond_dimension(self) -> int:
        return max(self.bond_dimensions().values(), default=1)

    def to_matrix(self) -> NDArray[np.complex128]:
        """Dense matrix in ``tree.vertices`` tensor-product order."""
        return dense_operator(self)

    def is_hermitian(self, atol: float = 1e-10) -> bool:
        """Hermiticity check on the dense matrix; small trees only."""
        mat = self.to_matrix()
        return bool(np.allclose(mat, mat.conj().T, atol=atol))


def _check_complete(tree: Tree, tensors: Mapping[Vertex, NDArray[np.complex128]]) -> None:
    for v in tree.vertices:
        if v not in tensors:
            msg = f"Missing tensor for vertex {v!r}."
            raise ValueError(msg)


def _check_network(tree: Tree, tensors: Mapping[Vertex, NDArray[np.complex128]], num_physical: int) -> None:
    _check_complete(tree, tensors)
    for v in tree.vertices:
        tensor = tensors[v]
        expected_rank = num_physical + tree.degree(v)
        if tensor.ndim != expected_rank:
            msg = f"Tensor at vertex {v!r} has rank {tensor.ndim}, expected {expected_rank}."
            raise ValueError(msg)
        d = tree.physical_dimension(v)
        if any(tensor.shape[k] != d for k in range(num_physical)):
            msg = f"Tensor at vertex {v!r} has physical dimension {tensor.shape[:num_physical]}, expected {d}."
            raise ValueError(msg)
    for u, v in tree.edges:
        du = tensors[u].shape[num_physical + tree.neighbors(u).index(v)]
        dv = tensors[v].shape[num_physical + tree.neighbors(v).index(u)]
        if du != dv:
            msg = f"Bond dimension mismatch on edge ({u!r}, {v!r}): {du} != {dv}."
            raise ValueError(msg)


def _max_bond_dimension(tree: Tree, u: Vertex, v: Vertex) -> int:
    """Largest meaningful bond dimension across (u, v): the Hilbert space size of the smaller side."""
    side_u = tree.side(u, v)
    dim_u = math.prod(tree.physical_dimension(w) for w in side_u)
    dim_v = math.prod(tree.physical_dimension(w) for w in tree.vertices if w not in side_u)
    return max(1, min(dim_u, dim_v))


def _depth(v: Vertex, parents: Mapping[Vertex, Vertex | None]) -> int:
    depth = 0
    while parents[v] is not None:
        v = parents[v]
        depth += 1
    return depth

