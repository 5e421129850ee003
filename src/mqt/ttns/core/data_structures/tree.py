# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tree lattices.

This module defines the Tree class, the geometry on which every tree tensor network lives, together with
generators for common tree lattices (paths, combs, stars and binary trees) and helpers that enumerate
coupling pairs (nearest and next-nearest neighbors) or flatten a tree into a chain ("snake" ordering).

Vertex labels are opaque hashable objects (typically integers or tuples of integers). The order in which
the neighbors of a vertex are listed is fixed at construction and defines the order of the virtual legs of
every tensor attached to that vertex.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable, Iterator, Mapping, Sequence

    Vertex = Hashable


def edge_key(u: Vertex, v: Vertex) -> frozenset[Vertex]:
    """Orientation-free key of the edge between u and v."""
    return frozenset((u, v))


class Tree:
    """Tree graph with a physical dimension attached to every vertex.

    Attributes:
        vertices: The vertex labels in insertion order.
        edges: The undirected edges as vertex pairs in insertion order.
        physical_dimensions: Mapping from vertex to the local Hilbert space dimension.
    """

    def __init__(
        self,
        vertices: Iterable[Vertex],
        edges: Iterable[tuple[Vertex, Vertex]],
        physical_dimensions: int | Mapping[Vertex, int] = 2,
    ) -> None:
        """Initializes a tree and validates its structure.

        Args:
            vertices: Vertex labels. They must be unique and hashable.
            edges: Pairs of vertices. Together they must form a connected acyclic graph.
            physical_dimensions: Either one local dimension for all vertices or a mapping vertex -> dimension.

        Raises:
            ValueError: If the vertices or edges do not describe a tree or a dimension is invalid.
        """
        self.vertices: list[Vertex] = list(vertices)
        if not self.vertices:
            msg = "A tree needs at least one vertex."
            raise ValueError(msg)
        self._index = {v: i for i, v in enumerate(self.vertices)}
        if len(self._index) != len(self.vertices):
            msg = "Vertex labels must be unique."
            raise ValueError(msg)

        self._neighbors: dict[Vertex, list[Vertex]] = {v: [] for v in self.vertices}
        self._parents_cache: dict[Vertex, dict[Vertex, Vertex | None]] = {}
        self.edges: list[tuple[Vertex, Vertex]] = []
        seen: set[frozenset[Vertex]] = set()
        for u, v in edges:
            for w in (u, v):
                if w not in self._index:
                    msg = f"Edge ({u!r}, {v!r}) references unknown vertex {w!r}."
                    raise ValueError(msg)
            if u == v:
                msg = f"Self loop at vertex {u!r} is not allowed in a tree."
                raise ValueError(msg)
            key = edge_key(u, v)
            if key in seen:
                msg = f"Duplicate edge ({u!r}, {v!r})."
                raise ValueError(msg)
            seen.add(key)
            self.edges.append((u, v))
            self._neighbors[u].append(v)
            self._neighbors[v].append(u)

        if len(self.edges) != len(self.vertices) - 1:
            n = len(self.vertices)
            msg = f"A tree with {n} vertices needs {n - 1} edges, got {len(self.edges)}."
            raise ValueError(msg)
        if len(self.pre_order_vertices(self.vertices[0])) != len(self.vertices):
            msg = "The edges do not connect all vertices."
            raise ValueError(msg)

        if isinstance(physical_dimensions, int):
            self.physical_dimensions = dict.fromkeys(self.vertices, physical_dimensions)
        else:
            self.physical_dimensions = {v: int(physical_dimensions[v]) for v in self.vertices}
        for v, d in self.physical_dimensions.items():
            if d < 1:
                msg = f"Physical dimension at vertex {v!r} must be positive, got {d}."
                raise ValueError(msg)

    def __len__(self) -> int:
        return len(self.vertices)

    def __iter__(self) -> Iterator[Vertex]:
        return iter(self.vertices)

    def __contains__(self, vertex: object) -> bool:
        try:
            return vertex in self._index
        except TypeError:
            return False

    def __repr__(self) -> str:
        return f"Tree(vertices={self.vertices!r}, edges={self.edges!r})"

    def check_vertex(self, vertex: Vertex) -> None:
        """Raises a ValueError if the vertex is not part of the tree.

        Args:
            vertex: The vertex to check.

        Raises:
            ValueError: If the vertex is unknown.
        """
        if vertex not in self:
            msg = f"Unknown vertex {vertex!r}."
            raise ValueError(msg)

    def index(self, vertex: Vertex) -> int:
        """Position of the vertex in the vertex list."""
        self.check_vertex(vertex)
        return self._index[vertex]

    def neighbors(self, vertex: Vertex) -> list[Vertex]:
        """Neighbors of a vertex in leg order."""
        self.check_vertex(vertex)
        return list(self._neighbors[vertex])

    def degree(self, vertex: Vertex) -> int:
        self.check_vertex(vertex)
        return len(self._neighbors[vertex])

    def has_edge(self, u: Vertex, v: Vertex) -> bool:
        return u in self and v in self._neighbors[u]

    def physical_dimension(self, vertex: Vertex) -> int:
        self.check_vertex(vertex)
        return self.physical_dimensions[vertex]

    def leaves(self) -> list[Vertex]:
        """Vertices of degree one (or the single vertex of a one-vertex tree)."""
        if len(self.vertices) == 1:
            return list(self.vertices)
        return [v for v in self.vertices if len(self._neighbors[v]) == 1]

    def default_root(self) -> Vertex:
        """The last leaf in vertex order, used as root whenever none is given."""
        return self.leaves()[-1]

    def parents(self, root: Vertex) -> dict[Vertex, Vertex | None]:
        """Parent of every vertex when the tree is rooted at ``root``.

        Args:
            root: The root vertex.

        Returns:
            dict: Mapping vertex -> parent, with ``None`` for the root. The mapping is cached per root and
                must not be modified.
        """
        self.check_vertex(root)
        if root in self._parents_cache:
            return self._parents_cache[root]
        parents: dict[Vertex, Vertex | None] = {root: None}
        queue = deque([root])
        while queue:
            v = queue.popleft()
            for n in self._neighbors[v]:
                if n not in parents:
                    parents[n] = v
                    queue.append(n)
        self._parents_cache[root] = parents
        return parents

    def children(self, root: Vertex) -> dict[Vertex, list[Vertex]]:
        """Children of every vertex in leg order when the tree is rooted at ``root``."""
        parents = self.parents(root)
        return {v: [n for n in self._neighbors[v] if n != parents[v]] for v in self.vertices}

    def pre_order_vertices(self, root: Vertex) -> list[Vertex]:
        """Depth-first pre-order traversal starting at ``root``."""
        self.check_vertex(root)
        order: list[Vertex] = []
        visited = {root}
        stack = [root]
        while stack:
            v = stack.pop()
            order.append(v)
            for n in reversed(self._neighbors[v]):
                if n not in visited:
                    visited.add(n)
                    stack.append(n)
        return order

    def post_order_vertices(self, root: Vertex) -> list[Vertex]:
        """Depth-first post-order traversal ending at ``root``.

        Children are visited in leg order, so every vertex appears after all of its descendants.
        """
        self.check_vertex(root)
        order: list[Vertex] = []
        visited = {root}
        stack: list[tuple[Vertex, Iterator[Vertex]]] = [(root, iter(self._neighbors[root]))]
        while stack:
            v, it = stack[-1]
            for n in it:
                if n not in visited:
                    visited.add(n)
                    stack.append((n, iter(self._neighbors[n])))
                    break
            else:
                stack.pop()
                order.append(v)
        return order

    def post_order_edges(self, root: Vertex) -> list[tuple[Vertex, Vertex]]:
        """Edges as (child, parent) pairs in depth-first post order toward ``root``."""
        parents = self.parents(root)
        return [(v, parents[v]) for v in self.post_order_vertices(root) if v != root]

    def descendants(self, root: Vertex) -> dict[Vertex, set[Vertex]]:
        """For every vertex the set of vertices in its subtree (itself included)."""
        parents = self.parents(root)
        desc: dict[Vertex, set[Vertex]] = {}
        for v in self.post_order_vertices(root):
            desc.setdefault(v, set()).add(v)
            p = parents[v]
            if p is not None:
                desc.setdefault(p, set()).update(desc[v])
        return desc

    def path(self, u: Vertex, v: Vertex) -> list[Vertex]:
        """The unique path from u to v, both included."""
        self.check_vertex(u)
        parents = self.parents(v)
        path = [u]
        while path[-1] != v:
            path.append(parents[path[-1]])
        return path

    def distance(self, u: Vertex, v: Vertex) -> int:
        return len(self.path(u, v)) - 1

    def side(self, u: Vertex, v: Vertex) -> set[Vertex]:
        """Vertices on u's side of the edge (u, v), u included.

        Raises:
            ValueError: If u and v are not adjacent.
        """
        if not self.has_edge(u, v):
            msg = f"({u!r}, {v!r}) is not an edge of the tree."
            raise ValueError(msg)
        return self.descendants(v)[u]

    def steiner_vertices(self, terminals: Iterable[Vertex]) -> set[Vertex]:
        """Vertex set of the smallest subtree containing all terminals."""
        terminals = list(terminals)
        if not terminals:
            return set()
        for t in terminals:
            self.check_vertex(t)
        parents = self.parents(terminals[0])
        subtree = {terminals[0]}
        for t in terminals[1:]:
            v = t
            while v not in subtree:
                subtree.add(v)
                v = parents[v]
        return subtree

    def is_connected_region(self, region: Sequence[Vertex]) -> bool:
        """Whether the vertices induce a connected subtree."""
        region_set = set(region)
        return bool(region_set) and self.steiner_vertices(region_set) == region_set


def path_tree(length: int, physical_dimensions: int | Mapping[Vertex, int] = 2) -> Tree:
    """Linear chain 0 - 1 - ... - (length - 1)."""
    if length < 1:
        msg = "The chain needs at least one site."
        raise ValueError(msg)
    return Tree(range(length), [(i, i + 1) for i in range(length - 1)], physical_dimensions)


def comb_tree(dims: tuple[int, int], physical_dimensions: int | Mapping[Vertex, int] = 2) -> Tree:
    """Comb lattice.

    The spine consists of the vertices ``(i, 0)`` for ``i < nx``; from every spine vertex hangs a tooth
    ``(i, 0) - (i, 1) - ... - (i, ny - 1)``. ``comb_tree((2, 3))`` is a six-site tree of two arms of
    length three joined at the spine.

    Args:
        dims: The pair ``(nx, ny)``.
        physical_dimensions: Local dimension(s) of the sites.

    Returns:
        Tree: The comb.
    """
    nx, ny = dims
    if nx < 1 or ny < 1:
        msg = f"Comb dimensions must be positive, got {dims}."
        raise ValueError(msg)
    vertices = [(i, j) for i in range(nx) for j in range(ny)]
    edges = [((i, 0), (i + 1, 0)) for i in range(nx - 1)]
    edges += [((i, j), (i, j + 1)) for i in range(nx) for j in range(ny - 1)]
    return Tree(vertices, edges, physical_dimensions)


def star_tree(num_leaves: int, physical_dimensions: int | Mapping[Vertex, int] = 2) -> Tree:
    """A center vertex 0 connected to the leaves 1, ..., num_leaves."""
    return Tree(range(num_leaves + 1), [(0, i) for i in range(1, num_leaves + 1)], physical_dimensions)


def binary_tree(depth: int, physical_dimensions: int | Mapping[Vertex, int] = 2) -> Tree:
    """Complete binary tree of the given depth.

    Vertices are tuples of 0/1 branch choices; the root is the empty tuple.
    """
    vertices: list[tuple[int, ...]] = [()]
    edges = []
    frontier: list[tuple[int, ...]] = [()]
    for _ in range(depth):
        new_frontier = []
        for v in frontier:
            for b in (0, 1):
                child = (*v, b)
                vertices.append(child)
                edges.append((v, child))
                new_frontier.append(child)
        frontier = new_frontier
    return Tree(vertices, edges, physical_dimensions)


def nearest_neighbors(tree: Tree) -> list[tuple[Vertex, Vertex]]:
    """Nearest-neighbor pairs, which for a tree are exactly its edges."""
    return list(tree.edges)


def next_nearest_neighbors(tree: Tree) -> list[tuple[Vertex, Vertex]]:
    """Pairs of vertices at distance two, each pair listed once.

    The first vertex of every pair precedes the second one in vertex order.
    """
    pairs = []
    for i, v in enumerate(tree.vertices):
        direct = set(tree.neighbors(v))
        found: list[Any] = []
        for n in tree.neighbors(v):
            for m in tree.neighbors(n):
                if m != v and m not in direct and tree.index(m) > i and m not in found:
                    found.append(m)
        pairs.extend((v, m) for m in found)
    return pairs


def snake_order(tree: Tree, root: Vertex | None = None) -> list[Vertex]:
    """Vertices in reversed depth-first post order, which walks the tree like a snake."""
    if root is None:
        root = tree.default_root()
    return list(reversed(tree.post_order_vertices(root)))


def snake_tree(tree: Tree, root: Vertex | None = None) -> Tree:
    """Chain through the vertices of ``tree`` in snake order.

    The returned path keeps the vertex labels and physical dimensions, so an OpSum defined on ``tree``
    can be compiled on the chain unchanged (couplings then become longer ranged).
    """
    order = snake_order(tree, root)
    return Tree(order, list(zip(order[:-1], order[1:])), tree.physical_dimensions)
