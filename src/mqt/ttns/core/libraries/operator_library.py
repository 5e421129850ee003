# Copyright (c) 2023 - 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Library of local operators.

This module defines the single-site operators from which Hamiltonians are assembled.
Each operator is implemented as a class derived from BaseOperator and carries its matrix representation
for a given local dimension. Spin operators are defined for arbitrary spin S = (d - 1) / 2, bosonic
operators for an arbitrary truncation d, Pauli matrices only for d = 2.
The OperatorLibrary class resolves operator names (as used in an OpSum) to these classes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def _spin_matrices(d: int) -> tuple[NDArray[np.complex128], NDArray[np.complex128]]:
    """Sz and S+ for spin (d - 1) / 2 in the basis m = S, S - 1, ..., -S."""
    spin = (d - 1) / 2
    m = spin - np.arange(d)
    sz = np.diag(m).astype(np.complex128)
    sp = np.zeros((d, d), dtype=np.complex128)
    for k in range(1, d):
        # <m + 1| S+ |m> with m = m[k]
        sp[k - 1, k] = np.sqrt(spin * (spin + 1) - m[k] * (m[k] + 1))
    return sz, sp


class BaseOperator:
    """Base class representing a local operator.

    Attributes:
        name: The name of the operator.
        matrix: The matrix representation of the operator.
        dimension: The local dimension the operator acts on.
    """

    name: str = "custom"
    matrix: NDArray[np.complex128]
    dimension: int

    def __init__(self, mat: NDArray[np.complex128]) -> None:
        """Initializes a BaseOperator instance with the given matrix.

        Args:
            mat: The matrix representation of the operator.

        Raises:
            ValueError: If the matrix is not square.
        """
        mat = np.asarray(mat, dtype=np.complex128)
        if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
            msg = "Matrix must be square"
            raise ValueError(msg)
        self.matrix = mat
        self.dimension = mat.shape[0]

    def __add__(self, other: BaseOperator) -> BaseOperator:
        """Adds two operators together.

        Raises:
            ValueError: If the operators act on different local dimensions.
        """
        if self.dimension != other.dimension:
            msg = "Cannot add operators with different dimensions"
            raise ValueError(msg)
        return BaseOperator(self.matrix + other.matrix)

    def __sub__(self, other: BaseOperator) -> BaseOperator:
        """Subtracts one operator from another.

        Raises:
            ValueError: If the operators act on different local dimensions.
        """
        if self.dimension != other.dimension:
            msg = "Cannot subtract operators with different dimensions"
            raise ValueError(msg)
        return BaseOperator(self.matrix - other.matrix)

    def __mul__(self, other: BaseOperator | complex) -> BaseOperator:
        """Multiplies two operators or scales an operator by a scalar.

        Raises:
            ValueError: If two operators act on different local dimensions.
        """
        if isinstance(other, BaseOperator):
            if self.dimension != other.dimension:
                msg = "Cannot multiply operators with different dimensions"
                raise ValueError(msg)
            return BaseOperator(self.matrix @ other.matrix)
        return BaseOperator(self.matrix * other)

    def __rmul__(self, other: complex) -> BaseOperator:
        return BaseOperator(self.matrix * other)

    def __matmul__(self, other: BaseOperator) -> BaseOperator:
        return self.__mul__(other)

    def dag(self) -> BaseOperator:
        """Returns the conjugate transpose (dagger) of the operator."""
        return BaseOperator(np.conj(self.matrix).T)

    def conj(self) -> BaseOperator:
        """Returns the complex conjugate of the operator."""
        return BaseOperator(np.conj(self.matrix))

    def trans(self) -> BaseOperator:
        """Returns the transpose of the operator."""
        return BaseOperator(self.matrix.T)

    def is_hermitian(self, atol: float = 1e-12) -> bool:
        return bool(np.allclose(self.matrix, np.conj(self.matrix).T, atol=atol))


class _PauliOperator(BaseOperator):
    """Pauli matrices only exist for qubits."""

    pauli: ClassVar[NDArray[np.complex128]]

    def __init__(self, d: int = 2) -> None:
        if d != 2:
            msg = f"Operator {self.name} is only defined for local dimension 2, got {d}."
            raise ValueError(msg)
        super().__init__(self.pauli)


class X(_PauliOperator):
    """Pauli X."""

    name = "X"
    pauli = np.array([[0, 1], [1, 0]], dtype=np.complex128)


class Y(_PauliOperator):
    """Pauli Y."""

    name = "Y"
    pauli = np.array([[0, -1j], [1j, 0]], dtype=np.complex128)


class Z(_PauliOperator):
    """Pauli Z."""

    name = "Z"
    pauli = np.array([[1, 0], [0, -1]], dtype=np.complex128)


class Id(BaseOperator):
    """Identity on a d-dimensional site."""

    name = "Id"

    def __init__(self, d: int = 2) -> None:
        super().__init__(np.eye(d, dtype=np.complex128))


class Sz(BaseOperator):
    """Spin z component, S^z = diag(S, ..., -S)."""

    name = "Sz"

    def __init__(self, d: int = 2) -> None:
        super().__init__(_spin_matrices(d)[0])


class Splus(BaseOperator):
    """Spin raising operator S^+."""

    name = "S+"

    def __init__(self, d: int = 2) -> None:
        super().__init__(_spin_matrices(d)[1])


class Sminus(BaseOperator):
    """Spin lowering operator S^-."""

    name = "S-"

    def __init__(self, d: int = 2) -> None:
        super().__init__(_spin_matrices(d)[1].conj().T)


class Sx(BaseOperator):
    """Spin x component, (S^+ + S^-) / 2."""

    name = "Sx"

    def __init__(self, d: int = 2) -> None:
        sp = _spin_matrices(d)[1]
        super().__init__((sp + sp.conj().T) / 2)


class Sy(BaseOperator):
    """Spin y component, (S^+ - S^-) / 2i."""

    name = "Sy"

    def __init__(self, d: int = 2) -> None:
        sp = _spin_matrices(d)[1]
        super().__init__((sp - sp.conj().T) / 2j)


class Destroy(BaseOperator):
    """Bosonic annihilation operator truncated to d levels."""

    name = "A"

    def __init__(self, d: int = 2) -> None:
        super().__init__(np.diag(np.sqrt(np.arange(1, d)), 1))


class Create(BaseOperator):
    """Bosonic creation operator truncated to d levels."""

    name = "Adag"

    def __init__(self, d: int = 2) -> None:
        super().__init__(np.diag(np.sqrt(np.arange(1, d)), -1))


class Number(BaseOperator):
    """Occupation number operator diag(0, 1, ..., d - 1)."""

    name = "N"

    def __init__(self, d: int = 2) -> None:
        super().__init__(np.diag(np.arange(d)))


class Proj0(BaseOperator):
    """Projector onto the first basis state."""

    name = "Proj0"

    def __init__(self, d: int = 2) -> None:
        mat = np.zeros((d, d))
        mat[0, 0] = 1
        super().__init__(mat)


class Proj1(BaseOperator):
    """Projector onto the second basis state."""

    name = "Proj1"

    def __init__(self, d: int = 2) -> None:
        if d < 2:
            msg = "Proj1 needs a local dimension of at least 2."
            raise ValueError(msg)
        mat = np.zeros((d, d))
        mat[1, 1] = 1
        super().__init__(mat)


class OperatorLibrary:
    """Name registry of all local operators.

    Names are case sensitive. Several aliases point to the same class (e.g. ``"S+"`` and ``"Sp"``).
    """

    x = X
    y = Y
    z = Z
    id = Id
    sz = Sz
    sx = Sx
    sy = Sy
    splus = Splus
    sminus = Sminus
    destroy = Destroy
    create = Create
    number = Number
    proj0 = Proj0
    proj1 = Proj1

    names: ClassVar[dict[str, type[BaseOperator]]] = {
        "X": X,
        "Y": Y,
        "Z": Z,
        "Id": Id,
        "I": Id,
        "Sz": Sz,
        "Sx": Sx,
        "Sy": Sy,
        "S+": Splus,
        "Sp": Splus,
        "S-": Sminus,
        "Sm": Sminus,
        "A": Destroy,
        "a": Destroy,
        "Adag": Create,
        "adag": Create,
        "N": Number,
        "n": Number,
        "Proj0": Proj0,
        "Proj1": Proj1,
    }

    @classmethod
    def get(cls, name: str, d: int = 2) -> BaseOperator:
        """Instantiate the operator registered under ``name`` for local dimension ``d``.

        Args:
            name: Registered operator name.
            d: Local dimension of the site.

        Returns:
            BaseOperator: The operator.

        Raises:
            ValueError: If the name is unknown or the operator does not exist for this dimension.
        """
        try:
            op_class = cls.names[name]
        except (KeyError, TypeError):
            msg = f"Unknown operator name {name!r}."
            raise ValueError(msg) from None
        return op_class(d)

    @classmethod
    def matrix(cls, name: str, d: int = 2) -> NDArray[np.complex128]:
        """Matrix of the operator registered under ``name``."""
        return cls.get(name, d).matrix

    @classmethod
    def product(cls, names: tuple[str, ...], d: int = 2) -> NDArray[np.complex128]:
        """Matrix product of several named operators on the same site, in the order given."""
        mat = np.eye(d, dtype=np.complex128)
        for name in names:
            mat = mat @ cls.matrix(name, d)
        return mat
