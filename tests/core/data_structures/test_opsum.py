# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the operator-sum front end.

This module checks the parsing of terms, the algebra of OpSum objects, validation against a tree and the
exhaustive dense expansion used as reference throughout the test suite.
"""

from __future__ import annotations

import numpy as np
import pytest

from mqt.ttns.core.data_structures.opsum import OpSum, Term
from mqt.ttns.core.data_structures.tree import Tree, path_tree
from mqt.ttns.core.libraries.operator_library import OperatorLibrary


def test_term_parsing() -> None:
    """Test that the coefficient is optional and factors are grouped per vertex."""
    opsum = OpSum()
    opsum += ("Sz", 0, "Sz", 1)
    opsum += (0.5, "S+", 1, "S-", 0, "Sz", 1)
    first, second = opsum
    assert first.coefficient == 1.0
    assert first.support == [0, 1]
    assert second.coefficient == 0.5
    assert second.support == [1, 0]
    assert second.operators_at(1) == ("S+", "Sz")
    assert second.operators_at(0) == ("S-",)


@pytest.mark.parametrize("args", [("Sz", 0, "Sz"), (1.0, 3, 0)])
def test_term_parsing_invalid(args: tuple) -> None:
    """Test that malformed factor lists are rejected."""
    with pytest.raises(ValueError):
        OpSum().add(*args)


def test_opsum_algebra() -> None:
    """Test concatenation and scaling."""
    a = OpSum().add(1.0, "Z", 0)
    b = OpSum().add(2.0, "X", 1)
    c = a + b
    assert len(c) == 2
    scaled = 3 * c
    assert [t.coefficient for t in scaled] == [3.0, 6.0]
    a += Term(1.0, (("X", 0),))
    a += b
    assert len(a) == 3


def test_validate() -> None:
    """Test that unknown vertices and operator names are fatal."""
    tree = path_tree(2)
    with pytest.raises(ValueError, match="unknown vertex"):
        OpSum().add("Sz", 5).validate(tree)
    with pytest.raises(ValueError, match="Unknown operator"):
        OpSum().add("Foo", 0).validate(tree)


def test_to_matrix_two_sites() -> None:
    """Test the dense expansion against explicit Kronecker products."""
    tree = path_tree(2)
    opsum = OpSum()
    opsum += (0.7, "Z", 0, "Z", 1)
    opsum += (0.2, "X", 1)
    x = OperatorLibrary.matrix("X")
    z = OperatorLibrary.matrix("Z")
    expected = 0.7 * np.kron(z, z) + 0.2 * np.kron(np.eye(2), x)
    np.testing.assert_allclose(opsum.to_matrix(tree), expected)


def test_to_matrix_same_site_product() -> None:
    """Test that several factors on one vertex multiply in order."""
    tree = Tree([0], [], physical_dimensions=3)
    opsum = OpSum().add("S+", 0, "S-", 0)
    sp = OperatorLibrary.matrix("S+", 3)
    np.testing.assert_allclose(opsum.to_matrix(tree), sp @ sp.conj().T)
