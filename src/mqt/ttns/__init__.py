# Copyright (c) 2023 - 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""MQT TTNS init file.

Tree tensor network sweeping algorithms, a part of the Munich Quantum Toolkit (MQT).
The package provides ground-state search (DMRG), excited-state targeting (DMRG-X)
and real/imaginary time evolution (TDVP) on lattices with tree connectivity.
"""

from __future__ import annotations

from ._version import version as __version__
from ._version import version_tuple as version_info

__all__ = ["__version__", "version_info"]
