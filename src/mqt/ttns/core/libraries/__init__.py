# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License


"""Libraries for fixed structures needed for simulation (e.g., local operators, model Hamiltonians)."""
