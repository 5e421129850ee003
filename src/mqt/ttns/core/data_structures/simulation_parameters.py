# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Sweep parameters and observers.

This module provides the configuration of a sweep (SweepParams), the choice of matrix exponentiation backend
used by TDVP (ExponentiationBackend), and the Observer class that collects user defined quantities while a
sweep runs. Every value is validated when the object is created so that invalid configurations are rejected
before any tensor is touched.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ..methods.sweeps import SweepContext


class ExponentiationBackend(Enum):
    """Enumerates the ways a TDVP region is propagated in time."""

    KRYLOV = "krylov"
    ODE = "ode"


def _schedule(value: float | Sequence[float], name: str) -> list:
    if isinstance(value, (int, float)):
        return [value]
    schedule = list(value)
    if not schedule:
        msg = f"The {name} schedule must not be empty."
        raise ValueError(msg)
    return schedule


class SweepParams:
    """Sweep Parameters.

    A class to represent the configuration shared by DMRG, DMRG-X and TDVP.

    Attributes:
    -----------
    nsweeps :
        Number of full sweeps (forward and backward half sweep).
    maxdim :
        Maximum bond dimension, or one value per sweep. The last value is repeated.
    cutoff :
        Relative truncation threshold on the discarded weight, or one value per sweep.
    mindim :
        Minimum bond dimension kept by a truncation.
    nsite :
        Number of vertices per region, 1 or 2.
    reverse_step :
        Whether TDVP applies the backward step to the vertex or bond left behind by a region.
        None lets the algorithm choose (on for TDVP, off for DMRG).
    normalize :
        Whether the region tensor is normalized after every local update.
    time_step :
        Time step per sweep for TDVP. None divides the total time evenly over ``nsweeps``.
    outputlevel :
        Verbosity: 0 is silent, 1 logs every sweep, 2 logs every region.
    show_progress :
        Whether a progress bar is shown over the sweeps.

    Methods:
    --------
    maxdim_at(sweep) -> int:
        The maximum bond dimension of a sweep.
    cutoff_at(sweep) -> float:
        The truncation threshold of a sweep.
    """

    def __init__(
        self,
        nsweeps: int = 10,
        maxdim: int | Sequence[int] = 64,
        cutoff: float | Sequence[float] = 1e-12,
        mindim: int = 1,
        nsite: int = 2,
        time_step: complex | None = None,
        outputlevel: int = 0,
        *,
        reverse_step: bool | None = None,
        normalize: bool = True,
        show_progress: bool = False,
    ) -> None:
        """Sweep parameters initialization.

        Parameters
        ----------
        nsweeps :
            Number of full sweeps, by default 10.
        maxdim :
            Maximum bond dimension or per-sweep schedule, by default 64.
        cutoff :
            Truncation threshold or per-sweep schedule, by default 1e-12.
        mindim :
            Minimum bond dimension, by default 1.
        nsite :
            Region size, by default 2.
        time_step :
            TDVP time step, by default None.
        outputlevel :
            Verbosity, by default 0.
        reverse_step :
            TDVP reverse step, by default chosen by the algorithm.
        normalize :
            Normalize after every local update, by default True.
        show_progress :
            Show a progress bar, by default False.

        Raises:
        ------
        ValueError
            If any value is outside its admissible range.
        """
        if isinstance(nsweeps, bool) or not isinstance(nsweeps, int) or nsweeps <= 0:
            msg = f"nsweeps must be a positive integer, got {nsweeps!r}."
            raise ValueError(msg)
        if nsite not in {1, 2}:
            msg = f"nsite must be 1 or 2, got {nsite!r}."
            raise ValueError(msg)
        maxdims = _schedule(maxdim, "maxdim")
        if any(int(m) != m or m <= 0 for m in maxdims):
            msg = f"maxdim must contain positive integers, got {maxdim!r}."
            raise ValueError(msg)
        cutoffs = _schedule(cutoff, "cutoff")
        if any(c < 0 for c in cutoffs):
            msg = f"cutoff must be non-negative, got {cutoff!r}."
            raise ValueError(msg)
        if mindim <= 0:
            msg = f"mindim must be positive, got {mindim!r}."
            raise ValueError(msg)
        if outputlevel < 0:
            msg = f"outputlevel must be non-negative, got {outputlevel!r}."
            raise ValueError(msg)
        if time_step is not None and time_step == 0:
            msg = "time_step must be non-zero."
            raise ValueError(msg)

        self.nsweeps = nsweeps
        self.maxdim = [int(m) for m in maxdims]
        self.cutoff = [float(c) for c in cutoffs]
        self.mindim = mindim
        self.nsite = nsite
        self.time_step = time_step
        self.outputlevel = outputlevel
        self.reverse_step = reverse_step
        self.normalize = normalize
        self.show_progress = show_progress

    def maxdim_at(self, sweep: int) -> int:
        return self.maxdim[min(sweep, len(self.maxdim) - 1)]

    def cutoff_at(self, sweep: int) -> float:
        return self.cutoff[min(sweep, len(self.cutoff) - 1)]

    def __repr__(self) -> str:
        return (
            f"SweepParams(nsweeps={self.nsweeps}, maxdim={self.maxdim}, cutoff={self.cutoff}, "
            f"mindim={self.mindim}, nsite={self.nsite}, time_step={self.time_step}, "
            f"reverse_step={self.reverse_step}, normalize={self.normalize}, outputlevel={self.outputlevel})"
        )


class Observer:
    """A named quantity recorded while a sweep runs.

    Attributes:
    -----------
    name :
        Key under which the values are stored.
    function :
        Called with the SweepContext of every matching step; must not modify the context.
    granularity :
        "sweep" records once per full sweep, "region" once per region update.
    """

    GRANULARITIES = ("sweep", "region")

    def __init__(self, name: str, function: Callable[[SweepContext], object], granularity: str = "sweep") -> None:
        if not name:
            msg = "An observer needs a non-empty name."
            raise ValueError(msg)
        if not callable(function):
            msg = f"Observer {name!r}: function is not callable."
            raise ValueError(msg)
        if granularity not in self.GRANULARITIES:
            msg = f"Observer {name!r}: granularity must be one of {self.GRANULARITIES}, got {granularity!r}."
            raise ValueError(msg)
        self.name = name
        self.function = function
        self.granularity = granularity

    def __call__(self, context: SweepContext) -> object:
        return self.function(context)

    def __repr__(self) -> str:
        return f"Observer({self.name!r}, granularity={self.granularity!r})"
