# Copyright (c) 2025 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Sweep engine shared by DMRG, DMRG-X and TDVP.

A full sweep visits the regions of a fixed plan (see :func:`sweep_plan`) once forward and once backward.
Before every local update the orthogonality center is moved into the region, the projected operator is
positioned on it and the local solver replaces the region tensor. Two-site results are split by a truncated
SVD. The engine issues explicit invalidations of every environment containing a tensor it replaced.

The engine is a small state machine

    IDLE -> SWEEPING_FORWARD <-> SWEEPING_BACKWARD -> DONE

and rejects any other transition with a RuntimeError.
"""

from __future__ import annotations

import copy
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from tqdm import tqdm

from ..data_structures.networks import TTNO
from .environments import ProjectedOperator, ProjectedOperatorSum

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterator, Sequence

    from numpy.typing import NDArray

    from ..data_structures.networks import TTNS
    from ..data_structures.simulation_parameters import Observer, SweepParams
    from ..data_structures.tree import Tree
    from .solvers import SolverInfo

    Vertex = Hashable

logger = logging.getLogger(__name__)


class SweepState(Enum):
    """Enumerates the states of the sweep engine."""

    IDLE = "idle"
    SWEEPING_FORWARD = "sweeping_forward"
    SWEEPING_BACKWARD = "sweeping_backward"
    DONE = "done"


_TRANSITIONS = {
    SweepState.IDLE: {SweepState.SWEEPING_FORWARD},
    SweepState.SWEEPING_FORWARD: {SweepState.SWEEPING_BACKWARD},
    SweepState.SWEEPING_BACKWARD: {SweepState.SWEEPING_FORWARD, SweepState.DONE},
    SweepState.DONE: set(),
}


class SweepStep:
    """One region update of a sweep plan.

    Attributes:
        region: The vertices of the region; for a bond step the two endpoints (center side first).
        time_factor: Multiple of half the time step applied to the region (-1 for reverse steps).
        bond: Whether the region is the bond between ``region[0]`` and ``region[1]``.
        direction: "forward" or "backward".
    """

    def __init__(
        self, region: Sequence[Vertex], time_factor: float = 1.0, *, bond: bool = False, direction: str = "forward"
    ) -> None:
        self.region = tuple(region)
        self.time_factor = time_factor
        self.bond = bond
        self.direction = direction

    def reversed(self) -> SweepStep:
        return SweepStep(self.region[::-1], self.time_factor, bond=self.bond, direction="backward")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SweepStep):
            return NotImplemented
        return (self.region, self.time_factor, self.bond, self.direction) == (
            other.region,
            other.time_factor,
            other.bond,
            other.direction,
        )

    def __hash__(self) -> int:
        return hash((self.region, self.time_factor, self.bond, self.direction))

    def __repr__(self) -> str:
        kind = "bond" if self.bond else "region"
        return f"SweepStep({kind}={self.region!r}, time_factor={self.time_factor}, direction={self.direction!r})"


def sweep_plan(
    tree: Tree, root: Vertex | None = None, nsite: int = 2, *, reverse_step: bool = True
) -> tuple[list[SweepStep], list[SweepStep]]:
    """Regions of the forward and the backward half sweep.

    The forward half follows the post-order depth-first edges toward ``root``. For two-site updates every
    edge (child, parent) is a region, followed (except after the last edge) by the reverse one-site step on
    the parent. For one-site updates every child is a region followed by the reverse bond step toward its
    parent; the root is the last region. The backward half is the forward half in reverse order with every
    region reversed.

    Args:
        tree: The tree.
        root: Root of the traversal; defaults to ``tree.default_root()``.
        nsite: Region size, 1 or 2.
        reverse_step: Whether the reverse steps are part of the plan.

    Returns:
        forward: The steps of the forward half sweep.
        backward: The steps of the backward half sweep.

    Raises:
        ValueError: For an unsupported ``nsite``, or ``nsite=2`` on a single-vertex tree.
    """
    if nsite not in {1, 2}:
        msg = f"nsite must be 1 or 2, got {nsite!r}."
        raise ValueError(msg)
    if root is None:
        root = tree.default_root()
    tree.check_vertex(root)
    edges = tree.post_order_edges(root)
    forward: list[SweepStep] = []
    if nsite == 2:
        if not edges:
            msg = "Two-site sweeps need a tree with at least one edge."
            raise ValueError(msg)
        for i, (child, parent) in enumerate(edges):
            forward.append(SweepStep((child, parent)))
            if reverse_step and i < len(edges) - 1:
                forward.append(SweepStep((parent,), -1.0))
    else:
        for child, parent in edges:
            forward.append(SweepStep((child,)))
            if reverse_step:
                forward.append(SweepStep((child, parent), -1.0, bond=True))
        forward.append(SweepStep((root,)))
    backward = [step.reversed() for step in reversed(forward)]
    return forward, backward


class SweepContext:
    """Read-only snapshot handed to observers.

    Attributes:
        sweep: Index of the sweep (0-based).
        step: Global index of the region update (0-based), counted over all sweeps.
        region: The region just updated.
        direction: "forward" or "backward".
        state: Deep copy of the state after the update.
        eigenvalue: Eigenvalue or energy reported by the local solver.
        current_time: Simulated time at the end of the update.
        truncation_error: Truncation error of this update (of the sweep for sweep observers).
        total_truncation_error: Cumulative truncation error so far.
        info: The SolverInfo of the update.
        maxdim: Bond dimension limit in force.
        cutoff: Truncation threshold in force.
    """

    def __init__(
        self,
        *,
        sweep: int,
        step: int,
        region: tuple[Vertex, ...],
        direction: str,
        state: TTNS,
        eigenvalue: float | None,
        current_time: float,
        truncation_error: float,
        total_truncation_error: float,
        info: SolverInfo | None,
        maxdim: int,
        cutoff: float,
    ) -> None:
        self.sweep = sweep
        self.step = step
        self.region = region
        self.direction = direction
        self.state = state
        self.eigenvalue = eigenvalue
        self.current_time = current_time
        self.truncation_error = truncation_error
        self.total_truncation_error = total_truncation_error
        self.info = info
        self.maxdim = maxdim
        self.cutoff = cutoff


class ObserverResults:
    """Observed values, indexed by the global step at which they were recorded."""

    def __init__(self, names: Sequence[str] = ()) -> None:
        self.steps: dict[str, list[int]] = {name: [] for name in names}
        self.values: dict[str, list[object]] = {name: [] for name in names}

    def record(self, name: str, step: int, value: object) -> None:
        self.steps.setdefault(name, []).append(step)
        self.values.setdefault(name, []).append(value)

    @property
    def names(self) -> list[str]:
        return list(self.values)

    def __getitem__(self, name: str) -> list[object]:
        return self.values[name]

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def as_dict(self) -> dict[str, dict[int, object]]:
        return {name: dict(zip(self.steps[name], values)) for name, values in self.values.items()}

    def __repr__(self) -> str:
        counts = ", ".join(f"{name}: {len(values)}" for name, values in self.values.items())
        return f"ObserverResults({counts})"


class SweepResult:
    """Outcome of a sweep run.

    Attributes:
        state: The final state.
        energy: Energy reported by the last local update.
        energies: Energy at the end of every sweep.
        truncation_error: Cumulative truncation error.
        max_truncation_error: Largest truncation error of a single update.
        converged: False if any local solve was flagged as not converged.
        observations: Values recorded by the observers.
        current_time: Simulated time reached (TDVP).
    """

    def __init__(
        self,
        state: TTNS,
        energy: float | None,
        energies: list[float | None],
        truncation_error: float,
        max_truncation_error: float,
        observations: ObserverResults,
        current_time: float = 0.0,
        *,
        converged: bool = True,
    ) -> None:
        self.state = state
        self.energy = energy
        self.energies = energies
        self.truncation_error = truncation_error
        self.max_truncation_error = max_truncation_error
        self.converged = converged
        self.observations = observations
        self.current_time = current_time

    def __repr__(self) -> str:
        return (
            f"SweepResult(energy={self.energy}, sweeps={len(self.energies)}, "
            f"truncation_error={self.truncation_error:.3e}, converged={self.converged})"
        )


class SweepEngine:
    """Drives a local solver over the regions of a tree tensor network state.

    The state is updated in place. Configuration errors are raised on construction.
    """

    def __init__(
        self,
        operator: TTNO | Sequence[TTNO],
        state: TTNS,
        solver: Callable[..., tuple[NDArray[np.complex128], SolverInfo]],
        params: SweepParams,
        observers: Sequence[Observer] = (),
        coefficients: Sequence[Callable[[float], complex]] | None = None,
        root: Vertex | None = None,
        *,
        time_step: complex | None = None,
        t_start: float = 0.0,
    ) -> None:
        """Initializes the engine.

        Args:
            operator: The operator, or the static operators of a weighted sum.
            state: The state to update in place.
            solver: Local solver (see :mod:`mqt.ttns.core.methods.solvers`).
            params: The sweep parameters.
            observers: Observers called during the run.
            coefficients: Time-dependent weights of the operators.
            root: Root of the sweep plan.
            time_step: Time advanced per full sweep; None for eigensolvers.
            t_start: Simulated time at the start.

        Raises:
            ValueError: If operator and state do not match or the configuration is inconsistent.
        """
        operators = [operator] if isinstance(operator, TTNO) else list(operator)
        if not operators:
            msg = "At least one operator is required."
            raise ValueError(msg)
        tree = state.tree
        for op in operators:
            same_tree = set(op.tree.vertices) == set(tree.vertices) and op.tree.edges == tree.edges
            if op.tree is not tree and not same_tree:
                msg = "Operator and state are defined on different trees."
                raise ValueError(msg)
            for v in tree.vertices:
                if op.tensors[v].shape[0] != state.tensors[v].shape[0]:
                    msg = f"Physical dimension mismatch at vertex {v!r}."
                    raise ValueError(msg)
        if not callable(solver):
            msg = "The local solver must be callable."
            raise ValueError(msg)
        names = [obs.name for obs in observers]
        if len(set(names)) != len(names):
            msg = f"Observer names must be unique, got {names}."
            raise ValueError(msg)

        if coefficients is None and len(operators) == 1:
            self.projected: ProjectedOperator | ProjectedOperatorSum = ProjectedOperator(operators[0], state)
        else:
            self.projected = ProjectedOperatorSum(operators, state, coefficients)

        self.state = state
        self.solver = solver
        self.params = params
        self.observers = list(observers)
        self.time_step = time_step
        self.root = tree.default_root() if root is None else root
        reverse_step = bool(params.reverse_step) if params.reverse_step is not None else False
        self.forward, self.backward = sweep_plan(tree, self.root, params.nsite, reverse_step=reverse_step)

        self.status = SweepState.IDLE
        self.sweep_index = 0
        self.step_index = 0
        self.current_time = t_start
        self.energy: float | None = None
        self.energies: list[float | None] = []
        self.truncation_error = 0.0
        self.max_truncation_error = 0.0
        self.converged = True
        self.observations = ObserverResults(names)
        self._region_observers = [obs for obs in self.observers if obs.granularity == "region"]
        self._sweep_observers = [obs for obs in self.observers if obs.granularity == "sweep"]
        self._last: tuple[SweepStep, SolverInfo] | None = None

    def _transition(self, new: SweepState) -> None:
        if new not in _TRANSITIONS[self.status]:
            msg = f"Illegal sweep transition {self.status.name} -> {new.name}."
            raise RuntimeError(msg)
        self.status = new

    def _move_center(self, region: Sequence[Vertex]) -> None:
        for v in self.state.orthogonalize_region(region):
            self.projected.invalidate(v)

    def _local_time_step(self, step: SweepStep) -> complex | None:
        if self.time_step is None:
            return None
        return step.time_factor * self.time_step / 2

    def _start_time(self, step: SweepStep, half_start: float) -> float:
        """Reverse steps run backward from the end of the half step to its start."""
        dt = self._local_time_step(step)
        if dt is None or step.time_factor > 0:
            return half_start
        return half_start - float(np.real(dt))

    def _update(
        self, step: SweepStep, next_step: SweepStep | None, maxdim: int, cutoff: float, current_time: float
    ) -> tuple[SolverInfo, float]:
        state = self.state
        projected = self.projected
        dt = self._local_time_step(step)
        if step.bond:
            u, v = step.region
            self._move_center((u,))
            bond = state.split_bond(u, v)
            projected.invalidate(u)
            projected.set_region((u, v), bond=True)
            new_bond, info = self.solver(projected, bond, time_step=dt, current_time=current_time)
            if self.params.normalize:
                new_bond = _normalized(new_bond)
            state.absorb_bond(new_bond, u, v)
            projected.invalidate(v)
            return info, 0.0

        region = step.region
        self._move_center(region)
        projected.set_region(region)
        tensor = state.region_tensor(region)
        new_tensor, info = self.solver(projected, tensor, time_step=dt, current_time=current_time)
        if self.params.normalize:
            new_tensor = _normalized(new_tensor)
        center = region[-1]
        if next_step is not None and len(region) > 1:
            target = next_step.region[0]
            center = min(region, key=lambda r: self.state.tree.distance(r, target))
        truncation_error, _ = state.replace_region(
            region, new_tensor, center=center, cutoff=cutoff, maxdim=maxdim, mindim=self.params.mindim
        )
        for r in region:
            projected.invalidate(r)
        return info, truncation_error

    def _half_sweep(self, steps: list[SweepStep], maxdim: int, cutoff: float, current_time: float) -> float:
        """Run the steps of one half sweep and return the truncation error accumulated in it."""
        accumulated = 0.0
        for i, step in enumerate(steps):
            next_step = steps[i + 1] if i + 1 < len(steps) else None
            start = self._start_time(step, current_time)
            info, truncation_error = self._update(step, next_step, maxdim, cutoff, start)
            accumulated += truncation_error
            self.truncation_error += truncation_error
            self.max_truncation_error = max(self.max_truncation_error, truncation_error)
            if info.eigenvalue is not None:
                self.energy = info.eigenvalue
            if not info.converged:
                self.converged = False
                if self.params.outputlevel >= 1:
                    logger.warning(
                        "sweep %d: local solve on %s did not converge (error %.3e)",
                        self.sweep_index + 1,
                        step.region,
                        info.error,
                    )
            if self.params.outputlevel >= 2:
                logger.debug(
                    "sweep %d %s %s%s: eigenvalue=%s truncation=%.3e bond dim=%d",
                    self.sweep_index + 1,
                    step.direction,
                    "bond " if step.bond else "",
                    step.region,
                    info.eigenvalue,
                    truncation_error,
                    self.state.max_bond_dimension(),
                )
            if self._region_observers:
                dt = self._local_time_step(step)
                end_time = start + (float(np.real(dt)) if dt is not None else 0.0)
                context = self._context(self.step_index, step, info, truncation_error, maxdim, cutoff, end_time)
                for obs in self._region_observers:
                    self.observations.record(obs.name, self.step_index, obs(context))
            self.step_index += 1
        self._last = (steps[-1], info)
        return accumulated

    def _context(
        self,
        step_index: int,
        step: SweepStep,
        info: SolverInfo | None,
        truncation_error: float,
        maxdim: int,
        cutoff: float,
        current_time: float,
    ) -> SweepContext:
        return SweepContext(
            sweep=self.sweep_index,
            step=step_index,
            region=step.region,
            direction=step.direction,
            state=copy.deepcopy(self.state),
            eigenvalue=info.eigenvalue if info is not None else self.energy,
            current_time=current_time,
            truncation_error=truncation_error,
            total_truncation_error=self.truncation_error,
            info=info,
            maxdim=maxdim,
            cutoff=cutoff,
        )

    def sweep(self) -> float | None:
        """Perform one full sweep (forward and backward half).

        Returns:
            The energy reported at the end of the sweep.

        Raises:
            RuntimeError: If the engine has finished.
        """
        start = time.time()
        maxdim = self.params.maxdim_at(self.sweep_index)
        cutoff = self.params.cutoff_at(self.sweep_index)
        dt_real = float(np.real(self.time_step)) if self.time_step is not None else 0.0

        self._transition(SweepState.SWEEPING_FORWARD)
        sweep_error = self._half_sweep(self.forward, maxdim, cutoff, self.current_time)
        self._transition(SweepState.SWEEPING_BACKWARD)
        sweep_error += self._half_sweep(self.backward, maxdim, cutoff, self.current_time + dt_real / 2)
        self.current_time += dt_real

        self.energies.append(self.energy)
        last_step, last_info = self._last
        if self._sweep_observers:
            step_index = self.step_index - 1
            context = self._context(step_index, last_step, last_info, sweep_error, maxdim, cutoff, self.current_time)
            for obs in self._sweep_observers:
                self.observations.record(obs.name, step_index, obs(context))
        if self.params.outputlevel >= 1:
            logger.info(
                "sweep %d/%d: energy=%s maxdim=%d truncation=%.3e time=%.3fs",
                self.sweep_index + 1,
                self.params.nsweeps,
                self.energy,
                self.state.max_bond_dimension(),
                sweep_error,
                time.time() - start,
            )
        self.sweep_index += 1
        return self.energy

    def finish(self) -> SweepResult:
        """Stop sweeping and collect the result.

        Raises:
            RuntimeError: If no sweep has been completed or the engine has already finished.
        """
        self._transition(SweepState.DONE)
        return self.result()

    def result(self) -> SweepResult:
        return SweepResult(
            self.state,
            self.energy,
            list(self.energies),
            self.truncation_error,
            self.max_truncation_error,
            self.observations,
            self.current_time,
            converged=self.converged,
        )

    def run(self) -> SweepResult:
        """Perform ``params.nsweeps`` full sweeps and finish.

        Raises:
            RuntimeError: If the engine is not idle.
        """
        if self.status is not SweepState.IDLE:
            msg = f"The sweep engine can only run from IDLE, it is {self.status.name}."
            raise RuntimeError(msg)
        sweeps = range(self.params.nsweeps)
        if self.params.show_progress:
            sweeps = tqdm(sweeps, desc="Sweeping", ncols=80)
        for _ in sweeps:
            self.sweep()
        return self.finish()


def _normalized(tensor: NDArray[np.complex128]) -> NDArray[np.complex128]:
    norm = np.linalg.norm(tensor)
    return tensor / norm if norm > 0 else tensor
