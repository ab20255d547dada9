"""Interchangeable 0/1 program solvers.

Backends register themselves under a ``SolverKind`` and are created by
configuration value, so the selection step never names a concrete solver.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, ClassVar, Optional

import numpy as np
from scipy import sparse
from scipy.optimize import Bounds, LinearConstraint, linprog, milp

from ._program import BinaryProgram, SolverResult, SolveStatus
from .config import SolverKind

logger = logging.getLogger(__name__)

_REGISTRY: dict[SolverKind, type["SolverBackend"]] = {}


def register_solver(kind: SolverKind) -> Callable[[type["SolverBackend"]], type["SolverBackend"]]:
    def decorator(cls: type[SolverBackend]) -> type[SolverBackend]:
        cls.kind = kind
        _REGISTRY[kind] = cls
        return cls
    return decorator


def available_solvers() -> dict[SolverKind, type[SolverBackend]]:
    return dict(_REGISTRY)


def create_solver(kind: SolverKind | str, **options) -> SolverBackend:
    kind = SolverKind(kind)
    if kind not in _REGISTRY:
        raise KeyError(f"No solver registered for {kind.value!r}")
    return _REGISTRY[kind](**options)


class SolverBackend(ABC):
    """Solve a ``BinaryProgram`` to proven optimality, or report why not."""

    kind: ClassVar[SolverKind]
    description: ClassVar[str] = ""

    def __init__(
        self,
        cancel_event: Optional[threading.Event] = None,
        mip_rel_gap: float = 1e-6,
        node_limit: int = 200_000,
    ):
        self.cancel_event = cancel_event or threading.Event()
        self.mip_rel_gap = mip_rel_gap
        self.node_limit = node_limit

    @abstractmethod
    def solve(self, program: BinaryProgram, time_limit: float | None = None) -> SolverResult:
        ...

    def _cancelled(self) -> bool:
        return self.cancel_event.is_set()


@register_solver(SolverKind.HIGHS)
class HighsMilpSolver(SolverBackend):
    description = "HiGHS branch-and-cut through scipy.optimize.milp"

    def solve(self, program: BinaryProgram, time_limit: float | None = None) -> SolverResult:
        if self._cancelled():
            return SolverResult(SolveStatus.NO_SOLUTION, message="cancelled before solve")

        constraints = []
        if program.A.shape[0] > 0:
            constraints.append(LinearConstraint(program.A, program.lb, program.ub))
        options = {"disp": False, "mip_rel_gap": self.mip_rel_gap}
        if time_limit is not None:
            options["time_limit"] = float(time_limit)

        res = milp(
            c=program.c,
            integrality=program.integrality,
            bounds=Bounds(program.lower, program.upper),
            constraints=constraints,
            options=options,
        )
        logger.debug(f"milp status {res.status}: {res.message}")

        if res.status == 0 and res.x is not None:
            x = program.round_integers(res.x)
            return SolverResult(SolveStatus.OPTIMAL, x, program.objective(x), res.message)
        if res.status == 2:
            return SolverResult(SolveStatus.INFEASIBLE, message=res.message)
        if res.status == 1 and res.x is not None:
            x = program.round_integers(res.x)
            return SolverResult(SolveStatus.FEASIBLE, x, program.objective(x), res.message)
        return SolverResult(SolveStatus.NO_SOLUTION, message=res.message)


@register_solver(SolverKind.BRANCH_AND_BOUND)
class BranchAndBoundSolver(SolverBackend):
    """Depth-first branch and bound over LP relaxations.

    Each node solves the relaxation with ``scipy.optimize.linprog`` and
    branches on the most fractional binary variable (continuous variables
    are left to the relaxation), trying the side the relaxation
    leans to first. Nodes whose bound cannot beat the incumbent are pruned.
    The node limit, the time limit and the cancel event are checked between
    nodes; hitting any of them returns the incumbent (if one exists) as
    ``FEASIBLE``.
    """

    description = "Depth-first branch and bound on scipy.optimize.linprog relaxations"

    integrality_tol: ClassVar[float] = 1e-6

    @staticmethod
    def _split_rows(program: BinaryProgram):
        A = program.A.tocsr()
        eq = np.isfinite(program.lb) & np.isfinite(program.ub) & (program.lb == program.ub)
        upper = ~eq & np.isfinite(program.ub)
        lower = ~eq & np.isfinite(program.lb)

        blocks, rhs = [], []
        if upper.any():
            blocks.append(A[upper])
            rhs.append(program.ub[upper])
        if lower.any():
            blocks.append(-A[lower])
            rhs.append(-program.lb[lower])

        A_ub = sparse.vstack(blocks).tocsr() if blocks else None
        b_ub = np.concatenate(rhs) if rhs else None
        A_eq = A[eq] if eq.any() else None
        b_eq = program.ub[eq] if eq.any() else None
        return A_ub, b_ub, A_eq, b_eq

    def solve(self, program: BinaryProgram, time_limit: float | None = None) -> SolverResult:
        A_ub, b_ub, A_eq, b_eq = self._split_rows(program)
        t0 = time.time()

        best_x: np.ndarray | None = None
        best_obj = np.inf
        nodes = 0
        stopped = ""
        lp_failures = 0

        integer = program.integer_mask
        stack = [(program.lower.astype(float).copy(), program.upper.astype(float).copy())]
        while stack:
            if self._cancelled():
                stopped = "cancelled"
                break
            if time_limit is not None and time.time() - t0 > time_limit:
                stopped = "time limit reached"
                break
            if nodes >= self.node_limit:
                stopped = "node limit reached"
                break

            lo, hi = stack.pop()
            nodes += 1
            res = linprog(
                program.c,
                A_ub=A_ub, b_ub=b_ub, A_eq=A_eq, b_eq=b_eq,
                bounds=np.column_stack([lo, hi]),
                method="highs",
            )
            if res.status == 2:
                continue
            if res.status != 0:
                lp_failures += 1
                continue
            if res.fun >= best_obj - 1e-9:
                continue

            x = res.x
            frac = np.minimum(x - np.floor(x), np.ceil(x) - x)
            frac[~integer] = 0.0
            j = int(np.argmax(frac))
            if frac[j] <= self.integrality_tol:
                best_x = program.round_integers(x)
                best_obj = float(program.c @ best_x)
                logger.debug(f"B&B node {nodes}: incumbent {best_obj + program.constant:.6f}")
                continue

            lo_up, hi_down = lo.copy(), hi.copy()
            lo_up[j] = 1.0
            hi_down[j] = 0.0
            # Last pushed is explored first
            if x[j] >= 0.5:
                stack.append((lo, hi_down))
                stack.append((lo_up, hi))
            else:
                stack.append((lo_up, hi))
                stack.append((lo, hi_down))

        logger.info(f"Branch and bound explored {nodes} nodes in {time.time() - t0:.2f}s")

        if stopped:
            if best_x is None:
                return SolverResult(SolveStatus.NO_SOLUTION, message=stopped)
            return SolverResult(SolveStatus.FEASIBLE, best_x, program.objective(best_x), stopped)
        if best_x is None:
            if lp_failures:
                return SolverResult(
                    SolveStatus.NO_SOLUTION,
                    message=f"{lp_failures} relaxations failed to solve",
                )
            return SolverResult(SolveStatus.INFEASIBLE, message="no integral solution exists")
        if lp_failures:
            return SolverResult(
                SolveStatus.FEASIBLE, best_x, program.objective(best_x),
                f"{lp_failures} relaxations failed to solve",
            )
        return SolverResult(SolveStatus.OPTIMAL, best_x, program.objective(best_x), "optimal")
