"""Tests for the interchangeable 0/1 program solvers."""

import threading

import numpy as np
import pytest
from scipy import sparse

from polyrecon.steps.s05_face_selection._program import BinaryProgram, SolveStatus
from polyrecon.steps.s05_face_selection._solvers import (
    BranchAndBoundSolver,
    HighsMilpSolver,
    available_solvers,
    create_solver,
)
from polyrecon.steps.s05_face_selection.config import SolverKind

ALL_SOLVERS = [SolverKind.HIGHS, SolverKind.BRANCH_AND_BOUND]


def small_program(upper=None, min_total: float = 2.0) -> BinaryProgram:
    """minimize -2 x0 - x1 + 0.5 x2
    s.t. x0 + x1 <= 1, x2 - x0 >= 0, x0 + x1 + x2 == min_total
    """
    A = sparse.csr_matrix(np.array([
        [1.0, 1.0, 0.0],
        [-1.0, 0.0, 1.0],
        [1.0, 1.0, 1.0],
    ]))
    return BinaryProgram(
        c=np.array([-2.0, -1.0, 0.5]),
        constant=0.0,
        A=A,
        lb=np.array([-np.inf, 0.0, min_total]),
        ub=np.array([1.0, np.inf, min_total]),
        upper=np.ones(3) if upper is None else np.asarray(upper, dtype=float),
        num_faces=3,
        num_planes=0,
        fan_edges=[],
    )


class TestRegistry:
    def test_available(self):
        solvers = available_solvers()
        assert solvers[SolverKind.HIGHS] is HighsMilpSolver
        assert solvers[SolverKind.BRANCH_AND_BOUND] is BranchAndBoundSolver
        assert all(cls.description for cls in solvers.values())

    def test_create_by_name(self):
        solver = create_solver("branch_and_bound", node_limit=10)
        assert isinstance(solver, BranchAndBoundSolver)
        assert solver.node_limit == 10
        assert solver.kind == SolverKind.BRANCH_AND_BOUND

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            create_solver("cplex")


class TestSolve:
    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_optimal(self, kind):
        result = create_solver(kind).solve(small_program())
        assert result.status == SolveStatus.OPTIMAL
        np.testing.assert_array_equal(result.x, [1, 0, 1])
        assert result.objective == pytest.approx(-1.5)

    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_fixed_variable(self, kind):
        result = create_solver(kind).solve(small_program(upper=[0, 1, 1]))
        assert result.status == SolveStatus.OPTIMAL
        np.testing.assert_array_equal(result.x, [0, 1, 1])
        assert result.objective == pytest.approx(-0.5)

    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_infeasible(self, kind):
        result = create_solver(kind).solve(small_program(min_total=3.0))
        assert result.status == SolveStatus.INFEASIBLE
        assert result.x is None

    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_cancelled(self, kind):
        event = threading.Event()
        event.set()
        result = create_solver(kind, cancel_event=event).solve(small_program())
        assert result.status == SolveStatus.NO_SOLUTION
        assert result.x is None

    def test_constant_is_added(self):
        program = small_program()
        program.constant = 10.0
        result = create_solver(SolverKind.HIGHS).solve(program)
        assert result.objective == pytest.approx(8.5)

    def test_split_rows(self):
        A_ub, b_ub, A_eq, b_eq = BranchAndBoundSolver._split_rows(small_program())
        # x0 + x1 <= 1 and -(x2 - x0) <= 0
        assert A_ub.shape == (2, 3)
        np.testing.assert_array_equal(b_ub, [1.0, -0.0])
        np.testing.assert_array_equal(A_eq.toarray(), [[1.0, 1.0, 1.0]])
        np.testing.assert_array_equal(b_eq, [2.0])


def mixed_program() -> BinaryProgram:
    """minimize -x0 - x1 + 0.5 t
    s.t. t - 1.5 x0 - 1.5 x1 >= 0, x0 + x1 <= 1.5, with t continuous in [0, 10]
    """
    A = sparse.csr_matrix(np.array([
        [-1.5, -1.5, 1.0],
        [1.0, 1.0, 0.0],
    ]))
    return BinaryProgram(
        c=np.array([-1.0, -1.0, 0.5]),
        constant=0.0,
        A=A,
        lb=np.array([0.0, -np.inf]),
        ub=np.array([np.inf, 1.5]),
        upper=np.array([1.0, 1.0, 10.0]),
        num_faces=2,
        num_planes=0,
        fan_edges=[],
        integrality=np.array([1, 1, 0]),
    )


class TestContinuousVariables:
    def test_defaults_are_binary(self):
        program = small_program()
        np.testing.assert_array_equal(program.lower, np.zeros(3))
        assert program.integer_mask.all()

    def test_round_integers_keeps_continuous(self):
        program = mixed_program()
        np.testing.assert_allclose(program.round_integers(np.array([0.9999999, 1e-8, 1.5])), [1.0, 0.0, 1.5])

    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_mixed_optimal(self, kind):
        # The relaxation picks x = (1, 0.5); only one binary can be set
        result = create_solver(kind).solve(mixed_program())
        assert result.status == SolveStatus.OPTIMAL
        assert result.x[:2].sum() == 1.0
        assert result.x[2] == pytest.approx(1.5)
        assert result.objective == pytest.approx(-0.25)

    @pytest.mark.parametrize("kind", ALL_SOLVERS)
    def test_lower_bound_is_respected(self, kind):
        program = mixed_program()
        program.lower = np.array([0.0, 0.0, 2.0])
        result = create_solver(kind).solve(program)
        assert result.status == SolveStatus.OPTIMAL
        assert result.x[2] >= 2.0 - 1e-9
