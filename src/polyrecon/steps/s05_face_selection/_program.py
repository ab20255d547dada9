"""Binary program for face selection.

Variable layout: one x per candidate face, one y per supporting plane,
(closed-surface mode) one e per edge shared by two or more faces, then the
continuous s = 1 / sum_f x_f and one continuous z_f = x_f * s per face.
The x, y and e variables are binary.

    minimize  w1 * (1 - sum_f z_f * fitting_f)
            + w2 * (1 - sum_f z_f * coverage_f)
            + w3 * sum_p y_p / num_planes

    x_f - y_plane(f)               <= 0      plane chaining
    sum_{f on k} x_f - 2 e_k        = 0      closed surface, per fan edge k
    sum_{f on k} x_f               <= 2      open surface, per over-shared edge k
    x_a + x_b                      <= 1      mutually intersecting faces
    sum_f x_f                      >= m      non-empty result
    z_f - s_max x_f                <= 0      z_f = x_f * s (McCormick)
    z_f - s                        <= 0
    z_f - s - s_max x_f            >= -s_max
    sum_f z_f                       = 1      s = 1 / sum_f x_f

With s in [1 / |F|, s_max] and s_max = 1 / m, the McCormick rows are exact
for binary x, so sum_f z_f * score_f is the mean score of the selection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np
from scipy import sparse

from polyrecon.core.model import AdjacencyConstraints, CandidateMesh
from .config import FaceSelectionConfig

logger = logging.getLogger(__name__)


@dataclass
class BinaryProgram:
    """Solver-agnostic mixed 0/1 program: minimize c @ x + constant s.t. lb <= A @ x <= ub.

    Variables are binary unless ``integrality`` marks them 0 (continuous),
    and every variable lies in ``[lower, upper]``.
    """

    c: np.ndarray
    constant: float
    A: sparse.csr_matrix
    lb: np.ndarray
    ub: np.ndarray
    upper: np.ndarray  # per-variable upper bound (0 fixes a binary to 0)
    num_faces: int
    num_planes: int
    fan_edges: list[int]
    lower: np.ndarray | None = None
    integrality: np.ndarray | None = None

    def __post_init__(self) -> None:
        if self.lower is None:
            self.lower = np.zeros(len(self.c))
        if self.integrality is None:
            self.integrality = np.ones(len(self.c))

    @property
    def num_vars(self) -> int:
        return len(self.c)

    @property
    def integer_mask(self) -> np.ndarray:
        return np.asarray(self.integrality) > 0

    def round_integers(self, x: np.ndarray) -> np.ndarray:
        """Snap the binary entries of a solver solution, keep continuous ones."""
        x = np.asarray(x, dtype=float).copy()
        mask = self.integer_mask
        x[mask] = np.round(x[mask])
        return x

    def objective(self, x: np.ndarray) -> float:
        return float(self.c @ x + self.constant)


class SolveStatus(str, Enum):
    OPTIMAL = "optimal"
    FEASIBLE = "feasible"  # limit reached with an incumbent
    INFEASIBLE = "infeasible"
    NO_SOLUTION = "no_solution"


@dataclass
class SolverResult:
    status: SolveStatus
    x: np.ndarray | None = None
    objective: float = float("nan")
    message: str = ""


class _RowBuilder:
    def __init__(self) -> None:
        self.rows: list[int] = []
        self.cols: list[int] = []
        self.vals: list[float] = []
        self.lb: list[float] = []
        self.ub: list[float] = []

    def add(self, coeffs: dict[int, float], lb: float, ub: float) -> None:
        r = len(self.lb)
        for col, val in coeffs.items():
            self.rows.append(r)
            self.cols.append(col)
            self.vals.append(val)
        self.lb.append(lb)
        self.ub.append(ub)

    def matrix(self, num_vars: int) -> sparse.csr_matrix:
        return sparse.csr_matrix(
            (self.vals, (self.rows, self.cols)), shape=(len(self.lb), num_vars),
        )


def formulate_selection(
    mesh: CandidateMesh,
    constraints: AdjacencyConstraints,
    cfg: FaceSelectionConfig,
) -> BinaryProgram:
    num_faces = mesh.num_faces
    num_planes = len(mesh.planes)
    fan_edges = sorted(constraints.edge_fans) if cfg.closed_surface else []
    y0 = num_faces
    e0 = num_faces + num_planes
    s_col = e0 + len(fan_edges)
    z0 = s_col + 1
    num_vars = z0 + num_faces

    min_faces = max(1, cfg.min_selected_faces)
    s_max = 1.0 / min_faces

    # --- Objective ---
    c = np.zeros(num_vars)
    for f in mesh.faces:
        conf = f.confidence
        c[z0 + f.id] = -(
            cfg.lambda_data_fitting * conf.fitting + cfg.lambda_model_coverage * conf.coverage
        )
    c[y0:e0] = cfg.lambda_model_complexity / max(num_planes, 1)
    constant = cfg.lambda_data_fitting + cfg.lambda_model_coverage

    lower = np.zeros(num_vars)
    upper = np.ones(num_vars)
    integrality = np.ones(num_vars)
    lower[s_col] = min(1.0 / max(num_faces, 1), s_max)
    upper[s_col] = s_max
    upper[z0:] = s_max
    integrality[s_col:] = 0
    rows = _RowBuilder()

    # --- Plane chaining: a plane is "used" as soon as one of its faces is ---
    for f in mesh.faces:
        rows.add({f.id: 1.0, y0 + f.plane_id: -1.0}, -np.inf, 0.0)

    # --- Edge manifoldness ---
    if cfg.closed_surface:
        for k, eid in enumerate(fan_edges):
            coeffs = {fid: 1.0 for fid in constraints.edge_fans[eid]}
            coeffs[e0 + k] = -2.0
            rows.add(coeffs, 0.0, 0.0)
        # A face on a single-face edge can never be closed off
        for fid in constraints.boundary_faces:
            upper[fid] = 0.0
            upper[z0 + fid] = 0.0
    else:
        for eid, fids in constraints.over_shared_edges.items():
            rows.add({fid: 1.0 for fid in fids}, -np.inf, 2.0)

    # --- Mutual exclusion ---
    for a, b in constraints.exclusions:
        rows.add({a: 1.0, b: 1.0}, -np.inf, 1.0)

    # --- Non-empty result; the means are undefined otherwise ---
    rows.add({f.id: 1.0 for f in mesh.faces}, float(min_faces), np.inf)

    # --- Mean scores: z_f = x_f * s and s * sum_f x_f = 1 ---
    for f in mesh.faces:
        z = z0 + f.id
        rows.add({z: 1.0, f.id: -s_max}, -np.inf, 0.0)
        rows.add({z: 1.0, s_col: -1.0}, -np.inf, 0.0)
        rows.add({z: 1.0, s_col: -1.0, f.id: -s_max}, -s_max, np.inf)
    rows.add({z0 + f.id: 1.0 for f in mesh.faces}, 1.0, 1.0)

    program = BinaryProgram(
        c=c,
        constant=constant,
        A=rows.matrix(num_vars),
        lb=np.asarray(rows.lb, dtype=float),
        ub=np.asarray(rows.ub, dtype=float),
        upper=upper,
        num_faces=num_faces,
        num_planes=num_planes,
        fan_edges=fan_edges,
        lower=lower,
        integrality=integrality,
    )
    logger.info(
        f"Selection program: {num_vars} variables ({num_faces} faces, {num_planes} planes, "
        f"{len(fan_edges)} edges, {num_faces + 1} continuous), {program.A.shape[0]} constraints, "
        f"{int((upper[:num_faces] == 0).sum())} faces fixed to 0"
    )
    return program
