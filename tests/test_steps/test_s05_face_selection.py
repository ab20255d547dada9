"""Tests for S05: Face selection step."""

import dataclasses

import numpy as np
import pytest

from polyrecon.core.errors import GeometryError, InfeasibleSelectionError, OptimizationError
from polyrecon.steps.s05_face_selection._extraction import check_edge_manifold, extract_result
from polyrecon.steps.s05_face_selection._program import formulate_selection
from polyrecon.steps.s05_face_selection.config import FaceSelectionConfig, SolverKind
from polyrecon.steps.s05_face_selection.contracts import FaceSelectionInput
from polyrecon.steps.s05_face_selection.step import FaceSelectionStep


def select(stages, data_root=None, **overrides):
    step = FaceSelectionStep(config=FaceSelectionConfig(**overrides), data_root=data_root)
    out = step.execute(FaceSelectionInput(mesh=stages.mesh, constraints=stages.constraints))
    return out


def newell_normal(pts: np.ndarray) -> np.ndarray:
    return np.cross(pts, np.roll(pts, -1, axis=0)).sum(axis=0)


def assert_closed_and_oriented(result, center):
    directed = {}
    for poly in result.faces:
        for k in range(len(poly)):
            a, b = poly[k], poly[(k + 1) % len(poly)]
            directed[(a, b)] = directed.get((a, b), 0) + 1
    for (a, b), n in directed.items():
        # Every edge used once in each direction
        assert n == 1
        assert directed.get((b, a)) == 1
    for poly in result.faces:
        pts = result.vertices[poly]
        assert np.dot(newell_normal(pts), pts.mean(axis=0) - center) > 0


def mean_score(mesh, face_ids, attr: str) -> float:
    return float(np.mean([getattr(mesh.faces[f].confidence, attr) for f in face_ids]))


class TestFormulation:
    def test_program_layout(self, cube_stages):
        mesh, constraints = cube_stages.mesh, cube_stages.constraints
        program = formulate_selection(mesh, constraints, FaceSelectionConfig())
        num_fans = len(constraints.edge_fans)
        assert program.num_faces == 54
        assert program.num_planes == 6
        # x, y, e binaries, then s and one z per face
        assert program.num_vars == 54 + 6 + num_fans + 1 + 54
        assert program.integer_mask.sum() == 54 + 6 + num_fans
        assert int((program.upper[:54] == 0).sum()) == len(constraints.boundary_faces)
        # chaining, fan edges, non-empty, three McCormick rows per face, sum z = 1
        assert program.A.shape == (54 + num_fans + 1 + 3 * 54 + 1, program.num_vars)

    def test_open_surface_layout(self, cube_stages):
        mesh, constraints = cube_stages.mesh, cube_stages.constraints
        program = formulate_selection(mesh, constraints, FaceSelectionConfig(closed_surface=False))
        assert program.num_vars == 54 + 6 + 1 + 54
        assert (program.upper[:60] == 1).all()
        s = 60
        assert program.lower[s] == pytest.approx(1 / 54)
        assert program.upper[s] == pytest.approx(1 / 4)
        assert program.A.shape[0] == 54 + len(constraints.over_shared_edges) + 1 + 3 * 54 + 1

    def test_objective_of_empty_selection(self, cube_stages):
        cfg = FaceSelectionConfig()
        program = formulate_selection(cube_stages.mesh, cube_stages.constraints, cfg)
        assert program.objective(np.zeros(program.num_vars)) == pytest.approx(
            cfg.lambda_data_fitting + cfg.lambda_model_coverage
        )

    def test_products_are_exact_for_binary_selections(self, cube_stages):
        mesh, constraints = cube_stages.mesh, cube_stages.constraints
        cfg = FaceSelectionConfig(closed_surface=False)
        program = formulate_selection(mesh, constraints, cfg)
        chosen = [f.id for f in mesh.faces if f.confidence.support_count > 0][:5]
        planes = {mesh.faces[f].plane_id for f in chosen}

        v = np.zeros(program.num_vars)
        v[chosen] = 1.0
        v[[54 + p for p in planes]] = 1.0
        v[60] = 1 / len(chosen)
        v[[61 + f for f in chosen]] = 1 / len(chosen)

        Av = program.A @ v
        assert (Av >= program.lb - 1e-9).all() and (Av <= program.ub + 1e-9).all()
        expected = (
            cfg.lambda_data_fitting * (1 - mean_score(mesh, chosen, "fitting"))
            + cfg.lambda_model_coverage * (1 - mean_score(mesh, chosen, "coverage"))
            + cfg.lambda_model_complexity * len(planes) / 6
        )
        assert program.objective(v) == pytest.approx(expected)

    def test_products_reject_a_wrong_mean(self, cube_stages):
        mesh, constraints = cube_stages.mesh, cube_stages.constraints
        program = formulate_selection(mesh, constraints, FaceSelectionConfig(closed_surface=False))
        chosen = [f.id for f in mesh.faces if f.confidence.support_count > 0][:5]

        v = np.zeros(program.num_vars)
        v[chosen] = 1.0
        v[[54 + mesh.faces[f].plane_id for f in chosen]] = 1.0
        # Weight concentrated on one selected face: sum z = 1 but z_f != x_f * s
        v[60] = 1 / 4
        v[61 + chosen[0]] = 1 / 4
        v[61 + chosen[1]] = 3 / 4
        Av = program.A @ v
        assert not ((Av >= program.lb - 1e-9).all() and (Av <= program.ub + 1e-9).all())


class TestFaceSelection:
    @pytest.mark.parametrize("solver", [SolverKind.HIGHS, SolverKind.BRANCH_AND_BOUND])
    def test_cube(self, cube_stages, solver):
        out = select(cube_stages, solver=solver)
        assert out.num_selected == 6
        assert out.num_planes_used == 6
        assert out.solver == solver.value
        assert out.non_manifold_vertices == 0
        assert len(out.result.vertices) == 8
        assert sorted(out.result.face_plane_ids) == list(range(6))
        assert_closed_and_oriented(out.result, np.full(3, 0.5))

    def test_solvers_agree(self, cube_stages):
        a = select(cube_stages, solver=SolverKind.HIGHS)
        b = select(cube_stages, solver=SolverKind.BRANCH_AND_BOUND)
        assert a.selected_face_ids == b.selected_face_ids
        assert a.objective == pytest.approx(b.objective)

    def test_objective_value(self, cube_stages):
        cfg = FaceSelectionConfig()
        out = select(cube_stages)
        mesh = cube_stages.mesh
        ids = out.selected_face_ids
        # All six planes are used
        expected = (
            cfg.lambda_data_fitting * (1 - mean_score(mesh, ids, "fitting"))
            + cfg.lambda_model_coverage * (1 - mean_score(mesh, ids, "coverage"))
            + cfg.lambda_model_complexity
        )
        assert out.objective == pytest.approx(expected, abs=1e-6)

    def test_box(self, stages_of, box_cloud):
        out = select(stages_of(box_cloud))
        assert out.num_selected == 6
        lo, hi = out.result.vertices.min(axis=0), out.result.vertices.max(axis=0)
        np.testing.assert_allclose(lo, [0, 0, 0], atol=1e-3)
        np.testing.assert_allclose(hi, [2.0, 1.0, 0.5], atol=1e-3)
        assert_closed_and_oriented(out.result, np.array([1.0, 0.5, 0.25]))

    def test_open_surface(self, cube_stages):
        # Every extra face adds a plane; the mean scores stay flat, so the
        # cheapest open selection is the smallest allowed one
        out = select(cube_stages, closed_surface=False)
        assert out.num_selected == 4
        assert out.num_planes_used == 4
        mesh = cube_stages.mesh
        assert all(mesh.faces[f].confidence.support_count > 0 for f in out.selected_face_ids)

    def test_non_convex_shape(self, stages_of, l_prism_cloud):
        stages = stages_of(l_prism_cloud)
        out = select(stages, lambda_model_coverage=2.0)
        assert out.num_planes_used == 8
        mesh = stages.mesh
        assert all(mesh.faces[f].confidence.support_count > 0 for f in out.selected_face_ids)

    def test_scale_invariance(self, cube_cloud, cube_stages, stages_of):
        big = stages_of(cube_cloud.scaled(1000.0))
        a = select(cube_stages)
        b = select(big)
        assert a.selected_face_ids == b.selected_face_ids
        assert a.objective == pytest.approx(b.objective, rel=1e-6)
        np.testing.assert_allclose(b.result.vertices, a.result.vertices * 1000.0, atol=1e-6)

    @pytest.mark.parametrize("closed", [True, False])
    @pytest.mark.parametrize("cloud", ["cube_cloud", "box_cloud", "l_prism_cloud"])
    def test_coverage_weight_monotonic(self, request, stages_of, cloud, closed):
        stages = stages_of(request.getfixturevalue(cloud))
        mesh = stages.mesh
        values = []
        for w in (0.0, 0.27, 1.0, 5.0):
            out = select(stages, closed_surface=closed, lambda_model_coverage=w)
            values.append(mean_score(mesh, out.selected_face_ids, "coverage"))
        for lower, higher in zip(values, values[1:]):
            assert higher >= lower - 1e-4

    def test_interim_selection(self, cube_stages, data_root):
        select(cube_stages, data_root=data_root)
        assert (data_root / "interim" / "face_selection" / "selection.json").exists()


class TestFaceSelectionFailures:
    @pytest.mark.parametrize("solver", [SolverKind.HIGHS, SolverKind.BRANCH_AND_BOUND])
    def test_excluded_center_faces(self, cube_stages, solver):
        out = select(cube_stages)
        a, b = out.selected_face_ids[:2]
        constraints = dataclasses.replace(cube_stages.constraints, exclusions=[(a, b)])
        stages = dataclasses.replace(cube_stages, constraints=constraints)
        with pytest.raises(InfeasibleSelectionError):
            select(stages, solver=solver)

    def test_two_perpendicular_planes(self, stages_of, box_factory):
        # Two walls cannot enclose a volume: every candidate face touches the box
        stages = stages_of(box_factory(faces=(0, 2)))
        assert len(stages.constraints.boundary_faces) == stages.mesh.num_faces
        with pytest.raises(InfeasibleSelectionError):
            select(stages)

    def test_missing_confidences(self, cube_stages):
        bare = dataclasses.replace(
            cube_stages.mesh,
            faces=[dataclasses.replace(f, confidence=None) for f in cube_stages.mesh.faces],
        )
        with pytest.raises(OptimizationError):
            select(dataclasses.replace(cube_stages, mesh=bare))

    @pytest.mark.parametrize("solver", [SolverKind.HIGHS, SolverKind.BRANCH_AND_BOUND])
    def test_cancelled(self, cube_stages, solver):
        step = FaceSelectionStep(config=FaceSelectionConfig(solver=solver))
        step.cancel()
        with pytest.raises(OptimizationError) as exc:
            step.execute(FaceSelectionInput(mesh=cube_stages.mesh, constraints=cube_stages.constraints))
        assert not isinstance(exc.value, InfeasibleSelectionError)


class TestExtraction:
    def test_nothing_selected(self, cube_stages):
        result, selected, non_disk = extract_result(
            cube_stages.mesh, np.zeros(cube_stages.mesh.num_faces), cube_stages.constraints, True,
        )
        assert result.num_faces == 0 and selected == [] and non_disk == 0

    def test_open_edges_rejected_when_closed(self, cube_stages):
        out = select(cube_stages)
        partial = out.selected_face_ids[:5]
        with pytest.raises(GeometryError):
            check_edge_manifold(cube_stages.mesh, partial, closed=True)
        per_edge = check_edge_manifold(cube_stages.mesh, partial, closed=False)
        assert any(len(fs) == 1 for fs in per_edge.values())

    def test_over_shared_edge_rejected(self, cube_stages):
        mesh, constraints = cube_stages.mesh, cube_stages.constraints
        fans = next(iter(constraints.over_shared_edges.values()))
        with pytest.raises(GeometryError):
            check_edge_manifold(mesh, list(fans[:3]), closed=False)

    def test_open_result_keeps_boundary(self, cube_stages):
        out = select(cube_stages)
        x = np.zeros(cube_stages.mesh.num_faces)
        x[out.selected_face_ids[:5]] = 1.0
        result, selected, _ = extract_result(cube_stages.mesh, x, cube_stages.constraints, False)
        assert len(selected) == 5
        assert result.num_faces == 5
