"""Tests for core pipeline runner and contracts."""

from pathlib import Path

import pytest
import yaml

from polyrecon.core.contracts import ReconstructionConfig, ReconstructionReport, StepMeta
from polyrecon.core.errors import InputError
from polyrecon.core.pipeline_runner import (
    STEP_MODULES,
    build_steps,
    import_step_class,
    load_reconstruction_config,
)
from polyrecon.steps.s05_face_selection.config import SolverKind

REPO_ROOT = Path(__file__).resolve().parents[2]


class TestContracts:
    def test_step_meta(self):
        meta = StepMeta(step_name="test", elapsed_seconds=1.5, params={"a": 1})
        assert meta.step_name == "test"
        assert meta.elapsed_seconds == 1.5

    def test_default_weights(self):
        cfg = ReconstructionConfig()
        assert cfg.selection.lambda_data_fitting == pytest.approx(0.43)
        assert cfg.selection.lambda_model_coverage == pytest.approx(0.27)
        assert cfg.selection.lambda_model_complexity == pytest.approx(0.30)
        assert cfg.selection.solver == SolverKind.HIGHS
        assert cfg.data_root is None

    def test_overrides_applied_independently(self):
        cfg = ReconstructionConfig().with_overrides(
            lambda_data_fitting=None,
            lambda_model_coverage=0.5,
            lambda_model_complexity=None,
            solver="branch_and_bound",
        )
        assert cfg.selection.lambda_data_fitting == pytest.approx(0.43)
        assert cfg.selection.lambda_model_coverage == pytest.approx(0.5)
        assert cfg.selection.lambda_model_complexity == pytest.approx(0.30)
        assert cfg.selection.solver == SolverKind.BRANCH_AND_BOUND

    def test_overrides_leave_original_untouched(self):
        base = ReconstructionConfig()
        base.with_overrides(lambda_model_complexity=0.9)
        assert base.selection.lambda_model_complexity == pytest.approx(0.30)

    def test_invalid_override_is_input_error(self):
        with pytest.raises(InputError):
            ReconstructionConfig().with_overrides(lambda_data_fitting=-1.0)

    def test_report_defaults(self):
        report = ReconstructionReport()
        assert report.num_selected_faces == 0
        assert report.steps == []


class TestPipelineRunner:
    def test_load_reconstruction_config(self, tmp_path: Path):
        config = {
            "max_workers": 2,
            "selection": {"lambda_model_complexity": 0.5, "solver": "branch_and_bound"},
            "generation": {"bbox_margin_ratio": 0.1},
        }
        config_file = tmp_path / "reconstruction.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config, f)

        cfg = load_reconstruction_config(config_file)
        assert cfg.max_workers == 2
        assert cfg.selection.lambda_model_complexity == pytest.approx(0.5)
        assert cfg.selection.solver == SolverKind.BRANCH_AND_BOUND
        assert cfg.generation.bbox_margin_ratio == pytest.approx(0.1)
        # Untouched sections keep their defaults
        assert cfg.refinement.min_inliers == 10

    def test_shipped_config_matches_defaults(self):
        cfg = load_reconstruction_config(REPO_ROOT / "configs" / "reconstruction.yaml")
        assert cfg == ReconstructionConfig()

    def test_empty_config_file(self, tmp_path: Path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_reconstruction_config(config_file) == ReconstructionConfig()

    def test_invalid_config_is_input_error(self, tmp_path: Path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("selection:\n  lambda_data_fitting: -3\n")
        with pytest.raises(InputError):
            load_reconstruction_config(config_file)

    def test_missing_config_is_input_error(self, tmp_path: Path):
        with pytest.raises(InputError):
            load_reconstruction_config(tmp_path / "missing.yaml")

    def test_import_step_class(self):
        cls = import_step_class("polyrecon.steps.s01_plane_refinement")
        assert cls.__name__ == "PlaneRefinementStep"
        assert hasattr(cls, "input_type")
        assert hasattr(cls, "output_type")

    def test_import_all_steps(self):
        names = []
        for name, module, _ in STEP_MODULES:
            cls = import_step_class(module)
            assert cls.name == name
            schema = cls.get_config_schema()
            assert "properties" in schema
            names.append(cls.name)
        assert len(set(names)) == 7

    def test_build_steps_passes_config_sections(self, data_root: Path):
        cfg = ReconstructionConfig(data_root=data_root, max_workers=3)
        steps = build_steps(cfg)
        assert list(steps) == [name for name, _, _ in STEP_MODULES]
        assert steps["face_selection"].config is cfg.selection
        assert steps["plane_refinement"].max_workers == 3
        assert steps["mesh_export"].data_root == data_root
