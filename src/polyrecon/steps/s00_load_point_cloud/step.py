"""Step 00: Load a point cloud and its planar groups from disk."""

from __future__ import annotations

import dataclasses
import logging
from typing import ClassVar

import numpy as np

from polyrecon.core.errors import InputError
from polyrecon.core.step_base import BaseStep
from polyrecon.utils.io import READERS, read_point_cloud
from .config import LoadPointCloudConfig
from .contracts import LoadPointCloudInput, LoadPointCloudOutput

logger = logging.getLogger(__name__)


class LoadPointCloudStep(BaseStep[LoadPointCloudInput, LoadPointCloudOutput, LoadPointCloudConfig]):
    name: ClassVar[str] = "load_point_cloud"
    input_type: ClassVar = LoadPointCloudInput
    output_type: ClassVar = LoadPointCloudOutput
    config_type: ClassVar = LoadPointCloudConfig
    failure_type: ClassVar = InputError

    def validate_inputs(self, inputs: LoadPointCloudInput) -> bool:
        if not inputs.input_path.exists():
            logger.error(f"Input file not found: {inputs.input_path}")
            return False
        if inputs.input_path.suffix.lower() not in READERS:
            logger.error(f"Unsupported input format: {inputs.input_path.suffix}")
            return False
        return True

    def run(self, inputs: LoadPointCloudInput) -> LoadPointCloudOutput:
        cloud = read_point_cloud(inputs.input_path)

        if cloud.num_points == 0:
            raise InputError(f"No points in {inputs.input_path}")
        if self.config.reject_non_finite and not np.isfinite(cloud.points).all():
            raise InputError(f"Non-finite coordinates in {inputs.input_path}")

        if self.config.drop_empty_groups:
            groups = [g for g in cloud.groups if len(g.indices) > 0]
            if len(groups) < len(cloud.groups):
                logger.info(f"Skipped {len(cloud.groups) - len(groups)} empty groups")
                cloud = dataclasses.replace(cloud, groups=groups)
        if not cloud.groups:
            raise InputError(f"No planar groups in {inputs.input_path}")

        return LoadPointCloudOutput(
            point_cloud=cloud,
            num_points=cloud.num_points,
            num_groups=len(cloud.groups),
            has_normals=cloud.normals is not None,
        )
