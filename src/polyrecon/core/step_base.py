"""Base class for all pipeline steps.

Every step declares typed Input, Output, Config via Pydantic models so the
runner can wire steps together and the CLI can introspect their schemas.
"""

from __future__ import annotations

import json
import time
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Generic, TypeVar, ClassVar

from pydantic import BaseModel

from .contracts import StepMeta
from .errors import InputError, ReconstructionError

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)
ConfigT = TypeVar("ConfigT", bound=BaseModel)

logger = logging.getLogger(__name__)


class BaseStep(ABC, Generic[InputT, OutputT, ConfigT]):
    """Abstract base for pipeline steps.

    Subclasses must:
    1. Define concrete Pydantic models for InputT, OutputT, ConfigT
    2. Set class variables: input_type, output_type, config_type
    3. Implement run() and validate_inputs()
    4. Optionally set ``failure_type``, the error raised when inputs are invalid

    Example:
        class PlaneRefinementStep(BaseStep[RefineInput, RefineOutput, RefineConfig]):
            input_type = RefineInput
            output_type = RefineOutput
            config_type = RefineConfig

            def run(self, inputs: RefineInput) -> RefineOutput: ...
            def validate_inputs(self, inputs: RefineInput) -> bool: ...
    """

    name: ClassVar[str] = ""
    input_type: ClassVar[type[BaseModel]]
    output_type: ClassVar[type[BaseModel]]
    config_type: ClassVar[type[BaseModel]]
    failure_type: ClassVar[type[ReconstructionError]] = InputError

    def __init__(
        self,
        config: ConfigT,
        data_root: Path | None = None,
        max_workers: int | None = None,
    ):
        self.config = config
        self.data_root = Path(data_root) if data_root is not None else None
        self.max_workers = max_workers
        self.meta: StepMeta | None = None

    @abstractmethod
    def run(self, inputs: InputT) -> OutputT:
        """Execute this pipeline step. Returns output model."""
        ...

    @abstractmethod
    def validate_inputs(self, inputs: InputT) -> bool:
        """Check that all required inputs exist and are usable."""
        ...

    def execute(self, inputs: InputT) -> OutputT:
        """Run with logging, timing, and validation."""
        step_name = self.name or self.__class__.__name__
        logger.info(f"[{step_name}] Validating inputs...")

        if not self.validate_inputs(inputs):
            raise self.failure_type(f"[{step_name}] Input validation failed")

        logger.info(f"[{step_name}] Starting...")
        t0 = time.time()
        result = self.run(inputs)
        elapsed = time.time() - t0
        logger.info(f"[{step_name}] Done in {elapsed:.1f}s")
        self.meta = StepMeta(
            step_name=step_name,
            elapsed_seconds=elapsed,
            params=self.config.model_dump(mode="json"),
        )
        return result

    def interim_dir(self) -> Path | None:
        """Directory for this step's diagnostic artifacts, or None when disabled."""
        if self.data_root is None:
            return None
        out = self.data_root / "interim" / (self.name or self.__class__.__name__)
        out.mkdir(parents=True, exist_ok=True)
        return out

    def write_interim(self, filename: str, payload: Any) -> Path | None:
        out = self.interim_dir()
        if out is None:
            return None
        path = out / filename
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)
        return path

    @classmethod
    def get_input_schema(cls) -> dict:
        """Return JSON schema for inputs."""
        return cls.input_type.model_json_schema()

    @classmethod
    def get_output_schema(cls) -> dict:
        """Return JSON schema for outputs."""
        return cls.output_type.model_json_schema()

    @classmethod
    def get_config_schema(cls) -> dict:
        """Return JSON schema for config."""
        return cls.config_type.model_json_schema()
