"""
Workflow orchestrator for executing config-driven workflows.

Supports YAML/JSON workflow definitions with an ordered list of steps,
references to earlier step results and config-aware parameters.

A workflow file looks like::

    config: my_settings.yaml
    steps:
      - name: occurrences
        type: load_points
        params: {path: occurrences.csv}
      - name: env
        type: load_stack
        params: {path: env.npz}
      - name: cleaned
        type: detect_outliers
        params: {points: "${occurrences}", variable_stack: "${env}"}
"""

import inspect
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd
import yaml

from sdmsmith.config import ConfigManager, get_config_value, load_config, resolve
from sdmsmith.objects.envstack import EnvironmentalStack
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid
from sdmsmith.primitives.data_quality import deduplicate_by_cell
from sdmsmith.primitives.dim_reduce import DimReduction, reduce_variables
from sdmsmith.primitives.sampling import sample_background, split_observations
from sdmsmith.tasks.conversiontask import convert_to_pa
from sdmsmith.tasks.evaluationtask import evaluate
from sdmsmith.tasks.outliertask import detect_outliers
from sdmsmith.workflows.io import (
    load_raster,
    load_stack,
    read_points_csv,
    save_raster,
    save_stack,
    write_points_csv,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Registry of available workflow steps
STEP_REGISTRY: Dict[str, Callable] = {}

# Parameters holding file paths; relative values are taken from the working dir
PATH_PARAMETERS = ("path",)


def register_step(name: str, func: Callable) -> None:
    """Register a function as a workflow step."""
    STEP_REGISTRY[name] = func
    logger.debug(f"Registered workflow step: {name}")


def _split_step(
    points: PointSet,
    test_fraction: Optional[float] = None,
    random_state: Optional[int] = None,
    config: Optional[ConfigManager] = None,
) -> PointSet:
    return split_observations(
        points,
        test_fraction=float(resolve(test_fraction, "sampling.test_fraction", config)),
        random_state=resolve(random_state, "sampling.random_state", config),
    )


def _background_step(
    grid: Union[RasterGrid, EnvironmentalStack],
    n_points: Optional[int] = None,
    random_state: Optional[int] = None,
    exclude: Optional[PointSet] = None,
    config: Optional[ConfigManager] = None,
) -> PointSet:
    return sample_background(
        grid,
        n_points=int(resolve(n_points, "sampling.n_background", config)),
        random_state=resolve(random_state, "sampling.random_state", config),
        exclude=exclude,
    )


def _reduce_step(
    stack: EnvironmentalStack,
    threshold: Optional[float] = None,
    preferred_vars: Optional[List[str]] = None,
    sample_size: Optional[int] = None,
    random_state: Optional[int] = None,
    config: Optional[ConfigManager] = None,
) -> DimReduction:
    return reduce_variables(
        stack,
        threshold=float(resolve(threshold, "dim_reduce.threshold", config)),
        preferred_vars=preferred_vars,
        sample_size=resolve(sample_size, "dim_reduce.sample_size", config),
        random_state=resolve(random_state, "dim_reduce.random_state", config),
    )


def _register_default_steps() -> None:
    """Register default workflow steps."""
    # Data loading and saving
    register_step("load_points", read_points_csv)
    register_step("load_raster", load_raster)
    register_step("load_stack", load_stack)
    register_step("save_points", write_points_csv)
    register_step("save_raster", save_raster)
    register_step("save_stack", save_stack)

    # Observation preparation
    register_step("deduplicate_by_cell", deduplicate_by_cell)
    register_step("split_observations", _split_step)
    register_step("sample_background", _background_step)
    register_step("reduce_variables", _reduce_step)

    # Modelling support
    register_step("detect_outliers", detect_outliers)
    register_step("evaluate", evaluate)
    register_step("convert_to_pa", convert_to_pa)


# Initialize default steps
_register_default_steps()


class WorkflowOrchestrator:
    """Orchestrator for executing config-driven workflows.

    Loads workflow definitions from YAML/JSON and executes steps in order.
    Each result is stored under the step name so later steps can refer to
    it as ``${name}``, ``${name.attribute}`` or, for tuple results such as
    the ``(points, report)`` pair of ``detect_outliers``, ``${name.0}``.
    ``${config.section.key}`` reads a configuration value.
    """

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        working_dir: Optional[PathLike] = None,
    ):
        """Initialize workflow orchestrator.

        Args:
            config: Configuration manager. If None, uses global config.
            working_dir: Directory for relative paths in the workflow.
        """
        self.config = config
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.results: Dict[str, Any] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def load_workflow_file(self, file_path: PathLike) -> Dict[str, Any]:
        """Load workflow definition from file.

        Args:
            file_path: Path to YAML or JSON workflow file.

        Returns:
            Workflow definition.

        Raises:
            FileNotFoundError: If file doesn't exist.
            ValueError: If file format is unsupported.
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Workflow file not found: {file_path}")

        suffix = file_path.suffix.lower()

        with open(file_path) as f:
            if suffix in (".yaml", ".yml"):
                workflow = yaml.safe_load(f)
            elif suffix == ".json":
                workflow = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported workflow file format: {suffix}. "
                    "Use .yaml, .yml, or .json"
                )

        if not isinstance(workflow, dict):
            raise ValueError(f"Workflow file {file_path} must contain a mapping")
        self.logger.info(f"Loaded workflow from {file_path}")
        return workflow

    def _lookup(self, result: Any, attr: str, value: str, step_ref: str) -> Any:
        if isinstance(result, tuple) and attr.isdigit():
            index = int(attr)
            if index < len(result):
                return result[index]
        elif isinstance(result, pd.DataFrame):
            if attr in result.columns:
                return result[attr].to_numpy()
            raise ValueError(
                f"Column '{attr}' not found in step '{step_ref}' output. "
                f"Available columns: {list(result.columns)}"
            )
        elif isinstance(result, dict) and attr in result:
            return result[attr]
        elif hasattr(result, attr):
            return getattr(result, attr)
        raise ValueError(
            f"Reference {value} not found in step '{step_ref}'. "
            f"Result type: {type(result).__name__}"
        )

    def _resolve_parameter(self, value: Any, step_name: str) -> Any:
        """Resolve a parameter value, following references to steps or config.

        Args:
            value: Parameter value (may be a string like "${step_name.attr}").
            step_name: Current step name.

        Returns:
            Resolved value.
        """
        if not (isinstance(value, str) and value.startswith("${") and value.endswith("}")):
            return value
        ref = value[2:-1]

        if ref.startswith("config."):
            config_key = ref[len("config."):]
            resolved = get_config_value(config_key, config=self.config)
            if resolved is None:
                raise ValueError(
                    f"Config key '{config_key}' not set (referenced by {value} "
                    f"in step '{step_name}')"
                )
            return resolved

        step_ref, _, attr = ref.partition(".")
        if step_ref not in self.results:
            raise ValueError(
                f"Step '{step_ref}' not found in results (referenced by {value} "
                f"in step '{step_name}')"
            )
        result = self.results[step_ref]
        for part in attr.split(".") if attr else ():
            result = self._lookup(result, part, value, step_ref)
        return result

    def _resolve_parameters(self, params: Dict[str, Any], step_name: str) -> Dict[str, Any]:
        """Resolve all parameters in a dictionary."""
        resolved = {}
        for key, value in params.items():
            if isinstance(value, dict):
                resolved[key] = self._resolve_parameters(value, step_name)
            elif isinstance(value, list):
                resolved[key] = [self._resolve_parameter(item, step_name) for item in value]
            else:
                resolved[key] = self._resolve_parameter(value, step_name)
        return resolved

    def _execute_step(self, step: Dict[str, Any], step_index: int) -> Any:
        """Execute a single workflow step.

        Args:
            step: Step definition.
            step_index: Step index (for logging).

        Returns:
            Step result.
        """
        step_name = step.get("name") or step.get("step") or f"step_{step_index}"
        step_type = step.get("type") or step.get("function")

        if not step_type:
            raise ValueError(f"Step {step_name} missing 'type' or 'function' field")

        self.logger.info(f"Executing step {step_index + 1}: {step_name} ({step_type})")

        func = STEP_REGISTRY.get(step_type)
        if func is None:
            raise ValueError(
                f"Unknown step type: {step_type}. Available: {sorted(STEP_REGISTRY)}"
            )

        params = step.get("params", step.get("parameters")) or {}
        params = self._resolve_parameters(params, step_name)

        for key in PATH_PARAMETERS:
            if isinstance(params.get(key), str) and not Path(params[key]).is_absolute():
                params[key] = self.working_dir / params[key]

        if "config" in inspect.signature(func).parameters:
            params["config"] = self.config

        try:
            result = func(**params)
        except Exception as e:
            self.logger.error(f"Step {step_name} failed: {e}")
            raise
        self.results[step_name] = result
        self.logger.info(f"Step {step_name} completed")
        return result

    def _load_workflow_config(self, config_file: PathLike) -> None:
        config_path = Path(config_file)
        if not config_path.is_absolute():
            config_path = self.working_dir / config_path
        if config_path.exists():
            self.config = load_config(config_path)
            self.logger.info(f"Loaded config from {config_path}")
        else:
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            if self.config is None:
                self.config = load_config()

    def execute(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        """Execute a workflow definition.

        Args:
            workflow: Definition with a 'steps' list, an optional 'config'
                file and an optional 'stop_on_error' flag (default True).

        Returns:
            Results from all steps, keyed by step name.
        """
        self.logger.info("Starting workflow execution")

        config_file = workflow.get("config")
        if config_file:
            self._load_workflow_config(config_file)

        steps = workflow.get("steps") or []
        if not steps:
            raise ValueError("Workflow must contain 'steps' list")

        stop_on_error = workflow.get("stop_on_error", True)
        failed = []
        for i, step in enumerate(steps):
            try:
                self._execute_step(step, i)
            except Exception as e:
                self.logger.error(f"Workflow failed at step {i + 1}: {e}")
                if stop_on_error:
                    raise
                failed.append(i + 1)

        if failed:
            self.logger.warning(
                f"Workflow finished with {len(failed)} failed steps: {failed}"
            )
        else:
            self.logger.info(f"Workflow completed successfully ({len(steps)} steps)")
        return self.results

    def execute_file(self, file_path: PathLike) -> Dict[str, Any]:
        """Load and execute workflow from file."""
        workflow = self.load_workflow_file(file_path)
        return self.execute(workflow)


def run_workflow(
    workflow_file: PathLike,
    config: Optional[ConfigManager] = None,
    working_dir: Optional[PathLike] = None,
) -> Dict[str, Any]:
    """Convenience function to run a workflow from a file.

    Args:
        workflow_file: Path to workflow YAML/JSON file.
        config: Configuration manager.
        working_dir: Working directory; defaults to the workflow file's
            directory.

    Returns:
        Results from all steps.

    Example:
        >>> from sdmsmith.workflows import run_workflow
        >>> results = run_workflow("clean_and_evaluate.yaml")
        >>> points, report = results["cleaned"]
    """
    if working_dir is None:
        working_dir = Path(workflow_file).parent
    orchestrator = WorkflowOrchestrator(config=config, working_dir=working_dir)
    return orchestrator.execute_file(workflow_file)


def load_workflow(file_path: PathLike) -> Dict[str, Any]:
    """Load workflow definition without executing."""
    orchestrator = WorkflowOrchestrator()
    return orchestrator.load_workflow_file(file_path)
