"""Layer 4: Workflows - Public entry points.

Workflows provide the public entry points users call. Workflows can import
I/O libraries. Put file loading and saving here, and the config-driven
workflow runner.
"""

from sdmsmith.workflows.io import (
    load_raster,
    load_stack,
    read_points_csv,
    save_raster,
    save_stack,
    write_points_csv,
)
from sdmsmith.workflows.orchestrator import (
    STEP_REGISTRY,
    WorkflowOrchestrator,
    load_workflow,
    register_step,
    run_workflow,
)

__all__ = [
    "STEP_REGISTRY",
    "WorkflowOrchestrator",
    "load_raster",
    "load_stack",
    "load_workflow",
    "read_points_csv",
    "register_step",
    "run_workflow",
    "save_raster",
    "save_stack",
    "write_points_csv",
]
