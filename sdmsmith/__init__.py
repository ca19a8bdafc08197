"""sdmsmith: species distribution modelling support.

Occurrence cleaning, presence-only model evaluation and conversion of
suitability maps to presence-absence maps, organised in four layers:

- objects: immutable data (PointSet, RasterGrid, EnvironmentalStack, results)
- primitives: pure numeric operations
- tasks: user-facing operations with configurable defaults
- workflows: file I/O and config-driven workflow execution
"""

from sdmsmith.objects import (
    CategoricalLayer,
    ConversionResult,
    EnvironmentalStack,
    EvaluationResult,
    NumericLayer,
    OutlierReport,
    PointSet,
    RasterGrid,
)
from sdmsmith.tasks import convert_to_pa, detect_outliers, evaluate, evaluate_partitions
from sdmsmith.utils.errors import (
    ConfigurationError,
    DataValidationError,
    InsufficientDataError,
    ParameterError,
    SDMSmithError,
)

__version__ = "0.1.0"

__all__ = [
    "CategoricalLayer",
    "ConfigurationError",
    "ConversionResult",
    "DataValidationError",
    "EnvironmentalStack",
    "EvaluationResult",
    "InsufficientDataError",
    "NumericLayer",
    "OutlierReport",
    "ParameterError",
    "PointSet",
    "RasterGrid",
    "SDMSmithError",
    "__version__",
    "convert_to_pa",
    "detect_outliers",
    "evaluate",
    "evaluate_partitions",
]
