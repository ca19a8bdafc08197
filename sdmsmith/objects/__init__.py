"""Layer 1: Objects - Immutable data representations.

This layer contains only data structures: observation points, raster grids,
environmental variable stacks and result containers. Only standard library +
numpy + pandas.
"""

from sdmsmith.objects.envstack import (
    CategoricalLayer,
    EnvironmentalStack,
    NumericLayer,
)
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid
from sdmsmith.objects.results import (
    BoyceCurve,
    ConfusionCounts,
    ConversionResult,
    EvaluationResult,
    OutlierFinding,
    OutlierReport,
    PresenceAbsenceEvaluation,
    PresenceOnlyEvaluation,
    RocCurve,
)

__all__ = [
    "BoyceCurve",
    "CategoricalLayer",
    "ConfusionCounts",
    "ConversionResult",
    "EnvironmentalStack",
    "EvaluationResult",
    "NumericLayer",
    "OutlierFinding",
    "OutlierReport",
    "PointSet",
    "PresenceAbsenceEvaluation",
    "PresenceOnlyEvaluation",
    "RasterGrid",
    "RocCurve",
]
