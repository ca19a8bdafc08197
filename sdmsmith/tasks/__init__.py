"""Layer 3: Tasks - User intent translation.

Tasks translate user intent into primitive calls: cleaning occurrences,
scoring predictions and converting suitability maps. Tasks read their
defaults from the configuration and never plot or touch files.
"""

from sdmsmith.tasks.conversiontask import METHODS, convert_to_pa
from sdmsmith.tasks.evaluationtask import evaluate, evaluate_partitions
from sdmsmith.tasks.outliertask import detect_outliers

__all__ = [
    "METHODS",
    "convert_to_pa",
    "detect_outliers",
    "evaluate",
    "evaluate_partitions",
]
