"""Environmental outlier detection task.

Layer 3: Tasks - User intent translation.

Looks up the environment at every observation, scores the complete records
for conditional outliers and optionally removes the flagged ones.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from sdmsmith.config import ConfigManager, resolve
from sdmsmith.objects.envstack import EnvironmentalStack
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.results import OutlierReport
from sdmsmith.primitives.data_quality import check_crs, detect_missing_environment
from sdmsmith.primitives.outliers import find_conditional_outliers
from sdmsmith.utils.errors import ParameterError

logger = logging.getLogger(__name__)


def detect_outliers(
    points: PointSet,
    variable_stack: EnvironmentalStack,
    z_threshold: Optional[float] = None,
    top_n: Optional[int] = None,
    remove: Optional[bool] = None,
    max_depth: Optional[int] = None,
    min_group_size: Optional[int] = None,
    min_gap_sd: Optional[float] = None,
    config: Optional[ConfigManager] = None,
) -> Tuple[PointSet, OutlierReport]:
    """Flag observations with suspicious environmental values.

    Points off the grid or on a cell where any variable is NA are not
    scored; they are logged, listed in ``report.skipped`` and kept in the
    returned point set. Arguments left as None are read from the
    ``outliers`` section of the configuration.

    Args:
        points: Observation points.
        variable_stack: Environmental layers covering the points.
        z_threshold: Sensitivity; higher values flag fewer records.
        top_n: Number of most extreme findings shown in the report summary.
        remove: Drop every flagged record from the returned points.
        max_depth: Depth of the conditioning trees.
        min_group_size: Smallest comparison group.
        min_gap_sd: Required separation from unflagged values, in sd.
        config: Optional configuration; defaults to the global one.

    Returns:
        Tuple of (points, report). ``points`` is the input unchanged unless
        ``remove`` is True.

    Example:
        >>> points, report = detect_outliers(occurrences, env, z_threshold=3.5)
        >>> print(report.summary())
    """
    z_threshold = float(resolve(z_threshold, "outliers.z_threshold", config))
    top_n = int(resolve(top_n, "outliers.top_n", config))
    remove = bool(resolve(remove, "outliers.remove", config))
    max_depth = int(resolve(max_depth, "outliers.max_depth", config))
    min_group_size = int(resolve(min_group_size, "outliers.min_group_size", config))
    min_gap_sd = float(resolve(min_gap_sd, "outliers.min_gap_sd", config))
    if top_n < 0:
        raise ParameterError(f"top_n must be >= 0, got {top_n}")

    check_crs(points, variable_stack)
    values = variable_stack.extract(points)
    missing = detect_missing_environment(values)
    skipped = tuple(int(i) for i in np.flatnonzero(missing))
    if skipped:
        logger.warning(
            f"Skipping {len(skipped)} of {len(points)} records with missing "
            f"environmental values or off-grid locations"
        )

    complete = values[~missing]
    findings = find_conditional_outliers(
        complete,
        z_threshold=z_threshold,
        max_depth=max_depth,
        min_group_size=min_group_size,
        min_gap_sd=min_gap_sd,
    )
    report = OutlierReport(
        findings=tuple(findings),
        z_threshold=z_threshold,
        top_n=top_n,
        n_scored=len(complete),
        skipped=skipped,
    )

    if remove and findings:
        keep = np.ones(len(points), dtype=bool)
        keep[list(report.rows)] = False
        logger.info(f"Removed {len(findings)} flagged records")
        return points.subset(keep), report
    return points, report
