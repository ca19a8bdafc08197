"""Data quality checks for occurrence records.

Provides tools for:
- Coordinate validation against the study grid
- Duplicate detection at raster-cell resolution
- Missing environmental values at record locations
- CRS agreement between records and grids
"""

import logging
from typing import Union

import numpy as np
import pandas as pd

from sdmsmith.objects.envstack import EnvironmentalStack
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid, grid_rowcol
from sdmsmith.utils.errors import raise_validation_error

logger = logging.getLogger(__name__)

Grid = Union[RasterGrid, EnvironmentalStack]


def _flat_cells(points: PointSet, grid: Grid) -> np.ndarray:
    check_crs(points, grid)
    rows, cols = grid_rowcol(grid.transform, grid.shape, points.coordinates)
    flat = rows * grid.shape[1] + cols
    flat[rows < 0] = -1
    return flat


def validate_within_bounds(points: PointSet, grid: Grid) -> np.ndarray:
    """Flag points lying outside the grid.

    Args:
        points: Observation points.
        grid: RasterGrid or EnvironmentalStack defining the study area.

    Returns:
        Boolean array, True where the point falls outside the grid.
    """
    return _flat_cells(points, grid) < 0


def detect_duplicate_cells(points: PointSet, grid: Grid) -> np.ndarray:
    """Flag points sharing a raster cell with an earlier point.

    Points off the grid are never flagged as duplicates.

    Returns:
        Boolean array, True where the point repeats an earlier point's cell.
    """
    cells = _flat_cells(points, grid)
    is_duplicate = pd.Series(cells).duplicated(keep="first").to_numpy()
    is_duplicate[cells < 0] = False
    return is_duplicate


def deduplicate_by_cell(
    points: PointSet, grid: Grid, drop_outside: bool = True
) -> PointSet:
    """Keep the first record per raster cell.

    Args:
        points: Observation points.
        grid: RasterGrid or EnvironmentalStack defining cell resolution.
        drop_outside: Also drop points outside the grid.

    Returns:
        PointSet without cell-level duplicates.
    """
    keep = ~detect_duplicate_cells(points, grid)
    if drop_outside:
        keep &= ~validate_within_bounds(points, grid)
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(f"Removed {n_dropped} of {len(points)} records (duplicate cell or off-grid)")
    return points.subset(keep)


def detect_missing_environment(values: pd.DataFrame) -> np.ndarray:
    """Flag rows of an extracted environment table with any missing value.

    Args:
        values: Table from EnvironmentalStack.extract.

    Returns:
        Boolean array, True where any variable is NA or non-finite.
    """
    missing = values.isna().any(axis=1).to_numpy()
    numeric = values.select_dtypes(include="number")
    if numeric.shape[1]:
        missing |= ~np.isfinite(numeric.to_numpy(dtype=float)).all(axis=1)
    return missing


def check_crs(points: PointSet, grid: Grid) -> None:
    """Require points and grid to share a CRS when both declare one.

    Raises:
        DataValidationError: If both CRS identifiers are set and differ.
    """
    if points.crs is not None and grid.crs is not None and points.crs != grid.crs:
        raise_validation_error(
            "Points and grid use different coordinate reference systems",
            expected=str(grid.crs),
            received=str(points.crs),
            suggestion="Reproject the points to the grid's CRS before combining them",
        )
