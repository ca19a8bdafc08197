"""Observation partitioning and background sampling.

Layer 2: Primitives - Pure operations. All randomness goes through a seeded
numpy Generator so repeated calls with the same seed give the same points.
"""

import logging
from typing import Optional, Union

import numpy as np

from sdmsmith.objects.envstack import EnvironmentalStack
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid, grid_cell_centers, grid_rowcol
from sdmsmith.primitives.data_quality import check_crs
from sdmsmith.utils.errors import InsufficientDataError, ParameterError

logger = logging.getLogger(__name__)


def split_observations(
    points: PointSet, test_fraction: float = 0.3, random_state: Optional[int] = 42
) -> PointSet:
    """Tag a random share of the points as 'eval', the rest as 'train'.

    Args:
        points: Observation points.
        test_fraction: Share of points assigned to the evaluation partition.
        random_state: Seed for the shuffle.

    Returns:
        PointSet with a new partition column; order is preserved.
    """
    if not 0.0 <= test_fraction < 1.0:
        raise ParameterError(f"test_fraction must be in [0, 1), got {test_fraction}")
    n_eval = int(round(test_fraction * len(points)))
    rng = np.random.default_rng(random_state)
    partition = np.full(len(points), "train", dtype=object)
    partition[rng.permutation(len(points))[:n_eval]] = "eval"
    logger.info(f"Split {len(points)} observations into {len(points) - n_eval} train / {n_eval} eval")
    return points.with_partition(partition)


def sample_background(
    grid: Union[RasterGrid, EnvironmentalStack],
    n_points: int = 10000,
    random_state: Optional[int] = 42,
    exclude: Optional[PointSet] = None,
) -> PointSet:
    """Draw background points at centers of valid cells, without replacement.

    Cells that are NA (in any layer, for a stack) are never drawn. When
    ``exclude`` is given, the cells holding those points are skipped too.
    If fewer valid cells exist than requested, all of them are returned.

    Returns:
        PointSet of background points labeled 0.
    """
    if n_points <= 0:
        raise ParameterError(f"n_points must be positive, got {n_points}")
    if isinstance(grid, EnvironmentalStack):
        valid = ~grid.na_mask()
    else:
        valid = grid.valid_mask
    valid = valid.ravel().copy()
    if exclude is not None and len(exclude):
        check_crs(exclude, grid)
        rows, cols = grid_rowcol(grid.transform, grid.shape, exclude.coordinates)
        inside = rows >= 0
        valid[rows[inside] * grid.shape[1] + cols[inside]] = False

    candidates = np.flatnonzero(valid)
    if candidates.size == 0:
        raise InsufficientDataError("No valid cells to sample background from")
    if candidates.size < n_points:
        logger.warning(
            f"Requested {n_points} background points but only {candidates.size} "
            f"valid cells exist, using all of them"
        )
        n_points = candidates.size
    rng = np.random.default_rng(random_state)
    chosen = np.sort(rng.choice(candidates, size=n_points, replace=False))
    centers = grid_cell_centers(grid.transform, grid.shape)[chosen]
    return PointSet(coordinates=centers, labels=np.zeros(n_points, dtype=int), crs=grid.crs)
