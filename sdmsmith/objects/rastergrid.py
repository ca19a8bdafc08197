"""Single-layer raster grids.

Used for suitability predictions, probability-of-occurrence maps and binary
presence-absence maps. NA cells are stored as NaN.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from sdmsmith.objects.pointset import PointSet

Transform = Tuple[float, float, float, float, float, float]


def _validate_transform(transform) -> Transform:
    transform = tuple(float(v) for v in transform)
    if len(transform) != 6:
        raise ValueError(f"transform must have 6 coefficients, got {len(transform)}")
    a, b, _, d, e, _ = transform
    if a * e - b * d == 0:
        raise ValueError(f"transform is not invertible: {transform}")
    return transform  # type: ignore[return-value]


def grid_rowcol(
    transform: Transform, shape: Tuple[int, int], coordinates: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Map coordinates to (row, col) cell indices on a grid.

    The transform follows the affine convention x = a*col + b*row + c,
    y = d*col + e*row + f, with (c, f) the outer corner of cell (0, 0).
    Coordinates outside the grid get row = col = -1.
    """
    a, b, c, d, e, f = transform
    coordinates = np.asarray(coordinates, dtype=float).reshape(-1, 2)
    dx = coordinates[:, 0] - c
    dy = coordinates[:, 1] - f
    det = a * e - b * d
    col = np.floor((e * dx - b * dy) / det).astype(int)
    row = np.floor((a * dy - d * dx) / det).astype(int)
    n_rows, n_cols = shape
    outside = (row < 0) | (row >= n_rows) | (col < 0) | (col >= n_cols)
    row[outside] = -1
    col[outside] = -1
    return row, col


def grid_cell_centers(transform: Transform, shape: Tuple[int, int]) -> np.ndarray:
    """Return the (n_rows * n_cols, 2) centers of all cells in row-major order."""
    a, b, c, d, e, f = transform
    n_rows, n_cols = shape
    cols, rows = np.meshgrid(np.arange(n_cols) + 0.5, np.arange(n_rows) + 0.5)
    x = a * cols + b * rows + c
    y = d * cols + e * rows + f
    return np.column_stack([x.ravel(), y.ravel()])


@dataclass(frozen=True, eq=False)
class RasterGrid:
    """Immutable single-layer raster.

    Attributes:
        data: 2D float array (n_rows, n_cols); NaN marks NA cells.
        transform: Affine coefficients (a, b, c, d, e, f).
        crs: Optional coordinate reference system identifier.
        name: Optional layer name.
    """

    data: np.ndarray
    transform: Transform
    crs: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate raster data and transform."""
        data = np.array(self.data, dtype=float)
        if data.ndim != 2:
            raise ValueError(f"data must be 2D (n_rows, n_cols), got {data.ndim}D")
        if data.size == 0:
            raise ValueError("data must not be empty")
        data.flags.writeable = False
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "transform", _validate_transform(self.transform))

    @classmethod
    def from_bounds(
        cls,
        data: np.ndarray,
        bounds: Tuple[float, float, float, float],
        crs: Optional[str] = None,
        name: Optional[str] = None,
    ) -> "RasterGrid":
        """Create a north-up raster covering (xmin, ymin, xmax, ymax)."""
        data = np.asarray(data, dtype=float)
        xmin, ymin, xmax, ymax = bounds
        n_rows, n_cols = data.shape
        transform = (
            (xmax - xmin) / n_cols,
            0.0,
            xmin,
            0.0,
            -(ymax - ymin) / n_rows,
            ymax,
        )
        return cls(data=data, transform=transform, crs=crs, name=name)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape  # type: ignore[return-value]

    @property
    def n_cells(self) -> int:
        return int(self.data.size)

    @property
    def valid_mask(self) -> np.ndarray:
        return np.isfinite(self.data)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Return (xmin, ymin, xmax, ymax) of the grid's outer edges."""
        a, b, c, d, e, f = self.transform
        n_rows, n_cols = self.shape
        corners_x = np.array([c, c + a * n_cols, c + b * n_rows, c + a * n_cols + b * n_rows])
        corners_y = np.array([f, f + d * n_cols, f + e * n_rows, f + d * n_cols + e * n_rows])
        return (
            float(corners_x.min()),
            float(corners_y.min()),
            float(corners_x.max()),
            float(corners_y.max()),
        )

    def rowcol(self, coordinates: Union[np.ndarray, PointSet]) -> Tuple[np.ndarray, np.ndarray]:
        """Cell indices for coordinates; -1 for locations off the grid."""
        if isinstance(coordinates, PointSet):
            coordinates = coordinates.coordinates
        return grid_rowcol(self.transform, self.shape, coordinates)

    def cell_index(self, coordinates: Union[np.ndarray, PointSet]) -> np.ndarray:
        """Flat (row-major) cell index per location; -1 when off the grid."""
        row, col = self.rowcol(coordinates)
        flat = row * self.shape[1] + col
        flat[row < 0] = -1
        return flat

    def cell_centers(self) -> np.ndarray:
        return grid_cell_centers(self.transform, self.shape)

    def extract(self, points: Union[np.ndarray, PointSet]) -> np.ndarray:
        """Sample the raster at point locations.

        Returns:
            Float array (n_points,); NaN where the point is off the grid or
            the cell is NA.
        """
        row, col = self.rowcol(points)
        values = np.full(len(row), np.nan)
        inside = row >= 0
        values[inside] = self.data[row[inside], col[inside]]
        return values

    def valid_values(self) -> np.ndarray:
        """All finite cell values in row-major order."""
        return self.data[self.valid_mask]

    def same_grid(self, other: "RasterGrid") -> bool:
        """True when both rasters share shape, transform and CRS."""
        return (
            self.shape == other.shape
            and np.allclose(self.transform, other.transform)
            and self.crs == other.crs
        )

    def with_data(self, data: np.ndarray, name: Optional[str] = None) -> "RasterGrid":
        """New raster on exactly this grid with different cell values."""
        data = np.asarray(data, dtype=float)
        if data.shape != self.shape:
            raise ValueError(
                f"data shape {data.shape} does not match grid shape {self.shape}"
            )
        return RasterGrid(
            data=data,
            transform=self.transform,
            crs=self.crs,
            name=name if name is not None else self.name,
        )

    def __repr__(self) -> str:
        """String representation."""
        name_str = f", name='{self.name}'" if self.name else ""
        return (
            f"RasterGrid(shape={self.shape}, valid_cells={int(self.valid_mask.sum())}"
            f"{name_str})"
        )
