"""Environmental variable stacks.

A stack is a set of named layers sharing one grid. Layers are either
numeric (float values, NaN for NA) or categorical (integer level codes into a
fixed level set, -1 for NA). Operations that only make sense for numbers
check the layer kind and refuse categorical layers explicitly.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import (
    RasterGrid,
    Transform,
    _validate_transform,
    grid_cell_centers,
    grid_rowcol,
)
from sdmsmith.utils.errors import ParameterError

NA_CODE = -1


@dataclass(frozen=True, eq=False)
class NumericLayer:
    """Continuous environmental layer (e.g. temperature, precipitation)."""

    name: str
    values: np.ndarray

    kind = "numeric"

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float)
        if values.ndim != 2:
            raise ValueError(f"Layer '{self.name}' must be 2D, got {values.ndim}D")
        values.flags.writeable = False
        object.__setattr__(self, "values", values)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape  # type: ignore[return-value]

    @property
    def na_mask(self) -> np.ndarray:
        return ~np.isfinite(self.values)


@dataclass(frozen=True, eq=False)
class CategoricalLayer:
    """Discrete environmental layer (e.g. land cover) with a fixed level set.

    Attributes:
        name: Layer name.
        codes: 2D int array of indices into ``levels``; -1 marks NA.
        levels: Level labels, position = code.
    """

    name: str
    codes: np.ndarray
    levels: Tuple[str, ...]

    kind = "categorical"

    def __post_init__(self) -> None:
        codes = np.array(self.codes)
        if codes.ndim != 2:
            raise ValueError(f"Layer '{self.name}' must be 2D, got {codes.ndim}D")
        if not np.issubdtype(codes.dtype, np.integer):
            raise ValueError(
                f"Layer '{self.name}' codes must be integers, got {codes.dtype}"
            )
        levels = tuple(str(level) for level in self.levels)
        if len(set(levels)) != len(levels):
            raise ValueError(f"Layer '{self.name}' has duplicate levels: {levels}")
        if codes.size and (codes.min() < NA_CODE or codes.max() >= len(levels)):
            raise ValueError(
                f"Layer '{self.name}' codes must lie in [-1, {len(levels) - 1}]"
            )
        codes = codes.astype(int)
        codes.flags.writeable = False
        object.__setattr__(self, "codes", codes)
        object.__setattr__(self, "levels", levels)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.codes.shape  # type: ignore[return-value]

    @property
    def na_mask(self) -> np.ndarray:
        return self.codes == NA_CODE

    def to_categorical(self, codes: np.ndarray) -> pd.Categorical:
        """Wrap codes as a pandas Categorical carrying the full level set."""
        return pd.Categorical.from_codes(np.asarray(codes, dtype=int), categories=list(self.levels))


Layer = Union[NumericLayer, CategoricalLayer]


@dataclass(frozen=True, eq=False)
class EnvironmentalStack:
    """Co-registered environmental layers.

    Attributes:
        layers: Numeric and categorical layers, all with the same shape.
        transform: Affine coefficients (a, b, c, d, e, f) shared by all layers.
        crs: Optional coordinate reference system identifier.
    """

    layers: Tuple[Layer, ...]
    transform: Transform
    crs: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate that all layers share one grid and have unique names."""
        layers = tuple(self.layers)
        if not layers:
            raise ValueError("EnvironmentalStack needs at least one layer")
        names = [layer.name for layer in layers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate layer names: {duplicates}")
        shape = layers[0].shape
        for layer in layers[1:]:
            if layer.shape != shape:
                raise ValueError(
                    f"Layer '{layer.name}' has shape {layer.shape}, "
                    f"expected {shape} (all layers must share one grid)"
                )
        object.__setattr__(self, "layers", layers)
        object.__setattr__(self, "transform", _validate_transform(self.transform))

    @classmethod
    def from_rasters(
        cls,
        rasters: Sequence[RasterGrid],
        categorical: Optional[Dict[str, Sequence[str]]] = None,
    ) -> "EnvironmentalStack":
        """Build a stack from single-layer rasters on the same grid.

        Args:
            rasters: Named RasterGrids sharing shape, transform and CRS.
            categorical: Optional mapping of raster name to level labels.
                Those rasters hold integer codes (NaN for NA) and become
                categorical layers.

        Returns:
            EnvironmentalStack with one layer per raster.
        """
        if not rasters:
            raise ValueError("rasters must not be empty")
        categorical = categorical or {}
        first = rasters[0]
        layers = []
        for raster in rasters:
            if raster.name is None:
                raise ValueError("Every raster needs a name to join a stack")
            if not raster.same_grid(first):
                raise ValueError(
                    f"Raster '{raster.name}' is not on the same grid as '{first.name}'"
                )
            if raster.name in categorical:
                codes = np.where(np.isfinite(raster.data), raster.data, NA_CODE)
                layers.append(
                    CategoricalLayer(
                        name=raster.name,
                        codes=codes.astype(int),
                        levels=tuple(categorical[raster.name]),
                    )
                )
            else:
                layers.append(NumericLayer(name=raster.name, values=raster.data))
        return cls(layers=tuple(layers), transform=first.transform, crs=first.crs)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.layers[0].shape

    @property
    def names(self) -> list[str]:
        return [layer.name for layer in self.layers]

    @property
    def numeric_names(self) -> list[str]:
        return [layer.name for layer in self.layers if layer.kind == "numeric"]

    @property
    def categorical_names(self) -> list[str]:
        return [layer.name for layer in self.layers if layer.kind == "categorical"]

    def layer(self, name: str) -> Layer:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(f"Layer '{name}' not found. Available layers: {self.names}")

    def numeric_layer(self, name: str) -> NumericLayer:
        """Fetch a layer that must be numeric."""
        layer = self.layer(name)
        if layer.kind != "numeric":
            raise ParameterError(
                f"Layer '{name}' is categorical; this operation needs a numeric layer",
                suggestion=f"Use one of the numeric layers: {self.numeric_names}",
            )
        return layer  # type: ignore[return-value]

    def select(self, names: Sequence[str]) -> "EnvironmentalStack":
        """Return a stack holding only the named layers, in the given order."""
        return EnvironmentalStack(
            layers=tuple(self.layer(name) for name in names),
            transform=self.transform,
            crs=self.crs,
        )

    def template(self, data: Optional[np.ndarray] = None, name: Optional[str] = None) -> RasterGrid:
        """RasterGrid on the stack's grid (all NaN unless data is given)."""
        if data is None:
            data = np.full(self.shape, np.nan)
        return RasterGrid(data=data, transform=self.transform, crs=self.crs, name=name)

    def na_mask(self) -> np.ndarray:
        """Cells where any layer is NA."""
        mask = np.zeros(self.shape, dtype=bool)
        for layer in self.layers:
            mask |= layer.na_mask
        return mask

    def _frame_from_cells(self, rows: np.ndarray, cols: np.ndarray) -> pd.DataFrame:
        inside = rows >= 0
        columns = {}
        for layer in self.layers:
            if layer.kind == "numeric":
                values = np.full(len(rows), np.nan)
                values[inside] = layer.values[rows[inside], cols[inside]]
                values[~np.isfinite(values)] = np.nan
                columns[layer.name] = values
            else:
                codes = np.full(len(rows), NA_CODE)
                codes[inside] = layer.codes[rows[inside], cols[inside]]
                columns[layer.name] = layer.to_categorical(codes)
        return pd.DataFrame(columns)

    def extract(self, points: Union[np.ndarray, PointSet]) -> pd.DataFrame:
        """Sample every layer at point locations.

        Returns:
            DataFrame with one row per point and one column per layer.
            Numeric columns hold NaN and categorical columns hold missing
            categories where the point is off the grid or the cell is NA.
        """
        coordinates = points.coordinates if isinstance(points, PointSet) else points
        rows, cols = grid_rowcol(self.transform, self.shape, coordinates)
        return self._frame_from_cells(rows, cols)

    def to_frame(self, dropna: bool = False) -> pd.DataFrame:
        """All cells as a table (row-major), with x and y cell centers."""
        n_rows, n_cols = self.shape
        rows, cols = np.divmod(np.arange(n_rows * n_cols), n_cols)
        frame = self._frame_from_cells(rows, cols)
        centers = grid_cell_centers(self.transform, self.shape)
        frame.insert(0, "y", centers[:, 1])
        frame.insert(0, "x", centers[:, 0])
        if dropna:
            frame = frame.dropna().reset_index(drop=True)
        return frame

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"EnvironmentalStack(shape={self.shape}, numeric={self.numeric_names}, "
            f"categorical={self.categorical_names})"
        )
