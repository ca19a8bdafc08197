"""Reading and writing observation tables and grids.

Point tables are CSV files handled by pandas. Rasters and environmental
stacks are stored as NumPy ``.npz`` archives holding the cell arrays, the
affine transform and the CRS; no GIS file formats are involved.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from sdmsmith.objects.envstack import CategoricalLayer, EnvironmentalStack, NumericLayer
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_points_csv(
    path: PathLike,
    x_col: str = "x",
    y_col: str = "y",
    label_col: Optional[str] = None,
    partition_col: Optional[str] = None,
    crs: Optional[str] = None,
) -> PointSet:
    """Load observations from a CSV file.

    Args:
        path: CSV file with one row per observation.
        x_col: Column with x (longitude).
        y_col: Column with y (latitude).
        label_col: Optional presence (1) / absence (0) column.
        partition_col: Optional 'train' / 'eval' column.
        crs: Optional CRS identifier for the coordinates.

    Returns:
        PointSet with remaining columns as attributes.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Points file not found: {path}")
    df = pd.read_csv(path)
    points = PointSet.from_dataframe(df, x_col, y_col, label_col, partition_col, crs=crs)
    logger.info(f"Loaded {len(points)} points from {path}")
    return points


def write_points_csv(points: PointSet, path: PathLike) -> Path:
    """Write observations (x, y, label, partition, attributes) to CSV."""
    path = Path(path)
    points.to_dataframe().to_csv(path, index=False)
    logger.info(f"Wrote {len(points)} points to {path}")
    return path


def _crs_field(crs: Optional[str]) -> np.ndarray:
    return np.array("" if crs is None else crs)


def _crs_value(archive) -> Optional[str]:
    crs = str(archive["crs"]) if "crs" in archive.files else ""
    return crs or None


def save_raster(raster: RasterGrid, path: PathLike) -> Path:
    """Store a raster as an .npz archive."""
    path = Path(path)
    np.savez(
        path,
        data=raster.data,
        transform=np.array(raster.transform),
        crs=_crs_field(raster.crs),
        name=np.array(raster.name or ""),
    )
    return path


def load_raster(path: PathLike) -> RasterGrid:
    """Load a raster written by ``save_raster``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")
    with np.load(path, allow_pickle=False) as archive:
        name = str(archive["name"]) if "name" in archive.files else ""
        raster = RasterGrid(
            data=archive["data"],
            transform=tuple(archive["transform"]),
            crs=_crs_value(archive),
            name=name or None,
        )
    logger.info(f"Loaded raster {raster.shape} from {path}")
    return raster


def save_stack(stack: EnvironmentalStack, path: PathLike) -> Path:
    """Store an environmental stack as an .npz archive."""
    path = Path(path)
    arrays = {}
    meta = []
    for i, layer in enumerate(stack.layers):
        if layer.kind == "numeric":
            arrays[f"layer_{i}"] = layer.values
            meta.append({"name": layer.name, "kind": "numeric"})
        else:
            arrays[f"layer_{i}"] = layer.codes
            meta.append(
                {"name": layer.name, "kind": "categorical", "levels": list(layer.levels)}
            )
    np.savez(
        path,
        transform=np.array(stack.transform),
        crs=_crs_field(stack.crs),
        layers=np.array(json.dumps(meta)),
        **arrays,
    )
    return path


def load_stack(path: PathLike) -> EnvironmentalStack:
    """Load an environmental stack written by ``save_stack``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Stack file not found: {path}")
    with np.load(path, allow_pickle=False) as archive:
        layers = []
        for i, meta in enumerate(json.loads(str(archive["layers"]))):
            values = archive[f"layer_{i}"]
            if meta["kind"] == "numeric":
                layers.append(NumericLayer(name=meta["name"], values=values))
            else:
                layers.append(
                    CategoricalLayer(
                        name=meta["name"], codes=values, levels=tuple(meta["levels"])
                    )
                )
        stack = EnvironmentalStack(
            layers=tuple(layers),
            transform=tuple(archive["transform"]),
            crs=_crs_value(archive),
        )
    logger.info(f"Loaded stack with layers {stack.names} from {path}")
    return stack
