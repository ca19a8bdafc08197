"""Observation point sets.

A PointSet holds occurrence records: planar coordinates, a presence (1) or
absence (0) label and a train/eval partition tag per record.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

PARTITIONS = ("train", "eval")


@dataclass(frozen=True, eq=False)
class PointSet:
    """Immutable set of observation points.

    Attributes:
        coordinates: Float array (n_points, 2) with x, y columns.
        labels: Int array (n_points,), 1 for presence and 0 for absence.
            Defaults to all presences.
        partition: String array (n_points,) with 'train' or 'eval'.
            Defaults to all 'train'.
        attributes: Optional DataFrame with one row per point.
        crs: Optional coordinate reference system identifier.
    """

    coordinates: np.ndarray
    labels: Optional[np.ndarray] = None
    partition: Optional[np.ndarray] = None
    attributes: Optional[pd.DataFrame] = None
    crs: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate and normalize point arrays."""
        coords = np.array(self.coordinates, dtype=float)
        if coords.ndim == 1 and coords.size == 0:
            coords = coords.reshape(0, 2)
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ValueError(
                f"coordinates must have shape (n_points, 2), got {coords.shape}"
            )
        if not np.all(np.isfinite(coords)):
            raise ValueError("coordinates must be finite")
        n = len(coords)

        if self.labels is None:
            labels = np.ones(n, dtype=int)
        else:
            labels = np.asarray(self.labels).astype(int)
            if labels.shape != (n,):
                raise ValueError(
                    f"labels must have same length as coordinates ({n}), "
                    f"got {labels.shape}"
                )
            if not np.all(np.isin(labels, (0, 1))):
                raise ValueError("labels must be 0 (absence) or 1 (presence)")

        if self.partition is None:
            partition = np.full(n, "train", dtype=object)
        else:
            partition = np.array(self.partition, dtype=object)
            if partition.shape != (n,):
                raise ValueError(
                    f"partition must have same length as coordinates ({n}), "
                    f"got {partition.shape}"
                )
            unknown = set(partition) - set(PARTITIONS)
            if unknown:
                raise ValueError(
                    f"partition values must be one of {PARTITIONS}, "
                    f"got {sorted(unknown)}"
                )

        if self.attributes is not None and len(self.attributes) != n:
            raise ValueError(
                f"attributes must have one row per point ({n}), "
                f"got {len(self.attributes)}"
            )

        for array in (coords, labels, partition):
            array.flags.writeable = False
        object.__setattr__(self, "coordinates", coords)
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "partition", partition)

    def __len__(self) -> int:
        return len(self.coordinates)

    @property
    def x(self) -> np.ndarray:
        return self.coordinates[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.coordinates[:, 1]

    def subset(self, selector: Union[np.ndarray, Sequence[int]]) -> "PointSet":
        """Return the points picked by a boolean mask or an index array."""
        selector = np.asarray(selector)
        if selector.dtype == bool:
            if selector.shape != (len(self),):
                raise ValueError(
                    f"Boolean mask must have length {len(self)}, got {selector.shape}"
                )
        else:
            selector = selector.astype(int)
        attributes = None
        if self.attributes is not None:
            attributes = self.attributes.iloc[selector].reset_index(drop=True)
        return PointSet(
            coordinates=self.coordinates[selector],
            labels=self.labels[selector],
            partition=self.partition[selector],
            attributes=attributes,
            crs=self.crs,
        )

    def presences(self) -> "PointSet":
        return self.subset(self.labels == 1)

    def absences(self) -> "PointSet":
        return self.subset(self.labels == 0)

    def train(self) -> "PointSet":
        return self.subset(self.partition == "train")

    def eval(self) -> "PointSet":
        return self.subset(self.partition == "eval")

    def with_partition(self, partition: Sequence[str]) -> "PointSet":
        """Return a copy of the points with a new partition column."""
        return PointSet(
            coordinates=self.coordinates,
            labels=self.labels,
            partition=np.asarray(partition, dtype=object),
            attributes=self.attributes,
            crs=self.crs,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        x_col: str = "x",
        y_col: str = "y",
        label_col: Optional[str] = None,
        partition_col: Optional[str] = None,
        crs: Optional[str] = None,
    ) -> "PointSet":
        """Build a PointSet from a table.

        Columns other than the coordinate, label and partition columns are
        kept as attributes.

        Args:
            df: Table with one row per observation.
            x_col: Name of the x (longitude) column.
            y_col: Name of the y (latitude) column.
            label_col: Optional presence/absence column.
            partition_col: Optional train/eval column.
            crs: Optional coordinate reference system identifier.

        Returns:
            PointSet with the table's rows in order.
        """
        missing = [c for c in (x_col, y_col, label_col, partition_col) if c and c not in df]
        if missing:
            raise ValueError(
                f"Columns {missing} not found in DataFrame. "
                f"Available columns: {list(df.columns)}"
            )
        used = {x_col, y_col, label_col, partition_col} - {None}
        extra = [c for c in df.columns if c not in used]
        return cls(
            coordinates=df[[x_col, y_col]].to_numpy(dtype=float),
            labels=df[label_col].to_numpy() if label_col else None,
            partition=df[partition_col].to_numpy() if partition_col else None,
            attributes=df[extra].reset_index(drop=True) if extra else None,
            crs=crs,
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Convert the points to a DataFrame with x, y, label and partition."""
        df = pd.DataFrame(
            {
                "x": self.x,
                "y": self.y,
                "label": self.labels,
                "partition": self.partition,
            }
        )
        if self.attributes is not None:
            df = pd.concat([df, self.attributes.reset_index(drop=True)], axis=1)
        return df

    def __repr__(self) -> str:
        """String representation."""
        n_presence = int(self.labels.sum())
        return (
            f"PointSet(n_points={len(self)}, presences={n_presence}, "
            f"absences={len(self) - n_presence})"
        )
