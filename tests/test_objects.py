"""Tests for PointSet, RasterGrid and EnvironmentalStack."""

import numpy as np
import pandas as pd
import pytest

from sdmsmith.objects import (
    CategoricalLayer,
    EnvironmentalStack,
    NumericLayer,
    PointSet,
    RasterGrid,
)
from sdmsmith.utils.errors import ParameterError


class TestPointSet:
    """Tests for PointSet."""

    def test_defaults(self):
        """Test that labels default to presences and partition to train."""
        points = PointSet(coordinates=[[0.0, 1.0], [2.0, 3.0]])

        assert len(points) == 2
        assert points.labels.tolist() == [1, 1]
        assert points.partition.tolist() == ["train", "train"]
        np.testing.assert_array_equal(points.x, [0.0, 2.0])
        np.testing.assert_array_equal(points.y, [1.0, 3.0])

    def test_arrays_are_read_only_copies(self):
        """Test that the caller's array stays writable and unchanged."""
        coords = np.array([[0.0, 1.0], [2.0, 3.0]])
        points = PointSet(coordinates=coords)

        coords[0, 0] = 99.0
        assert points.coordinates[0, 0] == 0.0
        with pytest.raises(ValueError):
            points.coordinates[0, 0] = 5.0

    def test_invalid_shape(self):
        """Test that coordinates must have two columns."""
        with pytest.raises(ValueError, match="shape"):
            PointSet(coordinates=np.zeros((3, 3)))

    def test_non_finite_coordinates(self):
        """Test that NaN coordinates are rejected."""
        with pytest.raises(ValueError, match="finite"):
            PointSet(coordinates=[[0.0, np.nan]])

    def test_invalid_labels(self):
        """Test that labels must be 0 or 1."""
        with pytest.raises(ValueError, match="0 \\(absence\\) or 1"):
            PointSet(coordinates=[[0.0, 0.0]], labels=[2])

    def test_invalid_partition(self):
        """Test that unknown partition tags are rejected."""
        with pytest.raises(ValueError, match="partition values"):
            PointSet(coordinates=[[0.0, 0.0]], partition=["test"])

    def test_subsets(self):
        """Test label and partition selection."""
        points = PointSet(
            coordinates=np.arange(8, dtype=float).reshape(4, 2),
            labels=[1, 0, 1, 0],
            partition=["train", "train", "eval", "eval"],
        )

        assert len(points.presences()) == 2
        assert len(points.absences()) == 2
        assert points.eval().labels.tolist() == [1, 0]
        assert len(points.subset([])) == 0
        assert points.subset([3, 0]).x.tolist() == [6.0, 0.0]

    def test_dataframe_round_trip_keeps_attributes(self):
        """Test conversion from and to DataFrame."""
        df = pd.DataFrame(
            {
                "lon": [10.0, 11.0],
                "lat": [50.0, 51.0],
                "occ": [1, 0],
                "species": ["a", "a"],
            }
        )

        points = PointSet.from_dataframe(df, x_col="lon", y_col="lat", label_col="occ")
        out = points.to_dataframe()

        assert list(out.columns) == ["x", "y", "label", "partition", "species"]
        assert out["label"].tolist() == [1, 0]
        assert out["species"].tolist() == ["a", "a"]

    def test_from_dataframe_missing_column(self):
        """Test that a missing coordinate column is reported."""
        df = pd.DataFrame({"x": [0.0]})

        with pytest.raises(ValueError, match="not found"):
            PointSet.from_dataframe(df)


class TestRasterGrid:
    """Tests for RasterGrid."""

    @pytest.fixture
    def raster(self):
        data = np.arange(12, dtype=float).reshape(3, 4)
        data[1, 1] = np.nan
        return RasterGrid.from_bounds(data, (0.0, 0.0, 4.0, 3.0), name="test")

    def test_bounds_and_shape(self, raster):
        """Test grid geometry from bounds."""
        assert raster.shape == (3, 4)
        assert raster.n_cells == 12
        assert raster.bounds == pytest.approx((0.0, 0.0, 4.0, 3.0))

    def test_extract(self, raster):
        """Test sampling at points, including NA and off-grid locations."""
        coords = np.array([[0.5, 2.5], [3.5, 0.5], [1.5, 1.5], [10.0, 10.0]])

        values = raster.extract(coords)

        assert values[0] == 0.0  # top-left cell
        assert values[1] == 11.0  # bottom-right cell
        assert np.isnan(values[2])  # NA cell
        assert np.isnan(values[3])  # off grid

    def test_cell_index_off_grid(self, raster):
        """Test that off-grid locations get index -1."""
        index = raster.cell_index(np.array([[0.5, 2.5], [-1.0, 0.5]]))

        assert index.tolist() == [0, -1]

    def test_cell_centers(self, raster):
        """Test that cell centers map back to their own cells."""
        centers = raster.cell_centers()

        assert centers.shape == (12, 2)
        np.testing.assert_array_equal(raster.cell_index(centers), np.arange(12))

    def test_valid_values(self, raster):
        """Test that NA cells are excluded."""
        assert raster.valid_values().size == 11

    def test_with_data_keeps_grid(self, raster):
        """Test that with_data returns a raster on the same grid."""
        other = raster.with_data(np.zeros((3, 4)), name="zeros")

        assert other.same_grid(raster)
        assert other.name == "zeros"

        with pytest.raises(ValueError, match="does not match"):
            raster.with_data(np.zeros((2, 2)))

    def test_invalid_transform(self):
        """Test that a singular transform is rejected."""
        with pytest.raises(ValueError, match="invertible"):
            RasterGrid(data=np.zeros((2, 2)), transform=(0, 0, 0, 0, 0, 0))

    def test_data_must_be_2d(self):
        """Test that 1D data is rejected."""
        with pytest.raises(ValueError, match="2D"):
            RasterGrid(data=np.zeros(4), transform=(1, 0, 0, 0, -1, 0))


class TestEnvironmentalStack:
    """Tests for EnvironmentalStack."""

    @pytest.fixture
    def stack(self):
        temperature = RasterGrid.from_bounds(
            np.array([[10.0, 12.0], [14.0, np.nan]]), (0, 0, 2, 2), name="temperature"
        )
        landcover = RasterGrid.from_bounds(
            np.array([[0.0, 1.0], [np.nan, 1.0]]), (0, 0, 2, 2), name="landcover"
        )
        return EnvironmentalStack.from_rasters(
            [temperature, landcover], categorical={"landcover": ["forest", "grass"]}
        )

    def test_layer_kinds(self, stack):
        """Test numeric and categorical layer detection."""
        assert stack.names == ["temperature", "landcover"]
        assert stack.numeric_names == ["temperature"]
        assert stack.categorical_names == ["landcover"]

    def test_extract(self, stack):
        """Test that extraction keeps categories and marks NA."""
        coords = np.array([[0.5, 1.5], [1.5, 1.5], [0.5, 0.5], [1.5, 0.5]])

        values = stack.extract(coords)

        assert values["temperature"].iloc[:3].tolist() == [10.0, 12.0, 14.0]
        assert np.isnan(values["temperature"].iloc[3])
        assert list(values["landcover"].cat.categories) == ["forest", "grass"]
        assert values["landcover"].iloc[0] == "forest"
        assert pd.isna(values["landcover"].iloc[2])

    def test_na_mask(self, stack):
        """Test that a cell is NA when any layer is NA."""
        np.testing.assert_array_equal(stack.na_mask(), [[False, False], [True, True]])

    def test_to_frame_dropna(self, stack):
        """Test the cell table without incomplete cells."""
        frame = stack.to_frame(dropna=True)

        assert len(frame) == 2
        assert list(frame.columns) == ["x", "y", "temperature", "landcover"]

    def test_numeric_layer_refuses_categorical(self, stack):
        """Test that numeric-only access rejects categorical layers."""
        with pytest.raises(ParameterError, match="categorical"):
            stack.numeric_layer("landcover")

    def test_missing_layer(self, stack):
        """Test lookup of an unknown layer."""
        with pytest.raises(KeyError, match="not found"):
            stack.layer("rainfall")

    def test_shape_mismatch(self):
        """Test that layers must share a grid."""
        with pytest.raises(ValueError, match="share one grid"):
            EnvironmentalStack(
                layers=(
                    NumericLayer("a", np.zeros((2, 2))),
                    NumericLayer("b", np.zeros((3, 2))),
                ),
                transform=(1, 0, 0, 0, -1, 2),
            )

    def test_duplicate_names(self):
        """Test that layer names must be unique."""
        with pytest.raises(ValueError, match="Duplicate"):
            EnvironmentalStack(
                layers=(
                    NumericLayer("a", np.zeros((2, 2))),
                    NumericLayer("a", np.ones((2, 2))),
                ),
                transform=(1, 0, 0, 0, -1, 2),
            )

    def test_categorical_codes_out_of_range(self):
        """Test that codes beyond the level set are rejected."""
        with pytest.raises(ValueError, match="codes must lie"):
            CategoricalLayer("lc", np.array([[0, 2]]), levels=("a", "b"))
