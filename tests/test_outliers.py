"""Tests for environmental outlier detection."""

import numpy as np
import pandas as pd
import pytest

from sdmsmith.objects import EnvironmentalStack, NumericLayer, PointSet
from sdmsmith.primitives.outliers import (
    ROOT_RULE,
    find_conditional_outliers,
    leave_one_out_stats,
)
from sdmsmith.tasks.outliertask import detect_outliers
from sdmsmith.utils.errors import ParameterError

N_ROWS, N_COLS = 10, 12
TRANSFORM = (1.0, 0.0, 0.0, 0.0, -1.0, float(N_ROWS))
OUTLIER_CELL = 37


def _stack(temperature, precipitation):
    layers = (
        NumericLayer("temperature", np.asarray(temperature).reshape(N_ROWS, N_COLS)),
        NumericLayer("precipitation", np.asarray(precipitation).reshape(N_ROWS, N_COLS)),
    )
    return EnvironmentalStack(layers=layers, transform=TRANSFORM)


def _points(n):
    """One point at the center of each of the first n cells."""
    cells = np.arange(n)
    rows, cols = np.divmod(cells, N_COLS)
    return PointSet(coordinates=np.column_stack([cols + 0.5, N_ROWS - rows - 0.5]))


@pytest.fixture
def narrow_values():
    """Uniformly spread values in a narrow band, in shuffled cell order."""
    n = N_ROWS * N_COLS
    rng = np.random.RandomState(42)
    temperature = rng.permutation(np.linspace(15.0, 16.0, n))
    precipitation = rng.permutation(np.linspace(800.0, 820.0, n))
    return temperature, precipitation


class TestLeaveOneOutStats:
    """Tests for leave_one_out_stats."""

    def test_matches_direct_computation(self):
        """Test against explicit removal of each value."""
        values = np.array([1.0, 4.0, 2.5, 9.0, 3.0])

        mean, sd = leave_one_out_stats(values)

        for i in range(values.size):
            peers = np.delete(values, i)
            assert mean[i] == pytest.approx(peers.mean(), rel=1e-12)
            assert sd[i] == pytest.approx(peers.std(ddof=1), rel=1e-10)

    def test_needs_three_values(self):
        """Test that two values are not enough."""
        with pytest.raises(ParameterError, match="at least 3"):
            leave_one_out_stats(np.array([1.0, 2.0]))


class TestFindConditionalOutliers:
    """Tests for find_conditional_outliers."""

    def test_flags_extreme_value(self, narrow_values):
        """Test that a far-off value is found with a readable explanation."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[OUTLIER_CELL] = 40.0
        table = pd.DataFrame({"temperature": temperature, "precipitation": precipitation})

        findings = find_conditional_outliers(table, z_threshold=3.5)

        assert [f.row for f in findings] == [OUTLIER_CELL]
        finding = findings[0]
        assert finding.column == "temperature"
        assert finding.value == 40.0
        assert finding.direction == "above"
        assert finding.score > 3.5
        assert finding.percentile > 95.0
        assert finding.upper_bound < 40.0
        assert "percentile" in finding.justification
        assert finding.rule in finding.justification

    def test_narrow_cluster_has_no_outliers(self, narrow_values):
        """Test that a tight cluster yields no findings at z >= 3."""
        temperature, precipitation = narrow_values
        table = pd.DataFrame({"temperature": temperature, "precipitation": precipitation})

        for z in (3.0, 3.5, 5.0):
            assert find_conditional_outliers(table, z_threshold=z) == []

    def test_higher_threshold_flags_fewer(self, narrow_values):
        """Test that raising the threshold never adds findings."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[[3, 50]] = [25.0, 60.0]
        table = pd.DataFrame({"temperature": temperature, "precipitation": precipitation})

        counts = [len(find_conditional_outliers(table, z_threshold=z)) for z in (2.0, 3.5, 20.0, 1e4)]

        assert counts == sorted(counts, reverse=True)
        assert counts[-1] == 0

    def test_categorical_conditioning(self):
        """Test that a value normal overall but unusual for its category is found."""
        n = N_ROWS * N_COLS
        rng = np.random.RandomState(0)
        landcover = np.array(["forest"] * (n // 2) + ["grass"] * (n // 2))
        temperature = np.where(
            landcover == "forest",
            np.linspace(10.0, 10.5, n),
            np.linspace(20.0, 20.5, n),
        )
        order = rng.permutation(n)
        landcover, temperature = landcover[order], temperature[order]
        target = int(np.flatnonzero(landcover == "forest")[0])
        temperature[target] = 20.2
        table = pd.DataFrame(
            {
                "temperature": temperature,
                "landcover": pd.Categorical(landcover, categories=["forest", "grass"]),
            }
        )

        findings = find_conditional_outliers(table, z_threshold=3.5)

        assert [f.row for f in findings] == [target]
        assert findings[0].rule in ("landcover == 'forest'", "landcover != 'grass'")
        assert findings[0].rule != ROOT_RULE

    def test_rows_follow_table_index(self, narrow_values):
        """Test that reported rows are index labels, not positions."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[0] = -30.0
        table = pd.DataFrame(
            {"temperature": temperature, "precipitation": precipitation},
            index=np.arange(len(temperature)) + 1000,
        )

        findings = find_conditional_outliers(table)

        assert [f.row for f in findings] == [1000]

    def test_constant_variable_never_triggers(self, narrow_values):
        """Test that a variable with identical values produces no findings."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[OUTLIER_CELL] = 40.0
        table = pd.DataFrame(
            {
                "temperature": temperature,
                "precipitation": precipitation,
                "elevation": np.full(len(temperature), 250.0),
            }
        )

        findings = find_conditional_outliers(table, z_threshold=3.5)

        assert OUTLIER_CELL in [f.row for f in findings]
        assert all(f.column != "elevation" for f in findings)

    def test_too_few_records(self):
        """Test that tables smaller than one group are not scored."""
        table = pd.DataFrame({"temperature": [1.0, 2.0, 100.0]})

        assert find_conditional_outliers(table, min_group_size=25) == []

    def test_missing_values_rejected(self):
        """Test that incomplete tables must be cleaned first."""
        table = pd.DataFrame({"temperature": [1.0, np.nan, 3.0]})

        with pytest.raises(ParameterError, match="missing"):
            find_conditional_outliers(table)


class TestDetectOutliers:
    """Tests for the detect_outliers task."""

    def test_report_and_removal(self, narrow_values):
        """Test flagging, ranking and removal against a stack."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[OUTLIER_CELL] = 40.0
        stack = _stack(temperature, precipitation)
        points = _points(N_ROWS * N_COLS)

        kept, report = detect_outliers(points, stack, z_threshold=3.5)
        cleaned, removed_report = detect_outliers(points, stack, z_threshold=3.5, remove=True)

        assert kept is points
        assert report.rows == (OUTLIER_CELL,)
        assert report.n_scored == N_ROWS * N_COLS
        assert len(cleaned) == len(points) - 1
        assert removed_report.rows == report.rows
        assert not np.any(np.all(cleaned.coordinates == points.coordinates[OUTLIER_CELL], axis=1))

    def test_skips_missing_environment(self, narrow_values):
        """Test that NA cells and off-grid points are skipped, not flagged."""
        temperature, precipitation = narrow_values
        precipitation = precipitation.copy()
        precipitation[5] = np.nan
        stack = _stack(temperature, precipitation)
        inside = _points(N_ROWS * N_COLS)
        points = PointSet(
            coordinates=np.vstack([inside.coordinates, [[100.0, 100.0]]])
        )

        kept, report = detect_outliers(points, stack, remove=True)

        assert report.skipped == (5, len(points) - 1)
        assert report.n_scored == len(points) - 2
        assert len(report) == 0
        assert len(kept) == len(points)

    def test_skips_infinite_environment(self, narrow_values):
        """Test that a non-finite cell is skipped like an NA cell."""
        temperature, precipitation = narrow_values
        precipitation = precipitation.copy()
        precipitation[5] = np.inf
        stack = _stack(temperature, precipitation)
        points = _points(N_ROWS * N_COLS)

        kept, report = detect_outliers(points, stack)

        assert report.skipped == (5,)
        assert report.n_scored == len(points) - 1
        assert len(report) == 0
        assert kept is points

    def test_top_n_limits_summary_only(self, narrow_values):
        """Test that top_n shortens the summary, not the findings."""
        temperature, precipitation = narrow_values
        temperature = temperature.copy()
        temperature[[3, 50]] = [-20.0, 60.0]
        stack = _stack(temperature, precipitation)

        _, report = detect_outliers(_points(N_ROWS * N_COLS), stack, top_n=1)

        assert len(report) == 2
        assert len(report.top()) == 1
        assert report.findings[0].row == 50
        summary = report.summary()
        assert "row 50" in summary
        assert "row 3 " not in summary

    def test_defaults_from_config(self, narrow_values):
        """Test that unset arguments come from the configuration."""
        from sdmsmith.config import load_config

        temperature, precipitation = narrow_values
        stack = _stack(temperature, precipitation)
        config = load_config()
        config.set("outliers.z_threshold", 4.5)
        config.set("outliers.top_n", 3)

        _, report = detect_outliers(_points(50), stack, config=config)

        assert report.z_threshold == 4.5
        assert report.top_n == 3
