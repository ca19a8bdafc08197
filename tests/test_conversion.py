"""Tests for suitability to presence-absence conversion."""

import numpy as np
import pytest

from sdmsmith.objects import RasterGrid
from sdmsmith.primitives.transfer import (
    linear_transfer,
    logistic_transfer,
    normalize_suitability,
    prevalence_threshold,
    solve_linear_intercept,
    solve_logistic_alpha,
    threshold_transfer,
)
from sdmsmith.tasks.conversiontask import convert_to_pa
from sdmsmith.utils.errors import ConfigurationError, ParameterError


@pytest.fixture
def suitability():
    """1000 random suitability cells with a few NA cells."""
    np.random.seed(42)
    data = np.random.rand(40, 25)
    data[0, :3] = np.nan
    return RasterGrid.from_bounds(data, (0.0, 0.0, 25.0, 40.0), name="suitability")


class TestTransferFunctions:
    """Tests for the transfer primitives."""

    def test_threshold_boundary_is_present(self):
        """Test that a value equal to the threshold is a presence."""
        values = np.array([0.3, 0.5, 0.7, np.nan])

        out = threshold_transfer(values, 0.5)

        assert out[:3].tolist() == [0.0, 1.0, 1.0]
        assert np.isnan(out[3])

    def test_logistic_midpoint(self):
        """Test that the default curve gives 0.5 at suitability 0.5."""
        assert logistic_transfer(np.array([0.5]), -10.0, 20.0)[0] == pytest.approx(0.5)

    def test_linear_is_clipped(self):
        """Test that linear probabilities stay within [0, 1]."""
        out = linear_transfer(np.array([0.0, 0.5, 1.0]), 2.0, -0.5)

        np.testing.assert_allclose(out, [0.0, 0.5, 1.0])

    def test_normalize_leaves_unit_range(self):
        """Test that values already in [0, 1] are untouched."""
        values = np.array([0.1, 0.9, np.inf])

        out = normalize_suitability(values)

        np.testing.assert_array_equal(out[:2], [0.1, 0.9])
        assert np.isnan(out[2])

    def test_normalize_rescales(self):
        """Test min-max rescaling of values outside [0, 1]."""
        out = normalize_suitability(np.array([-2.0, 0.0, 2.0, np.nan]))

        np.testing.assert_allclose(out[:3], [0.0, 0.5, 1.0])
        assert np.isnan(out[3])

    def test_solve_logistic_alpha(self):
        """Test that the solved intercept hits the prevalence."""
        values = np.random.RandomState(1).rand(500)

        alpha = solve_logistic_alpha(values, beta=20.0, prevalence=0.3)

        assert logistic_transfer(values, alpha, 20.0).mean() == pytest.approx(0.3, abs=1e-6)

    def test_solve_linear_intercept(self):
        """Test that the solved intercept hits the prevalence."""
        values = np.random.RandomState(2).rand(500)

        b = solve_linear_intercept(values, a=1.5, prevalence=0.1)

        assert linear_transfer(values, 1.5, b).mean() == pytest.approx(0.1, abs=1e-6)

    def test_prevalence_threshold(self):
        """Test the k-th largest value rule."""
        values = np.linspace(0.0, 1.0, 101)

        threshold = prevalence_threshold(values, 0.2)

        assert threshold == values[-20]
        assert threshold_transfer(values, threshold).sum() == 20

    @pytest.mark.parametrize("prevalence", [0.0, 1.0, -0.1, 1.5])
    def test_prevalence_out_of_range(self, prevalence):
        """Test that prevalence must lie strictly inside (0, 1)."""
        with pytest.raises(ParameterError, match="species_prevalence"):
            solve_logistic_alpha(np.array([0.1, 0.5]), 20.0, prevalence)


class TestConvertToPa:
    """Tests for the convert_to_pa task."""

    def test_logistic_prevalence(self, suitability):
        """Test that the mean probability matches the target prevalence."""
        result = convert_to_pa(suitability, method="logistic", species_prevalence=0.2)

        assert result.realized_prevalence == pytest.approx(0.2, abs=1e-3)
        assert np.nanmean(result.probability.data) == pytest.approx(0.2, abs=1e-3)
        assert result.parameters["beta"] == 20.0
        assert "alpha" in result.parameters

    def test_thousand_points_prevalence(self):
        """Test the 1000-cell landscape at prevalence 0.2."""
        rng = np.random.RandomState(0)
        suitability = RasterGrid.from_bounds(rng.beta(2, 5, size=(1, 1000)), (0, 0, 1000, 1))

        probability, pa = convert_to_pa(
            suitability, method="logistic", species_prevalence=0.2
        )

        assert probability.data.mean() == pytest.approx(0.2, abs=1e-3)
        assert set(np.unique(pa.data)) <= {0.0, 1.0}

    def test_linear_prevalence(self, suitability):
        """Test the linear transfer calibrated to a prevalence."""
        result = convert_to_pa(suitability, method="linear", a=0.5, species_prevalence=0.4)

        assert result.realized_prevalence == pytest.approx(0.4, abs=1e-3)
        assert result.parameters["a"] == 0.5

    def test_threshold_boundary(self):
        """Test that cells exactly at the threshold are present."""
        data = np.array([[0.2, 0.5], [0.5, 0.8]])
        grid = RasterGrid.from_bounds(data, (0, 0, 2, 2))

        probability, pa = convert_to_pa(grid, method="threshold", threshold=0.5)

        np.testing.assert_array_equal(pa.data, [[0.0, 1.0], [1.0, 1.0]])
        np.testing.assert_array_equal(probability.data, pa.data)

    def test_threshold_from_prevalence(self, suitability):
        """Test the threshold method calibrated to a prevalence."""
        result = convert_to_pa(suitability, method="threshold", species_prevalence=0.25)

        valid = result.pa.data[np.isfinite(result.pa.data)]
        assert valid.sum() == round(0.25 * valid.size)

    def test_na_cells_stay_na(self, suitability):
        """Test that NA cells are NA in both outputs, on the same grid."""
        result = convert_to_pa(suitability, method="logistic")

        assert result.probability.same_grid(suitability)
        assert np.isnan(result.probability.data[0, :3]).all()
        assert np.isnan(result.pa.data[0, :3]).all()
        assert np.isfinite(result.pa.data[1:]).all()

    def test_binary_draw_is_seeded(self, suitability):
        """Test that the same seed gives the same binary map."""
        first = convert_to_pa(suitability, method="logistic", random_state=3)
        second = convert_to_pa(suitability, method="logistic", random_state=3)

        np.testing.assert_array_equal(first.pa.data, second.pa.data)

    def test_no_binary_map(self, suitability):
        """Test that the binary map can be skipped."""
        probability, pa = convert_to_pa(suitability, method="linear", sample_pa=False)

        assert pa is None
        assert probability.name == "probability_of_occurrence"

    def test_rescales_suitability(self):
        """Test that suitability outside [0, 1] is normalized first."""
        data = np.array([[0.0, 50.0, 100.0]])
        grid = RasterGrid.from_bounds(data, (0, 0, 3, 1))

        result = convert_to_pa(grid, method="linear", a=1.0, b=0.0, sample_pa=False)

        np.testing.assert_allclose(result.probability.data, [[0.0, 0.5, 1.0]])

    @pytest.mark.parametrize(
        "method, options",
        [
            ("threshold", {"threshold": 0.3}),
            ("logistic", {"alpha": -5.0}),
            ("linear", {"b": 0.1}),
        ],
    )
    def test_conflicting_options(self, suitability, method, options):
        """Test that a prevalence and the parameter it solves exclude each other."""
        with pytest.raises(ConfigurationError, match="Conflicting options") as info:
            convert_to_pa(suitability, method=method, species_prevalence=0.2, **options)

        assert "species_prevalence" in info.value.options

    @pytest.mark.parametrize(
        "method, options",
        [
            ("threshold", {"alpha": -5.0}),
            ("logistic", {"threshold": 0.5}),
            ("linear", {"beta": 10.0}),
        ],
    )
    def test_parameter_for_other_method(self, suitability, method, options):
        """Test that a parameter the method does not use is rejected."""
        with pytest.raises(ConfigurationError, match="do not apply") as info:
            convert_to_pa(suitability, method=method, **options)

        assert list(options)[0] in info.value.options

    def test_infinite_cell_is_na(self):
        """Test that a non-finite suitability cell stays NA and is not calibrated."""
        data = np.random.RandomState(0).rand(20, 20)
        data[0, 0] = np.inf
        grid = RasterGrid.from_bounds(data, (0, 0, 20, 20))

        result = convert_to_pa(grid, method="logistic", species_prevalence=0.2)

        assert np.isnan(result.probability.data[0, 0])
        assert np.isnan(result.pa.data[0, 0])
        assert result.realized_prevalence == pytest.approx(0.2, abs=1e-3)

    def test_unknown_method(self, suitability):
        """Test that an unknown method is rejected."""
        with pytest.raises(ParameterError, match="method"):
            convert_to_pa(suitability, method="sigmoid")

    def test_non_positive_slope(self, suitability):
        """Test that probability must increase with suitability."""
        with pytest.raises(ParameterError, match="beta must be positive"):
            convert_to_pa(suitability, method="logistic", beta=-1.0)

    def test_defaults_from_config(self, suitability):
        """Test that the method and parameters come from configuration."""
        from sdmsmith.config import load_config

        config = load_config()
        config.set("conversion.method", "linear")
        config.set("conversion.linear.b", 0.1)

        result = convert_to_pa(suitability, config=config)

        assert result.method == "linear"
        assert result.parameters["b"] == 0.1
