"""Suitability to presence-absence conversion task.

Layer 3: Tasks - User intent translation.

Turns a continuous suitability raster into a probability-of-occurrence
raster and, optionally, a binary presence-absence raster. Transfer
parameters come from the caller, from the configuration, or are solved so
the mean probability over the landscape matches a species prevalence.
"""

import logging
from typing import Dict, Optional

import numpy as np

from sdmsmith.config import ConfigManager, resolve
from sdmsmith.objects.rastergrid import RasterGrid
from sdmsmith.objects.results import ConversionResult
from sdmsmith.primitives.transfer import (
    linear_transfer,
    logistic_transfer,
    normalize_suitability,
    prevalence_threshold,
    solve_linear_intercept,
    solve_logistic_alpha,
    threshold_transfer,
)
from sdmsmith.utils.errors import (
    ConfigurationError,
    ParameterError,
    raise_conflicting_options,
    raise_parameter_error,
)

logger = logging.getLogger(__name__)

METHODS = ("threshold", "logistic", "linear")

# Transfer parameters each method accepts
METHOD_PARAMETERS = {
    "threshold": ("threshold",),
    "logistic": ("alpha", "beta"),
    "linear": ("a", "b"),
}


def _sample_pa(probability: np.ndarray, random_state: Optional[int]) -> np.ndarray:
    """Bernoulli draw per finite cell; NA cells stay NaN."""
    rng = np.random.default_rng(random_state)
    finite = np.isfinite(probability)
    pa = np.full(probability.shape, np.nan)
    pa[finite] = rng.binomial(1, probability[finite])
    return pa


def convert_to_pa(
    suitability: RasterGrid,
    method: Optional[str] = None,
    threshold: Optional[float] = None,
    alpha: Optional[float] = None,
    beta: Optional[float] = None,
    a: Optional[float] = None,
    b: Optional[float] = None,
    species_prevalence: Optional[float] = None,
    sample_pa: Optional[bool] = None,
    random_state: Optional[int] = None,
    config: Optional[ConfigManager] = None,
) -> ConversionResult:
    """Convert suitability to probability of occurrence and presence-absence.

    Methods:
        - 'threshold': binary map, present where suitability >= threshold.
          A cell exactly at the threshold is present.
        - 'logistic': p = 1 / (1 + exp(-(alpha + beta * suitability))).
        - 'linear': p = clip(a * suitability + b, 0, 1).

    With ``species_prevalence`` the free parameter is solved so that the
    mean probability over all valid cells equals the prevalence: the
    threshold, the logistic ``alpha`` (``beta`` kept), or the linear ``b``
    (``a`` kept). Passing the solved parameter as well is a configuration
    error.
    So is passing a transfer parameter the chosen method does not use.

    Args:
        suitability: Suitability raster; rescaled to [0, 1] if needed.
        method: 'threshold', 'logistic' or 'linear'.
        threshold: Cutoff for the threshold method.
        alpha: Logistic intercept.
        beta: Logistic slope (positive).
        a: Linear slope (positive).
        b: Linear intercept.
        species_prevalence: Target share of occupied cells, in (0, 1).
        sample_pa: Draw a binary map from the probabilities (logistic and
            linear only).
        random_state: Seed for the binary draw.
        config: Optional configuration; defaults to the global one.

    Returns:
        ConversionResult on exactly the input grid; NA cells stay NA.

    Example:
        >>> result = convert_to_pa(suitability, method="logistic", species_prevalence=0.2)
        >>> probability, pa = result
    """
    method = str(resolve(method, "conversion.method", config)).lower()
    if method not in METHODS:
        raise_parameter_error("method", method, valid_values=list(METHODS))
    given = {"threshold": threshold, "alpha": alpha, "beta": beta, "a": a, "b": b}
    foreign = sorted(
        name
        for name, value in given.items()
        if value is not None and name not in METHOD_PARAMETERS[method]
    )
    if foreign:
        raise ConfigurationError(
            f"Parameters {foreign} do not apply to the {method} method",
            options=(*foreign, "method"),
            suggestion=f"The {method} method takes {list(METHOD_PARAMETERS[method])}",
        )
    if species_prevalence is not None:
        conflicting = {"threshold": threshold, "logistic": alpha, "linear": b}[method]
        solved_name = {"threshold": "threshold", "logistic": "alpha", "linear": "b"}[method]
        if conflicting is not None:
            raise_conflicting_options(
                solved_name,
                "species_prevalence",
                suggestion=(
                    f"'{solved_name}' is solved from 'species_prevalence' for the "
                    f"{method} method; pass only one of them"
                ),
            )
    sample_pa = bool(resolve(sample_pa, "conversion.sample_pa", config))
    random_state = resolve(random_state, "conversion.random_state", config)

    values = normalize_suitability(suitability.data)
    parameters: Dict[str, float] = {}

    if method == "threshold":
        if species_prevalence is not None:
            threshold = prevalence_threshold(values, species_prevalence)
        threshold = float(resolve(threshold, "conversion.threshold", config))
        probability = threshold_transfer(values, threshold)
        pa = probability.copy()
        parameters["threshold"] = threshold
    else:
        if method == "logistic":
            beta = float(resolve(beta, "conversion.logistic.beta", config))
            if beta <= 0:
                raise ParameterError(
                    f"beta must be positive, got {beta}",
                    suggestion="Probability must increase with suitability",
                )
            if species_prevalence is not None:
                alpha = solve_logistic_alpha(values, beta, species_prevalence)
            alpha = float(resolve(alpha, "conversion.logistic.alpha", config))
            probability = logistic_transfer(values, alpha, beta)
            parameters.update(alpha=alpha, beta=beta)
        else:
            a = float(resolve(a, "conversion.linear.a", config))
            if a <= 0:
                raise ParameterError(
                    f"a must be positive, got {a}",
                    suggestion="Probability must increase with suitability",
                )
            if species_prevalence is not None:
                b = solve_linear_intercept(values, a, species_prevalence)
            b = float(resolve(b, "conversion.linear.b", config))
            probability = linear_transfer(values, a, b)
            parameters.update(a=a, b=b)
        pa = _sample_pa(probability, random_state) if sample_pa else None

    realized = float(np.nanmean(probability))
    if species_prevalence is not None:
        parameters["species_prevalence"] = float(species_prevalence)
        logger.info(
            f"Converted with {method} method: target prevalence "
            f"{species_prevalence:.4f}, realized {realized:.4f}"
        )
    else:
        logger.info(f"Converted with {method} method: realized prevalence {realized:.4f}")

    return ConversionResult(
        probability=suitability.with_data(probability, name="probability_of_occurrence"),
        pa=suitability.with_data(pa, name="pa") if pa is not None else None,
        method=method,
        parameters=parameters,
        realized_prevalence=realized,
    )
