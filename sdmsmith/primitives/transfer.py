"""Transfer functions from habitat suitability to probability of occurrence.

Layer 2: Primitives - Pure operations on arrays of suitability values. NaN
values are propagated unchanged by every transfer function; calibration
helpers only look at finite values.
"""

import logging

import numpy as np
from scipy.optimize import brentq
from scipy.special import expit, logit

from sdmsmith.utils.errors import InsufficientDataError, ParameterError

logger = logging.getLogger(__name__)

# Absolute tolerance on the solved parameter
SOLVER_XTOL = 1e-12
SOLVER_MAXITER = 500


def normalize_suitability(values: np.ndarray) -> np.ndarray:
    """Min-max rescale to [0, 1] when values leave that interval.

    Values already within [0, 1] are returned unchanged. A constant field
    outside [0, 1] maps to 0.5. Non-finite cells come back as NaN.
    """
    values = np.asarray(values, dtype=float)
    values = np.where(np.isfinite(values), values, np.nan)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        raise InsufficientDataError(
            "Suitability values contain no finite cells", metric="suitability"
        )
    lo, hi = finite.min(), finite.max()
    if lo >= 0.0 and hi <= 1.0:
        return values
    logger.info(f"Rescaling suitability from [{lo:.4g}, {hi:.4g}] to [0, 1]")
    if hi == lo:
        return np.where(np.isfinite(values), 0.5, np.nan)
    return (values - lo) / (hi - lo)


def threshold_transfer(values: np.ndarray, threshold: float) -> np.ndarray:
    """Binary presence map: 1 where value >= threshold, 0 below, NaN kept.

    A value exactly equal to the threshold is a presence.
    """
    values = np.asarray(values, dtype=float)
    out = np.where(values >= threshold, 1.0, 0.0)
    out[~np.isfinite(values)] = np.nan
    return out


def logistic_transfer(values: np.ndarray, alpha: float, beta: float) -> np.ndarray:
    """p = 1 / (1 + exp(-(alpha + beta * suitability)))."""
    values = np.asarray(values, dtype=float)
    return expit(alpha + beta * values)


def linear_transfer(values: np.ndarray, a: float, b: float) -> np.ndarray:
    """p = a * suitability + b, clipped to [0, 1]."""
    values = np.asarray(values, dtype=float)
    return np.clip(a * values + b, 0.0, 1.0)


def _check_prevalence(prevalence: float) -> None:
    if not 0.0 < prevalence < 1.0:
        raise ParameterError(
            f"species_prevalence must be in (0, 1), got {prevalence}",
            suggestion="Give the expected fraction of occupied cells, e.g. 0.2",
        )


def _finite(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        raise InsufficientDataError(
            "Cannot calibrate to a prevalence without finite suitability values",
            metric="species_prevalence",
        )
    return finite


def solve_logistic_alpha(values: np.ndarray, beta: float, prevalence: float) -> float:
    """Find alpha so the mean logistic probability equals ``prevalence``.

    The mean of expit(alpha + beta * x) increases strictly with alpha, so the
    root is unique. The bracket puts every cell below (resp. above) the
    target logit, which guarantees a sign change.
    """
    _check_prevalence(prevalence)
    if beta <= 0:
        raise ParameterError(f"beta must be positive, got {beta}")
    x = _finite(values)
    target = logit(prevalence)
    lo = target - beta * x.max() - 1.0
    hi = target - beta * x.min() + 1.0

    def gap(alpha: float) -> float:
        return float(np.mean(expit(alpha + beta * x))) - prevalence

    alpha = brentq(gap, lo, hi, xtol=SOLVER_XTOL, maxiter=SOLVER_MAXITER)
    logger.debug(f"Solved logistic alpha={alpha:.6f} for prevalence {prevalence}")
    return float(alpha)


def solve_linear_intercept(values: np.ndarray, a: float, prevalence: float) -> float:
    """Find b so the mean of clip(a * x + b, 0, 1) equals ``prevalence``.

    At b = -a * max(x) every probability is 0 and at b = 1 - a * min(x)
    every probability is 1, so the continuous non-decreasing mean crosses
    any prevalence in (0, 1) inside that bracket.
    """
    _check_prevalence(prevalence)
    if a <= 0:
        raise ParameterError(f"a must be positive, got {a}")
    x = _finite(values)
    lo = -a * x.max()
    hi = 1.0 - a * x.min()

    def gap(b: float) -> float:
        return float(np.mean(np.clip(a * x + b, 0.0, 1.0))) - prevalence

    b = brentq(gap, lo, hi, xtol=SOLVER_XTOL, maxiter=SOLVER_MAXITER)
    logger.debug(f"Solved linear intercept b={b:.6f} for prevalence {prevalence}")
    return float(b)


def prevalence_threshold(values: np.ndarray, prevalence: float) -> float:
    """Threshold whose binary map covers ``prevalence`` of the finite cells.

    Returns the k-th largest value with k = round(prevalence * n). Tied
    values at the threshold all become presences, so the realized
    prevalence can exceed the target when the k-th value is tied.
    """
    _check_prevalence(prevalence)
    x = np.sort(_finite(values))[::-1]
    k = int(round(prevalence * x.size))
    if k == 0:
        return float(np.nextafter(x[0], np.inf))
    return float(x[k - 1])
