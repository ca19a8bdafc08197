"""Accuracy indices for species distribution predictions.

Layer 2: Primitives - Pure operations. Inputs are arrays of predicted
suitability at presence, background or absence locations and over the whole
landscape (all valid raster cells). Every function is deterministic and
depends only on the multiset of values, never on their order.

Functions raise InsufficientDataError instead of returning NaN when the data
cannot support the metric.
"""

from typing import Tuple

import numpy as np
from scipy.stats import spearmanr
from sklearn.metrics import roc_auc_score, roc_curve

from sdmsmith.objects.results import BoyceCurve, ConfusionCounts, RocCurve
from sdmsmith.utils.errors import InsufficientDataError, ParameterError


def _finite(values: np.ndarray, name: str, metric: str) -> np.ndarray:
    values = np.asarray(values, dtype=float).ravel()
    values = values[np.isfinite(values)]
    if values.size == 0:
        raise InsufficientDataError(
            f"No finite {name} predictions available for {metric}", metric=metric
        )
    return values


def cost_value_index(
    presence: np.ndarray, landscape: np.ndarray, threshold: float
) -> float:
    """Cost-value index at a suitability threshold.

    CVI = share of presences predicted present - share of the landscape
    predicted present, where "predicted present" means value >= threshold.
    Ranges from -1 to 1; positive values mean presences are concentrated in
    a smaller area than chance.
    """
    metric = f"cvi_{threshold:g}"
    presence = _finite(presence, "presence", metric)
    landscape = _finite(landscape, "landscape", metric)
    covered = np.count_nonzero(presence >= threshold) / presence.size
    cost = np.count_nonzero(landscape >= threshold) / landscape.size
    return float(covered - cost)


def boyce_index(
    presence: np.ndarray,
    expected: np.ndarray,
    n_windows: int = 100,
    window_fraction: float = 0.1,
) -> Tuple[float, BoyceCurve]:
    """Continuous Boyce index with a moving window.

    The suitability range of ``expected`` is swept by ``n_windows + 1``
    windows of width ``window_fraction * range``. For each window the
    predicted-to-expected ratio F = P / E compares the share of presences
    falling in the window with the share of expected (background or
    landscape) values. Windows without expected values are dropped, runs of
    equal F values are collapsed, and the index is the Spearman correlation
    between F and the window midpoints.

    Args:
        presence: Predictions at presence locations.
        expected: Predictions at background locations or all landscape cells.
        n_windows: Number of window steps across the range.
        window_fraction: Window width as a fraction of the range.

    Returns:
        Tuple of (cbi, BoyceCurve).
    """
    if n_windows < 2:
        raise ParameterError(f"n_windows must be >= 2, got {n_windows}")
    if not 0.0 < window_fraction <= 1.0:
        raise ParameterError(
            f"window_fraction must be in (0, 1], got {window_fraction}"
        )
    presence = _finite(presence, "presence", "cbi")
    expected = _finite(expected, "expected", "cbi")

    lo, hi = expected.min(), expected.max()
    if hi == lo:
        raise InsufficientDataError(
            "Boyce index needs varying predictions, all expected values are equal",
            metric="cbi",
        )
    width = (hi - lo) * window_fraction
    starts = np.linspace(lo, hi - width, n_windows + 1)
    ends = starts + width
    ends[-1] = hi

    presence = np.sort(presence)
    expected = np.sort(expected)

    def share(values: np.ndarray) -> np.ndarray:
        inside = np.searchsorted(values, ends, side="right") - np.searchsorted(
            values, starts, side="left"
        )
        return inside / values.size

    p_share = share(presence)
    e_share = share(expected)
    keep = e_share > 0
    f_ratio = np.round(p_share[keep] / e_share[keep], 10)
    midpoints = ((starts + ends) / 2.0)[keep]

    # Collapse runs of equal ratios, keeping the last window of each run
    if f_ratio.size:
        last_of_run = np.append(f_ratio[:-1] != f_ratio[1:], True)
        f_ratio = f_ratio[last_of_run]
        midpoints = midpoints[last_of_run]

    if f_ratio.size < 3 or np.all(f_ratio == f_ratio[0]):
        raise InsufficientDataError(
            f"Boyce index needs at least 3 distinct window ratios, got "
            f"{len(np.unique(f_ratio))}",
            metric="cbi",
            suggestion="Use more presence points or a finer prediction",
        )
    cbi, _ = spearmanr(f_ratio, midpoints)
    return float(cbi), BoyceCurve(suitability=midpoints, f_ratio=f_ratio)


def _roc(
    positive: np.ndarray, negative: np.ndarray, metric: str
) -> Tuple[float, RocCurve]:
    positive = _finite(positive, "positive", metric)
    negative = _finite(negative, "negative", metric)
    # Sorted inputs make the result independent of point order
    scores = np.concatenate([np.sort(positive), np.sort(negative)])
    truth = np.concatenate([np.ones(positive.size), np.zeros(negative.size)])
    fpr, tpr, thresholds = roc_curve(truth, scores)
    auc = roc_auc_score(truth, scores)
    return float(auc), RocCurve(
        false_positive_rate=fpr, true_positive_rate=tpr, thresholds=thresholds
    )


def auc_background(
    presence: np.ndarray, background: np.ndarray
) -> Tuple[float, RocCurve]:
    """ROC AUC of presences against background (pseudo-absence) values."""
    return _roc(presence, background, "auc_background")


def auc_ratio(
    presence: np.ndarray, landscape: np.ndarray, prevalence: float
) -> Tuple[float, RocCurve]:
    """Landscape AUC relative to the best AUC reachable at this prevalence.

    Using every landscape cell as a pseudo-absence, a perfect model still
    scores only 1 - prevalence / 2 because occupied cells appear on both
    sides. The ratio divides the landscape AUC by that maximum.

    Args:
        presence: Predictions at presence locations.
        landscape: Predictions at all valid raster cells.
        prevalence: Fraction of landscape cells holding a presence.

    Returns:
        Tuple of (auc_ratio, RocCurve against the landscape).
    """
    if not 0.0 < prevalence <= 1.0:
        raise InsufficientDataError(
            f"Prevalence must be in (0, 1] for the AUC ratio, got {prevalence}",
            metric="auc_ratio",
        )
    auc, curve = _roc(presence, landscape, "auc_ratio")
    return float(auc / (1.0 - prevalence / 2.0)), curve


def confusion_counts(
    presence: np.ndarray, absence: np.ndarray, threshold: float
) -> ConfusionCounts:
    """Binary comparison at ``threshold`` (value >= threshold is present)."""
    presence = _finite(presence, "presence", "confusion")
    absence = _finite(absence, "absence", "confusion")
    tp = int(np.count_nonzero(presence >= threshold))
    fp = int(np.count_nonzero(absence >= threshold))
    return ConfusionCounts(
        true_positive=tp,
        false_negative=int(presence.size - tp),
        false_positive=fp,
        true_negative=int(absence.size - fp),
    )


def true_skill_statistic(counts: ConfusionCounts) -> float:
    """TSS = sensitivity + specificity - 1."""
    return counts.sensitivity() + counts.specificity() - 1.0
