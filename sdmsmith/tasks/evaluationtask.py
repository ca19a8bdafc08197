"""Presence-only model evaluation task.

Layer 3: Tasks - User intent translation.

Scores a suitability prediction against presence points, and against
absence or background points when they are available.
"""

import logging
from typing import Callable, Dict, Optional, Sequence, Tuple, TypeVar

import numpy as np

from sdmsmith.config import ConfigManager, resolve
from sdmsmith.objects.pointset import PointSet
from sdmsmith.objects.rastergrid import RasterGrid
from sdmsmith.objects.results import (
    EvaluationResult,
    PresenceAbsenceEvaluation,
    PresenceOnlyEvaluation,
)
from sdmsmith.primitives.evaluation import (
    auc_background,
    auc_ratio,
    boyce_index,
    confusion_counts,
    cost_value_index,
)
from sdmsmith.primitives.data_quality import check_crs
from sdmsmith.primitives.transfer import normalize_suitability
from sdmsmith.utils.errors import InsufficientDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _attempt(
    name: str, compute: Callable[[], T], unavailable: Dict[str, str]
) -> Optional[T]:
    """Run one metric; record it as unavailable instead of failing the batch."""
    try:
        return compute()
    except InsufficientDataError as e:
        logger.warning(f"{name} unavailable: {e.message}")
        unavailable[name] = f"insufficient data: {e.message}"
        return None


def _predictions_at(raster: RasterGrid, points: PointSet, role: str) -> np.ndarray:
    check_crs(points, raster)
    values = raster.extract(points)
    finite = np.isfinite(values)
    n_dropped = int((~finite).sum())
    if n_dropped:
        logger.warning(
            f"Dropped {n_dropped} of {len(points)} {role} points off the grid or on NA cells"
        )
    return values[finite]


def _require_points(points: Optional[PointSet], values: np.ndarray, role: str) -> None:
    if points is not None and values.size == 0:
        raise InsufficientDataError(
            f"No {role} points with a valid prediction",
            metric=role,
            suggestion=f"Check that the {role} points overlap the prediction raster",
        )


def evaluate(
    prediction: RasterGrid,
    presence_points: PointSet,
    background_points: Optional[PointSet] = None,
    absence_points: Optional[PointSet] = None,
    cvi_thresholds: Optional[Sequence[float]] = None,
    pa_threshold: Optional[float] = None,
    boyce_windows: Optional[int] = None,
    boyce_window_fraction: Optional[float] = None,
    config: Optional[ConfigManager] = None,
) -> EvaluationResult:
    """Evaluate a suitability prediction.

    Presence-only metrics are always computed: CVI at each threshold, the
    continuous Boyce index (against background predictions if given, else
    against all valid cells), the AUC ratio (presences against all valid
    cells, relative to the best AUC reachable at the observed prevalence)
    and the background AUC (presences against background, or all valid cells
    when no background is given).

    Presence-absence metrics are computed when absence points are given; if
    only background points are given they serve as pseudo-absences. A cell
    predicted at or above ``pa_threshold`` counts as predicted presence.

    Args:
        prediction: Suitability raster; rescaled to [0, 1] if needed.
        presence_points: Presence observations (e.g. the eval partition).
        background_points: Optional background (pseudo-absence) points.
        absence_points: Optional confirmed absence points.
        cvi_thresholds: Thresholds for the cost-value index.
        pa_threshold: Binary cutoff for presence-absence metrics.
        boyce_windows: Number of moving-window steps for the Boyce index.
        boyce_window_fraction: Boyce window width as a share of the range.
        config: Optional configuration; defaults to the global one.

    Returns:
        EvaluationResult. Metrics that the data cannot support are None and
        explained in ``result.unavailable``.

    Raises:
        InsufficientDataError: If no presence has a valid prediction, or if a
            supplied background or absence set has none.
    """
    cvi_thresholds = tuple(
        float(t) for t in resolve(cvi_thresholds, "evaluation.cvi_thresholds", config)
    )
    pa_threshold = float(resolve(pa_threshold, "evaluation.pa_threshold", config))
    boyce_windows = int(resolve(boyce_windows, "evaluation.boyce.n_windows", config))
    boyce_window_fraction = float(
        resolve(boyce_window_fraction, "evaluation.boyce.window_fraction", config)
    )

    data = normalize_suitability(prediction.data)
    if data is not prediction.data:
        prediction = prediction.with_data(data)
    landscape = prediction.valid_values()

    presence = _predictions_at(prediction, presence_points, "presence")
    _require_points(presence_points, presence, "presence")
    background = None
    if background_points is not None:
        background = _predictions_at(prediction, background_points, "background")
        _require_points(background_points, background, "background")
    absence = None
    if absence_points is not None:
        absence = _predictions_at(prediction, absence_points, "absence")
        _require_points(absence_points, absence, "absence")

    unavailable: Dict[str, str] = {}

    cvi = {
        t: _attempt(f"cvi_{t:g}", lambda t=t: cost_value_index(presence, landscape, t), unavailable)
        for t in cvi_thresholds
    }

    expected = background if background is not None else landscape
    boyce = _attempt(
        "cbi",
        lambda: boyce_index(presence, expected, boyce_windows, boyce_window_fraction),
        unavailable,
    )

    occupied = np.unique(prediction.cell_index(presence_points))
    occupied = occupied[occupied >= 0]
    occupied = occupied[np.isfinite(prediction.data.ravel()[occupied])]
    prevalence = occupied.size / landscape.size
    ratio = _attempt("auc_ratio", lambda: auc_ratio(presence, landscape, prevalence), unavailable)
    bg = _attempt("auc_background", lambda: auc_background(presence, expected), unavailable)

    presence_only = PresenceOnlyEvaluation(
        cvi=cvi,
        cbi=boyce[0] if boyce else None,
        auc_ratio=ratio[0] if ratio else None,
        auc_background=bg[0] if bg else None,
        boyce_curve=boyce[1] if boyce else None,
        roc_ratio=ratio[1] if ratio else None,
        roc_background=bg[1] if bg else None,
        n_presence=int(presence.size),
        n_background=int(background.size) if background is not None else 0,
    )

    presence_absence = None
    reference = absence if absence is not None else background
    if reference is not None:
        presence_absence = _presence_absence(
            presence, reference, pa_threshold, absence is None, unavailable
        )

    result = EvaluationResult(
        presence_only=presence_only,
        presence_absence=presence_absence,
        unavailable=unavailable,
    )
    logger.info(
        f"Evaluated prediction with {presence.size} presences"
        + (f" and {reference.size} absences" if reference is not None else "")
    )
    return result


def _presence_absence(
    presence: np.ndarray,
    absence: np.ndarray,
    threshold: float,
    pseudo_absence: bool,
    unavailable: Dict[str, str],
) -> PresenceAbsenceEvaluation:
    counts = confusion_counts(presence, absence, threshold)
    sensitivity = _attempt("sensitivity", counts.sensitivity, unavailable)
    specificity = _attempt("specificity", counts.specificity, unavailable)
    tss = None
    if sensitivity is not None and specificity is not None:
        tss = sensitivity + specificity - 1.0
    else:
        unavailable["tss"] = "insufficient data: needs sensitivity and specificity"
    roc = _attempt("auc", lambda: auc_background(presence, absence), unavailable)
    return PresenceAbsenceEvaluation(
        threshold=threshold,
        confusion=counts,
        sensitivity=sensitivity,
        specificity=specificity,
        tss=tss,
        auc=roc[0] if roc else None,
        jaccard=_attempt("jaccard", counts.jaccard, unavailable),
        sorensen=_attempt("sorensen", counts.sorensen, unavailable),
        overprediction_rate=_attempt(
            "overprediction_rate", counts.overprediction_rate, unavailable
        ),
        underprediction_rate=_attempt(
            "underprediction_rate", counts.underprediction_rate, unavailable
        ),
        roc=roc[1] if roc else None,
        pseudo_absence=pseudo_absence,
    )


def evaluate_partitions(
    prediction: RasterGrid,
    points: PointSet,
    background_points: Optional[PointSet] = None,
    config: Optional[ConfigManager] = None,
) -> Tuple[EvaluationResult, Optional[EvaluationResult]]:
    """Evaluate the train and eval partitions of one point set separately.

    Presences and absences are taken from the point labels. The eval result
    is None when no point is tagged 'eval'.
    """
    results = []
    for part in (points.train(), points.eval()):
        if not len(part):
            results.append(None)
            continue
        absences = part.absences()
        results.append(
            evaluate(
                prediction,
                part.presences(),
                background_points=background_points,
                absence_points=absences if len(absences) else None,
                config=config,
            )
        )
    if results[0] is None:
        raise InsufficientDataError("No points in the train partition", metric="presence")
    return results[0], results[1]
