"""Immutable result containers for cleaning, evaluation and conversion."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from sdmsmith.objects.rastergrid import RasterGrid
from sdmsmith.utils.errors import InsufficientDataError

_RULE = "=" * 35
_LABEL_WIDTH = 30


def _freeze(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


def _readonly(array) -> np.ndarray:
    array = np.array(array, dtype=float)
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class OutlierFinding:
    """One suspicious environmental value of one observation.

    Attributes:
        row: Position of the observation in the input point set.
        column: Suspicious environmental variable.
        value: The suspicious value.
        score: Deviation severity, the absolute leave-one-out z-score.
        rule: Conditions defining the comparison group, or 'all records'.
        group_mean: Mean of the comparison group without this record.
        group_sd: Standard deviation of the group without this record.
        group_size: Number of records in the comparison group.
        percentile: Percentile of the value within the group.
        lower_bound: Smallest value not flagged at the detector threshold.
        upper_bound: Largest value not flagged at the detector threshold.
    """

    row: int
    column: str
    value: float
    score: float
    rule: str
    group_mean: float
    group_sd: float
    group_size: int
    percentile: float
    lower_bound: float
    upper_bound: float

    @property
    def direction(self) -> str:
        return "above" if self.value > self.group_mean else "below"

    @property
    def justification(self) -> str:
        """Natural-language explanation of why the value is suspicious."""
        return (
            f"{self.column} = {self.value:.4g} is {self.direction} the expected range "
            f"[{self.lower_bound:.4g}, {self.upper_bound:.4g}] "
            f"(mean {self.group_mean:.4g}, sd {self.group_sd:.4g}, n = {self.group_size}) "
            f"for records where {self.rule}; "
            f"percentile {self.percentile:.1f} of that distribution"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "column": self.column,
            "value": self.value,
            "score": self.score,
            "rule": self.rule,
            "group_mean": self.group_mean,
            "group_sd": self.group_sd,
            "group_size": self.group_size,
            "percentile": self.percentile,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "justification": self.justification,
        }


@dataclass(frozen=True)
class OutlierReport:
    """Ranked findings of the environmental outlier detector.

    Attributes:
        findings: Findings sorted by score, most severe first.
        z_threshold: Sensitivity threshold used.
        top_n: Number of findings shown by ``summary``.
        n_scored: Number of observations that were scored.
        skipped: Rows excluded from scoring because of missing values.
    """

    findings: Tuple[OutlierFinding, ...]
    z_threshold: float
    top_n: int
    n_scored: int
    skipped: Tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.findings)

    def __iter__(self) -> Iterator[OutlierFinding]:
        return iter(self.findings)

    @property
    def rows(self) -> Tuple[int, ...]:
        return tuple(f.row for f in self.findings)

    def top(self, n: Optional[int] = None) -> Tuple[OutlierFinding, ...]:
        return self.findings[: self.top_n if n is None else n]

    def to_frame(self) -> pd.DataFrame:
        columns = list(OutlierFinding.__dataclass_fields__) + ["justification"]
        return pd.DataFrame([f.to_dict() for f in self.findings], columns=columns)

    def summary(self) -> str:
        lines = [
            f"Outliers: {len(self.findings)} of {self.n_scored} scored records "
            f"(z > {self.z_threshold:g}, {len(self.skipped)} skipped for missing values)"
        ]
        for rank, finding in enumerate(self.top(), start=1):
            lines.append(
                f"{rank:>3}. row {finding.row} [{finding.column}] "
                f"score {finding.score:.2f}: {finding.justification}"
            )
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()


@dataclass(frozen=True, eq=False)
class RocCurve:
    """Receiver operating characteristic curve."""

    false_positive_rate: np.ndarray
    true_positive_rate: np.ndarray
    thresholds: np.ndarray

    def __post_init__(self) -> None:
        for name in ("false_positive_rate", "true_positive_rate", "thresholds"):
            object.__setattr__(self, name, _readonly(getattr(self, name)))


@dataclass(frozen=True, eq=False)
class BoyceCurve:
    """Predicted-to-expected ratio across moving suitability windows."""

    suitability: np.ndarray
    f_ratio: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "suitability", _readonly(self.suitability))
        object.__setattr__(self, "f_ratio", _readonly(self.f_ratio))


@dataclass(frozen=True)
class ConfusionCounts:
    """Counts of a binary presence-absence comparison."""

    true_positive: int
    false_negative: int
    false_positive: int
    true_negative: int

    @staticmethod
    def _ratio(numerator: int, denominator: int, metric: str) -> float:
        if denominator == 0:
            raise InsufficientDataError(
                f"{metric} is undefined: its denominator is zero", metric=metric
            )
        return numerator / denominator

    def sensitivity(self) -> float:
        tp, fn = self.true_positive, self.false_negative
        return self._ratio(tp, tp + fn, "sensitivity")

    def specificity(self) -> float:
        tn, fp = self.true_negative, self.false_positive
        return self._ratio(tn, tn + fp, "specificity")

    def jaccard(self) -> float:
        tp = self.true_positive
        return self._ratio(tp, tp + self.false_positive + self.false_negative, "jaccard")

    def sorensen(self) -> float:
        tp = self.true_positive
        return self._ratio(
            2 * tp, 2 * tp + self.false_positive + self.false_negative, "sorensen"
        )

    def overprediction_rate(self) -> float:
        fp = self.false_positive
        return self._ratio(fp, self.true_positive + fp, "overprediction_rate")

    def underprediction_rate(self) -> float:
        fn = self.false_negative
        return self._ratio(fn, self.true_positive + fn, "underprediction_rate")


@dataclass(frozen=True)
class PresenceOnlyEvaluation:
    """Metrics computable from presence points alone.

    Metrics that could not be computed are None and listed with a reason in
    ``EvaluationResult.unavailable``.
    """

    cvi: Mapping[float, Optional[float]]
    cbi: Optional[float]
    auc_ratio: Optional[float]
    auc_background: Optional[float]
    boyce_curve: Optional[BoyceCurve] = None
    roc_ratio: Optional[RocCurve] = None
    roc_background: Optional[RocCurve] = None
    n_presence: int = 0
    n_background: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "cvi", _freeze(self.cvi))


@dataclass(frozen=True)
class PresenceAbsenceEvaluation:
    """Threshold-based metrics against presence and absence points."""

    threshold: float
    confusion: ConfusionCounts
    sensitivity: Optional[float]
    specificity: Optional[float]
    tss: Optional[float]
    auc: Optional[float]
    jaccard: Optional[float]
    sorensen: Optional[float]
    overprediction_rate: Optional[float]
    underprediction_rate: Optional[float]
    roc: Optional[RocCurve] = None
    pseudo_absence: bool = False


@dataclass(frozen=True)
class EvaluationResult:
    """Evaluation of one prediction against one set of reference points."""

    presence_only: PresenceOnlyEvaluation
    presence_absence: Optional[PresenceAbsenceEvaluation] = None
    unavailable: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "unavailable", _freeze(self.unavailable))

    def metrics(self) -> dict[str, Optional[float]]:
        """Flat mapping of every scalar metric (None when unavailable)."""
        po = self.presence_only
        values: dict[str, Optional[float]] = {
            f"cvi_{threshold:g}": value for threshold, value in po.cvi.items()
        }
        values.update(
            cbi=po.cbi, auc_ratio=po.auc_ratio, auc_background=po.auc_background
        )
        pa = self.presence_absence
        if pa is not None:
            values.update(
                sensitivity=pa.sensitivity,
                specificity=pa.specificity,
                tss=pa.tss,
                auc=pa.auc,
                jaccard=pa.jaccard,
                sorensen=pa.sorensen,
                overprediction_rate=pa.overprediction_rate,
                underprediction_rate=pa.underprediction_rate,
            )
        return values

    @staticmethod
    def _line(label: str, value: Optional[float]) -> str:
        shown = "insufficient data" if value is None else f"{value:.3f}"
        return f"{label:<{_LABEL_WIDTH}}{shown}"

    def summary(self) -> str:
        """Fixed labeled metric block."""
        po = self.presence_only
        lines = [_RULE, "Presence-only evaluation:"]
        for threshold, value in po.cvi.items():
            lines.append(self._line(f"CVI with {threshold:g} threshold:", value))
        lines.append(self._line("CBI:", po.cbi))
        lines.append(self._line("AUC (ratio):", po.auc_ratio))
        lines.append(self._line("AUC (background):", po.auc_background))
        pa = self.presence_absence
        if pa is not None:
            lines += [_RULE, "Presence-absence evaluation:"]
            lines.append(self._line("Sensitivity:", pa.sensitivity))
            lines.append(self._line("Specificity:", pa.specificity))
            lines.append(self._line("TSS:", pa.tss))
            lines.append(self._line("AUC:", pa.auc))
            lines.append(self._line("Jaccard's similarity index:", pa.jaccard))
            lines.append(self._line("Sørensen's similarity index:", pa.sorensen))
            lines.append(self._line("Overprediction rate:", pa.overprediction_rate))
            lines.append(self._line("Underprediction rate:", pa.underprediction_rate))
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()


@dataclass(frozen=True)
class ConversionResult:
    """Output of a suitability to presence-absence conversion.

    Unpacks as ``probability, pa = result``.

    Attributes:
        probability: Probability-of-occurrence raster on the input grid.
        pa: Binary presence (1) / absence (0) raster, or None.
        method: Transfer function used.
        parameters: Parameters used, including any solved from prevalence.
        realized_prevalence: Spatial mean of the probability raster.
    """

    probability: RasterGrid
    pa: Optional[RasterGrid]
    method: str
    parameters: Mapping[str, float]
    realized_prevalence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _freeze(self.parameters))

    def __iter__(self) -> Iterator[Optional[RasterGrid]]:
        return iter((self.probability, self.pa))
