"""Conditional outlier detection for environmental values.

Layer 2: Primitives - Pure operations on a table of environmental values at
observation locations.

Each numeric variable is taken in turn as the target. A shallow regression
tree predicts it from the other variables; each leaf of the tree, plus the
whole table, defines a comparison group described by a readable rule. A value
is suspicious when it lies more than ``z_threshold`` standard deviations from
the rest of its group (leave-one-out statistics, so the value cannot mask
itself) and stands apart from the nearest unflagged value of the group by at
least ``min_gap_sd`` standard deviations.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.stats import percentileofscore
from sklearn.tree import DecisionTreeRegressor

from sdmsmith.objects.results import OutlierFinding
from sdmsmith.utils.errors import ParameterError

logger = logging.getLogger(__name__)

ROOT_RULE = "all records"

# (variable, level) for one-hot columns, (variable, None) for numeric ones
FeatureSpec = Tuple[str, Optional[str]]


def _encode_features(
    table: pd.DataFrame, target: str
) -> Tuple[np.ndarray, List[FeatureSpec]]:
    """Numeric predictors as-is, categorical predictors one-hot encoded."""
    columns = []
    specs: List[FeatureSpec] = []
    for name in table.columns:
        if name == target:
            continue
        series = table[name]
        if isinstance(series.dtype, pd.CategoricalDtype):
            for level in series.cat.categories:
                columns.append((series == level).to_numpy(dtype=float))
                specs.append((name, str(level)))
        else:
            columns.append(series.to_numpy(dtype=float))
            specs.append((name, None))
    if not columns:
        return np.empty((len(table), 0)), specs
    return np.column_stack(columns), specs


def _format_rule(
    bounds: Dict[str, List[float]], equal: Dict[str, str], excluded: Dict[str, List[str]]
) -> str:
    parts = []
    for name, (lo, hi) in bounds.items():
        if np.isfinite(lo) and np.isfinite(hi):
            parts.append(f"{lo:.4g} < {name} <= {hi:.4g}")
        elif np.isfinite(lo):
            parts.append(f"{name} > {lo:.4g}")
        else:
            parts.append(f"{name} <= {hi:.4g}")
    for name, level in equal.items():
        parts.append(f"{name} == '{level}'")
    for name, levels in excluded.items():
        if name in equal:
            continue
        if len(levels) == 1:
            parts.append(f"{name} != '{levels[0]}'")
        else:
            shown = ", ".join(f"'{level}'" for level in sorted(levels))
            parts.append(f"{name} not in {{{shown}}}")
    return " and ".join(parts) if parts else ROOT_RULE


def leaf_rules(tree: DecisionTreeRegressor, specs: List[FeatureSpec]) -> Dict[int, str]:
    """Describe the path to every leaf of a fitted tree.

    Repeated splits on a numeric variable are merged into one interval.
    One-hot splits read as ``var == 'level'`` or ``var != 'level'``.

    Returns:
        Mapping of leaf node id to rule text.
    """
    structure = tree.tree_
    left, right = structure.children_left, structure.children_right
    rules: Dict[int, str] = {}

    def walk(node: int, bounds, equal, excluded) -> None:
        if left[node] == right[node]:
            rules[node] = _format_rule(bounds, equal, excluded)
            return
        name, level = specs[structure.feature[node]]
        threshold = float(structure.threshold[node])
        if level is None:
            lo, hi = bounds.get(name, [-np.inf, np.inf])
            walk(left[node], {**bounds, name: [lo, min(hi, threshold)]}, equal, excluded)
            walk(right[node], {**bounds, name: [max(lo, threshold), hi]}, equal, excluded)
        else:
            walk(
                left[node],
                bounds,
                equal,
                {**excluded, name: excluded.get(name, []) + [level]},
            )
            walk(right[node], bounds, {**equal, name: level}, excluded)

    walk(0, {}, {}, {})
    return rules


def leave_one_out_stats(values: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Mean and standard deviation of each group member's peers.

    Returns:
        Tuple (mean, sd) of arrays; entry i describes the group without
        member i (sample standard deviation, ddof=1).
    """
    values = np.asarray(values, dtype=float)
    n = values.size
    if n < 3:
        raise ParameterError(f"Need at least 3 values for leave-one-out statistics, got {n}")
    centered = values - values.mean()
    total = centered.sum()
    squares = (centered ** 2).sum()
    peer_mean = (total - centered) / (n - 1)
    peer_var = (squares - centered ** 2 - (n - 1) * peer_mean ** 2) / (n - 2)
    peer_sd = np.sqrt(np.maximum(peer_var, 0.0))
    return peer_mean + values.mean(), peer_sd


def _score_group(
    values: np.ndarray,
    positions: np.ndarray,
    column: str,
    rule: str,
    z_threshold: float,
    min_gap_sd: float,
) -> List[Tuple[int, OutlierFinding]]:
    """Flag values of one comparison group; returns (position, finding) pairs."""
    mean, sd = leave_one_out_stats(values)
    scorable = sd > 0
    z = np.zeros_like(values)
    z[scorable] = np.abs(values[scorable] - mean[scorable]) / sd[scorable]
    candidates = scorable & (z > z_threshold)
    if not candidates.any():
        return []

    regular = np.sort(values[~candidates])
    found = []
    for i in np.flatnonzero(candidates):
        value = values[i]
        if value > mean[i]:
            below = regular[regular <= value]
            gap = value - below[-1] if below.size else np.inf
        else:
            above = regular[regular >= value]
            gap = above[0] - value if above.size else np.inf
        if gap < min_gap_sd * sd[i]:
            continue
        found.append(
            (
                int(positions[i]),
                OutlierFinding(
                    row=-1,
                    column=column,
                    value=float(value),
                    score=float(z[i]),
                    rule=rule,
                    group_mean=float(mean[i]),
                    group_sd=float(sd[i]),
                    group_size=int(values.size),
                    percentile=float(percentileofscore(values, value, kind="mean")),
                    lower_bound=float(mean[i] - z_threshold * sd[i]),
                    upper_bound=float(mean[i] + z_threshold * sd[i]),
                ),
            )
        )
    return found


def find_conditional_outliers(
    table: pd.DataFrame,
    z_threshold: float = 3.5,
    max_depth: int = 3,
    min_group_size: int = 25,
    min_gap_sd: float = 1.0,
    random_state: int = 0,
) -> List[OutlierFinding]:
    """Find suspicious numeric values conditional on the other variables.

    Args:
        table: Complete environmental values, one row per observation. The
            index identifies the observation and is reported as ``row``.
            Categorical columns (pandas category dtype) only condition.
        z_threshold: Leave-one-out z-score above which a value is suspicious.
        max_depth: Depth of the conditioning trees.
        min_group_size: Smallest comparison group (tree leaf size).
        min_gap_sd: Required separation from the nearest unflagged value, in
            group standard deviations.
        random_state: Seed for tree construction tie-breaks.

    Returns:
        Findings sorted by score descending, at most one per row (its most
        severe).
    """
    if z_threshold <= 0:
        raise ParameterError(f"z_threshold must be positive, got {z_threshold}")
    if min_group_size < 3:
        raise ParameterError(f"min_group_size must be >= 3, got {min_group_size}")
    if table.isna().any().any():
        raise ParameterError(
            "table must not contain missing values",
            suggestion="Drop incomplete rows before scoring",
        )

    numeric = [
        name for name in table.columns
        if not isinstance(table[name].dtype, pd.CategoricalDtype)
    ]
    best: Dict[int, Tuple[int, OutlierFinding]] = {}
    n = len(table)
    if n < min_group_size:
        logger.warning(
            f"Only {n} complete records, fewer than min_group_size={min_group_size}; "
            f"nothing scored"
        )
        return []

    for column in numeric:
        y = table[column].to_numpy(dtype=float)
        if np.all(y == y[0]):
            logger.debug(f"Skipping constant variable '{column}'")
            continue

        groups = [(np.arange(n), ROOT_RULE)]
        X, specs = _encode_features(table, column)
        if X.shape[1] and n >= 2 * min_group_size:
            tree = DecisionTreeRegressor(
                max_depth=max_depth,
                min_samples_leaf=min_group_size,
                random_state=random_state,
            ).fit(X, y)
            rules = leaf_rules(tree, specs)
            if len(rules) > 1:
                leaves = tree.apply(X)
                for leaf in np.unique(leaves):
                    groups.append((np.flatnonzero(leaves == leaf), rules[leaf]))

        for positions, rule in groups:
            if positions.size < min_group_size:
                continue
            for position, finding in _score_group(
                y[positions], positions, column, rule, z_threshold, min_gap_sd
            ):
                current = best.get(position)
                if current is None or finding.score > current[1].score:
                    best[position] = (position, finding)

    index = table.index.to_numpy()
    findings = [
        replace(finding, row=int(index[position]))
        for position, finding in best.values()
    ]
    findings.sort(key=lambda f: (-f.score, f.row))
    logger.info(
        f"Flagged {len(findings)} of {n} records at z > {z_threshold:g} "
        f"across {len(numeric)} numeric variables"
    )
    return findings
