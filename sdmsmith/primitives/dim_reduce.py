"""Correlation-based reduction of environmental variables.

Layer 2: Primitives - Pure operations on an EnvironmentalStack.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from sdmsmith.objects.envstack import EnvironmentalStack
from sdmsmith.utils.errors import InsufficientDataError, ParameterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class DimReduction:
    """Result of a variable reduction.

    Attributes:
        stack: Stack with the kept numeric layers and all categorical layers.
        correlation: Pearson correlation matrix of the numeric layers.
        kept: Numeric layer names kept, in selection order.
        dropped: Numeric layer names removed.
        threshold: Absolute correlation threshold used.
    """

    stack: EnvironmentalStack
    correlation: pd.DataFrame
    kept: Tuple[str, ...]
    dropped: Tuple[str, ...]
    threshold: float


def reduce_variables(
    stack: EnvironmentalStack,
    threshold: float = 0.5,
    preferred_vars: Optional[Sequence[str]] = None,
    sample_size: Optional[int] = 10000,
    random_state: Optional[int] = 42,
) -> DimReduction:
    """Drop numeric layers strongly correlated with layers already kept.

    Preferred variables are always kept and considered first. The other
    numeric variables follow in order of increasing mean absolute
    correlation with the rest, and each is kept only if its absolute Pearson
    correlation with every kept variable is below ``threshold``. Categorical
    layers are not correlated and pass through untouched.

    Args:
        stack: Environmental layers.
        threshold: Absolute correlation at or above which a layer is dropped.
        preferred_vars: Numeric layers to keep unconditionally.
        sample_size: Number of complete cells used to estimate correlations
            (None uses all of them).
        random_state: Seed for the cell sample.

    Returns:
        DimReduction with the reduced stack and the correlation matrix.
    """
    if not 0.0 < threshold <= 1.0:
        raise ParameterError(f"threshold must be in (0, 1], got {threshold}")
    numeric = stack.numeric_names
    preferred = list(preferred_vars or [])
    for name in preferred:
        stack.numeric_layer(name)

    cells = stack.to_frame(dropna=True)[numeric]
    if len(cells) < 3:
        raise InsufficientDataError(
            f"Need at least 3 complete cells to estimate correlations, got {len(cells)}"
        )
    if sample_size is not None and len(cells) > sample_size:
        rng = np.random.default_rng(random_state)
        cells = cells.iloc[np.sort(rng.choice(len(cells), size=sample_size, replace=False))]
    correlation = cells.corr(method="pearson").fillna(0.0)
    strength = correlation.abs()

    for i, first in enumerate(preferred):
        for second in preferred[i + 1:]:
            if strength.loc[first, second] >= threshold:
                logger.warning(
                    f"Preferred variables '{first}' and '{second}' are correlated "
                    f"(|r| = {strength.loc[first, second]:.2f}); keeping both"
                )

    mean_strength = (strength.sum() - 1.0) / max(len(numeric) - 1, 1)
    others = sorted(
        (name for name in numeric if name not in preferred),
        key=lambda name: (mean_strength[name], name),
    )
    kept = list(preferred)
    dropped = []
    for name in others:
        if kept and strength.loc[name, kept].max() >= threshold:
            dropped.append(name)
        else:
            kept.append(name)

    logger.info(f"Kept {len(kept)} of {len(numeric)} numeric variables: {kept}")
    keep_names = [
        name for name in stack.names if name in kept or name in stack.categorical_names
    ]
    return DimReduction(
        stack=stack.select(keep_names),
        correlation=correlation,
        kept=tuple(kept),
        dropped=tuple(dropped),
        threshold=threshold,
    )
