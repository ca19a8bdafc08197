"""Layer 2: Primitives - Pure operations.

This layer holds the numeric building blocks: accuracy indices, transfer
functions, conditional outlier scoring, variable reduction, and observation
quality checks. It imports numpy, pandas, scipy and scikit-learn. No file
I/O or plotting.
"""

from sdmsmith.primitives.data_quality import (
    check_crs,
    deduplicate_by_cell,
    detect_duplicate_cells,
    detect_missing_environment,
    validate_within_bounds,
)
from sdmsmith.primitives.dim_reduce import DimReduction, reduce_variables
from sdmsmith.primitives.evaluation import (
    auc_background,
    auc_ratio,
    boyce_index,
    confusion_counts,
    cost_value_index,
    true_skill_statistic,
)
from sdmsmith.primitives.outliers import (
    find_conditional_outliers,
    leaf_rules,
    leave_one_out_stats,
)
from sdmsmith.primitives.sampling import sample_background, split_observations
from sdmsmith.primitives.transfer import (
    linear_transfer,
    logistic_transfer,
    normalize_suitability,
    prevalence_threshold,
    solve_linear_intercept,
    solve_logistic_alpha,
    threshold_transfer,
)

__all__ = [
    "DimReduction",
    "auc_background",
    "auc_ratio",
    "boyce_index",
    "check_crs",
    "confusion_counts",
    "cost_value_index",
    "deduplicate_by_cell",
    "detect_duplicate_cells",
    "detect_missing_environment",
    "find_conditional_outliers",
    "leaf_rules",
    "leave_one_out_stats",
    "linear_transfer",
    "logistic_transfer",
    "normalize_suitability",
    "prevalence_threshold",
    "reduce_variables",
    "sample_background",
    "solve_linear_intercept",
    "solve_logistic_alpha",
    "split_observations",
    "threshold_transfer",
    "true_skill_statistic",
    "validate_within_bounds",
]
