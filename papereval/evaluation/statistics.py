"""
Statistical primitives for evaluation aggregation.

Every function here is total: non-numeric, None and NaN entries are treated
as absent, empty input yields a neutral value, and nothing raises. Values
and weights are always filtered together so that ``values[i]`` keeps its
own ``weights[i]``.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

DISTRIBUTION_BINS = ("0-0.2", "0.2-0.4", "0.4-0.6", "0.6-0.8", "0.8-1.0")
_BIN_UPPER_BOUNDS = (0.2, 0.4, 0.6, 0.8)

OUTLIER_IQR_FACTOR = 1.5


@dataclass
class Outlier:
    """A score outside the Tukey fences."""

    value: float
    index: int
    """Position of the score in the input sequence"""
    evaluator_id: str
    direction: str
    """'low' or 'high'"""


@dataclass
class ScoreStats:
    """Summary statistics for one series of scores."""

    mean: float = 0.0
    weighted_mean: float = 0.0
    std: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    distribution: Optional[Dict[str, int]] = field(default=None)


def is_valid_number(value: Any) -> bool:
    """True for finite ints/floats (bools excluded) that fit in a float."""
    if value is None or isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def valid_values(values: Optional[Sequence[Any]]) -> List[float]:
    """Return the usable numeric entries of ``values`` as floats."""
    if not values:
        return []
    return [float(v) for v in values if is_valid_number(v)]


def aligned_pairs(values: Sequence[Any], weights: Sequence[Any]) -> Tuple[List[float], List[float]]:
    """
    Drop index-aligned pairs where either the value or the weight is unusable.

    Pairs beyond the shorter sequence are ignored.
    """
    kept_values: List[float] = []
    kept_weights: List[float] = []
    for value, weight in zip(values or [], weights or []):
        if is_valid_number(value) and is_valid_number(weight):
            kept_values.append(float(value))
            kept_weights.append(float(weight))
    return kept_values, kept_weights


def mean(values: Optional[Sequence[Any]]) -> float:
    """Arithmetic mean of valid entries, 0.0 when there are none."""
    vals = valid_values(values)
    if not vals:
        return 0.0
    return float(np.mean(vals))


def weighted_mean(values: Sequence[Any], weights: Sequence[Any]) -> float:
    """
    Weighted mean over index-aligned (value, weight) pairs.

    Args:
        values: Scores
        weights: Weight for each score, same order as ``values``

    Returns:
        Sum(v*w) / Sum(w), or 0.0 when the weights sum to zero

    Example:
        ```python
        weighted_mean([0.2, 0.8], [1, 3])
        # 0.65
        weighted_mean([0.2, None, 0.8], [1, 100, 3])
        # 0.65 - the None drops its weight too
        ```
    """
    vals, wts = aligned_pairs(values, weights)
    total_weight = sum(wts)
    if not vals or total_weight == 0:
        return 0.0
    return float(np.dot(vals, wts) / total_weight)


def variance(values: Optional[Sequence[Any]]) -> float:
    """Population variance (divides by N)."""
    vals = valid_values(values)
    if not vals:
        return 0.0
    return float(np.var(vals))


def standard_deviation(values: Optional[Sequence[Any]]) -> float:
    """Population standard deviation."""
    return math.sqrt(variance(values))


def median(values: Optional[Sequence[Any]]) -> float:
    """Median; averages the two middle values for even counts."""
    vals = valid_values(values)
    if not vals:
        return 0.0
    return float(np.median(vals))


def median_absolute_deviation(values: Optional[Sequence[Any]]) -> float:
    """Median of absolute deviations from the median."""
    vals = valid_values(values)
    if not vals:
        return 0.0
    center = median(vals)
    return median([abs(v - center) for v in vals])


def distribution(scores: Optional[Sequence[Any]]) -> Optional[Dict[str, int]]:
    """
    Count scores per fixed bin.

    Bins are closed on the right: [0,0.2], (0.2,0.4], (0.4,0.6], (0.6,0.8], (0.8,1.0].
    Values below 0 land in the first bin and values above 1 in the last.

    Returns:
        Dict of bin label to count, or None when there are no valid scores
    """
    vals = valid_values(scores)
    if not vals:
        return None

    counts = {label: 0 for label in DISTRIBUTION_BINS}
    for score in vals:
        for label, upper in zip(DISTRIBUTION_BINS, _BIN_UPPER_BOUNDS):
            if score <= upper:
                counts[label] += 1
                break
        else:
            counts[DISTRIBUTION_BINS[-1]] += 1
    return counts


def detect_outliers(
    scores: Sequence[Any],
    evaluator_ids: Optional[Sequence[str]] = None,
) -> List[Outlier]:
    """
    Detect outliers with Tukey's IQR fences.

    Q1 and Q3 are read from the sorted scores at index ``floor(n*0.25)`` and
    ``floor(n*0.75)``. Scores below ``Q1 - 1.5*IQR`` are tagged 'low', above
    ``Q3 + 1.5*IQR`` 'high'.

    Args:
        scores: Scores to inspect
        evaluator_ids: Evaluator id for each score, same order as ``scores``

    Returns:
        Outliers in input order; empty when fewer than 3 valid scores
    """
    indexed = [(i, float(s)) for i, s in enumerate(scores or []) if is_valid_number(s)]
    if len(indexed) < 3:
        return []

    ordered = sorted(v for _, v in indexed)
    n = len(ordered)
    q1 = ordered[int(math.floor(n * 0.25))]
    q3 = ordered[int(math.floor(n * 0.75))]
    iqr = q3 - q1
    lower = q1 - OUTLIER_IQR_FACTOR * iqr
    upper = q3 + OUTLIER_IQR_FACTOR * iqr

    outliers: List[Outlier] = []
    for index, value in indexed:
        if value < lower or value > upper:
            evaluator_id = "unknown"
            if evaluator_ids is not None and index < len(evaluator_ids):
                evaluator_id = evaluator_ids[index]
            outliers.append(Outlier(
                value=value,
                index=index,
                evaluator_id=evaluator_id,
                direction="low" if value < lower else "high",
            ))
    return outliers


def pearson_correlation(x: Sequence[Any], y: Sequence[Any]) -> float:
    """
    Pearson correlation over the first ``min(len(x), len(y))`` pairs.

    Pairs with an unusable entry on either side are dropped together.

    Returns:
        Coefficient in [-1, 1]; 0.0 when either series has zero variance
    """
    n = min(len(x or []), len(y or []))
    xs, ys = aligned_pairs(list(x or [])[:n], list(y or [])[:n])
    if not xs:
        return 0.0

    x_arr = np.asarray(xs)
    y_arr = np.asarray(ys)
    dx = x_arr - x_arr.mean()
    dy = y_arr - y_arr.mean()

    denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denominator == 0:
        return 0.0

    r = float(np.sum(dx * dy)) / denominator
    return max(-1.0, min(1.0, r))


def calculate_stats(values: Sequence[Any], weights: Optional[Sequence[Any]] = None) -> ScoreStats:
    """
    Summarize a series of scores.

    When ``weights`` is given it must be index-aligned with ``values``; a
    length mismatch falls back to the unweighted mean for ``weighted_mean``.

    Example:
        ```python
        stats = calculate_stats([0.5, 0.7, 0.9], [1, 1, 2])
        stats.mean           # 0.7
        stats.weighted_mean  # 0.75
        ```
    """
    vals = valid_values(values)
    if not vals:
        return ScoreStats()

    if weights is not None and len(weights) == len(values):
        weighted = weighted_mean(values, weights)
    else:
        weighted = mean(vals)

    return ScoreStats(
        mean=mean(vals),
        weighted_mean=weighted,
        std=standard_deviation(vals),
        median=median(vals),
        min=min(vals),
        max=max(vals),
        count=len(vals),
        distribution=distribution(vals),
    )
