"""
Tests for statistics module (weighted stats, outliers, correlation).
"""

import math

import pytest
from papereval.evaluation.statistics import (
    aligned_pairs,
    calculate_stats,
    detect_outliers,
    distribution,
    is_valid_number,
    mean,
    median,
    median_absolute_deviation,
    pearson_correlation,
    standard_deviation,
    variance,
    weighted_mean,
)


def test_mean_ignores_invalid_entries():
    """Test that None, NaN, strings and bools are treated as absent."""
    assert mean([0.2, None, "x", float("nan"), True, 0.4]) == pytest.approx(0.3)
    assert mean([]) == 0.0
    assert mean(None) == 0.0


def test_weighted_mean_basic():
    """Test weighted mean of aligned values and weights."""
    assert weighted_mean([0.2, 0.8], [1, 3]) == pytest.approx(0.65)


def test_weighted_mean_drops_pairs_in_lockstep():
    """Test that an invalid value drops its own weight, not a neighbour's."""
    # The None must take its weight of 100 with it
    assert weighted_mean([0.2, None, 0.8], [1, 100, 3]) == pytest.approx(0.65)
    # An invalid weight drops its value too
    assert weighted_mean([0.2, 0.5, 0.8], [1, None, 3]) == pytest.approx(0.65)


def test_weighted_mean_constant_weights_equals_mean():
    """Test that constant positive weights reduce to the plain mean."""
    values = [0.1, 0.35, 0.6, 0.95]
    for w in (0.5, 1, 4.2):
        assert weighted_mean(values, [w] * len(values)) == pytest.approx(mean(values))


def test_weighted_mean_zero_weight_sum():
    """Test that a zero weight sum yields 0."""
    assert weighted_mean([0.5, 0.7], [0, 0]) == 0.0


def test_aligned_pairs_truncates_to_shorter():
    """Test that pairs beyond the shorter sequence are ignored."""
    values, weights = aligned_pairs([1, 2, 3], [1, 1])
    assert values == [1.0, 2.0]
    assert weights == [1.0, 1.0]


def test_population_variance_and_std():
    """Test that variance divides by N."""
    assert variance([1, 2, 3, 4]) == pytest.approx(1.25)
    assert standard_deviation([1, 2, 3, 4]) == pytest.approx(math.sqrt(1.25))
    assert variance([]) == 0.0


def test_median_even_and_odd():
    """Test median for odd and even counts."""
    assert median([3, 1, 2]) == 2.0
    assert median([4, 1, 3, 2]) == pytest.approx(2.5)
    assert median([]) == 0.0


def test_median_absolute_deviation():
    """Test MAD around the median."""
    assert median_absolute_deviation([1, 2, 3, 4, 100]) == pytest.approx(1.0)


def test_distribution_bins_are_right_closed():
    """Test that bin edges fall into the lower bin."""
    dist = distribution([0.0, 0.2, 0.21, 0.4, 0.6, 0.8, 0.81, 1.0])
    assert dist == {
        "0-0.2": 2,
        "0.2-0.4": 2,
        "0.4-0.6": 1,
        "0.6-0.8": 1,
        "0.8-1.0": 2,
    }


def test_distribution_empty_is_none():
    """Test that no valid scores gives None."""
    assert distribution([]) is None
    assert distribution([None]) is None


def test_detect_outliers_short_input():
    """Test that fewer than three scores never produce outliers."""
    assert detect_outliers([]) == []
    assert detect_outliers([0.1, 0.9]) == []


def test_detect_outliers_tags_direction_and_evaluator():
    """Test IQR outlier detection with evaluator alignment."""
    scores = [0.5, 0.52, 0.55, 0.53, 0.51, 0.05]
    evaluators = ["a", "b", "c", "d", "e", "f"]

    outliers = detect_outliers(scores, evaluators)

    assert len(outliers) == 1
    assert outliers[0].value == pytest.approx(0.05)
    assert outliers[0].direction == "low"
    assert outliers[0].evaluator_id == "f"
    assert outliers[0].index == 5


def test_pearson_self_correlation():
    """Test that a non-constant series correlates perfectly with itself."""
    x = [0.1, 0.4, 0.35, 0.9]
    assert pearson_correlation(x, x) == pytest.approx(1.0)


def test_pearson_zero_variance():
    """Test that a constant series gives 0."""
    assert pearson_correlation([0.5, 0.5, 0.5], [0.1, 0.2, 0.3]) == 0.0


def test_pearson_uses_shorter_length():
    """Test that only the first min(len) pairs are used."""
    assert pearson_correlation([1, 2, 3, 100], [1, 2, 3]) == pytest.approx(1.0)
    assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)


def test_pearson_missing_series():
    """Test that a None series on either side gives 0.0."""
    assert pearson_correlation(None, [1, 2, 3]) == 0.0
    assert pearson_correlation([1, 2, 3], None) == 0.0
    assert pearson_correlation(None, None) == 0.0


def test_oversized_integers_are_not_valid_numbers():
    """Test that integers beyond float range are treated as absent."""
    assert is_valid_number(10**400) is False
    assert is_valid_number(-(10**400)) is False
    assert is_valid_number(10**300) is True
    assert mean([0.4, 10**400, 0.6]) == pytest.approx(0.5)


def test_calculate_stats_weighted():
    """Test summary stats with aligned weights."""
    stats = calculate_stats([0.5, 0.7, 0.9], [1, 1, 2])

    assert stats.count == 3
    assert stats.mean == pytest.approx(0.7)
    assert stats.weighted_mean == pytest.approx(0.75)
    assert stats.min == 0.5
    assert stats.max == 0.9
    assert stats.distribution["0.8-1.0"] == 1


def test_calculate_stats_empty():
    """Test that empty input yields zeroed stats."""
    stats = calculate_stats([])
    assert stats.count == 0
    assert stats.mean == 0.0
    assert stats.distribution is None
