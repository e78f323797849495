"""
Tests for reliability module (agreement, ICC, Fleiss' kappa, consensus).
"""

import pytest
from papereval.evaluation.aggregation import Aggregator
from papereval.evaluation.extraction import ComponentReader
from papereval.evaluation.reliability import (
    RatingEntry,
    ReliabilityAnalyzer,
    analyze_reliability,
    calculate_agreement_by_tier,
    calculate_cohens_kappa,
    calculate_consensus,
    calculate_cronbach_alpha,
    calculate_field_consensus,
    calculate_fleiss_kappa,
    calculate_pairwise_agreement,
    calculate_simplified_icc,
    calculate_variance_agreement,
    categorize_score,
    collect_field_ratings,
    compare_quality_accuracy,
    detect_disagreements,
    expertise_tier,
    fleiss_kappa_for_scores,
    interpret_kappa,
    interpret_quality_vs_accuracy,
    metadata_field_ratings,
)
from papereval.evaluation.statistics import mean, variance
from papereval.schemas import EvaluationRecord


def test_pairwise_agreement_three_raters():
    """Test that only one of three pairs agrees within 0.1."""
    assert calculate_pairwise_agreement([0.6, 0.62, 0.8], threshold=0.1) == pytest.approx(1 / 3)


def test_pairwise_agreement_boundary_is_inclusive():
    """Test that a gap equal to the threshold counts as agreement."""
    assert calculate_pairwise_agreement([0.7, 0.8], threshold=0.1) == 1.0
    assert calculate_pairwise_agreement([0.5]) == 0.0


def test_simplified_icc():
    """Test ICC formula and its degenerate cases."""
    scores = [0.6, 0.62, 0.8]
    m = mean(scores)
    expected = 1 - variance(scores) / (m * (1 - m))

    assert calculate_simplified_icc(scores) == pytest.approx(expected)
    assert calculate_simplified_icc([0.7, 0.7, 0.7]) == 1.0
    assert calculate_simplified_icc([]) == 1.0
    assert calculate_simplified_icc([1.0, 1.0]) == 1.0
    assert 0.0 <= calculate_simplified_icc([0.0, 1.0, 0.0, 1.0]) <= 1.0


def test_categorize_score():
    """Test 0-1 scores binned onto five categories."""
    assert categorize_score(0.0) == 1
    assert categorize_score(0.2) == 1
    assert categorize_score(0.21) == 2
    assert categorize_score(0.6) == 3
    assert categorize_score(1.0) == 5


def test_fleiss_kappa_perfect_agreement():
    """Test that unanimous raters give kappa 1."""
    assert calculate_fleiss_kappa({"a": [5, 5, 5], "b": [3, 3, 3]}) == pytest.approx(1.0)
    # every rating in one category
    assert calculate_fleiss_kappa({"a": [4, 4], "b": [4, 4]}) == 1.0


def test_fleiss_kappa_requires_two_raters():
    """Test that kappa is undefined without at least two raters."""
    assert calculate_fleiss_kappa({}) is None
    assert calculate_fleiss_kappa({"a": [5], "b": [4]}) is None
    assert calculate_fleiss_kappa({"a": [None, "x"]}) is None


def test_fleiss_kappa_uses_modal_rater_count():
    """Test that subjects with a different rater count are left out."""
    kappa = calculate_fleiss_kappa({"a": [5, 5], "b": [3, 3], "c": [1, 2, 3]})
    assert kappa == pytest.approx(1.0)


def test_fleiss_kappa_total_disagreement_is_negative():
    """Test kappa below zero when raters always split."""
    kappa = calculate_fleiss_kappa({"a": [5, 1], "b": [1, 5]})
    assert kappa < 0
    assert interpret_kappa(kappa) == "poor"


def test_fleiss_kappa_for_scores():
    """Test kappa over binned 0-1 scores."""
    assert fleiss_kappa_for_scores({"p1": [0.9, 0.95], "p2": [0.3, 0.35]}) == pytest.approx(1.0)


@pytest.mark.parametrize("kappa, label", [
    (None, "undefined"),
    (-0.1, "poor"),
    (0.1, "slight"),
    (0.3, "fair"),
    (0.5, "moderate"),
    (0.7, "substantial"),
    (0.9, "almost perfect"),
])
def test_interpret_kappa(kappa, label):
    """Test Landis and Koch interpretation labels."""
    assert interpret_kappa(kappa) == label


def test_variance_agreement():
    """Test agreement from the average per-subject variance."""
    result = calculate_variance_agreement({"p1": [0.5, 0.5], "p2": [0.7]})

    assert result["average_variance"] == 0.0
    assert result["agreement"] == 1.0
    assert result["consensus"] == "high"
    assert result["subjects"] == 1
    assert calculate_variance_agreement({"p1": [0.5]})["consensus"] == "insufficient_data"


def test_agreement_by_tier():
    """Test pairwise agreement within expertise tiers."""
    tiers = calculate_agreement_by_tier([0.5, 0.55, 0.9], [4.5, 4, 1])

    assert tiers["expert"]["count"] == 2
    assert tiers["expert"]["agreement"] == 1.0
    assert tiers["junior"]["agreement"] is None
    assert expertise_tier(None) == "junior"
    assert expertise_tier(3.2) == "senior"


def test_field_consensus_is_expertise_weighted():
    """Test weighted average, variance and agreement share for one field."""
    consensus = calculate_field_consensus([RatingEntry(5, 5, "a"), RatingEntry(3, 1, "b")])

    assert consensus.rating_count == 2
    assert consensus.weighted_average == pytest.approx((5 * 1.6 + 3 * 0.8) / 2.4)
    assert consensus.agreement_percentage == pytest.approx(50.0)
    assert consensus.consensus_level == "low"
    assert calculate_field_consensus([]) is None


def test_calculate_consensus_by_evaluator_count():
    """Test the zero, single and multi evaluator cases."""
    ratings = {"metadata.title": [RatingEntry(5, 5, "a"), RatingEntry(5, 3, "b")]}

    assert calculate_consensus(ratings, 0) is None
    assert calculate_consensus(ratings, 1) == {"evaluator_count": 1, "consensus_level": "single_evaluator"}

    result = calculate_consensus(ratings, 2)
    assert result["field_consensus"]["metadata.title"]["consensus_level"] == "high"
    assert result["overall"]["agreement_percentage"] == pytest.approx(100.0)
    assert result["overall"]["fleiss_kappa"] == 1.0


def test_detect_disagreements():
    """Test high-variance and expertise-split detection."""
    report = detect_disagreements({
        "content.valueAccuracy": [RatingEntry(1, 5, "expert"), RatingEntry(5, 1, "novice")],
        "metadata.title": [RatingEntry(4, 5, "expert"), RatingEntry(4, 1, "novice")],
    })

    assert [f["field"] for f in report.high_disagreement_fields] == ["content.valueAccuracy"]
    assert report.high_disagreement_fields[0]["variance"] == pytest.approx(4.0)
    assert report.expertise_differences[0]["difference"] == pytest.approx(4.0)
    assert report.to_dict()["expertise_differences"][0]["field"] == "content.valueAccuracy"


def test_collect_field_ratings():
    """Test rating collection keyed by component and dimension."""
    records = [
        EvaluationRecord.from_raw({
            "token": "p1",
            "userInfo": {"email": email, "expertiseWeight": weight},
            "evaluationMetrics": {"overall": {"template": {"titleAccuracy": rating, "overallScore": 0.7}}},
        })
        for email, weight, rating in (("a@x.org", 4, 5), ("b@x.org", None, 3))
    ]

    ratings = collect_field_ratings(records, ComponentReader())

    assert [e.rating for e in ratings["template.titleAccuracy"]] == [5.0, 3.0]
    assert [e.expertise_weight for e in ratings["template.overall"]] == [4.0, 5.0]


def test_paper_reliability():
    """Test the per-paper IRR block."""
    analyzer = ReliabilityAnalyzer()

    single = analyzer.paper_reliability([0.7])
    assert single == {"icc": None, "agreement": None, "reasoning": "Need at least 2 evaluators"}

    block = analyzer.paper_reliability([0.6, 0.62, 0.8])
    assert block["agreement"] == pytest.approx(1 / 3)
    assert block["reasoning"] == "Based on 3 evaluators with 33.3% agreement"


def test_analyze_reliability_report():
    """Test the full report over an aggregation dict."""
    aggregation = {
        "components": {
            "metadata": {"by_paper": {"p1": {"scores": [0.9, 0.95]}, "p2": {"scores": [0.3, 0.35]}}},
            "content": None,
        },
        "papers": {
            "p1": {"inter_rater_reliability": {"icc": 0.9}},
            "p2": {"inter_rater_reliability": {"icc": None}},
        },
    }

    report = analyze_reliability(aggregation)

    metadata = report["components"]["metadata"]
    assert metadata["fleiss_kappa"] == pytest.approx(1.0)
    assert metadata["pairwise_agreement"] == 1.0
    assert "content" not in report["components"]
    assert report["papers"]["p1"]["fleiss_kappa"] == 1.0
    assert report["overall"]["kappa_interpretation"] == "almost perfect"
    assert report["overall"]["mean_icc"] == pytest.approx(0.9)
    assert report["overall"]["papers_with_multiple_raters"] == 1


def test_analyze_empty_aggregation():
    """Test that an empty aggregation gives an undefined report."""
    report = analyze_reliability({})

    assert report["papers"] == {}
    assert report["overall"]["fleiss_kappa"] is None
    assert report["overall"]["kappa_interpretation"] == "undefined"
    assert report["overall"]["mean_icc"] is None


def test_cohens_kappa():
    """Test Cohen's kappa on shared, positively rated items."""
    assert calculate_cohens_kappa(
        {"title": 5, "authors": 4, "doi": 5},
        {"title": 5, "authors": 3, "doi": 5},
    ) == pytest.approx(0.4)
    assert calculate_cohens_kappa({"title": 5, "authors": 4}, {"title": 5, "authors": 4}) == pytest.approx(1.0)
    assert calculate_cohens_kappa({"title": 5, "authors": 1}, {"title": 1, "authors": 5}) == pytest.approx(-1.0)


def test_cohens_kappa_degenerate_cases():
    """Test single-category agreement and raters without shared items."""
    assert calculate_cohens_kappa({"title": 5, "doi": 5}, {"title": 5, "doi": 5}) == 1.0
    assert calculate_cohens_kappa({"title": 5}, {"doi": 4}) is None
    assert calculate_cohens_kappa({"title": 0}, {"title": 4}) is None


def test_cronbach_alpha():
    """Test alpha for consistent and uninformative items."""
    consistent = [
        {"title": 5, "authors": 4},
        {"title": 3, "authors": 2},
        {"title": 4, "authors": 3},
    ]
    assert calculate_cronbach_alpha(consistent) == pytest.approx(1.0)

    constant_item = [
        {"title": 5, "authors": 3},
        {"title": 3, "authors": 3},
        {"title": 4, "authors": 3},
    ]
    assert calculate_cronbach_alpha(constant_item) == pytest.approx(0.0, abs=1e-12)


def test_cronbach_alpha_undefined():
    """Test that alpha needs two raters, two items and varying totals."""
    assert calculate_cronbach_alpha([{"title": 5, "authors": 4}]) is None
    assert calculate_cronbach_alpha([{"title": 5}, {"title": 3}]) is None
    assert calculate_cronbach_alpha([{"title": 5, "authors": 2}, {"title": 3, "authors": 4}]) is None


def make_metadata_rating(email, title, authors):
    return EvaluationRecord.from_raw({
        "token": "p1",
        "userInfo": {"email": email},
        "evaluationMetrics": {"accuracy": {"metadata": {
            "Title Extraction": {"rating": title},
            "Authors Extraction": {"rating": authors},
        }}},
    })


def test_metadata_field_ratings_keep_first_record_per_evaluator():
    """Test that ratings are grouped per evaluator."""
    records = [
        make_metadata_rating("a@x.org", 5, 4),
        make_metadata_rating("b@x.org", 3, 2),
        make_metadata_rating("a@x.org", 1, 1),
    ]

    ratings = metadata_field_ratings(records, ComponentReader())

    assert ratings == {"a@x.org": {"title": 5.0, "authors": 4.0}, "b@x.org": {"title": 3.0, "authors": 2.0}}


def test_paper_consensus_metadata_reliability():
    """Test alpha for three raters and kappa for exactly two."""
    analyzer = ReliabilityAnalyzer()

    three = analyzer.paper_consensus([
        make_metadata_rating("a@x.org", 5, 4),
        make_metadata_rating("b@x.org", 3, 2),
        make_metadata_rating("c@x.org", 4, 3),
    ])["metadata_reliability"]
    assert three["raters"] == 3
    assert three["cronbach_alpha"] == pytest.approx(1.0)
    assert three["cohens_kappa"] is None

    two = analyzer.paper_consensus([
        make_metadata_rating("a@x.org", 5, 4),
        make_metadata_rating("b@x.org", 5, 3),
    ])["metadata_reliability"]
    assert two["cohens_kappa"] == pytest.approx(1 / 3)
    assert two["cronbach_alpha"] == pytest.approx(0.0, abs=1e-12)


def component_block(accuracy, quality=None, accuracy_count=1):
    return {
        "accuracy_scores": {"mean": accuracy if accuracy_count else 0.0, "count": accuracy_count},
        "scores": {"mean": accuracy, "count": 1},
        "quality_scores": {"mean": quality or 0.0, "count": 1 if quality else 0},
    }


def test_compare_quality_accuracy():
    """Test per-paper pairing, component blocks and interpretation."""
    papers = {
        "p1": {"components": {
            "metadata": component_block(0.6, 0.7),
            "research_problem": component_block(0.8, 0.9),
            "content": None,
        }},
        "p2": {"components": {"metadata": component_block(0.4, 0.5)}},
        # no accuracy scores: falls back to the plain score mean
        "p3": {"components": {"metadata": component_block(0.5, accuracy_count=0)}},
    }

    comparison = compare_quality_accuracy(papers)

    overall = comparison["overall"]
    assert overall["accuracy"]["count"] == 3
    assert overall["accuracy"]["mean"] == pytest.approx((0.7 + 0.4 + 0.5) / 3)
    assert overall["quality"]["mean"] == pytest.approx(0.65)
    assert overall["paired_count"] == 2
    assert overall["mean_difference"] == pytest.approx(0.1)
    assert overall["correlation"] == pytest.approx(1.0)

    assert comparison["paired"][0]["paper_id"] == "p1"
    assert comparison["paired"][0]["percent_difference"] == pytest.approx(0.1 / 0.7 * 100)
    assert len(comparison["largest_gaps"]) == 2
    assert {gap["direction"] for gap in comparison["largest_gaps"]} == {"quality_higher"}

    by_component = comparison["by_component"]
    assert by_component["metadata"]["paired_count"] == 2
    assert by_component["metadata"]["correlation"] == pytest.approx(1.0)
    assert by_component["research_problem"]["correlation"] is None
    assert by_component["content"]["mean_difference"] is None

    assert comparison["interpretation"] == [
        "Quality scores are 11.7% higher than accuracy scores on average",
        "Strong positive correlation between quality and accuracy",
    ]


def test_interpret_quality_vs_accuracy():
    """Test the alignment and correlation wording."""
    assert interpret_quality_vs_accuracy(0.8, 0.82, 0.1) == [
        "Quality and accuracy scores are closely aligned",
        "Little to no correlation between quality and accuracy scores",
    ]
    assert interpret_quality_vs_accuracy(0.9, 0.6, 0.6) == [
        "Accuracy scores are 30.0% higher than quality scores on average",
        "Moderate positive correlation between quality and accuracy",
    ]
    assert interpret_quality_vs_accuracy(None, None, None) == []


def test_analyze_includes_quality_vs_accuracy():
    """Test the comparison over a real aggregation result."""
    evaluations = [
        {
            "token": "p1",
            "userInfo": {"email": email},
            "evaluationMetrics": {"overall": {"metadata": {"overall": {
                "overallScore": 0.8, "accuracyScore": 0.8, "qualityScore": 0.9,
            }}}},
        }
        for email in ("a@x.org", "b@x.org")
    ]

    report = analyze_reliability(Aggregator().aggregate_all(evaluations))

    paired = report["quality_vs_accuracy"]["paired"]
    assert [p["paper_id"] for p in paired] == ["p1"]
    assert paired[0]["accuracy"] == pytest.approx(0.8)
    assert paired[0]["quality"] == pytest.approx(0.9)
