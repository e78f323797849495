"""
Tests for aggregation module (multi-paper, multi-evaluator aggregate).
"""

import copy
import json

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from papereval.config import ScoringConfig
from papereval.evaluation.aggregation import Aggregator, aggregate_all, empty_aggregation
from papereval.evaluation.matching import build_integrated_data
from papereval.evaluation.storage import MetricsStore


def make_evaluation(token, email, weight, metadata_score, problem_score=None, title_rating=None, timestamp=None):
    overall = {"metadata": {"overall": {"overallScore": metadata_score, "accuracyScore": metadata_score}}}
    if problem_score is not None:
        overall["research_problem"] = {"overallScore": problem_score}

    metrics = {"overall": overall}
    if title_rating is not None:
        metrics["accuracy"] = {"metadata": {"Title Extraction": {"rating": title_rating}}}

    evaluation = {
        "token": token,
        "userInfo": {"email": email, "role": "PhD Student", "expertiseWeight": weight},
        "evaluationMetrics": metrics,
    }
    if timestamp:
        evaluation["timestamp"] = timestamp
    return evaluation


@pytest.fixture
def evaluations():
    return [
        make_evaluation("p1", "a@example.org", 5, 0.8, 0.6, title_rating=4, timestamp="2024-01-01T10:00:00Z"),
        make_evaluation("p1", "b@example.org", 1, 0.6, 0.0, title_rating=2, timestamp="2024-01-02T09:00:00Z"),
        make_evaluation("p2", "a@example.org", 5, 0.9, 0.9, timestamp="2024-01-02T15:30:00Z"),
    ]


@pytest.fixture
def aggregator():
    return Aggregator(ScoringConfig())


def test_empty_input_returns_empty_aggregation(aggregator):
    """Test that no records yield the empty shape without raising."""
    for value in ([], None):
        result = aggregator.aggregate_all(value)

        assert result.papers == {}
        assert result.evaluators == {}
        assert result.metadata["total_evaluations"] == 0
        assert result.metadata["total_papers"] == 0
        assert result.metadata["total_evaluators"] == 0
        assert result.global_stats.total_evaluations == 0
        assert result.temporal == {"timeline": []}


def test_malformed_records_are_skipped(aggregator, evaluations):
    """Test that non-object records are counted and skipped."""
    result = aggregator.aggregate_all(["not a record", 42, evaluations[0]])

    assert result.metadata["skipped_records"] == 2
    assert result.metadata["total_evaluations"] == 1

    only_bad = aggregator.aggregate_all([None, "x"])
    assert only_bad.metadata["skipped_records"] == 2
    assert only_bad.papers == {}


def test_totals_and_grouping(aggregator, evaluations):
    """Test paper and evaluator grouping."""
    result = aggregator.aggregate_all(evaluations)

    assert result.metadata["total_evaluations"] == 3
    assert result.metadata["total_papers"] == 2
    assert result.metadata["total_evaluators"] == 2
    assert set(result.papers) == {"p1", "p2"}
    assert result.evaluators["a@example.org"].papers_evaluated == ["p1", "p2"]
    assert result.evaluators["a@example.org"].evaluation_count == 2


def test_paper_component_statistics_are_weighted(aggregator, evaluations):
    """Test that weights stay aligned with their own values."""
    metadata = aggregator.aggregate_all(evaluations).papers["p1"].components["metadata"]

    assert metadata.scores.count == 2
    assert metadata.scores.mean == pytest.approx(0.7)
    assert metadata.scores.weighted_mean == pytest.approx((0.8 * 5 + 0.6 * 1) / 6)
    assert metadata.raw_user_ratings.weighted_mean == pytest.approx((4 * 5 + 2 * 1) / 6)
    assert metadata.user_ratings.weighted_mean == pytest.approx((0.8 * 5 + 0.4 * 1) / 6)
    assert metadata.user_rating_details["title"]["count"] == 2


def test_paper_component_combined_score(aggregator, evaluations):
    """Test that rated components carry a combined score."""
    papers = aggregator.aggregate_all(evaluations).papers

    combined = papers["p1"].components["metadata"].combined
    assert combined is not None
    assert combined.is_fallback is False
    assert 0.0 <= combined.final_score <= 1.0
    # no ratings on p2
    assert papers["p2"].components["metadata"].combined is None


def test_zero_scores_retained_for_research_problem(aggregator, evaluations):
    """Test that a 0 research problem score is an observation."""
    result = aggregator.aggregate_all(evaluations)

    problem = result.papers["p1"].components["research_problem"]
    assert problem.scores.count == 2
    assert problem.scores.mean == pytest.approx(0.3)
    assert result.components["research_problem"].by_paper["p1"]["scores"] == [0.6, 0.0]


def test_missing_components_are_none(aggregator, evaluations):
    """Test that components nobody evaluated are None."""
    result = aggregator.aggregate_all(evaluations)

    assert result.papers["p1"].components["content"] is None
    assert result.components["content"] is None
    assert result.global_stats.coverage_by_component["content"] == {"count": 0, "rate": 0.0}
    assert result.global_stats.coverage_by_component["metadata"]["rate"] == 1.0


def test_difficulty_and_reliability(aggregator, evaluations):
    """Test difficulty levels and the per-paper IRR block."""
    papers = aggregator.aggregate_all(evaluations).papers

    assert papers["p1"].difficulty.level == "medium"
    assert papers["p1"].difficulty.score == pytest.approx(0.5)
    assert papers["p2"].difficulty.level == "easy"
    assert papers["p1"].inter_rater_reliability["agreement"] == 0.0
    assert papers["p2"].inter_rater_reliability["icc"] is None
    assert papers["p1"].consensus["consensus"]["evaluator_count"] == 2


def test_evaluator_consistency(aggregator, evaluations):
    """Test consistency only for evaluators with two positive scores."""
    evaluators = aggregator.aggregate_all(evaluations).evaluators

    consistency = evaluators["a@example.org"].consistency
    assert consistency is not None
    assert 0.0 <= consistency["score"] <= 1.0
    assert evaluators["b@example.org"].consistency is None
    assert evaluators["b@example.org"].profile["expertise_multiplier"] == pytest.approx(0.8)


def test_outliers_name_the_right_evaluator(aggregator):
    """Test that outlier evaluator ids follow the filtered scores."""
    evaluations = [make_evaluation("p3", "e0@example.org", 3, 0)]
    for i, score in enumerate((0.5, 0.52, 0.51, 0.53, 0.05), start=1):
        evaluations.append(make_evaluation("p3", f"e{i}@example.org", 3, score))

    metadata = aggregator.aggregate_all(evaluations).papers["p3"].components["metadata"]

    assert metadata.scores.count == 5
    assert len(metadata.outliers) == 1
    assert metadata.outliers[0].evaluator_id == "e5@example.org"
    assert metadata.outliers[0].direction == "low"


def test_unscored_metadata_drops_its_weight(aggregator):
    """Test that a heavily weighted 0 metadata score does not shift the weights."""
    evaluations = [
        make_evaluation("p4", "low@example.org", 1, 0.2),
        make_evaluation("p4", "heavy@example.org", 5, 0),
        make_evaluation("p4", "mid@example.org", 3, 0.8),
    ]

    metadata = aggregator.aggregate_all(evaluations).papers["p4"].components["metadata"]

    assert metadata.scores.count == 2
    assert metadata.scores.mean == pytest.approx(0.5)
    assert metadata.scores.weighted_mean == pytest.approx((0.2 * 1 + 0.8 * 3) / 4)


def test_oversized_score_does_not_abort_aggregation(aggregator, evaluations):
    """Test that an integer too large for a float only affects its own record."""
    oversized = {
        "token": "p9",
        "userInfo": {"email": "big@example.org", "expertiseWeight": 10**400},
        "evaluationMetrics": {"overall": {"content": {"overallScore": 10**400}}},
    }

    result = aggregator.aggregate_all([oversized] + evaluations)

    assert result.metadata["total_evaluations"] == 4
    assert result.metadata["skipped_records"] == 0
    assert "big@example.org" in result.evaluators
    assert result.papers["p9"].components["content"].scores.mean == 0.0
    assert result.papers["p1"].components["metadata"].scores.mean == pytest.approx(0.7)
    json.dumps(result.to_dict(), allow_nan=False)


def test_correlations(aggregator, evaluations):
    """Test correlation keys, self-correlation and paired papers only."""
    correlations = aggregator.aggregate_all(evaluations).correlations

    assert len(correlations) == 15
    assert correlations["metadata-metadata"] == 1.0
    assert correlations["content-content"] == 1.0
    assert correlations["metadata-research_problem"] == pytest.approx(1.0)
    assert correlations["metadata-content"] == 0.0
    assert "content-metadata" not in correlations


def test_temporal_timeline_and_trend(aggregator, evaluations):
    """Test daily buckets and the fitted trend."""
    temporal = aggregator.aggregate_all(evaluations).temporal

    assert temporal["timeline"] == [
        {"date": "2024-01-01", "count": 1, "avg_score": pytest.approx(0.7)},
        {"date": "2024-01-02", "count": 2, "avg_score": pytest.approx(0.6)},
    ]
    assert temporal["trend"]["trend_direction"] == "declining"


def test_result_is_json_serializable(aggregator, evaluations):
    """Test that to_dict contains only JSON-ready values."""
    data = aggregator.aggregate_all(evaluations).to_dict()

    decoded = json.loads(json.dumps(data))
    assert decoded["papers"]["p1"]["components"]["metadata"]["scores"]["count"] == 2
    assert decoded["global_stats"]["expertise"]["distribution"]["by_role"] == {"PhD Student": 3}
    assert json.loads(json.dumps(empty_aggregation().to_dict()))["metadata"]["total_papers"] == 0


def test_input_is_not_modified(aggregator, evaluations):
    """Test that aggregation leaves its input untouched."""
    before = copy.deepcopy(evaluations)
    system_data = {"p1": {"paperContent": {"paperContent": {"x": {"property": "Method", "value": "GNN"}}}}}

    aggregator.aggregate_all(evaluations, system_data_map=system_data)

    assert evaluations == before


def test_memo_returns_private_copies(aggregator, evaluations):
    """Test that repeated calls return equal but independent results."""
    first = aggregator.aggregate_all(evaluations)
    second = aggregator.aggregate_all(evaluations)

    assert first is not second
    assert first.to_dict() == second.to_dict()

    first.papers.clear()
    assert set(aggregator.aggregate_all(evaluations).papers) == {"p1", "p2"}


def test_memo_is_keyed_by_content(aggregator, evaluations):
    """Test that different input is never served from the memo."""
    aggregator.aggregate_all(evaluations)
    changed = copy.deepcopy(evaluations)
    changed[0]["evaluationMetrics"]["overall"]["metadata"]["overall"]["overallScore"] = 0.2

    result = aggregator.aggregate_all(changed)

    assert result.papers["p1"].components["metadata"].scores.mean == pytest.approx(0.4)


def test_store_disables_memo(evaluations):
    """Test that stored metrics added between calls are picked up."""
    store = MetricsStore()
    aggregator = Aggregator(ScoringConfig(), store=store)

    assert aggregator.aggregate_all(evaluations).components["template"] is None

    store.store_field_metrics("p2", "overall", {"finalScore": 0.66, "userRating": 4}, component="template")
    result = aggregator.aggregate_all(evaluations)

    template = result.papers["p2"].components["template"]
    assert template.scores.mean == pytest.approx(0.66)
    assert result.components["template"].evaluation_count == 1


def test_content_enrichment_from_system_data(aggregator, evaluations):
    """Test that system output fills in content scores."""
    system_data = {
        "p1": {"paperContent": {"paperContent": {
            "prop-1": {"property": "Method", "value": "Graph Transformer", "confidence": 0.9},
        }}},
    }

    result = aggregator.aggregate_all(evaluations, system_data_map=system_data)

    assert result.global_stats.enrichment == {"applied": True, "papers_enriched": 1, "properties_enriched": 2}
    assert result.papers["p1"].components["content"].scores.count == 2
    assert result.papers["p2"].components["content"] is None


def test_aggregate_integrated(aggregator, evaluations):
    """Test aggregation straight from integrated papers."""
    for evaluation in evaluations:
        evaluation["paperDoi"] = "10.1/x" if evaluation["token"] == "p1" else "10.1/y"
    integrated = build_integrated_data(
        ground_truth=[{"doi": "10.1/x"}],
        evaluations=evaluations,
        system_data_map={"10.1/x": {"paperContent": {"paperContent": {
            "prop-1": {"property": "Dataset", "values": ["ImageNet"]},
        }}}},
    )

    result = aggregator.aggregate_integrated(integrated)

    assert result.metadata["total_evaluations"] == 3
    assert result.global_stats.enrichment["papers_enriched"] == 1
    assert aggregator.aggregate_integrated({}).metadata["total_evaluations"] == 0


def test_module_level_aggregate_all(evaluations):
    """Test the one-shot helper returning a dict."""
    data = aggregate_all(evaluations, config=ScoringConfig())

    assert isinstance(data, dict)
    assert data["metadata"]["total_papers"] == 2


def test_aggregate_all_span_attributes(aggregator, evaluations):
    """Test that each aggregation is traced with its counts."""
    exporter = InMemorySpanExporter()
    trace.get_tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))

    aggregator.aggregate_all(evaluations)
    aggregator.aggregate_all(evaluations)

    spans = [s for s in exporter.get_finished_spans() if s.name == "papereval.aggregate_all"]
    assert len(spans) == 2
    assert spans[0].attributes["papereval.evaluations"] == 3
    assert spans[0].attributes["papereval.papers"] == 2
    assert spans[0].attributes["papereval.memo_hit"] is False
    assert spans[1].attributes["papereval.memo_hit"] is True
