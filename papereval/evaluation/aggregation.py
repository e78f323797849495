"""
Multi-evaluator, multi-paper aggregation of evaluation records.

``Aggregator.aggregate_all`` turns a flat list of evaluation records into
one JSON-serializable aggregate:

- ``papers``: per-paper component statistics, difficulty and reliability
- ``evaluators``: per-evaluator profile, performance and consistency
- ``components``: cross-paper statistics per component
- ``global_stats``: totals, distributions, expertise and coverage
- ``temporal``: per-day activity and trend
- ``correlations``: Pearson correlation between component means per paper
- ``metadata``: counts and the aggregation timestamp

Every aggregate is recomputed from the input. Results are memoized by a
content hash of the input, and callers always receive a private copy.
"""

import copy
import hashlib
import json
import logging
import threading
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import ScoringConfig, get_default_config
from ..errors import MalformedRecordError
from ..schemas import EvaluationRecord
from ..telemetry import get_tracer
from .enrichment import enrich_record_content
from .expertise import calculate_expertise_weight, get_expertise_multiplier, get_expertise_weight
from .extraction import COMPONENTS, FIELD_DESCRIPTORS, ComponentKind, ComponentReader, extract_paper_metadata
from .matching import normalize_identifier
from .reliability import ReliabilityAnalyzer
from .scoring import ComponentScore, ScoreCombiner
from .statistics import (
    Outlier,
    ScoreStats,
    calculate_stats,
    detect_outliers,
    distribution,
    mean,
    median,
    pearson_correlation,
    standard_deviation,
)
from .temporal import build_timeline, calculate_timeline_trend

logger = logging.getLogger(__name__)

JUNIOR_DOMAINS = ("Novice", "Basic", "Beginner")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass
class Difficulty:
    """Paper difficulty derived from the mean overall score."""

    level: str
    """'hard', 'medium', 'easy' or 'unknown'"""
    score: float = 0.0
    std: float = 0.0
    reasoning: str = ""


@dataclass
class PaperComponentAggregate:
    """One component's statistics across the evaluators of one paper."""

    scores: ScoreStats
    accuracy_scores: ScoreStats
    quality_scores: ScoreStats
    user_ratings: ScoreStats
    """Normalized (0-1) ratings, weighted by evaluator expertise"""
    raw_user_ratings: ScoreStats
    """Ratings on the 1-5 scale"""
    by_field: Optional[Dict[str, Any]] = None
    distribution: Optional[Dict[str, int]] = None
    outliers: List[Outlier] = field(default_factory=list)
    user_rating_details: Optional[Dict[str, Dict[str, float]]] = None
    combined: Optional[ComponentScore] = None
    """Weighted automated score combined with the mean human rating"""


@dataclass
class PaperAggregate:
    """Everything known about one paper."""

    paper_id: str
    metadata: Optional[Dict[str, Any]]
    evaluation_count: int
    difficulty: Difficulty
    components: Dict[str, Optional[PaperComponentAggregate]]
    inter_rater_reliability: Dict[str, Any]
    consensus: Dict[str, Any]
    evaluators: List[Dict[str, Any]]


@dataclass
class EvaluatorAggregate:
    """One evaluator's profile and scoring behaviour."""

    evaluator_id: str
    profile: Dict[str, Any]
    evaluation_count: int
    performance: Dict[str, float]
    consistency: Optional[Dict[str, float]]
    """None with fewer than 2 positive scores"""
    papers_evaluated: List[str]


@dataclass
class ComponentAggregate:
    """One component across all papers."""

    evaluation_count: int
    scores: Dict[str, Any]
    user_ratings: Dict[str, Any]
    by_paper: Dict[str, Dict[str, Any]]


@dataclass
class GlobalStats:
    """Totals and distributions over the whole input."""

    total_evaluations: int = 0
    total_papers: int = 0
    total_evaluators: int = 0
    scores: Dict[str, Any] = field(default_factory=lambda: {
        "mean": 0.0, "std": 0.0, "median": 0.0, "min": 0.0, "max": 0.0, "distribution": None,
    })
    completeness: Dict[str, float] = field(default_factory=lambda: {"mean": 0.0, "std": 0.0})
    expertise: Dict[str, Any] = field(default_factory=lambda: {
        "mean": 0.0,
        "std": 0.0,
        "weight_mean": 0.0,
        "weight_std": 0.0,
        "distribution": {"by_role": {}, "by_level": {}},
    })
    coverage_by_component: Dict[str, Dict[str, float]] = field(default_factory=dict)
    user_ratings_by_component: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    enrichment: Dict[str, Any] = field(default_factory=lambda: {
        "applied": False, "papers_enriched": 0, "properties_enriched": 0,
    })


@dataclass
class AggregationResult:
    """The complete aggregate returned by ``Aggregator.aggregate_all``."""

    papers: Dict[str, PaperAggregate] = field(default_factory=dict)
    evaluators: Dict[str, EvaluatorAggregate] = field(default_factory=dict)
    components: Dict[str, Optional[ComponentAggregate]] = field(default_factory=dict)
    global_stats: GlobalStats = field(default_factory=GlobalStats)
    temporal: Dict[str, Any] = field(default_factory=lambda: {"timeline": []})
    correlations: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=lambda: {
        "total_evaluations": 0,
        "total_papers": 0,
        "total_evaluators": 0,
        "skipped_records": 0,
        "timestamp": _utc_timestamp(),
    })

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def empty_aggregation(skipped_records: int = 0) -> AggregationResult:
    """The aggregate for an empty or fully invalid input: all counts 0."""
    result = AggregationResult()
    result.metadata["skipped_records"] = skipped_records
    return result


# ============================================================================
# AGGREGATOR
# ============================================================================

def _content_hash(
    evaluations: Sequence[Any],
    system_data_map: Optional[Mapping[str, Any]],
    ground_truth_map: Optional[Mapping[str, Any]],
) -> str:
    payload = {
        "evaluations": [e.to_raw() if isinstance(e, EvaluationRecord) else e for e in evaluations],
        "system_data_map": system_data_map or {},
        "ground_truth_map": ground_truth_map or {},
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _rating_stats(values: Sequence[float]) -> Dict[str, float]:
    return {
        "mean": mean(values),
        "std": standard_deviation(values),
        "count": len(values),
        "min": min(values),
        "max": max(values),
        "normalized_mean": mean(values) / 5,
    }


class Aggregator:
    """
    Aggregate evaluation records across papers, evaluators and components.

    Example:
        ```python
        aggregator = Aggregator()
        result = aggregator.aggregate_all(evaluations, system_data_map={"paper-1": system_output})

        result.papers["paper-1"].difficulty.level       # "medium"
        result.global_stats.coverage_by_component["content"]["rate"]
        json.dumps(result.to_dict())                    # JSON-ready
        ```
    """

    def __init__(self, config: Optional[ScoringConfig] = None, store=None):
        """
        Initialize aggregator.

        Args:
            config: Scoring configuration (default: from the environment)
            store: Optional metrics store consulted when a record has no data
                for a component. Memoization is disabled while a store is
                attached since its contents can change between calls.
        """
        self.config = config or get_default_config()
        self.store = store
        self.combiner = ScoreCombiner(self.config)
        self.reliability = ReliabilityAnalyzer(self.config)
        self.tracer = get_tracer(__name__)

        self._memo: "OrderedDict[str, AggregationResult]" = OrderedDict()
        self._memo_lock = threading.Lock()

    def clear_memo(self) -> None:
        with self._memo_lock:
            self._memo.clear()

    @property
    def _memo_enabled(self) -> bool:
        return self.config.memo_size > 0 and self.store is None

    def _memo_get(self, key: str) -> Optional[AggregationResult]:
        with self._memo_lock:
            result = self._memo.get(key)
            if result is not None:
                self._memo.move_to_end(key)
            return result

    def _memo_put(self, key: str, result: AggregationResult) -> None:
        with self._memo_lock:
            self._memo[key] = result
            self._memo.move_to_end(key)
            while len(self._memo) > self.config.memo_size:
                self._memo.popitem(last=False)

    def aggregate_all(
        self,
        evaluations: Optional[Sequence[Any]],
        system_data_map: Optional[Mapping[str, Any]] = None,
        ground_truth_map: Optional[Mapping[str, Any]] = None,
    ) -> AggregationResult:
        """
        Aggregate a batch of evaluation records.

        Malformed records are logged and skipped. The input is never modified.

        Args:
            evaluations: Raw evaluation objects or ``EvaluationRecord`` instances
            system_data_map: Paper id (token, paper id or DOI) to raw system output,
                used to enrich each record's content scores
            ground_truth_map: Paper id to ground truth with ``properties.<key>.value``

        Returns:
            AggregationResult; ``empty_aggregation()`` for empty input
        """
        evaluations = list(evaluations or [])

        with self.tracer.start_as_current_span(
            "papereval.aggregate_all",
            attributes={"papereval.evaluations": len(evaluations)},
        ) as span:
            memo_key = None
            if self._memo_enabled and evaluations:
                memo_key = _content_hash(evaluations, system_data_map, ground_truth_map)
                cached = self._memo_get(memo_key)
                if cached is not None:
                    span.set_attribute("papereval.memo_hit", True)
                    span.set_attribute("papereval.papers", len(cached.papers))
                    return copy.deepcopy(cached)
            span.set_attribute("papereval.memo_hit", False)

            result = self._aggregate(evaluations, system_data_map, ground_truth_map)
            span.set_attribute("papereval.papers", len(result.papers))

            if memo_key is not None:
                self._memo_put(memo_key, result)
                return copy.deepcopy(result)
            return result

    def aggregate_integrated(self, integrated_data: Optional[Mapping[str, Any]]) -> AggregationResult:
        """
        Aggregate the user evaluations of integrated papers.

        Each paper's system output and ground truth feed content enrichment
        for its own evaluations.
        """
        evaluations: List[Any] = []
        system_data_map: Dict[str, Any] = {}
        ground_truth_map: Dict[str, Any] = {}

        papers = integrated_data.get("papers") if isinstance(integrated_data, Mapping) else None
        for paper in papers or []:
            for evaluation in paper.get("user_evaluations") or []:
                evaluations.append(evaluation)
                try:
                    key = EvaluationRecord.from_raw(evaluation).paper_key
                except MalformedRecordError:
                    continue
                if paper.get("system_output") is not None:
                    system_data_map.setdefault(key, paper["system_output"])
                if paper.get("ground_truth") is not None:
                    ground_truth_map.setdefault(key, paper["ground_truth"])

        return self.aggregate_all(evaluations, system_data_map, ground_truth_map)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _parse(self, evaluations: Sequence[Any]) -> Tuple[List[EvaluationRecord], int]:
        records: List[EvaluationRecord] = []
        skipped = 0
        for index, raw in enumerate(evaluations):
            try:
                records.append(EvaluationRecord.from_raw(raw))
            except MalformedRecordError as exc:
                skipped += 1
                logger.warning("Skipping malformed evaluation at index %d: %s", index, exc)
        return records, skipped

    def _aggregate(
        self,
        evaluations: Sequence[Any],
        system_data_map: Optional[Mapping[str, Any]],
        ground_truth_map: Optional[Mapping[str, Any]],
    ) -> AggregationResult:
        records, skipped = self._parse(evaluations)
        if not records:
            return empty_aggregation(skipped)

        records, enrichment = self._enrich(records, system_data_map, ground_truth_map)
        reader = ComponentReader(self.store)

        by_paper = self._group_by_paper(records)
        by_evaluator = self._group_by_evaluator(records)
        by_component = {
            kind: [r for r in records if reader.has_component(r, kind)]
            for kind in COMPONENTS
        }

        papers = {pid: self._aggregate_paper(pid, group, reader) for pid, group in by_paper.items()}
        evaluators = {eid: self._aggregate_evaluator(eid, group, reader) for eid, group in by_evaluator.items()}
        components = {
            kind.value: self._aggregate_component(kind, group, reader) if group else None
            for kind, group in by_component.items()
        }

        global_stats = self._global_stats(records, reader, by_paper, by_evaluator)
        global_stats.enrichment = enrichment

        timeline = build_timeline(records, reader)
        timeline["trend"] = calculate_timeline_trend(timeline["timeline"]).model_dump()

        return AggregationResult(
            papers=papers,
            evaluators=evaluators,
            components=components,
            global_stats=global_stats,
            temporal=timeline,
            correlations=self._correlations(papers),
            metadata={
                "total_evaluations": len(records),
                "total_papers": len(by_paper),
                "total_evaluators": len(by_evaluator),
                "skipped_records": skipped,
                "timestamp": _utc_timestamp(),
            },
        )

    def _enrich(
        self,
        records: List[EvaluationRecord],
        system_data_map: Optional[Mapping[str, Any]],
        ground_truth_map: Optional[Mapping[str, Any]],
    ) -> Tuple[List[EvaluationRecord], Dict[str, Any]]:
        status = {"applied": False, "papers_enriched": 0, "properties_enriched": 0}
        system_data_map = system_data_map or {}
        ground_truth_map = ground_truth_map or {}

        enriched_papers = set()
        result: List[EvaluationRecord] = []
        for record in records:
            extra = record.model_extra or {}
            keys = [k for k in (record.token, record.paper_id, normalize_identifier(record.paper_doi)) if k]

            system_data = next((system_data_map[k] for k in keys if k in system_data_map), None)
            if system_data is None:
                system_data = extra.get("systemData") or extra.get("systemOutput")
            if system_data is None:
                result.append(record)
                continue

            ground_truth = next((ground_truth_map[k] for k in keys if k in ground_truth_map), None)
            if ground_truth is None:
                ground_truth = extra.get("groundTruth")

            outcome = enrich_record_content(record, system_data, ground_truth)
            if outcome.enriched:
                enriched_papers.add(record.paper_key)
                status["properties_enriched"] += outcome.enriched_count
            else:
                logger.debug("No enrichment for paper %s: %s", record.paper_key, outcome.reason)
            result.append(outcome.record)

        if enriched_papers:
            status["applied"] = True
            status["papers_enriched"] = len(enriched_papers)
            logger.info(
                "Content enrichment applied to %d paper(s), %d properties",
                len(enriched_papers), status["properties_enriched"],
            )
        return result, status

    @staticmethod
    def _group_by_paper(records: Sequence[EvaluationRecord]) -> Dict[str, List[EvaluationRecord]]:
        grouped: Dict[str, List[EvaluationRecord]] = {}
        for record in records:
            grouped.setdefault(record.paper_key, []).append(record)
        return grouped

    @staticmethod
    def _group_by_evaluator(records: Sequence[EvaluationRecord]) -> Dict[str, List[EvaluationRecord]]:
        grouped: Dict[str, List[EvaluationRecord]] = {}
        for record in records:
            grouped.setdefault(record.evaluator_key, []).append(record)
        return grouped

    # ------------------------------------------------------------------
    # Papers
    # ------------------------------------------------------------------

    def _difficulty(self, overall_scores: Sequence[float]) -> Difficulty:
        if not overall_scores:
            return Difficulty(level="unknown", reasoning="No scores available")

        score = mean(overall_scores)
        if score < self.config.difficulty_hard_below:
            level = "hard"
        elif score > self.config.difficulty_easy_above:
            level = "easy"
        else:
            level = "medium"

        return Difficulty(
            level=level,
            score=score,
            std=standard_deviation(overall_scores),
            reasoning=f"Based on {len(overall_scores)} evaluation(s) with mean score {score:.2f}",
        )

    def _aggregate_paper(
        self,
        paper_id: str,
        records: List[EvaluationRecord],
        reader: ComponentReader,
    ) -> PaperAggregate:
        overall_scores = [reader.overall_score(r) for r in records]
        metadata = next((m for m in (extract_paper_metadata(r) for r in records) if m is not None), None)

        return PaperAggregate(
            paper_id=paper_id,
            metadata=metadata,
            evaluation_count=len(records),
            difficulty=self._difficulty([s for s in overall_scores if s > 0]),
            components={
                kind.value: self._aggregate_component_for_paper(paper_id, records, kind, reader)
                for kind in COMPONENTS
            },
            inter_rater_reliability=self.reliability.paper_reliability(overall_scores),
            consensus=self.reliability.paper_consensus(records, reader),
            evaluators=[
                {
                    "id": r.evaluator_key,
                    "expertise": get_expertise_weight(r.user_info),
                    "timestamp": r.timestamp,
                }
                for r in records
            ],
        )

    def _aggregate_component_for_paper(
        self,
        paper_id: str,
        records: List[EvaluationRecord],
        kind: ComponentKind,
        reader: ComponentReader,
    ) -> Optional[PaperComponentAggregate]:
        # Every values list is built together with its own weights list
        scores: List[float] = []
        score_weights: List[float] = []
        score_evaluators: List[str] = []
        accuracy: List[float] = []
        accuracy_weights: List[float] = []
        quality: List[float] = []
        quality_weights: List[float] = []
        raw_ratings: List[float] = []
        raw_rating_weights: List[float] = []
        normalized: List[float] = []
        normalized_weights: List[float] = []
        multipliers: List[float] = []
        component_data = []

        for record in records:
            data = reader.data(record, kind)
            if data is None:
                continue
            component_data.append(data)
            weight = get_expertise_weight(record.user_info)

            score = reader.score(record, kind)
            if score is not None and (kind.retains_zero or score > 0):
                scores.append(score)
                score_weights.append(weight)
                score_evaluators.append(record.evaluator_key)

            if kind.retains_zero or data.accuracy_score > 0:
                accuracy.append(data.accuracy_score)
                accuracy_weights.append(weight)

            if kind.retains_zero or data.quality_score > 0:
                quality.append(data.quality_score)
                quality_weights.append(weight)

            if data.user_rating is not None:
                raw_ratings.append(data.user_rating)
                raw_rating_weights.append(weight)
                multipliers.append(get_expertise_multiplier(record.user_info))

            normalized_rating = data.effective_normalized_rating
            if normalized_rating is not None and normalized_rating >= 0:
                normalized.append(normalized_rating)
                normalized_weights.append(weight)

        if not component_data:
            return None

        score_stats = calculate_stats(scores, score_weights)
        accuracy_stats = calculate_stats(accuracy, accuracy_weights)
        rating_stats = calculate_stats(raw_ratings, raw_rating_weights)

        combined = None
        if raw_ratings and (accuracy_stats.count or score_stats.count):
            automated = accuracy_stats.weighted_mean if accuracy_stats.count else score_stats.weighted_mean
            combined = self.combiner.combine_safe(
                automated,
                rating_stats.weighted_mean,
                mean(multipliers) if multipliers else 1.0,
                context=f"paper {paper_id} / {kind.value}",
            )

        return PaperComponentAggregate(
            scores=score_stats,
            accuracy_scores=accuracy_stats,
            quality_scores=calculate_stats(quality, quality_weights),
            user_ratings=calculate_stats(normalized, normalized_weights),
            raw_user_ratings=rating_stats,
            by_field=self._by_field(component_data) if kind is ComponentKind.METADATA else None,
            distribution=distribution(scores),
            outliers=detect_outliers(scores, score_evaluators),
            user_rating_details=self._user_rating_details(component_data, kind),
            combined=combined,
        )

    @staticmethod
    def _by_field(component_data) -> Optional[Dict[str, Any]]:
        """Per metadata field score and rating statistics."""
        result: Dict[str, Any] = {}
        for descriptor in FIELD_DESCRIPTORS[ComponentKind.METADATA]:
            field_scores = [d.field_scores[descriptor.key] for d in component_data if descriptor.key in d.field_scores]
            field_ratings = [
                d.user_rating_details[descriptor.key] for d in component_data if descriptor.key in d.user_rating_details
            ]
            if not field_scores and not field_ratings:
                continue
            result[descriptor.key] = {
                "mean": mean(field_scores),
                "std": standard_deviation(field_scores),
                "min": min(field_scores) if field_scores else None,
                "max": max(field_scores) if field_scores else None,
                "count": len(field_scores),
                "user_rating": {
                    "mean": mean(field_ratings),
                    "std": standard_deviation(field_ratings),
                    "count": len(field_ratings),
                    "normalized_mean": mean(field_ratings) / 5,
                } if field_ratings else None,
            }
        return result or None

    @staticmethod
    def _user_rating_details(component_data, kind: ComponentKind) -> Optional[Dict[str, Dict[str, float]]]:
        result = {}
        for descriptor in FIELD_DESCRIPTORS[kind]:
            ratings = [
                d.user_rating_details[descriptor.key] for d in component_data if descriptor.key in d.user_rating_details
            ]
            if ratings:
                result[descriptor.key] = _rating_stats(ratings)
        return result or None

    # ------------------------------------------------------------------
    # Evaluators
    # ------------------------------------------------------------------

    def _aggregate_evaluator(
        self,
        evaluator_id: str,
        records: List[EvaluationRecord],
        reader: ComponentReader,
    ) -> EvaluatorAggregate:
        user_info = records[0].user_info
        profile: Dict[str, Any] = user_info.model_dump() if user_info is not None else {}
        profile["expertise_weight"] = get_expertise_weight(user_info)
        profile["expertise_multiplier"] = get_expertise_multiplier(user_info)
        if not profile.get("weight_components") and user_info is not None:
            profile["weight_components"] = asdict(calculate_expertise_weight(
                user_info.role, user_info.domain_expertise, user_info.evaluation_experience, user_info.orkg_experience,
            ))

        scores = [s for s in (reader.overall_score(r) for r in records) if s > 0]
        completeness = [reader.completeness(r) for r in records]

        consistency = None
        if len(scores) >= 2:
            score_mean = mean(scores)
            std = standard_deviation(scores)
            cv = std / score_mean if score_mean > 0 else 0.0
            consistency = {"score": 1 - min(1.0, cv), "std": std, "cv": cv}

        return EvaluatorAggregate(
            evaluator_id=evaluator_id,
            profile=profile,
            evaluation_count=len(records),
            performance={
                "mean_score": mean(scores),
                "std_score": standard_deviation(scores),
                "mean_completeness": mean(completeness),
            },
            consistency=consistency,
            papers_evaluated=list(dict.fromkeys(r.paper_key for r in records)),
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _aggregate_component(
        self,
        kind: ComponentKind,
        records: List[EvaluationRecord],
        reader: ComponentReader,
    ) -> ComponentAggregate:
        scores = [s for s in (reader.score(r, kind) for r in records) if s is not None]

        raw_ratings: List[float] = []
        normalized: List[float] = []
        by_paper: Dict[str, Dict[str, Any]] = {}

        for record in records:
            data = reader.data(record, kind)
            entry = by_paper.setdefault(record.paper_key, {
                "paper_id": record.paper_key,
                "scores": [],
                "user_ratings": [],
                "normalized_ratings": [],
                "evaluator_count": 0,
            })
            if data is None:
                continue

            score = reader.score(record, kind)
            if kind.retains_zero:
                entry["scores"].append(score if score is not None else 0.0)
                entry["evaluator_count"] += 1
            elif score is not None and score > 0:
                entry["scores"].append(score)
                entry["evaluator_count"] += 1

            if data.user_rating is not None:
                raw_ratings.append(data.user_rating)
                entry["user_ratings"].append(data.user_rating)
            if data.effective_normalized_rating is not None and data.effective_normalized_rating >= 0:
                normalized.append(data.effective_normalized_rating)
                entry["normalized_ratings"].append(data.effective_normalized_rating)

        for entry in by_paper.values():
            entry["mean"] = mean(entry["scores"])
            entry["std"] = standard_deviation(entry["scores"])
            entry["user_rating_mean"] = mean(entry["normalized_ratings"]) if entry["normalized_ratings"] else None
            entry["user_rating_raw_mean"] = mean(entry["user_ratings"]) if entry["user_ratings"] else None

        return ComponentAggregate(
            evaluation_count=len(records),
            scores={
                "mean": mean(scores),
                "std": standard_deviation(scores),
                "median": median(scores),
                "min": min(scores) if scores else None,
                "max": max(scores) if scores else None,
                "distribution": distribution(scores),
            },
            user_ratings={
                "mean": mean(normalized) if normalized else None,
                "std": standard_deviation(normalized) if normalized else None,
                "count": len(normalized),
                "raw_mean": mean(raw_ratings) if raw_ratings else None,
                "distribution": distribution(normalized),
            },
            by_paper=by_paper,
        )

    # ------------------------------------------------------------------
    # Global
    # ------------------------------------------------------------------

    def _global_stats(
        self,
        records: List[EvaluationRecord],
        reader: ComponentReader,
        by_paper: Mapping[str, Any],
        by_evaluator: Mapping[str, Any],
    ) -> GlobalStats:
        total = len(records)
        scores = [s for s in (reader.overall_score(r) for r in records) if s > 0]
        completeness = [reader.completeness(r) for r in records]

        weights = [w for w in (get_expertise_weight(r.user_info) for r in records) if w > 0]
        multipliers = [
            r.user_info.expertise_multiplier
            for r in records
            if r.user_info is not None and r.user_info.expertise_multiplier and r.user_info.expertise_multiplier > 0
        ]

        by_role: Dict[str, int] = {}
        by_level = {"junior": 0, "intermediate": 0, "senior": 0, "expert": 0}
        for record in records:
            profile = record.user_info
            role = (profile.role if profile is not None else None) or "Unknown"
            by_role[role] = by_role.get(role, 0) + 1

            domain = (profile.domain_expertise if profile is not None else None) or "Intermediate"
            if domain in JUNIOR_DOMAINS:
                by_level["junior"] += 1
            elif domain == "Intermediate":
                by_level["intermediate"] += 1
            elif domain == "Advanced":
                by_level["senior"] += 1
            elif domain == "Expert":
                by_level["expert"] += 1

        coverage: Dict[str, Dict[str, float]] = {}
        ratings_by_component: Dict[str, Dict[str, Any]] = {}
        for kind in COMPONENTS:
            count = sum(1 for r in records if reader.has_component(r, kind))
            coverage[kind.value] = {"count": count, "rate": count / total if total else 0.0}

            ratings = []
            for record in records:
                data = reader.data(record, kind)
                if data is not None and data.effective_normalized_rating is not None:
                    ratings.append(data.effective_normalized_rating)
            ratings_by_component[kind.value] = {
                "mean": mean(ratings) if ratings else None,
                "std": standard_deviation(ratings) if ratings else None,
                "count": len(ratings),
            }

        return GlobalStats(
            total_evaluations=total,
            total_papers=len(by_paper),
            total_evaluators=len(by_evaluator),
            scores={
                "mean": mean(scores),
                "std": standard_deviation(scores),
                "median": median(scores),
                "min": min(scores) if scores else 0.0,
                "max": max(scores) if scores else 0.0,
                "distribution": distribution(scores),
            },
            completeness={"mean": mean(completeness), "std": standard_deviation(completeness)},
            expertise={
                "mean": mean(multipliers),
                "std": standard_deviation(multipliers),
                "weight_mean": mean(weights),
                "weight_std": standard_deviation(weights),
                "distribution": {"by_role": by_role, "by_level": by_level},
            },
            coverage_by_component=coverage,
            user_ratings_by_component=ratings_by_component,
        )

    @staticmethod
    def _correlations(papers: Mapping[str, PaperAggregate]) -> Dict[str, float]:
        """
        Pearson correlation of per-paper component means.

        Each pair only uses papers where both components have at least one score.
        """
        correlations: Dict[str, float] = {}
        for i, first in enumerate(COMPONENTS):
            for second in COMPONENTS[i:]:
                key = f"{first.value}-{second.value}"
                if first is second:
                    correlations[key] = 1.0
                    continue

                xs: List[float] = []
                ys: List[float] = []
                for paper in papers.values():
                    a = paper.components.get(first.value)
                    b = paper.components.get(second.value)
                    if a is None or b is None or not a.scores.count or not b.scores.count:
                        continue
                    xs.append(a.scores.mean)
                    ys.append(b.scores.mean)
                correlations[key] = pearson_correlation(xs, ys)
        return correlations


def aggregate_all(
    evaluations: Optional[Sequence[Any]],
    system_data_map: Optional[Mapping[str, Any]] = None,
    ground_truth_map: Optional[Mapping[str, Any]] = None,
    config: Optional[ScoringConfig] = None,
) -> Dict[str, Any]:
    """One-shot aggregation returning the JSON-ready dict."""
    return Aggregator(config).aggregate_all(evaluations, system_data_map, ground_truth_map).to_dict()


__all__ = [
    "Difficulty",
    "PaperComponentAggregate",
    "PaperAggregate",
    "EvaluatorAggregate",
    "ComponentAggregate",
    "GlobalStats",
    "AggregationResult",
    "Aggregator",
    "aggregate_all",
    "empty_aggregation",
]
