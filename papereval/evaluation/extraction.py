"""
Typed access to per-component scores inside an evaluation record.

Each evaluation stores its scores in a nested ``evaluationMetrics`` tree
whose layout differs per component. One adapter per ``ComponentKind``
knows where that component keeps its overall/accuracy/quality scores and
its human ratings, and returns a flat ``ComponentData``.

Absence policy:
- ``research_problem`` and ``content``: a score of 0 is a real observation
- ``metadata``, ``research_field``, ``template``: 0 means "not evaluated"
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import ComputationError
from ..schemas import EvaluationRecord
from .statistics import is_valid_number, mean

logger = logging.getLogger(__name__)


class ComponentKind(str, Enum):
    """The fixed set of evaluated components."""

    METADATA = "metadata"
    RESEARCH_FIELD = "research_field"
    RESEARCH_PROBLEM = "research_problem"
    TEMPLATE = "template"
    CONTENT = "content"

    @property
    def retains_zero(self) -> bool:
        """Whether a 0 score counts as an observation for this component."""
        return self in (ComponentKind.RESEARCH_PROBLEM, ComponentKind.CONTENT)


COMPONENTS: Tuple[ComponentKind, ...] = tuple(ComponentKind)

# Optional 1-5 rating sections stored at evaluationMetrics.<name>.<name>.overall.rating
SUPPLEMENTARY_SECTIONS = ("systemPerformance", "innovation", "comparativeAnalysis", "ragHighlight")

COMPLETENESS_SLOTS = len(COMPONENTS) + len(SUPPLEMENTARY_SECTIONS)


@dataclass(frozen=True)
class FieldDescriptor:
    """One rated dimension of a component."""

    key: str
    label: str


FIELD_DESCRIPTORS: Dict[ComponentKind, Tuple[FieldDescriptor, ...]] = {
    ComponentKind.METADATA: (
        FieldDescriptor("title", "Title Extraction"),
        FieldDescriptor("authors", "Authors Extraction"),
        FieldDescriptor("doi", "DOI Extraction"),
        FieldDescriptor("publication_year", "Publication Year"),
        FieldDescriptor("venue", "Venue/Journal"),
    ),
    ComponentKind.RESEARCH_FIELD: (
        FieldDescriptor("primaryField", "Primary Field"),
        FieldDescriptor("confidence", "Confidence"),
        FieldDescriptor("consistency", "Consistency"),
        FieldDescriptor("relevance", "Relevance"),
    ),
    ComponentKind.RESEARCH_PROBLEM: (
        FieldDescriptor("problemTitle", "Problem Title"),
        FieldDescriptor("problemDescription", "Problem Description"),
        FieldDescriptor("relevance", "Relevance"),
        FieldDescriptor("completeness", "Completeness"),
        FieldDescriptor("evidenceQuality", "Evidence Quality"),
    ),
    ComponentKind.TEMPLATE: (
        FieldDescriptor("titleAccuracy", "Title Accuracy"),
        FieldDescriptor("descriptionQuality", "Description Quality"),
        FieldDescriptor("propertyCoverage", "Property Coverage"),
        FieldDescriptor("researchAlignment", "Research Alignment"),
    ),
    ComponentKind.CONTENT: (
        FieldDescriptor("propertyCoverage", "Property Coverage"),
        FieldDescriptor("evidenceQuality", "Evidence Quality"),
        FieldDescriptor("valueAccuracy", "Value Accuracy"),
        FieldDescriptor("confidenceCalibration", "Confidence Calibration"),
    ),
}

# Keys of overall.content that are not per-property entries
CONTENT_RESERVED_KEYS = frozenset({
    "overallScore", "accuracyScore", "timestamp", "config", "scores", "userRatings", "overall", "_aggregate",
})


@dataclass
class ComponentData:
    """Flat view of one component's scores within one evaluation."""

    kind: ComponentKind
    overall_score: float = 0.0
    accuracy_score: float = 0.0
    quality_score: float = 0.0
    user_rating: Optional[float] = None
    """Mean human rating on the 1-5 scale"""
    normalized_rating: Optional[float] = None
    """Human rating on the 0-1 scale"""
    user_rating_details: Dict[str, float] = field(default_factory=dict)
    """Rating per dimension (see FIELD_DESCRIPTORS), 1-5 scale"""
    field_scores: Dict[str, float] = field(default_factory=dict)
    """Metadata only: automated score per metadata field"""

    @property
    def effective_normalized_rating(self) -> Optional[float]:
        if self.normalized_rating is not None:
            return self.normalized_rating
        if self.user_rating is not None:
            return self.user_rating / 5
        return None

    @classmethod
    def from_stored(cls, kind: ComponentKind, data: Mapping[str, Any]) -> "ComponentData":
        """Build from a persisted score-combiner result (camelCase or snake_case keys)."""
        overall = _first_number(
            data.get("final_score"), data.get("finalScore"), data.get("overall_score"), data.get("overallScore"),
        )
        accuracy = _first_number(data.get("automated_score"), data.get("automatedScore"), overall)
        rating = _first_number(data.get("user_rating"), data.get("userRating"))
        normalized = _first_number(data.get("normalized_rating"), data.get("normalizedRating"))
        return cls(
            kind=kind,
            overall_score=overall or 0.0,
            accuracy_score=accuracy or 0.0,
            quality_score=overall or 0.0,
            user_rating=rating if rating else None,
            normalized_rating=normalized,
        )


def _get(tree: Any, *path: str) -> Any:
    node = tree
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) and value else None


def _first_number(*candidates: Any) -> Optional[float]:
    for candidate in candidates:
        if is_valid_number(candidate):
            return float(candidate)
    return None


def _first_positive(*candidates: Any) -> Optional[float]:
    for candidate in candidates:
        if is_valid_number(candidate) and candidate > 0:
            return float(candidate)
    return None


def _quality_score(block: Any) -> Optional[float]:
    return _first_number(
        _get(block, "scoreDetails", "finalScore"),
        _get(block, "qualityData", "overallScore"),
        _get(block, "overallScore"),
    )


def _rating_of(value: Any) -> Optional[float]:
    """A rating stored either as a bare number or as {rating: n}."""
    if is_valid_number(value):
        return float(value)
    return _first_number(_get(value, "rating"))


def _dimension_ratings(block: Mapping[str, Any], kind: ComponentKind, positive_only: bool = False) -> Dict[str, float]:
    ratings: Dict[str, float] = {}
    for descriptor in FIELD_DESCRIPTORS[kind]:
        rating = _rating_of(block.get(descriptor.key))
        if rating is None or (positive_only and rating <= 0):
            continue
        ratings[descriptor.key] = rating
    return ratings


class ComponentAdapter(ABC):
    """Reads one component kind out of an ``evaluationMetrics`` tree."""

    kind: ComponentKind

    def is_present(self, metrics: Mapping[str, Any]) -> bool:
        return bool(_mapping(_get(metrics, "overall", self.kind.value)))

    @abstractmethod
    def extract(self, metrics: Mapping[str, Any]) -> Optional[ComponentData]:
        """Flatten this component's block, or None when the record has none."""

    def score(self, data: ComponentData) -> Optional[float]:
        """Headline score, honouring the component's absence policy."""
        if self.kind.retains_zero:
            return data.overall_score
        if data.overall_score > 0:
            return data.overall_score
        if data.accuracy_score > 0:
            return data.accuracy_score
        return None


class MetadataAdapter(ComponentAdapter):
    kind = ComponentKind.METADATA

    def extract(self, metrics):
        overall = _mapping(_get(metrics, "overall", "metadata")) or {}
        accuracy = _mapping(_get(metrics, "accuracy", "metadata")) or {}
        if not overall and not accuracy:
            return None

        ratings: List[float] = []
        normalized: List[float] = []
        details: Dict[str, float] = {}
        field_scores: Dict[str, float] = {}

        for descriptor in FIELD_DESCRIPTORS[self.kind]:
            accuracy_field = _mapping(accuracy.get(descriptor.label))
            field_data = _mapping(overall.get(descriptor.key)) or accuracy_field

            rating = _first_number(_get(accuracy_field, "rating"), _get(field_data, "rating"))
            field_normalized = _first_number(_get(accuracy_field, "scoreDetails", "normalizedRating"))
            if rating is not None:
                ratings.append(rating)
                details[descriptor.key] = rating
            elif field_normalized is not None:
                details[descriptor.key] = field_normalized * 5
            if field_normalized is not None:
                normalized.append(field_normalized)

            score = _first_positive(_get(field_data, "overallScore"), _get(field_data, "accuracyScore"))
            if score is not None:
                field_scores[descriptor.key] = score

        quality = _first_positive(_get(overall, "overall", "qualityScore"))
        if quality is None:
            field_quality = [
                q for q in (_quality_score(block) for block in (_mapping(_get(metrics, "quality", "metadata")) or {}).values())
                if q is not None
            ]
            quality = mean(field_quality) if field_quality else 0.0

        return ComponentData(
            kind=self.kind,
            overall_score=_first_positive(_get(overall, "overall", "overallScore")) or 0.0,
            accuracy_score=_first_positive(_get(overall, "overall", "accuracyScore")) or 0.0,
            quality_score=quality,
            user_rating=mean(ratings) if ratings else None,
            normalized_rating=mean(normalized) if normalized else None,
            user_rating_details=details,
            field_scores=field_scores,
        )

    def score(self, data):
        if data.overall_score <= 0 and data.field_scores:
            return mean(list(data.field_scores.values()))
        return super().score(data)


class ResearchFieldAdapter(ComponentAdapter):
    kind = ComponentKind.RESEARCH_FIELD

    def extract(self, metrics):
        research_field = _mapping(_get(metrics, "overall", "research_field")) or {}
        accuracy = _mapping(_get(metrics, "accuracy", "researchField")) or {}
        if not research_field and not accuracy:
            return None

        quality_block = _get(metrics, "quality", "researchField") or _get(metrics, "quality", "research_field")
        details = _dimension_ratings(research_field, self.kind)

        return ComponentData(
            kind=self.kind,
            overall_score=_first_positive(
                research_field.get("overallScore"),
                _get(research_field, "accuracyMetrics", "overallAccuracy", "value"),
            ) or 0.0,
            accuracy_score=_first_positive(
                research_field.get("accuracyScore"),
                _get(research_field, "accuracyMetrics", "automatedScore", "value"),
            ) or 0.0,
            quality_score=_first_number(_quality_score(quality_block), research_field.get("qualityScore")) or 0.0,
            user_rating=_first_number(accuracy.get("rating"), _get(research_field, "primaryField", "rating")),
            normalized_rating=_first_number(
                _get(accuracy, "scoreDetails", "normalizedRating"),
                _get(research_field, "accuracyMetrics", "scoreDetails", "normalizedRating"),
            ),
            user_rating_details=details,
        )


def _accuracy_block_score(block: Any) -> Optional[float]:
    return _first_number(
        _get(block, "scoreDetails", "finalScore"),
        _get(block, "overallAccuracy", "finalScore"),
        _get(block, "finalScore"),
        _get(block, "score"),
    )


class ResearchProblemAdapter(ComponentAdapter):
    kind = ComponentKind.RESEARCH_PROBLEM

    def extract(self, metrics):
        problem = _mapping(_get(metrics, "overall", "research_problem"))
        if problem is None:
            return None

        nested = _mapping(_get(problem, "overall", "research_problem")) or {}

        details: Dict[str, float] = {}
        user_rating: Optional[float] = None
        normalized: Optional[float] = None
        nested_ratings = _mapping(nested.get("userRatings"))
        if nested_ratings:
            details = _dimension_ratings(nested_ratings, self.kind)
            user_rating = _first_number(nested_ratings.get("overallRating"))
            if user_rating is None and details:
                user_rating = mean(list(details.values()))
            normalized = user_rating / 5 if user_rating else None

        if user_rating is None:
            user_rating = _first_number(_get(metrics, "accuracy", "researchProblem", "rating"))
            normalized = _first_number(_get(metrics, "accuracy", "researchProblem", "scoreDetails", "normalizedRating"))

        accuracy_score = _first_positive(_accuracy_block_score(nested.get("accuracy")), nested.get("accuracyScore"))
        overall_score = _first_positive(
            _accuracy_block_score(nested.get("accuracy")),
            nested.get("overallScore"),
            nested.get("score"),
            _accuracy_block_score(problem.get("accuracy")),
            problem.get("overallScore"),
            problem.get("score"),
            _get(problem, "scores", "overallScore"),
            _get(problem, "scores", "finalScore"),
        ) or 0.0
        if accuracy_score is None:
            accuracy_score = _first_positive(
                _accuracy_block_score(problem.get("accuracy")),
                problem.get("accuracyScore"),
                _get(problem, "scores", "accuracyScore"),
            ) or overall_score

        quality_block = _get(metrics, "quality", "researchProblem") or _get(metrics, "quality", "research_problem")
        quality = _first_positive(_quality_score(quality_block), _get(nested, "quality", "overallScore"))

        return ComponentData(
            kind=self.kind,
            overall_score=overall_score,
            accuracy_score=accuracy_score,
            quality_score=quality if quality is not None else overall_score,
            user_rating=user_rating,
            normalized_rating=normalized,
            user_rating_details=details,
        )


class TemplateAdapter(ComponentAdapter):
    kind = ComponentKind.TEMPLATE

    def extract(self, metrics):
        template = _mapping(_get(metrics, "overall", "template")) or {}
        accuracy = _mapping(_get(metrics, "accuracy", "template", "template")) or {}
        if not template and not accuracy:
            return None

        details = _dimension_ratings(template, self.kind)
        user_rating = mean(list(details.values())) if details else None
        normalized = _first_number(_get(accuracy, "scoreDetails", "normalizedRating"))
        if normalized is None and user_rating:
            normalized = user_rating / 5

        overall_score = _first_positive(template.get("overallScore"), _get(accuracy, "scoreDetails", "finalScore")) or 0.0
        quality = _first_positive(_quality_score(_get(metrics, "quality", "template")), template.get("qualityScore"))

        return ComponentData(
            kind=self.kind,
            overall_score=overall_score,
            accuracy_score=_first_positive(
                template.get("accuracyScore"), _get(accuracy, "scoreDetails", "automatedScore"),
            ) or 0.0,
            quality_score=quality if quality is not None else overall_score,
            user_rating=user_rating,
            normalized_rating=normalized,
            user_rating_details=details,
        )


def _property_score(prop: Mapping[str, Any]) -> Optional[float]:
    return _first_number(
        prop.get("score"),
        prop.get("accuracyScore"),
        prop.get("overallScore"),
        prop.get("finalScore"),
        _get(prop, "accuracy", "score"),
        _get(prop, "accuracy", "finalScore"),
        _get(prop, "scores", "score"),
        _get(prop, "scores", "finalScore"),
    )


class ContentAdapter(ComponentAdapter):
    kind = ComponentKind.CONTENT

    def extract(self, metrics):
        content = _mapping(_get(metrics, "overall", "content"))
        if content is None:
            return None

        details = _dimension_ratings(_mapping(content.get("userRatings")) or {}, self.kind, positive_only=True)
        user_rating = mean(list(details.values())) if details else None

        property_scores = []
        for key, prop in content.items():
            if key in CONTENT_RESERVED_KEYS or not isinstance(prop, Mapping):
                continue
            score = _property_score(prop)
            if score is not None:
                property_scores.append(score)
        if property_scores:
            overall_score = mean(property_scores)
            accuracy_score = overall_score
        else:
            overall_score = _first_positive(
                content.get("overallScore"),
                content.get("score"),
                _get(content, "scores", "overallScore"),
                _get(content, "scores", "finalScore"),
                _get(content, "overall", "overallScore"),
                _get(content, "overall", "score"),
                _get(content, "_aggregate", "mean"),
            ) or 0.0
            accuracy_score = _first_positive(content.get("accuracyScore")) or overall_score

        quality_scores = []
        for key, block in (_mapping(_get(metrics, "quality", "content")) or {}).items():
            if key in CONTENT_RESERVED_KEYS:
                continue
            quality_score = _first_number(_quality_score(block), _get(block, "qualityScore"))
            if quality_score is not None:
                quality_scores.append(quality_score)
        quality = mean(quality_scores) if quality_scores else 0.0

        return ComponentData(
            kind=self.kind,
            overall_score=overall_score,
            accuracy_score=accuracy_score,
            quality_score=quality or overall_score,
            user_rating=user_rating,
            normalized_rating=user_rating / 5 if user_rating else None,
            user_rating_details=details,
        )


ADAPTERS: Dict[ComponentKind, ComponentAdapter] = {
    adapter.kind: adapter
    for adapter in (MetadataAdapter(), ResearchFieldAdapter(), ResearchProblemAdapter(), TemplateAdapter(), ContentAdapter())
}


class ComponentReader:
    """
    Extracts and caches component data for a batch of records.

    An optional metrics store is consulted only when a record carries no
    data at all for a component.
    """

    def __init__(self, store=None):
        self.store = store
        self._cache: Dict[Tuple[int, ComponentKind], Optional[ComponentData]] = {}

    def has_component(self, record: EvaluationRecord, kind: ComponentKind) -> bool:
        if ADAPTERS[kind].is_present(record.evaluation_metrics):
            return True
        return self._stored(record, kind) is not None

    def data(self, record: EvaluationRecord, kind: ComponentKind) -> Optional[ComponentData]:
        key = (id(record), kind)
        if key not in self._cache:
            self._cache[key] = self._extract(record, kind)
        return self._cache[key]

    def score(self, record: EvaluationRecord, kind: ComponentKind) -> Optional[float]:
        data = self.data(record, kind)
        if data is None:
            return None
        return ADAPTERS[kind].score(data)

    def overall_score(self, record: EvaluationRecord) -> float:
        """
        Mean of the record's component scores.

        Falls back to the supplementary 1-5 rating sections (each divided by 5)
        when no component contributes a score; 0.0 when nothing is available.
        """
        scores: List[float] = []
        for kind in COMPONENTS:
            score = self.score(record, kind)
            if score is None:
                continue
            if kind.retains_zero or score > 0:
                scores.append(score)
        if scores:
            return mean(scores)

        supplementary = [rating / 5 for rating in supplementary_ratings(record) if rating]
        return mean(supplementary) if supplementary else 0.0

    def completeness(self, record: EvaluationRecord) -> float:
        """Share of the nine possible sections the record fills in."""
        present = sum(1 for kind in COMPONENTS if self.has_component(record, kind))
        present += len(supplementary_ratings(record))
        return present / COMPLETENESS_SLOTS

    def _extract(self, record: EvaluationRecord, kind: ComponentKind) -> Optional[ComponentData]:
        try:
            data = ADAPTERS[kind].extract(record.evaluation_metrics)
        except (ComputationError, ArithmeticError, TypeError, ValueError) as exc:
            logger.warning(
                "Could not read %s for paper %s (evaluator %s): %s",
                kind.value, record.paper_key, record.evaluator_key, exc,
            )
            return None
        if data is not None:
            return data

        stored = self._stored(record, kind)
        if stored is not None:
            logger.debug("Using stored %s metrics for paper %s", kind.value, record.paper_key)
            return ComponentData.from_stored(kind, stored)
        return None

    def _stored(self, record: EvaluationRecord, kind: ComponentKind) -> Optional[Mapping[str, Any]]:
        if self.store is None:
            return None
        stored = self.store.get_field_metrics(record.paper_key, "overall", kind.value)
        return stored if isinstance(stored, Mapping) else None


def supplementary_ratings(record: EvaluationRecord) -> List[float]:
    """Ratings of the optional sections that are present on the record."""
    ratings = []
    for section in SUPPLEMENTARY_SECTIONS:
        rating = _first_number(_get(record.evaluation_metrics, section, section, "overall", "rating"))
        if rating is not None:
            ratings.append(rating)
    return ratings


def extract_paper_metadata(record: EvaluationRecord) -> Optional[Dict[str, Any]]:
    """Snapshot of the paper's bibliographic fields as seen by this evaluation."""
    metadata = _mapping(_get(record.evaluation_metrics, "overall", "metadata"))
    if metadata is None:
        return None
    return {
        d.key: _get(metadata, d.key, "extractedValue") or _get(metadata, d.key, "referenceValue") or None
        for d in FIELD_DESCRIPTORS[ComponentKind.METADATA]
    }


def extract_component_data(record: EvaluationRecord, kind: ComponentKind) -> Optional[ComponentData]:
    return ComponentReader().data(record, ComponentKind(kind))


def extract_component_score(record: EvaluationRecord, kind: ComponentKind) -> Optional[float]:
    return ComponentReader().score(record, ComponentKind(kind))


def extract_overall_score(record: EvaluationRecord) -> float:
    return ComponentReader().overall_score(record)


def extract_completeness(record: EvaluationRecord) -> float:
    return ComponentReader().completeness(record)
