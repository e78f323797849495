"""
Content enrichment from system extraction output.

Evaluations often lack per-property content scores because the values
extracted by the system were never copied into the evaluation. This module
maps system properties (keyed like ``prob-001``) onto evaluation keys
derived from the property label (``primary_dataset``), scores them, and
returns a new record whose ``overall.content`` tree carries those scores.
The input record is never modified.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..schemas import EvaluationRecord
from .statistics import is_valid_number

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.7
EVIDENCE_BONUS = 0.1
ACCURACY_WEIGHT = 0.6
QUALITY_WEIGHT = 0.4


@dataclass
class SystemProperty:
    """One extracted property from the system output."""

    original_key: str
    label: str
    value: Any
    confidence: float = 0.0
    evidence: Any = None
    all_values: List[Any] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.value is not None and self.value != ""


@dataclass
class EnrichmentOutcome:
    """Result of enriching one record."""

    record: EvaluationRecord
    enriched: bool
    enriched_count: int = 0
    skipped_count: int = 0
    reason: Optional[str] = None


def create_safe_key(label: Optional[str]) -> str:
    """
    Turn a property label into an evaluation key.

    Example:
        >>> create_safe_key("Cross-Dataset Generalization")
        'crossdataset_generalization'
        >>> create_safe_key("Primary Dataset")
        'primary_dataset'
    """
    if not label:
        return ""
    key = re.sub(r"[^a-z0-9\s]", "", str(label).lower())
    key = re.sub(r"\s+", "_", key)
    key = re.sub(r"_+", "_", key)
    return key.strip("_")


def build_system_to_eval_mapping(system_data: Optional[Mapping[str, Any]]) -> Dict[str, SystemProperty]:
    """Index system properties from ``paperContent.paperContent`` by evaluation key."""
    paper_content = None
    if isinstance(system_data, Mapping):
        outer = system_data.get("paperContent")
        if isinstance(outer, Mapping):
            paper_content = outer.get("paperContent")

    if not isinstance(paper_content, Mapping):
        logger.debug("No paperContent found in system data")
        return {}

    mapping: Dict[str, SystemProperty] = {}
    for key, prop in paper_content.items():
        if not isinstance(prop, Mapping) or not prop.get("property"):
            continue
        safe_key = create_safe_key(prop["property"])
        if not safe_key:
            continue

        values = prop.get("values")
        if isinstance(values, list):
            all_values = list(values)
            if len(values) == 1:
                value = values[0]
            elif len(values) > 1:
                value = "; ".join(str(v) for v in values)
            else:
                value = None
        else:
            value = prop.get("value") or None
            all_values = [value] if value is not None else []

        confidence = prop.get("confidence")
        mapping[safe_key] = SystemProperty(
            original_key=str(key),
            label=str(prop["property"]),
            value=value,
            confidence=float(confidence) if is_valid_number(confidence) else 0.0,
            evidence=prop.get("evidence") or None,
            all_values=all_values,
        )
    return mapping


def calculate_string_similarity(first: Any, second: Any) -> float:
    """Jaccard similarity of the whitespace tokens of two strings."""
    if not first or not second:
        return 0.0

    a = str(first).lower().strip()
    b = str(second).lower().strip()
    if a == b:
        return 1.0

    tokens_a = set(a.split())
    tokens_b = set(b.split())
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def calculate_property_accuracy(
    system_value: Any,
    ground_truth_value: Any,
    confidence: float,
    has_evidence: bool,
) -> Dict[str, float]:
    """
    Accuracy of one extracted property.

    With a ground-truth value the score is the token similarity; without one
    the extraction confidence stands in (0.7 if missing). Supporting evidence
    adds 0.1, capped at 1.
    """
    similarity = 0.0
    if ground_truth_value and system_value:
        similarity = calculate_string_similarity(system_value, ground_truth_value)
    elif system_value:
        similarity = confidence or DEFAULT_CONFIDENCE

    f1_score = similarity
    if has_evidence and f1_score > 0:
        f1_score = min(1.0, f1_score + EVIDENCE_BONUS)

    return {
        "precision": similarity,
        "recall": similarity,
        "similarity": similarity,
        "f1Score": f1_score,
    }


def _evidence_text(evidence: Any) -> str:
    if not isinstance(evidence, Mapping):
        return ""
    section = evidence.get("section")
    if isinstance(section, Mapping) and section.get("text"):
        return str(section["text"])
    return str(evidence.get("text") or "")


def calculate_property_quality(value: Any, confidence: float, evidence: Any) -> Dict[str, Any]:
    """Completeness/consistency/validity quality of one extracted property."""
    completeness = 0.0
    if value:
        word_count = len(str(value).split())
        if word_count > 10:
            completeness = 1.0
        elif word_count > 3:
            completeness = 0.85
        elif word_count >= 1:
            completeness = 0.7
        if not evidence:
            completeness *= 0.9

    evidence_text = _evidence_text(evidence)
    has_evidence = bool(evidence_text)

    if confidence >= 0.8 and has_evidence:
        consistency = 0.95
    elif confidence < 0.5 and not has_evidence:
        consistency = 0.85
    elif has_evidence and confidence < 0.5:
        consistency = 0.5
    elif not has_evidence and confidence >= 0.8:
        consistency = 0.4
    else:
        consistency = 0.7

    if has_evidence:
        validity = 0.9 if len(evidence_text) > 50 else 0.6
    else:
        validity = 0.5

    overall = completeness * 0.4 + consistency * 0.3 + validity * 0.3
    return {
        "completeness": {"score": completeness},
        "consistency": {"score": consistency},
        "validity": {"score": validity},
        "overallScore": overall,
    }


def _ground_truth_value(ground_truth: Optional[Mapping[str, Any]], key: str) -> Any:
    if not isinstance(ground_truth, Mapping):
        return None
    properties = ground_truth.get("properties")
    if not isinstance(properties, Mapping) or not isinstance(properties.get(key), Mapping):
        return None
    return properties[key].get("value")


def _child(tree: Dict[str, Any], key: str) -> Dict[str, Any]:
    node = tree.get(key)
    if not isinstance(node, dict):
        node = {}
        tree[key] = node
    return node


def enrich_record_content(
    record: EvaluationRecord,
    system_data: Optional[Mapping[str, Any]],
    ground_truth: Optional[Mapping[str, Any]] = None,
) -> EnrichmentOutcome:
    """
    Merge scored system properties into a copy of the record's content tree.

    Properties the evaluator already scored are left untouched.

    Args:
        record: Evaluation to enrich
        system_data: Raw system output for the same paper
        ground_truth: Optional ground truth with ``properties.<key>.value``

    Returns:
        EnrichmentOutcome holding the (possibly new) record

    Example:
        ```python
        outcome = enrich_record_content(record, system_data)
        if outcome.enriched:
            record = outcome.record
        ```
    """
    if system_data is None:
        return EnrichmentOutcome(record=record, enriched=False, reason="Missing system data")

    mapping = build_system_to_eval_mapping(system_data)
    if not mapping:
        return EnrichmentOutcome(record=record, enriched=False, reason="No properties in system data")

    metrics = copy.deepcopy(record.evaluation_metrics)
    overall_content = _child(_child(metrics, "overall"), "content")
    accuracy_content = _child(_child(metrics, "accuracy"), "content")
    quality_content = _child(_child(metrics, "quality"), "content")

    enriched_count = 0
    skipped_count = 0
    for key, prop in mapping.items():
        if not prop.has_data or key in overall_content:
            skipped_count += 1
            continue

        accuracy = calculate_property_accuracy(
            prop.value, _ground_truth_value(ground_truth, key), prop.confidence, bool(prop.evidence),
        )
        quality = calculate_property_quality(prop.value, prop.confidence, prop.evidence)
        combined = accuracy["f1Score"] * ACCURACY_WEIGHT + quality["overallScore"] * QUALITY_WEIGHT

        overall_content[key] = {
            "score": combined,
            "accuracyScore": accuracy["f1Score"],
            "qualityScore": quality["overallScore"],
            "value": prop.value,
            "systemKey": prop.original_key,
            "enrichedFromSystem": True,
        }
        accuracy_content[key] = accuracy
        quality_content[key] = quality
        enriched_count += 1

    if enriched_count == 0:
        return EnrichmentOutcome(
            record=record, enriched=False, skipped_count=skipped_count, reason="No new properties",
        )

    return EnrichmentOutcome(
        record=record.model_copy(update={"evaluation_metrics": metrics}),
        enriched=True,
        enriched_count=enriched_count,
        skipped_count=skipped_count,
    )


__all__ = [
    "SystemProperty",
    "EnrichmentOutcome",
    "create_safe_key",
    "build_system_to_eval_mapping",
    "calculate_string_similarity",
    "calculate_property_accuracy",
    "calculate_property_quality",
    "enrich_record_content",
]
