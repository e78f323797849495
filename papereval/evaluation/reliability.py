"""
Inter-rater reliability for paper evaluations.

Implements pairwise agreement, a simplified ICC and Fleiss' kappa over the
1-5 rating scale, plus expertise-weighted consensus and disagreement
detection. Scores on the 0-1 scale are binned onto five categories before
kappa is computed. Metadata field ratings also get Cohen's kappa (two
raters) and Cronbach's alpha, and the cross-paper report compares automated
accuracy with content quality.
"""

import logging
import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import ScoringConfig, get_default_config
from ..schemas import EvaluationRecord
from .expertise import EXPERT_WEIGHT_THRESHOLD, expertise_to_multiplier
from .extraction import COMPONENTS, ComponentKind, ComponentReader
from .statistics import calculate_stats, is_valid_number, mean, pearson_correlation, valid_values, variance

logger = logging.getLogger(__name__)

RATING_CATEGORIES = 5
DEFAULT_RATER_WEIGHT = 5.0
HIGH_DISAGREEMENT_VARIANCE = 1.5
EXPERTISE_SPLIT_GAP = 1.0
CONSENSUS_WINDOW = 1.0

# Absorbs float noise such as 0.8 - 0.7 = 0.10000000000000009
_AGREEMENT_TOLERANCE = 1e-9


@dataclass
class RatingEntry:
    """One rater's rating of one field."""

    rating: float
    expertise_weight: float
    evaluator_id: str


@dataclass
class FieldConsensus:
    """Consensus among raters for one field."""

    rating_count: int
    weighted_average: float
    variance: float
    standard_deviation: float
    agreement_percentage: float
    """Share of raters within one point of the weighted average (0-100)"""
    consensus_level: str
    """'high' (>= 80%), 'medium' (>= 60%) or 'low'"""


@dataclass
class DisagreementReport:
    """Fields where raters disagree."""

    high_disagreement_fields: List[Dict[str, Any]] = field(default_factory=list)
    expertise_differences: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# AGREEMENT PRIMITIVES
# ============================================================================

def calculate_pairwise_agreement(scores: Sequence[Any], threshold: float = 0.1) -> float:
    """
    Share of rater pairs whose scores differ by at most ``threshold``.

    Example:
        ```python
        calculate_pairwise_agreement([0.6, 0.62, 0.8])
        # 0.333 - only (0.6, 0.62) agree
        ```
    """
    values = valid_values(scores)
    agreements = 0
    comparisons = 0
    for i in range(len(values)):
        for j in range(i + 1, len(values)):
            comparisons += 1
            if abs(values[i] - values[j]) <= threshold + _AGREEMENT_TOLERANCE:
                agreements += 1
    return agreements / comparisons if comparisons else 0.0


def calculate_simplified_icc(scores: Sequence[Any]) -> float:
    """
    Simplified ICC: ``1 - variance / (mean * (1 - mean))`` clipped to [0, 1].

    Defined as 1 when the scores have no variance or ``mean * (1 - mean)`` is 0.
    """
    values = valid_values(scores)
    if not values:
        return 1.0

    m = mean(values)
    var = variance(values)
    denominator = m * (1 - m)
    if var == 0 or denominator == 0:
        return 1.0
    return max(0.0, min(1.0, 1 - var / denominator))


def categorize_score(score: float) -> int:
    """Map a 0-1 score onto the 1-5 rating categories (right-closed bins of 0.2)."""
    for category, upper in enumerate((0.2, 0.4, 0.6, 0.8), start=1):
        if score <= upper:
            return category
    return RATING_CATEGORIES


def _category_of(rating: Any) -> Optional[int]:
    if not is_valid_number(rating):
        return None
    return int(min(RATING_CATEGORIES, max(1, round(float(rating)))))


def calculate_fleiss_kappa(ratings_by_subject: Mapping[str, Sequence[Any]]) -> Optional[float]:
    """
    Calculate Fleiss' kappa for ratings on the 1-5 scale.

    Fleiss' kappa needs the same number of raters for every subject. The
    rater count is the most common count among subjects; subjects rated by
    a different number of raters are left out.

    Args:
        ratings_by_subject: Subject id to the ratings it received (1-5)

    Returns:
        Kappa in [-1, 1], or None when fewer than 2 raters rated a subject

    Example:
        ```python
        kappa = calculate_fleiss_kappa({
            "metadata.title": [5, 5, 4],
            "metadata.venue": [3, 3, 3],
        })
        ```
    """
    subjects: Dict[str, List[int]] = {}
    for subject, ratings in ratings_by_subject.items():
        categories = [c for c in (_category_of(r) for r in ratings or []) if c is not None]
        if categories:
            subjects[subject] = categories
    if not subjects:
        return None

    n, _ = Counter(len(c) for c in subjects.values()).most_common(1)[0]
    if n < 2:
        return None

    rated = {s: c for s, c in subjects.items() if len(c) == n}
    skipped = len(subjects) - len(rated)
    if skipped:
        logger.debug("Fleiss kappa: skipping %d subject(s) without %d raters", skipped, n)

    N = len(rated)
    totals = [0] * RATING_CATEGORIES
    observed = 0.0
    for categories in rated.values():
        counts = [0] * RATING_CATEGORIES
        for category in categories:
            counts[category - 1] += 1
            totals[category - 1] += 1
        observed += sum(c * (c - 1) for c in counts) / (n * (n - 1))

    p_bar = observed / N
    p_e = sum((t / (n * N)) ** 2 for t in totals)

    # All ratings fall in one category
    if math.isclose(p_e, 1.0):
        return 1.0

    return (p_bar - p_e) / (1 - p_e)


def fleiss_kappa_for_scores(scores_by_subject: Mapping[str, Sequence[Any]]) -> Optional[float]:
    """Fleiss' kappa over 0-1 scores, binned with ``categorize_score``."""
    return calculate_fleiss_kappa({
        subject: [categorize_score(s) for s in valid_values(scores)]
        for subject, scores in scores_by_subject.items()
    })


def interpret_kappa(kappa: Optional[float]) -> str:
    """
    Interpret a kappa coefficient (Landis & Koch, 1977).

    Interpretation:
        - < 0.00: poor
        - 0.00-0.20: slight
        - 0.20-0.40: fair
        - 0.40-0.60: moderate
        - 0.60-0.80: substantial
        - 0.80-1.00: almost perfect
    """
    if kappa is None:
        return "undefined"
    if kappa < 0.0:
        return "poor"
    elif kappa < 0.20:
        return "slight"
    elif kappa < 0.40:
        return "fair"
    elif kappa < 0.60:
        return "moderate"
    elif kappa < 0.80:
        return "substantial"
    else:
        return "almost perfect"


def calculate_variance_agreement(scores_by_subject: Mapping[str, Sequence[Any]]) -> Dict[str, Any]:
    """
    Agreement from the average per-subject variance of 0-1 scores.

    Only subjects with at least two scores count. ``agreement`` is
    ``1 - min(avg_variance * 10, 1)``.
    """
    variances = [
        variance(values)
        for values in (valid_values(s) for s in scores_by_subject.values())
        if len(values) >= 2
    ]
    if not variances:
        return {"average_variance": None, "agreement": None, "consensus": "insufficient_data", "subjects": 0}

    avg_variance = mean(variances)
    if avg_variance < 0.01:
        consensus = "high"
    elif avg_variance < 0.05:
        consensus = "medium"
    elif avg_variance < 0.1:
        consensus = "low"
    else:
        consensus = "disagreement"

    return {
        "average_variance": avg_variance,
        "agreement": 1 - min(avg_variance * 10, 1.0),
        "consensus": consensus,
        "subjects": len(variances),
    }


def _positive_rating(value: Any) -> bool:
    return is_valid_number(value) and value > 0


def calculate_cohens_kappa(rater1: Mapping[str, Any], rater2: Mapping[str, Any]) -> Optional[float]:
    """
    Calculate Cohen's kappa for two raters on the 1-5 scale.

    Only items both raters rated (positive rating) are compared. Expected
    agreement comes from each rater's own category marginals.

    Args:
        rater1: Item id to the first rater's rating
        rater2: Item id to the second rater's rating

    Returns:
        Kappa in [-1, 1]; None when the raters share no rated item. 1.0
        when both raters put every item in the same single category.

    Example:
        ```python
        kappa = calculate_cohens_kappa(
            {"title": 5, "authors": 4, "doi": 5},
            {"title": 5, "authors": 3, "doi": 5},
        )
        # kappa = 0.4 (fair agreement)
        ```
    """
    pairs = [
        (_category_of(rater1[item]), _category_of(rater2[item]))
        for item in rater1
        if item in rater2 and _positive_rating(rater1[item]) and _positive_rating(rater2[item])
    ]
    if not pairs:
        return None

    n = len(pairs)
    p_observed = sum(1 for a, b in pairs if a == b) / n

    first = Counter(a for a, _ in pairs)
    second = Counter(b for _, b in pairs)
    p_expected = sum(first[c] * second[c] for c in range(1, RATING_CATEGORIES + 1)) / (n * n)

    if math.isclose(p_expected, 1.0):
        return 1.0

    return (p_observed - p_expected) / (1 - p_expected)


def calculate_cronbach_alpha(rater_items: Sequence[Mapping[str, Any]]) -> Optional[float]:
    """
    Calculate Cronbach's alpha over items rated by several raters.

    Each mapping holds one rater's 1-5 ratings per item. Items nobody rated
    are ignored; a rater's missing item counts as 0 in that rater's total.
    Variances are population variances.

    Returns:
        ``k / (k - 1) * (1 - sum(item variances) / total variance)``; None
        with fewer than 2 raters, fewer than 2 items or no variance in the
        raters' totals

    Example:
        ```python
        calculate_cronbach_alpha([
            {"title": 5, "authors": 4},
            {"title": 3, "authors": 2},
            {"title": 4, "authors": 3},
        ])
        # 1.0 - the two fields rank the raters identically
        ```
    """
    rows = [row for row in rater_items if isinstance(row, Mapping)]
    if len(rows) < 2:
        return None

    items = list(dict.fromkeys(item for row in rows for item, value in row.items() if _positive_rating(value)))
    k = len(items)
    if k < 2:
        return None

    item_variances = [
        variance([float(row[item]) for row in rows if _positive_rating(row.get(item))])
        for item in items
    ]
    totals = [
        sum(float(row[item]) for item in items if _positive_rating(row.get(item)))
        for row in rows
    ]
    total_variance = variance(totals)
    if total_variance == 0:
        return None

    return (k / (k - 1)) * (1 - sum(item_variances) / total_variance)


def expertise_tier(weight: Optional[float]) -> str:
    """Bucket an expertise weight (1-5) into junior/intermediate/senior/expert."""
    weight = weight or 0.0
    if weight >= 4:
        return "expert"
    if weight >= 3:
        return "senior"
    if weight >= 2:
        return "intermediate"
    return "junior"


def calculate_agreement_by_tier(
    scores: Sequence[Any],
    weights: Sequence[Any],
    threshold: float = 0.1,
) -> Dict[str, Dict[str, Any]]:
    """
    Pairwise agreement within each expertise tier.

    ``scores[i]`` is the score given by a rater of weight ``weights[i]``.
    """
    by_tier: Dict[str, List[float]] = {}
    for score, weight in zip(scores, weights):
        if not is_valid_number(score):
            continue
        by_tier.setdefault(expertise_tier(weight if is_valid_number(weight) else None), []).append(float(score))

    return {
        tier: {
            "count": len(tier_scores),
            "mean": mean(tier_scores),
            "agreement": calculate_pairwise_agreement(tier_scores, threshold) if len(tier_scores) >= 2 else None,
        }
        for tier, tier_scores in by_tier.items()
    }


# ============================================================================
# CONSENSUS AND DISAGREEMENT
# ============================================================================

def _rater_weight(record: EvaluationRecord) -> float:
    profile = record.user_info
    if profile is not None and profile.expertise_weight:
        return profile.expertise_weight
    return DEFAULT_RATER_WEIGHT


def collect_field_ratings(
    records: Sequence[EvaluationRecord],
    reader: Optional[ComponentReader] = None,
) -> Dict[str, List[RatingEntry]]:
    """
    Gather 1-5 ratings per field, keyed ``<component>.<dimension>``.

    Each component's mean rating is also collected as ``<component>.overall``.
    """
    reader = reader or ComponentReader()
    ratings: Dict[str, List[RatingEntry]] = {}

    for record in records:
        weight = _rater_weight(record)
        evaluator = record.evaluator_key
        for kind in COMPONENTS:
            data = reader.data(record, kind)
            if data is None:
                continue
            for dimension, rating in data.user_rating_details.items():
                if rating:
                    ratings.setdefault(f"{kind.value}.{dimension}", []).append(RatingEntry(rating, weight, evaluator))
            if data.user_rating:
                ratings.setdefault(f"{kind.value}.overall", []).append(RatingEntry(data.user_rating, weight, evaluator))
    return ratings


def metadata_field_ratings(
    records: Sequence[EvaluationRecord],
    reader: Optional[ComponentReader] = None,
) -> Dict[str, Dict[str, float]]:
    """
    Metadata field ratings per evaluator (title, authors, doi, publication_year, venue).

    An evaluator with several records keeps the ratings of the first one.
    Evaluators without metadata ratings are left out.
    """
    reader = reader or ComponentReader()
    by_evaluator: Dict[str, Dict[str, float]] = {}
    for record in records:
        data = reader.data(record, ComponentKind.METADATA)
        if data is None or not data.user_rating_details:
            continue
        by_evaluator.setdefault(record.evaluator_key, dict(data.user_rating_details))
    return by_evaluator


def _consensus_level(percentage: float) -> str:
    if percentage >= 80:
        return "high"
    if percentage >= 60:
        return "medium"
    return "low"


def calculate_field_consensus(entries: Sequence[RatingEntry]) -> Optional[FieldConsensus]:
    """
    Expertise-weighted consensus for one field.

    Each rating is weighted by ``expertise_to_multiplier(weight)``; variance is
    taken around the weighted average.
    """
    if not entries:
        return None

    multipliers = [expertise_to_multiplier(e.expertise_weight) for e in entries]
    weight_sum = sum(multipliers)
    weighted_average = (
        sum(e.rating * m for e, m in zip(entries, multipliers)) / weight_sum if weight_sum > 0 else 0.0
    )

    field_variance = sum((e.rating - weighted_average) ** 2 for e in entries) / len(entries)
    within = sum(1 for e in entries if abs(e.rating - weighted_average) <= CONSENSUS_WINDOW)
    percentage = within / len(entries) * 100

    return FieldConsensus(
        rating_count=len(entries),
        weighted_average=weighted_average,
        variance=field_variance,
        standard_deviation=math.sqrt(field_variance),
        agreement_percentage=percentage,
        consensus_level=_consensus_level(percentage),
    )


def calculate_consensus(
    field_ratings: Mapping[str, Sequence[RatingEntry]],
    evaluator_count: int,
) -> Optional[Dict[str, Any]]:
    """
    Consensus across evaluators of one paper.

    Returns:
        None without evaluators; a 'single_evaluator' marker for one;
        otherwise per-field consensus plus an overall block with Fleiss' kappa
    """
    if evaluator_count <= 0:
        return None
    if evaluator_count == 1:
        return {"evaluator_count": 1, "consensus_level": "single_evaluator"}

    fields: Dict[str, Dict[str, Any]] = {}
    for name, entries in field_ratings.items():
        consensus = calculate_field_consensus(entries)
        if consensus is not None:
            fields[name] = asdict(consensus)

    overall_percentage = mean([f["agreement_percentage"] for f in fields.values()]) if fields else 0.0
    kappa = calculate_fleiss_kappa({name: [e.rating for e in entries] for name, entries in field_ratings.items()})

    return {
        "evaluator_count": evaluator_count,
        "field_consensus": fields,
        "overall": {
            "agreement_percentage": overall_percentage,
            "consensus_level": _consensus_level(overall_percentage),
            "fleiss_kappa": kappa,
            "kappa_interpretation": interpret_kappa(kappa),
        },
    }


def detect_disagreements(field_ratings: Mapping[str, Sequence[RatingEntry]]) -> DisagreementReport:
    """
    Flag high-variance fields and expert/non-expert splits.

    A field is high-disagreement when its rating variance exceeds 1.5. An
    expertise split is reported when raters with weight >= 4 average more
    than one point apart from the rest.
    """
    report = DisagreementReport()
    for name, entries in field_ratings.items():
        if not entries:
            continue
        ratings = [e.rating for e in entries]
        average = mean(ratings)
        field_variance = variance(ratings)

        if field_variance > HIGH_DISAGREEMENT_VARIANCE:
            report.high_disagreement_fields.append({
                "field": name,
                "variance": field_variance,
                "average_rating": average,
                "ratings": ratings,
            })

        high = [e.rating for e in entries if e.expertise_weight >= EXPERT_WEIGHT_THRESHOLD]
        low = [e.rating for e in entries if e.expertise_weight < EXPERT_WEIGHT_THRESHOLD]
        if high and low:
            difference = abs(mean(high) - mean(low))
            if difference > EXPERTISE_SPLIT_GAP:
                report.expertise_differences.append({
                    "field": name,
                    "high_expertise_avg": mean(high),
                    "low_expertise_avg": mean(low),
                    "difference": difference,
                })
    return report


# ============================================================================
# QUALITY VS ACCURACY
# ============================================================================

QUALITY_ALIGNMENT_TOLERANCE = 0.05
MAX_REPORTED_GAPS = 5


def _stats_mean(stats: Any) -> Optional[float]:
    if not isinstance(stats, Mapping) or not stats.get("count"):
        return None
    value = stats.get("mean")
    return float(value) if is_valid_number(value) else None


def _accuracy_and_quality(component: Any):
    """Accuracy (falling back to the plain scores) and positive quality of one component block."""
    if not isinstance(component, Mapping):
        return None, None
    accuracy = _stats_mean(component.get("accuracy_scores"))
    if accuracy is None:
        accuracy = _stats_mean(component.get("scores"))
    quality = _stats_mean(component.get("quality_scores"))
    if quality is not None and quality <= 0:
        quality = None
    return accuracy, quality


def _correlation(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    return pearson_correlation(x, y) if len(x) >= 2 else None


def _comparison_block(accuracy: List[float], quality: List[float], paired: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "accuracy": asdict(calculate_stats(accuracy)),
        "quality": asdict(calculate_stats(quality)),
        "paired_count": len(paired),
        "mean_difference": mean([p["difference"] for p in paired]) if paired else None,
        "correlation": _correlation([p["accuracy"] for p in paired], [p["quality"] for p in paired]),
    }


def interpret_quality_vs_accuracy(
    accuracy_mean: Optional[float],
    quality_mean: Optional[float],
    correlation: Optional[float],
) -> List[str]:
    """Plain-language findings for the quality/accuracy comparison."""
    findings: List[str] = []
    if accuracy_mean is not None and quality_mean is not None:
        difference = quality_mean - accuracy_mean
        if abs(difference) < QUALITY_ALIGNMENT_TOLERANCE:
            findings.append("Quality and accuracy scores are closely aligned")
        elif difference > 0:
            findings.append(f"Quality scores are {difference * 100:.1f}% higher than accuracy scores on average")
        else:
            findings.append(f"Accuracy scores are {-difference * 100:.1f}% higher than quality scores on average")

    if correlation is not None:
        if correlation > 0.8:
            findings.append("Strong positive correlation between quality and accuracy")
        elif correlation > 0.5:
            findings.append("Moderate positive correlation between quality and accuracy")
        elif correlation > 0.2:
            findings.append("Weak positive correlation between quality and accuracy")
        else:
            findings.append("Little to no correlation between quality and accuracy scores")
    return findings


def compare_quality_accuracy(papers: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Compare automated accuracy with content quality across papers.

    A paper's accuracy is the mean of its components' accuracy means (the
    score mean when a component has no accuracy scores); its quality is the
    mean of the positive component quality means. Papers with both are
    paired, and ``difference`` is quality minus accuracy.

    Args:
        papers: ``papers`` block of an aggregation result (as a dict)

    Returns:
        ``{overall, by_component, paired, largest_gaps, interpretation}``

    Example:
        ```python
        comparison = compare_quality_accuracy(aggregation.to_dict()["papers"])
        comparison["overall"]["correlation"]
        comparison["interpretation"]
        # ["Quality scores are 11.7% higher than accuracy scores on average", ...]
        ```
    """
    accuracy_scores: List[float] = []
    quality_scores: List[float] = []
    paired: List[Dict[str, Any]] = []
    by_component: Dict[str, Dict[str, Any]] = {
        kind.value: {"accuracy": [], "quality": [], "paired": []} for kind in COMPONENTS
    }

    for paper_id, paper in (papers or {}).items():
        components = paper.get("components") if isinstance(paper, Mapping) else None
        paper_accuracy: List[float] = []
        paper_quality: List[float] = []

        for kind in COMPONENTS:
            accuracy, quality = _accuracy_and_quality((components or {}).get(kind.value))
            bucket = by_component[kind.value]
            if accuracy is not None:
                paper_accuracy.append(accuracy)
                bucket["accuracy"].append(accuracy)
            if quality is not None:
                paper_quality.append(quality)
                bucket["quality"].append(quality)
            if accuracy is not None and quality is not None:
                bucket["paired"].append({"accuracy": accuracy, "quality": quality, "difference": quality - accuracy})

        accuracy = mean(paper_accuracy) if paper_accuracy else None
        quality = mean(paper_quality) if paper_quality else None
        if accuracy is not None:
            accuracy_scores.append(accuracy)
        if quality is not None:
            quality_scores.append(quality)
        if accuracy is not None and quality is not None:
            paired.append({
                "paper_id": paper_id,
                "accuracy": accuracy,
                "quality": quality,
                "difference": quality - accuracy,
                "percent_difference": (quality - accuracy) / accuracy * 100 if accuracy > 0 else 0.0,
            })

    overall = _comparison_block(accuracy_scores, quality_scores, paired)
    largest_gaps = sorted(paired, key=lambda p: abs(p["difference"]), reverse=True)[:MAX_REPORTED_GAPS]

    return {
        "overall": overall,
        "by_component": {
            name: _comparison_block(bucket["accuracy"], bucket["quality"], bucket["paired"])
            for name, bucket in by_component.items()
        },
        "paired": paired,
        "largest_gaps": [
            dict(gap, direction="quality_higher" if gap["difference"] > 0 else "accuracy_higher")
            for gap in largest_gaps
        ],
        "interpretation": interpret_quality_vs_accuracy(
            overall["accuracy"]["mean"] if accuracy_scores else None,
            overall["quality"]["mean"] if quality_scores else None,
            overall["correlation"],
        ),
    }


# ============================================================================
# ANALYZER
# ============================================================================

def _as_dict(aggregation: Any) -> Mapping[str, Any]:
    if hasattr(aggregation, "to_dict"):
        return aggregation.to_dict()
    return aggregation if isinstance(aggregation, Mapping) else {}


class ReliabilityAnalyzer:
    """
    Reliability measures over grouped evaluation data.

    Example:
        ```python
        analyzer = ReliabilityAnalyzer()
        analyzer.paper_reliability([0.6, 0.62, 0.8])
        # {"icc": ..., "agreement": 0.333, "reasoning": "Based on 3 evaluators with 33.3% agreement"}

        report = analyzer.analyze(Aggregator().aggregate_all(evaluations))
        report["overall"]["kappa_interpretation"]
        ```
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or get_default_config()

    def paper_reliability(self, scores: Sequence[Any]) -> Dict[str, Any]:
        """IRR block ``{icc, agreement, reasoning}`` for one paper's overall scores."""
        values = valid_values(scores)
        if len(values) < 2:
            return {"icc": None, "agreement": None, "reasoning": "Need at least 2 evaluators"}

        agreement = calculate_pairwise_agreement(values, self.config.agreement_threshold)
        return {
            "icc": calculate_simplified_icc(values),
            "agreement": agreement,
            "reasoning": f"Based on {len(values)} evaluators with {agreement * 100:.1f}% agreement",
        }

    def paper_consensus(
        self,
        records: Sequence[EvaluationRecord],
        reader: Optional[ComponentReader] = None,
    ) -> Dict[str, Any]:
        """
        Consensus and disagreement among the evaluators of one paper.

        ``metadata_reliability`` holds Cronbach's alpha over the metadata
        field ratings, and Cohen's kappa when exactly two evaluators rated
        metadata fields.
        """
        reader = reader or ComponentReader()
        field_ratings = collect_field_ratings(records, reader)
        evaluators = {r.evaluator_key for r in records}
        metadata_rows = list(metadata_field_ratings(records, reader).values())
        return {
            "consensus": calculate_consensus(field_ratings, len(evaluators)),
            "disagreements": detect_disagreements(field_ratings).to_dict(),
            "metadata_reliability": {
                "raters": len(metadata_rows),
                "cronbach_alpha": calculate_cronbach_alpha(metadata_rows),
                "cohens_kappa": (
                    calculate_cohens_kappa(metadata_rows[0], metadata_rows[1]) if len(metadata_rows) == 2 else None
                ),
            },
        }

    def analyze(self, aggregation: Any) -> Dict[str, Any]:
        """
        Full reliability report from an aggregation result.

        Uses the per-paper score lists in ``components.<c>.by_paper`` and the
        per-paper IRR blocks.

        Returns:
            ``{papers, components, overall}``
        """
        data = _as_dict(aggregation)
        components = data.get("components") or {}
        papers = data.get("papers") or {}
        threshold = self.config.agreement_threshold

        component_reports: Dict[str, Dict[str, Any]] = {}
        per_paper_subjects: Dict[str, Dict[str, List[float]]] = {}
        all_subjects: Dict[str, List[float]] = {}

        for kind in COMPONENTS:
            aggregate = components.get(kind.value)
            if not aggregate:
                continue
            by_paper = aggregate.get("by_paper") or {}
            scores_by_paper = {pid: valid_values(p.get("scores")) for pid, p in by_paper.items()}

            agreements = [
                calculate_pairwise_agreement(scores, threshold)
                for scores in scores_by_paper.values()
                if len(scores) >= 2
            ]
            kappa = fleiss_kappa_for_scores(scores_by_paper)
            component_reports[kind.value] = {
                "fleiss_kappa": kappa,
                "kappa_interpretation": interpret_kappa(kappa),
                "pairwise_agreement": mean(agreements) if agreements else None,
                "variance_agreement": calculate_variance_agreement(scores_by_paper),
            }

            for pid, scores in scores_by_paper.items():
                per_paper_subjects.setdefault(pid, {})[kind.value] = scores
                all_subjects[f"{pid}:{kind.value}"] = scores

        paper_reports: Dict[str, Dict[str, Any]] = {}
        for pid, paper in papers.items():
            subjects = per_paper_subjects.get(pid, {})
            kappa = fleiss_kappa_for_scores(subjects)
            paper_reports[pid] = {
                "inter_rater_reliability": paper.get("inter_rater_reliability"),
                "fleiss_kappa": kappa,
                "kappa_interpretation": interpret_kappa(kappa),
                "variance_agreement": calculate_variance_agreement(subjects),
            }

        overall_kappa = fleiss_kappa_for_scores(all_subjects)
        iccs = [
            p["inter_rater_reliability"]["icc"]
            for p in paper_reports.values()
            if isinstance(p.get("inter_rater_reliability"), Mapping)
            and p["inter_rater_reliability"].get("icc") is not None
        ]
        return {
            "papers": paper_reports,
            "components": component_reports,
            "quality_vs_accuracy": compare_quality_accuracy(papers),
            "overall": {
                "fleiss_kappa": overall_kappa,
                "kappa_interpretation": interpret_kappa(overall_kappa),
                "mean_icc": mean(iccs) if iccs else None,
                "papers_with_multiple_raters": len(iccs),
            },
        }


def analyze_reliability(aggregation: Any, config: Optional[ScoringConfig] = None) -> Dict[str, Any]:
    return ReliabilityAnalyzer(config).analyze(aggregation)


__all__ = [
    "RatingEntry",
    "FieldConsensus",
    "DisagreementReport",
    "calculate_pairwise_agreement",
    "calculate_simplified_icc",
    "categorize_score",
    "calculate_fleiss_kappa",
    "fleiss_kappa_for_scores",
    "interpret_kappa",
    "calculate_variance_agreement",
    "calculate_cohens_kappa",
    "calculate_cronbach_alpha",
    "expertise_tier",
    "calculate_agreement_by_tier",
    "collect_field_ratings",
    "metadata_field_ratings",
    "compare_quality_accuracy",
    "interpret_quality_vs_accuracy",
    "calculate_field_consensus",
    "calculate_consensus",
    "detect_disagreements",
    "ReliabilityAnalyzer",
    "analyze_reliability",
]
