"""
Confidence-weighted combination of automated scores and human ratings.

The automated score is trusted least when it is extreme: a score of 0.5
gets full confidence while 0 or 1 gets none, so the human rating dominates
there. Agreement between the two sources earns a small multiplicative bonus.
"""

import logging
import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional

from ..config import ScoringConfig, get_default_config
from ..errors import ComputationError
from .statistics import is_valid_number

logger = logging.getLogger(__name__)

RATING_SCALE_MAX = 5.0
ROUND_DIGITS = 5


@dataclass(frozen=True)
class ComponentScore:
    """Result of combining one automated score with one human rating."""

    automated_score: float
    user_rating: float
    normalized_rating: float
    """user_rating / 5"""
    expertise_multiplier: float
    automatic_confidence: float
    automatic_weight: float
    user_weight: float
    """automatic_weight + user_weight == 1"""
    combined_score: float
    agreement: float
    agreement_bonus: float
    final_score: float
    """Clipped to [0, 1]"""
    is_capped: bool
    """True when the unclipped final score exceeded 1"""
    importance_factor: float = 1.0
    is_fallback: bool = False
    """True when the score is the neutral fallback rather than a computed value"""

    @classmethod
    def neutral(cls, config: ScoringConfig) -> "ComponentScore":
        """Neutral stand-in used when a combination cannot be computed."""
        total = config.automated_weight_base + config.user_weight_base
        automatic_weight = round(config.automated_weight_base / total, ROUND_DIGITS) if total > 0 else 0.5
        return cls(
            automated_score=0.0,
            user_rating=0.0,
            normalized_rating=0.0,
            expertise_multiplier=1.0,
            automatic_confidence=0.0,
            automatic_weight=automatic_weight,
            user_weight=round(1 - automatic_weight, ROUND_DIGITS),
            combined_score=config.computation_fallback_score,
            agreement=0.0,
            agreement_bonus=0.0,
            final_score=config.computation_fallback_score,
            is_capped=False,
            is_fallback=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _require_number(name: str, value: Any) -> float:
    if not is_valid_number(value):
        raise ComputationError(f"{name} must be a finite number, got {value!r}")
    return float(value)


def _clip(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def automatic_confidence(automated_score: float) -> float:
    """U-shaped confidence: 1 at 0.5, 0 at the extremes."""
    clamped = _clip(automated_score)
    return 1 - (2 * abs(clamped - 0.5)) ** 2


class ScoreCombiner:
    """
    Combine automated scores with expert ratings.

    Example:
        ```python
        combiner = ScoreCombiner()
        result = combiner.combine(automated_score=0.5, user_rating=5, expertise_multiplier=1.0)
        result.automatic_weight  # 0.4
        result.combined_score    # 0.8
        result.final_score       # 0.84 (agreement 0.5 -> bonus 0.05)
        ```
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or get_default_config()

    def combine(
        self,
        automated_score: float = 0.0,
        user_rating: float = 0.0,
        expertise_multiplier: float = 1.0,
    ) -> ComponentScore:
        """
        Combine one automated score and one human rating.

        Args:
            automated_score: System score in [0, 1]
            user_rating: Human rating on the 1-5 scale (0 when not rated)
            expertise_multiplier: Scales the human rating's weight (>= 0)

        Returns:
            ComponentScore with all numeric fields rounded to 5 decimals

        Raises:
            ComputationError: If an input is not a finite number, the multiplier
                is negative, or both weights vanish
        """
        score = _require_number("automated_score", automated_score)
        rating = _require_number("user_rating", user_rating)
        multiplier = _require_number("expertise_multiplier", expertise_multiplier)
        if multiplier < 0:
            raise ComputationError(f"expertise_multiplier must be >= 0, got {multiplier}")

        config = self.config
        normalized_rating = rating / RATING_SCALE_MAX
        confidence = automatic_confidence(score)

        raw_automatic_weight = max(config.min_automated_weight, config.automated_weight_base * confidence)
        raw_user_weight = config.user_weight_base * multiplier
        total_weight = raw_automatic_weight + raw_user_weight
        if total_weight <= 0:
            raise ComputationError("automated and user weights are both zero")

        automatic_weight = raw_automatic_weight / total_weight
        user_weight = raw_user_weight / total_weight

        combined = automatic_weight * score + user_weight * normalized_rating
        agreement = _clip(1 - abs(score - normalized_rating))
        agreement_bonus = agreement * config.agreement_bonus_factor

        unclipped = combined * (1 + agreement_bonus)
        final_score = _clip(unclipped)

        rounded_automatic_weight = round(automatic_weight, ROUND_DIGITS)
        return ComponentScore(
            automated_score=round(score, ROUND_DIGITS),
            user_rating=round(rating, ROUND_DIGITS),
            normalized_rating=round(normalized_rating, ROUND_DIGITS),
            expertise_multiplier=round(multiplier, ROUND_DIGITS),
            automatic_confidence=round(confidence, ROUND_DIGITS),
            automatic_weight=rounded_automatic_weight,
            user_weight=round(1 - rounded_automatic_weight, ROUND_DIGITS),
            combined_score=round(combined, ROUND_DIGITS),
            agreement=round(agreement, ROUND_DIGITS),
            agreement_bonus=round(agreement_bonus, ROUND_DIGITS),
            final_score=round(final_score, ROUND_DIGITS),
            is_capped=unclipped > 1,
        )

    def combine_safe(
        self,
        automated_score: Any = 0.0,
        user_rating: Any = 0.0,
        expertise_multiplier: Any = 1.0,
        context: str = "",
    ) -> ComponentScore:
        """Like ``combine`` but returns the neutral fallback instead of raising."""
        try:
            return self.combine(automated_score, user_rating, expertise_multiplier)
        except ComputationError as exc:
            logger.warning("Score combination failed%s: %s", f" for {context}" if context else "", exc)
            return ComponentScore.neutral(self.config)

    def combine_components(
        self,
        component_scores: Mapping[str, Any],
        component_weights: Mapping[str, Any],
        user_rating: float = 0.0,
        expertise_multiplier: float = 1.0,
        importance_factor: float = 1.0,
    ) -> ComponentScore:
        """
        Fold weighted sub-component scores into one automated score, then combine.

        Only components that have both a numeric score and a nonzero weight
        contribute. The combined final score is scaled by ``importance_factor``
        and clipped to [0, 1] again.

        Example:
            ```python
            result = combiner.combine_components(
                component_scores={"title": 0.9, "authors": 0.6, "venue": None},
                component_weights={"title": 2, "authors": 1, "venue": 1},
                user_rating=4,
            )
            # automated score = (0.9*2 + 0.6*1) / 3 = 0.8
            ```
        """
        automated_score = fold_component_scores(component_scores, component_weights)
        factor = _require_number("importance_factor", importance_factor)

        result = self.combine(automated_score, user_rating, expertise_multiplier)
        scaled = result.final_score * factor
        return replace(
            result,
            final_score=round(_clip(scaled), ROUND_DIGITS),
            is_capped=result.is_capped or scaled > 1,
            importance_factor=factor,
        )


def fold_component_scores(component_scores: Mapping[str, Any], component_weights: Mapping[str, Any]) -> float:
    """Weighted mean of sub-component scores; 0.0 when no component qualifies."""
    weighted_sum = 0.0
    total_weight = 0.0
    for name, score in component_scores.items():
        weight = component_weights.get(name)
        if not is_valid_number(score) or not is_valid_number(weight) or weight == 0:
            continue
        weighted_sum += float(score) * float(weight)
        total_weight += float(weight)

    if total_weight == 0 or math.isclose(total_weight, 0.0):
        return 0.0
    return weighted_sum / total_weight


__all__ = [
    "RATING_SCALE_MAX",
    "ROUND_DIGITS",
    "ComponentScore",
    "ScoreCombiner",
    "automatic_confidence",
    "fold_component_scores",
]
