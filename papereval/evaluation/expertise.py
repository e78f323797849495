"""
Evaluator expertise weighting.

An evaluator's influence is derived from their academic role, their
familiarity with the paper's domain and their prior evaluation experience.
The resulting weight lives on a 1-5 scale; ``expertise_to_multiplier`` maps
it onto the multiplier the score combiner uses to scale the human rating.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from ..schemas import UserInfo
from .statistics import is_valid_number

ROLE_WEIGHTS: Dict[str, float] = {
    "Professor": 5,
    "PostDoc": 4,
    "Senior Researcher": 4,
    "Researcher": 3.5,
    "PhD Student": 3,
    "Research Assistant": 2.5,
    "Master Student": 2,
    "Bachelor Student": 1.5,
    "Other": 1,
}

DOMAIN_EXPERTISE_MULTIPLIERS: Dict[str, float] = {
    "Expert": 2.0,
    "Advanced": 1.5,
    "Intermediate": 1.0,
    "Basic": 0.8,
    "Novice": 0.6,
}

EVALUATION_EXPERIENCE_MULTIPLIERS: Dict[str, float] = {
    "Extensive": 1.3,
    "Moderate": 1.1,
    "Limited": 1.0,
    "None": 0.9,
}

ORKG_EXPERIENCE_BONUS = 0.05
MIN_EXPERTISE_WEIGHT = 1.0
MAX_EXPERTISE_WEIGHT = 5.0
EXPERT_WEIGHT_THRESHOLD = 4.0

ProfileLike = Union[UserInfo, Mapping[str, Any], None]


@dataclass
class WeightComponents:
    """Breakdown of an expertise weight."""

    role_weight: float
    domain_multiplier: float
    experience_multiplier: float
    orkg_bonus: float
    final_weight: float
    """Clamped to [1, 5]"""


def calculate_expertise_weight(
    role: Optional[str],
    domain_expertise: Optional[str],
    evaluation_experience: Optional[str],
    orkg_experience: Optional[str] = "never",
) -> WeightComponents:
    """
    Calculate an evaluator's expertise weight.

    Unknown roles count as 'Other'; unknown domain or experience values
    leave the weight unchanged (multiplier 1.0).

    Args:
        role: Academic role, e.g. "PhD Student"
        domain_expertise: Novice/Basic/Intermediate/Advanced/Expert
        evaluation_experience: None/Limited/Moderate/Extensive
        orkg_experience: "used" grants a 5% bonus

    Returns:
        WeightComponents with the final weight clamped to [1, 5]

    Example:
        ```python
        components = calculate_expertise_weight("PostDoc", "Advanced", "Moderate", "used")
        # 4 * 1.5 * 1.1 * 1.05 = 6.93 -> clamped to 5.0
        components.final_weight  # 5.0
        ```
    """
    role_weight = float(ROLE_WEIGHTS.get(role or "", ROLE_WEIGHTS["Other"]))
    domain_multiplier = DOMAIN_EXPERTISE_MULTIPLIERS.get(domain_expertise or "", 1.0)
    experience_multiplier = EVALUATION_EXPERIENCE_MULTIPLIERS.get(evaluation_experience or "", 1.0)
    orkg_bonus = ORKG_EXPERIENCE_BONUS if orkg_experience == "used" else 0.0

    combined = role_weight * domain_multiplier * experience_multiplier * (1 + orkg_bonus)
    final_weight = min(max(combined, MIN_EXPERTISE_WEIGHT), MAX_EXPERTISE_WEIGHT)

    return WeightComponents(
        role_weight=role_weight,
        domain_multiplier=domain_multiplier,
        experience_multiplier=experience_multiplier,
        orkg_bonus=orkg_bonus,
        final_weight=final_weight,
    )


def format_weight_components(components: WeightComponents) -> List[str]:
    """Human-readable lines describing a weight breakdown."""
    return [
        f"Role Weight: {components.role_weight:.2f}",
        f"Domain Multiplier: {components.domain_multiplier:.2f}",
        f"Experience Multiplier: {components.experience_multiplier:.2f}",
        f"ORKG Bonus: {components.orkg_bonus * 100:.0f}%",
        f"Final Weight: {components.final_weight:.2f}/5",
    ]


def get_confidence_level(weight: float) -> str:
    if weight >= 4:
        return "High"
    if weight >= 2.5:
        return "Medium"
    return "Low"


def is_expert_evaluator(weight: float) -> bool:
    return weight >= EXPERT_WEIGHT_THRESHOLD


def validate_expertise_data(data: ProfileLike) -> bool:
    """Check that a profile names a known role, domain level and experience level."""
    profile = _as_user_info(data)
    if profile is None:
        return False
    if not profile.role or not profile.domain_expertise or not profile.evaluation_experience:
        return False
    return (
        profile.role in ROLE_WEIGHTS
        and profile.domain_expertise in DOMAIN_EXPERTISE_MULTIPLIERS
        and profile.evaluation_experience in EVALUATION_EXPERIENCE_MULTIPLIERS
    )


def _as_user_info(profile: ProfileLike) -> Optional[UserInfo]:
    if profile is None:
        return None
    if isinstance(profile, UserInfo):
        return profile
    return UserInfo.model_validate(dict(profile))


def get_expertise_weight(profile: ProfileLike) -> float:
    """
    Resolve the expertise weight for an evaluator profile.

    Resolution order: the precomputed ``expertise_weight``, then
    ``weight_components['finalWeight']``, then a fresh calculation from the
    profile's role/domain/experience. Without a profile the weight is 1.0.
    """
    user = _as_user_info(profile)
    if user is None:
        return 1.0

    if user.expertise_weight is not None:
        return float(user.expertise_weight)

    components = user.weight_components or {}
    final_weight = components.get("finalWeight", components.get("final_weight"))
    if is_valid_number(final_weight):
        return float(final_weight)

    return calculate_expertise_weight(
        user.role,
        user.domain_expertise,
        user.evaluation_experience,
        user.orkg_experience,
    ).final_weight


def expertise_to_multiplier(weight: Optional[float]) -> float:
    """
    Map a 1-5 expertise weight onto a rating multiplier.

    Weight 1 maps to 0.8 and weight 5 to 1.6; a missing or zero weight is 1.0.
    """
    if not weight:
        return 1.0
    return 0.8 + (weight - 1) * 0.2


def get_expertise_multiplier(profile: ProfileLike) -> float:
    """Multiplier for a profile; an explicit ``expertise_multiplier`` wins."""
    user = _as_user_info(profile)
    if user is None:
        return 1.0
    if user.expertise_multiplier is not None:
        return float(user.expertise_multiplier)
    return expertise_to_multiplier(get_expertise_weight(user))
