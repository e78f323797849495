"""
Tests for expertise module (evaluator weighting).
"""

import pytest
from papereval.evaluation.expertise import (
    calculate_expertise_weight,
    expertise_to_multiplier,
    format_weight_components,
    get_confidence_level,
    get_expertise_multiplier,
    get_expertise_weight,
    is_expert_evaluator,
    validate_expertise_data,
)
from papereval.schemas import UserInfo


def test_calculate_expertise_weight_plain_product():
    """Test the product of role weight and multipliers."""
    components = calculate_expertise_weight("PhD Student", "Intermediate", "Limited", "never")

    assert components.role_weight == 3.0
    assert components.domain_multiplier == 1.0
    assert components.experience_multiplier == 1.0
    assert components.orkg_bonus == 0.0
    assert components.final_weight == pytest.approx(3.0)


def test_calculate_expertise_weight_clamps_high():
    """Test that a large product is clamped to 5."""
    components = calculate_expertise_weight("PostDoc", "Advanced", "Moderate", "used")

    assert components.orkg_bonus == pytest.approx(0.05)
    assert components.final_weight == 5.0


def test_calculate_expertise_weight_clamps_low():
    """Test that a small product is raised to 1."""
    components = calculate_expertise_weight("Other", "Novice", "None")
    assert components.final_weight == 1.0


def test_calculate_expertise_weight_unknown_values():
    """Test that unknown values fall back to 'Other' and neutral multipliers."""
    components = calculate_expertise_weight("Wizard", "Guru", "Lots")

    assert components.role_weight == 1.0
    assert components.domain_multiplier == 1.0
    assert components.experience_multiplier == 1.0
    assert components.final_weight == 1.0


def test_get_expertise_weight_resolution_order():
    """Test precomputed weight, then components, then recomputation."""
    assert get_expertise_weight({"expertiseWeight": 3.2, "role": "Professor"}) == pytest.approx(3.2)
    assert get_expertise_weight({"weightComponents": {"finalWeight": 2.5}}) == pytest.approx(2.5)
    assert get_expertise_weight(
        {"role": "Professor", "domainExpertise": "Intermediate", "evaluationExperience": "Limited"}
    ) == pytest.approx(5.0)
    assert get_expertise_weight(None) == 1.0


def test_get_expertise_weight_accepts_model():
    """Test that a UserInfo instance is accepted directly."""
    user = UserInfo(role="Master Student", domain_expertise="Intermediate", evaluation_experience="Limited")
    assert get_expertise_weight(user) == pytest.approx(2.0)


def test_expertise_to_multiplier_mapping():
    """Test the linear 1-5 to 0.8-1.6 mapping."""
    assert expertise_to_multiplier(1) == pytest.approx(0.8)
    assert expertise_to_multiplier(3) == pytest.approx(1.2)
    assert expertise_to_multiplier(5) == pytest.approx(1.6)
    assert expertise_to_multiplier(None) == 1.0
    assert expertise_to_multiplier(0) == 1.0


def test_get_expertise_multiplier():
    """Test that an explicit multiplier wins over the derived one."""
    assert get_expertise_multiplier({"expertiseMultiplier": 1.3, "expertiseWeight": 5}) == pytest.approx(1.3)
    assert get_expertise_multiplier({"expertiseWeight": 3}) == pytest.approx(1.2)
    assert get_expertise_multiplier(None) == 1.0


def test_expert_threshold_and_confidence_level():
    """Test expert classification and confidence labels."""
    assert is_expert_evaluator(4.0) is True
    assert is_expert_evaluator(3.99) is False
    assert get_confidence_level(4.5) == "High"
    assert get_confidence_level(3) == "Medium"
    assert get_confidence_level(1.5) == "Low"


def test_validate_expertise_data():
    """Test profile validation against the known levels."""
    assert validate_expertise_data(
        {"role": "PhD Student", "domainExpertise": "Expert", "evaluationExperience": "Moderate"}
    )
    assert not validate_expertise_data({"role": "PhD Student", "domainExpertise": "Expert"})
    assert not validate_expertise_data(
        {"role": "Wizard", "domainExpertise": "Expert", "evaluationExperience": "Moderate"}
    )
    assert not validate_expertise_data(None)


def test_format_weight_components():
    """Test the human-readable breakdown."""
    lines = format_weight_components(calculate_expertise_weight("PhD Student", "Intermediate", "Limited", "used"))

    assert lines[0] == "Role Weight: 3.00"
    assert lines[3] == "ORKG Bonus: 5%"
    assert lines[-1] == "Final Weight: 3.15/5"
