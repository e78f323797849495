"""
Scoring configuration for paper evaluation aggregation.

Constants that govern how automated scores and human ratings are balanced.
Every field can be overridden from the environment with a ``PAPEREVAL_``
prefixed variable, e.g. ``PAPEREVAL_AGREEMENT_BONUS_FACTOR=0.2``.
"""

import os
import threading
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "PAPEREVAL_"

_DEFAULT_CONFIG: Optional["ScoringConfig"] = None
_DEFAULT_CONFIG_LOCK = threading.Lock()


class ScoringConfig(BaseModel):
    """Weights and thresholds used by the score combiner and aggregator."""

    min_automated_weight: float = Field(default=0.1, ge=0, le=1, description="Floor for the raw automated weight")
    automated_weight_base: float = Field(default=0.4, ge=0, description="Base weight of the automated score")
    user_weight_base: float = Field(default=0.6, ge=0, description="Base weight of the human rating")
    agreement_bonus_factor: float = Field(default=0.1, ge=0, description="Uplift per unit of agreement")

    agreement_threshold: float = Field(default=0.1, ge=0, le=1, description="Max score gap for two raters to agree")
    computation_fallback_score: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Neutral final score used when a combination cannot be computed",
    )

    difficulty_hard_below: float = Field(default=0.4, ge=0, le=1, description="Mean overall score below which a paper is hard")
    difficulty_easy_above: float = Field(default=0.7, ge=0, le=1, description="Mean overall score above which a paper is easy")

    memo_size: int = Field(default=16, ge=0, description="Number of aggregation results kept in the memo (0 disables it)")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ScoringConfig":
        """
        Build a config from ``PAPEREVAL_*`` environment variables.

        Explicit keyword overrides win over the environment.

        Example:
            ```python
            os.environ["PAPEREVAL_USER_WEIGHT_BASE"] = "0.7"
            config = ScoringConfig.from_env()
            assert config.user_weight_base == 0.7
            ```
        """
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip() != "":
                values[name] = raw.strip()
        values.update(overrides)
        return cls.model_validate(values)


def get_default_config() -> ScoringConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _DEFAULT_CONFIG

    if _DEFAULT_CONFIG is not None:
        return _DEFAULT_CONFIG

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG is None:
            _DEFAULT_CONFIG = ScoringConfig.from_env()
        return _DEFAULT_CONFIG


__all__ = ["ENV_PREFIX", "ScoringConfig", "get_default_config"]
