"""
Pydantic schemas for raw evaluation input.

Evaluation records arrive as loosely structured JSON produced by the
evaluation forms. These models validate the identity and profile fields
the aggregator relies on and keep the nested ``evaluationMetrics`` tree
as-is for the typed component adapters in ``papereval.evaluation.extraction``.
"""

import math
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedRecordError

UNKNOWN_ID = "unknown"


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class UserInfo(BaseModel):
    """Evaluator profile captured alongside an evaluation."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    email: Optional[str] = Field(None, description="Evaluator e-mail, used as the evaluator identity")
    role: Optional[str] = Field(None, description="Academic role, e.g. 'PhD Student'")
    domain_expertise: Optional[str] = Field(None, alias="domainExpertise", description="Novice/Basic/Intermediate/Advanced/Expert")
    evaluation_experience: Optional[str] = Field(None, alias="evaluationExperience", description="None/Limited/Moderate/Extensive")
    orkg_experience: Optional[str] = Field(None, alias="orkgExperience", description="'used' when the evaluator has used the knowledge graph")

    # Precomputed by the profile form; preferred over recomputation
    expertise_weight: Optional[float] = Field(None, alias="expertiseWeight", description="Final expertise weight on the 1-5 scale")
    expertise_multiplier: Optional[float] = Field(None, alias="expertiseMultiplier", description="Influence multiplier derived from the weight")
    weight_components: Optional[Dict[str, Any]] = Field(None, alias="weightComponents", description="Breakdown of the expertise weight")

    @field_validator("expertise_weight", "expertise_multiplier", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Optional[float]:
        return _optional_float(value)

    @field_validator("orkg_experience", mode="before")
    @classmethod
    def _coerce_orkg_flag(cls, value: Any) -> Optional[str]:
        if isinstance(value, bool):
            return "used" if value else "never"
        return _optional_str(value)

    @field_validator("email", "role", "domain_expertise", "evaluation_experience", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _optional_str(value)

    @field_validator("weight_components", mode="before")
    @classmethod
    def _coerce_components(cls, value: Any) -> Optional[Dict[str, Any]]:
        return dict(value) if isinstance(value, Mapping) else None


class EvaluationRecord(BaseModel):
    """One evaluator's assessment of one paper."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    token: Optional[str] = Field(None, description="Paper token assigned by the evaluation workflow")
    paper_id: Optional[str] = Field(None, alias="paperId", description="Raw paper identifier")
    paper_doi: Optional[str] = Field(None, alias="paperDoi", description="DOI of the evaluated paper, if known")
    evaluator_id: Optional[str] = Field(None, alias="evaluatorId", description="Evaluator identifier when no e-mail is present")
    timestamp: Optional[str] = Field(None, description="ISO-8601 submission time")
    user_info: Optional[UserInfo] = Field(None, alias="userInfo")
    evaluation_metrics: Dict[str, Any] = Field(
        default_factory=dict,
        alias="evaluationMetrics",
        description="Nested {overall, accuracy, quality, ...} metric tree",
    )

    @field_validator("token", "paper_id", "paper_doi", "evaluator_id", "timestamp", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Optional[str]:
        return _optional_str(value)

    @field_validator("user_info", mode="before")
    @classmethod
    def _coerce_user_info(cls, value: Any) -> Any:
        return value if isinstance(value, (Mapping, UserInfo)) else None

    @field_validator("evaluation_metrics", mode="before")
    @classmethod
    def _coerce_metrics(cls, value: Any) -> Dict[str, Any]:
        return dict(value) if isinstance(value, Mapping) else {}

    @property
    def paper_key(self) -> str:
        """Grouping key for the paper: token, then paper id."""
        return self.token or self.paper_id or UNKNOWN_ID

    @property
    def evaluator_key(self) -> str:
        """Grouping key for the evaluator: e-mail, then evaluator id."""
        if self.user_info is not None and self.user_info.email:
            return self.user_info.email
        return self.evaluator_id or UNKNOWN_ID

    @classmethod
    def from_raw(cls, raw: Any) -> "EvaluationRecord":
        """
        Validate a raw JSON object into a record.

        Raises:
            MalformedRecordError: If ``raw`` is not a mapping or fails validation
        """
        if isinstance(raw, EvaluationRecord):
            return raw
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(f"Evaluation record must be an object, got {type(raw).__name__}")
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as exc:
            raise MalformedRecordError(str(exc)) from exc

    def to_raw(self) -> Dict[str, Any]:
        """Serialize back to the camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["UNKNOWN_ID", "UserInfo", "EvaluationRecord"]
