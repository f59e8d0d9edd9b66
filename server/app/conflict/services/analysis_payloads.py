"""Boundary validation for results produced by the AI collaborators.

Payloads arrive as dicts or JSON strings. Only structure and numeric ranges are
checked here; the content itself is never judged.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from ..models.conflict_case import AIComparisonResult, CamelModel, RecommendedAction
from .errors import CaseValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class PolicyMatchPayload(CamelModel):
    policy_section_id: UUID
    section_title: str
    section_number: str
    relevance_explanation: str
    match_confidence: float = Field(..., ge=0.0, le=1.0)


class RecommendationPayload(CamelModel):
    action: RecommendedAction
    reasoning: str
    risk_assessment: str
    suggested_next_steps: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


def _format_problems(exc: ValidationError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return problems


def _decode(raw_value: Any, label: str) -> Any:
    if isinstance(raw_value, (bytes, bytearray)):
        try:
            raw_value = bytes(raw_value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CaseValidationError(f"Invalid {label}: not valid UTF-8", [str(exc)]) from exc
    if isinstance(raw_value, str):
        try:
            return json.loads(raw_value)
        except json.JSONDecodeError as exc:
            raise CaseValidationError(f"Invalid {label}: not valid JSON", [str(exc)]) from exc
    return raw_value


def parse_model(model_cls: type[ModelT], raw_value: Any, *, label: str) -> ModelT:
    """Validate a dict or JSON string against ``model_cls``."""
    data = _decode(raw_value, label)
    if isinstance(data, model_cls):
        return data
    if not isinstance(data, dict):
        raise CaseValidationError(f"Invalid {label}: expected a JSON object")
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise CaseValidationError(f"Invalid {label}", _format_problems(exc)) from exc


def build_model(model_cls: type[ModelT], *, label: str, **fields: Any) -> ModelT:
    """Construct ``model_cls`` from keyword fields, reporting problems as CaseValidationError."""
    try:
        return model_cls(**fields)
    except ValidationError as exc:
        raise CaseValidationError(f"Invalid {label}", _format_problems(exc)) from exc


def ensure_aware(value: datetime, label: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise CaseValidationError(f"{label} must be timezone-aware")


def parse_comparison_result(raw_value: Any) -> AIComparisonResult:
    return parse_model(AIComparisonResult, raw_value, label="comparison result")


def parse_policy_match(raw_value: Any) -> PolicyMatchPayload:
    return parse_model(PolicyMatchPayload, raw_value, label="policy match")


def parse_recommendation(raw_value: Any) -> RecommendationPayload:
    return parse_model(RecommendationPayload, raw_value, label="recommendation")


def parse_recommendations(raw_value: Any) -> list[RecommendationPayload]:
    """Validate a list of recommendations, reporting every bad item at once."""
    data = _decode(raw_value, "recommendations")
    if isinstance(data, dict) and isinstance(data.get("recommendations"), list):
        data = data["recommendations"]
    if not isinstance(data, list):
        raise CaseValidationError("Invalid recommendations: expected a JSON array")

    parsed: list[RecommendationPayload] = []
    problems: list[str] = []
    for idx, item in enumerate(data):
        try:
            parsed.append(parse_recommendation(item))
        except CaseValidationError as exc:
            problems.extend(f"[{idx}] {problem}" for problem in (exc.problems or [str(exc)]))
    if problems:
        raise CaseValidationError("Invalid recommendations", problems)
    return parsed
