"""Pydantic models for the AI review response, plus JSON repair.

A response either validates completely into ReviewResponse or is rejected
with ParseError; nothing is partially trusted.
"""

from __future__ import annotations

import json
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class ReviewIssue(BaseModel):
    """One issue as reported by the model (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    type: Literal["complexity", "duplication", "error-handling", "security", "performance"]
    severity: Literal["high", "medium", "low"]
    file_path: str = Field(alias="filePath", min_length=1)
    line_number: int = Field(alias="lineNumber", ge=1)
    description: str = Field(min_length=1)
    suggestion: str = ""


class ReviewMetrics(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Reported by the model but never used for scoring.
    quality_score: float | None = Field(default=None, alias="qualityScore")
    complexity: float = Field(default=0, ge=0)
    duplication: float = Field(default=0, ge=0)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    issues: list[ReviewIssue]
    metrics: ReviewMetrics = Field(default_factory=ReviewMetrics)
    summary: str = ""


def repair_json(raw: str) -> str:
    """Best-effort cleanup of model output before json.loads."""
    text = raw.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    else:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def parse_review(raw: str) -> ReviewResponse:
    """Parse and validate a review response.

    Raises:
        ParseError: the text is not JSON or does not match the schema.
    """
    try:
        data = json.loads(repair_json(raw))
    except json.JSONDecodeError as e:
        raise ParseError(f"AI response is not valid JSON: {e}") from e
    try:
        return ReviewResponse.model_validate(data)
    except ValidationError as e:
        raise ParseError(
            f"AI response does not match the review schema ({e.error_count()} errors)"
        ) from e
