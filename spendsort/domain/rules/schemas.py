"""Pydantic schemas for rule operations."""
from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spendsort.domain.rules.matcher import NUMERIC_FIELDS, RULE_FIELDS, RULE_OPERATORS, is_supported
from spendsort.domain.transactions.schemas import TransactionOut


def check_condition(field: Optional[str], operator: Optional[str], value: Optional[str]) -> None:
    if field is not None and field not in RULE_FIELDS:
        raise ValueError(f"Unsupported field '{field}'. Expected one of: {', '.join(sorted(RULE_FIELDS))}")
    if operator is not None and operator not in RULE_OPERATORS:
        raise ValueError(
            f"Unsupported operator '{operator}'. Expected one of: {', '.join(sorted(RULE_OPERATORS))}"
        )
    if field is None or operator is None:
        return
    if not is_supported(field, operator):
        raise ValueError(f"Operator '{operator}' cannot be used with field '{field}'")
    if value is None:
        return
    if field in NUMERIC_FIELDS:
        try:
            float(value)
        except ValueError:
            raise ValueError(f"Value '{value}' is not a number") from None
    elif operator == "regex":
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression: {exc}") from None


class RuleCondition(BaseModel):
    """Field/operator/value triple shared by rules and previews."""

    field: str
    operator: str
    value: str = Field(min_length=1, max_length=500)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @model_validator(mode="after")
    def validate_condition(self) -> "RuleCondition":
        check_condition(self.field, self.operator, self.value)
        return self


class RuleCreate(RuleCondition):
    """Schema for creating a rule."""

    name: str = Field(min_length=1, max_length=200)
    category_id: int
    priority: int = 0
    is_active: bool = True


class RuleUpdate(BaseModel):
    """Schema for partially updating a rule."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    field: Optional[str] = None
    operator: Optional[str] = None
    value: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category_id: Optional[int] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @model_validator(mode="after")
    def validate_partial_condition(self) -> "RuleUpdate":
        # Cross-field checks against the stored rule happen in the service layer.
        check_condition(self.field, self.operator, None)
        return self


class RuleOut(BaseModel):
    """Schema for returning rule data."""

    id: int
    name: str
    field: str
    operator: str
    value: str
    category_id: int
    category_name: Optional[str] = None
    priority: int
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class RulePreviewRequest(RuleCondition):
    """Draft rule to evaluate against stored transactions."""

    limit: int = Field(default=20, ge=0, le=200)


class RulePreviewResponse(BaseModel):
    matched: int
    examined: int
    items: List[TransactionOut]
