"""Pydantic schemas for category operations."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryBase(BaseModel):
    """Shared attributes for category payloads."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    type: Literal["income", "expense"] | None = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class CategoryCreate(CategoryBase):
    """Schema for creating a category."""

    name: str = Field(min_length=1, max_length=100)
    type: Literal["income", "expense"] = "expense"


class CategoryUpdate(CategoryBase):
    """Schema for updating a category."""

    pass


class CategoryOut(BaseModel):
    """Schema for returning category data."""

    id: int
    name: str
    type: Literal["income", "expense"]
    color: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class CategoryReassignRequest(BaseModel):
    """Schema for reassigning transactions and rules to another category."""

    new_category_id: int

    model_config = ConfigDict(extra="forbid")


class CategoryReassignResult(BaseModel):
    moved_transactions: int
    moved_rules: int
