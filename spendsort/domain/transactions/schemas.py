"""Pydantic schemas for transaction operations."""
from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionUpdate(BaseModel):
    """Schema for partially updating a transaction.

    Sending ``category_id: null`` clears the category.
    """

    transaction_date: Optional[date] = None
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = None
    transaction_type: Optional[Literal["income", "expense"]] = None
    merchant: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class TransactionOut(BaseModel):
    """Schema for returning transaction data."""

    id: int
    transaction_date: date
    description: str
    amount: float
    transaction_type: Literal["income", "expense"]
    merchant: Optional[str]
    notes: Optional[str]
    category_id: Optional[int]
    category_name: Optional[str] = None
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TransactionPage(BaseModel):
    total: int
    limit: int
    offset: int
    items: list[TransactionOut]


class CategorizeRequest(BaseModel):
    """Options for re-running the rules over stored transactions."""

    overwrite: bool = False

    model_config = ConfigDict(extra="forbid")


class CategorizeResult(BaseModel):
    examined: int
    categorized: int
