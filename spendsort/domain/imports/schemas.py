"""Pydantic schemas for transaction import workflows."""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .sessions import ImportState


class ImportUploadResponse(BaseModel):
    """Returned once a file is parsed and waiting for a column mapping."""

    batch_id: str
    state: ImportState
    filename: str
    columns: List[str]
    total_rows: int
    suggested_mapping: Dict[str, str]
    preview: List[Dict[str, str]]


class ImportMappingRequest(BaseModel):
    """Column mapping from source header name to target field."""

    mapping: Dict[str, str]

    model_config = ConfigDict(extra="forbid")


class ImportMappingResponse(BaseModel):
    batch_id: str
    state: ImportState
    mapping: Dict[str, str]
    unmapped_columns: List[str]


class ImportValidRow(BaseModel):
    """A normalized row that will be imported on commit."""

    row_number: int
    transaction_date: date
    description: str
    amount: float
    transaction_type: str
    merchant: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    suggested_category_id: Optional[int] = None
    matched_rule_id: Optional[int] = None
    duplicate: bool = False
    warnings: List[str] = Field(default_factory=list)


class ImportInvalidRow(BaseModel):
    row_number: int
    errors: List[str]
    values: Dict[str, str]


class ImportValidationResponse(BaseModel):
    """Validation outcome exposed before anything is written."""

    batch_id: str
    state: ImportState
    total_rows: int
    valid_count: int
    error_count: int
    duplicate_count: int
    valid_rows: List[ImportValidRow]
    invalid_rows: List[ImportInvalidRow]


class ImportCommitRequest(BaseModel):
    apply_rules: bool = True
    skip_duplicates: bool = False

    model_config = ConfigDict(extra="forbid")


class ImportCommitResponse(BaseModel):
    """Response body returned when transactions are persisted."""

    batch_id: str
    state: ImportState
    imported: int
    categorized: int
    skipped_duplicates: int
    failed: int
    transaction_ids: List[int]


class ImportStatusResponse(BaseModel):
    batch_id: str
    state: ImportState
    filename: str
    columns: List[str]
    total_rows: int
    mapping: Dict[str, str]
    valid_count: Optional[int] = None
    error_count: Optional[int] = None
