"""Utilities for handling transaction imports."""

from .schemas import (
    ImportCommitResponse,
    ImportMappingResponse,
    ImportUploadResponse,
    ImportValidationResponse,
)
from .sessions import ImportBatch, ImportSessionStore, ImportState

__all__ = [
    "ImportBatch",
    "ImportCommitResponse",
    "ImportMappingResponse",
    "ImportSessionStore",
    "ImportState",
    "ImportUploadResponse",
    "ImportValidationResponse",
]
