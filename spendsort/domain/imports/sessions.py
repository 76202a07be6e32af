"""In-memory store for import batches that are between steps."""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger("spendsort.imports")


class ImportState(str, Enum):
    """Lifecycle of an import batch. Every transition is requested explicitly."""

    UPLOADED = "uploaded"
    MAPPED = "mapped"
    VALIDATED = "validated"
    COMMITTED = "committed"


@dataclass
class ValidRow:
    """A row that passed validation, with its parsed values."""

    row_number: int
    transaction_date: date
    description: str
    amount: float
    transaction_type: str
    merchant: Optional[str] = None
    notes: Optional[str] = None
    category_name: Optional[str] = None
    category_id: Optional[int] = None
    suggested_category_id: Optional[int] = None
    matched_rule_id: Optional[int] = None
    source_hash: str = ""
    duplicate: bool = False
    warnings: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


@dataclass
class InvalidRow:
    row_number: int
    errors: List[str]
    values: Dict[str, str]


@dataclass
class ImportBatch:
    """One uploaded file and its mapping/validation/commit progress."""

    id: str
    filename: str
    columns: List[str]
    rows: List[Dict[str, str]]
    suggested_mapping: Dict[str, str]
    state: ImportState = ImportState.UPLOADED
    mapping: Dict[str, str] = field(default_factory=dict)
    valid_rows: List[ValidRow] = field(default_factory=list)
    invalid_rows: List[InvalidRow] = field(default_factory=list)
    # Step in flight ("validating" or "committing"); other steps are refused meanwhile.
    busy: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.updated_at = time.time()


class ImportSessionStore:
    """Keep import batches in process memory, expiring idle ones."""

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl_seconds = ttl_seconds
        self._batches: Dict[str, ImportBatch] = {}
        self._lock = asyncio.Lock()

    def _purge_expired(self, now: float) -> None:
        expired = [
            batch_id
            for batch_id, batch in self._batches.items()
            if now - batch.updated_at > self._ttl_seconds
        ]
        for batch_id in expired:
            del self._batches[batch_id]
        if expired:
            logger.info("Expired %s idle import batch(es)", len(expired))

    async def create(
        self,
        *,
        filename: str,
        columns: List[str],
        rows: List[Dict[str, str]],
        suggested_mapping: Dict[str, str],
    ) -> ImportBatch:
        async with self._lock:
            self._purge_expired(time.time())
            batch = ImportBatch(
                id=secrets.token_hex(12),
                filename=filename,
                columns=columns,
                rows=rows,
                suggested_mapping=suggested_mapping,
            )
            self._batches[batch.id] = batch
            return batch

    async def get(self, batch_id: str) -> Optional[ImportBatch]:
        async with self._lock:
            self._purge_expired(time.time())
            batch = self._batches.get(batch_id)
            if batch is not None:
                batch.touch()
            return batch

    async def discard(self, batch_id: str) -> bool:
        async with self._lock:
            return self._batches.pop(batch_id, None) is not None

    def clear(self) -> None:
        self._batches.clear()

    def __len__(self) -> int:
        return len(self._batches)
