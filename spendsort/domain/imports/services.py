"""Service helpers that power the multi-step transaction import workflow.

A batch moves Uploaded -> Mapped -> Validated -> Committed, one explicit
request per step. Row problems never raise: they are collected per row and
reported as validation failures, and only valid rows are written on commit.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.config import settings
from spendsort.domain.categories.models import Category
from spendsort.domain.imports.parsing import (
    REQUIRED_FIELDS,
    TARGET_FIELDS,
    FileFormatError,
    normalize_key,
    parse_amount,
    parse_csv,
    parse_date,
    parse_type,
    suggest_mapping,
)
from spendsort.domain.imports.schemas import (
    ImportCommitResponse,
    ImportInvalidRow,
    ImportMappingResponse,
    ImportStatusResponse,
    ImportUploadResponse,
    ImportValidationResponse,
    ImportValidRow,
)
from spendsort.domain.imports.sessions import (
    ImportBatch,
    ImportSessionStore,
    ImportState,
    InvalidRow,
    ValidRow,
)
from spendsort.domain.rules.matcher import find_matching_rule
from spendsort.domain.rules.models import Rule
from spendsort.domain.rules.services import load_active_rules
from spendsort.domain.transactions.models import Transaction
from spendsort.domain.transactions.services import compute_source_hash, derive_type

logger = logging.getLogger("spendsort.imports")

ALLOWED_EXTENSIONS = {".csv"}
MAX_FILE_BYTES = settings.IMPORT_MAX_FILE_MB * 1024 * 1024
HASH_LOOKUP_CHUNK = 500

import_sessions = ImportSessionStore(settings.IMPORT_SESSION_TTL_SECONDS)


class ImportPipelineError(HTTPException):
    """Specialized HTTP exception for import errors."""

    def __init__(self, detail: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        super().__init__(status_code=status_code, detail=detail)


async def get_batch(batch_id: str) -> ImportBatch:
    batch = await import_sessions.get(batch_id)
    if batch is None:
        raise ImportPipelineError("Import batch not found or expired.", status.HTTP_404_NOT_FOUND)
    return batch


def _require_state(batch: ImportBatch, allowed: Iterable[ImportState], action: str) -> None:
    allowed_states = tuple(allowed)
    if batch.busy or batch.state not in allowed_states:
        current = batch.busy or batch.state.value
        raise ImportPipelineError(
            f"Cannot {action} an import batch in state '{current}'.",
            status.HTTP_409_CONFLICT,
        )


async def upload_file(*, filename: str, file_bytes: bytes) -> ImportUploadResponse:
    """Parse an uploaded file and open a new batch in the Uploaded state."""
    if len(file_bytes) > MAX_FILE_BYTES:
        raise ImportPipelineError(
            f"File exceeds maximum allowed size of {settings.IMPORT_MAX_FILE_MB} MB.",
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )

    extension_match = re.search(r"(\.[A-Za-z0-9]+)$", filename)
    extension = extension_match.group(1).lower() if extension_match else ""
    if extension not in ALLOWED_EXTENSIONS:
        raise ImportPipelineError("Unsupported file type. Upload a CSV file.")

    try:
        table = parse_csv(file_bytes)
    except FileFormatError as exc:
        raise ImportPipelineError(str(exc)) from None

    batch = await import_sessions.create(
        filename=filename,
        columns=table.columns,
        rows=table.rows,
        suggested_mapping=suggest_mapping(table.columns),
    )
    logger.info(
        "Opened import batch %s for %s (%s rows, delimiter=%r, encoding=%s)",
        batch.id,
        filename,
        len(table.rows),
        table.delimiter,
        table.encoding,
    )

    return ImportUploadResponse(
        batch_id=batch.id,
        state=batch.state,
        filename=batch.filename,
        columns=batch.columns,
        total_rows=len(batch.rows),
        suggested_mapping=batch.suggested_mapping,
        preview=batch.rows[: settings.IMPORT_PREVIEW_ROWS],
    )


def _check_mapping(columns: List[str], mapping: Dict[str, str]) -> Dict[str, str]:
    problems: List[str] = []
    cleaned: Dict[str, str] = {}
    targets_seen: Dict[str, str] = {}

    for source, target in mapping.items():
        if not target:
            continue
        if source not in columns:
            problems.append(f"Unknown source column '{source}'.")
            continue
        if target not in TARGET_FIELDS:
            problems.append(f"Unknown target field '{target}' for column '{source}'.")
            continue
        if target in targets_seen:
            problems.append(
                f"Target field '{target}' is mapped from both '{targets_seen[target]}' and '{source}'."
            )
            continue
        targets_seen[target] = source
        cleaned[source] = target

    missing = [target for target in REQUIRED_FIELDS if target not in targets_seen]
    if missing:
        problems.append(f"Missing required field(s): {', '.join(missing)}.")

    if problems:
        raise ImportPipelineError(" ".join(problems), status.HTTP_422_UNPROCESSABLE_ENTITY)
    return cleaned


async def apply_mapping(batch_id: str, mapping: Dict[str, str]) -> ImportMappingResponse:
    """Store the column mapping and move the batch to Mapped."""
    batch = await get_batch(batch_id)
    _require_state(batch, (ImportState.UPLOADED, ImportState.MAPPED, ImportState.VALIDATED), "map")

    batch.mapping = _check_mapping(batch.columns, mapping)
    batch.valid_rows = []
    batch.invalid_rows = []
    batch.state = ImportState.MAPPED
    batch.touch()
    logger.info("Import batch %s mapped: %s", batch.id, batch.mapping)

    return ImportMappingResponse(
        batch_id=batch.id,
        state=batch.state,
        mapping=batch.mapping,
        unmapped_columns=[column for column in batch.columns if column not in batch.mapping],
    )


def _categories_by_key(categories: Iterable[Category]) -> Dict[str, Category]:
    return {normalize_key(category.name): category for category in categories}


def _validate_row(
    row_number: int,
    raw: Dict[str, str],
    by_target: Dict[str, str],
    categories_by_key: Dict[str, Category],
) -> ValidRow | InvalidRow:
    values = {target: (raw.get(source) or "").strip() for target, source in by_target.items()}
    errors: List[str] = []

    description = values.get("description", "")
    if not description:
        errors.append("Missing description")

    date_value = values.get("date", "")
    parsed_date = parse_date(date_value)
    if not date_value:
        errors.append("Missing date")
    elif parsed_date is None:
        errors.append(f"Unrecognized date format '{date_value}'.")

    amount, _currency, amount_warnings = parse_amount(values.get("amount"))
    if amount is None:
        errors.extend(amount_warnings or ["Missing amount"])

    if errors or parsed_date is None or amount is None:
        return InvalidRow(row_number=row_number, errors=errors, values=dict(raw))

    raw_type = values.get("type")
    explicit_type = parse_type(raw_type)
    row = ValidRow(
        row_number=row_number,
        transaction_date=parsed_date,
        description=description,
        amount=amount,
        transaction_type=derive_type(amount, explicit_type),
        merchant=values.get("merchant") or None,
        notes=values.get("notes") or None,
        category_name=values.get("category") or None,
    )
    if raw_type and explicit_type is None:
        row.add_warning(f"Unrecognized type '{raw_type}'; derived from the amount sign.")

    if row.category_name:
        category = categories_by_key.get(normalize_key(row.category_name))
        if category is not None:
            row.category_id = category.id
            row.category_name = category.name
        else:
            row.add_warning(f"Category '{row.category_name}' does not exist; left for rules.")
            row.category_name = None

    row.source_hash = compute_source_hash(row.transaction_date, row.amount, row.description)
    return row


async def _existing_hashes(db: AsyncSession, hashes: List[str]) -> set[str]:
    existing: set[str] = set()
    unique_hashes = sorted(set(hashes))
    for start in range(0, len(unique_hashes), HASH_LOOKUP_CHUNK):
        chunk = unique_hashes[start : start + HASH_LOOKUP_CHUNK]
        result = await db.execute(
            select(Transaction.source_hash).where(Transaction.source_hash.in_(chunk))
        )
        existing.update(value for value in result.scalars() if value)
    return existing


async def _mark_duplicates(db: AsyncSession, rows: List[ValidRow]) -> None:
    for row in rows:
        row.duplicate = False
        row.warnings = [w for w in row.warnings if not w.startswith("Duplicate transaction")]

    seen: set[str] = set()
    for row in rows:
        if row.source_hash in seen:
            row.duplicate = True
            row.add_warning("Duplicate transaction detected in file")
        else:
            seen.add(row.source_hash)

    existing = await _existing_hashes(db, [row.source_hash for row in rows])
    for row in rows:
        if row.source_hash in existing:
            row.duplicate = True
            row.add_warning("Duplicate transaction already stored")


def _suggest_categories(rows: List[ValidRow], rules: List[Rule]) -> None:
    for row in rows:
        rule = find_matching_rule(row, rules)
        row.suggested_category_id = rule.category_id if rule is not None else None
        row.matched_rule_id = rule.id if rule is not None else None


async def validate_batch(db: AsyncSession, batch_id: str) -> ImportValidationResponse:
    """Partition the batch rows into valid and invalid and move it to Validated."""
    batch = await get_batch(batch_id)
    _require_state(batch, (ImportState.MAPPED, ImportState.VALIDATED), "validate")
    batch.busy = "validating"

    try:
        categories_result = await db.execute(select(Category))
        categories = list(categories_result.scalars().all())
        categories_by_key = _categories_by_key(categories)
        rules = await load_active_rules(db)

        by_target = {target: source for source, target in batch.mapping.items()}
        valid_rows: List[ValidRow] = []
        invalid_rows: List[InvalidRow] = []
        # Row numbers count data rows from 1; the header is not a row.
        for row_number, raw in enumerate(batch.rows, start=1):
            outcome = _validate_row(row_number, raw, by_target, categories_by_key)
            if isinstance(outcome, ValidRow):
                valid_rows.append(outcome)
            else:
                invalid_rows.append(outcome)

        _suggest_categories(valid_rows, rules)
        await _mark_duplicates(db, valid_rows)
    finally:
        batch.busy = None

    batch.valid_rows = valid_rows
    batch.invalid_rows = invalid_rows
    batch.state = ImportState.VALIDATED
    batch.touch()

    duplicate_count = sum(1 for row in valid_rows if row.duplicate)
    logger.info(
        "Validated import batch %s: %s valid, %s invalid, %s duplicate",
        batch.id,
        len(valid_rows),
        len(invalid_rows),
        duplicate_count,
    )

    return ImportValidationResponse(
        batch_id=batch.id,
        state=batch.state,
        total_rows=len(batch.rows),
        valid_count=len(valid_rows),
        error_count=len(invalid_rows),
        duplicate_count=duplicate_count,
        valid_rows=[
            ImportValidRow(
                row_number=row.row_number,
                transaction_date=row.transaction_date,
                description=row.description,
                amount=row.amount,
                transaction_type=row.transaction_type,
                merchant=row.merchant,
                notes=row.notes,
                category_id=row.category_id,
                category_name=row.category_name,
                suggested_category_id=row.suggested_category_id,
                matched_rule_id=row.matched_rule_id,
                duplicate=row.duplicate,
                warnings=row.warnings,
            )
            for row in valid_rows
        ],
        invalid_rows=[
            ImportInvalidRow(row_number=row.row_number, errors=row.errors, values=row.values)
            for row in invalid_rows
        ],
    )


def _choose_category(
    row: ValidRow,
    rules: List[Rule],
    categories_by_id: Dict[int, Category],
    apply_rules: bool,
) -> Optional[int]:
    if row.category_id is not None and row.category_id in categories_by_id:
        return row.category_id
    if not apply_rules:
        return None
    rule = find_matching_rule(row, rules)
    if rule is None or rule.category_id not in categories_by_id:
        return None
    return rule.category_id


async def commit_batch(
    db: AsyncSession,
    batch_id: str,
    *,
    apply_rules: bool = True,
    skip_duplicates: bool = False,
) -> ImportCommitResponse:
    """Persist the valid rows of a validated batch."""
    batch = await get_batch(batch_id)
    _require_state(batch, (ImportState.VALIDATED,), "commit")
    batch.busy = "committing"

    try:
        categories_result = await db.execute(select(Category))
        categories_by_id = {category.id: category for category in categories_result.scalars().all()}
        rules = await load_active_rules(db) if apply_rules else []

        existing: set[str] = set()
        if skip_duplicates:
            existing = await _existing_hashes(db, [row.source_hash for row in batch.valid_rows])

        seen: set[str] = set()
        skipped = 0
        categorized = 0
        transactions: List[Transaction] = []
        for row in batch.valid_rows:
            if skip_duplicates and (row.source_hash in existing or row.source_hash in seen):
                skipped += 1
                continue
            seen.add(row.source_hash)

            category_id = _choose_category(row, rules, categories_by_id, apply_rules)
            if category_id is not None:
                categorized += 1

            transactions.append(
                Transaction(
                    transaction_date=row.transaction_date,
                    description=row.description,
                    amount=row.amount,
                    transaction_type=row.transaction_type,
                    merchant=row.merchant,
                    notes=row.notes,
                    category_id=category_id,
                    source_hash=row.source_hash,
                )
            )

        db.add_all(transactions)
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    except Exception:
        batch.busy = None
        logger.exception("Import batch %s failed to commit", batch.id)
        raise

    batch.busy = None
    batch.state = ImportState.COMMITTED
    batch.touch()
    logger.info(
        "Committed import batch %s: %s imported, %s categorized, %s duplicates skipped, %s invalid",
        batch.id,
        len(transactions),
        categorized,
        skipped,
        len(batch.invalid_rows),
    )

    return ImportCommitResponse(
        batch_id=batch.id,
        state=batch.state,
        imported=len(transactions),
        categorized=categorized,
        skipped_duplicates=skipped,
        failed=len(batch.invalid_rows),
        transaction_ids=[transaction.id for transaction in transactions],
    )


async def batch_status(batch_id: str) -> ImportStatusResponse:
    batch = await get_batch(batch_id)
    validated = batch.state in (ImportState.VALIDATED, ImportState.COMMITTED)
    return ImportStatusResponse(
        batch_id=batch.id,
        state=batch.state,
        filename=batch.filename,
        columns=batch.columns,
        total_rows=len(batch.rows),
        mapping=batch.mapping,
        valid_count=len(batch.valid_rows) if validated else None,
        error_count=len(batch.invalid_rows) if validated else None,
    )


async def discard_batch(batch_id: str) -> None:
    if not await import_sessions.discard(batch_id):
        raise ImportPipelineError("Import batch not found or expired.", status.HTTP_404_NOT_FOUND)
    logger.info("Discarded import batch %s", batch_id)
