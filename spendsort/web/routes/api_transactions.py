"""API routes for browsing and editing transactions."""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.database import get_db
from spendsort.domain.categories.models import Category
from spendsort.domain.transactions.models import Transaction
from spendsort.domain.transactions.schemas import (
    CategorizeRequest,
    CategorizeResult,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
)
from spendsort.domain.transactions.services import (
    categorize_transactions,
    compute_source_hash,
    derive_type,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_transaction(transaction_id: int, db: AsyncSession) -> Transaction:
    """Return the transaction or raise 404."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    transaction = result.scalar_one_or_none()
    if not transaction:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return transaction


@router.get("", response_model=TransactionPage)
async def list_transactions(
    category_id: Optional[int] = Query(default=None),
    uncategorized: bool = Query(default=False),
    search: Optional[str] = Query(default=None, max_length=200),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> TransactionPage:
    """Return transactions, newest first, with optional filters."""
    conditions = []
    if uncategorized:
        conditions.append(Transaction.category_id.is_(None))
    elif category_id is not None:
        conditions.append(Transaction.category_id == category_id)
    if search:
        term = search.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        conditions.append(
            or_(
                func.lower(Transaction.description).like(pattern, escape="\\"),
                func.lower(func.coalesce(Transaction.merchant, "")).like(pattern, escape="\\"),
            )
        )
    if date_from is not None:
        conditions.append(Transaction.transaction_date >= date_from)
    if date_to is not None:
        conditions.append(Transaction.transaction_date <= date_to)

    total_result = await db.execute(select(func.count(Transaction.id)).where(*conditions))
    result = await db.execute(
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return TransactionPage(
        total=total_result.scalar_one(),
        limit=limit,
        offset=offset,
        items=[TransactionOut.model_validate(item) for item in result.scalars().all()],
    )


@router.post("/categorize", response_model=CategorizeResult)
async def categorize(
    payload: CategorizeRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> CategorizeResult:
    """Run the active rules over stored transactions."""
    overwrite = payload.overwrite if payload is not None else False
    examined, categorized = await categorize_transactions(db, overwrite=overwrite)
    return CategorizeResult(examined=examined, categorized=categorized)


@router.get("/{transaction_id}", response_model=TransactionOut)
async def get_transaction(transaction_id: int, db: AsyncSession = Depends(get_db)) -> Transaction:
    return await _get_transaction(transaction_id, db)


@router.put("/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: AsyncSession = Depends(get_db),
) -> Transaction:
    """Update a transaction; ``category_id: null`` marks it uncategorized."""
    transaction = await _get_transaction(transaction_id, db)

    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        return transaction

    for key in ("transaction_date", "description", "amount", "transaction_type"):
        if key in update_data and update_data[key] is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"'{key}' cannot be null",
            )

    category_id = update_data.get("category_id")
    if category_id is not None and await db.get(Category, category_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    for field, value in update_data.items():
        setattr(transaction, field, value)

    if "amount" in update_data and "transaction_type" not in update_data:
        transaction.transaction_type = derive_type(transaction.amount)
    if update_data.keys() & {"transaction_date", "description", "amount"}:
        transaction.source_hash = compute_source_hash(
            transaction.transaction_date, transaction.amount, transaction.description
        )

    await db.commit()
    logger.info("Updated transaction %s fields=%s", transaction_id, sorted(update_data))
    return await _get_transaction(transaction_id, db)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(transaction_id: int, db: AsyncSession = Depends(get_db)) -> Response:
    await _get_transaction(transaction_id, db)
    await db.execute(delete(Transaction).where(Transaction.id == transaction_id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
