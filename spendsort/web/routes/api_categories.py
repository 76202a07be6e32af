"""API routes for managing categories."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.database import get_db
from spendsort.domain.categories.models import Category
from spendsort.domain.categories.schemas import (
    CategoryCreate,
    CategoryOut,
    CategoryReassignRequest,
    CategoryReassignResult,
    CategoryUpdate,
)
from spendsort.domain.rules.models import Rule
from spendsort.domain.transactions.models import Transaction

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_category(category_id: int, db: AsyncSession) -> Category:
    """Return the category or raise 404."""
    result = await db.execute(select(Category).where(Category.id == category_id))
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def _name_taken(db: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Category.id).where(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


@router.get("", response_model=list[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)) -> list[Category]:
    """Return all categories."""
    result = await db.execute(select(Category).order_by(Category.type, Category.name))
    categories = result.scalars().all()
    return categories


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)) -> Category:
    return await _get_category(category_id, db)


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db),
) -> Category:
    """Create a new category."""
    if await _name_taken(db, payload.name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists",
        )

    category = Category(
        name=payload.name,
        type=payload.type,
        color=payload.color,
    )
    db.add(category)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("IntegrityError while creating category %r", payload.name, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists",
        ) from None

    await db.refresh(category)
    return category


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
) -> Category:
    """Update a category."""
    category = await _get_category(category_id, db)

    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        return category

    if update_data.get("name") is None:
        update_data.pop("name", None)
    if update_data.get("type") is None:
        update_data.pop("type", None)

    if "name" in update_data and await _name_taken(db, update_data["name"], exclude_id=category_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists",
        )

    for field, value in update_data.items():
        setattr(category, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("IntegrityError while updating category %s", category_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists",
        ) from None

    await db.refresh(category)
    return category


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a category if no transactions or rules reference it."""
    await _get_category(category_id, db)

    transaction_count = await db.execute(
        select(func.count(Transaction.id)).where(Transaction.category_id == category_id)
    )
    if transaction_count.scalar_one() > 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category has linked transactions. Reassign them before deleting.",
        )

    rule_count = await db.execute(select(func.count(Rule.id)).where(Rule.category_id == category_id))
    if rule_count.scalar_one() > 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category is used by rules. Reassign or delete them before deleting.",
        )

    await db.execute(delete(Category).where(Category.id == category_id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{category_id}/reassign", response_model=CategoryReassignResult)
async def reassign_category(
    category_id: int,
    payload: CategoryReassignRequest,
    db: AsyncSession = Depends(get_db),
) -> CategoryReassignResult:
    """Move all transactions and rules from one category to another."""
    source_category = await _get_category(category_id, db)
    target_category = await _get_category(payload.new_category_id, db)

    if source_category.id == target_category.id:
        return CategoryReassignResult(moved_transactions=0, moved_rules=0)

    transactions_result = await db.execute(
        update(Transaction)
        .where(Transaction.category_id == source_category.id)
        .values(category_id=target_category.id)
    )
    rules_result = await db.execute(
        update(Rule)
        .where(Rule.category_id == source_category.id)
        .values(category_id=target_category.id)
    )
    await db.commit()

    moved = CategoryReassignResult(
        moved_transactions=transactions_result.rowcount or 0,
        moved_rules=rules_result.rowcount or 0,
    )
    logger.info(
        "Reassigned category %s -> %s (%s transactions, %s rules)",
        source_category.id,
        target_category.id,
        moved.moved_transactions,
        moved.moved_rules,
    )
    return moved
