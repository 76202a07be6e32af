"""Persistence helpers for categorization rules."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.domain.categories.models import Category
from spendsort.domain.rules.models import Rule
from spendsort.domain.rules.schemas import RuleCreate, RuleUpdate, check_condition

logger = logging.getLogger(__name__)


async def load_active_rules(db: AsyncSession) -> list[Rule]:
    """Return active rules in evaluation order."""
    result = await db.execute(
        select(Rule)
        .where(Rule.is_active.is_(True))
        .order_by(Rule.priority.asc(), Rule.id.asc())
    )
    return list(result.scalars().all())


async def list_rules(db: AsyncSession, *, active: Optional[bool] = None) -> list[Rule]:
    stmt = select(Rule).order_by(Rule.priority.asc(), Rule.id.asc())
    if active is not None:
        stmt = stmt.where(Rule.is_active.is_(active))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_rule(db: AsyncSession, rule_id: int) -> Rule:
    """Return the rule or raise 404."""
    result = await db.execute(
        select(Rule).where(Rule.id == rule_id).execution_options(populate_existing=True)
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return rule


async def _ensure_category(db: AsyncSession, category_id: int) -> None:
    category = await db.get(Category, category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")


async def create_rule(db: AsyncSession, payload: RuleCreate) -> Rule:
    await _ensure_category(db, payload.category_id)

    rule = Rule(
        name=payload.name,
        field=payload.field,
        operator=payload.operator,
        value=payload.value,
        category_id=payload.category_id,
        priority=payload.priority,
        is_active=payload.is_active,
    )
    db.add(rule)
    await db.commit()
    logger.info("Created rule %s (%s %s %r)", rule.id, rule.field, rule.operator, rule.value)
    return await get_rule(db, rule.id)


async def update_rule(db: AsyncSession, rule_id: int, payload: RuleUpdate) -> Rule:
    rule = await get_rule(db, rule_id)

    update_data: dict[str, Any] = payload.model_dump(exclude_unset=True)
    if not update_data:
        return rule

    for key in ("name", "field", "operator", "value", "category_id", "priority", "is_active"):
        if key in update_data and update_data[key] is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"'{key}' cannot be null",
            )

    merged_field = update_data.get("field", rule.field)
    merged_operator = update_data.get("operator", rule.operator)
    merged_value = update_data.get("value", rule.value)
    try:
        check_condition(merged_field, merged_operator, merged_value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None

    if "category_id" in update_data:
        await _ensure_category(db, update_data["category_id"])

    for key, value in update_data.items():
        setattr(rule, key, value)

    await db.commit()
    return await get_rule(db, rule_id)


async def toggle_rule(db: AsyncSession, rule_id: int) -> Rule:
    rule = await get_rule(db, rule_id)
    rule.is_active = not rule.is_active
    await db.commit()
    logger.info("Rule %s is now %s", rule_id, "active" if rule.is_active else "inactive")
    return await get_rule(db, rule_id)


async def delete_rule(db: AsyncSession, rule_id: int) -> None:
    await get_rule(db, rule_id)
    await db.execute(delete(Rule).where(Rule.id == rule_id))
    await db.commit()
    logger.info("Deleted rule %s", rule_id)
