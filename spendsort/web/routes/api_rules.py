"""API routes for categorization rules."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.database import get_db
from spendsort.domain.rules import services as rule_services
from spendsort.domain.rules.matcher import evaluate_rule
from spendsort.domain.rules.models import Rule
from spendsort.domain.rules.schemas import (
    RuleCreate,
    RuleOut,
    RulePreviewRequest,
    RulePreviewResponse,
    RuleUpdate,
)
from spendsort.domain.transactions.models import Transaction
from spendsort.domain.transactions.schemas import TransactionOut

router = APIRouter()


@router.get("", response_model=list[RuleOut])
async def list_rules(
    active: Optional[bool] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[Rule]:
    """Return rules in evaluation order."""
    return await rule_services.list_rules(db, active=active)


@router.post("", response_model=RuleOut, status_code=status.HTTP_201_CREATED)
async def create_rule(payload: RuleCreate, db: AsyncSession = Depends(get_db)) -> Rule:
    return await rule_services.create_rule(db, payload)


@router.post("/preview", response_model=RulePreviewResponse)
async def preview_rule(payload: RulePreviewRequest, db: AsyncSession = Depends(get_db)) -> RulePreviewResponse:
    """Count the stored transactions a draft condition would match."""
    result = await db.execute(
        select(Transaction).order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    )
    transactions = result.scalars().all()
    matches = [transaction for transaction in transactions if evaluate_rule(payload, transaction)]
    return RulePreviewResponse(
        matched=len(matches),
        examined=len(transactions),
        items=[TransactionOut.model_validate(transaction) for transaction in matches[: payload.limit]],
    )


@router.get("/{rule_id}", response_model=RuleOut)
async def get_rule(rule_id: int, db: AsyncSession = Depends(get_db)) -> Rule:
    return await rule_services.get_rule(db, rule_id)


@router.put("/{rule_id}", response_model=RuleOut)
async def update_rule(rule_id: int, payload: RuleUpdate, db: AsyncSession = Depends(get_db)) -> Rule:
    return await rule_services.update_rule(db, rule_id, payload)


@router.post("/{rule_id}/toggle", response_model=RuleOut)
async def toggle_rule(rule_id: int, db: AsyncSession = Depends(get_db)) -> Rule:
    """Flip the active flag of a rule."""
    return await rule_services.toggle_rule(db, rule_id)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: int, db: AsyncSession = Depends(get_db)) -> Response:
    await rule_services.delete_rule(db, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
