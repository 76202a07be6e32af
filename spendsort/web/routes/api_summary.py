"""API routes for dashboard and chart summaries."""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.database import get_db
from spendsort.services.analytics import build_month_summary, parse_month

router = APIRouter()


@router.get("/summary")
async def get_summary(
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Return totals, spending per category and a month series."""
    month_key = month or date.today().strftime("%Y-%m")
    try:
        parse_month(month_key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None

    return await build_month_summary(month_key, db)
