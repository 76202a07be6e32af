"""Shared analytics helpers for building monthly summaries."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.domain.categories.models import Category
from spendsort.domain.transactions.models import Transaction

DEFAULT_CATEGORY_COLOR = "#9ca3af"
UNCATEGORIZED_LABEL = "Uncategorized"
MONTH_SERIES_SIZE = 6


@dataclass(slots=True)
class _MonthRange:
    month: str
    first_day: date
    next_month: date


def _next_month(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def _get_month_series(end_month: date) -> list[date]:
    cursor = date(end_month.year, end_month.month, 1)
    series: list[date] = []
    for _ in range(MONTH_SERIES_SIZE):
        series.append(cursor)
        if cursor.month == 1:
            cursor = date(cursor.year - 1, 12, 1)
        else:
            cursor = date(cursor.year, cursor.month - 1, 1)
    series.reverse()
    return series


def parse_month(month: str) -> _MonthRange:
    try:
        year_str, month_str = month.split("-", 1)
        first_day = date(int(year_str), int(month_str), 1)
    except (ValueError, TypeError) as exc:
        raise ValueError("month must be formatted as YYYY-MM") from exc

    return _MonthRange(month=month, first_day=first_day, next_month=_next_month(first_day))


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


async def build_month_summary(month: str, db: AsyncSession) -> dict[str, Any]:
    """Return aggregated figures for one month plus a trailing month series.

    Totals use absolute amounts grouped by transaction type, so both signed
    and unsigned source data add up the same way.
    """
    month_range = parse_month(month)

    totals_stmt = (
        select(
            Transaction.transaction_type,
            func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
        )
        .where(Transaction.transaction_date >= month_range.first_day)
        .where(Transaction.transaction_date < month_range.next_month)
        .group_by(Transaction.transaction_type)
    )
    totals_result = await db.execute(totals_stmt)
    totals_map = {row.transaction_type: _money(row.total) for row in totals_result}
    income_total = totals_map.get("income", _money(0))
    expense_total = totals_map.get("expense", _money(0))

    category_stmt = (
        select(
            Transaction.category_id,
            func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
            func.count(Transaction.id).label("count"),
            Category.name,
            Category.color,
        )
        .outerjoin(Category, Transaction.category_id == Category.id)
        .where(Transaction.transaction_type == "expense")
        .where(Transaction.transaction_date >= month_range.first_day)
        .where(Transaction.transaction_date < month_range.next_month)
        .group_by(Transaction.category_id, Category.name, Category.color)
    )
    category_rows = await db.execute(category_stmt)
    by_category = []
    for row in category_rows:
        total_value = _money(row.total)
        if total_value <= 0:
            continue
        percent = (total_value / expense_total * 100) if expense_total else Decimal("0")
        by_category.append(
            {
                "category_id": row.category_id,
                "name": row.name if row.category_id is not None and row.name else UNCATEGORIZED_LABEL,
                "color": row.color or DEFAULT_CATEGORY_COLOR,
                "total": float(total_value),
                "count": row.count,
                "percent": round(float(percent), 2),
            }
        )
    by_category.sort(key=lambda item: item["total"], reverse=True)

    month_series = _get_month_series(month_range.first_day)
    series_start = month_series[0]
    series_end = _next_month(month_series[-1])
    series_data = {
        value.strftime("%Y-%m"): {
            "month": value.strftime("%Y-%m"),
            "income": Decimal("0"),
            "expense": Decimal("0"),
        }
        for value in month_series
    }

    monthly_stmt = (
        select(
            Transaction.transaction_date,
            Transaction.transaction_type,
            Transaction.amount,
        )
        .where(Transaction.transaction_date >= series_start)
        .where(Transaction.transaction_date < series_end)
    )
    monthly_result = await db.execute(monthly_stmt)
    for row in monthly_result:
        key = row.transaction_date.strftime("%Y-%m")
        if key not in series_data:
            continue
        amount = abs(_money(row.amount))
        if row.transaction_type == "income":
            series_data[key]["income"] += amount
        elif row.transaction_type == "expense":
            series_data[key]["expense"] += amount

    uncategorized_result = await db.execute(
        select(func.count(Transaction.id)).where(Transaction.category_id.is_(None))
    )

    return {
        "month": month_range.month,
        "totals": {
            "income": float(income_total),
            "expense": float(expense_total),
            "net": float(income_total - expense_total),
        },
        "by_category": by_category,
        "series": [
            {
                "month": series_data[key]["month"],
                "income": float(series_data[key]["income"]),
                "expense": float(series_data[key]["expense"]),
            }
            for key in (value.strftime("%Y-%m") for value in month_series)
        ],
        "uncategorized_count": uncategorized_result.scalar_one(),
    }
