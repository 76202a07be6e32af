"""Helpers shared by the transaction routes and the import pipeline."""
from __future__ import annotations

import hashlib
import logging
import re
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.domain.rules.matcher import find_matching_rule
from spendsort.domain.rules.services import load_active_rules
from spendsort.domain.transactions.models import Transaction

logger = logging.getLogger(__name__)


def normalize_description(value: str) -> str:
    collapsed = re.sub(r"\s+", " ", value.strip())
    return collapsed.lower()


def compute_source_hash(transaction_date: date, amount: float, description: str) -> str:
    """Fingerprint used to spot a transaction that was already imported."""
    payload = f"{transaction_date.isoformat()}|{amount:.2f}|{normalize_description(description)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def derive_type(amount: float, explicit: Optional[str] = None) -> str:
    if explicit in {"income", "expense"}:
        return explicit
    return "expense" if amount < 0 else "income"


async def categorize_transactions(db: AsyncSession, *, overwrite: bool = False) -> tuple[int, int]:
    """Run the active rules over stored transactions.

    Only uncategorized transactions are examined unless ``overwrite`` is set.
    Transactions that match no rule keep their current category.
    Returns ``(examined, categorized)``.
    """
    rules = await load_active_rules(db)

    stmt = select(Transaction)
    if not overwrite:
        stmt = stmt.where(Transaction.category_id.is_(None))
    result = await db.execute(stmt.order_by(Transaction.id))
    transactions = result.scalars().all()

    examined = 0
    categorized = 0
    if rules:
        for transaction in transactions:
            examined += 1
            rule = find_matching_rule(transaction, rules)
            if rule is None or rule.category_id == transaction.category_id:
                continue
            transaction.category_id = rule.category_id
            categorized += 1
    else:
        examined = len(transactions)

    await db.commit()
    logger.info("Rule pass examined %s transactions, categorized %s", examined, categorized)
    return examined, categorized
