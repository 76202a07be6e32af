"""Seed default categories and, optionally, a starter rule set."""

import argparse
import asyncio
import logging
from pathlib import Path
import sys
from typing import List

from sqlalchemy import func, select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from spendsort.core.database import AsyncSessionLocal, init_db  # noqa: E402
from spendsort.domain.categories.models import Category  # noqa: E402
from spendsort.domain.rules.models import Rule  # noqa: E402
from spendsort.domain.transactions.models import Transaction  # noqa: F401,E402

logger = logging.getLogger("spendsort.scripts.seed")

DEFAULT_CATEGORIES: List[dict] = [
    {"name": "Salary", "type": "income", "color": "#4CAF50"},
    {"name": "Freelance", "type": "income", "color": "#8BC34A"},
    {"name": "Groceries", "type": "expense", "color": "#FF9800"},
    {"name": "Dining", "type": "expense", "color": "#FF5722"},
    {"name": "Rent", "type": "expense", "color": "#F44336"},
    {"name": "Utilities", "type": "expense", "color": "#03A9F4"},
    {"name": "Transport", "type": "expense", "color": "#607D8B"},
    {"name": "Entertainment", "type": "expense", "color": "#9C27B0"},
]

DEFAULT_RULES: List[dict] = [
    {"name": "Payroll", "field": "description", "operator": "contains", "value": "payroll", "category": "Salary", "priority": 10},
    {"name": "Supermarkets", "field": "merchant", "operator": "contains", "value": "market", "category": "Groceries", "priority": 100},
    {"name": "Ride hailing", "field": "description", "operator": "regex", "value": r"\b(uber|lyft)\b", "category": "Transport", "priority": 100},
    {"name": "Streaming", "field": "merchant", "operator": "startsWith", "value": "netflix", "category": "Entertainment", "priority": 200},
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed default categories")
    parser.add_argument("--with-rules", action="store_true", help="Also seed a starter rule set")
    return parser.parse_args()


async def seed_categories(with_rules: bool = False) -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(func.lower(Category.name)))
        existing_names = {row[0] for row in existing.all()}

        added = 0
        for category in DEFAULT_CATEGORIES:
            if category["name"].lower() in existing_names:
                continue
            session.add(Category(**category))
            added += 1
        await session.commit()
        logger.info("Seeded %s categories", added)

        if not with_rules:
            return

        categories = await session.execute(select(Category))
        by_name = {category.name: category.id for category in categories.scalars().all()}
        rule_names = await session.execute(select(Rule.name))
        existing_rules = {row[0] for row in rule_names.all()}

        added = 0
        for rule in DEFAULT_RULES:
            if rule["name"] in existing_rules or rule["category"] not in by_name:
                continue
            payload = {key: value for key, value in rule.items() if key != "category"}
            session.add(Rule(category_id=by_name[rule["category"]], **payload))
            added += 1
        await session.commit()
        logger.info("Seeded %s rules", added)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    args = parse_args()
    asyncio.run(seed_categories(args.with_rules))
