import os
import tempfile
from datetime import date
from pathlib import Path

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "spendsort-test-logs"))
os.environ.setdefault("RATE_LIMIT_MAX", "1000")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from main import app  # noqa: E402
from spendsort.core.database import Base, enable_sqlite_pragmas, get_db  # noqa: E402
from spendsort.core.rate_limit import rate_limiter  # noqa: E402
from spendsort.domain.categories.models import Category  # noqa: E402
from spendsort.domain.imports.services import import_sessions  # noqa: E402
from spendsort.domain.rules.models import Rule  # noqa: E402
from spendsort.domain.transactions.models import Transaction  # noqa: E402
from spendsort.domain.transactions.services import compute_source_hash, derive_type  # noqa: E402


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Import batches and rate limit buckets live in process memory."""
    import_sessions.clear()
    rate_limiter.reset()
    yield
    import_sessions.clear()
    rate_limiter.reset()


@pytest.fixture
async def test_engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_pragmas(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def client(session_factory):
    """Provide test client with database override."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_category(session_factory):
    async def _make(name: str = "Groceries", type: str = "expense", color: str | None = None) -> Category:
        async with session_factory() as session:
            category = Category(name=name, type=type, color=color)
            session.add(category)
            await session.commit()
            return category

    return _make


@pytest.fixture
def make_rule(session_factory):
    async def _make(category_id: int, **overrides) -> Rule:
        values = {
            "name": "Rule",
            "field": "description",
            "operator": "contains",
            "value": "coffee",
            "priority": 0,
            "is_active": True,
        }
        values.update(overrides)
        async with session_factory() as session:
            rule = Rule(category_id=category_id, **values)
            session.add(rule)
            await session.commit()
            return rule

    return _make


@pytest.fixture
def make_transaction(session_factory):
    async def _make(
        description: str = "Coffee Shop",
        amount: float = -4.5,
        transaction_date: date = date(2026, 2, 15),
        merchant: str | None = None,
        notes: str | None = None,
        category_id: int | None = None,
    ) -> Transaction:
        async with session_factory() as session:
            transaction = Transaction(
                transaction_date=transaction_date,
                description=description,
                amount=amount,
                transaction_type=derive_type(amount),
                merchant=merchant,
                notes=notes,
                category_id=category_id,
                source_hash=compute_source_hash(transaction_date, amount, description),
            )
            session.add(transaction)
            await session.commit()
            return transaction

    return _make
