"""JSON API router aggregating every resource."""
from __future__ import annotations

from fastapi import APIRouter

from spendsort.web.routes import api_categories
from spendsort.web.routes import api_import
from spendsort.web.routes import api_rules
from spendsort.web.routes import api_summary
from spendsort.web.routes import api_transactions
from spendsort.web.routes import health

router = APIRouter()

router.include_router(health.router, tags=["health"])
router.include_router(api_categories.router, prefix="/categories", tags=["categories"])
router.include_router(api_rules.router, prefix="/rules", tags=["rules"])
router.include_router(api_transactions.router, prefix="/transactions", tags=["transactions"])
router.include_router(api_import.router, prefix="/import", tags=["import"])
router.include_router(api_summary.router, tags=["summary"])
