"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    webhooks, pickups, invoices, payments,
    logistics, fleet, ledger
)

router = APIRouter()

# Inbound payment notifications
router.include_router(webhooks.router)

# Orders and billing
router.include_router(pickups.router)
router.include_router(invoices.router)
router.include_router(payments.router)

# Fulfillment
router.include_router(logistics.router)
router.include_router(fleet.router)

# Read-only dashboards
router.include_router(ledger.router)
