"""
Ledger Summary Endpoints.

Read-only grouped sums for dashboards.
"""

from typing import List, Literal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.services.ledger_summary import LedgerSummaryService
from backend.app.schemas.ledger import LedgerPeriodSummary

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.get("/summary", response_model=List[LedgerPeriodSummary])
async def get_ledger_summary(
    period: Literal["day", "month"] = Query("day"),
    db: AsyncSession = Depends(get_db)
):
    """Ledger totals per transaction type, grouped by day or month."""
    return await LedgerSummaryService.summarize(db, period)
