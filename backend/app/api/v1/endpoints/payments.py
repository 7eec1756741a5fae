"""
Payment Record API Endpoints.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.payments.reconciliation import get_payment
from backend.app.schemas.payment import PaymentRecordResponse

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/{transaction_number}", response_model=PaymentRecordResponse)
async def get_payment_record(
    transaction_number: str = Path(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Look up a recorded payment, including unresolved ones."""
    record = await get_payment(db, transaction_number)
    return PaymentRecordResponse.model_validate(record)
