"""
Payment Webhook Endpoint.

Receives payment notifications from the bank. Redeliveries are answered
with the originally computed result.
"""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.session import get_db
from backend.app.models.ledger_enums import PaymentEventStatus
from backend.app.domain.payments.reconciliation import apply_payment_event, PaymentEvent
from backend.app.domain.allocation.scheduler import auto_allocate_after_payment
from backend.app.schemas.payment import PaymentWebhook, ReconciliationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/payments", response_model=ReconciliationResponse)
async def receive_payment(
    payload: PaymentWebhook,
    db: AsyncSession = Depends(get_db)
):
    """
    Reconcile a payment event.

    - 200 with the result (``replayed`` marks a redelivery)
    - 422 ERR_PAYMENT_UNRESOLVED when no invoice matches; the payment is
      still recorded for manual matching
    """
    event = PaymentEvent(
        transaction_number=payload.transaction_number,
        status=payload.status,
        amount=payload.amount,
        timestamp=payload.timestamp,
        description=payload.description,
        from_party=payload.from_party,
        to_party=payload.to_party,
        reference=payload.reference,
    )
    result = await apply_payment_event(db, event)

    # Separate transaction; failures end up in the dead-letter queue
    if (
        settings.auto_allocate_on_payment
        and not result.replayed
        and result.event_status == PaymentEventStatus.SUCCESS
    ):
        await auto_allocate_after_payment(db, result.invoice_id)

    return ReconciliationResponse.model_validate(result)
