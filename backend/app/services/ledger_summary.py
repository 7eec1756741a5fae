"""
Ledger Summary Service.

Read-only grouped sums over the transaction ledger for dashboards.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.ledger_entry import TransactionLedgerEntry
from backend.app.schemas.ledger import LedgerPeriodSummary, LedgerTypeTotal

PERIOD_FORMATS = {
    # (sqlite strftime, postgresql to_char)
    "day": ("%Y-%m-%d", "YYYY-MM-DD"),
    "month": ("%Y-%m", "YYYY-MM"),
}


def _period_expression(dialect_name: str, period: str):
    sqlite_format, pg_format = PERIOD_FORMATS[period]
    column = TransactionLedgerEntry.transaction_date
    if dialect_name == "sqlite":
        return func.strftime(sqlite_format, column)
    return func.to_char(column, pg_format)


class LedgerSummaryService:

    @staticmethod
    async def summarize(db: AsyncSession, period: str = "day") -> List[LedgerPeriodSummary]:
        """
        Sum ledger amounts per period and transaction type.

        Args:
            db: Database session
            period: "day" or "month"

        Returns:
            One summary per period, newest first, with a net total
        """
        bucket = _period_expression(db.bind.dialect.name, period).label("bucket")
        stmt = (
            select(
                bucket,
                TransactionLedgerEntry.transaction_type,
                func.count(TransactionLedgerEntry.id).label("entries"),
                func.coalesce(func.sum(TransactionLedgerEntry.amount), 0).label("total"),
            )
            .group_by(bucket, TransactionLedgerEntry.transaction_type)
            .order_by(bucket.desc(), TransactionLedgerEntry.transaction_type)
        )
        rows = (await db.execute(stmt)).all()

        summaries: "OrderedDict[str, LedgerPeriodSummary]" = OrderedDict()
        for row in rows:
            summary = summaries.get(row.bucket)
            if summary is None:
                summary = LedgerPeriodSummary(period=row.bucket, net=Decimal("0.00"), totals=[])
                summaries[row.bucket] = summary
            total = Decimal(str(row.total)).quantize(Decimal("0.01"))
            summary.totals.append(LedgerTypeTotal(
                transaction_type=row.transaction_type,
                entries=row.entries,
                total=total,
            ))
            summary.net += total
        return list(summaries.values())
