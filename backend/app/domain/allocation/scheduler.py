"""
Allocation Scheduler (Domain Logic).

Binds a paid logistics detail to one or more trucks without ever
overcommitting a truck. Committed usage is recomputed from active
allocations inside the allocation transaction, and every chosen truck has
its allocation_version bumped so two allocations racing for the same
headroom cannot both commit.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    ConcurrencyConflictError,
    InsufficientCapacityError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from backend.app.core.reliability import run_in_transaction
from backend.app.models.truck import Truck
from backend.app.models.truck_allocation import TruckAllocation
from backend.app.models.logistics_details import LogisticsDetails
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.order_enums import LogisticsStatus
from backend.app.domain.fleet import registry
from backend.app.domain.orders.order_store import (
    load_order,
    check_gate,
    is_gate_open,
    set_logistics_status,
)
from backend.app.services.events import publish_event
from backend.app.services.simulation_clock import utcnow

logger = logging.getLogger(__name__)

AUTO_ALLOCATE_TASK = "allocate_trucks"
MAX_ALLOCATION_RETRIES = 3


@dataclass
class Candidate:
    truck: Truck
    headroom: int


def rank_candidates(trucks: Sequence[Truck], usage: dict, service_type) -> List[Candidate]:
    """
    Keep trucks with both slot and capacity headroom, ranked by lowest
    daily operating cost, then most capacity headroom, then truck id.
    """
    candidates = []
    for truck in trucks:
        truck_usage = usage[truck.id]
        if registry.slot_headroom(truck, truck_usage, service_type) <= 0:
            continue
        headroom = registry.capacity_headroom(truck, truck_usage)
        if headroom <= 0:
            continue
        candidates.append(Candidate(truck=truck, headroom=headroom))
    candidates.sort(key=lambda c: (c.truck.daily_operating_cost, -c.headroom, c.truck.id))
    return candidates


def _split(combo: Sequence[Candidate], quantity: int) -> List[Tuple[Candidate, int]]:
    plan = []
    remaining = quantity
    for candidate in combo:
        if remaining <= 0:
            break
        take = min(candidate.headroom, remaining)
        plan.append((candidate, take))
        remaining -= take
    return plan


def select_trucks(
    ranked: Sequence[Candidate],
    quantity: int,
    search_limit: int = None,
) -> List[Tuple[Candidate, int]]:
    """
    Pick the trucks that absorb ``quantity``.

    1. The first ranked truck whose headroom covers the quantity.
    2. Otherwise the smallest set of trucks: the first combination in rank
       order whose combined headroom covers it. The search stops after
       ``search_limit`` combinations and falls back to filling the
       largest-headroom trucks first.
    3. Otherwise an empty plan.
    """
    search_limit = search_limit or settings.allocation_search_limit
    for candidate in ranked:
        if candidate.headroom >= quantity:
            return [(candidate, quantity)]

    if sum(c.headroom for c in ranked) < quantity:
        return []

    checked = 0
    for size in range(2, len(ranked) + 1):
        for combo in itertools.combinations(ranked, size):
            checked += 1
            if checked > search_limit:
                logger.info("Allocation search limit reached, using largest-headroom fallback")
                largest_first = sorted(ranked, key=lambda c: (-c.headroom, c.truck.id))
                return _split(largest_first, quantity)
            if sum(c.headroom for c in combo) >= quantity:
                return _split(combo, quantity)
    return []


async def _existing_allocations(db: AsyncSession, logistics_details_id: int) -> List[TruckAllocation]:
    result = await db.execute(
        select(TruckAllocation)
        .where(TruckAllocation.logistics_details_id == logistics_details_id)
        .order_by(TruckAllocation.truck_id)
    )
    return list(result.scalars().all())


async def _lock_trucks(db: AsyncSession, truck_ids: List[int]) -> None:
    if truck_ids:
        await db.execute(select(Truck.id).where(Truck.id.in_(truck_ids)).with_for_update())


async def _bump_truck_version(db: AsyncSession, truck: Truck) -> None:
    expected = truck.allocation_version
    result = await db.execute(
        update(Truck)
        .where(Truck.id == truck.id, Truck.allocation_version == expected)
        .values(allocation_version=expected + 1)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError("Truck", truck.id)


async def _plan_allocation(
    db: AsyncSession,
    details: LogisticsDetails,
    quantity: int,
    exclude_truck_ids: Sequence[int] = (),
) -> List[Tuple[Candidate, int]]:
    trucks = await registry.list_available_trucks(
        db,
        details.service_type,
        details.scheduled_real_pickup_at,
        details.scheduled_real_delivery_at,
    )
    trucks = [truck for truck in trucks if truck.id not in exclude_truck_ids]
    await _lock_trucks(db, [truck.id for truck in trucks])
    usage = await registry.committed_usage(db, [truck.id for truck in trucks])
    ranked = rank_candidates(trucks, usage, details.service_type)

    plan = select_trucks(ranked, quantity)
    if not plan:
        raise InsufficientCapacityError(details.id, quantity, sum(c.headroom for c in ranked))
    return plan


async def _commit_plan(
    db: AsyncSession,
    logistics_details_id: int,
    plan: List[Tuple[Candidate, int]],
) -> List[TruckAllocation]:
    allocations = []
    for candidate, take in plan:
        await _bump_truck_version(db, candidate.truck)
        allocation = TruckAllocation(
            logistics_details_id=logistics_details_id,
            truck_id=candidate.truck.id,
            quantity=take,
            allocated_at=utcnow(),
        )
        db.add(allocation)
        allocations.append(allocation)
    await db.flush()
    return allocations


async def allocate_trucks(db: AsyncSession, logistics_details_id: int) -> List[TruckAllocation]:
    """
    Allocate trucks to a logistics detail and commit.

    Idempotent: a detail that is already READY_FOR_COLLECTION returns its
    existing allocations.

    Raises:
        PaymentGateError: Payment does not yet allow dispatch
        InvalidTransitionError: Detail is past planning
        InsufficientCapacityError: No truck combination fits (nothing written)
        ConcurrencyConflictError: Lost the race twice
    """
    async def _allocate(session: AsyncSession) -> Tuple[List[TruckAllocation], bool]:
        order = await load_order(session, logistics_details_id=logistics_details_id, lock=True)
        details = order.details

        if details.logistics_status == LogisticsStatus.READY_FOR_COLLECTION:
            existing = await _existing_allocations(session, details.id)
            if existing:
                return existing, False
        if details.logistics_status != LogisticsStatus.PENDING_PLANNING:
            raise InvalidTransitionError(
                "LogisticsDetails", details.id, details.logistics_status.value,
                LogisticsStatus.READY_FOR_COLLECTION.value, "allocation requires PENDING_PLANNING",
            )

        await check_gate(session, details, order.invoice, order.company, LogisticsStatus.READY_FOR_COLLECTION)
        plan = await _plan_allocation(session, details, details.quantity)
        allocations = await _commit_plan(session, details.id, plan)
        await set_logistics_status(session, details, LogisticsStatus.READY_FOR_COLLECTION)
        return allocations, True

    allocations, created = await run_in_transaction(
        db, _allocate, label=f"allocate logistics {logistics_details_id}"
    )
    if created:
        logger.info(
            "Allocated logistics %s to trucks %s",
            logistics_details_id, [a.truck_id for a in allocations],
        )
        await publish_event("logistics.allocated", {
            "logistics_details_id": logistics_details_id,
            "allocations": [{"truck_id": a.truck_id, "quantity": a.quantity} for a in allocations],
        })
    return allocations


async def reassign_trucks(
    db: AsyncSession,
    logistics_details_id: int,
    exclude_truck_id: int,
) -> List[TruckAllocation]:
    """
    Move the share carried by ``exclude_truck_id`` to other trucks and commit.

    The detail stays READY_FOR_COLLECTION; the swap is atomic, so either
    the replacement allocations exist or the original one is untouched.
    """
    async def _reassign(session: AsyncSession) -> List[TruckAllocation]:
        order = await load_order(session, logistics_details_id=logistics_details_id, lock=True)
        details = order.details
        if details.logistics_status != LogisticsStatus.READY_FOR_COLLECTION:
            raise InvalidTransitionError(
                "LogisticsDetails", details.id, details.logistics_status.value,
                LogisticsStatus.READY_FOR_COLLECTION.value, "only READY_FOR_COLLECTION allocations can be reassigned",
            )

        existing = await _existing_allocations(session, details.id)
        released = next((a for a in existing if a.truck_id == exclude_truck_id), None)
        if released is None:
            raise ResourceNotFoundError("TruckAllocation", f"{details.id}/{exclude_truck_id}")

        plan = await _plan_allocation(
            session, details, released.quantity,
            exclude_truck_ids=[a.truck_id for a in existing],
        )
        await session.execute(
            delete(TruckAllocation).where(
                TruckAllocation.logistics_details_id == details.id,
                TruckAllocation.truck_id == exclude_truck_id,
            )
        )
        await _commit_plan(session, details.id, plan)
        return await _existing_allocations(session, details.id)

    allocations = await run_in_transaction(
        db, _reassign, label=f"reassign logistics {logistics_details_id}"
    )
    logger.info("Reassigned logistics %s away from truck %s", logistics_details_id, exclude_truck_id)
    await publish_event("logistics.reassigned", {
        "logistics_details_id": logistics_details_id,
        "released_truck_id": exclude_truck_id,
        "allocations": [{"truck_id": a.truck_id, "quantity": a.quantity} for a in allocations],
    })
    return allocations


async def list_allocations(db: AsyncSession, logistics_details_id: int) -> List[TruckAllocation]:
    return await _existing_allocations(db, logistics_details_id)


async def auto_allocate_after_payment(db: AsyncSession, invoice_id: int) -> Optional[List[TruckAllocation]]:
    """
    Allocate trucks for the order of a freshly paid invoice.

    Runs after the reconciliation transaction has committed. A failure is
    logged and parked in the dead-letter queue for the retry job; it never
    propagates to the payment caller.
    """
    order = await load_order(db, invoice_id=invoice_id)
    if order.details.logistics_status != LogisticsStatus.PENDING_PLANNING:
        return None
    if not await is_gate_open(db, order.invoice, order.company):
        return None

    logistics_details_id = order.details.id
    try:
        return await allocate_trucks(db, logistics_details_id)
    except AppException as exc:
        logger.warning(
            "Automatic allocation failed for logistics %s: %s", logistics_details_id, exc.message,
            extra={"error_code": exc.error_code},
        )
        db.add(DeadLetterQueue(
            task_name=AUTO_ALLOCATE_TASK,
            error_message=f"{exc.error_code}: {exc.message}",
            payload={"logistics_details_id": logistics_details_id, "invoice_id": invoice_id},
            status=DLQStatus.FAILED,
        ))
        await db.commit()
        return None


async def retry_failed_allocations(db: AsyncSession) -> dict:
    """
    Re-run allocation for parked automatic allocations.

    Entries succeed (PROCESSED), fail again (retry_count + 1) or are
    ARCHIVED after MAX_ALLOCATION_RETRIES attempts.

    Returns:
        Counts per outcome
    """
    result = await db.execute(
        select(DeadLetterQueue.id)
        .where(
            DeadLetterQueue.task_name == AUTO_ALLOCATE_TASK,
            DeadLetterQueue.status == DLQStatus.FAILED,
        )
        .order_by(DeadLetterQueue.id)
    )
    entry_ids = list(result.scalars().all())
    summary = {"processed": 0, "failed": 0, "archived": 0}

    for entry_id in entry_ids:
        entry = await db.get(DeadLetterQueue, entry_id)
        logistics_details_id = entry.payload["logistics_details_id"]
        try:
            await allocate_trucks(db, logistics_details_id)
            outcome, error = DLQStatus.PROCESSED, None
        except AppException as exc:
            outcome, error = DLQStatus.FAILED, f"{exc.error_code}: {exc.message}"

        entry = await db.get(DeadLetterQueue, entry_id)
        entry.last_retry_at = utcnow()
        if outcome == DLQStatus.PROCESSED:
            entry.status = DLQStatus.PROCESSED
            summary["processed"] += 1
        else:
            entry.retry_count += 1
            entry.error_message = error
            if entry.retry_count >= MAX_ALLOCATION_RETRIES:
                entry.status = DLQStatus.ARCHIVED
                summary["archived"] += 1
            else:
                summary["failed"] += 1
        await db.commit()

    logger.info("Allocation retry run: %s", summary)
    return summary
