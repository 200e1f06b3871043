"""
Checkout: turn a client's live holds into an order.

The whole checkout is one transaction. Batch rows are locked (oldest brew
first) before the holds are re-read under lock, each hold is filled greedily
from the oldest batches, the holds are deleted and the order committed. If
any hold cannot be filled from physical stock nothing is written.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.database import (
    Beer as BeerModel,
    BeerStock as BeerStockModel,
    Order as OrderModel,
    OrderItem as OrderItemModel,
    Reservation as ReservationModel,
)
from services.errors import Conflict, EmptyCart, InsufficientStock, InvalidArgument, NotFound
from services.events import publish_order_update, publish_stats_update, publish_stock_update
from services.ledger import lock_batches, utcnow
from services.pricing import line_total, round2

logger = logging.getLogger(__name__)

PENDING_PAYMENT = "PENDING_PAYMENT"
ORDER_STATUSES = (
    PENDING_PAYMENT,
    "PAID",
    "IN_PREPARATION",
    "AWAITING_DELIVERY",
    "DELIVERED",
    "CANCELLED",
)

_LOCK_ATTEMPTS = 3


def resolve_amount(calculated: Decimal, override=None) -> Decimal:
    """The override wins only when it is not below the calculated total."""
    calculated = round2(Decimal(str(calculated)))
    if override is None:
        return calculated
    requested = round2(Decimal(str(override)))
    if requested < calculated:
        logger.warning("Ignoring custom amount %s below calculated total %s", requested, calculated)
        return calculated
    return requested


def allocate_oldest_first(batches: Sequence, needed: int) -> Tuple[List[Tuple[object, int]], int]:
    """
    Greedy fill of `needed` units from `batches` (already oldest first).

    Returns the (batch, units taken) pairs and the units still missing.
    Batches are not modified.
    """
    plan: List[Tuple[object, int]] = []
    remaining = int(needed)
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, int(batch.quantity or 0))
        if take <= 0:
            continue
        plan.append((batch, take))
        remaining -= take
    return plan, remaining


def _order_query():
    return (
        select(OrderModel)
        .options(
            selectinload(OrderModel.items).selectinload(OrderItemModel.beer).selectinload(BeerModel.recipe),
            selectinload(OrderModel.items).selectinload(OrderItemModel.containing),
        )
        .execution_options(populate_existing=True)
    )


async def get_order(db: AsyncSession, order_id: int) -> OrderModel:
    res = await db.execute(_order_query().where(OrderModel.id == order_id))
    o = res.scalar_one_or_none()
    if not o:
        raise NotFound("Order not found")
    return o


async def list_client_orders(db: AsyncSession, client_id: int) -> List[OrderModel]:
    res = await db.execute(
        _order_query()
        .where(OrderModel.client_id == client_id)
        .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
    )
    return list(res.scalars().all())


async def list_orders(db: AsyncSession, status_filter: Optional[str] = None) -> List[OrderModel]:
    stmt = _order_query().order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
    if status_filter:
        stmt = stmt.where(OrderModel.status == status_filter.strip().upper())
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def _live_holds(db: AsyncSession, client_id: int, now: datetime, *, lock: bool) -> List[ReservationModel]:
    stmt = (
        select(ReservationModel)
        .options(selectinload(ReservationModel.recipe))
        .where(ReservationModel.client_id == client_id)
        .where(ReservationModel.expires_at > now)
        .order_by(ReservationModel.id.asc())
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def checkout(
    db: AsyncSession,
    client_id: Optional[int],
    override_amount=None,
    *,
    now: Optional[datetime] = None,
) -> OrderModel:
    if client_id is None:
        raise InvalidArgument("clientId is required")
    now = now or utcnow()

    try:
        holds = await _live_holds(db, client_id, now, lock=False)
        if not holds:
            raise EmptyCart()
        pairs = {(h.recipe_id, h.containing_id) for h in holds}

        # Batches first (sorted pairs), then the holds: same order as the cart operations.
        for _ in range(_LOCK_ATTEMPTS):
            batches: Dict[Tuple[int, int], List[BeerStockModel]] = {}
            for pair in sorted(pairs):
                batches[pair] = await lock_batches(db, *pair)

            holds = await _live_holds(db, client_id, now, lock=True)
            if not holds:
                raise EmptyCart()
            unlocked = {(h.recipe_id, h.containing_id) for h in holds} - set(batches)
            if not unlocked:
                break
            # The cart gained a product since the first read: start over with it included.
            await db.rollback()
            pairs |= unlocked
        else:
            raise Conflict("Cart changed during checkout, please retry")

        calculated = sum((line_total(h.price, h.quantity) for h in holds), Decimal("0"))
        order = OrderModel(
            client_id=client_id,
            amount=resolve_amount(calculated, override_amount),
            status=PENDING_PAYMENT,
            created_at=now,
        )
        db.add(order)
        await db.flush()

        lines: Dict[Tuple[int, int], OrderItemModel] = {}
        for h in holds:
            plan, missing = allocate_oldest_first(batches[(h.recipe_id, h.containing_id)], h.quantity)
            if missing > 0:
                name = h.recipe.name if h.recipe else str(h.recipe_id)
                raise InsufficientStock(
                    f"Insufficient stock for {name}: {missing} missing",
                    available=int(h.quantity) - missing,
                    recipe=name,
                    missing=missing,
                )
            for batch, take in plan:
                batch.quantity = int(batch.quantity) - take
                key = (batch.beer_id, batch.containing_id)
                line = lines.get(key)
                if line is None:
                    line = OrderItemModel(
                        order_id=order.id,
                        beer_id=batch.beer_id,
                        containing_id=batch.containing_id,
                        quantity=take,
                        price=h.price,
                    )
                    db.add(line)
                    lines[key] = line
                else:
                    line.quantity = int(line.quantity) + take

        await db.execute(
            delete(ReservationModel)
            .where(ReservationModel.client_id == client_id)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        order = await get_order(db, order.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_stock_update()
    await publish_stats_update()
    return order


async def set_order_status(db: AsyncSession, order_id: int, status_value: Optional[str]) -> OrderModel:
    normalized = (status_value or "").strip().upper()
    if normalized not in ORDER_STATUSES:
        raise InvalidArgument(
            f"Invalid status: {status_value!r}",
            allowed=list(ORDER_STATUSES),
        )

    try:
        o = await get_order(db, order_id)
        o.status = normalized
        o.updated_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_order_update(o)
    return o
