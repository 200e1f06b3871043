"""
Cart holds.

Every mutating operation runs in one transaction on the caller's session:
batch rows of the affected (recipe, containing) pair are locked before
availability is read, the hold is written, the session commits, and only then
is the stock snapshot broadcast. Any failure rolls the session back.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from db.database import (
    Containing as ContainingModel,
    Recipe as RecipeModel,
    Reservation as ReservationModel,
)
from services.errors import Expired, InsufficientStock, InvalidArgument, NotFound
from services.events import publish_stock_update
from services.ledger import available_quantity, utcnow
from services.pricing import unit_price


def hold_expiry(now: datetime) -> datetime:
    return now + timedelta(minutes=settings.hold_ttl_minutes)


def _check_quantity(quantity) -> int:
    try:
        q = int(quantity)
    except (TypeError, ValueError):
        raise InvalidArgument("quantity must be an integer")
    if q < 1:
        raise InvalidArgument("quantity must be at least 1")
    return q


def _insufficient(recipe_name: str, available: int) -> InsufficientStock:
    return InsufficientStock(
        f"Insufficient stock for {recipe_name}: only {available} available",
        available=available,
        recipe=recipe_name,
    )


async def list_client_holds(
    db: AsyncSession, client_id: int, *, now: Optional[datetime] = None
) -> List[ReservationModel]:
    """Unexpired holds of a client, oldest first."""
    now = now or utcnow()
    res = await db.execute(
        select(ReservationModel)
        .options(selectinload(ReservationModel.recipe), selectinload(ReservationModel.containing))
        .where(ReservationModel.client_id == client_id)
        .where(ReservationModel.expires_at > now)
        .order_by(ReservationModel.created_at.asc(), ReservationModel.id.asc())
    )
    return list(res.scalars().all())


async def create_or_increase_hold(
    db: AsyncSession,
    *,
    client_id: Optional[int],
    recipe_id: Optional[int],
    containing_id: Optional[int],
    quantity,
    now: Optional[datetime] = None,
) -> ReservationModel:
    """
    Reserve `quantity` more units for the client.

    A live hold on the same (client, recipe, containing) is increased in place
    and keeps the price it was created with; only the increment is checked
    against availability. A hold that already expired counts as gone and is
    restarted at today's price.
    """
    if client_id is None or recipe_id is None or containing_id is None:
        raise InvalidArgument("clientId, recipeId and conteningId are required")
    quantity = _check_quantity(quantity)
    now = now or utcnow()

    try:
        recipe = await db.get(RecipeModel, recipe_id)
        if not recipe:
            raise NotFound("Recipe not found")
        containing = await db.get(ContainingModel, containing_id)
        if not containing:
            raise NotFound("Containing not found")

        available = await available_quantity(db, recipe_id, containing_id, now=now, lock=True)
        if quantity > available:
            raise _insufficient(recipe.name, available)

        res = await db.execute(
            select(ReservationModel)
            .options(selectinload(ReservationModel.recipe), selectinload(ReservationModel.containing))
            .where(ReservationModel.client_id == client_id)
            .where(ReservationModel.recipe_id == recipe_id)
            .where(ReservationModel.containing_id == containing_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        hold = res.scalar_one_or_none()

        if hold is None:
            hold = ReservationModel(
                client_id=client_id,
                recipe=recipe,
                containing=containing,
                quantity=quantity,
                price=unit_price(recipe.base_price, containing.volume),
                expires_at=hold_expiry(now),
                created_at=now,
            )
            db.add(hold)
        elif hold.expires_at <= now:
            hold.quantity = quantity
            hold.price = unit_price(recipe.base_price, containing.volume)
            hold.expires_at = hold_expiry(now)
            hold.created_at = now
        else:
            hold.quantity = int(hold.quantity) + quantity
            hold.expires_at = hold_expiry(now)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_stock_update()
    return hold


async def set_hold_quantity(
    db: AsyncSession,
    reservation_id: int,
    quantity,
    *,
    now: Optional[datetime] = None,
) -> ReservationModel:
    """Resize a live hold; growing it needs the extra units to be available."""
    quantity = _check_quantity(quantity)
    now = now or utcnow()

    try:
        hold = await db.get(ReservationModel, reservation_id)
        if not hold:
            raise NotFound("Reservation not found")
        if hold.expires_at <= now:
            raise Expired("Reservation has expired")

        # Same lock order as create_or_increase_hold: batches, then the hold.
        available = await available_quantity(db, hold.recipe_id, hold.containing_id, now=now, lock=True)
        res = await db.execute(
            select(ReservationModel)
            .options(selectinload(ReservationModel.recipe), selectinload(ReservationModel.containing))
            .where(ReservationModel.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        hold = res.scalar_one_or_none()
        if not hold:
            raise NotFound("Reservation not found")
        if hold.expires_at <= now:
            raise Expired("Reservation has expired")

        delta = quantity - int(hold.quantity)
        if delta > available:
            raise _insufficient(hold.recipe.name, available)

        hold.quantity = quantity
        hold.expires_at = hold_expiry(now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_stock_update()
    return hold


async def remove_hold(db: AsyncSession, reservation_id: int) -> None:
    try:
        res = await db.execute(
            delete(ReservationModel)
            .where(ReservationModel.id == reservation_id)
            .execution_options(synchronize_session=False)
        )
        if not res.rowcount:
            raise NotFound("Reservation not found")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_stock_update()


async def clear_client_holds(db: AsyncSession, client_id: int) -> int:
    """Drop every hold of the client, expired or not."""
    try:
        res = await db.execute(
            delete(ReservationModel)
            .where(ReservationModel.client_id == client_id)
            .execution_options(synchronize_session=False)
        )
        count = int(res.rowcount or 0)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await publish_stock_update()
    return count


async def extend_client_holds(
    db: AsyncSession, client_id: int, *, now: Optional[datetime] = None
) -> Tuple[int, datetime]:
    """Push back the expiry of the client's live holds. Quantities and prices are untouched."""
    now = now or utcnow()
    expires_at = hold_expiry(now)
    try:
        res = await db.execute(
            update(ReservationModel)
            .where(ReservationModel.client_id == client_id)
            .where(ReservationModel.expires_at > now)
            .values(expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        count = int(res.rowcount or 0)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return count, expires_at


async def expire_stale_holds(db: AsyncSession, *, now: Optional[datetime] = None) -> int:
    """Delete holds whose expiry is strictly in the past; broadcast stock if any went."""
    now = now or utcnow()
    try:
        res = await db.execute(
            delete(ReservationModel)
            .where(ReservationModel.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        count = int(res.rowcount or 0)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if count:
        await publish_stock_update()
    return count
