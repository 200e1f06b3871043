"""
Stock ledger: what can still be reserved.

available(recipe, containing) = sum(batch quantity) - sum(unexpired hold quantity)

Nothing here is stored; every figure is derived from beer_stocks and
reservations inside the caller's transaction.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.database import (
    Beer as BeerModel,
    BeerStock as BeerStockModel,
    Containing as ContainingModel,
    Order as OrderModel,
    Recipe as RecipeModel,
    Reservation as ReservationModel,
)
from services.pricing import unit_price


def utcnow() -> datetime:
    # Columns are naive UTC timestamps.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def image_url(recipe: RecipeModel) -> Optional[str]:
    if not settings.image_base_url:
        return None
    key = recipe.image or f"{recipe.id}.png"
    return f"{settings.image_base_url.rstrip('/')}/{key}"


async def lock_batches(db: AsyncSession, recipe_id: int, containing_id: int) -> List[BeerStockModel]:
    """Lock the batch rows of one (recipe, containing) pair, oldest brew first."""
    res = await db.execute(
        select(BeerStockModel)
        .join(BeerModel, BeerModel.id == BeerStockModel.beer_id)
        .where(BeerModel.recipe_id == recipe_id)
        .where(BeerStockModel.containing_id == containing_id)
        .order_by(BeerModel.brewed_at.asc(), BeerModel.id.asc())
        .with_for_update(of=BeerStockModel)
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def stocked_quantity(db: AsyncSession, recipe_id: int, containing_id: int) -> int:
    res = await db.execute(
        select(func.coalesce(func.sum(BeerStockModel.quantity), 0))
        .join(BeerModel, BeerModel.id == BeerStockModel.beer_id)
        .where(BeerModel.recipe_id == recipe_id)
        .where(BeerStockModel.containing_id == containing_id)
    )
    return int(res.scalar() or 0)


async def held_quantity(
    db: AsyncSession,
    recipe_id: int,
    containing_id: int,
    *,
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    res = await db.execute(
        select(func.coalesce(func.sum(ReservationModel.quantity), 0))
        .where(ReservationModel.recipe_id == recipe_id)
        .where(ReservationModel.containing_id == containing_id)
        .where(ReservationModel.expires_at > now)
    )
    return int(res.scalar() or 0)


async def available_quantity(
    db: AsyncSession,
    recipe_id: int,
    containing_id: int,
    *,
    now: Optional[datetime] = None,
    lock: bool = False,
) -> int:
    """
    Units of (recipe, containing) that no active hold covers.

    With lock=True the batch rows are locked first, so a decision taken on the
    returned figure stays valid until the transaction ends.
    """
    if lock:
        await lock_batches(db, recipe_id, containing_id)
    stocked = await stocked_quantity(db, recipe_id, containing_id)
    held = await held_quantity(db, recipe_id, containing_id, now=now)
    return max(0, stocked - held)


async def stock_snapshot(
    db: AsyncSession,
    *,
    recipe_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict]:
    """Availability table: every recipe (or just `recipe_id`) with each containing it was bottled in."""
    now = now or utcnow()

    recipe_stmt = select(RecipeModel).order_by(RecipeModel.id.asc())
    if recipe_id is not None:
        recipe_stmt = recipe_stmt.where(RecipeModel.id == recipe_id)
    recipes = (await db.execute(recipe_stmt)).scalars().all()
    if not recipes:
        return []
    containings = {
        c.id: c
        for c in (await db.execute(select(ContainingModel).order_by(ContainingModel.volume.asc()))).scalars().all()
    }

    stock_stmt = (
        select(
            BeerModel.recipe_id,
            BeerStockModel.containing_id,
            func.coalesce(func.sum(BeerStockModel.quantity), 0),
        )
        .join(BeerModel, BeerModel.id == BeerStockModel.beer_id)
        .group_by(BeerModel.recipe_id, BeerStockModel.containing_id)
    )
    if recipe_id is not None:
        stock_stmt = stock_stmt.where(BeerModel.recipe_id == recipe_id)
    stock_rows = await db.execute(stock_stmt)
    stocked: Dict[tuple[int, int], int] = {(r, c): int(q) for (r, c, q) in stock_rows.all()}

    held_stmt = (
        select(
            ReservationModel.recipe_id,
            ReservationModel.containing_id,
            func.coalesce(func.sum(ReservationModel.quantity), 0),
        )
        .where(ReservationModel.expires_at > now)
        .group_by(ReservationModel.recipe_id, ReservationModel.containing_id)
    )
    if recipe_id is not None:
        held_stmt = held_stmt.where(ReservationModel.recipe_id == recipe_id)
    held_rows = await db.execute(held_stmt)
    held: Dict[tuple[int, int], int] = {(r, c): int(q) for (r, c, q) in held_rows.all()}

    out: List[Dict] = []
    for recipe in recipes:
        contenants = []
        for containing_id, containing in containings.items():
            key = (recipe.id, containing_id)
            if key not in stocked:
                continue
            contenants.append(
                {
                    "id": containing.id,
                    "volume": int(containing.volume),
                    "stock": max(0, stocked[key] - held.get(key, 0)),
                    "price": unit_price(recipe.base_price, containing.volume),
                }
            )
        total = sum(c["stock"] for c in contenants)
        out.append(
            {
                "id": recipe.id,
                "name": recipe.name,
                "color": recipe.color,
                "description": recipe.description,
                "base_price": Decimal(str(recipe.base_price)),
                "image_url": image_url(recipe),
                "contenants": contenants,
                "total_quantity": total,
                "in_stock": total > 0,
            }
        )
    return out


async def stats_snapshot(db: AsyncSession) -> Dict:
    products = (await db.execute(select(func.count(RecipeModel.id)))).scalar() or 0

    produced_ml = (
        await db.execute(
            select(func.coalesce(func.sum(BeerStockModel.initial_quantity * ContainingModel.volume), 0))
            .join(ContainingModel, ContainingModel.id == BeerStockModel.containing_id)
        )
    ).scalar() or 0

    orders = (await db.execute(select(func.count(OrderModel.id)))).scalar() or 0

    return {
        "products": int(products),
        "liters_produced": round(float(produced_ml) / 1000.0, 2),
        "orders": int(orders),
    }
