import asyncio
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

"""
Seed demo data (containings, recipes, brewed batches with stock).

Idempotent: re-running updates recipe prices and only brews the demo batches
that are missing.

This script can be run from either:
- backend/: `uv run python scripts/seed_demo_data.py`
- repo root: `uv run python backend/scripts/seed_demo_data.py`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from db.database import (
    async_session_maker,
    create_db_and_tables,
    Beer,
    BeerStock,
    Containing,
    Recipe,
)

CONTAINING_VOLUMES = [330, 500, 750]

RECIPES = [
    # name, base price per litre, color, description
    ("Cosmic Haze", Decimal("7.50"), "Blonde", "Hazy IPA, tropical hops and a soft bitter finish."),
    ("Midnight Stout", Decimal("8.00"), "Dark", "Roasted malt, coffee and dark chocolate."),
    ("Golden Lager", Decimal("5.50"), "Blonde", "Crisp, clean, cold-fermented lager."),
    ("Amber Trail Ale", Decimal("6.50"), "Amber", "Caramel malt balanced by earthy hops."),
]

# recipe name -> list of (days ago brewed, {volume: units})
BATCHES = {
    "Cosmic Haze": [(30, {330: 24, 500: 12}), (7, {330: 48, 750: 6})],
    "Midnight Stout": [(45, {500: 18, 750: 10})],
    "Golden Lager": [(14, {330: 60})],
    "Amber Trail Ale": [(20, {330: 30, 500: 20}), (3, {500: 24})],
}


async def get_or_create_containing(session, volume: int) -> Containing:
    result = await session.execute(select(Containing).where(Containing.volume == volume))
    containing = result.scalar_one_or_none()
    if containing:
        return containing

    containing = Containing(volume=volume)
    session.add(containing)
    await session.flush()
    return containing


async def upsert_recipe(session, name: str, base_price: Decimal, color: str, description: str) -> Recipe:
    result = await session.execute(
        select(Recipe).where(func.lower(Recipe.name) == name.strip().lower())
    )
    recipe = result.scalar_one_or_none()
    if recipe:
        # Keep price up-to-date if you re-run seed with new values
        recipe.base_price = base_price
        recipe.color = color
        recipe.description = description
        await session.flush()
        return recipe

    recipe = Recipe(name=name.strip(), base_price=base_price, color=color, description=description)
    session.add(recipe)
    await session.flush()
    return recipe


async def brew_batch(session, recipe: Recipe, brewed_at: datetime, units_by_containing: dict[int, int]) -> None:
    existing = await session.execute(
        select(Beer).where(Beer.recipe_id == recipe.id, Beer.brewed_at == brewed_at)
    )
    if existing.scalar_one_or_none():
        return

    beer = Beer(recipe_id=recipe.id, brewed_at=brewed_at)
    session.add(beer)
    await session.flush()
    for containing_id, units in units_by_containing.items():
        session.add(
            BeerStock(beer_id=beer.id, containing_id=containing_id, initial_quantity=units, quantity=units)
        )
    await session.flush()


async def seed() -> None:
    await create_db_and_tables()
    # Whole days so that re-runs find the same batches
    today = datetime.now(timezone.utc).replace(tzinfo=None, hour=0, minute=0, second=0, microsecond=0)

    async with async_session_maker() as session:
        containings = {v: await get_or_create_containing(session, v) for v in CONTAINING_VOLUMES}

        for name, base_price, color, description in RECIPES:
            recipe = await upsert_recipe(session, name, base_price, color, description)
            for days_ago, units in BATCHES.get(name, []):
                await brew_batch(
                    session,
                    recipe,
                    today - timedelta(days=days_ago),
                    {containings[v].id: n for v, n in units.items()},
                )

        await session.commit()
    print(f"Seeded {len(CONTAINING_VOLUMES)} containings, {len(RECIPES)} recipes")


if __name__ == "__main__":
    asyncio.run(seed())
