from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from core.converters import beer_row_to_schema, stats_to_schema
from db.database import get_async_session
from schemas.beers import BeerRead, StatsRead
from services.errors import NotFound
from services.ledger import stats_snapshot, stock_snapshot

router = APIRouter()
stats_router = APIRouter()


@router.get("", response_model=List[BeerRead])
async def list_beers(db: AsyncSession = Depends(get_async_session)):
    """Catalog with live availability per containing."""
    rows = await stock_snapshot(db)
    return [beer_row_to_schema(r) for r in rows]


@router.get("/{recipe_id}", response_model=BeerRead)
async def get_beer(recipe_id: int, db: AsyncSession = Depends(get_async_session)):
    rows = await stock_snapshot(db, recipe_id=recipe_id)
    if not rows:
        raise NotFound("Beer not found")
    return beer_row_to_schema(rows[0])


@stats_router.get("", response_model=StatsRead)
async def get_stats(db: AsyncSession = Depends(get_async_session)):
    return stats_to_schema(await stats_snapshot(db))
