# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, List, Optional

# Must be set before the app (and its engine) is imported.
_DB_DIR = tempfile.mkdtemp(prefix="brewery-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["REAPER_ENABLED"] = "false"
os.environ["IMAGE_BASE_URL"] = "https://img.example.test/beers"
os.environ["REFERENCE_VOLUME_ML"] = "1000"
os.environ["HOLD_TTL_MINUTES"] = "15"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from db.database import (  # noqa: E402
    Base,
    Beer,
    BeerStock,
    Containing,
    Recipe,
    async_session_maker,
    engine,
)
from main import app  # noqa: E402
from services.broadcaster import broadcaster  # noqa: E402


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =========================================
# Fresh schema per test
# =========================================
@pytest_asyncio.fixture(autouse=True)
async def _reset_db() -> AsyncGenerator[None, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Pooled aiosqlite connections belong to this test's loop.
    await engine.dispose()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for seeding and calling services.

    SQLite transactions start with BEGIN IMMEDIATE: commit (or roll back) any
    read made here before something else opens its own session.
    """
    async with async_session_maker() as sess:
        yield sess


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


# =========================================
# Live channel recorder
# =========================================
class RecordingConnection:
    """Collects broadcast events. Delivery is queued, so readers wait for the outboxes to drain."""

    def __init__(self) -> None:
        self.messages: List[dict] = []

    async def send_json(self, data: Any) -> None:
        self.messages.append(data)

    async def events(self, event_type: Optional[str] = None) -> List[dict]:
        await broadcaster.drain()
        return [m for m in self.messages if event_type is None or m["type"] == event_type]

    async def clear(self) -> None:
        await broadcaster.drain()
        self.messages.clear()


@pytest_asyncio.fixture
async def recorder() -> AsyncGenerator[RecordingConnection, None]:
    conn = RecordingConnection()
    broadcaster.register(conn)
    yield conn
    broadcaster.unregister(conn)


# =========================================
# Catalog seed
# =========================================
@dataclass
class Catalog:
    lager: Recipe  # 5.00 per litre: 330ml = 1.65, 500ml = 2.50
    stout: Recipe  # 8.00 per litre: 330ml = 2.64, 500ml = 4.00
    can: Containing  # 330 ml
    bottle: Containing  # 500 ml


@pytest_asyncio.fixture
async def catalog(db: AsyncSession) -> Catalog:
    lager = Recipe(name="Golden Lager", base_price=Decimal("5.00"), color="Blonde", description="Crisp lager")
    stout = Recipe(name="Midnight Stout", base_price=Decimal("8.00"), color="Dark", image="stout.png")
    can = Containing(volume=330)
    bottle = Containing(volume=500)
    db.add_all([lager, stout, can, bottle])
    await db.commit()
    return Catalog(lager=lager, stout=stout, can=can, bottle=bottle)


@pytest.fixture
def brew(db: AsyncSession):
    """brew(recipe, containing, quantity, days_ago=0) -> BeerStock (committed)."""

    async def _brew(recipe: Recipe, containing: Containing, quantity: int, *, days_ago: int = 0) -> BeerStock:
        beer = Beer(recipe_id=recipe.id, brewed_at=utcnow() - timedelta(days=days_ago))
        db.add(beer)
        await db.flush()
        stock = BeerStock(
            beer_id=beer.id,
            containing_id=containing.id,
            initial_quantity=quantity,
            quantity=quantity,
        )
        db.add(stock)
        await db.commit()
        return stock

    return _brew
