"""
Post-commit notifications.

Each publisher reads the committed state in its own short session, so callers
invoke them only after their own transaction has committed. Delivery is
best-effort: a failure here never undoes or fails the operation that
triggered it.
"""

import logging

from core.converters import beer_row_to_schema, order_to_schema, stats_to_schema
from db.database import Order as OrderModel, async_session_maker
from services.broadcaster import ORDER_UPDATE, STATS_UPDATE, STOCK_UPDATE, broadcaster
from services.ledger import stats_snapshot, stock_snapshot

logger = logging.getLogger(__name__)


async def publish_stock_update() -> None:
    try:
        async with async_session_maker() as db:
            rows = await stock_snapshot(db)
        data = [beer_row_to_schema(r).model_dump(mode="json", by_alias=True) for r in rows]
        await broadcaster.publish(STOCK_UPDATE, data)
    except Exception:
        logger.exception("Failed to publish %s", STOCK_UPDATE)


async def publish_stats_update() -> None:
    try:
        async with async_session_maker() as db:
            stats = await stats_snapshot(db)
        await broadcaster.publish(STATS_UPDATE, stats_to_schema(stats).model_dump(mode="json", by_alias=True))
    except Exception:
        logger.exception("Failed to publish %s", STATS_UPDATE)


async def publish_order_update(order: OrderModel) -> None:
    try:
        await broadcaster.publish(ORDER_UPDATE, order_to_schema(order).model_dump(mode="json", by_alias=True))
    except Exception:
        logger.exception("Failed to publish %s", ORDER_UPDATE)
