from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from core.converters import order_to_schema
from db.database import get_async_session
from schemas.orders import CheckoutRequest, CheckoutResponse, OrderRead, OrderStatusUpdate
from services import orders as order_service

router = APIRouter()
admin_router = APIRouter()


@router.post("", response_model=CheckoutResponse)
async def create_order(payload: CheckoutRequest, db: AsyncSession = Depends(get_async_session)):
    """Check out the client's cart."""
    o = await order_service.checkout(db, payload.client_id, payload.custom_amount)
    return CheckoutResponse(order=order_to_schema(o), total=float(o.amount))


@router.get("/client/{client_id}", response_model=List[OrderRead])
async def list_client_orders(client_id: int, db: AsyncSession = Depends(get_async_session)):
    orders = await order_service.list_client_orders(db, client_id)
    return [order_to_schema(o) for o in orders]


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(order_id: int, db: AsyncSession = Depends(get_async_session)):
    return order_to_schema(await order_service.get_order(db, order_id))


@router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    o = await order_service.set_order_status(db, order_id, payload.status)
    return order_to_schema(o)


@admin_router.get("/orders", response_model=List[OrderRead])
async def list_all_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_session),
):
    orders = await order_service.list_orders(db, status_filter)
    return [order_to_schema(o) for o in orders]
