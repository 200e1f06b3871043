from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List

from core.converters import reservation_to_schema
from db.database import get_async_session
from schemas.cart import (
    ClearCartResponse,
    ExtendCartResponse,
    ReservationRead,
    ReservationUpdate,
    ReservationUpdateResponse,
    ReserveRequest,
    ReserveResponse,
)
from services import reservations

router = APIRouter()


@router.post("/reserve", response_model=ReserveResponse)
async def reserve(payload: ReserveRequest, db: AsyncSession = Depends(get_async_session)):
    hold = await reservations.create_or_increase_hold(
        db,
        client_id=payload.client_id,
        recipe_id=payload.recipe_id,
        containing_id=payload.containing_id,
        quantity=payload.quantity,
    )
    return ReserveResponse(reservation=reservation_to_schema(hold), expires_at=hold.expires_at)


@router.post("/extend/{client_id}", response_model=ExtendCartResponse)
async def extend_cart(client_id: int, db: AsyncSession = Depends(get_async_session)):
    count, expires_at = await reservations.extend_client_holds(db, client_id)
    return ExtendCartResponse(count=count, expires_at=expires_at)


@router.patch("/reservation/{reservation_id}", response_model=ReservationUpdateResponse)
async def update_reservation(
    reservation_id: int,
    payload: ReservationUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    hold = await reservations.set_hold_quantity(db, reservation_id, payload.quantity)
    return ReservationUpdateResponse(reservation=reservation_to_schema(hold))


@router.delete("/reservation/{reservation_id}", response_model=Dict)
async def delete_reservation(reservation_id: int, db: AsyncSession = Depends(get_async_session)):
    await reservations.remove_hold(db, reservation_id)
    return {"ok": True}


@router.get("/{client_id}", response_model=List[ReservationRead])
async def get_cart(client_id: int, db: AsyncSession = Depends(get_async_session)):
    holds = await reservations.list_client_holds(db, client_id)
    return [reservation_to_schema(h) for h in holds]


@router.delete("/{client_id}", response_model=ClearCartResponse)
async def clear_cart(client_id: int, db: AsyncSession = Depends(get_async_session)):
    count = await reservations.clear_client_holds(db, client_id)
    return ClearCartResponse(count=count)
