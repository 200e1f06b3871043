from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from schemas.fields import UtcDatetime


class ReservationRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    client_id: int = Field(alias="clientId")
    recipe_id: int = Field(alias="recipeId")
    recipe_name: Optional[str] = Field(default=None, alias="recipeName")
    containing_id: int = Field(alias="conteningId")
    volume: Optional[int] = None
    quantity: int
    price: float
    expires_at: UtcDatetime


class ReserveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: int = Field(alias="clientId")
    recipe_id: int = Field(alias="recipeId")
    containing_id: int = Field(alias="conteningId")
    quantity: int = 1


class ReserveResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reservation: ReservationRead
    expires_at: UtcDatetime = Field(alias="expiresAt")


class ReservationUpdate(BaseModel):
    quantity: int


class ReservationUpdateResponse(BaseModel):
    reservation: ReservationRead


class ClearCartResponse(BaseModel):
    count: int


class ExtendCartResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int
    expires_at: Optional[UtcDatetime] = Field(default=None, alias="expiresAt")
