from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from schemas.fields import UtcDatetime


class OrderItemRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    beer_id: int = Field(alias="beerId")
    recipe_id: Optional[int] = Field(default=None, alias="recipeId")
    recipe_name: Optional[str] = Field(default=None, alias="recipeName")
    containing_id: int = Field(alias="conteningId")
    volume: Optional[int] = None
    quantity: int
    price: float


class OrderRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    client_id: int = Field(alias="clientId")
    amount: float
    status: str
    created_at: Optional[UtcDatetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[UtcDatetime] = Field(default=None, alias="updatedAt")
    items: List[OrderItemRead]


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: int = Field(alias="clientId")
    custom_amount: Optional[float] = Field(default=None, alias="customAmount")


class CheckoutResponse(BaseModel):
    order: OrderRead
    total: float


class OrderStatusUpdate(BaseModel):
    status: str
