from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ContenantRead(BaseModel):
    id: int
    volume: int
    stock: int
    price: float


class BeerRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    color: Optional[str] = None
    description: Optional[str] = None
    base_price: float = Field(alias="basePrice")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    contenants: List[ContenantRead]
    total_quantity: int = Field(alias="totalQuantity")
    in_stock: bool = Field(alias="inStock")


class StatsRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    products: int
    liters_produced: float = Field(alias="litersProduced")
    orders: int
