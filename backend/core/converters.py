from typing import Dict

from db.database import Order as OrderModel, Reservation as ReservationModel
from schemas.beers import BeerRead, ContenantRead, StatsRead
from schemas.cart import ReservationRead
from schemas.orders import OrderItemRead, OrderRead


def beer_row_to_schema(row: Dict) -> BeerRead:
    """Convert a ledger snapshot row to the catalog schema"""
    return BeerRead(
        id=row["id"],
        name=row["name"],
        color=row.get("color"),
        description=row.get("description"),
        base_price=float(row["base_price"]),
        image_url=row.get("image_url"),
        contenants=[
            ContenantRead(id=c["id"], volume=c["volume"], stock=c["stock"], price=float(c["price"]))
            for c in row["contenants"]
        ],
        total_quantity=row["total_quantity"],
        in_stock=row["in_stock"],
    )


def stats_to_schema(stats: Dict) -> StatsRead:
    return StatsRead(
        products=stats["products"],
        liters_produced=stats["liters_produced"],
        orders=stats["orders"],
    )


def reservation_to_schema(r: ReservationModel) -> ReservationRead:
    """Convert a Reservation (recipe and containing loaded) to the cart view-model"""
    recipe = getattr(r, "recipe", None)
    containing = getattr(r, "containing", None)
    return ReservationRead(
        id=r.id,
        client_id=r.client_id,
        recipe_id=r.recipe_id,
        recipe_name=getattr(recipe, "name", None) if recipe else None,
        containing_id=r.containing_id,
        volume=int(containing.volume) if containing else None,
        quantity=int(r.quantity),
        price=float(r.price),
        expires_at=r.expires_at,
    )


def order_to_schema(o: OrderModel) -> OrderRead:
    """Convert an Order (items, their beer and containing loaded) to its schema"""
    items = []
    for it in (o.items or []):
        beer = getattr(it, "beer", None)
        recipe = getattr(beer, "recipe", None) if beer else None
        containing = getattr(it, "containing", None)
        items.append(
            OrderItemRead(
                id=it.id,
                beer_id=it.beer_id,
                recipe_id=getattr(beer, "recipe_id", None) if beer else None,
                recipe_name=getattr(recipe, "name", None) if recipe else None,
                containing_id=it.containing_id,
                volume=int(containing.volume) if containing else None,
                quantity=int(it.quantity),
                price=float(it.price),
            )
        )
    return OrderRead(
        id=o.id,
        client_id=o.client_id,
        amount=float(o.amount),
        status=o.status,
        created_at=o.created_at,
        updated_at=o.updated_at,
        items=items,
    )
