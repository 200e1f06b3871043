"""
Physical stock.

- Beer: one brewed lot of a recipe
- BeerStock: units of that lot per containing; quantity only ever goes down
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Beer(Base):
    __tablename__ = "beers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=False, index=True)
    brewed_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    recipe = relationship("Recipe", back_populates="beers")
    stocks = relationship("BeerStock", back_populates="beer", cascade="all, delete-orphan")


class BeerStock(Base):
    __tablename__ = "beer_stocks"
    __table_args__ = (
        UniqueConstraint("beer_id", "containing_id", name="ux_beer_stocks_beer_containing"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    beer_id = Column(Integer, ForeignKey("beers.id", ondelete="CASCADE"), nullable=False, index=True)
    containing_id = Column(Integer, ForeignKey("containings.id", ondelete="RESTRICT"), nullable=False, index=True)

    initial_quantity = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)

    beer = relationship("Beer", back_populates="stocks")
    containing = relationship("Containing")
