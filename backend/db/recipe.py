from sqlalchemy import Column, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from .database import Base


class Recipe(Base):
    """Catalog entry. base_price is for the reference volume (see settings)."""
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    base_price = Column(Numeric(10, 2), nullable=False)
    color = Column(String, nullable=True)  # Blonde | Amber | Brown | Dark
    description = Column(Text, nullable=True)
    image = Column(String, nullable=True)  # object key in the image bucket

    beers = relationship("Beer", back_populates="recipe")
