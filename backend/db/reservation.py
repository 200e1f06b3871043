from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Reservation(Base):
    """A client's time-limited hold on units of one recipe in one containing."""
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("client_id", "recipe_id", "containing_id", name="ux_reservations_client_recipe_containing"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, nullable=False, index=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    containing_id = Column(Integer, ForeignKey("containings.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # unit price frozen when the hold was created
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    recipe = relationship("Recipe")
    containing = relationship("Containing")
