from sqlalchemy import Column, Integer
from .database import Base


class Containing(Base):
    __tablename__ = "containings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volume = Column(Integer, nullable=False, unique=True)  # ml
