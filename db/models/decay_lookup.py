from sqlalchemy import Column, Integer, Float

from db.base import Base


class DecayLookup(Base):
    """days elapsed -> 0.5 ** (days / half-life), seeded once by init_db."""
    __tablename__ = "decay_lookup"

    days = Column(Integer, primary_key=True, autoincrement=False)
    decay_factor = Column(Float, nullable=False)
