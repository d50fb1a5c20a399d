from sqlalchemy import Column, String, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from db.base import Base


class Venue(Base):
    """Conference or journal a publication appeared in."""
    __tablename__ = "venue"
    __table_args__ = (
        UniqueConstraint("external_id", name="ux_venue_external_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False)
    name = Column(String(512))

    # average h-index of the venue's authors, always in [1, 100]
    venue_value = Column(Numeric(6, 3, asdecimal=False), nullable=False, default=1.0)

    publications = relationship("Publication", back_populates="venue")
