from sqlalchemy import Column, String, Integer, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from db.base import Base


class Researcher(Base):
    __tablename__ = "researcher"
    __table_args__ = (
        UniqueConstraint("external_id", name="ux_researcher_external_id"),
        Index("ix_researcher_name", "name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False)
    name = Column(String(255))
    email = Column(String(255))

    h_index = Column(Integer, nullable=False, default=0)  # capped at 100

    authorships = relationship(
        "PublicationAuthor",
        back_populates="researcher",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
