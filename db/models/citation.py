from sqlalchemy import (
    Column, String, Integer, Date, Boolean, ForeignKey,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from db.base import Base


class Citation(Base):
    __tablename__ = "citation"
    __table_args__ = (
        UniqueConstraint("external_id", name="ux_citation_external_id"),
        Index("ix_citation_publication", "publication_id"),
        Index("ix_citation_creation_date", "creation_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    publication_id = Column(
        Integer,
        ForeignKey("publication.id", ondelete="CASCADE"),
        nullable=False,
    )

    external_id = Column(String(255), nullable=False)   # OpenCitations OCI
    citing_identifier = Column(String(512))             # DOI of the citing work
    creation_date = Column(Date)
    is_self_citation = Column(Boolean, nullable=False, default=False)

    publication = relationship("Publication", back_populates="citations")
