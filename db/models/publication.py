# publication.py

from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime, Numeric, ForeignKey,
    UniqueConstraint, Index, func
)
from sqlalchemy.orm import relationship
from db.base import Base


class Publication(Base):
    __tablename__ = "publication"
    __table_args__ = (
        UniqueConstraint("submission_id", name="ux_publication_submission_id"),
        Index("ix_publication_venue", "venue_id"),
        Index("ix_publication_date_published", "date_published"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    submission_id = Column(String(255), nullable=False)   # id in the submission system
    doi = Column(String(255))
    title = Column(Text)

    venue_id = Column(
        Integer,
        ForeignKey("venue.id", ondelete="SET NULL"),
        nullable=True,
    )

    review_score = Column(Numeric(4, 2, asdecimal=False))  # 1..5
    date_published = Column(Date)

    # cached non-self citation count and latest overall score
    citation_count = Column(Integer, nullable=False, default=0)
    overall_score = Column(Numeric(12, 3, asdecimal=False), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue", back_populates="publications")
    authors = relationship(
        "PublicationAuthor",
        back_populates="publication",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    topic_links = relationship(
        "PublicationTopic",
        back_populates="publication",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    citations = relationship(
        "Citation",
        back_populates="publication",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PublicationAuthor(Base):
    __tablename__ = "publication_author"
    __table_args__ = (
        UniqueConstraint("publication_id", "researcher_id", name="ux_publication_author"),
        Index("ix_publication_author_researcher", "researcher_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    publication_id = Column(
        Integer,
        ForeignKey("publication.id", ondelete="CASCADE"),
        nullable=False,
    )
    researcher_id = Column(
        Integer,
        ForeignKey("researcher.id", ondelete="CASCADE"),
        nullable=False,
    )

    publication = relationship("Publication", back_populates="authors")
    researcher = relationship("Researcher", back_populates="authorships")
