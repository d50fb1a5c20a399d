# snapshot.py
# Point-in-time values, one row per (entity, snapshot_date).

from sqlalchemy import (
    Column, Integer, Date, Numeric, ForeignKey,
    UniqueConstraint, Index
)
from db.base import Base


class PublicationSnapshot(Base):
    __tablename__ = "publication_snapshot"
    __table_args__ = (
        UniqueConstraint("publication_id", "snapshot_date", name="ux_publication_snapshot"),
        Index("ix_publication_snapshot_date", "snapshot_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    publication_id = Column(
        Integer,
        ForeignKey("publication.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    value = Column(Numeric(12, 3, asdecimal=False), nullable=False)


class TopicSnapshot(Base):
    __tablename__ = "topic_snapshot"
    __table_args__ = (
        UniqueConstraint("topic_id", "snapshot_date", name="ux_topic_snapshot"),
        Index("ix_topic_snapshot_date", "snapshot_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_id = Column(
        Integer,
        ForeignKey("topic.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    mean_value = Column(Numeric(12, 3, asdecimal=False), nullable=False)


class ResearcherTopicSnapshot(Base):
    __tablename__ = "researcher_topic_snapshot"
    __table_args__ = (
        UniqueConstraint(
            "researcher_id",
            "topic_id",
            "snapshot_date",
            name="ux_researcher_topic_snapshot",
        ),
        Index("ix_researcher_topic_snapshot_date", "snapshot_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    researcher_id = Column(
        Integer,
        ForeignKey("researcher.id", ondelete="CASCADE"),
        nullable=False,
    )
    topic_id = Column(
        Integer,
        ForeignKey("topic.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    mean_value = Column(Numeric(12, 3, asdecimal=False), nullable=False)


class ResearcherOverallSnapshot(Base):
    __tablename__ = "researcher_overall_snapshot"
    __table_args__ = (
        UniqueConstraint("researcher_id", "snapshot_date", name="ux_researcher_overall_snapshot"),
        Index("ix_researcher_overall_snapshot_date", "snapshot_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    researcher_id = Column(
        Integer,
        ForeignKey("researcher.id", ondelete="CASCADE"),
        nullable=False,
    )
    snapshot_date = Column(Date, nullable=False)
    mean_value = Column(Numeric(12, 3, asdecimal=False), nullable=False)
