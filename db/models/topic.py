from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from db.base import Base


class Topic(Base):
    __tablename__ = "topic"
    __table_args__ = (
        UniqueConstraint("name", name="ux_topic_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    publication_links = relationship(
        "PublicationTopic",
        back_populates="topic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PublicationTopic(Base):
    __tablename__ = "publication_topic"
    __table_args__ = (
        UniqueConstraint("publication_id", "topic_id", name="ux_publication_topic"),
        Index("ix_publication_topic_topic", "topic_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    publication_id = Column(
        Integer,
        ForeignKey("publication.id", ondelete="CASCADE"),
        nullable=False,
    )
    topic_id = Column(
        Integer,
        ForeignKey("topic.id", ondelete="CASCADE"),
        nullable=False,
    )

    publication = relationship("Publication", back_populates="topic_links")
    topic = relationship("Topic", back_populates="publication_links")
