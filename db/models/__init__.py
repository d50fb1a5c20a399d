# db/models/__init__.py
from .venue import Venue
from .researcher import Researcher
from .topic import Topic, PublicationTopic
from .publication import Publication, PublicationAuthor
from .citation import Citation
from .decay_lookup import DecayLookup
from .snapshot import (
    PublicationSnapshot,
    TopicSnapshot,
    ResearcherTopicSnapshot,
    ResearcherOverallSnapshot,
)

__all__ = [
    "Venue",
    "Researcher",
    "Topic",
    "PublicationTopic",
    "Publication",
    "PublicationAuthor",
    "Citation",
    "DecayLookup",
    "PublicationSnapshot",
    "TopicSnapshot",
    "ResearcherTopicSnapshot",
    "ResearcherOverallSnapshot",
]

# Tables every pipeline run relies on
REQUIRED_TABLES = (
    Venue.__tablename__,
    Researcher.__tablename__,
    Topic.__tablename__,
    PublicationTopic.__tablename__,
    Publication.__tablename__,
    PublicationAuthor.__tablename__,
    Citation.__tablename__,
    DecayLookup.__tablename__,
    PublicationSnapshot.__tablename__,
    TopicSnapshot.__tablename__,
    ResearcherTopicSnapshot.__tablename__,
    ResearcherOverallSnapshot.__tablename__,
)
