from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from ..database import Base
from .user import new_id


class Category(str, Enum):
    TUTORIAL = "tutorial"
    TECH = "tech"
    DATASET = "dataset"
    CODE = "code"


post_tags = Table(
    "post_tags",
    Base.metadata,
    Column("post_id", String(36), ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    """A label shared between posts, unique by name."""

    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, unique=True, index=True, nullable=False)


class Post(Base):
    """A published article written by a user."""

    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    published = Column(Boolean, default=True, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    likes = Column(Integer, default=0, nullable=False)
    comments_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    author = relationship("User", lazy="joined")
    tags = relationship("Tag", secondary=post_tags, lazy="selectin", order_by="Tag.name")
