"""
SQLAlchemy ORM models for the Glossa database.
Articles own paragraphs (split into sentences), annotations and generated images.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Boolean,
    JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
import uuid

from app.database import Base


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# Enums
class UserRole(str, enum.Enum):
    """Roles a user account can hold."""

    USER = "user"
    ADMIN = "admin"


class AnnotationType(str, enum.Enum):
    """Known annotation kinds. The column stays a plain string so clients can add their own."""

    TRANSLATION = "translation"
    GRAMMAR = "grammar"
    EXPLAIN = "explain"
    ROOT = "root"
    NOTE = "note"


# Models
class User(Base):
    """User account with bcrypt password and the currently valid refresh token."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    need_change_password = Column(Boolean, nullable=False, default=False)
    refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    articles = relationship("Article", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)


class Article(Base):
    """Article authored by a user. ``content`` holds the rich block structure."""

    __tablename__ = "articles"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    content = Column(JSON, nullable=False)  # {"version": ..., "blocks": [...]}
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    author = relationship("User", back_populates="articles")
    paragraphs = relationship(
        "Paragraph",
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Paragraph.order",
    )
    annotations = relationship("Annotation", back_populates="article", cascade="all, delete-orphan", passive_deletes=True)
    generated_images = relationship(
        "GeneratedImage", back_populates="article", cascade="all, delete-orphan", passive_deletes=True
    )


class Paragraph(Base):
    """Ordered paragraph of an article."""

    __tablename__ = "paragraphs"

    id = Column(String(36), primary_key=True, default=new_id)
    article_id = Column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    article = relationship("Article", back_populates="paragraphs")
    sentences = relationship(
        "Sentence",
        back_populates="paragraph",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Sentence.order",
    )
    generated_images = relationship(
        "GeneratedImage", back_populates="paragraph", cascade="all, delete-orphan", passive_deletes=True
    )


class Sentence(Base):
    """Sentence of a paragraph; ``annotations`` stores the inline-annotated text."""

    __tablename__ = "sentences"

    id = Column(String(36), primary_key=True, default=new_id)
    paragraph_id = Column(String(36), ForeignKey("paragraphs.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    annotations = Column(JSON, nullable=True)  # {"annotatedText": ..., "lastUpdated": ...}

    # Relationships
    paragraph = relationship("Paragraph", back_populates="sentences")


class Annotation(Base):
    """Annotation anchored to a span inside one content block of an article."""

    __tablename__ = "annotations"

    id = Column(String(36), primary_key=True, default=new_id)
    article_id = Column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    block_id = Column(String(255), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    selected_text = Column(Text, nullable=False)
    result = Column(Text, nullable=False)
    span = Column(JSON, nullable=False)  # startElement, startOffset, endElement, endOffset
    root_result = Column(JSON, nullable=True)  # structured word-root analysis
    metadata_json = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    article = relationship("Article", back_populates="annotations")


class GeneratedImage(Base):
    """Illustration generated for a paragraph and stored on Cloudinary."""

    __tablename__ = "generated_images"

    id = Column(String(36), primary_key=True, default=new_id)
    paragraph_id = Column(String(36), ForeignKey("paragraphs.id", ondelete="CASCADE"), nullable=False, index=True)
    article_id = Column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String(1024), nullable=False)
    prompt = Column(Text, nullable=False)
    selected_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    paragraph = relationship("Paragraph", back_populates="generated_images")
    article = relationship("Article", back_populates="generated_images")
