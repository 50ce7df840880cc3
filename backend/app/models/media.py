from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

# Association table for collection <-> metadata many-to-many
collection_to_metadata = Table(
    "collection_to_metadata",
    Base.metadata,
    Column("collection_id", Integer, ForeignKey("collections.id"), primary_key=True),
    Column("metadata_id", Integer, ForeignKey("metadata.id"), primary_key=True),
)


class Metadata(Base):
    """Canonical media record - one per (lot, source, identifier)."""

    __tablename__ = "metadata"
    __table_args__ = (
        UniqueConstraint("lot", "source", "identifier", name="unique_metadata_identifier"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    lot: Mapped[str] = mapped_column(String(20), index=True)  # book, movie, show, ...
    source: Mapped[str] = mapped_column(String(20), index=True)  # openlibrary, tmdb, ...
    identifier: Mapped[str] = mapped_column(String(100), index=True)

    title: Mapped[str] = mapped_column(String(500), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    creators: Mapped[list] = mapped_column(JSON, default=list)
    images: Mapped[list] = mapped_column(JSON, default=list)
    publish_year: Mapped[int | None] = mapped_column(Integer)
    specifics: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    collections: Mapped[list["Collection"]] = relationship(
        secondary=collection_to_metadata, back_populates="media"
    )


class Seen(Base):
    """One completed (or partially completed) viewing/reading of a media item."""

    __tablename__ = "seen"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    metadata_id: Mapped[int] = mapped_column(ForeignKey("metadata.id"), index=True)

    progress: Mapped[int] = mapped_column(Integer, default=0)  # 0-100
    finished_on: Mapped[date | None] = mapped_column(Date)
    show_season_number: Mapped[int | None] = mapped_column(Integer)
    show_episode_number: Mapped[int | None] = mapped_column(Integer)
    podcast_episode_number: Mapped[int | None] = mapped_column(Integer)

    # External id from the import source, if any
    identifier: Mapped[str | None] = mapped_column(String(100), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Review(Base):
    """User rating and/or review of a media item."""

    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    metadata_id: Mapped[int] = mapped_column(ForeignKey("metadata.id"), index=True)

    rating: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    text: Mapped[str | None] = mapped_column(Text)
    spoiler: Mapped[bool] = mapped_column(Boolean, default=False)
    posted_on: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    identifier: Mapped[str | None] = mapped_column(String(100), index=True)


class Collection(Base):
    """A named, user-owned group of media (e.g. "Watchlist")."""

    __tablename__ = "collections"
    __table_args__ = (UniqueConstraint("user_id", "name", name="unique_user_collection"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user: Mapped["User"] = relationship(back_populates="collections")
    media: Mapped[list["Metadata"]] = relationship(
        secondary=collection_to_metadata, back_populates="collections"
    )


class UserSummary(Base):
    """Precomputed per-user counts, refreshed after every import."""

    __tablename__ = "user_summaries"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    calculated_on: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# Forward references
from app.models.user import User  # noqa: E402, F811
