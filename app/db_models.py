"""SQLAlchemy ORM models backing the content store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class ContentRecord(Base):
    """A persisted, enriched catalog entry."""

    __tablename__ = "contents"
    __table_args__ = (Index("ix_contents_title_year", "title_a", "year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str | None] = mapped_column(
        String(32), unique=True, nullable=True
    )
    tmdb_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    media_type: Mapped[str] = mapped_column(String(8), default="movie")
    title_a: Mapped[str] = mapped_column(String(255))
    title_b: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description_a: Mapped[str | None] = mapped_column(Text, nullable=True)
    description_b: Mapped[str | None] = mapped_column(Text, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category: Mapped[str] = mapped_column(String(16), index=True)
    tags_a: Mapped[list[str]] = mapped_column(JSON, default=list)
    tags_b: Mapped[list[str]] = mapped_column(JSON, default=list)
    providers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    force_included: Mapped[bool] = mapped_column(Boolean, default=False)
    embedding: Mapped[list[float] | None] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    cast_names: Mapped[list[str]] = mapped_column(JSON, default=list)
    director: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
