from datetime import date
from typing import Optional

from sqlalchemy import String, Boolean, Date, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column
from watchstatus.database import Base


class Show(Base):
    """Show metadata. Written by the content catalog, read-only here."""

    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500))
    in_production: Mapped[bool] = mapped_column(Boolean, default=False)
    air_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class Season(Base):
    """Season metadata. Written by the content catalog, read-only here."""

    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(primary_key=True)
    show_id: Mapped[int] = mapped_column(Integer, ForeignKey("shows.id"), index=True)
    season_number: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(500), nullable=True)
    air_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class Episode(Base):
    """Episode metadata. Written by the content catalog, read-only here."""

    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(primary_key=True)
    show_id: Mapped[int] = mapped_column(Integer, ForeignKey("shows.id"), index=True)
    season_id: Mapped[int] = mapped_column(Integer, ForeignKey("seasons.id"), index=True)
    season_number: Mapped[int] = mapped_column(Integer)
    episode_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(500), nullable=True)
    # NULL means the air date is unknown; such episodes are treated as unaired
    air_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
