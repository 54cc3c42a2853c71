from datetime import datetime

from sqlalchemy import Enum, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from watchstatus.database import Base
from watchstatus.status import WatchStatus


def _status_column():
    return mapped_column(
        Enum(WatchStatus, native_enum=False, length=20),
        default=WatchStatus.NOT_WATCHED
    )


class ShowWatchStatus(Base):
    """A profile's watch status for a favorited show."""

    __tablename__ = "show_watch_status"
    __table_args__ = (UniqueConstraint("profile_id", "show_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, index=True)
    show_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[WatchStatus] = _status_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class SeasonWatchStatus(Base):
    """A profile's watch status for one season of a favorited show."""

    __tablename__ = "season_watch_status"
    __table_args__ = (UniqueConstraint("profile_id", "season_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, index=True)
    season_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[WatchStatus] = _status_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class EpisodeWatchStatus(Base):
    """A profile's watch status for one episode. Only NOT_WATCHED or WATCHED."""

    __tablename__ = "episode_watch_status"
    __table_args__ = (UniqueConstraint("profile_id", "episode_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    profile_id: Mapped[int] = mapped_column(Integer, index=True)
    episode_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[WatchStatus] = _status_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)
