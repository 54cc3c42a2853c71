"""Read-only access to content metadata.

The catalog tables are owned by the ingestion side of the system; the engine
only needs ids, air dates, ordering and the in-production flag. Everything a
recompute needs is gathered up front in a ``ShowSnapshot`` so no metadata
lookups happen while a status transaction is open.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from watchstatus.database import async_session, unit_of_work
from watchstatus.models import Show, Season, Episode


@dataclass(frozen=True)
class ShowInfo:
    id: int
    in_production: bool
    air_date: Optional[date]


@dataclass(frozen=True)
class SeasonInfo:
    id: int
    show_id: int
    season_number: int
    air_date: Optional[date]


@dataclass(frozen=True)
class EpisodeInfo:
    id: int
    show_id: int
    season_id: int
    season_number: int
    episode_number: int
    air_date: Optional[date]


@dataclass
class SeasonSnapshot:
    season: SeasonInfo
    episodes: list[EpisodeInfo] = field(default_factory=list)


@dataclass
class ShowSnapshot:
    show: ShowInfo
    seasons: list[SeasonSnapshot] = field(default_factory=list)

    @property
    def season_ids(self) -> list[int]:
        return [s.season.id for s in self.seasons]

    @property
    def episode_ids(self) -> list[int]:
        return [e.id for s in self.seasons for e in s.episodes]


class ContentCatalog(Protocol):
    """Metadata the engine consumes. Never written by the engine."""

    async def get_show(self, show_id: int) -> Optional[ShowInfo]: ...

    async def list_seasons(self, show_id: int) -> list[SeasonInfo]: ...

    async def list_episodes(self, season_id: int) -> list[EpisodeInfo]: ...

    async def show_id_for_season(self, season_id: int) -> Optional[int]: ...

    async def show_id_for_episode(self, episode_id: int) -> Optional[int]: ...

    async def snapshot(self, show_id: int) -> Optional[ShowSnapshot]: ...


def _show_info(row: Show) -> ShowInfo:
    return ShowInfo(id=row.id, in_production=bool(row.in_production), air_date=row.air_date)


def _season_info(row: Season) -> SeasonInfo:
    return SeasonInfo(
        id=row.id,
        show_id=row.show_id,
        season_number=row.season_number,
        air_date=row.air_date
    )


def _episode_info(row: Episode) -> EpisodeInfo:
    return EpisodeInfo(
        id=row.id,
        show_id=row.show_id,
        season_id=row.season_id,
        season_number=row.season_number,
        episode_number=row.episode_number,
        air_date=row.air_date
    )


class DbContentCatalog:
    """ContentCatalog backed by the catalog tables in the same database."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session

    async def get_show(self, show_id: int) -> Optional[ShowInfo]:
        async with unit_of_work(self.session_factory, f"loading show {show_id}") as session:
            show = await session.get(Show, show_id)
            return _show_info(show) if show else None

    async def list_seasons(self, show_id: int) -> list[SeasonInfo]:
        async with unit_of_work(self.session_factory, f"listing seasons of show {show_id}") as session:
            result = await session.execute(
                select(Season).where(Season.show_id == show_id).order_by(Season.season_number)
            )
            return [_season_info(s) for s in result.scalars().all()]

    async def list_episodes(self, season_id: int) -> list[EpisodeInfo]:
        async with unit_of_work(self.session_factory, f"listing episodes of season {season_id}") as session:
            result = await session.execute(
                select(Episode).where(Episode.season_id == season_id).order_by(Episode.episode_number)
            )
            return [_episode_info(e) for e in result.scalars().all()]

    async def show_id_for_season(self, season_id: int) -> Optional[int]:
        async with unit_of_work(self.session_factory, f"resolving season {season_id}") as session:
            result = await session.execute(select(Season.show_id).where(Season.id == season_id))
            return result.scalar_one_or_none()

    async def show_id_for_episode(self, episode_id: int) -> Optional[int]:
        async with unit_of_work(self.session_factory, f"resolving episode {episode_id}") as session:
            result = await session.execute(select(Episode.show_id).where(Episode.id == episode_id))
            return result.scalar_one_or_none()

    async def snapshot(self, show_id: int) -> Optional[ShowSnapshot]:
        """Show, seasons and episodes in two queries instead of one per season."""
        async with unit_of_work(self.session_factory, f"loading catalog snapshot of show {show_id}") as session:
            show = await session.get(Show, show_id)
            if not show:
                return None

            result = await session.execute(
                select(Season).where(Season.show_id == show_id).order_by(Season.season_number)
            )
            seasons = [_season_info(s) for s in result.scalars().all()]

            result = await session.execute(
                select(Episode)
                .where(Episode.season_id.in_(select(Season.id).where(Season.show_id == show_id)))
                .order_by(Episode.season_number, Episode.episode_number)
            )
            episodes_by_season: dict[int, list[EpisodeInfo]] = defaultdict(list)
            for episode in result.scalars().all():
                episodes_by_season[episode.season_id].append(_episode_info(episode))

            return ShowSnapshot(
                show=_show_info(show),
                seasons=[SeasonSnapshot(s, episodes_by_season.get(s.id, [])) for s in seasons]
            )
