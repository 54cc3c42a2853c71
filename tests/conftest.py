"""Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database with the catalog of the
reference scenario loaded:

    show 1 "Scenario Show"
      season 11 (S1): episodes 101, 102, 103, all aired
      season 12 (S2): episode 104 aired, episode 105 airs in the future
"""

from collections.abc import AsyncGenerator
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from watchstatus.database import Base
from watchstatus.models import (
    Show, Season, Episode, ShowWatchStatus, SeasonWatchStatus, EpisodeWatchStatus
)
from watchstatus.services import (
    CascadeCoordinator, DbContentCatalog, FavoriteLifecycleManager, NextUnwatchedFinder
)
from watchstatus.services.catalog import (
    EpisodeInfo, SeasonInfo, SeasonSnapshot, ShowInfo, ShowSnapshot
)

PROFILE_ID = 7
OTHER_PROFILE_ID = 8
SHOW_ID = 1
SEASON_1 = 11
SEASON_2 = 12
SEASON_1_EPISODES = [101, 102, 103]
AIRED_SEASON_2_EPISODE = 104
UNAIRED_SEASON_2_EPISODE = 105

TODAY = date.today()
PAST = TODAY - timedelta(days=30)
FUTURE = TODAY + timedelta(days=30)


async def add_show(
    session: AsyncSession,
    show_id: int,
    seasons: list[tuple[int, int, list[tuple[int, int, date | None]]]],
    title: str | None = None,
    in_production: bool = False
) -> None:
    """Insert catalog rows: seasons is [(season_id, season_number, [(episode_id, episode_number, air_date)])]."""
    session.add(Show(id=show_id, title=title or f"Show {show_id}", in_production=in_production, air_date=PAST))
    for season_id, season_number, episodes in seasons:
        session.add(Season(id=season_id, show_id=show_id, season_number=season_number, air_date=PAST))
        for episode_id, episode_number, air_date in episodes:
            session.add(Episode(
                id=episode_id,
                show_id=show_id,
                season_id=season_id,
                season_number=season_number,
                episode_number=episode_number,
                title=f"Episode {episode_id}",
                air_date=air_date
            ))
    await session.commit()


def build_snapshot(
    show_id: int,
    seasons: list[tuple[int, int, list[tuple[int, int, date | None]]]],
    in_production: bool = False
) -> ShowSnapshot:
    """Catalog snapshot in the same shape ``add_show`` takes."""
    return ShowSnapshot(
        show=ShowInfo(id=show_id, in_production=in_production, air_date=PAST),
        seasons=[
            SeasonSnapshot(
                SeasonInfo(id=season_id, show_id=show_id, season_number=season_number, air_date=PAST),
                [
                    EpisodeInfo(episode_id, show_id, season_id, season_number, episode_number, air_date)
                    for episode_id, episode_number, air_date in episodes
                ],
            )
            for season_id, season_number, episodes in seasons
        ],
    )


class StaticCatalog:
    """ContentCatalog serving fixed snapshots; nothing is read from the catalog tables."""

    def __init__(self, *snapshots: ShowSnapshot):
        self.shows = {s.show.id: s for s in snapshots}

    async def get_show(self, show_id):
        snapshot = self.shows.get(show_id)
        return snapshot.show if snapshot else None

    async def list_seasons(self, show_id):
        snapshot = self.shows.get(show_id)
        return [s.season for s in snapshot.seasons] if snapshot else []

    async def list_episodes(self, season_id):
        for snapshot in self.shows.values():
            for season in snapshot.seasons:
                if season.season.id == season_id:
                    return list(season.episodes)
        return []

    async def show_id_for_season(self, season_id):
        for show_id, snapshot in self.shows.items():
            if season_id in snapshot.season_ids:
                return show_id
        return None

    async def show_id_for_episode(self, episode_id):
        for show_id, snapshot in self.shows.items():
            if episode_id in snapshot.episode_ids:
                return show_id
        return None

    async def snapshot(self, show_id):
        return self.shows.get(show_id)


async def status_of(factory: async_sessionmaker, model, key_column, key: int, profile_id: int = PROFILE_ID):
    async with factory() as session:
        result = await session.execute(
            select(model.status).where(model.profile_id == profile_id, key_column == key)
        )
        return result.scalar_one_or_none()


async def show_status_of(factory, show_id=SHOW_ID, profile_id=PROFILE_ID):
    return await status_of(factory, ShowWatchStatus, ShowWatchStatus.show_id, show_id, profile_id)


async def season_status_of(factory, season_id, profile_id=PROFILE_ID):
    return await status_of(factory, SeasonWatchStatus, SeasonWatchStatus.season_id, season_id, profile_id)


async def episode_status_of(factory, episode_id, profile_id=PROFILE_ID):
    return await status_of(factory, EpisodeWatchStatus, EpisodeWatchStatus.episode_id, episode_id, profile_id)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database with the scenario catalog.

    Yields:
        Session factory bound to the test database
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await add_show(session, SHOW_ID, [
            (SEASON_1, 1, [(101, 1, PAST), (102, 2, PAST), (103, 3, PAST)]),
            (SEASON_2, 2, [(104, 1, PAST), (105, 2, FUTURE)]),
        ], title="Scenario Show", in_production=True)

    yield factory

    await engine.dispose()


@pytest.fixture
def coordinator(session_factory) -> CascadeCoordinator:
    return CascadeCoordinator(DbContentCatalog(session_factory), session_factory)


@pytest.fixture
def favorites(session_factory) -> FavoriteLifecycleManager:
    return FavoriteLifecycleManager(DbContentCatalog(session_factory), session_factory)


@pytest.fixture
def finder(session_factory) -> NextUnwatchedFinder:
    return NextUnwatchedFinder(session_factory)


@pytest_asyncio.fixture
async def favorited(favorites) -> FavoriteLifecycleManager:
    """Scenario show favorited by PROFILE_ID with all children seeded."""
    result = await favorites.add_favorite(PROFILE_ID, SHOW_ID, seed_children=True)
    assert result
    return favorites


@pytest_asyncio.fixture
async def empty_session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """In-memory database without any tables, so every statement fails."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
