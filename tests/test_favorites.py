"""Tests for watchstatus.services.favorites."""

import pytest
from sqlalchemy import func, select

from watchstatus.exceptions import NotFoundError
from watchstatus.models import Episode, EpisodeWatchStatus, SeasonWatchStatus, ShowWatchStatus
from watchstatus.services import CascadeCoordinator, FavoriteLifecycleManager
from watchstatus.status import EntityType, Outcome, WatchStatus

from conftest import (
    OTHER_PROFILE_ID,
    PAST,
    PROFILE_ID,
    SEASON_1,
    SEASON_1_EPISODES,
    SEASON_2,
    SHOW_ID,
    StaticCatalog,
    build_snapshot,
    episode_status_of,
    season_status_of,
    show_status_of,
)


async def count_rows(factory, model, profile_id=PROFILE_ID) -> int:
    async with factory() as session:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.profile_id == profile_id)
        )
        return result.scalar_one()


async def row_counts(factory, profile_id=PROFILE_ID) -> tuple[int, int, int]:
    return (
        await count_rows(factory, ShowWatchStatus, profile_id),
        await count_rows(factory, SeasonWatchStatus, profile_id),
        await count_rows(factory, EpisodeWatchStatus, profile_id),
    )


class TestAddFavorite:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_seeds_every_level_not_watched(self, session_factory, favorites):
        result = await favorites.add_favorite(PROFILE_ID, SHOW_ID)

        assert result.outcome == Outcome.OK
        assert result.affected == frozenset({(PROFILE_ID, SHOW_ID)})
        assert await row_counts(session_factory) == (1, 2, 5)
        assert await show_status_of(session_factory) == WatchStatus.NOT_WATCHED
        assert await season_status_of(session_factory, SEASON_2) == WatchStatus.NOT_WATCHED

        change = result.changes[0]
        assert change.entity_type == EntityType.SHOW
        assert change.previous is None
        assert change.current == WatchStatus.NOT_WATCHED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_is_idempotent(self, session_factory, favorited):
        result = await favorited.add_favorite(PROFILE_ID, SHOW_ID)

        assert result
        assert result.changes == []
        assert await row_counts(session_factory) == (1, 2, 5)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_refavoriting_keeps_progress(self, session_factory, coordinator, favorited):
        await coordinator.mark_episode(PROFILE_ID, SEASON_1_EPISODES[0], WatchStatus.WATCHED)

        await favorited.add_favorite(PROFILE_ID, SHOW_ID)

        assert await episode_status_of(session_factory, SEASON_1_EPISODES[0]) == WatchStatus.WATCHED
        assert await show_status_of(session_factory) == WatchStatus.WATCHING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_children(self, session_factory, favorites):
        result = await favorites.add_favorite(PROFILE_ID, SHOW_ID, seed_children=False)

        assert result
        assert await row_counts(session_factory) == (1, 0, 0)

        await favorites.add_favorite(PROFILE_ID, SHOW_ID, seed_children=True)

        assert await row_counts(session_factory) == (1, 2, 5)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_profiles_are_independent(self, session_factory, favorited):
        await favorited.add_favorite(OTHER_PROFILE_ID, SHOW_ID)

        assert await row_counts(session_factory, OTHER_PROFILE_ID) == (1, 2, 5)
        assert await row_counts(session_factory) == (1, 2, 5)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_show(self, session_factory, favorites):
        result = await favorites.add_favorite(PROFILE_ID, 999)

        assert result.outcome == Outcome.NOT_FOUND
        assert await row_counts(session_factory) == (0, 0, 0)


class TestRemoveFavorite:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_removes_all_descendants(self, session_factory, coordinator, favorited):
        result = await favorited.remove_favorite(PROFILE_ID, SHOW_ID)

        assert result
        assert await row_counts(session_factory) == (0, 0, 0)

        with pytest.raises(NotFoundError):
            await coordinator.get_watch_status(PROFILE_ID, EntityType.SHOW, SHOW_ID)
        for season_id in (SEASON_1, SEASON_2):
            with pytest.raises(NotFoundError):
                await coordinator.get_watch_status(PROFILE_ID, EntityType.SEASON, season_id)
        for episode_id in SEASON_1_EPISODES:
            with pytest.raises(NotFoundError):
                await coordinator.get_watch_status(PROFILE_ID, EntityType.EPISODE, episode_id)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_leaves_other_profiles_alone(self, session_factory, favorited):
        await favorited.add_favorite(OTHER_PROFILE_ID, SHOW_ID)

        await favorited.remove_favorite(PROFILE_ID, SHOW_ID)

        assert await row_counts(session_factory, OTHER_PROFILE_ID) == (1, 2, 5)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_not_favorited(self, favorites):
        result = await favorites.remove_favorite(PROFILE_ID, SHOW_ID)

        assert result.outcome == Outcome.NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_then_cascade_is_not_found(self, coordinator, favorited):
        await favorited.remove_favorite(PROFILE_ID, SHOW_ID)

        result = await coordinator.set_and_cascade(PROFILE_ID, SHOW_ID, WatchStatus.WATCHED)

        assert result.outcome == Outcome.NOT_FOUND


class TestNewContent:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_profiles_for_show(self, favorited):
        await favorited.add_favorite(OTHER_PROFILE_ID, SHOW_ID)

        assert await favorited.profiles_for_show(SHOW_ID) == [PROFILE_ID, OTHER_PROFILE_ID]
        assert await favorited.profiles_for_show(999) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_aired_episode_reopens_season(self, session_factory, coordinator, favorited):
        await coordinator.set_season_and_cascade(PROFILE_ID, SEASON_1, WatchStatus.WATCHED)
        assert await season_status_of(session_factory, SEASON_1) == WatchStatus.WATCHED

        async with session_factory() as session:
            session.add(Episode(
                id=106, show_id=SHOW_ID, season_id=SEASON_1, season_number=1,
                episode_number=4, title="Episode 106", air_date=PAST
            ))
            await session.commit()

        result = await favorited.sync_new_content(SHOW_ID)

        assert result
        assert (PROFILE_ID, SHOW_ID) in result.affected
        assert await episode_status_of(session_factory, 106) == WatchStatus.NOT_WATCHED
        assert await season_status_of(session_factory, SEASON_1) == WatchStatus.WATCHING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sync_covers_every_profile(self, session_factory, favorited):
        await favorited.add_favorite(OTHER_PROFILE_ID, SHOW_ID)

        result = await favorited.sync_new_content(SHOW_ID)

        assert result
        assert result.affected == frozenset({(PROFILE_ID, SHOW_ID), (OTHER_PROFILE_ID, SHOW_ID)})

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sync_without_favorites(self, favorites):
        result = await favorites.sync_new_content(SHOW_ID)

        assert result
        assert result.affected == frozenset()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sync_unknown_show(self, favorites):
        result = await favorites.sync_new_content(999)

        assert result.outcome == Outcome.NOT_FOUND


class TestCatalogCollaborator:
    """Status rows follow whatever the injected catalog reports, not the catalog tables."""

    @pytest.fixture
    def outside_catalog(self):
        return StaticCatalog(build_snapshot(50, [(500, 1, [(5000, 1, PAST), (5001, 2, PAST)])]))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_add_favorite_seeds_catalog_children(self, session_factory, outside_catalog):
        manager = FavoriteLifecycleManager(outside_catalog, session_factory)

        result = await manager.add_favorite(PROFILE_ID, 50)

        assert result
        assert await row_counts(session_factory) == (1, 1, 2)
        assert await season_status_of(session_factory, 500) == WatchStatus.NOT_WATCHED
        assert await episode_status_of(session_factory, 5000) == WatchStatus.NOT_WATCHED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cascade_and_remove(self, session_factory, outside_catalog):
        manager = FavoriteLifecycleManager(outside_catalog, session_factory)
        cascade = CascadeCoordinator(outside_catalog, session_factory)
        await manager.add_favorite(PROFILE_ID, 50)

        result = await cascade.set_and_cascade(PROFILE_ID, 50, WatchStatus.WATCHED)

        assert result
        assert await show_status_of(session_factory, 50) == WatchStatus.WATCHED
        assert await season_status_of(session_factory, 500) == WatchStatus.WATCHED
        assert await episode_status_of(session_factory, 5001) == WatchStatus.WATCHED

        assert await manager.remove_favorite(PROFILE_ID, 50)
        assert await row_counts(session_factory) == (0, 0, 0)
