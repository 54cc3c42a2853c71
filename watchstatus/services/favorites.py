import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, insert, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from watchstatus.database import run_in_transaction, unit_of_work
from watchstatus.models import ShowWatchStatus, SeasonWatchStatus, EpisodeWatchStatus
from watchstatus.services.cascade import get_episode_statuses, get_season_statuses, recompute_show
from watchstatus.services.catalog import ContentCatalog, DbContentCatalog, ShowSnapshot
from watchstatus.status import CascadeResult, EntityType, Outcome, StatusChange, WatchStatus

logger = logging.getLogger(__name__)


async def seed_show_row(session: AsyncSession, profile_id: int, show_id: int) -> bool:
    """Insert the show row unless it exists. Returns True if a row was created."""
    result = await session.execute(
        select(ShowWatchStatus.id).where(
            ShowWatchStatus.profile_id == profile_id,
            ShowWatchStatus.show_id == show_id
        )
    )
    if result.scalar_one_or_none() is not None:
        return False

    now = datetime.now()
    await session.execute(
        insert(ShowWatchStatus).values(
            profile_id=profile_id,
            show_id=show_id,
            status=WatchStatus.NOT_WATCHED,
            created_at=now,
            updated_at=now
        )
    )
    return True


async def seed_child_rows(session: AsyncSession, profile_id: int, snapshot: ShowSnapshot) -> tuple[int, int]:
    """
    Insert NOT_WATCHED rows for every season and episode in the snapshot that
    the profile has no row for yet. Existing rows are never touched.

    Returns (seasons_created, episodes_created).
    """
    now = datetime.now()
    existing_seasons = await get_season_statuses(session, profile_id, snapshot.season_ids)
    existing_episodes = await get_episode_statuses(session, profile_id, snapshot.episode_ids)

    missing_seasons = [
        {"profile_id": profile_id, "season_id": season_id, "status": WatchStatus.NOT_WATCHED,
         "created_at": now, "updated_at": now}
        for season_id in snapshot.season_ids
        if season_id not in existing_seasons
    ]
    missing_episodes = [
        {"profile_id": profile_id, "episode_id": episode_id, "status": WatchStatus.NOT_WATCHED,
         "created_at": now, "updated_at": now}
        for episode_id in snapshot.episode_ids
        if episode_id not in existing_episodes
    ]

    if missing_seasons:
        await session.execute(insert(SeasonWatchStatus), missing_seasons)
    if missing_episodes:
        await session.execute(insert(EpisodeWatchStatus), missing_episodes)

    return len(missing_seasons), len(missing_episodes)


class FavoriteLifecycleManager:
    """Creates and removes the status row subtree of a favorited show."""

    def __init__(
        self,
        catalog: Optional[ContentCatalog] = None,
        session_factory: Optional[async_sessionmaker] = None,
        timeout: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.catalog = catalog or DbContentCatalog(session_factory)
        self.timeout = timeout

    async def _transaction(self, work, operation: str):
        return await run_in_transaction(work, operation, self.session_factory, self.timeout)

    async def add_favorite(
        self,
        profile_id: int,
        show_id: int,
        seed_children: bool = True,
        now: Optional[date] = None
    ) -> CascadeResult:
        """
        Favorite a show for a profile.

        Creates the show row and, with ``seed_children``, one NOT_WATCHED row
        per known season and episode. Idempotent: rows that already exist keep
        their status. Newly seeded children on an existing favorite are folded
        into the season and show status in the same transaction.
        """
        snapshot = await self.catalog.snapshot(show_id)
        if snapshot is None:
            logger.info(f"Cannot favorite show {show_id}: not in catalog")
            return CascadeResult.not_found()

        reason = f"Show {show_id} added to favorites"

        async def work(session: AsyncSession) -> CascadeResult:
            changes = []
            if await seed_show_row(session, profile_id, show_id):
                changes.append(StatusChange(EntityType.SHOW, show_id, None, WatchStatus.NOT_WATCHED, reason))

            if not seed_children:
                return CascadeResult.ok(profile_id, show_id, changes)

            seasons, episodes = await seed_child_rows(session, profile_id, snapshot)
            logger.info(f"Seeded {seasons} season and {episodes} episode rows for profile {profile_id}, show {show_id}")

            reconciled = await recompute_show(session, profile_id, snapshot, reason, now)
            return CascadeResult.ok(profile_id, show_id, changes + reconciled.changes)

        return await self._transaction(work, f"adding show {show_id} to favorites")

    async def remove_favorite(self, profile_id: int, show_id: int) -> CascadeResult:
        """
        Unfavorite a show: delete episode rows, then season rows, then the
        show row, in one transaction. NOT_FOUND if there was nothing to delete.

        Child rows are addressed through the catalog snapshot. If the catalog
        no longer knows the show, only the show row can be removed.
        """
        snapshot = await self.catalog.snapshot(show_id)
        if snapshot is None:
            logger.warning(f"Show {show_id} not in catalog; removing only its show row for profile {profile_id}")
        season_ids = snapshot.season_ids if snapshot else []
        episode_ids = snapshot.episode_ids if snapshot else []

        async def work(session: AsyncSession) -> CascadeResult:
            episodes = await session.execute(
                delete(EpisodeWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    EpisodeWatchStatus.profile_id == profile_id,
                    EpisodeWatchStatus.episode_id.in_(episode_ids)
                )
            )
            seasons = await session.execute(
                delete(SeasonWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    SeasonWatchStatus.profile_id == profile_id,
                    SeasonWatchStatus.season_id.in_(season_ids)
                )
            )
            show = await session.execute(
                delete(ShowWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    ShowWatchStatus.profile_id == profile_id,
                    ShowWatchStatus.show_id == show_id
                )
            )

            removed = episodes.rowcount + seasons.rowcount + show.rowcount
            if removed == 0:
                return CascadeResult.not_found()

            logger.info(
                f"Removed show {show_id} for profile {profile_id}: "
                f"{seasons.rowcount} seasons, {episodes.rowcount} episodes"
            )
            return CascadeResult.ok(profile_id, show_id)

        return await self._transaction(work, f"removing show {show_id} from favorites")

    async def profiles_for_show(self, show_id: int) -> list[int]:
        """Profiles that currently favorite the show."""
        async with unit_of_work(self.session_factory, f"listing profiles for show {show_id}") as session:
            result = await session.execute(
                select(ShowWatchStatus.profile_id)
                .where(ShowWatchStatus.show_id == show_id)
                .order_by(ShowWatchStatus.profile_id)
            )
            return list(result.scalars().all())

    async def sync_new_content(self, show_id: int, now: Optional[date] = None) -> CascadeResult:
        """
        Called after the catalog gained seasons or episodes for a show.

        Seeds rows for the new children for every profile favoriting the
        show and recomputes that profile's statuses. Each profile is its own
        transaction; profiles do not depend on each other.
        """
        snapshot = await self.catalog.snapshot(show_id)
        if snapshot is None:
            return CascadeResult.not_found()

        profile_ids = await self.profiles_for_show(show_id)
        merged = CascadeResult(Outcome.OK)
        for profile_id in profile_ids:
            merged = merged.merge(await self._sync_profile(profile_id, snapshot, now))

        logger.info(f"Synced new content for show {show_id} across {len(profile_ids)} profiles")
        return merged

    async def _sync_profile(self, profile_id: int, snapshot: ShowSnapshot, now: Optional[date]) -> CascadeResult:
        show_id = snapshot.show.id
        reason = f"New content for show {show_id}"

        async def work(session: AsyncSession) -> CascadeResult:
            seasons, episodes = await seed_child_rows(session, profile_id, snapshot)
            if seasons or episodes:
                logger.info(f"Seeded {seasons} new seasons and {episodes} new episodes for profile {profile_id}")
            return await recompute_show(session, profile_id, snapshot, reason, now)

        return await self._transaction(work, f"syncing show {show_id} for profile {profile_id}")
