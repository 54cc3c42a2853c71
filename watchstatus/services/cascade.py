"""Atomic top-down and bottom-up watch status transitions.

Every public method runs in exactly one unit of work. Catalog metadata (air
dates, season membership) is loaded before the transaction opens and passed
in as a ``ShowSnapshot``; status rows are only ever addressed by the ids it
holds.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from watchstatus.database import run_in_transaction, unit_of_work
from watchstatus.exceptions import CascadeAbortedError, NotFoundError
from watchstatus.models import ShowWatchStatus, SeasonWatchStatus, EpisodeWatchStatus
from watchstatus.services.aggregation import (
    SeasonCounts, has_aired, season_status, show_status, status_summary
)
from watchstatus.services.catalog import ContentCatalog, DbContentCatalog, ShowSnapshot
from watchstatus.services.episode_status import (
    get_episode_status, set_episode_status, validate_episode_status
)
from watchstatus.status import (
    CascadeResult, EntityType, StatusChange, WatchStatus, collapse_to_episode_status
)

logger = logging.getLogger(__name__)


async def get_show_row_status(session: AsyncSession, profile_id: int, show_id: int) -> Optional[WatchStatus]:
    result = await session.execute(
        select(ShowWatchStatus.status).where(
            ShowWatchStatus.profile_id == profile_id,
            ShowWatchStatus.show_id == show_id
        )
    )
    return result.scalar_one_or_none()


async def get_season_row_status(session: AsyncSession, profile_id: int, season_id: int) -> Optional[WatchStatus]:
    result = await session.execute(
        select(SeasonWatchStatus.status).where(
            SeasonWatchStatus.profile_id == profile_id,
            SeasonWatchStatus.season_id == season_id
        )
    )
    return result.scalar_one_or_none()


async def get_season_statuses(
    session: AsyncSession,
    profile_id: int,
    season_ids: Iterable[int]
) -> dict[int, WatchStatus]:
    result = await session.execute(
        select(SeasonWatchStatus.season_id, SeasonWatchStatus.status).where(
            SeasonWatchStatus.profile_id == profile_id,
            SeasonWatchStatus.season_id.in_(list(season_ids))
        )
    )
    return {season_id: status for season_id, status in result.all()}


async def get_episode_statuses(
    session: AsyncSession,
    profile_id: int,
    episode_ids: Iterable[int]
) -> dict[int, WatchStatus]:
    result = await session.execute(
        select(EpisodeWatchStatus.episode_id, EpisodeWatchStatus.status).where(
            EpisodeWatchStatus.profile_id == profile_id,
            EpisodeWatchStatus.episode_id.in_(list(episode_ids))
        )
    )
    return {episode_id: status for episode_id, status in result.all()}


def diff_statuses(
    entity_type: EntityType,
    before: Mapping[int, WatchStatus],
    after: Mapping[int, WatchStatus],
    reason: str
) -> list[StatusChange]:
    """One change per entity whose row differs between two reads."""
    return [
        StatusChange(entity_type, entity_id, before.get(entity_id), current, reason)
        for entity_id, current in after.items()
        if before.get(entity_id) != current
    ]


@dataclass
class SubtreeStatuses:
    """A profile's status rows for one show, as read inside a transaction."""
    show_id: int
    show: Optional[WatchStatus]
    seasons: dict[int, WatchStatus]
    episodes: dict[int, WatchStatus]

    def changes_to(self, after: "SubtreeStatuses", reason: str) -> list[StatusChange]:
        """Top-down list of the rows that differ in ``after``."""
        shows_after = {self.show_id: after.show} if after.show is not None else {}
        return (
            diff_statuses(EntityType.SHOW, {self.show_id: self.show}, shows_after, reason)
            + diff_statuses(EntityType.SEASON, self.seasons, after.seasons, reason)
            + diff_statuses(EntityType.EPISODE, self.episodes, after.episodes, reason)
        )


async def read_subtree(session: AsyncSession, profile_id: int, snapshot: ShowSnapshot) -> SubtreeStatuses:
    return SubtreeStatuses(
        show_id=snapshot.show.id,
        show=await get_show_row_status(session, profile_id, snapshot.show.id),
        seasons=await get_season_statuses(session, profile_id, snapshot.season_ids),
        episodes=await get_episode_statuses(session, profile_id, snapshot.episode_ids),
    )


async def recompute_show(
    session: AsyncSession,
    profile_id: int,
    snapshot: ShowSnapshot,
    reason: str,
    now: Optional[date] = None
) -> CascadeResult:
    """
    Re-derive season and show rows from episode rows inside ``session``.

    Only rows whose derived status differs are written. Episodes without a
    row count as NOT_WATCHED; seasons without a row are skipped.
    """
    show_id = snapshot.show.id
    current_show = await get_show_row_status(session, profile_id, show_id)
    if current_show is None:
        return CascadeResult.not_found()

    season_statuses = await get_season_statuses(session, profile_id, snapshot.season_ids)
    episode_statuses = await get_episode_statuses(session, profile_id, snapshot.episode_ids)
    changes: list[StatusChange] = []
    timestamp = datetime.now()

    for season in snapshot.seasons:
        season_id = season.season.id
        previous = season_statuses.get(season_id)
        if previous is None:
            continue

        derived = season_status(
            ((e.air_date, episode_statuses.get(e.id, WatchStatus.NOT_WATCHED)) for e in season.episodes),
            now,
            season_id
        )
        if derived == previous:
            continue

        await session.execute(
            update(SeasonWatchStatus)
            .execution_options(synchronize_session=False)
            .where(
                SeasonWatchStatus.profile_id == profile_id,
                SeasonWatchStatus.season_id == season_id
            )
            .values(status=derived, updated_at=timestamp)
        )
        season_statuses[season_id] = derived
        changes.append(StatusChange(EntityType.SEASON, season_id, previous, derived, reason))

    counts = SeasonCounts.from_statuses(
        season_statuses[s.season.id] for s in snapshot.seasons if s.season.id in season_statuses
    )
    derived_show = show_status(counts, show_id)
    if derived_show != current_show:
        await session.execute(
            update(ShowWatchStatus)
            .execution_options(synchronize_session=False)
            .where(
                ShowWatchStatus.profile_id == profile_id,
                ShowWatchStatus.show_id == show_id
            )
            .values(status=derived_show, updated_at=timestamp)
        )
        changes.append(StatusChange(EntityType.SHOW, show_id, current_show, derived_show, reason))

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(status_summary(snapshot, season_statuses, episode_statuses, now))

    return CascadeResult.ok(profile_id, show_id, changes)


class CascadeCoordinator:
    """Orchestrates status changes across show, season and episode rows."""

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

    async def set_and_cascade(
        self,
        profile_id: int,
        show_id: int,
        status: WatchStatus,
        now: Optional[date] = None
    ) -> CascadeResult:
        """
        Set a show's status and push it down to every season and episode.

        Episodes receive the binary collapse of ``status``. If the show row
        is missing the result is NOT_FOUND; if the season or episode step
        matches nothing the whole transaction rolls back and the result is
        ABORTED. After the writes, season and show rows are re-derived in the
        same transaction so they agree with their children. The change log
        compares the subtree before and after, one entry per changed row.
        """
        status = WatchStatus(status)
        snapshot = await self.catalog.snapshot(show_id)
        if snapshot is None:
            logger.info(f"Show {show_id} not in catalog")
            return CascadeResult.not_found()

        reason = f"Show {show_id} marked as {status.value}"

        async def work(session: AsyncSession) -> CascadeResult:
            timestamp = datetime.now()
            before = await read_subtree(session, profile_id, snapshot)

            result = await session.execute(
                update(ShowWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    ShowWatchStatus.profile_id == profile_id,
                    ShowWatchStatus.show_id == show_id
                )
                .values(status=status, updated_at=timestamp)
            )
            if result.rowcount == 0:
                return CascadeResult.not_found()

            result = await session.execute(
                update(SeasonWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    SeasonWatchStatus.profile_id == profile_id,
                    SeasonWatchStatus.season_id.in_(snapshot.season_ids)
                )
                .values(status=status, updated_at=timestamp)
            )
            if result.rowcount == 0:
                raise CascadeAbortedError("seasons", {"profile_id": profile_id, "show_id": show_id})

            episode_status = collapse_to_episode_status(status)
            result = await session.execute(
                update(EpisodeWatchStatus)
                .execution_options(synchronize_session=False)
                .where(
                    EpisodeWatchStatus.profile_id == profile_id,
                    EpisodeWatchStatus.episode_id.in_(snapshot.episode_ids)
                )
                .values(status=episode_status, updated_at=timestamp)
            )
            if result.rowcount == 0:
                raise CascadeAbortedError("episodes", {"profile_id": profile_id, "show_id": show_id})

            await recompute_show(session, profile_id, snapshot, reason, now)
            after = await read_subtree(session, profile_id, snapshot)
            return CascadeResult.ok(profile_id, show_id, before.changes_to(after, reason))

        try:
            outcome = await self._transaction(work, f"cascading show {show_id} status")
        except CascadeAbortedError as e:
            logger.warning(f"{e} (profile {profile_id}, show {show_id}); rolled back")
            return CascadeResult.aborted()

        logger.info(f"Set show {show_id} to {status.value} for profile {profile_id}: {outcome.outcome.value}")
        return outcome

    async def set_season_and_cascade(
        self,
        profile_id: int,
        season_id: int,
        status: WatchStatus,
        now: Optional[date] = None
    ) -> CascadeResult:
        """
        Set every episode of a season from a season-level target, then
        re-derive the season and its show.

        UP_TO_DATE marks aired episodes WATCHED and unaired ones NOT_WATCHED;
        other targets use the binary collapse.
        """
        status = WatchStatus(status)
        show_id = await self.catalog.show_id_for_season(season_id)
        snapshot = await self.catalog.snapshot(show_id) if show_id is not None else None
        if snapshot is None:
            logger.info(f"Season {season_id} not in catalog")
            return CascadeResult.not_found()

        episodes = next((s.episodes for s in snapshot.seasons if s.season.id == season_id), [])
        reason = f"Season {season_id} marked as {status.value}"

        async def work(session: AsyncSession) -> CascadeResult:
            before = await read_subtree(session, profile_id, snapshot)
            if before.show is None or season_id not in before.seasons:
                return CascadeResult.not_found()

            timestamp = datetime.now()
            if status == WatchStatus.UP_TO_DATE:
                aired = [e.id for e in episodes if has_aired(e.air_date, now)]
                unaired = [e.id for e in episodes if not has_aired(e.air_date, now)]
                targets = [(aired, WatchStatus.WATCHED), (unaired, WatchStatus.NOT_WATCHED)]
            else:
                targets = [([e.id for e in episodes], collapse_to_episode_status(status))]

            affected = 0
            for episode_ids, episode_status in targets:
                if not episode_ids:
                    continue
                result = await session.execute(
                    update(EpisodeWatchStatus)
                    .execution_options(synchronize_session=False)
                    .where(
                        EpisodeWatchStatus.profile_id == profile_id,
                        EpisodeWatchStatus.episode_id.in_(episode_ids)
                    )
                    .values(status=episode_status, updated_at=timestamp)
                )
                affected += result.rowcount

            if affected == 0:
                raise CascadeAbortedError("episodes", {"profile_id": profile_id, "season_id": season_id})

            await recompute_show(session, profile_id, snapshot, reason, now)
            after = await read_subtree(session, profile_id, snapshot)
            return CascadeResult.ok(profile_id, snapshot.show.id, before.changes_to(after, reason))

        try:
            outcome = await self._transaction(work, f"cascading season {season_id} status")
        except CascadeAbortedError as e:
            logger.warning(f"{e} (profile {profile_id}, season {season_id}); rolled back")
            return CascadeResult.aborted()

        logger.info(f"Set season {season_id} to {status.value} for profile {profile_id}: {outcome.outcome.value}")
        return outcome

    async def recompute(self, profile_id: int, show_id: int, now: Optional[date] = None) -> CascadeResult:
        """Bottom-up: re-derive every season and the show from episode rows."""
        snapshot = await self.catalog.snapshot(show_id)
        if snapshot is None:
            logger.info(f"Show {show_id} not in catalog")
            return CascadeResult.not_found()

        reason = f"Recomputed show {show_id}"

        async def work(session: AsyncSession) -> CascadeResult:
            return await recompute_show(session, profile_id, snapshot, reason, now)

        return await self._transaction(work, f"recomputing show {show_id}")

    async def set_episode_status(self, profile_id: int, episode_id: int, status: WatchStatus) -> bool:
        """Set one episode row without touching its parents."""
        status = validate_episode_status(status)

        async def work(session: AsyncSession) -> bool:
            return await set_episode_status(session, profile_id, episode_id, status)

        return await self._transaction(work, f"setting episode {episode_id} status")

    async def mark_episode(
        self,
        profile_id: int,
        episode_id: int,
        status: WatchStatus,
        now: Optional[date] = None
    ) -> CascadeResult:
        """Set an episode and recompute its season and show in one transaction."""
        status = validate_episode_status(status)
        show_id = await self.catalog.show_id_for_episode(episode_id)
        snapshot = await self.catalog.snapshot(show_id) if show_id is not None else None
        if snapshot is None:
            logger.info(f"Episode {episode_id} not in catalog")
            return CascadeResult.not_found()

        reason = f"Episode {episode_id} marked as {status.value}"

        async def work(session: AsyncSession) -> CascadeResult:
            previous = await get_episode_status(session, profile_id, episode_id)
            if not await set_episode_status(session, profile_id, episode_id, status):
                return CascadeResult.not_found()

            result = await recompute_show(session, profile_id, snapshot, reason, now)
            if previous != status:
                result.changes.insert(0, StatusChange(EntityType.EPISODE, episode_id, previous, status, reason))
            return result

        return await self._transaction(work, f"marking episode {episode_id}")

    async def get_watch_status(
        self,
        profile_id: int,
        entity_type: EntityType,
        entity_id: int
    ) -> WatchStatus:
        """Current status row for a show, season or episode; NotFoundError if absent."""
        entity_type = EntityType(entity_type)
        async with unit_of_work(self.session_factory, f"reading {entity_type.value} status") as session:
            if entity_type == EntityType.SHOW:
                status = await get_show_row_status(session, profile_id, entity_id)
            elif entity_type == EntityType.SEASON:
                status = await get_season_row_status(session, profile_id, entity_id)
            else:
                status = await get_episode_status(session, profile_id, entity_id)

        if status is None:
            raise NotFoundError(entity_type.value, entity_id, profile_id)
        return status

    async def get_show_status(self, profile_id: int, show_id: int) -> WatchStatus:
        return await self.get_watch_status(profile_id, EntityType.SHOW, show_id)
