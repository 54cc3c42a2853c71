import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from watchstatus.exceptions import InvalidStatusError
from watchstatus.models import EpisodeWatchStatus
from watchstatus.status import EPISODE_STATUSES, EntityType, WatchStatus

logger = logging.getLogger(__name__)


def validate_episode_status(status: str) -> WatchStatus:
    """Episodes are binary: only WATCHED and NOT_WATCHED are accepted."""
    try:
        value = WatchStatus(status)
    except ValueError:
        raise InvalidStatusError(str(status), EntityType.EPISODE.value)
    if value not in EPISODE_STATUSES:
        raise InvalidStatusError(value.value, EntityType.EPISODE.value)
    return value


async def set_episode_status(
    session: AsyncSession,
    profile_id: int,
    episode_id: int,
    status: WatchStatus
) -> bool:
    """
    Set one episode row for a profile.

    Returns False when no row matched, i.e. the profile does not favorite the
    show the episode belongs to. Season and show rows are left alone; call
    the cascade coordinator's recompute afterwards.
    """
    status = validate_episode_status(status)
    result = await session.execute(
        update(EpisodeWatchStatus)
        .execution_options(synchronize_session=False)
        .where(
            EpisodeWatchStatus.profile_id == profile_id,
            EpisodeWatchStatus.episode_id == episode_id
        )
        .values(status=status, updated_at=datetime.now())
    )
    if result.rowcount == 0:
        logger.info(f"No episode row for profile {profile_id}, episode {episode_id}")
        return False
    return True


async def get_episode_status(
    session: AsyncSession,
    profile_id: int,
    episode_id: int
) -> Optional[WatchStatus]:
    result = await session.execute(
        select(EpisodeWatchStatus.status).where(
            EpisodeWatchStatus.profile_id == profile_id,
            EpisodeWatchStatus.episode_id == episode_id
        )
    )
    return result.scalar_one_or_none()
