"""Continue-watching query.

Two bounded queries: the most recently progressed shows (LIMIT in SQL) and
their next unwatched aired episodes (ROW_NUMBER per show, cut in SQL). The
profile filter is applied to the status table before it is joined to the
catalog so the join only sees one profile's rows.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from watchstatus.config import settings
from watchstatus.database import unit_of_work
from watchstatus.models import Show, Episode, EpisodeWatchStatus
from watchstatus.status import WatchStatus

logger = logging.getLogger(__name__)


@dataclass
class NextEpisode:
    episode_id: int
    season_id: int
    season_number: int
    episode_number: int
    title: Optional[str]
    air_date: date

    def to_dict(self) -> dict:
        return {
            "episode_id": self.episode_id,
            "season_id": self.season_id,
            "season_number": self.season_number,
            "episode_number": self.episode_number,
            "title": self.title,
            "air_date": self.air_date.isoformat()
        }


@dataclass
class ContinueWatchingShow:
    show_id: int
    title: str
    last_watched_at: datetime
    episodes: list[NextEpisode] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "show_id": self.show_id,
            "title": self.title,
            "last_watched_at": self.last_watched_at.isoformat(),
            "episodes": [e.to_dict() for e in self.episodes]
        }


class NextUnwatchedFinder:
    """Read-only: shows a profile is part-way through and what to watch next."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        show_limit: Optional[int] = None,
        episode_limit: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.show_limit = settings.next_unwatched_show_limit if show_limit is None else show_limit
        self.episode_limit = settings.next_unwatched_episode_limit if episode_limit is None else episode_limit

    async def next_unwatched(self, profile_id: int, now: Optional[date] = None) -> list[ContinueWatchingShow]:
        today = now or date.today()
        if isinstance(today, datetime):
            today = today.date()

        async with unit_of_work(self.session_factory, f"finding next episodes for profile {profile_id}") as session:
            profile_rows = (
                select(EpisodeWatchStatus.episode_id, EpisodeWatchStatus.status, EpisodeWatchStatus.updated_at)
                .where(EpisodeWatchStatus.profile_id == profile_id)
                .subquery()
            )
            aired = (Episode.air_date.is_not(None), Episode.air_date <= today)

            last_watched = func.max(
                case((profile_rows.c.status == WatchStatus.WATCHED, profile_rows.c.updated_at))
            )
            unwatched = func.sum(
                case((profile_rows.c.status == WatchStatus.NOT_WATCHED, 1), else_=0)
            )
            shows_query = (
                select(Show.id, Show.title, last_watched.label("last_watched_at"))
                .select_from(profile_rows)
                .join(Episode, Episode.id == profile_rows.c.episode_id)
                .join(Show, Show.id == Episode.show_id)
                .where(*aired)
                .group_by(Show.id, Show.title)
                .having(last_watched.is_not(None), unwatched > 0)
                .order_by(last_watched.desc(), Show.id)
                .limit(self.show_limit)
            )
            result = await session.execute(shows_query)
            shows = [
                ContinueWatchingShow(show_id=show_id, title=title, last_watched_at=last_watched_at)
                for show_id, title, last_watched_at in result.all()
            ]
            if not shows:
                return []

            by_show = {show.show_id: show for show in shows}
            ranked = (
                select(
                    Episode.id,
                    Episode.show_id,
                    Episode.season_id,
                    Episode.season_number,
                    Episode.episode_number,
                    Episode.title,
                    Episode.air_date,
                    func.row_number().over(
                        partition_by=Episode.show_id,
                        order_by=(Episode.season_number, Episode.episode_number)
                    ).label("episode_rank")
                )
                .select_from(profile_rows)
                .join(Episode, Episode.id == profile_rows.c.episode_id)
                .where(
                    Episode.show_id.in_(list(by_show)),
                    profile_rows.c.status == WatchStatus.NOT_WATCHED,
                    *aired
                )
                .subquery()
            )
            episodes_query = (
                select(ranked)
                .where(ranked.c.episode_rank <= self.episode_limit)
                .order_by(ranked.c.show_id, ranked.c.season_number, ranked.c.episode_number)
            )
            result = await session.execute(episodes_query)
            for row in result.all():
                by_show[row.show_id].episodes.append(NextEpisode(
                    episode_id=row.id,
                    season_id=row.season_id,
                    season_number=row.season_number,
                    episode_number=row.episode_number,
                    title=row.title,
                    air_date=row.air_date
                ))

        logger.debug(f"Profile {profile_id} has {len(shows)} shows in progress")
        return shows
