"""Pure aggregation rules for season and show watch status.

Nothing in here touches the database. Callers fetch rows, hand the statuses
over and persist whatever comes back.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from watchstatus.services.catalog import ShowSnapshot
from watchstatus.status import WatchStatus

logger = logging.getLogger(__name__)


def _today(now: Optional[date]) -> date:
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def has_aired(air_date: Optional[date], now: Optional[date] = None) -> bool:
    """An unknown air date counts as not aired."""
    return air_date is not None and air_date <= _today(now)


def season_status(
    episodes: Iterable[tuple[Optional[date], WatchStatus]],
    now: Optional[date] = None,
    season_id: Optional[int] = None
) -> WatchStatus:
    """
    Derive a season's status from its episodes' (air_date, status) pairs.

    Every episode watched, aired or not -> WATCHED. No aired episodes ->
    NOT_WATCHED. All aired watched -> WATCHED, or UP_TO_DATE while unwatched
    unaired episodes remain. Some aired watched -> WATCHING.
    """
    today = _today(now)
    aired = 0
    unaired = 0
    watched_aired = 0
    watched_unaired = 0

    for air_date, status in episodes:
        watched = status == WatchStatus.WATCHED
        if has_aired(air_date, today):
            aired += 1
            watched_aired += watched
        else:
            unaired += 1
            watched_unaired += watched

    if aired == 0 and unaired == 0:
        logger.warning(f"Aggregation anomaly: season {season_id} has no known episodes, using NOT_WATCHED")
        return WatchStatus.NOT_WATCHED

    # a top-down WATCHED marks unaired episodes too
    if watched_aired + watched_unaired == aired + unaired:
        return WatchStatus.WATCHED

    if aired == 0:
        return WatchStatus.NOT_WATCHED

    # all aired watched, some unaired still unwatched
    if watched_aired == aired:
        return WatchStatus.UP_TO_DATE

    if watched_aired > 0:
        return WatchStatus.WATCHING

    return WatchStatus.NOT_WATCHED


@dataclass(frozen=True)
class SeasonCounts:
    """Season statuses of one show, bucketed."""
    watched: int = 0
    watching: int = 0
    not_watched: int = 0
    up_to_date: int = 0

    @property
    def total(self) -> int:
        return self.watched + self.watching + self.not_watched + self.up_to_date

    @classmethod
    def from_statuses(cls, statuses: Iterable[WatchStatus]) -> "SeasonCounts":
        buckets = {status: 0 for status in WatchStatus}
        for status in statuses:
            buckets[WatchStatus(status)] += 1
        return cls(
            watched=buckets[WatchStatus.WATCHED],
            watching=buckets[WatchStatus.WATCHING],
            not_watched=buckets[WatchStatus.NOT_WATCHED],
            up_to_date=buckets[WatchStatus.UP_TO_DATE],
        )


def show_status(counts: SeasonCounts, show_id: Optional[int] = None) -> WatchStatus:
    """
    Derive a show's status from its season status counts.

    Rules are checked in order and the first match wins:
    - no seasons -> NOT_WATCHED
    - every season WATCHED -> WATCHED
    - every season WATCHED or UP_TO_DATE, at least one UP_TO_DATE -> UP_TO_DATE
    - any season WATCHING, or WATCHED mixed with NOT_WATCHED -> WATCHING
    - otherwise NOT_WATCHED
    """
    if counts.total == 0:
        logger.warning(f"Aggregation anomaly: show {show_id} has no season statuses, using NOT_WATCHED")
        return WatchStatus.NOT_WATCHED

    if counts.watched == counts.total:
        return WatchStatus.WATCHED

    if counts.watched + counts.up_to_date == counts.total and counts.up_to_date > 0:
        return WatchStatus.UP_TO_DATE

    if counts.watching > 0 or (counts.watched > 0 and counts.not_watched > 0):
        return WatchStatus.WATCHING

    return WatchStatus.NOT_WATCHED


def status_summary(
    snapshot: ShowSnapshot,
    season_statuses: Mapping[int, WatchStatus],
    episode_statuses: Mapping[int, WatchStatus],
    now: Optional[date] = None
) -> str:
    """Multi-line progress summary of a show for debug logging."""
    today = _today(now)
    counts = SeasonCounts.from_statuses(
        season_statuses[s.season.id] for s in snapshot.seasons if s.season.id in season_statuses
    )
    lines = [
        f"Show {snapshot.show.id} - Status: {show_status(counts, snapshot.show.id).value}",
        f"  In Production: {snapshot.show.in_production}",
        f"  Seasons: {len(snapshot.seasons)}",
    ]

    for season in snapshot.seasons:
        status = season_statuses.get(season.season.id)
        aired = [e for e in season.episodes if has_aired(e.air_date, today)]
        watched = [e for e in aired if episode_statuses.get(e.id) == WatchStatus.WATCHED]
        lines.append(f"  Season {season.season.season_number} ({season.season.id}) - Status: "
                     f"{status.value if status else 'NO ROW'}")
        lines.append(f"    Progress: {len(watched)}/{len(aired)} aired episodes watched "
                     f"({len(season.episodes) - len(aired)} unaired)")

    return "\n".join(lines)
