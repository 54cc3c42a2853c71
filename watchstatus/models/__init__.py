from watchstatus.models.catalog import Show, Season, Episode
from watchstatus.models.watch_status import ShowWatchStatus, SeasonWatchStatus, EpisodeWatchStatus

__all__ = [
    "Show",
    "Season",
    "Episode",
    "ShowWatchStatus",
    "SeasonWatchStatus",
    "EpisodeWatchStatus"
]
