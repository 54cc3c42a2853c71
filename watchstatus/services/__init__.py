from watchstatus.services.cascade import CascadeCoordinator
from watchstatus.services.catalog import ContentCatalog, DbContentCatalog
from watchstatus.services.favorites import FavoriteLifecycleManager
from watchstatus.services.next_unwatched import NextUnwatchedFinder

__all__ = [
    "CascadeCoordinator",
    "ContentCatalog",
    "DbContentCatalog",
    "FavoriteLifecycleManager",
    "NextUnwatchedFinder"
]
