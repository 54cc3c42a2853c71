from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from watchstatus.exceptions import InvalidStatusError, NotFoundError
from watchstatus.services import CascadeCoordinator, FavoriteLifecycleManager, NextUnwatchedFinder
from watchstatus.status import CascadeResult, EntityType, Outcome, WatchStatus

router = APIRouter()

_coordinator = CascadeCoordinator()
_favorites = FavoriteLifecycleManager()
_finder = NextUnwatchedFinder()


def get_coordinator() -> CascadeCoordinator:
    return _coordinator


def get_favorites() -> FavoriteLifecycleManager:
    return _favorites


def get_finder() -> NextUnwatchedFinder:
    return _finder


class StatusUpdate(BaseModel):
    status: WatchStatus


def to_response(result: CascadeResult) -> JSONResponse:
    """Map an engine result to a response: 404 not favorited, 409 aborted cascade."""
    if result.outcome == Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Not in this profile's favorites")
    if result.outcome == Outcome.ABORTED:
        return JSONResponse(result.to_dict(), status_code=409)
    return JSONResponse(result.to_dict())


@router.put("/profiles/{profile_id}/shows/{show_id}/status")
async def update_show_status(
    profile_id: int,
    show_id: int,
    body: StatusUpdate,
    coordinator: CascadeCoordinator = Depends(get_coordinator)
):
    """Set a show's status and cascade it to seasons and episodes."""
    return to_response(await coordinator.set_and_cascade(profile_id, show_id, body.status))


@router.put("/profiles/{profile_id}/seasons/{season_id}/status")
async def update_season_status(
    profile_id: int,
    season_id: int,
    body: StatusUpdate,
    coordinator: CascadeCoordinator = Depends(get_coordinator)
):
    """Set a season's episodes from a season-level status."""
    return to_response(await coordinator.set_season_and_cascade(profile_id, season_id, body.status))


@router.put("/profiles/{profile_id}/episodes/{episode_id}/status")
async def update_episode_status(
    profile_id: int,
    episode_id: int,
    body: StatusUpdate,
    coordinator: CascadeCoordinator = Depends(get_coordinator)
):
    """Mark an episode and recompute its season and show."""
    try:
        result = await coordinator.mark_episode(profile_id, episode_id, body.status)
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return to_response(result)


@router.post("/profiles/{profile_id}/shows/{show_id}/favorite")
async def add_favorite(
    profile_id: int,
    show_id: int,
    seed_children: bool = True,
    favorites: FavoriteLifecycleManager = Depends(get_favorites)
):
    """Add a show to a profile's favorites."""
    return to_response(await favorites.add_favorite(profile_id, show_id, seed_children))


@router.delete("/profiles/{profile_id}/shows/{show_id}/favorite")
async def remove_favorite(
    profile_id: int,
    show_id: int,
    favorites: FavoriteLifecycleManager = Depends(get_favorites)
):
    """Remove a show and all its status rows from a profile."""
    return to_response(await favorites.remove_favorite(profile_id, show_id))


@router.get("/profiles/{profile_id}/{entity_type}/{entity_id}/status")
async def get_status(
    profile_id: int,
    entity_type: EntityType,
    entity_id: int,
    coordinator: CascadeCoordinator = Depends(get_coordinator)
):
    """Current watch status of a show, season or episode."""
    try:
        status = await coordinator.get_watch_status(profile_id, entity_type, entity_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "profile_id": profile_id,
        "entity_type": entity_type.value,
        "entity_id": entity_id,
        "status": status.value
    }


@router.get("/profiles/{profile_id}/next-unwatched")
async def get_next_unwatched(
    profile_id: int,
    finder: NextUnwatchedFinder = Depends(get_finder)
):
    """Continue-watching list for a profile."""
    shows = await finder.next_unwatched(profile_id)
    return {"shows": [s.to_dict() for s in shows]}


@router.post("/shows/{show_id}/sync")
async def sync_show(
    show_id: int,
    favorites: FavoriteLifecycleManager = Depends(get_favorites)
):
    """Seed and recompute every profile after the catalog gained content."""
    return to_response(await favorites.sync_new_content(show_id))
