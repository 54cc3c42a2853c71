from watchstatus.routers.watch_status import router as watch_status_router

__all__ = ["watch_status_router"]
