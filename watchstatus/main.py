import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from watchstatus.config import settings
from watchstatus.database import init_db
from watchstatus.exceptions import InfrastructureError
from watchstatus.routers import watch_status_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    await init_db()
    yield


app = FastAPI(title="Watch Status", lifespan=lifespan)

app.include_router(watch_status_router, tags=["watch-status"])


@app.exception_handler(InfrastructureError)
async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
    """Storage failures become a generic 500; details stay in the log."""
    logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}")
    return JSONResponse({"detail": "Internal error"}, status_code=500)
