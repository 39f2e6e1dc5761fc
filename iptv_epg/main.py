from contextlib import asynccontextmanager
import asyncio
import logging

import uvicorn
from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from iptv_epg.config import settings, setup_logging
from iptv_epg.database import close_db, init_db
from iptv_epg.services import download_cache_and_fill_db, iptv_scheduler

from iptv_epg.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


async def finish_startup_refresh(task: asyncio.Task, grace_sec: float) -> None:
    """Let an in-flight startup refresh finish, cancelling it only after grace_sec"""
    if task.done():
        return

    logger.info(f"Waiting up to {grace_sec}s for initial refresh to finish...")
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=grace_sec)
    except asyncio.TimeoutError:
        task.cancel()
        logger.warning("Initial refresh still running after grace period; cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting IPTV EPG Service...")

    try:
        logger.info("Initializing database...")
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to start IPTV EPG Service: {e}", exc_info=True)
        raise

    # Startup refresh is staleness-gated and arms the periodic scheduler when done
    startup_refresh = asyncio.create_task(download_cache_and_fill_db(force=False))
    app.state.startup_refresh = startup_refresh
    logger.info("IPTV EPG Service started; initial refresh running in background")

    yield

    logger.info("Shutting down IPTV EPG Service...")

    await finish_startup_refresh(startup_refresh, settings.shutdown_grace_sec)

    try:
        iptv_scheduler.stop_iptv_refresh()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    await close_db()
    logger.info("IPTV EPG Service stopped")


app = FastAPI(
    title="IPTV EPG Service",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def run() -> None:
    """Serve the app with uvicorn"""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
