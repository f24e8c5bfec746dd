from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from resmihaber.core.config import settings
from resmihaber.core.context import build_context
from resmihaber.database.connection import create_db_and_tables
from resmihaber.database.seed import seed_default_sources
from resmihaber.routers import ingestion
from resmihaber.services import get_logger, setup_logging
from resmihaber.services.control import IngestionController
from resmihaber.services.scheduler import build_scheduler

# Load environment variables
load_dotenv()

# Set up structured logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up ingestion service", version=settings.APP_VERSION)
    await create_db_and_tables()

    context = build_context(settings)
    if settings.SEED_DEFAULT_SOURCES:
        seed_default_sources(context.store)

    scheduler = build_scheduler(context)
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.warning("Scheduler disabled; jobs run only when triggered")

    app.state.context = context
    app.state.controller = IngestionController(context, scheduler)
    logger.info("All services started successfully", jobs=len(scheduler.jobs))
    yield
    # Shutdown
    logger.info("Shutting down ingestion service")
    if scheduler.running:
        await scheduler.stop()
    await context.close()
    app.state.controller = None
    logger.info("All services stopped successfully")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Polite ingestion of announcements, regulations and reference rates from Turkish official institutions",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.include_router(ingestion.router)


@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    controller = getattr(app.state, "controller", None)
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "scheduler_running": bool(controller and controller.scheduler.running),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("resmihaber.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
