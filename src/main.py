import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from src.api.voice.router import router as voice_router
from src.api.voice.services import build_voice_services
from src.config import settings
from src.database.db import test_db_connection
from src.shared.schemas import HealthResponse

log_level = settings.LOG_LEVEL.upper()
logging.basicConfig(
    level=log_level,
    format="%(levelname)s:%(name)s: [%(funcName)s] - %(message)s",
)

# httpx logs at INFO level for requests, which is noisy for production.
# We set it to WARNING to silence it, unless we are in DEBUG mode.
if log_level != "DEBUG":
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.debug("Starting up application...")
    if getattr(app.state, "voice", None) is None:
        app.state.voice = build_voice_services(settings)
    services = app.state.voice

    if not await test_db_connection(services.db_engine):
        logger.warning(
            "Database connection could not be established on startup."
        )
    else:
        logger.debug("Database connection successful.")
        if settings.AUTO_CREATE_TABLES:
            await services.store.initialize(services.db_engine)

    yield
    # Shutdown
    logger.info("Shutting down application...")
    await services.aclose()
    await services.db_engine.dispose()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.include_router(voice_router, prefix="/api/v1/voice", tags=["Voice"])


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """
    Checks the health of the application and its database connection.
    """
    db_ok = await test_db_connection(request.app.state.voice.db_engine)
    return HealthResponse(
        status="ok",
        db_connection="ok" if db_ok else "failed",
    )
