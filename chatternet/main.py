import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chatternet.core.config import get_settings
from chatternet.core.exceptions import MessagingError
from chatternet.database.connection import close_mongo_connection, connect_to_mongo
from chatternet.database.indexes import ensure_indexes
from chatternet.routers.events import router as events_router
from chatternet.routers.health import router as health_router
from chatternet.routers.messages import router as messages_router
from chatternet.routers.notifications import router as notifications_router
from chatternet.routers.presence import router as presence_router
from chatternet.routers.threads import router as threads_router
from chatternet.utils.realtime_bus import close_bus


logging.basicConfig(
    level=get_settings().log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    db = await connect_to_mongo()
    await ensure_indexes(db)
    try:
        yield
    finally:
        await close_bus()
        await close_mongo_connection()


async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request_failed path=%s code=%s", request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_payload()})


def create_app() -> FastAPI:
    app = FastAPI(title=get_settings().app_name, lifespan=lifespan)
    app.add_exception_handler(MessagingError, messaging_error_handler)

    app.include_router(health_router)
    app.include_router(threads_router)
    app.include_router(messages_router)
    app.include_router(presence_router)
    app.include_router(notifications_router)
    app.include_router(events_router)
    return app


app = create_app()
