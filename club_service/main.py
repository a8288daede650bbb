"""
Club Community Service application entry point
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import mongodb
from .kafka_producer import kafka_producer
from .kafka_consumer import kafka_consumer
from .application.services import CommentCountUpdater
from .infrastructure.repositories import MongoTransactionRunner
from .domain.exceptions import ClubServiceError
from .api.routes import admin_router, community_router, journeys_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await mongodb.connect()
    await kafka_producer.start()
    # Without a broker the service applies comment counts inline
    await kafka_consumer.start(CommentCountUpdater(MongoTransactionRunner(mongodb)))
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} ready on {settings.HOST}:{settings.PORT}")

    try:
        yield
    finally:
        await kafka_consumer.stop()
        await kafka_producer.stop()
        await mongodb.disconnect()
        logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Club community feeds, comments and journeys",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClubServiceError)
async def club_service_error_handler(request: Request, exc: ClubServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


for router in (community_router, journeys_router, admin_router):
    app.include_router(router)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "kafka": kafka_producer.producer is not None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("club_service.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
