"""
ShopSync - Shopify catalog and order synchronization
FastAPI Application Entry Point
"""
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from app.core import settings, engine, Base
from app.core.log import configure_logging
from app.api.router import api_router
from app.jobs import start_scheduler, stop_scheduler

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} up, database {engine.url.render_as_string(hide_password=True)}")

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("Queue scheduler disabled; call POST /api/sync/queue/process to drain the queue")

    yield

    stop_scheduler()
    logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        description="Queue-driven Shopify catalog and order synchronization",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(api_router, prefix="/api")

    @application.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            {"success": False, "error": "Internal server error", "errorType": "unknown"},
            status_code=500,
        )

    @application.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.APP_NAME}

    return application


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.APP_PORT, reload=settings.DEBUG)
