#!/usr/bin/env python3

"""
Main application entry point for the event ingest service.

Architecture: FastAPI application wrapping a single-consumer event pipeline.
Key Features: Lifecycle management, database health checks, error handling, CORS configuration.
"""

import asyncio
import sys

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import errno
from collections.abc import Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from event_ingest.api.http import router as http_router
from event_ingest.config import Settings, settings
from event_ingest.dependencies.context import AppContext, build_app_context
from event_ingest.utils.logger import setup_logger

logger = setup_logger("main")


def create_app(
    app_settings: Settings | None = None,
    context_factory: Callable[[Settings], AppContext] | None = None,
) -> FastAPI:
    app_settings = app_settings or settings
    context_factory = context_factory or build_app_context

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup...")
        try:
            context = context_factory(app_settings)
            await context.start()
        except Exception as e:
            logger.critical(f"Startup error: {e}", exc_info=True)
            raise SystemExit(f"Startup failed: {e}") from e

        app.state.context = context
        logger.info("Event ingest API startup successful.")

        yield

        logger.info("Event ingest API shutdown...")
        await context.close()
        app.state.context = None
        logger.info("Shutdown complete.")

    app = FastAPI(title="Event Ingest API", lifespan=lifespan)

    @app.exception_handler(OSError)
    async def oserror_exception_handler(request: Request, exc: OSError):
        logger.error(f"OSError caught: {exc}, errno: {exc.errno}")
        if exc.errno in [errno.ETIMEDOUT, errno.ECONNREFUSED]:
            logger.error(
                f"Returning 503 due to DB connection issue: {app_settings.db_unavailable_hint}"
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": app_settings.db_unavailable_hint},
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"An unexpected OS error occurred: {exc}"},
        )

    app.include_router(http_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount(
        "/media",
        StaticFiles(directory=app_settings.media_root, check_dir=False),
        name="media",
    )
    return app


def main():
    port = int(settings.server_port)
    host = settings.server_host

    logger.info(f"Starting event ingest API server on {host}:{port}")

    try:
        uvicorn.run(
            "main:create_app",
            factory=True,
            host=host,
            port=port,
            workers=settings.server_workers,
        )
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
