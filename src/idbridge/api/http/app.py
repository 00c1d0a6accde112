"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger
from starlette.responses import JSONResponse

from src.idbridge.api.http.app_data import ApplicationDependencies, build_dependencies
from src.idbridge.api.http.routers.auth import router as auth_router
from src.idbridge.api.http.routers.health import router as health_router
from src.idbridge.api.utils.app_startup import configure_logging
from src.idbridge.core.services.database.db_session import DbSessionService
from src.idbridge.core.storage.session_storage import get_session_storage
from src.idbridge.runtime.context import get_config


async def startup(app: FastAPI) -> None:
    configure_logging()
    config = get_config()
    logger.info("Starting up application in {} environment", config.app.environment)

    if getattr(app.state, "app_dependencies", None) is None:
        database_service = DbSessionService()
        database_service.create_all()
        app.state.app_dependencies = build_dependencies(
            config, await get_session_storage(), database_service
        )

    deps: ApplicationDependencies = app.state.app_dependencies
    logger.info("Enabled providers: {}", ", ".join(deps.registry.names()) or "none")


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    deps: ApplicationDependencies | None = getattr(app.state, "app_dependencies", None)
    if deps is not None:
        await deps.session_storage.cleanup_expired()


def create_app(dependencies: ApplicationDependencies | None = None) -> FastAPI:
    """Build the application; ``dependencies`` skips wiring from configuration."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup(app)
        try:
            yield
        finally:
            await shutdown(app)

    app = FastAPI(lifespan=lifespan, title="idbridge")
    app.state.app_dependencies = dependencies

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        # query strings carry codes and state; only the path is logged
        with logger.contextualize(
            request_id=request_id, method=request.method, path=request.url.path
        ):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("request.error")
                return JSONResponse(
                    status_code=500,
                    content={"detail": "Internal Server Error", "request_id": request_id},
                    headers={"X-Request-ID": request_id},
                )

            logger.bind(
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            ).info("request.end")
            response.headers.setdefault("X-Request-ID", request_id)
            return response

    app.include_router(auth_router, prefix="/auth")
    app.include_router(health_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, access_log=False)
