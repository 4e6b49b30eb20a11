import uvicorn
from fastapi import FastAPI
from fastapi.responses import Response
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from core.logging import get_api_logger_safe
from app.containers import AppContainer
from app.main import ApplicationOrchestrator
from api.middleware.error_handling import register_exception_handlers
from api.middleware.request_ids import RequestIdMiddleware
from api.routers import orders, realtime

logger = get_api_logger_safe("api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    orchestrator: ApplicationOrchestrator = app.state.orchestrator
    logger.info("Starting order execution API server")
    try:
        await orchestrator.startup()
    except Exception as e:
        logger.error("Failed to initialize API services", error=str(e))
        raise

    yield

    logger.info("Shutting down order execution API server")
    await orchestrator.shutdown()


def _build_uvicorn_log_config() -> dict:
    """Return a minimal log config that cooperates with our structlog handlers.

    Only levels and propagation are set; handlers stay as wired by the
    enhanced logging setup.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "loggers": {
            "uvicorn": {"level": "INFO", "propagate": False},
            "uvicorn.error": {"level": "INFO", "propagate": False},
            "uvicorn.access": {"level": "INFO", "propagate": False},
            "fastapi": {"level": "INFO", "propagate": False},
        },
    }


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    """Creates and configures the FastAPI application"""
    container = container or AppContainer()
    orchestrator = ApplicationOrchestrator(container)
    settings = container.settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Submit token swap orders and stream their execution status.",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.orchestrator = orchestrator
    app.state.metrics = container.metrics()

    # Wire dependency injection
    container.wire(modules=[
        "api.dependencies",
        "api.routers.orders",
        "api.routers.realtime",
    ])

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    app.include_router(orders.router)
    app.include_router(realtime.router)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    def health_check():
        return {
            "status": "healthy",
            "service": "order-execution-engine",
            "version": settings.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Prometheus metrics endpoint
    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        pipeline_metrics = app.state.metrics
        return Response(content=pipeline_metrics.export(), media_type=pipeline_metrics.content_type)

    return app


def run(host: Optional[str] = None, port: Optional[int] = None):
    """Main function to run the API server"""
    app = create_app()
    settings = app.state.container.settings()

    uvicorn.run(
        app,
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_level="info",
        access_log=True,
        log_config=_build_uvicorn_log_config(),
        reload=False
    )


if __name__ == "__main__":
    run()
