from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from engine.catalog import ScenarioCatalog
from engine.errors import ConfigurationError, UnknownTestError
from engine.settings import load_settings
from routers import load_test, metrics
from routers.load_test import LoadTestHTTPError
from services.load_test_controller import TestController


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events"""
    logger = logging.getLogger(__name__)

    try:
        # Tests may install their own controller before startup
        controller = getattr(app.state, "load_test_controller", None)
        if controller is None:
            logger.info("Initializing load test controller...")
            settings = load_settings()
            controller = TestController(settings=settings, catalog=ScenarioCatalog.from_env())
            app.state.load_test_controller = controller
            logger.info("Load test controller initialized for %s", settings.base_url)

        if not controller.settings.admin_token and not controller.settings.allow_anonymous:
            logger.warning("LOADTEST_ADMIN_TOKEN is not set; admin endpoints will reject every request")

        logger.info("Application startup completed successfully")

        yield

    finally:
        logger.info("Application shutdown initiated...")

        controller = getattr(app.state, "load_test_controller", None)
        if controller:
            try:
                await controller.shutdown()
                logger.info("Load test controller shutdown successfully")
            except Exception as e:
                logger.error(f"Error shutting down load test controller: {e}")

        logger.info("Application shutdown completed")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def _load_test_http_error(request: Request, exc: LoadTestHTTPError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    return _error(400, str(exc))


async def _unknown_test_error(request: Request, exc: UnknownTestError) -> JSONResponse:
    return _error(404, str(exc))


def create_app() -> FastAPI:
    app = FastAPI(title="Load Traffic Engine", version="1.0.0", lifespan=lifespan)

    app.add_exception_handler(LoadTestHTTPError, _load_test_http_error)
    app.add_exception_handler(ConfigurationError, _configuration_error)
    app.add_exception_handler(UnknownTestError, _unknown_test_error)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to the Load Traffic Engine",
            "endpoints": [
                "/admin/load-test?action=status",
                "/admin/load-test?action=results",
                "/metrics",
            ],
            "status": "operational",
        }

    app.include_router(load_test.router)
    app.include_router(metrics.router)
    return app


app = create_app()
