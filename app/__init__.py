from fastapi import FastAPI

from .api.routes.assessment import router as assessment_router
from .core.config import get_settings, initialize_env
from .core.log import setup_logging


def create_app() -> FastAPI:
    initialize_env()
    settings = get_settings()
    setup_logging(settings.log_level)
    application = FastAPI(title=settings.app_name, version=settings.app_version)

    # Routers
    application.include_router(assessment_router, prefix="/api/assessment")

    return application
