# accommodation_engine/app/main.py
# Run with: uvicorn accommodation_engine.app.main:create_app --factory
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config.config_manager import ConfigManager
from ..config.settings import EngineSettings
from ..core.engine import AccommodationAnalysisEngine
from ..core.storage import AssessmentStorage, InMemoryStorage
from ..routers.analysis import router as analysis_router
from ..utils.api_client import create_client_from_settings
from ..utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[EngineSettings] = None,
    config: Optional[ConfigManager] = None,
    storage: Optional[AssessmentStorage] = None,
    client=None,
) -> FastAPI:
    settings = settings or EngineSettings.from_env()
    setup_logging(settings.log_level, settings.log_file, json_output=settings.log_json)

    config = config or ConfigManager(settings.config_path)
    storage = storage or InMemoryStorage()
    client = client or create_client_from_settings(settings)

    app = FastAPI(
        title="Accommodation Analysis Engine",
        version="1.0.0",
        description="Evidence-linked accommodation recommendations from assessment documents.",
    )
    app.state.engine = AccommodationAnalysisEngine(settings, config, storage, client)
    app.include_router(analysis_router)

    # ---------- Exception Handlers ----------
    @app.exception_handler(Exception)
    async def _unhandled(request, exc):
        logger.exception(f"[unhandled] {type(exc).__name__}: {exc}")
        return JSONResponse({"error": f"Server error: {type(exc).__name__}: {exc}"}, status_code=500)

    @app.exception_handler(RequestValidationError)
    async def _validation(request, exc):
        details = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
        return JSONResponse({"error": "Invalid request body", "details": details}, status_code=422)

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "demo": settings.is_demo}

    logger.info(f"Engine ready (demo: {settings.is_demo}, fallback model: {settings.fallback_model})")
    return app
