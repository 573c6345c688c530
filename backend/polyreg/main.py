"""FastAPI app factory."""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from polyreg.config import settings
from polyreg.engine.errors import ConfigurationError
from polyreg.engine.registry import load_builtin_steps

load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.polyreg_log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="polyreg",
        description="Registration-aware clustering and reconstruction of polygon shapes",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Import all step modules to trigger registration
    load_builtin_steps()

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "parameter": exc.parameter},
        )

    from polyreg.api.router import api_router

    app.include_router(api_router)

    return app


app = create_app()
