"""
FastAPI application for the generation job API.

create_app() builds the app; its lifespan owns one JobSystem for the life of
the process and exposes it as app.state.job_system.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import AppConfig, config as default_config
from backend.jobs.errors import ValidationError
from backend.jobs.system import JobSystem
from backend.routes.ai_generation import router as ai_generation_router
from backend.utils.logging import api_logger as logger, configure_logging


def _print_startup(config: AppConfig, system: JobSystem):
    print("=" * 60)
    print("Generation Job API Starting...")
    print("=" * 60)
    print(f"✓ Job store: {config.JOB_STORE_BACKEND}")
    print(f"{'✓' if config.REDIS_URL else '⚠️ '} Redis: {'configured' if config.REDIS_URL else 'REDIS_URL not set, submissions will fail'}")
    print(f"{'✓' if config.can_generate_text else '⚠️ '} Text generation: {config.TEXT_MODEL_NAME}")
    print(f"{'✓' if config.can_generate_images else '⚠️ '} Image generation: {config.IMAGE_MODEL}")
    for family, policy in system.policies.items():
        print(
            f"  {policy.queue_name}: max_attempts={policy.max_attempts}, "
            f"backoff={policy.backoff_seconds}s, concurrency={policy.concurrency}"
        )
    print(f"✓ Auth required: {config.auth_required}")
    print("=" * 60)


def create_app(
    config: Optional[AppConfig] = None,
    job_system: Optional[JobSystem] = None,
) -> FastAPI:
    """Build the API. Pass job_system to reuse an existing context (tests, embedding)."""
    config = config or default_config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        system = job_system or JobSystem(config)
        await system.startup()
        app.state.job_system = system
        _print_startup(config, system)
        try:
            yield
        finally:
            await system.shutdown()
            app.state.job_system = None
            logger.info("Generation job API stopped")

    app = FastAPI(
        title="Generation Job API",
        description="Asynchronous text and image generation jobs backed by Redis Queue",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.job_system = None

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ai_generation_router)

    # ===== Health Check =====

    @app.get("/health")
    async def health_check():
        """Liveness probe. Does not touch Redis or the job store."""
        return {
            "status": "healthy",
            "job_system": app.state.job_system is not None,
        }

    # ===== Error Handlers =====

    @app.exception_handler(ValidationError)
    async def generation_validation_handler(request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": exc.message, "errors": exc.details or []},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid generation request", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error(f"Unhandled API error: {exc}", path=request.url.path, type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    return app


configure_logging(default_config.LOG_LEVEL)
app = create_app()
