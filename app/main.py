import logging
import sys
import uvicorn
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.database import initialize_database
from app.api.ops import router as ops_router
from app.api.pipeline import router as pipeline_router
from app.api.leads import router as leads_router
from app.api.appointments import router as appointments_router
from app.api.service_orders import router as service_orders_router
from app.api.settings import router as settings_router
from app.api.reports import router as reports_router

settings = get_settings()
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        ## PitStop - Auto Repair CRM API

        Leads on a kanban pipeline, appointments, service orders and reports for auto repair shops.

        ### Pipeline automation
        Scheduling an appointment, registering attendance and service order status changes
        move the customer's lead through the pipeline and are recorded on its history.

        ### Tenant Scoping
        Requests act on the organization given by the `X-Organization-ID` header.
        `X-User-ID` identifies the acting user on lead history entries.

        ### Destructive operations
        Deletes require `confirm=true`; without it they answer 428 and change nothing.
        """,
        version=settings.APP_VERSION,
        openapi_tags=[
            {"name": "pipeline", "description": "Kanban columns: ordering and lifecycle"},
            {"name": "leads", "description": "Customer leads and their history"},
            {"name": "appointments", "description": "Appointment scheduling and attendance"},
            {"name": "service-orders", "description": "Service order lifecycle"},
            {"name": "settings", "description": "Organizations, units and the service catalog"},
            {"name": "reports", "description": "Dashboard figures"},
            {"name": "infra", "description": "Infrastructure and health check endpoints"},
        ]
    )

    # CORS
    allowed_origins = settings.CORS_ORIGINS or ["http://localhost:8080"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(pipeline_router)
    app.include_router(leads_router)
    app.include_router(appointments_router)
    app.include_router(service_orders_router)
    app.include_router(settings_router)
    app.include_router(reports_router)
    app.include_router(ops_router)

    # Healthcheck
    @app.get("/health", tags=["infra"])
    async def health():
        return {"status": "ok", "env": settings.ENV}

    # Global exception handler to log internal server errors to terminal
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled exception", extra={
                "method": request.method,
                "path": request.url.path,
            }
        )
        print(
            f"[ERROR] {request.method} {request.url.path} -> {exc.__class__.__name__}: {exc}",
            file=sys.stderr,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": {"message": "Internal server error", "type": "internal_error"},
                "path": request.url.path,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        status_code = int(exc.status_code or 500)
        if status_code >= 500:
            logger.error(
                "HTTP %s at %s %s: %s",
                status_code,
                request.method,
                request.url.path,
                exc.detail,
            )
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.detail,
                "path": request.url.path,
            },
            headers=getattr(exc, "headers", None),
        )

    # Startup initializers (migrations)
    @app.on_event("startup")
    async def startup_event():
        if settings.AUTO_MIGRATE:
            await initialize_database()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.ENV == "dev")
