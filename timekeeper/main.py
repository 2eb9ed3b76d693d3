from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timekeeper import __version__
from timekeeper.api.routes import health
from timekeeper.core.config import settings
from timekeeper.core.logging import configure_logging, get_logger
from timekeeper.core.monitoring import configure_error_monitoring
from timekeeper.core.observability import configure_observability
from timekeeper.domains.employees.router import router as employee_router
from timekeeper.domains.overtime.router import router as overtime_router
from timekeeper.domains.settings.router import router as settings_router

configure_logging(settings.log_level)
configure_observability()
configure_error_monitoring()
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name, version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(employee_router)
app.include_router(overtime_router)
app.include_router(settings_router)


@app.on_event("startup")
def startup_event() -> None:
    logger.info("startup_complete", env=settings.env, version=__version__)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "Overtime API running", "environment": settings.env}
