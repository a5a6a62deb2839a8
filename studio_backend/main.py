import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.errors import register_error_handlers
from .api.routes import auth, appointments, sessions, studios, misc
from .db.session import database
from .config import get_settings
from .services.admin import ensure_manager_exists
from .workers.scheduler import get_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="Studio Booking API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(studios.router, prefix="/api/v1")
app.include_router(misc.router, prefix="/api/v1")

register_error_handlers(app)


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    if not database.is_initialized:
        database.init(settings.sqlalchemy_url, pool_pre_ping=True)
    database.create_all()
    with database.session() as session:
        ensure_manager_exists(
            session, settings.default_manager_email, settings.default_manager_password
        )
    if settings.scheduler_enabled:
        scheduler = get_scheduler()
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Scheduler started", extra={"interval_minutes": settings.sweep_interval_minutes})


@app.on_event("shutdown")
async def shutdown_event() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    database.close()
