import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..db.session import Database, database
from ..services import appointment_service

logger = logging.getLogger(__name__)


def sweep_past_appointments(db_handle: Database = database) -> appointment_service.SweepSummary:
    with db_handle.session() as db:
        summary = appointment_service.sweep_past_confirmed(db)
    if summary.failed:
        logger.warning(
            "Sweep finished with failed deductions",
            extra={"failed_appointment_ids": summary.failed},
        )
    return summary


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_past_appointments,
        "interval",
        minutes=settings.sweep_interval_minutes,
        id="sweep_past_appointments",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
