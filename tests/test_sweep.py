import asyncio
from datetime import date, time, timedelta

from sqlalchemy.pool import StaticPool

from studio_backend.db import models
from studio_backend.db.session import Database
from studio_backend.services import appointment_service, session_service
from studio_backend.workers import scheduler

TODAY = date(2030, 1, 11)


def _past_appointment(db, studio, customer, *, days_ago=1, status=None, appointment_type=None):
    appointment = models.Appointment(
        studio_id=studio.id,
        customer_id=customer.id,
        appointment_type_id=appointment_type.id if appointment_type else None,
        appointment_date=TODAY - timedelta(days=days_ago),
        start_time=time(10, 0),
        end_time=time(10, 30),
        status=status or models.AppointmentStatus.confirmed,
    )
    db.add(appointment)
    db.commit()
    return appointment


def _balance(db, studio, customer):
    block = session_service.get_active_session(db, customer.id, studio.id)
    return block.remaining_sessions if block else 0


def test_sweep_completes_and_deducts_once(db_session, studio, customer):
    session_service.add_sessions(
        db_session, customer_id=customer.id, studio_id=studio.id, count=10, actor_id=None
    )
    appointment = _past_appointment(db_session, studio, customer)

    summary = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert summary.completed == 1
    assert summary.deducted == 1
    assert summary.failed == []
    db_session.refresh(appointment)
    assert appointment.status == models.AppointmentStatus.completed
    assert _balance(db_session, studio, customer) == 9

    again = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert again.completed == 0
    assert again.deducted == 0
    assert _balance(db_session, studio, customer) == 9


def test_sweep_skips_pending_and_todays_appointments(db_session, studio, customer):
    pending = _past_appointment(
        db_session, studio, customer, status=models.AppointmentStatus.pending
    )
    today = _past_appointment(db_session, studio, customer, days_ago=0)

    summary = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert summary.completed == 0

    db_session.refresh(pending)
    db_session.refresh(today)
    assert pending.status == models.AppointmentStatus.pending
    assert today.status == models.AppointmentStatus.confirmed


def test_sweep_continues_after_failed_deduction(db_session, seeded, studio, customer):
    broke = seeded["other_owner"]
    session_service.add_sessions(
        db_session, customer_id=customer.id, studio_id=studio.id, count=5, actor_id=None
    )
    paid = _past_appointment(db_session, studio, customer, days_ago=2)
    unpaid = _past_appointment(db_session, studio, broke, days_ago=1)

    summary = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert summary.completed == 2
    assert summary.deducted == 1
    assert summary.failed == [unpaid.id]

    db_session.expire_all()
    assert db_session.get(models.Appointment, paid.id).status == models.AppointmentStatus.completed
    assert db_session.get(models.Appointment, unpaid.id).status == models.AppointmentStatus.completed
    assert _balance(db_session, studio, customer) == 4


def test_sweep_survives_deduction_recorded_concurrently(
    db_session, studio, customer, monkeypatch
):
    block = session_service.add_sessions(
        db_session, customer_id=customer.id, studio_id=studio.id, count=5, actor_id=None
    )
    raced = _past_appointment(db_session, studio, customer, days_ago=2)
    later = _past_appointment(db_session, studio, customer, days_ago=1)
    db_session.add(
        models.SessionTransaction(
            customer_session_id=block.session_id,
            transaction_type=models.TransactionType.deduction,
            amount=-1,
            appointment_id=raced.id,
            notes="Completed through the API",
        )
    )
    db_session.commit()
    monkeypatch.setattr(
        session_service.session_store, "find_transaction", lambda *args, **kwargs: None
    )

    summary = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert summary.completed == 2
    assert summary.deducted == 1
    assert summary.failed == [raced.id]

    db_session.expire_all()
    assert db_session.get(models.Appointment, later.id).status == models.AppointmentStatus.completed
    assert _balance(db_session, studio, customer) == 4


def test_sweep_does_not_charge_free_appointment_types(db_session, studio, customer):
    session_service.add_sessions(
        db_session, customer_id=customer.id, studio_id=studio.id, count=3, actor_id=None
    )
    trial = models.AppointmentType(studio_id=studio.id, name="Probetraining", consumes_session=False)
    db_session.add(trial)
    db_session.commit()
    _past_appointment(db_session, studio, customer, appointment_type=trial)

    summary = appointment_service.sweep_past_confirmed(db_session, today=TODAY)
    assert summary.completed == 1
    assert summary.deducted == 0
    assert summary.failed == []
    assert _balance(db_session, studio, customer) == 3


def test_scheduled_sweep_uses_its_own_session():
    database = Database()
    database.init(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.create_all()
    try:
        with database.session() as db:
            customer = models.User(email="kunde@example.com", role=models.UserRole.customer)
            studio = models.Studio(name="EMS Nord")
            db.add_all([customer, studio])
            db.commit()
            session_service.add_sessions(
                db, customer_id=customer.id, studio_id=studio.id, count=10, actor_id=None
            )
            db.add(
                models.Appointment(
                    studio_id=studio.id,
                    customer_id=customer.id,
                    appointment_date=appointment_service.local_now().date() - timedelta(days=2),
                    start_time=time(18, 0),
                    end_time=time(18, 30),
                    status=models.AppointmentStatus.confirmed,
                )
            )
            db.commit()
            customer_id, studio_id = customer.id, studio.id

        summary = scheduler.sweep_past_appointments(database)
        assert summary.completed == 1
        assert summary.deducted == 1

        with database.session() as db:
            block = session_service.get_active_session(db, customer_id, studio_id)
            assert block.remaining_sessions == 9
    finally:
        database.close()


def test_scheduler_registers_sweep_job():
    async def build():
        return scheduler.get_scheduler()

    job_scheduler = asyncio.run(build())
    job = job_scheduler.get_job("sweep_past_appointments")
    assert job is not None
    assert job.max_instances == 1
