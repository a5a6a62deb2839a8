from datetime import time, timedelta

from studio_backend.db import models
from studio_backend.services import appointment_service, session_service


def _day(offset: int) -> str:
    return (appointment_service.local_now().date() + timedelta(days=offset)).isoformat()


def _create(api, day_offset=5, start="10:00", end="11:00", **extra):
    payload = {
        "studio_id": api.ids["studio"],
        "customer_id": api.ids["customer"],
        "appointment_date": _day(day_offset),
        "start_time": start,
        "end_time": end,
    }
    payload.update(extra)
    return api.client.post("/api/v1/appointments", json=payload)


def _give_sessions(api, count=10, used=0):
    with api.SessionLocal() as db:
        session_service.add_sessions(
            db,
            customer_id=api.ids["customer"],
            studio_id=api.ids["studio"],
            count=count,
            actor_id=None,
        )
        for _ in range(used):
            session_service.deduct_session(
                db,
                customer_id=api.ids["customer"],
                studio_id=api.ids["studio"],
                appointment_id=None,
                actor_id=None,
            )


def test_owner_creates_confirmed_appointment(api):
    api.login_as("owner")
    response = _create(api)
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "confirmed"
    assert body["status_label"] == "bestätigt"
    assert body["start_time"] == "10:00"
    assert body["customer_name"] == "Carla Kunde"
    assert body["studio_name"] == "EMS Mitte"


def test_overlapping_booking_returns_conflict(api):
    api.login_as("owner")
    assert _create(api).status_code == 201

    response = _create(api, start="10:30", end="11:30")
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"

    assert _create(api, start="11:00", end="12:00").status_code == 201


def test_customer_bookings_are_pending_and_owned(api):
    api.login_as("customer")
    response = _create(api, customer_id=api.ids["manager"], status="bestätigt")
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["customer_id"] == api.ids["customer"]


def test_unknown_status_alias_is_rejected(api):
    api.login_as("manager")
    response = _create(api, status="vielleicht")
    assert response.status_code == 422


def test_past_date_is_rejected_with_messages(api):
    api.login_as("owner")
    response = _create(api, day_offset=-1)
    assert response.status_code == 400
    assert "Appointment date cannot be in the past" in response.json()["errors"]


def test_foreign_owner_cannot_touch_studio(api):
    api.login_as("other_owner")
    assert _create(api).status_code == 403
    assert (
        api.client.get("/api/v1/appointments", params={"studio_id": api.ids["studio"]}).status_code
        == 403
    )


def test_list_filters_by_alias_status(api):
    api.login_as("owner")
    _create(api, start="08:00", end="09:00")
    api.login_as("manager")
    _create(api, start="09:00", end="10:00")

    response = api.client.get(
        "/api/v1/appointments",
        params={"studio_id": api.ids["studio"], "status": "ausstehend"},
    )
    assert response.status_code == 200
    assert [item["start_time"] for item in response.json()] == ["09:00"]

    invalid = api.client.get("/api/v1/appointments", params={"status": "egal"})
    assert invalid.status_code == 400

    api.login_as("customer")
    mine = api.client.get("/api/v1/appointments")
    assert len(mine.json()) == 2


def test_complete_reports_deduction(api):
    _give_sessions(api, count=10)
    api.login_as("owner")
    appointment_id = _create(api).json()["id"]

    response = api.client.patch(f"/api/v1/appointments/{appointment_id}/complete", json={})
    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["status"] == "completed"
    assert body["session_deducted"] is True
    assert body["remaining_sessions"] == 9


def test_complete_without_sessions_still_succeeds(api):
    api.login_as("owner")
    appointment_id = _create(api).json()["id"]

    response = api.client.patch(f"/api/v1/appointments/{appointment_id}/complete", json={})
    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["status"] == "completed"
    assert body["session_deducted"] is False
    assert body["error"]


def test_customer_cancellation_window(api):
    _give_sessions(api, count=10, used=1)
    api.login_as("owner")
    soon_id = _create(api, day_offset=1, start="00:00", end="00:30").json()["id"]
    later_id = _create(api, day_offset=6).json()["id"]

    api.login_as("customer")
    too_late = api.client.post(f"/api/v1/appointments/{soon_id}/cancel", json={})
    assert too_late.status_code == 400
    body = too_late.json()
    assert body["code"] == "cancellation_too_late"
    assert body["required_hours"] == 48
    assert body["shortfall_hours"] > 0

    response = api.client.post(
        f"/api/v1/appointments/{later_id}/cancel", json={"reason": "Urlaub"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["status"] == "cancelled"
    assert body["session_refunded"] is True
    assert body["remaining_sessions"] == 10


def test_status_endpoint_accepts_aliases(api):
    api.login_as("manager")
    appointment_id = _create(api).json()["id"]

    response = api.client.patch(
        f"/api/v1/appointments/{appointment_id}/status", json={"status": "bestätigt"}
    )
    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "confirmed"

    invalid = api.client.patch(
        f"/api/v1/appointments/{appointment_id}/status", json={"status": "ausstehend"}
    )
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "invalid_transition"

    api.login_as("customer")
    forbidden = api.client.patch(
        f"/api/v1/appointments/{appointment_id}/status", json={"status": "abgeschlossen"}
    )
    assert forbidden.status_code == 403


def test_update_and_delete(api):
    api.login_as("owner")
    appointment_id = _create(api).json()["id"]

    moved = api.client.put(
        f"/api/v1/appointments/{appointment_id}",
        json={"start_time": "14:00", "end_time": "15:00", "notes": "Nachmittag"},
    )
    assert moved.status_code == 200
    assert moved.json()["appointment"]["start_time"] == "14:00"

    assert api.client.get(f"/api/v1/appointments/{appointment_id}").status_code == 200
    deleted = api.client.delete(f"/api/v1/appointments/{appointment_id}")
    assert deleted.status_code == 200
    missing = api.client.get(f"/api/v1/appointments/{appointment_id}")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_sweep_requires_manager(api):
    api.login_as("owner")
    assert api.client.post("/api/v1/appointments/sweep").status_code == 403

    with api.SessionLocal() as db:
        past = models.Appointment(
            studio_id=api.ids["studio"],
            customer_id=api.ids["customer"],
            appointment_date=appointment_service.local_now().date() - timedelta(days=3),
            start_time=time(9, 0),
            end_time=time(9, 30),
            status=models.AppointmentStatus.confirmed,
        )
        db.add(past)
        db.commit()
        past_id = past.id

    api.login_as("manager")
    response = api.client.post("/api/v1/appointments/sweep")
    assert response.status_code == 200
    assert response.json() == {"completed": 1, "deducted": 0, "failed": [past_id]}

    with api.SessionLocal() as db:
        assert db.get(models.Appointment, past_id).status == models.AppointmentStatus.completed
