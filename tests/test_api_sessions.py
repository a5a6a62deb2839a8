def _sessions_url(api, suffix=""):
    return f"/api/v1/customers/{api.ids['customer']}/sessions{suffix}"


def _topup(api, count):
    return api.client.post(
        _sessions_url(api, "/topup"),
        params={"studio_id": api.ids["studio"]},
        json={"sessionCount": count},
    )


def test_topup_opens_and_grows_block(api):
    api.login_as("owner")
    first = _topup(api, 10)
    assert first.status_code == 200
    assert first.json()["total_sessions"] == 10
    assert first.json()["remaining_sessions"] == 10

    second = _topup(api, 20)
    assert second.status_code == 200
    assert second.json()["session_id"] == first.json()["session_id"]
    assert second.json()["total_sessions"] == 30


def test_topup_size_must_be_allowed(api):
    api.login_as("owner")
    response = _topup(api, 7)
    assert response.status_code == 400
    assert "10" in response.json()["detail"]

    api.login_as("customer")
    assert _topup(api, 10).status_code == 403


def test_customer_sees_own_balance(api):
    api.login_as("owner")
    _topup(api, 10)

    api.login_as("customer")
    response = api.client.get(
        "/api/v1/customers/me/sessions", params={"studio_id": api.ids["studio"]}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["has_active_sessions"] is True
    assert body["remaining_sessions"] == 10
    assert body["total_remaining_sessions"] == 10
    assert [tx["transaction_type"] for tx in body["transactions"]] == ["purchase"]

    other = api.client.get(
        f"/api/v1/customers/{api.ids['manager']}/sessions",
        params={"studio_id": api.ids["studio"]},
    )
    assert other.status_code == 403


def test_blocks_refund_edit_and_deactivate(api):
    api.login_as("owner")
    block = api.client.post(
        _sessions_url(api, "/blocks"),
        params={"studio_id": api.ids["studio"]},
        json={"session_count": 5, "block_type": "bonus"},
    )
    assert block.status_code == 201
    block_id = block.json()["session_id"]

    edited = api.client.patch(
        f"/api/v1/sessions/{block_id}/edit", json={"remaining_sessions": 2}
    )
    assert edited.status_code == 200
    assert edited.json()["remaining_sessions"] == 2

    refunded = api.client.post(
        _sessions_url(api, "/refund"),
        params={"studio_id": api.ids["studio"]},
        json={"sessions_to_refund": 11, "block_id": block_id, "reason": "Kulanz"},
    )
    assert refunded.status_code == 422

    refunded = api.client.post(
        _sessions_url(api, "/refund"),
        params={"studio_id": api.ids["studio"]},
        json={"sessions_to_refund": 5, "block_id": block_id, "reason": "Kulanz"},
    )
    assert refunded.status_code == 200
    assert refunded.json()["remaining_sessions"] == 5

    invalid_edit = api.client.patch(
        f"/api/v1/sessions/{block_id}/edit", json={"total_sessions": 3}
    )
    assert invalid_edit.status_code == 400
    assert invalid_edit.json()["code"] == "validation_error"

    deactivated = api.client.patch(f"/api/v1/sessions/{block_id}/deactivate", json={})
    assert deactivated.status_code == 200

    again = api.client.patch(f"/api/v1/sessions/{block_id}/deactivate", json={})
    assert again.status_code == 400

    history = api.client.get(f"/api/v1/sessions/{block_id}/transactions")
    assert history.status_code == 200
    body = history.json()
    assert body["session"]["is_active"] is False
    assert body["session"]["block_type"] == "bonus"
    assert sorted(tx["transaction_type"] for tx in body["transactions"]) == [
        "deactivation",
        "edit",
        "purchase",
        "refund",
    ]


def test_foreign_owner_cannot_manage_sessions(api):
    api.login_as("owner")
    block_id = _topup(api, 10).json()["session_id"]

    api.login_as("other_owner")
    assert _topup(api, 10).status_code == 403
    assert api.client.patch(f"/api/v1/sessions/{block_id}/deactivate", json={}).status_code == 403


def test_refund_without_block_conflicts(api):
    api.login_as("manager")
    response = api.client.post(
        _sessions_url(api, "/refund"),
        params={"studio_id": api.ids["studio"]},
        json={"sessions_to_refund": 1},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "no_active_sessions"


def test_studio_stats_and_settings(api):
    api.login_as("owner")
    _topup(api, 10)
    studio_url = f"/api/v1/studios/{api.ids['studio']}"

    stats = api.client.get(f"{studio_url}/sessions/stats")
    assert stats.status_code == 200
    assert stats.json()["purchases"] == 1
    assert stats.json()["total_remaining_sessions"] == 10

    appointment_stats = api.client.get(f"{studio_url}/appointments/stats")
    assert appointment_stats.status_code == 200
    assert appointment_stats.json()["total_appointments"] == 0

    updated = api.client.patch(
        f"{studio_url}/settings", json={"cancellation_advance_hours": 24}
    )
    assert updated.status_code == 200
    assert updated.json()["cancellation_advance_hours"] == 24
    assert updated.json()["settings_updated_at"] is not None

    created = api.client.post(
        f"{studio_url}/appointment-types",
        json={"name": "Beratung", "duration": 30, "consumes_session": False},
    )
    assert created.status_code == 201
    types = api.client.get(f"{studio_url}/appointment-types")
    assert [item["name"] for item in types.json()] == ["Beratung"]


def test_health(api):
    assert api.client.get("/api/v1/health").json() == {"status": "ok"}
