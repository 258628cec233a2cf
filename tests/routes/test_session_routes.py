"""HTTP tests for /api/sessions, including the error envelope."""

from datetime import timedelta
from decimal import Decimal

import pytest

from genova.models import SessionStatus


@pytest.fixture
def people(factory):
    creator = factory.student()
    member = factory.student()
    tutor = factory.tutor()
    study_class = factory.study_class(creator, member)
    return creator, member, tutor, study_class


def _body(study_class, tutor, start, minutes=60, **extra):
    body = {
        "classId": study_class.id,
        "tutorId": tutor.id,
        "scheduledStart": start.isoformat(),
        "scheduledEnd": (start + timedelta(minutes=minutes)).isoformat(),
        "subject": "Algebra",
        "price": 20,
    }
    body.update(extra)
    return body


def test_create_and_fetch_session(client, auth, people, clock):
    creator, member, tutor, study_class = people
    start = clock.now + timedelta(days=2)

    response = client.post(
        "/api/sessions", json=_body(study_class, tutor, start), headers=auth(member)
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Session created successfully"
    session = payload["data"]
    assert session["status"] == SessionStatus.PENDING.value
    assert session["tutorId"] == tutor.id
    assert session["price"] == 20.0

    fetched = client.get(f"/api/sessions/{session['id']}", headers=auth(tutor))
    assert fetched.status_code == 200
    assert fetched.json()["data"]["subject"] == "Algebra"


def test_missing_token_is_unauthorized(client, people):
    response = client.get("/api/sessions")

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "UNAUTHORIZED"
    assert error["message"] == "Not authenticated"
    assert "timestamp" in error


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/sessions", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Could not validate credentials"


def test_malformed_body_is_a_400(client, auth, people, clock):
    creator, member, tutor, study_class = people
    body = _body(study_class, tutor, clock.now + timedelta(days=2))
    del body["subject"]

    response = client.post("/api/sessions", json=body, headers=auth(member))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"].startswith("subject")


def test_unknown_fields_are_rejected(client, auth, people, clock):
    creator, member, tutor, study_class = people
    body = _body(study_class, tutor, clock.now + timedelta(days=2), discount=5)

    response = client.post("/api/sessions", json=body, headers=auth(member))

    assert response.status_code == 400


def test_overlap_is_a_409_with_conflicting_ids(client, auth, people, factory, clock):
    creator, member, tutor, study_class = people
    existing = factory.session(study_class, tutor, start=clock.now + timedelta(days=2))

    response = client.post(
        "/api/sessions",
        json=_body(study_class, tutor, existing.start_utc + timedelta(minutes=30)),
        headers=auth(member),
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "SESSION_CONFLICT"
    assert error["details"]["conflicting_session_ids"] == [existing.id]


def test_unknown_session_is_a_404(client, auth, people):
    creator, member, tutor, study_class = people

    response = client.get("/api/sessions/01J00000000000000000000000", headers=auth(member))

    assert response.status_code == 404
    assert response.json()["error"] == {
        "code": "NOT_FOUND",
        "message": "Session not found",
        "timestamp": response.json()["error"]["timestamp"],
    }


def test_outsider_is_forbidden(client, auth, people, factory):
    creator, member, tutor, study_class = people
    session = factory.session(study_class, tutor)

    response = client.get(f"/api/sessions/{session.id}", headers=auth(factory.student()))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"


def test_list_with_status_filter(client, auth, people, factory, clock):
    creator, member, tutor, study_class = people
    confirmed = factory.session(study_class, tutor)
    factory.session(
        study_class,
        tutor,
        start=clock.now + timedelta(days=4),
        status=SessionStatus.PENDING,
    )

    response = client.get(
        "/api/sessions", params={"status": "CONFIRMED"}, headers=auth(member)
    )

    assert response.status_code == 200
    assert [s["id"] for s in response.json()["data"]] == [confirmed.id]

    invalid = client.get("/api/sessions", params={"status": "DONE"}, headers=auth(member))
    assert invalid.status_code == 400


def test_availability(client, auth, people, factory, clock):
    creator, member, tutor, study_class = people
    busy = factory.session(study_class, tutor, start=clock.now + timedelta(days=2))
    params = {
        "tutorId": tutor.id,
        "startTime": busy.start_utc.isoformat(),
        "endTime": (busy.start_utc + timedelta(minutes=30)).isoformat(),
    }

    response = client.get("/api/sessions/availability", params=params, headers=auth(member))

    data = response.json()["data"]
    assert data["available"] is False
    assert [c["sessionId"] for c in data["conflicts"]] == [busy.id]

    params["startTime"] = busy.end_utc.isoformat()
    params["endTime"] = (busy.end_utc + timedelta(hours=1)).isoformat()
    free = client.get("/api/sessions/availability", params=params, headers=auth(member))
    assert free.json()["data"] == {"tutorId": tutor.id, "available": True, "conflicts": []}


def test_confirm_reschedule_cancel_flow(client, auth, people, factory, clock):
    creator, member, tutor, study_class = people
    session = factory.session(study_class, tutor, status=SessionStatus.PENDING)

    confirmed = client.post(f"/api/sessions/{session.id}/confirm", headers=auth(tutor))
    assert confirmed.json()["data"]["status"] == SessionStatus.CONFIRMED.value

    new_start = clock.now + timedelta(days=5)
    moved = client.post(
        f"/api/sessions/{session.id}/reschedule",
        json={
            "scheduledStart": new_start.isoformat(),
            "scheduledEnd": (new_start + timedelta(hours=1)).isoformat(),
        },
        headers=auth(member),
    )
    assert moved.json()["data"]["status"] == SessionStatus.PENDING.value

    cancelled = client.post(
        f"/api/sessions/{session.id}/cancel", json={"reason": "Exams"}, headers=auth(member)
    )
    assert cancelled.status_code == 200
    data = cancelled.json()["data"]
    assert data["session"]["status"] == SessionStatus.CANCELLED.value
    assert data["refundPercentage"] == 1.0

    again = client.post(f"/api/sessions/{session.id}/cancel", headers=auth(member))
    assert again.status_code == 400
    assert again.json()["error"]["message"] == "Session is already cancelled"


def test_status_endpoint_completes_session(client, auth, people, factory, clock):
    creator, member, tutor, study_class = people
    session = factory.session(study_class, tutor)
    clock.set(session.end_utc)

    response = client.put(
        f"/api/sessions/{session.id}/status",
        json={"status": "COMPLETED"},
        headers=auth(tutor),
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Session completed successfully"
    assert response.json()["data"]["status"] == SessionStatus.COMPLETED.value


def test_tutor_assignment_sets_price(client, auth, factory):
    creator = factory.student()
    tutor = factory.tutor(hourly_rate=Decimal("30.00"))
    consortium = factory.consortium(tutor, {tutor: Decimal("100")})
    session = factory.session(factory.study_class(creator), consortium=consortium, minutes=120)

    response = client.put(
        f"/api/sessions/{session.id}", json={"tutorId": tutor.id}, headers=auth(tutor)
    )

    assert response.status_code == 200
    assert response.json()["data"]["price"] == 60.0


@pytest.mark.parametrize("field", ["subject", "price"])
def test_update_rejects_null_for_required_field(client, auth, people, factory, field):
    creator, member, tutor, study_class = people
    session = factory.session(study_class, tutor)

    response = client.put(f"/api/sessions/{session.id}", json={field: None}, headers=auth(creator))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"] == {"fields": [field]}
