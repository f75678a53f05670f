from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from crew_scheduler.api import app, get_db
from crew_scheduler.database import add_time_off, upsert_monthly_default, upsert_needs_baseline

from conftest import MONDAY, at, make_person


@pytest.fixture()
def client(session, session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_windows_endpoint_resolves_adjusted_times(client, session, roles):
    person = make_person(session, "Vance")
    client.post(
        "/api/v1/assignments",
        json={"date": "2024-06-03", "person_id": person.id, "role_id": roles["waiter"].id, "segment": "Lunch"},
    )
    client.post(
        "/api/v1/assignments",
        json={"date": "2024-06-03", "person_id": person.id, "role_id": roles["feeder"].id, "segment": "PM"},
    )
    response = client.get("/api/v1/days/2024-06-03/windows", params={"person_id": person.id})
    assert response.status_code == 200
    assert response.json()["windows"]["PM"] == {"start": "2024-06-03T14:00", "end": "2024-06-03T17:00"}


def test_invalid_date_is_a_bad_request(client):
    response = client.get("/api/v1/days/not-a-date/coverage")
    assert response.status_code == 400


def test_check_and_create_assignment(client, session, roles):
    person = make_person(session, "Vance", "AM")
    body = {"date": "2024-06-03", "person_id": person.id, "role_id": roles["feeder"].id, "segment": "PM"}
    verdict = client.post("/api/v1/assignments/check", json=body).json()
    assert verdict == {
        "allowed": False,
        "reason": "unavailable",
        "message": verdict["message"],
    }
    blocked = client.post("/api/v1/assignments", json=body)
    assert blocked.status_code == 400
    assert blocked.json()["detail"]["reason"] == "unavailable"

    body["segment"] = "AM"
    body["role_id"] = roles["buffet"].id
    created = client.post("/api/v1/assignments", json=body)
    assert created.status_code == 201
    assignment_id = created.json()["id"]
    assert client.delete(f"/api/v1/assignments/{assignment_id}").status_code == 200
    assert client.delete(f"/api/v1/assignments/{assignment_id}").status_code == 404


def test_missing_fields_are_rejected(client):
    response = client.post("/api/v1/assignments", json={"date": "2024-06-03"})
    assert response.status_code == 400


def test_non_string_actor_is_a_bad_request(client, session, roles):
    person = make_person(session, "Vance")
    body = {"date": "2024-06-03", "person_id": person.id, "role_id": roles["feeder"].id, "segment": "PM", "actor": 42}
    response = client.post("/api/v1/assignments", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "actor must be a string"
    assert client.post("/api/v1/months/2024-06/apply", json={"actor": ["ops"]}).status_code == 400
    assert client.put("/api/v1/policy/active", json={"name": "Ops", "actor": 1}).status_code == 400


def test_non_integer_ids_are_a_bad_request(client):
    body = {"date": "2024-06-03", "person_id": "abc", "role_id": 1, "segment": "PM"}
    assert client.post("/api/v1/assignments/check", json=body).status_code == 400


def test_move_endpoint(client, session, roles):
    person = make_person(session, "Vance")
    body = {"date": "2024-06-03", "person_id": person.id, "role_id": roles["feeder"].id, "segment": "PM"}
    assignment_id = client.post("/api/v1/assignments", json=body).json()["id"]
    moved = client.post(f"/api/v1/assignments/{assignment_id}/move", json={"role_id": roles["hot_end"].id})
    assert moved.json() == {"id": assignment_id, "role_id": roles["hot_end"].id}
    assert client.post("/api/v1/assignments/999/move", json={"role_id": roles["hot_end"].id}).status_code == 404


def test_month_apply_coverage_and_shifts(client, session, roles):
    person = make_person(session, "Vance")
    buffet = roles["buffet"]
    upsert_monthly_default(session, "2024-06", person.id, "AM", buffet.id)
    upsert_needs_baseline(session, buffet.group_id, buffet.id, "AM", 2)
    add_time_off(session, person.id, at(MONDAY, "09:00"), at(MONDAY, "09:30"))

    summary = client.post("/api/v1/months/2024-06/apply").json()
    assert summary["written"] == 19
    assert summary["skipped"] == {"time_off": 1}

    cells = client.get("/api/v1/days/2024-06-04/coverage", params={"segment": "AM"}).json()["cells"]
    buffet_cell = next(cell for cell in cells if cell["role_id"] == buffet.id)
    assert (buffet_cell["assigned"], buffet_cell["required"], buffet_cell["status"]) == (1, 2, "understaffed")

    rows = client.get("/api/v1/shifts", params={"start": "2024-06-03", "end": "2024-06-07"}).json()["rows"]
    assert len(rows) == 4
    assert rows[0]["start"] == "2024-06-04T08:00"

    report = client.get("/api/v1/validation", params={"start": "2024-06-04", "end": "2024-06-04"}).json()
    assert report["issues"] == []
    assert "understaffed" in {warning["type"] for warning in report["warnings"]}


def test_bad_month_is_a_bad_request(client):
    assert client.post("/api/v1/months/2024-13/apply").status_code == 400


def test_candidates_and_moves(client, session, roles):
    make_person(session, "Vance")
    make_person(session, "Wu", "AM")
    people = client.get("/api/v1/days/2024-06-03/candidates", params={"segment": "PM"}).json()["people"]
    assert [entry["name"] for entry in people] == ["Vance, Pat"]
    moves = client.get("/api/v1/days/2024-06-03/moves", params={"segment": "PM"}).json()
    assert moves["moves"] == []
