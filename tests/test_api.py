from __future__ import annotations

import re
from datetime import date

import pytest
from fastapi.testclient import TestClient

from winterdienst import crud, main, models
from winterdienst.config import Settings
from winterdienst.street_status import get_daily_status, set_street_status

from conftest import add_log

DAY = date(2026, 1, 12)


@pytest.fixture()
def client(session_factory, seeded):
    main.init_state(session_factory, Settings(enable_bg_filter=True))
    with TestClient(main.app) as test_client:
        yield test_client
    main.init_state()


def as_user(user):
    return {"X-User-Id": str(user.id)}


def test_health_needs_no_identity(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_identity_is_required(client, seeded):
    assert client.get("/api/cities").status_code == 401
    assert client.get("/api/cities", headers={"X-User-Id": "abc"}).status_code == 401
    assert client.get("/api/cities", headers={"X-User-Id": "9999"}).status_code == 401
    for value in ("²".encode("latin-1"), "١".encode(), b"12a"):
        assert client.get("/api/cities", headers={"X-User-Id": value}).status_code == 401
    me = client.get("/api/me", headers=as_user(seeded.worker))
    assert me.json() == {"role": "mitarbeiter", "name": "Bernd Berg"}


def test_cities_listing_and_creation(client, seeded):
    response = client.get("/api/cities", headers=as_user(seeded.worker))
    assert [city["name"] for city in response.json()] == ["Musterstadt"]

    assert client.post("/api/cities", json={"name": "Altdorf"}, headers=as_user(seeded.worker)).status_code == 403
    created = client.post("/api/cities", json={"name": "Altdorf"}, headers=as_user(seeded.admin))
    assert created.status_code == 201
    duplicate = client.post("/api/cities", json={"name": "Altdorf"}, headers=as_user(seeded.admin))
    assert duplicate.status_code == 409

    response = client.get("/api/cities", headers=as_user(seeded.worker))
    assert [city["name"] for city in response.json()] == ["Altdorf", "Musterstadt"]

    streets = client.get(f"/api/cities/{seeded.city.id}/streets", headers=as_user(seeded.worker)).json()
    assert [street["name"] for street in streets] == ["Hauptstraße", "Schulweg"]
    areas = client.get(f"/api/cities/{seeded.city.id}/areas", headers=as_user(seeded.worker)).json()
    assert [area["name"] for area in areas] == ["Nord"]
    assert client.get("/api/cities/9999/areas", headers=as_user(seeded.worker)).status_code == 404


def test_customers_are_managed_by_admins(client, seeded):
    headers = as_user(seeded.admin)
    created = client.post("/api/customers", json={"name": "Stadtwerke"}, headers=headers)
    assert created.status_code == 201
    customer_id = created.json()["id"]
    assert [item["name"] for item in client.get("/api/customers", headers=headers).json()] == ["Stadtwerke"]

    updated = client.put(f"/api/customers/{customer_id}", json={"name": "Stadtwerke GmbH"}, headers=headers)
    assert updated.json()["name"] == "Stadtwerke GmbH"
    assert [item["name"] for item in client.get("/api/customers", headers=headers).json()] == ["Stadtwerke GmbH"]
    assert client.put("/api/customers/9999", json={"name": "x"}, headers=headers).status_code == 404
    assert client.post("/api/customers", json={"name": "x"}, headers=as_user(seeded.worker)).status_code == 403
    assert client.get("/api/pricing", headers=headers).json() == []
    assert client.get("/api/templates", headers=headers).json() == []


def test_work_log_lifecycle(client, seeded):
    headers = as_user(seeded.worker)
    payload = {
        "street_id": seeded.street.id,
        "work_date": DAY.isoformat(),
        "start_time": "06:00",
        "end_time": "08:30",
    }
    created = client.post("/api/work-logs", json=payload, headers=headers)
    assert created.status_code == 201
    log_id = created.json()["id"]

    guest = client.post("/api/work-logs", json=payload, headers=as_user(seeded.guest))
    assert guest.status_code == 403
    invalid = client.post("/api/work-logs", json={**payload, "end_time": "05:00"}, headers=headers)
    assert invalid.status_code == 422
    unknown_street = client.post("/api/work-logs", json={**payload, "street_id": 9999}, headers=headers)
    assert unknown_street.status_code == 404

    overview = client.get(
        "/api/work-logs", params={"view": "week", "date": DAY.isoformat()}, headers=headers
    ).json()
    assert overview["period"]["label"] == "12.01. - 18.01.2026 (KW 3)"
    assert overview["previous_date"] == "2026-01-05"
    assert overview["next_date"] == "2026-01-19"
    assert overview["aggregation"]["total_minutes"] == 150
    assert overview["aggregation"]["groups"][0]["entries"][0]["street_name"] == "Hauptstraße"

    changed = client.put(f"/api/work-logs/{log_id}", json={**payload, "end_time": "09:00"}, headers=headers)
    assert changed.status_code == 200
    assert changed.json()["end_time"] == "09:00:00"

    foreign = client.delete(f"/api/work-logs/{log_id}", headers=as_user(seeded.colleague))
    assert foreign.status_code == 403
    assert client.delete(f"/api/work-logs/{log_id}", headers=as_user(seeded.admin)).status_code == 200
    assert client.delete(f"/api/work-logs/{log_id}", headers=headers).status_code == 404


def test_category_filter_and_other_users(client, seeded, db):
    add_log(db, seeded.worker.id, seeded.street.id, DAY, "06:00", "07:00")
    add_log(db, seeded.worker.id, seeded.bg_street.id, DAY, "08:00", "08:45")
    headers = as_user(seeded.worker)

    bg = client.get("/api/work-logs", params={"view": "day", "date": DAY.isoformat(), "category": "bg"}, headers=headers)
    assert bg.json()["aggregation"]["total_minutes"] == 45
    assert bg.json()["aggregation"]["unfiltered_count"] == 2
    assert client.get("/api/work-logs", params={"category": "x"}, headers=headers).status_code == 400
    assert client.get("/api/work-logs", params={"view": "year"}, headers=headers).status_code == 400

    params = {"view": "day", "date": DAY.isoformat(), "user_id": seeded.worker.id}
    assert client.get("/api/work-logs", params=params, headers=as_user(seeded.colleague)).status_code == 403
    admin_view = client.get("/api/work-logs", params=params, headers=as_user(seeded.admin))
    assert admin_view.json()["aggregation"]["entry_count"] == 2


def test_bulk_delete_checks_every_entry(client, seeded, db):
    own = add_log(db, seeded.worker.id, seeded.street.id, DAY, "06:00", "07:00")
    other = add_log(db, seeded.colleague.id, seeded.street.id, DAY, "06:00", "07:00")
    headers = as_user(seeded.worker)

    denied = client.post("/api/work-logs/delete", json={"ids": [own.id, other.id]}, headers=headers)
    assert denied.status_code == 403
    assert client.post("/api/work-logs/delete", json={"ids": []}, headers=headers).status_code == 422
    done = client.post("/api/work-logs/delete", json={"ids": [own.id]}, headers=headers)
    assert done.json() == {"deleted": 1}
    assert crud.get_work_log(db, other.id) is not None


def test_street_status_rounds_and_team_logs(client, seeded, db):
    headers = as_user(seeded.worker)
    url = f"/api/streets/{seeded.street.id}"

    team = client.post(
        f"{url}/team-logs",
        json={
            "work_date": DAY.isoformat(),
            "start_time": "05:00",
            "end_time": "06:00",
            "user_ids": [seeded.worker.id, seeded.colleague.id],
        },
        headers=headers,
    )
    assert team.status_code == 201
    assert len(team.json()) == 2

    reversed_times = client.post(
        f"{url}/team-logs",
        json={
            "work_date": DAY.isoformat(),
            "start_time": "10:00",
            "end_time": "09:00",
            "user_ids": [seeded.worker.id],
        },
        headers=headers,
    )
    assert reversed_times.status_code == 422
    assert len(crud.get_work_logs(db, start=DAY, end=DAY)) == 2

    status_response = client.post(
        f"{url}/status",
        json={"work_date": DAY.isoformat(), "status": "erledigt", "assigned_users": [seeded.colleague.id]},
        headers=headers,
    )
    assert status_response.status_code == 200
    body = status_response.json()
    assert body["status"] == "erledigt"
    assert body["assigned_users"] == [seeded.colleague.id, seeded.worker.id]

    bad = client.post(f"{url}/status", json={"work_date": DAY.isoformat(), "status": "fertig"}, headers=headers)
    assert bad.status_code == 422
    assert client.post(f"{url}/rounds", json={"work_date": DAY.isoformat()}, headers=as_user(seeded.guest)).status_code == 403

    round_response = client.post(f"{url}/rounds", json={"work_date": DAY.isoformat()}, headers=headers)
    assert round_response.json() == {"round": 2}
    db.expire_all()
    row = get_daily_status(db, seeded.street.id, DAY)
    assert row.status == models.StreetStatus.OPEN
    assert row.current_round == 2


def test_work_hours_exports(client, seeded, db):
    add_log(db, seeded.worker.id, seeded.street.id, DAY, "06:00", "07:00")
    headers = as_user(seeded.worker)
    params = {"view": "month", "date": DAY.isoformat()}

    pdf = client.get("/api/work-logs/export/pdf", params=params, headers=headers)
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    xlsx = client.get("/api/work-logs/export/xlsx", params=params, headers=headers)
    assert xlsx.status_code == 200
    assert "arbeitsstunden_" in xlsx.headers["content-disposition"]


def test_report_lifecycle(client, seeded, db):
    add_log(db, seeded.worker.id, seeded.street.id, DAY, "06:00", "07:30")
    worker, admin = as_user(seeded.worker), as_user(seeded.admin)
    request = {"title": "Januar", "period_start": "2026-01-01", "period_end": "2026-01-31"}

    assert client.post("/api/reports", json=request, headers=as_user(seeded.guest)).status_code == 403
    invalid = client.post("/api/reports", json={**request, "period_end": "2025-12-31"}, headers=worker)
    assert invalid.status_code == 422

    created = client.post("/api/reports", json=request, headers=worker)
    assert created.status_code == 201
    report = created.json()
    assert re.fullmatch(r"BR-\d{4}-01000", report["report_number"])
    assert report["status"] == "draft"
    assert report["data"]["summary"]["total_hours"] == 1.5
    assert report["data"]["metadata"]["generated_by"] == seeded.worker.id

    report_url = f"/api/reports/{report['id']}"
    assert client.get(report_url, headers=worker).json()["data"] == report["data"]
    assert len(client.get("/api/reports", headers=worker).json()) == 1

    assert client.patch(f"{report_url}/status", json={"status": "finalized"}, headers=worker).status_code == 403
    finalized = client.patch(f"{report_url}/status", json={"status": "finalized"}, headers=admin)
    assert finalized.json()["status"] == "finalized"
    assert client.patch(f"{report_url}/status", json={"status": "draft"}, headers=admin).status_code == 409
    assert [item["id"] for item in client.get("/api/reports", params={"status": "finalized"}, headers=worker).json()] == [
        report["id"]
    ]

    pdf = client.get(f"{report_url}/pdf", headers=worker)
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")

    assert client.delete(report_url, headers=worker).status_code == 403
    assert client.delete(report_url, headers=admin).status_code == 200
    assert client.get(report_url, headers=worker).status_code == 404


def test_admin_manages_users(client, seeded, db):
    admin = as_user(seeded.admin)
    assert client.get("/api/users", headers=as_user(seeded.worker)).status_code == 403
    names = [item["name"] for item in client.get("/api/users", headers=admin).json()]
    assert names == ["Anna Admin", "Bernd Berg", "Clara Kurz", "Gerd Gast"]

    payload = {"name": "Dora Dienst", "email": "dora@example.com", "role": "mitarbeiter"}
    assert client.post("/api/users", json=payload, headers=admin).status_code == 201
    assert client.post("/api/users", json=payload, headers=admin).status_code == 409

    set_street_status(db, seeded.street.id, DAY, models.StreetStatus.DONE, seeded.worker.id, [seeded.colleague.id])
    assert client.delete(f"/api/users/{seeded.admin.id}", headers=admin).status_code == 400
    assert client.delete(f"/api/users/{seeded.worker.id}", headers=admin).status_code == 200
    assert client.delete(f"/api/users/{seeded.worker.id}", headers=admin).status_code == 404
    assert client.get("/api/me", headers=as_user(seeded.worker)).status_code == 401

    db.expire_all()
    assert get_daily_status(db, seeded.street.id, DAY).assigned_users == [seeded.colleague.id]


def test_new_areas_and_streets_refresh_cached_lists(client, seeded):
    admin, worker = as_user(seeded.admin), as_user(seeded.worker)
    city_url = f"/api/cities/{seeded.city.id}"
    assert [area["name"] for area in client.get(f"{city_url}/areas", headers=worker).json()] == ["Nord"]
    assert len(client.get(f"{city_url}/streets", headers=worker).json()) == 2

    assert client.post(f"{city_url}/areas", json={"name": "Süd"}, headers=worker).status_code == 403
    created = client.post(f"{city_url}/areas", json={"name": "Süd"}, headers=admin)
    assert created.status_code == 201
    assert client.post(f"{city_url}/areas", json={"name": "Süd"}, headers=admin).status_code == 409
    assert client.post("/api/cities/9999/areas", json={"name": "Süd"}, headers=admin).status_code == 404
    assert [area["name"] for area in client.get(f"{city_url}/areas", headers=worker).json()] == ["Nord", "Süd"]

    street = {"name": "Ringstraße", "area_id": created.json()["id"], "is_bg": True}
    response = client.post("/api/streets", json=street, headers=admin)
    assert response.status_code == 201
    assert response.json()["city_name"] == "Musterstadt"
    assert response.json()["area_name"] == "Süd"
    assert client.post("/api/streets", json=street, headers=admin).status_code == 409
    assert client.post("/api/streets", json={**street, "area_id": 9999}, headers=admin).status_code == 404
    names = [item["name"] for item in client.get(f"{city_url}/streets", headers=worker).json()]
    assert names == ["Hauptstraße", "Ringstraße", "Schulweg"]


def test_invoice_lifecycle(client, seeded):
    admin, worker = as_user(seeded.admin), as_user(seeded.worker)
    customer = client.post("/api/customers", json={"name": "Stadtwerke", "city": "Musterstadt"}, headers=admin).json()
    request = {
        "customer_id": customer["id"],
        "issue_date": "2026-01-20",
        "period_start": "2026-01-01",
        "period_end": "2026-01-31",
        "items": [
            {"description": "Räumen Hauptstraße", "quantity": 2.5, "price_per_unit": 40},
            {"description": "Streugut", "quantity": 3, "price_per_unit": 12.5, "unit": "Sack"},
        ],
    }

    assert client.post("/api/invoices", json=request, headers=worker).status_code == 403
    unknown = client.post("/api/invoices", json={**request, "customer_id": 9999}, headers=admin)
    assert unknown.status_code == 404
    assert client.post("/api/invoices", json={**request, "items": []}, headers=admin).status_code == 422

    created = client.post("/api/invoices", json=request, headers=admin)
    assert created.status_code == 201
    invoice = created.json()
    assert re.fullmatch(r"RE-\d{4}-01000", invoice["invoice_number"])
    assert invoice["due_date"] == "2026-02-03"
    assert invoice["total"] == 163.63
    assert [item["line_total"] for item in invoice["items"]] == [100.0, 37.5]

    listing = client.get("/api/invoices", headers=worker).json()
    assert [(item["id"], item["customer_name"]) for item in listing] == [(invoice["id"], "Stadtwerke")]

    url = f"/api/invoices/{invoice['id']}"
    assert client.patch(f"{url}/status", json={"status": "sent"}, headers=worker).status_code == 403
    assert client.patch(f"{url}/status", json={"status": "bezahlt"}, headers=admin).status_code == 422
    assert client.patch(f"{url}/status", json={"status": "sent"}, headers=admin).json()["status"] == "sent"
    assert len(client.get("/api/invoices", params={"status": "sent"}, headers=worker).json()) == 1
    assert client.get("/api/invoices", params={"status": "draft"}, headers=worker).json() == []

    flat_rate = {**request, "items": [{"description": "Pauschale", "price_per_unit": 99}]}
    changed = client.put(url, json=flat_rate, headers=admin)
    assert changed.status_code == 200
    assert changed.json()["invoice_number"] == invoice["invoice_number"]
    assert client.get("/api/invoices", headers=worker).json()[0]["total"] == 117.81

    pdf = client.get(f"{url}/pdf", headers=worker)
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")
    assert invoice["invoice_number"] in pdf.headers["content-disposition"]

    assert client.delete(url, headers=worker).status_code == 403
    assert client.delete(url, headers=admin).status_code == 200
    assert client.get(url, headers=worker).status_code == 404
    assert client.get("/api/invoices", headers=worker).json() == []
