from __future__ import annotations

import sys
from importlib import import_module
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

RELOADED_MODULES = ("backend.main", "backend.load_demo", "backend.database", "backend.config")


@pytest.fixture(params=["sql", "json"])
def api_client(
    request: pytest.FixtureRequest,
    tmp_path_factory: pytest.TempPathFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """Provide a TestClient wired to an isolated SQLite database or JSON document."""
    repo_root = Path(__file__).resolve().parents[2]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

    data_dir = tmp_path_factory.mktemp("data")
    monkeypatch.setenv("STORE_BACKEND", request.param)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{data_dir / 'test_transport.db'}")
    monkeypatch.setenv("JSON_STORE_PATH", str(data_dir / "test_transport.json"))
    monkeypatch.setenv("DRIVER_PORTION_RATE", "0.30")

    for module in RELOADED_MODULES:
        sys.modules.pop(module, None)

    app_module = import_module("backend.main")

    with TestClient(app_module.app) as client:
        yield client


def _create(client: TestClient, resource: str, payload: dict) -> dict:
    response = client.post(f"/api/{resource}", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _fleet(client: TestClient) -> dict:
    customer = _create(client, "clients", {"name": "Constructora San José", "phone": "+1 555-0101"})
    driver = _create(client, "drivers", {"name": "Miguel Herrera", "license_number": "CDL-48213"})
    truck = _create(
        client,
        "trucks",
        {"name": "Dump Truck 1", "license_plate": "TRK-1001", "assigned_driver_id": driver["id"]},
    )
    return {"client": customer, "driver": driver, "truck": truck}


def _trip(fleet: dict, **overrides) -> dict:
    payload = {
        "client_id": fleet["client"]["id"],
        "truck_id": fleet["truck"]["id"],
        "driver_id": fleet["driver"]["id"],
        "date": "2025-01-03",
        "service_type": "material_transport",
        "material": "Gravel",
        "quantity": "20 tons",
        "origin": "Quarry North",
        "destination": "123 Industrial Ave",
        "distance": 45,
        "amount": 1200,
        "tips": 50,
        "collected": 1250,
    }
    payload.update(overrides)
    return payload


def test_health_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Transport API is running"}


def test_unknown_route_uses_error_envelope(api_client: TestClient) -> None:
    response = api_client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": {"message": "Route not found"}}


def test_client_lifecycle(api_client: TestClient) -> None:
    created = _create(api_client, "clients", {"name": "Obras del Norte", "phone": "+1 555-0102"})
    assert created["id"].startswith("client-")
    assert created["created_at"]

    fetched = api_client.get(f"/api/clients/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Obras del Norte"

    updated = api_client.put(f"/api/clients/{created['id']}", json={"name": "Obras del Sur", "phone": None})
    assert updated.status_code == 200, updated.text
    assert updated.json()["name"] == "Obras del Sur"
    assert updated.json()["phone"] is None
    assert updated.json()["created_at"] == created["created_at"]

    deleted = api_client.delete(f"/api/clients/{created['id']}")
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Client deleted successfully"}

    assert api_client.get("/api/clients").json() == []
    missing = api_client.get(f"/api/clients/{created['id']}")
    assert missing.status_code == 404
    assert missing.json() == {"error": {"message": "Client not found"}}


def test_create_without_required_fields_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/api/clients", json={"phone": "+1 555-0199"})
    assert response.status_code == 400
    assert response.json() == {"error": {"message": "Missing required fields: name"}}

    response = api_client.post("/api/payments", json={"amount": 100})
    assert response.status_code == 400
    message = response.json()["error"]["message"]
    assert message.startswith("Missing required fields:")
    for field in ("client_id", "date", "method"):
        assert field in message


def test_invalid_enum_is_rejected(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    response = api_client.post("/api/trips", json=_trip(fleet, service_type="goods"))
    assert response.status_code == 400
    assert "service_type" in response.json()["error"]["message"]


@pytest.mark.parametrize("bad_date", [20250103, True, ["2025-01-03"], {"day": 3}])
def test_non_string_date_is_rejected(api_client: TestClient, bad_date: object) -> None:
    fleet = _fleet(api_client)
    response = api_client.post("/api/trips", json=_trip(fleet, date=bad_date))
    assert response.status_code == 400
    assert "date" in response.json()["error"]["message"]

    response = api_client.post(
        "/api/payments",
        json={"client_id": fleet["client"]["id"], "date": bad_date, "amount": 100, "method": "cash"},
    )
    assert response.status_code == 400


def test_truck_license_plate_must_be_unique(api_client: TestClient) -> None:
    first = _create(api_client, "trucks", {"name": "Dump Truck 1", "license_plate": "TRK-1001"})
    assert first["status"] == "active"

    duplicate = api_client.post("/api/trucks", json={"name": "Dump Truck 2", "license_plate": "trk-1001"})
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": {"message": "License plate already exists"}}

    second = _create(api_client, "trucks", {"name": "Dump Truck 2", "license_plate": "TRK-1002"})
    fetched = api_client.get(f"/api/trucks/{second['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["license_plate"] == "TRK-1002"

    clash = api_client.put(
        f"/api/trucks/{second['id']}",
        json={"name": "Dump Truck 2", "license_plate": "TRK-1001", "status": "maintenance"},
    )
    assert clash.status_code == 409

    # Re-saving a truck with its own plate is not a clash.
    same = api_client.put(
        f"/api/trucks/{second['id']}",
        json={"name": "Dump Truck 2", "license_plate": "TRK-1002", "status": "Maintenance"},
    )
    assert same.status_code == 200, same.text
    assert same.json()["status"] == "maintenance"
    assert [truck["id"] for truck in api_client.get("/api/trucks?status=maintenance").json()] == [second["id"]]


@pytest.mark.parametrize("resource", ["clients", "trucks", "drivers", "trips", "costs", "payments"])
def test_missing_ids_return_not_found(api_client: TestClient, resource: str) -> None:
    assert api_client.get(f"/api/{resource}/does-not-exist").status_code == 404
    assert api_client.delete(f"/api/{resource}/does-not-exist").status_code == 404
    response = api_client.delete(f"/api/{resource}/does-not-exist")
    assert response.json()["error"]["message"].endswith("not found")


def test_update_missing_trip_returns_not_found(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    response = api_client.put("/api/trips/trip-missing", json=_trip(fleet))
    assert response.status_code == 404
    assert response.json() == {"error": {"message": "Trip not found"}}


def test_trip_filters_and_ordering(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    other_driver = _create(api_client, "drivers", {"name": "Luis Ortega"})

    _create(api_client, "trips", _trip(fleet, date="2025-01-01"))
    _create(api_client, "trips", _trip(fleet, date="2025-01-03"))
    _create(api_client, "trips", _trip(fleet, date="2025-01-02"))
    _create(api_client, "trips", _trip(fleet, date="2025-01-04", driver_id=other_driver["id"]))

    response = api_client.get("/api/trips", params={"driver_id": fleet["driver"]["id"]})
    assert response.status_code == 200
    trips = response.json()
    assert {trip["driver_id"] for trip in trips} == {fleet["driver"]["id"]}
    assert [trip["date"] for trip in trips] == ["2025-01-03", "2025-01-02", "2025-01-01"]

    by_date = api_client.get("/api/trips", params={"date": "2025-01-04"}).json()
    assert [trip["driver_id"] for trip in by_date] == [other_driver["id"]]


def test_deleted_trip_disappears_from_list(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    keep = _create(api_client, "trips", _trip(fleet))
    drop = _create(api_client, "trips", _trip(fleet, date="2025-01-02"))

    assert api_client.delete(f"/api/trips/{drop['id']}").status_code == 200
    remaining = [trip["id"] for trip in api_client.get("/api/trips").json()]
    assert remaining == [keep["id"]]


def test_trip_defaults_tips_and_collected(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    payload = _trip(fleet)
    del payload["tips"]
    del payload["collected"]
    trip = _create(api_client, "trips", payload)
    assert trip["tips"] == 0
    assert trip["collected"] == 0


def test_cost_filters(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    diesel = _create(
        api_client,
        "costs",
        {"date": "2025-01-03", "amount": 350, "category": "diesel", "driver_id": fleet["driver"]["id"]},
    )
    _create(
        api_client,
        "costs",
        {"date": "2025-01-03", "amount": 450, "category": "maintenance", "truck_id": fleet["truck"]["id"]},
    )

    response = api_client.get("/api/costs", params={"date": "2025-01-03", "category": "diesel"})
    assert [cost["id"] for cost in response.json()] == [diesel["id"]]
    assert diesel["description"] == ""
    assert diesel["truck_id"] is None


def test_choice_filters_accept_any_case(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    diesel = _create(api_client, "costs", {"date": "2025-01-03", "amount": 350, "category": "Diesel"})
    payment = _create(
        api_client,
        "payments",
        {"client_id": fleet["client"]["id"], "date": "2025-01-03", "amount": 500, "method": "Transfer"},
    )

    costs = api_client.get("/api/costs", params={"category": "Diesel"}).json()
    assert [cost["id"] for cost in costs] == [diesel["id"]]
    payments = api_client.get("/api/payments", params={"method": " TRANSFER "}).json()
    assert [item["id"] for item in payments] == [payment["id"]]
    trucks = api_client.get("/api/trucks", params={"status": "Active"}).json()
    assert [truck["id"] for truck in trucks] == [fleet["truck"]["id"]]


def test_invalid_date_filter_is_rejected(api_client: TestClient) -> None:
    response = api_client.get("/api/trips", params={"date": "not-a-date"})
    assert response.status_code == 400
    assert "date" in response.json()["error"]["message"]


def test_payment_round_trip_normalizes_date(api_client: TestClient) -> None:
    customer = _create(api_client, "clients", {"name": "Pavimentos Express"})
    payload = {
        "client_id": customer["id"],
        "date": "2025-01-05T15:30:00Z",
        "amount": 3000,
        "method": "cash",
        "reference": "RCPT-77",
        "notes": "Partial payment",
    }
    created = _create(api_client, "payments", payload)

    fetched = api_client.get(f"/api/payments/{created['id']}")
    assert fetched.status_code == 200
    body = fetched.json()
    assert body == created
    assert body["date"] == "2025-01-05"
    assert body["amount"] == 3000
    assert body["method"] == "cash"
    assert body["reference"] == "RCPT-77"
    assert body["notes"] == "Partial payment"


def test_deleting_driver_keeps_trips(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    trip = _create(api_client, "trips", _trip(fleet))

    assert api_client.delete(f"/api/drivers/{fleet['driver']['id']}").status_code == 200
    response = api_client.get(f"/api/trips/{trip['id']}")
    assert response.status_code == 200
    assert response.json()["driver_id"] == fleet["driver"]["id"]


def test_daily_income_report(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    driver_id = fleet["driver"]["id"]
    _create(api_client, "trips", _trip(fleet, amount=700, tips=30, collected=730))
    _create(api_client, "trips", _trip(fleet, amount=500, tips=20, collected=520))
    _create(api_client, "trips", _trip(fleet, date="2025-01-02", amount=950, tips=40))
    _create(api_client, "costs", {"date": "2025-01-03", "amount": 350, "category": "diesel", "driver_id": driver_id})
    _create(api_client, "costs", {"date": "2025-01-03", "amount": 90, "category": "tolls", "driver_id": driver_id})
    idle = _create(api_client, "drivers", {"name": "Luis Ortega"})

    response = api_client.get("/api/reports/daily-income", params={"date": "2025-01-03"})
    assert response.status_code == 200, response.text
    report = response.json()
    assert report["date"] == "2025-01-03"
    assert report["driver_portion_rate"] == pytest.approx(0.30)

    rows = {row["driver_id"]: row for row in report["drivers"]}
    busy = rows[driver_id]
    assert busy["truck_plate"] == "N/A"
    assert busy["trip_count"] == 2
    assert busy["total_revenue"] == pytest.approx(1200)
    assert busy["total_tips"] == pytest.approx(50)
    assert busy["total_collected"] == pytest.approx(1250)
    assert busy["diesel_costs"] == pytest.approx(350)
    assert busy["driver_portion"] == pytest.approx(360)
    assert busy["owner_profit"] == pytest.approx(540)
    assert busy["net_profit"] == pytest.approx(900)

    quiet = rows[idle["id"]]
    assert quiet["trip_count"] == 0
    assert quiet["net_profit"] == 0

    assert report["totals"]["trips"] == 2
    assert report["totals"]["owner_profit"] == pytest.approx(540)


def test_overview_report(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    _create(api_client, "trips", _trip(fleet, amount=1200, tips=50))
    _create(api_client, "trips", _trip(fleet, date="2025-01-02", amount=800, tips=0, client_id="client-gone"))
    _create(api_client, "trips", _trip(fleet, date="2024-11-02", amount=5000))
    _create(api_client, "costs", {"date": "2025-01-02", "amount": 250, "category": "tires"})

    response = api_client.get("/api/reports/overview", params={"start": "2025-01-01", "end": "2025-01-31"})
    assert response.status_code == 200, response.text
    report = response.json()
    totals = report["totals"]
    assert totals["revenue"] == pytest.approx(2000)
    assert totals["costs"] == pytest.approx(250)
    assert totals["net_profit"] == pytest.approx(1800)
    assert totals["margin"] == pytest.approx(90.0)
    assert [point["label"] for point in report["revenue_by_date"]] == ["Jan 2", "Jan 3"]
    assert report["revenue_by_client"][0] == {"name": "Constructora San José", "value": 1200}
    assert report["revenue_by_client"][1]["name"] == "Unknown"
    assert report["costs_by_category"] == [{"name": "Tires", "value": 250}]

    bad = api_client.get("/api/reports/overview", params={"start": "2025-02-01", "end": "2025-01-01"})
    assert bad.status_code == 400


def test_client_balance_and_driver_summary(api_client: TestClient) -> None:
    fleet = _fleet(api_client)
    customer_id = fleet["client"]["id"]
    _create(api_client, "trips", _trip(fleet, amount=1200))
    _create(api_client, "trips", _trip(fleet, date="2025-01-02", amount=950))
    _create(api_client, "payments", {"client_id": customer_id, "date": "2025-01-04", "amount": 1500, "method": "transfer"})

    balance = api_client.get(f"/api/clients/{customer_id}/balance").json()
    assert balance["total_billed"] == pytest.approx(2150)
    assert balance["total_paid"] == pytest.approx(1500)
    assert balance["balance"] == pytest.approx(650)

    summary = api_client.get(f"/api/drivers/{fleet['driver']['id']}/summary").json()
    assert summary["trip_count"] == 2
    assert [point["date"] for point in summary["revenue_by_date"]] == ["2025-01-02", "2025-01-03"]

    assert api_client.get("/api/drivers/driver-missing/summary").status_code == 404
    assert api_client.get("/api/clients/client-missing/balance").status_code == 404


def test_dashboard_after_demo_import(api_client: TestClient) -> None:
    load_demo = import_module("backend.load_demo")
    with load_demo.open_store() as store:
        counts = load_demo.load_records(store, load_demo.load_json_records(load_demo.DEFAULT_JSON))
    assert counts == {"clients": 3, "drivers": 2, "trucks": 2, "trips": 8, "costs": 7, "payments": 4}

    dashboard = api_client.get("/api/reports/dashboard").json()
    assert dashboard["total_trips"] == 8
    assert dashboard["total_revenue"] == pytest.approx(8230)
    assert dashboard["total_costs"] == pytest.approx(5085)
    assert dashboard["active_trucks"] == 2
    assert dashboard["outstanding_balance"] == pytest.approx(8230 - 26000)

    report = api_client.get("/api/reports/daily-income", params={"date": "2025-01-03"}).json()
    plates = sorted(row["truck_plate"] for row in report["drivers"])
    assert plates == ["TRK-1001", "TRK-1002"]
    assert report["totals"]["revenue"] == pytest.approx(2000)
    assert report["totals"]["diesel"] == pytest.approx(670)


def test_repeated_demo_import_does_not_duplicate(api_client: TestClient) -> None:
    load_demo = import_module("backend.load_demo")
    document = load_demo.load_json_records(load_demo.DEFAULT_JSON)
    with load_demo.open_store() as store:
        load_demo.load_records(store, document)
    with load_demo.open_store() as store:
        counts = load_demo.load_records(store, document)

    assert counts == {"clients": 0, "drivers": 0, "trucks": 2, "trips": 0, "costs": 0, "payments": 0}
    for resource, expected in (("clients", 3), ("drivers", 2), ("trucks", 2), ("trips", 8), ("costs", 7), ("payments", 4)):
        assert len(api_client.get(f"/api/{resource}").json()) == expected

    report = api_client.get("/api/reports/daily-income", params={"date": "2025-01-03"}).json()
    assert sorted(row["truck_plate"] for row in report["drivers"]) == ["TRK-1001", "TRK-1002"]
