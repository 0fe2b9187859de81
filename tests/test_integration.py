import pytest
from fastapi.testclient import TestClient

from fieldsales.main import create_app
from fieldsales.models.domain import Outlet

from conftest import OUTLET_CENTER, catalog_entry, geofence, north_of

LAT, LNG = OUTLET_CENTER


@pytest.fixture
def catalog():
    return {
        1: catalog_entry(1, mrp=130.0, units_per_case=10, stock=100, name="Tea 250g"),
        2: catalog_entry(2, mrp=65.0, units_per_case=None, stock=4, name="Soap"),
    }


@pytest.fixture
def client(store, clock, catalog):
    store.outlets["O1"] = Outlet(id="O1", name="Corner Store", lat=LAT, lng=LNG, credit_limit=10_000.0)
    app = create_app(
        store,
        geofence_loader=lambda: [geofence("O1")],
        catalog_loader=lambda distributor_id: list(catalog.values()),
    )
    app.state.tracking.clock = clock
    return TestClient(app)


def _sample(meters):
    point = north_of(LAT, LNG, meters)
    return {"latitude": point.latitude, "longitude": point.longitude}


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/api/health").json() == {"status": "ok"}


def test_visit_lifecycle_over_http(client, store, clock):
    entered = client.post("/api/tracking/U1/samples", json=_sample(100))
    assert entered.status_code == 200
    body = entered.json()
    assert [event["type"] for event in body["events"]] == ["entered"]
    assert body["active_outlets"] == ["O1"]
    assert body["notices"][0]["title"] == "Geofence Entered"

    clock.advance(minutes=45)
    exited = client.post("/api/tracking/U1/samples", json=_sample(200)).json()
    assert [event["type"] for event in exited["events"]] == ["exited"]
    assert exited["active_outlets"] == []

    visits = client.get("/api/visits", params={"user_id": "U1"}).json()
    assert len(visits) == 1
    assert visits[0]["duration_minutes"] == 45


def test_location_error_is_reported_in_status(client):
    client.post("/api/tracking/U1/samples", json=_sample(10))

    response = client.post("/api/tracking/U1/errors", json={"code": "timeout", "message": "no fix"})

    body = response.json()
    assert body["location_available"] is False
    assert body["location_error"] == "timeout"
    assert body["active_outlets"] == ["O1"]


def test_status_of_unknown_user_is_404(client):
    assert client.get("/api/tracking/nobody").status_code == 404


def test_stop_tracking_keeps_visit_open(client, store):
    client.post("/api/tracking/U1/samples", json=_sample(10))

    assert client.delete("/api/tracking/U1").json() == {"user_id": "U1", "stopped": True}
    assert client.get("/api/tracking/U1/active-outlets").json() == {"user_id": "U1", "outlet_ids": []}
    [visit] = client.get("/api/visits").json()
    assert visit["exit_time"] is None


def test_quote_endpoint(client):
    response = client.post(
        "/api/orders/quote",
        json={"distributor_id": 7, "items": [{"sku_id": 1, "order_unit_type": "cases", "quantity": 1}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["totals"] == pytest.approx({"subtotal": 1000.0, "total_discount": 10.0, "final_total": 990.0})
    assert body["items"][0]["scheme_discount_percentage"] == 1.0


def test_outlet_order_requires_being_inside(client):
    payload = {
        "distributor_id": 7,
        "outlet_id": "O1",
        "user_id": "U1",
        "items": [{"sku_id": 1, "order_unit_type": "cases", "quantity": 1}],
        "payment_status": "Paid",
    }

    assert client.post("/api/orders", json=payload).status_code == 400

    client.post("/api/tracking/U1/samples", json=_sample(30))
    response = client.post("/api/orders", json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "Approved"
    assert body["amount_paid"] == pytest.approx(990.0)


def test_outlet_order_without_user_is_rejected(client):
    response = client.post(
        "/api/orders",
        json={"distributor_id": 7, "outlet_id": "O1", "items": [{"sku_id": 1, "quantity": 1}]},
    )
    assert response.status_code == 422


def test_invalid_order_lists_every_issue(client):
    response = client.post(
        "/api/orders",
        json={
            "distributor_id": 7,
            "items": [
                {"sku_id": 1, "order_unit_type": "cases", "quantity": 11},
                {"sku_id": 2, "quantity": 5},
            ],
            "payment_status": "Partially Paid",
        },
    )

    assert response.status_code == 422
    codes = sorted((issue["code"], issue["sku_id"]) for issue in response.json()["detail"])
    assert codes == [("insufficient_stock", 1), ("insufficient_stock", 2), ("invalid_amount_paid", None)]


def test_payment_and_delivery_flow(client, store):
    store.stock[(7, 1)] = 100
    store.stock[(7, 2)] = 4
    created = client.post(
        "/api/orders",
        json={
            "distributor_id": 7,
            "items": [
                {"sku_id": 1, "order_unit_type": "cases", "quantity": 2},
                {"sku_id": 2, "quantity": 3},
            ],
        },
    ).json()
    order_id = created["order_id"]
    assert created["status"] == "Pending"

    payment = client.post(f"/api/orders/{order_id}/payments", json={"amount": 50}).json()
    assert payment["payment_status"] == "Partially Paid"

    assert client.post(f"/api/orders/{order_id}/deliver", json={}).status_code == 400
    client.post(f"/api/orders/{order_id}/status", json={"status": "Dispatched"})

    delivered = client.post(f"/api/orders/{order_id}/deliver", json={}).json()
    assert len(delivered["fulfilled_item_ids"]) == 2
    assert delivered["stock_failures"] == {}
    assert store.stock == {(7, 1): 80, (7, 2): 1}


def test_delivery_with_foreign_item_is_400(client, store):
    payload = {"distributor_id": 7, "items": [{"sku_id": 1, "quantity": 1}]}
    first = client.post("/api/orders", json=payload).json()["order_id"]
    second = client.post("/api/orders", json=payload).json()["order_id"]
    client.post(f"/api/orders/{first}/status", json={"status": "Dispatched"})
    foreign = store.orders[second]["order_items"][0]["id"]

    response = client.post(f"/api/orders/{first}/deliver", json={"out_of_stock_item_ids": [foreign]})

    assert response.status_code == 400
    assert store.orders[second]["order_items"][0]["is_out_of_stock"] is False


def test_unknown_order_is_404(client):
    assert client.post("/api/orders/999/payments", json={"amount": 10}).status_code == 404


def test_location_stream_over_websocket(client, store, clock):
    with client.websocket_connect("/api/tracking/U1/stream") as websocket:
        websocket.send_json(_sample(50))
        assert websocket.receive_json()["active_outlets"] == ["O1"]

        clock.advance(minutes=12)
        websocket.send_json(_sample(300))
        assert websocket.receive_json()["active_outlets"] == []

        websocket.send_json({"code": "timeout", "message": "no fix"})
        assert websocket.receive_json()["location_error"] == "timeout"

        websocket.send_json({"latitude": 200, "longitude": 0})
        assert "error" in websocket.receive_json()

    [visit] = store.visits.values()
    assert visit.duration_minutes == 12
