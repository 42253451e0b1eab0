"""
Tests for the HTTP and WebSocket API.
"""
import threading
from datetime import timedelta

from fastapi.testclient import TestClient

from medsupply.main import create_app
from medsupply.services.inventory_store import InventoryStore
from tests.conftest import NOW, BlockingRepository, make_draft


def _post(client, **overrides):
    payload = make_draft(**overrides)
    if payload["expiry_date"] is not None:
        payload["expiry_date"] = payload["expiry_date"].isoformat()
    return client.post("/supplies", json=payload)


class TestSupplyCrud:

    def test_create_computes_risk(self, client):
        response = _post(client)
        assert response.status_code == 201
        body = response.json()
        assert body["id"] == 1
        assert body["risk_level"] == "Critical"

    def test_caller_cannot_set_risk(self, client):
        payload = make_draft()
        payload["risk_level"] = "Normal"
        response = client.post("/supplies", json=payload)
        assert response.status_code == 422
        assert client.get("/supplies").json() == []

    def test_create_rejects_negative_quantity(self, client):
        response = _post(client, current_quantity=-1)
        assert response.status_code == 400
        assert "current_quantity" in response.json()["detail"]

    def test_get_update_delete(self, client):
        item_id = _post(client).json()["id"]

        assert client.get(f"/supplies/{item_id}").json()["name"] == "Gauze"

        patched = client.patch(f"/supplies/{item_id}/quantity", json={"current_quantity": 150})
        assert patched.status_code == 200
        assert patched.json()["risk_level"] == "Elevated"

        payload = make_draft(name="Gauze Rolls", current_quantity=1000)
        replaced = client.put(f"/supplies/{item_id}", json=payload)
        assert replaced.json()["name"] == "Gauze Rolls"
        assert replaced.json()["risk_level"] == "Normal"

        assert client.delete(f"/supplies/{item_id}").status_code == 204
        assert client.get(f"/supplies/{item_id}").status_code == 404
        assert client.delete(f"/supplies/{item_id}").status_code == 404

    def test_unknown_item(self, client):
        assert client.patch("/supplies/9/quantity", json={"current_quantity": 1}).status_code == 404
        assert client.put("/supplies/9", json=make_draft()).status_code == 404

    def test_storage_failure_adds_warning_header(self, client, repository):
        repository.failing = True
        response = _post(client)
        assert response.status_code == 201
        assert response.headers["warning"].startswith("199 -")
        assert client.get("/supplies/1").status_code == 200

    def test_reads_are_served_during_a_slow_write(self, clock):
        repository = BlockingRepository()
        with TestClient(create_app(InventoryStore(repository, clock))) as client:
            writer = threading.Thread(target=_post, args=(client,))
            writer.start()
            assert repository.entered.wait(timeout=2)

            listed = []
            reader = threading.Thread(target=lambda: listed.append(client.get("/supplies").json()))
            reader.start()
            reader.join(timeout=2)
            read_finished = not reader.is_alive()

            repository.release.set()
            writer.join(timeout=5)
            reader.join(timeout=5)

        assert read_finished
        assert [item["name"] for item in listed[0]] == ["Gauze"]


class TestSupplyQueries:

    def _stock(self, client):
        _post(client, name="Gloves", category="PPE", current_quantity=500, expiry_date=NOW + timedelta(days=5))
        _post(client, name="Masks", category="PPE", current_quantity=120)
        _post(client, name="Insulin", category="Medication", current_quantity=500)

    def test_list_with_filters(self, client):
        self._stock(client)
        names = [item["name"] for item in client.get("/supplies").json()]
        assert names == ["Gloves", "Insulin", "Masks"]

        response = client.get("/supplies", params={"search": "ma", "category": "PPE"})
        assert [item["name"] for item in response.json()] == ["Masks"]

        response = client.get("/supplies", params={"risk_level": "Normal"})
        assert [item["name"] for item in response.json()] == ["Insulin"]

    def test_invalid_risk_level_param(self, client):
        assert client.get("/supplies", params={"risk_level": "Severe"}).status_code == 422

    def test_critical_and_expiring(self, client):
        self._stock(client)
        assert [i["name"] for i in client.get("/supplies/critical").json()] == ["Gloves"]
        assert [i["name"] for i in client.get("/supplies/expiring", params={"days": 10}).json()] == ["Gloves"]
        assert client.get("/supplies/expiring", params={"days": 1}).json() == []

    def test_reclassify(self, client, clock):
        _post(client, current_quantity=1000, expiry_date=NOW + timedelta(days=10))
        clock.advance(days=5)
        changed = client.post("/supplies/reclassify").json()
        assert [item["risk_level"] for item in changed] == ["Critical"]


class TestAnalytics:

    def test_summary_and_categories(self, client):
        _post(client, name="Gloves", category="PPE", current_quantity=500, expiry_date=NOW + timedelta(days=5))
        _post(client, name="Masks", category="PPE", current_quantity=120)
        _post(client, name="Insulin", category="Medication", current_quantity=500)

        summary = client.get("/analytics/summary").json()
        assert summary == {"total": 3, "critical": 1, "elevated": 1, "normal": 1, "expiring": 1}

        categories = client.get("/analytics/categories").json()
        assert categories == [
            {"category": "Medication", "total": 1, "critical": 0},
            {"category": "PPE", "total": 2, "critical": 1},
        ]

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "items": 0}


class TestLiveFeed:

    def test_streams_changes(self, client):
        item_id = _post(client).json()["id"]
        with client.websocket_connect("/supplies/live?risk_level=Critical") as websocket:
            assert [item["id"] for item in websocket.receive_json()] == [item_id]

            client.patch(f"/supplies/{item_id}/quantity", json={"current_quantity": 1000})
            assert websocket.receive_json() == []

            client.patch(f"/supplies/{item_id}/quantity", json={"current_quantity": 5})
            update = websocket.receive_json()
            assert update[0]["current_quantity"] == 5
