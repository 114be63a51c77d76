from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from rpi_assessment.infrastructure.kv import MemoryKeyValueStore
from rpi_assessment.infrastructure.store import BlobLicenseStore
from rpi_assessment.web.main import create_application


@pytest.fixture
def server_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def client(server_kv, two_dim_bank) -> TestClient:
    app = create_application()
    app.state.license_store = BlobLicenseStore(server_kv)
    app.state.question_bank = two_dim_bank
    return TestClient(app)


def _batch(client: TestClient, **body) -> list[dict]:
    response = client.post("/api/licenses/batch", json={"count": 3, **body})
    assert response.status_code == 200
    return response.json()["keys"]


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "store_backend" in response.json()


# ---------- Raw store endpoints ----------


def test_keys_endpoint_round_trip(client):
    assert client.get("/api/keys").json() == []

    response = client.put("/api/keys", json=[{"key": "ABC"}])
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert client.get("/api/keys").json() == [{"key": "ABC"}]


def test_keys_endpoint_rejects_non_arrays(client):
    response = client.post("/api/keys", json={"key": "ABC"})
    assert response.status_code == 400
    assert response.json()["success"] is False

    response = client.post(
        "/api/keys", content="{oops", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


def test_config_endpoint_validates_json(client):
    assert client.get("/api/config").json() == {"enableVerification": True}

    bad = client.post("/api/config", content="{oops")
    assert bad.status_code == 400
    assert bad.json()["success"] is False

    good = client.post("/api/config", content='{"enableVerification": false}')
    assert good.json() == {"success": True}
    assert client.get("/api/config").json() == {"enableVerification": False}


def test_export_endpoint_stores_named_blob(client, server_kv):
    content = "\ufeffKey,Type\nAAA,all\n"

    response = client.post(
        "/api/export", json={"filename": "../RPI-keys-1.csv", "content": content}
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert server_kv.get("RPI-keys-1.csv") == content


# ---------- License administration ----------


def test_batch_listing_and_delete(client):
    keys = _batch(client, validDays=7, maxDevices=1, type="self")

    assert len(keys) == 3
    assert {k["status"] for k in keys} == {"inactive"}
    assert keys[0]["validDays"] == 7
    assert keys[0]["type"] == "self"
    assert "activatedAt" not in keys[0] or keys[0]["activatedAt"] is None

    listed = client.get("/api/licenses").json()
    assert [k["key"] for k in listed] == [k["key"] for k in keys]

    deleted = client.delete(f"/api/licenses/{keys[0]['key']}").json()
    assert deleted == {"success": True, "removed": True, "pool_size": 2}

    again = client.delete(f"/api/licenses/{keys[0]['key']}").json()
    assert again["removed"] is False


def test_batch_rejects_invalid_count(client):
    response = client.post("/api/licenses/batch", json={"count": -1})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "count"


def test_verify_flow(client):
    key = _batch(client, maxDevices=1)[0]["key"]

    first = client.post("/api/licenses/verify", json={"key": key, "deviceId": "DEV-A"})
    assert first.json()["success"] is True
    assert first.json()["message"] == "activated"

    other = client.post("/api/licenses/verify", json={"key": key, "deviceId": "DEV-B"})
    assert other.json() == {
        "success": False,
        "message": "device limit reached",
        "state": "active_full",
    }

    same = client.post("/api/licenses/verify", json={"key": key, "deviceId": "DEV-A"})
    assert same.json()["message"] == "verified"

    listed = {k["key"]: k for k in client.get("/api/licenses").json()}
    assert listed[key]["status"] == "full"
    assert listed[key]["usedDevices"][0]["deviceId"] == "DEV-A"


def test_verify_unknown_key(client):
    response = client.post("/api/licenses/verify", json={"key": "NOPE", "deviceId": "DEV-A"})

    assert response.json()["message"] == "invalid key"


def test_verify_requires_device_id(client):
    response = client.post("/api/licenses/verify", json={"key": "NOPE"})

    assert response.status_code == 422


def test_csv_export_download(client, server_kv):
    _batch(client)

    response = client.get("/api/licenses/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert 'filename="RPI-keys-' in disposition
    assert response.content.startswith(b"\xef\xbb\xbf")
    filename = disposition.split('filename="', 1)[1].rstrip('"')
    assert server_kv.get(filename) is not None


# ---------- Assessment ----------


def test_bank_endpoint_uses_mode_text(client):
    body = client.get("/api/assessment/bank", params={"mode": "partner"}).json()

    assert body["mode"] == "partner"
    assert body["items"][0]["text"] == "partner q1"
    assert [d["id"] for d in body["dimensions"]] == ["a", "b"]


def test_bank_endpoint_rejects_unknown_mode(client):
    assert client.get("/api/assessment/bank", params={"mode": "friend"}).status_code == 422


def test_score_endpoint_complete(client):
    response = client.post("/api/assessment/score", json={"answers": {"q1": 6, "q2": 2}})

    body = response.json()
    assert body["complete"] is True
    assert body["result"]["overall"] == 6.0
    assert body["result"]["recommendations"][0]["items"][0]["id"] == "a_r1"


def test_score_endpoint_incomplete(client):
    response = client.post("/api/assessment/score", json={"answers": {"q1": 6, "q2": 9}})

    body = response.json()
    assert response.status_code == 200
    assert body["complete"] is False
    assert body["result"] is None
    assert body["invalid"] == ["q2"]
    assert body["message"]
