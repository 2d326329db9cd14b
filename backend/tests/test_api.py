import pytest
from fastapi.testclient import TestClient

from app import main as main_module
from trialsync_core import SyncService

from conftest import seed_store


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, service) -> TestClient:
    monkeypatch.setattr(main_module, "service", lambda: service)
    return TestClient(main_module.app)


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_returns_stage_report(client, seeded) -> None:
    response = client.post("/upload", json={"scope": "class", "localId": seeded.class_id})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["localId"] == seeded.class_id
    assert [stage["name"] for stage in body["stages"]] == ["show", "trials", "classes", "entries"]


def test_scored_entries_need_a_decision(client, fake, seeded) -> None:
    assert client.post("/upload", json={"scope": "class", "localId": seeded.class_id}).status_code == 200
    start = len(fake.requests)

    response = client.post("/upload", json={"scope": "class", "localId": seeded.class_id})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["direction"] == "upload"
    assert detail["choices"] == ["cancel", "keep", "overwrite"]
    assert [item["armband"] for item in detail["scoredEntries"]] == [101, 103]
    assert detail["scoredEntries"][0]["dogName"] == "Rex"
    assert [request.method for request in fake.requests[start:]] == ["GET"] * (len(fake.requests) - start)

    response = client.post("/upload", json={"scope": "class", "localId": seeded.class_id, "decision": "keep"})
    assert response.status_code == 200
    assert response.json()["decision"] == "keep"


def test_download_conflict_then_overwrite(client, fake, seeded) -> None:
    client.post("/upload", json={"scope": "class", "localId": seeded.class_id})
    fake.judge(seeded.rex, "absent")

    conflict = client.post("/download", json={"classId": seeded.class_id})
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["direction"] == "download"

    response = client.post("/download", json={"classId": seeded.class_id, "decision": "overwrite"})
    assert response.status_code == 200
    body = response.json()
    assert seeded.rex in body["written"]
    assert body["timeLimitsUpdated"] is True


def test_license_failure_is_forbidden(monkeypatch, settings, local, fake) -> None:
    seeded = seed_store(local, license_status="Suspended")
    service = SyncService(settings=settings, local=local, transport=fake.transport())
    monkeypatch.setattr(main_module, "service", lambda: service)
    client = TestClient(main_module.app)

    response = client.post("/upload", json={"scope": "show", "localId": seeded.show_id})

    assert response.status_code == 403
    assert fake.requests == []


def test_unknown_local_record_is_not_found(client, seeded) -> None:
    response = client.post("/upload", json={"scope": "trial", "localId": 9999})
    assert response.status_code == 404


def test_unknown_scope_is_bad_request(client, seeded) -> None:
    response = client.post("/upload", json={"scope": "ring", "localId": seeded.class_id})
    assert response.status_code == 400


def test_remote_failure_is_bad_gateway(client, fake, seeded) -> None:
    fake.fail("GET", "shows", status=500)

    response = client.post("/download", json={"classId": seeded.class_id})

    assert response.status_code == 502


def test_delete_endpoints(client, seeded) -> None:
    assert client.delete(f"/remote/entries/{seeded.bella}").json() == {"deleted": False}
    client.post("/upload", json={"scope": "show", "localId": seeded.show_id})
    assert client.delete(f"/remote/entries/{seeded.bella}").json() == {"deleted": True}
    assert client.delete(f"/remote/shows/{seeded.show_id}").json() == {"deleted": True}
