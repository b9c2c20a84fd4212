from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import package, write_packages
from packing_tracker.config import Settings
from packing_tracker.web import create_app


@pytest.fixture
def api_client(tmp_path: Path) -> TestClient:
    app = create_app(Settings(data_root=tmp_path / "data", lock_timeout_seconds=0.05))
    with TestClient(app) as client:
        yield client


def _register(client: TestClient, name: str = "Nord") -> dict:
    response = client.post(
        "/customers", json={"name": name, "panel_ids": ["p1", "p2", "p3"], "address": "Kai 2"}
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_unknown_customer_returns_404(api_client: TestClient) -> None:
    response = api_client.get("/customers/missing")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["errorKind"] == "NotFound"


def test_guard_violations_return_409(api_client: TestClient) -> None:
    _register(api_client)

    assert api_client.post("/customers/Nord/ship", json={"mode": "full"}).status_code == 409
    assert api_client.post("/customers/Nord/archive").status_code == 409
    assert api_client.post("/customers/Nord/mark-not-shipped").status_code == 409


def test_full_lifecycle_over_http(api_client: TestClient) -> None:
    customer = _register(api_client)
    working_directory = Path(customer["working_directory"])
    write_packages(working_directory, [package("1", ["p1", "p2"]), package("2", ["p3"])])

    check = api_client.post("/customers/Nord/check-status", json={"operator": "scanner"})
    assert check.status_code == 200
    assert check.json()["data"]["customer"]["pack_stage"] == "PACKED"

    shipped = api_client.post("/customers/Nord/ship", json={"mode": "partial", "operator": "dispatch"})
    assert shipped.json()["data"]["shipment_stage"] == "PARTIAL_SHIPPED"

    archived = api_client.post("/customers/Nord/archive", json={"operator": "lead", "remark": "done"})
    assert archived.status_code == 200
    archive_id = archived.json()["data"]["id"]
    assert not working_directory.exists()

    listing = api_client.get("/archives", params={"page": 1, "pageSize": 5}).json()["data"]
    assert listing["total"] == 1
    assert listing["items"][0]["customer_address"] == "Kai 2"

    detail = api_client.get(f"/archives/{archive_id}").json()["data"]
    assert [entry["pack_seq"] for entry in detail["packages"]] == ["1", "2"]

    restored = api_client.post(f"/archives/{archive_id}/restore")
    assert restored.status_code == 200
    assert sorted(restored.json()["data"]["files"]) == ["packages.json"]
    assert working_directory.is_dir()

    history = api_client.get("/customers/Nord/history").json()["data"]
    assert [entry["pack_stage"] for entry in history][0] == "NOT_PACKED"
    assert history[-1]["pack_stage"] == "PACKED"

    deleted = api_client.delete(f"/archives/{archive_id}")
    assert deleted.status_code == 200
    assert api_client.get(f"/archives/{archive_id}").status_code == 404


def test_missing_artifact_returns_404(api_client: TestClient) -> None:
    customer = _register(api_client)
    write_packages(Path(customer["working_directory"]), [package("1", ["p1", "p2", "p3"])])
    api_client.post("/customers/Nord/check-status")
    archived = api_client.post("/customers/Nord/archive").json()["data"]
    Path(archived["backup_artifact_path"]).unlink()

    response = api_client.post(f"/archives/{archived['id']}/restore")

    assert response.status_code == 404
    assert response.json()["errorKind"] == "MissingArtifact"


def test_busy_customer_returns_423(api_client: TestClient) -> None:
    customer = _register(api_client)
    service = api_client.app.state.packing_service

    with service.locks.hold(customer["id"]):
        response = api_client.post("/customers/Nord/check-status")

    assert response.status_code == 423
    assert response.json()["errorKind"] == "Conflict"


def test_delete_unknown_archive_returns_404(api_client: TestClient) -> None:
    response = api_client.delete("/archives/does-not-exist")

    assert response.status_code == 404
    assert response.json()["errorKind"] == "NotFound"
