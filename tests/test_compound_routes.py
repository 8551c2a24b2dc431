import uuid

from fastapi.testclient import TestClient

from compound_backend.features.compounds import queries
from compound_backend.features.export.service import XLSX_MEDIA_TYPE


def _create(client, payload):
    response = client.post("/api/compounds", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_and_fetch(client, compound_payload):
    created = _create(client, compound_payload(pho={"1h": "/compound-uploads/a.png"}))

    assert created["sttHC"] == 1
    assert created["pho"]["1h"] == ["/compound-uploads/a.png"]
    assert created["nmrData"][0]["sttBang"] == "1"

    response = client.get(f"/api/compounds/{created['id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["tenHC"] == "Quercetin"


def test_create_validation_errors_use_envelope(client, compound_payload):
    response = client.post("/api/compounds", json=compound_payload(tenHC="", status="Other"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert set(body["validationErrors"]) == {"tenHC", "status"}


def test_list_with_pagination(client, compound_payload):
    for name in ("A", "B", "C"):
        _create(client, compound_payload(tenHC=name))

    response = client.get("/api/compounds", params={"page": 2, "limit": 2, "loaiHC": ["Flavonoid"]})

    assert response.status_code == 200
    body = response.json()
    assert [item["tenHC"] for item in body["data"]] == ["A"]
    assert body["pagination"] == {"totalItems": 3, "totalPages": 2, "currentPage": 2, "limit": 2}


def test_list_rejects_oversized_limit(client):
    response = client.get("/api/compounds", params={"limit": 1000})

    assert response.status_code == 400
    assert "limit" in response.json()["validationErrors"]


def test_invalid_and_missing_identifiers(client):
    invalid = client.get("/api/compounds/not-a-uuid")
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Invalid ID format"

    missing = client.get(f"/api/compounds/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Compound not found"}


def test_update_and_conflict(client, compound_payload):
    created = _create(client, compound_payload())

    response = client.put(f"/api/compounds/{created['id']}", json={"mau": "Đỏ", "updatedAt": created["updatedAt"]})
    assert response.status_code == 200
    assert response.json()["data"]["mau"] == "Đỏ"
    assert response.json()["data"]["tenHC"] == "Quercetin"

    stale = client.put(f"/api/compounds/{created['id']}", json={"mau": "Xanh", "updatedAt": created["updatedAt"]})
    assert stale.status_code == 409
    assert stale.json()["success"] is False

    missing = client.put(f"/api/compounds/{uuid.uuid4()}", json={"mau": "Xanh"})
    assert missing.status_code == 404


def test_delete(client, compound_payload, s3_client):
    created = _create(client, compound_payload(hinhCauTruc="/compound-uploads/s.png"))

    response = client.delete(f"/api/compounds/{created['id']}")
    assert response.status_code == 204
    assert s3_client.deleted == ["s.png"]

    again = client.delete(f"/api/compounds/{created['id']}")
    assert again.status_code == 404


def test_database_failure_maps_to_500(client, pool):
    pool.conn.fail_on = queries.SELECT_COMPOUND_BY_ID

    response = client.get(f"/api/compounds/{uuid.uuid4()}")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to fetch compound"}


def test_next_numbers(client, compound_payload):
    _create(client, compound_payload(sttHC=9))

    assert client.get("/api/compounds/next-stt-hc").json()["data"] == {"nextSttHC": 10}
    assert client.get("/api/compounds/next-stt-bang").json()["data"] == {"nextSttBang": 2}


def test_parse_signal_csv(client):
    response = client.post("/api/compounds/nmr-signals/parse-csv", json={"csv": "1, 77.0, 7.26\n2, 120.1, -"})
    assert response.status_code == 200
    assert [signal["viTri"] for signal in response.json()["data"]] == ["1", "2"]

    invalid = client.post("/api/compounds/nmr-signals/parse-csv", json={"csv": "1, 77.0"})
    assert invalid.status_code == 400
    assert invalid.json()["error"].startswith("Line 1:")


def test_metadata_lists(client, compound_payload):
    _create(client, compound_payload(loaiHC="Alkaloid"))
    _create(client, compound_payload())

    response = client.get("/api/meta/loai-hc")
    assert response.json() == {"success": True, "data": ["Alkaloid", "Flavonoid"]}

    unknown = client.get("/api/meta/unknown")
    assert unknown.status_code == 404
    assert unknown.json()["success"] is False


def test_export_download(client, compound_payload):
    created = _create(client, compound_payload(tenHC="Hợp chất"))

    response = client.get(f"/api/compounds/{created['id']}/export")

    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert "filename*=UTF-8''1_H%E1%BB%A3p%20ch%E1%BA%A5t.xlsx" in response.headers["content-disposition"]
    assert response.content[:2] == b"PK"

    missing = client.get(f"/api/compounds/{uuid.uuid4()}/export")
    assert missing.status_code == 404


def test_unhandled_error_keeps_cors_headers(app):
    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/api/boom", headers={"Origin": "http://localhost:8080"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
    assert response.headers.get("access-control-allow-origin") == "*"
