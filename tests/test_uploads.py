import pytest
from botocore.exceptions import ClientError

from compound_backend.config import get_settings
from compound_backend.features.uploads.routes import build_object_key

PNG = b"\x89PNG\r\n\x1a\nfake"


def test_build_object_key_keeps_or_guesses_extension():
    assert build_object_key("Spectrum.PNG", "image/png").endswith(".png")
    assert build_object_key("noext", "application/pdf").endswith(".pdf")
    assert len(build_object_key("a.txt", "text/plain")) == 36 + len(".txt")


def test_upload_single_file(client, s3_client):
    response = client.post("/api/uploads", files={"file": ("spectrum.png", PNG, "image/png")})

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["url"] == f"/compound-uploads/{data['filename']}"
    assert data["originalName"] == "spectrum.png"
    assert data["size"] == len(PNG)
    assert data["mimetype"] == "image/png"
    assert s3_client.objects[data["filename"]] == PNG


def test_upload_rejects_disallowed_type(client, s3_client):
    response = client.post("/api/uploads", files={"file": ("tool.exe", b"MZ", "application/x-msdownload")})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "File type application/x-msdownload is not allowed"}
    assert s3_client.objects == {}


def test_upload_rejects_empty_file(client):
    response = client.post("/api/uploads", files={"file": ("empty.txt", b"", "text/plain")})

    assert response.status_code == 400


def test_upload_rejects_oversized_file(client, monkeypatch, recwarn):
    monkeypatch.setattr(get_settings(), "upload_max_bytes", 4)

    response = client.post("/api/uploads", files={"file": ("spectrum.png", PNG, "image/png")})

    assert response.status_code == 413
    assert not [w for w in recwarn if "HTTP_413" in str(w.message)]


def test_upload_storage_failure(client, storage, monkeypatch):
    def _fail(*args, **kwargs):
        raise ClientError({"Error": {"Code": "InternalError", "Message": "down"}}, "PutObject")

    monkeypatch.setattr(storage, "put_bytes", _fail)

    response = client.post("/api/uploads", files={"file": ("spectrum.png", PNG, "image/png")})

    assert response.status_code == 500
    assert response.json()["error"] == "Unable to upload file to storage"


def test_upload_multiple(client):
    response = client.post(
        "/api/uploads/multiple",
        files=[
            ("files", ("a.png", PNG, "image/png")),
            ("files", ("b.pdf", b"%PDF-1.4", "application/pdf")),
        ],
    )

    assert response.status_code == 201
    assert [item["originalName"] for item in response.json()["data"]] == ["a.png", "b.pdf"]


@pytest.mark.parametrize(
    "filename, content_type",
    [
        ("a.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
        ("a.doc", "application/msword"),
    ],
)
def test_upload_multiple_is_stricter(client, filename, content_type):
    response = client.post("/api/uploads/multiple", files=[("files", (filename, b"PK", content_type))])

    assert response.status_code == 400


def test_upload_multiple_limits_count(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "upload_max_files", 1)

    response = client.post(
        "/api/uploads/multiple",
        files=[("files", ("a.png", PNG, "image/png")), ("files", ("b.png", PNG, "image/png"))],
    )

    assert response.status_code == 400
    assert response.json()["error"] == "At most 1 files can be uploaded at once"


def test_delete_file_reports_outcome(client, s3_client):
    s3_client.objects["k.png"] = PNG

    response = client.request("DELETE", "/api/uploads", json={"url": "/compound-uploads/k.png"})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "reference": "/compound-uploads/k.png",
        "key": "k.png",
        "status": "deleted",
        "error": None,
    }
    assert "k.png" not in s3_client.objects

    outside = client.request("DELETE", "/api/uploads", json={"url": "https://example.org/a.png"})
    assert outside.json()["data"]["status"] == "skipped"
