from __future__ import annotations

from PIL.TiffImagePlugin import IFDRational

from tests.conftest import build_jpeg, build_png, camera_exif, corrupt_jpeg


def _upload(client, payload: bytes, name: str = "photo.jpg", content_type: str = "image/jpeg"):
    return client.post("/v1/assets", files={"file": (name, payload, content_type)})


def test_v1_health_ok(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "ok"


def test_admin_env_check_reports_tools(client):
    resp = client.get("/v1/admin/env-check")
    assert resp.status_code == 200
    assert set(resp.json()) == {"ffmpeg", "ffprobe", "libmagic"}
    assert resp.json()["libmagic"] is True


def test_upload_image_flow(client):
    payload = build_jpeg(3000, 2000, exif=camera_exif(exposure=IFDRational(1, 125)))

    resp = _upload(client, payload, "DSCF0001.JPG")
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["duplicate"] is False
    asset = body["asset"]
    assert asset["kind"] == "image"
    assert asset["mime_type"] == "image/jpeg"
    assert (asset["width"], asset["height"]) == (3000, 2000)
    assert len(asset["content_hash"]) == 64
    assert asset["metadata"]["image"]["exposure_time"] == "1/125"
    assert asset["metadata"]["video"] is None

    asset_id = asset["id"]
    detail = client.get(f"/v1/assets/{asset_id}")
    assert detail.status_code == 200
    assert detail.json()["metadata"]["image"]["model"] == "X-T5"

    metadata = client.get(f"/v1/assets/{asset_id}/metadata")
    assert metadata.status_code == 200
    assert metadata.json()["image"]["tags"]["metering_mode"] == "Multi-segment"

    original = client.get(f"/v1/assets/{asset_id}/file")
    assert original.status_code == 200
    assert original.content == payload
    assert original.headers["content-type"] == "image/jpeg"

    thumbnail = client.get(f"/v1/assets/{asset_id}/thumbnail")
    assert thumbnail.status_code == 200
    assert thumbnail.headers["content-type"] == "image/jpeg"
    assert thumbnail.content[:3] == b"\xff\xd8\xff"


def test_duplicate_upload_returns_200(client):
    payload = build_png()
    first = _upload(client, payload, "a.png", "image/png")
    second = _upload(client, payload, "b.png", "image/png")

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert second.json()["asset"]["id"] == first.json()["asset"]["id"]
    assert client.get("/v1/assets").json()["total"] == 1


def test_declared_type_is_ignored(client, configure_environment):
    resp = _upload(client, b"definitely not a picture\n" * 10, "evil.jpg", "image/jpeg")
    assert resp.status_code == 400
    assert resp.json()["error"] == "unsupported_type"
    assert not configure_environment.storage_root.exists()


def test_missing_file_field(client):
    resp = client.post("/v1/assets", data={"other": "value"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "no_file"


def test_empty_file(client):
    resp = _upload(client, b"")
    assert resp.status_code == 400
    assert resp.json()["error"] == "empty_upload"


def test_corrupt_image_is_accepted_without_thumbnail(client):
    resp = _upload(client, corrupt_jpeg(), "broken.jpg")
    assert resp.status_code == 201
    asset = resp.json()["asset"]
    assert asset["thumbnail_path"] is None
    assert asset["width"] is None

    thumbnail = client.get(f"/v1/assets/{asset['id']}/thumbnail")
    assert thumbnail.status_code == 404


def test_list_pagination_and_filter(client):
    for index in range(3):
        _upload(client, build_jpeg(color=(index * 40, 10, 10)), f"{index}.jpg")

    page = client.get("/v1/assets", params={"limit": 2, "offset": 0}).json()
    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["items"][0]["id"] > page["items"][1]["id"]

    videos = client.get("/v1/assets", params={"type": "video"}).json()
    assert videos["total"] == 0
    assert videos["items"] == []

    assert client.get("/v1/assets", params={"type": "audio"}).status_code == 422


def test_delete_twice(client):
    asset_id = _upload(client, build_jpeg()).json()["asset"]["id"]

    first = client.delete(f"/v1/assets/{asset_id}")
    assert first.status_code == 204
    second = client.delete(f"/v1/assets/{asset_id}")
    assert second.status_code == 404
    assert client.get(f"/v1/assets/{asset_id}").status_code == 404
    assert client.get(f"/v1/assets/{asset_id}/file").status_code == 404


def test_unknown_asset_is_404(client):
    resp = client.get("/v1/assets/12345")
    assert resp.status_code == 404
    assert resp.json()["error"] == "asset_not_found"
