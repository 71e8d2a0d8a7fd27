import os

import pytest

from tests.support.uploads import closing_delimiter, upload_form


def _post(client, body, content_type):
    return client.post("/api/tracks", data=body, content_type=content_type)


def _uploaded_files(app):
    return sorted(os.listdir(app.extensions["file_store"].upload_root))


@pytest.mark.unit
def test_upload_round_trip_serves_identical_bytes(app, client, factories):
    playlist = factories.PlaylistFactory()
    payload = os.urandom(10_000)
    body, ctype = upload_form(playlist.id, title="Song", artist="Artist", payload=payload)

    r = _post(client, body, ctype)
    assert r.status_code == 201
    created = r.get_json()
    assert created["title"] == "Song"
    assert created["artist"] == "Artist"
    assert created["album"] is None

    listing = client.get(f"/api/tracks/playlist/{playlist.id}").get_json()
    assert [t["id"] for t in listing] == [created["id"]]
    assert listing[0]["title"] == "Song"
    assert listing[0]["artist"] == "Artist"

    media = client.get(f"/uploads/{listing[0]['file_path']}")
    assert media.status_code == 200
    assert media.data == payload


@pytest.mark.unit
def test_upload_to_unknown_playlist_is_404_and_orphan_free(app, client):
    body, ctype = upload_form(424242)

    r = _post(client, body, ctype)

    assert r.status_code == 404
    assert r.get_json()["error"] == "Playlist not found"
    assert _uploaded_files(app) == []


@pytest.mark.unit
def test_upload_rejects_disallowed_type(app, client, factories):
    playlist = factories.PlaylistFactory()
    body, ctype = upload_form(playlist.id, filename="evil.exe", mimetype="application/x-msdownload")

    r = _post(client, body, ctype)

    assert r.status_code == 400
    data = r.get_json()
    assert data["code"] == "INVALID_FILE_TYPE"
    assert data["error"].startswith("Invalid file type. Only audio files are allowed.")
    assert _uploaded_files(app) == []
    assert client.get(f"/api/tracks/playlist/{playlist.id}").get_json() == []


@pytest.mark.unit
def test_upload_size_limit_returns_413_without_track(app_config):
    import app as app_module

    app_config["MAX_UPLOAD_BYTES"] = 2048
    application = app_module.create_app(app_config)
    client = application.test_client()
    pid = client.post("/api/playlists", json={"name": "Big"}).get_json()["id"]
    body, ctype = upload_form(pid, payload=b"\x00" * 4096)

    r = _post(client, body, ctype)

    assert r.status_code == 413
    assert r.get_json()["code"] == "LIMIT_FILE_SIZE"
    assert client.get(f"/api/tracks/playlist/{pid}").get_json() == []
    assert _uploaded_files(application) == []


@pytest.mark.unit
def test_upload_missing_fields(client, factories):
    playlist = factories.PlaylistFactory()
    body, ctype = upload_form(playlist.id, title=None)

    r = _post(client, body, ctype)

    assert r.status_code == 400
    data = r.get_json()
    assert data["error"] == "Playlist ID, title, and file are required"
    assert data["code"] == "MISSING_FIELDS"


@pytest.mark.unit
def test_upload_truncated_body_is_interrupted(app, client, factories):
    playlist = factories.PlaylistFactory()
    body, ctype = upload_form(playlist.id)

    r = _post(client, body[: -len(closing_delimiter())], ctype)

    assert r.status_code == 400
    data = r.get_json()
    assert data["code"] == "UPLOAD_INTERRUPTED"
    assert data["error"] == "Upload failed: The upload was interrupted. Please try again."
    assert _uploaded_files(app) == []


@pytest.mark.unit
def test_upload_requires_multipart(client):
    r = client.post("/api/tracks", json={"title": "x"})
    assert r.status_code == 400
    assert r.get_json()["code"] == "MALFORMED_REQUEST"


@pytest.mark.unit
def test_delete_track_removes_row_and_file(app, client, factories):
    playlist = factories.PlaylistFactory()
    body, ctype = upload_form(playlist.id)
    created = _post(client, body, ctype).get_json()

    r = client.delete(f"/api/tracks/{created['id']}")
    assert r.status_code == 204
    assert _uploaded_files(app) == []
    assert client.get(f"/api/tracks/playlist/{playlist.id}").get_json() == []
    assert client.delete(f"/api/tracks/{created['id']}").status_code == 404


@pytest.mark.unit
def test_media_route_hides_temp_files_and_rejects_traversal(app, client):
    store = app.extensions["file_store"]
    with open(os.path.join(store.upload_root, ".1-1.mp3.part"), "wb") as fh:
        fh.write(b"partial")

    assert client.get("/uploads/.1-1.mp3.part").status_code == 404
    assert client.get("/uploads/../config.py").status_code == 404
    assert client.get("/uploads/nope.mp3").status_code == 404
