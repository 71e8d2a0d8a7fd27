import pytest
from sqlalchemy.exc import IntegrityError, OperationalError


def _raise_from_library(app, monkeypatch, method, exc):
    library = app.extensions["library_service"]

    def boom(*args, **kwargs):
        raise exc

    monkeypatch.setattr(library, method, boom)


@pytest.mark.unit
def test_backing_store_outage_maps_to_503_with_hint(app, client, monkeypatch):
    exc = OperationalError("SELECT", {}, Exception("(1045) Access denied for user 'app'"))
    _raise_from_library(app, monkeypatch, "list_playlists", exc)

    r = client.get("/api/playlists")

    assert r.status_code == 503
    body = r.get_json()
    assert body["error"] == "Database access denied. Please check your database credentials."
    assert body["code"] == "BACKING_STORE_UNAVAILABLE"
    assert "DATABASE_URL" in body["hint"]
    assert "Access denied" in body["details"]


@pytest.mark.unit
def test_missing_tables_hint_points_at_create_db(app, client, monkeypatch):
    exc = OperationalError("SELECT", {}, Exception("no such table: playlists"))
    _raise_from_library(app, monkeypatch, "list_playlists", exc)

    r = client.get("/api/playlists")

    assert r.status_code == 503
    assert r.get_json()["hint"] == "Run: python manage.py create_db"


@pytest.mark.unit
def test_other_database_errors_are_generic_500(app, client, monkeypatch):
    exc = IntegrityError("INSERT", {}, Exception("CHECK constraint failed"))
    _raise_from_library(app, monkeypatch, "create_playlist", exc)

    r = client.post("/api/playlists", json={"name": "x"})

    assert r.status_code == 500
    assert r.get_json() == {"error": "Something went wrong!"}


@pytest.mark.unit
def test_unexpected_errors_do_not_leak_details(app, client, monkeypatch, caplog):
    _raise_from_library(app, monkeypatch, "list_playlists", RuntimeError("secret internals"))

    r = client.get("/api/playlists")

    assert r.status_code == 500
    assert r.get_json() == {"error": "Something went wrong!"}
    assert "secret internals" in caplog.text


@pytest.mark.unit
def test_5xx_details_hidden_when_configured(app, client, monkeypatch):
    app.config["EXPOSE_ERROR_DETAILS"] = False
    exc = OperationalError("SELECT", {}, Exception("connection refused"))
    _raise_from_library(app, monkeypatch, "list_playlists", exc)

    body = client.get("/api/playlists").get_json()

    assert "details" not in body
    assert body["hint"]


@pytest.mark.unit
def test_http_exceptions_render_json(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.get_json()

    r2 = client.patch("/api/playlists")
    assert r2.status_code == 405
    assert "error" in r2.get_json()
