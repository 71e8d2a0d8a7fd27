import os
import sys
import threading
from pathlib import Path

import pytest

# Ensure project root is on sys.path so 'app', 'config', and 'trackshelf' import correctly
_TESTS_DIR = os.path.dirname(__file__)
_ROOT_DIR = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)

from tests.support import factories as test_factories


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def app_config(tmp_path, upload_dir):
    """Per-test sqlite file and upload root; tests may tweak before ``app`` is built."""
    db_path = Path(tmp_path) / "test.sqlite"
    return {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path.as_posix()}",
        "UPLOAD_DIR": str(upload_dir),
        "STRUCTURED_LOGS": False,
        "OTEL_EXPORTER_OTLP_ENDPOINT": None,
    }


@pytest.fixture
def app(app_config):
    import app as app_module

    application = app_module.create_app(app_config)
    yield application
    with application.app_context():
        from trackshelf.database import db

        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture
def db_session(app_context):
    from trackshelf.database import db

    test_factories.set_session(db.session)
    try:
        yield db.session
    finally:
        db.session.rollback()
        db.session.remove()
        test_factories.reset_session()


@pytest.fixture
def factories(db_session):
    yield test_factories


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def live_server(app):
    """Serve ``app`` on an ephemeral port for tests that go through ``requests``."""
    from werkzeug.serving import make_server

    from trackshelf.interfaces.http import request_handler_with_timeout

    handler = request_handler_with_timeout(app.config["UPLOAD_REQUEST_TIMEOUT_SECONDS"])
    server = make_server("127.0.0.1", 0, app, threaded=True, request_handler=handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_port}"
    finally:
        server.shutdown()
        thread.join(timeout=5)


@pytest.fixture
def make_audio(tmp_path):
    """Write a small fake audio file and return its path."""
    source_dir = tmp_path / "source"
    source_dir.mkdir()

    def _make(name="song.mp3", payload=None):
        path = source_dir / name
        path.write_bytes(payload if payload is not None else os.urandom(2048))
        return path

    return _make
