import io
import json
import threading

import pytest
import requests
from werkzeug.formparser import parse_form_data
from werkzeug.test import create_environ

from trackshelf.client.api import (
    MultipartUploadBody,
    TrackShelfClient,
    api_error_from_response,
    extract_upload_error_message,
)
from trackshelf.client.errors import (
    CONNECTIVITY_MESSAGE,
    TIMEOUT_MESSAGE,
    ApiError,
    ClientTimeoutError,
    ConnectivityError,
    InvalidResponseError,
    UploadCancelledError,
)
from trackshelf.domain.uploads.protocol import TrackDTO


TRACK_JSON = {
    "id": 7,
    "playlist_id": 3,
    "title": "Song",
    "artist": None,
    "album": None,
    "duration": 0,
    "file_path": "1700000000000000000-42.mp3",
    "file_size": 4,
    "file_type": "audio/mpeg",
    "created_at": "2026-01-01T00:00:00",
}


def _response(status, body=b"", reason=None, method="POST"):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body if isinstance(body, bytes) else body.encode("utf-8")
    resp.reason = reason
    resp.url = "http://testserver/api/tracks"
    resp.request = requests.Request(method, resp.url).prepare()
    return resp


def _drain(body, block=7):
    out = bytearray()
    while True:
        chunk = body.read(block)
        if not chunk:
            return bytes(out)
        out.extend(chunk)


class FakeSession:
    """Stands in for ``requests.Session``; reads upload bodies like requests does."""

    def __init__(self, response=None, exc=None, cancel_after_read=None):
        self.response = response
        self.exc = exc
        self.cancel_after_read = cancel_after_read
        self.sent = None
        self.headers = None
        self.timeout = None
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def post(self, url, data=None, headers=None, timeout=None):
        self.headers = headers
        self.timeout = timeout
        if self.cancel_after_read is not None:
            data.read(8)
            self.cancel_after_read.set()
            try:
                data.read(8)
            except UploadCancelledError as exc:
                raise requests.exceptions.ConnectionError("aborted") from exc
        self.sent = _drain(data)
        if self.exc is not None:
            raise self.exc
        return self.response


# --- error extraction -------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "text, expected",
    [
        (json.dumps({"error": "Invalid file type", "details": "x"}), "Invalid file type"),
        (json.dumps({"error": "", "details": "only details"}), "only details"),
        (json.dumps({"message": "from message"}), "from message"),
        (json.dumps({"details": "from details"}), "from details"),
        ("Bad Gateway", "Bad Gateway"),
        ("[1, 2]", "[1, 2]"),
        ("", "Upload failed with status 502"),
        (None, "Upload failed with status 502"),
    ],
)
def test_extract_upload_error_message_priority(text, expected):
    assert extract_upload_error_message(502, text) == expected


@pytest.mark.unit
def test_api_error_for_404_is_friendly():
    err = api_error_from_response(_response(404, json.dumps({"error": "Playlist not found"})))
    assert err.status == 404
    assert err.message == "Resource not found. Please check your connection."


@pytest.mark.unit
def test_api_error_for_503_appends_hint():
    payload = {
        "error": "Database tables not found.",
        "hint": "Run: python manage.py create_db",
        "code": "BACKING_STORE_UNAVAILABLE",
    }
    err = api_error_from_response(_response(503, json.dumps(payload)))
    assert err.message == "Database tables not found. Run: python manage.py create_db"
    assert err.code == "BACKING_STORE_UNAVAILABLE"
    assert err.hint == "Run: python manage.py create_db"


@pytest.mark.unit
def test_api_error_for_non_json_uses_reason():
    assert api_error_from_response(_response(502, "<html>", reason="Bad Gateway")).message == "Bad Gateway"
    assert api_error_from_response(_response(500, "<html>")).message == "HTTP 500 error"


# --- multipart body ---------------------------------------------------------


def _body(payload=b"RIFFdata" * 100, **kwargs):
    return MultipartUploadBody(
        [("playlistId", "3"), ("title", "Café")],
        "audio",
        "song.mp3",
        io.BytesIO(payload),
        len(payload),
        "audio/mpeg",
        **kwargs,
    )


@pytest.mark.unit
def test_multipart_body_is_parseable_and_sized():
    payload = bytes(range(256)) * 20
    body = _body(payload)
    raw = _drain(body)

    assert len(raw) == len(body)
    environ = create_environ(
        method="POST",
        input_stream=io.BytesIO(raw),
        content_type=body.content_type,
        content_length=len(raw),
    )
    _stream, form, files = parse_form_data(environ)

    assert form["playlistId"] == "3"
    assert form["title"] == "Café"
    assert files["audio"].filename == "song.mp3"
    assert files["audio"].mimetype == "audio/mpeg"
    assert files["audio"].read() == payload


@pytest.mark.unit
def test_multipart_body_reports_monotonic_progress():
    ticks = []
    body = _body(on_progress=lambda sent, total: ticks.append((sent, total)))
    _drain(body, block=64)

    sent_values = [sent for sent, _ in ticks]
    assert sent_values == sorted(sent_values)
    assert ticks[-1] == (len(body), len(body))


@pytest.mark.unit
def test_multipart_body_read_raises_once_cancelled():
    cancel = threading.Event()
    body = _body(cancel_event=cancel)
    assert body.read(16)
    cancel.set()
    with pytest.raises(UploadCancelledError):
        body.read(16)


@pytest.mark.unit
def test_multipart_body_read_raises_after_deadline():
    now = [0.0]
    body = _body(deadline=10.0, clock=lambda: now[0])
    assert body.read(16)
    now[0] = 10.5
    with pytest.raises(ClientTimeoutError) as info:
        body.read(16)
    assert str(info.value) == TIMEOUT_MESSAGE


# --- client -----------------------------------------------------------------


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "My Song.mp3"
    path.write_bytes(b"\xff\xfb\x90\x00")
    return path


@pytest.mark.unit
def test_upload_track_sends_fields_and_returns_track(audio_file):
    session = FakeSession(response=_response(201, json.dumps(TRACK_JSON)))
    client = TrackShelfClient("http://testserver/", session=session, upload_timeout=600)

    track = client.upload_track(3, str(audio_file), artist="Band")

    assert isinstance(track, TrackDTO)
    assert track.id == 7
    assert session.timeout == (client.connect_timeout, 600)
    content_type = session.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    environ = create_environ(
        method="POST",
        input_stream=io.BytesIO(session.sent),
        content_type=content_type,
        content_length=len(session.sent),
    )
    _stream, form, files = parse_form_data(environ)
    assert form["playlistId"] == "3"
    assert form["title"] == "My Song"
    assert form["artist"] == "Band"
    assert "album" not in form
    assert files["audio"].mimetype == "audio/mpeg"


@pytest.mark.unit
def test_upload_track_surfaces_server_message(audio_file):
    body = {"error": "Invalid file type", "details": "Only audio files are allowed", "code": "INVALID_FILE_TYPE"}
    session = FakeSession(response=_response(400, json.dumps(body)))

    with pytest.raises(ApiError) as info:
        TrackShelfClient("http://testserver", session=session).upload_track(3, str(audio_file))

    assert info.value.status == 400
    assert info.value.code == "INVALID_FILE_TYPE"
    assert str(info.value) == "Invalid file type"


@pytest.mark.unit
def test_upload_track_connectivity_failure(audio_file):
    session = FakeSession(exc=requests.exceptions.ConnectionError("reset"))
    with pytest.raises(ConnectivityError) as info:
        TrackShelfClient("http://testserver", session=session).upload_track(3, str(audio_file))
    assert str(info.value) == CONNECTIVITY_MESSAGE


@pytest.mark.unit
def test_upload_track_read_timeout(audio_file):
    session = FakeSession(exc=requests.exceptions.ReadTimeout("slow"))
    with pytest.raises(ClientTimeoutError):
        TrackShelfClient("http://testserver", session=session).upload_track(3, str(audio_file))


@pytest.mark.unit
def test_upload_track_cancelled_mid_body(tmp_path):
    path = tmp_path / "big.mp3"
    path.write_bytes(b"x" * 4096)
    cancel = threading.Event()
    session = FakeSession(cancel_after_read=cancel)

    with pytest.raises(UploadCancelledError):
        TrackShelfClient("http://testserver", session=session).upload_track(
            3, str(path), cancel_event=cancel
        )


@pytest.mark.unit
def test_upload_track_invalid_json_success_body(audio_file):
    session = FakeSession(response=_response(201, "not json"))
    with pytest.raises(InvalidResponseError):
        TrackShelfClient("http://testserver", session=session).upload_track(3, str(audio_file))


@pytest.mark.unit
def test_upload_track_missing_file_raises_oserror(tmp_path):
    client = TrackShelfClient("http://testserver", session=FakeSession())
    with pytest.raises(OSError):
        client.upload_track(3, str(tmp_path / "missing.mp3"))


@pytest.mark.unit
def test_request_connection_error_maps_to_connectivity():
    session = FakeSession(exc=requests.exceptions.ConnectionError("refused"))
    with pytest.raises(ConnectivityError):
        TrackShelfClient("http://testserver", session=session).list_playlists()


@pytest.mark.unit
def test_list_playlists_parses_dtos():
    payload = [{"id": 1, "name": "Mix", "created_at": None, "updated_at": None}]
    session = FakeSession(response=_response(200, json.dumps(payload), method="GET"))
    playlists = TrackShelfClient("http://testserver", session=session).list_playlists()
    assert [p.name for p in playlists] == ["Mix"]
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "http://testserver/api/playlists")
    assert kwargs["timeout"] == 30.0


@pytest.mark.unit
def test_delete_returns_none_on_204():
    session = FakeSession(response=_response(204, b"", method="DELETE"))
    assert TrackShelfClient("http://testserver", session=session).delete_track(5) is None


@pytest.mark.unit
def test_media_url_quotes_stored_name():
    client = TrackShelfClient("http://testserver/")
    track = TrackDTO.model_validate(TRACK_JSON)
    assert client.media_url(track) == "http://testserver/uploads/1700000000000000000-42.mp3"
    assert client.media_url("a b.mp3") == "http://testserver/uploads/a%20b.mp3"
