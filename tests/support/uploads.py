"""Helpers for building ``POST /api/tracks`` bodies in tests."""

from urllib3.filepost import encode_multipart_formdata

BOUNDARY = "trackshelf-test-boundary"


def upload_form(
    playlist_id=None,
    title="Song",
    payload=b"ID3" + b"\x00" * 1021,
    filename="song.mp3",
    mimetype="audio/mpeg",
    artist=None,
    album=None,
    extra_fields=(),
    trailing_fields=(),
):
    """Return ``(body, content_type)`` for an upload request.

    Text fields come first, then the ``audio`` part, then ``trailing_fields``.
    Pass ``None`` to omit a field or the file.
    """
    fields = []
    if playlist_id is not None:
        fields.append(("playlistId", str(playlist_id)))
    if title is not None:
        fields.append(("title", title))
    if artist is not None:
        fields.append(("artist", artist))
    if album is not None:
        fields.append(("album", album))
    fields.extend(extra_fields)
    if payload is not None:
        fields.append(("audio", (filename, payload, mimetype)))
    fields.extend(trailing_fields)
    return encode_multipart_formdata(fields, boundary=BOUNDARY)


def closing_delimiter() -> bytes:
    return f"--{BOUNDARY}--\r\n".encode("latin-1")
