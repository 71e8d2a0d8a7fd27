"""Development-server request handling for long-running upload requests."""

from __future__ import annotations

from werkzeug.serving import WSGIRequestHandler


def request_handler_with_timeout(timeout_seconds: float):
    """``WSGIRequestHandler`` whose socket reads give up after *timeout_seconds*.

    A client that stops sending mid-body otherwise blocks its worker thread
    in ``request.stream.read`` forever; with a socket timeout the read fails
    and the upload pipeline answers 408 and removes the partial file.
    """

    class UploadRequestHandler(WSGIRequestHandler):
        timeout = timeout_seconds

    return UploadRequestHandler


__all__ = ["request_handler_with_timeout"]
