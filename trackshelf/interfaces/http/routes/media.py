"""Read-only serving of stored upload payloads."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, send_from_directory

from trackshelf.domain.library import FileStore, UnsafeStoredNameError

media_bp = Blueprint('media_bp', __name__)


@media_bp.route('/uploads/<path:filename>', methods=['GET'])
def serve_upload(filename: str):
    store: FileStore = current_app.extensions['file_store']
    # Hidden names are in-flight temp files
    if filename.startswith('.'):
        abort(404)
    try:
        store.path_for(filename)
    except UnsafeStoredNameError:
        abort(404)
    return send_from_directory(store.upload_root, filename, conditional=True)


__all__ = ['media_bp']
