"""Track listing, upload and deletion routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from trackshelf.domain.library import LibraryService
from trackshelf.domain.uploads import UploadPipeline

tracks_bp = Blueprint('tracks_bp', __name__, url_prefix='/api/tracks')


def _library() -> LibraryService:
    return current_app.extensions['library_service']


def _pipeline() -> UploadPipeline:
    return current_app.extensions['upload_pipeline']


@tracks_bp.route('/playlist/<int:playlist_id>', methods=['GET'])
def list_tracks(playlist_id: int):
    tracks = _library().list_tracks(playlist_id)
    return jsonify([track.to_dict() for track in tracks]), 200


@tracks_bp.route('', methods=['POST'])
def upload_track():
    # The body is consumed straight from the WSGI stream; request.form must
    # never be touched here or werkzeug would buffer the whole upload first.
    track = _pipeline().handle(request.stream, request.headers.get('Content-Type'))
    return jsonify(track), 201


@tracks_bp.route('/<int:track_id>', methods=['DELETE'])
def delete_track(track_id: int):
    _library().delete_track(track_id)
    return '', 204


__all__ = ['tracks_bp']
