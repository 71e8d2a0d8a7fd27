"""Playlist CRUD routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from trackshelf.domain.library import LibraryService

playlists_bp = Blueprint('playlists_bp', __name__, url_prefix='/api/playlists')


def _library() -> LibraryService:
    return current_app.extensions['library_service']


def _name_from_body():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return None
    return payload.get('name')


@playlists_bp.route('', methods=['GET'])
def list_playlists():
    playlists = _library().list_playlists()
    return jsonify([playlist.to_dict() for playlist in playlists]), 200


@playlists_bp.route('', methods=['POST'])
def create_playlist():
    playlist = _library().create_playlist(_name_from_body())
    return jsonify(playlist.to_dict()), 201


@playlists_bp.route('/<int:playlist_id>', methods=['PUT'])
def rename_playlist(playlist_id: int):
    playlist = _library().rename_playlist(playlist_id, _name_from_body())
    return jsonify(playlist.to_dict()), 200


@playlists_bp.route('/<int:playlist_id>', methods=['DELETE'])
def delete_playlist(playlist_id: int):
    _library().delete_playlist(playlist_id)
    return '', 204


__all__ = ['playlists_bp']
