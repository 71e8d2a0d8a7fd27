"""Route blueprints exposed via Flask."""

from .events import events_bp
from .health import health_bp
from .media import media_bp
from .playlists import playlists_bp
from .tracks import tracks_bp

__all__ = [
    "events_bp",
    "health_bp",
    "media_bp",
    "playlists_bp",
    "tracks_bp",
]
