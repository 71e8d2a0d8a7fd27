"""TrackShelf: playlists, audio uploads and a sequential upload client."""

__version__ = "0.1.0"
