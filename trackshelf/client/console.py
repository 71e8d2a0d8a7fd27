"""Plain-text rendering of upload events for the command line."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from trackshelf.core.progress import EventPublisher


class ConsolePublisher(EventPublisher):
    """Print one line per upload event; progress lines only every ``step`` percent."""

    def __init__(self, stream: Optional[TextIO] = None, step: int = 10) -> None:
        self.stream = stream or sys.stdout
        self.step = max(1, step)
        self._last_reported = {}

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def publish(self, event: dict) -> None:
        kind = event.get("event")
        name = event.get("file")
        index = event.get("index")
        if kind == "upload_started":
            self._last_reported[index] = 0
            self._write(f"Uploading {index + 1} of {event.get('total')}: {name}")
        elif kind == "upload_progress":
            progress = int(event.get("progress") or 0)
            if progress - self._last_reported.get(index, 0) >= self.step:
                self._last_reported[index] = progress
                self._write(f"  {name}: {progress}% (overall {event.get('aggregate_progress', 0):.0f}%)")
        elif kind == "upload_succeeded":
            self._write(f"  {name}: done (track {event.get('track_id')})")
        elif kind == "upload_failed":
            self._write(f"  {name}: Error - {event.get('error')}")
        elif kind == "batch_completed":
            self._write(event.get("summary") or "")


__all__ = ["ConsolePublisher"]
