import os
import time
import logging
from typing import BinaryIO, Iterable, Tuple

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


class UnsafeStoredNameError(ValueError):
    """Raised when a stored name would escape the upload root."""


class FileStore:
    def __init__(self, upload_root):
        """Initializes the FileStore.

        :param upload_root: Directory holding every uploaded payload.
        """
        self.upload_root = os.path.abspath(upload_root)
        os.makedirs(self.upload_root, exist_ok=True)
        logger.info(f"FileStore initialized with upload root: {self.upload_root}")

    def path_for(self, stored_name: str) -> str:
        """Absolute path of *stored_name*; rejects anything that is not a bare file name."""
        if (
            not stored_name
            or stored_name in (".", "..")
            or os.path.basename(stored_name) != stored_name
            or "/" in stored_name
            or "\\" in stored_name
        ):
            raise UnsafeStoredNameError(f"Invalid stored file name: {stored_name!r}")
        return os.path.join(self.upload_root, stored_name)

    def partial_path_for(self, stored_name: str) -> str:
        # Hidden temp name; never served and never referenced by a record
        return self.path_for(f".{stored_name}{PARTIAL_SUFFIX}")

    def open_partial(self, stored_name: str) -> Tuple[BinaryIO, str]:
        """Create the temp file an upload streams into. Fails if it already exists."""
        partial_path = self.partial_path_for(stored_name)
        handle = open(partial_path, "xb")
        return handle, partial_path

    def commit(self, partial_path: str, stored_name: str) -> str:
        """Atomically move a completed temp file under its final name."""
        final_path = self.path_for(stored_name)
        os.replace(partial_path, final_path)
        logger.info(f"Stored upload as {final_path}")
        return final_path

    def exists(self, stored_name: str) -> bool:
        try:
            return os.path.isfile(self.path_for(stored_name))
        except UnsafeStoredNameError:
            return False

    def discard(self, path: str) -> bool:
        """Best-effort removal of an absolute path inside the upload root."""
        if not path:
            return False
        try:
            os.remove(path)
            logger.info(f"Deleted file: {path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
            return False

    def delete(self, stored_name: str) -> bool:
        """Best-effort deletion of a stored payload; failures are logged, never raised."""
        try:
            path = self.path_for(stored_name)
        except UnsafeStoredNameError as e:
            logger.error(f"Refusing to delete {stored_name!r}: {e}")
            return False
        if not os.path.exists(path):
            logger.warning(f"File already missing: {path}")
            return False
        return self.discard(path)

    def delete_many(self, stored_names: Iterable[str]) -> int:
        """Delete every name independently; one failure does not stop the others."""
        removed = 0
        for stored_name in stored_names:
            if stored_name and self.delete(stored_name):
                removed += 1
        return removed

    def cleanup_partial_uploads(self, max_age_seconds: int = 3600) -> int:
        """Remove leftover temp files from uploads that died with the process.

        Only hidden ``.part`` files older than *max_age_seconds* are touched,
        so uploads currently in flight are left alone.
        """
        removed = 0
        cutoff = time.time() - max_age_seconds
        try:
            entries = list(os.scandir(self.upload_root))
        except OSError as e:
            logger.debug(f"Cleanup skipped due to error: {e}", exc_info=True)
            return 0
        for entry in entries:
            if not (entry.name.startswith(".") and entry.name.endswith(PARTIAL_SUFFIX)):
                continue
            try:
                if entry.is_file() and entry.stat().st_mtime < cutoff:
                    os.remove(entry.path)
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not remove stale partial upload {entry.path}: {e}")
        if removed:
            logger.info(f"Cleaned up {removed} stale partial upload(s) under {self.upload_root}")
        return removed

    def is_writable(self) -> bool:
        return os.path.isdir(self.upload_root) and os.access(self.upload_root, os.W_OK)
