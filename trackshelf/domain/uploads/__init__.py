"""Upload wire contract and the server-side streaming pipeline."""

from .pipeline import UploadLimits, UploadPipeline, UploadState

__all__ = ["UploadLimits", "UploadPipeline", "UploadState"]
