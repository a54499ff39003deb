"""Service layer for business logic."""

from server.services.upload_service import UploadService

__all__ = [
    "UploadService",
]
