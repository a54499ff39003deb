"""Pydantic schemas for API requests and responses."""

from server.schemas.drive import (
    OpenSessionRequest,
    OpenSessionResponse,
    ChunkAckResponse,
    BlocksAckResponse,
    DeltaAckResponse,
    CompleteSessionResponse,
    FileMetadataResponse,
    ListFilesResponse,
    ErrorResponse
)

__all__ = [
    "OpenSessionRequest",
    "OpenSessionResponse",
    "ChunkAckResponse",
    "BlocksAckResponse",
    "DeltaAckResponse",
    "CompleteSessionResponse",
    "FileMetadataResponse",
    "ListFilesResponse",
    "ErrorResponse"
]
