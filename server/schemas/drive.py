"""Pydantic schemas for upload session and file endpoints."""

from typing import List, Optional
from pydantic import BaseModel, Field


class OpenSessionRequest(BaseModel):
    """Request model for opening an upload session."""
    filename: str = Field(..., min_length=1)
    total_size: int = Field(..., ge=0)
    parent_folder: Optional[str] = None


class OpenSessionResponse(BaseModel):
    """Response model for session creation."""
    session_id: str


class ChunkAckResponse(BaseModel):
    """Response model for an accepted chunk."""
    index: int
    size: int
    deduplicated: bool


class BlocksAckResponse(BaseModel):
    """Response model for an accepted batch of novel blocks."""
    received: int
    total_received: int


class DeltaAckResponse(BaseModel):
    """Response model for an accepted delta manifest."""
    instructions: int
    novel_blocks: int


class CompleteSessionResponse(BaseModel):
    """Response model for session completion."""
    file_id: str
    size: int
    delta: bool


class FileMetadataResponse(BaseModel):
    """Response model for file metadata."""
    file_id: str
    name: str
    size: int
    parent_folder: Optional[str] = None
    content_hash: str
    created_at: str


class ListFilesResponse(BaseModel):
    """Response model for a file lookup."""
    files: List[FileMetadataResponse]


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str
