"""Upload session and file API routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from common.constants import DELTA_BATCH_MAX_BLOCKS
from common.protocol import DeltaManifest, ProtocolError, parse_novel_block_field
from server.exceptions import InvalidDeltaError
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
from server.services.upload_service import UploadService

router = APIRouter(
    prefix="/drive",
    tags=["Drive"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
    }
)


@router.post("/sessions", response_model=OpenSessionResponse, status_code=status.HTTP_201_CREATED)
async def open_session(request: OpenSessionRequest):
    """
    Open an upload session.

    Parameters:
        - filename: Name the committed file will carry
        - total_size: Declared size of the final file in bytes
        - parent_folder: Optional destination folder

    Returns:
        - session_id: Opaque id used by every later request

    Raises:
        - 413: Storage quota exceeded
    """
    upload_service = UploadService()
    session = upload_service.open_session(request.filename, request.total_size, request.parent_folder)
    return OpenSessionResponse(session_id=session.session_id)


@router.post("/sessions/{session_id}/chunks", response_model=ChunkAckResponse)
async def upload_chunk(
    session_id: str,
    index: int = Form(..., ge=0),
    chunk_hash: str = Form(..., alias="hash"),
    chunk: UploadFile = File(...)
):
    """
    Upload one full-mode chunk.

    Parameters:
        - index: 0-based chunk position
        - hash: SHA-256 hex digest of the chunk
        - chunk: Chunk bytes (multipart/form-data)

    Raises:
        - 400: Checksum mismatch
        - 404: Session not found
        - 409: Session is a delta upload
    """
    upload_service = UploadService()
    data = await chunk.read()
    deduplicated = upload_service.store_chunk(session_id, index, chunk_hash, data)
    return ChunkAckResponse(index=index, size=len(data), deduplicated=deduplicated)


@router.post("/sessions/{session_id}/blocks", response_model=BlocksAckResponse)
async def upload_blocks(session_id: str, request: Request):
    """
    Upload a batch of novel delta blocks.

    Each multipart field is named block_<i>, where i is the block index
    referenced by Insert instructions. A batch carries at most
    DELTA_BATCH_MAX_BLOCKS blocks.

    Raises:
        - 400: No block fields, or an unexpected field
        - 404: Session not found
        - 409: Session is a full upload or its manifest was already sent
    """
    upload_service = UploadService()
    form = await request.form(max_files=DELTA_BATCH_MAX_BLOCKS, max_fields=DELTA_BATCH_MAX_BLOCKS)
    blocks: Dict[int, bytes] = {}
    for name, value in form.multi_items():
        block_index = parse_novel_block_field(name)
        if block_index is None or isinstance(value, str):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unexpected form field: {name}"
            )
        blocks[block_index] = await value.read()

    if not blocks:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one block_<i> field is required"
        )

    total_received = upload_service.store_blocks(session_id, blocks)
    return BlocksAckResponse(received=len(blocks), total_received=total_received)


@router.post("/sessions/{session_id}/delta", response_model=DeltaAckResponse)
async def upload_delta_manifest(session_id: str, body: Dict[str, Any] = Body(...)):
    """
    Upload the delta manifest (base file id plus Copy/Insert instructions).

    Raises:
        - 400: Malformed manifest
        - 404: Session or base file not found
        - 409: Session is a full upload or already has a manifest
    """
    upload_service = UploadService()
    try:
        manifest = DeltaManifest.from_dict(body)
    except ProtocolError as e:
        raise InvalidDeltaError(str(e)) from e
    upload_service.store_manifest(session_id, manifest)
    return DeltaAckResponse(
        instructions=len(manifest.instructions),
        novel_blocks=manifest.novel_block_count,
    )


@router.post("/sessions/{session_id}/complete", response_model=CompleteSessionResponse)
async def complete_session(session_id: str):
    """
    Validate the session's data and commit it as a new file.

    Raises:
        - 400: Missing chunks or blocks, size mismatch, or invalid delta
        - 404: Session or base file not found
    """
    upload_service = UploadService()
    session = upload_service.get_session(session_id)
    is_delta = session.is_delta
    record = upload_service.complete_session(session_id)
    return CompleteSessionResponse(file_id=record.file_id, size=record.size, delta=is_delta)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abort_session(session_id: str):
    """
    Discard an open session and any chunk data only it referenced.
    """
    upload_service = UploadService()
    upload_service.abort_session(session_id)


def _file_metadata(record) -> FileMetadataResponse:
    return FileMetadataResponse(
        file_id=record.file_id,
        name=record.name,
        size=record.size,
        parent_folder=record.parent_folder,
        content_hash=record.content_hash,
        created_at=record.created_at.isoformat(),
    )


@router.get("/files", response_model=ListFilesResponse)
async def find_files(
    name: str = Query(..., min_length=1, description="Exact file name"),
    folder: Optional[str] = Query(None, description="Parent folder (root when omitted)")
):
    """
    Look up stored files by name within one folder.

    Returns:
        - files: Matching file metadata, oldest commit first (empty when none)
    """
    upload_service = UploadService()
    records = upload_service.find_files(name, folder)
    return ListFilesResponse(files=[_file_metadata(record) for record in records])


@router.get("/files/{file_id}", response_model=FileMetadataResponse)
async def get_file_metadata(file_id: str):
    upload_service = UploadService()
    return _file_metadata(upload_service.get_file(file_id))


@router.get("/files/{file_id}/signature")
async def get_file_signature(file_id: str):
    """
    Block signature of a stored file.

    Returns:
        - blockSize, totalBlocks and per-block index/offset/length/weakHash/hash
    """
    upload_service = UploadService()
    return upload_service.get_signature(file_id)


@router.get("/files/{file_id}/download")
async def download_file(file_id: str):
    """
    Download file content.

    Raises:
        - 404: File not found
    """
    upload_service = UploadService()
    record = upload_service.get_file(file_id)
    return StreamingResponse(
        upload_service.iter_file(record),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{record.name}"'}
    )
