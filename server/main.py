"""Entry point for the drive server."""

import uvicorn
import time
import uuid
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from server.config import SERVER_HOST, SERVER_PORT
from server.routes.drive_routes import router as drive_router
from server.exceptions import (
    DriveServerError,
    SessionNotFoundError,
    StoredFileNotFoundError,
    QuotaExceededError,
    ChecksumMismatchError,
    IncompleteUploadError,
    InvalidDeltaError,
    SessionStateConflictError
)

logger = setup_logging('server')

app = FastAPI(
    title="DeltaDrive Server",
    description="Chunked and delta upload server with content-addressed storage",
    version="1.0.0"
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


def _error_response(request: Request, exc: Exception, status_code: int, code: str, label: str) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"{label}: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code}
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "SESSION_NOT_FOUND", "Session not found error")


@app.exception_handler(StoredFileNotFoundError)
async def file_not_found_handler(request: Request, exc: StoredFileNotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND", "File not found error")


@app.exception_handler(QuotaExceededError)
async def quota_exceeded_handler(request: Request, exc: QuotaExceededError):
    return _error_response(
        request, exc, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "QUOTA_EXCEEDED", "Quota exceeded error"
    )


@app.exception_handler(ChecksumMismatchError)
async def checksum_mismatch_handler(request: Request, exc: ChecksumMismatchError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "CHECKSUM_MISMATCH", "Checksum mismatch error")


@app.exception_handler(IncompleteUploadError)
async def incomplete_upload_handler(request: Request, exc: IncompleteUploadError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INCOMPLETE_UPLOAD", "Incomplete upload error")


@app.exception_handler(InvalidDeltaError)
async def invalid_delta_handler(request: Request, exc: InvalidDeltaError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_DELTA", "Invalid delta error")


@app.exception_handler(SessionStateConflictError)
async def session_state_conflict_handler(request: Request, exc: SessionStateConflictError):
    return _error_response(
        request, exc, status.HTTP_409_CONFLICT, "INVALID_SESSION_STATE", "Session state conflict error"
    )


@app.exception_handler(DriveServerError)
async def drive_server_error_handler(request: Request, exc: DriveServerError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"Drive server error: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "code": "INTERNAL_ERROR"}
    )


app.include_router(drive_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "DeltaDrive Server API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "server"}


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "server.main:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        log_level="info"
    )


if __name__ == "__main__":
    main()
