"""HTTP client implementing the remote store interface against the drive server."""

import asyncio
import uuid
from typing import List, Optional, Sequence, Tuple

import httpx

from common.constants import DELTA_BATCH_MAX_BLOCKS
from common.logging_config import get_logger
from common.protocol import DeltaManifest, ProtocolError, novel_block_field, signature_from_dict
from common.types import FileSignature, Instruction
from cli.config import Config
from sync.exceptions import (
    FileLookupError,
    FinalizeError,
    SessionOpenError,
    SignatureUnavailableError,
    TransmissionError,
)
from sync.remote import AckCallback, RemoteStore

logger = get_logger(__name__)


class DriveClient(RemoteStore):
    """
    Async HTTP client for the drive server.

    Idempotent reads are retried on 5xx and network errors; writes inside
    an upload session are sent once and any failure is reported to the
    session driver.
    """

    def __init__(self, config: Config, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize drive client.

        Args:
            config: Configuration instance
            api_key: Bearer credential sent with every request, if any
            transport: Optional httpx transport (tests, in-process servers)
        """
        self.config = config
        self.delta_batch_bytes = config.get_delta_batch_bytes()
        headers = {'Authorization': f'Bearer {api_key}'} if api_key else {}
        self.session = httpx.AsyncClient(
            base_url=config.get_base_url(),
            timeout=config.get_timeout(),
            headers=headers,
            transport=transport,
        )
        self.request_id = None
        logger.info(f"Initialized DriveClient [base_url={config.get_base_url()}]")

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            endpoint: API endpoint path
            max_retries: Max retry attempts (uses config default if None)
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            ConnectionError: If max retries exceeded or connection fails
        """
        retry_config = self.config.get_retry_config()
        max_retries = max_retries if max_retries is not None else retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={self.request_id}]")

        last_exception = None
        for attempt in range(max_retries + 1):
            try:
                response = await self.session.request(method, endpoint, **kwargs)
            except httpx.TransportError as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={self.request_id}]"
                )
                break

            logger.debug(
                f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
            )

            if response.status_code >= 500 and attempt < max_retries:
                delay = backoff ** attempt
                logger.warning(
                    f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                    f"{method} {endpoint} status={response.status_code}, retrying in {delay}s [request_id={self.request_id}]"
                )
                await asyncio.sleep(delay)
                continue

            if 400 <= response.status_code < 500:
                logger.warning(
                    f"Client error: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )
            return response

        if isinstance(last_exception, httpx.TimeoutException):
            raise ConnectionError("Request timed out. Server may be overloaded.")
        if isinstance(last_exception, httpx.ConnectError):
            raise ConnectionError("Cannot connect to drive server. Is it running?")
        raise ConnectionError(f"Connection to drive server failed: {last_exception}")

    async def _send_once(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Send a single non-retried request.

        Raises:
            ConnectionError: On network failure or timeout
        """
        try:
            return await self.session.request(method, endpoint, **kwargs)
        except httpx.ConnectError as e:
            raise ConnectionError("Cannot connect to drive server. Is it running?") from e
        except httpx.TimeoutException as e:
            raise ConnectionError("Request timed out. Server may be overloaded.") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Connection to drive server failed: {e}") from e

    def _format_error(self, response: httpx.Response) -> str:
        """
        Map HTTP errors to user-friendly messages.

        Args:
            response: HTTP response object

        Returns:
            User-friendly error message
        """
        try:
            error_data = response.json()
            detail = error_data.get('detail', 'Unknown error')
            code = error_data.get('code', 'UNKNOWN')
        except ValueError:
            detail = response.text if response.text else 'Unknown error'
            code = 'UNKNOWN'

        error_messages = {
            'SESSION_NOT_FOUND': 'Upload session not found or already closed.',
            'FILE_NOT_FOUND': 'File not found on server.',
            'QUOTA_EXCEEDED': 'Storage quota exceeded. Please delete some files.',
            'CHECKSUM_MISMATCH': 'Chunk integrity check failed during upload.',
            'INCOMPLETE_UPLOAD': 'Server did not receive every declared chunk or block.',
            'INVALID_DELTA': 'Server rejected the delta instructions.',
            'INVALID_SESSION_STATE': 'Upload session is not in a state that allows this request.',
        }

        if code in error_messages:
            return f"{error_messages[code]} ({detail})"

        status_messages = {
            400: 'Bad request',
            401: 'Not authenticated',
            403: 'Access forbidden',
            404: 'Not found',
            413: 'File too large',
            500: 'Server error',
            503: 'Service unavailable',
        }

        message = status_messages.get(response.status_code, detail)
        return f"{message} (Code: {code})" if code != 'UNKNOWN' else message

    async def open_session(self, filename: str, total_size: int, parent_folder: Optional[str] = None) -> str:
        payload = {'filename': filename, 'total_size': total_size, 'parent_folder': parent_folder}
        try:
            response = await self._send_once('POST', '/drive/sessions', json=payload)
        except ConnectionError as e:
            raise SessionOpenError(str(e)) from e

        if response.status_code != 201:
            raise SessionOpenError(self._format_error(response))
        session_id = response.json()['session_id']
        logger.debug(f"Server opened session {session_id} for {filename!r}")
        return session_id

    async def fetch_signature(self, file_id: str) -> FileSignature:
        try:
            response = await self._request_with_retry('GET', f'/drive/files/{file_id}/signature')
        except ConnectionError as e:
            raise SignatureUnavailableError(str(e)) from e

        if response.status_code != 200:
            raise SignatureUnavailableError(self._format_error(response))
        try:
            return signature_from_dict(response.json())
        except (ProtocolError, ValueError) as e:
            raise SignatureUnavailableError(f"Server sent an invalid signature: {e}") from e

    async def find_file(self, filename: str, parent_folder: Optional[str] = None) -> Optional[str]:
        params = {'name': filename}
        if parent_folder:
            params['folder'] = parent_folder
        try:
            response = await self._request_with_retry('GET', '/drive/files', params=params)
        except ConnectionError as e:
            raise FileLookupError(str(e)) from e

        if response.status_code != 200:
            raise FileLookupError(self._format_error(response))
        files = response.json().get('files', [])
        if not files:
            return None
        file_id = files[-1]['file_id']
        logger.debug(f"Found stored version {file_id} of {filename!r} [folder={parent_folder}]")
        return file_id

    async def transmit_chunk(self, session_id: str, index: int, strong_hash: str, data: bytes) -> None:
        try:
            response = await self._send_once(
                'POST',
                f'/drive/sessions/{session_id}/chunks',
                data={'index': str(index), 'hash': strong_hash},
                files={'chunk': (f'chunk_{index}', data, 'application/octet-stream')},
            )
        except ConnectionError as e:
            raise TransmissionError(f"Chunk {index}: {e}") from e

        if response.status_code != 200:
            raise TransmissionError(f"Chunk {index}: {self._format_error(response)}")

    def _batch_novel_blocks(self, novel_blocks: Sequence[bytes]) -> List[List[Tuple[int, bytes]]]:
        """
        Group blocks into batches of at most delta_batch_bytes and at most
        DELTA_BATCH_MAX_BLOCKS parts (one block minimum).
        """
        batches: List[List[Tuple[int, bytes]]] = []
        current: List[Tuple[int, bytes]] = []
        current_bytes = 0
        for block_index, data in enumerate(novel_blocks):
            if current and (
                current_bytes + len(data) > self.delta_batch_bytes
                or len(current) >= DELTA_BATCH_MAX_BLOCKS
            ):
                batches.append(current)
                current, current_bytes = [], 0
            current.append((block_index, data))
            current_bytes += len(data)
        if current:
            batches.append(current)
        return batches

    async def transmit_delta(
        self,
        session_id: str,
        base_file_id: str,
        instructions: Sequence[Instruction],
        novel_blocks: Sequence[bytes],
        total_size: int,
        on_ack: Optional[AckCallback] = None,
    ) -> None:
        for batch in self._batch_novel_blocks(novel_blocks):
            files = [
                (novel_block_field(block_index), (novel_block_field(block_index), data, 'application/octet-stream'))
                for block_index, data in batch
            ]
            try:
                response = await self._send_once('POST', f'/drive/sessions/{session_id}/blocks', files=files)
            except ConnectionError as e:
                raise TransmissionError(f"Novel blocks: {e}") from e
            if response.status_code != 200:
                raise TransmissionError(f"Novel blocks: {self._format_error(response)}")
            if on_ack is not None:
                on_ack(sum(len(data) for _, data in batch))

        manifest = DeltaManifest(
            base_file_id=base_file_id,
            instructions=tuple(instructions),
            novel_block_count=len(novel_blocks),
            total_size=total_size,
        )
        try:
            response = await self._send_once('POST', f'/drive/sessions/{session_id}/delta', json=manifest.to_dict())
        except ConnectionError as e:
            raise TransmissionError(f"Delta manifest: {e}") from e
        if response.status_code != 200:
            raise TransmissionError(f"Delta manifest: {self._format_error(response)}")

    async def complete_session(self, session_id: str) -> str:
        try:
            response = await self._send_once('POST', f'/drive/sessions/{session_id}/complete')
        except ConnectionError as e:
            raise FinalizeError(str(e)) from e

        if response.status_code != 200:
            raise FinalizeError(self._format_error(response))
        return response.json()['file_id']

    async def abort_session(self, session_id: str) -> None:
        try:
            response = await self._send_once('DELETE', f'/drive/sessions/{session_id}')
        except ConnectionError as e:
            raise TransmissionError(f"Abort session {session_id}: {e}") from e

        if response.status_code not in (204, 404):
            raise TransmissionError(f"Abort session {session_id}: {self._format_error(response)}")
        logger.debug(f"Server discarded session {session_id}")

    async def download(self, file_id: str) -> bytes:
        """
        Fetch a stored file's content.

        Raises:
            ConnectionError: If the server is unreachable
            LookupError: If the file does not exist
        """
        response = await self._request_with_retry('GET', f'/drive/files/{file_id}/download')
        if response.status_code != 200:
            raise LookupError(self._format_error(response))
        return response.content

    async def close(self) -> None:
        """Close the HTTP session."""
        await self.session.aclose()
