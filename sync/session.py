"""Upload session state machine: Init -> Transmitting -> Finalizing -> Complete."""

from dataclasses import dataclass
from typing import Callable, List, Literal, Optional

from common.logging_config import SessionLoggerAdapter, get_logger
from sync.exceptions import InvalidSessionStateError, SyncError, UploadCancelledError

MODE_FULL = "full"
MODE_DELTA = "delta"

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class Init:
    """Session requested, no id issued yet."""

    state: Literal["init"] = "init"


@dataclass(frozen=True)
class Transmitting:
    """Sending chunks (full mode) or a delta payload (delta mode)."""

    mode: str
    state: Literal["transmitting"] = "transmitting"


@dataclass(frozen=True)
class Finalizing:
    """Completion requested, waiting for the remote store to commit."""

    mode: str
    state: Literal["finalizing"] = "finalizing"


@dataclass(frozen=True)
class Complete:
    """Terminal success; the session id accepts no further writes."""

    file_id: str
    state: Literal["complete"] = "complete"


@dataclass(frozen=True)
class Failed:
    """Terminal failure carrying the error that ended the session."""

    reason: SyncError
    state: Literal["failed"] = "failed"


SessionState = Init | Transmitting | Finalizing | Complete | Failed

ALLOWED_TRANSITIONS = {
    "init": ("transmitting", "failed"),
    "transmitting": ("finalizing", "failed"),
    "finalizing": ("complete", "failed"),
    "complete": (),
    "failed": (),
}


class UploadSession:
    """
    One upload in progress.

    Progress is a fraction in [0, 1] that never decreases; every report is
    forwarded to the subscribed observers.
    """

    def __init__(self, filename: str, total_size: int, parent_folder: Optional[str] = None):
        self.filename = filename
        self.total_size = total_size
        self.parent_folder = parent_folder
        self.id: Optional[str] = None
        self.state: SessionState = Init()
        self.progress = 0.0
        self._observers: List[ProgressCallback] = []
        self.log = SessionLoggerAdapter(get_logger(__name__), {'session_id': None})

    @property
    def mode(self) -> Optional[str]:
        return getattr(self.state, 'mode', None)

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.state, (Complete, Failed))

    @property
    def failure(self) -> Optional[SyncError]:
        return self.state.reason if isinstance(self.state, Failed) else None

    @property
    def file_id(self) -> Optional[str]:
        return self.state.file_id if isinstance(self.state, Complete) else None

    def subscribe(self, callback: ProgressCallback) -> None:
        self._observers.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _transition(self, new_state: SessionState) -> None:
        current = self.state.state
        if new_state.state not in ALLOWED_TRANSITIONS[current]:
            raise InvalidSessionStateError(f"Cannot move session from {current} to {new_state.state}")
        self.state = new_state
        self.log.info(f"Session {self.filename!r}: {current} -> {new_state.state}")

    def bind(self, session_id: str) -> None:
        """Record the id issued by the remote store."""
        if not isinstance(self.state, Init):
            raise InvalidSessionStateError(f"Session id can only be bound in init, not {self.state.state}")
        self.id = session_id
        self.log.extra['session_id'] = session_id

    def begin_transmitting(self, mode: str) -> None:
        if self.id is None:
            raise InvalidSessionStateError("Cannot transmit before the remote store issued a session id")
        self._transition(Transmitting(mode=mode))

    def switch_mode(self, mode: str) -> None:
        """Change sub-protocol before any unit has been acknowledged."""
        if not isinstance(self.state, Transmitting):
            raise InvalidSessionStateError(f"Cannot switch mode while {self.state.state}")
        if self.progress > 0:
            raise InvalidSessionStateError("Cannot switch mode after transmission started")
        if mode != self.state.mode:
            self.log.info(f"Session {self.filename!r}: switching {self.state.mode} -> {mode}")
            self.state = Transmitting(mode=mode)

    def report_progress(self, fraction: float) -> None:
        if not isinstance(self.state, Transmitting):
            return
        self.progress = max(self.progress, min(1.0, max(0.0, fraction)))
        for callback in list(self._observers):
            callback(self.progress)

    def begin_finalizing(self) -> None:
        self._transition(Finalizing(mode=self.mode))

    def complete(self, file_id: str) -> None:
        self._transition(Complete(file_id=file_id))

    def fail(self, reason: SyncError) -> None:
        """Move to Failed unless already terminal."""
        if self.is_terminal:
            return
        self._transition(Failed(reason=reason))
        self.log.error(f"Session {self.filename!r} failed: {type(reason).__name__}: {reason}")

    def abandon(self) -> None:
        """
        Cancel the session on behalf of the caller.

        Allowed only before Finalizing; once Failed, further calls do nothing.
        """
        if isinstance(self.state, Failed):
            return
        if isinstance(self.state, (Finalizing, Complete)):
            raise InvalidSessionStateError(f"Cannot abandon a session that is {self.state.state}")
        self.fail(UploadCancelledError("Upload abandoned by caller"))

    def ensure_active(self) -> None:
        """Raise the recorded failure if the session has already ended."""
        if isinstance(self.state, Failed):
            raise self.state.reason
        if isinstance(self.state, Complete):
            raise InvalidSessionStateError("Session is already complete")
