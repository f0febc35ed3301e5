"""Microphone capture sessions."""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, ClassVar, List, Optional, Protocol, Sequence, Union

from .errors import CaptureBusyError, CaptureUnavailable, SessionStateError

logger = logging.getLogger(__name__)

MIME_TYPE_PREFERENCES = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/mp4",
    "audio/aac",
    "audio/ogg",
)


class DeviceStream(Protocol):
    """An acquired microphone stream."""

    default_mime_type: str

    def supports(self, mime_type: str) -> bool:
        """Whether the stream can encode to ``mime_type``."""

    def begin(self, mime_type: str) -> None:
        """Start recording, encoding to ``mime_type``."""

    def flush(self) -> List[bytes]:
        """Stop recording and return the encoded chunks accumulated so far."""

    def release(self) -> None:
        """Free the hardware stream."""


class AudioDevice(Protocol):
    def acquire(self) -> DeviceStream:
        """Return a stream, or raise CaptureUnavailable on denial/absence."""


class CaptureState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RECORDING = "recording"
    STOPPING = "stopping"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({CaptureState.FINALIZED, CaptureState.CANCELLED, CaptureState.FAILED})


@dataclass(frozen=True)
class AudioPayload:
    """Finalized recording: one byte sequence tagged with its encoding."""

    data: bytes
    mime_type: str
    duration_seconds: int = 0


class _Cancelled:
    def __repr__(self) -> str:
        return "CANCELLED"


CANCELLED = _Cancelled()


def negotiate_mime_type(stream: DeviceStream, preferences: Sequence[str] = MIME_TYPE_PREFERENCES) -> str:
    """Pick the first preferred encoding the stream supports, else its default."""
    for mime_type in preferences:
        if stream.supports(mime_type):
            return mime_type
    return stream.default_mime_type


class _Ticker:
    """Calls ``on_tick`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, interval: float, on_tick: Callable[[], None]) -> None:
        self._interval = interval
        self._on_tick = on_tick
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="capture-ticker", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self._interval + 1)

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self._on_tick()


class AudioCaptureSession:
    """One recording attempt, from device acquisition to release.

    The session is a state machine: ``IDLE -> REQUESTING -> RECORDING ->
    STOPPING -> FINALIZED``, with ``CANCELLED`` and ``FAILED`` as the other
    terminal states. The device stream and the elapsed-time ticker are
    released exactly once whichever terminal state is reached, and
    ``wait()`` resolves exactly once with an :class:`AudioPayload` or the
    ``CANCELLED`` marker.

    Only one session may be active per process; a second ``start()`` raises
    :class:`CaptureBusyError`.
    """

    _owner_lock: ClassVar[threading.Lock] = threading.Lock()
    _active: ClassVar[Optional["AudioCaptureSession"]] = None

    def __init__(
        self,
        device: AudioDevice,
        preferences: Sequence[str] = MIME_TYPE_PREFERENCES,
        tick_interval: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._device = device
        self._preferences = tuple(preferences)
        self._tick_interval = tick_interval
        self._on_tick = on_tick
        self._lock = threading.RLock()
        self._state = CaptureState.IDLE
        self._stream: Optional[DeviceStream] = None
        self._ticker: Optional[_Ticker] = None
        self._mime_type: Optional[str] = None
        self._elapsed = 0
        self._completion: Future = Future()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def mime_type(self) -> Optional[str]:
        return self._mime_type

    @property
    def is_active(self) -> bool:
        return self._state is not CaptureState.IDLE and not self._state.is_terminal

    @classmethod
    def active_session(cls) -> Optional["AudioCaptureSession"]:
        return cls._active

    def start(self) -> None:
        with self._lock:
            if self._state is not CaptureState.IDLE:
                raise SessionStateError("start", self._state.value)
            self._claim()
            self._state = CaptureState.REQUESTING
        logger.debug("Requesting microphone stream")

        try:
            stream = self._device.acquire()
        except CaptureUnavailable as exc:
            if self._cancelled():
                return
            raise self._failed(exc)
        except Exception as exc:
            if self._cancelled():
                return
            raise self._failed(CaptureUnavailable(f"Microphone unavailable: {exc}")) from exc

        with self._lock:
            self._stream = stream
            cancelled = self._state is CaptureState.CANCELLED
        if cancelled:
            logger.debug("Session cancelled while requesting the device")
            self._release()
            return

        mime_type = negotiate_mime_type(stream, self._preferences)
        try:
            stream.begin(mime_type)
        except CaptureUnavailable as exc:
            if self._cancelled():
                return
            raise self._failed(exc)
        except Exception as exc:
            if self._cancelled():
                return
            raise self._failed(CaptureUnavailable(f"Microphone failed to start: {exc}")) from exc

        with self._lock:
            cancelled = self._state is CaptureState.CANCELLED
            if not cancelled:
                self._mime_type = mime_type
                self._state = CaptureState.RECORDING
                self._ticker = _Ticker(self._tick_interval, self._tick)
                self._ticker.start()
        if cancelled:
            self._release()
            return
        logger.debug("Recording started (%s)", mime_type)

    def stop(self) -> Optional[AudioPayload]:
        """Finalize the recording and return its payload.

        Returns ``None`` when the session already reached a terminal state.
        """
        with self._lock:
            if self._state.is_terminal:
                return None
            if self._state is not CaptureState.RECORDING:
                raise SessionStateError("stop", self._state.value)
            self._state = CaptureState.STOPPING
            stream = self._stream
            mime_type = self._mime_type or stream.default_mime_type

        try:
            chunks = stream.flush()
        except CaptureUnavailable as exc:
            raise self._failed(exc)
        except Exception as exc:
            raise self._failed(CaptureUnavailable(f"Microphone failed while stopping: {exc}")) from exc

        payload = AudioPayload(data=b"".join(chunks), mime_type=mime_type, duration_seconds=self._elapsed)
        self._finish(CaptureState.FINALIZED, payload)
        logger.debug("Recording finalized: %d bytes, %ds", len(payload.data), payload.duration_seconds)
        return payload

    def cancel(self) -> None:
        with self._lock:
            if self._state is CaptureState.IDLE or self._state.is_terminal:
                return
            if self._state not in (CaptureState.REQUESTING, CaptureState.RECORDING):
                raise SessionStateError("cancel", self._state.value)
            self._state = CaptureState.CANCELLED
        self._finish(CaptureState.CANCELLED, CANCELLED)
        logger.debug("Recording cancelled")

    def wait(self, timeout: Optional[float] = None) -> Union[AudioPayload, _Cancelled]:
        """Block until the session ends; re-raises the failure of a FAILED session."""
        return self._completion.result(timeout)

    def _tick(self) -> None:
        with self._lock:
            if self._state is not CaptureState.RECORDING:
                return
            self._elapsed += 1
            elapsed = self._elapsed
        if self._on_tick is not None:
            self._on_tick(elapsed)

    def _claim(self) -> None:
        with AudioCaptureSession._owner_lock:
            if AudioCaptureSession._active is not None:
                raise CaptureBusyError("Another capture session is already active")
            AudioCaptureSession._active = self

    def _cancelled(self) -> bool:
        """Release and report True if the session was cancelled while starting."""
        with self._lock:
            cancelled = self._state is CaptureState.CANCELLED
        if cancelled:
            logger.debug("Ignoring device error after cancellation")
            self._release()
        return cancelled

    def _finish(self, state: CaptureState, result) -> None:
        with self._lock:
            self._state = state
        try:
            self._release()
        finally:
            if not self._completion.done():
                self._completion.set_result(result)

    def _failed(self, error: CaptureUnavailable) -> CaptureUnavailable:
        """Move to FAILED, release everything, and hand back the error to raise."""
        with self._lock:
            self._state = CaptureState.FAILED
        try:
            self._release()
        finally:
            if not self._completion.done():
                self._completion.set_exception(error)
        logger.warning("Capture session failed: %s", error)
        return error

    def _release(self) -> None:
        # Resources are detached under the lock so each is freed exactly once.
        with self._lock:
            ticker, self._ticker = self._ticker, None
            stream, self._stream = self._stream, None
        try:
            if ticker is not None:
                ticker.stop()
            if stream is not None:
                stream.release()
        finally:
            with AudioCaptureSession._owner_lock:
                if AudioCaptureSession._active is self:
                    AudioCaptureSession._active = None
