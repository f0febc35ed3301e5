"""Journal controller: text entries, voice capture, transcription, deletion."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Callable, List, Optional, Tuple

from .audio_capture import AudioCaptureSession, AudioDevice, CaptureState
from .errors import CaptureBusyError, CaptureUnavailable, JournalBusyError, SessionStateError, TranscriptionError
from .grouping import bucket
from .models import Entry, EntryClock, new_audio_entry, new_text_entry
from .store import EntryStore
from .transcription import SpeechToTextService

logger = logging.getLogger(__name__)


class Journal:
    """Coordinates capture, transcription and storage for one local client.

    The in-memory entry list only changes after the store confirms a write.
    Voice entries run strictly start -> stop -> transcribe -> insert; once
    transcription has begun the recording can no longer be cancelled.
    """

    def __init__(
        self,
        store: EntryStore,
        transcriber: SpeechToTextService,
        device: Optional[AudioDevice] = None,
        clock: Optional[EntryClock] = None,
    ) -> None:
        self.store = store
        self.transcriber = transcriber
        self.device = device
        self._clock = clock
        self._entries: List[Entry] = []
        self._session: Optional[AudioCaptureSession] = None
        self._transcribing = False
        self._lock = threading.Lock()

    @property
    def entries(self) -> List[Entry]:
        return list(self._entries)

    @property
    def is_transcribing(self) -> bool:
        return self._transcribing

    @property
    def session(self) -> Optional[AudioCaptureSession]:
        return self._session

    def load(self) -> List[Entry]:
        self._entries = self.store.list_all()
        return self.entries

    def grouped(self, now: Optional[dt.datetime] = None) -> List[Tuple[str, List[Entry]]]:
        return bucket(self._entries, now)

    def add_text(self, content: str) -> Entry:
        entry = new_text_entry(content, self._clock)
        self.store.insert(entry)
        self._entries.insert(0, entry)
        return entry

    def start_recording(self, on_tick: Optional[Callable[[int], None]] = None) -> AudioCaptureSession:
        if self._transcribing:
            raise JournalBusyError("Still transcribing the previous recording")
        if self.device is None:
            raise CaptureUnavailable("No audio input device configured")
        current = self._session
        if current is not None and current.is_active:
            raise CaptureBusyError("A recording is already in progress")
        session = AudioCaptureSession(self.device, on_tick=on_tick)
        session.start()
        self._session = session
        return session

    def cancel_recording(self) -> None:
        with self._lock:
            if self._transcribing:
                raise JournalBusyError("Transcription in progress; the recording can no longer be cancelled")
            session, self._session = self._session, None
        if session is not None:
            session.cancel()

    def finish_recording(self) -> Optional[Entry]:
        """Stop the active recording, transcribe it and save the entry.

        Returns ``None`` if the recording had already been cancelled.
        """
        session = self._session
        if session is None:
            raise SessionStateError("stop", CaptureState.IDLE.value)
        try:
            payload = session.stop()
        finally:
            self._session = None
        if payload is None:
            return None
        return self.save_audio(payload.data, payload.mime_type)

    def save_audio(self, audio: bytes, mime_type: str) -> Entry:
        """Transcribe finalized audio and persist it as an audio entry.

        On any failure the audio is discarded; nothing is saved.
        """
        with self._lock:
            if self._transcribing:
                raise JournalBusyError("Still transcribing the previous recording")
            self._transcribing = True
        try:
            try:
                transcript = self.transcriber.transcribe(audio, mime_type)
            except TranscriptionError as exc:
                logger.error("Discarding %d bytes of audio: %s", len(audio), exc)
                raise
            entry = new_audio_entry(transcript, audio, mime_type, self._clock)
            self.store.insert(entry)
        finally:
            self._transcribing = False
        if not transcript:
            logger.info("Saved audio entry %s with an empty transcript", entry.id)
        self._entries.insert(0, entry)
        return entry

    def delete(self, entry_id: str) -> None:
        self.store.delete(entry_id)
        self._entries = [entry for entry in self._entries if entry.id != entry_id]
