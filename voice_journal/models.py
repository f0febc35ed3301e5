"""Journal entry data model."""

from __future__ import annotations

import enum
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional


class EntryKind(str, enum.Enum):
    TEXT = "text"
    AUDIO = "audio"


@dataclass(frozen=True)
class Attachment:
    """Opaque audio bytes tagged with their MIME type."""

    data: bytes
    mime_type: str

    def __repr__(self) -> str:
        return f"Attachment(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class Entry:
    """One journal record, either typed text or a transcribed voice note."""

    id: str
    kind: EntryKind
    content: str
    created_at: int
    attachment: Optional[Attachment] = None

    def __post_init__(self) -> None:
        if self.kind is EntryKind.AUDIO and self.attachment is None:
            raise ValueError("audio entries require an attachment")
        if self.kind is EntryKind.TEXT and self.attachment is not None:
            raise ValueError("text entries cannot carry an attachment")


class EntryClock:
    """Wall-clock milliseconds that never step backwards within a process."""

    def __init__(self, source: Optional[Callable[[], float]] = None) -> None:
        self._source = source or time.time
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            current = max(int(self._source() * 1000), self._last)
            self._last = current
            return current


_default_clock = EntryClock()


def new_entry_id() -> str:
    return uuid.uuid4().hex


def new_text_entry(content: str, clock: Optional[EntryClock] = None) -> Entry:
    """Build a text entry, rejecting blank content."""
    text = content.strip()
    if not text:
        raise ValueError("text entries require non-empty content")
    return Entry(
        id=new_entry_id(),
        kind=EntryKind.TEXT,
        content=text,
        created_at=(clock or _default_clock).now_ms(),
    )


def new_audio_entry(
    transcript: str,
    audio: bytes,
    mime_type: str,
    clock: Optional[EntryClock] = None,
) -> Entry:
    """Build an audio entry; an empty transcript is valid (silent recording)."""
    return Entry(
        id=new_entry_id(),
        kind=EntryKind.AUDIO,
        content=transcript,
        created_at=(clock or _default_clock).now_ms(),
        attachment=Attachment(data=bytes(audio), mime_type=mime_type),
    )
