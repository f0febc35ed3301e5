import pytest

from voice_journal.audio_capture import AudioCaptureSession
from voice_journal.errors import CaptureUnavailable, TranscriptionError
from voice_journal.journal import Journal
from voice_journal.models import EntryClock
from voice_journal.store import EntryStore


class FakeStream:
    """Stands in for a hardware stream and records what was done to it."""

    def __init__(self, supported=("audio/webm",), default_mime_type="audio/wav", chunks=(b"ab", b"cd")):
        self.supported = set(supported)
        self.default_mime_type = default_mime_type
        self.chunks = list(chunks)
        self.begun_with = None
        self.flush_count = 0
        self.release_count = 0
        self.begin_error = None
        self.flush_error = None

    def supports(self, mime_type):
        return mime_type in self.supported

    def begin(self, mime_type):
        if self.begin_error is not None:
            raise self.begin_error
        self.begun_with = mime_type

    def flush(self):
        self.flush_count += 1
        if self.flush_error is not None:
            raise self.flush_error
        return list(self.chunks)

    def release(self):
        self.release_count += 1


class FakeDevice:
    def __init__(self, stream=None, available=True):
        self.stream = stream or FakeStream()
        self.available = available
        self.acquire_count = 0

    def acquire(self):
        self.acquire_count += 1
        if not self.available:
            raise CaptureUnavailable("Permission denied")
        return self.stream


class FakeTranscriber:
    def __init__(self, text="hello world", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def transcribe(self, audio, mime_type):
        self.calls.append((audio, mime_type))
        if self.error is not None:
            raise self.error
        return self.text


class StepClock:
    """Deterministic seconds source advancing one second per read."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += 1
        return value


@pytest.fixture(autouse=True)
def release_capture_ownership():
    yield
    AudioCaptureSession._active = None


@pytest.fixture
def store():
    entry_store = EntryStore.from_path(":memory:")
    yield entry_store
    entry_store.close()


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def journal(store, transcriber, device):
    return Journal(store, transcriber, device=device)


@pytest.fixture
def failing_transcriber():
    return FakeTranscriber(error=TranscriptionError("provider down", kind=TranscriptionError.TRANSPORT))


@pytest.fixture
def clock():
    return EntryClock(source=StepClock(1_700_000_000))
