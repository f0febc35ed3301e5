"""
Tests for the command line interface.
"""
import pytest

from conftest import FakeDevice
from voice_journal import app, transcription
from voice_journal.models import new_audio_entry
from voice_journal.store import EntryStore


class FakeResponse:
    def __init__(self, text):
        self.text = text

    def raise_for_status(self):
        pass

    def json(self):
        return {"candidates": [{"content": {"parts": [{"text": self.text}]}}]}


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "journal.db")


@pytest.fixture
def no_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)


class TestTextCommands:
    def test_add_then_list(self, db, capsys):
        assert app.main(["--db", db, "add", "buy", "milk"]) == 0
        assert app.main(["--db", db, "list"]) == 0
        out = capsys.readouterr().out
        assert "== Today ==" in out
        assert "[text]  buy milk" in out

    def test_list_empty(self, db, capsys):
        assert app.main(["--db", db, "list"]) == 0
        assert "Empty journal." in capsys.readouterr().out

    def test_blank_text_rejected(self, db):
        assert app.main(["--db", db, "add", "   "]) == 2
        assert EntryStore.from_path(db).list_all() == []

    def test_delete(self, db):
        app.main(["--db", db, "add", "temporary"])
        entry_id = EntryStore.from_path(db).list_all()[0].id
        assert app.main(["--db", db, "delete", entry_id]) == 0
        assert app.main(["--db", db, "delete", entry_id]) == 1


class TestAudioCommands:
    def test_export_audio(self, db, tmp_path):
        entry = new_audio_entry("hi", b"\x01\x02\x03", "audio/ogg")
        EntryStore.from_path(db).insert(entry)
        output = tmp_path / "out" / "note.ogg"
        assert app.main(["--db", db, "export-audio", entry.id, str(output)]) == 0
        assert output.read_bytes() == b"\x01\x02\x03"

    def test_export_audio_from_text_entry(self, db, tmp_path):
        app.main(["--db", db, "add", "typed"])
        entry_id = EntryStore.from_path(db).list_all()[0].id
        assert app.main(["--db", db, "export-audio", entry_id, str(tmp_path / "x")]) == 1

    def test_record_saves_transcribed_entry(self, db, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setattr(app, "open_microphone", lambda sample_rate: FakeDevice())
        monkeypatch.setattr(transcription.requests, "post", lambda *a, **kw: FakeResponse("call mom"))

        assert app.main(["--db", db, "record", "--duration", "0.01"]) == 0
        [entry] = EntryStore.from_path(db).list_all()
        assert entry.content == "call mom"
        assert entry.attachment.data == b"abcd"

    def test_record_without_key_saves_nothing(self, db, monkeypatch, no_api_key):
        device = FakeDevice()
        monkeypatch.setattr(app, "open_microphone", lambda sample_rate: device)
        monkeypatch.setattr(app, "load_environment", lambda: None)

        assert app.main(["--db", db, "record", "--duration", "0.01"]) == 1
        assert EntryStore.from_path(db).list_all() == []
        assert device.stream.release_count == 1

    def test_record_with_unavailable_device(self, db, monkeypatch):
        monkeypatch.setattr(app, "open_microphone", lambda sample_rate: FakeDevice(available=False))
        assert app.main(["--db", db, "record", "--duration", "0.01"]) == 1

    def test_record_without_audio_library(self, db, monkeypatch):
        def missing_portaudio(sample_rate):
            raise OSError("PortAudio library not found")

        monkeypatch.setattr(app, "open_microphone", missing_portaudio)
        assert app.main(["--db", db, "record", "--duration", "0.01"]) == 1
        assert EntryStore.from_path(db).list_all() == []

    def test_store_closed_after_command(self, db, monkeypatch):
        closed = []
        monkeypatch.setattr(EntryStore, "close", lambda self: closed.append(self))
        assert app.main(["--db", db, "add", "note"]) == 0
        assert app.main(["--db", db, "delete", "missing-id"]) == 1
        assert len(closed) == 2
