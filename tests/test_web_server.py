"""
Tests for the HTTP API.
"""
import threading

import pytest
from fastapi.testclient import TestClient

import web_server
from conftest import FakeTranscriber
from voice_journal.errors import ConfigurationError, TranscriptionError
from voice_journal.journal import Journal


@pytest.fixture
def make_client(store):
    def factory(transcriber=None):
        journal = Journal(store, transcriber or FakeTranscriber(text="spoken words"))
        web_server.app.dependency_overrides[web_server.get_journal] = lambda: journal
        return TestClient(web_server.app)

    yield factory
    web_server.app.dependency_overrides.clear()


def _upload(client, data=b"voice-bytes", mime_type="audio/webm"):
    return client.post("/entries/audio", files={"file": ("note.webm", data, mime_type)})


class TestEntriesApi:
    def test_text_entry_listed_under_today(self, make_client):
        client = make_client()
        created = client.post("/entries/text", json={"content": "buy milk"})
        assert created.status_code == 201
        assert created.json()["kind"] == "text"
        assert created.json()["has_audio"] is False

        groups = client.get("/entries").json()
        assert [group["key"] for group in groups] == ["Today"]
        assert [e["content"] for e in groups[0]["entries"]] == ["buy milk"]

    def test_blank_text_is_bad_request(self, make_client):
        assert make_client().post("/entries/text", json={"content": "  "}).status_code == 400

    def test_audio_upload_round_trip(self, make_client):
        client = make_client()
        created = _upload(client, data=b"\x00\x01\x02")
        assert created.status_code == 201
        body = created.json()
        assert body["content"] == "spoken words"
        assert body["audio_mime_type"] == "audio/webm"

        audio = client.get(f"/entries/{body['id']}/audio")
        assert audio.status_code == 200
        assert audio.content == b"\x00\x01\x02"
        assert audio.headers["content-type"].startswith("audio/webm")

    def test_text_entry_has_no_audio(self, make_client):
        client = make_client()
        entry_id = client.post("/entries/text", json={"content": "typed"}).json()["id"]
        assert client.get(f"/entries/{entry_id}/audio").status_code == 404

    def test_empty_upload_rejected(self, make_client):
        assert _upload(make_client(), data=b"").status_code == 400

    def test_delete_then_missing(self, make_client):
        client = make_client()
        entry_id = client.post("/entries/text", json={"content": "bye"}).json()["id"]
        assert client.delete(f"/entries/{entry_id}").status_code == 204
        assert client.get("/entries").json() == []
        assert client.delete(f"/entries/{entry_id}").status_code == 404


class TestTranscriptionFailures:
    @pytest.mark.parametrize(
        "error, status",
        [
            (ConfigurationError("missing key"), 500),
            (TranscriptionError("down", kind=TranscriptionError.TRANSPORT), 502),
            (TranscriptionError("slow", kind=TranscriptionError.TIMEOUT), 504),
        ],
    )
    def test_failure_saves_nothing(self, make_client, error, status):
        client = make_client(FakeTranscriber(error=error))
        assert _upload(client).status_code == status
        assert client.get("/entries").json() == []


class TestBusyJournal:
    def test_upload_during_transcription_conflicts(self, make_client):
        started = threading.Event()
        release = threading.Event()

        class SlowTranscriber:
            def transcribe(self, audio, mime_type):
                started.set()
                release.wait(timeout=5)
                return "first"

        client = make_client(SlowTranscriber())
        journal = web_server.app.dependency_overrides[web_server.get_journal]()
        worker = threading.Thread(target=journal.save_audio, args=(b"earlier", "audio/ogg"))
        worker.start()
        try:
            assert started.wait(timeout=5)
            response = _upload(client)
            assert response.status_code == 409
        finally:
            release.set()
            worker.join(timeout=5)

        assert [e["content"] for g in client.get("/entries").json() for e in g["entries"]] == ["first"]
