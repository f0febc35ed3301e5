from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from voice_journal.config import Settings, load_environment
from voice_journal.errors import (
    ConfigurationError,
    JournalBusyError,
    NotFoundError,
    StorageError,
    TranscriptionError,
)
from voice_journal.grouping import format_entry_time
from voice_journal.journal import Journal
from voice_journal.models import Entry
from voice_journal.store import EntryStore
from voice_journal.transcription import FALLBACK_MIME_TYPE, GeminiTranscriber

load_environment()

app = FastAPI(title="Voice Journal")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class EntryResponse(BaseModel):
    id: str
    kind: str
    content: str
    created_at: int
    time: str
    has_audio: bool
    audio_mime_type: Optional[str] = None


class EntryGroupResponse(BaseModel):
    key: str
    entries: List[EntryResponse]


class TextEntryRequest(BaseModel):
    content: str


@lru_cache(maxsize=1)
def get_journal() -> Journal:
    settings = Settings.from_env()
    journal = Journal(EntryStore.from_path(settings.db_path), GeminiTranscriber.from_settings(settings))
    journal.load()
    return journal


def _to_response(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        kind=entry.kind.value,
        content=entry.content,
        created_at=entry.created_at,
        time=format_entry_time(entry),
        has_audio=entry.attachment is not None,
        audio_mime_type=entry.attachment.mime_type if entry.attachment else None,
    )


@app.get("/entries", response_model=List[EntryGroupResponse])
async def list_entries(journal: Journal = Depends(get_journal)) -> List[EntryGroupResponse]:
    try:
        journal.load()
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return [
        EntryGroupResponse(key=key, entries=[_to_response(entry) for entry in entries])
        for key, entries in journal.grouped()
    ]


@app.post("/entries/text", response_model=EntryResponse, status_code=201)
async def add_text_entry(request: TextEntryRequest, journal: Journal = Depends(get_journal)) -> EntryResponse:
    try:
        entry = journal.add_text(request.content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return _to_response(entry)


@app.post("/entries/audio", response_model=EntryResponse, status_code=201)  # upload -> transcribe -> save
async def add_audio_entry(
    file: UploadFile = File(...),
    journal: Journal = Depends(get_journal),
) -> EntryResponse:
    audio_bytes = await file.read()
    if not audio_bytes:
        raise HTTPException(status_code=400, detail="Uploaded audio is empty")
    mime_type = file.content_type or FALLBACK_MIME_TYPE

    try:
        entry = await run_in_threadpool(journal.save_audio, audio_bytes, mime_type)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    except TranscriptionError as exc:
        status = 504 if exc.kind == TranscriptionError.TIMEOUT else 502
        raise HTTPException(status_code=status, detail=exc.message) from exc
    except JournalBusyError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return _to_response(entry)


@app.get("/entries/{entry_id}/audio")
async def get_entry_audio(entry_id: str, journal: Journal = Depends(get_journal)) -> Response:
    try:
        entry = journal.store.get(entry_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    if entry.attachment is None:
        raise HTTPException(status_code=404, detail=f"Entry {entry_id} has no audio")
    return Response(content=entry.attachment.data, media_type=entry.attachment.mime_type)


@app.delete("/entries/{entry_id}", status_code=204)
async def delete_entry(entry_id: str, journal: Journal = Depends(get_journal)) -> Response:
    try:
        journal.delete(entry_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return Response(status_code=204)
