"""
Durable entry storage on SQLite.

Each entry, attachment included, is a single row, so an insert either
commits the text and the audio together or leaves nothing behind.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Union

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import NotFoundError, StorageError
from .models import Attachment, Entry, EntryKind

logger = logging.getLogger(__name__)

Base = declarative_base()


class EntryRecord(Base):
    __tablename__ = "entries"

    # Insertion order; breaks created_at ties (later insert sorts first).
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    kind = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    attachment = Column(LargeBinary, nullable=True)
    attachment_mime_type = Column(String, nullable=True)
    created_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint("kind IN ('text', 'audio')", name="ck_entries_kind"),
        CheckConstraint(
            "(kind = 'audio') = (attachment IS NOT NULL AND attachment_mime_type IS NOT NULL)",
            name="ck_entries_attachment_matches_kind",
        ),
        Index("idx_entries_created", "created_at", "seq"),
    )


def _set_sqlite_pragma(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_sqlite_engine(path: Union[str, Path]) -> Engine:
    """Engine for a database file, or a shared in-memory database for ':memory:'."""
    if str(path) == ":memory:":
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    db_path = Path(path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


class EntryStore:
    """Journal entries keyed by id, newest first."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            raise StorageError("open", f"Unable to initialise entry store: {exc}") from exc
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "EntryStore":
        return cls(create_sqlite_engine(path))

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Entry store %s failed", operation)
            raise StorageError(operation, f"Entry store {operation} failed: {exc}") from exc
        finally:
            session.close()

    def insert(self, entry: Entry) -> None:
        """Persist a new entry and its attachment as one unit."""
        with self._session("insert") as session:
            exists = session.query(EntryRecord.seq).filter(EntryRecord.id == entry.id).first()
            if exists is not None:
                raise StorageError("insert", f"Entry {entry.id} already exists", reason="duplicate")
            session.add(_to_record(entry))
        logger.info("Saved %s entry %s", entry.kind.value, entry.id)

    def list_all(self) -> List[Entry]:
        """Every entry, most recent first; ties go to the later insert."""
        with self._session("list") as session:
            records = (
                session.query(EntryRecord)
                .order_by(EntryRecord.created_at.desc(), EntryRecord.seq.desc())
                .all()
            )
            return [_to_entry(record) for record in records]

    def get(self, entry_id: str) -> Entry:
        with self._session("get") as session:
            record = session.query(EntryRecord).filter(EntryRecord.id == entry_id).first()
            if record is None:
                raise NotFoundError(entry_id)
            return _to_entry(record)

    def delete(self, entry_id: str) -> None:
        """Remove an entry and its attachment; a missing id raises NotFoundError."""
        with self._session("delete") as session:
            record = session.query(EntryRecord).filter(EntryRecord.id == entry_id).first()
            if record is None:
                raise NotFoundError(entry_id)
            session.delete(record)
        logger.info("Deleted entry %s", entry_id)


def _to_record(entry: Entry) -> EntryRecord:
    attachment = entry.attachment
    return EntryRecord(
        id=entry.id,
        kind=entry.kind.value,
        content=entry.content,
        attachment=attachment.data if attachment else None,
        attachment_mime_type=attachment.mime_type if attachment else None,
        created_at=entry.created_at,
    )


def _to_entry(record: EntryRecord) -> Entry:
    attachment = None
    if record.attachment is not None:
        attachment = Attachment(data=bytes(record.attachment), mime_type=record.attachment_mime_type)
    return Entry(
        id=record.id,
        kind=EntryKind(record.kind),
        content=record.content or "",
        created_at=int(record.created_at),
        attachment=attachment,
    )
