import contextlib
import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Union

from starlette.concurrency import run_in_threadpool

from .domain import Note, NotePatch, StoreError
from .models import NoteSummary, NotesView, SelectedNote
from .utils import make_id, time_now

logger = logging.getLogger(__name__)

NOTE_COLUMNS = "id, title, body, created_at, updated_at"


class Storage:
    """Stores notes in a local SQLite database.

    Reads open their own connection; writes are serialized by a lock so the
    WAL-mode database only ever sees a single writer.
    """

    def __init__(self, db_path: Union[str, Path] = "notes.db"):
        self.db_path = str(db_path)
        self.lock = threading.Lock()
        self._create_table()

    @contextlib.contextmanager
    def _get_db_connection(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
        finally:
            conn.close()

    def _create_table(self):
        with self._get_db_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def _write(self, sql: str, params: tuple) -> int:
        with self._get_db_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                conn.commit()
                return cursor.rowcount
            except sqlite3.Error as e:
                conn.rollback()
                logger.error("Database error: %s", e)
                raise StoreError(f"Failed to write note: {e}") from e

    def create(self, title: str, body: str = "") -> Note:
        now = time_now()
        note = Note(make_id(), title, body, now, now)
        with self.lock:
            self._write(
                f"INSERT INTO notes ({NOTE_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (note.id, note.title, note.body, note.created_at, note.updated_at),
            )
        logger.debug("Note created: %s", note.id)
        return note

    def get(self, note_id: str) -> Optional[Note]:
        with self._get_db_connection() as conn:
            row = conn.execute(
                f"SELECT {NOTE_COLUMNS} FROM notes WHERE id=?", (note_id,)
            ).fetchone()
            return Note(*row) if row else None

    def list(self) -> List[Note]:
        with self._get_db_connection() as conn:
            rows = conn.execute(
                f"SELECT {NOTE_COLUMNS} FROM notes ORDER BY updated_at DESC, created_at DESC"
            ).fetchall()
            return [Note(*row) for row in rows]

    def count(self) -> int:
        with self._get_db_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]

    def update(self, note_id: str, patch: NotePatch) -> Optional[Note]:
        """Apply ``patch`` to a note. Unknown ids return None; an empty patch returns the note untouched."""
        with self.lock:
            existing = self.get(note_id)
            if existing is None or patch.is_empty:
                return existing
            values = patch.apply(existing)
            updated = Note(
                note_id, values["title"], values["body"],
                existing.created_at, time_now(after=existing.updated_at),
            )
            self._write(
                "UPDATE notes SET title=?, body=?, updated_at=? WHERE id=?",
                (updated.title, updated.body, updated.updated_at, note_id),
            )
        logger.debug("Note updated: %s", note_id)
        return updated

    def delete(self, note_id: str) -> None:
        with self.lock:
            removed = self._write("DELETE FROM notes WHERE id=?", (note_id,))
        if removed:
            logger.debug("Note deleted: %s", note_id)


def build_view(store: Storage, selected_id: Optional[str] = None) -> NotesView:
    """Project the store into the shape the widget renders.

    Selection resolves to ``selected_id`` when given, else the most recently
    updated note, else nothing.
    """
    notes = store.list()
    pick = selected_id if selected_id is not None else (notes[0].id if notes else None)
    selected = store.get(pick) if pick else None
    return NotesView(
        notes=[NoteSummary.from_note(n) for n in notes],
        selected_id=pick,
        selected=SelectedNote.from_note(selected) if selected else None,
    )


class NotesService:
    """The six note operations exposed as tools.

    Inputs arrive already validated; every operation answers with a fresh view.
    """

    def __init__(self, store: Storage):
        self.store = store

    async def view(self, selected_id: Optional[str] = None) -> NotesView:
        return await run_in_threadpool(build_view, self.store, selected_id)

    async def render(self) -> NotesView:
        return await self.view()

    async def list_notes(self) -> NotesView:
        return await self.view()

    async def create(self, title: str, body: Optional[str] = None) -> NotesView:
        note = await run_in_threadpool(self.store.create, title, body or "")
        return await self.view(note.id)

    async def get(self, note_id: str) -> NotesView:
        return await self.view(note_id)

    async def update(self, note_id: str, patch: NotePatch) -> NotesView:
        note = await run_in_threadpool(self.store.update, note_id, patch)
        if note is None:
            return await self.view()
        return await self.view(note_id)

    async def delete(self, note_id: str) -> NotesView:
        await run_in_threadpool(self.store.delete, note_id)
        return await self.view()
