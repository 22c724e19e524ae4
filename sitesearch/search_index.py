import logging
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import List, Tuple

from .config import DEFAULT_BATCH_SIZE
from .errors import BatchCommitError, DirectoryError
from .types import IndexDocument


logger = logging.getLogger(__name__)

DB_FILENAME = "index.sqlite3"
TOKENIZER = "unicode61 remove_diacritics 2"


def quote_query(query: str) -> str:
    """Turn free text into an FTS5 query of quoted terms joined by AND."""
    terms = query.split()
    return " ".join('"' + t.replace('"', '""') + '"' for t in terms)


class Batch:
    """Bounded buffer of documents committed together."""

    def __init__(self, capacity: int = DEFAULT_BATCH_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("batch capacity must be positive")
        self.capacity = capacity
        self._documents: List[IndexDocument] = []

    def add(self, document: IndexDocument) -> None:
        if self.is_full:
            raise ValueError(f"batch is full ({self.capacity} documents)")
        self._documents.append(document)

    @property
    def is_full(self) -> bool:
        return len(self._documents) >= self.capacity

    @property
    def documents(self) -> Tuple[IndexDocument, ...]:
        return tuple(self._documents)

    def __len__(self) -> int:
        return len(self._documents)


class SearchIndex:
    """Full-text index stored as an SQLite FTS5 database in ``index_path``.

    ``documents`` holds one row per URL; ``documents_fts`` is an
    external-content FTS5 table over it, kept in step by triggers and
    searched by ``search``. Each ``commit`` runs in a single transaction.
    """

    def __init__(self, index_path: str, batch_size: int = DEFAULT_BATCH_SIZE):
        self.index_path = Path(index_path)
        self.db_path = self.index_path / DB_FILENAME
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @classmethod
    def bootstrap(cls, index_path: str, batch_size: int = DEFAULT_BATCH_SIZE) -> "SearchIndex":
        """Destroy anything at ``index_path`` and create an empty index there."""
        path = Path(index_path)
        try:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            path.mkdir(parents=True)
        except OSError as exc:
            logger.error("Cannot prepare index directory %s: %s", path, exc)
            raise DirectoryError(f"cannot recreate index directory {path}: {exc}") from exc
        logger.info("Creating new index at %s", path)
        try:
            return cls(str(path), batch_size=batch_size)
        except sqlite3.Error as exc:
            logger.error("Terminate indexer, cannot create index at %s: %s", path, exc)
            raise DirectoryError(f"cannot create index at {path}: {exc}") from exc

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS documents ("
                " id INTEGER PRIMARY KEY,"
                " url TEXT NOT NULL UNIQUE,"
                " title TEXT,"
                " body TEXT)"
            )
            self._conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5("
                " title, body, content='documents', content_rowid='id',"
                f" tokenize='{TOKENIZER}')"
            )
            # Keep the external-content FTS table in step with documents.
            self._conn.execute(
                "CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN"
                " INSERT INTO documents_fts(rowid, title, body) VALUES (new.id, new.title, new.body);"
                " END"
            )
            self._conn.execute(
                "CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN"
                " INSERT INTO documents_fts(documents_fts, rowid, title, body)"
                " VALUES ('delete', old.id, old.title, old.body);"
                " END"
            )
            self._conn.execute(
                "CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE ON documents BEGIN"
                " INSERT INTO documents_fts(documents_fts, rowid, title, body)"
                " VALUES ('delete', old.id, old.title, old.body);"
                " INSERT INTO documents_fts(rowid, title, body) VALUES (new.id, new.title, new.body);"
                " END"
            )

    def new_batch(self) -> Batch:
        return Batch(self.batch_size)

    def commit(self, batch: Batch) -> None:
        """Write ``batch`` in one transaction; a repeated URL keeps its last document."""
        rows = [(d.url, d.title, d.body) for d in batch.documents]
        if not rows:
            return
        try:
            with self._lock, self._conn:
                # Upsert rather than REPLACE: REPLACE deletes without firing the delete trigger.
                self._conn.executemany(
                    "INSERT INTO documents(url, title, body) VALUES (?, ?, ?)"
                    " ON CONFLICT(url) DO UPDATE SET title = excluded.title, body = excluded.body",
                    rows,
                )
        except sqlite3.Error as exc:
            raise BatchCommitError(f"batch of {len(rows)} documents rejected: {exc}") from exc

    def document_count(self) -> int:
        with self._lock:
            cur = self._conn.execute("SELECT COUNT(*) FROM documents")
            return cur.fetchone()[0]

    def search(self, query: str, limit: int = 10) -> List[Tuple[str, str]]:
        """Return ``(url, title)`` pairs for ``query``, best match first.

        Every whitespace-separated word of ``query`` must match; FTS5 query
        syntax in the input is treated as plain text.
        """
        match = quote_query(query)
        if not match:
            return []
        with self._lock:
            cur = self._conn.execute(
                "SELECT d.url, d.title FROM documents_fts"
                " JOIN documents d ON d.id = documents_fts.rowid"
                " WHERE documents_fts MATCH ?"
                " ORDER BY bm25(documents_fts) LIMIT ?",
                (match, limit),
            )
            return [(row[0], row[1]) for row in cur.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SearchIndex":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
