"""SQLite-backed storage engine for files, pages, documents and tags.

Operations in the rest of the package take a ``db`` argument that is either
a :class:`Store` or a :class:`Transaction`. Both expose the same query
helpers. ``db.transaction()`` on a Store opens a new transaction; on a
Transaction it joins the open one, so nested helpers never commit on their
own.

Uses stdlib sqlite3 in WAL mode with one connection per thread. Write
transactions start with ``BEGIN IMMEDIATE`` so concurrent writers are
serialised by SQLite's database lock.
"""

import logging
import sqlite3
import threading
from collections import defaultdict
from collections.abc import Callable, Collection, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type    TEXT NOT NULL,
    origin          TEXT NOT NULL,
    name            TEXT,
    data            BLOB NOT NULL,
    status          TEXT NOT NULL DEFAULT 'unprocessed'
                    CHECK (status IN ('unprocessed', 'processing', 'processed', 'error')),
    created         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    file            INTEGER NOT NULL REFERENCES files(id),
    number          INTEGER NOT NULL CHECK (number >= 0),
    rotation        INTEGER NOT NULL DEFAULT 0 CHECK (rotation IN (0, 90, 180, 270)),
    render_status   TEXT NOT NULL DEFAULT 'pending',
    UNIQUE (file, number)
);

CREATE TABLE IF NOT EXISTS documents (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    title           TEXT NOT NULL DEFAULT '',
    notes           TEXT,
    file            INTEGER REFERENCES files(id),
    created         TEXT NOT NULL,
    modified        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_pages (
    document        INTEGER NOT NULL REFERENCES documents(id),
    page            INTEGER NOT NULL REFERENCES pages(id),
    number          INTEGER NOT NULL CHECK (number >= 0),
    PRIMARY KEY (document, number)
);

CREATE TABLE IF NOT EXISTS tags (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL UNIQUE CHECK (length(trim(name)) > 0)
);

CREATE TABLE IF NOT EXISTS document_tags (
    document        INTEGER NOT NULL REFERENCES documents(id),
    tag             INTEGER NOT NULL REFERENCES tags(id),
    seq             INTEGER NOT NULL,
    PRIMARY KEY (document, tag)
);

CREATE TABLE IF NOT EXISTS inbox (
    page            INTEGER NOT NULL REFERENCES pages(id)
);

CREATE INDEX IF NOT EXISTS idx_pages_file ON pages(file);
CREATE INDEX IF NOT EXISTS idx_documents_file ON documents(file);
CREATE INDEX IF NOT EXISTS idx_document_pages_page ON document_pages(page);
CREATE INDEX IF NOT EXISTS idx_inbox_page ON inbox(page);
"""

IN_TOKEN = "{in}"

Listener = Callable[[Any], None]


def _py_lower(value: Any) -> Any:
    """Unicode-aware lower(). SQLite's own lower() only folds ASCII."""
    return value.lower() if isinstance(value, str) else value


def expand_in(sql: str, values: Collection) -> str:
    """Replace the ``{in}`` token in *sql* with one placeholder per value.

    Raises:
        ValueError: If *values* is empty. ``IN ()`` is invalid SQL, so
            callers must short-circuit before getting here.
    """
    if not values:
        raise ValueError("Cannot expand an empty IN-list")
    return sql.replace(IN_TOKEN, ", ".join("?" for _ in values))


class _Executor:
    """Query helpers shared by Store and Transaction."""

    def _connection(self) -> sqlite3.Connection:
        raise NotImplementedError

    def execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        return self._connection().execute(sql, tuple(params))

    def query(self, sql: str, params: Sequence = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence = ()) -> sqlite3.Row | None:
        return self.execute(sql, params).fetchone()

    def query_in(
        self, sql: str, values: Collection, params: Sequence = ()
    ) -> list[sqlite3.Row]:
        """Run a query containing an ``{in}`` list.

        Returns an empty list without touching the database when *values*
        is empty. *params* are appended after the IN-list values.
        """
        if not values:
            return []
        return self.query(expand_in(sql, values), [*values, *params])

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        """Insert a single row and return its rowid."""
        columns = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        return self.execute(sql, [row[c] for c in columns]).lastrowid

    def insert_many(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert rows one by one and return their rowids in order."""
        return [self.insert(table, row) for row in rows]

    def update(
        self, table: str, values: Mapping[str, Any], where: str, params: Sequence = ()
    ) -> int:
        """Update rows matching *where*. Returns the number of rows changed."""
        assignments = ", ".join(f"{column} = ?" for column in values)
        sql = f"UPDATE {table} SET {assignments} WHERE {where}"
        return self.execute(sql, [*values.values(), *params]).rowcount

    def delete(self, table: str, where: str, params: Sequence = ()) -> int:
        """Delete rows matching *where*. Returns the number of rows deleted."""
        return self.execute(f"DELETE FROM {table} WHERE {where}", params).rowcount

    def delete_in(
        self, table: str, where: str, values: Collection, params: Sequence = ()
    ) -> int:
        """Delete with an ``{in}`` list in *where*; no-op for empty *values*."""
        if not values:
            return 0
        return self.delete(table, expand_in(where, values), [*values, *params])


class Transaction(_Executor):
    """Handle for an open transaction.

    Passed explicitly to every helper that must take part in it. Opening a
    nested scope joins this transaction instead of starting a new one.
    """

    def __init__(self, store: "Store", conn: sqlite3.Connection) -> None:
        self._store = store
        self._conn = conn
        self._notifications: list[tuple[str, Any]] = []

    @property
    def store(self) -> "Store":
        return self._store

    def _connection(self) -> sqlite3.Connection:
        return self._conn

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator["Transaction"]:
        yield self

    def notify(self, channel: str, payload: Any = None) -> None:
        """Queue a notification, delivered only if the transaction commits."""
        self._notifications.append((channel, payload))

    def _flush(self) -> None:
        notifications, self._notifications = self._notifications, []
        for channel, payload in notifications:
            self._store.notify(channel, payload)


class Store(_Executor):
    """SQLite database holding the file/page/document graph.

    Usage::

        with Store("data/folio.db") as store:
            with store.transaction() as tx:
                file_id = store_file(tx, content_type="application/pdf", ...)
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._connection().executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=30.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.create_function("py_lower", 1, _py_lower, deterministic=True)
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def close(self) -> None:
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator[Transaction]:
        """Open a transaction on this thread's connection.

        Args:
            immediate: Take the write lock up front. Pass False for read-only
                snapshots, which then see one consistent WAL snapshot.

        Raises:
            RuntimeError: If this thread already has a transaction open on the
                Store. Pass that Transaction to nested helpers instead.
        """
        conn = self._connection()
        if conn.in_transaction:
            raise RuntimeError(
                "A transaction is already open on this thread; pass its handle instead"
            )
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        tx = Transaction(self, conn)
        try:
            yield tx
        except BaseException:
            conn.execute("ROLLBACK")
            logger.debug("Transaction rolled back")
            raise
        conn.execute("COMMIT")
        tx._flush()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def listen(self, channel: str, callback: Listener) -> None:
        """Register *callback* to receive payloads sent on *channel*."""
        self._listeners[channel].append(callback)

    def notify(self, channel: str, payload: Any = None) -> None:
        """Deliver a notification to every listener on *channel*.

        A failing listener is logged and does not stop delivery to the rest.
        """
        for callback in list(self._listeners.get(channel, ())):
            try:
                callback(payload)
            except Exception:
                logger.exception("Listener on %s failed for payload %r", channel, payload)
