# stream_haven/store.py
# Record store: the single embedded SQLite database behind every repository.
# Notes:
#   - One in-memory sqlite3 connection, shared through a StaticPool engine.
#   - Every successful write commits, then snapshots the whole database image
#     into local storage (no batching; N writes -> N snapshots).
#   - Field maps, predicates and order specs are checked against the declared
#     columns; nothing from a caller's keys is interpolated into SQL.

import logging
import operator
import sqlite3
import threading
import uuid
import warnings

from sqlalchemy import create_engine, func, literal_column, select, text, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from stream_haven.config import DATABASE_KEY
from stream_haven.exceptions import (
    ConstraintViolation, NotReady, PersistenceWarning, QueryError, ValidationError, WriteError
)
from stream_haven.models import TABLES, db, utcnow

logger = logging.getLogger(__name__)

# Lookup suffixes accepted in predicates: {"date__gte": dt, "status__in": [...]}
_OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}


class RecordStore:
    """
    Owns the database connection and exposes generic CRUD:
      insert / update / delete / query_one / query_all, plus ad-hoc
      execute (write) and query (read) for parameterized SQL.
    Records are plain dicts keyed by column name.
    """

    def __init__(self, storage, ready_timeout: float = 5.0):
        self.storage = storage
        self.ready_timeout = ready_timeout
        self.engine = None
        self._conn = None
        self._open_error = None
        self._settled = threading.Event()
        self._lock = threading.RLock()

    # -----------------------------
    # Startup / shutdown
    # -----------------------------
    def open(self):
        """
        Restore the last snapshot (or start empty) and create any missing tables.
        Table creation runs every time; create_all skips tables that exist.
        """
        with self._lock:
            if self._conn is not None:
                self.close()
            self._open_error = None
            try:
                conn = self._restore_connection()
                conn.execute("PRAGMA foreign_keys = ON")
                self._conn = conn
                self.engine = create_engine("sqlite://", creator=lambda: conn, poolclass=StaticPool)
                db.metadata.create_all(self.engine)
            except Exception as e:
                self._open_error = e
                logger.exception("[store] Failed to initialize database")
                raise
            finally:
                self._settled.set()
        logger.info("[store] Database initialized (%d tables)", len(TABLES))
        return self

    def open_in_background(self) -> threading.Thread:
        """Run open() on a daemon thread; callers block in wait_ready()."""
        def _run():
            try:
                self.open()
            except Exception:
                # Already logged and recorded in _open_error; wait_ready() reports it.
                return

        thread = threading.Thread(target=_run, name="stream-haven-store", daemon=True)
        thread.start()
        return thread

    def _restore_connection(self):
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        try:
            data = self.storage.get_bytes(DATABASE_KEY)
        except OSError as e:
            logger.warning("[store] Could not read saved database, creating new one: %s", e)
            data = None

        if not data:
            logger.info("[store] Created new database")
            return conn

        try:
            conn.deserialize(data)
            # Garbage bytes deserialize fine and only fail on first read.
            status = conn.execute("PRAGMA quick_check").fetchone()
            if not status or status[0] != "ok":
                raise sqlite3.DatabaseError(f"quick_check returned {status!r}")
            logger.info("[store] Loaded existing database from storage (%d bytes)", len(data))
            return conn
        except (sqlite3.Error, OverflowError) as e:
            logger.warning("[store] Failed to load saved database, creating new one: %s", e)
            conn.close()
            return sqlite3.connect(":memory:", check_same_thread=False)

    def wait_ready(self, timeout: float = None) -> None:
        """Block until open() has finished; raise NotReady after the deadline."""
        wait_for = self.ready_timeout if timeout is None else timeout
        if not self._settled.wait(wait_for):
            raise NotReady(f"Database not initialized after {wait_for:g}s")
        if self._open_error is not None or self.engine is None:
            raise NotReady(f"Database failed to initialize: {self._open_error}")

    @property
    def ready(self) -> bool:
        return self._settled.is_set() and self._open_error is None and self.engine is not None

    def close(self) -> None:
        with self._lock:
            if self.engine is not None:
                self.engine.dispose()
            if self._conn is not None:
                self._conn.close()
            self.engine = None
            self._conn = None
            self._settled.clear()

    # -----------------------------
    # Snapshot persistence
    # -----------------------------
    def export(self) -> bytes:
        """Binary image of the whole database (what gets written to storage)."""
        self.wait_ready()
        with self._lock:
            return self._conn.serialize()

    def _persist(self) -> None:
        try:
            self.storage.set_bytes(DATABASE_KEY, self._conn.serialize())
        except Exception as e:
            # In-memory state stays as written; only the durable copy is stale.
            logger.exception("[store] Failed to save database snapshot")
            warnings.warn(f"Failed to save database snapshot: {e}", PersistenceWarning, stacklevel=3)

    # -----------------------------
    # Validation helpers
    # -----------------------------
    def table(self, table):
        """Resolve a table name (or Table) to the declared Table object."""
        if isinstance(table, str):
            try:
                return TABLES[table]
            except KeyError:
                raise ValidationError(f"Unknown table '{table}'") from None
        if getattr(table, "name", None) in TABLES:
            return TABLES[table.name]
        raise ValidationError(f"Unknown table {table!r}")

    @staticmethod
    def _column(table, name):
        if name == "rowid":
            return literal_column("rowid")
        if name not in table.c:
            raise ValidationError(f"Unknown field '{name}' for {table.name}", field=name)
        return table.c[name]

    def _check_fields(self, table, fields) -> dict:
        fields = dict(fields or {})
        for name in fields:
            if name == "rowid":
                raise ValidationError(f"Unknown field '{name}' for {table.name}", field=name)
            self._column(table, name)
        if "id" in fields:
            raise ValidationError("'id' is assigned by the store and cannot be written", field="id")
        return fields

    def _where(self, table, predicate):
        clauses = []
        for key, value in (predicate or {}).items():
            name, _, op = key.partition("__")
            column = self._column(table, name)
            op = op or "eq"
            if op == "in":
                if value is None or isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
                    raise ValidationError(f"'{key}' needs a list of values", field=name)
                clauses.append(column.in_(list(value)))
            elif value is None and op == "eq":
                clauses.append(column.is_(None))
            elif value is None and op == "ne":
                clauses.append(column.is_not(None))
            elif op in _OPERATORS:
                clauses.append(_OPERATORS[op](column, value))
            else:
                raise ValidationError(f"Unknown operator '{op}' in '{key}'", field=name)
        return clauses or [true()]

    def _order(self, table, order):
        if isinstance(order, str):
            order = [order]
        clauses = []
        for key in order or ():
            descending = key.startswith("-")
            column = self._column(table, key.lstrip("-"))
            clauses.append(column.desc() if descending else column.asc())
        return clauses

    # -----------------------------
    # Execution
    # -----------------------------
    def _write(self, statement, params=None) -> int:
        self.wait_ready()
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(statement, params or {})
                    count = result.rowcount
            except IntegrityError as e:
                raise ConstraintViolation(str(e.orig)) from e
            except (SQLAlchemyError, sqlite3.Error, OverflowError) as e:
                # The driver raises OverflowError for ints outside SQLite's 64-bit range.
                raise WriteError(str(e)) from e
            self._persist()
            return count

    def _read(self, statement, params=None, scalar: bool = False):
        self.wait_ready()
        with self._lock:
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(statement, params or {})
                    if scalar:
                        return result.scalar()
                    return [dict(row._mapping) for row in result]
            except (SQLAlchemyError, sqlite3.Error, OverflowError) as e:
                raise QueryError(str(e)) from e

    # -----------------------------
    # Primitives
    # -----------------------------
    def insert(self, table, fields) -> dict:
        """Write a new row with a fresh UUID; returns the stored record (defaults included)."""
        table = self.table(table)
        fields = self._check_fields(table, fields)
        record_id = str(uuid.uuid4())
        self._write(table.insert().values(id=record_id, **fields))
        return self.query_one(table, {"id": record_id})

    def update(self, table, fields, predicate) -> int:
        """Apply a partial update to every matching row; 0 matches is not an error."""
        table = self.table(table)
        fields = self._check_fields(table, fields)
        if not fields:
            raise ValidationError("No fields to update")
        if not predicate:
            raise ValidationError("update() requires a predicate")
        if "updated_at" in table.c and "updated_at" not in fields:
            fields["updated_at"] = utcnow()
        return self._write(table.update().where(*self._where(table, predicate)).values(**fields))

    def delete(self, table, predicate) -> int:
        """Delete matching rows; dependent rows go through FK cascades."""
        table = self.table(table)
        if not predicate:
            raise ValidationError("delete() requires a predicate")
        return self._write(table.delete().where(*self._where(table, predicate)))

    def query_one(self, table, predicate):
        table = self.table(table)
        rows = self._read(select(table).where(*self._where(table, predicate)).limit(1))
        return rows[0] if rows else None

    def query_all(self, table, predicate=None, order=()):
        table = self.table(table)
        stmt = select(table).where(*self._where(table, predicate)).order_by(*self._order(table, order))
        return self._read(stmt)

    def count(self, table, predicate=None) -> int:
        table = self.table(table)
        stmt = select(func.count()).select_from(table).where(*self._where(table, predicate))
        return self._read(stmt, scalar=True)

    # Ad-hoc SQL (named parameters, e.g. "... WHERE id = :id").
    def execute(self, sql: str, params=None) -> int:
        return self._write(text(sql), params)

    def query(self, sql: str, params=None):
        return self._read(text(sql), params)
