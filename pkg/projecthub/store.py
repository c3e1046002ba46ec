"""
Local data service backend (SQLite).

Implements the DataService surface over three tables with server-side
defaults, foreign-key cascades and per-owner row scoping:

  projects  - owned by user_id; deleting one cascades to its tasks and notes
  tasks     - project_id FK, status/priority CHECK constraints
  notes     - project_id FK, updated_at refreshed on title/content changes

When constructed with owner_id, every read and write only sees projects owned
by that user (and the tasks/notes under them).
"""
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .client import DataService, Filter, NotFoundError, QueryError, TransportError
from .schema import COLUMNS, NOTES, PROJECTS, DEFAULT_NOTE_TITLE, utc_now

logger = logging.getLogger(__name__)

# Columns the server owns; callers may not write them.
SERVER_COLUMNS = ("id", "created_at")


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteDataService(DataService):
    """SQLite-backed stand-in for the hosted data service."""

    def __init__(self, db_path: str = None, owner_id: Optional[str] = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "projecthub" / "projecthub.db")
        self.db_path = db_path
        self.owner_id = owner_id
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def scoped(self, owner_id: Optional[str]) -> "SqliteDataService":
        """Same database, restricted to rows owned by owner_id."""
        clone = SqliteDataService.__new__(SqliteDataService)
        clone.db_path = self.db_path
        clone.owner_id = owner_id
        return clone

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'todo'
                        CHECK (status IN ('todo', 'in-progress', 'done')),
                    priority TEXT NOT NULL DEFAULT 'medium'
                        CHECK (priority IN ('low', 'medium', 'high')),
                    deadline TEXT,
                    position INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
            """)
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '{DEFAULT_NOTE_TITLE}',
                    content TEXT NOT NULL DEFAULT '',
                    updated_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_project ON notes(project_id, updated_at)")
            conn.commit()

    # ──────────────────────────────────────────
    # Validation / scoping helpers
    # ──────────────────────────────────────────

    def _check_table(self, table: str) -> None:
        if table not in COLUMNS:
            raise QueryError(f"Unknown table: {table}")

    def _check_columns(self, table: str, columns: Iterable[str]) -> None:
        known = COLUMNS[table]
        unknown = [c for c in columns if c not in known]
        if unknown:
            raise QueryError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    def _owner_clause(self, table: str):
        """SQL fragment + params limiting a table to the owner's rows."""
        if self.owner_id is None:
            return "", []
        if table == PROJECTS:
            return "user_id = ?", [self.owner_id]
        return "project_id IN (SELECT id FROM projects WHERE user_id = ?)", [self.owner_id]

    def _owns_project(self, conn: sqlite3.Connection, project_id: str) -> bool:
        if self.owner_id is None:
            return True
        row = conn.execute(
            "SELECT 1 FROM projects WHERE id = ? AND user_id = ?",
            (project_id, self.owner_id),
        ).fetchone()
        return row is not None

    def _where(self, table: str, filters: Iterable[Filter]):
        clauses, params = [], []
        for f in filters:
            if f.value is None:
                clauses.append(f"{f.column} IS NULL" if f.op == "eq" else f"{f.column} IS NOT NULL")
                continue
            value = f.value.value if hasattr(f.value, "value") else f.value
            clauses.append(f"{f.column} = ?" if f.op == "eq" else f"{f.column} != ?")
            params.append(value)
        owner_sql, owner_params = self._owner_clause(table)
        if owner_sql:
            clauses.append(owner_sql)
            params.extend(owner_params)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    # ──────────────────────────────────────────
    # DataService
    # ──────────────────────────────────────────

    def select(self, table, filters=(), order=None) -> List[Dict[str, Any]]:
        self._check_table(table)
        filters = list(filters)
        self._check_columns(table, [f.column for f in filters])
        sql_where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table}{sql_where}"
        if order is not None:
            self._check_columns(table, [order.column])
            direction = "ASC" if order.ascending else "DESC"
            # rowid keeps ties in insertion order, in the requested direction
            sql += f" ORDER BY {order.column} {direction}, rowid {direction}"
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            raise TransportError(f"select {table} failed: {e}") from e
        except sqlite3.DatabaseError as e:
            raise QueryError(f"select {table} failed: {e}") from e
        return [dict(r) for r in rows]

    def insert(self, table, row) -> Dict[str, Any]:
        self._check_table(table)
        data = {k: v for k, v in row.items() if k not in SERVER_COLUMNS}
        self._check_columns(table, data.keys())

        now = utc_now()
        data["id"] = str(uuid.uuid4())
        data["created_at"] = now
        if table == NOTES:
            data.setdefault("updated_at", now)
        data = {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}

        try:
            with _connect(self.db_path) as conn:
                if table == PROJECTS:
                    if self.owner_id is not None and data.get("user_id") != self.owner_id:
                        raise QueryError("new project must be owned by the signed-in user")
                elif not self._owns_project(conn, data.get("project_id")):
                    raise QueryError(f"project {data.get('project_id')} not found")

                columns = ", ".join(data.keys())
                placeholders = ", ".join("?" for _ in data)
                conn.execute(
                    f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                    list(data.values()),
                )
                created = conn.execute(
                    f"SELECT * FROM {table} WHERE id = ?", (data["id"],)
                ).fetchone()
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise QueryError(f"insert into {table} rejected: {e}") from e
        except sqlite3.OperationalError as e:
            raise TransportError(f"insert into {table} failed: {e}") from e
        logger.debug(f"Inserted {table} row {data['id']}")
        return dict(created)

    def update(self, table, row_id, fields) -> None:
        self._check_table(table)
        data = dict(fields)
        if not data:
            raise QueryError("update with no fields")
        self._check_columns(table, data.keys())
        for col in SERVER_COLUMNS:
            if col in data:
                raise QueryError(f"{col} is assigned by the server")
        if table == PROJECTS and "user_id" in data:
            raise QueryError("project owner cannot be changed")
        if table == NOTES and ("title" in data or "content" in data):
            data.setdefault("updated_at", utc_now())
        data = {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}

        sql_where, params = self._where(table, [Filter("id", "eq", row_id)])
        assignments = ", ".join(f"{k} = ?" for k in data)
        try:
            with _connect(self.db_path) as conn:
                if table != PROJECTS and "project_id" in data:
                    if not self._owns_project(conn, data["project_id"]):
                        raise QueryError(f"project {data['project_id']} not found")
                cursor = conn.execute(
                    f"UPDATE {table} SET {assignments}{sql_where}",
                    list(data.values()) + params,
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise QueryError(f"update of {table} {row_id} rejected: {e}") from e
        except sqlite3.OperationalError as e:
            raise TransportError(f"update of {table} {row_id} failed: {e}") from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"{table} row {row_id} not found")

    def delete(self, table, row_id) -> None:
        self._check_table(table)
        sql_where, params = self._where(table, [Filter("id", "eq", row_id)])
        try:
            with _connect(self.db_path) as conn:
                cursor = conn.execute(f"DELETE FROM {table}{sql_where}", params)
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise QueryError(f"delete from {table} {row_id} rejected: {e}") from e
        except sqlite3.OperationalError as e:
            raise TransportError(f"delete from {table} {row_id} failed: {e}") from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"{table} row {row_id} not found")
        logger.debug(f"Deleted {table} row {row_id}")
