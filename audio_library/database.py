"""
SQLite persistence with a small declarative filter language.

Filters are plain mappings from column name to value:

    {"favorite": True}                                   # favorite = 1
    {"year": Condition("BETWEEN", [1990, 1999])}         # year BETWEEN ...
    {"title": Condition("LIKE", "love")}                 # title LIKE '%love%'
    {"any": Raw("artist = :a OR album_artist = :a", {"a": "Eagles"})}
    {"year": [Condition(">=", 1990), Condition("<", 2000)]}

Every value is bound as a named parameter. Column and table names are
checked against the live schema before they reach the SQL text; parameter
names are namespaced per nesting level so the same column can appear in
several sub-filters.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

from .models import PersistenceError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500
ITERATE_BATCH = 200

OPERATORS = {
    "=",
    "!=",
    "<>",
    "<",
    "<=",
    ">",
    ">=",
    "IN",
    "NOT IN",
    "BETWEEN",
    "NOT BETWEEN",
    "LIKE",
    "NOT LIKE",
}

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS tracks (
        id TEXT PRIMARY KEY,
        path TEXT UNIQUE NOT NULL,
        filename TEXT,
        title TEXT,
        artist TEXT,
        artists TEXT,
        artist_ids TEXT,
        album TEXT,
        album_artist TEXT,
        genre TEXT,
        year INTEGER,
        track_number INTEGER,
        disc_number INTEGER,
        duration REAL,
        bitrate INTEGER,
        sample_rate INTEGER,
        channels INTEGER,
        size INTEGER,
        favorite INTEGER NOT NULL DEFAULT 0,
        play_count INTEGER NOT NULL DEFAULT 0,
        last_played TEXT,
        cover_image TEXT,
        lyrics TEXT,
        album_id TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS artists (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        normalized_name TEXT UNIQUE NOT NULL,
        track_count INTEGER NOT NULL DEFAULT 0,
        album_count INTEGER NOT NULL DEFAULT 0,
        photo TEXT,
        bio TEXT,
        country TEXT,
        genre TEXT,
        website TEXT,
        social_media TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS albums (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        normalized_title TEXT NOT NULL,
        artist TEXT NOT NULL,
        artists TEXT,
        track_count INTEGER NOT NULL DEFAULT 0,
        year INTEGER,
        cover_image TEXT,
        created_at TEXT,
        updated_at TEXT,
        UNIQUE(normalized_title, artist)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS online_music (
        id TEXT PRIMARY KEY,
        query TEXT NOT NULL,
        source TEXT NOT NULL,
        source_id TEXT,
        album_id TEXT,
        score REAL NOT NULL DEFAULT 0,
        title TEXT NOT NULL,
        artist TEXT NOT NULL,
        artist_aliases TEXT,
        album TEXT,
        year INTEGER,
        duration REAL,
        cover_image TEXT,
        lyrics TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tracks_title ON tracks(title)",
    "CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist)",
    "CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks(album)",
    "CREATE INDEX IF NOT EXISTS idx_tracks_favorite ON tracks(favorite)",
    "CREATE INDEX IF NOT EXISTS idx_artists_name ON artists(name)",
    "CREATE INDEX IF NOT EXISTS idx_albums_title ON albums(title)",
    "CREATE INDEX IF NOT EXISTS idx_online_music_query ON online_music(query)",
    "CREATE INDEX IF NOT EXISTS idx_online_music_score ON online_music(score)",
]

JSON_COLUMNS = {
    "tracks": {"artists", "artist_ids"},
    "artists": {"social_media"},
    "albums": {"artists"},
    "online_music": {"artist_aliases"},
}

DEFAULT_SORT = {
    "tracks": "created_at",
    "artists": "name",
    "albums": "title",
    "online_music": "score",
}


@dataclass(slots=True)
class Condition:
    op: str
    data: Any


@dataclass(slots=True)
class Raw:
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Pagination:
    page: int
    page_size: int
    total: int
    pages: int


@dataclass(slots=True)
class Page:
    data: List[Dict[str, Any]]
    pagination: Pagination

    def to_record(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "pagination": {
                "page": self.pagination.page,
                "page_size": self.pagination.page_size,
                "total": self.pagination.total,
                "pages": self.pagination.pages,
            },
        }


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def clamp_page(page: Any, page_size: Any) -> tuple[int, int]:
    try:
        page_num = int(page)
    except (TypeError, ValueError):
        page_num = 1
    try:
        size = int(page_size)
    except (TypeError, ValueError):
        size = 20
    return max(1, page_num), min(MAX_PAGE_SIZE, max(1, size))


class Database:
    """One shared sqlite3 connection; every statement runs under the same re-entrant lock."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = RLock()
        self._depth = 0
        try:
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            with self.transaction():
                for statement in SCHEMA:
                    self._conn.execute(statement)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to open database {self.path}: {exc}") from exc
        self._columns: Dict[str, set[str]] = {}
        for table in JSON_COLUMNS:
            rows = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
            self._columns[table] = {row["name"] for row in rows}

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Group statements atomically; nested blocks join the outermost transaction."""
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost and self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    if self._conn.in_transaction:
                        self._conn.execute("ROLLBACK")
                    raise PersistenceError(f"Commit failed: {exc}") from exc

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, dict(params or {}))
            except sqlite3.Error as exc:
                logger.debug("SQL failed: %s %s", sql, params)
                raise PersistenceError(str(exc)) from exc

    # --- reads -----------------------------------------------------------

    def query_one(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        where, params = self.compile_filter(table, filters)
        with self._lock:
            row = self.execute(f"SELECT * FROM {table}{where} LIMIT 1", params).fetchone()
        return self._decode(table, row) if row else None

    def query_all(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
        order: str = "ASC",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        where, params = self.compile_filter(table, filters)
        sql = f"SELECT * FROM {table}{where}"
        if sort:
            sql += f" ORDER BY {self.order_by(table, sort, order)}"
        if limit is not None:
            sql += " LIMIT :_limit"
            params["_limit"] = int(limit)
        with self._lock:
            rows = self.execute(sql, params).fetchall()
        return [self._decode(table, row) for row in rows]

    def iterate(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        where, params = self.compile_filter(table, filters)
        with self._lock:
            cursor = self.execute(f"SELECT * FROM {table}{where}", params)
            rows = cursor.fetchmany(ITERATE_BATCH)
        while rows:
            for row in rows:
                yield self._decode(table, row)
            with self._lock:
                rows = cursor.fetchmany(ITERATE_BATCH)

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        where, params = self.compile_filter(table, filters)
        with self._lock:
            row = self.execute(f"SELECT COUNT(*) AS count FROM {table}{where}", params).fetchone()
        return int(row["count"]) if row else 0

    def page(
        self,
        table: str,
        page: int = 1,
        page_size: int = 20,
        sort: Optional[str] = None,
        order: str = "ASC",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Page:
        return self._page(table, page, page_size, self.order_by(table, sort, order), filters)

    def random_page(
        self,
        table: str,
        page: int = 1,
        page_size: int = 20,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Page:
        return self._page(table, page, page_size, "RANDOM()", filters)

    def _page(
        self,
        table: str,
        page: int,
        page_size: int,
        order_clause: str,
        filters: Optional[Mapping[str, Any]],
    ) -> Page:
        page, page_size = clamp_page(page, page_size)
        where, params = self.compile_filter(table, filters)
        # Two statements: the count can drift from the page under concurrent writers.
        total = self.count(table, filters)
        params["_limit"] = page_size
        params["_offset"] = (page - 1) * page_size
        with self._lock:
            rows = self.execute(
                f"SELECT * FROM {table}{where} ORDER BY {order_clause} LIMIT :_limit OFFSET :_offset",
                params,
            ).fetchall()
        pages = math.ceil(total / page_size) if total else 0
        return Page(
            data=[self._decode(table, row) for row in rows],
            pagination=Pagination(page=page, page_size=page_size, total=total, pages=pages),
        )

    # --- writes ----------------------------------------------------------

    def insert(self, table: str, data: Mapping[str, Any], *, ignore_conflicts: bool = False) -> int:
        columns, params = self._encode(table, data)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})"
        if ignore_conflicts:
            sql += " ON CONFLICT DO NOTHING"
        return self.execute(sql, params).rowcount

    def batch_insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        if not rows:
            return 0
        columns, _ = self._encode(table, rows[0])
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})"
        changed = 0
        with self.transaction():
            for row in rows:
                _, params = self._encode(table, {column: row.get(column) for column in columns})
                changed += self.execute(sql, params).rowcount
        return changed

    def upsert(self, table: str, data: Mapping[str, Any], conflict: Sequence[str] = ("id",)) -> int:
        columns, params = self._encode(table, data)
        for column in conflict:
            self._check_column(table, column)
        updates = [c for c in columns if c not in conflict]
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)}) "
            f"ON CONFLICT({', '.join(conflict)}) "
        )
        if updates:
            sql += "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
        else:
            sql += "DO NOTHING"
        return self.execute(sql, params).rowcount

    def update(self, table: str, data: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        if not filters:
            raise PersistenceError(f"Refusing to update every row of {table} without a filter")
        columns, values = self._encode(table, data)
        if not columns:
            return 0
        where, params = self.compile_filter(table, filters, prefix="s_")
        params.update({f"u_{c}": values[c] for c in columns})
        assignments = ", ".join(f"{c} = :u_{c}" for c in columns)
        return self.execute(f"UPDATE {table} SET {assignments}{where}", params).rowcount

    def increment(self, table: str, filters: Mapping[str, Any], **amounts: int) -> int:
        if not filters:
            raise PersistenceError(f"Refusing to update every row of {table} without a filter")
        where, params = self.compile_filter(table, filters, prefix="s_")
        assignments = []
        for column, amount in amounts.items():
            self._check_column(table, column)
            assignments.append(f"{column} = {column} + :inc_{column}")
            params[f"inc_{column}"] = int(amount)
        if not assignments:
            return 0
        return self.execute(f"UPDATE {table} SET {', '.join(assignments)}{where}", params).rowcount

    def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        if not filters:
            raise PersistenceError(f"Refusing to delete every row of {table} without a filter")
        where, params = self.compile_filter(table, filters)
        return self.execute(f"DELETE FROM {table}{where}", params).rowcount

    # --- filter compilation ---------------------------------------------

    def compile_filter(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]],
        prefix: str = "",
    ) -> tuple[str, Dict[str, Any]]:
        """Return (" WHERE ...", params) for ``filters``; an empty filter yields ("", {})."""
        self._check_table(table)
        conditions, params = self._conditions(table, filters or {}, prefix)
        if not conditions:
            return "", params
        return " WHERE " + " AND ".join(conditions), params

    def _conditions(self, table: str, filters: Mapping[str, Any], prefix: str) -> tuple[List[str], Dict[str, Any]]:
        conditions: List[str] = []
        params: Dict[str, Any] = {}
        for key, value in filters.items():
            if isinstance(value, Raw):
                conditions.append(f"({value.sql})")
                params.update(value.params)
                continue
            if isinstance(value, list) and value and all(isinstance(v, (Condition, Mapping)) for v in value):
                for index, item in enumerate(value):
                    sub_prefix = f"{prefix}{key}_{index}_"
                    sub_filter = item if isinstance(item, Mapping) else {key: item}
                    sub_conditions, sub_params = self._conditions(table, sub_filter, sub_prefix)
                    conditions.extend(sub_conditions)
                    params.update(sub_params)
                continue
            self._check_column(table, key)
            name = f"{prefix}{key}"
            if isinstance(value, Condition):
                sql, cond_params = self._condition(key, name, value)
                conditions.append(sql)
                params.update(cond_params)
            elif value is None:
                conditions.append(f"{key} IS NULL")
            else:
                conditions.append(f"{key} = :{name}")
                params[name] = _to_db(value)
        return conditions, params

    @staticmethod
    def _condition(column: str, name: str, condition: Condition) -> tuple[str, Dict[str, Any]]:
        op = str(condition.op).upper().strip()
        if op not in OPERATORS:
            raise PersistenceError(f"Unsupported filter operator {condition.op!r}")
        data = condition.data
        if op in {"IN", "NOT IN"}:
            values = list(data or [])
            if not values:
                return ("0" if op == "IN" else "1"), {}
            names = [f"{name}_{i}" for i in range(len(values))]
            placeholders = ", ".join(":" + n for n in names)
            return f"{column} {op} ({placeholders})", {n: _to_db(v) for n, v in zip(names, values)}
        if op in {"BETWEEN", "NOT BETWEEN"}:
            low, high = list(data)[:2]
            return (
                f"{column} {op} :{name}_between_0 AND :{name}_between_1",
                {f"{name}_between_0": _to_db(low), f"{name}_between_1": _to_db(high)},
            )
        if op in {"LIKE", "NOT LIKE"}:
            return f"{column} {op} :{name}", {name: f"%{data}%"}
        return f"{column} {op} :{name}", {name: _to_db(data)}

    def order_by(self, table: str, sort: Optional[str], order: str = "ASC") -> str:
        """Build an ORDER BY term; unknown columns fall back to the table's default sort key."""
        self._check_table(table)
        column = sort
        direction = order
        if sort and " " in sort.strip():
            column, direction = sort.strip().split(None, 1)
        if not column or column not in self._columns[table]:
            column = DEFAULT_SORT.get(table, "id")
        direction = "DESC" if str(direction).strip().upper() == "DESC" else "ASC"
        # id keeps pages stable when the sort column has ties.
        return f"{column} {direction}, id ASC"

    # --- helpers ---------------------------------------------------------

    def columns(self, table: str) -> set[str]:
        self._check_table(table)
        return set(self._columns[table])

    def _check_table(self, table: str) -> None:
        if table not in self._columns:
            raise PersistenceError(f"Unknown table {table!r}")

    def _check_column(self, table: str, column: str) -> None:
        self._check_table(table)
        if column not in self._columns[table]:
            raise PersistenceError(f"Unknown column {column!r} for table {table!r}")

    def _encode(self, table: str, data: Mapping[str, Any]) -> tuple[List[str], Dict[str, Any]]:
        columns: List[str] = []
        params: Dict[str, Any] = {}
        for key, value in data.items():
            self._check_column(table, key)
            columns.append(key)
            params[key] = _to_db(value)
        return columns, params

    def _decode(self, table: str, row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        for column in JSON_COLUMNS.get(table, ()):
            raw = record.get(column)
            if isinstance(raw, str) and raw:
                try:
                    record[column] = json.loads(raw)
                except ValueError:
                    logger.debug("Ignoring malformed JSON in %s.%s", table, column)
                    record[column] = []
            elif raw is None:
                record[column] = []
        return record


def _to_db(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, Path):
        return str(value)
    return value
