"""
Table access for the hosted Postgres backend.

Everything above this module talks to the database through the small
``PostgresBackend`` surface (page fetch, full fetch, batch id lookup, count,
batch delete, single-row update).  Filters are plain ``Filter`` values so the
services never build SQL themselves.
"""

import argparse
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

import config
from log import get_logger

logger = get_logger(__name__)

MigrationFn = Callable[[psycopg.Connection], None]


class BackendError(Exception):
    """Raised for any failure talking to the backing database."""


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------

_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def get_pool() -> ConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None:
            if not config.DATABASE_URL:
                raise BackendError("DATABASE_URL is not configured")
            _pool = ConnectionPool(
                conninfo=config.DATABASE_URL,
                min_size=config.DB_POOL_MIN_SIZE,
                max_size=config.DB_POOL_MAX_SIZE,
                kwargs={"row_factory": dict_row},
            )
        return _pool


def get_conn():
    return get_pool().connection()


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close()
            _pool = None


# ---------------------------------------------------------------------------
# Query vocabulary
# ---------------------------------------------------------------------------

COMPARISONS = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}
OPERATORS = set(COMPARISONS) | {"ilike", "is_null", "not_null", "in", "any_ilike"}


@dataclass(frozen=True)
class Filter:
    """One predicate.  ``any_ilike`` takes a tuple of columns and a search term."""

    column: str | tuple[str, ...]
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


@dataclass
class Page:
    rows: list[dict] = field(default_factory=list)
    total_count: int = 0


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _compose_filter(f: Filter) -> tuple[sql.Composable, list]:
    if f.op == "any_ilike":
        columns = (f.column,) if isinstance(f.column, str) else f.column
        pattern = f"%{escape_like(str(f.value))}%"
        clauses = [
            sql.SQL("{} ILIKE %s").format(sql.Identifier(c)) for c in columns
        ]
        return sql.SQL("({})").format(sql.SQL(" OR ").join(clauses)), [
            pattern
        ] * len(columns)

    column = sql.Identifier(f.column)
    if f.op == "is_null":
        return sql.SQL("{} IS NULL").format(column), []
    if f.op == "not_null":
        return sql.SQL("{} IS NOT NULL").format(column), []
    if f.op == "in":
        return sql.SQL("{} = ANY(%s)").format(column), [list(f.value)]
    if f.op == "ilike":
        return sql.SQL("{} ILIKE %s").format(column), [f.value]
    return sql.SQL("{} {} %s").format(column, sql.SQL(COMPARISONS[f.op])), [f.value]


def build_where(filters: Iterable[Filter]) -> tuple[sql.Composable, list]:
    parts: list[sql.Composable] = []
    params: list = []
    for f in filters:
        clause, values = _compose_filter(f)
        parts.append(clause)
        params.extend(values)
    if not parts:
        return sql.SQL(""), []
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts), params


def _select_list(columns: Sequence[str] | None) -> sql.Composable:
    if not columns:
        return sql.SQL("*")
    return sql.SQL(", ").join(sql.Identifier(c) for c in columns)


def _order_by(order: Sequence[Order]) -> sql.Composable:
    if not order:
        return sql.SQL("")
    terms = [
        sql.SQL("{} {}").format(
            sql.Identifier(o.column), sql.SQL("DESC" if o.descending else "ASC")
        )
        for o in order
    ]
    return sql.SQL(" ORDER BY ") + sql.SQL(", ").join(terms)


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class PostgresBackend:
    """Parameterized table access over the shared connection pool."""

    def _fetch(self, query: sql.Composable, params: list) -> list[dict]:
        try:
            with get_conn() as conn:
                return conn.execute(query, params).fetchall()
        except psycopg.Error as exc:
            raise BackendError(str(exc)) from exc

    def _write(self, query: sql.Composable, params: list) -> int:
        try:
            with get_conn() as conn:
                cur = conn.execute(query, params)
                conn.commit()
                return cur.rowcount
        except psycopg.Error as exc:
            raise BackendError(str(exc)) from exc

    def fetch_all(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: int | None = None,
    ) -> list[dict]:
        where, params = build_where(filters)
        query = sql.SQL("SELECT {} FROM {}").format(
            _select_list(columns), sql.Identifier(table)
        )
        query = query + where + _order_by(order)
        if limit is not None:
            query = query + sql.SQL(" LIMIT %s")
            params = [*params, limit]
        return self._fetch(query, params)

    def fetch_page(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        offset: int = 0,
        limit: int = config.DEFAULT_PAGE_SIZE,
        columns: Sequence[str] | None = None,
    ) -> Page:
        total = self.count(table, filters)
        where, params = build_where(filters)
        query = (
            sql.SQL("SELECT {} FROM {}").format(
                _select_list(columns), sql.Identifier(table)
            )
            + where
            + _order_by(order)
            + sql.SQL(" LIMIT %s OFFSET %s")
        )
        rows = self._fetch(query, [*params, limit, offset])
        return Page(rows=rows, total_count=total)

    def fetch_by_ids(
        self, table: str, ids: Iterable, columns: Sequence[str] | None = None
    ) -> list[dict]:
        id_list = list(ids)
        if not id_list:
            return []
        return self.fetch_all(table, columns, [Filter("id", "in", id_list)])

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        where, params = build_where(filters)
        query = (
            sql.SQL("SELECT COUNT(*) AS count FROM {}").format(sql.Identifier(table))
            + where
        )
        rows = self._fetch(query, params)
        return rows[0]["count"] if rows else 0

    def delete_by_ids(self, table: str, ids: Iterable) -> int:
        id_list = list(ids)
        if not id_list:
            return 0
        query = sql.SQL("DELETE FROM {} WHERE id = ANY(%s)").format(
            sql.Identifier(table)
        )
        return self._write(query, [id_list])

    def update_by_id(self, table: str, row_id, changes: dict) -> None:
        if not changes:
            return
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in changes
        )
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s").format(
            sql.Identifier(table), assignments
        )
        if self._write(query, [*changes.values(), row_id]) == 0:
            raise BackendError(f"No row in {table} with id {row_id}")


_backend = PostgresBackend()


def get_backend() -> PostgresBackend:
    """FastAPI dependency; overridden in tests."""
    return _backend


# ---------------------------------------------------------------------------
# Schema bootstrap (local development)
# ---------------------------------------------------------------------------


def _ensure_migration_table(conn: psycopg.Connection):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        )
        """
    )


def _is_migration_applied(conn: psycopg.Connection, version: str) -> bool:
    cur = conn.execute(
        "SELECT 1 FROM schema_migrations WHERE version = %s LIMIT 1",
        (version,),
    )
    return cur.fetchone() is not None


def _mark_migration_applied(conn: psycopg.Connection, version: str):
    conn.execute(
        "INSERT INTO schema_migrations (version) VALUES (%s)",
        (version,),
    )


def _add_profile_demographics(conn: psycopg.Connection):
    conn.execute("ALTER TABLE profiles ADD COLUMN IF NOT EXISTS grade TEXT")
    conn.execute("ALTER TABLE profiles ADD COLUMN IF NOT EXISTS gender TEXT")


def _add_session_difficulty(conn: psycopg.Connection):
    conn.execute("ALTER TABLE game_sessions ADD COLUMN IF NOT EXISTS difficulty TEXT")


def _add_quiz_visibility(conn: psycopg.Connection):
    conn.execute("ALTER TABLE quizzes ADD COLUMN IF NOT EXISTS is_public BOOLEAN DEFAULT FALSE")
    conn.execute("ALTER TABLE quizzes ADD COLUMN IF NOT EXISTS request BOOLEAN DEFAULT FALSE")


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_profile_demographics", _add_profile_demographics),
    ("0002_session_difficulty", _add_session_difficulty),
    ("0003_quiz_visibility", _add_quiz_visibility),
]


def run_migrations(conn: psycopg.Connection):
    _ensure_migration_table(conn)

    for version, migration in MIGRATIONS:
        if _is_migration_applied(conn, version):
            continue

        logger.info("Applying migration: %s", version)
        migration(conn)
        _mark_migration_applied(conn, version)
        logger.info("Migration applied: %s", version)


def _create_base_tables(conn: psycopg.Connection):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS countries (
            id BIGSERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            iso3 TEXT,
            numeric_code TEXT,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS states (
            id BIGSERIAL PRIMARY KEY,
            country_id BIGINT,
            name TEXT NOT NULL,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cities (
            id BIGSERIAL PRIMARY KEY,
            state_id BIGINT,
            name TEXT NOT NULL,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            username TEXT,
            email TEXT,
            fullname TEXT,
            avatar_url TEXT,
            role TEXT DEFAULT 'user',
            is_blocked BOOLEAN DEFAULT FALSE,
            country_id BIGINT,
            state_id BIGINT,
            city_id BIGINT,
            following_count INTEGER DEFAULT 0,
            followers_count INTEGER DEFAULT 0,
            friends_count INTEGER DEFAULT 0,
            last_active TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMPTZ
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS quizzes (
            id TEXT PRIMARY KEY,
            title TEXT,
            category TEXT,
            creator_id TEXT,
            questions JSONB,
            is_public BOOLEAN DEFAULT FALSE,
            request BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMPTZ
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS game_sessions (
            id TEXT PRIMARY KEY,
            game_pin TEXT,
            quiz_id TEXT,
            host_id TEXT,
            status TEXT,
            application TEXT,
            participants JSONB,
            current_questions JSONB,
            quiz_detail JSONB,
            quiz_title TEXT,
            total_questions INTEGER,
            total_time_minutes INTEGER,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            started_at TIMESTAMPTZ,
            ended_at TIMESTAMPTZ
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS reports (
            id TEXT PRIMARY KEY,
            report_type TEXT,
            reported_content_type TEXT,
            reported_content_id TEXT,
            reporter_id TEXT,
            reported_user_id TEXT,
            status TEXT,
            priority TEXT,
            title TEXT,
            description TEXT,
            admin_notes TEXT,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS groups (
            id TEXT PRIMARY KEY,
            name TEXT,
            category TEXT,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMPTZ
        )
        """
    )


def _create_indexes(conn: psycopg.Connection):
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_game_sessions_status_created "
        "ON game_sessions(status, created_at)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_game_sessions_application "
        "ON game_sessions(application)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_profiles_state ON profiles(state_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_profiles_city ON profiles(city_id)")


def init_db():
    with get_conn() as conn:
        _create_base_tables(conn)
        run_migrations(conn)
        _create_indexes(conn)
        conn.commit()


def migrate_db():
    with get_conn() as conn:
        run_migrations(conn)
        conn.commit()


def _parse_args():
    parser = argparse.ArgumentParser(
        description="Local schema bootstrap and migration runner"
    )
    parser.add_argument(
        "command",
        choices=("init", "migrate"),
        nargs="?",
        default="init",
    )
    return parser.parse_args()


if __name__ == "__main__":
    from log import configure_logging

    configure_logging()
    args = _parse_args()

    if args.command == "migrate":
        migrate_db()
        logger.info("Migrations completed")
    else:
        init_db()
        logger.info("Database initialized")
