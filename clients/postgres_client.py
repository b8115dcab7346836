"""
PostgreSQL client with connection pooling, RLS user isolation and
context-bound transactions.

Uses psycopg2 with ThreadedConnectionPool. User isolation enforced via
PostgreSQL Row Level Security - automatically reads user ID from contextvar
and sets app.current_user_id on each connection.

Multi-statement units of work (a lead conversion touches six tables) run
inside transaction(): every execute* call made in that context reuses the
same connection and nothing is committed until the outermost block exits.
Nested transaction() blocks are SAVEPOINTs, so a failing best-effort step
rolls back only its own writes.

Security: No user context = see nothing (RLS blocks all rows).
"""

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import _current_user_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False

# (database_url, connection, savepoint depth) of the transaction open in this context
_active_transaction: ContextVar[Tuple[str, Any, int] | None] = ContextVar(
    "active_transaction", default=None
)


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvar.

    Usage:
        db = PostgresClient(database_url)

        with user_context(user_id):
            leads = db.execute("SELECT * FROM leads")  # User's rows only

            with db.transaction():
                db.execute_returning("INSERT INTO deals ... RETURNING *", params)
                with db.transaction():  # SAVEPOINT
                    db.execute("UPDATE activities ...", params)
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    psycopg2.extras.register_uuid()
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Get a pooled connection with RLS context from contextvar."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            user_id = _current_user_id.get()

            with conn.cursor() as cur:
                if user_id is not None:
                    cur.execute("SET app.current_user_id = %s", (str(user_id),))
                else:
                    # RLS policies cast to ::uuid, which fails on '' = no rows
                    cur.execute("SET app.current_user_id = ''")

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    def in_transaction(self) -> bool:
        active = _active_transaction.get()
        return active is not None and active[0] == self._database_url

    @contextmanager
    def transaction(self):
        """
        Run the enclosed calls as one unit of work.

        Outermost block: BEGIN ... COMMIT, ROLLBACK on exception.
        Nested block: SAVEPOINT ... RELEASE, ROLLBACK TO SAVEPOINT on exception.
        Exceptions always propagate.
        """
        active = _active_transaction.get()
        if active is not None and active[0] == self._database_url:
            _, conn, depth = active
            name = f"sp_{depth + 1}"
            token = _active_transaction.set((self._database_url, conn, depth + 1))
            with conn.cursor() as cur:
                cur.execute(f"SAVEPOINT {name}")
            try:
                yield
            except Exception:
                with conn.cursor() as cur:
                    cur.execute(f"ROLLBACK TO SAVEPOINT {name}")
                raise
            else:
                with conn.cursor() as cur:
                    cur.execute(f"RELEASE SAVEPOINT {name}")
            finally:
                _active_transaction.reset(token)
            return

        with self.get_connection() as conn:
            token = _active_transaction.set((self._database_url, conn, 0))
            try:
                yield
            except Exception:
                conn.rollback()
                raise
            else:
                conn.commit()
            finally:
                _active_transaction.reset(token)

    @contextmanager
    def _connection(self):
        """Yield (connection, autocommit) honoring an open transaction."""
        if self.in_transaction():
            yield _active_transaction.get()[1], False
            return

        with self.get_connection() as conn:
            try:
                yield conn, True
            except Exception:
                conn.rollback()
                raise

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self._connection() as (conn, autocommit):
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            if autocommit:
                conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        return self.execute(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
