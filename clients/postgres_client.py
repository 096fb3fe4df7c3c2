"""
Pooled PostgreSQL access for the sessions and accounts tables.

One psycopg2 ThreadedConnectionPool per database URL is shared by every
PostgresClient in the process. Each call runs in its own transaction:
committed on success, rolled back on any exception.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None


class PostgresClient:
    """
    Rows come back as plain dicts.

    Usage:
        db = PostgresClient(database_url)
        db.execute_single("SELECT * FROM sessions WHERE id = %s", (session_id,))
    """

    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._pool_size = (min_connections, max_connections)
        self._pool()

    def _pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pools_lock:
            pool = self._connection_pools.get(self._database_url)
            if pool is None:
                low, high = self._pool_size
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=low, maxconn=high, dsn=self._database_url, connect_timeout=30
                )
                self._connection_pools[self._database_url] = pool
                logger.info(f"Opened pool of {low}-{high} connections")
            return pool

    @contextmanager
    def get_connection(self):
        """Lend a connection for one transaction and always hand it back."""
        pool = self._pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("Could not get connection from pool")
        try:
            yield conn
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    def _run(self, query: str, params: Params, require_rows: bool) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                if require_rows or cur.description:
                    rows = [dict(row) for row in cur.fetchall()]
                else:
                    rows = []
            conn.commit()
        return rows

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Any statement; [] when it produces no result set."""
        return self._run(query, params, require_rows=False)

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Write with a RETURNING clause; the returned rows are committed."""
        return self._run(query, params, require_rows=True)

    def close(self) -> None:
        with self._pools_lock:
            pool = self._connection_pools.pop(self._database_url, None)
        if pool is not None:
            pool.closeall()

    @classmethod
    def close_all_pools(cls) -> None:
        with cls._pools_lock:
            pools = list(cls._connection_pools.values())
            cls._connection_pools.clear()
        for pool in pools:
            pool.closeall()
