import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras

from cityapi.config import Settings, resolve_descriptor
from cityapi.errors import DatabaseError

logger = logging.getLogger(__name__)


def _error_message(exc: psycopg2.Error) -> str:
    # libpq messages carry trailing newlines and sometimes a DETAIL block.
    message = (getattr(exc, "pgerror", None) or str(exc)).strip()
    return message or exc.__class__.__name__


class Database:
    """
    PostgreSQL access without pooling.

    Every helper opens its own connection, commits on success and always closes
    the connection before returning. Closing an uncommitted connection rolls the
    transaction back, so a failed statement leaves nothing behind.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @contextmanager
    def connection(self) -> Iterator["psycopg2.extensions.connection"]:
        descriptor = resolve_descriptor(self._settings)
        try:
            conn = psycopg2.connect(**descriptor.connect_kwargs())
        except psycopg2.Error as exc:
            logger.warning("Could not connect to %s:%s/%s", descriptor.host, descriptor.port, descriptor.dbname)
            raise DatabaseError(_error_message(exc)) from exc

        try:
            yield conn
            conn.commit()
        except psycopg2.Error as exc:
            raise DatabaseError(_error_message(exc)) from exc
        finally:
            conn.close()

    # PUBLIC_INTERFACE
    def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Fetch all rows as dicts, keeping the column order of the query."""
        with self.connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params or [])
                return [dict(r) for r in cur.fetchall()]

    # PUBLIC_INTERFACE
    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement (DDL/INSERT). Returns affected rowcount."""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params or [])
                return cur.rowcount
