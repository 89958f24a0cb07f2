import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode, errors

from dbdump.exceptions import (
    DbdumpError,
    DumpConnectionError,
    PermissionDeniedError,
    QueryError,
)

logger = logging.getLogger(__name__)

_ACCESS_DENIED_CODES = {
    errorcode.ER_ACCESS_DENIED_ERROR,
    errorcode.ER_DBACCESS_DENIED_ERROR,
    errorcode.ER_TABLEACCESS_DENIED_ERROR,
    errorcode.ER_COLUMNACCESS_DENIED_ERROR,
    errorcode.ER_SPECIFIC_ACCESS_DENIED_ERROR,
    errorcode.ER_PROCACCESS_DENIED_ERROR,
}

_TRANSPORT_CODES = {
    errorcode.CR_CONNECTION_ERROR,
    errorcode.CR_CONN_HOST_ERROR,
    errorcode.CR_UNKNOWN_HOST,
    errorcode.CR_SERVER_GONE_ERROR,
    errorcode.CR_SERVER_LOST,
}

SESSION_STATEMENTS = (
    "SET NAMES utf8mb4",
    "SET time_zone = '+00:00'",
)


def translate_error(error: errors.Error) -> DbdumpError:
    """Map a mysql-connector error onto the dbdump exception taxonomy."""
    errno = getattr(error, "errno", None)
    message = getattr(error, "msg", None) or str(error)
    if errno in _ACCESS_DENIED_CODES:
        return PermissionDeniedError(message)
    if errno in _TRANSPORT_CODES or isinstance(error, errors.InterfaceError):
        return DumpConnectionError(message)
    return QueryError(message)


@contextmanager
def _translated() -> Iterator[None]:
    try:
        yield
    except errors.Error as e:
        raise translate_error(e) from e


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


class MySQLClient:
    """Thin wrapper around mysql-connector-python for catalog queries and row streaming.

    Metadata queries go through a buffered dictionary cursor with bound
    parameters. Table data goes through an unbuffered raw cursor read in
    chunks of fetch_size, so a table is never held in memory.

    The session runs with utf8mb4 and a UTC time zone so that text and
    TIMESTAMP values come back exactly as they must be written out.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        unix_socket: Optional[str] = None,
        database: Optional[str] = None,
        fetch_size: int = 1000,
        connect_timeout: int = 10,
    ) -> None:
        self._params: dict[str, Any] = {
            "host": host,
            "port": port,
            "user": user,
            "password": password,
            "unix_socket": unix_socket,
            "database": database,
            "connection_timeout": connect_timeout,
        }
        self._fetch_size = fetch_size
        self._connection: Any = None

    def connect(self) -> None:
        """Open the connection and prepare the session. Must be called before querying."""
        if self._connection is not None:
            raise RuntimeError("Already connected. Call close() before reconnecting.")

        params = {k: v for k, v in self._params.items() if v is not None}
        with _translated():
            self._connection = mysql.connector.connect(
                charset="utf8mb4",
                autocommit=True,
                consume_results=True,
                **params,
            )
        try:
            with _translated():
                cursor = self._connection.cursor()
                try:
                    for stmt in SESSION_STATEMENTS:
                        cursor.execute(stmt)
                finally:
                    cursor.close()
        except DbdumpError:
            self.close()
            raise

        logger.debug(
            "Connected to %s",
            self._params.get("unix_socket") or self._params.get("host") or "localhost",
        )

    def _require_connection(self) -> Any:
        if self._connection is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._connection

    def fetchall(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> list[dict[str, Any]]:
        """Run a metadata query and return rows keyed by upper-case column label."""
        connection = self._require_connection()
        with _translated():
            cursor = connection.cursor(dictionary=True, buffered=True)
            try:
                cursor.execute(sql, tuple(params) if params else None)
                rows = cursor.fetchall() if cursor.with_rows else []
            finally:
                cursor.close()
        return [{str(k).upper(): _decode(v) for k, v in row.items()} for row in rows]

    @contextmanager
    def open_cursor(self, sql: str) -> Iterator[Iterator[tuple]]:
        """Stream the rows of sql as tuples of raw values (bytes or None).

        Closing the cursor reads any unread rows off the wire. That happens on
        normal exit and on ordinary errors, so the connection stays usable.
        On KeyboardInterrupt the connection is shut down instead.
        """
        connection = self._require_connection()
        with _translated():
            cursor = connection.cursor(raw=True, buffered=False)
        try:
            with _translated():
                cursor.execute(sql)
            yield self._iterate(cursor)
        except BaseException as e:
            if not isinstance(e, Exception):
                self._abandon()
                raise
            with _translated():
                cursor.close()
            raise
        with _translated():
            cursor.close()

    def _iterate(self, cursor: Any) -> Iterator[tuple]:
        while True:
            with _translated():
                rows = cursor.fetchmany(self._fetch_size)
            if not rows:
                return
            yield from rows

    def _abandon(self) -> None:
        """Drop the connection without draining pending results."""
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.shutdown()

    def close(self) -> None:
        if self._connection is not None:
            try:
                with _translated():
                    self._connection.close()
            finally:
                self._connection = None

    def __enter__(self) -> "MySQLClient":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
