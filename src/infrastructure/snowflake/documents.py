"""
Document store backed by Snowflake.

Implements the DocumentStore protocol from core.session.auth. Every
document is one row of a single table, addressed by (collection, key),
with the body held in a VARIANT column:

    CREATE TABLE DOCUMENTS (
        collection STRING, doc_key STRING, body VARIANT,
        updated_at TIMESTAMP_NTZ, PRIMARY KEY (collection, doc_key)
    )

The connector is synchronous, so each call runs in a worker thread with
its own connection. Read-modify-write operations (update, array_union,
array_remove) happen inside one connection and one commit.

MockDocumentStore keeps documents in memory for local development and
tests, with failure injection for exercising partial-failure paths.
"""

import asyncio
import copy
import json
import logging
import re
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from .client import SnowflakeConfig, SnowflakeConnectionError, get_snowflake_connection

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$.]*$")


class DocumentStoreError(Exception):
    """Raised when a document store operation fails."""
    pass


class DocumentNotFoundError(DocumentStoreError):
    """Raised when updating a document that doesn't exist."""
    pass


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(document: dict[str, Any]) -> str:
    return json.dumps(document, default=_json_default)


def _decode(body: Any) -> dict[str, Any]:
    # VARIANT columns come back as JSON text
    if isinstance(body, str):
        return json.loads(body)
    return dict(body)


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise DocumentStoreError(f"Invalid identifier: {name!r}")
    return name


def _array_union(document: dict[str, Any], field: str, values: list[Any]) -> dict[str, Any]:
    current = list(document.get(field) or [])
    for value in values:
        if value not in current:
            current.append(value)
    document[field] = current
    return document


def _array_remove(document: dict[str, Any], field: str, values: list[Any]) -> dict[str, Any]:
    document[field] = [v for v in (document.get(field) or []) if v not in values]
    return document


def _new_key() -> str:
    return uuid4().hex[:20]


# ---------------------------------------------------------------------------
# Snowflake implementation
# ---------------------------------------------------------------------------

class SnowflakeDocumentStore:
    """
    JSON documents in a Snowflake table.

    Args:
        config: Snowflake connection settings
        table: Table holding the documents
        connect: Connection factory (a context manager); replaceable in tests
    """

    def __init__(
        self,
        config: SnowflakeConfig,
        table: str = "DOCUMENTS",
        connect: Callable = get_snowflake_connection,
    ) -> None:
        self._config = config
        self._table = _check_identifier(table)
        self._connect = connect

        logger.info(
            "Initialized Snowflake document store",
            extra={"database": config.database, "table": table}
        )

    async def ensure_schema(self) -> None:
        """Create the documents table if it doesn't exist."""
        def work(cursor) -> None:
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    collection STRING NOT NULL,
                    doc_key STRING NOT NULL,
                    body VARIANT,
                    updated_at TIMESTAMP_NTZ,
                    PRIMARY KEY (collection, doc_key)
                )
            """)

        await self._run("ensure_schema", work, commit=True)

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        return await self._run("get", lambda cursor: self._fetch(cursor, collection, key))

    async def set(self, collection: str, key: str, document: dict[str, Any]) -> None:
        await self._run(
            "set",
            lambda cursor: self._write(cursor, collection, key, document),
            commit=True,
        )

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        await self._mutate("update", collection, key, lambda doc: {**doc, **fields})

    async def delete(self, collection: str, key: str) -> None:
        def work(cursor) -> None:
            cursor.execute(
                f"DELETE FROM {self._table} WHERE collection = %s AND doc_key = %s",
                (collection, key),
            )

        await self._run("delete", work, commit=True)

    async def query(self, collection: str, **equals: Any) -> dict[str, dict[str, Any]]:
        conditions = ["collection = %s"]
        params: list[Any] = [collection]
        for field, value in equals.items():
            conditions.append(f'body:"{_check_identifier(field)}" = PARSE_JSON(%s)')
            params.append(json.dumps(value, default=_json_default))

        sql = f"SELECT doc_key, body FROM {self._table} WHERE {' AND '.join(conditions)}"

        def work(cursor) -> dict[str, dict[str, Any]]:
            cursor.execute(sql, tuple(params))
            return {row[0]: _decode(row[1]) for row in cursor.fetchall()}

        return await self._run("query", work)

    async def array_union(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        await self._mutate(
            "array_union", collection, key, lambda doc: _array_union(doc, field, values)
        )

    async def array_remove(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        await self._mutate(
            "array_remove", collection, key, lambda doc: _array_remove(doc, field, values)
        )

    def new_key(self, collection: str) -> str:
        return _new_key()

    # -- internals ------------------------------------------------------------

    async def _mutate(
        self,
        operation: str,
        collection: str,
        key: str,
        change: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> None:
        def work(cursor) -> None:
            document = self._fetch(cursor, collection, key)
            if document is None:
                raise DocumentNotFoundError(f"{collection}/{key} not found")
            self._write(cursor, collection, key, change(document))

        await self._run(operation, work, commit=True)

    def _fetch(self, cursor, collection: str, key: str) -> Optional[dict[str, Any]]:
        cursor.execute(
            f"SELECT body FROM {self._table} WHERE collection = %s AND doc_key = %s",
            (collection, key),
        )
        row = cursor.fetchone()
        return _decode(row[0]) if row else None

    def _write(self, cursor, collection: str, key: str, document: dict[str, Any]) -> None:
        cursor.execute(f"""
            MERGE INTO {self._table} t
            USING (SELECT %s AS collection, %s AS doc_key, PARSE_JSON(%s) AS body) s
            ON t.collection = s.collection AND t.doc_key = s.doc_key
            WHEN MATCHED THEN UPDATE SET
                body = s.body,
                updated_at = CURRENT_TIMESTAMP()
            WHEN NOT MATCHED THEN INSERT (collection, doc_key, body, updated_at)
                VALUES (s.collection, s.doc_key, s.body, CURRENT_TIMESTAMP())
        """, (collection, key, _encode(document)))

    async def _run(self, operation: str, work: Callable, commit: bool = False) -> Any:
        def call() -> Any:
            with self._connect(self._config) as conn:
                cursor = conn.cursor()
                try:
                    result = work(cursor)
                    if commit:
                        conn.commit()
                    return result
                except Exception:
                    if commit:
                        conn.rollback()
                    raise
                finally:
                    cursor.close()

        try:
            return await asyncio.to_thread(call)
        except DocumentStoreError:
            raise
        except SnowflakeConnectionError as e:
            raise DocumentStoreError(str(e)) from e
        except Exception as e:
            logger.error(
                "Document store operation failed",
                extra={"operation": operation, "error": str(e)}
            )
            raise DocumentStoreError(f"{operation} failed: {e}") from e


# ---------------------------------------------------------------------------
# Mock store for local development
# ---------------------------------------------------------------------------

class MockDocumentStore:
    """
    In-memory document store.

    Documents are copied on the way in and out so callers can't mutate
    stored state. `fail_on` makes an operation raise until cleared, which
    is how tests reach the best-effort branches.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._failures: dict[tuple[str, Optional[str]], Exception] = {}
        logger.info("Initialized mock document store (in-memory)")

    async def ensure_schema(self) -> None:
        """No-op for mock."""
        pass

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        self._raise_injected("get", collection)
        document = self._collections[collection].get(key)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, collection: str, key: str, document: dict[str, Any]) -> None:
        self._raise_injected("set", collection)
        self._collections[collection][key] = copy.deepcopy(document)

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        self._raise_injected("update", collection)
        document = self._require(collection, key)
        document.update(copy.deepcopy(fields))

    async def delete(self, collection: str, key: str) -> None:
        self._raise_injected("delete", collection)
        self._collections[collection].pop(key, None)

    async def query(self, collection: str, **equals: Any) -> dict[str, dict[str, Any]]:
        self._raise_injected("query", collection)
        return {
            key: copy.deepcopy(document)
            for key, document in self._collections[collection].items()
            if all(document.get(field) == value for field, value in equals.items())
        }

    async def array_union(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        self._raise_injected("array_union", collection)
        _array_union(self._require(collection, key), field, values)

    async def array_remove(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        self._raise_injected("array_remove", collection)
        _array_remove(self._require(collection, key), field, values)

    def new_key(self, collection: str) -> str:
        return _new_key()

    def _require(self, collection: str, key: str) -> dict[str, Any]:
        document = self._collections[collection].get(key)
        if document is None:
            raise DocumentNotFoundError(f"{collection}/{key} not found")
        return document

    # Helper methods for testing
    def seed(self, collection: str, key: str, document: dict[str, Any]) -> None:
        """Add a document without going through failure injection."""
        self._collections[collection][key] = copy.deepcopy(document)

    def peek(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        """Read a document for test assertions."""
        return self._collections[collection].get(key)

    def keys(self, collection: str) -> "set[str]":
        return set(self._collections[collection])

    def fail_on(
        self,
        operation: str,
        collection: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Make `operation` (optionally only on `collection`) raise until cleared."""
        self._failures[(operation, collection)] = error or DocumentStoreError(
            f"Injected {operation} failure"
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def _raise_injected(self, operation: str, collection: str) -> None:
        error = self._failures.get((operation, collection)) or self._failures.get((operation, None))
        if error is not None:
            raise error


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_document_store(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
    table: str = "DOCUMENTS",
):
    """
    Create document store based on configuration.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory store
        table: Documents table name

    Returns:
        DocumentStore implementation (Snowflake or Mock)
    """
    if mock_mode:
        return MockDocumentStore()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return SnowflakeDocumentStore(config, table=table)
