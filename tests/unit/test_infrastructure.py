"""
Unit tests for the infrastructure clients.

The REST identity client runs against httpx.MockTransport and the
Snowflake document store against a recording cursor, so neither test
touches the network.
"""

import json
from contextlib import contextmanager

import httpx
import pytest

from src.core.session.errors import USER_NOT_FOUND, WEAK_PASSWORD, IdentityProviderError
from src.infrastructure.identity import (
    HttpIdentityProvider,
    IdentityConfig,
    create_identity_provider,
)
from src.infrastructure.snowflake.client import SnowflakeConfig
from src.infrastructure.snowflake.documents import (
    DocumentNotFoundError,
    DocumentStoreError,
    MockDocumentStore,
    SnowflakeDocumentStore,
    create_document_store,
)
from src.infrastructure.storage.client import (
    MockPageStorageClient,
    StorageError,
    create_storage_client,
)

pytestmark = pytest.mark.anyio


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

def make_provider(handler) -> HttpIdentityProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpIdentityProvider(IdentityConfig(api_key="test-key"), client=client)


class TestHttpIdentityProvider:

    async def test_sign_in_returns_identity_and_notifies(self):
        seen_requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_requests.append(request)
            return httpx.Response(200, json={
                "localId": "uid-1",
                "email": "coach@example.com",
                "idToken": "token",
                "refreshToken": "refresh",
            })

        provider = make_provider(handler)
        changes = []

        async def on_change(identity):
            changes.append(identity.uid if identity else None)

        provider.subscribe(on_change)
        identity = await provider.sign_in("coach@example.com", "secret1")
        await provider.wait_idle()

        assert identity.uid == "uid-1"
        assert identity.id_token == "token"
        assert provider.current_identity == identity
        assert changes == [None, "uid-1"]

        request = seen_requests[0]
        assert request.url.path.endswith("accounts:signInWithPassword")
        assert request.url.params["key"] == "test-key"
        assert json.loads(request.content)["returnSecureToken"] is True

    async def test_error_message_maps_to_provider_code(self):
        def handler(request):
            return httpx.Response(400, json={
                "error": {"message": "WEAK_PASSWORD : Password should be at least 6 characters"}
            })

        provider = make_provider(handler)

        with pytest.raises(IdentityProviderError) as exc_info:
            await provider.create_account("coach@example.com", "123")

        assert exc_info.value.code == WEAK_PASSWORD
        assert provider.current_identity is None

    async def test_unknown_error_gets_namespaced_code(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "OPERATION_NOT_ALLOWED"}})

        with pytest.raises(IdentityProviderError) as exc_info:
            await make_provider(handler).sign_in("a@example.com", "secret1")

        assert exc_info.value.code == "auth/operation-not-allowed"

    async def test_email_not_found(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "EMAIL_NOT_FOUND"}})

        with pytest.raises(IdentityProviderError) as exc_info:
            await make_provider(handler).sign_in("a@example.com", "secret1")

        assert exc_info.value.code == USER_NOT_FOUND

    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(IdentityProviderError) as exc_info:
            await make_provider(handler).sign_in("a@example.com", "secret1")

        assert exc_info.value.code == "auth/network-request-failed"

    async def test_sign_out_is_local(self):
        def handler(request):
            return httpx.Response(200, json={"localId": "uid-1"})

        provider = make_provider(handler)
        await provider.sign_in("a@example.com", "secret1")

        await provider.sign_out()

        assert provider.current_identity is None


class TestIdentityConfig:

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            IdentityConfig(api_key="")

    def test_factory_requires_config_outside_mock_mode(self):
        with pytest.raises(ValueError):
            create_identity_provider()


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------

class RecordingCursor:
    """Cursor double: records statements, returns queued rows."""

    def __init__(self, rows=None):
        self.statements = []
        self.rows = list(rows or [])
        self.closed = False

    def execute(self, sql, params=None):
        self.statements.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    def fetchall(self):
        rows, self.rows = self.rows, []
        return rows

    def close(self):
        self.closed = True


class RecordingConnection:

    def __init__(self, cursor):
        self._cursor = cursor
        self.commits = 0
        self.rollbacks = 0

    def cursor(self):
        return self._cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def make_store(rows=None):
    cursor = RecordingCursor(rows)
    conn = RecordingConnection(cursor)

    @contextmanager
    def connect(config):
        yield conn

    store = SnowflakeDocumentStore(SnowflakeConfig(account="acct", user="app"), connect=connect)
    return store, cursor, conn


class TestSnowflakeDocumentStore:

    async def test_get_decodes_variant_text(self):
        store, cursor, _ = make_store(rows=[('{"name": "Ana"}',)])

        document = await store.get("users", "u1")

        assert document == {"name": "Ana"}
        assert cursor.statements[0][1] == ("users", "u1")
        assert cursor.closed

    async def test_get_missing_document(self):
        store, _, _ = make_store()

        assert await store.get("users", "u1") is None

    async def test_set_merges_and_commits(self):
        store, cursor, conn = make_store()

        await store.set("users", "u1", {"name": "Ana"})

        sql, params = cursor.statements[0]
        assert sql.startswith("MERGE INTO DOCUMENTS")
        assert params == ("users", "u1", '{"name": "Ana"}')
        assert conn.commits == 1

    async def test_query_filters_on_json_fields(self):
        store, cursor, _ = make_store(rows=[("u1", '{"personalId": "t1"}')])

        found = await store.query("users", personalId="t1", userType="student")

        sql, params = cursor.statements[0]
        assert 'body:"personalId" = PARSE_JSON(%s)' in sql
        assert params == ("users", '"t1"', '"student"')
        assert found == {"u1": {"personalId": "t1"}}

    async def test_query_rejects_unsafe_field_names(self):
        store, _, _ = make_store()

        with pytest.raises(DocumentStoreError):
            await store.query("users", **{'x" OR 1=1 --': "y"})

    async def test_update_of_missing_document_rolls_back(self):
        store, _, conn = make_store()

        with pytest.raises(DocumentNotFoundError):
            await store.update("users", "ghost", {"status": "inactive"})

        assert conn.rollbacks == 1
        assert conn.commits == 0

    async def test_array_union_rewrites_document(self):
        store, cursor, _ = make_store(rows=[('{"students": ["s1"]}',)])

        await store.array_union("users", "t1", "students", ["s1", "s2"])

        _, params = cursor.statements[-1]
        assert json.loads(params[2]) == {"students": ["s1", "s2"]}

    async def test_driver_errors_are_wrapped(self):
        store, cursor, _ = make_store()

        def broken(sql, params=None):
            raise RuntimeError("warehouse suspended")

        cursor.execute = broken

        with pytest.raises(DocumentStoreError, match="warehouse suspended"):
            await store.get("users", "u1")

    def test_table_name_is_validated(self):
        with pytest.raises(DocumentStoreError):
            SnowflakeDocumentStore(SnowflakeConfig(account="a", user="u"), table="docs; DROP")


class TestMockDocumentStore:

    async def test_documents_are_copied(self):
        store = MockDocumentStore()
        original = {"students": ["s1"]}
        await store.set("users", "t1", original)

        original["students"].append("s2")
        fetched = await store.get("users", "t1")
        fetched["students"].append("s3")

        assert store.peek("users", "t1") == {"students": ["s1"]}

    async def test_update_requires_existing_document(self):
        with pytest.raises(DocumentNotFoundError):
            await MockDocumentStore().update("users", "ghost", {"status": "active"})

    async def test_array_helpers(self):
        store = MockDocumentStore()
        store.seed("users", "t1", {"students": ["s1"]})

        await store.array_union("users", "t1", "students", ["s1", "s2"])
        await store.array_remove("users", "t1", "students", ["s1"])

        assert store.peek("users", "t1") == {"students": ["s2"]}

    async def test_failure_injection_is_scoped_to_collection(self):
        store = MockDocumentStore()
        store.fail_on("set", "pendingActivations")

        await store.set("users", "u1", {})
        with pytest.raises(DocumentStoreError):
            await store.set("pendingActivations", "k", {})

        store.clear_failures()
        await store.set("pendingActivations", "k", {})
        assert store.keys("pendingActivations") == {"k"}

    def test_factory_requires_config_outside_mock_mode(self):
        with pytest.raises(ValueError):
            create_document_store()


# ---------------------------------------------------------------------------
# Page storage
# ---------------------------------------------------------------------------

class TestMockPageStorage:

    async def test_seeded_pages_serve_placeholders(self):
        pages = MockPageStorageClient(seed_resources={"pages/login.html"})

        content = await pages.fetch_page("pages/login.html")

        assert 'data-page="pages/login.html"' in content
        assert pages.fetches == [("pages/login.html", True)]

    async def test_unknown_page_fails(self):
        with pytest.raises(StorageError):
            await MockPageStorageClient().fetch_page("pages/missing.html")

    async def test_uploaded_page_is_served(self):
        pages = MockPageStorageClient()

        await pages.upload_page("pages/login.html", "<form></form>")

        assert await pages.fetch_page("pages/login.html", cache_bust=False) == "<form></form>"

    def test_factory_requires_config_outside_mock_mode(self):
        with pytest.raises(ValueError):
            create_storage_client()
