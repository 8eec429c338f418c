"""Shared fixtures: an in-memory stand-in for the Supabase client.

Only the query-builder calls the app makes are supported. Values are
compared as strings, which is how PostgREST receives them anyway.
"""
import copy
import os
from uuid import uuid4

import pytest
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-tokens-minimum-64-chars-long-1234567890abcdef")

from postgrest.exceptions import APIError


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.descending = False
        self.row_limit = None
        self.single = False

    def select(self, columns: str = "*"):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: str(row.get(column)) == str(value))
        return self

    def in_(self, column, values):
        wanted = {str(v) for v in values}
        self.filters.append(lambda row: str(row.get(column)) in wanted)
        return self

    def order(self, column, desc=False):
        self.order_by = column
        self.descending = desc
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def maybe_single(self):
        self.single = True
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            for row in new_rows:
                self.db.check_unique(self.table, row)
                rows.append(copy.deepcopy(row))
            return FakeResult(copy.deepcopy(new_rows))

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult(copy.deepcopy(matched))

        if self.op == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResult(copy.deepcopy(matched))

        result = copy.deepcopy(matched)
        if self.order_by:
            result.sort(key=lambda r: str(r.get(self.order_by)), reverse=self.descending)
        if self.row_limit is not None:
            result = result[: self.row_limit]
        if self.single:
            # supabase-py returns None instead of a response for no rows
            return FakeResult(result[0]) if result else None
        return FakeResult(result)


class FakeBucket:
    def __init__(self, db: "FakeSupabase", name: str):
        self.db = db
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.db.storage_error:
            raise self.db.storage_error
        self.db.files[(self.name, path)] = file
        return {"Key": f"{self.name}/{path}"}


class FakeStorage:
    def __init__(self, db: "FakeSupabase"):
        self.db = db

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self.db, bucket)


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.files: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.unique = {"change_orders": [("project_id", "co_number")]}
        self.storage = FakeStorage(self)
        self.storage_error: Exception | None = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def check_unique(self, table: str, row: dict):
        for columns in self.unique.get(table, []):
            key = tuple(str(row.get(c)) for c in columns)
            for existing in self.tables.get(table, []):
                if tuple(str(existing.get(c)) for c in columns) == key:
                    raise APIError({
                        "code": "23505",
                        "message": "duplicate key value violates unique constraint",
                        "details": "",
                        "hint": "",
                    })

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def add(self, table: str, **row) -> dict:
        row.setdefault("id", str(uuid4()))
        self.tables.setdefault(table, []).append(row)
        return row


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeSupabase()
    monkeypatch.setattr("app.database._client", db)
    return db


@pytest.fixture
def company(fake_db):
    return fake_db.add(
        "companies",
        name="Green Light Expediting",
        address="123 Main St, New York, NY",
        phone="(212) 555-0100",
        email="office@greenlight.example",
        website="greenlight.example",
        settings={},
    )


@pytest.fixture
def client_row(fake_db):
    client = fake_db.add("clients", name="Acme Holdings")
    fake_db.add("client_contacts", client_id=client["id"], email="", is_primary=False)
    fake_db.add(
        "client_contacts",
        client_id=client["id"],
        email="pm@acme.example",
        is_primary=True,
    )
    return client


@pytest.fixture
def project(fake_db, company, client_row):
    return fake_db.add(
        "projects",
        company_id=company["id"],
        client_id=client_row["id"],
        project_number="P-2026-014",
        properties={"address": "45 Park Ave", "borough": "Manhattan"},
    )


@pytest.fixture
def unlinked_project(fake_db, company):
    return fake_db.add(
        "projects",
        company_id=company["id"],
        client_id=None,
        project_number="P-2026-015",
        properties=None,
    )


@pytest.fixture
def signer(fake_db, company):
    return fake_db.add(
        "profiles",
        company_id=company["id"],
        first_name="Dana",
        last_name="Ruiz",
        full_name=None,
        signature_data=None,
    )


@pytest.fixture
def engine_side_effects(monkeypatch):
    """Silence the event channel and the archival queue."""
    publish = AsyncMock()
    enqueue = MagicMock(return_value=True)
    monkeypatch.setattr("app.change_orders.service.publish_event", publish)
    monkeypatch.setattr("app.change_orders.service.enqueue_archival", enqueue)
    return {"publish": publish, "enqueue": enqueue}


def drawn_signature() -> str:
    from app.signatures.capture import SignaturePad

    pad = SignaturePad(width=400, height=150)
    pad.begin_stroke(20, 100)
    pad.append_point(120, 40)
    pad.append_point(220, 110)
    pad.append_point(360, 50)
    pad.end_stroke()
    return pad.export_data_url()


def blank_signature() -> str:
    from app.signatures.capture import SignaturePad

    return SignaturePad(width=400, height=150).export_data_url()


@pytest.fixture
def ink():
    return drawn_signature()


@pytest.fixture
def no_ink():
    return blank_signature()
