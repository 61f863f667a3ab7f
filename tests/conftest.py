# StockFlow test suite - shared fixtures
#
# This module provides:
# - An in-memory SQLite connection with the app schema
# - A data store and an image storage double per test
# - Slip generator doubles
# - Product seeding helpers

from typing import Optional

import pytest

from core.db_init import connect_sqlite, init_schema
from core.errors import BackendError, SlipGenerationError
from core.gate_pass import SlipGenerator
from core.schemas import ProductForm
from core.services import add_product
from core.storage import ImageStorage, image_object_path
from core.store import SqlTreeStore

UID = "user-123"


# =============================================================================
# DOUBLES
# =============================================================================

class MemoryImageStorage(ImageStorage):
    """Keeps uploads in a dict; ``fail_delete`` simulates a storage outage."""

    def __init__(self, fail_delete: bool = False):
        self.objects = {}
        self.deleted = []
        self.fail_delete = fail_delete

    def upload(self, uid, filename, data, content_type):
        object_path = image_object_path(uid, filename)
        self.objects[object_path] = data
        return f"https://storage.test/{object_path}", object_path

    def delete(self, object_path):
        if self.fail_delete:
            raise BackendError("storage unavailable")
        self.objects.pop(object_path, None)
        self.deleted.append(object_path)


class StaticSlipGenerator(SlipGenerator):
    def __init__(self, text: str = "GATE PASS\nok"):
        self.text = text
        self.calls = []

    def generate(self, data):
        self.calls.append(data)
        return self.text


class FailingSlipGenerator(SlipGenerator):
    def generate(self, data):
        raise SlipGenerationError("AI failed to generate gate pass content.")


class FailingUpdateStore(SqlTreeStore):
    """Multi-path updates (and therefore ``set``) always fail."""

    def update(self, updates):
        raise BackendError("Database request failed (503)")


class FailingRevertStore(FailingUpdateStore):
    """Like ``FailingUpdateStore``; increments after the first one fail too."""

    def __init__(self, conn):
        super().__init__(conn)
        self.increments = 0

    def increment(self, path, delta):
        self.increments += 1
        if self.increments > 1:
            raise BackendError("Database request failed (500)")
        return super().increment(path, delta)


class TableDroppingSlipGenerator(SlipGenerator):
    """Returns slip text after dropping the ``nodes`` table, so saving it fails."""

    def __init__(self, conn):
        self.conn = conn

    def generate(self, data):
        self.conn.execute("DROP TABLE nodes")
        return "GATE PASS\nok"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def conn():
    conn = connect_sqlite(":memory:")
    init_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(conn):
    return SqlTreeStore(conn)


@pytest.fixture
def storage():
    return MemoryImageStorage()


@pytest.fixture
def uid():
    return UID


@pytest.fixture
def make_product(store, storage, uid):
    """Create a product and return it."""

    def _make(name: str = "Wireless Mouse", sku: str = "WM-001", stock: int = 10,
              image: Optional[tuple] = None, **extra):
        form = ProductForm(name=name, sku=sku, current_stock=stock, **extra)
        return add_product(store, storage, uid, form, image=image)

    return _make
