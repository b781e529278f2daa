import anyio
import psycopg
import pytest

from stockline.config import StoreSettings
from stockline.core.errors import InvalidMovementError, StoreError
from stockline.db.postgres import PostgresStore

RB = "RB-10-02-16"


class FailingConnection:
    """Async connection whose every statement raises the given driver error."""

    def __init__(self, error: psycopg.Error):
        self.error = error
        self.committed = False
        self.rolled_back = False
        self.closed = False

    async def execute(self, query, params=None):
        raise self.error

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True

    async def close(self):
        self.closed = True


@pytest.fixture()
def connect(monkeypatch):
    def install(error: psycopg.Error) -> FailingConnection:
        conn = FailingConnection(error)

        async def fake_connect(conninfo, **kwargs):
            return conn

        monkeypatch.setattr(psycopg.AsyncConnection, "connect", fake_connect)
        return conn

    return install


@pytest.fixture()
def pg_store():
    return PostgresStore(StoreSettings(host="db.test", password="secret"))


def _record(pg_store, location_id="not-a-uuid"):
    return anyio.run(
        pg_store.record_location_delta, RB, location_id, 1, "receive", None
    )


def test_malformed_location_id_is_rejected(connect, pg_store):
    conn = connect(psycopg.errors.InvalidTextRepresentation("invalid input syntax for type uuid"))

    with pytest.raises(InvalidMovementError, match="uuid"):
        _record(pg_store)

    assert conn.rolled_back
    assert not conn.committed
    assert conn.closed


def test_unknown_location_is_rejected(connect, pg_store):
    connect(psycopg.errors.ForeignKeyViolation("violates foreign key constraint"))

    with pytest.raises(InvalidMovementError, match="foreign key"):
        _record(pg_store, "6f1c2c1e-0d8f-4d1e-9b1a-2b7d7c1d0a11")


def test_negative_on_hand_stays_a_store_error(connect, pg_store):
    connect(psycopg.errors.CheckViolation("ck_location_on_hand_non_negative"))

    with pytest.raises(StoreError) as exc:
        _record(pg_store)

    assert not isinstance(exc.value, InvalidMovementError)


def test_connection_failure_is_a_store_error(monkeypatch, pg_store):
    async def refuse(conninfo, **kwargs):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(psycopg.AsyncConnection, "connect", refuse)

    with pytest.raises(StoreError, match="Store unavailable"):
        anyio.run(pg_store.find_product, RB)
    assert anyio.run(pg_store.health_check) is False
