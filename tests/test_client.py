"""
Test suite for the database client (SQLite through the SQLAlchemy engine path)
"""
from unittest.mock import MagicMock

import psycopg2
import pytest
from sqlalchemy.exc import OperationalError

from clinic_sync.database.client import DatabaseClient, DatabaseError
from clinic_sync.polling.events import WatchedTable
from clinic_sync.polling.observers import CallbackObserver, ObserverRegistry
from clinic_sync.polling.scheduler import ChangePoller


@pytest.fixture
def client(tmp_path):
    client = DatabaseClient(url=f"sqlite:///{tmp_path / 'clinic.db'}")
    client.execute_query(
        "CREATE TABLE patients (id INTEGER PRIMARY KEY, name TEXT, created_at TEXT)"
    )
    yield client
    client.disconnect()


def add_patient(client, name, created_at):
    client.execute_query(
        "INSERT INTO patients (name, created_at) VALUES (%s, %s)",
        (name, created_at)
    )


def test_execute_query_returns_dict_rows(client):
    add_patient(client, "Amina", "2024-01-01 09:01:00")

    rows = client.execute_query("SELECT id, name FROM patients WHERE name = %s", ("Amina",))

    assert rows == [{"id": 1, "name": "Amina"}]


def test_execute_query_reraises_errors(client):
    with pytest.raises(OperationalError):
        client.execute_query("SELECT * FROM missing_table")


def test_health_check(client):
    status = client.health_check()

    assert status["is_connected"] is True
    assert "checked_at" in status


def test_disconnect_is_idempotent(client):
    client.disconnect()
    client.disconnect()


def test_pool_failure_surfaces_as_database_error(monkeypatch):
    monkeypatch.setattr(
        "clinic_sync.database.client.SimpleConnectionPool",
        MagicMock(side_effect=psycopg2.OperationalError("connection refused"))
    )
    client = DatabaseClient(host="db", user="clinic", password="secret", database="hospital_management")

    with pytest.raises(DatabaseError):
        client.execute_query("SELECT 1")

    status = client.health_check()
    assert status["is_connected"] is False
    assert status["connection_info"]["password"] == "***"


def test_pool_is_rebuilt_when_database_comes_back(monkeypatch):
    connection = MagicMock()
    connection.cursor.return_value.fetchall.return_value = [{"max_value": "2024-01-01 09:03:00"}]
    pool = MagicMock()
    pool.getconn.return_value = connection
    pool_factory = MagicMock(side_effect=[psycopg2.OperationalError("connection refused"), pool])
    monkeypatch.setattr("clinic_sync.database.client.SimpleConnectionPool", pool_factory)

    client = DatabaseClient(host="db", user="clinic", password="secret", database="hospital_management")
    assert client.connection_pool is None
    poller = ChangePoller(
        client_factory=lambda: client,
        registry=ObserverRegistry(),
        tables=[WatchedTable("patients", "created_at")]
    )

    poller.poll_once()

    assert client.connection_pool is pool
    assert poller.get_watermark("patients") == "2024-01-01 09:03:00"
    assert pool_factory.call_count == 2
    pool.putconn.assert_called_once_with(connection)


def test_pool_rebuild_failure_keeps_poller_alive(monkeypatch):
    connection = MagicMock()
    connection.cursor.return_value.fetchall.return_value = [{"max_value": "2024-01-01 09:05:00"}]
    pool = MagicMock()
    pool.getconn.return_value = connection
    pool_factory = MagicMock(side_effect=[
        psycopg2.OperationalError("connection refused"),
        psycopg2.OperationalError("connection refused"),
        pool,
    ])
    monkeypatch.setattr("clinic_sync.database.client.SimpleConnectionPool", pool_factory)

    client = DatabaseClient(host="db", user="clinic", password="secret", database="hospital_management")
    poller = ChangePoller(
        client_factory=lambda: client,
        registry=ObserverRegistry(),
        tables=[WatchedTable("patients", "created_at")]
    )

    # DB가 아직 내려가 있는 주기: 워터마크 유지, 오류 기록
    assert poller.poll_once() == []
    assert poller.get_watermark("patients") is None
    assert "초기화되지 않음" in poller.get_status()["last_error"]

    # 다음 주기에 풀이 재생성되어 기준점 설정
    poller.poll_once()
    assert poller.get_watermark("patients") == "2024-01-01 09:05:00"
    assert poller.get_status()["last_error"] is None


def test_poller_against_sqlite(client):
    received = []
    registry = ObserverRegistry()
    registry.register(CallbackObserver(lambda name, payload: received.append(payload)))
    poller = ChangePoller(
        client_factory=lambda: client,
        registry=registry,
        tables=[WatchedTable("patients", "created_at")]
    )

    for minute in (1, 2, 3):
        add_patient(client, f"patient-{minute}", f"2024-01-01 09:0{minute}:00")
    assert poller.poll_once() == []
    assert poller.get_watermark("patients") == "2024-01-01 09:03:00"

    add_patient(client, "Bilal", "2024-01-01 09:04:00")
    events = poller.poll_once()

    assert len(events) == 1
    assert [row["name"] for row in events[0].rows] == ["Bilal"]
    assert poller.get_watermark("patients") == "2024-01-01 09:04:00"
    assert received[0]["data"][0]["name"] == "Bilal"
    assert poller.poll_once() == []
