"""
Shared fixtures: an in-memory store that answers the poller's two query shapes
"""
import re

import pytest

from clinic_sync.polling.events import WatchedTable
from clinic_sync.polling.observers import CallbackObserver, ObserverRegistry
from clinic_sync.polling.scheduler import ChangePoller

_MAX_QUERY = re.compile(r"SELECT MAX\((\w+)\) AS max_value FROM (\w+)")
_DIFF_QUERY = re.compile(r"SELECT \* FROM (\w+) WHERE (\w+) > %s ORDER BY (\w+) DESC LIMIT (\d+)")


class FakeStore:
    """Minimal stand-in for DatabaseClient.execute_query"""

    def __init__(self):
        self.tables = {}
        self.failing = set()
        self.queries = []

    def insert(self, table, **row):
        self.tables.setdefault(table, []).append(row)

    def execute_query(self, query, params=None):
        self.queries.append((query, params))
        match = _MAX_QUERY.match(query)
        if match:
            column, table = match.groups()
            self._maybe_fail(table)
            values = [row[column] for row in self.tables.get(table, [])]
            return [{"max_value": max(values) if values else None}]

        match = _DIFF_QUERY.match(query)
        if match:
            table, column, _, limit = match.groups()
            self._maybe_fail(table)
            rows = [row for row in self.tables.get(table, []) if row[column] > params[0]]
            rows.sort(key=lambda row: row[column], reverse=True)
            return [dict(row) for row in rows[:int(limit)]]

        raise AssertionError(f"unexpected query: {query}")

    def _maybe_fail(self, table):
        if table in self.failing:
            raise ConnectionError(f"{table} unavailable")

    def health_check(self):
        return {"is_connected": True, "connection_info": {"url": "fake://"}}

    def disconnect(self):
        self.disconnected = True


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def received():
    """(event_name, payload) tuples delivered to a callback observer"""
    return []


@pytest.fixture
def registry(received):
    registry = ObserverRegistry()
    registry.register(CallbackObserver(lambda name, payload: received.append((name, payload))))
    return registry


@pytest.fixture
def tables():
    return [
        WatchedTable("patients", "created_at"),
        WatchedTable("medicines", "updated_at"),
    ]


@pytest.fixture
def poller(store, registry, tables):
    poller = ChangePoller(
        client_factory=lambda: store,
        registry=registry,
        tables=tables,
        interval=0.05,
        max_rows=100
    )
    yield poller
    poller.stop()
