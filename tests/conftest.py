from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from spanner_client import DataClient
from spanner_config import EnvironmentDescriptor


def make_descriptor(**overrides):
    values = dict(
        project_id="test-project",
        instance_id="test-instance",
        database_id="spanner-it",
        schema_path="db/spanner/schema.sql",
        short=False,
        node_count=1,
        scenario_timeout=300,
        bootstrap_timeout=600,
        instance_policy="proceed",
        drop_databases=True,
        delete_instance=False,
    )
    values.update(overrides)
    return EnvironmentDescriptor(**values)


def done_operation(result):
    """A long-running operation that already finished successfully."""
    op = MagicMock()
    op.result.return_value = result
    op.operation.done = True
    return op


def make_admin():
    return SimpleNamespace(
        instance_admin=MagicMock(),
        database_admin=MagicMock(),
        close=MagicMock(),
    )


class FakeBatch:
    def __init__(self, database):
        self.database = database
        self.pending = []
        self.committed = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            for table, columns, values in self.pending:
                for row in values:
                    record = dict(zip(columns, row))
                    self.database.tables.setdefault(table, {})[record["Key"]] = record
            self.database.commits += 1
            self.committed = f"commit-{self.database.commits}"
        return False

    def insert_or_update(self, table, columns, values):
        self.pending.append((table, columns, values))


class FakeSnapshot:
    def __init__(self, database):
        self.database = database

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def read(self, table, columns, keyset, index=""):
        rows = self.database.tables.get(table, {}).values()
        wanted = [k[0] for k in keyset.keys]
        if index:
            column = self.database.indexes[index]
            matches = [r for r in rows if r[column] in wanted]
        else:
            matches = [r for r in rows if r["Key"] in wanted]
        return iter([[r[c] for c in columns] for r in matches])

    def execute_sql(self, sql, params=None, param_types=None):
        self.database.queries.append(sql)
        if sql.startswith("WITH X AS (SELECT 7 AS Z)"):
            return iter([[7]])
        if sql.startswith("SELECT COUNT(*) FROM "):
            table = sql.rsplit(" ", 1)[-1]
            return iter([[len(self.database.tables.get(table, {}))]])
        raise AssertionError(f"unexpected query {sql}")


class FakeDatabase:
    """In-memory stand-in for google.cloud.spanner Database."""

    def __init__(self):
        self.tables = {}
        self.indexes = {"TestTableByValue": "StringValue"}
        self.commits = 0
        self.queries = []
        self.spanner_api = MagicMock()

    def batch(self):
        return FakeBatch(self)

    def snapshot(self):
        return FakeSnapshot(self)


@pytest.fixture
def descriptor():
    return make_descriptor()


@pytest.fixture
def admin():
    return make_admin()


@pytest.fixture
def fake_database():
    return FakeDatabase()


@pytest.fixture
def data_client(fake_database):
    return DataClient(MagicMock(), fake_database, MagicMock(),
                      "projects/p/instances/i/databases/d")
