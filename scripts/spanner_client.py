"""Data client for a single scenario database.

new_client() builds a deliberately small client: one gRPC channel and a
session pool fixed at one session, so data operations inside a scenario
run strictly one after another.
"""
import re
from collections import namedtuple

from google.api_core.exceptions import FailedPrecondition, GoogleAPICallError, NotFound
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import spanner

from harness_errors import ConfigurationError

SESSION_POOL_MIN = 1
SESSION_POOL_MAX = 1

DATABASE_PATH_RE = re.compile(
    r"^projects/(?P<project>[^/]+)/instances/(?P<instance>[^/]+)/databases/(?P<database>[^/]+)$")

Mutation = namedtuple("Mutation", ["table", "columns", "values"])


def insert_or_update(table, columns, values):
    return Mutation(table, list(columns), list(values))


def to_record(row, record_type):
    """Convert a result row (list of column values) into `record_type`."""
    if len(row) != len(record_type._fields):
        raise ValueError(
            f"row has {len(row)} column(s), {record_type.__name__} expects "
            f"{len(record_type._fields)}")
    return record_type(*row)


class DataClient:
    """Reads, writes and queries against exactly one database."""

    def __init__(self, client, database, pool, path):
        self.client = client
        self.database = database
        self.pool = pool
        self.path = path
        self.closed = False

    def apply(self, mutations):
        """Commit all mutations as one atomic batch."""
        with self.database.batch() as batch:
            for m in mutations:
                batch.insert_or_update(m.table, columns=m.columns, values=[m.values])
        return batch.committed

    def _read_one(self, table, key, columns, index=""):
        keyset = spanner.KeySet(keys=[list(key)])
        with self.database.snapshot() as snapshot:
            rows = list(snapshot.read(table, columns, keyset, index=index))
        source = f"index {index} of {table}" if index else table
        if not rows:
            raise NotFound(f"row not found: {source}, key {list(key)}")
        if len(rows) > 1:
            raise FailedPrecondition(
                f"more than one row found: {source}, key {list(key)}")
        return rows[0]

    def read_row(self, table, key, columns):
        """Point read by primary key. Raises NotFound if no row matches."""
        return self._read_one(table, key, columns)

    def read_row_using_index(self, table, index, key, columns):
        """Point read through a secondary index. Raises NotFound if no row matches."""
        return self._read_one(table, key, columns, index=index)

    def query(self, sql, params=None, param_types=None):
        """Lazily yield rows of a single-use read-only query."""
        with self.database.snapshot() as snapshot:
            for row in snapshot.execute_sql(sql, params=params, param_types=param_types):
                yield row

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.pool.clear()
        try:
            self.database.spanner_api.transport.close()
        except Exception as e:  # never raise from cleanup
            print(f"  Warning: closing data channel for {self.path} failed: {e}")


def new_client(path):
    """Create a DataClient bound to the database at `path`.

    Raises ConfigurationError if the path is malformed or the client (or its
    single pooled session) cannot be created.  There is no retry.
    """
    m = DATABASE_PATH_RE.match(path)
    if not m:
        raise ConfigurationError(f"cannot create data client: bad database path '{path}'")
    try:
        client = spanner.Client(project=m.group("project"))
        pool = spanner.FixedSizePool(size=SESSION_POOL_MAX)
        database = client.instance(m.group("instance")).database(
            m.group("database"), pool=pool)
    except (GoogleAPICallError, DefaultCredentialsError) as e:
        raise ConfigurationError(f"cannot create data client on DB {path}", e) from e
    return DataClient(client, database, pool, path)
