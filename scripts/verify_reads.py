"""
Read-path checks run against a freshly provisioned scenario database.

Fixture: 15 rows k0..k14 -> v0..v14 in TestTable, written in one atomic
batch.  Keys are strings and sort lexically ("k1" < "k10" < "k2"), so the
checks use point reads only and never rely on scan order.
"""
from collections import namedtuple

from spanner_client import insert_or_update, to_record

TEST_TABLE = "TestTable"
TEST_TABLE_INDEX = "TestTableByValue"
TEST_TABLE_COLUMNS = ["Key", "StringValue"]
FIXTURE_ROWS = 15

LITERAL_VALUE = 7
LITERAL_QUERY = f"WITH X AS (SELECT {LITERAL_VALUE} AS Z) SELECT * FROM X"

TestTableRow = namedtuple("TestTableRow", ["key", "string_value"])


def fixture_rows():
    return [TestTableRow(f"k{i}", f"v{i}") for i in range(FIXTURE_ROWS)]


def fixture_mutations():
    return [insert_or_update(TEST_TABLE, TEST_TABLE_COLUMNS, list(row))
            for row in fixture_rows()]


def load_fixture(client, scenario):
    client.apply(fixture_mutations())
    scenario.log(f"  Inserted {FIXTURE_ROWS} rows into {TEST_TABLE} (one batch)")


def read_by_key(client, key):
    row = client.read_row(TEST_TABLE, [key], TEST_TABLE_COLUMNS)
    return to_record(row, TestTableRow)


def read_by_value(client, value):
    row = client.read_row_using_index(TEST_TABLE, TEST_TABLE_INDEX, [value], TEST_TABLE_COLUMNS)
    return to_record(row, TestTableRow)


def verify_reads(client, scenario):
    """The fixed read script: upsert, point reads, index reads, literal query."""
    load_fixture(client, scenario)

    scenario.assert_equal(read_by_key(client, "k1"), TestTableRow("k1", "v1"),
                          "Point read k1")
    scenario.assert_not_found(lambda: read_by_key(client, "k999"),
                              "Point read k999 is NotFound")
    scenario.assert_equal(read_by_value(client, "v1"), TestTableRow("k1", "v1"),
                          f"Index read v1 via {TEST_TABLE_INDEX}")
    scenario.assert_not_found(lambda: read_by_value(client, "v999"),
                              "Index read v999 is NotFound")

    rows = [list(r) for r in client.query(LITERAL_QUERY)]
    scenario.assert_equal(rows, [[LITERAL_VALUE]], "Literal query returns one row")


def verify_key_coverage(client, scenario):
    """Every fixture key reads back its value, by key and through the index."""
    load_fixture(client, scenario)

    mismatched = []
    disagreeing = []
    for expected in fixture_rows():
        by_key = read_by_key(client, expected.key)
        if by_key != expected:
            mismatched.append(f"{expected.key}={by_key.string_value}")
        by_value = read_by_value(client, expected.string_value)
        if by_value != by_key:
            disagreeing.append(expected.string_value)
    scenario.assert_equal(mismatched, [], f"All {FIXTURE_ROWS} keys read back their value")
    scenario.assert_equal(disagreeing, [], "Index and primary-key reads agree")


def verify_isolation(client, scenario):
    """A new scenario database starts empty."""
    scenario.assert_not_found(lambda: read_by_key(client, "k1"),
                              "Fresh database has no k1")
    rows = [list(r) for r in client.query(f"SELECT COUNT(*) FROM {TEST_TABLE}")]
    scenario.assert_equal(rows, [[0]], f"Fresh database {TEST_TABLE} is empty")
