#!/usr/bin/env python3
"""
Cloud Spanner provisioning for the integration test suite.

Creates the resources the read-path scenarios run against:
- One shared test instance (first instance config the project offers)
- One database per scenario, created from the DDL in db/spanner/schema.sql

Creation is idempotent: an instance that already exists is reused, and a
database left over under the same id is dropped and created again.

Usage:
    python3 scripts/provision_spanner.py [--env-file .env] [--output /tmp/instance.json]
"""
import argparse
import json
import re
import sys
import uuid
from collections import namedtuple

import sqlparse
from google.api_core.exceptions import AlreadyExists, GoogleAPICallError, NotFound
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import spanner
from google.cloud.spanner_admin_database_v1 import CreateDatabaseRequest
from google.cloud.spanner_admin_instance_v1 import Instance

from harness_errors import FatalBootstrapError, OperationFailed, OperationTimeout
from operation_waiter import Deadline, wait_for_operation
from spanner_config import load_environment, missing_identifiers

# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

DATABASE_ID_MAX_LEN = 30
DATABASE_SUFFIX_LEN = 6


def project_path(project_id):
    return f"projects/{project_id}"


def instance_path(descriptor):
    return f"projects/{descriptor.project_id}/instances/{descriptor.instance_id}"


def database_path(descriptor, database_id):
    return f"{instance_path(descriptor)}/databases/{database_id}"


def scenario_database_id(base):
    """Unique database id derived from `base`.

    Spanner ids are 2-30 chars of [a-z0-9_-], starting with a letter and
    not ending in '-' or '_'.
    """
    suffix = uuid.uuid4().hex[:DATABASE_SUFFIX_LEN]
    stem = re.sub(r"[^a-z0-9_-]", "-", base.lower())
    stem = stem[:DATABASE_ID_MAX_LEN - DATABASE_SUFFIX_LEN - 1].rstrip("-_")
    if not stem or not stem[0].isalpha():
        stem = f"db{stem}"[:DATABASE_ID_MAX_LEN - DATABASE_SUFFIX_LEN - 1].rstrip("-_")
    return f"{stem}-{suffix}"


# ---------------------------------------------------------------------------
# Admin handles
# ---------------------------------------------------------------------------

class AdminHandles:
    """Instance and database admin clients shared by every scenario.

    Built once at bootstrap, read-only afterwards, closed once at exit.
    """

    def __init__(self, instance_admin, database_admin):
        self.instance_admin = instance_admin
        self.database_admin = database_admin
        self.closed = False

    @classmethod
    def connect(cls, descriptor):
        try:
            client = spanner.Client(project=descriptor.project_id)
            return cls(client.instance_admin_api, client.database_admin_api)
        except (GoogleAPICallError, DefaultCredentialsError) as e:
            raise FatalBootstrapError(
                f"Cannot create Spanner admin clients for project "
                f"'{descriptor.project_id}': {e}") from e

    def close(self):
        if self.closed:
            return
        self.closed = True
        for name, admin in (("database admin", self.database_admin),
                            ("instance admin", self.instance_admin)):
            try:
                admin.transport.close()
            except Exception as e:  # never raise from teardown
                print(f"  Warning: closing {name} client failed: {e}")


# ---------------------------------------------------------------------------
# Instance
# ---------------------------------------------------------------------------

READY = "READY"
DEGRADED = "DEGRADED"
FAILED = "FAILED"

InstanceOutcome = namedtuple("InstanceOutcome", ["readiness", "instance", "error"])


def first_instance_config(instance_admin, project_id):
    """Return the name of the first instance config offered to the project.

    The configs can differ per project; the first one is normally the
    regional config closest to the caller.
    """
    try:
        configs = instance_admin.list_instance_configs(parent=project_path(project_id))
        config = next(iter(configs), None)
    except GoogleAPICallError as e:
        raise FatalBootstrapError(
            f"Cannot list instance configurations for project '{project_id}'. "
            f"Make sure the Cloud Spanner API is enabled: {e}") from e
    if config is None:
        raise FatalBootstrapError(
            f"No instance configurations available for project '{project_id}'")
    return config.name


def _readiness(instance):
    if instance.state == Instance.State.READY:
        return InstanceOutcome(READY, instance, None)
    print(f"  Warning: instance state is {Instance.State(instance.state).name}, "
          f"not READY; scenarios may misbehave")
    return InstanceOutcome(DEGRADED, instance, None)


def ensure_instance(admin, descriptor, deadline):
    """Create the test instance (or reuse an existing one) and wait for it.

    Returns an InstanceOutcome whose readiness is READY, DEGRADED (resolved
    but not in READY state) or FAILED (the wait timed out or the operation
    reported an error).  Raises FatalBootstrapError when no config is
    available or the create request itself is rejected.
    """
    path = instance_path(descriptor)
    print(f"Ensuring instance {path}...")
    config_name = first_instance_config(admin.instance_admin, descriptor.project_id)
    print(f"  Config: {config_name}")

    try:
        operation = admin.instance_admin.create_instance(
            parent=project_path(descriptor.project_id),
            instance_id=descriptor.instance_id,
            instance=Instance(
                config=config_name,
                display_name=descriptor.instance_id,
                node_count=descriptor.node_count,
            ),
        )
    except AlreadyExists:
        print(f"  Already exists: {path}")
        try:
            return _readiness(admin.instance_admin.get_instance(name=path))
        except GoogleAPICallError as e:
            raise FatalBootstrapError(f"Cannot read existing instance {path}: {e}") from e
    except GoogleAPICallError as e:
        raise FatalBootstrapError(f"Could not create instance {path}: {e}") from e

    try:
        instance = wait_for_operation(operation, deadline, f"instance creation {path}")
    except (OperationTimeout, OperationFailed) as e:
        print(f"  Instance creation did not complete: {e}")
        return InstanceOutcome(FAILED, None, e)
    print(f"  Created: {path}")
    return _readiness(instance)


def delete_instance(admin, descriptor):
    """Delete the test instance. Missing instance is fine; errors are warnings."""
    path = instance_path(descriptor)
    try:
        admin.instance_admin.delete_instance(name=path)
    except NotFound:
        print(f"  Already deleted: {path}")
        return True
    except Exception as e:  # never raise from teardown
        print(f"  Warning: delete instance {path} failed: {e}")
        return False
    print(f"  Deleted {path}")
    return True


# ---------------------------------------------------------------------------
# Databases
# ---------------------------------------------------------------------------

def split_ddl(text):
    """Split a DDL script into statements without their terminators.

    Uses sqlparse so that ';' inside string literals and comments does not
    end a statement.  Empty fragments (e.g. after the last ';') are dropped.
    """
    statements = []
    for statement in sqlparse.split(text):
        statement = statement.strip().rstrip(";").strip()
        if statement:
            statements.append(statement)
    return statements


def read_ddl_statements(schema_path):
    with open(schema_path) as f:
        return split_ddl(f.read())


def drop_database(admin, path):
    """Drop a database. Missing database is fine; errors are warnings."""
    try:
        admin.database_admin.drop_database(database=path)
    except NotFound:
        print(f"  Already deleted: {path}")
        return True
    except Exception as e:  # never raise from teardown
        print(f"  Warning: drop database {path} failed: {e}")
        return False
    print(f"  Dropped {path}")
    return True


def _create_database_operation(admin, descriptor, database_id, statements):
    return admin.database_admin.create_database(request=CreateDatabaseRequest(
        parent=instance_path(descriptor),
        create_statement=f"CREATE DATABASE `{database_id}`",
        extra_statements=statements,
    ))


def create_database(admin, descriptor, database_id, statements, deadline):
    """Create a scenario database and wait until it is usable.

    Returns (database, cleanup).  cleanup() drops the database when the
    descriptor asks for it; it is safe to call more than once and never
    raises.  Creation errors propagate to fail the calling scenario.
    """
    path = database_path(descriptor, database_id)
    print(f"  Creating database {path} ({len(statements)} DDL statement(s))...")
    try:
        operation = _create_database_operation(admin, descriptor, database_id, statements)
    except AlreadyExists:
        print(f"  Already exists, recreating: {path}")
        drop_database(admin, path)
        operation = _create_database_operation(admin, descriptor, database_id, statements)

    cleaned = []

    def cleanup():
        if cleaned:
            return
        cleaned.append(True)
        if descriptor.drop_databases:
            drop_database(admin, path)
        else:
            print(f"  Keeping {path}")

    try:
        database = wait_for_operation(operation, deadline, f"database creation {path}")
    except Exception:
        # The create may still finish remotely; try to remove it anyway.
        cleanup()
        raise
    print(f"  Created: {path}")
    return database, cleanup


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description="Create (or reuse) the Spanner instance for integration tests")
    parser.add_argument("--env-file", default=None,
                        help="dotenv file with SPANNER_* variables")
    parser.add_argument("--output", default=None,
                        help="Path to write JSON output (default: stdout)")
    args = parser.parse_args()

    descriptor = load_environment(env_file=args.env_file)
    missing = [m for m in missing_identifiers(descriptor) if m != "SPANNER_DATABASE_ID"]
    if missing:
        print(f"FATAL: missing {', '.join(missing)}", file=sys.stderr)
        sys.exit(1)

    admin = None
    try:
        admin = AdminHandles.connect(descriptor)
        outcome = ensure_instance(admin, descriptor, Deadline(descriptor.bootstrap_timeout))
        results = {
            "instance": instance_path(descriptor),
            "readiness": outcome.readiness,
        }
        if outcome.error is not None:
            results["error"] = str(outcome.error)
        if args.output:
            with open(args.output, "w") as f:
                json.dump(results, f, indent=2)
            print(f"\nOutput written to {args.output}")
        else:
            json.dump(results, sys.stdout, indent=2)
            print()
        if outcome.readiness == FAILED:
            sys.exit(1)
    except FatalBootstrapError as e:
        print(f"\nFATAL: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if admin is not None:
            admin.close()


if __name__ == "__main__":
    main()
