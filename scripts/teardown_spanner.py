#!/usr/bin/env python3
"""
Teardown for Spanner integration test resources.

Removes databases left behind by interrupted runs (a cancelled wait does
not cancel the remote create) and, optionally, the test instance.

Destruction order:
1. Drop databases whose id starts with the prefix
2. Delete the instance (only with --delete-instance)

Every step is idempotent: resources that are already gone are reported
and skipped; failures are printed as warnings.

Usage:
    python3 scripts/teardown_spanner.py [--database-prefix spanner-it] [--delete-instance]
"""
import argparse
import sys

from google.api_core.exceptions import GoogleAPICallError, NotFound

from harness_errors import FatalBootstrapError
from provision_spanner import AdminHandles, delete_instance, drop_database, instance_path
from spanner_config import load_environment


def find_databases(admin, descriptor, prefix):
    """Return full paths of databases in the instance whose id starts with prefix."""
    parent = instance_path(descriptor)
    try:
        databases = admin.database_admin.list_databases(parent=parent)
        paths = [db.name for db in databases]
    except NotFound:
        print(f"  Instance '{parent}' not found. Nothing to drop.")
        return []
    except GoogleAPICallError as e:
        print(f"  Warning: listing databases in {parent} failed: {e}")
        return []
    return [p for p in paths if p.rsplit("/", 1)[-1].startswith(prefix)]


def teardown(admin, descriptor, prefix, remove_instance=False):
    """Drop matching databases, then optionally the instance.

    Returns the number of resources that could not be removed.
    """
    failures = 0
    print(f"\n{'='*60}")
    print(f"Tearing down: {instance_path(descriptor)} (prefix={prefix})")
    print(f"{'='*60}\n")

    print("[1/2] Dropping databases...")
    paths = find_databases(admin, descriptor, prefix)
    if not paths:
        print("  No matching databases.")
    for path in paths:
        if not drop_database(admin, path):
            failures += 1

    print("[2/2] Deleting instance...")
    if remove_instance:
        if not delete_instance(admin, descriptor):
            failures += 1
    else:
        print("  Skipped (use --delete-instance)")

    print(f"\n{'='*60}")
    print("Teardown complete!" if failures == 0 else f"Teardown finished with {failures} warning(s)")
    print(f"{'='*60}\n")
    return failures


def main():
    parser = argparse.ArgumentParser(
        description="Tear down Spanner integration test databases and instance")
    parser.add_argument("--env-file", default=None,
                        help="dotenv file with SPANNER_* variables")
    parser.add_argument("--database-prefix", default=None,
                        help="Database id prefix to drop (default: SPANNER_DATABASE_ID)")
    parser.add_argument("--delete-instance", action="store_true",
                        help="Also delete the test instance")
    args = parser.parse_args()

    descriptor = load_environment(env_file=args.env_file)
    prefix = args.database_prefix or descriptor.database_id
    if not descriptor.project_id or not descriptor.instance_id or not prefix:
        print("FATAL: SPANNER_PROJECT_ID, SPANNER_INSTANCE_ID and a database prefix are required",
              file=sys.stderr)
        sys.exit(1)

    try:
        admin = AdminHandles.connect(descriptor)
    except FatalBootstrapError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        failures = teardown(admin, descriptor, prefix,
                            remove_instance=args.delete_instance)
    finally:
        admin.close()
    sys.exit(0 if failures == 0 else 1)


if __name__ == "__main__":
    main()
