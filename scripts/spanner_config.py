#!/usr/bin/env python3
"""Build the integration test environment from SPANNER_* variables.

Reads the process environment (and an optional dotenv file) once at
startup and returns an immutable EnvironmentDescriptor.

Environment variables:
  SPANNER_PROJECT_ID         - GCP project hosting the test instance
  SPANNER_INSTANCE_ID        - Instance to create (or reuse) for the run
  SPANNER_DATABASE_ID        - Base database id; each scenario appends a suffix
  SPANNER_SCHEMA_DDL         - Path to the DDL file (default: db/spanner/schema.sql)
  SPANNER_TEST_SHORT         - "true" skips every scenario without touching GCP
  SPANNER_NODE_COUNT         - Nodes for a newly created instance (default: 1)
  SPANNER_SCENARIO_TIMEOUT   - Seconds per scenario (default: 300)
  SPANNER_BOOTSTRAP_TIMEOUT  - Seconds to wait for the instance (default: 600)
  SPANNER_INSTANCE_POLICY    - proceed | require-ready (default: proceed)
  SPANNER_DROP_DATABASES     - Drop each scenario database afterwards (default: true)
  SPANNER_DELETE_INSTANCE    - Delete the instance at exit (default: false)

Usage:
    python3 scripts/spanner_config.py [--env-file .env]
"""
import argparse
import os
from collections import namedtuple

from dotenv import dotenv_values

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_SCHEMA_PATH = os.path.join(SCRIPT_DIR, "..", "db", "spanner", "schema.sql")
DEFAULT_ENV_FILE = ".env"

POLICY_PROCEED = "proceed"
POLICY_REQUIRE_READY = "require-ready"
INSTANCE_POLICIES = (POLICY_PROCEED, POLICY_REQUIRE_READY)

EnvironmentDescriptor = namedtuple("EnvironmentDescriptor", [
    "project_id",
    "instance_id",
    "database_id",
    "schema_path",
    "short",
    "node_count",
    "scenario_timeout",
    "bootstrap_timeout",
    "instance_policy",
    "drop_databases",
    "delete_instance",
])

REQUIRED_IDENTIFIERS = {
    "project_id": "SPANNER_PROJECT_ID",
    "instance_id": "SPANNER_INSTANCE_ID",
    "database_id": "SPANNER_DATABASE_ID",
}


def _flag(value, default=False):
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


def _int(values, name, default):
    raw = values.get(name) or ""
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


def load_environment(env_file=None, environ=None, **overrides):
    """Return an EnvironmentDescriptor.

    Precedence: keyword overrides > process environment > dotenv file >
    defaults.  A missing dotenv file is not an error.
    """
    if environ is None:
        environ = os.environ
    path = env_file or DEFAULT_ENV_FILE
    values = {}
    if os.path.isfile(path):
        values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    values.update({k: v for k, v in environ.items() if k.startswith("SPANNER_")})

    policy = (values.get("SPANNER_INSTANCE_POLICY") or POLICY_PROCEED).strip()
    if policy not in INSTANCE_POLICIES:
        raise ValueError(
            f"SPANNER_INSTANCE_POLICY must be one of {', '.join(INSTANCE_POLICIES)}, "
            f"got '{policy}'")

    descriptor = EnvironmentDescriptor(
        project_id=(values.get("SPANNER_PROJECT_ID") or "").strip(),
        instance_id=(values.get("SPANNER_INSTANCE_ID") or "").strip(),
        database_id=(values.get("SPANNER_DATABASE_ID") or "").strip(),
        schema_path=values.get("SPANNER_SCHEMA_DDL") or DEFAULT_SCHEMA_PATH,
        short=_flag(values.get("SPANNER_TEST_SHORT")),
        node_count=_int(values, "SPANNER_NODE_COUNT", 1),
        scenario_timeout=_int(values, "SPANNER_SCENARIO_TIMEOUT", 300),
        bootstrap_timeout=_int(values, "SPANNER_BOOTSTRAP_TIMEOUT", 600),
        instance_policy=policy,
        drop_databases=_flag(values.get("SPANNER_DROP_DATABASES"), default=True),
        delete_instance=_flag(values.get("SPANNER_DELETE_INSTANCE")),
    )
    return descriptor._replace(**{k: v for k, v in overrides.items() if v is not None})


def missing_identifiers(descriptor):
    """Names of the required SPANNER_* variables that are unset."""
    return [env for field, env in REQUIRED_IDENTIFIERS.items()
            if not getattr(descriptor, field)]


def main():
    parser = argparse.ArgumentParser(
        description="Print the resolved Spanner integration test environment")
    parser.add_argument("--env-file", default=None,
                        help=f"dotenv file to read (default: {DEFAULT_ENV_FILE})")
    args = parser.parse_args()

    descriptor = load_environment(env_file=args.env_file)
    print("Configuration:")
    for k, v in descriptor._asdict().items():
        print(f"  {k}: {v}")
    missing = missing_identifiers(descriptor)
    if missing:
        print(f"  Missing: {', '.join(missing)} (scenarios will be skipped)")


if __name__ == "__main__":
    main()
