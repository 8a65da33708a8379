import pytest

from spanner_config import (
    DEFAULT_SCHEMA_PATH,
    POLICY_PROCEED,
    load_environment,
    missing_identifiers,
)


@pytest.fixture
def no_env_file(tmp_path):
    return str(tmp_path / "missing.env")


def test_defaults(no_env_file):
    descriptor = load_environment(env_file=no_env_file, environ={})

    assert descriptor.project_id == ""
    assert descriptor.schema_path == DEFAULT_SCHEMA_PATH
    assert descriptor.short is False
    assert descriptor.node_count == 1
    assert descriptor.scenario_timeout == 300
    assert descriptor.bootstrap_timeout == 600
    assert descriptor.instance_policy == POLICY_PROCEED
    assert descriptor.drop_databases is True
    assert descriptor.delete_instance is False
    assert missing_identifiers(descriptor) == [
        "SPANNER_PROJECT_ID", "SPANNER_INSTANCE_ID", "SPANNER_DATABASE_ID",
    ]


def test_environment_values(no_env_file):
    descriptor = load_environment(env_file=no_env_file, environ={
        "SPANNER_PROJECT_ID": "test-project",
        "SPANNER_INSTANCE_ID": "test-instance",
        "SPANNER_DATABASE_ID": "spanner-it",
        "SPANNER_TEST_SHORT": "TRUE",
        "SPANNER_SCENARIO_TIMEOUT": "120",
        "SPANNER_INSTANCE_POLICY": "require-ready",
        "SPANNER_DROP_DATABASES": "false",
        "HOME": "/root",
    })

    assert descriptor.project_id == "test-project"
    assert descriptor.short is True
    assert descriptor.scenario_timeout == 120
    assert descriptor.instance_policy == "require-ready"
    assert descriptor.drop_databases is False
    assert missing_identifiers(descriptor) == []


def test_env_file_is_overridden_by_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "SPANNER_PROJECT_ID=file-project\n"
        "SPANNER_INSTANCE_ID=file-instance\n"
        "SPANNER_NODE_COUNT=3\n")

    descriptor = load_environment(env_file=str(env_file),
                                  environ={"SPANNER_PROJECT_ID": "env-project"})

    assert descriptor.project_id == "env-project"
    assert descriptor.instance_id == "file-instance"
    assert descriptor.node_count == 3


def test_overrides_win_and_none_is_ignored(no_env_file):
    descriptor = load_environment(env_file=no_env_file,
                                  environ={"SPANNER_TEST_SHORT": "true"},
                                  short=None, instance_id="override")
    assert descriptor.short is True
    assert descriptor.instance_id == "override"


def test_descriptor_is_immutable(no_env_file):
    descriptor = load_environment(env_file=no_env_file, environ={})
    with pytest.raises(AttributeError):
        descriptor.project_id = "other"


def test_invalid_integer(no_env_file):
    with pytest.raises(ValueError, match="SPANNER_NODE_COUNT"):
        load_environment(env_file=no_env_file, environ={"SPANNER_NODE_COUNT": "two"})


def test_invalid_policy(no_env_file):
    with pytest.raises(ValueError, match="SPANNER_INSTANCE_POLICY"):
        load_environment(env_file=no_env_file, environ={"SPANNER_INSTANCE_POLICY": "maybe"})
