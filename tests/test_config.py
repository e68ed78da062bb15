"""Tests for configuration loading."""

import json
import os
import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from certkeep.config import Config, StorageOptions, substitute_env_vars
from certkeep.observability import LogLevel


class TestEnvSubstitution:
    """Tests for environment variable substitution."""

    def test_substitute_string(self):
        """Test substituting a string value."""
        os.environ["TEST_VAR"] = "hello"
        result = substitute_env_vars("${TEST_VAR}")
        assert result == "hello"

    def test_substitute_in_dict(self):
        """Test substituting values in a dictionary."""
        os.environ["TEST_KEY"] = "secret"
        data = {"key": "${TEST_KEY}", "other": "value"}
        result = substitute_env_vars(data)
        assert result == {"key": "secret", "other": "value"}

    def test_substitute_in_list(self):
        """Test substituting values in a list."""
        os.environ["TEST_ITEM"] = "item1"
        data = ["${TEST_ITEM}", "item2"]
        result = substitute_env_vars(data)
        assert result == ["item1", "item2"]

    def test_missing_env_var_raises(self):
        """Test that missing env vars raise ValueError."""
        if "NONEXISTENT_VAR" in os.environ:
            del os.environ["NONEXISTENT_VAR"]
        with pytest.raises(ValueError, match="NONEXISTENT_VAR"):
            substitute_env_vars("${NONEXISTENT_VAR}")

    def test_partial_substitution(self):
        """Test substituting part of a string."""
        os.environ["PG_HOST"] = "db.internal"
        result = substitute_env_vars("postgresql://certs@${PG_HOST}/acme")
        assert result == "postgresql://certs@db.internal/acme"


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_from_dict(self, sample_config_dict):
        """Test loading config from dictionary."""
        config = Config.from_dict(sample_config_dict)
        assert config.database.backend == "sqlite"
        assert config.storage.lock_table == "acme_locks"
        assert config.storage.lock_lease_seconds == 30
        assert config.logging.level == LogLevel.DEBUG

    def test_from_yaml_file(self, sample_config_dict):
        """Test loading config from YAML file."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".yaml", delete=False
        ) as f:
            yaml.dump(sample_config_dict, f)
            f.flush()

            config = Config.from_file(f.name)
            assert config.storage.data_table == "acme_data"

            Path(f.name).unlink()

    def test_from_json_file(self, tmp_path, sample_config_dict):
        """Test loading config from JSON file."""
        path = tmp_path / "certkeep.json"
        path.write_text(json.dumps(sample_config_dict))

        config = Config.from_file(path)
        assert config.storage.lock_poll_interval_seconds == 0.5

    def test_empty_yaml_file_uses_defaults(self, tmp_path):
        """An empty YAML file gives the default config."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = Config.from_file(path)
        assert config.database.backend == "sqlite"

    def test_dsn_from_environment(self):
        """The PostgreSQL DSN can come from the environment."""
        os.environ["CERTKEEP_DSN"] = "postgresql://certs@localhost/acme"
        config = Config.from_dict({
            "database": {"backend": "postgres", "dsn": "${CERTKEEP_DSN}"},
        })
        assert config.database.dsn == "postgresql://certs@localhost/acme"
        assert config.database.backend_kwargs() == {
            "busy_timeout": 5.0,
            "dsn": "postgresql://certs@localhost/acme",
        }

    def test_defaults(self):
        """Test that defaults are applied."""
        config = Config.from_dict({})
        assert config.database.backend == "sqlite"
        assert config.database.path is None
        assert config.storage.data_table == "certkeep_data"
        assert config.storage.lock_table == "certkeep_locks"
        assert config.storage.lock_lease_seconds == 60
        assert config.storage.lock_poll_interval_seconds == 1
        assert config.storage.query_timeout_seconds == 3
        assert config.logging.level == LogLevel.INFO
        assert config.logging.format == "json"


class TestStorageOptions:
    """Tests for StorageOptions validation."""

    def test_rejects_non_positive_lease(self):
        """Leases must be positive."""
        with pytest.raises(ValidationError):
            StorageOptions(lock_lease_seconds=0)

    def test_rejects_non_positive_poll_interval(self):
        """Poll intervals must be positive."""
        with pytest.raises(ValidationError):
            StorageOptions(lock_poll_interval_seconds=-1)

    def test_rejects_unsafe_table_name(self):
        """Table names must be identifiers."""
        with pytest.raises(ValidationError, match="table name"):
            StorageOptions(data_table="certs; DROP TABLE users")
