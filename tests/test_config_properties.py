"""Property-based tests for configuration models and loading."""

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from changesync.models import AppConfig, ReplicationConfig, StoresConfig
from changesync.utils.config_loader import ConfigLoader, ConfigurationError

log = structlog.stdlib.get_logger()

VALID_YAML = """
stores:
  model_name: notes
  source_path: "{source}"
  target_path: "{target}"
replication:
  state_file: "{state}"
  max_retries: 2
logging:
  log_level: DEBUG
  json_logs: false
"""


@given(st.integers(min_value=0, max_value=10))
def test_max_retries_bounds(max_retries: int):
    log.info("test_max_retries_bounds", max_retries=max_retries)

    config = ReplicationConfig(max_retries=max_retries)

    assert 0 <= config.max_retries <= 10


@given(st.integers().filter(lambda x: x < 0 or x > 10))
def test_max_retries_out_of_bounds_rejected(max_retries: int):
    with pytest.raises(ValidationError):
        ReplicationConfig(max_retries=max_retries)


@given(st.floats(min_value=60.001, allow_nan=False, allow_infinity=False))
def test_retry_delay_upper_bound(delay: float):
    with pytest.raises(ValidationError):
        ReplicationConfig(retry_base_delay=delay)


def test_defaults():
    config = AppConfig(stores=StoresConfig(model_name="notes", source_path="a", target_path="b"))

    assert config.replication.state_file is None
    assert config.replication.include_replicated is False
    assert config.logging.log_level == "INFO"
    assert config.stores.source_name == "source"
    assert config.stores.id_field == "id"


def test_stores_section_required():
    with pytest.raises(ValidationError):
        AppConfig()


def test_empty_model_name_rejected():
    with pytest.raises(ValidationError):
        StoresConfig(model_name="", source_path="a", target_path="b")


class TestConfigLoader:
    def write_config(self, tmp_path, **overrides) -> str:
        values = {
            "source": str(tmp_path / "source.json"),
            "target": str(tmp_path / "target.json"),
            "state": str(tmp_path / "state.json"),
        }
        values.update(overrides)
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML.format(**values))
        return str(path)

    def test_loads_yaml(self, tmp_path):
        config = ConfigLoader().load_config(self.write_config(tmp_path))

        assert config.stores.model_name == "notes"
        assert config.replication.max_retries == 2
        assert config.logging.json_logs is False

    def test_substitutes_environment_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NOTES_DIR", str(tmp_path))
        path = self.write_config(tmp_path, source="${NOTES_DIR}/laptop.json")

        config = ConfigLoader().load_config(path)

        assert config.stores.source_path == f"{tmp_path}/laptop.json"

    def test_missing_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CHANGESYNC_TEST_UNSET", raising=False)
        path = self.write_config(tmp_path, source="${CHANGESYNC_TEST_UNSET}/laptop.json")

        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("stores:\n  model_name: notes\n")

        with pytest.raises(ConfigurationError):
            ConfigLoader().load_config(str(path))

    def test_default_config_from_app_env(self, tmp_path, monkeypatch):
        (tmp_path / "staging.yaml").write_text(
            VALID_YAML.format(source="s.json", target="t.json", state="state.json")
        )
        monkeypatch.setenv("APP_ENV", "staging")

        config = ConfigLoader(config_dir=tmp_path).load_config()

        assert config.stores.source_path == "s.json"

    def test_no_default_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)

        with pytest.raises(ConfigurationError):
            ConfigLoader(config_dir=tmp_path).load_config()

    def test_shipped_default_config_is_valid(self, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)

        config = ConfigLoader().load_config()

        assert config.stores.model_name


class TestValidateConfig:
    def test_clean_config_has_no_warnings(self, tmp_path):
        config = ConfigLoader().load_config(TestConfigLoader().write_config(tmp_path))

        assert ConfigLoader().validate_config(config) == []

    def test_warns_about_suspicious_settings(self):
        config = AppConfig(
            stores=StoresConfig(
                model_name="notes",
                source_path="data/store.json",
                target_path="data/store.json",
                source_name="same",
                target_name="same",
            )
        )

        warnings = ConfigLoader().validate_config(config)

        assert len(warnings) == 3
