"""Tests for loading, validating and compiling plant configuration sets."""

import copy
from pathlib import Path

import pytest
import yaml

from brickworks_config import DATABASE_URL_ENV, get_active_config
from brickworks_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_configuration,
)
from brickworks_config.validator import validate_configuration

DEFAULT_ROOT = Path(__file__).resolve().parents[2] / "brickworks_config" / "sets" / "default" / "root.yaml"


@pytest.fixture
def default_data():
    return load_yaml_file(DEFAULT_ROOT)


@pytest.fixture
def write_set(tmp_path):
    """Factory: write ``data`` as configuration set ``config_id`` under tmp_path."""

    def _write(data: dict, config_id: str = "custom") -> Path:
        set_dir = tmp_path / config_id
        set_dir.mkdir(parents=True, exist_ok=True)
        (set_dir / "root.yaml").write_text(yaml.safe_dump(data))
        return tmp_path

    return _write


def _errors(data: dict) -> list[str]:
    return validate_configuration(parse_configuration(data)).errors


class TestDefaultSet:

    def test_loads(self):
        config = get_active_config()

        assert config.config_id == "default"
        assert set(config.stages) == {"mixing", "crushing", "extrusion", "drying", "kiln"}
        assert config.pool_for("crushing").key == "mix_output"
        assert config.stages["mixing"].allowed_roles == frozenset({"mixing_operator"})
        assert config.pools["stockpile"].allowed_roles == frozenset({"stockpile_operator", "mining_operator"})

    def test_default_set_is_valid_without_warnings(self, default_data):
        result = validate_configuration(parse_configuration(default_data))
        assert result.is_valid
        assert result.warnings == []

    def test_pool_chain(self):
        """Each downstream pool's completion event is its producing stage's."""
        config = get_active_config()
        for stage in config.stages.values():
            pool = config.pools[stage.input_pool]
            if pool.is_batch_pool:
                producer = next(s for s in config.stages.values() if s.aggregate_type == pool.aggregate_type)
                assert pool.completion_event_type == f"{producer.batch_event_prefix}_COMPLETED"

    def test_registries_are_read_only(self):
        config = get_active_config()
        with pytest.raises(TypeError):
            config.stages["glazing"] = config.stages["mixing"]

    def test_trace_logged(self, captured_logs):
        get_active_config()
        trace = [r for r in captured_logs() if r["message"] == "BRICKWORKS_CONFIG_TRACE"]
        assert len(trace) == 1
        assert trace[0]["config_set_id"] == "default"
        assert trace[0]["checksum"] == get_active_config().checksum
        assert "mixing" in trace[0]["stages"]


class TestChecksum:

    def test_deterministic(self, default_data):
        assert compute_checksum(default_data) == compute_checksum(copy.deepcopy(default_data))

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self, default_data):
        changed = copy.deepcopy(default_data)
        changed["version"] = 2
        assert compute_checksum(changed) != compute_checksum(default_data)


class TestLookup:

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nope", config_dir=tmp_path)

    def test_config_id_must_match_directory(self, default_data, write_set):
        config_dir = write_set(default_data, config_id="other")
        with pytest.raises(ValueError, match="declares config_id 'default'"):
            get_active_config("other", config_dir=config_dir)

    def test_custom_set(self, default_data, write_set):
        data = copy.deepcopy(default_data)
        data["config_id"] = "custom"
        data["version"] = 7
        config = get_active_config("custom", config_dir=write_set(data))
        assert config.version == 7

    def test_invalid_set_rejected(self, default_data, write_set):
        data = copy.deepcopy(default_data)
        data["config_id"] = "custom"
        data["stages"]["mixing"]["input_pool"] = "quarry"
        with pytest.raises(ValueError, match="input pool 'quarry' is not defined"):
            get_active_config("custom", config_dir=write_set(data))

    def test_database_url_override(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///override.db")
        assert get_active_config().database.url == "sqlite:///override.db"

    def test_no_override(self, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        assert get_active_config().database.url == "sqlite:///brickworks.db"


class TestValidator:

    def test_unknown_role(self, default_data):
        default_data["stages"]["kiln"]["roles"] = ["kiln_wizard"]
        assert "stage 'kiln': unknown role 'kiln_wizard'" in _errors(default_data)

    def test_stage_without_roles_warns(self, default_data):
        default_data["stages"]["kiln"]["roles"] = []
        result = validate_configuration(parse_configuration(default_data))
        assert result.is_valid
        assert any("stage 'kiln'" in w for w in result.warnings)

    def test_batch_pool_needs_status(self, default_data):
        del default_data["pools"]["mix_output"]["required_status"]
        assert any("pool 'mix_output': batch pools need required_status" in e for e in _errors(default_data))

    def test_stockpile_pool_takes_no_status(self, default_data):
        default_data["pools"]["stockpile"]["required_status"] = "completed"
        assert "pool 'stockpile': stockpile pools take no required_status" in _errors(default_data)

    def test_pool_prefix_must_match_producer(self, default_data):
        default_data["pools"]["mix_output"]["event_prefix"] = "MIXER"
        assert any("no stage produces mix_batch" in e for e in _errors(default_data))

    def test_unsafe_view_name(self, default_data):
        default_data["pools"]["stockpile"]["availability_view"] = "balances; drop table events"
        assert any("invalid view name" in e for e in _errors(default_data))

    def test_unknown_aggregate_type(self, default_data):
        default_data["stages"]["kiln"]["aggregate_type"] = "glaze_batch"
        assert "stage 'kiln': unknown batch aggregate type 'glaze_batch'" in _errors(default_data)

    def test_stage_may_not_be_stockpile(self, default_data):
        default_data["stages"]["kiln"]["aggregate_type"] = "stockpile"
        assert any("unknown batch aggregate type 'stockpile'" in e for e in _errors(default_data))

    def test_duplicate_prefix(self, default_data):
        default_data["stages"]["kiln"]["event_prefix"] = "MIX"
        assert "stage 'kiln': duplicate event prefix 'MIX'" in _errors(default_data)

    def test_log_level(self, default_data):
        default_data["logging"]["level"] = "chatty"
        assert "Unknown log level: CHATTY" in _errors(default_data)

    def test_missing_required_key(self, default_data):
        del default_data["database"]["url"]
        with pytest.raises(KeyError):
            parse_configuration(default_data)
