"""
Tests for stock configuration loading and the config -> kernel bridge.
"""

from decimal import Decimal

import pytest
import yaml
from sqlalchemy import inspect

from stock_config import DATABASE_URL_ENV, get_active_config
from stock_config.bridges import bootstrap
from stock_config.loader import compute_checksum, merge_fragments, parse_config
from stock_config.schema import StockConfig
from stock_kernel.db.engine import get_engine, reset_engine
from stock_kernel.db.immutability import unregister_immutability_listeners


@pytest.fixture(autouse=True)
def _no_database_env(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


def _write(path, data) -> str:
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:
    def test_packaged_defaults_match_schema_defaults(self):
        config = get_active_config()

        defaults = StockConfig()
        assert config.costing == defaults.costing
        assert config.stock == defaults.stock
        assert config.collaborators == defaults.collaborators
        assert config.database == defaults.database
        assert config.logging == defaults.logging
        assert config.costing.cost_deviation_threshold_pct == Decimal("20")

    def test_checksum_is_deterministic(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_config_trace_is_logged(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["source"] == "defaults"
        assert traces[-1]["database_url_from_env"] is False


class TestOverrides:
    def test_override_file_replaces_keys(self, tmp_path):
        path = _write(
            tmp_path / "stock.yaml",
            {"stock": {"allow_negative_stock": True}, "costing": {"cost_deviation_threshold_pct": "35.5"}},
        )

        config = get_active_config(path)

        assert config.stock.allow_negative_stock is True
        assert config.stock.stale_state_retries == 1
        assert config.costing.cost_deviation_threshold_pct == Decimal("35.5")
        assert config.costing.cost_decimal_places == 6
        assert config.checksum != get_active_config().checksum

    def test_environment_overrides_database_url(self, tmp_path, monkeypatch, captured_logs):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://stock@db/stock")
        path = _write(tmp_path / "stock.yaml", {"database": {"url": "sqlite:///other.db"}})

        config = get_active_config(path)

        assert config.database.url == "postgresql://stock@db/stock"
        trace = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"][-1]
        assert trace["database_url_from_env"] is True

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            get_active_config(path)


class TestValidation:
    @pytest.mark.parametrize(
        "data, message",
        [
            ({"ledger": {}}, "ledger: unknown section"),
            ({"stock": {"allow_negative": True}}, "stock.allow_negative: unknown setting"),
            ({"stock": {"allow_negative_stock": "yes"}}, "expected true/false"),
            ({"costing": {"cost_decimal_places": -1}}, "must be >= 0"),
            ({"costing": {"cost_deviation_threshold_pct": 20.5}}, "quote decimal values"),
            ({"database": {"pool_size": 0}}, "must be >= 1"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"stock": {"stale_state_retries": 9}}, "must be <= 5"),
            ({"collaborators": {"active_statuses": []}}, "at least one status"),
        ],
    )
    def test_invalid_values(self, data, message):
        with pytest.raises(ValueError, match="Configuration validation failed") as exc_info:
            parse_config(data)
        assert message in str(exc_info.value)

    def test_every_problem_is_reported(self):
        with pytest.raises(ValueError) as exc_info:
            parse_config({"stock": {"allow_negative_stock": 1, "stale_state_retries": "two"}})

        message = str(exc_info.value)
        assert "stock.allow_negative_stock" in message
        assert "stock.stale_state_retries" in message

    def test_active_statuses_are_trimmed(self):
        config = parse_config({"collaborators": {"active_statuses": [" active ", "on_leave"]}})

        assert config.collaborators.active_statuses == ("active", "on_leave")


class TestLoaderHelpers:
    def test_merge_is_section_wise(self):
        merged = merge_fragments(
            {"stock": {"allow_negative_stock": False, "stale_state_retries": 1}},
            {"stock": {"stale_state_retries": 3}, "logging": {"level": "DEBUG"}},
        )

        assert merged == {
            "stock": {"allow_negative_stock": False, "stale_state_retries": 3},
            "logging": {"level": "DEBUG"},
        }

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestBootstrap:
    def test_bootstrap_creates_schema_from_config(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'boot.db'}"
        config = get_active_config(_write(tmp_path / "stock.yaml", {"database": {"url": url}}))

        try:
            engine = bootstrap(config, create_schema=True)

            assert get_engine() is engine
            assert engine.dialect.name == "sqlite"
            assert "stock_movements" in inspect(engine).get_table_names()
        finally:
            unregister_immutability_listeners()
            reset_engine()
