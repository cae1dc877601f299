"""Tests for YAML configuration loading (inventory_config.loader)."""

import pytest
import yaml

from inventory_config import load_config
from inventory_config.loader import DATABASE_URL_ENV, compute_checksum, parse_config
from inventory_kernel.domain.values import ScaledDecimal


def write_yaml(tmp_path, data, name="inventory.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadConfig:

    def test_bundled_default(self, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        config = load_config()
        assert config.name == "default"
        assert config.database.is_sqlite
        assert config.stock.movement_lookback_days == 30
        assert config.procurement.po_number_prefix == "PO"
        assert config.manufacturing.max_waste_factor == ScaledDecimal.of("100")
        assert config.manufacturing.production_number_prefix == "PROD"
        assert len(config.checksum) == 64

    def test_sections_parsed(self, tmp_path, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        path = write_yaml(tmp_path, {
            "name": "plant-7",
            "database": {"url": "postgresql://inv@db/inventory", "pool_size": 20},
            "logging": {"level": "debug"},
            "stock": {"movement_lookback_days": 60, "default_allow_negative_stock": True},
            "procurement": {"po_number_prefix": "P7", "receive_full_max_workers": 4},
            "manufacturing": {"max_waste_factor": "50"},
        })

        config = load_config(path)

        assert config.name == "plant-7"
        assert not config.database.is_sqlite
        assert config.database.pool_size == 20
        assert config.logging.level == "DEBUG"
        assert config.stock.movement_lookback_days == 60
        assert config.stock.default_allow_negative_stock
        assert config.procurement.receive_full_max_workers == 4
        assert str(config.manufacturing.max_waste_factor) == "50.00"

    def test_environment_overrides_database_url(self, tmp_path, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://override@db/inv")
        path = write_yaml(tmp_path, {"database": {"url": "sqlite:///file.db"}})
        assert load_config(path).database.url == "postgresql://override@db/inv"

    def test_empty_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = load_config(path)
        assert config.name == "default"
        assert config.procurement.track_incoming_quantities

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)


class TestValidation:
    """Area sections are checked by their dataclasses."""

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            parse_config({"stock": {"lookback": 3}})

    def test_negative_lookback_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"stock": {"movement_lookback_days": -1}})

    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"procurement": {"receive_full_max_workers": 0}})


class TestChecksum:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": {"c": 2}}) == compute_checksum({"b": {"c": 2}, "a": 1})

    def test_values_change_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_parsed_config_carries_checksum(self):
        data = {"name": "x"}
        assert parse_config(data).checksum == compute_checksum(data)
