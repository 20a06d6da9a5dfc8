"""
Tests for configuration loading.

get_active_config() is the only runtime entrypoint; the loader functions
are exercised directly for their validation rules.
"""

from pathlib import Path

import pytest
import yaml

from docengine.domain.numbering import ResetFrequency
from docengine_config import get_active_config
from docengine_config.loader import (
    compute_checksum,
    load_configuration,
    parse_configuration,
    parse_sequence,
    parse_settings,
)


def write_set(directory: Path, name: str, data: dict) -> Path:
    path = directory / f"{name}.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSet:
    def test_loads(self):
        config = get_active_config()

        assert config.name == "default"
        assert config.version == 1
        assert config.settings.allocation_timeout_ms == 5000
        assert {d.document_type for d in config.sequences} == {
            "quote",
            "sales_invoice",
            "purchase_invoice",
            "credit_note",
            "customer_bond",
            "supplier_bond",
            "journal_entry",
        }

    def test_sequence_lookup(self):
        invoice = get_active_config().sequence_for("sales_invoice")

        assert invoice.prefix == "INV"
        assert invoice.reset_frequency == ResetFrequency.YEARLY
        assert invoice.number_format.render(7) == "INV-00007"

    def test_unknown_sequence_is_none(self):
        assert get_active_config().sequence_for("delivery_note") is None

    def test_checksum_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_load_logged(self, captured_logs):
        get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded[0]["config_name"] == "default"
        assert loaded[0]["sequence_count"] == 7


class TestOverrides:
    def test_database_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DOCENGINE_DATABASE_URL", "postgresql://u:p@db/docengine")
        config = get_active_config()
        assert config.settings.database_url == "postgresql://u:p@db/docengine"

    def test_config_dir_from_environment(self, monkeypatch, tmp_path):
        write_set(tmp_path, "staging", {"name": "staging", "sequences": {"quote": {"prefix": "QS"}}})
        monkeypatch.setenv("DOCENGINE_CONFIG_DIR", str(tmp_path))

        config = get_active_config(name="staging")
        assert config.sequence_for("quote").prefix == "QS"

    def test_explicit_dir_wins(self, monkeypatch, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        write_set(tmp_path, "custom", {"name": "from_argument"})
        write_set(other, "custom", {"name": "from_environment"})
        monkeypatch.setenv("DOCENGINE_CONFIG_DIR", str(other))

        assert get_active_config(config_dir=tmp_path, name="custom").name == "from_argument"

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path, name="absent")


class TestParsing:
    def test_sequence_defaults(self):
        definition = parse_sequence("quote", {"prefix": "Q"})

        assert definition.separator == "-"
        assert definition.number_length == 5
        assert definition.reset_frequency == ResetFrequency.NEVER
        assert definition.next_number == 1
        assert definition.is_active is True

    def test_prefix_required(self):
        with pytest.raises(KeyError):
            parse_sequence("quote", {"number_length": 4})

    @pytest.mark.parametrize(
        "data",
        [
            {"prefix": "Q", "reset_frequency": "weekly"},
            {"prefix": "Q", "number_length": 0},
            {"prefix": "Q", "next_number": 0},
        ],
    )
    def test_invalid_sequence(self, data):
        with pytest.raises(ValueError):
            parse_sequence("quote", data)

    def test_sequences_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_configuration({"name": "bad", "sequences": [{"prefix": "Q"}]})

    def test_name_required(self):
        with pytest.raises(KeyError):
            parse_configuration({"sequences": {}})

    @pytest.mark.parametrize("key", ["allocation_timeout_ms", "validation_timeout_ms"])
    def test_timeouts_positive(self, key):
        with pytest.raises(ValueError):
            parse_settings({key: 0})

    def test_round_trip_through_file(self, tmp_path):
        path = write_set(
            tmp_path,
            "seeded",
            {
                "name": "seeded",
                "version": 3,
                "settings": {"allocation_timeout_ms": 250},
                "sequences": {
                    "sales_invoice": {
                        "prefix": "INV",
                        "reset_frequency": "yearly",
                        "next_number": 7,
                    }
                },
            },
        )
        config = load_configuration(path)

        assert config.version == 3
        assert config.settings.allocation_timeout_ms == 250
        assert config.settings.validation_timeout_ms == 5000
        assert config.sequence_for("sales_invoice").next_number == 7


class TestChecksum:
    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_content_sensitive(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
