"""Tests for TailerConfig."""

from pathlib import Path

import pytest

from apthistory.config import DEFAULT_MAX_ENTRY_SIZE, TailerConfig


class TestTailerConfigDefaults:
    def test_defaults(self) -> None:
        config = TailerConfig()

        assert config.log_path == "/var/log/apt/history.log"
        assert config.output_path is None
        assert config.max_entry_size == DEFAULT_MAX_ENTRY_SIZE == 15984
        assert config.state_file == Path("/var/lib/APTHistoryLogger/log.state")
        assert config.validate() is config

    @pytest.mark.parametrize(
        "values,message",
        [
            ({"verbosity": 6}, "verbosity"),
            ({"verbosity": -1}, "verbosity"),
            ({"max_entry_size": 0}, "max_entry_size"),
            ({"checkpoint_interval": 0}, "checkpoint_interval"),
            ({"rotation_poll_interval": 0}, "rotation_poll_interval"),
            ({"log_path": ""}, "log_path"),
        ],
    )
    def test_validate_rejects_out_of_range(self, values: dict, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            TailerConfig(**values).validate()

    def test_with_overrides_skips_none(self) -> None:
        config = TailerConfig(verbosity=3, output_path="/tmp/out.jsonl")

        updated = config.with_overrides(verbosity=None, output_path=None, log_path="/tmp/history.log")

        assert updated.verbosity == 3
        assert updated.output_path == "/tmp/out.jsonl"
        assert updated.log_path == "/tmp/history.log"
        assert config.log_path == "/var/log/apt/history.log"


class TestTailerConfigYaml:
    """Tests for loading configuration from YAML files."""

    def test_from_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "log_path: /srv/apt/history.log\n"
            "state_dir: /srv/state\n"
            "max_entry_size: 4096\n"
            "verbosity: 2\n"
        )

        config = TailerConfig.from_yaml(config_file)

        assert config.log_path == "/srv/apt/history.log"
        assert config.state_file == Path("/srv/state/log.state")
        assert config.max_entry_size == 4096
        assert config.verbosity == 2
        assert config.checkpoint_interval == 50

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        assert TailerConfig.from_yaml(config_file) == TailerConfig()

    def test_unknown_keys(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("log_path: /tmp/x\nlogfile: /tmp/y\n")

        with pytest.raises(ValueError, match="Unknown configuration keys: logfile"):
            TailerConfig.from_yaml(config_file)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- one\n- two\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            TailerConfig.from_yaml(config_file)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("log_path: [unclosed\n")

        with pytest.raises(ValueError, match="Failed to parse configuration YAML"):
            TailerConfig.from_yaml(config_file)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Failed to read configuration file"):
            TailerConfig.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("verbosity: 9\n")

        with pytest.raises(ValueError, match="verbosity"):
            TailerConfig.from_yaml(config_file)
