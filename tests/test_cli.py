"""Tests for the command line entry point."""

import json
import sys
from pathlib import Path

import pytest

from apthistory import __version__
from apthistory.cli import build_parser, load_config, main
from history_samples import PURGE_BLOCK

SEARCH_WINDOW = ["--start-timestamp", "2025-01-01T00:00:00", "--end-timestamp", "2025-12-31T23:59:59"]


class TestArguments:
    """Tests for argument parsing and configuration layering."""

    def test_daemon_and_search_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["-d", "-s"])

    def test_verbosity_range(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["-v", "6"])

    def test_flags_override_config_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("log_path: /srv/history.log\nverbosity: 3\ndry_run: false\n")
        args = build_parser().parse_args(["-c", str(config_file), "-v", "0", "-T", "-o", "/tmp/out.jsonl"])

        config = load_config(args)

        assert config.log_path == "/srv/history.log"
        assert config.verbosity == 0
        assert config.dry_run is True
        assert config.output_path == "/tmp/out.jsonl"

    def test_unset_flags_keep_config_values(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("verbosity: 3\ndry_run: true\n")

        config = load_config(build_parser().parse_args(["-c", str(config_file)]))

        assert config.verbosity == 3
        assert config.dry_run is True


class TestMain:
    """Tests for main()."""

    def test_version(self, capsys) -> None:
        assert main(["-V"]) == 0

        out = capsys.readouterr().out
        assert out.startswith(f"APTHistoryLogger {__version__}\n")
        assert "Python" in out

    def test_versionid(self, capsys) -> None:
        assert main(["--versionid"]) == 0
        assert capsys.readouterr().out == f"{__version__}\n"

    def test_no_mode_selected(self) -> None:
        assert main([]) == 1

    def test_invalid_config(self, tmp_path: Path, capsys) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("unknown_key: 1\n")

        assert main(["-d", "-c", str(config_file)]) == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_search_prints_report(self, history_log: Path, capsys) -> None:
        assert main(["-s", "-l", str(history_log), "-v", "0", *SEARCH_WINDOW]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["totalresults"] == 2
        assert report["results"][0]["RequestedBy"] == "alice"

    def test_search_with_filters(self, history_log: Path, capsys) -> None:
        argv = ["-s", "-l", str(history_log), "-v", "0", "--operation", "upgrade", "--time-order", "desc"]

        assert main(argv + SEARCH_WINDOW) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["totalresults"] == 1
        assert report["results"][0]["UpgradeOperation"] is True

    def test_search_without_results_prints_nothing(self, history_log: Path, capsys) -> None:
        assert main(["-s", "-l", str(history_log), "-v", "0", "--user-name", "nobody", *SEARCH_WINDOW]) == 0
        assert capsys.readouterr().out == ""

    def test_search_invalid_filter(self, history_log: Path) -> None:
        assert main(["-s", "-l", str(history_log), "-v", "0", "--operation", "delete"]) == 1

    def test_daemon_missing_log(self, tmp_path: Path) -> None:
        argv = ["-d", "-v", "0", "-l", str(tmp_path / "missing.log"), "--state-dir", str(tmp_path / "state")]

        assert main(argv) == 1

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="inotify is Linux only")
    def test_daemon_dry_run(self, history_log: Path, temp_state_dir: Path) -> None:
        history_log.write_text(PURGE_BLOCK)
        out_file = history_log.parent / "out.jsonl"
        argv = ["-d", "-T", "-v", "0", "-l", str(history_log), "--state-dir", str(temp_state_dir), "-o", str(out_file)]

        assert main(argv) == 0
        assert out_file.read_text() == ""
        assert not (temp_state_dir / "log.state").exists()

    def test_daemon_unopenable_output_file(self, history_log: Path, temp_state_dir: Path, capsys) -> None:
        out_file = history_log.parent / "missing-dir" / "out.jsonl"
        argv = ["-d", "-v", "0", "-l", str(history_log), "--state-dir", str(temp_state_dir), "-o", str(out_file)]

        assert main(argv) == 1

        err = capsys.readouterr().err
        assert f"Failed to open output file {out_file}" in err
        assert "Error reading log" not in err
        assert not (temp_state_dir / "log.state").exists()
