"""Tests for the onebridge CLI."""

import json
import sys

import pytest
from click.testing import CliRunner

from onebridge import __version__
from onebridge.cli import cli, main
from conftest import group_message


def write_json(tmp_path, name, data) -> str:
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestActions:

    def test_lists_table(self):
        result = CliRunner().invoke(cli, ["actions"])
        assert result.exit_code == 0
        assert "send_group_msg" in result.output
        assert "get_friend_list" in result.output


class TestFilterCheck:

    def test_forwarded(self, tmp_path):
        rule = write_json(tmp_path, "filter.json", {"post_type": "message"})
        event = write_json(tmp_path, "event.json", group_message())
        result = CliRunner().invoke(cli, ["filter-check", rule, event])
        assert result.exit_code == 0
        assert "forwarded" in result.output

    def test_dropped(self, tmp_path):
        rule = write_json(tmp_path, "filter.json", {"group_id": {".in": [1, 2]}})
        event = write_json(tmp_path, "event.json", group_message())
        result = CliRunner().invoke(cli, ["filter-check", rule, event])
        assert result.exit_code == 1
        assert "dropped" in result.output

    def test_event_not_object(self, tmp_path):
        rule = write_json(tmp_path, "filter.json", {})
        event = write_json(tmp_path, "event.json", [1])
        result = CliRunner().invoke(cli, ["filter-check", rule, event])
        assert result.exit_code == 1
        assert "Event must be a JSON object" in result.output

    def test_unreadable_filter(self, tmp_path):
        rule = tmp_path / "filter.json"
        rule.write_text("{broken", encoding="utf-8")
        event = write_json(tmp_path, "event.json", group_message())
        result = CliRunner().invoke(cli, ["filter-check", str(rule), event])
        assert result.exit_code == 1
        assert "Cannot read" in result.output


class TestStart:

    def test_requires_runtime(self, monkeypatch):
        monkeypatch.delenv("ONEBRIDGE_RUNTIME", raising=False)
        result = CliRunner().invoke(cli, ["start"])
        assert result.exit_code == 2

    def test_bad_runtime_spec(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["start", "--runtime", "no_colon_here"])
        assert result.exit_code == 1
        assert "Cannot load runtime" in result.output


class TestHelp:

    def test_no_command_shows_help(self):
        result = CliRunner().invoke(cli, [])
        assert result.exit_code == 0
        assert "filter-check" in result.output


class TestMain:

    def test_unknown_command_exits_2(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["onebridge", "frobnicate"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 2
        assert "No such command" in capsys.readouterr().err

    def test_version(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["onebridge", "--version"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out
