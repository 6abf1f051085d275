"""Tests for the evo-levels command-line entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml

from evo_levels import __main__ as cli
from evo_levels.config import LevelSystemConfig
from tests.conftest import make_config_dict

logger = logging.getLogger("test.cli")


def _write_idl(tmp_path: Path) -> str:
    path = tmp_path / "idl.json"
    path.write_text(json.dumps({
        "instructions": [{"name": "mint_ticket"}, {"name": "create_event"}],
    }), encoding="utf-8")
    return str(path)


def _write_config(tmp_path: Path, cfg: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg, allow_unicode=True), encoding="utf-8")
    return path


class TestResolveConfigPath:

    def test_explicit_path_wins(self, tmp_path: Path):
        assert cli.resolve_config_path(str(tmp_path / "x.yaml")) == tmp_path / "x.yaml"

    def test_first_existing_candidate(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(cli, "CONFIG_CANDIDATES", (str(tmp_path / "missing.yaml"), "./config.yaml"))
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config.yaml").write_text("", encoding="utf-8")
        assert cli.resolve_config_path(None) == Path("./config.yaml")

    def test_nothing_found(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(cli, "CONFIG_CANDIDATES", (str(tmp_path / "missing.yaml"),))
        assert cli.resolve_config_path(None) is None


class TestDescribeScanner:

    def test_disabled_without_program_id(self):
        scanner = make_config_dict()["scanner"]
        scanner["program_id"] = ""
        config = LevelSystemConfig(**make_config_dict(scanner=scanner))
        assert cli.describe_scanner(config, logger) == "disabled"

    def test_inert_without_definition(self, caplog):
        config = LevelSystemConfig(**make_config_dict())
        with caplog.at_level(logging.WARNING, logger="test.cli"):
            assert cli.describe_scanner(config, logger) == "inert"
        assert "inert" in caplog.text

    def test_active_with_definition(self, tmp_path: Path, caplog):
        scanner = make_config_dict()["scanner"]
        scanner["program_definition_paths"] = [_write_idl(tmp_path)]
        config = LevelSystemConfig(**make_config_dict(scanner=scanner))
        with caplog.at_level(logging.INFO, logger="test.cli"):
            assert cli.describe_scanner(config, logger) == "active"
        assert "TICKET_MINTED" in caplog.text


class TestValidateConfig:

    def test_valid_config(self, tmp_path: Path):
        path = _write_config(tmp_path, make_config_dict())
        assert cli.validate_config(path, logger) == cli.EXIT_OK

    def test_zero_interval_rejected(self, tmp_path: Path):
        scanner = make_config_dict()["scanner"]
        scanner["interval_minutes"] = 0
        path = _write_config(tmp_path, make_config_dict(scanner=scanner))
        assert cli.validate_config(path, logger) == cli.EXIT_INVALID_CONFIG

    def test_broken_yaml_rejected(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("scanner: [unclosed\n", encoding="utf-8")
        assert cli.validate_config(path, logger) == cli.EXIT_INVALID_CONFIG

    def test_missing_file_rejected(self, tmp_path: Path):
        assert cli.validate_config(tmp_path / "nope.yaml", logger) == cli.EXIT_INVALID_CONFIG


class TestMain:

    def test_validate_flag_exits_ok(self, tmp_path: Path):
        path = _write_config(tmp_path, make_config_dict())
        with pytest.raises(SystemExit) as exc:
            cli.main(["--config", str(path), "--validate-config"])
        assert exc.value.code == cli.EXIT_OK

    def test_validate_flag_exits_invalid(self, tmp_path: Path):
        scanner = make_config_dict()["scanner"]
        scanner["interval_minutes"] = -1
        path = _write_config(tmp_path, make_config_dict(scanner=scanner))
        with pytest.raises(SystemExit) as exc:
            cli.main(["--config", str(path), "--validate-config"])
        assert exc.value.code == cli.EXIT_INVALID_CONFIG

    def test_no_config_found(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(cli, "CONFIG_CANDIDATES", (str(tmp_path / "missing.yaml"),))
        with pytest.raises(SystemExit) as exc:
            cli.main([])
        assert exc.value.code == cli.EXIT_NO_CONFIG
