"""Test configuration loading and the command-line entry point."""

from pathlib import Path

import pytest

from cursortrail import cli
from cursortrail.pointer.geometry import Space
from cursortrail.settings import (
    ConfigError,
    load_play_config,
    load_record_config,
    require_api_key,
)
from cursortrail.vision.config import vcfg


def _record_args(*extra):
    return cli.build_parser().parse_args(["record", *extra])


def _play_args(*extra):
    return cli.build_parser().parse_args(["play", *extra])


class TestRecordConfig:
    def test_defaults(self):
        conf = load_record_config(_record_args(), env={})
        assert conf.space is Space.UNIT
        assert conf.period_ms == 1000
        assert conf.duration_ms == 10_000
        assert conf.out_path == Path("mouse_movements.csv")
        assert conf.estimate is False
        assert conf.api_key is None

    def test_estimate_requires_key(self):
        with pytest.raises(ConfigError, match=vcfg.API_KEY_ENV):
            load_record_config(_record_args("--estimate"), env={})

    def test_estimate_with_key(self):
        conf = load_record_config(
            _record_args("--estimate", "--model", "m"), env={vcfg.API_KEY_ENV: " abc "}
        )
        assert conf.api_key == "abc"
        assert conf.model == "m"

    def test_period_longer_than_duration(self):
        with pytest.raises(ConfigError, match="exceeds"):
            load_record_config(_record_args("--period", "2000", "--duration", "1000"), env={})

    @pytest.mark.parametrize("flag", ["--period", "--duration"])
    def test_non_positive_timing(self, flag):
        with pytest.raises(ConfigError):
            load_record_config(_record_args(flag, "0"), env={})

    def test_space_names(self):
        assert load_record_config(_record_args("--space", "unit"), env={}).space is Space.UNIT
        assert load_record_config(_record_args("--space", "physical"), env={}).space is Space.PHYSICAL

    def test_blank_key_counts_as_missing(self):
        with pytest.raises(ConfigError):
            require_api_key({vcfg.API_KEY_ENV: "   "})


class TestPlayConfig:
    def test_defaults(self):
        conf = load_play_config(_play_args())
        assert conf.log_path == Path("mouse_movements.csv")
        assert conf.assume_space is None
        assert conf.clamp is True
        assert conf.source_logical is None

    def test_source_geometry(self):
        conf = load_play_config(
            _play_args("old.csv", "--assume-space", "logical", "--source-logical", "1440x900",
                       "--no-clamp")
        )
        assert conf.log_path == Path("old.csv")
        assert conf.assume_space is Space.LOGICAL
        assert conf.clamp is False
        assert conf.source_logical == (1440, 900)
        # physical defaults to logical when not given
        assert conf.source_physical == (1440, 900)

    def test_bad_size(self):
        with pytest.raises(ConfigError):
            load_play_config(_play_args("--source-logical", "wide"))

    def test_physical_without_logical(self):
        with pytest.raises(ConfigError):
            load_play_config(_play_args("--source-physical", "2880x1800"))


class TestMain:
    def test_malformed_log_exit_code(self, tmp_path):
        path = tmp_path / "legacy.csv"
        path.write_text("timestamp,x,y\n0,1,1\n", encoding="utf-8")
        assert cli.main(["play", str(path)]) == 2

    def test_missing_key_exit_code(self, monkeypatch):
        monkeypatch.setattr(cli, "load_record_config", lambda args: load_record_config(args, env={}))
        assert cli.main(["record", "--estimate"]) == 2
