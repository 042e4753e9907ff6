"""
Unit tests for configuration resolution and job plumbing
"""

import argparse

import pytest
from pydantic import ValidationError

from core.config import JobConfig, Settings
from core.exceptions import (
    CSVParseError,
    ConfigurationError,
    PermanentSinkError,
    SourceNotFoundError,
)
from jobs import common, incidents, pipelines, pull_services, split_csv, user_tags
from jobs.common import (
    EXIT_CONFIG,
    EXIT_FAILED,
    EXIT_INPUT,
    exit_code_for,
    first_set,
    resolve_flag,
    split_csv_list,
)


def settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


class TestJobConfig:
    """Immutable per-run configuration"""

    def test_frozen(self):
        config = JobConfig(job_kind="pipelines")
        with pytest.raises(ValidationError):
            config.dry_run = True

    def test_rps_must_be_positive(self):
        with pytest.raises(ValidationError):
            JobConfig(job_kind="pipelines", requests_per_second=0)


class TestResolution:
    """Flag, then environment, then default"""

    def test_first_set_skips_blanks(self):
        assert first_set(None, "  ", " value ", "default") == "value"
        assert first_set(None, None) is None

    def test_resolve_flag(self):
        assert resolve_flag(True, "false") is True
        assert resolve_flag(None, "true") is True
        assert resolve_flag(None, None, default=True) is True
        assert resolve_flag(None, "garbage") is False

    def test_split_csv_list(self):
        assert split_csv_list(" 1, 2,,3 ") == ["1", "2", "3"]
        assert split_csv_list(None) == []

    def test_flag_overrides_environment(self):
        args = pipelines.build_parser().parse_args(["--token", "from-flag", "--rps", "3"])

        config = pipelines.build_config(args, settings(DX_TOKEN="from-env", RPS=9, API_URL="https://x/api"))

        assert config.token == "from-flag"
        assert config.requests_per_second == 3
        assert config.target_url == "https://x/api"

    def test_environment_fallbacks_and_defaults(self):
        args = pipelines.build_parser().parse_args([])

        config = pipelines.build_config(args, settings(DX_TOKEN="t", DRY_RUN="true"))

        assert config.dry_run is True
        assert config.requests_per_second == 7.0
        assert str(config.input_path) == "Backfill"
        assert str(config.failure_log_path) == "pipeline_import_failures.csv"

    def test_missing_token_is_configuration_error(self):
        args = incidents.build_parser().parse_args(["--input", "x.csv"])

        with pytest.raises(ConfigurationError):
            incidents.build_config(args, settings())

    def test_dry_run_does_not_need_token(self):
        args = incidents.build_parser().parse_args(["--input", "x.csv", "--dry-run"])

        config = incidents.build_config(args, settings())

        assert config.dry_run is True
        assert config.token is None

    def test_pull_services_requires_base_url(self):
        args = pull_services.build_parser().parse_args(["--csv", "x.csv", "--dry-run"])

        with pytest.raises(ConfigurationError):
            pull_services.build_config(args, settings())


class TestExitCodes:
    """Error -> exit code mapping"""

    def test_mapping(self):
        assert exit_code_for(ConfigurationError("missing")) == EXIT_CONFIG
        assert exit_code_for(SourceNotFoundError("missing")) == EXIT_INPUT
        assert exit_code_for(CSVParseError("bad")) == EXIT_INPUT
        assert exit_code_for(PermanentSinkError("no")) == EXIT_FAILED

    def test_execute_job_maps_configuration_error(self, monkeypatch):
        monkeypatch.setattr(common, "get_settings", lambda: settings())

        def build_config(args, env):
            raise ConfigurationError("Missing DX token")

        async def run(config):
            raise AssertionError("run must not be reached")

        parser = common.add_base_arguments(argparse.ArgumentParser())
        code = common.execute_job(parser, build_config, run, [])

        assert code == EXIT_CONFIG

    def test_zero_rps_is_configuration_error(self, monkeypatch, tmp_path):
        monkeypatch.setattr(common, "get_settings", lambda: settings())

        code = pipelines.main(["--dir", str(tmp_path), "--dry-run", "--rps", "0", "--failures", str(tmp_path / "f.csv")])

        assert code == EXIT_CONFIG

    def test_zero_concurrency_is_configuration_error(self, monkeypatch, tmp_path):
        monkeypatch.setattr(common, "get_settings", lambda: settings())
        argv = ["--csv", "x.csv", "--base-url", "https://dx.example.com", "--dry-run", "--concurrency", "0",
                "--failures", str(tmp_path / "f.csv"), "--success-log", str(tmp_path / "ok.csv")]

        assert pull_services.main(argv) == EXIT_CONFIG


class TestJobFlags:
    """Jobs only accept the flags they use"""

    @pytest.mark.parametrize("job", [split_csv, user_tags])
    @pytest.mark.parametrize("flag", ["--token", "--rps", "--timeout", "--failures"])
    def test_local_jobs_reject_http_flags(self, job, flag):
        with pytest.raises(SystemExit):
            job.build_parser().parse_args([flag, "1"])

    def test_local_jobs_keep_dry_run_and_log_level(self):
        args = split_csv.build_parser().parse_args(["--dry-run", "--log-level", "DEBUG"])

        assert args.dry_run is True
        assert args.log_level == "DEBUG"
