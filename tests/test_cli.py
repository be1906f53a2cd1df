"""
Tests for the CLI and application entry point.
"""

import asyncio
import pytest

import app
from conftest import recording, write_json
from orchestrator.cli import (
    build_config,
    create_parser,
    main,
    parse_conf_arg,
    validate_args,
)
from orchestrator.core import Orchestrator


# ============================================================
# TEST: ARGUMENTS
# ============================================================

class TestArguments:
    """Tests for parsing and validation."""

    def test_parse_conf_arg(self):
        """SOURCE[:GROUP] splits into source and optional group."""
        assert parse_conf_arg("coin") == ("coin", None)
        assert parse_conf_arg("coin:coin") == ("coin", "coin")
        assert parse_conf_arg("coin:") == ("coin", None)

    def test_parse_conf_arg_empty_source(self):
        """A source is mandatory."""
        with pytest.raises(ValueError):
            parse_conf_arg(":coin")

    def test_validate_args(self):
        """Bad values are reported."""
        args = create_parser().parse_args(["--shutdown-timeout", "0", "--conf", ":x"])

        errors = validate_args(args)

        assert len(errors) == 2

    def test_build_config_env_then_cli(self, monkeypatch, tmp_path):
        """CLI arguments override environment variables."""
        monkeypatch.setenv("WORKER_ENV", "staging")
        monkeypatch.setenv("WORKER_TYPE", "wrk-env")
        monkeypatch.setenv("SHUTDOWN_TIMEOUT_SECONDS", "5")
        args = create_parser().parse_args([
            "--worker-type", "wrk-cli",
            "--root", str(tmp_path),
            "--no-status-persistence",
        ])

        config = build_config(args)

        assert config.env == "staging"
        assert config.worker_type == "wrk-cli"
        assert config.root == str(tmp_path)
        assert config.shutdown_timeout_seconds == 5.0
        assert config.status_persistence_enabled is False


# ============================================================
# TEST: MAIN
# ============================================================

class TestMain:
    """Tests for main()."""

    def test_invalid_args_exit_code(self, tmp_path):
        """Validation errors return 1."""
        assert main(["--root", str(tmp_path), "--shutdown-timeout", "-1"]) == 1

    def test_show_facilities(self, tmp_path, catalog, capsys):
        """--show-facilities prints the start order and exits 0."""
        def setup(wrk: Orchestrator) -> None:
            wrk.set_init_facilities([recording("db", 0), recording("api", 5)])

        code = main(
            ["--root", str(tmp_path), "--show-facilities"],
            catalog=catalog,
            setup=setup,
        )

        out = capsys.readouterr().out
        assert code == 0
        assert out.index("intervals_0") < out.index("recording_db") < out.index("recording_api")

    def test_conf_loaded(self, tmp_path, capsys):
        """--conf sources are loaded before setup runs."""
        write_json(tmp_path / "config" / "coin.json", {"coin": {"symbol": "BTC"}})
        seen = []

        code = main(
            ["--root", str(tmp_path), "--conf", "coin:coin", "--show-facilities"],
            setup=lambda wrk: seen.append(wrk.conf.get("coin.symbol")),
        )

        assert code == 0
        assert seen == ["BTC"]

    def test_missing_conf_exit_code(self, tmp_path):
        """A missing configuration document returns 1."""
        assert main(["--root", str(tmp_path), "--conf", "absent", "--show-facilities"]) == 1

    def test_invalid_conf_exits(self, tmp_path):
        """A config failing its example exits with status 1."""
        write_json(tmp_path / "config" / "coin.json", {"a": 1})
        write_json(tmp_path / "config" / "coin.json.example", {"a": 1, "b": {"c": 2}})

        with pytest.raises(SystemExit) as exc_info:
            main(["--root", str(tmp_path), "--conf", "coin", "--show-facilities"])

        assert exc_info.value.code == 1

    def test_startup_failure_exit_code(self, tmp_path, catalog):
        """A facility failing to start returns 1 after teardown."""
        journal = []

        def setup(wrk: Orchestrator) -> None:
            wrk.set_init_facilities([
                recording("db", 0, journal),
                recording("api", 5, journal, fail_on=["start"]),
            ])

        code = main(["--root", str(tmp_path)], catalog=catalog, setup=setup)

        assert code == 1
        assert journal[0] == ("start", "db")
        assert journal[-1] == ("stop", "db")
        assert ("start", "api") not in journal


# ============================================================
# TEST: APPLICATION WIRING
# ============================================================

class TestApplication:
    """Tests for app.py wiring."""

    def test_build_catalog(self):
        """The application catalog includes the built-ins."""
        assert "intervals" in app.build_catalog()

    @pytest.mark.asyncio
    async def test_status_snapshots_scheduled(self, config):
        """Once started, status is saved on an interval."""
        orchestrator = Orchestrator(config=config, catalog=app.build_catalog())
        orchestrator.init()
        app.setup_worker(orchestrator)

        await orchestrator.start()
        await asyncio.sleep(0)

        intervals = orchestrator.get_facility("intervals", "0")
        assert intervals.has("status")

        await orchestrator.stop()
        assert intervals.keys() == []
