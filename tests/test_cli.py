"""Tests for the s3proxy command-line entry point."""

from pathlib import Path

import pytest

from s3proxy import cli


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "s3proxy.yaml"
    path.write_text(
        "server:\n"
        "  port: 9000\n"
        "storage:\n"
        "  backend: memory\n"
        "proxy:\n"
        "  bucket: site\n"
        "observability:\n"
        "  metrics: false\n"
    )
    return path


@pytest.fixture
def run_calls(monkeypatch) -> list[dict]:
    """Capture uvicorn.run and configure_logging instead of starting a server."""
    calls: list[dict] = []

    def fake_run(app, **kwargs):
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(
        cli,
        "configure_logging",
        lambda level, fmt: calls.append({"log_level": level, "log_format": fmt}),
    )
    return calls


class TestParseArgs:
    """Tests for parse_args()."""

    def test_defaults(self):
        args = cli.parse_args([])
        assert args.config == Path("s3proxy.yaml")
        assert args.host is None
        assert args.port is None
        assert args.log_level is None
        assert args.log_format is None
        assert args.bucket is None
        assert args.root is None
        assert args.check is False

    def test_overrides(self):
        args = cli.parse_args(
            ["--config", "x.yaml", "--port", "9999", "--log-level", "DEBUG", "--log-format", "json"]
        )
        assert args.config == Path("x.yaml")
        assert args.port == 9999
        assert args.log_level == "DEBUG"
        assert args.log_format == "json"

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["--log-level", "LOUD"])


class TestMain:
    """Tests for main()."""

    def test_missing_config_exits(self, tmp_path, run_calls):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(tmp_path / "absent.yaml")])
        assert exc_info.value.code == 1
        assert run_calls == []

    def test_invalid_config_exits(self, tmp_path, run_calls):
        path = tmp_path / "bad.yaml"
        path.write_text("proxy:\n  root: /x\n")
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(path)])
        assert exc_info.value.code == 1

    def test_runs_with_config_values(self, config_file, run_calls):
        cli.main(["--config", str(config_file)])
        logging_call, run_call = run_calls
        assert logging_call == {"log_level": "INFO", "log_format": "text"}
        assert run_call["host"] == "0.0.0.0"
        assert run_call["port"] == 9000
        assert run_call["log_level"] == "info"
        assert run_call["timeout_graceful_shutdown"] == 30
        assert run_call["app"].state.config.proxy.bucket == "site"

    def test_cli_overrides_config(self, config_file, run_calls):
        cli.main(
            [
                "--config",
                str(config_file),
                "--host",
                "127.0.0.1",
                "--port",
                "7000",
                "--log-level",
                "WARNING",
                "--log-format",
                "json",
            ]
        )
        logging_call, run_call = run_calls
        assert logging_call == {"log_level": "WARNING", "log_format": "json"}
        assert run_call["host"] == "127.0.0.1"
        assert run_call["port"] == 7000
        assert run_call["log_level"] == "warning"

    def test_proxy_overrides(self, config_file, run_calls):
        cli.main(["--config", str(config_file), "--bucket", "other", "--root", "/{http.request.host}"])
        app = run_calls[-1]["app"]
        assert app.state.config.proxy.bucket == "other"
        assert app.state.config.proxy.root == "/{http.request.host}"

    def test_invalid_override_exits(self, config_file, run_calls):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(config_file), "--bucket", " "])
        assert exc_info.value.code == 1
        assert run_calls == []

    def test_check_does_not_serve(self, config_file, run_calls):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(config_file), "--check"])
        assert exc_info.value.code == 0
        assert all("app" not in call for call in run_calls)

    def test_missing_browse_template_exits(self, tmp_path, run_calls):
        path = tmp_path / "s3proxy.yaml"
        path.write_text(
            "proxy:\n"
            "  bucket: site\n"
            f"  browse_template: {tmp_path / 'missing.html'}\n"
            "observability:\n"
            "  metrics: false\n"
        )
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(path), "--check"])
        assert exc_info.value.code == 1


class TestApplyOverrides:
    """Tests for apply_overrides()."""

    def test_no_flags_keeps_config(self, config_file):
        config = cli.load_config(config_file)
        proxy = config.proxy
        cli.apply_overrides(config, cli.parse_args([]))
        assert config.proxy is proxy
        assert config.server.port == 9000

    def test_server_flags(self, config_file):
        config = cli.apply_overrides(
            cli.load_config(config_file), cli.parse_args(["--port", "81", "--log-format", "json"])
        )
        assert config.server.port == 81
        assert config.server.log_format == "json"
        assert config.server.host == "0.0.0.0"
