import json

import pytest
from typer.testing import CliRunner

from cli.main import app


runner = CliRunner()


@pytest.fixture(autouse=True)
def offline_env(monkeypatch, tmp_path):
    """Backend inalcanzable (puerto cerrado) y config aislada en tmp."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("RANCHSYNC_API_BASE_URL", "http://127.0.0.1:9/api")
    monkeypatch.setenv("RANCHSYNC_HTTP_MAX_RETRIES", "0")
    monkeypatch.setenv("RANCHSYNC_HTTP_TIMEOUT_MS", "2000")
    monkeypatch.setenv("RANCHSYNC_HEALTH_PROBE_TIMEOUT_MS", "2000")
    monkeypatch.setenv("RANCHSYNC_CREDENTIALS_PATH", str(tmp_path / "credentials.json"))
    monkeypatch.setenv("RANCHSYNC_DATA_DIR", str(tmp_path / "data"))
    return tmp_path


class TestOfflineCommands:
    def test_overview_falls_back_to_demo_data(self):
        result = runner.invoke(app, ["-q", "overview", "stats"])

        assert result.exit_code == 0, result.output
        assert "fallback" in result.output.lower()

    def test_unknown_overview_is_rejected(self):
        result = runner.invoke(app, ["-q", "overview", "weather"])
        assert result.exit_code != 0

    def test_status_exits_non_zero_when_offline(self):
        result = runner.invoke(app, ["-q", "status"])
        assert result.exit_code == 1

    def test_pins_exports_demo_herd(self, offline_env):
        out = offline_env / "pins.geojson"

        result = runner.invoke(app, ["-q", "pins", "--simulated", "--json", str(out)])

        assert result.exit_code == 0, result.output
        assert len(json.loads(out.read_text(encoding="utf-8"))["features"]) == 5

    def test_add_with_invalid_fields_fails_before_network(self):
        result = runner.invoke(
            app, ["-q", "add", "--ear-tag", "X-1", "--breed", "Gyr", "--age", "0", "--sex", "female"]
        )

        assert result.exit_code == 1
        assert "age" in result.output


class TestDoctor:
    def test_doctor_reports_unreachable_backend(self):
        result = runner.invoke(app, ["-q", "doctor", "run"])

        assert result.exit_code == 0, result.output
        assert "FAIL" in result.output
        assert "Fallback datasets" in result.output

    def test_verbose_run_writes_log_file(self, offline_env):
        log_file = offline_env / "logs" / "ranchsync.log"

        result = runner.invoke(app, ["-q", "-v", "--log-file", str(log_file), "overview", "stats"])

        assert result.exit_code == 0, result.output
        assert log_file.is_file()


class TestCredentials:
    def test_login_then_logout(self, offline_env):
        path = offline_env / "credentials.json"

        result = runner.invoke(app, ["-q", "login", "--token", "abc"])
        assert result.exit_code == 0, result.output
        assert json.loads(path.read_text(encoding="utf-8"))["token"] == "abc"

        result = runner.invoke(app, ["-q", "logout"])
        assert result.exit_code == 0
        assert not path.exists()


class TestOfflineMutations:
    def test_move_on_demo_data_is_refused(self):
        result = runner.invoke(app, ["-q", "move", "demo-001", "--lat", "17.98", "--lng", "-92.93"])

        assert result.exit_code == 1
        assert "demo data" in result.output

    def test_profile_without_changes_shows_demo_profile(self):
        result = runner.invoke(app, ["-q", "profile"])

        assert result.exit_code == 0, result.output
        assert "Rancho Demo" in result.output

    def test_profile_update_needs_the_server(self):
        result = runner.invoke(app, ["-q", "profile", "--owner", "Luis"])

        assert result.exit_code == 1
        assert "No connection" in result.output
