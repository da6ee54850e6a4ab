"""Tests for the command-line interface."""

from click.testing import CliRunner

from parcelwatch.cli import cli


def _write_config(tmp_path, **overrides):
    settings = {
        "PARCELS_SERVICE_URL": "http://127.0.0.1:1",
        "DB_PATH": str(tmp_path / "data" / "parcelwatch.db"),
        "LOG_FILE": str(tmp_path / "logs" / "parcelwatch.log"),
    }
    settings.update(overrides)
    path = tmp_path / "parcelwatch.env"
    path.write_text("".join(f"{key}={value}\n" for key, value in settings.items()))
    return str(path)


class TestInit:
    """Tests for the init command."""

    def test_writes_template(self, clean_env, tmp_path):
        target = tmp_path / "new.env"

        result = CliRunner().invoke(cli, ["init", str(target)])

        assert result.exit_code == 0
        assert "PARCELS_SERVICE_URL=" in target.read_text()
        assert "POLLING_DURATION=10m" in target.read_text()
        assert "BOT_TOKEN" not in target.read_text()


class TestStatus:
    """Tests for the status command."""

    def test_reports_missing_settings(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path, PARCELS_SERVICE_URL="")

        result = CliRunner().invoke(cli, ["--config", config_file, "status"])

        assert result.exit_code == 0
        assert "PARCELS_SERVICE_URL is required" in result.output


class TestTrackingCommands:
    """Tests for list/show/untrack against an empty store."""

    def test_list_empty(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path)

        result = CliRunner().invoke(cli, ["--config", config_file, "list", "--user", "42"])

        assert result.exit_code == 0
        assert "No parcels tracked" in result.output

    def test_show_unknown(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path)

        result = CliRunner().invoke(cli, ["--config", config_file, "show", "TRACK123"])

        assert result.exit_code == 0
        assert "not tracked" in result.output

    def test_untrack_unknown(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path)

        result = CliRunner().invoke(cli, ["--config", config_file, "untrack", "TRACK123"])

        assert result.exit_code == 0
        assert "not tracked" in result.output

    def test_logs_with_bad_duration_exits(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path, POLLING_DURATION="soon")

        result = CliRunner().invoke(cli, ["--config", config_file, "logs"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_missing_configuration_exits(self, clean_env, tmp_path):
        config_file = _write_config(tmp_path, DB_PATH="")

        result = CliRunner().invoke(cli, ["--config", config_file, "list"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
