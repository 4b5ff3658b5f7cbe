"""
Tests for the CLI — global options, flag handling, identity errors and
full runs against the fake host.
"""

import json

from click.testing import CliRunner

from podstack.main import cli


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "rootless podman" in result.output
        for command in ("install", "uninstall", "check"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_install_group_lists_components(self):
        result = CliRunner().invoke(cli, ["install", "--help"])
        assert result.exit_code == 0
        for name in ("stack", "crun", "passt", "conmon", "compose", "go"):
            assert name in result.output


class TestFlagHandling:
    def test_subcommand_help_exits_zero(self):
        result = CliRunner().invoke(cli, ["install", "stack", "--help"])
        assert result.exit_code == 0
        assert "Usage: podstack install stack [OPTIONS]" in result.output
        assert "--socket-timeout|-t <value>" in result.output

    def test_short_help(self):
        result = CliRunner().invoke(cli, ["uninstall", "crun", "-h"])
        assert result.exit_code == 0
        assert "--keep-system" not in result.output

    def test_unknown_flag(self):
        result = CliRunner().invoke(cli, ["install", "stack", "--frobnicate"])
        assert result.exit_code == 1
        assert "Unknown flag: --frobnicate" in result.output

    def test_bad_cidr(self):
        result = CliRunner().invoke(cli, ["install", "stack", "--subnet", "10.0.0.0/40"])
        assert result.exit_code == 1
        assert "Invalid CIDR format: 10.0.0.0/40" in result.output

    def test_flag_not_accepted_by_component(self):
        result = CliRunner().invoke(cli, ["install", "crun", "--subnet", "10.0.0.0/24"])
        assert result.exit_code == 1
        assert "Unknown flag: --subnet" in result.output


class TestIdentityErrors:
    def test_unknown_user(self, cli_obj, config_file):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "install", "stack", "--user", "ghost", "-y"], obj=cli_obj,
        )
        assert result.exit_code == 1
        assert "User 'ghost' does not exist" in result.output
        assert "useradd" in result.output

    def test_root_operator_rejected(self, cli_obj, config_file):
        cli_obj["accounts"].euid = 0
        result = CliRunner().invoke(cli, ["--config", str(config_file), "install", "crun"], obj=cli_obj)
        assert result.exit_code == 1
        assert "must not be run as root" in result.output

    def test_operator_without_group(self, cli_obj, config_file):
        cli_obj["accounts"].groups = {"users"}
        result = CliRunner().invoke(cli, ["--config", str(config_file), "install", "crun"], obj=cli_obj)
        assert result.exit_code == 1
        assert "not in the 'sudo' group" in result.output

    def test_no_phase_runs_on_rejection(self, cli_obj, config_file, runner):
        CliRunner().invoke(
            cli, ["--config", str(config_file), "uninstall", "stack", "--user", "ghost", "-y"], obj=cli_obj,
        )
        assert runner.calls == []

    def test_bad_config(self, cli_obj, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("retry:\n  max_attempts: 0\n")
        result = CliRunner().invoke(cli, ["--config", str(bad), "install", "go"], obj=cli_obj)
        assert result.exit_code == 1
        assert "Invalid stack configuration" in result.output


class TestRuns:
    def test_install_stack(self, cli_obj, config_file, target, host):
        result = CliRunner().invoke(
            cli,
            ["--config", str(config_file), "install", "stack", "-y", "--subnet", "10.89.0.0/24", "-t", "45"],
            obj=cli_obj,
        )
        assert result.exit_code == 0, result.output
        assert "Install stack completed for podman_user" in result.output
        assert 'default_subnet = "10.89.0.0/24"' in (target.config_dir / "containers.conf").read_text()
        assert list((host / "logs").glob("debug_*.log"))

    def test_gate_declined_without_yes(self, cli_obj, config_file, runner):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "install", "stack"], obj=cli_obj, input="n\n",
        )
        assert result.exit_code == 1
        assert "Aborted by operator before phase 1" in result.output
        assert not runner.ran("apt-get")

    def test_component_defaults_to_operator(self, cli_obj, config_file, operator):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "install", "passt"], obj=cli_obj)
        assert result.exit_code == 0, result.output
        assert (operator.home / ".local" / "bin" / "pasta").exists()

    def test_fatal_phase_exit_code(self, cli_obj, config_file, runner):
        runner.fail_on["./autogen.sh"] = 1
        result = CliRunner().invoke(cli, ["--config", str(config_file), "install", "crun"], obj=cli_obj)
        assert result.exit_code == 1
        assert "Phase 2 (Build and install crun) failed" in result.output

    def test_uninstall_clean_host(self, cli_obj, config_file):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "uninstall", "stack", "--yes", "--keep-system"], obj=cli_obj,
        )
        assert result.exit_code == 0, result.output
        assert "Uninstall stack completed" in result.output


class TestCheckCommand:
    def test_reports_missing_stack(self, cli_obj, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "check"], obj=cli_obj)
        assert result.exit_code == 1
        assert "critical check(s) failed" in result.output

    def test_passes_after_install(self, cli_obj, config_file):
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(config_file), "install", "stack", "-y"], obj=cli_obj)
        result = runner.invoke(cli, ["--config", str(config_file), "check", "--user", "podman_user"], obj=cli_obj)
        assert result.exit_code == 0, result.output
        assert "All critical checks passed" in result.output

    def test_json_output(self, cli_obj, config_file):
        result = CliRunner().invoke(cli, ["--json", "--config", str(config_file), "check"], obj=cli_obj)
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["ok"] is False
        assert set(data) == {"ok", "permissions", "prerequisites"}
