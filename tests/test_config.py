"""
Tests for configuration loading — podstack.yml discovery and validation.
"""

import textwrap
from pathlib import Path

import pytest

from podstack.core.config.loader import CONFIG_ENV_VAR, ConfigError, find_config_file, load_config
from podstack.core.models.stack import StackConfig


@pytest.fixture(autouse=True)
def _no_env_config(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestFindConfigFile:
    def test_finds_in_current_dir(self, tmp_path: Path):
        (tmp_path / "podstack.yml").write_text("")
        assert find_config_file(tmp_path) == (tmp_path / "podstack.yml").resolve()

    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "podstack.yml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "podstack.yml").resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.versions.podman == "v5.3.1"
        assert config.build_dir == Path("/tmp")

    def test_partial_file_merges_defaults(self, tmp_path: Path):
        path = tmp_path / "podstack.yml"
        path.write_text(textwrap.dedent("""\
            versions:
              podman: v5.4.0
            readiness:
              socket_timeout: 90
        """))
        config = load_config(path)
        assert config.versions.podman == "v5.4.0"
        assert config.versions.go == "1.23.4"
        assert config.readiness.socket_timeout == 90
        assert config.readiness.interval == 2

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "podstack.yml"
        path.write_text("")
        assert load_config(path) == StackConfig()

    def test_env_var(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "custom.yml"
        path.write_text("privileged_group: wheel\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().privileged_group == "wheel"

    def test_explicit_missing(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "podstack.yml"
        path.write_text("versions: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "podstack.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize("body", [
        "build_dir: relative/path\n",
        "readiness:\n  interval: 10\n  socket_timeout: 5\n",
        "retry:\n  multiplier: 1\n",
        "min_target_uid: 0\n",
    ])
    def test_validation_errors(self, tmp_path: Path, body):
        path = tmp_path / "podstack.yml"
        path.write_text(body)
        with pytest.raises(ConfigError) as exc:
            load_config(path)
        assert "podstack.yml.example" in exc.value.hint


class TestStackConfig:
    def test_build_path(self):
        assert StackConfig().build_path("crun") == Path("/tmp/crun")
