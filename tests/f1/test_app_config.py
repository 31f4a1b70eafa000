"""Tests for oscamp.yaml loading (F1)."""

import pytest

from oscamp.config.app_config import (
    AppConfig,
    clear_config_cache,
    get_config_path,
    load_app_config,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point $OSCAMP_CONFIG at a writable file and return its path."""
    path = tmp_path / "oscamp.yaml"
    monkeypatch.setenv("OSCAMP_CONFIG", str(path))
    clear_config_cache()
    return path


class TestDefaults:
    def test_defaults_without_file(self):
        config = load_app_config()
        assert isinstance(config, AppConfig)
        assert config.curriculum == ["exercises.toml", "../exercises.toml"]
        assert config.runner.command == ["cargo", "test", "-p", "{package}"]
        assert config.runner.timeout_seconds == 300.0
        assert config.watch.debounce_seconds == pytest.approx(0.3)
        assert config.progress.persist is False
        assert config.platform.sysroots == {"riscv64": "/usr/riscv64-linux-gnu"}
        assert config.ui.max_output_lines == 30

    def test_config_is_cached(self):
        assert load_app_config() is load_app_config()

    def test_config_path_from_env(self, config_file):
        assert get_config_path() == config_file


class TestOverrides:
    def test_partial_section_keeps_other_defaults(self, config_file):
        config_file.write_text(
            "runner:\n"
            "  timeout_seconds: 60\n"
            "watch:\n"
            "  debounce_ms: 500\n",
            encoding="utf-8",
        )
        config = load_app_config()
        assert config.runner.timeout_seconds == 60.0
        assert config.runner.quiet_args == ["--quiet"]
        assert config.watch.debounce_ms == 500
        assert config.watch.poll_interval_ms == 200

    def test_zero_timeout_disables_it(self, config_file):
        config_file.write_text("runner:\n  timeout_seconds: 0\n", encoding="utf-8")
        assert load_app_config().runner.timeout_seconds is None

    def test_single_curriculum_string(self, config_file):
        config_file.write_text("curriculum: course/exercises.yaml\n", encoding="utf-8")
        assert load_app_config().curriculum == ["course/exercises.yaml"]

    def test_persistence_enabled(self, config_file):
        config_file.write_text(
            "progress:\n  persist: true\n  state_file: state.json\n", encoding="utf-8"
        )
        config = load_app_config()
        assert config.progress.persist is True
        assert config.progress.state_file == "state.json"

    def test_non_mapping_file_uses_defaults(self, config_file):
        config_file.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_app_config().ui.progress_width == 20

    def test_force_reload_picks_up_changes(self, config_file):
        config_file.write_text("ui:\n  progress_width: 10\n", encoding="utf-8")
        assert load_app_config().ui.progress_width == 10
        config_file.write_text("ui:\n  progress_width: 40\n", encoding="utf-8")
        assert load_app_config().ui.progress_width == 10
        assert load_app_config(force_reload=True).ui.progress_width == 40
