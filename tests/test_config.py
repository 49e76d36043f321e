"""
Tests for configuration loading and path helpers.
"""

from pathlib import Path

import pytest

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.common.paths import resolve_path, ensure_parent


class TestLoadConfig:
    """Tests for YAML config loading."""

    def test_default_config_loads(self):
        """The shipped default config should load and hold the main blocks."""
        cfg = load_config()
        for key in ('data', 'recode', 'models', 'sensitivity', 'output'):
            assert key in cfg

    def test_missing_file_raises(self, tmp_path):
        """A missing config path should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_custom_file(self, tmp_path):
        """A custom YAML file should be parsed into a dict."""
        path = tmp_path / "cfg.yaml"
        path.write_text("models:\n  aggregate: false\n")
        assert load_config(str(path)) == {'models': {'aggregate': False}}

    def test_empty_file_gives_empty_dict(self, tmp_path):
        """An empty YAML file should give an empty dict, not None."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_sequence_has_base_model(self):
        """The configured base model must be part of the model sequence."""
        cfg = load_config()
        names = [m['name'] for m in cfg['models']['sequence']]
        assert cfg['models']['base_model'] in names


class TestRequire:
    """Tests for nested required keys."""

    def test_returns_nested_value(self):
        assert require({'a': {'b': 3}}, 'a', 'b') == 3

    def test_missing_key_raises(self):
        with pytest.raises(ValueError, match="Missing a.c in config"):
            require({'a': {'b': 3}}, 'a', 'c')

    def test_none_value_raises(self):
        with pytest.raises(ValueError):
            require({'a': None}, 'a')


class TestPaths:
    """Tests for path resolution."""

    def test_relative_joined_to_root(self, tmp_path):
        assert resolve_path(tmp_path, "data/x.csv") == tmp_path / "data" / "x.csv"

    def test_absolute_passes_through(self, tmp_path):
        target = tmp_path / "secure" / "visits.csv"
        assert resolve_path(Path("/elsewhere"), str(target)) == target

    def test_get_data_path_under_root(self):
        assert get_data_path("results/tables") == get_project_root() / "results" / "tables"

    def test_ensure_parent_creates_directory(self, tmp_path):
        path = ensure_parent(tmp_path / "a" / "b" / "file.csv")
        assert path.parent.is_dir()
