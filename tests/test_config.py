"""Tests for config.py - settings layering and config discovery."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import (
    ConfigError,
    EngineContext,
    find_config_file,
    load_context,
    load_settings_file,
)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / 'project'
    root.mkdir()
    (root / 'tugger.ship').write_text('pass\n')
    return root


class TestEngineContext:
    """Tests for EngineContext helpers."""

    def test_resolve_relative(self, tmp_path):
        ctx = EngineContext(cwd=tmp_path, dist_path=tmp_path, build_root=tmp_path / 'build')
        assert ctx.resolve('dist') == tmp_path / 'dist'
        assert ctx.resolve('/abs') == Path('/abs')

    def test_with_overrides_ignores_none(self, tmp_path):
        ctx = EngineContext(cwd=tmp_path, dist_path=tmp_path, build_root=tmp_path / 'build')
        updated = ctx.with_overrides(dist_path=None, build_root='out/build')
        assert updated.dist_path == tmp_path
        assert updated.build_root == tmp_path / 'out/build'


class TestLoadSettingsFile:
    """Tests for tugger.yaml parsing."""

    def test_missing_file(self, tmp_path):
        assert load_settings_file(tmp_path / 'tugger.yaml') == {}

    def test_settings_mapping(self, tmp_path):
        path = tmp_path / 'tugger.yaml'
        path.write_text('settings:\n  dist_path: dist\n  source_date_epoch: 1700000000\n')
        assert load_settings_file(path) == {'dist_path': 'dist', 'source_date_epoch': 1700000000}

    def test_unknown_key(self, tmp_path):
        path = tmp_path / 'tugger.yaml'
        path.write_text('settings:\n  dist: out\n')
        with pytest.raises(ConfigError, match="unknown settings \\['dist'\\]"):
            load_settings_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'tugger.yaml'
        path.write_text('settings: [unclosed\n')
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_settings_file(path)

    def test_settings_not_mapping(self, tmp_path):
        path = tmp_path / 'tugger.yaml'
        path.write_text('settings: [a, b]\n')
        with pytest.raises(ConfigError, match="'settings' must be a mapping"):
            load_settings_file(path)


class TestFindConfigFile:
    """Tests for configuration discovery order."""

    def test_explicit_relative(self, project, clean_env):
        assert find_config_file('tugger.ship', cwd=project) == project / 'tugger.ship'

    def test_explicit_missing(self, project, clean_env):
        with pytest.raises(ConfigError, match='not found'):
            find_config_file('other.ship', cwd=project)

    def test_env_var(self, project, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv('TUGGER_CONFIG', str(project / 'tugger.ship'))
        assert find_config_file(cwd=tmp_path) == project / 'tugger.ship'

    def test_env_var_missing_file(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv('TUGGER_CONFIG', str(tmp_path / 'nope.ship'))
        with pytest.raises(ConfigError, match='TUGGER_CONFIG'):
            find_config_file(cwd=tmp_path)

    def test_default_name(self, project, clean_env):
        assert find_config_file(cwd=project) == project / 'tugger.ship'

    def test_nothing_found(self, tmp_path, clean_env):
        with pytest.raises(ConfigError, match='tugger.ship not found'):
            find_config_file(cwd=tmp_path)


class TestLoadContext:
    """Tests for settings layering."""

    def test_defaults(self, project, tmp_path):
        ctx = load_context(project / 'tugger.ship', invocation_dir=tmp_path, env={'PATH': '/usr/bin'})
        assert ctx.cwd == project.resolve()
        assert ctx.dist_path == tmp_path
        assert ctx.build_root == project.resolve() / 'build'
        assert ctx.tool_path == '/usr/bin'
        assert ctx.source_date_epoch == 0

    def test_settings_file_layer(self, project, tmp_path):
        (project / 'tugger.yaml').write_text(
            'settings:\n  dist_path: dist\n  build_root: /var/tmp/tugger\n  source_date_epoch: 42\n')
        ctx = load_context(project / 'tugger.ship', invocation_dir=tmp_path, env={})
        assert ctx.dist_path == project.resolve() / 'dist'
        assert ctx.build_root == Path('/var/tmp/tugger')
        assert ctx.source_date_epoch == 42

    def test_env_overrides_settings_file(self, project, tmp_path):
        (project / 'tugger.yaml').write_text('settings:\n  dist_path: dist\n  tool_path: /opt/bin\n')
        env = {
            'TUGGER_DIST_PATH': '/srv/dist',
            'TUGGER_TOOL_PATH': '/snap/bin',
            'SOURCE_DATE_EPOCH': '1700000000',
        }
        ctx = load_context(project / 'tugger.ship', invocation_dir=tmp_path, env=env)
        assert ctx.dist_path == Path('/srv/dist')
        assert ctx.tool_path == '/snap/bin'
        assert ctx.source_date_epoch == 1700000000

    def test_invalid_epoch(self, project, tmp_path):
        with pytest.raises(ConfigError, match='SOURCE_DATE_EPOCH'):
            load_context(project / 'tugger.ship', invocation_dir=tmp_path,
                         env={'SOURCE_DATE_EPOCH': 'yesterday'})

    def test_negative_epoch_in_settings(self, project, tmp_path):
        (project / 'tugger.yaml').write_text('settings:\n  source_date_epoch: -1\n')
        with pytest.raises(ConfigError, match='must not be negative'):
            load_context(project / 'tugger.ship', invocation_dir=tmp_path, env={})
