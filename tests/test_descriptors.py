"""Tests for descriptors - snap and Debian control validation and rendering."""

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import ConfigError
from descriptors import (
    DebianControl,
    debian_control_binary_package,
    snap,
    snap_app,
    snap_part,
)


def _control(**overrides):
    values = {
        'package': 'tugger',
        'version': '1.0.0-1',
        'architecture': 'amd64',
        'maintainer': 'Packager <packager@example.com>',
        'description': 'Packaging engine',
    }
    values.update(overrides)
    return debian_control_binary_package(**values)


class TestDebianControl:
    """Tests for debian_control_binary_package()."""

    def test_valid(self):
        control = _control(depends=['libc6 (>= 2.31)', ' python3 '], section='utils')
        assert isinstance(control, DebianControl)
        assert control.depends == ('libc6 (>= 2.31)', 'python3')
        assert control.section == 'utils'

    @pytest.mark.parametrize('name', ['MyPkg', 'my pkg', 'a', '-pkg', ''])
    def test_invalid_package_name(self, name):
        with pytest.raises(ConfigError, match='Invalid Debian package name'):
            _control(package=name)

    @pytest.mark.parametrize('name', ['tugger', 'lib64z1', 'g++-12', 'python3.12'])
    def test_valid_package_name(self, name):
        assert _control(package=name).package == name

    def test_unknown_architecture(self):
        with pytest.raises(ConfigError, match='Unknown architecture'):
            _control(architecture='x86')

    def test_architecture_all(self):
        assert _control(architecture='all').architecture == 'all'

    def test_empty_version(self):
        with pytest.raises(ConfigError, match='version'):
            _control(version='  ')

    def test_version_with_whitespace(self):
        with pytest.raises(ConfigError, match='whitespace'):
            _control(version='1.0 beta')

    def test_missing_maintainer(self):
        with pytest.raises(ConfigError, match='maintainer'):
            _control(maintainer='')

    def test_depends_must_be_list(self):
        with pytest.raises(ConfigError, match='list of strings'):
            _control(depends='libc6')

    def test_empty_depends_entry(self):
        with pytest.raises(ConfigError, match='empty entry'):
            _control(depends=['libc6', ''])

    def test_unknown_argument(self):
        with pytest.raises(ConfigError, match='unexpected arguments'):
            _control(vendor='me')

    def test_optional_relationships(self):
        control = _control(recommends=['git'], conflicts=['tugger-legacy'])
        fields = dict(control.control_fields())
        assert fields['Recommends'] == 'git'
        assert fields['Conflicts'] == 'tugger-legacy'

    def test_deb_filename_drops_epoch(self):
        assert _control(version='2:1.4-1').deb_filename == 'tugger_1.4-1_amd64.deb'

    def test_control_text(self):
        control = _control(
            depends=['libc6', 'python3'],
            homepage='https://example.com',
            description='Packaging engine\nBuilds snaps and debs.\n\nReproducibly.',
        )
        assert control.to_control_text() == (
            'Package: tugger\n'
            'Version: 1.0.0-1\n'
            'Architecture: amd64\n'
            'Maintainer: Packager <packager@example.com>\n'
            'Depends: libc6, python3\n'
            'Homepage: https://example.com\n'
            'Description: Packaging engine\n'
            ' Builds snaps and debs.\n'
            ' .\n'
            ' Reproducibly.\n'
        )


class TestSnap:
    """Tests for snap(), snap_part() and snap_app()."""

    def _snap(self, **overrides):
        values = {
            'name': 'tugger',
            'description': 'Packaging engine',
            'summary': 'Builds packages',
            'version': '1.0',
            'base': 'core22',
            'parts': {'tugger': snap_part(plugin='dump', source='.')},
            'apps': {'tugger': snap_app(command='bin/tugger')},
        }
        values.update(overrides)
        return snap(**values)

    def test_valid(self):
        descriptor = self._snap(confinement='strict', grade='stable')
        assert descriptor.name == 'tugger'
        assert descriptor.confinement == 'strict'

    def test_requires_version(self):
        with pytest.raises(ConfigError, match='version'):
            self._snap(version='')

    def test_requires_parts(self):
        with pytest.raises(ConfigError, match='at least one part'):
            self._snap(parts={})

    def test_part_must_be_snap_part(self):
        with pytest.raises(ConfigError, match='snap_part'):
            self._snap(parts={'tugger': {'plugin': 'dump'}})

    def test_app_must_be_snap_app(self):
        with pytest.raises(ConfigError, match='snap_app'):
            self._snap(apps={'tugger': 'bin/tugger'})

    def test_unknown_argument(self):
        with pytest.raises(ConfigError, match='unexpected arguments'):
            self._snap(architectures=['amd64'])

    def test_snap_part_list_fields(self):
        part = snap_part(plugin='python', source='.', build_packages=['gcc'])
        assert part.build_packages == ['gcc']
        with pytest.raises(ConfigError, match='list of strings'):
            snap_part(plugin='python', stage_packages='gcc')

    def test_snap_app_environment(self):
        app = snap_app(command='bin/tugger', environment={'LANG': 'C.UTF-8'}, plugs=['home'])
        assert app.to_dict() == {
            'command': 'bin/tugger',
            'environment': {'LANG': 'C.UTF-8'},
            'plugs': ['home'],
        }

    def test_app_without_command_warns(self, caplog):
        self._snap(apps={'daemon': snap_app(daemon='simple')})
        assert "app 'daemon' has no command" in caplog.text

    def test_render_yaml(self):
        descriptor = self._snap(
            snap_type='app',
            parts={'tugger': snap_part(plugin='dump', source='.', override_build='snapcraftctl build')},
        )
        data = yaml.safe_load(descriptor.to_yaml())
        assert list(data)[:4] == ['name', 'description', 'summary', 'version']
        assert data['base'] == 'core22'
        assert data['type'] == 'app'
        assert data['parts']['tugger'] == {
            'plugin': 'dump',
            'source': '.',
            'override-build': 'snapcraftctl build',
        }
        assert data['apps']['tugger'] == {'command': 'bin/tugger'}
        assert 'grade' not in data

    def test_unresolved_commands(self):
        descriptor = self._snap(apps={
            'tugger': snap_app(command='$SNAP/bin/tugger --verbose'),
            'missing': snap_app(command='bin/missing'),
        })
        assert descriptor.unresolved_commands(['bin/tugger', 'README.md']) == ['missing']

    def test_unresolved_commands_inconclusive_for_build_plugins(self):
        descriptor = self._snap(
            parts={'tugger': snap_part(plugin='python', source='.')},
            apps={'missing': snap_app(command='bin/missing')},
        )
        assert descriptor.unresolved_commands(['README.md']) == []
