"""Tests for evaluator.py - restricted configuration evaluation."""

import sys
import textwrap
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import ConfigError
from evaluator import evaluate_file, evaluate_source
from manifest import ManifestError
from steps import DebianDebArchiveStep, SnapcraftStep, TarArchiveStep

FULL_CONFIG = '''
files = glob(["src/**/*", "bin/*"], exclude=["src/tmp/**"])
m = file_manifest_from_files(files, prefix="opt/tugger")

tugger_snap = snap(
    name="tugger",
    description="Packaging engine",
    summary="Builds packages",
    version="1.0",
    base="core22",
    parts={"tugger": snap_part(plugin="dump", source=".")},
    apps={"tugger": snap_app(command="opt/tugger/bin/tugger")},
    confinement="strict",
)

control = debian_control_binary_package(
    package="tugger",
    version="1.0-1",
    architecture="all",
    maintainer="Packager <packager@example.com>",
    description="Packaging engine",
    depends=["python3"],
)

pipeline("snap", [
    snapcraft(["pack"], tugger_snap, "snap", m, purge_build=False),
    snapcraft(["push"], tugger_snap, "snap", m),
])
pipeline("deb", [debian_deb_archive(control, m)])
pipeline("tar", [tar_archive("tugger-" + "1.0.tar", m)])
'''


def _evaluate(source: str, context):
    return evaluate_source(textwrap.dedent(source), context, filename='tugger.ship')


class TestEvaluate:
    """End-to-end evaluation of a configuration."""

    def test_full_config(self, context):
        registry = _evaluate(FULL_CONFIG, context)
        assert registry.names() == ['snap', 'deb', 'tar']

        pack, push = registry.get('snap').steps
        assert isinstance(pack, SnapcraftStep)
        assert pack.args == ('pack',)
        assert pack.purge_build is False
        assert push.purge_build is True
        assert pack.manifest.destinations == [
            'opt/tugger/bin/tugger',
            'opt/tugger/src/tugger/__init__.py',
            'opt/tugger/src/tugger/core.py',
            'opt/tugger/src/tugger/data/.hidden',
        ]

        (deb,) = registry.get('deb').steps
        assert isinstance(deb, DebianDebArchiveStep)
        assert deb.control.depends == ('python3',)
        assert deb.backend == 'builtin'

        (tar,) = registry.get('tar').steps
        assert isinstance(tar, TarArchiveStep)
        assert tar.name == 'tugger-1.0.tar'

    def test_evaluation_has_no_side_effects(self, context):
        _evaluate(FULL_CONFIG, context)
        assert not context.build_root.exists()
        assert not context.dist_path.exists()

    def test_file_manifest_builtin(self, context):
        registry = _evaluate('''
            pipeline("tar", [tar_archive("src.tar", file_manifest(
                ["src/**/*"], exclude=["src/tmp/**"], relative_to="src"))])
        ''', context)
        (step,) = registry.get('tar').steps
        assert step.manifest.destinations == [
            'tugger/__init__.py',
            'tugger/core.py',
            'tugger/data/.hidden',
        ]

    def test_predefined_names(self, context):
        registry = _evaluate('''
            m = file_manifest_from_files(glob("README.md"), relative_to=CWD)
            pipeline("tar", [tar_archive("docs.tar", m)])
        ''', context)
        assert registry.get('tar').steps[0].manifest.destinations == ['README.md']

    def test_pass_and_bare_literals(self, context):
        registry = _evaluate('''
            pass
            "a docstring-like expression"
        ''', context)
        assert registry.names() == []

    def test_evaluate_file(self, context):
        path = context.cwd / 'tugger.ship'
        path.write_text(FULL_CONFIG)
        assert evaluate_file(path, context).names() == ['snap', 'deb', 'tar']

    def test_missing_file(self, context):
        with pytest.raises(ConfigError, match='Unable to read'):
            evaluate_file(context.cwd / 'missing.ship', context)


class TestRejectedSyntax:
    """Anything outside the expression subset is a ConfigError with a line."""

    @pytest.mark.parametrize('source, message', [
        ('import os', 'Import statements are not allowed'),
        ('x = open("/etc/passwd").read()', 'only builtin functions can be called'),
        ('for f in []:\n    pass', 'For statements are not allowed'),
        ('def f():\n    pass', 'FunctionDef statements are not allowed'),
        ('x = [1][0]', 'Subscript expressions are not allowed'),
        ('x = [f for f in []]', 'ListComp expressions are not allowed'),
        ('x = glob(*["a"])', "'\\*' unpacking is not allowed"),
        ('x = lambda: 1', 'Lambda expressions are not allowed'),
        ('x = os.path', 'Attribute expressions are not allowed'),
        ('x = 1 - 1', 'BinOp expressions are not allowed'),
        ('a, b = 1, 2', 'only assignment to a single name'),
        ('x = undefined', "name 'undefined' is not defined"),
        ('x = eval("1")', "unknown function 'eval'"),
        ('glob = 1', "cannot assign to builtin name 'glob'"),
        ('x = b"bytes"', 'bytes literals are not allowed'),
        ('x = "a" + 1', 'unsupported operands for \\+'),
    ])
    def test_rejected(self, context, source, message):
        with pytest.raises(ConfigError, match=message):
            _evaluate(source, context)

    def test_error_names_line(self, context):
        with pytest.raises(ConfigError, match=r'^tugger\.ship:3: '):
            _evaluate('x = 1\ny = 2\nimport os\n', context)

    def test_syntax_error(self, context):
        with pytest.raises(ConfigError, match='syntax error'):
            _evaluate('pipeline("x", [', context)


class TestBuiltinValidation:
    """Builtin argument checking at evaluation time."""

    def test_wrong_arity(self, context):
        with pytest.raises(ConfigError, match='tar_archive\\(\\)'):
            _evaluate('tar_archive("a.tar")', context)

    def test_unknown_keyword(self, context):
        with pytest.raises(ConfigError, match='unexpected keyword|unexpected arguments'):
            _evaluate('glob("*", recurse=True)', context)

    def test_snapcraft_absolute_build_dir(self, context):
        source = FULL_CONFIG.replace('"snap", m, purge_build=False', '"/tmp/snap", m, purge_build=False')
        with pytest.raises(ConfigError, match='build_dir'):
            _evaluate(source, context)

    def test_snapcraft_requires_descriptor(self, context):
        with pytest.raises(ConfigError, match="'descriptor' must be a snap\\(\\) value"):
            _evaluate('m = file_manifest(["README.md"])\nsnapcraft(["pack"], "tugger", "snap", m)', context)

    def test_deb_unknown_backend(self, context):
        source = FULL_CONFIG.replace('debian_deb_archive(control, m)',
                                     'debian_deb_archive(control, m, backend="alien")')
        with pytest.raises(ConfigError, match='unknown backend'):
            _evaluate(source, context)

    def test_tar_name_escaping(self, context):
        with pytest.raises(ConfigError, match='must be a relative path'):
            _evaluate('tar_archive("../out.tar", file_manifest(["README.md"]))', context)

    def test_descriptor_errors_carry_line(self, context):
        source = 'x = 1\ndebian_control_binary_package("Bad Name", "1.0", "all", "me", "desc")\n'
        with pytest.raises(ConfigError, match=r'tugger\.ship:2: Invalid Debian package name'):
            _evaluate(source, context)

    def test_duplicate_pipeline(self, context):
        with pytest.raises(ConfigError, match='Duplicate pipeline name'):
            _evaluate('pipeline("a", [])\npipeline("a", [])', context)

    def test_pipeline_rejects_non_steps(self, context):
        with pytest.raises(ConfigError, match='step 0 is a str'):
            _evaluate('pipeline("a", ["not a step"])', context)

    def test_manifest_error_keeps_type(self, context):
        with pytest.raises(ManifestError, match='not relative to'):
            _evaluate('file_manifest(["README.md"], relative_to="src")', context)

    def test_escaping_prefix_rejected(self, context):
        with pytest.raises(ManifestError, match='escapes the install root'):
            _evaluate('file_manifest(["README.md"], prefix="../../escaped")', context)
