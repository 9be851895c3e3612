"""Shared pytest fixtures for tugger tests."""

import os
import stat
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import EngineContext


@pytest.fixture
def source_tree(tmp_path):
    """Create a small project tree to build manifests from.

    Layout under tmp_path/project:
    - src/tugger/__init__.py
    - src/tugger/core.py
    - src/tugger/data/.hidden
    - src/tmp/scratch.txt
    - src/tmp/nested/deep.txt
    - bin/tugger (executable)
    - README.md
    """
    root = tmp_path / 'project'
    files = {
        'src/tugger/__init__.py': '',
        'src/tugger/core.py': 'VALUE = 1\n',
        'src/tugger/data/.hidden': 'hidden\n',
        'src/tmp/scratch.txt': 'scratch\n',
        'src/tmp/nested/deep.txt': 'deep\n',
        'bin/tugger': '#!/bin/sh\necho tugger\n',
        'README.md': '# project\n',
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    tool = root / 'bin/tugger'
    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return root


@pytest.fixture
def tool_dir(tmp_path):
    """Empty directory used as the external tool search path."""
    path = tmp_path / 'tools'
    path.mkdir()
    return path


@pytest.fixture
def context(source_tree, tool_dir):
    """EngineContext rooted at the source tree, with isolated dist/build dirs."""
    return EngineContext(
        cwd=source_tree,
        dist_path=source_tree.parent / 'dist',
        build_root=source_tree.parent / 'build',
        tool_path=str(tool_dir),
        source_date_epoch=0,
    )


@pytest.fixture
def make_tool(tool_dir):
    """Factory writing fake executables into the tool search path.

    Usage: make_tool('snapcraft', 'touch demo_1.0_amd64.snap')
    """
    def _make(name: str, body: str) -> Path:
        path = tool_dir / name
        path.write_text(f'#!/bin/sh\n{body}\n')
        path.chmod(0o755)
        return path
    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove tugger-related environment variables."""
    for key in ('TUGGER_CONFIG', 'TUGGER_DIST_PATH', 'TUGGER_BUILD_ROOT',
                'TUGGER_TOOL_PATH', 'SOURCE_DATE_EPOCH'):
        monkeypatch.delenv(key, raising=False)
    return os.environ
