"""Configuration file evaluation.

A configuration file uses Python expression syntax but is never executed as
Python. It is parsed with ``ast`` and walked by a small evaluator that
accepts only:

- assignment to a plain name, bare expression statements and ``pass``
- str/int/float/bool/None literals, lists, tuples and dicts
- name lookup, ``+`` on matching types
- calls to the builtins below, with positional and keyword arguments

Anything else (imports, attribute access, subscripts, loops, function
definitions, comprehensions, ``*args``) is rejected with a ConfigError naming
the line. Evaluation only reads the filesystem (glob expansion); all side
effects are deferred to pipeline execution.

Builtins:
    glob(patterns, exclude=[])
    file_manifest(include, exclude=[], relative_to=CWD, prefix="")
    file_manifest_from_files(files, relative_to=CWD, prefix="")
    snap(name, description, summary, version, base=None, parts={}, apps={}, ...)
    snap_part(plugin=None, source=None, ...)
    snap_app(command=None, ...)
    debian_control_binary_package(package, version, architecture, maintainer,
                                  description, homepage=None, section=None,
                                  priority=None, depends=[], ...)
    debian_deb_archive(control, manifest, backend="builtin")
    tar_archive(name, manifest)
    snapcraft(args, descriptor, build_dir, manifest, purge_build=True)
    pipeline(name, steps)

Predefined names: CWD (configuration directory), DIST_PATH.
"""

import ast
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import manifest as manifest_builder
from common import is_safe_relative
from config import ConfigError, EngineContext
from descriptors import (
    DebianControl,
    SnapDescriptor,
    debian_control_binary_package,
    snap,
    snap_app,
    snap_part,
)
from manifest import FileManifest, ManifestError, SourceFile
from pipeline.registry import Pipeline, PipelineRegistry
from steps.types import DEB_BACKENDS, DebianDebArchiveStep, SnapcraftStep, TarArchiveStep

logger = logging.getLogger(__name__)

LITERAL_TYPES = (str, int, float, bool, type(None))


def _str_list(builtin: str, name: str, value) -> list[str]:
    """Accept a string or a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"{builtin}(): '{name}' must be a string or a list of strings")


def _expect(builtin: str, name: str, value, expected: type, what: str):
    if not isinstance(value, expected):
        raise ConfigError(f"{builtin}(): '{name}' must be {what}; got {type(value).__name__}")
    return value


class Builtins:
    """Builtin functions bound to an engine context and a registry."""

    def __init__(self, context: EngineContext, registry: PipelineRegistry):
        self.context = context
        self.registry = registry

    def functions(self) -> dict[str, Callable[..., Any]]:
        return {
            'glob': self.glob,
            'file_manifest': self.file_manifest,
            'file_manifest_from_files': self.file_manifest_from_files,
            'snap': snap,
            'snap_part': snap_part,
            'snap_app': snap_app,
            'debian_control_binary_package': debian_control_binary_package,
            'debian_deb_archive': self.debian_deb_archive,
            'tar_archive': self.tar_archive,
            'snapcraft': self.snapcraft,
            'pipeline': self.pipeline,
        }

    def constants(self) -> dict[str, Any]:
        return {
            'CWD': str(self.context.cwd),
            'DIST_PATH': str(self.context.dist_path),
        }

    def _relative_to(self, builtin: str, value) -> Path:
        if value is None:
            return self.context.cwd
        return self.context.resolve(_expect(builtin, 'relative_to', value, str, 'a string'))

    def glob(self, patterns, exclude=None) -> list[SourceFile]:
        patterns = _str_list('glob', 'patterns', patterns)
        exclude = _str_list('glob', 'exclude', exclude) if exclude is not None else []
        files = manifest_builder.glob(patterns, exclude, cwd=self.context.cwd)
        logger.debug(f"glob({patterns}) matched {len(files)} files")
        return files

    def file_manifest(self, include, exclude=None, relative_to=None, prefix='') -> FileManifest:
        include = _str_list('file_manifest', 'include', include)
        exclude = _str_list('file_manifest', 'exclude', exclude) if exclude is not None else []
        prefix = _expect('file_manifest', 'prefix', prefix, str, 'a string')
        return manifest_builder.build(
            include, exclude,
            relative_to=self._relative_to('file_manifest', relative_to),
            prefix=prefix,
            cwd=self.context.cwd,
        )

    def file_manifest_from_files(self, files, relative_to=None, prefix='') -> FileManifest:
        if isinstance(files, str) or not isinstance(files, (list, tuple)):
            raise ConfigError("file_manifest_from_files(): 'files' must be a list")
        resolved = []
        for f in files:
            if isinstance(f, SourceFile):
                resolved.append(f)
            elif isinstance(f, str):
                resolved.append(self.context.resolve(f))
            else:
                raise ConfigError(
                    "file_manifest_from_files(): 'files' entries must be glob() results "
                    f"or paths; got {type(f).__name__}"
                )
        prefix = _expect('file_manifest_from_files', 'prefix', prefix, str, 'a string')
        return manifest_builder.from_files(
            resolved, self._relative_to('file_manifest_from_files', relative_to), prefix)

    def debian_deb_archive(self, control, manifest, backend='builtin') -> DebianDebArchiveStep:
        _expect('debian_deb_archive', 'control', control, DebianControl,
                'a debian_control_binary_package() value')
        _expect('debian_deb_archive', 'manifest', manifest, FileManifest, 'a file manifest')
        if backend not in DEB_BACKENDS:
            raise ConfigError(
                f"debian_deb_archive(): unknown backend {backend!r}. "
                f"Supported: {', '.join(DEB_BACKENDS)}"
            )
        return DebianDebArchiveStep(control=control, manifest=manifest, backend=backend)

    def tar_archive(self, name, manifest) -> TarArchiveStep:
        _expect('tar_archive', 'name', name, str, 'a string')
        if not is_safe_relative(name):
            raise ConfigError(f"tar_archive(): name {name!r} must be a relative path inside the dist path")
        _expect('tar_archive', 'manifest', manifest, FileManifest, 'a file manifest')
        return TarArchiveStep(name=name, manifest=manifest)

    def snapcraft(self, args, descriptor, build_dir, manifest, purge_build=True) -> SnapcraftStep:
        args = _str_list('snapcraft', 'args', args)
        _expect('snapcraft', 'descriptor', descriptor, SnapDescriptor, 'a snap() value')
        _expect('snapcraft', 'build_dir', build_dir, str, 'a string')
        if not is_safe_relative(build_dir):
            raise ConfigError(
                f"snapcraft(): build_dir {build_dir!r} must be a relative path "
                "inside the build root"
            )
        _expect('snapcraft', 'manifest', manifest, FileManifest, 'a file manifest')
        _expect('snapcraft', 'purge_build', purge_build, bool, 'a bool')
        return SnapcraftStep(
            args=tuple(args),
            descriptor=descriptor,
            build_dir=build_dir,
            manifest=manifest,
            purge_build=purge_build,
        )

    def pipeline(self, name, steps) -> Pipeline:
        return self.registry.register(name, steps)


class Evaluator:
    """Walks a parsed configuration, dispatching calls to Builtins."""

    def __init__(self, context: EngineContext, filename: str = '<config>',
                 registry: Optional[PipelineRegistry] = None):
        self.context = context
        self.filename = filename
        self.registry = registry if registry is not None else PipelineRegistry()
        builtins = Builtins(context, self.registry)
        self.functions = builtins.functions()
        self.names: dict[str, Any] = builtins.constants()

    def _error(self, node: ast.AST, message: str) -> ConfigError:
        return ConfigError(f"{self.filename}:{getattr(node, 'lineno', '?')}: {message}")

    def evaluate(self, source: str) -> PipelineRegistry:
        """Evaluate configuration source and return the populated registry.

        Raises:
            ConfigError: Syntax error, disallowed construct, or invalid builtin call
            ManifestError: Manifest construction failed
        """
        try:
            tree = ast.parse(source, filename=self.filename)
        except SyntaxError as e:
            raise ConfigError(f"{self.filename}:{e.lineno}: syntax error: {e.msg}") from None

        for stmt in tree.body:
            self._statement(stmt)

        logger.debug(f"Evaluated {self.filename}: {len(self.registry)} pipelines")
        return self.registry

    def _statement(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Pass):
            return
        if isinstance(stmt, ast.Expr):
            self._expression(stmt.value)
            return
        if isinstance(stmt, ast.Assign):
            if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
                raise self._error(stmt, "only assignment to a single name is allowed")
            target = stmt.targets[0].id
            if target in self.functions or target in ('CWD', 'DIST_PATH'):
                raise self._error(stmt, f"cannot assign to builtin name '{target}'")
            self.names[target] = self._expression(stmt.value)
            return
        raise self._error(stmt, f"{type(stmt).__name__} statements are not allowed")

    def _expression(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            if not isinstance(node.value, LITERAL_TYPES):
                raise self._error(node, f"{type(node.value).__name__} literals are not allowed")
            return node.value

        if isinstance(node, ast.List):
            return [self._element(e) for e in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self._element(e) for e in node.elts)

        if isinstance(node, ast.Dict):
            result = {}
            for key, value in zip(node.keys, node.values):
                if key is None:
                    raise self._error(node, "'**' unpacking is not allowed")
                k = self._expression(key)
                if not isinstance(k, (str, int)):
                    raise self._error(key, "dict keys must be strings or integers")
                result[k] = self._expression(value)
            return result

        if isinstance(node, ast.Name):
            if node.id in self.names:
                return self.names[node.id]
            if node.id in self.functions:
                raise self._error(node, f"builtin '{node.id}' must be called")
            raise self._error(node, f"name '{node.id}' is not defined")

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
            left = self._expression(node.left)
            right = self._expression(node.right)
            for kind in (str, list, tuple, int):
                if isinstance(left, kind) and isinstance(right, kind) and not isinstance(left, bool):
                    return left + right
            raise self._error(
                node, f"unsupported operands for +: {type(left).__name__} and {type(right).__name__}")

        if isinstance(node, ast.Call):
            return self._call(node)

        raise self._error(node, f"{type(node).__name__} expressions are not allowed")

    def _element(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Starred):
            raise self._error(node, "'*' unpacking is not allowed")
        return self._expression(node)

    def _call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name):
            raise self._error(node, "only builtin functions can be called")
        name = node.func.id
        fn = self.functions.get(name)
        if fn is None:
            raise self._error(node, f"unknown function '{name}'")

        args = [self._element(a) for a in node.args]
        kwargs = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise self._error(node, "'**' unpacking is not allowed")
            kwargs[kw.arg] = self._expression(kw.value)

        try:
            inspect.signature(fn).bind(*args, **kwargs)
        except TypeError as e:
            raise self._error(node, f"{name}(): {e}") from None

        try:
            return fn(*args, **kwargs)
        except ConfigError as e:
            raise self._error(node, str(e)) from e
        except ManifestError as e:
            raise ManifestError(f"{self.filename}:{node.lineno}: {e}") from e


def evaluate_source(source: str, context: EngineContext, filename: str = '<config>') -> PipelineRegistry:
    """Evaluate configuration text into a PipelineRegistry."""
    return Evaluator(context, filename=filename).evaluate(source)


def evaluate_file(path: Path, context: EngineContext) -> PipelineRegistry:
    """Evaluate a configuration file into a PipelineRegistry.

    Raises:
        ConfigError: Unreadable file or invalid configuration
        ManifestError: Manifest construction failed
    """
    try:
        source = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigError(f"Unable to read {path}: {e}") from e
    logger.debug(f"Evaluating {path}")
    return evaluate_source(source, context, filename=Path(path).name)
