#!/usr/bin/env python3
"""CLI entry point for tugger.

Usage:
    tugger run <pipeline> [-c FILE] [--dist-path DIR] [--build-root DIR]
                          [--dry-run] [--json-output] [--verbose]
    tugger list [-c FILE] [--json-output]

Exit codes:
    0  success
    1  other error (workspace, staging, archive)
    2  configuration error
    3  manifest error
    4  external tool error
"""

import argparse
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

from config import ConfigError, EngineContext, TuggerError, find_config_file, load_context
from evaluator import evaluate_file
from manifest import ManifestError
from pipeline import PipelineRegistry, PipelineRunError, PipelineRunner
from tools import ToolError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_MANIFEST = 3
EXIT_TOOL = 4


def get_version() -> str:
    """Installed package version, or 'dev' when running from a checkout."""
    try:
        return version('tugger')
    except PackageNotFoundError:
        return 'dev'


def exit_code_for(error: BaseException) -> int:
    """Map an engine error (or a failed run's cause) to an exit code."""
    if isinstance(error, PipelineRunError):
        error = error.cause
    if isinstance(error, ConfigError):
        return EXIT_CONFIG
    if isinstance(error, ManifestError):
        return EXIT_MANIFEST
    if isinstance(error, ToolError):
        return EXIT_TOOL
    return EXIT_ERROR


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags.

    With --json-output, stdout carries only the JSON document and logs go
    to stderr.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr if json_output else sys.stdout,
        force=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--config', '-c',
        help='Configuration file (default: $TUGGER_CONFIG or ./tugger.ship)',
    )
    common.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    common.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )

    parser = argparse.ArgumentParser(
        prog='tugger',
        description='Declarative packaging engine - builds snaps, Debian packages and tar archives',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'tugger {get_version()}',
    )
    sub = parser.add_subparsers(dest='command', metavar='<command>')

    run = sub.add_parser('run', parents=[common], help='Run a named pipeline')
    run.add_argument('pipeline', help='Pipeline name')
    run.add_argument(
        '--dist-path',
        help='Directory receiving artifacts (default: current directory)',
    )
    run.add_argument(
        '--build-root',
        help='Workspace root for staging (default: <config dir>/build)',
    )
    run.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview steps without executing',
    )

    sub.add_parser('list', parents=[common], help='List pipelines defined in the configuration')
    return parser


def _load(args, invocation_dir: Path) -> tuple[EngineContext, PipelineRegistry]:
    """Discover the config file, build the context and evaluate it."""
    config_file = find_config_file(args.config, cwd=invocation_dir)
    context = load_context(config_file, invocation_dir=invocation_dir)

    overrides = {}
    for key in ('dist_path', 'build_root'):
        value = getattr(args, key, None)
        if value is not None:
            path = Path(value)
            overrides[key] = path if path.is_absolute() else invocation_dir / path
    context = context.with_overrides(**overrides)

    logger.debug(f"Configuration: {config_file}")
    logger.debug(f"Context: cwd={context.cwd} dist_path={context.dist_path} "
                 f"build_root={context.build_root}")
    registry = evaluate_file(config_file, context)
    return context, registry


def cmd_list(args, invocation_dir: Path) -> int:
    _context, registry = _load(args, invocation_dir)
    if args.json_output:
        print(json.dumps({'pipelines': registry.names()}, indent=2))
        return EXIT_OK

    if not registry.names():
        print("No pipelines defined")
        return EXIT_OK
    print("Available pipelines:")
    for name in registry.names():
        print(f"  {name:30} {len(registry.get(name))} steps")
    return EXIT_OK


def cmd_run(args, invocation_dir: Path) -> int:
    context, registry = _load(args, invocation_dir)
    runner = PipelineRunner(registry, context)

    if args.dry_run:
        runner.preview(args.pipeline)
        return EXIT_OK

    try:
        state = runner.run(args.pipeline)
    except PipelineRunError as e:
        if args.json_output:
            print(json.dumps(e.state.to_dict(), indent=2))
        raise

    if args.json_output:
        print(json.dumps(state.to_dict(), indent=2))
    else:
        for artifact in state.artifacts:
            print(artifact)
    return EXIT_OK


def main(argv: Optional[list[str]] = None, invocation_dir: Optional[Path] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    _setup_logging(args.verbose, args.json_output)
    invocation_dir = invocation_dir or Path.cwd()

    try:
        if args.command == 'list':
            return cmd_list(args, invocation_dir)
        return cmd_run(args, invocation_dir)
    except TuggerError as e:
        logger.error(str(e))
        return exit_code_for(e)


if __name__ == '__main__':
    sys.exit(main())
