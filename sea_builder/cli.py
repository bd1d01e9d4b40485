"""Command line interface for sea-builder."""

import argparse
import logging
import pathlib
import sys

from sea_builder import __version__
from sea_builder.config import BuildConfig, Toolchain
from sea_builder.pipeline import BuildPipeline
from sea_builder.process import ProcessRunner
from sea_builder.stages import BuildError
from sea_builder.target import (
    Platform,
    RuntimeInfo,
    TargetResolutionError,
    VersionUnsupportedError,
    check_runtime_version,
    probe_runtime,
    resolve_platform,
)

_SPLASH: str = """\
   _____ _________       ____        _ __    __
  / ___// ____/   |     / __ )__  __(_) /___/ /__  _____
  \\__ \\/ __/ / /| |    / __  / / / / / / __  / _ \\/ ___/
 ___/ / /___/ ___ |   / /_/ / /_/ / / / /_/ /  __/ /
/____/_____/_/  |_|  /_____/\\__,_/_/_/\\__,_/\\___/_/

SEA-Builder - Build a Single Executable Application (SEA) from a Node.js project
"""

_USAGE: str = """\
Usage:
  sea-builder [options]

Options:
  -i, --input <file>          Input file (e.g. server.ts)
  --icon <file>               Icon file (e.g. icon.ico) [Windows only]
  -p, --platform <platform>   Target platform (win32, linux, or macos)
  -o, --obfuscate             Obfuscate the output file using js-confuser

Examples:
  sea-builder -i server.ts -p win32 --obfuscate
  sea-builder -i server.ts -p linux
  sea-builder -i server.ts -p macos
"""


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the sea-builder logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("sea_builder")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _platform_arg(value: str) -> Platform:
    """Parse a ``--platform`` value for argparse.

    :param value: Raw option value.
    :returns: Resolved platform.
    :raises argparse.ArgumentTypeError: If the platform is not supported.
    """

    try:
        return resolve_platform(value)
    except TargetResolutionError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    :returns: Configured parser.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="sea-builder",
        description="Build a Single Executable Application (SEA) from a Node.js project.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sea-builder {__version__}",
    )
    parser.add_argument(
        "-i",
        "--input",
        type=pathlib.Path,
        required=True,
        help="Input file (e.g. server.ts).",
    )
    parser.add_argument(
        "-p",
        "--platform",
        type=_platform_arg,
        required=True,
        help="Target platform (" + ", ".join(p.value for p in Platform) + ").",
    )
    parser.add_argument(
        "--icon",
        type=pathlib.Path,
        default=None,
        help="Icon file (e.g. icon.ico). Windows targets only.",
    )
    parser.add_argument(
        "-o",
        "--obfuscate",
        action="store_true",
        help="Obfuscate the bundled output using js-confuser.",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="out",
        help="Output executable name, without extension (default: out).",
    )
    parser.add_argument(
        "--work-dir",
        type=pathlib.Path,
        default=None,
        help="Directory for transient files and dist/ (default: current directory).",
    )
    parser.add_argument("--node", type=str, default="node", help="Node.js executable.")
    parser.add_argument("--esbuild", type=str, default="esbuild", help="esbuild executable.")
    parser.add_argument("--rcedit", type=str, default="rcedit", help="rcedit executable.")
    parser.add_argument("--postject", type=str, default="postject", help="postject executable.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )
    return parser


def main(argv: list[str] | None = None, *, runner: ProcessRunner | None = None) -> int:
    """Run the sea-builder CLI.

    :param argv: Optional argv list (excluding program name).
    :param runner: Optional process runner (defaults to a real one).
    :returns: Exit code.
    """

    if argv is None:
        argv = sys.argv[1:]
    if len(argv) == 0:
        print(_SPLASH)
        print(_USAGE)
        return 0

    ns = _build_parser().parse_args(argv)
    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)
    if runner is None:
        runner = ProcessRunner(logger)

    toolchain: Toolchain = Toolchain(
        node=ns.node,
        esbuild=ns.esbuild,
        rcedit=ns.rcedit,
        postject=ns.postject,
    )
    work_dir: pathlib.Path = ns.work_dir.resolve() if ns.work_dir is not None else pathlib.Path.cwd()
    config: BuildConfig = BuildConfig(
        entry_path=ns.input,
        platform=ns.platform,
        icon_path=ns.icon,
        obfuscate=ns.obfuscate,
        work_dir=work_dir,
        executable_name=ns.name,
    )

    try:
        runtime: RuntimeInfo = probe_runtime(toolchain.node, runner)
        check_runtime_version(runtime)
    except VersionUnsupportedError as e:
        logger.error(f"sea-builder: unsupported version: {e}")
        return 1

    if ns.quiet == 0:
        print(_SPLASH)

    pipeline: BuildPipeline = BuildPipeline(
        config,
        runtime=runtime,
        toolchain=toolchain,
        runner=runner,
        logger=logger,
    )
    try:
        pipeline.run()
    except BuildError as e:
        logger.error(f"sea-builder: error: {e}")
        return 1
    return 0
