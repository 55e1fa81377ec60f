"""Entry point for msbuild-mcp: MCP server or one-shot task runs."""

import argparse
import asyncio
import logging
import os
import sys
from typing import Any

from .build.command import build_command
from .build.files import FileGroup
from .build.options import MSBuildOptions
from .build.runner import MSBuildRunner
from .build.state import BuildAbortedError, BuildError
from .build.tasks import DEFAULT_TASK_FILE, load_task_config, run_targets
from .utils.project import configure_project_root, find_dotnet_project_root

logger = logging.getLogger("msbuild_mcp")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging from LOG_LEVEL (DEBUG when verbose)."""
    level = "DEBUG" if verbose else os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_property(value: str) -> tuple[str, str]:
    """Parse a Name=Value build property."""
    name, sep, prop_value = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected Name=Value, got '{value}'")
    return name, prop_value


def parse_max_cpu_count(value: str) -> int | bool:
    """Parse /maxcpucount: a positive count, or 'auto' for all cores."""
    if value.lower() == "auto":
        return True
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number or 'auto', got '{value}'") from None
    if count < 1:
        raise argparse.ArgumentTypeError("max CPU count must be at least 1")
    return count


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="msbuild-mcp",
        description="MSBuild MCP Server - build .NET projects with MSBuild/xbuild",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the MCP server on stdio (default)")
    serve.add_argument(
        "--project",
        type=str,
        default=None,
        help="Project root; relative source patterns and task files resolve against it.",
    )
    serve.add_argument(
        "--project-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect the project root by searching upward from the current "
        "directory for .sln, .csproj/.vbproj/.fsproj or .git. "
        "Cannot be used with --project.",
    )

    run = subparsers.add_parser("run", help="Build project files now")
    run.add_argument(
        "patterns",
        nargs="*",
        help="Source glob patterns ('!' excludes). Without patterns, targets "
        "from the task file are run.",
    )
    run.add_argument(
        "-c",
        "--config",
        default=DEFAULT_TASK_FILE,
        help=f"JSON task file (default: {DEFAULT_TASK_FILE})",
    )
    run.add_argument(
        "--task",
        dest="tasks",
        action="append",
        default=[],
        help="Task file target to run (repeatable; default: all)",
    )
    run.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=None,
        help="MSBuild target (repeatable; default: Build)",
    )
    run.add_argument("--configuration", dest="project_configuration", default=None)
    run.add_argument(
        "-p",
        "--property",
        dest="properties",
        action="append",
        type=parse_property,
        default=[],
        help="Build property Name=Value (repeatable)",
    )
    run.add_argument("--verbosity", default=None)
    run.add_argument("--framework-version", dest="version", default=None)
    run.add_argument("--processor", default=None, help="'64' for Framework64")
    run.add_argument(
        "-m", "--max-cpu-count", dest="max_cpu_count", type=parse_max_cpu_count, default=None
    )
    run.add_argument("--logo", dest="nologo", action="store_false", default=None)
    run.add_argument(
        "--continue-on-error",
        dest="fail_on_error",
        action="store_false",
        default=None,
        help="Keep building remaining files after a failure",
    )
    run.add_argument("--stdout", action="store_true", default=None, help="Forward build stdout")
    run.add_argument("--no-stderr", dest="stderr", action="store_false", default=None)
    run.add_argument("--cwd", default=None, help="Working directory for builds")
    run.add_argument("--timeout", type=float, default=None, help="Per-project timeout (s)")
    run.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging, forward all output"
    )
    run.add_argument(
        "--dry-run", action="store_true", help="Print the commands instead of running them"
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments (no subcommand means serve)."""
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("serve", "run", "-h", "--help"):
        argv = ["serve", *argv]
    return build_parser().parse_args(argv)


def option_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Task options given on the command line."""
    overrides: dict[str, Any] = {
        name: getattr(args, name)
        for name in (
            "targets",
            "project_configuration",
            "verbosity",
            "version",
            "processor",
            "max_cpu_count",
            "nologo",
            "fail_on_error",
            "stdout",
            "stderr",
        )
        if getattr(args, name) is not None
    }
    if args.properties:
        overrides["build_parameters"] = dict(args.properties)
    exec_options = {
        name: getattr(args, name)
        for name in ("cwd", "timeout")
        if getattr(args, name) is not None
    }
    if exec_options:
        overrides["exec_options"] = exec_options
    return overrides


async def run_task(args: argparse.Namespace) -> int:
    """Run builds for the ``run`` subcommand. Returns the exit status."""
    overrides = option_overrides(args)
    try:
        if args.patterns:
            options = MSBuildOptions.from_mapping(overrides)
            groups = [FileGroup.of(args.patterns)]
            if args.dry_run:
                for group in groups:
                    for src in group.expand(options.exec_options.cwd):
                        print(build_command(src, options))
                return 0
            result = await MSBuildRunner(options, verbose=args.verbose).run(groups)
            logger.info(result.to_summary())
            return 0

        config = load_task_config(args.config)
        if args.dry_run:
            for target in config.select(args.tasks):
                options = config.resolve_options(target).merged(overrides)
                for group in target.files:
                    for src in group.expand(options.exec_options.cwd):
                        print(build_command(src, options))
            return 0
        results = await run_targets(config, args.tasks, overrides, verbose=args.verbose)
        for name, result in results.items():
            logger.info(f"msbuild:{name}\n{result.to_summary()}")
        return 0

    except BuildAbortedError as e:
        logger.error(f"{e}\n{e.run_result.to_summary()}")
        return 1
    except BuildError as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 2


async def serve(args: argparse.Namespace) -> None:
    """Run the MCP server on stdio."""
    from .server import create_server

    if args.project_from_cwd:
        if args.project is not None:
            logger.error("--project-from-cwd cannot be used with --project")
            sys.exit(1)
        project_path = str(find_dotnet_project_root())
        logger.info(f"Auto-detected project root: {project_path}")
    else:
        project_path = args.project or os.getcwd()

    configure_project_root(
        use_project_from_cwd=args.project_from_cwd,
        explicit_project_path=args.project,
        startup_cwd=os.getcwd(),
    )

    logger.info(f"Starting MSBuild MCP Server (project: {project_path})...")
    mcp = create_server(project_path)
    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        logger.info("Server stopped")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(verbose=getattr(args, "verbose", False))

    if args.command == "run":
        return asyncio.run(run_task(args))

    asyncio.run(serve(args))
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
