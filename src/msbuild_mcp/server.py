"""MCP Server exposing the msbuild task."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from .build.command import build_command
from .build.files import FileGroup
from .build.locator import FRAMEWORK_PROBE_ORDER, FRAMEWORK_VERSIONS, get_locator
from .build.options import MSBuildOptions
from .build.runner import MSBuildRunner
from .build.state import BuildAbortedError, BuildError, TaskRunResult
from .build.tasks import DEFAULT_TASK_FILE, load_task_config, run_targets
from .utils.project import get_project_root

logger = logging.getLogger(__name__)

# Last run, keyed by target name ("default" for ad-hoc runs)
_last_run: dict[str, TaskRunResult] = {}


def get_last_run() -> dict[str, TaskRunResult]:
    return _last_run


def _record_run(results: dict[str, TaskRunResult]) -> None:
    _last_run.clear()
    _last_run.update(results)


def collect_options(project_root: Path | None, **values: Any) -> MSBuildOptions:
    """Build task options from tool arguments, skipping unset ones.

    Builds run with the project root as working directory.
    """
    timeout = values.pop("timeout", None)
    data = {key: value for key, value in values.items() if value is not None}
    data["exec_options"] = {
        "cwd": str(project_root) if project_root else None,
        "timeout": timeout,
    }
    return MSBuildOptions.from_mapping(data)


def create_server(project_path: str | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        project_path: Initial project root; relative source patterns and
            task files resolve against the current project root.
    """
    mcp = FastMCP("msbuild-mcp")

    async def project_root(ctx: Context) -> Path | None:
        root = await get_project_root(ctx)
        if root is None and project_path:
            root = Path(project_path)
        return root

    def runner_kwargs(ctx: Context) -> dict[str, Any]:
        async def report_progress(progress: float, total: float, message: str) -> None:
            await ctx.report_progress(progress=progress, total=total, message=message)

        # stdout carries the MCP protocol, so forwarded output goes to stderr
        return {
            "stdout_sink": sys.stderr,
            "stderr_sink": sys.stderr,
            "progress_callback": report_progress,
        }

    # ============== Build Tools ==============

    @mcp.tool()
    async def run_msbuild(
        ctx: Context,
        src: list[str],
        targets: list[str] | None = None,
        project_configuration: str | None = None,
        build_parameters: dict[str, str] | None = None,
        verbosity: str | None = None,
        version: str | None = None,
        processor: str | None = None,
        max_cpu_count: int | None = None,
        nologo: bool | None = None,
        fail_on_error: bool | None = None,
        timeout: float | None = None,
    ) -> dict:
        """
        Build .NET project or solution files with MSBuild (xbuild on Linux/macOS).

        Each file matching the patterns is built in sequence, one process at a
        time. With fail_on_error (default True) the first failed build stops the
        run and the remaining files are reported as skipped.

        Args:
            src: Glob patterns relative to the project root, e.g. ["**/*.csproj"].
                Prefix a pattern with "!" to exclude matches.
            targets: MSBuild targets (default ["Build"])
            project_configuration: Build configuration (default "Release")
            build_parameters: Extra MSBuild properties (/property:Name="Value")
            verbosity: quiet, minimal, normal, detailed or diagnostic
            version: .NET Framework version for MSBuild on Windows (1.0-4.0)
            processor: "64" to use the Framework64 MSBuild
            max_cpu_count: Parallel node count passed as /maxcpucount
            nologo: Suppress the MSBuild banner (default True)
            fail_on_error: Stop at the first failed build (default True)
            timeout: Per-project timeout in seconds
        """
        try:
            root = await project_root(ctx)
            options = collect_options(
                root,
                targets=targets,
                project_configuration=project_configuration,
                build_parameters=build_parameters,
                verbosity=verbosity,
                version=version,
                processor=processor,
                max_cpu_count=max_cpu_count,
                nologo=nologo,
                fail_on_error=fail_on_error,
                timeout=timeout,
            )
            group = FileGroup.of(src, str(root) if root else None)
            result = await MSBuildRunner(options, **runner_kwargs(ctx)).run([group])
            _record_run({"default": result})
            return {
                "success": result.success,
                "data": result.to_dict(),
                "summary": result.to_summary(),
            }
        except BuildAbortedError as e:
            _record_run({"default": e.run_result})
            return {"success": False, "error": str(e), "data": e.run_result.to_dict()}
        except (BuildError, ValueError) as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def run_msbuild_task(
        ctx: Context,
        targets: list[str] | None = None,
        task_file: str = DEFAULT_TASK_FILE,
    ) -> dict:
        """
        Run named targets from a JSON task file (default msbuild.json).

        The task file holds task-level "options" plus named targets, each with
        "src" patterns and optional "options" overriding the task-level ones.
        Without target names every target runs in file order.

        Args:
            targets: Target names to run (all when omitted)
            task_file: Task file path, relative to the project root
        """
        try:
            root = await project_root(ctx)
            path = task_file
            if root is not None and not os.path.isabs(path):
                path = str(root / path)
            config = load_task_config(path)
            results = await run_targets(config, targets, **runner_kwargs(ctx))
            _record_run(results)
            return {
                "success": all(r.success for r in results.values()),
                "data": {name: r.to_dict() for name, r in results.items()},
            }
        except BuildAbortedError as e:
            _record_run(e.target_results)
            return {
                "success": False,
                "error": str(e),
                "data": {name: r.to_dict() for name, r in e.target_results.items()},
            }
        except (BuildError, ValueError) as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def locate_msbuild(version: str | None = None, processor: str = "") -> dict:
        """
        Find the MSBuild/xbuild executable that builds would use.

        Args:
            version: .NET Framework version (1.0, 1.1, 2.0, 3.5, 4.0); newest when omitted
            processor: "64" for the Framework64 directory
        """
        try:
            path = get_locator().get_build_executable_path(version, processor)
            return {"success": True, "data": {"path": path}}
        except BuildError as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def preview_msbuild_commands(
        ctx: Context,
        src: list[str],
        targets: list[str] | None = None,
        project_configuration: str | None = None,
        build_parameters: dict[str, str] | None = None,
        verbosity: str | None = None,
        version: str | None = None,
        processor: str | None = None,
        max_cpu_count: int | None = None,
        nologo: bool | None = None,
    ) -> dict:
        """
        Show the commands run_msbuild would execute, without running them.

        Takes the same arguments as run_msbuild.
        """
        try:
            root = await project_root(ctx)
            options = collect_options(
                root,
                targets=targets,
                project_configuration=project_configuration,
                build_parameters=build_parameters,
                verbosity=verbosity,
                version=version,
                processor=processor,
                max_cpu_count=max_cpu_count,
                nologo=nologo,
            )
            sources = FileGroup.of(src, str(root) if root else None).expand()
            commands = [build_command(s, options) for s in sources]
            return {"success": True, "data": {"commands": commands}}
        except (BuildError, ValueError) as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource("msbuild://versions", mime_type="application/json")
    async def versions_resource() -> str:
        """Known .NET Framework versions and their directory names (JSON).

        Probe order is newest first when no version is requested.
        """
        return json.dumps(
            {
                "versions": {str(k): v for k, v in FRAMEWORK_VERSIONS.items()},
                "probeOrder": [str(v) for v in FRAMEWORK_PROBE_ORDER],
            },
            indent=2,
        )

    @mcp.resource("msbuild://last-run", mime_type="application/json")
    async def last_run_resource() -> str:
        """Results of the most recent build run (JSON), keyed by target."""
        return json.dumps({name: r.to_dict() for name, r in _last_run.items()}, indent=2)

    logger.info("MSBuild MCP Server initialized")
    return mcp
