"""Project root detection.

Relative source patterns given to the MCP tools are resolved against a
project root, taken from (in order):
1. MCP roots announced by the client
2. MSBUILD_MCP_PROJECT_ROOT / MCP_PROJECT_ROOT environment variables
3. The --project path
4. The startup CWD, searched upward for .NET markers with --project-from-cwd
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)

PROJECT_FILE_PATTERNS: tuple[str, ...] = ("*.csproj", "*.vbproj", "*.fsproj")


@dataclass
class ProjectRootConfig:
    """Startup settings that decide the project root."""

    startup_cwd: Path | None = None
    use_project_from_cwd: bool = False
    explicit_project_path: Path | None = None
    env_var_names: tuple[str, ...] = field(
        default_factory=lambda: ("MSBUILD_MCP_PROJECT_ROOT", "MCP_PROJECT_ROOT")
    )


_config: ProjectRootConfig = ProjectRootConfig()


def configure_project_root(
    *,
    use_project_from_cwd: bool = False,
    explicit_project_path: str | Path | None = None,
    startup_cwd: str | Path | None = None,
) -> None:
    """Configure project root detection. Called once at server startup."""
    global _config
    _config = ProjectRootConfig(
        use_project_from_cwd=use_project_from_cwd,
        explicit_project_path=Path(explicit_project_path) if explicit_project_path else None,
        startup_cwd=Path(startup_cwd) if startup_cwd else None,
    )
    logger.debug(
        f"Project root configured: use_cwd={use_project_from_cwd}, "
        f"explicit={explicit_project_path}, startup_cwd={startup_cwd}"
    )


def get_config() -> ProjectRootConfig:
    return _config


def parse_file_uri(uri: str) -> Path | None:
    """Convert a file:// URI to an absolute Path (None if not possible).

    Windows drive URIs (file:///C:/src) and UNC URIs (file://server/share)
    are handled when running on Windows.
    """
    try:
        parsed = urlparse(str(uri))
        if parsed.scheme != "file":
            logger.warning(f"Not a file URI: {uri}")
            return None

        path_str = unquote(parsed.path)

        if sys.platform == "win32":
            # "/C:/src" -> "C:/src"
            if path_str.startswith("/") and len(path_str) > 2 and path_str[2] == ":":
                path_str = path_str[1:]
            if parsed.netloc:
                path_str = f"\\\\{parsed.netloc}{path_str}"

        path = Path(path_str)
        if not path.is_absolute():
            logger.warning(f"Parsed path is not absolute: {path}")
            return None
        return path

    except ValueError as e:
        logger.warning(f"Failed to parse file URI '{uri}': {e}")
        return None


def find_dotnet_project_root(start_dir: Path | None = None, boundary: Path | None = None) -> Path:
    """Walk up from ``start_dir`` looking for .NET project markers.

    A directory with a .sln wins over one with a project file, which wins
    over a .git marker. Falls back to ``start_dir``.

    Args:
        start_dir: Directory to start from (defaults to CWD)
        boundary: Do not search above this directory
    """
    current = (start_dir or Path.cwd()).resolve()
    stop = boundary.resolve() if boundary is not None else None

    def ancestors() -> Iterator[Path]:
        yield current
        if current == stop:
            return
        for parent in current.parents:
            yield parent
            if parent == stop:
                return

    for directory in ancestors():
        if any(directory.glob("*.sln")):
            return directory

    for directory in ancestors():
        if any(any(directory.glob(pattern)) for pattern in PROJECT_FILE_PATTERNS):
            return directory

    for directory in ancestors():
        # .git is a file in worktrees
        if (directory / ".git").exists():
            return directory

    return current


def _existing_dir(path: Path, source: str) -> Path | None:
    if path.is_dir():
        logger.info(f"Using project root from {source}: {path}")
        return path
    logger.warning(f"Project root from {source} is not a directory: {path}")
    return None


async def get_project_root(ctx: Context | None = None) -> Path | None:
    """Determine the project root from the client, environment or startup config.

    Args:
        ctx: MCP Context for client roots; None outside tool calls

    Returns:
        Project root, or None if nothing applies
    """
    config = get_config()

    if ctx is not None:
        try:
            roots = (await ctx.session.list_roots()).roots
        except Exception as e:
            # Roots are optional in MCP
            logger.info(f"Could not get roots from client: {e}")
            roots = []
        if roots:
            path = parse_file_uri(str(roots[0].uri))
            if path is not None and (found := _existing_dir(path, "MCP client")):
                return found

    for env_var in config.env_var_names:
        value = os.environ.get(env_var)
        if value and (found := _existing_dir(Path(value), env_var)):
            return found

    if config.explicit_project_path and (
        found := _existing_dir(config.explicit_project_path, "--project")
    ):
        return found

    if config.startup_cwd:
        if config.use_project_from_cwd:
            return find_dotnet_project_root(config.startup_cwd)
        return config.startup_cwd

    logger.warning("Could not determine project root from any source")
    return None
