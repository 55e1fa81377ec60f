"""Utility modules for msbuild-mcp."""

from .project import (
    ProjectRootConfig,
    configure_project_root,
    find_dotnet_project_root,
    get_project_root,
    parse_file_uri,
)

__all__ = [
    "get_project_root",
    "configure_project_root",
    "find_dotnet_project_root",
    "parse_file_uri",
    "ProjectRootConfig",
]
