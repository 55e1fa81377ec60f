"""Pytest fixtures for msbuild-mcp tests."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from msbuild_mcp.build.locator import PosixLocator  # noqa: E402
from msbuild_mcp.utils.project import configure_project_root  # noqa: E402


@pytest.fixture
def xbuild_locator():
    """Locator that always resolves to xbuild."""
    return PosixLocator()


@pytest.fixture
def windir(tmp_path, monkeypatch):
    """Fake Windows directory exported as WINDIR."""
    path = tmp_path / "Windows"
    path.mkdir()
    monkeypatch.setenv("WINDIR", str(path))
    return path


@pytest.fixture
def make_msbuild(windir):
    """Create a fake MSBuild.exe for a framework directory name."""

    def _make(fragment: str, framework: str = "Framework"):
        exe_dir = windir / "Microsoft.Net" / framework / f"v{fragment}"
        exe_dir.mkdir(parents=True, exist_ok=True)
        exe = exe_dir / "MSBuild.exe"
        exe.touch()
        return str(exe)

    return _make


@pytest.fixture
def project_tree(tmp_path):
    """Workspace with a solution and three projects."""
    (tmp_path / "App.sln").touch()
    for name in ("App", "Core", "Tests"):
        project_dir = tmp_path / "src" / name
        project_dir.mkdir(parents=True)
        (project_dir / f"{name}.csproj").touch()
    return tmp_path


@pytest.fixture
def sample_msbuild_output():
    """MSBuild console output with one error and one warning, summary repeated."""
    return (
        "Build started.\n"
        "Program.cs(12,9): error CS0103: The name 'foo' does not exist [C:\\src\\App\\App.csproj]\n"
        "Program.cs(3,7): warning CS0168: The variable 'x' is declared but never used [C:\\src\\App\\App.csproj]\n"
        "Build FAILED.\n"
        "Program.cs(12,9): error CS0103: The name 'foo' does not exist [C:\\src\\App\\App.csproj]\n"
        "Program.cs(3,7): warning CS0168: The variable 'x' is declared but never used [C:\\src\\App\\App.csproj]\n"
        "    1 Warning(s)\n"
        "    1 Error(s)\n"
    )


def make_process(returncode=0, stdout=b"", stderr=b""):
    """Mock asyncio subprocess producing the given output."""

    def chunks(data: bytes):
        reads = [line + b"\n" for line in data.splitlines()]
        return AsyncMock(side_effect=[*reads, b""])

    process = AsyncMock()
    process.pid = None
    process.returncode = returncode
    process.stdout = AsyncMock()
    process.stdout.read = chunks(stdout)
    process.stderr = AsyncMock()
    process.stderr.read = chunks(stderr)
    process.wait = AsyncMock(return_value=returncode)
    process.kill = MagicMock()
    return process


@pytest.fixture
def process_factory():
    return make_process


@pytest.fixture(autouse=True)
def reset_project_root():
    """Keep project root configuration from leaking between tests."""
    configure_project_root()
    yield
    configure_project_root()
