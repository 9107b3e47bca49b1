"""Tests for repository toolchain baseline configuration."""

from __future__ import annotations

import tomllib
from pathlib import Path, PurePosixPath


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _pyproject() -> dict:
    pyproject_path = _project_root() / "pyproject.toml"
    return tomllib.loads(pyproject_path.read_text(encoding="utf-8"))


def test_project_uses_python_311_baseline_in_pyproject() -> None:
    pyproject = _pyproject()

    assert pyproject["project"]["requires-python"] == ">=3.11"
    assert pyproject["tool"]["ruff"]["target-version"] == "py311"
    assert pyproject["tool"]["mypy"]["python_version"] == "3.11"


def test_project_uses_uv_style_metadata_without_poetry() -> None:
    pyproject = _pyproject()
    dev_dependencies = pyproject["dependency-groups"]["dev"]

    assert "black" not in dev_dependencies
    assert "black" not in pyproject["tool"]
    assert "poetry" not in pyproject["tool"]
    assert pyproject["build-system"]["build-backend"] != "poetry.core.masonry.api"


def test_console_script_points_at_cli_main() -> None:
    scripts = _pyproject()["project"]["scripts"]

    assert scripts == {"app-test-orchestrator": "app_test_orchestrator.cli:main"}


def test_readme_documents_both_commands() -> None:
    readme = (_project_root() / "README.md").read_text(encoding="utf-8")

    assert "generate-config" in readme
    assert "app-test-orchestrator run" in readme


def test_device_reporter_plugin_is_packaged() -> None:
    patterns = _pyproject()["tool"]["setuptools"]["package-data"][
        "app_test_orchestrator.device_tooling"
    ]
    package_dir = _project_root() / "src" / "app_test_orchestrator" / "device_tooling"
    reporter_files = [
        PurePosixPath(path.relative_to(package_dir).as_posix())
        for path in (package_dir / "device_reporter").rglob("*")
        if path.is_file()
    ]

    assert len(reporter_files) == 3
    for name in reporter_files:
        assert any(name.match(pattern) for pattern in patterns), name
