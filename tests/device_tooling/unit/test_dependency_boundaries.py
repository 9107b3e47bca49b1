"""Boundary tests for dependencies between packages."""

from __future__ import annotations

from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def test_leaf_packages_do_not_import_run_execution() -> None:
    package_dir = _project_root() / "src" / "app_test_orchestrator"
    leaf_packages = ("device_tooling", "reporting_channel", "event_polling", "results_writing")
    forbidden_import_fragment = "app_test_orchestrator.run_execution"

    for package in leaf_packages:
        for module_path in (package_dir / package).glob("*.py"):
            text = module_path.read_text(encoding="utf-8")
            assert (
                forbidden_import_fragment not in text
            ), f"Forbidden dependency in {module_path}: {forbidden_import_fragment}"
