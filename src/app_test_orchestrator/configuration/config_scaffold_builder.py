"""Configuration scaffold generation helpers."""

from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_FILENAME = "run.config.yaml"

_CONFIG_SCAFFOLD_TEMPLATE = """# Run configuration template for app-test-orchestrator.
# Replace every <REQUIRED> placeholder before using it with the run command.
# Values given on the command line override the values in this file.

# One of: browser, ios, android, windows.
platform: "<REQUIRED>"
# One of: build, run, emulate. build only compiles the app; no tests are awaited.
action: run
# Platform CLI used to build and launch the app (name on PATH or a path).
cli: cordova
plugins:
  # Plugins to install; each one must ship its own test suite.
  - "<REQUIRED>"
# Extra arguments appended to the platform CLI launch command.
# args: "<OPTIONAL>"
# Preferred emulator/device name used during target selection.
# target: "<OPTIONAL>"

timeouts:
  # Hard deadline for the whole run, in milliseconds.
  global_ms: 3600000
  # Deadline for the device to connect to the reporting channel.
  connection_ms: 540000

channel:
  # Port or "start-end" range for the local reporting channel.
  ports: "7000-7008"
  # external_url: "<OPTIONAL>"
  use_tunnel: false

tests:
  skip_main: false
  skip_appium: false

remote_farm:
  enabled: false
  # Credentials fall back to SAUCE_USERNAME / SAUCE_ACCESS_KEY.
  # user: "<OPTIONAL>"
  # key: "<OPTIONAL>"
  # build_name: "<OPTIONAL>"

# Directory for device logs and spec result workbooks.
# output_dir: "<OPTIONAL>"
# iOS simulator TCC database copied in before launch to pre-grant permissions.
# tcc_db: "<OPTIONAL>"
# External file transfer test server. Without it a local one is started for
# cordova-plugin-file-transfer unless the run is on CI.
# file_transfer_server: "<OPTIONAL>"
# Defaults to the CI environment variable.
# ci: false
log_minutes: 15
clean_up_after_run: true
verbose: false
"""


def build_placeholder_configuration() -> str:
    """Build a YAML run configuration template with placeholders and inline guidance."""
    return _CONFIG_SCAFFOLD_TEMPLATE


def write_placeholder_configuration(output_path: Path | str) -> Path:
    """Write the placeholder run configuration template to the requested output path.

    Args:
      output_path: Destination file path for the scaffold.

    Returns:
      The resolved destination path.

    Raises:
      FileExistsError: If the destination file already exists.
      OSError: If writing the scaffold fails.
    """
    destination = Path(output_path)
    if destination.exists():
        raise FileExistsError(f"Run configuration file already exists: {destination.resolve()}")
    destination.write_text(build_placeholder_configuration(), encoding="utf-8")
    return destination.resolve()
