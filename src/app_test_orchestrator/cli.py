"""Command line interface entry point."""

from __future__ import annotations

import logging
import sys
from typing import Any

import click
from click.core import ParameterSource

from app_test_orchestrator.configuration import (
    DEFAULT_CONFIG_FILENAME,
    ConfigurationError,
    load_configuration,
    write_placeholder_configuration,
)
from app_test_orchestrator.configuration.runtime_settings import Action, Platform
from app_test_orchestrator.run_execution import RunExecutionError, execute_test_run

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Options forwarded to the configuration loader as overrides.
_OVERRIDE_OPTIONS = (
    "platform",
    "action",
    "cli",
    "plugins",
    "args",
    "target",
    "timeout_ms",
    "connection_timeout_ms",
    "ports",
    "external_url",
    "use_tunnel",
    "output_dir",
    "log_minutes",
    "use_remote_farm",
    "build_name",
    "skip_main_tests",
    "skip_appium_tests",
    "clean_up_after_run",
    "tcc_db",
    "file_transfer_server",
    "ci",
    "verbose",
)


class CliError(Exception):
    """Custom CLI error."""


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="app-test-orchestrator")
def cli() -> None:
    """Mobile-app test orchestrator."""


@cli.command(name="generate-config")
@click.option(
    "--output",
    "output_path",
    required=False,
    default=DEFAULT_CONFIG_FILENAME,
    show_default=True,
    type=click.Path(path_type=str),
    help="Path to the YAML run configuration template to write",
)
def generate_config(output_path: str) -> None:
    """Generate a placeholder YAML run configuration with guidance comments."""
    try:
        resolved_output = write_placeholder_configuration(output_path)
    except (FileExistsError, OSError) as exc:
        raise CliError(str(exc)) from exc
    click.echo(str(resolved_output))


@cli.command(name="run")
@click.option(
    "--config",
    "config_path",
    required=False,
    type=click.Path(path_type=str),
    help="Path to a YAML/JSON run configuration, or a name under conf/",
)
@click.option(
    "--platform",
    type=click.Choice([platform.value for platform in Platform], case_sensitive=False),
    help="Platform to run the tests on",
)
@click.option(
    "--action",
    type=click.Choice([action.value for action in Action], case_sensitive=False),
    help="Platform CLI action used to start the app",
)
@click.option("--cli", "cli", help="Platform CLI executable (cordova, phonegap or a path)")
@click.option(
    "--plugin",
    "plugins",
    multiple=True,
    help="Plugin to test; repeat for several plugins",
)
@click.option("--args", "args", help="Extra arguments appended to the launch command")
@click.option("--target", help="Preferred emulator or device name")
@click.option("--timeout", "timeout_ms", type=int, help="Global run timeout in milliseconds")
@click.option(
    "--connection-timeout",
    "connection_timeout_ms",
    type=int,
    help="Device connection deadline in milliseconds",
)
@click.option("--ports", help="Reporting channel port or port range, e.g. 7000-7008")
@click.option("--external-server-url", "external_url", help="Externally reachable channel URL")
@click.option("--use-tunnel", is_flag=True, help="Reach the channel through a tunnel URL")
@click.option(
    "--output-dir",
    "output_dir",
    type=click.Path(path_type=str),
    help="Directory for device logs and spec results",
)
@click.option("--log-mins", "log_minutes", type=int, help="Minutes of device log to collect")
@click.option("--use-remote-farm", is_flag=True, help="Run the tests on the remote device farm")
@click.option("--build-name", help="Build name reported to the remote device farm")
@click.option("--skip-main-tests", is_flag=True, help="Do not run the main test suite")
@click.option("--skip-appium-tests", is_flag=True, help="Do not run the Appium suites")
@click.option(
    "--cleanup/--no-cleanup",
    "clean_up_after_run",
    default=True,
    help="Remove the temporary project and emulator after the run",
)
@click.option(
    "--tcc-db",
    "tcc_db",
    type=click.Path(path_type=str),
    help="TCC database copied into the iOS simulator to pre-grant permissions",
)
@click.option("--file-transfer-server", help="URL of an external file transfer test server")
@click.option("--ci", is_flag=True, help="Running on CI; no local file transfer server is started")
@click.option("--verbose", is_flag=True, help="Log device console output and debug details")
def run_tests(config_path: str | None, **options: Any) -> None:
    """Prepare a project, run the plugin tests and clean up."""
    overrides = _explicit_overrides(options)
    try:
        config = load_configuration(config_path, overrides)
    except ConfigurationError as exc:
        raise CliError(str(exc)) from exc
    configure_logging(config.verbose)
    try:
        outcome = execute_test_run(config)
    except (ConfigurationError, RunExecutionError) as exc:
        raise CliError(str(exc)) from exc
    if not outcome.passed:
        raise CliError(outcome.signal.describe())
    click.echo(outcome.signal.describe())


def _explicit_overrides(options: dict[str, Any]) -> dict[str, Any]:
    """Keep only options given on the command line so config file values survive."""
    context = click.get_current_context()
    overrides: dict[str, Any] = {}
    for name in _OVERRIDE_OPTIONS:
        if context.get_parameter_source(name) is not ParameterSource.COMMANDLINE:
            continue
        value = options[name]
        overrides[name] = list(value) if name == "plugins" else value
    return overrides


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for console_scripts wiring."""
    argv = argv if argv is not None else sys.argv[1:]
    try:
        cli.main(args=list(argv), standalone_mode=False)
    except CliError as exc:
        click.echo(str(exc), err=True)
        return 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        click.echo("Aborted.", err=True)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
