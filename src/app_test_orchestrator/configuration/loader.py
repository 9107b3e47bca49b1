"""Configuration loader service."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

from .runtime_settings import (
    DEFAULT_CONNECTION_TIMEOUT_MS,
    DEFAULT_GLOBAL_TIMEOUT_MS,
    DEFAULT_LOG_MINUTES,
    DEFAULT_PORTS,
    KNOWN_CLI_NAMES,
    Action,
    ChannelSettings,
    Platform,
    RemoteFarmSettings,
    RunConfig,
    TimeoutSettings,
)

CONFIG_SUFFIX = ".config.yaml"
REMOTE_FARM_USER_ENV_VAR = "SAUCE_USERNAME"
REMOTE_FARM_KEY_ENV_VAR = "SAUCE_ACCESS_KEY"
CI_ENV_VAR = "CI"
_FALSE_FLAG_VALUES = ("", "0", "false", "no")

# CLI option name -> (section, key) inside the configuration mapping.
_OVERRIDE_TARGETS: Mapping[str, tuple[str | None, str]] = {
    "platform": (None, "platform"),
    "action": (None, "action"),
    "cli": (None, "cli"),
    "plugins": (None, "plugins"),
    "args": (None, "args"),
    "target": (None, "target"),
    "output_dir": (None, "output_dir"),
    "log_minutes": (None, "log_minutes"),
    "clean_up_after_run": (None, "clean_up_after_run"),
    "verbose": (None, "verbose"),
    "tcc_db": (None, "tcc_db"),
    "file_transfer_server": (None, "file_transfer_server"),
    "ci": (None, "ci"),
    "timeout_ms": ("timeouts", "global_ms"),
    "connection_timeout_ms": ("timeouts", "connection_ms"),
    "ports": ("channel", "ports"),
    "external_url": ("channel", "external_url"),
    "use_tunnel": ("channel", "use_tunnel"),
    "use_remote_farm": ("remote_farm", "enabled"),
    "build_name": ("remote_farm", "build_name"),
    "skip_main_tests": ("tests", "skip_main"),
    "skip_appium_tests": ("tests", "skip_appium"),
}


class ConfigurationError(Exception):
    """Raised when the run configuration is invalid."""


def resolve_config_path(config: str, *, search_dir: Path | None = None) -> Path:
    """Find a configuration file given as a path or as a name under ``conf/``."""
    candidate = Path(config).resolve()
    if candidate.exists():
        return candidate
    name = config if config.endswith(CONFIG_SUFFIX) else f"{config}{CONFIG_SUFFIX}"
    conf_candidate = (search_dir or Path.cwd()) / "conf" / name
    if conf_candidate.exists():
        return conf_candidate
    raise ConfigurationError(f"Can't find the specified config: {config}")


def load_configuration(
    config_path: Path | str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RunConfig:
    """Load the configuration file, apply CLI overrides and validate the result."""
    parsed: dict[str, Any] = {}
    base_path = Path.cwd()
    if config_path is not None:
        path = resolve_config_path(str(config_path))
        parsed = _read_mapping(path)
        base_path = path.parent
    merged = _apply_overrides(parsed, overrides or {})

    platform = _parse_enum(Platform, merged.get("platform"), "platform")
    action = _parse_enum(Action, merged.get("action", Action.RUN.value), "action")
    plugins = _normalize_string_sequence(merged.get("plugins"), "plugins")
    if not plugins:
        raise ConfigurationError("plugins must contain at least one plugin.")
    output_dir_raw = _optional_string(merged.get("output_dir"), "output_dir")
    tests = _optional_mapping(merged.get("tests"), "tests")
    tcc_db_raw = _optional_string(merged.get("tcc_db"), "tcc_db")
    tcc_db = _resolve_path(base_path, tcc_db_raw) if tcc_db_raw else None
    if tcc_db is not None and not tcc_db.is_file():
        raise ConfigurationError(f"tcc_db file not found: {tcc_db}")

    return RunConfig(
        platform=platform,
        action=action,
        cli=_resolve_cli(merged.get("cli", "cordova")),
        plugins=plugins,
        args=_optional_string(merged.get("args"), "args") or "",
        target=_optional_string(merged.get("target"), "target"),
        timeouts=_parse_timeouts(merged.get("timeouts")),
        channel=_parse_channel(merged.get("channel")),
        output_dir=_resolve_path(base_path, output_dir_raw) if output_dir_raw else None,
        log_minutes=_require_positive_int(
            merged.get("log_minutes", DEFAULT_LOG_MINUTES), "log_minutes"
        ),
        use_remote_farm=_optional_bool(
            _optional_mapping(merged.get("remote_farm"), "remote_farm").get("enabled"),
            "remote_farm.enabled",
            default=False,
        ),
        remote_farm=_parse_remote_farm(merged.get("remote_farm")),
        run_main_tests=not _optional_bool(tests.get("skip_main"), "tests.skip_main", default=False),
        run_appium_tests=not _optional_bool(
            tests.get("skip_appium"), "tests.skip_appium", default=False
        ),
        clean_up_after_run=_optional_bool(
            merged.get("clean_up_after_run"), "clean_up_after_run", default=True
        ),
        verbose=_optional_bool(merged.get("verbose"), "verbose", default=False),
        tcc_db=tcc_db,
        file_transfer_server=_optional_string(
            merged.get("file_transfer_server"), "file_transfer_server"
        ),
        ci=_optional_bool(merged.get("ci"), "ci", default=_ci_from_environment()),
    )


def _read_mapping(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:  # pragma: no cover - exercised indirectly
        raise ConfigurationError(f"Failed to parse configuration file: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ConfigurationError("Configuration root must be a mapping.")
    return dict(parsed)


def _apply_overrides(parsed: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, Mapping) else value for key, value in parsed.items()
    }
    for option, value in overrides.items():
        if value is None:
            continue
        if option not in _OVERRIDE_TARGETS:
            raise ConfigurationError(f"Unknown configuration override: {option}")
        section, key = _OVERRIDE_TARGETS[option]
        if section is None:
            merged[key] = value
            continue
        existing = merged.get(section)
        if existing is not None and not isinstance(existing, Mapping):
            raise ConfigurationError(f"Configuration section '{section}' must be a mapping.")
        merged[section] = {**(existing or {}), key: value}
    return merged


def _parse_timeouts(value: Any) -> TimeoutSettings:
    section = _optional_mapping(value, "timeouts")
    global_ms = _require_positive_int(
        section.get("global_ms", DEFAULT_GLOBAL_TIMEOUT_MS), "timeouts.global_ms"
    )
    connection_ms = _require_positive_int(
        section.get("connection_ms", DEFAULT_CONNECTION_TIMEOUT_MS), "timeouts.connection_ms"
    )
    if connection_ms >= global_ms:
        raise ConfigurationError(
            "timeouts.connection_ms must be lower than timeouts.global_ms "
            f"(got {connection_ms} and {global_ms})."
        )
    return TimeoutSettings(global_timeout_ms=global_ms, connection_timeout_ms=connection_ms)


def _parse_channel(value: Any) -> ChannelSettings:
    section = _optional_mapping(value, "channel")
    return ChannelSettings(
        ports=_parse_port_range(section.get("ports", DEFAULT_PORTS)),
        external_url=_optional_string(section.get("external_url"), "channel.external_url"),
        use_tunnel=_optional_bool(section.get("use_tunnel"), "channel.use_tunnel", default=False),
    )


def _parse_remote_farm(value: Any) -> RemoteFarmSettings:
    section = _optional_mapping(value, "remote_farm")
    user = _optional_string(section.get("user"), "remote_farm.user")
    key = _optional_string(section.get("key"), "remote_farm.key")
    return RemoteFarmSettings(
        user=user or os.environ.get(REMOTE_FARM_USER_ENV_VAR),
        key=key or os.environ.get(REMOTE_FARM_KEY_ENV_VAR),
        build_name=_optional_string(section.get("build_name"), "remote_farm.build_name"),
    )


def _parse_port_range(value: Any) -> tuple[int, int]:
    if isinstance(value, int) and not isinstance(value, bool):
        bounds: list[Any] = [value, value]
    elif isinstance(value, str):
        bounds = [item.strip() for item in value.split("-")]
        if len(bounds) == 1:
            bounds = bounds * 2
    elif isinstance(value, Sequence) and len(value) == 2:
        bounds = list(value)
    else:
        raise ConfigurationError("channel.ports must be a port, 'start-end' or [start, end].")
    try:
        start, end = (int(bound) for bound in bounds)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("channel.ports must contain integers.") from exc
    if start <= 0 or end < start:
        raise ConfigurationError("channel.ports must be a positive ascending range.")
    return start, end


def _ci_from_environment() -> bool:
    return os.environ.get(CI_ENV_VAR, "").strip().lower() not in _FALSE_FLAG_VALUES


def _resolve_cli(value: Any) -> str:
    cli = _optional_string(value, "cli") or "cordova"
    if cli in KNOWN_CLI_NAMES or Path(cli).is_absolute():
        return cli
    return str(Path(cli).resolve())


def _parse_enum(enum_cls, value: Any, field_name: str):
    raw = _optional_string(value, field_name)
    if raw is None:
        raise ConfigurationError(f"{field_name} is required.")
    try:
        return enum_cls(raw.lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"{field_name} must be one of: {allowed}.") from exc


def _normalize_string_sequence(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    if isinstance(value, Sequence):
        normalized = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigurationError(f"{field_name} entries must be strings.")
            stripped = item.strip()
            if stripped:
                normalized.append(stripped)
        return tuple(normalized)
    raise ConfigurationError(f"{field_name} must be a string or list of strings.")


def _resolve_path(base_path: Path, raw_path: str) -> Path:
    candidate = Path(raw_path)
    if not candidate.is_absolute():
        return (base_path / candidate).resolve()
    return candidate


def _optional_mapping(value: Any, section_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Configuration section '{section_name}' must be a mapping.")
    return value


def _optional_string(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, Path):
        value = str(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string.")
    stripped = value.strip()
    return stripped or None


def _optional_bool(value: Any, field_name: str, *, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be a boolean.")
    return value


def _require_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be an integer.")
    if not isinstance(value, int):
        raise ConfigurationError(f"{field_name} must be an integer.")
    if value <= 0:
        raise ConfigurationError(f"{field_name} must be greater than zero.")
    return value
