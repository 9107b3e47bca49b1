"""iOS simulator permission granting tests."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from pathlib import Path

import pytest
from app_test_orchestrator.configuration.runtime_settings import (
    Action,
    ChannelSettings,
    Platform,
    RemoteFarmSettings,
    RunConfig,
    TimeoutSettings,
)
from app_test_orchestrator.device_tooling import (
    PermissionGrantError,
    SimulatorPermissionGranter,
    TargetDescriptor,
)
from app_test_orchestrator.device_tooling.ios_permissions import (
    TCC_DB_RELATIVE_PATH,
    grant_services,
)

ACCESS_SCHEMA = """
CREATE TABLE access (
    service TEXT NOT NULL,
    client TEXT NOT NULL,
    client_type INTEGER NOT NULL,
    allowed INTEGER NOT NULL,
    prompt_count INTEGER NOT NULL,
    csreq BLOB,
    PRIMARY KEY (service, client, client_type)
)
"""


def _tcc_template(path: Path) -> Path:
    connection = sqlite3.connect(str(path))
    try:
        connection.execute(ACCESS_SCHEMA)
        connection.commit()
    finally:
        connection.close()
    return path


def _access_rows(path: Path) -> list[tuple]:
    connection = sqlite3.connect(str(path))
    try:
        return connection.execute(
            "SELECT service, client, client_type, allowed, prompt_count FROM access"
        ).fetchall()
    finally:
        connection.close()


def _config(**changes: object) -> RunConfig:
    config = RunConfig(
        platform=Platform.IOS,
        action=Action.RUN,
        cli="cordova",
        plugins=("cordova-plugin-contacts",),
        args="",
        target=None,
        timeouts=TimeoutSettings(global_timeout_ms=2000, connection_timeout_ms=1000),
        channel=ChannelSettings(ports=(7000, 7008), external_url=None, use_tunnel=False),
        output_dir=None,
        log_minutes=15,
        use_remote_farm=False,
        remote_farm=RemoteFarmSettings(user=None, key=None, build_name=None),
        run_main_tests=True,
        run_appium_tests=False,
        clean_up_after_run=True,
    )
    return replace(config, **changes)


def test_template_is_copied_into_simulator_and_access_granted(tmp_path: Path) -> None:
    template = _tcc_template(tmp_path / "TCC.db")
    simulators = tmp_path / "Devices"
    granter = SimulatorPermissionGranter(simulators)

    granter.grant(_config(tcc_db=template), TargetDescriptor(name="iPhone-15", udid="SIM-1"))

    destination = simulators / "SIM-1" / TCC_DB_RELATIVE_PATH
    assert _access_rows(destination) == [
        ("kTCCServiceAddressBook", "io.cordova.hellocordova", 0, 1, 1)
    ]
    assert _access_rows(template) == []


def test_existing_grant_is_updated_instead_of_duplicated(tmp_path: Path) -> None:
    db_path = _tcc_template(tmp_path / "TCC.db")
    connection = sqlite3.connect(str(db_path))
    connection.execute(
        "INSERT INTO access VALUES ('kTCCServiceAddressBook', 'io.example.app', 0, 0, 0, NULL)"
    )
    connection.commit()
    connection.close()

    grant_services(db_path, "io.example.app", ["kTCCServiceAddressBook"])

    assert _access_rows(db_path) == [("kTCCServiceAddressBook", "io.example.app", 0, 1, 1)]


def test_database_without_access_table_raises(tmp_path: Path) -> None:
    db_path = tmp_path / "empty.db"

    with pytest.raises(PermissionGrantError, match="Could not update TCC database"):
        grant_services(db_path, "io.example.app", ["kTCCServiceAddressBook"])


@pytest.mark.parametrize(
    ("changes", "target"),
    [
        ({"platform": Platform.ANDROID}, TargetDescriptor(name="Pixel", udid="SIM-1")),
        ({"tcc_db": None}, TargetDescriptor(name="iPhone-15", udid="SIM-1")),
        ({}, TargetDescriptor(name="iPhone-15")),
        ({}, None),
    ],
)
def test_nothing_is_written_without_ios_database_and_udid(
    tmp_path: Path, changes: dict[str, object], target: TargetDescriptor | None
) -> None:
    template = _tcc_template(tmp_path / "TCC.db")
    simulators = tmp_path / "Devices"

    SimulatorPermissionGranter(simulators).grant(
        _config(**{"tcc_db": template, **changes}), target
    )

    assert not simulators.exists()
