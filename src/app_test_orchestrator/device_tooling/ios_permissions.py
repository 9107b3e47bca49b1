"""Pre-granting iOS simulator privacy permissions through its TCC database."""

from __future__ import annotations

import logging
import shutil
import sqlite3
from collections.abc import Sequence
from pathlib import Path

from app_test_orchestrator.configuration.runtime_settings import Platform, RunConfig

from .device_models import TargetDescriptor

logger = logging.getLogger(__name__)

SIMULATOR_DEVICES_DIR = Path.home() / "Library" / "Developer" / "CoreSimulator" / "Devices"
TCC_DB_RELATIVE_PATH = Path("data", "Library", "TCC", "TCC.db")
GRANTED_SERVICES = ("kTCCServiceAddressBook",)

_INSERT_ACCESS = (
    "INSERT INTO access (service, client, client_type, allowed, prompt_count, csreq) "
    "VALUES (?, ?, 0, 1, 1, NULL)"
)
_UPDATE_ACCESS = (
    "UPDATE access SET client_type = 0, allowed = 1, prompt_count = 1, csreq = NULL "
    "WHERE service = ? AND client = ?"
)


class PermissionGrantError(Exception):
    """Raised when the simulator TCC database cannot be updated."""


class SimulatorPermissionGranter:
    """Copies the configured TCC database into the simulator and grants the app access."""

    def __init__(self, simulators_dir: Path = SIMULATOR_DEVICES_DIR) -> None:
        self._simulators_dir = simulators_dir

    def grant(self, config: RunConfig, target: TargetDescriptor | None) -> None:
        if config.platform is not Platform.IOS or config.tcc_db is None:
            return
        logger.info("Setting required permissions.")
        if target is None or not target.udid:
            logger.warning("No simulator udid resolved; permissions are not pre-granted")
            return
        destination = self._simulators_dir / target.udid / TCC_DB_RELATIVE_PATH
        if not destination.exists():
            logger.info("Copying TCC database to %s", destination.parent)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(config.tcc_db, destination)
        grant_services(destination, config.app_id, GRANTED_SERVICES)


def grant_services(db_path: Path, client: str, services: Sequence[str]) -> None:
    """Allow ``client`` every service; an existing row for the pair is updated instead."""
    connection = sqlite3.connect(str(db_path))
    try:
        for service in services:
            logger.info("Granting %s to %s", service, client)
            try:
                connection.execute(_INSERT_ACCESS, (service, client))
            except sqlite3.IntegrityError:
                connection.execute(_UPDATE_ACCESS, (service, client))
        connection.commit()
    except sqlite3.Error as exc:
        connection.rollback()
        raise PermissionGrantError(f"Could not update TCC database {db_path}: {exc}") from exc
    finally:
        connection.close()
