"""File transfer server routes and start condition."""

from __future__ import annotations

import io
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
from app_test_orchestrator.reporting_channel import needs_file_transfer_server
from app_test_orchestrator.reporting_channel.file_transfer_server import (
    ROBOTS_TXT,
    create_file_transfer_app,
)


def _config(**changes: object) -> RunConfig:
    config = RunConfig(
        platform=Platform.ANDROID,
        action=Action.RUN,
        cli="cordova",
        plugins=("cordova-plugin-file-transfer",),
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


@pytest.mark.parametrize(
    ("changes", "expected"),
    [
        ({}, True),
        ({"plugins": ("../plugins/cordova-plugin-file-transfer",)}, True),
        ({"plugins": ("cordova-plugin-device",)}, False),
        ({"file_transfer_server": "http://files.example.test:5000"}, False),
        ({"ci": True}, False),
    ],
)
def test_local_server_only_for_file_transfer_plugin_outside_ci(
    changes: dict[str, object], expected: bool
) -> None:
    assert needs_file_transfer_server(_config(**changes)) is expected


def test_download_serves_files_from_root(tmp_path: Path) -> None:
    (tmp_path / "www").mkdir()
    (tmp_path / "www" / "index.html").write_text("<html></html>", encoding="utf-8")
    client = create_file_transfer_app(tmp_path).test_client()

    found = client.get("/download/www/index.html")
    missing = client.get("/download/www/missing.html")
    escaping = client.get("/download/../secret.txt")

    assert found.status_code == 200
    assert found.data == b"<html></html>"
    assert missing.status_code == 404
    assert escaping.status_code == 404


def test_upload_stores_file_and_echoes_fields(tmp_path: Path) -> None:
    client = create_file_transfer_app(tmp_path).test_client()

    response = client.post(
        "/upload",
        data={"value1": "test", "file": (io.BytesIO(b"hello"), "../upload.txt")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    assert response.get_json() == {
        "fields": {"value1": "test"},
        "files": {"file": {"name": "upload.txt", "size": 5}},
    }
    assert (tmp_path / "uploads" / "upload.txt").read_bytes() == b"hello"


def test_raw_upload_reports_body_size(tmp_path: Path) -> None:
    client = create_file_transfer_app(tmp_path).test_client()

    response = client.put("/upload", data=b"0123456789")

    assert response.get_json()["files"] == {"body": {"name": None, "size": 10}}


def test_fixed_routes_for_status_checks(tmp_path: Path) -> None:
    client = create_file_transfer_app(tmp_path).test_client()

    robots = client.get("/robots.txt")
    not_found = client.get("/404")
    moved = client.get("/302")

    assert robots.data.decode("utf-8") == ROBOTS_TXT
    assert not_found.status_code == 404
    assert moved.status_code == 302
    assert moved.headers["Location"].endswith("/robots.txt")
