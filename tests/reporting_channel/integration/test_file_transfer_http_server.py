"""File transfer server over real HTTP."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest
import requests
from app_test_orchestrator.reporting_channel import (
    FileTransferServerError,
    start_file_transfer_server,
)


def test_server_serves_root_until_stopped(tmp_path: Path) -> None:
    (tmp_path / "payload.bin").write_bytes(b"\x00\x01\x02")
    server = start_file_transfer_server(tmp_path, port=0)
    try:
        assert server.port
        response = requests.get(f"http://127.0.0.1:{server.port}/download/payload.bin", timeout=5)
    finally:
        server.stop()
        server.stop()

    assert response.status_code == 200
    assert response.content == b"\x00\x01\x02"
    assert server.url == f"http://127.0.0.1:{server.port}"


def test_busy_port_raises(tmp_path: Path) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("0.0.0.0", 0))
        busy.listen()
        busy_port = busy.getsockname()[1]

        with pytest.raises(FileTransferServerError, match="busy"):
            start_file_transfer_server(tmp_path, port=busy_port)
