"""Reporting channel HTTP server tests."""

from __future__ import annotations

import socket
import threading

import pytest
import requests
from app_test_orchestrator.reporting_channel import (
    ChannelEvent,
    ReportingChannelError,
    start_reporting_channel,
)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_device_posts_reach_subscribers_over_http() -> None:
    port = _free_port()
    channel = start_reporting_channel((port, port + 4))
    done = threading.Event()
    payloads: list[object] = []

    def _on_done(payload) -> None:
        payloads.append(payload)
        done.set()

    channel.on(ChannelEvent.JASMINE_DONE, _on_done)
    base_url = f"http://127.0.0.1:{channel.port}"
    try:
        requests.post(f"{base_url}/connect", json={}, timeout=5).raise_for_status()
        assert channel.is_device_connected() is True
        requests.post(
            f"{base_url}/events/jasmineDone",
            json={"specResults": {"specFailed": 0}},
            timeout=5,
        ).raise_for_status()
        assert done.wait(timeout=5)
    finally:
        channel.clean_up()

    assert payloads == [{"specResults": {"specFailed": 0}}]


def test_busy_port_is_skipped() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("0.0.0.0", 0))
        busy.listen()
        busy_port = busy.getsockname()[1]
        channel = start_reporting_channel((busy_port, busy_port + 10))
        try:
            assert channel.port is not None
            assert channel.port != busy_port
        finally:
            channel.clean_up()


def test_no_free_port_raises() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("0.0.0.0", 0))
        busy.listen()
        busy_port = busy.getsockname()[1]
        with pytest.raises(ReportingChannelError, match="No free port"):
            start_reporting_channel((busy_port, busy_port))
