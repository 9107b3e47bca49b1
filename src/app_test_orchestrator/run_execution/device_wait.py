"""Connection watchdog and result listener racing on the reporting channel."""

from __future__ import annotations

import logging
import threading

from app_test_orchestrator.reporting_channel import (
    ChannelEvent,
    ReportingChannel,
    ReportingChannelError,
    Subscription,
    failed_spec_count,
)

from .completion_signals import CompletionRace, Disconnected, Failed, NeverConnected, Passed

logger = logging.getLogger(__name__)


class DeviceWait:
    """Starts both device-side waits and releases their timer and subscriptions on exit."""

    def __init__(
        self,
        race: CompletionRace,
        channel: ReportingChannel,
        connection_timeout_ms: int,
    ) -> None:
        self._race = race
        self._channel = channel
        self._connection_timeout_ms = connection_timeout_ms
        self._results_received = threading.Event()
        self._watchdog: threading.Timer | None = None
        self._subscriptions: list[Subscription] = []

    def __enter__(self) -> DeviceWait:
        self._subscriptions = [
            self._channel.on(ChannelEvent.JASMINE_DONE, self._on_results),
            self._channel.on(ChannelEvent.DISCONNECT, self._on_disconnect),
        ]
        self._watchdog = threading.Timer(
            self._connection_timeout_ms / 1000, self._on_connection_deadline
        )
        self._watchdog.daemon = True
        self._watchdog.start()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
        for subscription in self._subscriptions:
            subscription.cancel()

    def _on_connection_deadline(self) -> None:
        if self._channel.is_device_connected():
            logger.debug("Device connected before the connection deadline")
            return
        self._race.offer(NeverConnected(after_ms=self._connection_timeout_ms))

    def _on_results(self, payload) -> None:
        self._results_received.set()
        logger.info("Tests have been completed")
        try:
            spec_failed = failed_spec_count(payload)
        except ReportingChannelError as exc:
            self._race.offer(Failed(reason=f"Unreadable test results: {exc}"))
            return
        if spec_failed == 0:
            self._race.offer(Passed())
        else:
            self._race.offer(Failed(reason=f"{spec_failed} spec(s) failed."))

    def _on_disconnect(self, payload) -> None:
        if self._results_received.is_set():
            logger.debug("Device disconnected after reporting results")
            return
        self._race.offer(Disconnected())
