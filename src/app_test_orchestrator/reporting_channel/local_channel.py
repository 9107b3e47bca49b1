"""Local HTTP reporting channel the device under test connects to."""

from __future__ import annotations

import logging
import socket
import threading
from collections import defaultdict

from flask import Flask, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from app_test_orchestrator.configuration.runtime_settings import Platform

from .channel_events import (
    ChannelEvent,
    EventCallback,
    EventPayload,
    ReportingChannelError,
)

logger = logging.getLogger(__name__)

LISTEN_HOST = "0.0.0.0"
LOCAL_HOST_URL = "http://127.0.0.1"
# Host loopback as seen from inside the Android emulator.
ANDROID_EMULATOR_HOST_URL = "http://10.0.2.2"
DEFAULT_DEVICE_ID = "default"


class Subscription:
    """Handle returned by ``ReportingChannel.on``; ``cancel`` stops delivery."""

    def __init__(self, channel: ReportingChannel, event: str, callback: EventCallback) -> None:
        self._channel = channel
        self.event = event
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._channel._unsubscribe(self)  # pylint: disable=protected-access


class ReportingChannel:
    """Publish/subscribe hub fed by device HTTP posts.

    Events are delivered to subscribers one at a time, in arrival order. A device
    counts as connected between its ``/connect`` and ``/disconnect`` calls.
    """

    def __init__(self, *, external_url: str | None = None, use_tunnel: bool = False) -> None:
        self._external_url = external_url.rstrip("/") if external_url else None
        self._use_tunnel = use_tunnel
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self._connected_devices: set[str] = set()
        self._delivery_lock = threading.RLock()
        self._server: BaseWSGIServer | None = None
        self._server_thread: threading.Thread | None = None
        self._closed = False
        self.port: int | None = None

    def is_device_connected(self) -> bool:
        with self._delivery_lock:
            return bool(self._connected_devices)

    def on(self, event: ChannelEvent | str, callback: EventCallback) -> Subscription:
        name = _event_name(event)
        subscription = Subscription(self, name, callback)
        with self._delivery_lock:
            self._subscribers[name].append(subscription)
        return subscription

    def publish(self, event: ChannelEvent | str, payload: EventPayload = None) -> int:
        """Deliver an event to its current subscribers and return how many received it."""
        name = _event_name(event)
        delivered = 0
        with self._delivery_lock:
            if self._closed:
                logger.debug("Dropping %s event: channel is closed", name)
                return 0
            for subscription in list(self._subscribers.get(name, ())):
                if not subscription.active:
                    continue
                try:
                    subscription.callback(payload)
                except Exception:  # pylint: disable=broad-exception-caught
                    logger.exception("Subscriber for %s event failed", name)
                delivered += 1
        return delivered

    def register_connection(self, device_id: str = DEFAULT_DEVICE_ID) -> None:
        with self._delivery_lock:
            self._connected_devices.add(device_id)
        logger.info("Device connected to reporting channel: %s", device_id)

    def register_disconnection(self, device_id: str = DEFAULT_DEVICE_ID) -> None:
        with self._delivery_lock:
            self._connected_devices.discard(device_id)
            logger.info("Device disconnected from reporting channel: %s", device_id)
            self.publish(ChannelEvent.DISCONNECT, {"device": device_id})

    def get_connection_url(self, platform: Platform) -> str:
        """URL the app under test must post its events to."""
        if self._use_tunnel and self._external_url:
            return self._external_url
        if self._external_url:
            host = self._external_url
        elif platform is Platform.ANDROID:
            host = ANDROID_EMULATOR_HOST_URL
        else:
            host = LOCAL_HOST_URL
        return f"{host}:{self.port}" if self.port else host

    def clean_up(self) -> None:
        """Stop the listener and drop every subscription; safe to call twice."""
        with self._delivery_lock:
            if self._closed:
                return
            self._closed = True
            self._subscribers.clear()
            self._connected_devices.clear()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._server_thread is not None:
            self._server_thread.join(timeout=5)
        logger.debug("Reporting channel closed")

    def serve(self, server: BaseWSGIServer) -> None:
        self._server = server
        self.port = server.server_address[1]
        self._server_thread = threading.Thread(
            target=server.serve_forever, name="reporting-channel", daemon=True
        )
        self._server_thread.start()

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._delivery_lock:
            subscribers = self._subscribers.get(subscription.event, [])
            if subscription in subscribers:
                subscribers.remove(subscription)


def create_channel_app(channel: ReportingChannel) -> Flask:
    """Build the Flask app translating device HTTP posts into channel events."""
    app = Flask(__name__)
    known_events = {event.value for event in ChannelEvent}

    @app.after_request
    def allow_cross_origin(response):
        # The app under test posts from its own web view origin.
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return response

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "connected": channel.is_device_connected()})

    @app.route("/connect", methods=["POST", "OPTIONS"])
    def connect():
        if request.method == "OPTIONS":
            return "", 204
        channel.register_connection(_device_id())
        return jsonify({"status": "connected"})

    @app.route("/disconnect", methods=["POST", "OPTIONS"])
    def disconnect():
        if request.method == "OPTIONS":
            return "", 204
        channel.register_disconnection(_device_id())
        return jsonify({"status": "disconnected"})

    @app.route("/events/<name>", methods=["POST", "OPTIONS"])
    def post_event(name: str):
        if request.method == "OPTIONS":
            return "", 204
        if name not in known_events:
            return jsonify({"error": f"Unknown event: {name}"}), 404
        if name == ChannelEvent.DISCONNECT.value:
            channel.register_disconnection(_device_id())
            return jsonify({"status": "disconnected"})
        payload = request.get_json(silent=True)
        delivered = channel.publish(name, payload)
        return jsonify({"status": "delivered", "subscribers": delivered})

    return app


def start_reporting_channel(
    ports: tuple[int, int],
    external_url: str | None = None,
    use_tunnel: bool = False,
    suppress_listener: bool = False,
) -> ReportingChannel:
    """Start a reporting channel on the first free port of the range.

    With ``suppress_listener`` no socket is bound; events can still be published
    programmatically (remote browser runs report through the device farm).
    """
    channel = ReportingChannel(external_url=external_url, use_tunnel=use_tunnel)
    if suppress_listener:
        logger.info("Reporting channel started without a listener")
        return channel

    app = create_channel_app(channel)
    start, end = ports
    for port in range(start, end + 1):
        listener = bind_listener(port)
        if listener is None:
            logger.debug("Port %s is busy, trying the next one", port)
            continue
        with listener:
            server = make_server(LISTEN_HOST, port, app, threaded=True, fd=listener.fileno())
        channel.serve(server)
        logger.info("Reporting channel listening on port %s", channel.port)
        return channel
    raise ReportingChannelError(f"No free port for the reporting channel in range {start}-{end}.")


def bind_listener(port: int) -> socket.socket | None:
    """Bind and listen on ``port``; werkzeug then serves from the bound descriptor."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        listener.bind((LISTEN_HOST, port))
        listener.listen()
    except OSError:
        listener.close()
        return None
    return listener


def _device_id() -> str:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and isinstance(payload.get("device"), str):
        return payload["device"]
    return DEFAULT_DEVICE_ID


def _event_name(event: ChannelEvent | str) -> str:
    return event.value if isinstance(event, ChannelEvent) else str(event)
