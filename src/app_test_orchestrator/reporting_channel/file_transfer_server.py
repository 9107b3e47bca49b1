"""Local file transfer server used by the file-transfer plugin's test suite."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from flask import Flask, Response, jsonify, redirect, request, send_from_directory
from werkzeug.serving import BaseWSGIServer, make_server
from werkzeug.utils import secure_filename

from app_test_orchestrator.configuration.runtime_settings import RunConfig

from .local_channel import LISTEN_HOST, LOCAL_HOST_URL, bind_listener

logger = logging.getLogger(__name__)

FILE_TRANSFER_PLUGIN = "cordova-plugin-file-transfer"
FILE_TRANSFER_PORT = 5000
UPLOADS_DIR_NAME = "uploads"
ROBOTS_TXT = "User-agent: *\nDisallow: /\n"


class FileTransferServerError(Exception):
    """Raised when the local file transfer server cannot be started."""


def needs_file_transfer_server(config: RunConfig) -> bool:
    """Whether a run should start its own file transfer server."""
    if config.file_transfer_server or config.ci:
        return False
    return any(FILE_TRANSFER_PLUGIN in plugin for plugin in config.plugins)


class FileTransferServer:
    """Serves downloads from ``root`` and stores uploads under ``root/uploads``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.port: int | None = None
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def url(self) -> str:
        return f"{LOCAL_HOST_URL}:{self.port}"

    def serve(self, server: BaseWSGIServer) -> None:
        self._server = server
        self.port = server.server_address[1]
        self._thread = threading.Thread(
            target=server.serve_forever, name="file-transfer-server", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop serving; safe to call twice."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.debug("File transfer server stopped")


def create_file_transfer_app(root: Path) -> Flask:
    """Routes the file-transfer test suite expects from its server."""
    app = Flask(__name__)
    uploads_dir = root / UPLOADS_DIR_NAME

    @app.route("/robots.txt", methods=["GET"])
    def robots():
        return Response(ROBOTS_TXT, mimetype="text/plain")

    @app.route("/download/<path:name>", methods=["GET"])
    def download(name: str):
        return send_from_directory(root, name)

    @app.route("/upload", methods=["POST", "PUT"])
    def upload():
        uploads_dir.mkdir(parents=True, exist_ok=True)
        files: dict[str, dict[str, object]] = {}
        for field_name, storage in request.files.items():
            filename = secure_filename(storage.filename or "") or field_name
            destination = uploads_dir / filename
            storage.save(destination)
            files[field_name] = {"name": filename, "size": destination.stat().st_size}
        if not request.files:
            body = request.get_data()
            files["body"] = {"name": None, "size": len(body)}
        return jsonify({"fields": request.form.to_dict(), "files": files})

    @app.route("/404", methods=["GET"])
    def not_found():
        return jsonify({"error": "Not found"}), 404

    @app.route("/302", methods=["GET"])
    def moved():
        return redirect("/robots.txt", code=302)

    return app


def start_file_transfer_server(root: Path, port: int = FILE_TRANSFER_PORT) -> FileTransferServer:
    """Start serving ``root``; a busy port raises ``FileTransferServerError``."""
    listener = bind_listener(port)
    if listener is None:
        raise FileTransferServerError(f"Port {port} for the file transfer server is busy.")
    server = FileTransferServer(root)
    with listener:
        wsgi_server = make_server(
            LISTEN_HOST,
            port,
            create_file_transfer_app(root),
            threaded=True,
            fd=listener.fileno(),
        )
    server.serve(wsgi_server)
    logger.info("File transfer server listening on port %s, serving %s", server.port, root)
    return server
