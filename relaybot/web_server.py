from __future__ import annotations

import base64
import binascii
import html
import logging
import secrets
import sqlite3
import threading
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs

from relaybot.errors import PromptNotFound
from relaybot.storage import Storage

MAX_FORM_BYTES = 1024 * 1024

FORM_TEMPLATE = (
    "<!doctype html><html><head><meta charset='utf-8'>"
    "<title>System prompt</title>"
    "<style>body{{font-family:Arial,Helvetica,sans-serif;padding:16px}}"
    "textarea{{width:100%;height:70vh;font-family:monospace}}</style>"
    "</head><body><h1>System prompt</h1>"
    "<form method='post' action='/save'>"
    "<textarea name='prompt'>{prompt}</textarea>"
    "<p><button type='submit'>Save</button></p>"
    "</form></body></html>"
)


@dataclass(frozen=True)
class PromptFormConfig:
    host: str
    port: int
    enabled: bool
    username: str
    password: str


def check_basic_auth(header: str | None, username: str, password: str) -> bool:
    if not header or not header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(header[len("Basic "):], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    if ":" not in decoded:
        return False
    req_username, req_password = decoded.split(":", 1)
    username_ok = secrets.compare_digest(req_username.encode("utf-8"), username.encode("utf-8"))
    password_ok = secrets.compare_digest(req_password.encode("utf-8"), password.encode("utf-8"))
    return username_ok and password_ok


def _make_handler(storage: Storage, config: PromptFormConfig) -> type[BaseHTTPRequestHandler]:
    class PromptFormHandler(BaseHTTPRequestHandler):
        server_version = "PromptForm/1.0"

        def log_message(self, format: str, *args: Any) -> None:
            logging.getLogger("web_server").info("%s - %s", self.address_string(), format % args)

        def _send(self, status: int, body: bytes, content_type: str = "text/plain; charset=utf-8") -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _authorized(self) -> bool:
            header = self.headers.get("Authorization")
            if not header:
                self.send_response(HTTPStatus.UNAUTHORIZED)
                self.send_header("WWW-Authenticate", 'Basic realm="Restricted"')
                self.send_header("Content-Length", "0")
                self.end_headers()
                return False
            if not check_basic_auth(header, config.username, config.password):
                self._send(HTTPStatus.UNAUTHORIZED, b"Unauthorized")
                return False
            return True

        def _path(self) -> str:
            return self.path.split("?", 1)[0]

        def do_GET(self) -> None:
            if not self._authorized():
                return
            path = self._path()
            if path == "/save":
                self._send(HTTPStatus.METHOD_NOT_ALLOWED, b"Invalid request method")
                return
            if path != "/":
                self._send(HTTPStatus.NOT_FOUND, b"Not Found")
                return
            try:
                prompt = storage.get_system_prompt(use_cache=False)
            except PromptNotFound:
                prompt = ""
            except sqlite3.Error:
                logging.getLogger("web_server").exception("Failed to load prompt")
                self._send(HTTPStatus.INTERNAL_SERVER_ERROR, b"Internal Server Error")
                return
            body = FORM_TEMPLATE.format(prompt=html.escape(prompt)).encode("utf-8")
            self._send(HTTPStatus.OK, body, "text/html; charset=utf-8")

        def do_POST(self) -> None:
            if not self._authorized():
                return
            if self._path() != "/save":
                self._send(HTTPStatus.METHOD_NOT_ALLOWED, b"Invalid request method")
                return
            length = int(self.headers.get("Content-Length") or 0)
            if length > MAX_FORM_BYTES:
                self._send(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, b"Prompt is too large")
                return
            raw = self.rfile.read(length).decode("utf-8", errors="replace")
            prompt = (parse_qs(raw).get("prompt") or [""])[0]
            if not prompt:
                self._send(HTTPStatus.BAD_REQUEST, b"Prompt cannot be empty")
                return
            try:
                storage.insert_prompt(prompt)
            except sqlite3.Error:
                logging.getLogger("web_server").exception("Failed to save prompt")
                self._send(HTTPStatus.INTERNAL_SERVER_ERROR, b"Failed to save prompt")
                return
            self.send_response(HTTPStatus.SEE_OTHER)
            self.send_header("Location", "/")
            self.send_header("Content-Length", "0")
            self.end_headers()

    return PromptFormHandler


class PromptFormServer:
    def __init__(self, storage: Storage, config: PromptFormConfig) -> None:
        self._storage = storage
        self._config = config
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._logger = logging.getLogger("web_server")

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def server_address(self) -> tuple[str, int] | None:
        if self._server is None:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        if not self._config.enabled:
            self._logger.info("Prompt form disabled")
            return
        if not self._config.username or not self._config.password:
            self._logger.warning("Prompt form credentials are empty; web server not started")
            return
        handler = _make_handler(self._storage, self._config)
        self._server = ThreadingHTTPServer((self._config.host, self._config.port), handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        self._logger.info("Prompt form started http://%s:%s", self._config.host, self._config.port)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        self._logger.info("Prompt form stopped")
