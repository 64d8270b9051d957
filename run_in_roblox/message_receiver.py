"""Message receiver - local HTTP endpoint the Studio plugin reports to.

The plugin POSTs JSON to http://localhost:<port>/<route>:

    /start      {"server_id": "..."}
    /stop       {"server_id": "..."}
    /messages   {"server_id": "...", "messages": [{"type": "Output", ...}]}

Requests with the wrong server_id get 403 and malformed ones get 400.
Neither is queued. Accepted requests are decoded and appended to a FIFO
queue that the runner drains with recv() / recv_timeout().
"""

import hmac
import json
import queue
import socket
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Optional
from urllib.parse import urlsplit

from .errors import MessageReceiverError
from .log import get_logger
from .messages import Message, MessageDecodeError, decode_message

HOST = "127.0.0.1"

# Seconds a client may stall mid-request before its connection is dropped
REQUEST_TIMEOUT = 5.0

# Largest request body accepted; output batches are far smaller
MAX_BODY_SIZE = 8 * 1024 * 1024

ROUTES = ("start", "stop", "messages")

log = get_logger("receiver")

# Queued by stop() to wake blocked receivers
_STOPPED = object()


def find_free_port() -> int:
    """Ask the OS for an unused loopback port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, 0))
        return sock.getsockname()[1]


@dataclass(frozen=True)
class MessageReceiverOptions:
    port: int
    server_id: str


class _ReceiverServer(ThreadingMixIn, HTTPServer):
    # Handler threads are joined in server_close()
    daemon_threads = False
    block_on_close = True

    def __init__(self, options: MessageReceiverOptions, messages: queue.Queue):
        self.options = options
        self.messages = messages
        self._connections: set = set()
        self._connections_lock = threading.Lock()
        super().__init__((HOST, options.port), _RequestHandler)

    def process_request(self, request, client_address):
        with self._connections_lock:
            self._connections.add(request)
        super().process_request(request, client_address)

    def shutdown_request(self, request):
        with self._connections_lock:
            self._connections.discard(request)
        super().shutdown_request(request)

    def close_connections(self) -> int:
        """Shut down every connection a handler is still serving.

        Handlers blocked reading a slow client wake up with EOF, so
        server_close() does not wait out REQUEST_TIMEOUT for each of them.
        """
        with self._connections_lock:
            connections = list(self._connections)
        for sock in connections:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already closed by its handler
        return len(connections)

    def handle_error(self, request, client_address):
        # Connections cut by close_connections() fail mid-response
        log.debug("Connection dropped", client=f"{client_address[0]}:{client_address[1]}")


class _RequestHandler(BaseHTTPRequestHandler):
    server: _ReceiverServer
    timeout = REQUEST_TIMEOUT

    def log_message(self, fmt, *args):
        log.debug(fmt % args)

    def _respond(self, status: int, error: Optional[str] = None):
        body = json.dumps({"error": error} if error else {"ok": True}).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_payload(self) -> dict:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            raise MessageDecodeError("invalid Content-Length")
        if length < 0 or length > MAX_BODY_SIZE:
            raise MessageDecodeError(f"Content-Length must be between 0 and {MAX_BODY_SIZE}")
        raw = self.rfile.read(length) if length > 0 else b""

        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise MessageDecodeError("body is not valid JSON")

        if not isinstance(payload, dict):
            raise MessageDecodeError("body must be a JSON object")
        return payload

    def _authorized(self, payload: dict) -> bool:
        token = payload.get("server_id")
        if not isinstance(token, str):
            return False
        return hmac.compare_digest(
            token.encode("utf-8"), self.server.options.server_id.encode("utf-8")
        )

    def do_POST(self):
        route = urlsplit(self.path).path.strip("/")
        if route not in ROUTES:
            self._respond(404, f"unknown route: /{route}")
            return

        try:
            payload = self._read_payload()
        except MessageDecodeError as e:
            log.warn(f"Rejected malformed request to /{route}: {e}")
            self._respond(400, str(e))
            return

        if not self._authorized(payload):
            log.warn(f"Rejected request to /{route} with invalid server id")
            self._respond(403, "invalid server id")
            return

        try:
            message = decode_message(route, payload)
        except MessageDecodeError as e:
            log.warn(f"Rejected invalid payload on /{route}: {e}")
            self._respond(400, str(e))
            return

        self.server.messages.put(message)
        self._respond(200)

    def _method_not_allowed(self):
        self._respond(405, "only POST is supported")

    do_GET = _method_not_allowed
    do_PUT = _method_not_allowed
    do_DELETE = _method_not_allowed
    do_PATCH = _method_not_allowed


class MessageReceiver:
    """Background HTTP listener feeding a message queue.

    Use MessageReceiver.start() to bind and begin serving. The returned
    handle is usable immediately; start() does not wait for any request.
    """

    def __init__(self, options: MessageReceiverOptions):
        self.options = options
        self._queue: queue.Queue = queue.Queue()
        self._server: Optional[_ReceiverServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stopped = False

    @classmethod
    def start(cls, options: MessageReceiverOptions) -> "MessageReceiver":
        """Bind the listener and serve it on a background thread.

        Raises:
            MessageReceiverError: If the port cannot be bound
        """
        receiver = cls(options)
        receiver._listen()
        return receiver

    @property
    def port(self) -> int:
        """Port actually bound (differs from options.port when that is 0)."""
        if self._server is None:
            return self.options.port
        return self._server.server_address[1]

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _listen(self) -> None:
        try:
            server = _ReceiverServer(self.options, self._queue)
        except OSError as e:
            raise MessageReceiverError(
                f"Could not listen on {HOST}:{self.options.port}: {e}"
            ) from e

        thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"message-receiver-{server.server_address[1]}",
            daemon=True,
        )
        with self._lock:
            self._server = server
            self._thread = thread
        thread.start()
        log.debug("Listening", host=HOST, port=self.port)

    def recv(self) -> Message:
        """Block until the next message arrives.

        Raises:
            MessageReceiverError: If the receiver has been stopped
        """
        message = self._queue.get()
        if message is _STOPPED:
            self._queue.put(_STOPPED)
            raise MessageReceiverError("Message receiver was stopped")
        return message

    def recv_timeout(self, timeout: float) -> Optional[Message]:
        """Wait up to `timeout` seconds for a message.

        Returns None on expiry, or once the receiver has been stopped.
        """
        try:
            message = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if message is _STOPPED:
            self._queue.put(_STOPPED)
            return None
        return message

    def stop(self) -> None:
        """Shut the listener down and release its socket.

        Safe to call more than once, and on a receiver that never started.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            server, thread = self._server, self._thread

        self._queue.put(_STOPPED)

        if server is not None:
            server.shutdown()
            dropped = server.close_connections()
            if dropped:
                log.debug("Dropped open connections", count=dropped)
            server.server_close()
        if thread is not None:
            thread.join(timeout=REQUEST_TIMEOUT)

        log.debug("Stopped", port=self.options.port)
