"""
Minimal HTTP/1.1 control listener for the PC.

One request per connection, no keep-alive. Only the request path is
routed; the method is ignored. Every connection gets its own daemon
thread, and operator notifications run on a thread of their own, so no
client waits on another client or on Telegram.

Per connection: ACCEPTED → READ_REQUEST_LINE → DISPATCH → RESPOND → CLOSED.
"""

# --- Standard library imports ---
import time
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlsplit

# --- Project imports ---
from .config import AppConfig, Config
from .telemetry import tlog
from .logger import get_logger
from .status import StatusStore
from .notifier import TelegramNotifier
from .power import send_wake_on_lan, send_shutdown_command, is_online


MAX_REQUEST_LINE = 8192
MAX_HEADER_LINES = 100
ACCEPT_POLL_INTERVAL = 0.5   # seconds between stop-flag checks in accept()
TLS_HANDSHAKE_RECORD = 0x16  # first byte of a TLS ClientHello

REASONS = {
    200: "OK",
    404: "Not Found",
    408: "Request Timeout",
    500: "Internal Server Error",
}


@dataclass(frozen=True)
class Response:
    status: int
    body: str = ""
    notify: Optional[str] = None   # operator message sent after responding

    def encode(self) -> bytes:
        payload = self.body.encode("utf-8")
        head = (
            f"HTTP/1.1 {self.status} {REASONS.get(self.status, 'Unknown')}\r\n"
            "Content-Type: text/plain\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        return head.encode("ascii") + payload


NOT_FOUND = Response(404, "Endpoint not found")
REQUEST_TIMEOUT = Response(408)


class ControlServer:
    """
    Local control API: /turn-on, /turn-off and /is-online.

    Settings are read once at construction. The status store is shared
    with the reconciliation loop; /is-online writes the probe result into it.
    """

    def __init__(
        self,
        config: AppConfig,
        status: StatusStore,
        notifier: Optional[TelegramNotifier] = None,
        host: str = Config.SERVER_HOST,
        port: int = Config.SERVER_PORT,
        read_timeout: float = Config.REQUEST_TIMEOUT,
    ):
        self.logger = get_logger("server")
        self.config = config
        self.status = status
        self.notifier = notifier or TelegramNotifier.from_config(config)
        self.host = host
        self.port = port
        self.read_timeout = read_timeout

        self.routes: dict[str, Callable[[], Response]] = {
            "/turn-on": self.handle_turn_on,
            "/turn-off": self.handle_turn_off,
            "/is-online": self.handle_is_online,
        }

        self._pending: set[threading.Thread] = set()
        self._pending_lock = threading.Lock()
        self._stopped = threading.Event()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None

    # --- Lifecycle ---
    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        self._sock = sock
        self.port = sock.getsockname()[1]
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._accept_loop, name="http-accept", daemon=True
        )
        self._thread.start()
        self.logger.info(f"🚀 HTTP control server listening on {self.host}:{self.port}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Close the listener and end the accept loop.

        In-flight connections are left to finish or time out on their own.
        """
        self._stopped.set()

        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass   # Never connected; nothing to shut down
            self._sock.close()

        if self._thread is not None:
            self._thread.join(timeout)

        self.logger.info("HTTP control server stopped")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every accepted connection, and any notification it
        triggered, has been fully handled.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return True

            for thread in pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                thread.join(remaining)

    def _accept_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopped.is_set():
                    break   # Listener closed by stop()
                self.logger.error(f"Accept failed ({e.__class__.__name__}: {e})")
                continue

            self._spawn("http-conn", self._handle_connection, conn, addr)

    def _spawn(self, name: str, target: Callable, *args) -> None:
        """Run target on a tracked daemon thread."""
        thread = threading.Thread(
            target=self._run_tracked, args=(target, *args), name=name, daemon=True
        )
        with self._pending_lock:
            self._pending.add(thread)
            thread.start()

    def _run_tracked(self, target: Callable, *args) -> None:
        try:
            target(*args)
        finally:
            with self._pending_lock:
                self._pending.discard(threading.current_thread())

    # --- Per-connection handling ---
    def _handle_connection(self, conn: socket.socket, addr) -> None:
        with conn:
            conn.settimeout(self.read_timeout)
            try:
                response = self._read_and_dispatch(conn, addr)
                if response is None:
                    return

                self._write(conn, response)
            except OSError as e:
                self.logger.debug(f"Connection from {addr[0]} dropped ({e.__class__.__name__})")
                return

        if response.notify:
            self._spawn("notify", self.notifier.send, response.notify)

    def _read_and_dispatch(self, conn: socket.socket, addr) -> Optional[Response]:
        try:
            first = conn.recv(1, socket.MSG_PEEK)
            if first and first[0] == TLS_HANDSHAKE_RECORD:
                self.logger.warning(f"HTTPS/TLS connection attempted from {addr[0]}; closing")
                return None

            reader = conn.makefile("rb")
            try:
                raw_line = reader.readline(MAX_REQUEST_LINE)
                if raw_line.strip():
                    self._drain_headers(reader)
            finally:
                reader.close()
        except socket.timeout:
            tlog(self.logger, "🟡", "HTTP", "408", primary=f"client={addr[0]}")
            return REQUEST_TIMEOUT

        request_line = raw_line.decode("latin-1").strip()
        response = self.dispatch(request_line)
        tlog(
            self.logger,
            "🟢" if response.status == 200 else "🔴",
            "HTTP",
            str(response.status),
            primary=request_line or "<blank>",
            meta=f"client={addr[0]}",
        )
        return response

    def _drain_headers(self, reader) -> None:
        """Consume the rest of the request head so closing doesn't reset the client."""
        try:
            for _ in range(MAX_HEADER_LINES):
                line = reader.readline(MAX_REQUEST_LINE)
                if line in (b"", b"\r\n", b"\n"):
                    return
        except socket.timeout:
            return

    def _write(self, conn: socket.socket, response: Response) -> None:
        conn.sendall(response.encode())
        try:
            conn.shutdown(socket.SHUT_WR)
        except OSError:
            pass   # Peer already gone

    # --- Routing ---
    def dispatch(self, request_line: str) -> Response:
        """
        Map a request line to a response by path only.

        Blank, unparseable or short request lines are treated as unknown paths.
        """
        parts = request_line.split(" ")
        if len(parts) < 2:
            return NOT_FOUND

        path = urlsplit(parts[1]).path
        handler = self.routes.get(path)
        if handler is None:
            return NOT_FOUND

        try:
            return handler()
        except Exception as e:
            self.logger.error(f"{path} failed ({type(e).__name__}: {e})")
            return Response(500, f"Error: {e}")

    def handle_turn_on(self) -> Response:
        send_wake_on_lan(self.config.pc_mac_address, port=self.config.wol_port)
        return Response(200, "PC turn on command sent", notify="PC is turning ON")

    def handle_turn_off(self) -> Response:
        send_shutdown_command(
            self.config.pc_ip_address,
            self.config.pc_shutdown_command,
            port=self.config.pc_shutdown_port,
        )
        return Response(200, "PC turn off command sent", notify="PC is turning OFF")

    def handle_is_online(self) -> Response:
        online = is_online(self.config.pc_ip_address, self.config.pc_probe_port)
        self.status.set("current_pc_online", online)
        return Response(200, "true" if online else "false")
