"""
TCP client for the vision camera's counter stream.

Owns the socket, a background read thread and the reconnection policy:
- Reconnection bursts of up to 10 attempts with exponential backoff
  (5, 10, 20, 40, 60, 60, ... seconds); the backoff restarts every burst
- A 1 s pause when a burst ends without a connection
- A 5 s pause after a read error before the loop retries
- Graceful shutdown through a threading.Event checked between short socket
  polls, and a bounded join on stop

Each non-empty read is treated as one complete packet (the camera sends one
packet per write and there is no delimiter framing).
"""

import socket
import threading
from enum import Enum
from typing import Callable, Optional

from production_counter.codec import PacketCodec
from production_counter.codec.PacketCodec import CameraPacket
from production_counter.exceptions import CameraConnectionError, ParseError
from production_counter.utils.AppLogging import logger
from production_counter.utils.Notifier import Notifier

READ_BUFFER_SIZE = 4096


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ReconnectBackoff:
    """Doubling delay with an upper bound."""

    def __init__(self, initial: float = 5.0, maximum: float = 60.0):
        self.initial = initial
        self.maximum = maximum
        self._current = initial

    def next_delay(self) -> float:
        """Return the delay to wait now and advance to the next one."""
        delay = self._current
        self._current = min(self._current * 2, self.maximum)
        return delay

    def reset(self) -> None:
        self._current = self.initial


class ConnectionManager:
    """
    Camera TCP connection with a background read loop.

    Notifications:
        connectivity_changed(connected: bool)

    Decoded packets are passed to ``packet_handler`` on the read thread.
    """

    def __init__(
        self,
        packet_handler: Callable[[CameraPacket], None],
        address: str = "",
        port: int = 0,
        auto_reconnect: bool = True,
        connect_timeout: float = 10.0,
        reconnect_delay: float = 5.0,
        max_reconnect_delay: float = 60.0,
        max_reconnect_attempts: int = 10,
        idle_retry_delay: float = 1.0,
        read_error_delay: float = 5.0,
        poll_interval: float = 0.5,
    ):
        """
        Args:
            packet_handler: Called with each decoded CameraPacket
            address: Camera IP address or host name
            port: Camera TCP port
            auto_reconnect: Reconnect from the read loop when the link drops
            connect_timeout: Bound on a single connect attempt (seconds)
            reconnect_delay: First backoff delay; also the pause after a read error
            max_reconnect_delay: Backoff cap
            max_reconnect_attempts: Attempts per reconnection burst
            idle_retry_delay: Pause when a burst ends without a connection
            read_error_delay: Pause after a read error before retrying
            poll_interval: Socket read timeout so the stop flag is observed
        """
        self.packet_handler = packet_handler
        self.address = address
        self.port = port
        self.auto_reconnect = auto_reconnect
        self.connect_timeout = connect_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.idle_retry_delay = idle_retry_delay
        self.read_error_delay = read_error_delay
        self.poll_interval = poll_interval

        self._backoff = ReconnectBackoff(reconnect_delay, max_reconnect_delay)
        self._should_reconnect = auto_reconnect

        self._sock: Optional[socket.socket] = None
        self._sock_lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED

        self._stopped = threading.Event()
        self._read_thread: Optional[threading.Thread] = None

        self.connectivity_changed = Notifier("connectivity_changed")

        # Diagnostics
        self._packets_received = 0
        self._parse_errors = 0
        self._reconnect_attempts = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_reading(self) -> bool:
        return self._read_thread is not None and self._read_thread.is_alive()

    def _notify(self, connected: bool) -> None:
        self.connectivity_changed.emit(connected)

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def connect(self, address: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Open a fresh connection, replacing any existing socket.

        Re-arms automatic reconnection (when enabled in config).

        Raises:
            CameraConnectionError: the connection could not be established
        """
        if address is not None:
            self.address = address
        if port is not None:
            self.port = port
        self._should_reconnect = self.auto_reconnect
        self._open()

    def _open(self) -> None:
        self._close_socket()
        self._state = ConnectionState.CONNECTING
        logger.info(f"[CameraConnection] Connecting to {self.address}:{self.port}...")

        try:
            sock = socket.create_connection((self.address, self.port), timeout=self.connect_timeout)
        except OSError as e:
            self._state = ConnectionState.DISCONNECTED
            logger.warning(f"[CameraConnection] Connection to {self.address}:{self.port} failed: {e}")
            self._notify(False)
            raise CameraConnectionError(f"Cannot connect to {self.address}:{self.port}: {e}") from e

        sock.settimeout(self.poll_interval)
        with self._sock_lock:
            # A concurrent open may have won the race since _close_socket()
            replaced, self._sock = self._sock, sock
        if replaced is not None:
            logger.debug("[CameraConnection] Closing socket replaced by a concurrent connect")
            try:
                replaced.close()
            except OSError as e:
                logger.debug(f"[CameraConnection] Error closing socket: {e}")
        self._state = ConnectionState.CONNECTED
        logger.info(f"[CameraConnection] Connected to {self.address}:{self.port}")
        self._notify(True)

    def _close_socket(self) -> bool:
        """Close the current socket; True if one was open."""
        with self._sock_lock:
            sock, self._sock = self._sock, None
        if sock is None:
            return False
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"[CameraConnection] Error closing socket: {e}")
        return True

    def _mark_disconnected(self, sock: socket.socket) -> None:
        """Drop *sock* unless connect() already replaced it."""
        with self._sock_lock:
            if self._sock is not sock:
                return
            self._sock = None
        try:
            sock.close()
        except OSError:
            pass
        self._state = ConnectionState.DISCONNECTED
        self._notify(False)

    def disconnect(self, timeout: float = 3.0) -> None:
        """Stop reading and release the socket. Safe to call repeatedly."""
        self.stop_reading(timeout)
        was_open = self._close_socket()
        was_connected = self._state != ConnectionState.DISCONNECTED
        self._state = ConnectionState.DISCONNECTED
        if was_open or was_connected:
            logger.info("[CameraConnection] Disconnected")
            self._notify(False)

    # ------------------------------------------------------------------
    # Read loop
    # ------------------------------------------------------------------

    def start_reading(self) -> None:
        """Start the background read thread (no-op when already running)."""
        if self.is_reading:
            logger.debug("[CameraConnection] Read loop already running")
            return

        self._stopped.clear()
        self._read_thread = threading.Thread(
            target=self._read_loop,
            name="CameraReadLoop",
            daemon=True
        )
        self._read_thread.start()

    def stop_reading(self, timeout: float = 3.0) -> None:
        """Disable reconnection, signal the loop and wait for it to exit."""
        self._should_reconnect = False
        self._stopped.set()

        thread = self._read_thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            logger.info("[CameraConnection] Waiting for read loop to stop...")
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("[CameraConnection] Read loop did not stop cleanly")
        self._read_thread = None

    def _read_loop(self):
        logger.info("[CameraConnection] Read loop started")

        while not self._stopped.is_set():
            if not self.is_connected() and self._should_reconnect:
                self._reconnect_burst()

            with self._sock_lock:
                sock = self._sock
            if sock is None or not self.is_connected():
                self._stopped.wait(self.idle_retry_delay)
                continue

            try:
                data = sock.recv(READ_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopped.is_set():
                    break
                logger.warning(f"[CameraConnection] Read error: {e}")
                self._mark_disconnected(sock)
                if self._should_reconnect:
                    self._stopped.wait(self.read_error_delay)
                continue

            if not data:
                logger.warning("[CameraConnection] Connection closed by camera")
                self._mark_disconnected(sock)
                continue

            self._handle_data(data)

        logger.info(
            f"[CameraConnection] Read loop stopped. Packets: {self._packets_received}, "
            f"parse errors: {self._parse_errors}"
        )

    def _reconnect_burst(self) -> None:
        """Up to max_reconnect_attempts connects with fresh exponential backoff."""
        self._backoff.reset()
        for attempt in range(1, self.max_reconnect_attempts + 1):
            if self._stopped.is_set() or not self._should_reconnect:
                return

            self._reconnect_attempts += 1
            logger.info(f"[CameraConnection] Reconnecting... attempt {attempt}/{self.max_reconnect_attempts}")
            try:
                self._open()
                return
            except CameraConnectionError:
                delay = self._backoff.next_delay()
                logger.warning(f"[CameraConnection] Reconnect attempt {attempt} failed, retrying in {delay:.0f}s")
                if self._stopped.wait(delay):
                    return

    def _handle_data(self, data: bytes) -> None:
        try:
            packet = PacketCodec.decode(data)
        except ParseError as e:
            self._parse_errors += 1
            logger.warning(f"[CameraConnection] Dropped packet: {e}")
            return

        self._packets_received += 1
        logger.debug(
            f"[CameraConnection] Packet: total={packet.total_count} ok={packet.ok_count} "
            f"ng={packet.ng_count} product={packet.product_id}"
        )
        try:
            self.packet_handler(packet)
        except Exception as e:
            logger.error(f"[CameraConnection] Packet handler error: {e}", exc_info=True)

    def get_statistics(self) -> dict:
        return {
            "state": self._state.value,
            "packets_received": self._packets_received,
            "parse_errors": self._parse_errors,
            "reconnect_attempts": self._reconnect_attempts,
        }
