"""
Camera simulator - a TCP server that speaks the camera's counter protocol.

Listens on a port, accepts a client (the newest connection replaces the
previous one) and writes one packet per OK/NG event:

    Total,OK,NG,ProductID,MfgDate,ExpDate

MfgDate is today, ExpDate one year later, both ``ddMMyy``.
``power_cycle()`` zeroes the counters the way a camera reboot does, which is
what the counter reconciler has to survive.
"""

import socket
import threading
from datetime import date
from typing import Optional

from production_counter.codec import PacketCodec
from production_counter.codec.PacketCodec import CameraPacket
from production_counter.utils.AppLogging import logger


class CameraSimulator:
    """In-process stand-in for the vision camera."""

    def __init__(self, host: str = "0.0.0.0", port: int = 8500, product_id: str = "SIM"):
        self.host = host
        self.port = port
        self.product_id = product_id

        self.ok_count = 0
        self.ng_count = 0

        self._server: Optional[socket.socket] = None
        self._client: Optional[socket.socket] = None
        self._client_lock = threading.Lock()
        self._client_connected = threading.Event()
        self._stopped = threading.Event()
        self._accept_thread: Optional[threading.Thread] = None

    @property
    def total_count(self) -> int:
        return self.ok_count + self.ng_count

    @property
    def has_client(self) -> bool:
        return self._client is not None

    def start(self) -> int:
        """Bind and start accepting. Returns the bound port (useful with port=0)."""
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((self.host, self.port))
        server.listen(1)
        server.settimeout(0.2)
        self._server = server
        self.port = server.getsockname()[1]

        self._stopped.clear()
        self._accept_thread = threading.Thread(target=self._accept_loop, name="SimulatorAccept", daemon=True)
        self._accept_thread.start()
        logger.info(f"[CameraSimulator] Listening on {self.host}:{self.port}")
        return self.port

    def _accept_loop(self):
        while not self._stopped.is_set():
            try:
                client, addr = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            with self._client_lock:
                old, self._client = self._client, client
            if old is not None:
                old.close()
            self._client_connected.set()
            logger.info(f"[CameraSimulator] Client connected from {addr[0]}:{addr[1]}")

    def wait_for_client(self, timeout: float = 5.0) -> bool:
        return self._client_connected.wait(timeout)

    def ok(self) -> str:
        self.ok_count += 1
        return self.send_current()

    def ng(self) -> str:
        self.ng_count += 1
        return self.send_current()

    def build_packet(self, today: Optional[date] = None) -> CameraPacket:
        today = today or date.today()
        try:
            expiry = today.replace(year=today.year + 1)
        except ValueError:
            # 29 Feb
            expiry = today.replace(year=today.year + 1, day=28)
        return CameraPacket(
            total_count=self.total_count,
            ok_count=self.ok_count,
            ng_count=self.ng_count,
            product_id=self.product_id,
            mfg_date=today,
            exp_date=expiry,
        )

    def send_current(self) -> str:
        """Send the current counters; returns the wire text."""
        text = PacketCodec.encode(self.build_packet())
        self.send_raw(text)
        return text

    def send_raw(self, text: str) -> bool:
        """Write *text* as-is to the connected client. False if nobody is connected."""
        with self._client_lock:
            client = self._client
        if client is None:
            logger.warning("[CameraSimulator] No client connected, packet not sent")
            return False
        try:
            client.sendall(text.encode("utf-8"))
        except OSError as e:
            logger.warning(f"[CameraSimulator] Send failed: {e}")
            self.drop_client()
            return False
        logger.debug(f"[CameraSimulator] Sent: {text}")
        return True

    def power_cycle(self) -> None:
        """Zero the counters as a camera reboot would."""
        self.ok_count = 0
        self.ng_count = 0
        logger.info("[CameraSimulator] Power cycle: counters reset")

    def drop_client(self) -> None:
        """Close the current client connection; the listener keeps running."""
        with self._client_lock:
            client, self._client = self._client, None
            self._client_connected.clear()
        if client is not None:
            try:
                client.close()
            except OSError:
                pass
            logger.info("[CameraSimulator] Client dropped")

    def stop(self) -> None:
        self._stopped.set()
        self.drop_client()
        if self._server is not None:
            self._server.close()
            self._server = None
        if self._accept_thread is not None:
            self._accept_thread.join(timeout=2.0)
            self._accept_thread = None
        logger.info("[CameraSimulator] Stopped")
