"""
Counter Reconciler - camera-reset-resilient master counts.

The camera is a session counter: its Total/OK/NG values drop back to zero
whenever it is power-cycled. The reconciler derives a master count that only
resets when the application starts a new plan window.

Delta logic, per field and per packet:
    delta = current - last
    if delta < 0:            # camera counter went backward -> camera reset
        delta = current      # counts since its reboot are taken in full
    app += delta
    last = current

The first packet after a reset (or restore) only records the baseline.

Single writer: only the packet path calls process_packet(); resets come from
the plan queue controller on the same serialized path.
"""

from dataclasses import dataclass, replace
from typing import Tuple

from production_counter.codec.PacketCodec import CameraPacket
from production_counter.utils.AppLogging import logger
from production_counter.utils.Notifier import Notifier


@dataclass
class MasterCounterState:
    """Master counts plus the last raw camera readings."""
    app_total: int = 0
    app_ok: int = 0
    app_ng: int = 0
    last_camera_total: int = 0
    last_camera_ok: int = 0
    last_camera_ng: int = 0
    is_first_packet: bool = True

    def counts(self) -> Tuple[int, int, int]:
        return self.app_total, self.app_ok, self.app_ng


def calculate_delta(current: int, last: int) -> int:
    """Increment between two raw readings; a decrease means the camera reset."""
    delta = current - last
    if delta < 0:
        logger.info(
            f"[CounterReconciler] Camera reset detected: last={last}, current={current}, using delta={current}"
        )
        delta = current
    return delta


class CounterReconciler:
    """
    Owns MasterCounterState behind a small command API.

    Notifications:
        counts_updated(total, ok, ng) after every packet, reset and restore.
    """

    def __init__(self):
        self._state = MasterCounterState()
        self.counts_updated = Notifier("counts_updated")
        self._packets_processed = 0
        self._resets_detected = 0

    @property
    def app_total(self) -> int:
        return self._state.app_total

    @property
    def app_ok(self) -> int:
        return self._state.app_ok

    @property
    def app_ng(self) -> int:
        return self._state.app_ng

    @property
    def is_first_packet(self) -> bool:
        return self._state.is_first_packet

    def snapshot(self) -> MasterCounterState:
        """Copy of the current state."""
        return replace(self._state)

    def process_packet(self, packet: CameraPacket) -> None:
        """Apply one camera reading and notify listeners."""
        state = self._state
        self._packets_processed += 1

        if state.is_first_packet:
            state.last_camera_total = packet.total_count
            state.last_camera_ok = packet.ok_count
            state.last_camera_ng = packet.ng_count
            state.is_first_packet = False
            logger.info(
                f"[CounterReconciler] Baseline set: total={packet.total_count}, "
                f"ok={packet.ok_count}, ng={packet.ng_count}"
            )
        else:
            if packet.total_count < state.last_camera_total:
                self._resets_detected += 1

            state.app_total += calculate_delta(packet.total_count, state.last_camera_total)
            state.app_ok += calculate_delta(packet.ok_count, state.last_camera_ok)
            state.app_ng += calculate_delta(packet.ng_count, state.last_camera_ng)

            state.last_camera_total = packet.total_count
            state.last_camera_ok = packet.ok_count
            state.last_camera_ng = packet.ng_count

        self._notify()

    def reset_for_new_window(self) -> None:
        """Zero everything and treat the next packet as a fresh baseline."""
        self._state = MasterCounterState()
        logger.info("[CounterReconciler] Counters reset for new plan window")
        self._notify()

    def restore_state(self, total: int, ok: int, ng: int) -> None:
        """
        Seed master counts from a persisted value (process restart).

        The next camera reading becomes a baseline, so counts already stored
        are not added a second time.
        """
        self._state.app_total = total
        self._state.app_ok = ok
        self._state.app_ng = ng
        self._state.is_first_packet = True
        logger.info(f"[CounterReconciler] State restored: total={total}, ok={ok}, ng={ng}")
        self._notify()

    def get_statistics(self) -> dict:
        return {
            "packets_processed": self._packets_processed,
            "camera_resets_detected": self._resets_detected,
            "app_total": self._state.app_total,
            "app_ok": self._state.app_ok,
            "app_ng": self._state.app_ng,
        }

    def _notify(self) -> None:
        self.counts_updated.emit(self._state.app_total, self._state.app_ok, self._state.app_ng)
