"""Per-device presence monitor.

Each tracked device gets one monitor. The monitor probes the device on a
self-rescheduling timer and keeps a debounced presence flag:

- a reachable probe marks the device present immediately;
- an unreachable probe only marks it absent once nothing has been seen for
  ``away_delay``, so a phone that sleeps through one or two probes stays home.

While the device is present and the away deadline is closer than
``stress_threshold``, the monitor switches to "stress mode" and probes with
the shorter stress interval and timeout to get a confident read before a
departure is declared.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from smart_presence.models import TrackedDevice, Transition
from smart_presence.presence.household import HouseholdAggregator
from smart_presence.presence.store import PresenceStore
from smart_presence.scanner.ports import AutoPortSelector, PortSelector
from smart_presence.scanner.probe import (
    ProbeErrorKind,
    ProbeResult,
    attempt_connect,
)

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str, int, float], Awaitable[ProbeResult]]


class DevicePresenceMonitor:
    """Scan scheduler and debounced presence state for one device.

    Parameters
    ----------
    device:
        The device configuration. Replaced via ``reconfigure()``.
    household:
        Aggregator that serializes transitions and emits events.
    store:
        Optional persistence for ``last_seen_at``.
    probe:
        Reachability check, ``attempt_connect`` by default.
    port_selector:
        Chooses the probe port on each scan.
    clock:
        Epoch-seconds time source.
    persist_interval:
        Minimum seconds between last-seen writes during steady presence.
    """

    def __init__(
        self,
        device: TrackedDevice,
        household: HouseholdAggregator,
        *,
        store: PresenceStore | None = None,
        probe: ProbeFn = attempt_connect,
        port_selector: PortSelector | None = None,
        clock: Callable[[], float] = time.time,
        persist_interval: float = 60.0,
    ) -> None:
        self._device = device
        self._household = household
        self._store = store
        self._probe = probe
        self._ports = port_selector or AutoPortSelector()
        self._clock = clock
        self._persist_interval = persist_interval

        self._present = False
        self._last_seen_at: float | None = None
        self._last_persisted_at: float | None = None
        self._last_result: ProbeResult | None = None

        self._scanning = False
        self._stopped = False
        self._timer: asyncio.TimerHandle | None = None
        self._scan_task: asyncio.Task[None] | None = None

    # -- read interface ----------------------------------------------------

    @property
    def device(self) -> TrackedDevice:
        return self._device

    @property
    def present(self) -> bool:
        return self._present

    @property
    def last_seen_at(self) -> float | None:
        return self._last_seen_at

    @property
    def last_persisted_at(self) -> float | None:
        return self._last_persisted_at

    @property
    def last_result(self) -> ProbeResult | None:
        return self._last_result

    @property
    def scanning(self) -> bool:
        """Whether a probe is currently in flight."""
        return self._scanning

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def scan_scheduled(self) -> bool:
        return self._timer is not None

    def status(self) -> dict[str, Any]:
        result = self._last_result
        return {
            "device_id": self._device.id,
            "name": self._device.name,
            "present": self._present,
            "last_seen_at": self._last_seen_at,
            "stress_mode": self.is_stress_mode(),
            "scanning": self._scanning,
            "last_outcome": result.outcome.value if result else None,
            "last_error": result.error_kind.value if result and result.error_kind else None,
        }

    # -- mode selection ----------------------------------------------------

    def is_stress_mode(self, now: float | None = None) -> bool:
        """True when present and the away deadline is closer than the threshold."""
        if not self._present or self._last_seen_at is None:
            return False
        now = self._clock() if now is None else now
        remaining_ms = self._device.away_delay_ms - (now - self._last_seen_at) * 1000
        return remaining_ms < self._device.stress_threshold_ms

    def current_interval(self, now: float | None = None) -> float:
        """Seconds until the next scan in the current mode."""
        if self.is_stress_mode(now):
            return self._device.stress_interval_ms / 1000
        return self._device.normal_interval_ms / 1000

    def current_timeout(self, now: float | None = None) -> float:
        """Probe timeout in seconds for the current mode."""
        if self.is_stress_mode(now):
            return self._device.stress_timeout_ms / 1000
        return self._device.normal_timeout_ms / 1000

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Restore ``last_seen_at`` and schedule the first scan right away.

        ``present`` is not restored: it is recomputed from the first probe.
        """
        if self._stopped:
            raise RuntimeError(f"monitor for {self._device.id} was stopped")
        if self._store is not None:
            try:
                self._last_seen_at = await self._store.load_last_seen(self._device.id)
                self._last_persisted_at = self._last_seen_at
            except Exception:
                logger.warning(
                    "Could not load last-seen for %s", self._device.id, exc_info=True
                )
        self._schedule_next(0)
        logger.info("Monitoring %s", self._device)

    async def stop(self) -> None:
        """Cancel the timer and any in-flight scan. A stopped monitor stays stopped.

        A probe in flight is abandoned. An aggregation pass that has already
        applied a transition publishes all of its events before this returns.
        """
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._scan_task
        self._scan_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Stopped monitoring %s", self._device)

    def reconfigure(self, device: TrackedDevice) -> None:
        """Swap in a new configuration for the same device.

        An in-flight scan finishes with the configuration it started with;
        a pending timer is re-armed with the new interval.
        """
        if device.id != self._device.id:
            raise ValueError(
                f"cannot reconfigure {self._device.id} with config for {device.id}"
            )
        self._device = device
        if self._timer is not None and not self._stopped:
            self._schedule_next(self.current_interval())
        logger.info("Reconfigured %s", device)

    # -- scanning ----------------------------------------------------------

    def _schedule_next(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._stopped:
            return
        if self._scanning:
            logger.debug("Scan of %s already in flight, skipping", self._device.id)
            return
        self._scan_task = asyncio.ensure_future(self.scan())

    async def scan(self) -> None:
        """Probe the device once, evaluate the result and schedule the next scan.

        Does nothing if a probe for this device is already in flight; the
        running scan schedules the next one when it finishes.
        """
        if self._stopped:
            return
        if self._scanning:
            logger.debug("Scan of %s already in flight, skipping", self._device.id)
            return

        self._scanning = True
        device = self._device
        try:
            port = self._ports.select(device.port)
            timeout = self.current_timeout()
            try:
                result = await self._probe(device.host, port, timeout)
            except Exception as exc:
                logger.warning("Probe of %s:%d raised", device.host, port, exc_info=True)
                result = ProbeResult.error(ProbeErrorKind.UNKNOWN, repr(exc))

            if self._stopped:
                logger.debug("Discarding probe result for removed device %s", device.id)
                return

            self._last_result = result
            logger.debug(
                "%s:%d -> %s%s",
                device.host,
                port,
                result.outcome.value,
                f" ({result.error_kind.value})" if result.error_kind else "",
            )
            await self.evaluate_presence(result.reachable)
        except Exception:
            logger.exception("Scan of %s failed", device)
        finally:
            self._scanning = False
            if not self._stopped:
                self._schedule_next(self.current_interval())

    # -- presence state ----------------------------------------------------

    async def evaluate_presence(
        self, signal: bool, now: float | None = None
    ) -> Transition | None:
        """Fold one probe signal into the debounced presence state.

        Returns the transition that was committed, if any.
        """
        now = self._clock() if now is None else now
        transition = await self._household.commit(
            self, lambda: self._apply_signal(signal, now)
        )
        await self._persist(signal, transition, now)
        return transition

    def _apply_signal(self, signal: bool, now: float) -> Transition | None:
        if self._stopped:
            return None

        if signal:
            self._last_seen_at = now
            if not self._present:
                self._present = True
                return Transition.ARRIVED
            return None

        if not self._present:
            return None
        if self._last_seen_at is None or (
            (now - self._last_seen_at) * 1000 >= self._device.away_delay_ms
        ):
            self._present = False
            return Transition.LEFT
        return None

    async def _persist(
        self, signal: bool, transition: Transition | None, now: float
    ) -> None:
        if self._store is None or self._stopped:
            return
        if transition is None:
            if not (signal and self._present):
                return
            if (
                self._last_persisted_at is not None
                and now - self._last_persisted_at < self._persist_interval
            ):
                return
        try:
            await self._store.save_state(
                self._device.id,
                present=self._present,
                last_seen_at=self._last_seen_at,
            )
        except Exception:
            logger.warning(
                "Could not persist presence for %s", self._device.id, exc_info=True
            )
            return
        self._last_persisted_at = now
