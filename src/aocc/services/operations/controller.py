"""
ModeController - sole owner and writer of the operator mode state.

Key principles:
- Exactly one writer (this controller), many readers
- Each toggle swaps mode and snapshot together under one lock, so a reader
  never sees KPI data from tick n next to subsystem data from tick n+1
- Observers receive every TransitionDescription in tick order, outside the
  lock; a toggle issued from inside a listener is queued, not delivered early
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from aocc.services.operations.catalog import MetricCatalog
from aocc.services.operations.engine import DerivationEngine, FlightSource
from aocc.shared.config.settings import DashboardSettings
from aocc.shared.models.operations import (
    ModeFlag,
    ModeState,
    OperationalSnapshot,
    TransitionDescription,
    TransitionSeverity,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationalView:
    """Mode state and the snapshot derived from it, stamped with a logical tick."""

    tick: int
    mode: ModeState
    snapshot: OperationalSnapshot


TransitionListener = Callable[[TransitionDescription, OperationalView], None]

# (flag, new value) -> severity handed to the notification collaborator
TRANSITION_SEVERITY: dict[tuple[ModeFlag, bool], TransitionSeverity] = {
    (ModeFlag.EMERGENCY, True): TransitionSeverity.ERROR,
    (ModeFlag.EMERGENCY, False): TransitionSeverity.INFO,
    (ModeFlag.OPERATIONS_ALERT, True): TransitionSeverity.WARNING,
    (ModeFlag.OPERATIONS_ALERT, False): TransitionSeverity.WARNING,
    (ModeFlag.SYSTEM_OPTIMIZED, True): TransitionSeverity.SUCCESS,
    (ModeFlag.SYSTEM_OPTIMIZED, False): TransitionSeverity.SUCCESS,
}


class ModeController:
    def __init__(
        self,
        catalog: MetricCatalog,
        initial_mode: Optional[ModeState] = None,
        flight_source: Optional[FlightSource] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._engine = DerivationEngine(catalog, flight_source=flight_source)
        mode = initial_mode or ModeState()
        self._view = OperationalView(tick=0, mode=mode, snapshot=self._engine.derive(mode))
        self._listeners: Dict[int, tuple[str, TransitionListener]] = {}
        self._next_listener_id = 0
        # transitions committed but not yet delivered, oldest first
        self._pending: deque[tuple[TransitionDescription, OperationalView]] = deque()
        self._delivering = False
        self._metrics: Dict[str, Any] = {
            "total_toggles": 0,
            "dropped_listeners": 0,
            "last_toggle_ts": 0.0,
            "creation_ts": time.time(),
        }

    @classmethod
    def from_settings(
        cls,
        settings: DashboardSettings,
        flight_source: Optional[FlightSource] = None,
    ) -> "ModeController":
        catalog = MetricCatalog.load(settings.catalog_path, strict=settings.catalog_strict)
        return cls(catalog, initial_mode=settings.initial_mode_state(), flight_source=flight_source)

    @property
    def catalog(self) -> MetricCatalog:
        return self._engine.catalog

    # ------------------------------------------------------------------
    #  Readers
    # ------------------------------------------------------------------
    def current(self) -> OperationalView:
        with self._lock:
            return self._view

    @property
    def mode(self) -> ModeState:
        return self.current().mode

    @property
    def snapshot(self) -> OperationalSnapshot:
        return self.current().snapshot

    @property
    def tick(self) -> int:
        return self.current().tick

    # ------------------------------------------------------------------
    #  Writer
    # ------------------------------------------------------------------
    def toggle(self, flag: ModeFlag | str) -> TransitionDescription:
        """Flip exactly one flag, re-derive the snapshot and notify observers.

        The new view is committed under the lock; listeners run afterwards
        without it. When called from inside a listener the transition is
        queued and delivered once the current one has reached every listener.
        """
        flag = ModeFlag(flag)
        with self._lock:
            previous = self._view
            old_value = previous.mode.is_active(flag)
            mode = previous.mode.with_flag(flag, not old_value)
            view = OperationalView(tick=previous.tick + 1, mode=mode, snapshot=self._engine.derive(mode))
            self._view = view

            transition = TransitionDescription(
                flag=flag,
                previous_value=old_value,
                new_value=not old_value,
                severity=TRANSITION_SEVERITY[(flag, not old_value)],
                tick=view.tick,
                mode=mode,
            )
            self._metrics["total_toggles"] += 1
            self._metrics["last_toggle_ts"] = time.time()
            self._pending.append((transition, view))

            logger.info(
                "Mode flag %s %s -> %s (tick=%d, active=%s)",
                flag.value,
                old_value,
                not old_value,
                view.tick,
                [f.value for f in mode.active_flags()],
            )
        self._deliver_pending()
        return transition

    # ------------------------------------------------------------------
    #  Observers
    # ------------------------------------------------------------------
    def subscribe(self, listener: TransitionListener, subscriber_id: str = "unknown") -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            self._listeners[listener_id] = (subscriber_id, listener)
            logger.debug("New subscriber: %s, total: %d", subscriber_id, len(self._listeners))

        def unsubscribe() -> None:
            with self._lock:
                removed = self._listeners.pop(listener_id, None)
                if removed is not None:
                    logger.debug("Unsubscribed: %s, remaining: %d", removed[0], len(self._listeners))

        return unsubscribe

    def _deliver_pending(self) -> None:
        # Only one thread delivers at a time; the others leave their
        # transitions in the queue for it, which keeps delivery in tick order.
        with self._lock:
            if self._delivering:
                return
            self._delivering = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._delivering = False
                        return
                    transition, view = self._pending.popleft()
                    listeners = list(self._listeners.items())
                self._notify(transition, view, listeners)
        except BaseException:
            with self._lock:
                self._delivering = False
            raise

    def _notify(
        self,
        transition: TransitionDescription,
        view: OperationalView,
        listeners: list[tuple[int, tuple[str, TransitionListener]]],
    ) -> None:
        dead: list[int] = []
        for listener_id, (subscriber_id, listener) in listeners:
            try:
                listener(transition, view)
            except Exception as exc:
                logger.warning("Dead subscriber %s: %r", subscriber_id, exc)
                dead.append(listener_id)

        if dead:
            with self._lock:
                for listener_id in dead:
                    if self._listeners.pop(listener_id, None) is not None:
                        self._metrics["dropped_listeners"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                **self._metrics,
                "uptime_seconds": time.time() - self._metrics["creation_ts"],
                "current_tick": self._view.tick,
                "active_flags": [flag.value for flag in self._view.mode.active_flags()],
                "subscriber_count": len(self._listeners),
                "pending_notifications": len(self._pending),
                "snapshot_issues": len(self._view.snapshot.issues),
            }
