# sync_status.py
# Description: User-facing sync status: short-lived notices, the persistent alert and the data version counter.
#
# Imports
import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
#
########################################################################################################################
#
# Functions:

class SequenceGenerator:
    """Monotonic id source, owned by whoever needs ids and passed around explicitly."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next_value(self) -> int:
        return next(self._counter)


@dataclass(frozen=True)
class StatusNotice:
    id: int
    message: str
    severity: str
    expires_at: float

    def as_dict(self) -> Dict[str, object]:
        return {"id": self.id, "message": self.message, "severity": self.severity}


class SyncStatusBoard:
    """
    What the presentation layer renders about sync.

    - `notices`: transient `{id, message, severity}` entries that disappear after their duration.
    - `alert`: a persistent message that stays until cleared explicitly or by the next successful cycle.
    - `data_version`: bumped after every successful cycle so cached views know to re-read the store.

    Listeners registered with `subscribe` are called with the board after every change.
    """

    def __init__(self, sequence: Optional[SequenceGenerator] = None,
                 clock: Callable[[], float] = time.monotonic, default_duration_ms: int = 3000):
        self.sequence = sequence or SequenceGenerator()
        self._clock = clock
        self.default_duration_ms = default_duration_ms
        self._notices: List[StatusNotice] = []
        self._alert: Optional[str] = None
        self._data_version = 0
        self._listeners: List[Callable[["SyncStatusBoard"], None]] = []
        self._expiry_handles: Dict[int, asyncio.TimerHandle] = {}

    # --- Listeners ---
    def subscribe(self, listener: Callable[["SyncStatusBoard"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                # A broken view must not break the sync engine.
                logger.exception(f"Status listener {listener!r} raised")

    # --- Notices ---
    def add_notice(self, message: str, severity: str = Constants.SEVERITY_INFO,
                   duration_ms: Optional[int] = None) -> StatusNotice:
        duration_ms = self.default_duration_ms if duration_ms is None else duration_ms
        notice = StatusNotice(
            id=self.sequence.next_value(),
            message=message,
            severity=severity,
            expires_at=self._clock() + duration_ms / 1000.0,
        )
        self._notices.append(notice)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None  # No loop: expired notices are dropped on read instead.
        if loop is not None:
            self._expiry_handles[notice.id] = loop.call_later(duration_ms / 1000.0, self.dismiss_notice, notice.id)
        logger.debug(f"Notice #{notice.id} [{severity}]: {message}")
        self._publish()
        return notice

    def dismiss_notice(self, notice_id: int) -> bool:
        handle = self._expiry_handles.pop(notice_id, None)
        if handle is not None:
            handle.cancel()
        before = len(self._notices)
        self._notices = [n for n in self._notices if n.id != notice_id]
        removed = len(self._notices) != before
        if removed:
            self._publish()
        return removed

    @property
    def notices(self) -> List[StatusNotice]:
        now = self._clock()
        self._notices = [n for n in self._notices if n.expires_at > now]
        return list(self._notices)

    # --- Persistent alert ---
    @property
    def alert(self) -> Optional[str]:
        return self._alert

    def set_alert(self, message: str) -> None:
        self._alert = message
        logger.warning(f"Sync alert set: {message}")
        self._publish()

    def clear_alert(self) -> None:
        if self._alert is not None:
            self._alert = None
            self._publish()

    # --- Version counter ---
    @property
    def data_version(self) -> int:
        return self._data_version

    def bump_data_version(self) -> int:
        self._data_version += 1
        self._publish()
        return self._data_version

#
# End of sync_status.py
########################################################################################################################
