# Sync_Orchestrator.py
# Description: Runs push-then-pull sync cycles with auth gating, bounded retries and user-facing status.
#
# Imports
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
from workops_offline.config import NotificationSettings, SyncSettings
from workops_offline.Sync.auth_gate import AuthGate
from workops_offline.Sync.connectivity import ConnectivityMonitor
from workops_offline.Sync.pull_engine import PullEngine
from workops_offline.Sync.push_engine import PushReport
from workops_offline.Sync.sync_errors import AuthenticationError, ExhaustedRetriesError, TransientSyncError
from workops_offline.Sync.sync_status import StatusNotice, SyncStatusBoard
#
########################################################################################################################
#
# Functions:

class SyncState(str, enum.Enum):
    IDLE = "idle"
    GATING = "gating"
    PUSHING = "pushing"
    PULLING = "pulling"
    SETTLED = "settled"
    RETRYING = "retrying"
    ABORTED = "aborted"
    FAILED = "failed"


class SyncOutcome(str, enum.Enum):
    SUCCESS = "success"
    OFFLINE = "offline"
    AUTH_REQUIRED = "auth_required"
    FAILED = "failed"
    IN_FLIGHT = "in_flight"


@dataclass
class SyncResult:
    outcome: SyncOutcome
    attempts: int = 0
    push_reports: List[PushReport] = field(default_factory=list)
    pulled: Dict[str, int] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SyncOutcome.SUCCESS


class SyncOrchestrator:
    """
    Sequences one sync cycle: gate on auth, push every entity in order, then pull.

    The whole cycle is retried up to `max_attempts` times with a linear backoff of `backoff_base_seconds * attempt`.
    An AuthenticationError ends the cycle at once. Only one cycle runs at a time; a trigger that arrives while
    one is in flight returns an IN_FLIGHT result without doing anything.
    """

    def __init__(self, pushers: Sequence[Any], pull_engine: PullEngine, auth_gate: AuthGate,
                 status_board: SyncStatusBoard, monitor: Optional[ConnectivityMonitor] = None,
                 sync_settings: Optional[SyncSettings] = None,
                 notification_settings: Optional[NotificationSettings] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.pushers = list(pushers)
        self.pull_engine = pull_engine
        self.auth_gate = auth_gate
        self.status = status_board
        self.monitor = monitor
        self.sync_settings = sync_settings or SyncSettings()
        self.notifications = notification_settings or NotificationSettings()
        self._sleep = sleep
        self._state = SyncState.IDLE
        self._in_flight = False
        self._state_listeners: List[Callable[[SyncState, Optional[int]], None]] = []
        self._background_tasks: Set[asyncio.Task] = set()

    # --- State ---
    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def is_online(self) -> bool:
        return self.monitor.is_online if self.monitor is not None else True

    def subscribe_state(self, listener: Callable[[SyncState, Optional[int]], None]) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)
        return unsubscribe

    def _set_state(self, state: SyncState, attempt: Optional[int] = None) -> None:
        self._state = state
        logger.debug(f"Sync state -> {state.value}" + (f" (attempt {attempt})" if attempt else ""))
        for listener in list(self._state_listeners):
            try:
                listener(state, attempt)
            except Exception:
                logger.exception(f"Sync state listener {listener!r} raised")

    # --- Presentation-facing notices ---
    def notify_local_save(self) -> StatusNotice:
        if self.is_online():
            return self.status.add_notice(Constants.MSG_SAVED_SYNCING, Constants.SEVERITY_INFO,
                                          self.notifications.local_save_duration_ms)
        return self.status.add_notice(Constants.MSG_SAVED_OFFLINE, Constants.SEVERITY_INFO,
                                      self.notifications.info_duration_ms)

    # --- Cycle ---
    async def trigger_sync(self) -> SyncResult:
        if self._in_flight:
            logger.info("Sync already in flight; trigger ignored")
            return SyncResult(SyncOutcome.IN_FLIGHT)
        self._in_flight = True
        try:
            return await self._run_cycle()
        finally:
            self._in_flight = False

    async def _run_cycle(self) -> SyncResult:
        if not self.is_online():
            logger.info("Sync skipped: offline")
            self.status.add_notice(Constants.MSG_OFFLINE, Constants.SEVERITY_INFO, self.notifications.info_duration_ms)
            return SyncResult(SyncOutcome.OFFLINE)

        self._set_state(SyncState.GATING)
        try:
            await self.auth_gate.wait_for_auth()
        except AuthenticationError as e:
            logger.error(f"Sync blocked: not authenticated ({e})")
            self.status.add_notice(Constants.MSG_LOGIN_REQUIRED, Constants.SEVERITY_ERROR,
                                   self.notifications.error_duration_ms)
            self._set_state(SyncState.ABORTED)
            return SyncResult(SyncOutcome.AUTH_REQUIRED, error=e)

        max_attempts = self.sync_settings.max_attempts
        result = SyncResult(SyncOutcome.SUCCESS)
        last_error: Optional[BaseException] = None
        for attempt in range(1, max_attempts + 1):
            result.attempts = attempt
            logger.info(f"Sync attempt {attempt}/{max_attempts} starting")
            try:
                if attempt > 1:
                    self._set_state(SyncState.GATING, attempt)
                    await self.auth_gate.wait_for_auth()
                await self._run_attempt(result)
            except AuthenticationError as e:
                return self._abort_for_auth(result, e)
            except Exception as e:
                last_error = e
                logger.error(f"Sync attempt {attempt}/{max_attempts} failed: {type(e).__name__}: {e}")
                if attempt < max_attempts:
                    self._set_state(SyncState.RETRYING, attempt)
                    await self._sleep(self.sync_settings.backoff_base_seconds * attempt)
                continue

            self.status.clear_alert()
            self.status.bump_data_version()
            self.status.add_notice(Constants.MSG_SYNC_SUCCESS, Constants.SEVERITY_SUCCESS,
                                   self.notifications.success_duration_ms)
            self._set_state(SyncState.SETTLED)
            logger.info("Sync completed successfully")
            return result

        result.outcome = SyncOutcome.FAILED
        result.error = ExhaustedRetriesError(max_attempts, last_error)
        logger.error(str(result.error))
        self.status.set_alert(Constants.MSG_SYNC_FAILED)
        self.status.add_notice(Constants.MSG_SYNC_FAILED, Constants.SEVERITY_ERROR,
                               self.notifications.error_duration_ms)
        self._set_state(SyncState.FAILED)
        return result

    async def _run_attempt(self, result: SyncResult) -> None:
        self._set_state(SyncState.PUSHING)
        result.push_reports = []
        for pusher in self.pushers:
            result.push_reports.append(await pusher.push_pending())

        self._set_state(SyncState.PULLING)
        result.pulled = await self.pull_engine.pull_all()

        # Permanent record failures (4xx, rejected payloads) stay on their rows and do not retry the cycle.
        transient = sum(report.transient for report in result.push_reports)
        if transient and self.sync_settings.retry_on_record_failures:
            raise TransientSyncError(f"{transient} record(s) failed to push with a transient error")

    def _abort_for_auth(self, result: SyncResult, error: AuthenticationError) -> SyncResult:
        logger.error(f"Sync aborted: authentication failed ({error})")
        self.status.add_notice(Constants.MSG_SESSION_EXPIRED, Constants.SEVERITY_ERROR,
                               self.notifications.session_expired_duration_ms)
        self.status.set_alert(Constants.ALERT_AUTH_REQUIRED)
        self._set_state(SyncState.ABORTED)
        result.outcome = SyncOutcome.AUTH_REQUIRED
        result.error = error
        return result

    # --- Background triggers ---
    def schedule_sync(self) -> Optional[asyncio.Task]:
        """Starts a cycle in the background unless one is already running."""
        if self._in_flight:
            logger.debug("Sync already in flight; not scheduling another")
            return None
        task = asyncio.create_task(self.trigger_sync(), name="SyncOrchestrator.trigger_sync")
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Background sync cycle raised")

    def on_connectivity_change(self, online: bool, was_online: bool) -> None:
        """Connectivity subscriber: a transition into the online state starts a cycle."""
        if online and not was_online:
            logger.info("Back online; scheduling sync")
            self.schedule_sync()

    async def wait_for_background(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

#
# End of Sync_Orchestrator.py
########################################################################################################################
