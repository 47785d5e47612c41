# runtime.py
# Description: Builds the store, DAOs, API client and sync engine once, from settings, and wires them together.
#
# Imports
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
#
# 3rd-Party Imports
import httpx
from loguru import logger
#
# Local Imports
from workops_offline.config import (
    get_connectivity_settings, get_notification_settings, get_offline_db_path, get_setting, get_sync_settings,
    load_settings,
)
from workops_offline.DB.Entity_DAOs import StoreDAOs, create_daos
from workops_offline.DB.Offline_Store_DB import OfflineStore
from workops_offline.workops_api.client import WorkOpsAPIClient
from workops_offline.Sync.auth_gate import AuthGate, SessionAuthGate
from workops_offline.Sync.connectivity import ConnectivityMonitor
from workops_offline.Sync.pull_engine import PullEngine
from workops_offline.Sync.push_engine import build_pushers
from workops_offline.Sync.sync_status import SequenceGenerator, SyncStatusBoard
from workops_offline.Sync.Sync_Orchestrator import SyncOrchestrator
#
########################################################################################################################
#
# Functions:

@dataclass
class SyncRuntime:
    """Everything one process needs, created at startup and handed to the presentation layer."""
    settings: Dict[str, Any]
    store: OfflineStore
    daos: StoreDAOs
    client: WorkOpsAPIClient
    auth_gate: AuthGate
    status: SyncStatusBoard
    monitor: ConnectivityMonitor
    pull_engine: PullEngine
    orchestrator: SyncOrchestrator
    _unsubscribers: List[Callable[[], None]] = field(default_factory=list)

    def start(self) -> None:
        """
        Starts the periodic health check and lets an offline-to-online transition schedule a sync.
        Must be called from a running event loop, after any startup hydration has finished.
        """
        if not self._unsubscribers:
            self._unsubscribers.append(self.monitor.subscribe(self.orchestrator.on_connectivity_change))
        self.monitor.start()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.monitor.stop()
        await self.orchestrator.wait_for_background()
        await self.client.close()
        self.store.close_connection()
        logger.info("Sync runtime closed")


def build_runtime(settings: Optional[Dict[str, Any]] = None, *, auth_gate: Optional[AuthGate] = None,
                  transport: Optional[httpx.AsyncBaseTransport] = None,
                  db_path: Optional[Union[str, Path]] = None) -> SyncRuntime:
    settings = settings if settings is not None else load_settings()
    sync_settings = get_sync_settings(settings)
    connectivity_settings = get_connectivity_settings(settings)
    notification_settings = get_notification_settings(settings)

    store = OfflineStore(db_path if db_path is not None else get_offline_db_path(settings))
    daos = create_daos(store, merge_policy=sync_settings.pending_merge_policy)

    if auth_gate is None:
        token = get_setting("auth", "access_token", "", settings=settings)
        auth_gate = SessionAuthGate(
            token=token or None,
            wait_timeout=float(get_setting("auth", "auth_wait_timeout_seconds", 10.0, settings=settings)),
        )
        if not token:
            # No login flow in a headless process; a missing token is a settled "signed out".
            auth_gate.mark_initialized()

    client = WorkOpsAPIClient(
        base_url=get_setting("server", "base_url", "http://127.0.0.1:5000", settings=settings),
        token_provider=auth_gate,
        timeout=float(get_setting("server", "request_timeout_seconds", 30.0, settings=settings)),
        transport=transport,
    )
    status = SyncStatusBoard(sequence=SequenceGenerator(),
                             default_duration_ms=notification_settings.info_duration_ms)

    async def health_check() -> bool:
        return await client.health_check(timeout=connectivity_settings.health_check_timeout_seconds)

    monitor = ConnectivityMonitor(health_check, interval_seconds=connectivity_settings.health_check_interval_seconds,
                                  initial_online=connectivity_settings.initial_online)
    pull_engine = PullEngine.from_daos(daos, client, sync_settings)
    orchestrator = SyncOrchestrator(
        pushers=build_pushers(daos, client),
        pull_engine=pull_engine,
        auth_gate=auth_gate,
        status_board=status,
        monitor=monitor,
        sync_settings=sync_settings,
        notification_settings=notification_settings,
    )
    runtime = SyncRuntime(settings=settings, store=store, daos=daos, client=client, auth_gate=auth_gate,
                          status=status, monitor=monitor, pull_engine=pull_engine, orchestrator=orchestrator)
    logger.info(f"Sync runtime ready (store={store.db_path_str}, server={client.base_url})")
    return runtime

#
# End of runtime.py
########################################################################################################################
