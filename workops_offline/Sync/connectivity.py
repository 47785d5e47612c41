# connectivity.py
# Description: Online/offline tracking backed by an active health check, published to subscribers.
#
# Imports
import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# Called with (is_online, was_online) on every transition.
ConnectivityListener = Callable[[bool, bool], Union[None, Awaitable[None]]]


class ConnectivityMonitor:
    """
    Keeps a boolean online state.

    The initial value comes from the platform's native signal. A native "offline" is trusted immediately; a
    native "online" is only accepted once the health check answers, and the health check also runs on a fixed
    interval while the monitor is started. Subscribers hear about every transition.
    """

    def __init__(self, health_check: Callable[[], Awaitable[bool]], interval_seconds: float = 15.0,
                 initial_online: bool = True):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._health_check = health_check
        self.interval_seconds = interval_seconds
        self._online = initial_online
        self._listeners: List[ConnectivityListener] = []
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def _publish(self, online: bool, was_online: bool) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(online, was_online)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Connectivity listener {listener!r} raised")

    async def _set_online(self, online: bool, source: str) -> None:
        if online == self._online:
            return
        was_online = self._online
        self._online = online
        logger.info(f"Connectivity changed to {'online' if online else 'offline'} ({source})")
        await self._publish(online, was_online)

    async def check_now(self) -> bool:
        """Runs the health check once and applies the result."""
        try:
            reachable = bool(await self._health_check())
        except Exception as e:
            logger.warning(f"Health check raised {type(e).__name__}: {e}; treating as offline")
            reachable = False
        await self._set_online(reachable, "health check")
        return reachable

    async def handle_native_signal(self, online: bool) -> None:
        """Entry point for the platform's online/offline events."""
        if online:
            await self.check_now()
        else:
            await self._set_online(False, "native signal")

    async def run(self) -> None:
        logger.info(f"Connectivity monitor polling every {self.interval_seconds}s")
        while not self._stop_event.is_set():
            await self.check_now()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Connectivity monitor stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name="ConnectivityMonitor")
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

#
# End of connectivity.py
########################################################################################################################
