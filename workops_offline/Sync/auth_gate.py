# auth_gate.py
# Description: Session gate consulted before any sync network call.
#
# Imports
import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline.workops_api.exceptions import AuthenticationError
#
########################################################################################################################
#
# Functions:

class AuthGate(Protocol):
    async def wait_for_auth(self) -> str:
        """Resolves to a usable bearer token or raises AuthenticationError."""
        ...

    async def get_token(self, force_refresh: bool = False) -> Optional[str]:
        ...

    def is_authenticated(self) -> bool:
        ...


class SessionAuthGate:
    """
    Holds the signed-in session for the sync engine.

    The login flow calls `set_session` (or `mark_initialized` when startup finds no session). Until one of
    those happens `wait_for_auth` waits, up to `wait_timeout` seconds. `refresh_callback` is awaited when a
    caller asks for a forced refresh, e.g. after a 401.
    """

    def __init__(self, token: Optional[str] = None, user_id: Optional[str] = None,
                 refresh_callback: Optional[Callable[[], Awaitable[Optional[str]]]] = None,
                 wait_timeout: float = 10.0):
        self._token = token or None
        self._user_id = user_id
        self._refresh_callback = refresh_callback
        self.wait_timeout = wait_timeout
        self._initialized = asyncio.Event()
        if self._token:
            self._initialized.set()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def set_session(self, token: str, user_id: Optional[str] = None) -> None:
        self._token = token or None
        self._user_id = user_id
        self._initialized.set()
        logger.info(f"Session set for user {user_id or '<unknown>'}")

    def clear_session(self) -> None:
        self._token = None
        self._user_id = None
        self._initialized.set()
        logger.info("Session cleared")

    def mark_initialized(self) -> None:
        self._initialized.set()

    def is_authenticated(self) -> bool:
        return bool(self._token)

    async def get_token(self, force_refresh: bool = False) -> Optional[str]:
        if force_refresh and self._refresh_callback is not None:
            try:
                self._token = await self._refresh_callback() or None
            except Exception as e:
                logger.error(f"Token refresh failed: {e}")
                self._token = None
                raise AuthenticationError(f"Token refresh failed: {e}") from e
            logger.debug("Access token refreshed")
        return self._token

    async def wait_for_auth(self) -> str:
        if not self._initialized.is_set():
            try:
                await asyncio.wait_for(self._initialized.wait(), timeout=self.wait_timeout)
            except asyncio.TimeoutError:
                raise AuthenticationError("Auth initialization timeout") from None
        if not self.is_authenticated():
            raise AuthenticationError("User not authenticated")
        token = await self.get_token()
        if not token:
            raise AuthenticationError("Auth token not available")
        return token


async def run_with_auth(gate: AuthGate, operation: Callable[[], Awaitable[Any]]) -> Any:
    """Awaits the gate, then the operation. Nothing is called when the gate rejects."""
    await gate.wait_for_auth()
    return await operation()

#
# End of auth_gate.py
########################################################################################################################
