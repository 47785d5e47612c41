# workops_offline/workops_api/client.py
#
#
# Imports
import json
from typing import Optional, Dict, Any, Protocol
#
# 3rd-party Libraries
import httpx
from loguru import logger
#
# Local Imports
from .endpoints import HEALTH_CHECK, get_endpoint
from .exceptions import (
    WorkOpsAPIError, APIConnectionError, APIRequestError, APIResponseError, AuthenticationError,
)
from .schemas import ApiEnvelope
from .utils import extract_error_detail, response_json_or_none
#
########################################################################################################################
#
# Functions:

class TokenProvider(Protocol):
    async def get_token(self, force_refresh: bool = False) -> Optional[str]:
        ...


class WorkOpsAPIClient:
    """
    Async client for the field-service backend.

    Every authenticated request asks the token provider for the current bearer token. A 401 triggers one
    forced token refresh and a single retry; a second 401 raises AuthenticationError.
    """

    def __init__(self, base_url: str, token_provider: Optional[TokenProvider] = None, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token_provider = token_provider
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _auth_headers(self, force_refresh: bool = False) -> Dict[str, str]:
        if self.token_provider is None:
            return {}
        token = await self.token_provider.get_token(force_refresh=force_refresh)
        if not token:
            raise AuthenticationError("No access token available")
        return {"Authorization": f"Bearer {token}"}

    async def _send(self, method: str, endpoint: str, headers: Dict[str, str],
                    json_body: Optional[Dict[str, Any]], params: Optional[Dict[str, Any]],
                    timeout: Optional[float]) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, endpoint, json=json_body, params=params, headers=headers,
                                        timeout=timeout if timeout is not None else self.timeout)
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise APIConnectionError(f"Connection error to {self.base_url}{endpoint}: {e}") from e

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
        timeout: Optional[float] = None,
    ) -> Any:
        headers = await self._auth_headers() if authenticated else {}
        response = await self._send(method, endpoint, headers, json_body, params, timeout)
        if response.status_code == 401 and authenticated and self.token_provider is not None:
            logger.info(f"{method} {endpoint} returned 401; refreshing token and retrying once")
            headers = await self._auth_headers(force_refresh=True)
            response = await self._send(method, endpoint, headers, json_body, params, timeout)

        try:
            response.raise_for_status()  # Raises HTTPStatusError for 4xx/5xx
        except httpx.HTTPStatusError as e:
            error_detail = extract_error_detail(e.response, str(e))
            response_data = response_json_or_none(e.response)
            if e.response.status_code == 401:
                raise AuthenticationError(f"Authentication failed: {error_detail}") from e
            elif e.response.status_code == 422:
                raise APIRequestError(f"Validation Error: {error_detail}", response_data=response_data) from e
            raise APIResponseError(e.response.status_code, error_detail, response_data=response_data) from e

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text}) from e

    async def call(self, entity: str, operation: str, record_id: Optional[str] = None,
                   payload: Optional[Dict[str, Any]] = None,
                   params: Optional[Dict[str, Any]] = None) -> ApiEnvelope:
        """Invokes the endpoint registered for (entity, operation) and parses the response envelope."""
        endpoint = get_endpoint(entity, operation)
        path = endpoint.path_for(record_id)
        logger.debug(f"{endpoint.method} {path} ({entity}.{operation})")
        body = await self._request(endpoint.method, path, json_body=payload, params=params)
        if not isinstance(body, dict):
            raise APIResponseError(200, f"Unexpected response body for {entity}.{operation}",
                                   response_data={"body": body})
        return ApiEnvelope.model_validate(body)

    async def health_check(self, timeout: Optional[float] = None) -> bool:
        """Reachability check. Any failure to get a 2xx answer counts as unreachable."""
        try:
            response = await self._send(HEALTH_CHECK.method, HEALTH_CHECK.path, {}, None, None, timeout)
        except WorkOpsAPIError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        if not response.is_success:
            logger.debug(f"Health check returned HTTP {response.status_code}")
        return response.is_success

#
# End of workops_offline/workops_api/client.py
########################################################################################################################
