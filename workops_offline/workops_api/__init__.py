# workops_offline/workops_api/__init__.py
from .client import WorkOpsAPIClient, TokenProvider
from .endpoints import Endpoint, ENDPOINTS, HEALTH_CHECK, get_endpoint
from .exceptions import (
    WorkOpsAPIError, APIConnectionError, APIRequestError,
    APIResponseError, APIBusinessError, AuthenticationError
)
from .schemas import ApiEnvelope, Pagination, StockUpdateRequest

__all__ = [
    "WorkOpsAPIClient", "TokenProvider",
    "Endpoint", "ENDPOINTS", "HEALTH_CHECK", "get_endpoint",
    "WorkOpsAPIError", "APIConnectionError", "APIRequestError",
    "APIResponseError", "APIBusinessError", "AuthenticationError",
    "ApiEnvelope", "Pagination", "StockUpdateRequest",
]
