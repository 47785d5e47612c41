# workops_offline/workops_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class WorkOpsAPIError(Exception):
    """Base exception for workops_api errors."""
    pass

class APIConnectionError(WorkOpsAPIError):
    """Raised for network or connection issues, timeouts included."""
    pass

class APIRequestError(WorkOpsAPIError):
    """Raised for errors in constructing or sending the request (e.g., bad data)."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class APIResponseError(WorkOpsAPIError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.detail = message
        self.response_data = response_data or {}

class APIBusinessError(WorkOpsAPIError):
    """Raised when the server answers 2xx but reports `success: false` or omits the expected record."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class AuthenticationError(WorkOpsAPIError):
    """Raised for authentication failures: no usable session, or a 401 that survives a token refresh."""
    pass

#
# End of workops_offline/workops_api/exceptions.py
########################################################################################################################
