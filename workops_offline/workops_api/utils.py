# workops_offline/workops_api/utils.py
#
#
# Imports
from typing import Any, Dict, Optional
#
# 3rd-party Libraries
import httpx
#
#######################################################################################################################
#
# Functions:

def extract_error_detail(response: httpx.Response, default: str) -> str:
    """
    Pulls a readable message out of an error response body.

    The service answers failures as `{success: false, message: "..."}`; validation layers may use
    FastAPI-style `{detail: ...}` instead. Falls back to `default` when the body is not JSON.
    """
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    if isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    detail = body.get("detail")
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        location = ".".join(map(str, detail[0].get("loc", [])))
        return f"Validation Error: {detail[0].get('msg', '')} for field '{location}'"
    if isinstance(detail, str):
        return detail
    return default


def response_json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def page_params(page: int, limit: int) -> Dict[str, int]:
    return {"page": page, "limit": limit}

#
# End of workops_offline/workops_api/utils.py
########################################################################################################################
