"""
screener_client.py
------------------
Clinical Trial Screener - Relay Caller
--------------------------------------
Async caller for POST /api/eligibility, used by scripts/check_eligibility.py
and by anything that drives the relay outside the browser.

The caller waits up to caller_deadline_s (config.TimeoutBudget, 320 s by
default), which is longer than the relay's own deadline so that a relay-side
504 is always delivered before the caller gives up.

Relay errors are raised as ScreenerError with a user-facing message:
    504   "Analysis Timeout: ..."
    503   "Service Unavailable: ..."
    other "API Error (<status>): ..."
    caller deadline expired  "Request timeout: ..."

Project: Clinical Trial Screener
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from config import TimeoutBudget

logger = logging.getLogger(__name__)

ELIGIBILITY_PATH = "/api/eligibility"


class ScreenerError(Exception):
    """Raised when the relay cannot return an eligibility result."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _error_body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_relay_error(resp: httpx.Response) -> None:
    data = _error_body(resp)
    status = resp.status_code
    if status == 504:
        msg = data.get("error") or "The analysis is taking longer than expected. Please try again."
        raise ScreenerError(f"Analysis Timeout: {msg}", status)
    if status == 503:
        msg = data.get("error") or (
            "The AI service is temporarily unavailable. Please try again in a few moments."
        )
        raise ScreenerError(f"Service Unavailable: {msg}", status)
    msg = data.get("details") or data.get("error") or "Unknown error occurred"
    raise ScreenerError(f"API Error ({status}): {msg}", status)


async def check_eligibility(
    patient_json: str,
    *,
    base_url: str,
    timeout_s: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Send a serialized patient record to the relay and return the result text.

    Args:
        patient_json: Patient record as a JSON string, e.g. '{"age": 58, ...}'.
        base_url:     Relay base URL, e.g. "http://localhost:8000".
        timeout_s:    Caller deadline; defaults to TimeoutBudget().caller_deadline_s.
        transport:    Optional httpx transport (tests).

    Returns:
        str: The relay's ``result`` field, or the JSON body when it has none.

    Raises:
        ScreenerError: on any non-2xx status or when the deadline expires.
    """
    deadline = timeout_s if timeout_s is not None else TimeoutBudget().caller_deadline_s
    url = base_url.rstrip("/") + ELIGIBILITY_PATH
    logger.info("Sending patient data to %s (%d chars).", url, len(patient_json))

    async with httpx.AsyncClient(timeout=deadline, transport=transport) as http:
        try:
            resp = await http.post(url, json={"input_value": patient_json})
        except httpx.TimeoutException as exc:
            raise ScreenerError(
                "Request timeout: The analysis is taking too long. Please try again."
            ) from exc
        except httpx.TransportError as exc:
            raise ScreenerError(f"Network error: Unable to reach the screener service ({exc}).") from exc

    if not resp.is_success:
        _raise_for_relay_error(resp)

    data: Any = resp.json()
    if isinstance(data, dict) and data.get("result") is not None:
        return str(data["result"])
    return json.dumps(data)
