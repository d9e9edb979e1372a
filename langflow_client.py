"""
langflow_client.py
------------------
Clinical Trial Screener - Langflow Workflow Client
--------------------------------------------------
Async client for the Langflow "run" API that hosts the clinical trial
eligibility flow.

Each invocation makes exactly one POST to the configured run URL, bounded by
the client deadline from config.TimeoutBudget. When the deadline expires the
in-flight request is cancelled and UpstreamTimeoutError is raised. There is
no retry: the flow is not known to be idempotent.

Request envelope:
    {
        "input_value": "<patient json>",
        "input_type":  "text",
        "output_type": "text",
        "stream":      false,
        "tweaks":      {"<tweak_node_id>": {"input_value": "<patient json>"}}
    }
``tweaks`` is only sent when a tweak node id is configured; it addresses the
flow's Text Input component directly.

Usage (async context manager):
    async with LangflowClient(settings) as client:
        text = await client.run_eligibility(patient_json)

Project: Clinical Trial Screener
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from config import Settings
from response_normalizer import normalize

logger = logging.getLogger(__name__)

# Leading markers that identify an HTML page (proxy error page, Langflow UI)
# rather than the JSON run response.
_HTML_MARKERS = ("<!doctype html", "<html")


class UpstreamError(Exception):
    """Base class for failures talking to the workflow runner."""


class UpstreamTimeoutError(UpstreamError):
    """Raised when the client deadline expires before the runner answers."""


class UpstreamUnavailableError(UpstreamError):
    """Raised when the runner cannot be reached or drops the connection."""


class UpstreamFormatError(UpstreamError):
    """Raised when the runner answers with HTML or a body that is not JSON."""


class UpstreamAPIError(UpstreamError):
    """Raised when the runner returns a non-2xx response."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Langflow API error {status_code}: {body}")


def looks_like_html(body: str) -> bool:
    """Return True if *body* starts with an HTML doctype or <html> tag."""
    return body.lstrip().lower().startswith(_HTML_MARKERS)


def build_run_payload(input_value: str, tweak_node_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Wrap *input_value* in the Langflow run envelope.

    Args:
        input_value:   Serialized patient record.
        tweak_node_id: Langflow input component id, or None to skip tweaks.

    Returns:
        dict: JSON-serializable request body.
    """
    payload: Dict[str, Any] = {
        "input_value": input_value,
        "input_type": "text",
        "output_type": "text",
        "stream": False,
    }
    if tweak_node_id:
        payload["tweaks"] = {tweak_node_id: {"input_value": input_value}}
    return payload


class LangflowClient:
    """
    Async client for one Langflow flow.

    Args:
        settings:  Service settings (URL, API key, tweak node, timeouts).
        transport: Optional httpx transport; tests pass httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = settings.langflow_url
        self.api_key = settings.langflow_api_key
        self.tweak_node_id = settings.tweak_node_id
        self.user_agent = settings.user_agent
        self.deadline_s = settings.timeouts.client_deadline_s
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.deadline_s,
                transport=self._transport,
            )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "LangflowClient":
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ── Request helpers ──────────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Connection": "close",
            "User-Agent": self.user_agent,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._http is None:
            await self.connect()
        try:
            return await asyncio.wait_for(
                self._http.post(self.url, json=payload, headers=self._headers()),
                timeout=self.deadline_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("LangflowClient: no response within %.1fs, request cancelled.", self.deadline_s)
            raise UpstreamTimeoutError(
                f"Langflow did not respond within {self.deadline_s:g} seconds."
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("LangflowClient: transport failure: %s", exc)
            raise UpstreamUnavailableError(f"Could not reach Langflow: {exc}") from exc

    # ── Public API ───────────────────────────────────────────────────────────

    async def invoke(self, input_value: str) -> Any:
        """
        POST *input_value* to the flow and return the parsed JSON body.

        Args:
            input_value: Serialized patient record.

        Returns:
            Any: Parsed JSON body (shape varies by flow).

        Raises:
            UpstreamTimeoutError:     client deadline expired.
            UpstreamUnavailableError: connection failed or was closed.
            UpstreamFormatError:      body is HTML or not JSON.
            UpstreamAPIError:         non-2xx status.
        """
        payload = build_run_payload(input_value, self.tweak_node_id)
        logger.info("LangflowClient: sending %d-char payload to flow.", len(input_value))

        resp = await self._post(payload)
        body = resp.text
        logger.info(
            "LangflowClient: response status=%d length=%d.", resp.status_code, len(body)
        )

        if looks_like_html(body):
            raise UpstreamFormatError(
                "Langflow returned HTML instead of JSON. Check your endpoint or flow config."
            )
        if not resp.is_success:
            raise UpstreamAPIError(resp.status_code, body)
        try:
            return json.loads(body)
        except ValueError as exc:
            raise UpstreamFormatError("Invalid JSON from Langflow") from exc

    async def run_eligibility(self, input_value: str) -> str:
        """Invoke the flow and normalize its response to the result text."""
        body = await self.invoke(input_value)
        result = normalize(body)
        logger.debug("LangflowClient: extracted result preview: %.120s", result)
        return result
