"""
main.py
-------
Clinical Trial Screener - FastAPI server
----------------------------------------
Relays patient data from the screening form to the Langflow eligibility flow
and exports the result as a FHIR bundle or a printable report.

Endpoints:
    GET  /health              Service health check
    POST /api/eligibility     Relay {input_value} to Langflow, return {result}
    POST /api/generate-fhir   Download the eligibility FHIR R4 bundle
    POST /api/generate-pdf    Download the eligibility report (PDF, or HTML fallback)

Every error response has the shape {"error": str, "details"?: str}. FastAPI's
default {"detail": ...} bodies (405 from routing, request validation) are
reshaped by the exception handlers below, and request validation failures
are reported as 400 rather than 422.

Relay error mapping:
    UpstreamTimeoutError      → 504
    UpstreamUnavailableError  → 503
    UpstreamFormatError       → 502
    UpstreamAPIError          → 502 (upstream status and body in details)
    anything else             → 500

Project: Clinical Trial Screener
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import SERVICE_NAME, VERSION, Settings, load_settings
from fhir_mapper import build_eligibility_bundle
from langflow_client import (
    LangflowClient,
    UpstreamAPIError,
    UpstreamFormatError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from report_renderer import render_report
from schemas import (
    EligibilityRequest,
    EligibilityResponse,
    ErrorResponse,
    ExportRequest,
)

# ── Config ─────────────────────────────────────────────────────────────────────

settings: Settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

FHIR_MEDIA_TYPE = "application/fhir+json"
FHIR_FILENAME = "clinical-trial-eligibility.json"

# Upper bound on upstream body text echoed back in error details.
_MAX_DETAIL_CHARS = 2000

# ── FastAPI app ────────────────────────────────────────────────────────────────

app = FastAPI(
    title=SERVICE_NAME,
    version=VERSION,
    description="Relay for clinical trial eligibility screening with FHIR and report export.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _error_response(
    status_code: int,
    error: str,
    details: Optional[str] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build a JSONResponse with the {error, details?} body."""
    body = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _build_workflow_client() -> LangflowClient:
    """Create the upstream client for one request (patched in tests)."""
    return LangflowClient(settings)


def _coerce_input_value(value) -> str:
    """Forward strings untouched; re-serialize structured values as compact JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


# ── Exception handlers ─────────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Reshape framework HTTP errors (404, 405, ...) into {error, details?}."""
    if exc.status_code == 405:
        return _error_response(405, "Method not allowed", headers=exc.headers)
    return _error_response(exc.status_code, str(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with the first validation error."""
    errors = exc.errors()
    details = None
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        details = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg")
    logger.info("Rejected request to %s: %s", request.url.path, details)
    return _error_response(400, "Invalid request body", details)


# ── Endpoints ──────────────────────────────────────────────────────────────────

@app.get("/health")
def health_check() -> dict:
    """
    Return service health status.

    Returns:
        dict: service, version, status, timestamp.
    """
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post(
    "/api/eligibility",
    response_model=EligibilityResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 405, 500, 502, 503, 504)},
)
async def check_eligibility(request: EligibilityRequest):
    """
    Relay the patient record to the Langflow eligibility flow.

    Args:
        request: EligibilityRequest with input_value (JSON string or object).

    Returns:
        EligibilityResponse: {"result": str} on success, otherwise an
        {error, details?} JSONResponse with status 400/500/502/503/504.
    """
    if request.input_value is None:
        return _error_response(
            400,
            "Missing input_value",
            "The request body must include input_value with the patient data.",
        )

    input_value = _coerce_input_value(request.input_value)
    logger.info("Eligibility request received (%d chars).", len(input_value))

    timeouts = settings.timeouts
    try:
        async with _build_workflow_client() as client:
            result = await asyncio.wait_for(
                client.run_eligibility(input_value),
                timeout=timeouts.relay_deadline_s,
            )
    except (UpstreamTimeoutError, asyncio.TimeoutError) as exc:
        logger.warning("Eligibility request timed out: %s", exc)
        return _error_response(
            504,
            "Request timeout - Analysis is taking longer than expected. Please try again.",
            f"The AI analysis timed out after {timeouts.client_deadline_s:g} seconds. "
            "This may be due to high server load.",
        )
    except UpstreamUnavailableError as exc:
        logger.warning("Eligibility upstream unavailable: %s", exc)
        return _error_response(
            503,
            "Connection error - Unable to reach the AI analysis service",
            str(exc),
        )
    except UpstreamFormatError as exc:
        logger.warning("Eligibility upstream returned a malformed body: %s", exc)
        return _error_response(502, str(exc))
    except UpstreamAPIError as exc:
        logger.warning("Eligibility upstream returned status %d.", exc.status_code)
        return _error_response(
            502,
            "External API error",
            f"Upstream status {exc.status_code}: {exc.body[:_MAX_DETAIL_CHARS]}",
        )
    except Exception as exc:
        logger.exception("Eligibility relay failed: %s", exc)
        return _error_response(500, "Internal server error", str(exc) or type(exc).__name__)

    logger.info("Eligibility result extracted (%d chars).", len(result))
    return EligibilityResponse(result=result)


@app.post("/api/generate-fhir")
def generate_fhir(request: ExportRequest):
    """
    Export the eligibility result as a FHIR R4 collection Bundle attachment.

    Args:
        request: ExportRequest with patientData, eligibilityResult, trials.

    Returns:
        JSONResponse: application/fhir+json attachment, or a 500 error body.
    """
    try:
        bundle = build_eligibility_bundle(
            request.patient_data,
            request.eligibility_result,
            request.trials,
        )
    except Exception as exc:
        logger.exception("FHIR generation error: %s", exc)
        return _error_response(500, "Failed to generate FHIR bundle", str(exc) or type(exc).__name__)

    return JSONResponse(
        content=bundle,
        media_type=FHIR_MEDIA_TYPE,
        headers=_attachment(FHIR_FILENAME),
    )


@app.post("/api/generate-pdf")
def generate_pdf(request: ExportRequest):
    """
    Export the eligibility report as a PDF attachment.

    Falls back to an HTML attachment (text/html, .html) when PDF rendering
    fails; the fallback is still a 200.

    Args:
        request: ExportRequest with patientData and eligibilityResult.

    Returns:
        Response: PDF or HTML attachment, or a 500 error body.
    """
    try:
        report = render_report(request.patient_data, request.eligibility_result)
    except Exception as exc:
        logger.exception("Report generation error: %s", exc)
        return _error_response(500, "Failed to generate report", str(exc) or type(exc).__name__)

    return Response(
        content=report.content,
        media_type=report.media_type,
        headers=_attachment(report.filename),
    )
