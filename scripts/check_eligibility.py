#!/usr/bin/env python3
"""
check_eligibility.py
--------------------
Clinical Trial Screener - Command-line Eligibility Check
-------------------------------------------------------
Sends one patient record to a running relay (POST /api/eligibility) and
prints the eligibility result as plain text. Optionally downloads the FHIR bundle and the
report for the same result.

Usage:
    python scripts/check_eligibility.py patient.json
    python scripts/check_eligibility.py patient.json --base-url http://localhost:8000 \\
        --fhir-out bundle.json --report-out report

``patient.json`` holds the record, e.g.
    {"age": 58, "disease": "breast cancer", "stage": "IIIA",
     "geography": "Boston, MA", "labs": {"WBC": 6.1, "Hemoglobin": 12.4}}

Project: Clinical Trial Screener
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

# ── Path bootstrap ────────────────────────────────────────────────────────────
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_REPO_ROOT  = os.path.dirname(_SCRIPT_DIR)
sys.path.insert(0, _REPO_ROOT)

import httpx                                                 # noqa: E402

from config import load_settings                             # noqa: E402
from screener_client import ScreenerError, check_eligibility  # noqa: E402
from text_sanitizer import strip_display_markup               # noqa: E402

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("check_eligibility")

_SEPARATOR = "─" * 68


async def _download(client: httpx.AsyncClient, path: str, body: dict, out: str) -> None:
    resp = await client.post(path, json=body)
    resp.raise_for_status()
    target = out
    if path.endswith("generate-pdf") and not os.path.splitext(out)[1]:
        target = out + (".pdf" if resp.headers.get("content-type", "").startswith("application/pdf") else ".html")
    with open(target, "wb") as f:
        f.write(resp.content)
    log.info("Saved %s (%s, %d bytes).", target, resp.headers.get("content-type"), len(resp.content))


async def run(args: argparse.Namespace) -> int:
    with open(args.patient_file, "r") as f:
        patient = json.load(f)

    timeouts = load_settings().timeouts
    log.info(_SEPARATOR)
    log.info("Relay: %s  (caller deadline %gs)", args.base_url, timeouts.caller_deadline_s)

    try:
        result = await check_eligibility(
            json.dumps(patient),
            base_url=args.base_url,
            timeout_s=timeouts.caller_deadline_s,
        )
    except ScreenerError as exc:
        log.error("FAIL  %s", exc)
        return 1

    log.info(_SEPARATOR)
    print(result if args.raw else strip_display_markup(result))
    log.info(_SEPARATOR)

    export_body = {"patientData": patient, "eligibilityResult": result}
    async with httpx.AsyncClient(base_url=args.base_url, timeout=60.0) as client:
        try:
            if args.fhir_out:
                await _download(client, "/api/generate-fhir", export_body, args.fhir_out)
            if args.report_out:
                await _download(client, "/api/generate-pdf", export_body, args.report_out)
        except httpx.HTTPError as exc:
            log.error("Export failed: %s", exc)
            return 1
    return 0


# ── CLI ───────────────────────────────────────────────────────────────────────

def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check clinical trial eligibility for one patient record via the relay.",
    )
    parser.add_argument("patient_file", help="Path to a JSON file with the patient record.")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        metavar="URL",
        help="Relay base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--raw", action="store_true", help="Print the result with its Markdown intact.")
    parser.add_argument("--fhir-out", metavar="PATH", help="Also save the FHIR bundle here.")
    parser.add_argument(
        "--report-out",
        metavar="PATH",
        help="Also save the report here (.pdf or .html added when no extension is given).",
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(run(_parse_args())))
