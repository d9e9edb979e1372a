"""
fhir_mapper.py
--------------
Clinical Trial Screener - FHIR R4 Export Layer
----------------------------------------------
Translates the screening form's patient attributes and the eligibility
result text into a FHIR R4 ``collection`` Bundle for download.

Four resource types are produced, all referencing one Patient:
  • Patient             age (as a Jan 1 birthDate) and geography (address).
  • Condition           the disease, with the stage as stage.summary.
  • Observation         one per lab value, LOINC-coded when the lab is known.
  • ClinicalImpression  the eligibility assessment; summary carries the
                        result text (capped at 1000 chars), finding carries
                        the matched trials (first 15).

The bundle is deterministic for identical inputs except the fields derived
from the export time: Bundle.id, Bundle.identifier.value, meta.lastUpdated,
timestamp, and the resource dateTimes. Pass ``now`` to pin them.

Public API:
    LAB_REGISTRY               dict mapping known lab names → LOINC + unit.
    build_eligibility_bundle() patient + result text (+ trials) → Bundle dict.
    get_loinc_code()           lab name → LOINC code (generic default if unknown).
    get_lab_unit()             lab name → unit string ("" if unknown).

Project: Clinical Trial Screener
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from schemas import PatientData, TrialMatch

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lab registry
# ---------------------------------------------------------------------------
# Each entry carries:
#   code     LOINC code string
#   unit     UCUM-style unit string shown in valueQuantity.unit

_LabEntry = Dict[str, str]

LAB_REGISTRY: Dict[str, _LabEntry] = {
    "WBC":        {"code": "6690-2",  "unit": "10*3/uL"},
    "Hemoglobin": {"code": "718-7",   "unit": "g/dL"},
    "Platelets":  {"code": "777-3",   "unit": "10*3/uL"},
    "Creatinine": {"code": "2160-0",  "unit": "mg/dL"},
}

# Generic "laboratory result" code for labs outside the registry.
DEFAULT_LOINC_CODE = "33747-0"
DEFAULT_LAB_UNIT   = ""

# Leading number as read from lab strings: "12.4 g/dL", ".5", "1e3".
_LEADING_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

SUMMARY_MAX_CHARS = 1000
SUMMARY_TRUNCATION_MARKER = "..."
MAX_FINDINGS = 15

# Form defaults used when the patient record omits a field.
DEFAULT_AGE       = 58
DEFAULT_DISEASE   = "breast cancer"
DEFAULT_STAGE     = "IIIA"
DEFAULT_GEOGRAPHY = "Unknown"

_PROFILE_BASE    = "http://hl7.org/fhir/StructureDefinition"
_ID_SYSTEM_BASE  = "http://clinical-trial-screener.com"
_TERMINOLOGY     = "http://terminology.hl7.org/CodeSystem"
_LOINC_SYSTEM    = "http://loinc.org"
_SNOMED_SYSTEM   = "http://snomed.info/sct"
_CTGOV_SYSTEM    = "http://clinicaltrials.gov"

_PATIENT_REF = "urn:uuid:patient-1"

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _resolve_lab(lab_name: str) -> Optional[_LabEntry]:
    """Registry entry for *lab_name*, exact match first, then case-insensitive."""
    if lab_name in LAB_REGISTRY:
        return LAB_REGISTRY[lab_name]
    lower = lab_name.strip().lower()
    for key, entry in LAB_REGISTRY.items():
        if key.lower() == lower:
            return entry
    return None


def _try_float(value: Any) -> Optional[float]:
    """
    Parse *value* as a number, accepting a leading numeric prefix such as
    "12.4 g/dL". Returns ``None`` when no finite number leads the value.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            match = _LEADING_NUMBER_RE.match(text)
            if not match:
                return None
            number = float(match.group())
    return number if math.isfinite(number) else None


def _coding(system: str, code: str, display: str) -> Dict[str, str]:
    return {"system": system, "code": code, "display": display}


def _profile(resource_type: str) -> Dict[str, List[str]]:
    return {"profile": [f"{_PROFILE_BASE}/{resource_type}"]}


def _truncate_summary(text: str) -> str:
    if len(text) <= SUMMARY_MAX_CHARS:
        return text
    return text[:SUMMARY_MAX_CHARS] + SUMMARY_TRUNCATION_MARKER


def _birth_date(age: Optional[float], now: datetime) -> date:
    """January 1 of the birth year; ages that give no valid year use DEFAULT_AGE."""
    if age is None:
        return date(now.year - DEFAULT_AGE, 1, 1)
    if math.isfinite(age):
        year = now.year - int(age)
        if date.min.year <= year <= date.max.year:
            return date(year, 1, 1)
    logger.warning("fhir_mapper: age %r gives no valid birth year, using %d.", age, DEFAULT_AGE)
    return date(now.year - DEFAULT_AGE, 1, 1)


def _build_patient(patient: PatientData, now: datetime) -> Dict[str, Any]:
    birth_date = _birth_date(patient.age, now)
    return {
        "resourceType": "Patient",
        "id":           "patient-1",
        "meta":         _profile("Patient"),
        "identifier": [{
            "system": f"{_ID_SYSTEM_BASE}/patient-id",
            "value":  "patient-1",
        }],
        "active":    True,
        "birthDate": birth_date.isoformat(),
        "address": [{
            "use":  "home",
            "text": patient.geography or DEFAULT_GEOGRAPHY,
        }],
    }


def _build_condition(patient: PatientData, effective_dt: str) -> Dict[str, Any]:
    return {
        "resourceType": "Condition",
        "id":           "condition-1",
        "meta":         _profile("Condition"),
        "clinicalStatus": {
            "coding": [_coding(f"{_TERMINOLOGY}/condition-clinical", "active", "Active")],
        },
        "verificationStatus": {
            "coding": [_coding(f"{_TERMINOLOGY}/condition-ver-status", "confirmed", "Confirmed")],
        },
        "category": [{
            "coding": [_coding(
                f"{_TERMINOLOGY}/condition-category",
                "encounter-diagnosis",
                "Encounter Diagnosis",
            )],
        }],
        "code": {
            "coding": [_coding(_SNOMED_SYSTEM, "254837009", "Malignant neoplasm of breast")],
            "text":   patient.disease or DEFAULT_DISEASE,
        },
        "subject":      {"reference": _PATIENT_REF},
        "recordedDate": effective_dt,
        "stage": [{"summary": {"text": patient.stage or DEFAULT_STAGE}}],
    }


def _build_observation(
    index: int,
    lab_name: str,
    raw_value: Any,
    effective_dt: str,
) -> Dict[str, Any]:
    """
    Construct a laboratory Observation for one lab value.

    Unknown labs get the generic LOINC code and an empty unit; a value that
    is not numeric leaves valueQuantity.value out rather than failing.
    """
    quantity: Dict[str, Any] = {"unit": get_lab_unit(lab_name)}
    numeric = _try_float(raw_value)
    if numeric is not None:
        quantity = {"value": numeric, **quantity}
    else:
        logger.warning("fhir_mapper: lab '%s' has non-numeric value %r.", lab_name, raw_value)

    return {
        "resourceType": "Observation",
        "id":           f"observation-{index}",
        "meta":         _profile("Observation"),
        "status":       "final",
        "category": [{
            "coding": [_coding(f"{_TERMINOLOGY}/observation-category", "laboratory", "Laboratory")],
        }],
        "code": {
            "coding": [_coding(_LOINC_SYSTEM, get_loinc_code(lab_name), lab_name)],
            "text":   lab_name,
        },
        "subject":           {"reference": _PATIENT_REF},
        "effectiveDateTime": effective_dt,
        "valueQuantity":     quantity,
    }


def _build_finding(trial: TrialMatch) -> Dict[str, Any]:
    return {
        "itemCodeableConcept": {
            "coding": [{
                "system":  _CTGOV_SYSTEM,
                "code":    trial.nct_number,
                "display": trial.title,
            }],
            "text": trial.title,
        },
        "basis": trial.explanation,
    }


def _build_clinical_impression(
    result_text: str,
    trials: Sequence[TrialMatch],
    effective_dt: str,
) -> Dict[str, Any]:
    return {
        "resourceType": "ClinicalImpression",
        "id":           "clinical-impression-1",
        "meta":         _profile("ClinicalImpression"),
        "identifier": [{
            "system": f"{_ID_SYSTEM_BASE}/impression-id",
            "value":  "eligibility-analysis-1",
        }],
        "status": "completed",
        "code": {
            "coding": [_coding(_SNOMED_SYSTEM, "386053000", "Evaluation procedure")],
            "text":   "Clinical Trial Eligibility Assessment",
        },
        "subject":           {"reference": _PATIENT_REF},
        "effectiveDateTime": effective_dt,
        "date":              effective_dt,
        "assessor":          {"display": "Clinical Trial Screener AI"},
        "summary":           _truncate_summary(result_text),
        "finding":           [_build_finding(t) for t in trials[:MAX_FINDINGS]],
    }


def _entry(full_url: str, resource: Dict[str, Any]) -> Dict[str, Any]:
    return {"fullUrl": full_url, "resource": resource}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_eligibility_bundle(
    patient: PatientData,
    result_text: str,
    trials: Optional[Sequence[TrialMatch]] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Assemble the eligibility export Bundle.

    Args:
        patient:     Patient attributes from the screening form.
        result_text: Normalized eligibility result text.
        trials:      Optional matched trials; the first 15 become findings.
        now:         Export time (UTC). Defaults to the current time.

    Returns:
        dict: A FHIR R4 ``collection`` Bundle, ready for ``json.dumps()``.
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat()
    bundle_id = f"eligibility-{int(now.timestamp() * 1000)}"

    entries: List[Dict[str, Any]] = [
        _entry(_PATIENT_REF, _build_patient(patient, now)),
        _entry("urn:uuid:condition-1", _build_condition(patient, stamp)),
    ]
    for index, (lab_name, value) in enumerate(patient.labs.items(), start=1):
        entries.append(
            _entry(f"urn:uuid:observation-{index}", _build_observation(index, lab_name, value, stamp))
        )
    entries.append(
        _entry(
            "urn:uuid:clinical-impression-1",
            _build_clinical_impression(result_text, list(trials or []), stamp),
        )
    )

    bundle: Dict[str, Any] = {
        "resourceType": "Bundle",
        "id":           bundle_id,
        "meta": {
            "lastUpdated": stamp,
            **_profile("Bundle"),
        },
        "identifier": {
            "system": f"{_ID_SYSTEM_BASE}/bundle-id",
            "value":  bundle_id,
        },
        "type":      "collection",
        "timestamp": stamp,
        "entry":     entries,
    }

    logger.info(
        "fhir_mapper: built eligibility bundle %s with %d entries (%d labs, %d findings).",
        bundle_id,
        len(entries),
        len(patient.labs),
        min(len(trials or []), MAX_FINDINGS),
    )
    return bundle


def get_loinc_code(lab_name: str) -> str:
    """
    Return the LOINC code for *lab_name*, or the generic lab-result code.

    Example::

        get_loinc_code("Hemoglobin")  # → "718-7"
        get_loinc_code("Ferritin")    # → "33747-0"
    """
    entry = _resolve_lab(lab_name)
    return entry["code"] if entry else DEFAULT_LOINC_CODE


def get_lab_unit(lab_name: str) -> str:
    """Return the unit for *lab_name*, or an empty string if unknown."""
    entry = _resolve_lab(lab_name)
    return entry["unit"] if entry else DEFAULT_LAB_UNIT
