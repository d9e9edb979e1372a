"""
schemas.py
----------
Clinical Trial Screener - Pydantic Data Contracts
-------------------------------------------------
Pydantic v2 models for the relay and export endpoints.

The browser form posts camelCase keys (patientData, eligibilityResult,
nctNumber); models accept them through aliases and also accept the
snake_case field names so Python callers can build them directly.

Validation policy
-----------------
The relay does not validate medical semantics. PatientData fields are all
optional and unknown keys are ignored; exporters apply their own defaults
for missing values. Lab values are kept as received (number or string) and
coerced only where a numeric value is required (FHIR valueQuantity).

Public API
----------
    PatientData          Patient attributes shared by both exporters.
    TrialMatch           One matched trial carried into the FHIR bundle.
    EligibilityRequest   Body of POST /api/eligibility.
    EligibilityResponse  Success body of POST /api/eligibility.
    ErrorResponse        Error body for every endpoint.
    ExportRequest        Body of POST /api/generate-fhir and /api/generate-pdf.

Project: Clinical Trial Screener
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CAMEL_CONFIG = ConfigDict(populate_by_name=True, extra="ignore")


class PatientData(BaseModel):
    """Patient attributes as entered on the screening form."""

    model_config = _CAMEL_CONFIG

    age: Optional[float] = None
    disease: Optional[str] = None
    stage: Optional[str] = None
    geography: Optional[str] = None
    labs: Dict[str, Optional[Union[float, str]]] = Field(default_factory=dict)

    @field_validator("age", mode="before")
    @classmethod
    def _blank_age_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("labs", mode="before")
    @classmethod
    def _null_labs_is_empty(cls, value: Any) -> Any:
        return value if value is not None else {}


class TrialMatch(BaseModel):
    """A trial the eligibility flow matched the patient to."""

    model_config = _CAMEL_CONFIG

    nct_number: Optional[str] = Field(default=None, alias="nctNumber")
    title: Optional[str] = None
    explanation: Optional[str] = None


class EligibilityRequest(BaseModel):
    """
    Body of POST /api/eligibility.

    ``input_value`` is normally the patient record serialized as a JSON
    string; a structured value is accepted and re-serialized by the relay.
    Missing and null are both treated as absent.
    """

    model_config = ConfigDict(extra="ignore")

    input_value: Any = None


class EligibilityResponse(BaseModel):
    """Success body of POST /api/eligibility."""

    result: str


class ErrorResponse(BaseModel):
    """Error body: a stable summary plus optional diagnostic details."""

    error: str
    details: Optional[str] = None


class ExportRequest(BaseModel):
    """Body of the FHIR and report export endpoints."""

    model_config = _CAMEL_CONFIG

    patient_data: PatientData = Field(default_factory=PatientData, alias="patientData")
    eligibility_result: str = Field(alias="eligibilityResult")
    trials: Optional[List[TrialMatch]] = None
