"""Pydantic schemas for the claim validation API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from claimscrub.schemas.base import CorrectionType, RiskLevel, Severity


class ProcedureLine(BaseModel):
    """One billed procedure line."""

    cpt_code: str = Field(..., min_length=1, max_length=10, description="CPT/HCPCS procedure code")
    units: int = Field(default=1, ge=1, description="Billed units")
    modifiers: list[str] = Field(default_factory=list, max_length=4, description="Up to 4 modifiers")
    charge: float | None = Field(default=None, ge=0, description="Line charge")
    description: str | None = Field(default=None, description="Procedure description")

    @field_validator("cpt_code")
    @classmethod
    def cpt_code_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("cpt_code must not be blank")
        return value


class ClaimValidationRequest(BaseModel):
    """Claim submitted for validation."""

    procedures: list[ProcedureLine] = Field(
        ...,
        min_length=1,
        description="Procedure lines; at least one is required",
    )
    icd_codes: list[str] = Field(default_factory=list, description="ICD-10 diagnosis codes")
    payer: str | None = Field(default=None, description="Payer name, matched fuzzily")
    place_of_service: str | None = Field(
        default=None,
        description="Place of service code (e.g. 11 office, 21/22 facility)",
    )
    patient_identifier: str | None = Field(
        default=None,
        description="Patient identifier used for frequency history lookups",
    )
    claim_identifier: str | None = Field(
        default=None,
        description="ID of this claim if it is already stored in claim history",
    )


class IssueResponse(BaseModel):
    """One validation finding."""

    type: str
    severity: Severity
    code: str | None = None
    code_pair: list[str] | None = None
    message: str
    correction: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class CorrectionResponse(BaseModel):
    """One structured correction."""

    type: CorrectionType
    target_code: str
    action: str
    value: Any = None
    reason: str


class ValidationSummary(BaseModel):
    """Issue counts and check coverage."""

    total_issues: int
    critical: int
    high: int
    medium: int
    low: int
    checks_performed: list[str]
    checks_degraded: list[str]


class RiskBreakdownResponse(BaseModel):
    """Factor scores behind the denial risk score."""

    severity_score: int
    necessity_risk_score: int
    complexity_score: int
    icd_specificity_score: int
    frequency_risk_score: int
    payer_risk_score: int
    payer_multiplier: float
    weights: dict[str, float]
    base_score: float
    critical_floor_applied: bool


class InputSummary(BaseModel):
    """Echo of the evaluated input's size."""

    procedures_checked: int
    diagnoses_checked: int
    payer: str


class ClaimValidationResponse(BaseModel):
    """Result of validating one claim."""

    denial_risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    summary: ValidationSummary
    issues: list[IssueResponse]
    unit_limit_issues: list[IssueResponse]
    bundling_issues: list[IssueResponse]
    modifier_issues: list[IssueResponse]
    necessity_issues: list[IssueResponse]
    payer_issues: list[IssueResponse]
    frequency_issues: list[IssueResponse]
    corrections: list[CorrectionResponse]
    risk_breakdown: RiskBreakdownResponse
    input_summary: InputSummary


class ChecksResponse(BaseModel):
    """Checks the engine runs and the active scoring weights."""

    checks: list[str]
    weights: dict[str, float]
    severity_points: dict[str, int]
    critical_floor: int
