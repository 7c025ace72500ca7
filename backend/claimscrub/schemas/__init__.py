"""Pydantic schemas and shared enums for the claim scrubber."""

from claimscrub.schemas.base import (
    CareSetting,
    CheckName,
    CorrectionType,
    IssueType,
    ModifierIndicator,
    RiskLevel,
    Severity,
)
from claimscrub.schemas.validation import (
    ChecksResponse,
    ClaimValidationRequest,
    ClaimValidationResponse,
    CorrectionResponse,
    IssueResponse,
    ProcedureLine,
    RiskBreakdownResponse,
)

__all__ = [
    # Enums
    "CareSetting",
    "CheckName",
    "CorrectionType",
    "IssueType",
    "ModifierIndicator",
    "RiskLevel",
    "Severity",
    # API models
    "ChecksResponse",
    "ClaimValidationRequest",
    "ClaimValidationResponse",
    "CorrectionResponse",
    "IssueResponse",
    "ProcedureLine",
    "RiskBreakdownResponse",
]
