"""Claim validation API endpoints.

Runs submitted claims through the rules-based scrubber:
- Unit limit (MUE) and bundling (NCCI) edits
- Modifier consistency
- Medical necessity, payer rules, frequency limits
- Weighted denial risk score with full breakdown
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from claimscrub.core.audit import AuditAction, log_audit, log_claim_validation
from claimscrub.schemas.validation import ChecksResponse, ClaimValidationRequest, ClaimValidationResponse
from claimscrub.services.claim import InvalidClaimError
from claimscrub.services.claim_validator import ClaimValidationService, get_claim_validation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/claims", tags=["Claim Validation"])

ValidationServiceDep = Annotated[ClaimValidationService, Depends(get_claim_validation_service)]


@router.post(
    "/validate",
    response_model=ClaimValidationResponse,
    summary="Validate a claim",
    description="Check a claim against coding and payer rules and score its denial risk.",
)
async def validate_claim(
    request: ClaimValidationRequest,
    service: ValidationServiceDep,
) -> ClaimValidationResponse:
    """Validate a claim and return issues, corrections and the risk score.

    A result is returned even when some reference data is unavailable;
    the affected checks are listed in ``summary.checks_degraded``.

    Raises:
        HTTPException: 400 if the claim cannot be evaluated at all.
    """
    try:
        result = await service.validate(request.model_dump())
    except InvalidClaimError as e:
        log_audit(
            action=AuditAction.REJECT,
            resource_type="claim",
            patient_id=request.patient_identifier,
            details={"error": str(e)},
            success=False,
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    log_claim_validation(
        patient_id=request.patient_identifier,
        denial_risk_score=result.denial_risk_score,
        risk_level=result.risk_level.value,
        total_issues=result.total_issues,
        degraded_checks=result.checks_degraded,
    )
    return ClaimValidationResponse.model_validate(result.to_dict())


@router.get(
    "/checks",
    response_model=ChecksResponse,
    summary="List validation checks",
    description="List the checks the engine runs and the active scoring weights.",
)
async def list_checks(service: ValidationServiceDep) -> ChecksResponse:
    """Describe the engine configuration."""
    config = service.scoring_config
    return ChecksResponse(
        checks=service.get_stats()["checks"],
        weights=dict(config.weights),
        severity_points={severity.value: points for severity, points in config.severity_points.items()},
        critical_floor=config.critical_floor,
    )
