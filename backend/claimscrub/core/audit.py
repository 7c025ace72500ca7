"""Audit logging for claim validation requests.

Every validation request produces one audit event carrying the outcome
and a summary of the result. The audit log should be shipped to an
append-only store in production; here it is a dedicated logger.
"""

import logging
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Separate audit logger for compliance-relevant events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    VALIDATE = "validate"
    REJECT = "reject"
    ERROR = "error"


class AuditEvent(BaseModel):
    """Audit event record."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Type of resource evaluated")
    patient_id: str | None = Field(None, description="Patient identifier if supplied")
    details: dict | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


def log_audit(
    action: AuditAction,
    resource_type: str,
    patient_id: str | None = None,
    details: dict | None = None,
    success: bool = True,
) -> AuditEvent:
    """Log an audit event.

    Args:
        action: Type of action being audited
        resource_type: The type of resource being evaluated
        patient_id: Patient identifier if the claim carried one
        details: Additional context (score, risk level, counts)
        success: Whether the action succeeded

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        resource_type=resource_type,
        patient_id=patient_id,
        details=details,
        success=success,
    )

    log_level = logging.INFO if success else logging.WARNING
    audit_logger.log(
        log_level,
        f"AUDIT: {action.value} {resource_type}"
        f"{f' patient={patient_id}' if patient_id else ''}"
        f" success={success}",
        extra={"audit_event": event.model_dump()},
    )

    return event


def log_claim_validation(
    patient_id: str | None,
    denial_risk_score: int,
    risk_level: str,
    total_issues: int,
    degraded_checks: list[str],
) -> AuditEvent:
    """Log a completed claim validation.

    Convenience wrapper used by the validation API.
    """
    return log_audit(
        action=AuditAction.VALIDATE,
        resource_type="claim",
        patient_id=patient_id,
        details={
            "denial_risk_score": denial_risk_score,
            "risk_level": risk_level,
            "total_issues": total_issues,
            "degraded_checks": degraded_checks,
        },
    )
