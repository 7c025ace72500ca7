"""Tests for audit logging of claim validations."""

import logging

import pytest

from claimscrub.core.audit import AuditAction, AuditEvent, log_audit, log_claim_validation


class TestAuditEvent:
    """Tests for AuditEvent model."""

    def test_audit_event_required_fields(self) -> None:
        event = AuditEvent(action=AuditAction.VALIDATE, resource_type="claim")
        assert event.success is True
        assert event.patient_id is None
        assert event.timestamp is not None


class TestLogAudit:
    """Tests for the audit log helpers."""

    def test_success_logged_at_info(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="audit"):
            event = log_audit(AuditAction.VALIDATE, "claim", patient_id="P001")
        assert event.action == AuditAction.VALIDATE
        assert caplog.records[-1].levelno == logging.INFO
        assert "patient=P001" in caplog.text

    def test_failure_logged_at_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="audit"):
            log_audit(AuditAction.REJECT, "claim", details={"error": "No procedures"}, success=False)
        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].audit_event["details"] == {"error": "No procedures"}

    def test_claim_validation_details(self) -> None:
        event = log_claim_validation(
            patient_id=None,
            denial_risk_score=72,
            risk_level="critical",
            total_issues=3,
            degraded_checks=["frequency"],
        )
        assert event.resource_type == "claim"
        assert event.details == {
            "denial_risk_score": 72,
            "risk_level": "critical",
            "total_issues": 3,
            "degraded_checks": ["frequency"],
        }
