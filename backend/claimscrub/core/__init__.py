"""Core application configuration and utilities."""

from claimscrub.core.audit import AuditAction, AuditEvent, log_audit, log_claim_validation
from claimscrub.core.config import Settings, settings
from claimscrub.core.database import Base, get_session_maker

__all__ = [
    # Config
    "Settings",
    "settings",
    # Database
    "Base",
    "get_session_maker",
    # Audit
    "AuditAction",
    "AuditEvent",
    "log_audit",
    "log_claim_validation",
]
