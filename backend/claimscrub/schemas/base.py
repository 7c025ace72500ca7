"""Base enums shared by the validation engine and the API."""

from enum import Enum


class Severity(str, Enum):
    """Severity of a validation issue."""

    CRITICAL = "critical"  # Claim will deny as submitted
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"  # Advisory


class RiskLevel(str, Enum):
    """Discrete denial-risk level derived from the final score."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueType(str, Enum):
    """Kinds of issue raised by the rule checkers.

    Payer rule issues are not enumerated here: their type is derived from
    the rule record (``PAYER_<RULE_TYPE>``).
    """

    UNIT_LIMIT_EXCEEDED = "UNIT_LIMIT_EXCEEDED"
    BUNDLING_VIOLATION = "BUNDLING_VIOLATION"
    MISSING_SEPARATE_EM_MODIFIER = "MISSING_SEPARATE_EM_MODIFIER"
    CONFLICTING_COMPONENT_MODIFIERS = "CONFLICTING_COMPONENT_MODIFIERS"
    INVALID_LATERALITY_MODIFIERS = "INVALID_LATERALITY_MODIFIERS"
    WEAK_NECESSITY_LINK = "WEAK_NECESSITY_LINK"
    MARGINAL_NECESSITY_SCORE = "MARGINAL_NECESSITY_SCORE"
    FREQUENCY_LIMIT_EXCEEDED = "FREQUENCY_LIMIT_EXCEEDED"
    INTERVAL_TOO_SOON = "INTERVAL_TOO_SOON"


class CorrectionType(str, Enum):
    """Structured remediation actions."""

    REDUCE_UNITS = "reduce-units"
    REMOVE_CODE = "remove-code"
    ADD_MODIFIER = "add-modifier"
    REMOVE_MODIFIER = "remove-modifier"
    DOCUMENT_NECESSITY = "document-necessity"


class ModifierIndicator(str, Enum):
    """Whether a bundling edit can be bypassed with a modifier."""

    NEVER = "never"  # CMS indicator 0
    ALLOWED_WITH_MODIFIER = "allowed-with-modifier"  # CMS indicator 1


class CareSetting(str, Enum):
    """Setting used to select the unit limit."""

    FACILITY = "facility"
    PRACTITIONER = "practitioner"


class CheckName(str, Enum):
    """Rule checker families, in evaluation order."""

    UNIT_LIMITS = "unit_limits"
    BUNDLING = "bundling"
    MODIFIERS = "modifiers"
    MEDICAL_NECESSITY = "medical_necessity"
    PAYER_RULES = "payer_rules"
    FREQUENCY = "frequency"
