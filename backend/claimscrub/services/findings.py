"""Issue and Correction records produced during one evaluation."""

from dataclasses import dataclass, field
from typing import Any

from claimscrub.schemas.base import CorrectionType, Severity


@dataclass(frozen=True)
class Issue:
    """One finding raised by a rule checker.

    ``type`` is an ``IssueType`` value, or ``PAYER_<RULE_TYPE>`` for payer
    rules. ``correction`` is advisory text for a human; structured
    remediation lives in ``Correction`` records.
    """

    type: str
    severity: Severity
    message: str
    code: str | None = None
    code_pair: tuple[str, str] | None = None
    correction: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "code": self.code,
            "code_pair": list(self.code_pair) if self.code_pair else None,
            "message": self.message,
            "correction": self.correction,
            "details": self.details,
        }


@dataclass(frozen=True)
class Correction:
    """A structured remediation derived from an Issue."""

    type: CorrectionType
    target_code: str
    action: str
    reason: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target_code": self.target_code,
            "action": self.action,
            "value": self.value,
            "reason": self.reason,
        }
