"""Result assembly: packages issues, corrections and the risk breakdown."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from claimscrub.schemas.base import RiskLevel, Severity
from claimscrub.services.claim import ClaimContext
from claimscrub.services.findings import Correction, Issue
from claimscrub.services.risk_scorer import RiskAssessment, RiskBreakdown

# Bucket name -> issue type fragments. An issue may land in more than one bucket.
ISSUE_CATEGORIES: dict[str, tuple[str, ...]] = {
    "unit_limit_issues": ("UNIT_LIMIT",),
    "bundling_issues": ("BUNDLING",),
    "modifier_issues": ("MODIFIER",),
    "necessity_issues": ("NECESSITY",),
    "payer_issues": ("PAYER",),
    "frequency_issues": ("FREQUENCY", "INTERVAL"),
}


@dataclass(frozen=True)
class ValidationResult:
    """Terminal output of one claim evaluation."""

    denial_risk_score: int
    risk_level: RiskLevel
    issue_counts: dict[str, int]
    issues: tuple[Issue, ...]
    categorized_issues: dict[str, list[Issue]]
    corrections: tuple[Correction, ...]
    risk_breakdown: RiskBreakdown
    input_summary: dict[str, Any]
    checks_performed: list[str] = field(default_factory=list)
    checks_degraded: list[str] = field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @property
    def is_degraded(self) -> bool:
        return bool(self.checks_degraded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "denial_risk_score": self.denial_risk_score,
            "risk_level": self.risk_level.value,
            "summary": {
                "total_issues": self.total_issues,
                **self.issue_counts,
                "checks_performed": list(self.checks_performed),
                "checks_degraded": list(self.checks_degraded),
            },
            "issues": [i.to_dict() for i in self.issues],
            **{
                name: [i.to_dict() for i in bucket]
                for name, bucket in self.categorized_issues.items()
            },
            "corrections": [c.to_dict() for c in self.corrections],
            "risk_breakdown": self.risk_breakdown.to_dict(),
            "input_summary": dict(self.input_summary),
        }


def categorize_issues(issues: Sequence[Issue]) -> dict[str, list[Issue]]:
    """Group issues into named buckets by type fragment."""
    return {
        name: [i for i in issues if any(fragment in i.type for fragment in fragments)]
        for name, fragments in ISSUE_CATEGORIES.items()
    }


def count_by_severity(issues: Sequence[Issue]) -> dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts


def assemble_result(
    claim: ClaimContext,
    issues: Sequence[Issue],
    corrections: Sequence[Correction],
    assessment: RiskAssessment,
    checks_performed: Sequence[str] = (),
    checks_degraded: Sequence[str] = (),
) -> ValidationResult:
    """Package an evaluation into a ``ValidationResult``."""
    return ValidationResult(
        denial_risk_score=assessment.denial_risk_score,
        risk_level=assessment.risk_level,
        issue_counts=count_by_severity(issues),
        issues=tuple(issues),
        categorized_issues=categorize_issues(issues),
        corrections=tuple(corrections),
        risk_breakdown=assessment.breakdown,
        input_summary={
            "procedures_checked": len(claim.procedures),
            "diagnoses_checked": len(claim.icd_codes),
            "payer": claim.payer or "Not specified",
        },
        checks_performed=list(checks_performed),
        checks_degraded=list(checks_degraded),
    )
