"""Denial risk scoring model.

Combines the issue list and the claim's shape into a 0-100 denial risk
score. The score is a weighted sum of five factor scores, scaled by a
payer multiplier, with a floor that keeps any claim carrying a critical
issue at "critical" risk. All tunables live in ``ScoringConfig`` and
every intermediate value is returned in ``RiskBreakdown``.

Scoring is a pure function of its inputs and never fails.
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from claimscrub.schemas.base import IssueType, RiskLevel, Severity
from claimscrub.services.claim import ClaimContext
from claimscrub.services.findings import Issue
from claimscrub.services.rule_checkers import round_half_up

NECESSITY_ISSUE_TYPES = frozenset({
    IssueType.WEAK_NECESSITY_LINK.value,
    IssueType.MARGINAL_NECESSITY_SCORE.value,
})
FREQUENCY_ISSUE_TYPES = frozenset({
    IssueType.FREQUENCY_LIMIT_EXCEEDED.value,
    IssueType.INTERVAL_TOO_SOON.value,
})

# Payer name fragments and how much stricter their adjudication runs.
# First match wins, so more specific fragments come first.
DEFAULT_PAYER_MULTIPLIERS: tuple[tuple[str, float], ...] = (
    ("medicaid", 1.15),
    ("medicare", 1.10),
    ("unitedhealth", 1.12),
    ("united healthcare", 1.12),
    ("uhc", 1.12),
    ("blue cross", 1.08),
    ("bcbs", 1.08),
    ("aetna", 1.08),
    ("cigna", 1.05),
    ("humana", 1.05),
)

# Codes payers audit heavily (high-level E/M, advanced imaging, injections)
DEFAULT_HIGH_SCRUTINY_CODES: frozenset[str] = frozenset({
    "99205", "99215", "99223", "99233", "99285", "99291",
    "70553", "72148", "74177", "93306", "20610", "64483", "97110",
})


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and point tables for the risk scorer."""

    severity_points: dict[Severity, int] = field(default_factory=lambda: {
        Severity.CRITICAL: 35,
        Severity.HIGH: 20,
        Severity.MEDIUM: 8,
        Severity.LOW: 2,
    })
    weights: dict[str, float] = field(default_factory=lambda: {
        "severity": 0.40,
        "necessity": 0.20,
        "complexity": 0.10,
        "icd_specificity": 0.10,
        "frequency": 0.05,
    })
    payer_multipliers: tuple[tuple[str, float], ...] = DEFAULT_PAYER_MULTIPLIERS
    max_payer_multiplier: float = 1.15
    high_scrutiny_codes: frozenset[str] = DEFAULT_HIGH_SCRUTINY_CODES
    high_scrutiny_points: int = 5
    # (more than N lines, points), checked in order
    line_count_points: tuple[tuple[int, int], ...] = ((5, 20), (3, 10), (1, 5))
    modifier_count_points: tuple[tuple[int, int], ...] = ((4, 20), (2, 10))
    unspecified_icd_points: int = 15
    symptom_icd_points: int = 10
    z_code_points: int = 20
    exempt_z_prefixes: tuple[str, ...] = ("Z00", "Z01", "Z12", "Z13", "Z23", "Z79")
    frequency_base_points: int = 50
    frequency_points_per_issue: int = 25
    critical_floor: int = 70
    # (minimum score, level), checked in order
    level_thresholds: tuple[tuple[int, RiskLevel], ...] = (
        (70, RiskLevel.CRITICAL),
        (50, RiskLevel.HIGH),
        (25, RiskLevel.MEDIUM),
    )


@dataclass(frozen=True)
class RiskBreakdown:
    """Every factor behind a denial risk score."""

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

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RiskAssessment:
    """Scorer output."""

    denial_risk_score: int
    risk_level: RiskLevel
    breakdown: RiskBreakdown


class RiskScorer:
    """Weighted multi-factor denial risk scorer."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    def severity_score(self, issues: Sequence[Issue]) -> int:
        points = self.config.severity_points
        return min(100, sum(points.get(i.severity, 0) for i in issues))

    def payer_multiplier(self, payer: str | None) -> float:
        if not payer:
            return 1.0
        name = payer.lower()
        for fragment, multiplier in self.config.payer_multipliers:
            if fragment in name:
                return multiplier
        return 1.0

    def necessity_risk_score(self, issues: Sequence[Issue]) -> int:
        scores = [
            int(i.details.get("necessity_score", 0))
            for i in issues
            if i.type in NECESSITY_ISSUE_TYPES
        ]
        if not scores:
            return 0
        return max(0, min(100, 100 - min(scores)))

    def complexity_score(self, claim: ClaimContext) -> int:
        cfg = self.config
        score = 0
        line_count = len(claim.procedures)
        for threshold, points in cfg.line_count_points:
            if line_count > threshold:
                score += points
                break
        modifier_count = claim.modifier_count
        for threshold, points in cfg.modifier_count_points:
            if modifier_count > threshold:
                score += points
                break
        score += cfg.high_scrutiny_points * sum(
            1 for code in claim.distinct_cpt_codes if code in cfg.high_scrutiny_codes
        )
        return min(100, score)

    def icd_specificity_score(self, claim: ClaimContext) -> int:
        cfg = self.config
        score = 0
        for code in claim.icd_codes:
            if code.endswith("9"):
                score += cfg.unspecified_icd_points
            if code.startswith("R"):
                score += cfg.symptom_icd_points
            if code.startswith("Z") and not code.startswith(cfg.exempt_z_prefixes):
                score += cfg.z_code_points
        return min(100, score)

    def frequency_risk_score(self, issues: Sequence[Issue]) -> int:
        count = sum(1 for i in issues if i.type in FREQUENCY_ISSUE_TYPES)
        if count == 0:
            return 0
        cfg = self.config
        return min(100, cfg.frequency_base_points + cfg.frequency_points_per_issue * count)

    def risk_level(self, score: int) -> RiskLevel:
        for minimum, level in self.config.level_thresholds:
            if score >= minimum:
                return level
        return RiskLevel.LOW

    def score(self, issues: Sequence[Issue], claim: ClaimContext) -> RiskAssessment:
        """Score a finished issue list for a claim."""
        cfg = self.config
        factors = {
            "severity": self.severity_score(issues),
            "necessity": self.necessity_risk_score(issues),
            "complexity": self.complexity_score(claim),
            "icd_specificity": self.icd_specificity_score(claim),
            "frequency": self.frequency_risk_score(issues),
        }
        base_score = sum(factors.get(name, 0) * weight for name, weight in cfg.weights.items())
        multiplier = self.payer_multiplier(claim.payer)

        final_score = round_half_up(min(100.0, base_score * multiplier))
        floor_applied = False
        if any(i.severity == Severity.CRITICAL for i in issues) and final_score < cfg.critical_floor:
            final_score = cfg.critical_floor
            floor_applied = True

        spread = cfg.max_payer_multiplier - 1.0
        payer_risk = round_half_up((multiplier - 1.0) / spread * 100) if spread > 0 else 0

        breakdown = RiskBreakdown(
            severity_score=factors["severity"],
            necessity_risk_score=factors["necessity"],
            complexity_score=factors["complexity"],
            icd_specificity_score=factors["icd_specificity"],
            frequency_risk_score=factors["frequency"],
            payer_risk_score=max(0, min(100, payer_risk)),
            payer_multiplier=multiplier,
            weights=dict(cfg.weights),
            base_score=round(base_score, 2),
            critical_floor_applied=floor_applied,
        )
        return RiskAssessment(
            denial_risk_score=final_score,
            risk_level=self.risk_level(final_score),
            breakdown=breakdown,
        )
