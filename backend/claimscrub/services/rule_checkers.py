"""Rule checkers for claim validation.

Each checker is an independent coroutine taking a ``CheckContext`` and
returning the issues it found. Checkers never read each other's output.

- Unit limits (MUE)
- Bundling (NCCI procedure-to-procedure edits)
- Modifier consistency (E/M + procedure, 26/TC, laterality)
- Medical necessity (CPT/ICD mapping strength)
- Payer-specific rules
- Frequency and interval limits (patient claim history)

Reference lookups go through ``SafeLookup``: a failed lookup is logged
and treated as "no rule found" for that code or pair only.

Note: This is a claim scrubbing aid. Findings should be reviewed by
qualified billing staff before a claim is changed.
"""

import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from claimscrub.core.config import Settings
from claimscrub.schemas.base import CareSetting, CheckName, IssueType, ModifierIndicator, Severity
from claimscrub.services.claim import ClaimContext
from claimscrub.services.findings import Issue
from claimscrub.services.reference_data import (
    ClaimHistoryRecord,
    ClaimHistoryRepository,
    ReferenceDataRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RuleConfig:
    """Tunable constants for the rule checkers."""

    facility_place_of_service: frozenset[str] = frozenset({"21", "22"})
    override_modifiers: tuple[str, ...] = ("59", "XE", "XS", "XP", "XU")
    em_code_pattern: str = r"^99[2-4]\d{2}$"
    necessity_threshold: int = 70
    necessity_suggestion_limit: int = 5
    history_window: int = 20
    lookback_days: int = 365
    lookup_concurrency: int = 8

    @classmethod
    def from_settings(cls, settings: Settings) -> "RuleConfig":
        return cls(
            necessity_threshold=settings.necessity_threshold,
            history_window=settings.claim_history_window,
            lookback_days=settings.frequency_lookback_days,
            lookup_concurrency=settings.lookup_concurrency,
        )

    def is_em_code(self, cpt_code: str) -> bool:
        return re.match(self.em_code_pattern, cpt_code) is not None


class SafeLookup:
    """Runs reference lookups with bounded concurrency and failure isolation."""

    def __init__(self, semaphore: asyncio.Semaphore) -> None:
        self._semaphore = semaphore
        self.failures: list[str] = []

    async def __call__(self, description: str, factory: Callable[[], Awaitable[T]], default: T) -> T:
        async with self._semaphore:
            try:
                return await factory()
            except Exception as e:
                logger.warning(f"Reference lookup failed for {description}: {e}")
                self.failures.append(description)
                return default

    async def raw(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run a lookup under the concurrency bound without swallowing failures."""
        async with self._semaphore:
            return await factory()


@dataclass
class CheckContext:
    """Everything a checker may read during one evaluation."""

    claim: ClaimContext
    reference: ReferenceDataRepository
    history: ClaimHistoryRepository | None
    config: RuleConfig
    lookup: SafeLookup
    now: datetime


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ============================================================================
# Unit limits (MUE)
# ============================================================================


async def check_unit_limits(ctx: CheckContext) -> list[Issue]:
    """Flag lines whose units exceed the code's MUE ceiling."""
    claim = ctx.claim
    codes = claim.distinct_cpt_codes
    limits = await asyncio.gather(*(
        ctx.lookup(
            f"unit limit {code}",
            lambda code=code: ctx.reference.get_unit_limit(code),
            None,
        )
        for code in codes
    ))
    by_code = dict(zip(codes, limits, strict=True))

    is_facility = claim.place_of_service in ctx.config.facility_place_of_service
    setting = CareSetting.FACILITY if is_facility else CareSetting.PRACTITIONER

    issues: list[Issue] = []
    for proc in claim.procedures:
        record = by_code.get(proc.cpt_code)
        if record is None:
            continue
        limit = record.facility_limit if is_facility else record.practitioner_limit
        # No configured limit for this setting is not evidence of compliance
        if not limit or proc.units <= limit:
            continue

        issues.append(Issue(
            type=IssueType.UNIT_LIMIT_EXCEEDED.value,
            severity=Severity.CRITICAL,
            code=proc.cpt_code,
            message=(
                f"CPT {proc.cpt_code}: Billed {proc.units} units exceeds MUE limit "
                f"of {limit} unit(s) per day"
            ),
            correction=(
                f"Reduce units to {limit} or provide documentation justifying medical "
                f"necessity for additional units"
            ),
            details={
                "billed_units": proc.units,
                "max_allowed": limit,
                "setting": setting.value,
                "rationale": record.rationale,
            },
        ))
    return issues


# ============================================================================
# Bundling (NCCI PTP edits)
# ============================================================================


async def check_bundling(ctx: CheckContext) -> list[Issue]:
    """Check every unordered pair of distinct codes against bundling edits."""
    claim = ctx.claim
    codes = claim.distinct_cpt_codes
    pairs = [(codes[i], codes[j]) for i in range(len(codes)) for j in range(i + 1, len(codes))]
    edits = await asyncio.gather(*(
        ctx.lookup(
            f"bundling edit {a}/{b}",
            lambda a=a, b=b: ctx.reference.find_bundling_edit(a, b),
            None,
        )
        for a, b in pairs
    ))

    override = ctx.config.override_modifiers
    issues: list[Issue] = []
    for (code_a, code_b), edit in zip(pairs, edits, strict=True):
        if edit is None:
            continue

        modifier_present = any(
            line.has_modifier(*override)
            for line in claim.lines_for(code_a) + claim.lines_for(code_b)
        )
        never = edit.modifier_indicator == ModifierIndicator.NEVER
        if not never and modifier_present:
            continue  # distinct service documented by modifier

        comprehensive, component = edit.comprehensive_code, edit.component_code
        if never:
            message = (
                f"NCCI Edit: {component} is bundled into {comprehensive} and cannot be "
                f"billed separately (modifier not allowed)"
            )
            correction = f"Remove {component} from claim - it is included in {comprehensive}"
        else:
            message = (
                f"NCCI Edit: {component} bundles into {comprehensive} - modifier 59/X{{EPSU}} "
                f"required if truly distinct service"
            )
            correction = (
                f"Add modifier 59, XE, XS, XP, or XU to {component} if it represents a "
                f"distinct service, otherwise remove it"
            )

        issues.append(Issue(
            type=IssueType.BUNDLING_VIOLATION.value,
            severity=Severity.CRITICAL if never else Severity.HIGH,
            code_pair=(comprehensive, component),
            message=message,
            correction=correction,
            details={
                "comprehensive_code": comprehensive,
                "component_code": component,
                "modifier_indicator": edit.modifier_indicator.value,
                "modifier_allowed": not never,
                "modifier_present": modifier_present,
            },
        ))
    return issues


# ============================================================================
# Modifier consistency
# ============================================================================


async def check_modifiers(ctx: CheckContext) -> list[Issue]:
    """Check modifier usage; needs no reference data."""
    claim = ctx.claim
    issues: list[Issue] = []

    em_lines = [p for p in claim.procedures if ctx.config.is_em_code(p.cpt_code)]
    procedure_codes = list(dict.fromkeys(
        p.cpt_code for p in claim.procedures if not ctx.config.is_em_code(p.cpt_code)
    ))

    # E/M with a same-day procedure needs modifier 25
    if em_lines and procedure_codes:
        for em in em_lines:
            if em.has_modifier("25"):
                continue
            issues.append(Issue(
                type=IssueType.MISSING_SEPARATE_EM_MODIFIER.value,
                severity=Severity.HIGH,
                code=em.cpt_code,
                message=(
                    f"E/M code {em.cpt_code} billed with same-day procedure(s) "
                    f"requires modifier 25"
                ),
                correction=(
                    f"Add modifier 25 to {em.cpt_code} and ensure documentation supports a "
                    f"significant, separately identifiable E/M service"
                ),
                details={
                    "em_code": em.cpt_code,
                    "procedures_same_day": procedure_codes,
                },
            ))

    for proc in claim.procedures:
        # Professional and technical component on the same line
        if proc.has_modifier("26") and proc.has_modifier("TC"):
            issues.append(Issue(
                type=IssueType.CONFLICTING_COMPONENT_MODIFIERS.value,
                severity=Severity.CRITICAL,
                code=proc.cpt_code,
                message=(
                    f"CPT {proc.cpt_code}: Cannot bill both modifier 26 (professional) and "
                    f"TC (technical) on the same code"
                ),
                correction=(
                    "Remove one modifier - bill either professional component (26) OR "
                    "technical component (TC), not both"
                ),
                details={"modifiers_present": list(proc.modifiers)},
            ))

        has_lt = proc.has_modifier("LT")
        has_rt = proc.has_modifier("RT")
        if (has_lt and has_rt) or (proc.has_modifier("50") and (has_lt or has_rt)):
            issues.append(Issue(
                type=IssueType.INVALID_LATERALITY_MODIFIERS.value,
                severity=Severity.HIGH,
                code=proc.cpt_code,
                message=f"CPT {proc.cpt_code}: Invalid bilateral modifier combination (LT/RT/50)",
                correction=(
                    "Use modifier 50 for bilateral procedures OR LT/RT separately, "
                    "not combinations"
                ),
                details={"modifiers_present": list(proc.modifiers)},
            ))

    return issues


# ============================================================================
# Medical necessity
# ============================================================================


async def check_medical_necessity(ctx: CheckContext) -> list[Issue]:
    """Check how well the claim's diagnoses support each procedure."""
    claim = ctx.claim
    if not claim.icd_codes:
        return []

    codes = claim.distinct_cpt_codes
    matched = await asyncio.gather(*(
        ctx.lookup(
            f"necessity mappings {code}",
            lambda code=code: ctx.reference.get_necessity_mappings(code, claim.icd_codes),
            None,
        )
        for code in codes
    ))
    unsupported = [code for code, rows in zip(codes, matched, strict=True) if rows == []]
    suggestions = await asyncio.gather(*(
        ctx.lookup(
            f"top necessity mappings {code}",
            lambda code=code: ctx.reference.get_top_necessity_mappings(
                code, ctx.config.necessity_suggestion_limit
            ),
            [],
        )
        for code in unsupported
    ))
    suggestions_by_code = dict(zip(unsupported, suggestions, strict=True))

    issues: list[Issue] = []
    for code, rows in zip(codes, matched, strict=True):
        if rows is None:
            continue  # lookup failed

        if not rows:
            best = suggestions_by_code.get(code) or []
            if not best:
                continue  # no mapping data for this code at all
            suggested = ", ".join(m.icd_code for m in best)
            issues.append(Issue(
                type=IssueType.WEAK_NECESSITY_LINK.value,
                severity=Severity.MEDIUM,
                code=code,
                message=(
                    f"CPT {code}: Current diagnosis codes may not strongly support "
                    f"medical necessity"
                ),
                correction=(
                    f"Consider using diagnosis codes that better support this procedure: "
                    f"{suggested}"
                ),
                details={
                    "necessity_score": 0,
                    "current_icd_codes": list(claim.icd_codes),
                    "suggested_icd_codes": [
                        {"code": m.icd_code, "score": m.necessity_score} for m in best
                    ],
                },
            ))
            continue

        average = round_half_up(sum(m.necessity_score for m in rows) / len(rows))
        if average >= ctx.config.necessity_threshold:
            continue
        issues.append(Issue(
            type=IssueType.MARGINAL_NECESSITY_SCORE.value,
            severity=Severity.LOW,
            code=code,
            message=f"CPT {code}: Medical necessity support is moderate ({average}% score)",
            correction=(
                "Consider additional documentation or more specific diagnosis codes to "
                "strengthen medical necessity"
            ),
            details={
                "necessity_score": average,
                "supporting_codes": [
                    {"code": m.icd_code, "score": m.necessity_score} for m in rows
                ],
            },
        ))
    return issues


# ============================================================================
# Payer-specific rules
# ============================================================================


async def check_payer_rules(ctx: CheckContext) -> list[Issue]:
    """Apply active payer rules whose payer name matches the claim's payer."""
    claim = ctx.claim
    if not claim.payer:
        return []

    rules = await ctx.lookup(
        f"payer rules for {claim.payer}",
        ctx.reference.list_active_payer_rules,
        [],
    )
    codes = claim.distinct_cpt_codes

    issues: list[Issue] = []
    for rule in rules:
        if not rule.applies_to_payer(claim.payer):
            continue
        affected = [c for c in codes if c in rule.applies_to]
        if not affected:
            continue
        issues.append(Issue(
            type=rule.issue_type,
            severity=rule.severity,
            code=", ".join(affected),
            message=f"{rule.payer_name}: {rule.description}",
            correction=rule.action_required or "Review payer guidelines",
            details={
                "payer": rule.payer_name,
                "rule_type": rule.rule_type,
                "affected_codes": affected,
            },
        ))
    return issues


# ============================================================================
# Frequency and interval limits
# ============================================================================


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.floor((later - earlier).total_seconds() / 86400)


async def check_frequency(ctx: CheckContext) -> list[Issue]:
    """Check the patient's recent claims against per-code frequency limits.

    The claim history store is read once. If it is unavailable the
    exception propagates and the whole checker is reported as degraded.
    """
    claim = ctx.claim
    if not claim.patient_identifier or ctx.history is None:
        return []

    codes = claim.distinct_cpt_codes
    limits = await asyncio.gather(*(
        ctx.lookup(
            f"frequency limit {code}",
            lambda code=code: ctx.reference.get_frequency_limit(code, claim.payer),
            None,
        )
        for code in codes
    ))
    if all(limit is None for limit in limits):
        return []

    history: list[ClaimHistoryRecord] = await ctx.lookup.raw(
        lambda: ctx.history.get_recent_claims(claim.patient_identifier, ctx.config.history_window)
    )
    # The claim being evaluated may already be stored; count it once, as current
    prior = [
        h for h in history
        if not (claim.claim_identifier and h.claim_id == claim.claim_identifier)
    ]

    issues: list[Issue] = []
    for code, limit in zip(codes, limits, strict=True):
        if limit is None:
            continue

        # The claim under evaluation is the first occurrence in the window
        count_this_year = 1
        last_service: datetime | None = None
        for record in prior:
            if code not in record.procedure_codes:
                continue
            days_since = _days_between(ctx.now, record.submitted_at)
            if 0 <= days_since <= ctx.config.lookback_days:
                count_this_year += 1
                if last_service is None or record.submitted_at > last_service:
                    last_service = record.submitted_at

        note = f" {limit.exception_note}" if limit.exception_note else ""

        # Prior occurrences plus this claim reach the yearly maximum
        if limit.max_per_year and count_this_year >= limit.max_per_year:
            issues.append(Issue(
                type=IssueType.FREQUENCY_LIMIT_EXCEEDED.value,
                severity=Severity.HIGH,
                code=code,
                message=(
                    f"CPT {code}: Service billed {count_this_year} time(s) in the "
                    f"past year including this claim. Limit is {limit.max_per_year} per year."
                ),
                correction=(
                    "Document medical necessity for exceeding frequency limit, or consider "
                    f"if service is truly needed.{note}"
                ),
                details={
                    "cpt_code": code,
                    "count_this_year": count_this_year,
                    "max_per_year": limit.max_per_year,
                    "last_service_date": last_service.isoformat() if last_service else None,
                },
            ))

        if limit.required_interval_days and last_service is not None:
            days_since_last = _days_between(ctx.now, last_service)
            if days_since_last < limit.required_interval_days:
                issues.append(Issue(
                    type=IssueType.INTERVAL_TOO_SOON.value,
                    severity=Severity.MEDIUM,
                    code=code,
                    message=(
                        f"CPT {code}: Last performed {days_since_last} days ago. Recommended "
                        f"interval is {limit.required_interval_days} days."
                    ),
                    correction=(
                        "Document clinical change or new symptoms justifying repeat "
                        f"service.{note}"
                    ),
                    details={
                        "cpt_code": code,
                        "days_since_last": days_since_last,
                        "required_interval": limit.required_interval_days,
                        "last_service_date": last_service.isoformat(),
                    },
                ))
    return issues


Checker = Callable[[CheckContext], Awaitable[list[Issue]]]

# Evaluation order; also the order issues appear in the result
CHECKERS: tuple[tuple[CheckName, Checker], ...] = (
    (CheckName.UNIT_LIMITS, check_unit_limits),
    (CheckName.BUNDLING, check_bundling),
    (CheckName.MODIFIERS, check_modifiers),
    (CheckName.MEDICAL_NECESSITY, check_medical_necessity),
    (CheckName.PAYER_RULES, check_payer_rules),
    (CheckName.FREQUENCY, check_frequency),
)
