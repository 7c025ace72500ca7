"""Structured correction generator.

Derives ``Correction`` records from issues. Only some issue types map to
an automatic remediation; laterality conflicts, necessity warnings,
interval warnings and payer advisories are left to human review and
produce none.
"""

from collections.abc import Callable, Iterable

from claimscrub.schemas.base import CorrectionType, IssueType
from claimscrub.services.findings import Correction, Issue


def _unit_limit(issue: Issue) -> list[Correction]:
    limit = issue.details["max_allowed"]
    return [Correction(
        type=CorrectionType.REDUCE_UNITS,
        target_code=issue.code or "",
        action="reduce_units",
        value=limit,
        reason=f"MUE limit is {limit} unit(s) per day",
    )]


def _bundling(issue: Issue) -> list[Correction]:
    comprehensive = issue.details["comprehensive_code"]
    component = issue.details["component_code"]
    if not issue.details.get("modifier_allowed"):
        return [Correction(
            type=CorrectionType.REMOVE_CODE,
            target_code=component,
            action="remove",
            reason=f"Bundled into {comprehensive} - no modifier override allowed",
        )]
    if issue.details.get("modifier_present"):
        return []
    return [Correction(
        type=CorrectionType.ADD_MODIFIER,
        target_code=component,
        action="add_modifier",
        value="59",
        reason=f"Required to unbundle from {comprehensive}",
    )]


def _separate_em(issue: Issue) -> list[Correction]:
    return [Correction(
        type=CorrectionType.ADD_MODIFIER,
        target_code=issue.code or "",
        action="add_modifier",
        value="25",
        reason="E/M with same-day procedure requires modifier 25",
    )]


def _component_conflict(issue: Issue) -> list[Correction]:
    return [Correction(
        type=CorrectionType.REMOVE_MODIFIER,
        target_code=issue.code or "",
        action="remove_modifier",
        value="TC",
        reason="Cannot have both 26 and TC on same code",
    )]


def _frequency(issue: Issue) -> list[Correction]:
    count = issue.details["count_this_year"]
    maximum = issue.details["max_per_year"]
    return [Correction(
        type=CorrectionType.DOCUMENT_NECESSITY,
        target_code=issue.code or "",
        action="document_necessity",
        reason=f"Service frequency limit may be exceeded ({count}/{maximum} per year)",
    )]


_GENERATORS: dict[str, Callable[[Issue], list[Correction]]] = {
    IssueType.UNIT_LIMIT_EXCEEDED.value: _unit_limit,
    IssueType.BUNDLING_VIOLATION.value: _bundling,
    IssueType.MISSING_SEPARATE_EM_MODIFIER.value: _separate_em,
    IssueType.CONFLICTING_COMPONENT_MODIFIERS.value: _component_conflict,
    IssueType.FREQUENCY_LIMIT_EXCEEDED.value: _frequency,
}


def corrections_for(issue: Issue) -> list[Correction]:
    """Corrections for one issue (possibly none)."""
    generator = _GENERATORS.get(issue.type)
    return generator(issue) if generator else []


def generate_corrections(issues: Iterable[Issue]) -> list[Correction]:
    """Corrections for all issues, in issue order."""
    corrections: list[Correction] = []
    for issue in issues:
        corrections.extend(corrections_for(issue))
    return corrections
