"""Tests for structured correction generation."""

from claimscrub.schemas.base import CorrectionType, IssueType, Severity
from claimscrub.services.corrections import corrections_for, generate_corrections
from claimscrub.services.findings import Issue


def bundling_issue(modifier_allowed: bool, modifier_present: bool = False) -> Issue:
    return Issue(
        type=IssueType.BUNDLING_VIOLATION.value,
        severity=Severity.HIGH if modifier_allowed else Severity.CRITICAL,
        message="bundled",
        code_pair=("96372", "36415"),
        details={
            "comprehensive_code": "96372",
            "component_code": "36415",
            "modifier_allowed": modifier_allowed,
            "modifier_present": modifier_present,
        },
    )


class TestCorrections:
    """Test issue-to-correction mapping."""

    def test_unit_limit_reduces_units(self) -> None:
        issue = Issue(
            type=IssueType.UNIT_LIMIT_EXCEEDED.value,
            severity=Severity.CRITICAL,
            message="too many units",
            code="96372",
            details={"billed_units": 5, "max_allowed": 4},
        )
        [correction] = corrections_for(issue)
        assert correction.type == CorrectionType.REDUCE_UNITS
        assert correction.target_code == "96372"
        assert correction.value == 4

    def test_never_bundling_removes_component(self) -> None:
        [correction] = corrections_for(bundling_issue(modifier_allowed=False))
        assert correction.type == CorrectionType.REMOVE_CODE
        assert correction.target_code == "36415"
        assert "96372" in correction.reason

    def test_allowed_bundling_adds_59(self) -> None:
        [correction] = corrections_for(bundling_issue(modifier_allowed=True))
        assert correction.type == CorrectionType.ADD_MODIFIER
        assert correction.target_code == "36415"
        assert correction.value == "59"

    def test_allowed_bundling_with_modifier_needs_nothing(self) -> None:
        assert corrections_for(bundling_issue(modifier_allowed=True, modifier_present=True)) == []

    def test_em_gets_modifier_25(self) -> None:
        issue = Issue(
            type=IssueType.MISSING_SEPARATE_EM_MODIFIER.value,
            severity=Severity.HIGH,
            message="needs 25",
            code="99214",
        )
        [correction] = corrections_for(issue)
        assert correction.type == CorrectionType.ADD_MODIFIER
        assert correction.value == "25"

    def test_component_conflict_removes_tc(self) -> None:
        issue = Issue(
            type=IssueType.CONFLICTING_COMPONENT_MODIFIERS.value,
            severity=Severity.CRITICAL,
            message="26 and TC",
            code="71045",
        )
        [correction] = corrections_for(issue)
        assert correction.type == CorrectionType.REMOVE_MODIFIER
        assert correction.value == "TC"

    def test_frequency_documents_necessity(self) -> None:
        issue = Issue(
            type=IssueType.FREQUENCY_LIMIT_EXCEEDED.value,
            severity=Severity.HIGH,
            message="too frequent",
            code="80061",
            details={"count_this_year": 1, "max_per_year": 1},
        )
        [correction] = corrections_for(issue)
        assert correction.type == CorrectionType.DOCUMENT_NECESSITY
        assert "1/1" in correction.reason

    def test_advisory_issues_have_no_correction(self) -> None:
        for type_ in (
            IssueType.INVALID_LATERALITY_MODIFIERS.value,
            IssueType.WEAK_NECESSITY_LINK.value,
            IssueType.MARGINAL_NECESSITY_SCORE.value,
            IssueType.INTERVAL_TOO_SOON.value,
            "PAYER_PRIOR_AUTH",
        ):
            assert corrections_for(Issue(type=type_, severity=Severity.MEDIUM, message="x")) == []

    def test_generate_keeps_issue_order(self) -> None:
        issues = [
            Issue(type=IssueType.MISSING_SEPARATE_EM_MODIFIER.value, severity=Severity.HIGH, message="x", code="99214"),
            bundling_issue(modifier_allowed=False),
        ]
        corrections = generate_corrections(issues)
        assert [c.type for c in corrections] == [CorrectionType.ADD_MODIFIER, CorrectionType.REMOVE_CODE]
