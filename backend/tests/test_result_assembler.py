"""Tests for result assembly and issue categorization."""

from claimscrub.schemas.base import RiskLevel, Severity
from claimscrub.services.claim import normalize_claim
from claimscrub.services.findings import Issue
from claimscrub.services.result_assembler import (
    ISSUE_CATEGORIES,
    assemble_result,
    categorize_issues,
    count_by_severity,
)
from claimscrub.services.risk_scorer import RiskScorer


def make_issue(type_: str, severity: Severity = Severity.MEDIUM) -> Issue:
    return Issue(type=type_, severity=severity, message=type_)


class TestCategorize:
    """Test bucket assignment."""

    def test_buckets_by_type_fragment(self) -> None:
        issues = [
            make_issue("UNIT_LIMIT_EXCEEDED"),
            make_issue("BUNDLING_VIOLATION"),
            make_issue("MISSING_SEPARATE_EM_MODIFIER"),
            make_issue("WEAK_NECESSITY_LINK"),
            make_issue("PAYER_PRIOR_AUTH"),
            make_issue("FREQUENCY_LIMIT_EXCEEDED"),
            make_issue("INTERVAL_TOO_SOON"),
        ]
        buckets = categorize_issues(issues)
        assert set(buckets) == set(ISSUE_CATEGORIES)
        assert len(buckets["unit_limit_issues"]) == 1
        assert len(buckets["modifier_issues"]) == 1
        assert len(buckets["payer_issues"]) == 1
        assert [i.type for i in buckets["frequency_issues"]] == ["FREQUENCY_LIMIT_EXCEEDED", "INTERVAL_TOO_SOON"]

    def test_payer_modifier_rule_lands_in_two_buckets(self) -> None:
        buckets = categorize_issues([make_issue("PAYER_MODIFIER_REQUIRED")])
        assert len(buckets["payer_issues"]) == 1
        assert len(buckets["modifier_issues"]) == 1

    def test_empty_buckets_present(self) -> None:
        buckets = categorize_issues([])
        assert all(bucket == [] for bucket in buckets.values())


class TestAssemble:
    """Test the assembled result."""

    def setup_method(self):
        self.claim = normalize_claim({"procedures": [{"cpt_code": "99213"}, {"cpt_code": "96372"}], "icd_codes": ["I10"]})
        self.issues = [make_issue("BUNDLING_VIOLATION", Severity.CRITICAL), make_issue("PAYER_DOC", Severity.LOW)]
        self.assessment = RiskScorer().score(self.issues, self.claim)

    def test_counts_match_issues(self) -> None:
        result = assemble_result(self.claim, self.issues, [], self.assessment)
        assert result.total_issues == 2
        assert result.issue_counts == {"critical": 1, "high": 0, "medium": 0, "low": 1}
        assert sum(result.issue_counts.values()) == result.total_issues

    def test_input_summary_defaults_payer(self) -> None:
        result = assemble_result(self.claim, self.issues, [], self.assessment)
        assert result.input_summary == {
            "procedures_checked": 2,
            "diagnoses_checked": 1,
            "payer": "Not specified",
        }

    def test_to_dict_shape(self) -> None:
        result = assemble_result(
            self.claim,
            self.issues,
            [],
            self.assessment,
            checks_performed=["unit_limits"],
            checks_degraded=["frequency"],
        )
        data = result.to_dict()
        assert data["risk_level"] == RiskLevel.CRITICAL.value
        assert data["summary"]["total_issues"] == 2
        assert data["summary"]["checks_degraded"] == ["frequency"]
        assert data["bundling_issues"][0]["type"] == "BUNDLING_VIOLATION"
        assert "risk_breakdown" in data
        assert result.is_degraded

    def test_assembly_is_idempotent(self) -> None:
        first = assemble_result(self.claim, self.issues, [], self.assessment)
        second = assemble_result(self.claim, self.issues, [], self.assessment)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_count_by_severity_all_keys(self) -> None:
        assert count_by_severity([]) == {"critical": 0, "high": 0, "medium": 0, "low": 0}
