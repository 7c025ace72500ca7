"""Tests for reference-data records, parsing and in-memory repositories."""

import logging
from datetime import UTC, date, datetime

import pytest

from claimscrub.schemas.base import ModifierIndicator, Severity
from claimscrub.services.reference_data import (
    BundlingEdit,
    ClaimHistoryRecord,
    FrequencyLimit,
    InMemoryClaimHistoryRepository,
    InMemoryReferenceRepository,
    MalformedRuleError,
    NecessityMapping,
    PayerRule,
    UnitLimit,
    parse_rows,
    payer_matches,
    select_frequency_limit,
)


# ============================================================================
# Record parsing
# ============================================================================


class TestUnitLimitParsing:
    """Test MUE row parsing."""

    def test_parses_row(self) -> None:
        limit = UnitLimit.from_row({
            "cpt_code": "96372",
            "practitioner_limit": 4,
            "facility_limit": "6",
            "effective_date": "2024-01-01",
        })
        assert limit.practitioner_limit == 4
        assert limit.facility_limit == 6
        assert limit.effective_date == date(2024, 1, 1)
        assert limit.is_active

    def test_end_dated_row_is_inactive(self) -> None:
        limit = UnitLimit.from_row({"cpt_code": "96372", "practitioner_limit": 4, "end_date": "2023-12-31"})
        assert not limit.is_active

    @pytest.mark.parametrize("value", [-1, "four", 2.5, True])
    def test_rejects_bad_limit(self, value: object) -> None:
        with pytest.raises(MalformedRuleError):
            UnitLimit.from_row({"cpt_code": "96372", "practitioner_limit": value})

    def test_rejects_missing_code(self) -> None:
        with pytest.raises(MalformedRuleError, match="cpt_code"):
            UnitLimit.from_row({"practitioner_limit": 1})


class TestBundlingEditParsing:
    """Test NCCI row parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("0", ModifierIndicator.NEVER),
            ("1", ModifierIndicator.ALLOWED_WITH_MODIFIER),
            ("never", ModifierIndicator.NEVER),
            ("allowed-with-modifier", ModifierIndicator.ALLOWED_WITH_MODIFIER),
        ],
    )
    def test_modifier_indicator_values(self, raw: str, expected: ModifierIndicator) -> None:
        edit = BundlingEdit.from_row({"column_1_cpt": "96372", "column_2_cpt": "36415", "modifier_indicator": raw})
        assert edit.modifier_indicator == expected

    def test_unknown_indicator_is_malformed(self) -> None:
        with pytest.raises(MalformedRuleError, match="modifier_indicator"):
            BundlingEdit.from_row({"column_1_cpt": "96372", "column_2_cpt": "36415", "modifier_indicator": "9"})

    def test_self_pair_is_malformed(self) -> None:
        with pytest.raises(MalformedRuleError):
            BundlingEdit.from_row({"column_1_cpt": "96372", "column_2_cpt": "96372", "modifier_indicator": "0"})

    def test_match_is_directionless(self) -> None:
        edit = BundlingEdit.from_row({"column_1_cpt": "96372", "column_2_cpt": "36415", "modifier_indicator": "1"})
        assert edit.matches("96372", "36415")
        assert edit.matches("36415", "96372")
        assert not edit.matches("96372", "99214")


class TestOtherRecords:
    """Test necessity, payer, frequency and history rows."""

    def test_necessity_score_range(self) -> None:
        assert NecessityMapping.from_row({"cpt_code": "93000", "icd_code": "i10", "necessity_score": 60}).icd_code == "I10"
        with pytest.raises(MalformedRuleError):
            NecessityMapping.from_row({"cpt_code": "93000", "icd_code": "I10", "necessity_score": 101})
        with pytest.raises(MalformedRuleError):
            NecessityMapping.from_row({"cpt_code": "93000", "icd_code": "I10"})

    def test_payer_rule_defaults(self) -> None:
        rule = PayerRule.from_row({"payer_name": "Cigna", "rule_type": "prior-auth", "cpt_codes": ["72148"]})
        assert rule.severity == Severity.MEDIUM
        assert rule.issue_type == "PAYER_PRIOR_AUTH"
        assert rule.active
        assert rule.applies_to == ("72148",)

    def test_payer_rule_bad_severity(self) -> None:
        with pytest.raises(MalformedRuleError, match="severity"):
            PayerRule.from_row({"payer_name": "Cigna", "rule_type": "prior_auth", "severity": "urgent"})

    @pytest.mark.parametrize("active", ["false", "no", 0, 1])
    def test_payer_rule_active_must_be_boolean(self, active: object) -> None:
        with pytest.raises(MalformedRuleError, match="active"):
            PayerRule.from_row({"payer_name": "Cigna", "rule_type": "prior_auth", "active": active})

    def test_payer_rule_null_active_defaults_true(self) -> None:
        assert PayerRule.from_row({"payer_name": "Cigna", "rule_type": "prior_auth", "active": None}).active

    def test_frequency_limit_defaults_to_global(self) -> None:
        limit = FrequencyLimit.from_row({"cpt_code": "80061", "max_per_year": 1})
        assert limit.payer == "all"
        assert limit.is_global

    def test_history_naive_timestamp_is_utc(self) -> None:
        record = ClaimHistoryRecord.from_row({
            "id": "C-1",
            "created_at": "2026-01-01T08:00:00",
            "procedure_codes": ["80061", "80061", "36415"],
        })
        assert record.submitted_at == datetime(2026, 1, 1, 8, 0, tzinfo=UTC)
        assert record.procedure_codes == ("80061", "36415")

    def test_history_requires_timestamp(self) -> None:
        with pytest.raises(MalformedRuleError):
            ClaimHistoryRecord.from_row({"id": "C-1", "procedure_codes": ["80061"]})


class TestParseRows:
    """Test fail-closed row parsing."""

    def test_malformed_rows_are_skipped_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        rows = [
            {"cpt_code": "96372", "practitioner_limit": 4},
            {"cpt_code": "96372", "practitioner_limit": "many"},
            {"practitioner_limit": 1},
        ]
        with caplog.at_level(logging.WARNING):
            records = parse_rows(rows, UnitLimit.from_row, "mue_edits")
        assert len(records) == 1
        assert "Skipping malformed mue_edits row #1" in caplog.text


# ============================================================================
# Payer matching and frequency limit selection
# ============================================================================


class TestPayerMatching:
    """Test fuzzy payer name matching."""

    @pytest.mark.parametrize(
        "rule_payer,claim_payer,expected",
        [
            ("Medicare", "MEDICARE", True),
            ("Blue Cross", "Blue Cross of Texas", True),
            ("Blue Cross Blue Shield", "Blue Cross", True),
            ("All Payers", "Anything Health", True),
            ("Aetna", "Cigna", False),
            ("BCBS", "Blue Cross", False),
        ],
    )
    def test_payer_matches(self, rule_payer: str, claim_payer: str, expected: bool) -> None:
        assert payer_matches(rule_payer, claim_payer) is expected


class TestSelectFrequencyLimit:
    """Test payer-specific vs global frequency limits."""

    def setup_method(self):
        self.global_limit = FrequencyLimit(cpt_code="G0444", payer="all", max_per_year=2)
        self.medicare_limit = FrequencyLimit(cpt_code="G0444", payer="Medicare", max_per_year=1)

    def test_payer_specific_wins(self) -> None:
        chosen = select_frequency_limit([self.global_limit, self.medicare_limit], "Medicare Part B")
        assert chosen is self.medicare_limit

    def test_falls_back_to_global(self) -> None:
        chosen = select_frequency_limit([self.global_limit, self.medicare_limit], "Aetna")
        assert chosen is self.global_limit

    def test_no_payer_uses_global_only(self) -> None:
        assert select_frequency_limit([self.medicare_limit], None) is None
        assert select_frequency_limit([self.medicare_limit, self.global_limit], None) is self.global_limit


# ============================================================================
# In-memory repositories
# ============================================================================


class TestInMemoryReferenceRepository:
    """Test the fixture-backed reference repository."""

    @pytest.mark.asyncio
    async def test_unit_limit_uses_active_row(self, reference_repo: InMemoryReferenceRepository) -> None:
        limit = await reference_repo.get_unit_limit("96372")
        assert limit is not None
        assert limit.end_date is None
        assert limit.effective_date == date(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_unknown_code_has_no_limit(self, reference_repo: InMemoryReferenceRepository) -> None:
        assert await reference_repo.get_unit_limit("00000") is None

    @pytest.mark.asyncio
    async def test_bundling_lookup_either_order(self, reference_repo: InMemoryReferenceRepository) -> None:
        forward = await reference_repo.find_bundling_edit("96372", "36415")
        reverse = await reference_repo.find_bundling_edit("36415", "96372")
        assert forward is not None
        assert forward == reverse

    @pytest.mark.asyncio
    async def test_deleted_bundling_edit_is_ignored(self, reference_repo: InMemoryReferenceRepository) -> None:
        assert await reference_repo.find_bundling_edit("99214", "99211") is None

    @pytest.mark.asyncio
    async def test_top_necessity_mappings_ordered(self, reference_repo: InMemoryReferenceRepository) -> None:
        top = await reference_repo.get_top_necessity_mappings("93000", limit=2)
        assert [m.icd_code for m in top] == ["I48.91", "R07.9"]

    @pytest.mark.asyncio
    async def test_inactive_payer_rules_excluded(self, reference_repo: InMemoryReferenceRepository) -> None:
        rules = await reference_repo.list_active_payer_rules()
        assert all(rule.active for rule in rules)
        assert "Aetna" not in {rule.payer_name for rule in rules}

    def test_stats(self, reference_repo: InMemoryReferenceRepository) -> None:
        stats = reference_repo.get_stats()
        assert stats["unit_limits"] == 9
        assert stats["bundling_edits"] == 6

    def test_from_rows_skips_malformed(self) -> None:
        repo = InMemoryReferenceRepository.from_rows(
            mue_edits=[{"cpt_code": "96372", "practitioner_limit": 4}, {"cpt_code": ""}],
            ncci_edits=[{"column_1_cpt": "96372", "column_2_cpt": "96372", "modifier_indicator": "0"}],
        )
        assert repo.get_stats()["unit_limits"] == 1
        assert repo.get_stats()["bundling_edits"] == 0

    @pytest.mark.asyncio
    async def test_string_active_flag_skips_rule(self) -> None:
        repo = InMemoryReferenceRepository.from_rows(payer_rules=[
            {"payer_name": "Aetna", "rule_type": "prior_auth", "cpt_codes": ["97110"], "active": "false"},
            {"payer_name": "Cigna", "rule_type": "prior_auth", "cpt_codes": ["72148"], "active": True},
        ])
        rules = await repo.list_active_payer_rules()
        assert [rule.payer_name for rule in rules] == ["Cigna"]


class TestInMemoryClaimHistoryRepository:
    """Test the in-memory claim history."""

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self) -> None:
        repo = InMemoryClaimHistoryRepository.from_rows([
            {"patient_identifier": "P1", "id": "a", "created_at": "2026-01-01T00:00:00Z", "procedure_codes": ["80061"]},
            {"patient_identifier": "P1", "id": "b", "created_at": "2026-02-01T00:00:00Z", "procedure_codes": ["80061"]},
            {"patient_identifier": "P2", "id": "c", "created_at": "2026-02-02T00:00:00Z", "procedure_codes": ["80061"]},
            {"patient_identifier": "P1", "id": "bad", "procedure_codes": ["80061"]},
        ])
        recent = await repo.get_recent_claims("P1", limit=1)
        assert [r.claim_id for r in recent] == ["b"]
        assert len(await repo.get_recent_claims("P1")) == 2

    @pytest.mark.asyncio
    async def test_unknown_patient(self) -> None:
        assert await InMemoryClaimHistoryRepository().get_recent_claims("nobody") == []
