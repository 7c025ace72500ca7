"""Reference-data access layer for the claim validation engine.

Rule families (unit limits, bundling edits, necessity mappings, payer
rules, frequency limits) and the patient claim history come from an
external store. This module defines:

- typed, immutable record classes with boundary validation
  (``from_row`` raises ``MalformedRuleError`` for a bad row),
- the async repository interfaces the checkers depend on,
- in-memory implementations built from plain rows (fixtures, tests).

Malformed rows are skipped with a logged warning, never coerced.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, TypeVar

from claimscrub.schemas.base import ModifierIndicator, Severity

logger = logging.getLogger(__name__)

ALL_PAYERS = "all payers"
GLOBAL_FREQUENCY_SCOPES = frozenset({"all", ALL_PAYERS})

# CMS PTP modifier indicator column values
_MODIFIER_INDICATORS: dict[str, ModifierIndicator] = {
    "0": ModifierIndicator.NEVER,
    "1": ModifierIndicator.ALLOWED_WITH_MODIFIER,
    ModifierIndicator.NEVER.value: ModifierIndicator.NEVER,
    ModifierIndicator.ALLOWED_WITH_MODIFIER.value: ModifierIndicator.ALLOWED_WITH_MODIFIER,
}


class MalformedRuleError(ValueError):
    """A reference-data row is missing required fields or has bad values."""


# ============================================================================
# Field parsing helpers
# ============================================================================


def _require_str(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    if value is None or not str(value).strip():
        raise MalformedRuleError(f"missing required field '{key}'")
    return str(value).strip()


def _optional_str(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(row: Mapping[str, Any], key: str, maximum: int | None = None) -> int | None:
    value = row.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedRuleError(f"field '{key}' must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise MalformedRuleError(f"field '{key}' must be an integer, got {value!r}") from e
    if number != float(value) or number < 0 or (maximum is not None and number > maximum):
        raise MalformedRuleError(f"field '{key}' out of range: {value!r}")
    return number


def _optional_bool(row: Mapping[str, Any], key: str, default: bool) -> bool:
    value = row.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise MalformedRuleError(f"field '{key}' must be a boolean, got {value!r}")
    return value


def _optional_date(row: Mapping[str, Any], key: str) -> date | None:
    value = row.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise MalformedRuleError(f"field '{key}' is not a date: {value!r}") from e


def _require_datetime(row: Mapping[str, Any], key: str) -> datetime:
    value = row.get(key)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif value:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            raise MalformedRuleError(f"field '{key}' is not a timestamp: {value!r}") from e
    else:
        raise MalformedRuleError(f"missing required field '{key}'")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _code_list(row: Mapping[str, Any], key: str) -> tuple[str, ...]:
    value = row.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        raise MalformedRuleError(f"field '{key}' must be a list of codes")
    return tuple(dict.fromkeys(str(c).strip().upper() for c in value if str(c).strip()))


def payer_matches(rule_payer: str, claim_payer: str) -> bool:
    """Case-insensitive payer name match.

    The ``all payers`` sentinel matches everything; otherwise substring
    containment in either direction counts. This is heuristic: "Blue
    Cross" matches "Blue Cross of Texas", but "United" also matches
    "United Way Health", and "BCBS" does not match "Blue Cross".
    """
    rule_name = rule_payer.strip().lower()
    payer = claim_payer.strip().lower()
    if rule_name == ALL_PAYERS:
        return True
    if not rule_name or not payer:
        return False
    return rule_name in payer or payer in rule_name


# ============================================================================
# Rule records
# ============================================================================


@dataclass(frozen=True)
class UnitLimit:
    """Medically Unlikely Edit: per-day unit ceiling for a CPT code."""

    cpt_code: str
    practitioner_limit: int | None
    facility_limit: int | None
    rationale: str | None = None
    effective_date: date | None = None
    end_date: date | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UnitLimit":
        return cls(
            cpt_code=_require_str(row, "cpt_code").upper(),
            practitioner_limit=_optional_int(row, "practitioner_limit"),
            facility_limit=_optional_int(row, "facility_limit"),
            rationale=_optional_str(row, "rationale"),
            effective_date=_optional_date(row, "effective_date"),
            end_date=_optional_date(row, "end_date"),
        )

    @property
    def is_active(self) -> bool:
        return self.end_date is None


@dataclass(frozen=True)
class BundlingEdit:
    """NCCI procedure-to-procedure edit.

    ``comprehensive_code`` is column 1, ``component_code`` column 2. The
    component is the code that gets removed or needs the modifier.
    """

    comprehensive_code: str
    component_code: str
    modifier_indicator: ModifierIndicator
    rationale: str | None = None
    deletion_date: date | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BundlingEdit":
        raw_indicator = _require_str(row, "modifier_indicator").lower()
        indicator = _MODIFIER_INDICATORS.get(raw_indicator)
        if indicator is None:
            raise MalformedRuleError(f"unrecognized modifier_indicator {raw_indicator!r}")
        comprehensive = _require_str(row, "column_1_cpt").upper()
        component = _require_str(row, "column_2_cpt").upper()
        if comprehensive == component:
            raise MalformedRuleError(f"bundling edit pairs {comprehensive} with itself")
        return cls(
            comprehensive_code=comprehensive,
            component_code=component,
            modifier_indicator=indicator,
            rationale=_optional_str(row, "rationale"),
            deletion_date=_optional_date(row, "deletion_date"),
        )

    def matches(self, code_a: str, code_b: str) -> bool:
        """Directionless pair match."""
        return {self.comprehensive_code, self.component_code} == {code_a, code_b}

    @property
    def is_active(self) -> bool:
        return self.deletion_date is None


@dataclass(frozen=True)
class NecessityMapping:
    """How strongly a diagnosis supports a procedure (0-100)."""

    cpt_code: str
    icd_code: str
    necessity_score: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NecessityMapping":
        score = _optional_int(row, "necessity_score", maximum=100)
        if score is None:
            raise MalformedRuleError("missing required field 'necessity_score'")
        return cls(
            cpt_code=_require_str(row, "cpt_code").upper(),
            icd_code=_require_str(row, "icd_code").upper(),
            necessity_score=score,
        )


@dataclass(frozen=True)
class PayerRule:
    """A payer-specific billing rule targeting a set of CPT codes."""

    payer_name: str
    rule_type: str
    applies_to: tuple[str, ...]
    severity: Severity
    description: str
    action_required: str | None = None
    active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PayerRule":
        raw_severity = _optional_str(row, "severity")
        try:
            severity = Severity(raw_severity.lower()) if raw_severity else Severity.MEDIUM
        except ValueError as e:
            raise MalformedRuleError(f"unrecognized severity {raw_severity!r}") from e
        rule_type = _require_str(row, "rule_type")
        return cls(
            payer_name=_require_str(row, "payer_name"),
            rule_type=rule_type,
            applies_to=_code_list(row, "cpt_codes"),
            severity=severity,
            description=_optional_str(row, "rule_description") or rule_type.replace("_", " "),
            action_required=_optional_str(row, "action_required"),
            active=_optional_bool(row, "active", default=True),
        )

    @property
    def issue_type(self) -> str:
        return f"PAYER_{self.rule_type.strip().upper().replace(' ', '_').replace('-', '_')}"

    def applies_to_payer(self, payer: str) -> bool:
        return payer_matches(self.payer_name, payer)


@dataclass(frozen=True)
class FrequencyLimit:
    """How often a CPT code may be billed for one patient."""

    cpt_code: str
    payer: str
    max_per_year: int | None = None
    required_interval_days: int | None = None
    exception_note: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FrequencyLimit":
        return cls(
            cpt_code=_require_str(row, "cpt_code").upper(),
            payer=_optional_str(row, "payer") or "all",
            max_per_year=_optional_int(row, "max_per_year"),
            required_interval_days=_optional_int(row, "requires_interval_days"),
            exception_note=_optional_str(row, "exception_note"),
        )

    @property
    def is_global(self) -> bool:
        return self.payer.lower() in GLOBAL_FREQUENCY_SCOPES


@dataclass(frozen=True)
class ClaimHistoryRecord:
    """A prior claim for the same patient."""

    claim_id: str
    submitted_at: datetime
    procedure_codes: tuple[str, ...]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ClaimHistoryRecord":
        return cls(
            claim_id=str(row.get("id") or ""),
            submitted_at=_require_datetime(row, "created_at"),
            procedure_codes=_code_list(row, "procedure_codes"),
        )


RecordT = TypeVar("RecordT")


def parse_rows(
    rows: Iterable[Mapping[str, Any]],
    parser: Callable[[Mapping[str, Any]], RecordT],
    family: str,
) -> list[RecordT]:
    """Parse rows with ``parser``, skipping malformed ones with a warning."""
    records: list[RecordT] = []
    for index, row in enumerate(rows):
        try:
            records.append(parser(row))
        except MalformedRuleError as e:
            logger.warning(f"Skipping malformed {family} row #{index}: {e}")
    return records


# ============================================================================
# Repository interfaces
# ============================================================================


class ReferenceDataRepository(ABC):
    """Read-only access to rule reference data.

    Implementations may block on I/O; every method is a coroutine so the
    engine can issue lookups concurrently. A raised exception is treated
    by the engine as "no rule found" for that lookup.
    """

    @abstractmethod
    async def get_unit_limit(self, cpt_code: str) -> UnitLimit | None:
        """Return the current (active, newest) unit limit for a code."""
        pass  # pragma: no cover

    @abstractmethod
    async def find_bundling_edit(self, code_a: str, code_b: str) -> BundlingEdit | None:
        """Return the active edit for the unordered pair, if any."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_necessity_mappings(
        self,
        cpt_code: str,
        icd_codes: Sequence[str],
    ) -> list[NecessityMapping]:
        """Return mappings between ``cpt_code`` and any of ``icd_codes``."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_top_necessity_mappings(
        self,
        cpt_code: str,
        limit: int = 5,
    ) -> list[NecessityMapping]:
        """Return the best-supporting mappings for a code, highest score first."""
        pass  # pragma: no cover

    @abstractmethod
    async def list_active_payer_rules(self) -> list[PayerRule]:
        """Return every active payer rule."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_frequency_limit(
        self,
        cpt_code: str,
        payer: str | None = None,
    ) -> FrequencyLimit | None:
        """Return the frequency limit for a code.

        A record scoped to the claim's payer wins over a global one.
        """
        pass  # pragma: no cover


class ClaimHistoryRepository(ABC):
    """Read-only access to a patient's prior claims."""

    @abstractmethod
    async def get_recent_claims(
        self,
        patient_identifier: str,
        limit: int = 20,
    ) -> list[ClaimHistoryRecord]:
        """Return the patient's most recent claims, newest first."""
        pass  # pragma: no cover


def select_frequency_limit(
    candidates: Iterable[FrequencyLimit],
    payer: str | None,
) -> FrequencyLimit | None:
    """Pick the payer-scoped limit if one matches, else the global one."""
    global_limit: FrequencyLimit | None = None
    for limit in candidates:
        if limit.is_global:
            if global_limit is None:
                global_limit = limit
        elif payer and payer_matches(limit.payer, payer):
            return limit
    return global_limit


# ============================================================================
# In-memory implementations
# ============================================================================


class InMemoryReferenceRepository(ReferenceDataRepository):
    """Reference repository backed by lists of parsed records.

    Usage:
        repo = InMemoryReferenceRepository.from_rows(
            mue_edits=[{"cpt_code": "96372", "practitioner_limit": 4}],
        )
        limit = await repo.get_unit_limit("96372")
    """

    def __init__(
        self,
        unit_limits: Iterable[UnitLimit] = (),
        bundling_edits: Iterable[BundlingEdit] = (),
        necessity_mappings: Iterable[NecessityMapping] = (),
        payer_rules: Iterable[PayerRule] = (),
        frequency_limits: Iterable[FrequencyLimit] = (),
    ) -> None:
        self._unit_limits = list(unit_limits)
        self._bundling_edits = list(bundling_edits)
        self._necessity_mappings = list(necessity_mappings)
        self._payer_rules = list(payer_rules)
        self._frequency_limits = list(frequency_limits)

    @classmethod
    def from_rows(
        cls,
        mue_edits: Iterable[Mapping[str, Any]] = (),
        ncci_edits: Iterable[Mapping[str, Any]] = (),
        necessity_mappings: Iterable[Mapping[str, Any]] = (),
        payer_rules: Iterable[Mapping[str, Any]] = (),
        frequency_limits: Iterable[Mapping[str, Any]] = (),
    ) -> "InMemoryReferenceRepository":
        """Build a repository from raw store rows, skipping malformed ones."""
        return cls(
            unit_limits=parse_rows(mue_edits, UnitLimit.from_row, "mue_edits"),
            bundling_edits=parse_rows(ncci_edits, BundlingEdit.from_row, "ncci_ptp_edits"),
            necessity_mappings=parse_rows(
                necessity_mappings, NecessityMapping.from_row, "medical_necessity_matrix"
            ),
            payer_rules=parse_rows(payer_rules, PayerRule.from_row, "payer_rules"),
            frequency_limits=parse_rows(frequency_limits, FrequencyLimit.from_row, "frequency_limits"),
        )

    @classmethod
    def from_fixture(cls, data: Mapping[str, Any]) -> "InMemoryReferenceRepository":
        """Build a repository from a fixture document (see fixtures/reference_data.json)."""
        return cls.from_rows(
            mue_edits=data.get("mue_edits", []),
            ncci_edits=data.get("ncci_ptp_edits", []),
            necessity_mappings=data.get("medical_necessity_matrix", []),
            payer_rules=data.get("payer_rules", []),
            frequency_limits=data.get("frequency_limits", []),
        )

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryReferenceRepository":
        """Load a fixture document from a JSON file."""
        with open(path) as f:
            data: dict[str, Any] = json.load(f)
        repo = cls.from_fixture(data)
        logger.info(f"Loaded reference data from {path}: {repo.get_stats()}")
        return repo

    async def get_unit_limit(self, cpt_code: str) -> UnitLimit | None:
        active = [u for u in self._unit_limits if u.cpt_code == cpt_code and u.is_active]
        if not active:
            return None
        return max(active, key=lambda u: u.effective_date or date.min)

    async def find_bundling_edit(self, code_a: str, code_b: str) -> BundlingEdit | None:
        for edit in self._bundling_edits:
            if edit.is_active and edit.matches(code_a, code_b):
                return edit
        return None

    async def get_necessity_mappings(
        self,
        cpt_code: str,
        icd_codes: Sequence[str],
    ) -> list[NecessityMapping]:
        wanted = set(icd_codes)
        return [m for m in self._necessity_mappings if m.cpt_code == cpt_code and m.icd_code in wanted]

    async def get_top_necessity_mappings(
        self,
        cpt_code: str,
        limit: int = 5,
    ) -> list[NecessityMapping]:
        rows = [m for m in self._necessity_mappings if m.cpt_code == cpt_code]
        rows.sort(key=lambda m: m.necessity_score, reverse=True)
        return rows[:limit]

    async def list_active_payer_rules(self) -> list[PayerRule]:
        return [r for r in self._payer_rules if r.active]

    async def get_frequency_limit(
        self,
        cpt_code: str,
        payer: str | None = None,
    ) -> FrequencyLimit | None:
        return select_frequency_limit(
            (f for f in self._frequency_limits if f.cpt_code == cpt_code),
            payer,
        )

    def get_stats(self) -> dict[str, int]:
        """Get record counts per family."""
        return {
            "unit_limits": len(self._unit_limits),
            "bundling_edits": len(self._bundling_edits),
            "necessity_mappings": len(self._necessity_mappings),
            "payer_rules": len(self._payer_rules),
            "frequency_limits": len(self._frequency_limits),
        }


class InMemoryClaimHistoryRepository(ClaimHistoryRepository):
    """Claim history keyed by patient identifier."""

    def __init__(self, claims: Mapping[str, Iterable[ClaimHistoryRecord]] | None = None) -> None:
        self._claims: dict[str, list[ClaimHistoryRecord]] = {
            patient: list(records) for patient, records in (claims or {}).items()
        }

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "InMemoryClaimHistoryRepository":
        """Build from claim rows carrying ``patient_identifier``."""
        claims: dict[str, list[ClaimHistoryRecord]] = {}
        rows = [r for r in rows if r.get("patient_identifier")]
        for row, record in zip(rows, _parse_aligned(rows), strict=True):
            if record is not None:
                claims.setdefault(str(row["patient_identifier"]), []).append(record)
        return cls(claims)

    def add(self, patient_identifier: str, record: ClaimHistoryRecord) -> None:
        self._claims.setdefault(patient_identifier, []).append(record)

    async def get_recent_claims(
        self,
        patient_identifier: str,
        limit: int = 20,
    ) -> list[ClaimHistoryRecord]:
        records = sorted(
            self._claims.get(patient_identifier, []),
            key=lambda r: r.submitted_at,
            reverse=True,
        )
        return records[:limit]


def _parse_aligned(rows: Sequence[Mapping[str, Any]]) -> list[ClaimHistoryRecord | None]:
    parsed: list[ClaimHistoryRecord | None] = []
    for index, row in enumerate(rows):
        try:
            parsed.append(ClaimHistoryRecord.from_row(row))
        except MalformedRuleError as e:
            logger.warning(f"Skipping malformed claims row #{index}: {e}")
            parsed.append(None)
    return parsed
