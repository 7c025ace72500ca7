"""Claim input model and normalizer.

The engine evaluates one ``ClaimContext`` per call. Upstream callers
(OCR extraction, manual entry, EDI import) hand over either a
``ClaimContext`` or a plain mapping; ``normalize_claim`` turns both into
an immutable, canonical context or raises ``InvalidClaimError``.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

MAX_MODIFIERS_PER_LINE = 4


class InvalidClaimError(ValueError):
    """Fatal input error: no result can be produced for this claim."""


@dataclass(frozen=True)
class ProcedureEntry:
    """One billed procedure line."""

    cpt_code: str
    units: int = 1
    modifiers: tuple[str, ...] = ()
    charge: float | None = None
    description: str | None = None

    def has_modifier(self, *modifiers: str) -> bool:
        """Check whether the line carries any of the given modifiers."""
        return any(m in self.modifiers for m in modifiers)


@dataclass(frozen=True)
class ClaimContext:
    """The claim under evaluation."""

    procedures: tuple[ProcedureEntry, ...]
    icd_codes: tuple[str, ...] = ()
    payer: str | None = None
    place_of_service: str | None = None
    patient_identifier: str | None = None
    claim_identifier: str | None = None

    @property
    def cpt_codes(self) -> list[str]:
        """CPT codes in line order (duplicates kept)."""
        return [p.cpt_code for p in self.procedures]

    @property
    def distinct_cpt_codes(self) -> list[str]:
        """Distinct CPT codes in first-seen order."""
        return list(dict.fromkeys(self.cpt_codes))

    @property
    def modifier_count(self) -> int:
        return sum(len(p.modifiers) for p in self.procedures)

    def lines_for(self, cpt_code: str) -> list[ProcedureEntry]:
        """All procedure lines billed under ``cpt_code``."""
        return [p for p in self.procedures if p.cpt_code == cpt_code]


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_procedure(raw: ProcedureEntry | Mapping[str, Any], index: int) -> ProcedureEntry:
    if isinstance(raw, ProcedureEntry):
        data: Mapping[str, Any] = {
            "cpt_code": raw.cpt_code,
            "units": raw.units,
            "modifiers": raw.modifiers,
            "charge": raw.charge,
            "description": raw.description,
        }
    elif isinstance(raw, Mapping):
        data = raw
    else:
        raise InvalidClaimError(f"Procedure #{index + 1} is not a procedure entry")

    cpt_code = _clean(data.get("cpt_code"))
    if cpt_code is None:
        raise InvalidClaimError(f"Procedure #{index + 1} has no CPT code")

    units = data.get("units", 1)
    if units is None:
        units = 1
    if isinstance(units, bool) or not isinstance(units, int) or units < 1:
        raise InvalidClaimError(f"CPT {cpt_code}: units must be a positive integer, got {units!r}")

    raw_modifiers: Iterable[Any] = data.get("modifiers") or ()
    modifiers = tuple(m.upper() for m in (_clean(m) for m in raw_modifiers) if m)
    if len(modifiers) > MAX_MODIFIERS_PER_LINE:
        raise InvalidClaimError(
            f"CPT {cpt_code}: at most {MAX_MODIFIERS_PER_LINE} modifiers per line, got {len(modifiers)}"
        )

    charge = data.get("charge")
    return ProcedureEntry(
        cpt_code=cpt_code.upper(),
        units=units,
        modifiers=modifiers,
        charge=float(charge) if charge is not None else None,
        description=_clean(data.get("description")),
    )


def normalize_claim(claim: ClaimContext | Mapping[str, Any]) -> ClaimContext:
    """Validate and canonicalize a claim.

    Codes are stripped and upper-cased, blank diagnosis codes dropped,
    and empty optional strings turned into ``None``.

    Raises:
        InvalidClaimError: if the procedure list is missing or empty, or a
            procedure line is malformed.
    """
    if isinstance(claim, ClaimContext):
        procedures_raw: Any = claim.procedures
        icd_raw: Any = claim.icd_codes
        payer = claim.payer
        place_of_service = claim.place_of_service
        patient_identifier = claim.patient_identifier
        claim_identifier = claim.claim_identifier
    elif isinstance(claim, Mapping):
        procedures_raw = claim.get("procedures")
        icd_raw = claim.get("icd_codes") or ()
        payer = claim.get("payer")
        place_of_service = claim.get("place_of_service")
        patient_identifier = claim.get("patient_identifier") or claim.get("patient_id")
        claim_identifier = claim.get("claim_identifier") or claim.get("claim_id")
    else:
        raise InvalidClaimError("Claim must be a ClaimContext or a mapping")

    if not procedures_raw:
        raise InvalidClaimError("No procedures provided for validation")

    procedures = tuple(_normalize_procedure(p, i) for i, p in enumerate(procedures_raw))
    icd_codes = tuple(code.upper() for code in (_clean(c) for c in icd_raw) if code)

    return ClaimContext(
        procedures=procedures,
        icd_codes=icd_codes,
        payer=_clean(payer),
        place_of_service=_clean(place_of_service),
        patient_identifier=_clean(patient_identifier),
        claim_identifier=_clean(claim_identifier),
    )
