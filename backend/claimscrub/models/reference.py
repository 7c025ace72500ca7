"""SQLAlchemy models for claim rule reference data and claim history."""

from datetime import date

from sqlalchemy import JSON, Boolean, Date, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimscrub.core.database import Base


class MueEdit(Base):
    """Medically Unlikely Edit: per-day unit ceiling for a CPT code.

    Effective-dated; the active record has no ``end_date``.
    """

    __tablename__ = "mue_edits"

    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    practitioner_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    facility_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<MueEdit(cpt_code='{self.cpt_code}', practitioner={self.practitioner_limit}, "
            f"facility={self.facility_limit})>"
        )


class NcciPtpEdit(Base):
    """NCCI procedure-to-procedure edit.

    ``column_1_cpt`` is the comprehensive code, ``column_2_cpt`` the
    component. ``modifier_indicator`` uses the CMS values: "0" never
    separately payable, "1" payable with a distinct-service modifier.
    """

    __tablename__ = "ncci_ptp_edits"

    column_1_cpt: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    column_2_cpt: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    modifier_indicator: Mapped[str] = mapped_column(String(30), nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    deletion_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<NcciPtpEdit(column_1='{self.column_1_cpt}', column_2='{self.column_2_cpt}', "
            f"indicator='{self.modifier_indicator}')>"
        )


class MedicalNecessityMapping(Base):
    """Strength (0-100) with which a diagnosis supports a procedure."""

    __tablename__ = "medical_necessity_matrix"

    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    icd_code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    necessity_score: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MedicalNecessityMapping(cpt='{self.cpt_code}', icd='{self.icd_code}', "
            f"score={self.necessity_score})>"
        )


class PayerRuleRecord(Base):
    """Payer-specific billing rule.

    ``payer_name`` may be the sentinel "All Payers".
    """

    __tablename__ = "payer_rules"

    payer_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)
    cpt_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rule_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_required: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    def __repr__(self) -> str:
        return f"<PayerRuleRecord(payer='{self.payer_name}', rule_type='{self.rule_type}')>"


class FrequencyLimitRecord(Base):
    """How often a CPT code may be billed for one patient.

    ``payer`` is "all" for limits that apply regardless of payer.
    """

    __tablename__ = "frequency_limits"

    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    payer: Mapped[str] = mapped_column(String(200), nullable=False, default="all")
    max_per_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_interval_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exception_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<FrequencyLimitRecord(cpt='{self.cpt_code}', payer='{self.payer}', "
            f"max_per_year={self.max_per_year})>"
        )


class SubmittedClaim(Base):
    """A previously submitted claim; ``created_at`` is the claim timestamp."""

    __tablename__ = "claims"

    patient_identifier: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    procedure_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    payer: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<SubmittedClaim(patient='{self.patient_identifier}', codes={self.procedure_codes})>"
