"""Database-backed reference data and claim history repositories.

Each lookup opens its own short-lived ``AsyncSession`` so the engine can
run lookups concurrently. Rows pass through the same record parsers as
every other source; malformed rows are skipped with a warning.
"""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from claimscrub.core.database import Base
from claimscrub.models.reference import (
    FrequencyLimitRecord,
    MedicalNecessityMapping,
    MueEdit,
    NcciPtpEdit,
    PayerRuleRecord,
    SubmittedClaim,
)
from claimscrub.services.reference_data import (
    BundlingEdit,
    ClaimHistoryRecord,
    ClaimHistoryRepository,
    FrequencyLimit,
    NecessityMapping,
    PayerRule,
    ReferenceDataRepository,
    UnitLimit,
    parse_rows,
    select_frequency_limit,
)

logger = logging.getLogger(__name__)


def _row_dict(row: Base) -> dict[str, Any]:
    """Column values of an ORM row keyed by column name."""
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


class DatabaseReferenceRepository(ReferenceDataRepository):
    """Reference repository querying the rule tables.

    Usage:
        repo = DatabaseReferenceRepository(get_session_maker())
        edit = await repo.find_bundling_edit("99214", "36415")
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def _fetch(self, stmt: Any) -> list[dict[str, Any]]:
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_row_dict(row) for row in result.scalars().all()]

    async def get_unit_limit(self, cpt_code: str) -> UnitLimit | None:
        stmt = (
            select(MueEdit)
            .where(MueEdit.cpt_code == cpt_code, MueEdit.end_date.is_(None))
            .order_by(MueEdit.effective_date.desc().nulls_last(), MueEdit.created_at.desc())
        )
        records = parse_rows(await self._fetch(stmt), UnitLimit.from_row, "mue_edits")
        return records[0] if records else None

    async def find_bundling_edit(self, code_a: str, code_b: str) -> BundlingEdit | None:
        stmt = (
            select(NcciPtpEdit)
            .where(
                or_(
                    and_(NcciPtpEdit.column_1_cpt == code_a, NcciPtpEdit.column_2_cpt == code_b),
                    and_(NcciPtpEdit.column_1_cpt == code_b, NcciPtpEdit.column_2_cpt == code_a),
                ),
                NcciPtpEdit.deletion_date.is_(None),
            )
            .order_by(NcciPtpEdit.created_at)
        )
        records = parse_rows(await self._fetch(stmt), BundlingEdit.from_row, "ncci_ptp_edits")
        return records[0] if records else None

    async def get_necessity_mappings(
        self,
        cpt_code: str,
        icd_codes: Sequence[str],
    ) -> list[NecessityMapping]:
        if not icd_codes:
            return []
        stmt = (
            select(MedicalNecessityMapping)
            .where(
                MedicalNecessityMapping.cpt_code == cpt_code,
                MedicalNecessityMapping.icd_code.in_(list(icd_codes)),
            )
            .order_by(MedicalNecessityMapping.icd_code)
        )
        return parse_rows(await self._fetch(stmt), NecessityMapping.from_row, "medical_necessity_matrix")

    async def get_top_necessity_mappings(
        self,
        cpt_code: str,
        limit: int = 5,
    ) -> list[NecessityMapping]:
        stmt = (
            select(MedicalNecessityMapping)
            .where(MedicalNecessityMapping.cpt_code == cpt_code)
            .order_by(MedicalNecessityMapping.necessity_score.desc(), MedicalNecessityMapping.icd_code)
            .limit(limit)
        )
        return parse_rows(await self._fetch(stmt), NecessityMapping.from_row, "medical_necessity_matrix")

    async def list_active_payer_rules(self) -> list[PayerRule]:
        stmt = (
            select(PayerRuleRecord)
            .where(PayerRuleRecord.active.is_(True))
            .order_by(PayerRuleRecord.created_at, PayerRuleRecord.payer_name)
        )
        return parse_rows(await self._fetch(stmt), PayerRule.from_row, "payer_rules")

    async def get_frequency_limit(
        self,
        cpt_code: str,
        payer: str | None = None,
    ) -> FrequencyLimit | None:
        stmt = (
            select(FrequencyLimitRecord)
            .where(FrequencyLimitRecord.cpt_code == cpt_code)
            .order_by(FrequencyLimitRecord.created_at)
        )
        records = parse_rows(await self._fetch(stmt), FrequencyLimit.from_row, "frequency_limits")
        return select_frequency_limit(records, payer)


class DatabaseClaimHistoryRepository(ClaimHistoryRepository):
    """Claim history read from the ``claims`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_recent_claims(
        self,
        patient_identifier: str,
        limit: int = 20,
    ) -> list[ClaimHistoryRecord]:
        stmt = (
            select(SubmittedClaim)
            .where(SubmittedClaim.patient_identifier == patient_identifier)
            .order_by(SubmittedClaim.created_at.desc())
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            rows = [_row_dict(row) for row in result.scalars().all()]
        logger.debug(f"Loaded {len(rows)} prior claims for patient {patient_identifier}")
        return parse_rows(rows, ClaimHistoryRecord.from_row, "claims")
