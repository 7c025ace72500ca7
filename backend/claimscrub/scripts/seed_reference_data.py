"""Seed script for loading claim rule reference data into the database.

Usage:
    python -m claimscrub.scripts.seed_reference_data [--fixture PATH] [--keep]

Loads fixtures/reference_data.json (MUE edits, NCCI edits, necessity
mappings, payer rules, frequency limits) for local development.
Rows are validated with the same parsers the engine uses; malformed rows
are reported and skipped.
"""

import argparse
import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from claimscrub.core.database import Base, close_db, get_async_engine, get_session_maker
from claimscrub.models import (
    FrequencyLimitRecord,
    MedicalNecessityMapping,
    MueEdit,
    NcciPtpEdit,
    PayerRuleRecord,
)
from claimscrub.services.reference_data import (
    BundlingEdit,
    FrequencyLimit,
    MalformedRuleError,
    NecessityMapping,
    PayerRule,
    UnitLimit,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_BACKEND_DIR = Path(__file__).parent.parent.parent  # scripts -> claimscrub -> backend
REFERENCE_FILE = _BACKEND_DIR / "fixtures" / "reference_data.json"

# fixture section -> (model, record parser)
SECTIONS: dict[str, tuple[type[Base], Any]] = {
    "mue_edits": (MueEdit, UnitLimit.from_row),
    "ncci_ptp_edits": (NcciPtpEdit, BundlingEdit.from_row),
    "medical_necessity_matrix": (MedicalNecessityMapping, NecessityMapping.from_row),
    "payer_rules": (PayerRuleRecord, PayerRule.from_row),
    "frequency_limits": (FrequencyLimitRecord, FrequencyLimit.from_row),
}

_DATE_COLUMNS = ("effective_date", "end_date", "deletion_date")


def load_reference_fixture(path: Path = REFERENCE_FILE) -> dict[str, Any]:
    """Load reference data from the JSON fixture file."""
    if not path.exists():
        raise FileNotFoundError(f"Reference fixture not found: {path}")

    with open(path) as f:
        data: dict[str, Any] = json.load(f)
        return data


def _model_kwargs(model: type[Base], row: dict[str, Any]) -> dict[str, Any]:
    columns = set(model.__table__.columns.keys()) - {"id", "created_at"}
    kwargs = {key: value for key, value in row.items() if key in columns}
    for key in _DATE_COLUMNS:
        if isinstance(kwargs.get(key), str):
            kwargs[key] = date.fromisoformat(kwargs[key])
    return kwargs


async def clear_reference_data(session: AsyncSession) -> None:
    """Delete all reference rows."""
    for model, _parser in SECTIONS.values():
        await session.execute(model.__table__.delete())
    await session.commit()
    logger.info("Cleared existing reference data")


async def seed_section(
    session: AsyncSession,
    name: str,
    rows: list[dict[str, Any]],
) -> int:
    """Insert the valid rows of one fixture section.

    Returns:
        Number of rows inserted.
    """
    model, parser = SECTIONS[name]
    valid_rows = []
    for index, row in enumerate(rows):
        try:
            parser(row)
        except MalformedRuleError as e:
            logger.warning(f"Skipping malformed {name} row #{index}: {e}")
            continue
        valid_rows.append(row)

    for row in valid_rows:
        session.add(model(**_model_kwargs(model, row)))
    await session.commit()
    logger.info(f"Seeded {len(valid_rows)} {name} rows")
    return len(valid_rows)


async def seed_reference_data(path: Path = REFERENCE_FILE, clear: bool = True) -> dict[str, int]:
    """Create tables if needed and load the fixture."""
    data = load_reference_fixture(path)

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    counts: dict[str, int] = {}
    async with get_session_maker()() as session:
        if clear:
            await clear_reference_data(session)
        for name in SECTIONS:
            counts[name] = await seed_section(session, name, data.get(name, []))

    await close_db()
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Load claim rule reference data")
    parser.add_argument("--fixture", type=Path, default=REFERENCE_FILE, help="Fixture JSON path")
    parser.add_argument("--keep", action="store_true", help="Keep existing rows")
    args = parser.parse_args()

    counts = asyncio.run(seed_reference_data(args.fixture, clear=not args.keep))
    logger.info(f"Reference data seeded: {counts}")


if __name__ == "__main__":
    main()
