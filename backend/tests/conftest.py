"""Pytest configuration and fixtures for claim scrubber tests."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from claimscrub.main import app
from claimscrub.services.claim_validator import (
    ClaimValidationService,
    get_claim_validation_service,
)
from claimscrub.services.reference_data import (
    ClaimHistoryRecord,
    InMemoryClaimHistoryRepository,
    InMemoryReferenceRepository,
)

FIXTURE_PATH = Path(__file__).parent.parent / "fixtures" / "reference_data.json"

# Fixed evaluation time so frequency checks are deterministic
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def fixed_now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def reference_repo() -> InMemoryReferenceRepository:
    """Reference repository loaded from the sample fixture."""
    return InMemoryReferenceRepository.load(FIXTURE_PATH)


@pytest.fixture
def history_repo() -> InMemoryClaimHistoryRepository:
    """Claim history for patient P001.

    - 80061 billed 100 days ago (yearly limit 1)
    - 83036 billed 30 days ago (90 day interval)
    - 93000 billed 10 days ago (Medicare 30 day interval)
    """
    repo = InMemoryClaimHistoryRepository()
    repo.add("P001", ClaimHistoryRecord(
        claim_id="C-100",
        submitted_at=datetime(2025, 11, 21, 9, 0, tzinfo=UTC),
        procedure_codes=("80061", "36415"),
    ))
    repo.add("P001", ClaimHistoryRecord(
        claim_id="C-200",
        submitted_at=datetime(2026, 1, 30, 9, 0, tzinfo=UTC),
        procedure_codes=("83036",),
    ))
    repo.add("P001", ClaimHistoryRecord(
        claim_id="C-300",
        submitted_at=datetime(2026, 2, 19, 9, 0, tzinfo=UTC),
        procedure_codes=("93000",),
    ))
    return repo


@pytest.fixture
def service(
    reference_repo: InMemoryReferenceRepository,
    history_repo: InMemoryClaimHistoryRepository,
    clock: Callable[[], datetime],
) -> ClaimValidationService:
    """Validation service over the fixture data with a fixed clock."""
    return ClaimValidationService(
        reference_repo=reference_repo,
        history_repo=history_repo,
        clock=clock,
    )


@pytest.fixture
async def client(service: ClaimValidationService) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client wired to the fixture-backed service."""
    app.dependency_overrides[get_claim_validation_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
