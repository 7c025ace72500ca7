"""Claim validation engine.

Runs a claim through the rule checkers, derives corrections, scores the
denial risk and assembles the result:

    normalize -> checkers (concurrent) -> corrections -> scorer -> assembler

The service holds no per-claim state; one instance can evaluate many
claims concurrently. A checker that cannot complete (for example the
claim history store is down) contributes no issues and is reported in
``ValidationResult.checks_degraded``; the rest of the evaluation and the
score are still produced.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from claimscrub.core.config import settings
from claimscrub.schemas.base import CheckName
from claimscrub.services.claim import ClaimContext, normalize_claim
from claimscrub.services.corrections import generate_corrections
from claimscrub.services.findings import Issue
from claimscrub.services.reference_data import (
    ClaimHistoryRepository,
    InMemoryClaimHistoryRepository,
    InMemoryReferenceRepository,
    ReferenceDataRepository,
)
from claimscrub.services.result_assembler import ValidationResult, assemble_result
from claimscrub.services.risk_scorer import RiskScorer, ScoringConfig
from claimscrub.services.rule_checkers import (
    CHECKERS,
    Checker,
    CheckContext,
    RuleConfig,
    SafeLookup,
)

logger = logging.getLogger(__name__)


class ClaimValidationService:
    """Rules-based claim scrubber and denial risk scorer.

    Usage:
        service = ClaimValidationService(InMemoryReferenceRepository.load(path))
        result = await service.validate({
            "procedures": [{"cpt_code": "99214", "units": 1}],
            "icd_codes": ["I10"],
        })
    """

    def __init__(
        self,
        reference_repo: ReferenceDataRepository,
        history_repo: ClaimHistoryRepository | None = None,
        rule_config: RuleConfig | None = None,
        scoring_config: ScoringConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the validation service."""
        self._reference = reference_repo
        self._history = history_repo
        self._rule_config = rule_config or RuleConfig()
        self._scorer = RiskScorer(scoring_config)
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def rule_config(self) -> RuleConfig:
        return self._rule_config

    @property
    def scoring_config(self) -> ScoringConfig:
        return self._scorer.config

    async def validate(self, claim: ClaimContext | Mapping[str, Any]) -> ValidationResult:
        """Validate a claim and score its denial risk.

        Args:
            claim: A ``ClaimContext`` or a mapping with ``procedures``,
                ``icd_codes`` and optional ``payer``, ``place_of_service``,
                ``patient_identifier``, ``claim_identifier``.

        Returns:
            ValidationResult with issues, corrections and risk breakdown.

        Raises:
            InvalidClaimError: if the claim has no procedures or a
                malformed procedure line.
        """
        context = normalize_claim(claim)
        logger.info(f"Validating {len(context.procedures)} procedures against claim rules")

        semaphore = asyncio.Semaphore(max(1, self._rule_config.lookup_concurrency))
        now = self._clock()
        outcomes = await asyncio.gather(*(
            self._run_checker(name, checker, CheckContext(
                claim=context,
                reference=self._reference,
                history=self._history,
                config=self._rule_config,
                lookup=SafeLookup(semaphore),
                now=now,
            ))
            for name, checker in CHECKERS
        ))

        issues: list[Issue] = []
        performed: list[str] = []
        degraded: list[str] = []
        for name, found, completed in outcomes:
            issues.extend(found)
            (performed if completed else degraded).append(name.value)

        corrections = generate_corrections(issues)
        assessment = self._scorer.score(issues, context)
        result = assemble_result(
            context,
            issues,
            corrections,
            assessment,
            checks_performed=performed,
            checks_degraded=degraded,
        )

        logger.info(
            f"Validation complete: {result.total_issues} issues found, "
            f"risk score: {result.denial_risk_score} ({result.risk_level.value})"
            f"{f', degraded checks: {degraded}' if degraded else ''}"
        )
        return result

    def validate_sync(self, claim: ClaimContext | Mapping[str, Any]) -> ValidationResult:
        """Synchronous wrapper around ``validate`` for non-async callers."""
        return asyncio.run(self.validate(claim))

    async def _run_checker(
        self,
        name: CheckName,
        checker: Checker,
        ctx: CheckContext,
    ) -> tuple[CheckName, list[Issue], bool]:
        """Run one checker; a failure degrades that checker only."""
        try:
            found = await checker(ctx)
        except Exception:
            logger.exception(f"Check '{name.value}' could not complete; skipping its findings")
            return name, [], False
        if ctx.lookup.failures:
            logger.warning(
                f"Check '{name.value}' completed with {len(ctx.lookup.failures)} failed lookup(s)"
            )
            return name, found, False
        return name, found, True

    def get_stats(self) -> dict:
        """Get service statistics."""
        stats: dict[str, Any] = {
            "checks": [name.value for name, _ in CHECKERS],
            "reference_repository": type(self._reference).__name__,
            "history_repository": type(self._history).__name__ if self._history else None,
            "weights": dict(self._scorer.config.weights),
        }
        if isinstance(self._reference, InMemoryReferenceRepository):
            stats["reference_records"] = self._reference.get_stats()
        return stats


# ============================================================================
# Singleton access
# ============================================================================

_validation_service: ClaimValidationService | None = None
_validation_lock = threading.Lock()


def build_default_service() -> ClaimValidationService:
    """Wire a service from application settings.

    Uses the JSON fixture when ``reference_fixture_path`` is set, else the
    database repositories.
    """
    rule_config = RuleConfig.from_settings(settings)
    if settings.reference_fixture_path:
        return ClaimValidationService(
            reference_repo=InMemoryReferenceRepository.load(settings.reference_fixture_path),
            history_repo=InMemoryClaimHistoryRepository(),
            rule_config=rule_config,
        )

    from claimscrub.core.database import get_session_maker
    from claimscrub.services.reference_data_db import (
        DatabaseClaimHistoryRepository,
        DatabaseReferenceRepository,
    )

    session_maker = get_session_maker()
    return ClaimValidationService(
        reference_repo=DatabaseReferenceRepository(session_maker),
        history_repo=DatabaseClaimHistoryRepository(session_maker),
        rule_config=rule_config,
    )


def get_claim_validation_service() -> ClaimValidationService:
    """Get the singleton claim validation service instance."""
    global _validation_service
    if _validation_service is None:
        with _validation_lock:
            if _validation_service is None:
                _validation_service = build_default_service()
    return _validation_service


def reset_claim_validation_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _validation_service
    with _validation_lock:
        _validation_service = None
