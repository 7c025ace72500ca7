"""Services for the claim scrubber.

- ClaimValidationService: end-to-end claim validation (services.claim_validator)
- Rule checkers: unit limits, bundling, modifiers, necessity, payer, frequency
- RiskScorer: weighted denial risk model
- Reference data repositories: in-memory and database backed
"""

from claimscrub.services.claim import ClaimContext, InvalidClaimError, ProcedureEntry, normalize_claim
from claimscrub.services.claim_validator import (
    ClaimValidationService,
    get_claim_validation_service,
    reset_claim_validation_service,
)
from claimscrub.services.corrections import generate_corrections
from claimscrub.services.findings import Correction, Issue
from claimscrub.services.reference_data import (
    BundlingEdit,
    ClaimHistoryRecord,
    ClaimHistoryRepository,
    FrequencyLimit,
    InMemoryClaimHistoryRepository,
    InMemoryReferenceRepository,
    MalformedRuleError,
    NecessityMapping,
    PayerRule,
    ReferenceDataRepository,
    UnitLimit,
)
from claimscrub.services.result_assembler import ValidationResult, assemble_result, categorize_issues
from claimscrub.services.risk_scorer import RiskAssessment, RiskBreakdown, RiskScorer, ScoringConfig
from claimscrub.services.rule_checkers import RuleConfig

__all__ = [
    # Claim input
    "ClaimContext",
    "InvalidClaimError",
    "ProcedureEntry",
    "normalize_claim",
    # Engine
    "ClaimValidationService",
    "get_claim_validation_service",
    "reset_claim_validation_service",
    "RuleConfig",
    "generate_corrections",
    "Correction",
    "Issue",
    # Reference data
    "BundlingEdit",
    "ClaimHistoryRecord",
    "ClaimHistoryRepository",
    "FrequencyLimit",
    "InMemoryClaimHistoryRepository",
    "InMemoryReferenceRepository",
    "MalformedRuleError",
    "NecessityMapping",
    "PayerRule",
    "ReferenceDataRepository",
    "UnitLimit",
    # Results and scoring
    "ValidationResult",
    "assemble_result",
    "categorize_issues",
    "RiskAssessment",
    "RiskBreakdown",
    "RiskScorer",
    "ScoringConfig",
]
