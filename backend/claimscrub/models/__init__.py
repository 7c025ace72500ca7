"""SQLAlchemy ORM models for the claim scrubber.

All models inherit from Base which provides:
- id: UUID primary key
- created_at: Timestamp

Models:
- MueEdit, NcciPtpEdit, MedicalNecessityMapping: coding edit reference data
- PayerRuleRecord, FrequencyLimitRecord: payer policy reference data
- SubmittedClaim: patient claim history
"""

from claimscrub.core.database import Base
from claimscrub.models.reference import (
    FrequencyLimitRecord,
    MedicalNecessityMapping,
    MueEdit,
    NcciPtpEdit,
    PayerRuleRecord,
    SubmittedClaim,
)

__all__ = [
    "Base",
    "MueEdit",
    "NcciPtpEdit",
    "MedicalNecessityMapping",
    "PayerRuleRecord",
    "FrequencyLimitRecord",
    "SubmittedClaim",
]
