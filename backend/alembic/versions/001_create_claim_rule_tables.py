"""Create claim rule reference tables and claim history.

Revision ID: 001
Revises: None
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    # Medically Unlikely Edits
    op.create_table(
        "mue_edits",
        *_base_columns(),
        sa.Column("cpt_code", sa.String(10), nullable=False),
        sa.Column("practitioner_limit", sa.Integer(), nullable=True),
        sa.Column("facility_limit", sa.Integer(), nullable=True),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_mue_edits_cpt_code", "mue_edits", ["cpt_code"])

    # NCCI procedure-to-procedure edits
    op.create_table(
        "ncci_ptp_edits",
        *_base_columns(),
        sa.Column("column_1_cpt", sa.String(10), nullable=False),
        sa.Column("column_2_cpt", sa.String(10), nullable=False),
        sa.Column("modifier_indicator", sa.String(30), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("deletion_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_ncci_ptp_edits_column_1_cpt", "ncci_ptp_edits", ["column_1_cpt"])
    op.create_index("ix_ncci_ptp_edits_column_2_cpt", "ncci_ptp_edits", ["column_2_cpt"])

    # Diagnosis-to-procedure necessity matrix
    op.create_table(
        "medical_necessity_matrix",
        *_base_columns(),
        sa.Column("cpt_code", sa.String(10), nullable=False),
        sa.Column("icd_code", sa.String(10), nullable=False),
        sa.Column("necessity_score", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "necessity_score >= 0 AND necessity_score <= 100",
            name="ck_medical_necessity_matrix_score_range",
        ),
    )
    op.create_index(
        "ix_medical_necessity_matrix_cpt_code", "medical_necessity_matrix", ["cpt_code"]
    )
    op.create_index(
        "ix_medical_necessity_matrix_icd_code", "medical_necessity_matrix", ["icd_code"]
    )

    # Payer rules
    op.create_table(
        "payer_rules",
        *_base_columns(),
        sa.Column("payer_name", sa.String(200), nullable=False),
        sa.Column("rule_type", sa.String(50), nullable=False),
        sa.Column("cpt_codes", sa.JSON(), nullable=False),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("rule_description", sa.Text(), nullable=True),
        sa.Column("action_required", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_payer_rules_payer_name", "payer_rules", ["payer_name"])
    op.create_index("ix_payer_rules_active", "payer_rules", ["active"])

    # Frequency limits
    op.create_table(
        "frequency_limits",
        *_base_columns(),
        sa.Column("cpt_code", sa.String(10), nullable=False),
        sa.Column("payer", sa.String(200), nullable=False, server_default="all"),
        sa.Column("max_per_year", sa.Integer(), nullable=True),
        sa.Column("requires_interval_days", sa.Integer(), nullable=True),
        sa.Column("exception_note", sa.Text(), nullable=True),
    )
    op.create_index("ix_frequency_limits_cpt_code", "frequency_limits", ["cpt_code"])

    # Claim history
    op.create_table(
        "claims",
        *_base_columns(),
        sa.Column("patient_identifier", sa.String(200), nullable=False),
        sa.Column("procedure_codes", sa.JSON(), nullable=False),
        sa.Column("payer", sa.String(200), nullable=True),
    )
    op.create_index("ix_claims_patient_identifier", "claims", ["patient_identifier"])
    op.create_index("ix_claims_created_at", "claims", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_claims_created_at", table_name="claims")
    op.drop_index("ix_claims_patient_identifier", table_name="claims")
    op.drop_table("claims")

    op.drop_index("ix_frequency_limits_cpt_code", table_name="frequency_limits")
    op.drop_table("frequency_limits")

    op.drop_index("ix_payer_rules_active", table_name="payer_rules")
    op.drop_index("ix_payer_rules_payer_name", table_name="payer_rules")
    op.drop_table("payer_rules")

    op.drop_index("ix_medical_necessity_matrix_icd_code", table_name="medical_necessity_matrix")
    op.drop_index("ix_medical_necessity_matrix_cpt_code", table_name="medical_necessity_matrix")
    op.drop_table("medical_necessity_matrix")

    op.drop_index("ix_ncci_ptp_edits_column_2_cpt", table_name="ncci_ptp_edits")
    op.drop_index("ix_ncci_ptp_edits_column_1_cpt", table_name="ncci_ptp_edits")
    op.drop_table("ncci_ptp_edits")

    op.drop_index("ix_mue_edits_cpt_code", table_name="mue_edits")
    op.drop_table("mue_edits")
