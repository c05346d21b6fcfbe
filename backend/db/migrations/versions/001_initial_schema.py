"""
Initial schema - shipments and shipment activity

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Shipments
    op.create_table(
        "shipments",
        sa.Column("shipment_id", sa.String(64), primary_key=True),
        sa.Column("container_no", sa.String(32)),
        sa.Column("current_phase", sa.String(20), nullable=False, server_default="intake"),
        sa.Column("phase_progress", sa.JSON, nullable=False),
        sa.Column("compliance_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("compliance_issues", sa.JSON, nullable=False),
        sa.Column("monitoring_status", sa.String(20), nullable=False, server_default="unset"),
        sa.Column("eta_planned", sa.DateTime(timezone=True)),
        sa.Column("eta_current", sa.DateTime(timezone=True)),
        sa.Column("eta_variance_hours", sa.Float),
        sa.Column("shipper", sa.String(255)),
        sa.Column("consignee", sa.String(255)),
        sa.Column("hs_code", sa.String(32)),
        sa.Column("commodity", sa.Text),
        sa.Column("port", sa.String(255)),
        sa.Column("destination", sa.String(255)),
        sa.Column("eta", sa.DateTime(timezone=True)),
        sa.Column("arrival_date", sa.DateTime(timezone=True)),
        sa.Column("promised_date", sa.DateTime(timezone=True)),
        sa.Column("weight_kg", sa.Float),
        sa.Column("documents", sa.JSON, nullable=False),
        sa.Column("isf_filed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("carrier", sa.String(100)),
        sa.Column("vessel", sa.String(100)),
        sa.Column("voyage", sa.String(50)),
        sa.Column("total_charges", sa.Float),
        sa.Column("cost_saved", sa.Float),
        sa.Column("gross_margin", sa.Float),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("email_metadata", sa.JSON),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "current_phase IN ('intake', 'compliance', 'monitoring', 'arrival', 'billing')",
            name="ck_shipment_phase",
        ),
        sa.CheckConstraint(
            "compliance_status IN ('pending', 'ok', 'issues', 'flagged')",
            name="ck_shipment_compliance_status",
        ),
        sa.CheckConstraint(
            "monitoring_status IN ('on_track', 'early', 'at_risk', 'unset')",
            name="ck_shipment_monitoring_status",
        ),
        sa.CheckConstraint("source IN ('email', 'manual', 'api')", name="ck_shipment_source"),
    )
    op.create_index("ix_shipments_current_phase", "shipments", ["current_phase"])
    op.create_index("ix_shipments_container_no", "shipments", ["container_no"])

    # 2. Shipment activity
    op.create_table(
        "shipment_activity",
        sa.Column("activity_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("shipment_id", sa.String(64), sa.ForeignKey("shipments.shipment_id"), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("from_phase", sa.String(20)),
        sa.Column("to_phase", sa.String(20), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_shipment_activity_shipment", "shipment_activity", ["shipment_id", "created_at"])
    op.create_index("ix_shipment_activity_created", "shipment_activity", ["created_at"])


def downgrade() -> None:
    op.drop_table("shipment_activity")
    op.drop_table("shipments")
