"""
FreightOps Database Models

Tables:
  1. shipments          - One record per shipment with lifecycle state
  2. shipment_activity  - Append-only feed of applied lifecycle events

Lifecycle columns (current_phase, phase_progress, compliance_*,
monitoring_status) are written only by the lifecycle service. The
`version` column backs optimistic concurrency control: every UPDATE is
guarded by the version that was read.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Shipments ──────────────────────────────────────────────────────────


class Shipment(Base):
    __tablename__ = "shipments"

    shipment_id = Column(String(64), primary_key=True)
    container_no = Column(String(32), nullable=True)

    # Lifecycle state
    current_phase = Column(String(20), nullable=False, default="intake")
    phase_progress = Column(JSON, nullable=False)
    compliance_status = Column(String(20), nullable=False, default="pending")
    compliance_issues = Column(JSON, nullable=False, default=list)
    monitoring_status = Column(String(20), nullable=False, default="unset")
    eta_planned = Column(DateTime(timezone=True), nullable=True)
    eta_current = Column(DateTime(timezone=True), nullable=True)
    eta_variance_hours = Column(Float, nullable=True)

    # Business attributes consumed by compliance rules
    shipper = Column(String(255), nullable=True)
    consignee = Column(String(255), nullable=True)
    hs_code = Column(String(32), nullable=True)
    commodity = Column(Text, nullable=True)
    port = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)
    eta = Column(DateTime(timezone=True), nullable=True)
    arrival_date = Column(DateTime(timezone=True), nullable=True)
    promised_date = Column(DateTime(timezone=True), nullable=True)
    weight_kg = Column(Float, nullable=True)
    documents = Column(JSON, nullable=False, default=list)
    isf_filed = Column(Boolean, nullable=False, default=False)

    # Arrival notice details
    carrier = Column(String(100), nullable=True)
    vessel = Column(String(100), nullable=True)
    voyage = Column(String(50), nullable=True)
    total_charges = Column(Float, nullable=True)

    # Money metrics
    cost_saved = Column(Float, nullable=True)
    gross_margin = Column(Float, nullable=True)

    # Provenance
    source = Column(String(20), nullable=False, default="manual")
    email_metadata = Column(JSON, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "current_phase IN ('intake', 'compliance', 'monitoring', 'arrival', 'billing')",
            name="ck_shipment_phase",
        ),
        CheckConstraint(
            "compliance_status IN ('pending', 'ok', 'issues', 'flagged')",
            name="ck_shipment_compliance_status",
        ),
        CheckConstraint(
            "monitoring_status IN ('on_track', 'early', 'at_risk', 'unset')",
            name="ck_shipment_monitoring_status",
        ),
        CheckConstraint("source IN ('email', 'manual', 'api')", name="ck_shipment_source"),
        Index("ix_shipments_current_phase", "current_phase"),
        Index("ix_shipments_container_no", "container_no"),
    )

    activity = relationship("ShipmentActivity", back_populates="shipment", cascade="all, delete-orphan")


# ─── 2. Shipment Activity ──────────────────────────────────────────────────


class ShipmentActivity(Base):
    __tablename__ = "shipment_activity"

    activity_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    shipment_id = Column(String(64), ForeignKey("shipments.shipment_id"), nullable=False)
    event_type = Column(String(40), nullable=False)
    from_phase = Column(String(20), nullable=True)
    to_phase = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_shipment_activity_shipment", "shipment_id", "created_at"),
        Index("ix_shipment_activity_created", "created_at"),
    )

    shipment = relationship("Shipment", back_populates="activity")
