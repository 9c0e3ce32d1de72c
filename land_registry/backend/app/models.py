# backend/app/models.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.workflow_states import ACTIVE_DISPUTE_STATUSES, ACTIVE_TRANSFER_STATUSES


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _status_in(statuses: tuple[str, ...]):
    quoted = ", ".join(f"'{s}'" for s in statuses)
    return text(f"status IN ({quoted})")


# -----------------------------
# Accounts
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")  # user|land_officer|admin|system
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Properties
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        UniqueConstraint("sub_city", "kebele", "plot_number", name="uq_properties_location_plot"),
        Index("ix_properties_owner_status", "owner_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    plot_number: Mapped[str] = mapped_column(String(60), nullable=False)
    region: Mapped[str] = mapped_column(String(120), nullable=False)
    sub_city: Mapped[str] = mapped_column(String(120), nullable=False)
    kebele: Mapped[str] = mapped_column(String(120), nullable=False)
    street: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    house_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    property_type: Mapped[str] = mapped_column(String(30), nullable=False)
    area: Mapped[float] = mapped_column(Float, nullable=False)  # square meters

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending", index=True)
    has_active_dispute: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    # Exclusivity lock; plain integer because properties <-> transfers reference each other.
    current_transfer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    reviewed_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    registered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    owner: Mapped["AppUser"] = relationship(foreign_keys=[owner_id])

    ownership_history: Mapped[List["OwnershipRecord"]] = relationship(
        back_populates="property", order_by="OwnershipRecord.id"
    )
    transfers: Mapped[List["PropertyTransfer"]] = relationship(
        back_populates="property", order_by="PropertyTransfer.id"
    )
    disputes: Mapped[List["Dispute"]] = relationship(back_populates="property", order_by="Dispute.id")


class OwnershipRecord(Base):
    __tablename__ = "ownership_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    transfer_type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    transfer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("property_transfers.id"), nullable=True)

    property: Mapped["Property"] = relationship(back_populates="ownership_history")


# -----------------------------
# Transfers
# -----------------------------
class PropertyTransfer(Base):
    __tablename__ = "property_transfers"
    __table_args__ = (
        # at most one non-terminal transfer per property, enforced by the database
        Index(
            "uq_property_transfers_active_property",
            "property_id",
            unique=True,
            sqlite_where=_status_in(ACTIVE_TRANSFER_STATUSES),
            postgresql_where=_status_in(ACTIVE_TRANSFER_STATUSES),
        ),
        Index("ix_property_transfers_status_initiated", "status", "initiated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    previous_owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)
    new_owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    transfer_type: Mapped[str] = mapped_column(String(40), nullable=False)
    transfer_reason: Mapped[str] = mapped_column(Text, nullable=False)
    transfer_value_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    transfer_value_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ETB")

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="initiated")

    reviewed_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    initiated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    property: Mapped["Property"] = relationship(back_populates="transfers")
    documents: Mapped[List["TransferDocument"]] = relationship(
        back_populates="transfer", order_by="TransferDocument.id"
    )
    compliance_checks: Mapped[List["TransferComplianceCheck"]] = relationship(
        back_populates="transfer", order_by="TransferComplianceCheck.id"
    )
    timeline: Mapped[List["TransferTimelineEntry"]] = relationship(
        back_populates="transfer", order_by="TransferTimelineEntry.id"
    )


class TransferDocument(Base):
    __tablename__ = "transfer_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transfer_id: Mapped[int] = mapped_column(Integer, ForeignKey("property_transfers.id"), nullable=False, index=True)

    document_type: Mapped[str] = mapped_column(String(40), nullable=False)
    document_name: Mapped[str] = mapped_column(String(200), nullable=False)
    file_id: Mapped[str] = mapped_column(String(80), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(80), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    verification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    verified_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    transfer: Mapped["PropertyTransfer"] = relationship(back_populates="documents")


class TransferComplianceCheck(Base):
    __tablename__ = "transfer_compliance_checks"
    __table_args__ = (
        UniqueConstraint("transfer_id", "check_type", name="uq_transfer_compliance_checks_transfer_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transfer_id: Mapped[int] = mapped_column(Integer, ForeignKey("property_transfers.id"), nullable=False, index=True)

    check_type: Mapped[str] = mapped_column(String(30), nullable=False)  # ethiopian_law|tax_clearance|fraud_prevention
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    risk_level: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    checked_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    transfer: Mapped["PropertyTransfer"] = relationship(back_populates="compliance_checks")


class TransferTimelineEntry(Base):
    __tablename__ = "transfer_timeline_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transfer_id: Mapped[int] = mapped_column(Integer, ForeignKey("property_transfers.id"), nullable=False, index=True)

    action: Mapped[str] = mapped_column(String(120), nullable=False)
    performed_by_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)
    performed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    transfer: Mapped["PropertyTransfer"] = relationship(back_populates="timeline")


# -----------------------------
# Disputes
# -----------------------------
class Dispute(Base):
    __tablename__ = "disputes"
    __table_args__ = (
        Index(
            "uq_disputes_active_property",
            "property_id",
            unique=True,
            sqlite_where=_status_in(ACTIVE_DISPUTE_STATUSES),
            postgresql_where=_status_in(ACTIVE_DISPUTE_STATUSES),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    disputant_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    dispute_type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="submitted", index=True)

    assigned_to_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    resolution_outcome: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_action_required: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    property: Mapped["Property"] = relationship(back_populates="disputes")
    evidence: Mapped[List["DisputeEvidence"]] = relationship(back_populates="dispute", order_by="DisputeEvidence.id")
    timeline: Mapped[List["DisputeTimelineEntry"]] = relationship(
        back_populates="dispute", order_by="DisputeTimelineEntry.id"
    )


class DisputeEvidence(Base):
    __tablename__ = "dispute_evidence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dispute_id: Mapped[int] = mapped_column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)

    document_type: Mapped[str] = mapped_column(String(40), nullable=False)
    document_name: Mapped[str] = mapped_column(String(200), nullable=False)
    file_id: Mapped[str] = mapped_column(String(80), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(80), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    dispute: Mapped["Dispute"] = relationship(back_populates="evidence")


class DisputeTimelineEntry(Base):
    __tablename__ = "dispute_timeline_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dispute_id: Mapped[int] = mapped_column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)

    action: Mapped[str] = mapped_column(String(120), nullable=False)
    performed_by_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)
    performed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    dispute: Mapped["Dispute"] = relationship(back_populates="timeline")


# -----------------------------
# Audit trail
# -----------------------------
class ApplicationLog(Base):
    __tablename__ = "application_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    performed_by_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)
    performed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)

    action: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
