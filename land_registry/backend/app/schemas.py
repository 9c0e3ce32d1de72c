# backend/app/schemas.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .domain.compliance_checks import SubCheck
from .domain.enums import (
    ApprovalDecision,
    ComplianceCheckType,
    ComplianceStatus,
    Currency,
    DisputeOutcome,
    DisputeType,
    DocumentReviewVerdict,
    EvidenceType,
    PropertyStatus,
    PropertyType,
    RiskLevel,
    TransferDocumentType,
    TransferType,
)


# -------------------- Properties --------------------

class PropertyCreate(BaseModel):
    plot_number: str = Field(min_length=1, max_length=60)
    region: str = Field(min_length=1, max_length=120)
    sub_city: str = Field(min_length=1, max_length=120)
    kebele: str = Field(min_length=1, max_length=120)
    street: Optional[str] = Field(default=None, max_length=200)
    house_number: Optional[str] = Field(default=None, max_length=40)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    property_type: PropertyType
    area: float = Field(gt=0)


class PropertyStatusUpdate(BaseModel):
    status: PropertyStatus
    notes: Optional[str] = Field(default=None, max_length=2000)


class OwnershipRecordOut(BaseModel):
    owner_id: int
    start_date: datetime
    end_date: Optional[datetime] = None
    transfer_type: Optional[str] = None
    transfer_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class PropertyOut(BaseModel):
    id: int
    owner_id: int
    plot_number: str
    region: str
    sub_city: str
    kebele: str
    street: Optional[str] = None
    house_number: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    property_type: str
    area: float

    status: str
    has_active_dispute: bool
    current_transfer_id: Optional[int] = None
    reviewed_by_id: Optional[int] = None
    review_notes: Optional[str] = None

    registered_at: datetime
    updated_at: datetime
    ownership_history: List[OwnershipRecordOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class PropertyPage(BaseModel):
    items: List[PropertyOut]
    total: int
    page: int
    limit: int


# -------------------- Transfers --------------------

class TransferValueIn(BaseModel):
    amount: float = Field(default=0.0, ge=0)
    currency: Currency = Currency.ETB


class TransferCreate(BaseModel):
    property_id: int
    new_owner_email: str = Field(min_length=3, max_length=200)
    transfer_type: TransferType
    transfer_reason: str = Field(min_length=1, max_length=1000)
    transfer_value: TransferValueIn = Field(default_factory=TransferValueIn)


class TransferDocumentIn(BaseModel):
    document_type: TransferDocumentType
    document_name: str = Field(min_length=1, max_length=200)
    file_id: str = Field(min_length=1, max_length=80)
    filename: str = Field(min_length=1, max_length=255)
    file_type: str = Field(min_length=1, max_length=80)


class TransferDocumentsUpload(BaseModel):
    documents: List[TransferDocumentIn] = Field(min_length=1)
    submit: bool = True


class DocumentReviewIn(BaseModel):
    document_id: int
    status: DocumentReviewVerdict
    notes: str = Field(min_length=1, max_length=1000)


class DocumentReviewRequest(BaseModel):
    reviews: List[DocumentReviewIn] = Field(min_length=1)


class ComplianceCheckIn(BaseModel):
    status: ComplianceStatus
    notes: Optional[str] = Field(default=None, max_length=1000)


class FraudCheckIn(ComplianceCheckIn):
    risk_level: Optional[RiskLevel] = None


class ComplianceRequest(BaseModel):
    ethiopian_law: Optional[ComplianceCheckIn] = None
    tax_clearance: Optional[ComplianceCheckIn] = None
    fraud_prevention: Optional[FraudCheckIn] = None

    @model_validator(mode="after")
    def _at_least_one(self):
        if self.ethiopian_law is None and self.tax_clearance is None and self.fraud_prevention is None:
            raise ValueError("at least one compliance check is required")
        return self

    def to_subchecks(self) -> list[SubCheck]:
        out: list[SubCheck] = []
        if self.ethiopian_law is not None:
            out.append(SubCheck.of(ComplianceCheckType.ETHIOPIAN_LAW, self.ethiopian_law.status,
                                   notes=self.ethiopian_law.notes))
        if self.tax_clearance is not None:
            out.append(SubCheck.of(ComplianceCheckType.TAX_CLEARANCE, self.tax_clearance.status,
                                   notes=self.tax_clearance.notes))
        if self.fraud_prevention is not None:
            out.append(SubCheck.of(ComplianceCheckType.FRAUD_PREVENTION, self.fraud_prevention.status,
                                   self.fraud_prevention.risk_level, self.fraud_prevention.notes))
        return out


class ApprovalRequest(BaseModel):
    decision: ApprovalDecision
    notes: Optional[str] = Field(default=None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TransferDocumentOut(BaseModel):
    id: int
    document_type: str
    document_name: str
    file_id: str
    filename: str
    file_type: str
    uploaded_at: datetime
    verification_status: str
    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ComplianceCheckOut(BaseModel):
    check_type: str
    status: str
    risk_level: Optional[str] = None
    notes: Optional[str] = None
    checked_by_id: Optional[int] = None
    checked_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TimelineEntryOut(BaseModel):
    action: str
    performed_by_id: int
    performed_by_role: str
    notes: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TransferOut(BaseModel):
    id: int
    property_id: int
    previous_owner_id: int
    new_owner_id: int
    transfer_type: str
    transfer_reason: str
    transfer_value_amount: float
    transfer_value_currency: str
    status: str

    reviewed_by_id: Optional[int] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    initiated_at: datetime
    completed_at: Optional[datetime] = None
    updated_at: datetime

    documents: List[TransferDocumentOut] = Field(default_factory=list)
    compliance_checks: List[ComplianceCheckOut] = Field(default_factory=list)
    timeline: List[TimelineEntryOut] = Field(default_factory=list)

    # aggregate verdict, filled by the router
    compliance_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TransferPage(BaseModel):
    items: List[TransferOut]
    total: int
    page: int
    limit: int


# -------------------- Disputes --------------------

class EvidenceIn(BaseModel):
    document_type: EvidenceType
    document_name: str = Field(min_length=1, max_length=200)
    file_id: str = Field(min_length=1, max_length=80)
    filename: str = Field(min_length=1, max_length=255)
    file_type: str = Field(min_length=1, max_length=80)


class DisputeCreate(BaseModel):
    property_id: int
    dispute_type: DisputeType
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=2000)
    evidence: List[EvidenceIn] = Field(default_factory=list)


class DisputeWithdraw(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class DisputeEvidenceAdd(BaseModel):
    evidence: List[EvidenceIn] = Field(min_length=1)


class OfficerNotes(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class DisputeAssign(OfficerNotes):
    assignee_id: int


class DisputeResolve(BaseModel):
    outcome: DisputeOutcome
    notes: str = Field(min_length=1, max_length=2000)
    action_required: Optional[str] = Field(default=None, max_length=1000)


class DisputeEvidenceOut(BaseModel):
    id: int
    document_type: str
    document_name: str
    file_id: str
    filename: str
    file_type: str
    uploaded_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DisputeOut(BaseModel):
    id: int
    property_id: int
    disputant_id: int
    dispute_type: str
    title: str
    description: str
    status: str

    assigned_to_id: Optional[int] = None
    assigned_at: Optional[datetime] = None

    resolution_outcome: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolution_action_required: Optional[str] = None
    resolved_by_id: Optional[int] = None
    resolved_at: Optional[datetime] = None

    submitted_at: datetime
    updated_at: datetime

    evidence: List[DisputeEvidenceOut] = Field(default_factory=list)
    timeline: List[TimelineEntryOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DisputePage(BaseModel):
    items: List[DisputeOut]
    total: int
    page: int
    limit: int


# -------------------- Application logs --------------------

class ApplicationLogOut(BaseModel):
    id: int
    property_id: int
    user_id: int
    performed_by_id: int
    performed_by_role: str
    action: str
    status: str
    previous_status: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _coerce_metadata(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data

        raw = getattr(data, "metadata_json", None)
        try:
            parsed = json.loads(raw) if isinstance(raw, str) and raw else {}
        except ValueError:
            parsed = {}

        return {
            "id": data.id,
            "property_id": data.property_id,
            "user_id": data.user_id,
            "performed_by_id": data.performed_by_id,
            "performed_by_role": data.performed_by_role,
            "action": data.action,
            "status": data.status,
            "previous_status": data.previous_status,
            "notes": data.notes,
            "metadata": parsed if isinstance(parsed, dict) else {},
            "created_at": data.created_at,
        }


class ApplicationLogPage(BaseModel):
    items: List[ApplicationLogOut]
    total: int
    page: int
    limit: int


# -------------------- Health --------------------

class HealthOut(BaseModel):
    ok: bool
    env: str
    version: str
    db: bool
