# backend/app/domain/enums.py
from __future__ import annotations

from enum import Enum


class PropertyStatus(str, Enum):
    PENDING = "pending"
    DOCUMENTS_VALIDATED = "documents_validated"
    PAYMENT_COMPLETED = "payment_completed"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_UPDATE = "needs_update"
    TRANSFERRED = "transferred"


class PropertyType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    AGRICULTURAL = "agricultural"


class TransferStatus(str, Enum):
    INITIATED = "initiated"
    DOCUMENTS_PENDING = "documents_pending"
    UNDER_REVIEW = "under_review"
    VERIFICATION_PENDING = "verification_pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransferType(str, Enum):
    SALE = "sale"
    INHERITANCE = "inheritance"
    GIFT = "gift"
    COURT_ORDER = "court_order"
    GOVERNMENT_ACQUISITION = "government_acquisition"
    EXCHANGE = "exchange"
    OTHER = "other"


class Currency(str, Enum):
    ETB = "ETB"
    USD = "USD"


class TransferDocumentType(str, Enum):
    SALE_AGREEMENT = "sale_agreement"
    INHERITANCE_CERTIFICATE = "inheritance_certificate"
    COURT_ORDER = "court_order"
    ID_DOCUMENTS = "id_documents"
    TAX_CLEARANCE = "tax_clearance"
    VALUATION_REPORT = "valuation_report"
    OTHER = "other"


class DocumentVerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"


class DocumentReviewVerdict(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"


REVIEW_VERDICT_TO_DOCUMENT_STATUS = {
    DocumentReviewVerdict.APPROVED: DocumentVerificationStatus.VERIFIED,
    DocumentReviewVerdict.REJECTED: DocumentVerificationStatus.REJECTED,
    DocumentReviewVerdict.NEEDS_REVISION: DocumentVerificationStatus.NEEDS_REVISION,
}


class ComplianceCheckType(str, Enum):
    ETHIOPIAN_LAW = "ethiopian_law"
    TAX_CLEARANCE = "tax_clearance"
    FRAUD_PREVENTION = "fraud_prevention"


class ComplianceStatus(str, Enum):
    PENDING = "pending"
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ApprovalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class DisputeStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATION = "investigation"
    MEDIATION = "mediation"
    RESOLVED = "resolved"
    WITHDRAWN = "withdrawn"


class DisputeType(str, Enum):
    OWNERSHIP_DISPUTE = "ownership_dispute"
    BOUNDARY_DISPUTE = "boundary_dispute"
    DOCUMENTATION_ERROR = "documentation_error"
    FRAUDULENT_REGISTRATION = "fraudulent_registration"
    INHERITANCE_DISPUTE = "inheritance_dispute"
    OTHER = "other"


class EvidenceType(str, Enum):
    LEGAL_DOCUMENT = "legal_document"
    PHOTO = "photo"
    WITNESS_STATEMENT = "witness_statement"
    OTHER = "other"


class DisputeOutcome(str, Enum):
    IN_FAVOR_OF_DISPUTANT = "in_favor_of_disputant"
    IN_FAVOR_OF_OWNER = "in_favor_of_owner"
    SETTLED = "settled"
    DISMISSED = "dismissed"


class AuditAction(str, Enum):
    # property registration
    APPLICATION_SUBMITTED = "application_submitted"
    ALL_DOCUMENTS_VALIDATED = "all_documents_validated"
    PAYMENT_WORKFLOW_COMPLETED = "payment_workflow_completed"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_UPDATE_REQUESTED = "application_update_requested"
    APPLICATION_RESUBMITTED = "application_resubmitted"

    # transfers
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_DOCUMENTS_UPLOADED = "transfer_documents_uploaded"
    TRANSFER_DOCUMENTS_SUBMITTED = "transfer_documents_submitted"
    TRANSFER_DOCUMENTS_REVIEWED = "transfer_documents_reviewed"
    TRANSFER_COMPLIANCE_CHECKED = "transfer_compliance_checked"
    TRANSFER_COMPLIANCE_FAILED = "transfer_compliance_failed"
    TRANSFER_APPROVED = "transfer_approved"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_CANCELLED = "transfer_cancelled"

    # disputes
    DISPUTE_SUBMITTED = "dispute_submitted"
    DISPUTE_UNDER_REVIEW = "dispute_under_review"
    DISPUTE_ASSIGNED = "dispute_assigned"
    DISPUTE_MEDIATION_SCHEDULED = "dispute_mediation_scheduled"
    DISPUTE_EVIDENCE_ADDED = "dispute_evidence_added"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_WITHDRAWN = "dispute_withdrawn"


class Role(str, Enum):
    USER = "user"
    LAND_OFFICER = "land_officer"
    ADMIN = "admin"
    SYSTEM = "system"
