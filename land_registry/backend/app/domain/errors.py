# backend/app/domain/errors.py
"""
Typed errors for the transaction workflow.

Every error carries a machine-readable `code` and the HTTP status the API
layer renders it with. Callers dispatch on the class, never on the message.

    WorkflowError
    +-- ValidationError
    |   +-- SelfTransferNotAllowed
    +-- NotFoundError
    |   +-- InvalidTransferee
    +-- ForbiddenError
    |   +-- NotOwnerError
    +-- InvalidStateTransition
    +-- AlreadyActiveError
    |   +-- TransferAlreadyActive
    |   +-- DisputeAlreadyActive
    +-- ActiveDisputeBlocksTransfer
    +-- ComplianceFailure
    +-- AuditImmutableError
"""
from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    code: str = "WORKFLOW_ERROR"
    status_code: int = 500

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            out["context"] = {k: v for k, v in self.details.items() if v is not None}
        return out


class ValidationError(WorkflowError):
    code = "VALIDATION_ERROR"
    status_code = 400


class SelfTransferNotAllowed(ValidationError):
    code = "SELF_TRANSFER_NOT_ALLOWED"

    def __init__(self, message: str = "Cannot transfer property to yourself", **details: Any):
        super().__init__(message, **details)


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found", entity=entity, entity_id=entity_id)


class InvalidTransferee(NotFoundError):
    code = "INVALID_TRANSFEREE"

    def __init__(self, email: str):
        super().__init__(
            "user",
            None,
            message="New owner not found. They must be registered in the system.",
        )
        self.email = email


class ForbiddenError(WorkflowError):
    code = "FORBIDDEN"
    status_code = 403


class NotOwnerError(ForbiddenError):
    code = "NOT_OWNER"

    def __init__(self, message: str = "You are not the owner of this property", **details: Any):
        super().__init__(message, **details)


class InvalidStateTransition(WorkflowError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(
        self,
        entity: str,
        current: str,
        event: str,
        message: Optional[str] = None,
    ):
        self.entity = entity
        self.current = current
        self.event = event
        super().__init__(
            message or f"Invalid {entity} transition '{event}' from status '{current}'",
            entity=entity,
            current=current,
            event=event,
        )


class AlreadyActiveError(WorkflowError):
    code = "ALREADY_ACTIVE"
    status_code = 409

    def __init__(self, message: str, property_id: Optional[int] = None, active_id: Optional[int] = None):
        self.property_id = property_id
        self.active_id = active_id
        super().__init__(message, property_id=property_id, active_id=active_id)


class TransferAlreadyActive(AlreadyActiveError):
    code = "TRANSFER_ALREADY_ACTIVE"

    def __init__(self, property_id: Optional[int] = None, active_id: Optional[int] = None):
        super().__init__(
            "There is already an active transfer for this property",
            property_id=property_id,
            active_id=active_id,
        )


class DisputeAlreadyActive(AlreadyActiveError):
    code = "DISPUTE_ALREADY_ACTIVE"

    def __init__(self, property_id: Optional[int] = None, active_id: Optional[int] = None):
        super().__init__(
            "There is already an active dispute for this property",
            property_id=property_id,
            active_id=active_id,
        )


class ActiveDisputeBlocksTransfer(WorkflowError):
    code = "ACTIVE_DISPUTE_BLOCKS_TRANSFER"
    status_code = 409

    def __init__(self, property_id: Optional[int] = None):
        self.property_id = property_id
        super().__init__("Cannot transfer property with active disputes", property_id=property_id)


class ComplianceFailure(WorkflowError):
    """Terminal business outcome: the transfer failed its compliance checks."""

    code = "COMPLIANCE_FAILURE"
    status_code = 409

    def __init__(self, transfer_id: int, failed_checks: list[str]):
        self.transfer_id = transfer_id
        self.failed_checks = list(failed_checks)
        super().__init__(
            "Transfer failed compliance checks: " + ", ".join(self.failed_checks),
            transfer_id=transfer_id,
            failed_checks=self.failed_checks,
        )


class AuditImmutableError(WorkflowError):
    code = "AUDIT_IMMUTABLE"
    status_code = 500

    def __init__(self, entity: str, operation: str):
        super().__init__(f"{entity} rows are append-only; {operation} is not allowed", entity=entity)
