# backend/app/domain/compliance_checks.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from .enums import ComplianceCheckType, ComplianceStatus, RiskLevel


@dataclass(frozen=True)
class SubCheck:
    check_type: ComplianceCheckType
    status: ComplianceStatus = ComplianceStatus.PENDING
    risk_level: Optional[RiskLevel] = None  # fraud prevention only
    notes: Optional[str] = None

    @classmethod
    def of(
        cls,
        check_type: Union[ComplianceCheckType, str],
        status: Union[ComplianceStatus, str, None],
        risk_level: Union[RiskLevel, str, None] = None,
        notes: Optional[str] = None,
    ) -> "SubCheck":
        return cls(
            check_type=ComplianceCheckType(check_type),
            status=ComplianceStatus(status or ComplianceStatus.PENDING),
            risk_level=RiskLevel(risk_level) if risk_level else None,
            notes=notes,
        )

    @property
    def is_failing(self) -> bool:
        if self.status == ComplianceStatus.NON_COMPLIANT:
            return True
        return self.risk_level == RiskLevel.HIGH


@dataclass(frozen=True)
class ComplianceVerdict:
    status: ComplianceStatus
    failed: tuple[str, ...] = field(default_factory=tuple)
    pending: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_compliant(self) -> bool:
        return self.status == ComplianceStatus.COMPLIANT

    @property
    def is_non_compliant(self) -> bool:
        return self.status == ComplianceStatus.NON_COMPLIANT

    @property
    def is_complete(self) -> bool:
        # every sub-check recorded with a final status
        return not self.pending

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "failed": list(self.failed),
            "pending": list(self.pending),
        }


def aggregate_compliance(
    ethiopian_law: Optional[SubCheck],
    tax_clearance: Optional[SubCheck],
    fraud_prevention: Optional[SubCheck],
) -> ComplianceVerdict:
    """
    compliant     : all three compliant and fraud risk is not high
    non_compliant : any sub-check non_compliant, or fraud risk high
    pending       : otherwise (something not yet checked)

    A missing sub-check counts as pending. A non_compliant verdict still lists
    the pending ones; callers act on it only once is_complete.
    """
    checks = {
        ComplianceCheckType.ETHIOPIAN_LAW: ethiopian_law,
        ComplianceCheckType.TAX_CLEARANCE: tax_clearance,
        ComplianceCheckType.FRAUD_PREVENTION: fraud_prevention,
    }

    failed: list[str] = []
    pending: list[str] = []
    for check_type, chk in checks.items():
        if chk is None:
            pending.append(check_type.value)
            continue
        if chk.is_failing:
            failed.append(check_type.value)
        elif chk.status == ComplianceStatus.PENDING:
            pending.append(check_type.value)

    if failed:
        return ComplianceVerdict(ComplianceStatus.NON_COMPLIANT, tuple(failed), tuple(pending))
    if pending:
        return ComplianceVerdict(ComplianceStatus.PENDING, (), tuple(pending))
    return ComplianceVerdict(ComplianceStatus.COMPLIANT)
