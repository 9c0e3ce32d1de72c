# backend/tests/test_compliance_aggregation.py
from __future__ import annotations

from app.domain.compliance_checks import SubCheck, aggregate_compliance
from app.domain.enums import ComplianceStatus


def _law(status):
    return SubCheck.of("ethiopian_law", status)


def _tax(status):
    return SubCheck.of("tax_clearance", status)


def _fraud(status, risk=None):
    return SubCheck.of("fraud_prevention", status, risk)


def test_all_compliant_low_risk_is_compliant():
    v = aggregate_compliance(_law("compliant"), _tax("compliant"), _fraud("compliant", "low"))
    assert v.status == ComplianceStatus.COMPLIANT
    assert v.is_compliant
    assert v.failed == () and v.pending == ()


def test_high_fraud_risk_fails_even_when_all_compliant():
    v = aggregate_compliance(_law("compliant"), _tax("compliant"), _fraud("compliant", "high"))
    assert v.is_non_compliant
    assert v.failed == ("fraud_prevention",)


def test_non_compliant_reported_while_others_pending():
    v = aggregate_compliance(_law("non_compliant"), _tax("pending"), None)
    assert v.status == ComplianceStatus.NON_COMPLIANT
    assert v.failed == ("ethiopian_law",)
    assert set(v.pending) == {"tax_clearance", "fraud_prevention"}
    assert not v.is_complete


def test_complete_once_nothing_pending():
    v = aggregate_compliance(_law("non_compliant"), _tax("compliant"), _fraud("compliant", "low"))
    assert v.is_non_compliant and v.is_complete


def test_pending_or_missing_checks_keep_verdict_pending():
    v = aggregate_compliance(_law("compliant"), _tax("pending"), None)
    assert v.status == ComplianceStatus.PENDING
    assert set(v.pending) == {"tax_clearance", "fraud_prevention"}
    assert not v.is_compliant and not v.is_non_compliant


def test_as_dict_shape():
    v = aggregate_compliance(_law("compliant"), _tax("non_compliant"), _fraud("compliant", "medium"))
    assert v.as_dict() == {"status": "non_compliant", "failed": ["tax_clearance"], "pending": []}
