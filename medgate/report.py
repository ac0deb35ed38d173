"""
Verification Report Generator.

Builds a structured report from an administration result for the staff
member at the bedside and for later review.  Each report shows the
disposition, the per-stage verdict table, what blocked the attempt and
any warnings that need attention before the dose is given.

DISCLAIMER: Verification reports are decision-support summaries.  They do
not replace the professional judgement of the administering staff member.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from medgate.models import AdministrationRequest, AdministrationResult, VerdictStatus


class VerificationReport:
    """A structured verification report for one administration attempt."""

    def __init__(
        self,
        attempt_id: str,
        home_id: str,
        resident_id: str,
        medication_id: str,
        staff_id: str,
        disposition: str,
        decision: str,
        confidence_score: float,
        stages: list[dict[str, Any]],
        action_required: list[str],
        warnings: list[str],
        audit_entry_id: str,
        generated_at: str,
        omission: Optional[dict[str, Any]] = None,
    ) -> None:
        self.attempt_id = attempt_id
        self.home_id = home_id
        self.resident_id = resident_id
        self.medication_id = medication_id
        self.staff_id = staff_id
        self.disposition = disposition
        self.decision = decision
        self.confidence_score = confidence_score
        self.stages = stages
        self.action_required = action_required
        self.warnings = warnings
        self.audit_entry_id = audit_entry_id
        self.generated_at = generated_at
        self.omission = omission

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report to a dictionary."""
        return {
            "report_type": "Medication Verification Report",
            "disclaimer": (
                "This report is a decision-support summary. It does not replace "
                "the professional judgement of the administering staff member."
            ),
            "attempt_id": self.attempt_id,
            "home_id": self.home_id,
            "resident_id": self.resident_id,
            "medication_id": self.medication_id,
            "staff_id": self.staff_id,
            "disposition": self.disposition,
            "decision": self.decision,
            "confidence_score": round(self.confidence_score, 4),
            "stages": self.stages,
            "action_required": self.action_required,
            "warnings": self.warnings,
            "audit_entry_id": self.audit_entry_id,
            "generated_at": self.generated_at,
            "omission": self.omission,
        }

    def __repr__(self) -> str:
        return (
            f"VerificationReport(attempt_id={self.attempt_id}, "
            f"disposition={self.disposition}, decision={self.decision})"
        )


def generate_verification_report(
    request: AdministrationRequest,
    result: AdministrationResult,
) -> VerificationReport:
    """Generate a verification report from an administration result.

    Args:
        request: The attempt that was verified.
        result: The result returned by ``attempt_administration``.

    Returns:
        A ``VerificationReport`` ready to show to staff.
    """
    outcome = result.outcome
    action_required = [
        f"Stage {v.stage.number} ({v.stage.value}) [{v.code}]: {v.reason}"
        for v in outcome.blocking_verdicts
    ]
    warnings = [
        f"Stage {v.stage.number} ({v.stage.value}): {v.reason}"
        for v in outcome.verdicts
        if v.status == VerdictStatus.WARN
    ]

    return VerificationReport(
        attempt_id=result.attempt_id,
        home_id=request.home_id,
        resident_id=request.resident_id,
        medication_id=request.medication_id,
        staff_id=request.staff_id,
        disposition=result.disposition.value,
        decision=outcome.decision.value,
        confidence_score=outcome.confidence_score,
        stages=_build_stage_table(result),
        action_required=action_required,
        warnings=warnings,
        audit_entry_id=result.audit_entry_id,
        generated_at=datetime.now(timezone.utc).isoformat(),
        omission=result.omission.model_dump(mode="json") if result.omission is not None else None,
    )


def _build_stage_table(result: AdministrationResult) -> list[dict[str, Any]]:
    """One row per stage, in pipeline order."""
    rows: list[dict[str, Any]] = []
    for verdict in result.outcome.verdicts:
        rows.append({
            "number": verdict.stage.number,
            "stage": verdict.stage.value,
            "status": verdict.status.value,
            "code": verdict.code,
            "reason": verdict.reason,
            "notes": list(verdict.notes),
        })
    return rows
