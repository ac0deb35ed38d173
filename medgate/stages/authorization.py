"""Stage 9: authorization and documentation.

Validates the prescription (identity, validity window, prescriber role),
the administering staff member's qualification, and the witness
requirement for controlled drugs.
"""

from __future__ import annotations

from medgate import rbac
from medgate.models import Stage, StageVerdict
from medgate.stages.base import (
    SOURCE_MEDICATION,
    SOURCE_PRESCRIPTION,
    SOURCE_STAFF,
    SOURCE_WITNESS,
    StageInputs,
    combine,
    require,
    unavailable_reason,
)

PRESCRIPTION_MISMATCH = "PRESCRIPTION_MISMATCH"
PRESCRIPTION_NOT_VALID = "PRESCRIPTION_NOT_VALID"
PRESCRIBER_UNAUTHORIZED = "PRESCRIBER_UNAUTHORIZED"
STAFF_UNKNOWN = "STAFF_UNKNOWN"
STAFF_INACTIVE = "STAFF_INACTIVE"
COMPETENCY_EXPIRED = "COMPETENCY_EXPIRED"
STAFF_UNQUALIFIED = "STAFF_UNQUALIFIED"
WITNESS_REQUIRED = "WITNESS_REQUIRED"
WITNESS_NOT_DISTINCT = "WITNESS_NOT_DISTINCT"
WITNESS_UNKNOWN = "WITNESS_UNKNOWN"
WITNESS_UNQUALIFIED = "WITNESS_UNQUALIFIED"


def _check_prescription(inputs: StageInputs, blocks: list[tuple[str, str]]) -> None:
    request = inputs.request
    prescription = inputs.prescription
    policy = inputs.policy

    if prescription.prescription_id != request.prescription_id:
        blocks.append((
            f"active prescription '{prescription.prescription_id}' does not match "
            f"request '{request.prescription_id}'",
            PRESCRIPTION_MISMATCH,
        ))
    if (prescription.resident_id, prescription.medication_id) != (request.resident_id, request.medication_id):
        blocks.append(("prescription is for a different resident or medication", PRESCRIPTION_MISMATCH))

    attempt_at = request.attempt_timestamp
    if attempt_at < prescription.valid_from:
        blocks.append(("prescription not yet valid", PRESCRIPTION_NOT_VALID))
    elif prescription.valid_until is not None and attempt_at > prescription.valid_until:
        blocks.append(("prescription expired", PRESCRIPTION_NOT_VALID))

    role = prescription.prescriber_role.strip().lower()
    if role not in policy.authorized_prescriber_roles:
        blocks.append((f"prescriber role '{role}' not authorized", PRESCRIBER_UNAUTHORIZED))
    elif inputs.medication.controlled_substance and role not in policy.controlled_prescriber_roles:
        blocks.append((
            f"prescriber role '{role}' not authorized for controlled drugs",
            PRESCRIBER_UNAUTHORIZED,
        ))


def _check_staff(inputs: StageInputs, blocks: list[tuple[str, str]]) -> None:
    staff = inputs.context.staff
    if SOURCE_STAFF in inputs.context.unavailable or staff is None:
        blocks.append((unavailable_reason(inputs, SOURCE_STAFF), STAFF_UNKNOWN))
        return
    if not staff.active:
        blocks.append((f"staff member {staff.staff_id} is not active", STAFF_INACTIVE))
        return

    today = inputs.request.attempt_timestamp.date()
    if staff.competency_valid_until is None:
        blocks.append(("medication competency not recorded", COMPETENCY_EXPIRED))
    elif staff.competency_valid_until < today:
        blocks.append((
            f"medication competency expired on {staff.competency_valid_until.isoformat()}",
            COMPETENCY_EXPIRED,
        ))

    for action in rbac.required_actions(inputs.request.claimed_route, inputs.medication.controlled_substance):
        if not rbac.check_permission(staff.role, action):
            blocks.append((f"role {staff.role.value} is not qualified to {action.replace('_', ' ')}", STAFF_UNQUALIFIED))


def _check_witness(inputs: StageInputs, blocks: list[tuple[str, str]]) -> None:
    request = inputs.request
    if not (inputs.medication.controlled_substance or inputs.prescription.witness_required):
        return

    if not request.witness_id:
        blocks.append(("witness required", WITNESS_REQUIRED))
        return
    if request.witness_id == request.staff_id:
        blocks.append(("witness must be a different staff member", WITNESS_NOT_DISTINCT))
        return

    witness = inputs.context.witness
    if SOURCE_WITNESS in inputs.context.unavailable or witness is None:
        blocks.append((unavailable_reason(inputs, SOURCE_WITNESS), WITNESS_UNKNOWN))
        return
    if not witness.active or not rbac.check_permission(witness.role, rbac.WITNESS_CONTROLLED):
        blocks.append((f"witness {witness.staff_id} is not qualified to witness", WITNESS_UNQUALIFIED))


def verify_authorization(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.AUTHORIZATION, SOURCE_PRESCRIPTION, SOURCE_MEDICATION)
    if blocked:
        return blocked

    blocks: list[tuple[str, str]] = []
    _check_prescription(inputs, blocks)
    _check_staff(inputs, blocks)
    _check_witness(inputs, blocks)
    return combine(Stage.AUTHORIZATION, blocks, [])
