"""Stage 3: dose verification.

The claimed dose must equal the prescribed dose and stay within the
catalog's single-dose, per-kg, age and daily ceilings.  The daily total is
the claimed dose plus every dose already given to the resident on the same
calendar day.  Renal and hepatic adjustment cases are surfaced as warnings
for clinical judgment.
"""

from __future__ import annotations

from typing import Optional

from medgate.models import Dose, Stage, StageVerdict
from medgate.stages.base import (
    SOURCE_HISTORY,
    SOURCE_MEDICATION,
    SOURCE_PRESCRIPTION,
    SOURCE_RESIDENT,
    StageInputs,
    combine,
    require,
)

DOSE_MISMATCH = "DOSE_MISMATCH"
SINGLE_DOSE_EXCEEDED = "SINGLE_DOSE_EXCEEDED"
WEIGHT_BOUND_EXCEEDED = "WEIGHT_BOUND_EXCEEDED"
AGE_BOUND = "AGE_BOUND"
MAX_DAILY_DOSE = "MAX_DAILY_DOSE"


def total_dose(doses: list[Dose]) -> Optional[Dose]:
    """Sum doses, converting mass units to mg.  None if units are mixed."""
    if not doses:
        return None
    in_mg = [d.to_mg() for d in doses]
    if all(v is not None for v in in_mg):
        return Dose(amount=sum(in_mg), unit="mg")
    units = {d.normalized_unit for d in doses}
    if len(units) == 1:
        return Dose(amount=sum(d.amount for d in doses), unit=doses[0].unit)
    return None


def exceeds(dose: Dose, limit: Dose) -> Optional[bool]:
    """Whether ``dose`` is above ``limit``; None when units cannot be compared."""
    dose_mg, limit_mg = dose.to_mg(), limit.to_mg()
    if dose_mg is not None and limit_mg is not None:
        return dose_mg > limit_mg + 1e-9
    if dose.normalized_unit == limit.normalized_unit:
        return dose.amount > limit.amount + 1e-9
    return None


def verify_dose(inputs: StageInputs) -> StageVerdict:
    blocked = require(
        inputs, Stage.DOSE,
        SOURCE_PRESCRIPTION, SOURCE_MEDICATION, SOURCE_RESIDENT, SOURCE_HISTORY,
    )
    if blocked:
        return blocked

    request = inputs.request
    claimed = request.claimed_dose
    prescription = inputs.prescription
    medication = inputs.medication
    resident = inputs.resident

    if not claimed.same_quantity(prescription.dose):
        return StageVerdict.block(
            Stage.DOSE,
            f"claimed dose {claimed} does not match prescribed {prescription.dose}",
            DOSE_MISMATCH,
        )

    blocks: list[tuple[str, str]] = []
    warnings: list[str] = []

    # --- Single-dose ceiling ---
    if medication.max_single_dose is not None:
        over = exceeds(claimed, medication.max_single_dose)
        if over is None:
            warnings.append(f"cannot compare {claimed} with single-dose limit {medication.max_single_dose}")
        elif over:
            blocks.append((
                f"dose {claimed} exceeds single-dose limit {medication.max_single_dose}",
                SINGLE_DOSE_EXCEEDED,
            ))

    # --- Weight-based ceiling ---
    if medication.max_dose_per_kg is not None:
        if resident.weight_kg is None:
            warnings.append("weight not recorded; per-kg limit not checked")
        else:
            limit = Dose(
                amount=medication.max_dose_per_kg.amount * resident.weight_kg,
                unit=medication.max_dose_per_kg.unit,
            )
            over = exceeds(claimed, limit)
            if over is None:
                warnings.append(f"cannot compare {claimed} with weight-based limit {limit}")
            elif over:
                blocks.append((
                    f"dose {claimed} exceeds weight-based limit {limit} at {resident.weight_kg:g} kg",
                    WEIGHT_BOUND_EXCEEDED,
                ))

    # --- Age bound ---
    if medication.min_age_years is not None:
        age = resident.age_on(request.attempt_timestamp.date())
        if age < medication.min_age_years:
            blocks.append((
                f"resident aged {age} is below minimum age {medication.min_age_years}",
                AGE_BOUND,
            ))

    # --- Maximum daily dose ---
    if medication.max_daily_dose is not None:
        today = request.attempt_timestamp.date()
        given_today = [
            prior.dose
            for prior in inputs.context.prior_administrations
            if prior.administered_at.date() == today
        ]
        total = total_dose(given_today + [claimed])
        over = exceeds(total, medication.max_daily_dose) if total is not None else None
        if over is None:
            warnings.append("daily total could not be computed across mixed units")
        elif over:
            blocks.append((
                f"daily total {total} would exceed maximum daily dose {medication.max_daily_dose}",
                MAX_DAILY_DOSE,
            ))

    # --- Renal / hepatic adjustment ---
    if medication.renal_adjustment and resident.renal_impairment:
        warnings.append("renal impairment: confirm dose adjustment")
    if medication.hepatic_adjustment and resident.hepatic_impairment:
        warnings.append("hepatic impairment: confirm dose adjustment")

    return combine(Stage.DOSE, blocks, warnings)
