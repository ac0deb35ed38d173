"""Stage 8: clinical appropriateness.

Judgment calls belong with a human reviewer, so inconclusive evidence here
is a warning and never a block.  Only missing data blocks.
"""

from __future__ import annotations

from medgate.models import Stage, StageVerdict, normalize_text
from medgate.stages.base import SOURCE_MEDICATION, SOURCE_PRESCRIPTION, StageInputs, combine, require


def verify_clinical(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.CLINICAL, SOURCE_PRESCRIPTION, SOURCE_MEDICATION)
    if blocked:
        return blocked

    prescription = inputs.prescription
    medication = inputs.medication
    warnings: list[str] = []

    indication = prescription.indication.strip()
    licensed = {normalize_text(i) for i in medication.licensed_indications}
    if not indication:
        warnings.append("no indication documented on prescription")
    elif licensed and normalize_text(indication) not in licensed:
        warnings.append(f"indication '{indication}' not among licensed indications")

    if medication.max_treatment_days is not None and prescription.start_date is not None:
        day = (inputs.request.attempt_timestamp.date() - prescription.start_date).days + 1
        if day > medication.max_treatment_days:
            warnings.append(
                f"treatment day {day} exceeds recommended {medication.max_treatment_days}-day course"
            )

    return combine(Stage.CLINICAL, [], warnings)
