"""Stage 1: resident identity verification.

The resident record must be corroborated by at least ``min_identifiers``
independent identifiers confirmed at the bedside.  A presented identifier
that contradicts the record is a hard stop regardless of how many others
match.
"""

from __future__ import annotations

import re

from medgate.models import Stage, StageVerdict, normalize_text
from medgate.stages.base import SOURCE_RESIDENT, StageInputs, require

IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
INSUFFICIENT_IDENTIFIERS = "INSUFFICIENT_IDENTIFIERS"


def _normalize_health_id(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def verify_identity(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.IDENTITY, SOURCE_RESIDENT)
    if blocked:
        return blocked

    resident = inputs.resident
    request = inputs.request
    if resident.resident_id != request.resident_id:
        return StageVerdict.block(
            Stage.IDENTITY,
            f"resident record '{resident.resident_id}' does not match request '{request.resident_id}'",
            IDENTITY_MISMATCH,
        )

    presented = request.presented_identifiers
    corroborated: list[str] = []
    contradicted: list[str] = []

    if presented.national_health_id is not None:
        if _normalize_health_id(presented.national_health_id) == _normalize_health_id(resident.national_health_id):
            corroborated.append("national health id")
        else:
            contradicted.append("national health id")

    if presented.date_of_birth is not None:
        if presented.date_of_birth == resident.date_of_birth:
            corroborated.append("date of birth")
        else:
            contradicted.append("date of birth")

    if presented.full_name is not None:
        if normalize_text(presented.full_name) == normalize_text(resident.full_name):
            corroborated.append("full name")
        else:
            contradicted.append("full name")

    if contradicted:
        return StageVerdict.block(
            Stage.IDENTITY,
            f"identifier mismatch: {', '.join(contradicted)}",
            IDENTITY_MISMATCH,
        )

    required = inputs.policy.thresholds.min_identifiers
    if len(corroborated) < required:
        return StageVerdict.block(
            Stage.IDENTITY,
            f"only {len(corroborated)} of {required} required identifiers corroborated",
            INSUFFICIENT_IDENTIFIERS,
        )

    return StageVerdict.passed(Stage.IDENTITY, notes=[f"corroborated: {', '.join(corroborated)}"])
