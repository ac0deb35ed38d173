"""Shared inputs and helpers for the stage verifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from medgate.config import DEFAULT_POLICY, VerificationPolicy
from medgate.models import (
    AdministrationRequest,
    Interaction,
    MedicationSnapshot,
    PrescriptionSnapshot,
    PriorAdministration,
    ResidentSnapshot,
    Stage,
    StageVerdict,
    StaffSnapshot,
)

# Data sources fetched by the loader before any stage runs.
SOURCE_RESIDENT = "resident"
SOURCE_MEDICATION = "medication"
SOURCE_PRESCRIPTION = "prescription"
SOURCE_INTERACTIONS = "interactions"
SOURCE_HISTORY = "history"
SOURCE_STAFF = "staff"
SOURCE_WITNESS = "witness"

SOURCE_LABELS = {
    SOURCE_RESIDENT: "resident",
    SOURCE_MEDICATION: "medication",
    SOURCE_PRESCRIPTION: "prescription",
    SOURCE_INTERACTIONS: "interaction",
    SOURCE_HISTORY: "administration history",
    SOURCE_STAFF: "staff member",
    SOURCE_WITNESS: "witness",
}

DATA_UNAVAILABLE = "DATA_UNAVAILABLE"


class VerificationContext(BaseModel):
    """Everything besides the three core snapshots that stages read.

    Built by the data-loading step.  A source that could not be obtained is
    ``None`` here and has a human-readable reason in ``unavailable``.
    """

    model_config = ConfigDict(frozen=True)

    policy: VerificationPolicy = Field(default_factory=lambda: DEFAULT_POLICY.model_copy(deep=True))
    interactions: Optional[list[Interaction]] = None
    prior_administrations: Optional[list[PriorAdministration]] = None
    staff: Optional[StaffSnapshot] = None
    witness: Optional[StaffSnapshot] = None
    unavailable: dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class StageInputs:
    """Bundle handed to every stage function."""

    request: AdministrationRequest
    resident: Optional[ResidentSnapshot]
    medication: Optional[MedicationSnapshot]
    prescription: Optional[PrescriptionSnapshot]
    context: VerificationContext

    @property
    def policy(self) -> VerificationPolicy:
        return self.context.policy

    def source(self, name: str):
        """Return the loaded value for a data source, or None."""
        if name == SOURCE_RESIDENT:
            return self.resident
        if name == SOURCE_MEDICATION:
            return self.medication
        if name == SOURCE_PRESCRIPTION:
            return self.prescription
        if name == SOURCE_INTERACTIONS:
            return self.context.interactions
        if name == SOURCE_HISTORY:
            return self.context.prior_administrations
        if name == SOURCE_STAFF:
            return self.context.staff
        if name == SOURCE_WITNESS:
            return self.context.witness
        raise KeyError(f"Unknown data source '{name}'")


def unavailable_reason(inputs: StageInputs, source: str) -> str:
    return inputs.context.unavailable.get(
        source, f"{SOURCE_LABELS[source]} not available"
    )


def require(inputs: StageInputs, stage: Stage, *sources: str) -> Optional[StageVerdict]:
    """Fail closed: BLOCK if any required source is missing, else None."""
    for source in sources:
        if source in inputs.context.unavailable or inputs.source(source) is None:
            return StageVerdict.block(
                stage, unavailable_reason(inputs, source), DATA_UNAVAILABLE
            )
    return None


def combine(
    stage: Stage,
    blocks: list[tuple[str, str]],
    warnings: list[str],
    notes: list[str] | None = None,
) -> StageVerdict:
    """Fold collected findings into one verdict.

    ``blocks`` holds ``(reason, code)`` pairs; the first code wins.
    """
    if blocks:
        reason = "; ".join(reason for reason, _ in blocks)
        return StageVerdict.block(stage, reason, blocks[0][1], notes=warnings + (notes or []))
    if warnings:
        return StageVerdict.warn(stage, "; ".join(warnings), notes=notes)
    return StageVerdict.passed(stage, notes=notes)
