"""
Core data models for the MedGate verification pipeline.

Every model here is an immutable value.  Snapshots are read-only projections
supplied by external directories (resident directory, medication catalog,
prescription store, staff directory) and are fetched fresh for every
administration attempt -- clinical state changes between rounds, so nothing
is cached across attempts.

``StageVerdict`` and ``VerificationOutcome`` are produced by the pipeline.
``AdministrationResult`` is what the rest of the application receives.
"""

from __future__ import annotations

import enum
import math
import uuid
from datetime import date
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Route(str, enum.Enum):
    """Routes of administration recognised by the route check."""

    ORAL = "ORAL"
    SUBLINGUAL = "SUBLINGUAL"
    BUCCAL = "BUCCAL"
    ENTERAL_TUBE = "ENTERAL_TUBE"
    TOPICAL = "TOPICAL"
    TRANSDERMAL = "TRANSDERMAL"
    INHALED = "INHALED"
    NASAL = "NASAL"
    OPHTHALMIC = "OPHTHALMIC"
    OTIC = "OTIC"
    RECTAL = "RECTAL"
    SUBCUTANEOUS = "SUBCUTANEOUS"
    INTRAMUSCULAR = "INTRAMUSCULAR"
    INTRAVENOUS = "INTRAVENOUS"


class Stage(str, enum.Enum):
    """The ten verification stages, in evaluation order."""

    IDENTITY = "IDENTITY"
    MEDICATION = "MEDICATION"
    DOSE = "DOSE"
    ROUTE = "ROUTE"
    TIMING = "TIMING"
    ALLERGY = "ALLERGY"
    INTERACTION = "INTERACTION"
    CLINICAL = "CLINICAL"
    AUTHORIZATION = "AUTHORIZATION"
    AGGREGATION = "AGGREGATION"

    @property
    def number(self) -> int:
        """1-based position of the stage in the pipeline."""
        return list(Stage).index(self) + 1


class VerdictStatus(str, enum.Enum):
    """Outcome of a single stage.

    * ``PASS``  -- no concern found.
    * ``WARN``  -- concern that staff must see, but not a hard stop.
    * ``BLOCK`` -- administration must not proceed.
    """

    PASS = "PASS"
    WARN = "WARN"
    BLOCK = "BLOCK"


class Decision(str, enum.Enum):
    """Aggregate decision of a verification run."""

    PROCEED = "PROCEED"
    BLOCKED = "BLOCKED"


class Disposition(str, enum.Enum):
    """Final disposition of an administration attempt.

    ``ABORTED`` records an attempt that verified cleanly but was not given
    (e.g. the resident refused at the point of administration).
    """

    ADMINISTERED = "ADMINISTERED"
    BLOCKED = "BLOCKED"
    ABORTED = "ABORTED"


class OmissionCode(str, enum.Enum):
    """Standard MAR omission codes recorded when a verified dose is not given."""

    REFUSED = "01"
    AWAY_FROM_HOME = "02"
    NOT_AVAILABLE = "03"
    WITHHELD = "04"
    NIL_BY_MOUTH = "05"
    UNABLE_TO_TAKE = "06"
    ASLEEP = "07"
    DIFFERENT_ROUTE = "08"
    DIFFERENT_TIME = "09"
    OTHER = "10"


class InteractionSeverity(str, enum.Enum):
    """Pairwise drug interaction severity, least to most severe."""

    NONE = "NONE"
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    CONTRAINDICATED = "CONTRAINDICATED"


class AllergySeverity(str, enum.Enum):
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"
    ANAPHYLAXIS = "ANAPHYLAXIS"


class Role(str, enum.Enum):
    """Staff roles used for role-based qualification checks.

    ``AUDITOR`` has no clinical permissions; it exists so compliance staff
    can be represented in the staff directory.
    """

    CARE_ASSISTANT = "CARE_ASSISTANT"
    SENIOR_CARER = "SENIOR_CARER"
    REGISTERED_NURSE = "REGISTERED_NURSE"
    PHARMACIST = "PHARMACIST"
    MANAGER = "MANAGER"
    AUDITOR = "AUDITOR"


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

# Mass units normalised to milligrams.
_MG_FACTORS: dict[str, float] = {
    "g": 1000.0,
    "mg": 1.0,
    "mcg": 0.001,
    "microgram": 0.001,
    "micrograms": 0.001,
    "ug": 0.001,
}


class Dose(BaseModel):
    """A quantity of medication, e.g. ``500 mg`` or ``5 ml``."""

    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., gt=0, description="Numeric quantity.")
    unit: str = Field(..., min_length=1, description="Unit, e.g. 'mg', 'g', 'mcg', 'ml', 'tablet'.")

    @property
    def normalized_unit(self) -> str:
        return self.unit.strip().lower()

    def to_mg(self) -> Optional[float]:
        """Return the dose in milligrams, or None for non-mass units."""
        factor = _MG_FACTORS.get(self.normalized_unit)
        if factor is None:
            return None
        return self.amount * factor

    def same_quantity(self, other: Dose) -> bool:
        """Whether two doses describe the same amount of drug."""
        mine, theirs = self.to_mg(), other.to_mg()
        if mine is not None and theirs is not None:
            return math.isclose(mine, theirs, rel_tol=1e-9)
        return (
            self.normalized_unit == other.normalized_unit
            and math.isclose(self.amount, other.amount, rel_tol=1e-9)
        )

    def __str__(self) -> str:
        return f"{self.amount:g} {self.unit}"


def normalize_text(value: str) -> str:
    """Lower-case and collapse whitespace for identifier comparisons."""
    return " ".join(value.lower().split())


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class PresentedIdentifiers(BaseModel):
    """Identifiers confirmed by staff at the bedside.

    Only the identifiers actually checked should be filled in; each one
    that matches the resident record counts as an independent
    corroboration.
    """

    model_config = ConfigDict(frozen=True)

    national_health_id: Optional[str] = Field(default=None, description="National health identifier (e.g. NHS number).")
    date_of_birth: Optional[date] = Field(default=None)
    full_name: Optional[str] = Field(default=None)


class MedicationLabel(BaseModel):
    """What staff read off the medication pack being administered."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    strength: str = Field(default="")
    form: str = Field(default="")
    manufacturer: str = Field(default="")
    batch_number: str = Field(default="")


class AdministrationRequest(BaseModel):
    """A single attempt to administer a dose.  Created per attempt by the
    caller and never mutated."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier of this attempt; exactly one audit entry carries it.",
    )
    home_id: str = Field(
        default="default",
        min_length=1,
        description="Care home the attempt belongs to; selects the verification policy.",
    )
    resident_id: str = Field(..., min_length=1)
    medication_id: str = Field(..., min_length=1)
    prescription_id: str = Field(..., min_length=1)
    staff_id: str = Field(..., min_length=1, description="Staff member administering the dose.")
    witness_id: Optional[str] = Field(
        default=None,
        description="Second staff member co-verifying a controlled drug administration.",
    )
    scheduled_time: AwareDatetime = Field(..., description="Time the dose is due per the MAR.")
    claimed_dose: Dose
    claimed_route: Route
    attempt_timestamp: AwareDatetime = Field(..., description="Time of the attempt; all timing checks use this clock.")
    presented_identifiers: PresentedIdentifiers = Field(default_factory=PresentedIdentifiers)
    presented_label: MedicationLabel
    barcode_verified: bool = Field(
        default=False,
        description="Whether the pack barcode was scanned and matched the dispensed item.",
    )


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

class Allergy(BaseModel):
    model_config = ConfigDict(frozen=True)

    allergen: str = Field(..., min_length=1, description="Substance or drug class, e.g. 'penicillin'.")
    severity: AllergySeverity = Field(default=AllergySeverity.MODERATE)
    reaction: str = Field(default="")


class ResidentSnapshot(BaseModel):
    """Read-only projection of a resident supplied by the resident directory."""

    model_config = ConfigDict(frozen=True)

    resident_id: str
    national_health_id: str
    full_name: str
    date_of_birth: date
    allergies: list[Allergy] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list, description="Active medical conditions.")
    active_medication_ids: list[str] = Field(default_factory=list)
    renal_impairment: bool = False
    hepatic_impairment: bool = False
    weight_kg: Optional[float] = Field(default=None, gt=0)
    can_swallow: bool = True
    has_vascular_access: bool = False
    has_enteral_tube: bool = False

    def age_on(self, when: date) -> int:
        """Age in whole years on the given date."""
        years = when.year - self.date_of_birth.year
        if (when.month, when.day) < (self.date_of_birth.month, self.date_of_birth.day):
            years -= 1
        return years


class MedicationSnapshot(BaseModel):
    """Read-only projection of a catalog entry for the dispensed item."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    canonical_name: str
    generic_name: str
    strength: str = ""
    form: str = ""
    manufacturer: str = ""
    batch_number: str = ""
    expiry_date: Optional[date] = None
    recalled: bool = False
    drug_class: str = Field(default="", description="Pharmacological class, e.g. 'penicillins'.")
    controlled_substance: bool = False
    lasa_names: list[str] = Field(
        default_factory=list,
        description="Look-alike/sound-alike partner names for this medication.",
    )
    max_single_dose: Optional[Dose] = None
    max_daily_dose: Optional[Dose] = None
    max_dose_per_kg: Optional[Dose] = Field(default=None, description="Per-administration ceiling per kg body weight.")
    min_age_years: Optional[int] = Field(default=None, ge=0)
    renal_adjustment: bool = Field(default=False, description="Dose needs review in renal impairment.")
    hepatic_adjustment: bool = Field(default=False, description="Dose needs review in hepatic impairment.")
    contraindicated_conditions: list[str] = Field(default_factory=list)
    cautioned_conditions: list[str] = Field(default_factory=list)
    licensed_indications: list[str] = Field(default_factory=list)
    max_treatment_days: Optional[int] = Field(default=None, gt=0)


class PrescriptionSnapshot(BaseModel):
    """The active prescription the attempt is made against."""

    model_config = ConfigDict(frozen=True)

    prescription_id: str
    resident_id: str
    medication_id: str
    dose: Dose
    route: Route
    frequency_hours: float = Field(..., gt=0, description="Nominal interval between doses, e.g. 12 for twice daily.")
    min_interval_hours: Optional[float] = Field(
        default=None,
        gt=0,
        description="Explicit minimum inter-dose interval; derived from frequency when absent.",
    )
    prescriber_id: str
    prescriber_role: str = Field(..., description="e.g. 'gp', 'consultant', 'nurse_prescriber'.")
    valid_from: AwareDatetime
    valid_until: Optional[AwareDatetime] = None
    special_instructions: str = ""
    witness_required: bool = False
    indication: str = ""
    start_date: Optional[date] = None


class StaffSnapshot(BaseModel):
    """Read-only projection of a staff member from the staff directory."""

    model_config = ConfigDict(frozen=True)

    staff_id: str
    role: Role
    active: bool = True
    competency_valid_until: Optional[date] = Field(
        default=None,
        description="Expiry of the staff member's medication administration competency.",
    )


class Interaction(BaseModel):
    """One pairwise interaction returned by the interaction database."""

    model_config = ConfigDict(frozen=True)

    other_medication_id: str
    other_medication_name: str = ""
    severity: InteractionSeverity
    description: str = ""
    management: str = Field(default="", description="Documented management strategy, if any.")


class PriorAdministration(BaseModel):
    """A dose previously administered for the same resident/medication pair."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    administered_at: AwareDatetime
    dose: Dose


# ---------------------------------------------------------------------------
# Verdicts and outcomes
# ---------------------------------------------------------------------------

class StageVerdict(BaseModel):
    """Result of one stage.  Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    status: VerdictStatus
    reason: str = ""
    code: Optional[str] = Field(default=None, description="Machine-readable block code.")
    notes: tuple[str, ...] = Field(default=(), description="Advisory details that do not change the status.")

    @model_validator(mode="after")
    def _block_needs_code(self) -> StageVerdict:
        if self.status == VerdictStatus.BLOCK and not self.code:
            raise ValueError("BLOCK verdicts require a code")
        if self.status != VerdictStatus.PASS and not self.reason:
            raise ValueError(f"{self.status.value} verdicts require a reason")
        return self

    @classmethod
    def passed(cls, stage: Stage, notes: list[str] | None = None) -> StageVerdict:
        return cls(stage=stage, status=VerdictStatus.PASS, notes=tuple(notes or ()))

    @classmethod
    def warn(cls, stage: Stage, reason: str, notes: list[str] | None = None) -> StageVerdict:
        return cls(stage=stage, status=VerdictStatus.WARN, reason=reason, notes=tuple(notes or ()))

    @classmethod
    def block(cls, stage: Stage, reason: str, code: str, notes: list[str] | None = None) -> StageVerdict:
        return cls(stage=stage, status=VerdictStatus.BLOCK, reason=reason, code=code, notes=tuple(notes or ()))

    @property
    def is_block(self) -> bool:
        return self.status == VerdictStatus.BLOCK


class VerificationOutcome(BaseModel):
    """Ordered verdicts of all ten stages plus the aggregate decision."""

    model_config = ConfigDict(frozen=True)

    verdicts: tuple[StageVerdict, ...]
    decision: Decision
    confidence_score: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> VerificationOutcome:
        stages = [v.stage for v in self.verdicts]
        if stages != list(Stage):
            raise ValueError("verdicts must cover all ten stages in pipeline order")
        if self.decision == Decision.PROCEED and any(v.is_block for v in self.verdicts):
            raise ValueError("PROCEED is not allowed when any stage blocks")
        return self

    def verdict_for(self, stage: Stage) -> StageVerdict:
        return self.verdicts[stage.number - 1]

    @property
    def blocking_verdicts(self) -> list[StageVerdict]:
        return [v for v in self.verdicts if v.is_block]

    @property
    def warnings(self) -> list[StageVerdict]:
        return [v for v in self.verdicts if v.status == VerdictStatus.WARN]


class Omission(BaseModel):
    """Why a verified dose was not given (refusal or other omission)."""

    model_config = ConfigDict(frozen=True)

    code: OmissionCode = Field(default=OmissionCode.REFUSED)
    reason: str = Field(default="", description="Free-text reason, e.g. the resident's own words.")
    follow_up_required: bool = False


class AdministrationResult(BaseModel):
    """What ``attempt_administration`` hands back to the application."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    disposition: Disposition
    outcome: VerificationOutcome
    audit_entry_id: str
    omission: Optional[Omission] = Field(
        default=None,
        description="Refusal or omission details; set only for ABORTED attempts.",
    )

    @model_validator(mode="after")
    def _check_disposition(self) -> AdministrationResult:
        if self.disposition == Disposition.ADMINISTERED and self.outcome.decision != Decision.PROCEED:
            raise ValueError("an ADMINISTERED result requires a PROCEED outcome")
        if self.omission is not None and self.disposition != Disposition.ABORTED:
            raise ValueError("omission details are only recorded for ABORTED attempts")
        return self

    @property
    def blocking_reasons(self) -> list[str]:
        """Human-readable ``"<stage>: <reason>"`` lines for every block."""
        return [f"{v.stage.value}: {v.reason}" for v in self.outcome.blocking_verdicts]
