"""
Shared fixtures for the MedGate test suite.

The baseline is scenario 2 of the verification rules: amoxicillin 500 mg
oral twice daily, scheduled at 08:00 and given at 08:05 by a registered
nurse.  With no overrides every stage passes and the attempt proceeds.
Tests derive variants with ``model_copy(update=...)``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from medgate.audit import AuditLog
from medgate.collaborators import (
    InMemoryInteractionDatabase,
    InMemoryMedicationCatalog,
    InMemoryPrescriptionStore,
    InMemoryResidentDirectory,
    InMemoryStaffDirectory,
)
from medgate.models import (
    AdministrationRequest,
    Dose,
    MedicationLabel,
    MedicationSnapshot,
    PrescriptionSnapshot,
    PresentedIdentifiers,
    ResidentSnapshot,
    Role,
    Route,
    StaffSnapshot,
)
from medgate.service import AdministrationService
from medgate.stages.base import StageInputs, VerificationContext

SCHEDULED = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
ATTEMPT_AT = SCHEDULED + timedelta(minutes=5)


@pytest.fixture
def resident() -> ResidentSnapshot:
    return ResidentSnapshot(
        resident_id="res_001",
        national_health_id="943 476 5919",
        full_name="Synthetic Resident A",
        date_of_birth=date(1940, 4, 12),
        active_medication_ids=["med_atorvastatin"],
        weight_kg=68.0,
    )


@pytest.fixture
def medication() -> MedicationSnapshot:
    return MedicationSnapshot(
        medication_id="med_amoxicillin",
        canonical_name="Amoxicillin",
        generic_name="amoxicillin",
        strength="500 mg",
        form="capsule",
        expiry_date=date(2027, 1, 31),
        drug_class="penicillins",
        max_single_dose=Dose(amount=1, unit="g"),
        max_daily_dose=Dose(amount=3, unit="g"),
        licensed_indications=["chest infection", "urinary tract infection"],
        max_treatment_days=7,
    )


@pytest.fixture
def prescription() -> PrescriptionSnapshot:
    return PrescriptionSnapshot(
        prescription_id="rx_001",
        resident_id="res_001",
        medication_id="med_amoxicillin",
        dose=Dose(amount=500, unit="mg"),
        route=Route.ORAL,
        frequency_hours=12,
        prescriber_id="gp_01",
        prescriber_role="gp",
        valid_from=SCHEDULED - timedelta(days=2),
        indication="chest infection",
        start_date=date(2026, 3, 1),
    )


@pytest.fixture
def nurse() -> StaffSnapshot:
    return StaffSnapshot(
        staff_id="rn_01",
        role=Role.REGISTERED_NURSE,
        competency_valid_until=date(2026, 12, 31),
    )


@pytest.fixture
def carer() -> StaffSnapshot:
    return StaffSnapshot(
        staff_id="sc_02",
        role=Role.SENIOR_CARER,
        competency_valid_until=date(2026, 12, 31),
    )


@pytest.fixture
def admin_request() -> AdministrationRequest:
    return AdministrationRequest(
        attempt_id="attempt_001",
        resident_id="res_001",
        medication_id="med_amoxicillin",
        prescription_id="rx_001",
        staff_id="rn_01",
        scheduled_time=SCHEDULED,
        claimed_dose=Dose(amount=500, unit="mg"),
        claimed_route=Route.ORAL,
        attempt_timestamp=ATTEMPT_AT,
        presented_identifiers=PresentedIdentifiers(
            national_health_id="943 476 5919",
            date_of_birth=date(1940, 4, 12),
        ),
        presented_label=MedicationLabel(name="Amoxicillin", strength="500 mg", form="capsule"),
    )


@pytest.fixture
def context(nurse) -> VerificationContext:
    return VerificationContext(interactions=[], prior_administrations=[], staff=nurse)


@pytest.fixture
def make_inputs(admin_request, resident, medication, prescription, context):
    """Build ``StageInputs`` from the baseline, replacing any component."""

    def _make(**overrides) -> StageInputs:
        fields = dict(
            request=admin_request,
            resident=resident,
            medication=medication,
            prescription=prescription,
            context=context,
        )
        fields.update(overrides)
        return StageInputs(**fields)

    return _make


@pytest.fixture
def directories(resident, medication, prescription, nurse, carer):
    """In-memory collaborators seeded with the baseline records."""
    return {
        "residents": InMemoryResidentDirectory([resident]),
        "catalog": InMemoryMedicationCatalog([medication]),
        "prescriptions": InMemoryPrescriptionStore([prescription]),
        "interactions": InMemoryInteractionDatabase(),
        "staff": InMemoryStaffDirectory([nurse, carer]),
    }


@pytest.fixture
def audit_log() -> AuditLog:
    return AuditLog()


@pytest.fixture
def service(directories, audit_log):
    svc = AdministrationService(audit_store=audit_log, **directories)
    yield svc
    svc.close()
