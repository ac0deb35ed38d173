"""
Synthetic Scenario: Morning Medication Round Walkthrough
========================================================

This script demonstrates the MedGate verification pipeline using entirely
synthetic data.  No real resident data, PHI, or PII is used.

The scenario simulates a morning round in a care home:

Steps demonstrated:
  1. Load home policy from YAML
  2. Populate synthetic resident, catalog, prescription and staff records
  3. Administer an on-time dose (ADMINISTERED)
  4. Repeat the attempt seconds later (BLOCKED, minimum interval)
  5. Attempt a cephalosporin for a penicillin-allergic resident (BLOCKED)
  6. Attempt a controlled drug without a witness (BLOCKED)
  7. Resident refuses at the bedside (ABORTED)
  8. Generate a verification report
  9. Export the audit log for inspection

DISCLAIMER: This is a synthetic demonstration.  All outputs support, and do
not replace, the judgement of the staff administering medication.

Usage:
    python -m examples.synthetic_scenario
    # or: python examples/synthetic_scenario.py
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from medgate.audit import AuditLog
from medgate.collaborators import (
    InMemoryInteractionDatabase,
    InMemoryMedicationCatalog,
    InMemoryPrescriptionStore,
    InMemoryResidentDirectory,
    InMemoryStaffDirectory,
)
from medgate.config import PolicyRegistry, VerificationPolicy, load_policies_from_yaml
from medgate.models import (
    AdministrationRequest,
    Allergy,
    AllergySeverity,
    Dose,
    Interaction,
    InteractionSeverity,
    MedicationLabel,
    MedicationSnapshot,
    Omission,
    OmissionCode,
    PrescriptionSnapshot,
    PresentedIdentifiers,
    ResidentSnapshot,
    Role,
    Route,
    StaffSnapshot,
)
from medgate.report import generate_verification_report
from medgate.service import AdministrationService

HOME_ID = "oakfield"
ROUND_START = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def _show(label: str, result) -> None:
    print(f"{label}: {result.disposition.value} "
          f"(decision={result.outcome.decision.value}, "
          f"confidence={result.outcome.confidence_score:.3f})")
    for reason in result.blocking_reasons:
        print(f"  - {reason}")
    if result.omission is not None:
        print(f"  - omission {result.omission.code.value}: {result.omission.reason}")


def _load_policy() -> PolicyRegistry:
    registry = PolicyRegistry()
    sample_yaml = Path(__file__).parent / "home_policies.yaml"
    if sample_yaml.exists():
        for policy in load_policies_from_yaml(sample_yaml):
            registry.register(policy)
        print(f"Loaded policies for homes: {registry.list_homes()}")
    else:
        # Fallback: create inline policy
        registry.register(VerificationPolicy(home_id=HOME_ID, home_name="Oakfield House (synthetic)"))
        print("Created inline policy for Oakfield House")
    return registry


def _seed_records():
    residents = InMemoryResidentDirectory([
        ResidentSnapshot(
            resident_id="res_001",
            national_health_id="943 476 5919",
            full_name="Synthetic Resident A",
            date_of_birth=date(1938, 5, 14),
            allergies=[Allergy(allergen="penicillin", severity=AllergySeverity.SEVERE, reaction="rash")],
            conditions=["hypertension"],
            active_medication_ids=["med_amlodipine"],
            weight_kg=61.0,
        ),
        ResidentSnapshot(
            resident_id="res_002",
            national_health_id="401 023 2137",
            full_name="Synthetic Resident B",
            date_of_birth=date(1941, 11, 2),
            active_medication_ids=["med_amlodipine"],
            weight_kg=72.5,
        ),
    ])

    catalog = InMemoryMedicationCatalog([
        MedicationSnapshot(
            medication_id="med_paracetamol",
            canonical_name="Paracetamol",
            generic_name="paracetamol",
            strength="500 mg",
            form="tablet",
            expiry_date=date(2027, 6, 30),
            max_single_dose=Dose(amount=1, unit="g"),
            max_daily_dose=Dose(amount=4, unit="g"),
            licensed_indications=["pain", "fever"],
        ),
        MedicationSnapshot(
            medication_id="med_cefalexin",
            canonical_name="Cefalexin",
            generic_name="cefalexin",
            strength="250 mg",
            form="capsule",
            expiry_date=date(2027, 1, 31),
            drug_class="cephalosporins",
            licensed_indications=["urinary tract infection"],
        ),
        MedicationSnapshot(
            medication_id="med_morphine",
            canonical_name="Morphine sulfate oral solution",
            generic_name="morphine",
            strength="10 mg/5 ml",
            form="oral solution",
            expiry_date=date(2027, 2, 28),
            drug_class="opioids",
            controlled_substance=True,
            licensed_indications=["pain"],
        ),
    ])

    prescriptions = InMemoryPrescriptionStore()
    for resident_id, medication_id, dose, indication in (
        ("res_001", "med_paracetamol", Dose(amount=1, unit="g"), "pain"),
        ("res_001", "med_cefalexin", Dose(amount=250, unit="mg"), "urinary tract infection"),
        ("res_002", "med_morphine", Dose(amount=5, unit="mg"), "pain"),
        ("res_002", "med_paracetamol", Dose(amount=500, unit="mg"), "pain"),
    ):
        prescriptions.add(PrescriptionSnapshot(
            prescription_id=f"rx_{resident_id}_{medication_id}",
            resident_id=resident_id,
            medication_id=medication_id,
            dose=dose,
            route=Route.ORAL,
            frequency_hours=6,
            prescriber_id="gp_synthetic_01",
            prescriber_role="gp",
            valid_from=ROUND_START - timedelta(days=3),
            indication=indication,
        ))

    interactions = InMemoryInteractionDatabase()
    interactions.add(
        "med_paracetamol",
        "med_warfarin",
        Interaction(
            other_medication_id="med_warfarin",
            other_medication_name="Warfarin",
            severity=InteractionSeverity.MODERATE,
            description="May enhance anticoagulant effect with regular use.",
        ),
        medication_name="Paracetamol",
    )

    staff = InMemoryStaffDirectory([
        StaffSnapshot(staff_id="rn_01", role=Role.REGISTERED_NURSE, competency_valid_until=date(2026, 12, 31)),
        StaffSnapshot(staff_id="sc_02", role=Role.SENIOR_CARER, competency_valid_until=date(2026, 9, 30)),
    ])
    return residents, catalog, prescriptions, interactions, staff


def _request(resident: ResidentSnapshot, medication: MedicationSnapshot, dose: Dose,
             at: datetime, **overrides) -> AdministrationRequest:
    fields = dict(
        home_id=HOME_ID,
        resident_id=resident.resident_id,
        medication_id=medication.medication_id,
        prescription_id=f"rx_{resident.resident_id}_{medication.medication_id}",
        staff_id="rn_01",
        scheduled_time=ROUND_START,
        claimed_dose=dose,
        claimed_route=Route.ORAL,
        attempt_timestamp=at,
        presented_identifiers=PresentedIdentifiers(
            national_health_id=resident.national_health_id,
            date_of_birth=resident.date_of_birth,
        ),
        presented_label=MedicationLabel(
            name=medication.canonical_name,
            strength=medication.strength,
            form=medication.form,
        ),
        barcode_verified=True,
    )
    fields.update(overrides)
    return AdministrationRequest(**fields)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    _banner("MedGate Synthetic Scenario: Morning Medication Round")
    print("DISCLAIMER: All data in this demo is entirely synthetic.\n")

    # ------------------------------------------------------------------
    # Step 1: Load home policy
    # ------------------------------------------------------------------
    _banner("Step 1: Load Home Policy")
    registry = _load_policy()

    # ------------------------------------------------------------------
    # Step 2: Seed synthetic records
    # ------------------------------------------------------------------
    _banner("Step 2: Seed Synthetic Records")
    residents, catalog, prescriptions, interactions, staff = _seed_records()
    audit_log = AuditLog()
    service = AdministrationService(
        residents, catalog, prescriptions, interactions, staff, audit_log,
        policy_registry=registry,
    )
    resident_a = residents.get_resident_snapshot("res_001")
    resident_b = residents.get_resident_snapshot("res_002")
    paracetamol = catalog.get_medication_snapshot("med_paracetamol")
    cefalexin = catalog.get_medication_snapshot("med_cefalexin")
    morphine = catalog.get_medication_snapshot("med_morphine")
    print("Two residents, three medications, two staff members.")

    try:
        # --------------------------------------------------------------
        # Step 3: On-time administration
        # --------------------------------------------------------------
        _banner("Step 3: On-Time Paracetamol")
        first = _request(resident_a, paracetamol, Dose(amount=1, unit="g"), ROUND_START + timedelta(minutes=5))
        result = service.attempt_administration(first)
        _show("08:05 paracetamol 1 g", result)

        # --------------------------------------------------------------
        # Step 4: Repeat attempt two seconds later
        # --------------------------------------------------------------
        _banner("Step 4: Repeat Attempt (Double Dose)")
        repeat = _request(
            resident_a, paracetamol, Dose(amount=1, unit="g"),
            ROUND_START + timedelta(minutes=5, seconds=2),
            staff_id="sc_02",
        )
        _show("08:05:02 paracetamol 1 g", service.attempt_administration(repeat))

        # --------------------------------------------------------------
        # Step 5: Cross-allergy
        # --------------------------------------------------------------
        _banner("Step 5: Cefalexin for a Penicillin-Allergic Resident")
        cross = _request(resident_a, cefalexin, Dose(amount=250, unit="mg"), ROUND_START + timedelta(minutes=7))
        blocked = service.attempt_administration(cross)
        _show("08:07 cefalexin 250 mg", blocked)

        # --------------------------------------------------------------
        # Step 6: Controlled drug without witness
        # --------------------------------------------------------------
        _banner("Step 6: Controlled Drug Without Witness")
        no_witness = _request(resident_b, morphine, Dose(amount=5, unit="mg"), ROUND_START + timedelta(minutes=10))
        _show("08:10 morphine 5 mg, no witness", service.attempt_administration(no_witness))

        witnessed = _request(
            resident_b, morphine, Dose(amount=5, unit="mg"), ROUND_START + timedelta(minutes=12),
            witness_id="sc_02",
        )
        _show("08:12 morphine 5 mg, witnessed", service.attempt_administration(witnessed))

        # --------------------------------------------------------------
        # Step 7: Refusal at the bedside
        # --------------------------------------------------------------
        _banner("Step 7: Resident Refuses")
        refused = _request(resident_b, paracetamol, Dose(amount=500, unit="mg"), ROUND_START + timedelta(minutes=14))
        _show(
            "08:14 paracetamol 500 mg, refused",
            service.attempt_administration(
            refused,
            confirm=lambda outcome: Omission(code=OmissionCode.REFUSED, reason="does not want tablets before breakfast"),
        ),
        )

        # --------------------------------------------------------------
        # Step 8: Verification report
        # --------------------------------------------------------------
        _banner("Step 8: Verification Report")
        report = generate_verification_report(cross, blocked)
        print(json.dumps(report.to_dict(), indent=2, default=str))
    finally:
        service.close()

    # ------------------------------------------------------------------
    # Step 9: Export audit log
    # ------------------------------------------------------------------
    _banner("Step 9: Audit Log Export (Inspection)")

    export = audit_log.export_for_review(home_id=HOME_ID)
    print("Export metadata:")
    print(json.dumps(export["export_metadata"], indent=2))

    valid, broken_at = audit_log.verify_chain()
    print(f"\nFull chain verification: valid={valid}, broken_at={broken_at}")

    _banner("Scenario Complete")
    print("All data was synthetic. No real residents, PHI, or PII.")


if __name__ == "__main__":
    main()
