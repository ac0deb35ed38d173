"""
External collaborator ports and in-memory implementations.

The verification pipeline consumes data from the resident directory, the
medication catalog, the prescription store, the drug interaction database
and the staff directory.  Each is described here as a ``Protocol``; the
surrounding application supplies real adapters (database, FHIR, HTTP).

The ``InMemory*`` classes back the example script and the test suite.
Lookups that find nothing raise ``NotFoundError``; the data loader turns
that into an unavailable source rather than an exception.
"""

from __future__ import annotations

from typing import Protocol

from medgate.models import (
    Interaction,
    MedicationSnapshot,
    PrescriptionSnapshot,
    ResidentSnapshot,
    StaffSnapshot,
)


class NotFoundError(LookupError):
    """A collaborator has no record for the requested key."""


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class ResidentDirectory(Protocol):
    def get_resident_snapshot(self, resident_id: str) -> ResidentSnapshot:
        ...


class MedicationCatalog(Protocol):
    def get_medication_snapshot(self, medication_id: str) -> MedicationSnapshot:
        ...


class PrescriptionStore(Protocol):
    def get_active_prescription(self, resident_id: str, medication_id: str) -> PrescriptionSnapshot:
        ...


class InteractionDatabase(Protocol):
    def check_interactions(self, medication_id: str, active_medication_ids: list[str]) -> list[Interaction]:
        ...


class StaffDirectory(Protocol):
    def get_staff_snapshot(self, staff_id: str) -> StaffSnapshot:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryResidentDirectory:
    def __init__(self, residents: list[ResidentSnapshot] | None = None) -> None:
        self._residents = {r.resident_id: r for r in residents or []}

    def add(self, resident: ResidentSnapshot) -> None:
        self._residents[resident.resident_id] = resident

    def get_resident_snapshot(self, resident_id: str) -> ResidentSnapshot:
        try:
            return self._residents[resident_id]
        except KeyError:
            raise NotFoundError(f"resident {resident_id} not found") from None


class InMemoryMedicationCatalog:
    def __init__(self, medications: list[MedicationSnapshot] | None = None) -> None:
        self._medications = {m.medication_id: m for m in medications or []}

    def add(self, medication: MedicationSnapshot) -> None:
        self._medications[medication.medication_id] = medication

    def get_medication_snapshot(self, medication_id: str) -> MedicationSnapshot:
        try:
            return self._medications[medication_id]
        except KeyError:
            raise NotFoundError(f"medication {medication_id} not found") from None


class InMemoryPrescriptionStore:
    """Active prescriptions keyed by (resident_id, medication_id)."""

    def __init__(self, prescriptions: list[PrescriptionSnapshot] | None = None) -> None:
        self._prescriptions: dict[tuple[str, str], PrescriptionSnapshot] = {}
        for prescription in prescriptions or []:
            self.add(prescription)

    def add(self, prescription: PrescriptionSnapshot) -> None:
        self._prescriptions[(prescription.resident_id, prescription.medication_id)] = prescription

    def get_active_prescription(self, resident_id: str, medication_id: str) -> PrescriptionSnapshot:
        try:
            return self._prescriptions[(resident_id, medication_id)]
        except KeyError:
            raise NotFoundError(
                f"no active prescription for resident {resident_id} and medication {medication_id}"
            ) from None


class InMemoryInteractionDatabase:
    """Interactions keyed by medication id.

    Each interaction is registered once and returned for either drug of
    the pair.
    """

    def __init__(self) -> None:
        self._pairs: dict[frozenset[str], tuple[str, str, Interaction]] = {}

    def add(self, medication_id: str, other_medication_id: str, interaction: Interaction,
            medication_name: str = "") -> None:
        self._pairs[frozenset((medication_id, other_medication_id))] = (
            medication_id, medication_name, interaction,
        )

    def check_interactions(self, medication_id: str, active_medication_ids: list[str]) -> list[Interaction]:
        results: list[Interaction] = []
        for other_id in active_medication_ids:
            found = self._pairs.get(frozenset((medication_id, other_id)))
            if found is None or other_id == medication_id:
                continue
            registered_for, registered_name, interaction = found
            if registered_for == medication_id:
                results.append(interaction)
            else:
                # Stored from the other drug's side; point it at that drug.
                results.append(interaction.model_copy(update={
                    "other_medication_id": registered_for,
                    "other_medication_name": registered_name or registered_for,
                }))
        return results


class InMemoryStaffDirectory:
    def __init__(self, staff: list[StaffSnapshot] | None = None) -> None:
        self._staff = {s.staff_id: s for s in staff or []}

    def add(self, staff: StaffSnapshot) -> None:
        self._staff[staff.staff_id] = staff

    def get_staff_snapshot(self, staff_id: str) -> StaffSnapshot:
        try:
            return self._staff[staff_id]
        except KeyError:
            raise NotFoundError(f"staff member {staff_id} not found") from None
