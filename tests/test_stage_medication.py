"""
Tests for stage 2 -- medication identity, batch status and LASA checks.
"""

from datetime import date

import pytest

from medgate.models import MedicationLabel, Stage, VerdictStatus
from medgate.stages.base import DATA_UNAVAILABLE, VerificationContext
from medgate.stages.medication import (
    BATCH_MISMATCH,
    EXPIRED,
    LABEL_MISMATCH,
    LASA_CONFUSION,
    LASA_UNCONFIRMED,
    MEDICATION_MISMATCH,
    NAME_MISMATCH,
    RECALLED,
    name_similarity,
    verify_medication,
)


def _with_label(admin_request, **fields):
    label = MedicationLabel(**{"name": "Amoxicillin", "strength": "500 mg", "form": "capsule", **fields})
    return admin_request.model_copy(update={"presented_label": label})


# ---------------------------------------------------------------------------
# 1. Identity of the pack
# ---------------------------------------------------------------------------

class TestMedicationIdentity:
    def test_matching_label_passes(self, make_inputs):
        verdict = verify_medication(make_inputs())
        assert verdict.stage == Stage.MEDICATION
        assert verdict.status == VerdictStatus.PASS

    def test_generic_name_accepted(self, make_inputs, admin_request):
        request = _with_label(admin_request, name="AMOXICILLIN ")
        assert verify_medication(make_inputs(request=request)).status == VerdictStatus.PASS

    def test_wrong_name_blocks(self, make_inputs, admin_request):
        request = _with_label(admin_request, name="Paracetamol")
        verdict = verify_medication(make_inputs(request=request))
        assert verdict.code == NAME_MISMATCH

    def test_catalog_entry_for_other_medication_blocks(self, make_inputs, medication):
        other = medication.model_copy(update={"medication_id": "med_other"})
        assert verify_medication(make_inputs(medication=other)).code == MEDICATION_MISMATCH

    def test_strength_mismatch_blocks(self, make_inputs, admin_request):
        request = _with_label(admin_request, strength="250 mg")
        verdict = verify_medication(make_inputs(request=request))
        assert verdict.code == LABEL_MISMATCH
        assert "strength" in verdict.reason

    def test_batch_mismatch_blocks(self, make_inputs, admin_request, medication):
        med = medication.model_copy(update={"batch_number": "B123"})
        request = _with_label(admin_request, batch_number="B999")
        assert verify_medication(make_inputs(request=request, medication=med)).code == BATCH_MISMATCH

    def test_not_found_blocks(self, make_inputs):
        ctx = VerificationContext(unavailable={"medication": "medication not found"})
        verdict = verify_medication(make_inputs(medication=None, context=ctx))
        assert verdict.code == DATA_UNAVAILABLE
        assert verdict.reason == "medication not found"


# ---------------------------------------------------------------------------
# 2. Recall and expiry
# ---------------------------------------------------------------------------

class TestBatchStatus:
    def test_recalled_blocks(self, make_inputs, medication):
        med = medication.model_copy(update={"recalled": True})
        assert verify_medication(make_inputs(medication=med)).code == RECALLED

    def test_expired_blocks(self, make_inputs, medication):
        med = medication.model_copy(update={"expiry_date": date(2026, 3, 1)})
        verdict = verify_medication(make_inputs(medication=med))
        assert verdict.code == EXPIRED
        assert "2026-03-01" in verdict.reason

    def test_expiring_today_passes(self, make_inputs, medication):
        med = medication.model_copy(update={"expiry_date": date(2026, 3, 2)})
        assert verify_medication(make_inputs(medication=med)).status == VerdictStatus.PASS

    def test_missing_expiry_warns(self, make_inputs, medication):
        med = medication.model_copy(update={"expiry_date": None})
        verdict = verify_medication(make_inputs(medication=med))
        assert verdict.status == VerdictStatus.WARN
        assert "expiry" in verdict.reason


# ---------------------------------------------------------------------------
# 3. Look-alike / sound-alike
# ---------------------------------------------------------------------------

class TestLASA:
    @pytest.fixture
    def hydroxyzine(self, medication):
        return medication.model_copy(update={
            "medication_id": "med_hydroxyzine",
            "canonical_name": "Hydroxyzine",
            "generic_name": "hydroxyzine",
            "strength": "",
            "form": "",
            "lasa_names": ["Hydralazine"],
        })

    def test_similarity_is_symmetric_and_case_insensitive(self):
        assert name_similarity("Hydroxyzine", "hydroxyzine") == 1.0
        assert name_similarity("Hydroxyzine", "Hydralazine") == pytest.approx(
            name_similarity("hydralazine", "HYDROXYZINE")
        )

    def test_claimed_name_of_lasa_partner_blocks(self, make_inputs, admin_request, hydroxyzine):
        request = admin_request.model_copy(update={
            "medication_id": "med_hydroxyzine",
            "presented_label": MedicationLabel(name="Hydralazine"),
        })
        verdict = verify_medication(make_inputs(request=request, medication=hydroxyzine))
        assert verdict.code == LASA_CONFUSION

    def test_close_partner_blocks_without_barcode(self, make_inputs, admin_request, context, hydroxyzine):
        policy = context.policy.model_copy(deep=True)
        policy.thresholds.lasa_warn_similarity = 0.5
        policy.thresholds.lasa_block_similarity = 0.5
        ctx = context.model_copy(update={"policy": policy})
        request = admin_request.model_copy(update={
            "medication_id": "med_hydroxyzine",
            "presented_label": MedicationLabel(name="Hydroxyzine"),
        })
        verdict = verify_medication(make_inputs(request=request, medication=hydroxyzine, context=ctx))
        assert verdict.code == LASA_UNCONFIRMED

        scanned = request.model_copy(update={"barcode_verified": True})
        verdict = verify_medication(make_inputs(request=scanned, medication=hydroxyzine, context=ctx))
        assert verdict.status == VerdictStatus.WARN
        assert "barcode confirmed" in verdict.reason

    def test_distant_partner_is_note_only(self, make_inputs, medication):
        med = medication.model_copy(update={"lasa_names": ["Metronidazole"]})
        verdict = verify_medication(make_inputs(medication=med))
        assert verdict.status == VerdictStatus.PASS
        assert any("Metronidazole" in note for note in verdict.notes)
