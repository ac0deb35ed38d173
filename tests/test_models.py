"""
Tests for medgate.models -- value types, verdicts and outcomes.

Covers: dose normalisation, immutability, verdict validation, outcome
consistency rules, the administered-requires-proceed rule on results, and
timezone-aware timestamps.
"""

from __future__ import annotations

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from medgate.models import (
    AdministrationRequest,
    AdministrationResult,
    Decision,
    Disposition,
    Dose,
    Omission,
    PrescriptionSnapshot,
    ResidentSnapshot,
    Stage,
    StageVerdict,
    VerdictStatus,
    VerificationOutcome,
)


def _all_pass() -> tuple[StageVerdict, ...]:
    return tuple(StageVerdict.passed(stage) for stage in Stage)


# ---------------------------------------------------------------------------
# 1. Dose
# ---------------------------------------------------------------------------

class TestDose:
    def test_grams_and_milligrams_are_same_quantity(self):
        assert Dose(amount=1, unit="g").same_quantity(Dose(amount=1000, unit="mg"))

    def test_micrograms_normalised(self):
        assert Dose(amount=500, unit="mcg").to_mg() == pytest.approx(0.5)
        assert Dose(amount=500, unit="microgram").same_quantity(Dose(amount=0.5, unit="mg"))

    def test_non_mass_units_compare_by_unit(self):
        assert Dose(amount=5, unit="ml").same_quantity(Dose(amount=5, unit="ML"))
        assert not Dose(amount=5, unit="ml").same_quantity(Dose(amount=5, unit="mg"))
        assert Dose(amount=2, unit="tablet").to_mg() is None

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            Dose(amount=0, unit="mg")

    def test_str(self):
        assert str(Dose(amount=500, unit="mg")) == "500 mg"
        assert str(Dose(amount=2.5, unit="ml")) == "2.5 ml"


# ---------------------------------------------------------------------------
# 2. Immutability
# ---------------------------------------------------------------------------

class TestImmutability:
    def test_request_is_frozen(self, admin_request):
        with pytest.raises(ValidationError):
            admin_request.staff_id = "someone_else"

    def test_verdict_is_frozen(self):
        verdict = StageVerdict.passed(Stage.IDENTITY)
        with pytest.raises(ValidationError):
            verdict.status = VerdictStatus.BLOCK

    def test_request_gets_unique_attempt_id(self, admin_request):
        data = admin_request.model_dump(exclude={"attempt_id"})
        first = type(admin_request)(**data)
        second = type(admin_request)(**data)
        assert first.attempt_id != second.attempt_id


# ---------------------------------------------------------------------------
# 3. Stage verdicts
# ---------------------------------------------------------------------------

class TestStageVerdict:
    def test_block_requires_code(self):
        with pytest.raises(ValidationError):
            StageVerdict(stage=Stage.DOSE, status=VerdictStatus.BLOCK, reason="too much")

    def test_warn_requires_reason(self):
        with pytest.raises(ValidationError):
            StageVerdict(stage=Stage.DOSE, status=VerdictStatus.WARN)

    def test_constructors(self):
        blocked = StageVerdict.block(Stage.ALLERGY, "known allergy: penicillin", "KNOWN_ALLERGY")
        assert blocked.is_block
        assert blocked.code == "KNOWN_ALLERGY"
        warned = StageVerdict.warn(Stage.TIMING, "40 min late", notes=["n"])
        assert warned.status == VerdictStatus.WARN
        assert warned.notes == ("n",)

    def test_stage_numbers(self):
        assert Stage.IDENTITY.number == 1
        assert Stage.TIMING.number == 5
        assert Stage.AGGREGATION.number == 10


# ---------------------------------------------------------------------------
# 4. Verification outcome
# ---------------------------------------------------------------------------

class TestVerificationOutcome:
    def test_requires_all_ten_stages_in_order(self):
        verdicts = _all_pass()
        with pytest.raises(ValidationError):
            VerificationOutcome(verdicts=verdicts[:9], decision=Decision.PROCEED, confidence_score=1.0)
        with pytest.raises(ValidationError):
            VerificationOutcome(
                verdicts=(verdicts[1], verdicts[0]) + verdicts[2:],
                decision=Decision.PROCEED,
                confidence_score=1.0,
            )

    def test_proceed_with_block_rejected(self):
        verdicts = list(_all_pass())
        verdicts[5] = StageVerdict.block(Stage.ALLERGY, "known allergy: penicillin", "KNOWN_ALLERGY")
        with pytest.raises(ValidationError):
            VerificationOutcome(verdicts=tuple(verdicts), decision=Decision.PROCEED, confidence_score=0.9)

    def test_helpers(self):
        verdicts = list(_all_pass())
        verdicts[4] = StageVerdict.warn(Stage.TIMING, "40 min late")
        verdicts[8] = StageVerdict.block(Stage.AUTHORIZATION, "witness required", "WITNESS_REQUIRED")
        outcome = VerificationOutcome(verdicts=tuple(verdicts), decision=Decision.BLOCKED, confidence_score=0.5)
        assert outcome.verdict_for(Stage.AUTHORIZATION).code == "WITNESS_REQUIRED"
        assert [v.stage for v in outcome.blocking_verdicts] == [Stage.AUTHORIZATION]
        assert [v.stage for v in outcome.warnings] == [Stage.TIMING]


# ---------------------------------------------------------------------------
# 5. Administration result
# ---------------------------------------------------------------------------

class TestAdministrationResult:
    def test_administered_requires_proceed(self):
        verdicts = list(_all_pass())
        verdicts[2] = StageVerdict.block(Stage.DOSE, "dose mismatch", "DOSE_MISMATCH")
        outcome = VerificationOutcome(verdicts=tuple(verdicts), decision=Decision.BLOCKED, confidence_score=0.8)
        with pytest.raises(ValidationError):
            AdministrationResult(
                attempt_id="a1", disposition=Disposition.ADMINISTERED, outcome=outcome, audit_entry_id="e1"
            )

    def test_blocking_reasons(self):
        verdicts = list(_all_pass())
        verdicts[8] = StageVerdict.block(Stage.AUTHORIZATION, "witness required", "WITNESS_REQUIRED")
        outcome = VerificationOutcome(verdicts=tuple(verdicts), decision=Decision.BLOCKED, confidence_score=0.8)
        result = AdministrationResult(
            attempt_id="a1", disposition=Disposition.BLOCKED, outcome=outcome, audit_entry_id="e1"
        )
        assert result.blocking_reasons == ["AUTHORIZATION: witness required"]

    def test_omission_only_on_aborted(self):
        outcome = VerificationOutcome(verdicts=_all_pass(), decision=Decision.PROCEED, confidence_score=1.0)
        aborted = AdministrationResult(
            attempt_id="a1", disposition=Disposition.ABORTED, outcome=outcome, audit_entry_id="e1",
            omission=Omission(reason="resident refused"),
        )
        assert aborted.omission.code.value == "01"
        with pytest.raises(ValidationError):
            AdministrationResult(
                attempt_id="a1", disposition=Disposition.ADMINISTERED, outcome=outcome, audit_entry_id="e1",
                omission=Omission(),
            )


# ---------------------------------------------------------------------------
# 6. Resident age
# ---------------------------------------------------------------------------

class TestResidentAge:
    def test_age_before_and_after_birthday(self):
        resident = ResidentSnapshot(
            resident_id="r", national_health_id="1", full_name="A", date_of_birth=date(1940, 4, 12)
        )
        assert resident.age_on(date(2026, 4, 11)) == 85
        assert resident.age_on(date(2026, 4, 12)) == 86


# ---------------------------------------------------------------------------
# 7. Timezone-aware timestamps
# ---------------------------------------------------------------------------

class TestAwareTimestamps:
    def test_request_rejects_naive_attempt_time(self, admin_request):
        data = admin_request.model_dump()
        data["attempt_timestamp"] = datetime(2026, 3, 2, 8, 5)
        with pytest.raises(ValidationError):
            AdministrationRequest(**data)

    def test_request_rejects_naive_scheduled_time(self, admin_request):
        data = admin_request.model_dump()
        data["scheduled_time"] = datetime(2026, 3, 2, 8, 0)
        with pytest.raises(ValidationError):
            AdministrationRequest(**data)

    def test_prescription_rejects_naive_validity(self, prescription):
        data = prescription.model_dump()
        data["valid_from"] = datetime(2026, 2, 28, 8, 0)
        with pytest.raises(ValidationError):
            PrescriptionSnapshot(**data)

    def test_aware_values_accepted(self, admin_request, prescription):
        assert AdministrationRequest(**admin_request.model_dump()) == admin_request
        assert PrescriptionSnapshot(**prescription.model_dump()) == prescription
