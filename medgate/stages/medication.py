"""Stage 2: medication identity verification.

Compares what staff read off the pack against the catalog entry for the
dispensed item, checks the batch is neither recalled nor expired, and flags
look-alike/sound-alike (LASA) name proximity.
"""

from __future__ import annotations

from difflib import SequenceMatcher
from typing import Optional

from medgate.models import Stage, StageVerdict, normalize_text
from medgate.stages.base import SOURCE_MEDICATION, StageInputs, combine, require

MEDICATION_MISMATCH = "MEDICATION_MISMATCH"
NAME_MISMATCH = "NAME_MISMATCH"
LASA_CONFUSION = "LASA_CONFUSION"
LASA_UNCONFIRMED = "LASA_UNCONFIRMED"
LABEL_MISMATCH = "LABEL_MISMATCH"
BATCH_MISMATCH = "BATCH_MISMATCH"
RECALLED = "RECALLED"
EXPIRED = "EXPIRED"


def name_similarity(a: str, b: str) -> float:
    """Similarity ratio (0-1) between two drug names."""
    return SequenceMatcher(None, normalize_text(a), normalize_text(b)).ratio()


def _closest(name: str, candidates: list[str]) -> tuple[Optional[str], float]:
    best, best_score = None, 0.0
    for candidate in candidates:
        score = name_similarity(name, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score


def verify_medication(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.MEDICATION, SOURCE_MEDICATION)
    if blocked:
        return blocked

    medication = inputs.medication
    request = inputs.request
    label = request.presented_label
    thresholds = inputs.policy.thresholds

    if medication.medication_id != request.medication_id:
        return StageVerdict.block(
            Stage.MEDICATION,
            f"catalog entry '{medication.medication_id}' does not match request '{request.medication_id}'",
            MEDICATION_MISMATCH,
        )

    # --- Name ---
    accepted_names = {normalize_text(medication.canonical_name), normalize_text(medication.generic_name)}
    if normalize_text(label.name) not in accepted_names:
        partner, score = _closest(label.name, medication.lasa_names)
        if partner is not None and score >= thresholds.lasa_warn_similarity:
            return StageVerdict.block(
                Stage.MEDICATION,
                f"look-alike/sound-alike: '{label.name}' resembles '{partner}', not '{medication.canonical_name}'",
                LASA_CONFUSION,
            )
        return StageVerdict.block(
            Stage.MEDICATION,
            f"name mismatch: '{label.name}' vs '{medication.canonical_name}'",
            NAME_MISMATCH,
        )

    blocks: list[tuple[str, str]] = []
    warnings: list[str] = []

    # --- Strength, form, manufacturer ---
    for field_name, presented, expected in (
        ("strength", label.strength, medication.strength),
        ("form", label.form, medication.form),
        ("manufacturer", label.manufacturer, medication.manufacturer),
    ):
        if expected and normalize_text(presented) != normalize_text(expected):
            shown = presented or "not recorded"
            blocks.append((f"{field_name} mismatch: '{shown}' vs '{expected}'", LABEL_MISMATCH))

    # --- Batch, recall, expiry ---
    if medication.batch_number and normalize_text(label.batch_number) != normalize_text(medication.batch_number):
        blocks.append((
            f"batch mismatch: '{label.batch_number or 'not recorded'}' vs '{medication.batch_number}'",
            BATCH_MISMATCH,
        ))
    if medication.recalled:
        blocks.append((f"batch {medication.batch_number or 'unknown'} recalled", RECALLED))
    if medication.expiry_date is None:
        warnings.append("expiry date not recorded")
    elif medication.expiry_date < request.attempt_timestamp.date():
        blocks.append((f"expired on {medication.expiry_date.isoformat()}", EXPIRED))

    # --- Look-alike/sound-alike partners ---
    notes: list[str] = []
    partner, score = _closest(medication.canonical_name, medication.lasa_names)
    if partner is not None:
        if score >= thresholds.lasa_block_similarity:
            if request.barcode_verified:
                warnings.append(f"look-alike/sound-alike: '{partner}' (barcode confirmed)")
            else:
                blocks.append((
                    f"look-alike/sound-alike risk with '{partner}'; barcode confirmation required",
                    LASA_UNCONFIRMED,
                ))
        elif score >= thresholds.lasa_warn_similarity:
            warnings.append(f"look-alike/sound-alike: confirm this is not '{partner}'")
        else:
            notes.append(f"LASA partner '{partner}' similarity {score:.2f}")

    return combine(Stage.MEDICATION, blocks, warnings, notes)
