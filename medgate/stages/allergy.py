"""Stage 6: allergy and contraindication check.

Checks for direct allergy matches, same-class cross-allergy and known
cross-class reactivity, then the resident's medical conditions against the
medication's contraindications.
"""

from __future__ import annotations

from typing import Optional

from medgate.models import Stage, StageVerdict, normalize_text
from medgate.stages.base import SOURCE_MEDICATION, SOURCE_RESIDENT, StageInputs, combine, require

KNOWN_ALLERGY = "KNOWN_ALLERGY"
CROSS_ALLERGY = "CROSS_ALLERGY"
CROSS_REACTIVITY = "CROSS_REACTIVITY"
CONTRAINDICATION = "CONTRAINDICATION"


# Drug class membership for cross-allergy checking
DRUG_CLASSES: dict[str, list[str]] = {
    "penicillins": [
        "penicillin",
        "amoxicillin",
        "ampicillin",
        "flucloxacillin",
        "piperacillin",
        "phenoxymethylpenicillin",
        "benzylpenicillin",
        "co-amoxiclav",
    ],
    "cephalosporins": [
        "cefalexin",
        "cephalexin",
        "cefuroxime",
        "ceftriaxone",
        "cefazolin",
        "cefradine",
    ],
    "carbapenems": ["meropenem", "imipenem", "ertapenem"],
    "macrolides": ["azithromycin", "clarithromycin", "erythromycin"],
    "tetracyclines": ["doxycycline", "minocycline", "tetracycline", "lymecycline"],
    "fluoroquinolones": ["ciprofloxacin", "levofloxacin", "moxifloxacin"],
    "sulfonamides": ["sulfamethoxazole", "co-trimoxazole", "trimethoprim-sulfamethoxazole"],
    "opioids": ["morphine", "codeine", "oxycodone", "tramadol", "fentanyl", "diamorphine"],
    "nsaids": ["ibuprofen", "naproxen", "diclofenac", "aspirin", "celecoxib"],
    "statins": ["atorvastatin", "simvastatin", "rosuvastatin", "pravastatin"],
}

# (allergy class, medication class) pairs with recognised cross-reactivity
CROSS_REACTIVE_CLASSES: set[tuple[str, str]] = {
    ("penicillins", "cephalosporins"),
    ("penicillins", "carbapenems"),
    ("cephalosporins", "penicillins"),
    ("cephalosporins", "carbapenems"),
}


def drug_class_of(name: str) -> Optional[str]:
    """Resolve a drug or class name to a class key in ``DRUG_CLASSES``."""
    key = normalize_text(name)
    for drug_class, members in DRUG_CLASSES.items():
        if key == drug_class or key == drug_class.rstrip("s") or key in members:
            return drug_class
    return None


def verify_allergy(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.ALLERGY, SOURCE_RESIDENT, SOURCE_MEDICATION)
    if blocked:
        return blocked

    resident = inputs.resident
    medication = inputs.medication

    drug_names = {normalize_text(medication.canonical_name), normalize_text(medication.generic_name)}
    medication_class = (
        drug_class_of(medication.drug_class) if medication.drug_class else None
    ) or drug_class_of(medication.generic_name)

    blocks: list[tuple[str, str]] = []
    warnings: list[str] = []

    # --- Allergies ---
    for allergy in resident.allergies:
        allergen = normalize_text(allergy.allergen)
        allergen_class = drug_class_of(allergen)
        if allergen in drug_names:
            blocks.append((f"known allergy: {allergy.allergen}", KNOWN_ALLERGY))
        elif allergen_class is not None and allergen_class == medication_class:
            blocks.append((f"cross-allergy: {allergy.allergen} class", CROSS_ALLERGY))
        elif allergen_class is not None and (allergen_class, medication_class) in CROSS_REACTIVE_CLASSES:
            blocks.append((
                f"cross-reactivity: {allergy.allergen} allergy with {medication_class}",
                CROSS_REACTIVITY,
            ))

    # --- Conditions ---
    conditions = {normalize_text(c): c for c in resident.conditions}
    for condition in medication.contraindicated_conditions:
        if normalize_text(condition) in conditions:
            blocks.append((f"contraindicated: {condition}", CONTRAINDICATION))
    for condition in medication.cautioned_conditions:
        if normalize_text(condition) in conditions:
            warnings.append(f"use with caution: {condition}")

    return combine(Stage.ALLERGY, blocks, warnings)
