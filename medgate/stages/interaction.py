"""Stage 7: drug-drug interaction check against the resident's active list.

The interaction database is queried with the active list, so every
interaction it returns is evaluated, including ones whose identifier does
not match an entry on the resident snapshot.
"""

from __future__ import annotations

from medgate.models import InteractionSeverity, Stage, StageVerdict
from medgate.stages.base import SOURCE_INTERACTIONS, SOURCE_RESIDENT, StageInputs, combine, require

CONTRAINDICATED_INTERACTION = "CONTRAINDICATED_INTERACTION"
UNMANAGED_MAJOR_INTERACTION = "UNMANAGED_MAJOR_INTERACTION"


def verify_interactions(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.INTERACTION, SOURCE_RESIDENT, SOURCE_INTERACTIONS)
    if blocked:
        return blocked

    blocks: list[tuple[str, str]] = []
    warnings: list[str] = []
    notes: list[str] = []
    unmanaged_major: list[str] = []

    active = set(inputs.resident.active_medication_ids)
    for interaction in inputs.context.interactions:
        other = interaction.other_medication_name or interaction.other_medication_id
        if interaction.other_medication_id not in active:
            notes.append(f"{interaction.other_medication_id} is not on the resident's active list")
        if interaction.severity == InteractionSeverity.CONTRAINDICATED:
            blocks.append((f"contraindicated interaction with {other}", CONTRAINDICATED_INTERACTION))
        elif interaction.severity == InteractionSeverity.MAJOR:
            if interaction.management.strip():
                warnings.append(f"major interaction with {other}: {interaction.management.strip()}")
            else:
                unmanaged_major.append(other)
        elif interaction.severity == InteractionSeverity.MODERATE:
            warnings.append(f"moderate interaction with {other}")
        elif interaction.severity == InteractionSeverity.MINOR:
            notes.append(f"minor interaction with {other}")

    allowed = inputs.policy.thresholds.max_unmanaged_major_interactions
    if len(unmanaged_major) > allowed:
        blocks.append((
            f"major interaction without documented management: {', '.join(unmanaged_major)}",
            UNMANAGED_MAJOR_INTERACTION,
        ))
    elif unmanaged_major:
        warnings.append(f"major interaction without documented management: {', '.join(unmanaged_major)}")

    return combine(Stage.INTERACTION, blocks, warnings, notes)
