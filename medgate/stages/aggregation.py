"""Stage 10: final aggregation.

Any earlier Block is binding.  The confidence score is the mean of the
nine prior verdict weights and is enforced against the policy threshold
according to ``confidence_gate``.
"""

from __future__ import annotations

from typing import Sequence

from medgate.config import VerificationPolicy
from medgate.models import Stage, StageVerdict, VerdictStatus

PRIOR_STAGE_BLOCKED = "PRIOR_STAGE_BLOCKED"
LOW_CONFIDENCE = "LOW_CONFIDENCE"

VERDICT_WEIGHTS: dict[VerdictStatus, float] = {
    VerdictStatus.PASS: 1.0,
    VerdictStatus.WARN: 0.5,
    VerdictStatus.BLOCK: 0.0,
}


def confidence_score(verdicts: Sequence[StageVerdict]) -> float:
    """Mean verdict weight; 0.0 for an empty sequence."""
    if not verdicts:
        return 0.0
    return sum(VERDICT_WEIGHTS[v.status] for v in verdicts) / len(verdicts)


def aggregate(prior: Sequence[StageVerdict], policy: VerificationPolicy) -> StageVerdict:
    """Produce the final-stage verdict from the nine prior verdicts."""
    if len(prior) != len(Stage) - 1:
        raise ValueError(f"expected {len(Stage) - 1} prior verdicts, got {len(prior)}")

    score = confidence_score(prior)
    threshold = policy.thresholds.confidence_threshold
    notes = [f"confidence {score:.3f} (threshold {threshold:.2f})"]

    blocked = [v.stage.value for v in prior if v.is_block]
    if blocked:
        return StageVerdict.block(
            Stage.AGGREGATION,
            f"blocked by: {', '.join(blocked)}",
            PRIOR_STAGE_BLOCKED,
            notes=notes,
        )

    if score < threshold:
        reason = f"confidence {score:.3f} below threshold {threshold:.2f}"
        if policy.confidence_gate == "block":
            return StageVerdict.block(Stage.AGGREGATION, reason, LOW_CONFIDENCE, notes=notes)
        return StageVerdict.warn(Stage.AGGREGATION, reason, notes=notes)

    return StageVerdict.passed(Stage.AGGREGATION, notes=notes)
