"""
Verification Pipeline Orchestrator.

Runs the ten stage verifiers in fixed order over one administration attempt
and aggregates their verdicts into a ``VerificationOutcome``.

**Properties enforced here:**

* All ten stages always run -- a Block never short-circuits evaluation, so
  the audit trail is complete for every attempt.
* The decision is BLOCKED as soon as any stage blocks, regardless of the
  confidence score.
* Stage failures are data.  A stage that raises is logged and recorded as a
  Block (``STAGE_ERROR``); the pipeline itself never raises for stage
  problems.
* No clock, randomness or I/O: identical inputs produce an identical
  outcome.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from medgate.models import (
    AdministrationRequest,
    Decision,
    MedicationSnapshot,
    PrescriptionSnapshot,
    ResidentSnapshot,
    Stage,
    StageVerdict,
    VerificationOutcome,
)
from medgate.stages import STAGES, StageInputs, VerificationContext, aggregate, confidence_score

logger = logging.getLogger(__name__)

STAGE_ERROR = "STAGE_ERROR"


def _run_stage(
    stage: Stage,
    fn: Callable[[], StageVerdict],
    attempt_id: str,
) -> StageVerdict:
    try:
        verdict = fn()
    except Exception as e:
        logger.error(f"Error in {stage.value} stage for attempt {attempt_id}: {e}", exc_info=True)
        return StageVerdict.block(stage, f"internal error in {stage.value.lower()} check", STAGE_ERROR)

    if verdict.stage != stage:
        logger.error(
            f"{stage.value} stage returned a verdict for {verdict.stage.value} (attempt {attempt_id})"
        )
        return StageVerdict.block(stage, f"internal error in {stage.value.lower()} check", STAGE_ERROR)
    return verdict


def verify(
    request: AdministrationRequest,
    resident: Optional[ResidentSnapshot],
    medication: Optional[MedicationSnapshot],
    prescription: Optional[PrescriptionSnapshot],
    context: VerificationContext | None = None,
) -> VerificationOutcome:
    """Evaluate all ten stages for one attempt.

    Args:
        request: The administration attempt.
        resident: Resident snapshot, or None if it could not be obtained.
        medication: Catalog snapshot, or None if it could not be obtained.
        prescription: Active prescription, or None if none was found.
        context: Policy, interactions, dose history and staff snapshots.

    Returns:
        The immutable ``VerificationOutcome`` for the attempt.
    """
    context = context or VerificationContext()
    inputs = StageInputs(
        request=request,
        resident=resident,
        medication=medication,
        prescription=prescription,
        context=context,
    )

    verdicts: list[StageVerdict] = []
    for stage, stage_fn in STAGES:
        verdicts.append(_run_stage(stage, lambda: stage_fn(inputs), request.attempt_id))

    prior = list(verdicts)
    verdicts.append(
        _run_stage(Stage.AGGREGATION, lambda: aggregate(prior, context.policy), request.attempt_id)
    )

    decision = Decision.BLOCKED if any(v.is_block for v in verdicts) else Decision.PROCEED
    outcome = VerificationOutcome(
        verdicts=tuple(verdicts),
        decision=decision,
        confidence_score=confidence_score(prior),
    )

    if decision == Decision.BLOCKED:
        logger.debug(
            f"Attempt {request.attempt_id} blocked at "
            f"{[v.stage.value for v in outcome.blocking_verdicts]}"
        )
    return outcome
