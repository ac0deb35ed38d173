"""Stage 5: timing verification.

Blocks when the minimum inter-dose interval since the last recorded dose
has not elapsed.  A dose given outside the configured window around the
scheduled time, but with the interval respected, is a warning.
"""

from __future__ import annotations

from datetime import timedelta

from medgate.models import Stage, StageVerdict
from medgate.stages.base import SOURCE_HISTORY, SOURCE_PRESCRIPTION, StageInputs, require

MIN_INTERVAL = "MIN_INTERVAL"


def minimum_interval(inputs: StageInputs) -> timedelta:
    prescription = inputs.prescription
    if prescription.min_interval_hours is not None:
        hours = prescription.min_interval_hours
    else:
        hours = prescription.frequency_hours * inputs.policy.thresholds.min_interval_ratio
    return timedelta(hours=hours)


def verify_timing(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.TIMING, SOURCE_PRESCRIPTION, SOURCE_HISTORY)
    if blocked:
        return blocked

    request = inputs.request
    attempt_at = request.attempt_timestamp

    interval = minimum_interval(inputs)
    priors = inputs.context.prior_administrations
    if priors:
        nearest = min(priors, key=lambda p: abs(attempt_at - p.administered_at))
        gap = abs(attempt_at - nearest.administered_at)
        if gap < interval:
            return StageVerdict.block(
                Stage.TIMING,
                f"minimum interval of {interval.total_seconds() / 3600:g}h not met: "
                f"previous dose recorded {int(gap.total_seconds() // 60)} min from this attempt",
                MIN_INTERVAL,
            )

    window = timedelta(minutes=inputs.policy.thresholds.timing_window_minutes)
    deviation = attempt_at - request.scheduled_time
    minutes = int(abs(deviation).total_seconds() // 60)
    if abs(deviation) > window:
        direction = "late" if deviation > timedelta(0) else "early"
        return StageVerdict.warn(
            Stage.TIMING,
            f"{minutes} min {direction}; outside the {window.total_seconds() / 60:g} min window",
        )

    return StageVerdict.passed(Stage.TIMING, notes=[f"{minutes} min from scheduled time"])
