"""Stage 4: route verification."""

from __future__ import annotations

from medgate.models import Route, Stage, StageVerdict
from medgate.stages.base import SOURCE_PRESCRIPTION, SOURCE_RESIDENT, StageInputs, combine, require

ROUTE_MISMATCH = "ROUTE_MISMATCH"
ROUTE_PRECONDITION = "ROUTE_PRECONDITION"

# Route -> (resident attribute that must be true, failure reason)
ROUTE_PRECONDITIONS: dict[Route, tuple[str, str]] = {
    Route.ORAL: ("can_swallow", "resident cannot swallow"),
    Route.SUBLINGUAL: ("can_swallow", "resident cannot swallow"),
    Route.BUCCAL: ("can_swallow", "resident cannot swallow"),
    Route.INTRAVENOUS: ("has_vascular_access", "no vascular access recorded"),
    Route.ENTERAL_TUBE: ("has_enteral_tube", "no enteral feeding tube recorded"),
}


def verify_route(inputs: StageInputs) -> StageVerdict:
    blocked = require(inputs, Stage.ROUTE, SOURCE_PRESCRIPTION, SOURCE_RESIDENT)
    if blocked:
        return blocked

    claimed = inputs.request.claimed_route
    prescribed = inputs.prescription.route
    if claimed != prescribed:
        return StageVerdict.block(
            Stage.ROUTE,
            f"route {claimed.value} does not match prescribed {prescribed.value}",
            ROUTE_MISMATCH,
        )

    blocks: list[tuple[str, str]] = []
    precondition = ROUTE_PRECONDITIONS.get(claimed)
    if precondition is not None:
        attribute, reason = precondition
        if not getattr(inputs.resident, attribute):
            blocks.append((f"{claimed.value.lower()} route: {reason}", ROUTE_PRECONDITION))

    return combine(Stage.ROUTE, blocks, [])
