"""Stage verifiers, registered in evaluation order."""

from medgate.models import Stage
from medgate.stages.aggregation import aggregate, confidence_score
from medgate.stages.allergy import verify_allergy
from medgate.stages.authorization import verify_authorization
from medgate.stages.base import StageInputs, VerificationContext
from medgate.stages.clinical import verify_clinical
from medgate.stages.dose import verify_dose
from medgate.stages.identity import verify_identity
from medgate.stages.interaction import verify_interactions
from medgate.stages.medication import verify_medication
from medgate.stages.route import verify_route
from medgate.stages.timing import verify_timing

# Stages 1-9; stage 10 (aggregate) runs over their verdicts.
STAGES = [
    (Stage.IDENTITY, verify_identity),
    (Stage.MEDICATION, verify_medication),
    (Stage.DOSE, verify_dose),
    (Stage.ROUTE, verify_route),
    (Stage.TIMING, verify_timing),
    (Stage.ALLERGY, verify_allergy),
    (Stage.INTERACTION, verify_interactions),
    (Stage.CLINICAL, verify_clinical),
    (Stage.AUTHORIZATION, verify_authorization),
]

__all__ = [
    "STAGES",
    "StageInputs",
    "VerificationContext",
    "aggregate",
    "confidence_score",
]
