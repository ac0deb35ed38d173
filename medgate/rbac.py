"""
Role-Based Qualification Checks for MedGate.

Maps staff roles to the administration actions they are qualified to
perform.  The authorization stage uses this table to decide whether the
administering staff member (and any witness) may carry out the attempt.

**Roles:**

* CARE_ASSISTANT   -- may witness controlled drugs only.
* SENIOR_CARER     -- trained to give non-invasive medicines.
* REGISTERED_NURSE -- all routes including injections and IV.
* PHARMACIST       -- may administer and witness.
* MANAGER          -- may witness controlled drugs.
* AUDITOR          -- no clinical permissions.

Production deployments should source roles and competencies from the
home's workforce system; this table is the in-process default.
"""

from __future__ import annotations

from medgate.models import Role, Route


# ---------------------------------------------------------------------------
# Permission definitions
# ---------------------------------------------------------------------------

ADMINISTER = "administer_medication"
ADMINISTER_INJECTION = "administer_injection"
ADMINISTER_INTRAVENOUS = "administer_intravenous"
ADMINISTER_CONTROLLED = "administer_controlled"
WITNESS_CONTROLLED = "witness_controlled"

# Maps (role, action) -> allowed
_PERMISSIONS: dict[tuple[Role, str], bool] = {
    # Care assistant
    (Role.CARE_ASSISTANT, ADMINISTER): False,
    (Role.CARE_ASSISTANT, ADMINISTER_INJECTION): False,
    (Role.CARE_ASSISTANT, ADMINISTER_INTRAVENOUS): False,
    (Role.CARE_ASSISTANT, ADMINISTER_CONTROLLED): False,
    (Role.CARE_ASSISTANT, WITNESS_CONTROLLED): True,
    # Senior carer
    (Role.SENIOR_CARER, ADMINISTER): True,
    (Role.SENIOR_CARER, ADMINISTER_INJECTION): False,
    (Role.SENIOR_CARER, ADMINISTER_INTRAVENOUS): False,
    (Role.SENIOR_CARER, ADMINISTER_CONTROLLED): True,
    (Role.SENIOR_CARER, WITNESS_CONTROLLED): True,
    # Registered nurse
    (Role.REGISTERED_NURSE, ADMINISTER): True,
    (Role.REGISTERED_NURSE, ADMINISTER_INJECTION): True,
    (Role.REGISTERED_NURSE, ADMINISTER_INTRAVENOUS): True,
    (Role.REGISTERED_NURSE, ADMINISTER_CONTROLLED): True,
    (Role.REGISTERED_NURSE, WITNESS_CONTROLLED): True,
    # Pharmacist
    (Role.PHARMACIST, ADMINISTER): True,
    (Role.PHARMACIST, ADMINISTER_INJECTION): True,
    (Role.PHARMACIST, ADMINISTER_INTRAVENOUS): False,
    (Role.PHARMACIST, ADMINISTER_CONTROLLED): True,
    (Role.PHARMACIST, WITNESS_CONTROLLED): True,
    # Manager
    (Role.MANAGER, ADMINISTER): False,
    (Role.MANAGER, ADMINISTER_INJECTION): False,
    (Role.MANAGER, ADMINISTER_INTRAVENOUS): False,
    (Role.MANAGER, ADMINISTER_CONTROLLED): False,
    (Role.MANAGER, WITNESS_CONTROLLED): True,
    # Auditor
    (Role.AUDITOR, ADMINISTER): False,
    (Role.AUDITOR, ADMINISTER_INJECTION): False,
    (Role.AUDITOR, ADMINISTER_INTRAVENOUS): False,
    (Role.AUDITOR, ADMINISTER_CONTROLLED): False,
    (Role.AUDITOR, WITNESS_CONTROLLED): False,
}

_INJECTION_ROUTES = {Route.SUBCUTANEOUS, Route.INTRAMUSCULAR}


def check_permission(role: Role, action: str) -> bool:
    """Check whether a role has permission to perform an action.

    Unknown actions are denied.
    """
    return _PERMISSIONS.get((role, action), False)


def require_permission(role: Role, action: str) -> None:
    """Enforce a permission check; raise if denied.

    Raises:
        PermissionError: If the role is not permitted.
    """
    if not check_permission(role, action):
        raise PermissionError(
            f"Role '{role.value}' is not permitted to perform action '{action}'."
        )


def get_permissions_for_role(role: Role) -> dict[str, bool]:
    """Return all permissions for a given role."""
    return {
        action: allowed
        for (r, action), allowed in _PERMISSIONS.items()
        if r == role
    }


def required_actions(route: Route, controlled_substance: bool) -> list[str]:
    """Actions an administering staff member must hold for this attempt."""
    actions = [ADMINISTER]
    if route in _INJECTION_ROUTES:
        actions.append(ADMINISTER_INJECTION)
    elif route == Route.INTRAVENOUS:
        actions.append(ADMINISTER_INTRAVENOUS)
    if controlled_substance:
        actions.append(ADMINISTER_CONTROLLED)
    return actions
