"""
Tests for medgate.rbac -- role-based qualification checks.
"""

import pytest

from medgate.models import Role, Route
from medgate.rbac import (
    ADMINISTER,
    ADMINISTER_CONTROLLED,
    ADMINISTER_INJECTION,
    ADMINISTER_INTRAVENOUS,
    WITNESS_CONTROLLED,
    check_permission,
    get_permissions_for_role,
    require_permission,
    required_actions,
)


class TestRBAC:
    def test_nurse_can_administer_intravenous(self):
        assert check_permission(Role.REGISTERED_NURSE, ADMINISTER_INTRAVENOUS) is True

    def test_senior_carer_cannot_inject(self):
        assert check_permission(Role.SENIOR_CARER, ADMINISTER) is True
        assert check_permission(Role.SENIOR_CARER, ADMINISTER_INJECTION) is False

    def test_care_assistant_can_only_witness(self):
        assert check_permission(Role.CARE_ASSISTANT, ADMINISTER) is False
        assert check_permission(Role.CARE_ASSISTANT, WITNESS_CONTROLLED) is True

    def test_auditor_has_no_clinical_permissions(self):
        assert not any(get_permissions_for_role(Role.AUDITOR).values())

    def test_unknown_action_denied(self):
        assert check_permission(Role.REGISTERED_NURSE, "prescribe") is False

    def test_require_permission_raises_on_denied(self):
        with pytest.raises(PermissionError):
            require_permission(Role.MANAGER, ADMINISTER)

    def test_require_permission_passes_on_allowed(self):
        require_permission(Role.PHARMACIST, ADMINISTER_CONTROLLED)  # should not raise

    def test_get_permissions_returns_all_actions(self):
        perms = get_permissions_for_role(Role.PHARMACIST)
        assert set(perms) == {
            ADMINISTER,
            ADMINISTER_INJECTION,
            ADMINISTER_INTRAVENOUS,
            ADMINISTER_CONTROLLED,
            WITNESS_CONTROLLED,
        }
        assert perms[ADMINISTER_INTRAVENOUS] is False


class TestRequiredActions:
    def test_oral(self):
        assert required_actions(Route.ORAL, controlled_substance=False) == [ADMINISTER]

    def test_injection_routes(self):
        assert ADMINISTER_INJECTION in required_actions(Route.SUBCUTANEOUS, False)
        assert ADMINISTER_INJECTION in required_actions(Route.INTRAMUSCULAR, False)

    def test_intravenous(self):
        assert required_actions(Route.INTRAVENOUS, False) == [ADMINISTER, ADMINISTER_INTRAVENOUS]

    def test_controlled(self):
        assert required_actions(Route.ORAL, True) == [ADMINISTER, ADMINISTER_CONTROLLED]
