"""
Tests for the role/capability model.
"""

import pytest

from sip_gateway.auth.permissions import (
    OPERATION_CAPABILITIES,
    Capability,
    PermissionModel,
    Role,
    require_capability,
)
from sip_gateway.shared.exceptions import InvalidRoleError, PermissionDeniedError


class TestCapabilityClosure:
    def test_user_holds_basic_only(self) -> None:
        model = PermissionModel()
        assert model.capabilities_for(Role.USER) == {"sip:basic"}

    def test_operator_inherits_basic(self) -> None:
        model = PermissionModel()
        assert model.capabilities_for(Role.OPERATOR) == {"sip:basic", "sip:operator"}

    def test_admin_holds_everything(self) -> None:
        model = PermissionModel()
        assert model.capabilities_for("admin") == {"sip:basic", "sip:operator", "sip:admin"}

    @pytest.mark.parametrize(
        ("higher", "lower"),
        [(Role.ADMIN, Role.OPERATOR), (Role.OPERATOR, Role.USER), (Role.ADMIN, Role.USER)],
    )
    def test_higher_role_is_superset(self, higher: Role, lower: Role) -> None:
        model = PermissionModel()
        assert model.capabilities_for(higher) >= model.capabilities_for(lower)

    def test_grant_on_basic_is_visible_to_higher_roles(self) -> None:
        model = PermissionModel().with_grant(Role.USER, "sip:recordings")

        for role in Role:
            assert model.has_capability(role, "sip:recordings")

    def test_with_grant_leaves_base_model_untouched(self) -> None:
        base = PermissionModel()
        base.with_grant(Role.USER, "sip:recordings")
        assert not base.has_capability(Role.ADMIN, "sip:recordings")

    def test_unknown_role_string_raises(self) -> None:
        with pytest.raises(InvalidRoleError):
            PermissionModel().capabilities_for("superuser")

    def test_has_capability_false_for_unknown_role(self) -> None:
        assert PermissionModel().has_capability("superuser", Capability.BASIC) is False


class TestRequireCapability:
    def test_passes_when_held(self) -> None:
        require_capability(Role.OPERATOR, Capability.OPERATOR)

    def test_denial_carries_required_and_held(self) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            require_capability(Role.USER, Capability.OPERATOR)

        err = exc_info.value
        assert err.required == {"sip:operator"}
        assert err.held == {"sip:basic"}
        assert err.status_code == 403
        assert err.details == {"required": ["sip:operator"], "held": ["sip:basic"]}

    def test_every_command_declares_a_capability(self) -> None:
        for operation in ("initiate_call", "hangup_call", "transfer_call", "create_conference"):
            assert OPERATION_CAPABILITIES[operation] is Capability.OPERATOR
        assert OPERATION_CAPABILITIES["get_active_calls"] is Capability.BASIC
