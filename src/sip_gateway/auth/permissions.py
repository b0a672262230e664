"""
Role-based capability model.

Roles inherit from each other (admin > operator > user) and each role
grants a set of capability strings. A caller holds the closure of its own
grants and everything granted to the roles it inherits from.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from sip_gateway.shared.exceptions import InvalidRoleError, PermissionDeniedError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    """Caller roles, highest first."""

    ADMIN = "admin"
    OPERATOR = "operator"
    USER = "user"

    @classmethod
    def from_string(cls, role_str: str) -> "Role":
        """Convert string to Role enum.

        Raises:
            InvalidRoleError: If role string is not a known role.
        """
        try:
            return cls(role_str)
        except ValueError:
            raise InvalidRoleError(role_str) from None


class Capability(str, Enum):
    BASIC = "sip:basic"
    OPERATOR = "sip:operator"
    ADMIN = "sip:admin"


DEFAULT_GRANTS: Mapping[Role, frozenset[str]] = MappingProxyType(
    {
        Role.USER: frozenset({Capability.BASIC.value}),
        Role.OPERATOR: frozenset({Capability.OPERATOR.value}),
        Role.ADMIN: frozenset({Capability.ADMIN.value}),
    }
)

# role -> role it inherits every capability from
DEFAULT_INHERITS: Mapping[Role, Role | None] = MappingProxyType(
    {
        Role.ADMIN: Role.OPERATOR,
        Role.OPERATOR: Role.USER,
        Role.USER: None,
    }
)


@dataclass(frozen=True)
class PermissionModel:
    """Static role -> capability table with inheritance."""

    grants: Mapping[Role, frozenset[str]] = field(default_factory=lambda: DEFAULT_GRANTS)
    inherits: Mapping[Role, Role | None] = field(default_factory=lambda: DEFAULT_INHERITS)

    def capabilities_for(self, role: Role | str) -> frozenset[str]:
        """Return the closure of capabilities granted to ``role``."""
        current: Role | None = Role.from_string(role) if isinstance(role, str) else role
        held: set[str] = set()
        seen: set[Role] = set()
        while current is not None and current not in seen:
            seen.add(current)
            held |= self.grants.get(current, frozenset())
            current = self.inherits.get(current)
        return frozenset(held)

    def has_capability(self, role: Role | str, capability: Capability | str) -> bool:
        try:
            held = self.capabilities_for(role)
        except InvalidRoleError:
            return False
        return _cap_value(capability) in held

    def with_grant(self, role: Role, capability: Capability | str) -> "PermissionModel":
        """Return a copy of the model with one more capability granted to ``role``."""
        grants = dict(self.grants)
        grants[role] = grants.get(role, frozenset()) | {_cap_value(capability)}
        return PermissionModel(grants=MappingProxyType(grants), inherits=self.inherits)


def _cap_value(capability: Capability | str) -> str:
    return capability.value if isinstance(capability, Capability) else capability


# Minimum capability per command-issuing operation.
OPERATION_CAPABILITIES: Mapping[str, Capability] = MappingProxyType(
    {
        "get_active_calls": Capability.BASIC,
        "get_call_details": Capability.BASIC,
        "get_call_analytics": Capability.BASIC,
        "initiate_call": Capability.OPERATOR,
        "hangup_call": Capability.OPERATOR,
        "transfer_call": Capability.OPERATOR,
        "mute_call": Capability.OPERATOR,
        "unmute_call": Capability.OPERATOR,
        "get_freeswitch_status": Capability.BASIC,
        "get_freeswitch_channels": Capability.BASIC,
        "execute_freeswitch_command": Capability.OPERATOR,
        "health_check": Capability.BASIC,
        "get_system_telemetry": Capability.OPERATOR,
        "create_call_file": Capability.OPERATOR,
        "get_call_file_status": Capability.BASIC,
        "get_call_file_stats": Capability.BASIC,
        "create_conference": Capability.OPERATOR,
        "join_conference": Capability.OPERATOR,
        "leave_conference": Capability.OPERATOR,
        "get_conference_details": Capability.BASIC,
    }
)


_default_model = PermissionModel()


def get_permission_model() -> PermissionModel:
    return _default_model


def require_capability(
    role: Role | str,
    capability: Capability | str,
    model: PermissionModel | None = None,
) -> None:
    """Raise ``PermissionDeniedError`` unless ``role`` holds ``capability``.

    The error carries both the required and the held capability sets.
    """
    model = model or _default_model
    try:
        held = model.capabilities_for(role)
    except InvalidRoleError:
        held = frozenset()
    required = _cap_value(capability)
    if required not in held:
        logger.warning(
            "Capability check failed",
            extra={"role": str(getattr(role, "value", role)), "required": required, "held": sorted(held)},
        )
        raise PermissionDeniedError(required={required}, held=held)
