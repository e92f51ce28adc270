"""
Capability objects injected into the composite authorizer.

A capability object answers the three behaviour-defining questions the
checkers need (feature availability, feature limit, permission) plus the
optional authoritative role predicate. It is built once per actor by an
adapter over the external stores and injected, instead of threading
separate callbacks through every check.

Provides:
- AccessCapabilities: Abstract capability interface
- PlanCapabilities: Adapter over plan config + role permission maps
- StaticCapabilities: Capabilities from plain mappings
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from access_core.entitlements.models import FeatureEntitlement

logger = logging.getLogger(__name__)

# Permission map key granting every permission (super admin)
ALL_PERMISSIONS_KEY = "all"


def permission_map_allows(permissions: Optional[Mapping[str, Any]], resource: str, action: str) -> bool:
    """
    Evaluate a role permission map.

    Format: {"all": true} or {"<resource>": {"<action>": true, ...}, ...}.
    Only a literal True grants access.
    """
    if not permissions:
        return False
    if permissions.get(ALL_PERMISSIONS_KEY) is True:
        return True
    resource_perms = permissions.get(resource)
    if not isinstance(resource_perms, Mapping):
        return False
    return resource_perms.get(action) is True


class AccessCapabilities(ABC):
    """Capability interface consumed by CompositeAuthorizer."""

    @abstractmethod
    def has_feature(self, feature_name: str) -> bool:
        pass

    @abstractmethod
    def feature_limit(self, feature_name: str) -> Optional[int]:
        pass

    @abstractmethod
    def has_permission(self, resource: str, action: str) -> bool:
        pass

    def can_access(self, required_roles: Sequence[str]) -> Optional[bool]:
        """
        Authoritative role decision, or None to defer to role membership.

        Default implementation defers.
        """
        return None


class StaticCapabilities(AccessCapabilities):
    """Capabilities backed by already-resolved feature and permission data."""

    def __init__(
        self,
        features: Optional[Mapping[str, FeatureEntitlement]] = None,
        permissions: Optional[Mapping[str, Any]] = None,
    ):
        self._features: Dict[str, FeatureEntitlement] = dict(features or {})
        self._permissions = permissions or {}

    @classmethod
    def from_flags(cls, flags: Mapping[str, Any], permissions: Optional[Mapping[str, Any]] = None):
        """
        Build from a flat flag map: bool values are availability, int values
        are limits of an available feature.
        """
        return cls(features=parse_feature_flags(flags), permissions=permissions)

    def has_feature(self, feature_name: str) -> bool:
        entitlement = self._features.get(feature_name)
        return entitlement is not None and entitlement.available

    def feature_limit(self, feature_name: str) -> Optional[int]:
        entitlement = self._features.get(feature_name)
        return entitlement.limit if entitlement is not None else None

    def has_permission(self, resource: str, action: str) -> bool:
        return permission_map_allows(self._permissions, resource, action)


class PlanCapabilities(StaticCapabilities):
    """
    Adapter over the plans config for one actor.

    Usage:
        loader = get_plans_config_loader()
        caps = PlanCapabilities.for_actor(loader, plan_id="professional", role="manager")
        caps.has_feature("advanced_reporting")
    """

    def __init__(
        self,
        plan_id: Optional[str],
        features: Mapping[str, FeatureEntitlement],
        role_name: Optional[str],
        permissions: Optional[Mapping[str, Any]],
    ):
        super().__init__(features=features, permissions=permissions)
        self.plan_id = plan_id
        self.role_name = role_name

    @classmethod
    def for_actor(cls, loader, plan_id: Optional[str], role: Optional[str]) -> "PlanCapabilities":
        """
        Resolve features for a plan (default features when the plan is
        unknown) and the permission map for a role.
        """
        plan = loader.get_plan(plan_id) if plan_id else None
        if plan_id and plan is None:
            logger.warning("Unknown plan - using default features", extra={"plan_id": plan_id})
        features = plan.features if plan is not None else loader.default_features
        role_config = loader.get_role(role) if role else None
        return cls(
            plan_id=plan.plan_id if plan is not None else None,
            features=features,
            role_name=role_config.name if role_config is not None else role,
            permissions=role_config.permissions if role_config is not None else None,
        )

    def can_access(self, required_roles: Sequence[str]) -> Optional[bool]:
        # Super admin permission maps satisfy every role requirement
        if self._permissions.get(ALL_PERMISSIONS_KEY) is True:
            return True
        return None


def parse_feature_flags(flags: Mapping[str, Any]) -> Dict[str, FeatureEntitlement]:
    features: Dict[str, FeatureEntitlement] = {}
    for name, value in flags.items():
        if isinstance(value, bool):
            features[name] = FeatureEntitlement(feature_name=name, available=value)
        elif isinstance(value, int):
            features[name] = FeatureEntitlement(feature_name=name, available=value > 0, limit=value)
        else:
            raise ValueError(f"Invalid flag value for feature '{name}': {value!r}")
    return features
