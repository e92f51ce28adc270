"""
Plans configuration loader - plan features and role permission maps.

Loads config/plans.yml:

    default_features:     features every tenant gets (bool = availability,
                          int = limit of an available feature)
    plans:                list of {id, name, price, period, features}
    roles:                list of {name, description, permissions}
    upgrade_messages:     feature name -> upgrade prompt shown on denial

Plan features are the default features overlaid with the plan's own.

Usage:
    from access_core.entitlements.loader import get_plans_config_loader

    loader = get_plans_config_loader()
    plan = loader.get_plan("professional")
    role = loader.get_role("manager")      # resolves to "Store Manager"

CRITICAL: This file is the source of truth for plan features.
Do NOT hardcode feature access elsewhere.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

from access_core.entitlements.capabilities import parse_feature_flags
from access_core.entitlements.features import feature_upgrade_message
from access_core.entitlements.models import FeatureEntitlement, PlanRef
from access_core.entitlements.roles import canonicalize_role

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "ACCESS_PLANS_CONFIG"
DEFAULT_CONFIG_FILENAME = "plans.yml"


@dataclass(frozen=True)
class PlanConfig:
    """Features and pricing for a single plan."""

    plan_id: str
    name: str
    price: Optional[float] = None
    period: Optional[str] = None
    features: Dict[str, FeatureEntitlement] = field(default_factory=dict)

    def to_plan_ref(self) -> PlanRef:
        return PlanRef(plan_id=self.plan_id, name=self.name, price=self.price, period=self.period)

    def get_enabled_features(self) -> List[str]:
        return [key for key, feat in self.features.items() if feat.available]


@dataclass(frozen=True)
class RoleConfig:
    """A display role and its permission map."""

    name: str
    description: str = ""
    permissions: Dict[str, Any] = field(default_factory=dict)


class PlansConfigLoader:
    """
    Thread-safe singleton loader for config/plans.yml.

    Lazy loading with reload support.
    """

    _instance: Optional["PlansConfigLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._raw: Dict[str, Any] = {}
        self._default_features: Dict[str, FeatureEntitlement] = {}
        self._plans: Dict[str, PlanConfig] = {}
        self._roles: Dict[str, RoleConfig] = {}
        self._upgrade_messages: Dict[str, str] = {}
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    # ------------------------------------------------------------------
    # Config resolution
    # ------------------------------------------------------------------

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        env_path = os.getenv(CONFIG_PATH_ENV)
        if env_path:
            return Path(env_path)

        candidates = [
            Path(__file__).parent.parent.parent / "config" / DEFAULT_CONFIG_FILENAME,
            Path(os.getcwd()) / "config" / DEFAULT_CONFIG_FILENAME,
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"{DEFAULT_CONFIG_FILENAME} not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            path = self._resolve_path()
            logger.info("Loading plans config from %s", path)

            with open(path, "r") as f:
                self._raw = yaml.safe_load(f) or {}

            self._default_features = parse_feature_flags(self._raw.get("default_features", {}))
            self._plans = self._parse_plans()
            self._roles = self._parse_roles()
            self._upgrade_messages = {
                str(name): str(message)
                for name, message in (self._raw.get("upgrade_messages") or {}).items()
            }

            logger.info(
                "Loaded %d plans and %d roles",
                len(self._plans),
                len(self._roles),
            )

    def _parse_plans(self) -> Dict[str, PlanConfig]:
        plans: Dict[str, PlanConfig] = {}
        for plan_data in self._raw.get("plans", []):
            plan_id = plan_data.get("id")
            if not plan_id:
                raise ValueError(f"Plan entry missing 'id': {plan_data}")

            features = dict(self._default_features)
            features.update(parse_feature_flags(plan_data.get("features", {})))

            plans[plan_id] = PlanConfig(
                plan_id=plan_id,
                name=plan_data.get("name", plan_id),
                price=plan_data.get("price"),
                period=plan_data.get("period"),
                features=features,
            )
        return plans

    def _parse_roles(self) -> Dict[str, RoleConfig]:
        roles: Dict[str, RoleConfig] = {}
        for role_data in self._raw.get("roles", []):
            name = role_data.get("name")
            if not name:
                raise ValueError(f"Role entry missing 'name': {role_data}")
            roles[name.lower()] = RoleConfig(
                name=name,
                description=role_data.get("description", ""),
                permissions=role_data.get("permissions") or {},
            )
        return roles

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read the YAML from disk (e.g. after a config change)."""
        self._load()

    @property
    def default_features(self) -> Dict[str, FeatureEntitlement]:
        return dict(self._default_features)

    @property
    def plan_ids(self) -> List[str]:
        return list(self._plans.keys())

    def get_plan(self, plan_id: str) -> Optional[PlanConfig]:
        """Look up a plan by id, falling back to a case-insensitive name match."""
        plan = self._plans.get(plan_id)
        if plan is not None:
            return plan
        lowered = plan_id.lower()
        for candidate in self._plans.values():
            if candidate.name.lower() == lowered:
                return candidate
        return None

    def get_upgrade_message(self, feature_name: Optional[str]) -> str:
        """Configured upgrade prompt for a feature, or the generic one."""
        return feature_upgrade_message(feature_name, self._upgrade_messages)

    def get_role(self, raw_role: str) -> Optional[RoleConfig]:
        """Look up a role by its raw name, then by its canonical name."""
        role = self._roles.get(raw_role.strip().lower())
        if role is not None:
            return role
        return self._roles.get(canonicalize_role(raw_role).lower())


def get_plans_config_loader(config_path: Optional[str] = None) -> PlansConfigLoader:
    """Get the singleton PlansConfigLoader."""
    return PlansConfigLoader(config_path)


def reset_plans_config_loader() -> None:
    """Reset the singleton (for tests)."""
    PlansConfigLoader._instance = None
