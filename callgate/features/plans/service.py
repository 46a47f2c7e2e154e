"""
callgate/features/plans/service.py

Plan configuration table.

Handles:
- Plan definitions (free, starter, pro, enterprise)
- Call duration cap lookup (pure, deterministic per plan)
- Startup validation: a plan without a usable cap is a fatal misconfiguration
"""

import logging
from typing import Dict, Iterable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from callgate.core.errors import ConfigurationError
from callgate.models.plan import PlanConfig


logger = logging.getLogger(__name__)

FREE_PLAN_ID = "free"

# Default plan configurations
DEFAULT_PLANS: Dict[str, Dict[str, object]] = {
    "free": {
        "name": "Free",
        "max_call_duration_seconds": 90,
        "token_allotment": 0,
        "unmetered": False,
        "overage_billing": False,
    },
    "starter": {
        "name": "Starter",
        "max_call_duration_seconds": 180,
        "token_allotment": 5000,
        "unmetered": False,
        "overage_billing": False,
    },
    "pro": {
        "name": "Pro",
        "max_call_duration_seconds": 300,
        "token_allotment": 20000,
        "unmetered": False,
        "overage_billing": True,  # calls past the allotment are billed per call
    },
    "enterprise": {
        "name": "Enterprise",
        "max_call_duration_seconds": 600,
        "token_allotment": 0,
        "unmetered": True,
        "overage_billing": False,
    },
}


def build_plan_configs(raw: Mapping[str, Mapping[str, object]]) -> Dict[str, PlanConfig]:
    """
    Parse and validate a raw plan table.

    Raises:
        ConfigurationError: missing free plan, or any entry without a positive
            max_call_duration_seconds / with invalid fields
    """
    if FREE_PLAN_ID not in raw:
        raise ConfigurationError(f"Plan table must define the '{FREE_PLAN_ID}' plan")

    configs: Dict[str, PlanConfig] = {}
    for plan_id, entry in raw.items():
        if "max_call_duration_seconds" not in entry:
            raise ConfigurationError(f"Plan {plan_id} has no max_call_duration_seconds")
        try:
            configs[plan_id] = PlanConfig(plan_id=plan_id, **entry)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Plan {plan_id} is misconfigured: {exc}") from exc
    return configs


PLAN_CONFIGS: Dict[str, PlanConfig] = build_plan_configs(DEFAULT_PLANS)


def get_plan_config(plan_id: str, configs: Optional[Mapping[str, PlanConfig]] = None) -> PlanConfig:
    """
    Look up a plan's configuration.

    Raises:
        ConfigurationError: plan_id not in the table (never silently defaulted)
    """
    table = PLAN_CONFIGS if configs is None else configs
    config = table.get(plan_id)
    if config is None:
        logger.error("[plans] unknown plan", extra={"plan": plan_id})
        raise ConfigurationError(f"Plan {plan_id} has no configuration entry")
    return config


def max_call_duration_seconds(plan_id: str, configs: Optional[Mapping[str, PlanConfig]] = None) -> int:
    return get_plan_config(plan_id, configs).max_call_duration_seconds


def validate_plan_configs(
    configs: Optional[Mapping[str, PlanConfig]] = None,
    required_plan_ids: Iterable[str] = (),
) -> bool:
    """Fail loudly at startup if any required plan lacks configuration."""
    table = PLAN_CONFIGS if configs is None else configs
    missing = [plan_id for plan_id in required_plan_ids if plan_id not in table]
    if FREE_PLAN_ID not in table:
        missing.append(FREE_PLAN_ID)
    if missing:
        raise ConfigurationError(f"Missing plan configuration: {', '.join(sorted(set(missing)))}")
    for plan_id, config in table.items():
        if config.max_call_duration_seconds <= 0:
            raise ConfigurationError(f"Plan {plan_id} has a non-positive call duration cap")
    return True
