"""Validation and normalization of reasoning-engine action lists.

This is the single trust boundary between the reasoning engine and the
executor. The executor applies actions verbatim, so every safety rule lives
here:

- Only the closed action vocabulary is accepted; unknown types are dropped.
- A recognized action that breaks its parameter contract aborts the batch.
- Budgets are coerced to integer cents and capped.
- An empty result is an error, never an empty success.
"""

from __future__ import annotations
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from .actions import (
    ACTION_TYPES,
    GET_CAMPAIGN_STATUS,
    MAX_DAILY_BUDGET_CENTS,
    PAUSE_CAMPAIGN,
    UPDATE_ADSET_DAILY_BUDGET,
    BudgetParams,
    CampaignRef,
    GetCampaignStatus,
    PauseCampaign,
    PauseParams,
    UpdateAdSetDailyBudget,
)
from .errors import InvalidPlanError


# Values with more integer digits than this cannot be rounded in the default
# 28-digit decimal context.
_MAX_BUDGET_DIGITS = 27

_HALF = Decimal("0.5")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, (str, Decimal)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def to_int_cents(value: Any) -> Optional[int]:
    """Coerce a budget value to the nearest integer, half rounding up.

    Returns None for anything that is not a finite number (booleans, None,
    empty or non-numeric strings, NaN and infinities) and for magnitudes
    too large to be a budget at all.

    Examples:
        >>> to_int_cents(9999.6)
        10000
        >>> to_int_cents("1500")
        1500
        >>> to_int_cents("abc") is None
        True
        >>> to_int_cents("1e400") is None
        True
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _to_decimal(value)
    if number is None or number.adjusted() >= _MAX_BUDGET_DIGITS:
        return None
    return int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _required_id(params: Mapping[str, Any], field_name: str, action_type: str) -> str:
    raw = params.get(field_name)
    if isinstance(raw, bool) or raw is None:
        raw = None
    elif isinstance(raw, int):
        raw = str(raw)
    elif isinstance(raw, str):
        raw = raw.strip()
    else:
        raw = None
    if not raw:
        raise InvalidPlanError(
            f"{action_type}: {field_name} required",
            action_type=action_type,
            field_name=field_name,
        )
    return raw


def _validate_one(
    action_type: str, params: Mapping[str, Any], max_daily_budget_cents: int
):
    if action_type == GET_CAMPAIGN_STATUS:
        campaign_id = _required_id(params, "campaign_id", action_type)
        return GetCampaignStatus(params=CampaignRef(campaign_id=campaign_id))

    if action_type == PAUSE_CAMPAIGN:
        campaign_id = _required_id(params, "campaign_id", action_type)
        return PauseCampaign(params=PauseParams(campaign_id=campaign_id, status="PAUSED"))

    if action_type == UPDATE_ADSET_DAILY_BUDGET:
        adset_id = _required_id(params, "adset_id", action_type)
        raw_budget = params.get("daily_budget")
        number = _to_decimal(raw_budget)
        # checked before rounding so oversized values never reach quantize()
        if number is not None and number >= max_daily_budget_cents + _HALF:
            raise InvalidPlanError(
                f"daily_budget > {max_daily_budget_cents} not allowed",
                action_type=action_type,
                field_name="daily_budget",
                field_value=str(raw_budget),
            )
        cents = to_int_cents(raw_budget)
        if cents is None:
            raise InvalidPlanError(
                f"{action_type}: daily_budget int cents required",
                action_type=action_type,
                field_name="daily_budget",
                field_value=repr(raw_budget),
            )
        return UpdateAdSetDailyBudget(params=BudgetParams(adset_id=adset_id, daily_budget=cents))

    # Unreachable while allowed types are a subset of ACTION_TYPES
    raise InvalidPlanError(f"Unsupported action type: {action_type}", action_type=action_type)


def check_allowed_types(allowed_types: Iterable[str]) -> FrozenSet[str]:
    """Return allowed types as a frozenset; only narrowing the vocabulary is permitted."""
    allowed = frozenset(allowed_types)
    unknown = allowed - ACTION_TYPES
    if unknown:
        raise ValueError(f"Action types outside the vocabulary: {sorted(unknown)}")
    return allowed


def validate_actions(
    raw_actions: Any,
    *,
    allowed_types: Iterable[str] = ACTION_TYPES,
    max_daily_budget_cents: int = MAX_DAILY_BUDGET_CENTS,
) -> List[Any]:
    """Validate a raw action list into typed actions.

    Args:
        raw_actions: Untrusted list from the reasoning engine
        allowed_types: Subset of ACTION_TYPES to accept
        max_daily_budget_cents: Inclusive budget ceiling, never above MAX_DAILY_BUDGET_CENTS

    Returns:
        List of GetCampaignStatus / PauseCampaign / UpdateAdSetDailyBudget models

    Raises:
        InvalidPlanError: If the input is not a list, a recognized action is
            malformed, or no action survives
    """
    allowed = check_allowed_types(allowed_types)
    ceiling = min(max_daily_budget_cents, MAX_DAILY_BUDGET_CENTS)

    if not isinstance(raw_actions, list):
        raise InvalidPlanError(
            "actions must be array",
            context={"received_type": type(raw_actions).__name__},
        )

    cleaned: List[Any] = []
    skipped = 0
    for item in raw_actions:
        if not isinstance(item, Mapping):
            skipped += 1
            continue
        action_type = str(item.get("type") or "")
        if action_type not in allowed:
            skipped += 1
            continue
        params: Dict[str, Any] = dict(item["params"]) if isinstance(item.get("params"), Mapping) else {}
        cleaned.append(_validate_one(action_type, params, ceiling))

    if not cleaned:
        raise InvalidPlanError(
            "No valid actions",
            context={"received": len(raw_actions), "skipped": skipped},
        )
    return cleaned
