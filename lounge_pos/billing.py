"""Billing engine: elapsed play time to paid hours, bonus time and invoice totals.

Every call site (billing preview, invoice generation) goes through
``compute_invoice_line``; nothing else should redo the hour math.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from lounge_pos.pricing import (
    BillingConfig,
    BonusConfig,
    BonusTiers,
    DayType,
    GameType,
    normalize_game_type,
)

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
# Grace period once bonus time is granted. Not configurable per shop.
BONUS_BUFFER_MINUTES = 5

CENTS = Decimal("0.01")


class InvalidBillingInput(ValueError):
    pass


class SnackLineItem(BaseModel):
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=0)
    name: Optional[str] = None


class BillingInput(BaseModel):
    elapsed_seconds: int = Field(ge=0)
    game_type: str
    extra_controller_units: int = Field(default=0, ge=0)
    snack_line_items: list[SnackLineItem] = Field(default_factory=list)


class InvoiceLine(BaseModel):
    game_type: GameType
    day_type: DayType
    rate: Decimal
    paid_hours: int
    bonus_seconds: int
    extra_time_seconds: int
    base_cost: Decimal
    extra_controller_cost: Decimal
    snack_cost: Decimal
    total_cost: Decimal
    warnings: list[str] = Field(default_factory=list)


class CostBreakdown(NamedTuple):
    base_cost: Decimal
    extra_controller_cost: Decimal
    snack_cost: Decimal
    total_cost: Decimal


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise InvalidBillingInput(f"{name} must be >= 0, got {value}")


def classify_day(instant: datetime, tz: Union[str, ZoneInfo]) -> DayType:
    """Return weekend for Saturday/Sunday in ``tz``. Naive instants are UTC."""
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if instant.astimezone(tz).weekday() >= 5:
        return DayType.WEEKEND
    return DayType.WEEKDAY


def bonus_for_tiers(total_seconds: int, tiers: BonusTiers) -> int:
    _require_non_negative(total_seconds=total_seconds)
    if tiers.disabled:
        return 0
    # tiers are unlocked by time played, not by billable hours
    if total_seconds >= 3 * SECONDS_PER_HOUR:
        return tiers.three_hours
    if total_seconds >= 2 * SECONDS_PER_HOUR:
        return tiers.two_hours
    if total_seconds >= SECONDS_PER_HOUR:
        return tiers.one_hour
    return 0


def calculate_bonus_seconds(
    total_seconds: int,
    game_type: GameType,
    day_type: DayType,
    bonus_config: Union[BonusConfig, BillingConfig],
) -> int:
    if isinstance(bonus_config, BonusConfig):
        bonus_config = BillingConfig(bonus=bonus_config)
    return bonus_for_tiers(total_seconds, bonus_config.get_bonus_tiers(game_type, day_type))


def _round_to_hours(seconds: int, buffer_seconds: int) -> int:
    full_hours = seconds // SECONDS_PER_HOUR
    buffer_limit = full_hours * SECONDS_PER_HOUR + buffer_seconds
    if seconds <= buffer_limit:
        return max(full_hours, 1)
    return full_hours + 1


def hours_without_bonus(total_seconds: int, buffer_minutes: int) -> int:
    """Shop-configured grace period over the raw play time."""
    return _round_to_hours(total_seconds, buffer_minutes * 60)


def hours_with_bonus(total_seconds: int, bonus_seconds: int) -> int:
    """Fixed grace period over play time left after the bonus is taken off."""
    billable_seconds = max(total_seconds - bonus_seconds, 0)
    return _round_to_hours(billable_seconds, BONUS_BUFFER_MINUTES * 60)


def billable_hours(total_seconds: int, bonus_seconds: int, buffer_minutes: int) -> int:
    _require_non_negative(
        total_seconds=total_seconds,
        bonus_seconds=bonus_seconds,
        buffer_minutes=buffer_minutes,
    )
    if total_seconds == 0:
        return 0
    if bonus_seconds == 0:
        return hours_without_bonus(total_seconds, buffer_minutes)
    return hours_with_bonus(total_seconds, bonus_seconds)


def extra_time_seconds(
    total_seconds: int, game_type: GameType, day_type: DayType, buffer_minutes: int
) -> int:
    """Seconds played past the no-bonus buffer. Display only, Playstation weekends only."""
    if game_type != GameType.PLAYSTATION or day_type != DayType.WEEKEND:
        return 0
    if total_seconds == 0:
        return 0
    full_hours = total_seconds // SECONDS_PER_HOUR
    buffer_limit = full_hours * SECONDS_PER_HOUR + buffer_minutes * 60
    return max(total_seconds - buffer_limit, 0)


def cost_breakdown(
    paid_hours: int,
    rate: Decimal,
    extra_controller_units: int,
    extra_controller_rate: Decimal,
    snack_line_items: Iterable[SnackLineItem],
    game_type: GameType,
) -> CostBreakdown:
    _require_non_negative(paid_hours=paid_hours, extra_controller_units=extra_controller_units)
    base_cost = paid_hours * rate
    extra_controller_cost = Decimal("0")
    if game_type == GameType.PLAYSTATION:
        extra_controller_cost = extra_controller_units * extra_controller_rate
    snack_cost = Decimal("0")
    for item in snack_line_items:
        snack_cost += item.quantity * item.unit_price
    return CostBreakdown(
        base_cost=base_cost.quantize(CENTS, rounding=ROUND_HALF_UP),
        extra_controller_cost=extra_controller_cost.quantize(CENTS, rounding=ROUND_HALF_UP),
        snack_cost=snack_cost.quantize(CENTS, rounding=ROUND_HALF_UP),
        total_cost=(base_cost + extra_controller_cost + snack_cost).quantize(CENTS, rounding=ROUND_HALF_UP),
    )


def compose_cost(
    paid_hours: int,
    rate: Decimal,
    extra_controller_units: int,
    extra_controller_rate: Decimal,
    snack_line_items: Iterable[SnackLineItem],
    game_type: GameType,
) -> Decimal:
    return cost_breakdown(
        paid_hours, rate, extra_controller_units, extra_controller_rate, snack_line_items, game_type
    ).total_cost


def compute_invoice_line(
    billing_input: BillingInput, config: BillingConfig, billing_instant: datetime
) -> InvoiceLine:
    """Price one station session.

    The day type comes from ``billing_instant`` (when the bill is produced), not
    from when the session started, so a Friday night session billed after
    midnight is charged at the weekend rate.

    An unrecognised game type is billed as System and reported in
    ``InvoiceLine.warnings`` instead of failing.
    """
    warnings: list[str] = []
    game_type = normalize_game_type(billing_input.game_type)
    if game_type is None:
        message = f"unknown game type {billing_input.game_type!r}, billed as System"
        logger.warning(message)
        warnings.append(message)
        game_type = GameType.SYSTEM
    for message in config.fallback_warnings(game_type):
        warnings.append(message)

    day_type = classify_day(billing_instant, config.timezone)
    total_seconds = billing_input.elapsed_seconds
    buffer_minutes = config.get_buffer_minutes()

    bonus_seconds = calculate_bonus_seconds(total_seconds, game_type, day_type, config)
    paid_hours = billable_hours(total_seconds, bonus_seconds, buffer_minutes)
    rate = config.get_rate(game_type, day_type)
    costs = cost_breakdown(
        paid_hours,
        rate,
        billing_input.extra_controller_units,
        config.get_extra_controller_rate(),
        billing_input.snack_line_items,
        game_type,
    )
    return InvoiceLine(
        game_type=game_type,
        day_type=day_type,
        rate=rate,
        paid_hours=paid_hours,
        bonus_seconds=bonus_seconds,
        extra_time_seconds=extra_time_seconds(total_seconds, game_type, day_type, buffer_minutes),
        base_cost=costs.base_cost,
        extra_controller_cost=costs.extra_controller_cost,
        snack_cost=costs.snack_cost,
        total_cost=costs.total_cost,
        warnings=warnings,
    )
