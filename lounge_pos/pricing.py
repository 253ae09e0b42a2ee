"""Pricing and bonus configuration for a shop.

The persisted JSON documents look like::

    {"Playstation": {"weekday": 150, "weekend": 200}, "extraControllerRate": 50, "bufferMinutes": 10}

    {"Playstation": {"weekday": {"oneHour": 900, "twoHours": 1800, "threeHours": 3600},
                     "weekend": {"oneHour": 0, "twoHours": 0, "threeHours": 0}}}

``PricingConfig.from_json`` / ``BonusConfig.from_json`` merge a stored document
over the defaults, so a shop that only saved one game type still prices the
others.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from lounge_pos.config import settings

logger = logging.getLogger(__name__)


class GameType(str, Enum):
    PLAYSTATION = "Playstation"
    STEERING_WHEEL = "Steering Wheel"
    SYSTEM = "System"


class DayType(str, Enum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"


_GAME_TYPE_ALIASES = {
    "playstation": GameType.PLAYSTATION,
    "ps4": GameType.PLAYSTATION,
    "ps5": GameType.PLAYSTATION,
    "steering wheel": GameType.STEERING_WHEEL,
    "steeringwheel": GameType.STEERING_WHEEL,
    "steering_wheel": GameType.STEERING_WHEEL,
    "system": GameType.SYSTEM,
    "desktop": GameType.SYSTEM,
}

EXTRA_CONTROLLER_KEY = "extraControllerRate"
BUFFER_MINUTES_KEY = "bufferMinutes"

DEFAULT_EXTRA_CONTROLLER_RATE = Decimal("50")
DEFAULT_BUFFER_MINUTES = 10


def normalize_game_type(value: Any) -> Optional[GameType]:
    """Map a stored or legacy game type name to its canonical value, or None."""
    if isinstance(value, GameType):
        return value
    if not isinstance(value, str):
        return None
    return _GAME_TYPE_ALIASES.get(" ".join(value.split()).lower())


def _money(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _minutes(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"bufferMinutes must be a whole number, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"bufferMinutes must be a whole number, got {value!r}")
    return int(value)


def _money_to_json(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class GameRates(BaseModel):
    weekday: Decimal = Field(ge=0)
    weekend: Decimal = Field(ge=0)

    def for_day(self, day_type: DayType) -> Decimal:
        return self.weekend if day_type == DayType.WEEKEND else self.weekday


class BonusTiers(BaseModel):
    """Free seconds unlocked at 1, 2 and 3 hours played. Only the highest applies."""

    model_config = ConfigDict(populate_by_name=True)

    one_hour: int = Field(default=0, ge=0, alias="oneHour")
    two_hours: int = Field(default=0, ge=0, alias="twoHours")
    three_hours: int = Field(default=0, ge=0, alias="threeHours")

    @property
    def disabled(self) -> bool:
        return self.one_hour == 0 and self.two_hours == 0 and self.three_hours == 0


class DayBonus(BaseModel):
    weekday: BonusTiers
    weekend: BonusTiers

    def for_day(self, day_type: DayType) -> BonusTiers:
        return self.weekend if day_type == DayType.WEEKEND else self.weekday


_STANDARD_TIERS = {"oneHour": 900, "twoHours": 1800, "threeHours": 3600}
_NO_TIERS = {"oneHour": 0, "twoHours": 0, "threeHours": 0}


def default_rates() -> dict[GameType, GameRates]:
    return {
        GameType.PLAYSTATION: GameRates(weekday=Decimal("150"), weekend=Decimal("200")),
        GameType.STEERING_WHEEL: GameRates(weekday=Decimal("150"), weekend=Decimal("150")),
        GameType.SYSTEM: GameRates(weekday=Decimal("100"), weekend=Decimal("100")),
    }


def default_bonus_tiers() -> dict[GameType, DayBonus]:
    return {
        GameType.PLAYSTATION: DayBonus.model_validate({"weekday": _STANDARD_TIERS, "weekend": _NO_TIERS}),
        GameType.STEERING_WHEEL: DayBonus.model_validate({"weekday": _STANDARD_TIERS, "weekend": _NO_TIERS}),
        GameType.SYSTEM: DayBonus.model_validate({"weekday": _STANDARD_TIERS, "weekend": _STANDARD_TIERS}),
    }


class PricingConfig(BaseModel):
    rates: dict[GameType, GameRates] = Field(default_factory=default_rates)
    extra_controller_rate: Decimal = Field(default=DEFAULT_EXTRA_CONTROLLER_RATE, ge=0)
    buffer_minutes: int = Field(default=DEFAULT_BUFFER_MINUTES, ge=0)

    @classmethod
    def from_json(
        cls, data: Optional[Mapping[str, Any]], base: Optional["PricingConfig"] = None
    ) -> "PricingConfig":
        """Merge ``data`` over ``base``, or over the defaults when no base is given."""
        base = base or cls()
        rates = dict(base.rates)
        extra_controller_rate = base.extra_controller_rate
        buffer_minutes = base.buffer_minutes
        for key, value in (data or {}).items():
            if key == EXTRA_CONTROLLER_KEY:
                if value is not None:
                    extra_controller_rate = _money(value)
                continue
            if key == BUFFER_MINUTES_KEY:
                if value is not None:
                    buffer_minutes = _minutes(value)
                continue
            game_type = normalize_game_type(key)
            if game_type is None or not isinstance(value, Mapping):
                logger.warning("skipping unknown pricing key %r", key)
                continue
            rates[game_type] = GameRates(weekday=_money(value["weekday"]), weekend=_money(value["weekend"]))
        return cls(
            rates=rates,
            extra_controller_rate=extra_controller_rate,
            buffer_minutes=buffer_minutes,
        )

    def to_json(self) -> dict:
        data: dict[str, Any] = {
            game_type.value: {
                "weekday": _money_to_json(rates.weekday),
                "weekend": _money_to_json(rates.weekend),
            }
            for game_type, rates in self.rates.items()
        }
        data[EXTRA_CONTROLLER_KEY] = _money_to_json(self.extra_controller_rate)
        data[BUFFER_MINUTES_KEY] = self.buffer_minutes
        return data


class BonusConfig(BaseModel):
    tiers: dict[GameType, DayBonus] = Field(default_factory=default_bonus_tiers)

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> "BonusConfig":
        tiers = default_bonus_tiers()
        for key, value in (data or {}).items():
            game_type = normalize_game_type(key)
            if game_type is None or not isinstance(value, Mapping):
                logger.warning("skipping unknown bonus key %r", key)
                continue
            weekday = value.get("weekday")
            if weekday is None:
                weekday = {}
            # only a missing weekend table reuses the weekday tiers; {} means no weekend bonus
            weekend = value.get("weekend")
            if weekend is None:
                weekend = weekday
            tiers[game_type] = DayBonus(
                weekday=BonusTiers.model_validate(weekday),
                weekend=BonusTiers.model_validate(weekend),
            )
        return cls(tiers=tiers)

    def to_json(self) -> dict:
        return {
            game_type.value: {
                "weekday": day_bonus.weekday.model_dump(by_alias=True),
                "weekend": day_bonus.weekend.model_dump(by_alias=True),
            }
            for game_type, day_bonus in self.tiers.items()
        }


class BillingConfig(BaseModel):
    """Read-only snapshot of everything the billing engine needs for one shop."""

    model_config = ConfigDict(frozen=True)

    pricing: PricingConfig = Field(default_factory=PricingConfig)
    bonus: BonusConfig = Field(default_factory=BonusConfig)
    timezone: str = settings.default_timezone

    def fallback_warnings(self, game_type: GameType) -> list[str]:
        """Describe the lookups for ``game_type`` that will fall back to System."""
        warnings = []
        if game_type not in self.pricing.rates:
            warnings.append(f"no pricing configured for {game_type.value}, using System rates")
        if game_type not in self.bonus.tiers:
            warnings.append(f"no bonus configured for {game_type.value}, using System bonus")
        return warnings

    def get_rate(self, game_type: GameType, day_type: DayType) -> Decimal:
        rates = self.pricing.rates.get(game_type)
        if rates is None:
            logger.warning("no pricing for game type %s, falling back to System", game_type.value)
            rates = self.pricing.rates.get(GameType.SYSTEM) or default_rates()[GameType.SYSTEM]
        return rates.for_day(day_type)

    def get_extra_controller_rate(self) -> Decimal:
        return self.pricing.extra_controller_rate

    def get_buffer_minutes(self) -> int:
        return self.pricing.buffer_minutes

    def get_bonus_tiers(self, game_type: GameType, day_type: DayType) -> BonusTiers:
        day_bonus = self.bonus.tiers.get(game_type)
        if day_bonus is None:
            logger.warning("no bonus tiers for game type %s, falling back to System", game_type.value)
            day_bonus = self.bonus.tiers.get(GameType.SYSTEM) or default_bonus_tiers()[GameType.SYSTEM]
        return day_bonus.for_day(day_type)
