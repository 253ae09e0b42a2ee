from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from lounge_pos.models import BonusConfigRow, PricingRule, Shop
from lounge_pos.pricing import (
    BillingConfig,
    BonusConfig,
    BonusTiers,
    DayType,
    GameType,
    PricingConfig,
    normalize_game_type,
)

logger = logging.getLogger(__name__)


class ShopNotFound(LookupError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_canonical_rule(rule: PricingRule) -> bool:
    game_type = normalize_game_type(rule.game_type)
    return game_type is not None and rule.game_type == game_type.value


class ShopConfigStore:
    """Loads and saves one shop's pricing and bonus configuration.

    Reads go through a cached ``BillingConfig`` snapshot. Every write drops the
    snapshot before returning, and ``refresh()`` reloads it on demand, so a
    store never serves a configuration older than its last write or refresh.
    """

    def __init__(self, db: Session, shop_id: int) -> None:
        self.db = db
        self.shop_id = shop_id
        self._snapshot: Optional[BillingConfig] = None

    def _shop(self) -> Shop:
        shop = self.db.get(Shop, self.shop_id)
        if not shop:
            raise ShopNotFound(self.shop_id)
        return shop

    def load_pricing_json(self) -> dict:
        shop = self._shop()
        data: dict = {}
        rules = (
            self.db.query(PricingRule)
            .filter(PricingRule.shop_id == self.shop_id)
            .order_by(PricingRule.id)
            .all()
        )
        # canonical rows are applied after legacy aliases of the same game type
        rules.sort(key=_is_canonical_rule)
        for rule in rules:
            data[rule.game_type] = {"weekday": rule.weekday_rate, "weekend": rule.weekend_rate}
        if shop.extra_controller_rate is not None:
            data["extraControllerRate"] = shop.extra_controller_rate
        if shop.buffer_minutes is not None:
            data["bufferMinutes"] = shop.buffer_minutes
        return data

    def load_bonus_json(self) -> Optional[dict]:
        self._shop()
        row = self.db.query(BonusConfigRow).filter(BonusConfigRow.shop_id == self.shop_id).first()
        return row.config_data if row else None

    def snapshot(self) -> BillingConfig:
        if self._snapshot is None:
            self.refresh()
        return self._snapshot

    def refresh(self) -> BillingConfig:
        shop = self._shop()
        self._snapshot = BillingConfig(
            pricing=PricingConfig.from_json(self.load_pricing_json()),
            bonus=BonusConfig.from_json(self.load_bonus_json()),
            timezone=shop.timezone,
        )
        return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None

    def get_rate(self, game_type: GameType, day_type: DayType) -> Decimal:
        return self.snapshot().get_rate(game_type, day_type)

    def get_extra_controller_rate(self) -> Decimal:
        return self.snapshot().get_extra_controller_rate()

    def get_buffer_minutes(self) -> int:
        return self.snapshot().get_buffer_minutes()

    def get_bonus_tiers(self, game_type: GameType, day_type: DayType) -> BonusTiers:
        return self.snapshot().get_bonus_tiers(game_type, day_type)

    def update_pricing(self, config: PricingConfig) -> None:
        shop = self._shop()
        now = _now()
        existing = {}
        for rule in self.db.query(PricingRule).filter(PricingRule.shop_id == self.shop_id).all():
            game_type = normalize_game_type(rule.game_type)
            if game_type in config.rates and rule.game_type != game_type.value:
                # rows saved under a legacy name (PS5, Desktop) are replaced by the canonical one
                self.db.delete(rule)
                continue
            existing[rule.game_type] = rule
        for game_type, rates in config.rates.items():
            rule = existing.get(game_type.value)
            if rule is None:
                rule = PricingRule(shop_id=self.shop_id, game_type=game_type.value)
                self.db.add(rule)
            rule.weekday_rate = rates.weekday
            rule.weekend_rate = rates.weekend
            rule.updated_at = now
        shop.extra_controller_rate = config.extra_controller_rate
        shop.buffer_minutes = config.buffer_minutes
        self.db.commit()
        self.invalidate()
        logger.info("pricing updated for shop %s", self.shop_id)

    def update_bonus_config(self, config: BonusConfig) -> None:
        self._shop()
        row = self.db.query(BonusConfigRow).filter(BonusConfigRow.shop_id == self.shop_id).first()
        if row is None:
            row = BonusConfigRow(shop_id=self.shop_id)
            self.db.add(row)
        row.config_data = config.to_json()
        row.updated_at = _now()
        self.db.commit()
        self.invalidate()
        logger.info("bonus config updated for shop %s", self.shop_id)
