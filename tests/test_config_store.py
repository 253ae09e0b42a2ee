from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lounge_pos.config_store import ShopConfigStore, ShopNotFound
from lounge_pos.db import Base
from lounge_pos.models import PricingRule, Shop
from lounge_pos.pricing import BonusConfig, DayType, GameType, PricingConfig


def _make_session() -> Session:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal()


def _make_shop(db: Session, tz: str = "Asia/Kolkata") -> Shop:
    shop = Shop(name="Gamers Spot", timezone=tz, created_at=datetime.now(timezone.utc))
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return shop


def test_new_shop_gets_defaults() -> None:
    db = _make_session()
    shop = _make_shop(db, "Europe/London")
    store = ShopConfigStore(db, shop.id)
    assert store.get_rate(GameType.PLAYSTATION, DayType.WEEKEND) == Decimal("200")
    assert store.get_buffer_minutes() == 10
    assert store.get_bonus_tiers(GameType.SYSTEM, DayType.WEEKEND).three_hours == 3600
    assert store.snapshot().timezone == "Europe/London"


def test_update_pricing_is_visible_immediately() -> None:
    db = _make_session()
    shop = _make_shop(db)
    store = ShopConfigStore(db, shop.id)
    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("100")

    store.update_pricing(
        PricingConfig.from_json({"System": {"weekday": 80, "weekend": 90}, "extraControllerRate": 40, "bufferMinutes": 0})
    )

    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("80")
    assert store.get_extra_controller_rate() == Decimal("40")
    assert store.get_buffer_minutes() == 0
    assert ShopConfigStore(db, shop.id).get_rate(GameType.SYSTEM, DayType.WEEKEND) == Decimal("90")


def test_update_pricing_upserts_rules() -> None:
    db = _make_session()
    shop = _make_shop(db)
    store = ShopConfigStore(db, shop.id)
    store.update_pricing(PricingConfig())
    store.update_pricing(PricingConfig.from_json({"Playstation": {"weekday": 160, "weekend": 210}}))
    rules = db.query(PricingRule).filter(PricingRule.shop_id == shop.id).all()
    assert len(rules) == 3
    assert store.get_rate(GameType.PLAYSTATION, DayType.WEEKDAY) == Decimal("160")


def test_update_bonus_config_is_visible_immediately() -> None:
    db = _make_session()
    shop = _make_shop(db)
    store = ShopConfigStore(db, shop.id)
    assert store.get_bonus_tiers(GameType.PLAYSTATION, DayType.WEEKEND).disabled

    store.update_bonus_config(
        BonusConfig.from_json(
            {"Playstation": {"weekday": {"oneHour": 900}, "weekend": {"oneHour": 600, "twoHours": 1200, "threeHours": 1800}}}
        )
    )

    tiers = store.get_bonus_tiers(GameType.PLAYSTATION, DayType.WEEKEND)
    assert (tiers.one_hour, tiers.two_hours, tiers.three_hours) == (600, 1200, 1800)
    assert store.load_bonus_json()["Playstation"]["weekend"]["oneHour"] == 600


def test_snapshot_is_cached_until_refresh() -> None:
    db = _make_session()
    shop = _make_shop(db)
    store = ShopConfigStore(db, shop.id)
    store.update_pricing(PricingConfig())
    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("100")

    # a write that bypasses this store
    rule = db.query(PricingRule).filter(PricingRule.game_type == "System").one()
    rule.weekday_rate = Decimal("75")
    db.commit()

    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("100")
    store.refresh()
    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("75")

    rule.weekday_rate = Decimal("70")
    db.commit()
    store.invalidate()
    assert store.get_rate(GameType.SYSTEM, DayType.WEEKDAY) == Decimal("70")


def test_legacy_game_type_rows_are_normalized() -> None:
    db = _make_session()
    shop = _make_shop(db)
    db.add(
        PricingRule(
            shop_id=shop.id,
            game_type="PS5",
            weekday_rate=Decimal("130"),
            weekend_rate=Decimal("170"),
            updated_at=datetime.now(timezone.utc),
        )
    )
    db.commit()
    store = ShopConfigStore(db, shop.id)
    assert store.get_rate(GameType.PLAYSTATION, DayType.WEEKEND) == Decimal("170")


def test_canonical_row_wins_over_legacy_alias() -> None:
    db = _make_session()
    shop = _make_shop(db)
    now = datetime.now(timezone.utc)
    db.add(PricingRule(shop_id=shop.id, game_type="Playstation", weekday_rate=Decimal("160"), weekend_rate=Decimal("210"), updated_at=now))
    db.commit()
    db.add(PricingRule(shop_id=shop.id, game_type="PS5", weekday_rate=Decimal("130"), weekend_rate=Decimal("170"), updated_at=now))
    db.commit()
    store = ShopConfigStore(db, shop.id)
    assert store.get_rate(GameType.PLAYSTATION, DayType.WEEKDAY) == Decimal("160")
    assert store.get_rate(GameType.PLAYSTATION, DayType.WEEKEND) == Decimal("210")


def test_unknown_shop() -> None:
    db = _make_session()
    with pytest.raises(ShopNotFound):
        ShopConfigStore(db, 999).snapshot()
