from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from lounge_pos.billing import (
    BillingInput,
    InvalidBillingInput,
    SnackLineItem,
    classify_day,
    compute_invoice_line,
)
from lounge_pos.config import settings
from lounge_pos.config_store import ShopConfigStore
from lounge_pos.db import SessionLocal
from lounge_pos.models import Shop, Snack
from lounge_pos.pricing import BonusConfig, PricingConfig

logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Lounge POS")


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_shop(db: Session, shop_id: int) -> Shop:
    shop = db.get(Shop, shop_id)
    if not shop:
        raise HTTPException(status_code=404, detail="shop not found")
    return shop


def _store(db: Session, shop_id: int) -> ShopConfigStore:
    _get_shop(db, shop_id)
    return ShopConfigStore(db, shop_id)


def _snack_data(snack: Snack) -> dict:
    return {
        "snack_id": snack.id,
        "shop_id": snack.shop_id,
        "name": snack.name,
        "price": str(snack.price),
        "active": snack.active,
        "display_order": snack.display_order,
    }


def _invalid_config(exc: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=f"invalid configuration: {exc}")


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


class ShopCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Gamers Spot', 'timezone': 'Asia/Kolkata', 'currency_code': 'INR', 'is_active': True}}}
    name: str
    timezone: str = settings.default_timezone
    currency_code: str = "INR"
    is_active: bool = True


@app.post("/api/v1/shops", tags=["Shops"])
def create_shop(payload: ShopCreate, db: Session = Depends(get_db)) -> dict:
    try:
        ZoneInfo(payload.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail="unknown timezone")
    shop = Shop(
        name=payload.name,
        timezone=payload.timezone,
        currency_code=payload.currency_code,
        status="ACTIVE" if payload.is_active else "INACTIVE",
        created_at=_now(),
    )
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return {
        "data": {
            "shop_id": shop.id,
            "name": shop.name,
            "timezone": shop.timezone,
            "currency_code": shop.currency_code,
            "is_active": payload.is_active,
        },
        "meta": _meta(),
    }


@app.get("/api/v1/shops/{shop_id}", tags=["Shops"])
def get_shop(shop_id: int, db: Session = Depends(get_db)) -> dict:
    shop = _get_shop(db, shop_id)
    return {
        "data": {
            "shop_id": shop.id,
            "name": shop.name,
            "timezone": shop.timezone,
            "currency_code": shop.currency_code,
            "status": shop.status,
            "created_at": shop.created_at.isoformat(),
        },
        "meta": _meta(),
    }


@app.get("/api/v1/shops/{shop_id}/pricing", tags=["Pricing"])
def get_pricing(shop_id: int, db: Session = Depends(get_db)) -> dict:
    store = _store(db, shop_id)
    return {"data": store.snapshot().pricing.to_json(), "meta": _meta()}


@app.put("/api/v1/shops/{shop_id}/pricing", tags=["Pricing"])
def update_pricing(shop_id: int, payload: dict[str, Any], db: Session = Depends(get_db)) -> dict:
    store = _store(db, shop_id)
    try:
        config = PricingConfig.from_json(payload, base=store.snapshot().pricing)
    except (ValidationError, KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise _invalid_config(exc)
    store.update_pricing(config)
    return {"data": store.snapshot().pricing.to_json(), "meta": _meta()}


@app.get("/api/v1/shops/{shop_id}/bonus-config", tags=["Bonus"])
def get_bonus_config(shop_id: int, db: Session = Depends(get_db)) -> dict:
    store = _store(db, shop_id)
    return {"data": store.snapshot().bonus.to_json(), "meta": _meta()}


@app.put("/api/v1/shops/{shop_id}/bonus-config", tags=["Bonus"])
def update_bonus_config(shop_id: int, payload: dict[str, Any], db: Session = Depends(get_db)) -> dict:
    store = _store(db, shop_id)
    try:
        config = BonusConfig.from_json(payload)
    except (ValidationError, TypeError, ValueError, ArithmeticError) as exc:
        raise _invalid_config(exc)
    store.update_bonus_config(config)
    return {"data": store.snapshot().bonus.to_json(), "meta": _meta()}


class SnackCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Coke Can', 'price': '40', 'active': True, 'display_order': 1}}}
    name: str
    price: Decimal = Field(ge=0)
    active: bool = True
    display_order: int = 0


class SnackUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    active: Optional[bool] = None
    display_order: Optional[int] = None


@app.post("/api/v1/shops/{shop_id}/snacks", tags=["Snacks"], status_code=201)
def create_snack(shop_id: int, payload: SnackCreate, db: Session = Depends(get_db)) -> dict:
    _get_shop(db, shop_id)
    now = _now()
    snack = Snack(
        shop_id=shop_id,
        name=payload.name,
        price=payload.price,
        active=payload.active,
        display_order=payload.display_order,
        created_at=now,
        updated_at=now,
    )
    db.add(snack)
    db.commit()
    db.refresh(snack)
    return {"data": _snack_data(snack), "meta": _meta()}


@app.get("/api/v1/shops/{shop_id}/snacks", tags=["Snacks"])
def list_snacks(
    shop_id: int,
    active: Optional[bool] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    _get_shop(db, shop_id)
    query = db.query(Snack).filter(Snack.shop_id == shop_id)
    if active is not None:
        query = query.filter(Snack.active == active)
    snacks = query.order_by(Snack.display_order, Snack.name).all()
    return {"data": [_snack_data(snack) for snack in snacks], "meta": _meta()}


def _get_snack(db: Session, shop_id: int, snack_id: int) -> Snack:
    snack = db.get(Snack, snack_id)
    if not snack or snack.shop_id != shop_id:
        raise HTTPException(status_code=404, detail="snack not found")
    return snack


@app.patch("/api/v1/shops/{shop_id}/snacks/{snack_id}", tags=["Snacks"])
def update_snack(shop_id: int, snack_id: int, payload: SnackUpdate, db: Session = Depends(get_db)) -> dict:
    snack = _get_snack(db, shop_id, snack_id)
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="no fields to update")
    for field, value in changes.items():
        setattr(snack, field, value)
    snack.updated_at = _now()
    db.commit()
    db.refresh(snack)
    return {"data": _snack_data(snack), "meta": _meta()}


@app.delete("/api/v1/shops/{shop_id}/snacks/{snack_id}", tags=["Snacks"])
def delete_snack(
    shop_id: int,
    snack_id: int,
    hard_delete: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict:
    snack = _get_snack(db, shop_id, snack_id)
    if hard_delete:
        db.delete(snack)
        db.commit()
        return {"data": {"snack_id": snack_id, "deleted": True}, "meta": _meta()}
    snack.active = False
    snack.updated_at = _now()
    db.commit()
    db.refresh(snack)
    return {"data": _snack_data(snack), "meta": _meta()}


@app.get("/api/v1/shops/{shop_id}/day-type", tags=["Billing"])
def get_day_type(shop_id: int, at: Optional[datetime] = Query(default=None), db: Session = Depends(get_db)) -> dict:
    shop = _get_shop(db, shop_id)
    instant = at or _now()
    return {
        "data": {
            "shop_id": shop.id,
            "at": instant.isoformat(),
            "timezone": shop.timezone,
            "day_type": classify_day(instant, shop.timezone).value,
        },
        "meta": _meta(),
    }


class SnackQuantityInput(BaseModel):
    snack_id: Optional[int] = None
    name: Optional[str] = None
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: int = Field(ge=0)


class BillingPreview(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "elapsed_seconds": 18533,
                "game_type": "Playstation",
                "extra_controllers": 1,
                "snacks": [{"snack_id": 1, "quantity": 2}],
                "billed_at": "2026-01-17T18:30:00+05:30",
            }
        }
    }
    elapsed_seconds: int = Field(ge=0)
    game_type: str
    extra_controllers: int = Field(default=0, ge=0)
    snacks: list[SnackQuantityInput] = Field(default_factory=list)
    billed_at: Optional[datetime] = None


def _snack_line_items(
    db: Session, shop_id: int, snacks: list[SnackQuantityInput]
) -> tuple[list[SnackLineItem], list[str]]:
    items: list[SnackLineItem] = []
    warnings: list[str] = []
    for entry in snacks:
        if entry.snack_id is None:
            if entry.unit_price is None:
                raise HTTPException(status_code=400, detail="snack line needs snack_id or unit_price")
            items.append(SnackLineItem(unit_price=entry.unit_price, quantity=entry.quantity, name=entry.name))
            continue
        snack = db.get(Snack, entry.snack_id)
        if not snack or snack.shop_id != shop_id or not snack.active:
            warnings.append(f"snack {entry.snack_id} is not an active snack of this shop, skipped")
            continue
        items.append(SnackLineItem(unit_price=snack.price, quantity=entry.quantity, name=snack.name))
    return items, warnings


@app.post("/api/v1/shops/{shop_id}/billing:preview", tags=["Billing"])
def preview_billing(shop_id: int, payload: BillingPreview, db: Session = Depends(get_db)) -> dict:
    store = _store(db, shop_id)
    items, warnings = _snack_line_items(db, shop_id, payload.snacks)
    billing_input = BillingInput(
        elapsed_seconds=payload.elapsed_seconds,
        game_type=payload.game_type,
        extra_controller_units=payload.extra_controllers,
        snack_line_items=items,
    )
    try:
        line = compute_invoice_line(billing_input, store.snapshot(), payload.billed_at or _now())
    except InvalidBillingInput as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "data": line.model_dump(mode="json", exclude={"warnings"}),
        "meta": _meta(warnings=warnings + line.warnings),
    }
