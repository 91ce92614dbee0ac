"""
Automatic near-expiry discounts and manual overrides for shop products.

Discounts are refreshed lazily: every sales or dashboard read calls
`apply_auto_discounts` first. Each product is written only when its stored
`discount_price` is out of date, so repeated and parallel refreshes settle
without extra writes.
"""
import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

NEAR_EXPIRY_DAYS = 7
NEAR_EXPIRY_FACTOR = Decimal("0.70")
SOON_EXPIRY_DAYS = 30
SOON_EXPIRY_FACTOR = Decimal("0.90")


def round2(value) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def manual_discount_price(price: float, percent: float) -> float:
    factor = Decimal(1) - Decimal(str(percent)) / Decimal(100)
    return round2(Decimal(str(price)) * factor)


def compute_auto_discount(product: models.Product, today: Optional[date] = None) -> Optional[float]:
    """Discounted price from days to expiry, or None when no auto discount applies"""
    if product.expiry_date is None or product.price is None:
        return None

    today = today or date.today()
    if product.expiry_date <= today:
        # expired stock is delisted through is_active, never discounted
        return None

    days_remaining = (product.expiry_date - today).days
    price = Decimal(str(product.price))
    if days_remaining <= NEAR_EXPIRY_DAYS:
        return round2(price * NEAR_EXPIRY_FACTOR)
    if days_remaining <= SOON_EXPIRY_DAYS:
        return round2(price * SOON_EXPIRY_FACTOR)
    return None


def target_discount_price(product: models.Product, today: Optional[date] = None) -> Optional[float]:
    if product.manual_discount_percent is not None:
        return manual_discount_price(product.price, product.manual_discount_percent)
    return compute_auto_discount(product, today=today)


def apply_auto_discounts(db: Session, today: Optional[date] = None) -> int:
    """Bring every active product's discount_price up to date; returns the number of writes"""
    products = db.query(models.Product).filter(models.Product.is_active.is_(True)).all()
    writes = 0

    for product in products:
        target = target_discount_price(product, today=today)
        if product.discount_price == target:
            continue

        # conditional write: skip if a parallel refresh already stored the target
        query = db.query(models.Product).filter(models.Product.id == product.id)
        if target is None:
            query = query.filter(models.Product.discount_price.isnot(None))
        else:
            query = query.filter(
                or_(models.Product.discount_price.is_(None), models.Product.discount_price != target)
            )
        writes += query.update({models.Product.discount_price: target}, synchronize_session=False)

    if writes:
        db.commit()
        db.expire_all()
        logger.info(f"Discount refresh updated {writes} product(s)")
    return writes


def get_product(db: Session, product_id: str) -> models.Product:
    product = None
    if models.is_valid_id(product_id):
        product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def set_manual_discount(db: Session, product_id: str, percent: Optional[float]) -> models.Product:
    """Set or clear the operator override; a non-positive percent clears it"""
    product = get_product(db, product_id)

    if percent is None or percent <= 0:
        product.manual_discount_percent = None
        # the automatic rule takes over on the next refresh
        product.discount_price = None
    elif percent > 100:
        raise ValidationError("discount must be between 0 and 100")
    else:
        product.manual_discount_percent = float(percent)
        product.discount_price = manual_discount_price(product.price, percent)

    db.commit()
    db.refresh(product)
    return product


def _manual_percent(percent: Optional[float]) -> Optional[float]:
    """A non-positive percent means no override"""
    if percent is None or percent <= 0:
        return None
    if percent > 100:
        raise ValidationError("manualDiscountPercent must be between 0 and 100")
    return float(percent)


def create_product(db: Session, attributes: dict) -> models.Product:
    attributes = dict(attributes, manual_discount_percent=_manual_percent(attributes.get("manual_discount_percent")))

    product = models.Product(**attributes)
    product.discount_price = target_discount_price(product)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def update_product(db: Session, product_id: str, changes: dict, today: Optional[date] = None) -> models.Product:
    """Edit product details; the stored discount follows the new price and expiry"""
    product = get_product(db, product_id)
    changes = dict(changes)

    for key in ("name", "category", "description", "price", "quantity", "low_stock_threshold", "is_active"):
        if key in changes and changes[key] is None:
            raise ValidationError(f"{key} cannot be empty")
    if changes.get("price") is not None and changes["price"] < 0:
        raise ValidationError("price must not be negative")
    if changes.get("quantity") is not None and changes["quantity"] < 0:
        raise ValidationError("quantity must not be negative")
    if "manual_discount_percent" in changes:
        changes["manual_discount_percent"] = _manual_percent(changes["manual_discount_percent"])

    for key, value in changes.items():
        setattr(product, key, value)
    product.discount_price = target_discount_price(product, today=today)

    db.commit()
    db.refresh(product)
    logger.info(f"Product {product.id} updated: {', '.join(sorted(changes)) or 'no changes'}")
    return product


def update_stock(db: Session, product_id: str, operation: str, quantity: int) -> models.Product:
    """Add stock or deduct sold units; stock never goes below zero"""
    product = get_product(db, product_id)

    if quantity < 0:
        raise ValidationError("quantity must not be negative")
    if operation == "add":
        product.quantity += quantity
    elif operation == "deduct":
        if product.quantity < quantity:
            raise ValidationError("Insufficient stock")
        product.quantity -= quantity
    else:
        raise ValidationError("Invalid operation")

    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: str) -> None:
    product = get_product(db, product_id)
    db.delete(product)
    db.commit()
    logger.info(f"Product {product_id} deleted")


def list_near_expiry(db: Session, today: Optional[date] = None, days: int = SOON_EXPIRY_DAYS) -> List[models.Product]:
    """Active products expiring between today and `days` from now, soonest first"""
    today = today or date.today()
    return db.query(models.Product).filter(
        models.Product.is_active.is_(True),
        models.Product.expiry_date.isnot(None),
        models.Product.expiry_date >= today,
        models.Product.expiry_date <= today + timedelta(days=days),
    ).order_by(models.Product.expiry_date, models.Product.name).all()


def list_products(db: Session, include_inactive: bool = False) -> List[models.Product]:
    query = db.query(models.Product)
    if not include_inactive:
        query = query.filter(models.Product.is_active.is_(True))
    return query.order_by(models.Product.name).all()


def list_sales(db: Session, today: Optional[date] = None) -> List[models.Product]:
    """Active products that currently sell below list price"""
    apply_auto_discounts(db, today=today)
    return db.query(models.Product).filter(
        models.Product.is_active.is_(True),
        models.Product.discount_price.isnot(None),
    ).order_by(models.Product.expiry_date).all()


def dashboard_stats(db: Session, today: Optional[date] = None) -> dict:
    apply_auto_discounts(db, today=today)
    active = db.query(models.Product).filter(models.Product.is_active.is_(True))
    products = active.order_by(models.Product.name).all()

    return {
        "total_products": len(products),
        "low_stock": sum(1 for p in products if p.quantity < p.low_stock_threshold),
        "discounted_products": sum(1 for p in products if p.discount_price is not None),
        "products": products,
    }
