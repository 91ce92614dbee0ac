from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import discounts, schemas
from ..auth import CallerIdentity, get_current_admin
from ..database import get_db

router = APIRouter(prefix="/api", tags=["inventory"])


@router.post("/inventory", response_model=schemas.ProductOut, status_code=201)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    return discounts.create_product(db, payload.model_dump())


@router.get("/inventory", response_model=List[schemas.ProductOut])
def list_products(db: Session = Depends(get_db)):
    return discounts.list_products(db)


@router.get("/inventory/near-expiry", response_model=List[schemas.ProductOut])
def list_near_expiry(db: Session = Depends(get_db)):
    """Active stock expiring within the next 30 days"""
    return discounts.list_near_expiry(db)


@router.patch("/inventory/{product_id}", response_model=schemas.ProductOut)
def update_product(
    product_id: str,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    return discounts.update_product(db, product_id, payload.model_dump(exclude_unset=True))


@router.patch("/inventory/{product_id}/stock", response_model=schemas.ProductOut)
def update_stock(
    product_id: str,
    payload: schemas.StockUpdate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    """operation is either add or deduct"""
    return discounts.update_stock(db, product_id, payload.operation, payload.quantity)


@router.delete("/inventory/{product_id}", response_model=schemas.MessageResponse)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    discounts.delete_product(db, product_id)
    return schemas.MessageResponse(message="Product permanently deleted")


@router.patch("/inventory/{product_id}/discount", response_model=schemas.DiscountResponse)
def set_discount(
    product_id: str,
    payload: schemas.DiscountUpdate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    """Manual discount in percent; 0 or null hands the product back to the expiry rule"""
    product = discounts.set_manual_discount(db, product_id, payload.discount)
    message = "Discount updated" if product.manual_discount_percent is not None else "Discount cleared"
    return schemas.DiscountResponse(message=message, product=schemas.ProductOut.model_validate(product))


@router.get("/sales", response_model=List[schemas.SaleItem])
def list_sales(db: Session = Depends(get_db)):
    """Products currently sold below list price"""
    return discounts.list_sales(db)


@router.get("/dashboard", response_model=schemas.DashboardOut)
def dashboard(
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    return discounts.dashboard_stats(db)
