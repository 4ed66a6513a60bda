# Overview: Read-side product lookup used for line snapshots and availability checks.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import NotFoundError
from ..models import Product, StockMovement


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def find_product(code) -> Product:
    """
    Resolve a scanned or typed code to an active product.

    Accepts a numeric product id, a SKU or a barcode. SKU/barcode matches
    win over an id match so a purely numeric barcode still scans correctly.
    """
    if code is None or (isinstance(code, str) and not code.strip()):
        raise NotFoundError("Product code is required")

    value = str(code).strip()
    product = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(or_(Product.sku == value, Product.barcode == value))
        .first()
    )
    if product is None and value.isdigit():
        product = (
            db.session.query(Product)
            .filter(Product.id == int(value), Product.is_active.is_(True))
            .first()
        )
    if product is None:
        raise NotFoundError(f"Product not found with id/SKU/barcode: {value}")
    return product


def list_low_stock(limit: int = 100) -> list[Product]:
    """Active products at or under their minimum threshold (advisory)."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(Product.stock_qty <= Product.min_stock)
        .order_by(Product.stock_qty.asc(), Product.name.asc())
        .limit(limit)
        .all()
    )


def list_movements(product_id: int, limit: int = 100, offset: int = 0) -> tuple[list[StockMovement], int]:
    get_product(product_id)
    query = db.session.query(StockMovement).filter(StockMovement.product_id == product_id)
    total = query.count()
    movements = (
        query.order_by(StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return movements, total


def create_product(
    *,
    sku: str,
    name: str,
    sell_price_cents: int,
    cost_price_cents: int,
    barcode: str | None = None,
    stock_qty: int = 0,
    min_stock: int = 0,
    max_stock: int | None = None,
) -> Product:
    """Seed helper for the CLI; catalog maintenance is owned by another system."""
    product = Product(
        sku=sku,
        name=name,
        barcode=barcode,
        sell_price_cents=sell_price_cents,
        cost_price_cents=cost_price_cents,
        stock_qty=stock_qty,
        min_stock=min_stock,
        max_stock=max_stock,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product
