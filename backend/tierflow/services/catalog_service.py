# backend/tierflow/services/catalog_service.py
"""
Manufacturer catalog service.

MULTI-TENANT: Manufacturer products belong to one organization. Clients of
that organization (or of organizations placed under it) can request them.
Stock is set when a product is added; afterwards it only changes through
purchase request approval.
"""
from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import ManufacturerProduct, Organization, Product
from ..validation import (
    MAX_QUANTITY,
    coerce_int,
    coerce_positive_int,
    optional_text,
    require_text,
    validate_price_cents,
)


def create_manufacturer_product(
    *,
    org_id: int,
    sku: str,
    name: str,
    price_cents,
    stock=0,
    description: str | None = None,
    category: str | None = None,
    loyalty_points=0,
    min_order_quantity=1,
    max_order_quantity=None,
    created_by_user_id: int | None = None,
) -> ManufacturerProduct:
    """
    Add a product to an organization's catalog.

    Raises:
        ValidationError: Bad field values, duplicate SKU or unknown organization
    """
    sku = require_text(sku, "sku", max_length=128)
    name = require_text(name, "name", max_length=255)
    price_cents = validate_price_cents(price_cents, "price_cents")

    stock = coerce_int(stock, "stock")
    if stock < 0:
        raise ValidationError("stock cannot be negative", field="stock")

    loyalty_points = coerce_int(loyalty_points, "loyalty_points")
    if loyalty_points < 0:
        raise ValidationError("loyalty_points cannot be negative", field="loyalty_points")

    min_order_quantity = coerce_positive_int(min_order_quantity, "min_order_quantity", maximum=MAX_QUANTITY)
    if max_order_quantity is not None:
        max_order_quantity = coerce_positive_int(max_order_quantity, "max_order_quantity", maximum=MAX_QUANTITY)
        if max_order_quantity < min_order_quantity:
            raise ValidationError(
                "max_order_quantity must be at least min_order_quantity",
                field="max_order_quantity",
            )

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise ValidationError(f"Organization {org_id} not found", field="org_id")

    if db.session.query(Product.id).filter_by(sku=sku).first():
        raise ValidationError(f"SKU {sku} already exists", field="sku")

    product = ManufacturerProduct(
        org_id=org_id,
        sku=sku,
        name=name,
        description=optional_text(description, "description"),
        category=optional_text(category, "category", max_length=120),
        price_cents=price_cents,
        loyalty_points=loyalty_points,
        is_active=True,
        stock=stock,
        min_order_quantity=min_order_quantity,
        max_order_quantity=max_order_quantity,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(product)
    db.session.commit()
    return product


def list_manufacturer_products(org_id: int | None = None, include_inactive: bool = False) -> list[ManufacturerProduct]:
    query = db.session.query(ManufacturerProduct)
    if org_id is not None:
        query = query.filter(ManufacturerProduct.org_id == org_id)
    if not include_inactive:
        query = query.filter(ManufacturerProduct.is_active.is_(True))
    return query.order_by(ManufacturerProduct.name.asc(), ManufacturerProduct.id.asc()).all()
