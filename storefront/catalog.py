import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_

from storefront.models import Product

SORT_ORDERS = {
    "newest": (Product.created_at.desc(),),
    "price_asc": (Product.price.asc(), Product.name.asc()),
    "price_desc": (Product.price.desc(), Product.name.asc()),
    "name": (Product.name.asc(),),
}


@dataclass
class ProductFilters:
    q: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    size: Optional[str] = None
    color: Optional[str] = None
    sort: str = "newest"
    page: int = 1
    per_page: int = 12


LIKE_ESCAPE = "\\"


def _escape_like(value: str) -> str:
    return value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")


def _in_csv(column, value: str):
    # "S,M,L" contains "M" -> ",S,M,L," like "%,M,%"
    pattern = f"%,{_escape_like(value.lower())},%"
    return func.lower("," + func.coalesce(column, "") + ",").like(pattern, escape=LIKE_ESCAPE)


def build_product_query(db, filters: ProductFilters):
    query = db.query(Product).filter(Product.is_active.is_(True))
    if filters.q:
        pattern = f"%{_escape_like(filters.q.strip())}%"
        query = query.filter(or_(
            Product.name.ilike(pattern, escape=LIKE_ESCAPE),
            Product.description.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if filters.category:
        query = query.filter(Product.category == filters.category)
    if filters.subcategory:
        query = query.filter(Product.subcategory == filters.subcategory)
    if filters.min_price is not None:
        query = query.filter(Product.price >= filters.min_price)
    if filters.max_price is not None:
        query = query.filter(Product.price <= filters.max_price)
    if filters.size:
        query = query.filter(_in_csv(Product.sizes, filters.size))
    if filters.color:
        query = query.filter(_in_csv(Product.colors, filters.color))
    return query


def search_products(db, filters: ProductFilters) -> dict:
    query = build_product_query(db, filters)
    total = query.count()
    order_by = SORT_ORDERS.get(filters.sort, SORT_ORDERS["newest"])
    products = (
        query.order_by(*order_by)
        .offset((filters.page - 1) * filters.per_page)
        .limit(filters.per_page)
        .all()
    )
    return {
        "items": [serialize_product(p) for p in products],
        "total": total,
        "page": filters.page,
        "per_page": filters.per_page,
        "pages": math.ceil(total / filters.per_page) if total else 0,
    }


def _split(value: Optional[str]):
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def serialize_product(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "subcategory": product.subcategory,
        "sizes": _split(product.sizes),
        "colors": _split(product.colors),
        "image_url": product.image_url,
        "stock": product.stock,
    }
