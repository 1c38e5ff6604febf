"""
Product and inventory store.

Products keep their size variants embedded, so a variant edit is a single
document write. Aggregate ``stock`` is the sum of variant stock whenever
variants exist, and ``is_out_of_stock`` is forced on whenever stock hits zero.
"""
import logging
import re
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import config
import errors
from database import create_document, serialize_doc, to_object_id, utcnow
from schemas import ProductCreate, ProductUpdate, ProductVariant

log = logging.getLogger(__name__)

EDITABLE_FIELDS = [
    "name",
    "price",
    "discount_price",
    "description",
    "long_description",
    "material",
    "sole",
    "quality",
    "stock",
    "is_out_of_stock",
    "is_active",
    "is_featured",
    "is_on_sale",
    "images",
    "color",
    "color_code",
    "category",
    "sizes",
]

NULLABLE_FIELDS = {"discount_price", "long_description", "sole", "quality", "color", "color_code", "category"}


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def build_variants(variants: List[ProductVariant]) -> dict:
    """Turn a full variant list into the product fields derived from it."""
    sizes = [v.size for v in variants]
    if len(sizes) != len(set(sizes)):
        raise errors.ValidationError("Each size may appear only once in the variant list")
    rows = [
        {"size": v.size, "stock": v.stock, "is_out_of_stock": v.stock <= 0}
        for v in sorted(variants, key=lambda v: v.size)
    ]
    total = sum(v.stock for v in variants)
    return {
        "variants": rows,
        "stock": total,
        "is_out_of_stock": total <= 0,
        "sizes": sorted(set(sizes)),
    }


def product_out(doc: Optional[dict]) -> Optional[dict]:
    d = serialize_doc(doc)
    if d is not None:
        d["variants"] = sorted(d.get("variants") or [], key=lambda v: v["size"])
    return d


def get_product(db, id_or_slug: str) -> dict:
    doc = db["product"].find_one({"slug": id_or_slug})
    if doc is None:
        oid = to_object_id(id_or_slug)
        if oid is not None:
            doc = db["product"].find_one({"_id": oid})
    if doc is None:
        raise errors.NotFound("Product not found")
    return product_out(doc)


def list_products(
    db,
    search: Optional[str] = None,
    category: Optional[str] = None,
    stock_status: Optional[str] = None,
    active_only: bool = True,
    featured: bool = False,
) -> List[dict]:
    filter_q = {}
    if active_only:
        filter_q["is_active"] = True
    if search:
        pattern = re.escape(search)
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"sku": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        filter_q["category"] = category
    if stock_status == "in-stock":
        filter_q["is_out_of_stock"] = False
    elif stock_status == "out-of-stock":
        filter_q["is_out_of_stock"] = True
    if featured:
        filter_q["is_featured"] = True
    return [product_out(p) for p in db["product"].find(filter_q).sort("created_at", 1)]


def create_product(db, payload: ProductCreate) -> dict:
    slug = slugify(payload.name)
    if not slug:
        raise errors.ValidationError("Product name must contain letters or digits")
    if db["product"].find_one({"$or": [{"slug": slug}, {"sku": payload.sku}]}):
        raise errors.Conflict("Product with this name or SKU already exists")

    data = payload.model_dump(exclude={"variants"})
    data["slug"] = slug
    data.update(build_variants(payload.variants))
    if not data["sizes"]:
        data["sizes"] = list(config.DEFAULT_SIZES)
    try:
        doc = create_document(db, "product", data)
    except DuplicateKeyError:
        raise errors.Conflict("Product with this name or SKU already exists")
    log.info("Created product %s (%s) with stock %d", doc["_id"], slug, data["stock"])
    return product_out(doc)


def update_product(db, product_id: str, payload: ProductUpdate) -> dict:
    oid = to_object_id(product_id)
    current = db["product"].find_one({"_id": oid}) if oid else None
    if current is None:
        raise errors.NotFound("Product not found")

    fields = payload.model_dump(exclude_unset=True)
    updates = {
        k: fields[k] for k in EDITABLE_FIELDS
        if k in fields and (fields[k] is not None or k in NULLABLE_FIELDS)
    }

    if payload.variants is not None:
        # full replace: the submitted list is the complete size/stock matrix
        updates.update(build_variants(payload.variants))
    elif current.get("variants") and ("stock" in updates or "sizes" in updates):
        raise errors.ValidationError("Stock and sizes are managed per size for this product; submit variants instead")

    if not updates:
        return product_out(current)
    # a product with nothing left stays flagged whatever the request says
    if updates.get("stock", current.get("stock", 0)) <= 0:
        updates["is_out_of_stock"] = True
    updates["updated_at"] = utcnow()
    doc = db["product"].find_one_and_update(
        {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    return product_out(doc)


def replace_variants(db, product_id: str, variants: List[ProductVariant]) -> dict:
    return update_product(db, product_id, ProductUpdate(variants=variants))


def find_available(db, product_id: str, quantity: int, size: Optional[int] = None) -> dict:
    """Return the product if it can currently supply ``quantity`` units.

    Only aggregate stock gates the sale; ``size`` is carried along for the
    order line but per-size stock is informational.
    """
    oid = to_object_id(product_id)
    product = db["product"].find_one({"_id": oid}) if oid else None
    if product is None:
        raise errors.NotFound(f"Product {product_id} not found")
    if product.get("is_out_of_stock") or product.get("stock", 0) < quantity:
        raise errors.InsufficientStock(product["name"])
    return product


def _mark_if_exhausted(db, oid) -> bool:
    res = db["product"].update_one(
        {"_id": oid, "stock": {"$lte": 0}, "is_out_of_stock": False},
        {"$set": {"is_out_of_stock": True, "updated_at": utcnow()}},
    )
    return res.modified_count > 0


def decrement_stock(db, product_id: str, quantity: int, clamp: bool = False) -> dict:
    """Atomically take ``quantity`` units off a product's stock.

    The write only matches while stock covers the quantity, so concurrent
    checkouts cannot push stock below zero. With ``clamp`` (stock owed for an
    already captured payment) a shortfall floors stock at zero instead of
    failing. The returned dict carries ``exhausted`` when this call flipped
    the product out of stock.
    """
    oid = to_object_id(product_id)
    doc = db["product"].find_one_and_update(
        {"_id": oid, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        current = db["product"].find_one({"_id": oid})
        if current is None:
            raise errors.NotFound(f"Product {product_id} not found")
        if not clamp:
            raise errors.InsufficientStock(current["name"])
        log.warning(
            "Oversold %s: %d requested, %d left; clamping stock to 0",
            current["name"], quantity, current.get("stock", 0),
        )
        doc = db["product"].find_one_and_update(
            {"_id": oid},
            {"$set": {"stock": 0, "is_out_of_stock": True, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return {**product_out(doc), "exhausted": not current.get("is_out_of_stock", False)}

    exhausted = _mark_if_exhausted(db, oid)
    if exhausted:
        log.info("Product %s is now out of stock", doc["name"])
    out = product_out(doc)
    out["is_out_of_stock"] = out.get("is_out_of_stock", False) or exhausted
    out["exhausted"] = exhausted
    return out


def restore_stock(db, product_id: str, quantity: int, reopen: bool = True) -> None:
    """Give ``quantity`` units back, e.g. after a rolled back reservation.

    ``reopen`` clears the out-of-stock flag once stock is positive again; pass
    False when the flag was set by an admin rather than by exhaustion.
    """
    oid = to_object_id(product_id)
    db["product"].update_one({"_id": oid}, {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}})
    if reopen:
        db["product"].update_one(
            {"_id": oid, "stock": {"$gt": 0}, "is_out_of_stock": True},
            {"$set": {"is_out_of_stock": False}},
        )
