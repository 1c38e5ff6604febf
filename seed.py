"""
Seed the admin account and a starter catalog.

    python seed.py
"""
import logging

import config
import database
from auth import create_admin
from inventory import create_product
from schemas import ProductCreate, ProductVariant

log = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Moccosin Saddle Black",
        "sku": "SW-LF-SD-BLK-003",
        "price": 2499,
        "discount_price": 3299,
        "description": "Lightweight knit slip-on for everyday urban style.",
        "material": "Premium Knit Fabric",
        "sole": "Anti-slip EVA rubber sole",
        "quality": "Machine-stitched with reinforced seams",
        "color": "Black",
        "color_code": "#1a1a1a",
        "category": "Loafers",
        "images": ["/images/creative/1black_cloth.JPG", "/images/creative/2black_cloth.JPG"],
        "is_featured": True,
    },
    {
        "name": "Moccosin Coco Black",
        "sku": "SW-LF-CR-BLK-002",
        "price": 3499,
        "discount_price": 4299,
        "description": "Statement loafer with designer-inspired detailing.",
        "material": "Full-grain Leather",
        "sole": "Genuine leather sole with rubber heel tap",
        "color": "Black",
        "color_code": "#0d0d0d",
        "category": "Loafers",
        "images": ["/images/creative/1black_lofer_design.JPG"],
        "is_on_sale": True,
    },
    {
        "name": "Derby Suede Black",
        "sku": "SW-FM-SU-BLK-005",
        "price": 3999,
        "description": "Timeless Oxford with refined lace-up closure.",
        "material": "Premium Calf Leather",
        "sole": "Goodyear-welted leather sole",
        "color": "Black",
        "color_code": "#111111",
        "category": "Formal",
        "images": ["/images/creative/1black_with_lase.JPG"],
    },
]


def seed_products(db, stock_per_size: int = 20) -> int:
    """Insert the sample catalog if there are no products yet."""
    if db["product"].count_documents({}) > 0:
        return 0
    for data in SAMPLE_PRODUCTS:
        variants = [ProductVariant(size=s, stock=stock_per_size) for s in config.DEFAULT_SIZES]
        create_product(db, ProductCreate(**data, variants=variants))
    return len(SAMPLE_PRODUCTS)


def seed_admin(db) -> dict:
    return create_admin(db, config.ADMIN_EMAIL, config.ADMIN_PASSWORD)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    db = database.get_db()
    database.ensure_indexes(db)
    admin = seed_admin(db)
    created = seed_products(db)
    log.info("Admin %s ready, %d products created", admin["email"], created)
