import pytest

import errors
import inventory
from schemas import ProductCreate, ProductUpdate, ProductVariant


def test_slugify():
    assert inventory.slugify("Derby Suede -- Black!") == "derby-suede-black"
    assert inventory.slugify("  Moccosin  ") == "moccosin"


def test_build_variants_derives_stock_and_sizes():
    fields = inventory.build_variants([
        ProductVariant(size=9, stock=3),
        ProductVariant(size=7, stock=0),
        ProductVariant(size=8, stock=2),
    ])
    assert fields["stock"] == 5
    assert fields["sizes"] == [7, 8, 9]
    assert fields["is_out_of_stock"] is False
    assert [v["size"] for v in fields["variants"]] == [7, 8, 9]
    assert fields["variants"][0]["is_out_of_stock"] is True


def test_build_variants_rejects_duplicate_sizes():
    with pytest.raises(errors.ValidationError):
        inventory.build_variants([ProductVariant(size=8, stock=1), ProductVariant(size=8, stock=2)])


def test_create_product_sums_variant_stock(make_product):
    product = make_product(name="Derby Suede Black", stock=9, sizes=(7, 8, 9))
    assert product["slug"] == "derby-suede-black"
    assert product["stock"] == 9
    assert product["sizes"] == [7, 8, 9]
    assert product["is_out_of_stock"] is False


def test_create_product_without_variants_uses_default_sizes(db):
    product = inventory.create_product(db, ProductCreate(
        name="Plain Loafer", sku="SW-PL-1", price=999, description="d", material="m",
    ))
    assert product["stock"] == 0
    assert product["is_out_of_stock"] is True
    assert product["sizes"] == [6, 7, 8, 9, 10, 11]


def test_create_product_rejects_duplicate_sku(db, make_product):
    existing = make_product()
    with pytest.raises(errors.Conflict):
        inventory.create_product(db, ProductCreate(
            name="Another Name", sku=existing["sku"], price=100, description="d", material="m",
        ))


def test_replace_variants_is_a_full_replace(db, make_product):
    product = make_product(stock=10, sizes=(6, 7))
    updated = inventory.replace_variants(db, product["id"], [
        ProductVariant(size=10, stock=4),
        ProductVariant(size=11, stock=0),
    ])
    assert [v["size"] for v in updated["variants"]] == [10, 11]
    assert updated["stock"] == 4
    assert updated["sizes"] == [10, 11]
    assert updated["is_out_of_stock"] is False


def test_replace_variants_with_no_stock_marks_out_of_stock(db, make_product):
    product = make_product(stock=3)
    updated = inventory.replace_variants(db, product["id"], [ProductVariant(size=8, stock=0)])
    assert updated["stock"] == 0
    assert updated["is_out_of_stock"] is True


def test_bare_stock_edit_rejected_when_variants_exist(db, make_product):
    product = make_product(stock=3)
    with pytest.raises(errors.ValidationError):
        inventory.update_product(db, product["id"], ProductUpdate(stock=50))


def test_stock_edit_to_zero_forces_out_of_stock(db):
    product = inventory.create_product(db, ProductCreate(
        name="Plain Loafer", sku="SW-PL-1", price=999, description="d", material="m",
    ))
    restocked = inventory.update_product(db, product["id"], ProductUpdate(stock=5, is_out_of_stock=False))
    assert restocked["stock"] == 5
    assert restocked["is_out_of_stock"] is False

    emptied = inventory.update_product(db, product["id"], ProductUpdate(stock=0, is_out_of_stock=False))
    assert emptied["is_out_of_stock"] is True


def test_cannot_reopen_product_with_no_stock(db, make_product):
    product = make_product(stock=0)
    updated = inventory.update_product(db, product["id"], ProductUpdate(is_out_of_stock=False))
    assert updated["is_out_of_stock"] is True
    stored = inventory.get_product(db, product["id"])
    assert stored["stock"] == 0
    assert stored["is_out_of_stock"] is True

    renamed = inventory.update_product(db, product["id"], ProductUpdate(name="Moccasin Renamed"))
    assert renamed["is_out_of_stock"] is True


def test_update_unknown_product(db):
    with pytest.raises(errors.NotFound):
        inventory.update_product(db, "not-an-id", ProductUpdate(name="x"))


def test_find_available(db, make_product):
    product = make_product(stock=2)
    assert inventory.find_available(db, product["id"], 2)["name"] == product["name"]
    with pytest.raises(errors.InsufficientStock):
        inventory.find_available(db, product["id"], 3)
    with pytest.raises(errors.NotFound):
        inventory.find_available(db, "64b7f0c2a1b2c3d4e5f60718", 1)


def test_find_available_honours_out_of_stock_flag(db, make_product):
    product = make_product(stock=5)
    inventory.update_product(db, product["id"], ProductUpdate(is_out_of_stock=True))
    with pytest.raises(errors.InsufficientStock):
        inventory.find_available(db, product["id"], 1)


def test_decrement_to_zero_flips_out_of_stock(db, make_product):
    product = make_product(stock=1)
    result = inventory.decrement_stock(db, product["id"], 1)
    assert result["stock"] == 0
    assert result["exhausted"] is True
    stored = inventory.get_product(db, product["id"])
    assert stored["stock"] == 0
    assert stored["is_out_of_stock"] is True


def test_decrement_never_goes_negative(db, make_product):
    product = make_product(stock=1)
    inventory.decrement_stock(db, product["id"], 1)
    with pytest.raises(errors.InsufficientStock):
        inventory.decrement_stock(db, product["id"], 1)
    assert inventory.get_product(db, product["id"])["stock"] == 0


def test_decrement_clamps_when_asked(db, make_product):
    product = make_product(stock=2)
    result = inventory.decrement_stock(db, product["id"], 5, clamp=True)
    assert result["stock"] == 0
    assert result["is_out_of_stock"] is True


def test_restore_stock_reopens_product(db, make_product):
    product = make_product(stock=1)
    inventory.decrement_stock(db, product["id"], 1)
    inventory.restore_stock(db, product["id"], 1)
    stored = inventory.get_product(db, product["id"])
    assert stored["stock"] == 1
    assert stored["is_out_of_stock"] is False


def test_get_product_by_slug_or_id(db, make_product):
    product = make_product(name="Moccosin Coco Black")
    assert inventory.get_product(db, "moccosin-coco-black")["id"] == product["id"]
    assert inventory.get_product(db, product["id"])["slug"] == "moccosin-coco-black"
    with pytest.raises(errors.NotFound):
        inventory.get_product(db, "no-such-shoe")


def test_list_products_filters(db, make_product):
    make_product(name="Saddle Loafer", category="Loafers", is_featured=True)
    make_product(name="Derby Formal", category="Formal", stock=0)
    make_product(name="Hidden Shoe", is_active=False)

    assert {p["name"] for p in inventory.list_products(db)} == {"Saddle Loafer", "Derby Formal"}
    assert [p["name"] for p in inventory.list_products(db, category="Loafers")] == ["Saddle Loafer"]
    assert [p["name"] for p in inventory.list_products(db, stock_status="out-of-stock")] == ["Derby Formal"]
    assert [p["name"] for p in inventory.list_products(db, featured=True)] == ["Saddle Loafer"]
    assert [p["name"] for p in inventory.list_products(db, search="derby")] == ["Derby Formal"]
    assert len(inventory.list_products(db, active_only=False)) == 3
