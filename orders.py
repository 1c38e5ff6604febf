"""
Order workflow: checkout, payment verification and fulfilment updates.

Order items are embedded in the order document and priced from the catalog
at checkout time; nothing the client sends about prices is used. Stock is
taken with conditional decrements (see inventory.decrement_stock) so two
checkouts can never both claim the last unit.

``stock_committed`` on an order records whether its items have been taken
out of inventory. COD orders commit at checkout, gateway orders once the
payment is verified (or an admin moves them forward by hand), and a
cancellation of a committed order puts the stock back. Only products this
order itself sold out (``exhausted_product_ids``) are put back on sale; a
flag an admin set by hand is left alone.
"""
import logging
import re
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
import errors
import inventory
import site_settings
from database import create_document, serialize_doc, to_object_id, utcnow
from payments import RazorpayGateway, to_minor_units
from schemas import (
    CartItem,
    CheckoutRequest,
    CustomerIn,
    OrderStatus,
    OrderUpdate,
    PaymentMethod,
    PaymentStatus,
    PaymentVerifyRequest,
)

log = logging.getLogger(__name__)

PENDING = OrderStatus.pending.value
CONFIRMED = OrderStatus.confirmed.value
SHIPPED = OrderStatus.shipped.value
DELIVERED = OrderStatus.delivered.value
CANCELLED = OrderStatus.cancelled.value

# Forward skips are allowed; nothing leaves delivered or cancelled.
ORDER_TRANSITIONS = {
    PENDING: {CONFIRMED, SHIPPED, DELIVERED, CANCELLED},
    CONFIRMED: {SHIPPED, DELIVERED, CANCELLED},
    SHIPPED: {DELIVERED},
    DELIVERED: set(),
    CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.pending.value: {PaymentStatus.paid.value, PaymentStatus.failed.value},
    PaymentStatus.failed.value: {PaymentStatus.paid.value, PaymentStatus.pending.value},
    PaymentStatus.paid.value: set(),
}

FLOW = [PENDING, CONFIRMED, SHIPPED, DELIVERED]
# statuses that count as moving the order towards fulfilment
FULFILMENT = set(FLOW[1:])


def is_skip(current: str, new: str) -> bool:
    if current not in FLOW or new not in FLOW:
        return False
    return FLOW.index(new) - FLOW.index(current) > 1


def check_transition(table: dict, current: str, new: str, label: str) -> None:
    if new == current:
        return
    if new not in table.get(current, set()):
        raise errors.InvalidTransition(f"Cannot change {label} from {current} to {new}")


def order_out(doc: Optional[dict]) -> Optional[dict]:
    return serialize_doc(doc)


# Checkout

def price_items(db, items: List[CartItem]):
    """Check availability and price every cart line from the catalog."""
    lines = []
    total = 0
    for item in items:
        product = inventory.find_available(db, item.product_id, item.quantity, item.size)
        total += product["price"] * item.quantity
        lines.append({
            "product_id": str(product["_id"]),
            "product_name": product["name"],
            "quantity": item.quantity,
            "size": item.size,
            "price": product["price"],
        })
    return lines, total


def upsert_customer(db, customer: CustomerIn) -> dict:
    now = utcnow()
    insert = {"name": customer.name, "phone": customer.phone, "created_at": now, "updated_at": now}
    try:
        return db["user"].find_one_and_update(
            {"email": customer.email},
            {"$setOnInsert": insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # lost an upsert race with a concurrent checkout for the same email
        return db["user"].find_one({"email": customer.email})


def create_address(db, user: dict, checkout: CheckoutRequest) -> dict:
    address = checkout.address
    return create_document(db, "address", {
        "user_id": str(user["_id"]),
        "full_name": address.full_name or checkout.customer.name,
        "phone": address.phone or checkout.customer.phone,
        "address_line1": address.address_line1,
        "address_line2": address.address_line2 or None,
        "city": address.city,
        "state": address.state,
        "pincode": address.pincode,
        "country": address.country or config.DEFAULT_COUNTRY,
    })


def reserve_stock(db, lines: List[dict]) -> list:
    """Take stock for every line or for none of them."""
    taken = []
    try:
        for line in lines:
            result = inventory.decrement_stock(db, line["product_id"], line["quantity"])
            taken.append((line, result["exhausted"]))
    except (errors.InsufficientStock, errors.NotFound, PyMongoError):
        release_stock(db, taken)
        raise
    return taken


def release_stock(db, taken) -> None:
    for line, reopen in taken:
        inventory.restore_stock(db, line["product_id"], line["quantity"], reopen=reopen)


def _new_order(user: dict, address: dict, lines: List[dict], total: int, method: PaymentMethod, **extra) -> dict:
    return {
        "user_id": str(user["_id"]),
        "address_id": str(address["_id"]),
        "items": lines,
        "total_amount": total,
        "status": PENDING,
        "payment_status": PaymentStatus.pending.value,
        "payment_method": method.value,
        "tracking_number": None,
        "courier_name": None,
        "admin_note": None,
        "gateway_order_id": None,
        "gateway_payment_id": None,
        "stock_committed": False,
        "exhausted_product_ids": [],
        **extra,
    }


def place_order(db, checkout: CheckoutRequest) -> dict:
    """Place a cash-on-delivery order; stock is taken immediately."""
    if not site_settings.cod_enabled(db):
        raise errors.ValidationError("Cash on delivery is not available")

    lines, total = price_items(db, checkout.items)
    taken = reserve_stock(db, lines)
    try:
        user = upsert_customer(db, checkout.customer)
        address = create_address(db, user, checkout)
        order = create_document(db, "order", _new_order(
            user, address, lines, total, PaymentMethod.cod, stock_committed=True,
            exhausted_product_ids=[line["product_id"] for line, exhausted in taken if exhausted],
        ))
    except PyMongoError:
        release_stock(db, taken)
        raise

    log.info("Order %s placed (cod) for %s, total %d", order["_id"], checkout.customer.email, total)
    return order_out(order)


def place_order_via_gateway(db, checkout: CheckoutRequest, gateway: RazorpayGateway) -> dict:
    """Create a pending order and the matching gateway order.

    Stock stays untouched until the payment is verified. The returned handle
    carries only the public key id.
    """
    lines, total = price_items(db, checkout.items)
    user = upsert_customer(db, checkout.customer)
    address = create_address(db, user, checkout)

    order_id = ObjectId()
    gateway_order = gateway.create_order(
        to_minor_units(total),
        receipt=f"order_{order_id}",
        notes={"customer_email": checkout.customer.email, "customer_name": checkout.customer.name},
    )
    create_document(db, "order", _new_order(
        user, address, lines, total, PaymentMethod.razorpay,
        _id=order_id, gateway_order_id=gateway_order["id"],
    ))
    log.info("Order %s awaiting payment, gateway order %s, total %d", order_id, gateway_order["id"], total)
    return {
        "order_id": str(order_id),
        "razorpay_order_id": gateway_order["id"],
        "amount": gateway_order.get("amount", to_minor_units(total)),
        "currency": gateway_order.get("currency", gateway.currency),
        "key_id": gateway.key_id,
    }


def commit_stock(db, order: dict) -> List[str]:
    """Take the order's items out of inventory for a payment already captured.

    Records the products this order sold out on the order, so a later
    cancellation knows which ones it may put back on sale.
    """
    exhausted = []
    for item in order["items"]:
        result = inventory.decrement_stock(db, item["product_id"], item["quantity"], clamp=True)
        if result["exhausted"]:
            exhausted.append(item["product_id"])
    if exhausted:
        db["order"].update_one({"_id": order["_id"]}, {"$set": {"exhausted_product_ids": exhausted}})
        order["exhausted_product_ids"] = exhausted
    return exhausted


def return_stock(db, order: dict) -> None:
    reopen = set(order.get("exhausted_product_ids") or [])
    release_stock(db, [(item, item["product_id"] in reopen) for item in order["items"]])


def verify_payment(db, req: PaymentVerifyRequest, gateway: RazorpayGateway) -> dict:
    oid = to_object_id(req.order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if order is None:
        raise errors.NotFound("Order not found")
    if order.get("gateway_order_id") != req.razorpay_order_id:
        log.warning("Gateway order %s does not belong to order %s", req.razorpay_order_id, req.order_id)
        raise errors.VerificationFailed()

    if not gateway.verify_signature(req.razorpay_order_id, req.razorpay_payment_id, req.razorpay_signature):
        db["order"].update_one(
            {"_id": oid, "payment_status": {"$ne": PaymentStatus.paid.value}},
            {"$set": {"payment_status": PaymentStatus.failed.value, "updated_at": utcnow()}},
        )
        log.warning("Signature mismatch for order %s (payment %s)", req.order_id, req.razorpay_payment_id)
        raise errors.VerificationFailed()

    unpaid = {"$in": [PaymentStatus.pending.value, PaymentStatus.failed.value]}
    paid = {
        "payment_status": PaymentStatus.paid.value,
        "gateway_payment_id": req.razorpay_payment_id,
        "updated_at": utcnow(),
    }
    # the paid flag and stock_committed flip in one write, so a replayed
    # callback finds nothing to update and cannot take stock twice
    updated = db["order"].find_one_and_update(
        {"_id": oid, "status": PENDING, "stock_committed": False, "payment_status": unpaid},
        {"$set": {**paid, "status": CONFIRMED, "stock_committed": True}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is not None:
        commit_stock(db, updated)
        log.info("Payment %s verified for order %s", req.razorpay_payment_id, req.order_id)
        return order_out(updated)

    # moved forward by hand before the callback arrived; its stock is
    # already out of inventory, only the payment is recorded
    updated = db["order"].find_one_and_update(
        {
            "_id": oid,
            "status": {"$nin": [PENDING, CANCELLED]},
            "stock_committed": True,
            "payment_status": unpaid,
        },
        {"$set": paid},
        return_document=ReturnDocument.AFTER,
    )
    if updated is not None:
        log.info(
            "Payment %s verified for order %s, already %s",
            req.razorpay_payment_id, req.order_id, updated["status"],
        )
        return order_out(updated)

    current = db["order"].find_one({"_id": oid})
    if current["payment_status"] == PaymentStatus.paid.value:
        log.info("Payment for order %s already verified", req.order_id)
        return order_out(current)
    log.warning("Captured payment %s for %s order %s", req.razorpay_payment_id, current["status"], req.order_id)
    raise errors.InvalidTransition(f"Order is {current['status']} and can no longer be paid")


# Back office

def update_order(db, order_id: str, payload: OrderUpdate) -> dict:
    oid = to_object_id(order_id)
    current = db["order"].find_one({"_id": oid}) if oid else None
    if current is None:
        raise errors.NotFound("Order not found")

    fields = payload.model_dump(mode="json", exclude_unset=True)
    for key in ("status", "payment_status"):
        if fields.get(key) is None:
            fields.pop(key, None)
    if not fields:
        return order_out(current)

    status = fields.get("status", current["status"])
    payment_status = fields.get("payment_status", current["payment_status"])
    if status == PENDING and payment_status == PaymentStatus.paid.value:
        # a paid order is a confirmed one
        status = fields["status"] = CONFIRMED
    check_transition(ORDER_TRANSITIONS, current["status"], status, "status")
    check_transition(PAYMENT_TRANSITIONS, current["payment_status"], payment_status, "payment status")
    if is_skip(current["status"], status):
        log.warning("Order %s moved %s -> %s, skipping intermediate steps", order_id, current["status"], status)

    committed = current.get("stock_committed", False)
    release = status == CANCELLED and committed
    commit = not committed and status != CANCELLED and (
        status in FULFILMENT or payment_status == PaymentStatus.paid.value
    )

    match = {"_id": oid, "status": current["status"], "payment_status": current["payment_status"]}
    updates = {**fields, "updated_at": utcnow()}
    if release or commit:
        match["stock_committed"] = committed
        updates["stock_committed"] = commit

    updated = db["order"].find_one_and_update(match, {"$set": updates}, return_document=ReturnDocument.AFTER)
    if updated is None:
        raise errors.InvalidTransition("Order was changed by another request; reload and try again")

    if release:
        return_stock(db, updated)
        log.info("Order %s cancelled, stock returned", order_id)
    elif commit:
        commit_stock(db, updated)
    if status != current["status"]:
        log.info("Order %s status %s -> %s", order_id, current["status"], status)
    return order_out(updated)


def _attach_people(db, orders: List[dict]) -> List[dict]:
    user_ids = {to_object_id(o["user_id"]) for o in orders}
    address_ids = {to_object_id(o["address_id"]) for o in orders if o.get("address_id")}
    users = {str(u["_id"]): serialize_doc(u) for u in db["user"].find({"_id": {"$in": list(user_ids)}})}
    addresses = {str(a["_id"]): serialize_doc(a) for a in db["address"].find({"_id": {"$in": list(address_ids)}})}
    out = []
    for o in orders:
        d = order_out(o)
        d["user"] = users.get(o["user_id"])
        d["address"] = addresses.get(o.get("address_id"))
        out.append(d)
    return out


def list_orders(db, status: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    filter_q = {}
    if status:
        filter_q["status"] = status
    if search:
        pattern = re.escape(search.strip())
        matching_users = db["user"].find({"$or": [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
            {"phone": {"$regex": pattern}},
        ]})
        clauses = [{"user_id": {"$in": [str(u["_id"]) for u in matching_users]}}]
        oid = to_object_id(search.strip())
        if oid is not None:
            clauses.append({"_id": oid})
        filter_q["$or"] = clauses
    orders = list(db["order"].find(filter_q).sort("created_at", -1))
    return _attach_people(db, orders)


def get_order(db, order_id: str) -> dict:
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if order is None:
        raise errors.NotFound("Order not found")
    return _attach_people(db, [order])[0]


def track_order(db, order_id: str, phone: str) -> dict:
    """Public order lookup, gated on the phone number given at checkout."""
    oid = to_object_id(order_id.strip())
    order = db["order"].find_one({"_id": oid}) if oid else None
    if order is None:
        raise errors.NotFound("Order not found")

    phone = phone.strip()
    user = db["user"].find_one({"_id": to_object_id(order["user_id"])}) or {}
    address = db["address"].find_one({"_id": to_object_id(order.get("address_id"))}) or {}
    if phone not in {user.get("phone"), address.get("phone")}:
        # same answer as an unknown id so order ids cannot be guessed
        raise errors.NotFound("Order not found")

    product_ids = [to_object_id(i["product_id"]) for i in order["items"]]
    images = {
        str(p["_id"]): (p.get("images") or [""])[0]
        for p in db["product"].find({"_id": {"$in": product_ids}}, {"images": 1})
    }
    return {
        "id": str(order["_id"]),
        "status": order["status"],
        "tracking_number": order.get("tracking_number"),
        "courier_name": order.get("courier_name"),
        "total_amount": order["total_amount"],
        "payment_status": order["payment_status"],
        "created_at": order["created_at"],
        "items": [
            {
                "product_name": i["product_name"],
                "quantity": i["quantity"],
                "size": i.get("size"),
                "price": i["price"],
                "image": images.get(i["product_id"], ""),
            }
            for i in order["items"]
        ],
    }
