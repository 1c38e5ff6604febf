import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import auth
import backoffice
import config
import database
import inventory
import orders
import site_settings
from auth import get_current_admin
from database import get_db
from payments import RazorpayGateway
from schemas import (
    AdminOut,
    CheckoutRequest,
    LoginRequest,
    OrderUpdate,
    PaymentHandle,
    PaymentVerifyRequest,
    ProductCreate,
    ProductUpdate,
    SettingsUpdate,
    Token,
)
from seed import seed_products

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(title="Swathoops Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_gateway() -> RazorpayGateway:
    return RazorpayGateway.from_config()


# Error rendering
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        name = ".".join(str(p) for p in err["loc"] if p not in ("body", "query", "path"))
        if name and name not in fields:
            fields.append(name)
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Missing or invalid fields: {', '.join(fields) or 'request body'}",
            "errors": [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()],
        },
    )


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, exc: PyMongoError):
    log.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
def startup():
    if database.db is not None:
        database.ensure_indexes(database.db)


@app.get("/")
def read_root():
    return {"message": "Store backend is running"}


# Catalog
@app.get("/api/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    stock_status: Optional[str] = Query(None, description="in-stock|out-of-stock"),
    active_only: bool = True,
    featured: bool = False,
    db=Depends(get_db),
):
    return inventory.list_products(db, search, category, stock_status, active_only, featured)


@app.post("/api/products", status_code=201)
def create_product(payload: ProductCreate, admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return inventory.create_product(db, payload)


@app.get("/api/products/{id_or_slug}")
def get_product(id_or_slug: str, db=Depends(get_db)):
    return inventory.get_product(db, id_or_slug)


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdate,
    admin: AdminOut = Depends(get_current_admin),
    db=Depends(get_db),
):
    return inventory.update_product(db, product_id, payload)


# Checkout
@app.get("/api/checkout/settings")
def checkout_settings(db=Depends(get_db)):
    try:
        cod = site_settings.cod_enabled(db)
    except PyMongoError:
        log.exception("Failed to read checkout settings")
        cod = False
    return {"cod_enabled": cod, "razorpay_enabled": True}


@app.post("/api/orders", status_code=201)
def place_order(checkout: CheckoutRequest, db=Depends(get_db)):
    return orders.place_order(db, checkout)


@app.post("/api/payment/create-order", response_model=PaymentHandle)
def create_payment_order(
    checkout: CheckoutRequest,
    db=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    return orders.place_order_via_gateway(db, checkout, gateway)


@app.post("/api/payment/verify")
def verify_payment(
    req: PaymentVerifyRequest,
    db=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    order = orders.verify_payment(db, req, gateway)
    return {"success": True, "order": order}


# Orders
@app.get("/api/orders/track")
def track_order(order_id: str = Query(..., min_length=1), phone: str = Query(..., min_length=1), db=Depends(get_db)):
    return orders.track_order(db, order_id, phone)


@app.get("/api/orders")
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    admin: AdminOut = Depends(get_current_admin),
    db=Depends(get_db),
):
    return orders.list_orders(db, status, search)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return orders.get_order(db, order_id)


@app.put("/api/orders/{order_id}")
def update_order(
    order_id: str,
    payload: OrderUpdate,
    admin: AdminOut = Depends(get_current_admin),
    db=Depends(get_db),
):
    return orders.update_order(db, order_id, payload)


# Admin
@app.post("/api/admin/login", response_model=Token)
def admin_login(req: LoginRequest, response: Response, db=Depends(get_db)):
    token, admin = auth.login(db, req.email, req.password)
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        max_age=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )
    return Token(access_token=token, admin=admin)


@app.post("/api/admin/logout")
def admin_logout(
    request: Request,
    response: Response,
    bearer: Optional[str] = Depends(auth.oauth2_scheme),
    db=Depends(get_db),
):
    auth.revoke(db, auth.token_from_request(request, bearer))
    response.delete_cookie(config.COOKIE_NAME, path="/")
    return {"success": True}


@app.get("/api/admin/me")
def admin_me(admin: AdminOut = Depends(get_current_admin)):
    return {"admin": admin}


@app.get("/api/admin/customers")
def list_customers(search: Optional[str] = None, admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return backoffice.list_customers(db, search)


@app.get("/api/admin/stats")
def dashboard_stats(admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return backoffice.dashboard_stats(db)


@app.get("/api/admin/settings")
def get_settings(admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return site_settings.get_settings(db)


@app.put("/api/admin/settings")
def update_settings(updates: SettingsUpdate, admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return site_settings.update_settings(db, updates)


# Seed sample catalog if empty
@app.post("/api/seed")
def seed(admin: AdminOut = Depends(get_current_admin), db=Depends(get_db)):
    return {"ok": True, "created": seed_products(db)}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "collections": [],
    }
    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
