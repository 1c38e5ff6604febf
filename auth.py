"""
Admin authentication: bcrypt password hashes and signed JWT session tokens.

Tokens travel in the ``admin_token`` cookie or an ``Authorization: Bearer``
header. Logging out records the token id so it stops working before expiry.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

import config
import errors
from database import create_document, get_db, to_object_id
from schemas import AdminOut

log = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_SALT_ROUNDS)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login", auto_error=False)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise errors.Unauthenticated()
    if not payload.get("sub") or not payload.get("jti"):
        raise errors.Unauthenticated()
    return payload


def authenticate(db, token: Optional[str]) -> AdminOut:
    """Resolve a session token to the admin it was issued to."""
    if not token:
        raise errors.Unauthenticated()
    payload = decode_token(token)
    if db["revoked_token"].find_one({"jti": payload["jti"]}):
        raise errors.Unauthenticated()
    oid = to_object_id(payload["sub"])
    admin = db["admin"].find_one({"_id": oid}) if oid else None
    if not admin:
        raise errors.Unauthenticated()
    return AdminOut(id=str(admin["_id"]), email=admin["email"], role=admin.get("role", "admin"))


def login(db, email: str, password: str) -> tuple:
    admin = db["admin"].find_one({"email": email.strip().lower()})
    if not admin or not verify_password(password, admin.get("password_hash", "")):
        log.warning("Failed admin login for %s", email)
        raise errors.Unauthenticated("Invalid credentials")
    out = AdminOut(id=str(admin["_id"]), email=admin["email"], role=admin.get("role", "admin"))
    token = create_access_token({"sub": out.id, "email": out.email, "role": out.role})
    log.info("Admin %s logged in", out.email)
    return token, out


def revoke(db, token: Optional[str]) -> None:
    """Blacklist a token until it would have expired anyway."""
    if not token:
        return
    try:
        payload = decode_token(token)
    except errors.Unauthenticated:
        return
    expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None)
    try:
        db["revoked_token"].insert_one({"jti": payload["jti"], "expires_at": expires_at})
    except DuplicateKeyError:
        pass


def create_admin(db, email: str, password: str, role: str = "admin") -> dict:
    email = email.strip().lower()
    existing = db["admin"].find_one({"email": email})
    if existing:
        return existing
    return create_document(db, "admin", {"email": email, "password_hash": get_password_hash(password), "role": role})


def token_from_request(request: Request, bearer: Optional[str]) -> Optional[str]:
    return bearer or request.cookies.get(config.COOKIE_NAME)


def get_current_admin(request: Request, bearer: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)) -> AdminOut:
    return authenticate(db, token_from_request(request, bearer))
