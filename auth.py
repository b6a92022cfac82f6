import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_db, now, serialize, to_object_id
from errors import AuthorizationError, DuplicateError, NotFoundError, ValidationError
from schemas import Artisan as ArtisanSchema
from schemas import PasswordChange, ProfileUpdate, RegisterPayload
from schemas import User as UserSchema
from schemas import validate

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def check_password_policy(password: str) -> None:
    if not password or len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def user_out(user: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize(user)
    d.pop("password_hash", None)
    return d


def public_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Identity fields safe to show next to a review or artisan card."""
    if not user:
        return None
    return {"id": str(user["_id"]), "name": user.get("name"), "avatar_url": user.get("avatar_url")}


def get_user(db, user_id) -> Dict[str, Any]:
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFoundError("User not found")
    return user


# Dependencies

def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)) -> dict:
    credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise credentials_exception
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return user


def require_artisan(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != "artisan":
        raise AuthorizationError("Artisan access required")
    return current_user


# Accounts

def register_user(db, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Create a user and, for role artisan, the matching artisan profile."""
    payload = validate(RegisterPayload, fields)
    check_password_policy(payload.password)
    email = payload.email.lower().strip()
    if db["user"].find_one({"email": email}):
        raise DuplicateError("User already exists with this email")

    ts = now()
    user_doc = UserSchema(
        name=payload.name.strip(),
        email=email,
        password_hash=get_password_hash(payload.password),
        role=payload.role,
        phone=payload.phone.strip() if payload.phone else None,
        last_login=ts,
    ).model_dump()
    user_doc.update({"created_at": ts, "updated_at": ts})
    try:
        user_doc["_id"] = create_document("user", user_doc, db)
    except DuplicateKeyError:
        raise DuplicateError("User already exists with this email")

    artisan_doc = None
    if payload.role == "artisan":
        artisan_doc = ArtisanSchema(
            user_id=user_doc["_id"],
            business_name=f"{user_doc['name']}'s Workshop"[:100],
            joined_date=ts,
        ).model_dump()
        artisan_doc.update({"created_at": ts, "updated_at": ts})
        artisan_doc["_id"] = create_document("artisan", artisan_doc, db)
        logger.info("Registered artisan %s (%s)", user_doc["_id"], email)
    else:
        logger.info("Registered customer %s (%s)", user_doc["_id"], email)
    return user_doc, artisan_doc


def authenticate_user(db, email: str, password: str) -> Dict[str, Any]:
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = db["user"].find_one({"email": email.lower().strip()})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise HTTPException(401, "Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(401, "Account is deactivated")
    ts = now()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": ts}})
    user["last_login"] = ts
    return user


def update_user_profile(db, user_id, fields: Dict[str, Any]) -> Dict[str, Any]:
    user = get_user(db, user_id)
    payload = validate(ProfileUpdate, fields)
    update = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if update:
        update["updated_at"] = now()
        db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return db["user"].find_one({"_id": user["_id"]})


def change_password(db, user_id, fields: Dict[str, Any]) -> None:
    user = get_user(db, user_id)
    payload = validate(PasswordChange, fields)
    check_password_policy(payload.new_password)
    if not verify_password(payload.current_password, user.get("password_hash", "")):
        raise HTTPException(401, "Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": get_password_hash(payload.new_password), "updated_at": now()}},
    )


def deactivate_user(db, user_id) -> None:
    user = get_user(db, user_id)
    ts = now()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_active": False, "updated_at": ts}})
    db["artisan"].update_one({"user_id": user["_id"]}, {"$set": {"is_active": False, "updated_at": ts}})
    logger.info("Deactivated user %s", user["_id"])
