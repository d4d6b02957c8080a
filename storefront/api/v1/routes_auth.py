import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.api.v1.schemas import (
    RegisterPayload,
    LoginPayload,
    ChangePasswordPayload,
    UserRead,
)
from storefront.core.auth import Identity, get_current_identity
from storefront.core.config import Settings, get_settings
from storefront.core.errors import Conflict, NotFound, Unauthenticated, ValidationError
from storefront.db.models import Role, User
from storefront.security.utils import (
    hash_password,
    verify_password,
    create_access_token,
    now_utc,
)

logger = logging.getLogger(__name__)

router = APIRouter()  # main.py mounts at /auth

SELF_SERVICE_ROLES = (Role.CUSTOMER, Role.VENDOR)


def find_clash(db: Session, email: str, username: str) -> Optional[User]:
    return db.query(User).filter(or_(User.email == email, User.username == username)).first()


def _conflict(clash: Optional[User], email: str) -> Conflict:
    if clash is None:
        return Conflict("Email or username already in use", code="USER_EXISTS")
    if clash.email == email:
        return Conflict("Email already in use", code="EMAIL_TAKEN")
    return Conflict("Username already taken", code="USERNAME_TAKEN")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)) -> Any:
    role = payload.role or Role.CUSTOMER
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Role must be one of: Customer, Vendor", code="INVALID_ROLE")

    email = str(payload.email).lower()
    clash = find_clash(db, email, payload.username)
    if clash:
        raise _conflict(clash, email)

    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        role=role.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent registration won the unique index
        db.rollback()
        raise _conflict(find_clash(db, email, payload.username), email)
    db.refresh(user)
    logger.info("Registered user %s as %s", user.id, user.role)
    return {"message": "User registered successfully!", "user": UserRead.model_validate(user).model_dump(mode="json")}


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db), cfg: Settings = Depends(get_settings)) -> Any:
    user = db.query(User).filter(User.email == str(payload.email).lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt")
        raise Unauthenticated("Invalid email or password", code="INVALID_CREDENTIALS")

    token, exp = create_access_token(user.id, user.role, cfg)
    return {
        "message": "Login successful",
        "token": token,
        "token_type": "bearer",
        "expires_at": exp.isoformat(),
        "user": {"id": user.id, "username": user.username, "role": user.role},
    }


@router.get("/profile", response_model=UserRead)
def profile(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)) -> Any:
    user = db.get(User, identity.user_id)
    if not user:
        raise NotFound("User not found")
    return UserRead.model_validate(user)


@router.put("/change-password")
def change_password(
    payload: ChangePasswordPayload,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> dict:
    user = db.get(User, identity.user_id)
    if not user:
        raise NotFound("User not found")
    if not verify_password(payload.old_password, user.password_hash):
        raise Unauthenticated("Current password is incorrect", code="WRONG_PASSWORD")

    user.password_hash = hash_password(payload.new_password)
    user.updated_at = now_utc()
    db.add(user)
    db.commit()
    return {"message": "Password updated successfully"}
