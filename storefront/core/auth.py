"""Authorization gate.

Two stages, composed as FastAPI dependencies: ``authenticate`` turns the
``Authorization`` header into an :class:`Identity`, ``authorize`` checks the
identity's role against a per-route allow-list. Resource ownership is a third
check (:func:`ensure_owner`) that handlers run after loading the resource.

The role comes from the signed token, so a role change only takes effect on
the next login.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import jwt
from fastapi import Depends, Header

from storefront.core.config import Settings, get_settings
from storefront.core.errors import Forbidden, Unauthenticated
from storefront.db.models import Role
from storefront.security.utils import decode_token

logger = logging.getLogger(__name__)

_ROLES = {r.value for r in Role}


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def authenticate(authorization: Optional[str], cfg: Settings) -> Identity:
    # every failure looks the same to the caller
    fail = Unauthenticated('Not authenticated')
    if not authorization:
        raise fail
    scheme, _, token = authorization.partition(' ')
    token = token.strip()
    if scheme.lower() != 'bearer' or not token:
        raise fail
    try:
        payload = decode_token(token, cfg)
    except jwt.PyJWTError as exc:
        logger.debug('Token rejected: %s', type(exc).__name__)
        raise fail from None
    if payload.get('type') != 'access':
        raise fail
    user_id, role = payload.get('id'), payload.get('role')
    if not isinstance(user_id, str) or role not in _ROLES:
        raise fail
    return Identity(user_id=user_id, role=role)


def authorize(identity: Optional[Identity], allowed: Iterable[str]) -> Identity:
    if identity is None:
        raise Unauthenticated('Authentication required before role check')
    if identity.role not in {getattr(r, 'value', r) for r in allowed}:
        raise Forbidden('Forbidden - Insufficient permissions')
    return identity


def ensure_owner(identity: Identity, vendor_id: str, message: str = 'You can only modify your own products') -> None:
    if identity.is_admin:
        return
    if vendor_id != identity.user_id:
        raise Forbidden(message)


def get_current_identity(
    authorization: Optional[str] = Header(default=None, alias='Authorization'),
    cfg: Settings = Depends(get_settings),
) -> Identity:
    return authenticate(authorization, cfg)


def require_roles(*roles: Role):
    def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        return authorize(identity, roles)
    return _checker
