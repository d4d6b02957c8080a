from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
import jwt, uuid
from typing import Tuple
from storefront.core.config import Settings, settings

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto', bcrypt__rounds=settings.BCRYPT_ROUNDS)

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def now_utc() -> datetime: return datetime.now(timezone.utc).replace(tzinfo=None)

def new_id() -> str: return uuid.uuid4().hex

def is_valid_id(value) -> bool:
    if not isinstance(value, str) or len(value) != 32:
        return False
    try:
        return uuid.UUID(hex=value).hex == value
    except ValueError:
        return False

def create_access_token(user_id: str, role: str, cfg: Settings = settings) -> Tuple[str, datetime]:
    issued = datetime.now(timezone.utc)
    exp = issued + timedelta(seconds=cfg.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'id': user_id, 'role': role, 'type': 'access', 'iat': issued, 'exp': exp}
    return jwt.encode(payload, cfg.JWT_SECRET, algorithm=cfg.JWT_ALGORITHM), exp

def decode_token(token: str, cfg: Settings = settings) -> dict:
    return jwt.decode(token, cfg.JWT_SECRET, algorithms=[cfg.JWT_ALGORITHM])
