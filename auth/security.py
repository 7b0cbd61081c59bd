from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
from jose import jwt, JWTError

from config import settings


# bcrypt は先頭 72 バイトしか見ない（超えると例外になるバージョンもある）
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # 壊れたハッシュは不一致扱い
        return False


def create_access_token(user_id: UUID, ttl_minutes: int | None = None) -> str:
    ttl = ttl_minutes if ttl_minutes is not None else settings.access_token_ttl_minutes
    payload = {
        "sub": str(user_id),
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """
    トークンを検証してユーザーIDを返す
    不正・期限切れなら JWTError
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    subject = payload.get("sub")
    if not subject:
        raise JWTError("Missing subject claim")
    try:
        return UUID(subject)
    except ValueError:
        raise JWTError("Invalid subject claim")
