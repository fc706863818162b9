"""Password hashing and signed token helpers."""

from __future__ import annotations

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash


PASSWORD_RESET_SALT = "licencias-password-reset"
SIGN_IN_TOKEN_SALT = "licencias-sign-in-token"


def hash_secret(raw_value: str) -> str:
    return generate_password_hash(raw_value, method="pbkdf2:sha256", salt_length=16)


def verify_secret(secret_hash: str, raw_value: str) -> bool:
    return check_password_hash(secret_hash, raw_value)


def issue_token(secret_key: str, salt: str, user_id: str) -> str:
    return URLSafeTimedSerializer(secret_key, salt=salt).dumps({"uid": user_id})


def read_token(secret_key: str, salt: str, token: str, max_age: int) -> str | None:
    """Return the user id carried by ``token`` or None when invalid or expired."""
    serializer = URLSafeTimedSerializer(secret_key, salt=salt)
    try:
        payload = serializer.loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("uid")
    return str(user_id) if user_id else None
