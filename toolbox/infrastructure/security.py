"""访问令牌与密码哈希"""
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

# 令牌最长有效期：8 小时
DEFAULT_MAX_AGE = 60 * 60 * 8

_SALT = "aiqiji-toolbox-auth"


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=_SALT)


def create_access_token(*, secret_key: str, user_id: str, role: str) -> str:
    return _serializer(secret_key).dumps({"user_id": str(user_id), "role": role})


def decode_access_token(
    *, secret_key: str, token: str, max_age_seconds: int = DEFAULT_MAX_AGE
) -> Optional[Dict[str, Any]]:
    """
    校验令牌，返回载荷；签名无效或已过期时返回 None
    """
    try:
        data = _serializer(secret_key).loads(token, max_age=max_age_seconds)
    except SignatureExpired:
        return None
    except BadSignature:
        return None
    if not isinstance(data, dict) or not data.get("user_id"):
        return None
    return data


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)
