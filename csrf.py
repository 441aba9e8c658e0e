from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_MAX_AGE_SECS = 2 * 3600


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().secret_key, salt="csrf-token")


def generate_csrf_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: int, max_age: int = CSRF_MAX_AGE_SECS
) -> bool:
    """True when ``token`` was issued to ``user_id`` within ``max_age`` seconds."""
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        return False
    return isinstance(data, dict) and data.get("u") == user_id
