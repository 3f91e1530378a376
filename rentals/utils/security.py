from datetime import datetime, timedelta, timezone

from jose import JWTError, ExpiredSignatureError, jwt

from rentals.utils.exceptions import TokenExpiredException, UnauthorizedException


# ─── JWT ──────────────────────────────────────────────────────────────────────
def create_access_token(
    user_id: str, secret_key: str, algorithm: str = "HS256", expires_minutes: int = 60,
) -> str:
    """
    Create a short-lived JWT access token.
    Payload: sub (user_id), type, exp
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def verify_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> dict:
    """
    Decode and validate a JWT access token.
    Raises UnauthorizedException if invalid, TokenExpiredException if expired.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
        if payload.get("type") != "access":
            raise UnauthorizedException("Invalid token type")
        return payload
    except ExpiredSignatureError:
        raise TokenExpiredException()
    except JWTError:
        raise UnauthorizedException("Invalid or malformed token")
