"""Access tokens (JWT) for accounts that signed in with an OTP."""
from datetime import datetime, timedelta, timezone
import secrets
import jwt
from reward_program.config import get_settings
from reward_program.models.user import Account

settings = get_settings()


def create_access_token(account: Account) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    # PyJWT expects "sub" to be a string
    payload = {"sub": str(account.id), "kind": account.kind.value, "roles": account.role_names, "exp": expire}
    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def generate_refresh_token() -> tuple[str, datetime]:
    """Opaque random token and its expiry. Kept server-side so it can be rotated and revoked."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_token_expire_days)
    return secrets.token_urlsafe(64), expire


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode JWT; returns (payload, error_message)."""
    if not token or not isinstance(token, str):
        return None, "empty token"
    token = token.strip()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload, None
    except jwt.ExpiredSignatureError as e:
        return None, str(e)
    except jwt.PyJWTError as e:
        return None, str(e)
