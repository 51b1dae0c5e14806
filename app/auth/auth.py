from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional
import logging
import os
import secrets

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from app.config.loader import get_auth_settings

# Sessions are issued by an upstream identity service; Huddle only checks them.
logger = logging.getLogger("auth_module")

_MIN_KEY_LENGTH = 32


def generate_dev_key() -> str:
    """Throwaway signing key; tokens die with the process."""
    logger.warning(
        "No HUDDLE_SECRET_KEY configured; signing with a generated development key."
    )
    return secrets.token_urlsafe(48)


def validate_secret_key(key: str) -> bool:
    if not key:
        return False
    if len(key) < _MIN_KEY_LENGTH:
        logger.error(f"JWT secret key is shorter than {_MIN_KEY_LENGTH} characters.")
        return False
    return True


def _resolve_secret_key(configured: str) -> str:
    if configured:
        if not validate_secret_key(configured):
            raise RuntimeError(
                f"HUDDLE_SECRET_KEY must be at least {_MIN_KEY_LENGTH} characters."
            )
        return configured
    if os.getenv("HUDDLE_ENV", "development").strip().lower() in {"production", "prod"}:
        raise RuntimeError("HUDDLE_SECRET_KEY is required when HUDDLE_ENV=production.")
    return generate_dev_key()


_AUTH_SETTINGS = get_auth_settings()

SECRET_KEY = _resolve_secret_key(_AUTH_SETTINGS["secret_key"])
ALGORITHM = _AUTH_SETTINGS["algorithm"]
JWT_ISSUER = _AUTH_SETTINGS["issuer"]
ACCESS_TOKEN_EXPIRE_MINUTES = _AUTH_SETTINGS["access_token_expire_minutes"]


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.user_id


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a bearer token for ``claims``; ``sub`` must hold the user id."""
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime, "iss": JWT_ISSUER}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


async def get_token_from_request(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header or the access_token cookie."""
    raw = request.headers.get("Authorization") or request.cookies.get("access_token")
    if not raw:
        return None
    scheme, _, credentials = raw.partition(" ")
    token = credentials if scheme == "Bearer" else raw
    return token.strip() or None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials. Invalid or expired token.",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Optional[str] = Depends(get_token_from_request),
) -> CurrentUser:
    if token is None:
        logger.info("Rejected request without a bearer token.")
        raise _unauthorized()

    try:
        claims = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=JWT_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as exc:
        logger.warning(f"Rejected bearer token: {exc}")
        raise _unauthorized()

    subject = claims.get("sub")
    if not subject:
        logger.warning("Rejected bearer token without a 'sub' claim.")
        raise _unauthorized()

    email = claims.get("email")
    return CurrentUser(
        user_id=str(subject),
        email=str(email).strip().lower() if email else None,
        name=claims.get("name"),
    )
