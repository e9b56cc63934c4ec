import base64
import hashlib
import hmac
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.orm import Session

from . import config, models
from .database import get_db

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "240000"))

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_password_hash(password: str) -> str:
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, _ITERATIONS)
    return "pbkdf2_sha256${}${}${}".format(
        _ITERATIONS,
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    )


def verify_password(password: str, hashed: str) -> bool:
    try:
        _, iterations, salt, expected = hashed.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), base64.b64decode(salt), int(iterations))
    return hmac.compare_digest(base64.b64encode(digest).decode("ascii"), expected)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=config.access_token_expire_minutes()))
    payload = {**data, "iat": int(now.timestamp()), "exp": int(expire.timestamp()), "jti": str(uuid.uuid4())}
    return jwt.encode(payload, config.secret_key(), algorithm=ALGORITHM)


def _user_from_token(token: str, db: Session) -> models.User:
    try:
        payload = jwt.decode(token, config.secret_key(), algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise HTTPException(status_code=401, detail="Token has expired")
    except InvalidTokenError as e:
        logger.debug("Token is invalid: %s", str(e))
        raise HTTPException(status_code=401, detail="Invalid token")
    email = payload.get("sub")
    user = db.query(models.User).filter(models.User.email == email).first() if email else None
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> models.User:
    return _user_from_token(token, db)


def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme), db: Session = Depends(get_db)
) -> models.User | None:
    """Resolve the signed-in user, or ``None`` for anonymous browsing."""

    if not token:
        return None
    return _user_from_token(token, db)
