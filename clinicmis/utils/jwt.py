# clinicmis/utils/jwt.py
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError

from clinicmis.core.config import settings


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issue a bearer token for a user email. Login itself lives outside this service.
    """
    now = datetime.utcnow()
    delta = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": subject,  # user email
        "iat": now,
        "exp": now + delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
