from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt


def create_access_token(
    *,
    subject: str,
    secret: str,
    alg: str,
    expires_minutes: int,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, secret, algorithm=alg)


def decode_access_token(token: str, *, secret: str, alg: str) -> Dict[str, Any]:
    return jwt.decode(token, secret, algorithms=[alg])
